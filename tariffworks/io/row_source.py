"""Row-addressable tabular sources backed by openpyxl or in-memory lists.

Rows and columns are 1-based, as in the spreadsheet itself. Every cell exposes a
display text and its typed value.

Usage:
    with SpreadsheetWorkbook.open("tarif.xlsx") as wb:
        sheet = wb.sheet("LAB")
        header = sheet.row(1)
        print(sheet.row_count, header.cell(1).text)
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set, Tuple

from openpyxl import load_workbook
from openpyxl.worksheet.worksheet import Worksheet


def cell_text(value: Any) -> str:
    """Display form of a cell value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class Cell:
    text: str = ""
    value: Any = None
    is_merged: bool = False

    @property
    def is_number_or_date(self) -> bool:
        if isinstance(self.value, bool):
            return False
        return isinstance(self.value, (int, float, datetime, date))


EMPTY_CELL = Cell()


class Row:
    """One spreadsheet row. Missing cells read as empty."""

    def __init__(self, number: int, cells: Sequence[Cell]):
        self.number = number
        self._cells = list(cells)

    @property
    def cell_count(self) -> int:
        return len(self._cells)

    def cell(self, col: int) -> Cell:
        if col < 1 or col > len(self._cells):
            return EMPTY_CELL
        return self._cells[col - 1]

    def text(self, col: int) -> str:
        """Trimmed display text of a cell."""
        return self.cell(col).text.strip()

    def cells(self) -> List[Cell]:
        return list(self._cells)


class RowSource(Protocol):
    """Row-addressable tabular source consumed by the chunked iterator."""

    name: str

    @property
    def row_count(self) -> int: ...

    def row(self, index: int) -> Row: ...


class ListRowSource:
    """In-memory row source. ``rows[0]`` is sheet row 1."""

    def __init__(
        self,
        rows: Sequence[Sequence[Any]],
        name: str = "Sheet1",
        merged: Optional[Set[Tuple[int, int]]] = None,
    ):
        self.name = name
        self._rows = [list(r) for r in rows]
        self._merged = merged or set()

    @property
    def row_count(self) -> int:
        return len(self._rows)

    def row(self, index: int) -> Row:
        if index < 1 or index > len(self._rows):
            return Row(index, [])
        values = self._rows[index - 1]
        return Row(
            index,
            [
                Cell(cell_text(v), v, (index, col) in self._merged)
                for col, v in enumerate(values, start=1)
            ],
        )


class WorksheetRowSource:
    """Row source over an openpyxl worksheet."""

    def __init__(self, worksheet: Worksheet):
        self._ws = worksheet
        self.name = worksheet.title
        self._merge_masters: Optional[Dict[Tuple[int, int], Any]] = None

    def _merged_values(self) -> Dict[Tuple[int, int], Any]:
        # Non-anchor cells of a merged range read as the anchor's value
        if self._merge_masters is None:
            masters: Dict[Tuple[int, int], Any] = {}
            for rng in self._ws.merged_cells.ranges:
                anchor = self._ws.cell(row=rng.min_row, column=rng.min_col).value
                for row_idx in range(rng.min_row, rng.max_row + 1):
                    for col_idx in range(rng.min_col, rng.max_col + 1):
                        masters[(row_idx, col_idx)] = anchor
            self._merge_masters = masters
        return self._merge_masters

    @property
    def row_count(self) -> int:
        ws = self._ws
        # openpyxl reports one row for an untouched sheet
        if ws.max_row == 1 and ws.max_column == 1 and ws.cell(row=1, column=1).value is None:
            return 0
        return ws.max_row

    def row(self, index: int) -> Row:
        ws = self._ws
        if index < 1 or index > ws.max_row:
            return Row(index, [])
        merged = self._merged_values()
        cells = []
        for col, ws_cell in enumerate(ws[index], start=1):
            is_merged = (index, col) in merged
            value = merged[(index, col)] if is_merged else ws_cell.value
            cells.append(Cell(cell_text(value), value, is_merged))
        return Row(index, cells)


class SpreadsheetWorkbook:
    """Opened workbook exposing its sheets as row sources."""

    def __init__(self, workbook, path: Optional[str] = None):
        self._wb = workbook
        self.path = path

    @classmethod
    def open(cls, path: str) -> "SpreadsheetWorkbook":
        # Not read-only: merged ranges are needed for header detection
        return cls(load_workbook(path, data_only=True), path=path)

    @property
    def sheet_names(self) -> List[str]:
        return list(self._wb.sheetnames)

    def sheet(self, name: Optional[str]) -> Optional[WorksheetRowSource]:
        if not name or name not in self._wb.sheetnames:
            return None
        return WorksheetRowSource(self._wb[name])

    def first_sheet(self) -> Optional[WorksheetRowSource]:
        if not self._wb.worksheets:
            return None
        return WorksheetRowSource(self._wb.worksheets[0])

    def sheets(self) -> List[WorksheetRowSource]:
        return [WorksheetRowSource(ws) for ws in self._wb.worksheets]

    def close(self) -> None:
        self._wb.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class InMemoryWorkbook:
    """Workbook-shaped container of ``ListRowSource`` sheets, keyed by name."""

    def __init__(self, sheets: Dict[str, ListRowSource]):
        self._sheets = dict(sheets)
        self.path = None

    @property
    def sheet_names(self) -> List[str]:
        return list(self._sheets)

    def sheet(self, name: Optional[str]) -> Optional[ListRowSource]:
        if not name:
            return None
        return self._sheets.get(name)

    def first_sheet(self) -> Optional[ListRowSource]:
        return next(iter(self._sheets.values()), None)

    def sheets(self) -> List[ListRowSource]:
        return list(self._sheets.values())

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def header_columns(row: Row) -> Dict[str, int]:
    """Map trimmed, non-empty header texts to their 1-based column."""
    headers: Dict[str, int] = {}
    for col, cell in enumerate(row.cells(), start=1):
        text = cell.text.strip()
        if text:
            headers[text] = col
    return headers
