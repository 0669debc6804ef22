"""Inspection pipelines: sheet overview, source header detection and template headers."""

from typing import Any, Dict, List, Optional, Set, Union

from tariffworks.errors import ValidationFailure
from tariffworks.io.row_source import Row, RowSource
from tariffworks.logging_config import get_logger
from tariffworks.processing.chunking import (
    CancellationCheck,
    ChunkGroup,
    ProgressCallback,
    emit_progress,
    process_rows_in_chunks,
    scaled_progress,
)
from tariffworks.processing.headers import combined_headers, detect_header_rows

logger = get_logger(__name__)


class UniqueValueCollector:
    """Collects the distinct non-empty values of each header column."""

    def __init__(self, header: Row):
        self.headers: List[str] = []
        self.columns: List[tuple] = []
        self.values: Dict[str, Set[str]] = {}
        for col, cell in enumerate(header.cells(), start=1):
            text = cell.text.strip()
            if text:
                self.headers.append(text)
                self.columns.append((text, col))
                self.values[text] = set()

    async def __call__(self, rows: List[Row], group: ChunkGroup, start_row: int) -> int:
        for row in rows:
            for header, col in self.columns:
                value = row.text(col)
                if value:
                    self.values[header].add(value)
        return len(rows)

    def result(self) -> Dict[str, Any]:
        return {
            "headers": self.headers,
            "uniqueValuesPerColumn": {h: sorted(v) for h, v in self.values.items()},
        }


async def inspect_sheets(
    sheets: List[RowSource],
    max_rows: int = 5000,
    chunk_size: int = 1000,
    progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationCheck] = None,
) -> Dict[str, Any]:
    """
    Headers and unique values per column for every non-empty sheet.

    At most ``max_rows`` data rows below the header are read per sheet. Sheets
    share the 10-90% progress range.

    Returns:
        {"sheets": {sheet name: {headers, uniqueValuesPerColumn}}}
    """
    inspection: Dict[str, Any] = {}
    total = len(sheets)

    for position, sheet in enumerate(sheets):
        if sheet.row_count == 0:
            continue
        low = 10 + round(80 * position / total)
        high = 10 + round(80 * (position + 1) / total)
        await emit_progress(progress, low, f"Inspecting sheet: {sheet.name}")

        collector = UniqueValueCollector(sheet.row(1))
        await process_rows_in_chunks(
            sheet,
            1,
            chunk_size,
            collector,
            scaled_progress(progress, low, high),
            cancel_token,
            max_rows=max_rows,
        )
        inspection[sheet.name] = collector.result()

    logger.info(f"Inspected {len(inspection)} of {total} sheets")
    return {"sheets": inspection}


def inspect_source(
    sheets: List[RowSource], header_row_count: Union[int, str] = "auto"
) -> Dict[str, Any]:
    """Sheet names, header-row counts and combined headers of a report source.

    Raises:
        ValidationFailure: No sheet has any rows.
    """
    result: Dict[str, Any] = {"sheets": [], "headersBySheet": {}, "detectedHeaderRows": {}}
    for sheet in sheets:
        if sheet.row_count < 1:
            continue
        count = detect_header_rows(sheet, header_row_count)
        result["sheets"].append(sheet.name)
        result["detectedHeaderRows"][sheet.name] = count
        result["headersBySheet"][sheet.name] = combined_headers(sheet, count)

    if not result["sheets"]:
        raise ValidationFailure("The workbook has no valid or non-empty sheets.")
    return result


def inspect_template(sheet: Optional[RowSource]) -> List[str]:
    if sheet is None:
        raise ValidationFailure("Template file is invalid or has no sheets.")
    headers = [cell.text.strip() for cell in sheet.row(1).cells() if cell.text.strip()]
    if not headers:
        raise ValidationFailure("Template has no headers in its first row.")
    return headers
