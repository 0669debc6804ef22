"""Header-row helpers: multi-row header combination and header-row detection."""

from typing import List, Union

from tariffworks.io.row_source import RowSource


def combined_headers(source: RowSource, header_row_count: int) -> List[str]:
    """Flatten ``header_row_count`` header rows into one name per column.

    With stacked headers (e.g. "Harga" above "OPD" / "ED"), a column's name joins
    the distinct labels of its header cells from top to bottom with " - ". An
    empty cell inherits the label above it only when it sits on the last header
    row or a lower row has its own label. Columns without any label are named
    ``Column_<n>``.
    """
    if header_row_count <= 0:
        return []

    if header_row_count == 1:
        return [
            cell.text.strip() or f"Column_{col}"
            for col, cell in enumerate(source.row(1).cells(), start=1)
        ]

    matrix = [
        [cell.text.strip() for cell in source.row(r).cells()]
        for r in range(1, header_row_count + 1)
    ]

    def label(r: int, c: int) -> str:
        row = matrix[r]
        return row[c] if c < len(row) else ""

    final_headers = []
    num_cols = len(matrix[-1])
    for c in range(num_cols):
        context = ""
        parts: List[str] = []
        for r in range(header_row_count):
            value = label(r, c)
            if value:
                context = value
            is_last = r == header_row_count - 1
            if is_last or (r + 1 < header_row_count and label(r + 1, c)):
                if context and context not in parts:
                    parts.append(context)
        final_headers.append(" - ".join(parts) or f"Column_{c + 1}")
    return final_headers


def detect_header_rows(source: RowSource, header_row_count: Union[int, str] = "auto") -> int:
    """Number of header rows of a sheet.

    In ``auto`` mode: merged cells in rows 1 and 2 mean three header rows, merged
    cells in row 1 only mean two, otherwise one.
    """
    if header_row_count != "auto":
        return int(header_row_count)

    def has_merge(row_number: int) -> bool:
        return any(cell.is_merged for cell in source.row(row_number).cells())

    row1_merged = has_merge(1)
    row2_merged = has_merge(2)
    if row1_merged and row2_merged:
        return 3
    if row1_merged:
        return 2
    return 1
