"""Write pipeline results to .xlsx workbooks in the output directory."""

import os
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill

from tariffworks.logging_config import get_logger
from tariffworks.processing.prices import PRICE_BUCKETS

logger = get_logger(__name__)

PRICE_LIST_SHEET = "Buku Tarif LAB"
REPORT_SHEET = "Rekap Laporan"

# (header, row key, width)
PRICE_LIST_COLUMNS = [("Kode", "code", 15), ("Nama Pemeriksaan", "name", 45)] + [
    (bucket, bucket, 15) for bucket in PRICE_BUCKETS
]

_HEADER_FILL = PatternFill(fill_type="solid", fgColor="FFD3D3D3")


def _timestamped_path(output_dir: str, prefix: str) -> str:
    os.makedirs(output_dir, exist_ok=True)
    stamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")
    return os.path.join(output_dir, f"{prefix}_{stamp}.xlsx")


def _write_sheet(
    title: str,
    columns: Sequence[tuple],
    rows: List[Dict[str, Any]],
    path: str,
    number_format: Optional[str] = None,
    filled_header: bool = False,
) -> str:
    wb = Workbook()
    ws = wb.active
    ws.title = title

    ws.append([header for header, _, _ in columns])
    for col_idx, (_, _, width) in enumerate(columns, start=1):
        header_cell = ws.cell(row=1, column=col_idx)
        header_cell.font = Font(bold=True)
        if filled_header:
            header_cell.fill = _HEADER_FILL
        ws.column_dimensions[header_cell.column_letter].width = width

    for row in rows:
        ws.append([row.get(key) for _, key, _ in columns])

    if number_format:
        for ws_row in ws.iter_rows(min_row=2, min_col=3):
            for ws_cell in ws_row:
                ws_cell.number_format = number_format

    wb.save(path)
    logger.info(f"Wrote {len(rows)} rows to {path}")
    return path


def write_price_list(rows: List[Dict[str, Any]], output_dir: str) -> str:
    """Consolidated tariff book: code, name and one column per price bucket."""
    path = _timestamped_path(output_dir, "Buku_Tarif_LAB")
    return _write_sheet(
        PRICE_LIST_SHEET, PRICE_LIST_COLUMNS, rows, path,
        number_format="#,##0", filled_header=True,
    )


def write_report(rows: List[Dict[str, Any]], output_headers: List[str], output_dir: str) -> str:
    """Custom report with the caller-declared output columns."""
    path = _timestamped_path(output_dir, "Laporan_Kustom")
    columns = [(header, header, 25) for header in output_headers]
    return _write_sheet(REPORT_SHEET, columns, rows, path)
