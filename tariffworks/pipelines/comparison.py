"""Cross-file comparison pipeline: checks a processed price list against its source sheet."""

import asyncio
from typing import Any, Dict, List, Optional

from tariffworks.errors import ValidationFailure
from tariffworks.io.row_source import Row, RowSource, header_columns
from tariffworks.logging_config import get_logger
from tariffworks.pipelines.grouping import ColumnMappings
from tariffworks.processing.chunking import (
    CancellationCheck,
    ChunkGroup,
    ProgressCallback,
    concat_results,
    emit_progress,
    process_rows_in_chunks,
    scaled_progress,
)
from tariffworks.processing.prices import IGNORE_BUCKET, PRICE_BUCKETS, parse_price

logger = get_logger(__name__)

MATCH = "MATCH"
MISMATCH = "MISMATCH"
NOT_FOUND = "NOT_FOUND"

PROCESSED_CODE_HEADER = "Kode"
PROCESSED_NAME_HEADER = "Nama Pemeriksaan"


def index_original(
    source: RowSource, mappings: ColumnMappings, class_map: Dict[str, str]
) -> Dict[str, Dict[str, Any]]:
    """Index the source sheet by upper-cased ``CODE|NAME`` in one pass.

    Each entry holds ``{code, name, prices}`` where ``prices`` maps a bucket to
    the parsed price. Classes absent from the class map are used as-is.
    """
    headers = header_columns(source.row(1))
    col_code = headers.get(mappings.code)
    col_name = headers.get(mappings.name)
    col_class = headers.get(mappings.class_)
    col_price = headers.get(mappings.price)
    if not (col_code and col_name and col_class and col_price):
        raise ValidationFailure("Invalid column mapping for the original file")

    normalized_map = {k.strip().upper(): v for k, v in class_map.items()}
    index: Dict[str, Dict[str, Any]] = {}
    for row_num in range(2, source.row_count + 1):
        row = source.row(row_num)
        code = row.text(col_code)
        name = row.text(col_name)
        if not code or not name:
            continue
        raw_class = row.text(col_class).upper()
        price = parse_price(row.cell(col_price).value)

        entry = index.setdefault(f"{code}|{name}".upper(), {"code": code, "name": name, "prices": {}})
        target = normalized_map.get(raw_class) or raw_class
        if target and target != IGNORE_BUCKET:
            entry["prices"][target] = price
    return index


class PriceComparer:
    """Chunk transform classifying processed rows against the original index."""

    def __init__(self, original: Dict[str, Dict[str, Any]], processed_header: Row):
        headers = header_columns(processed_header)
        self.col_code = headers.get(PROCESSED_CODE_HEADER)
        self.col_name = headers.get(PROCESSED_NAME_HEADER)
        if not self.col_code or not self.col_name:
            raise ValidationFailure(
                f"Processed file must have '{PROCESSED_CODE_HEADER}' and "
                f"'{PROCESSED_NAME_HEADER}' columns"
            )
        self.price_columns = [(b, headers[b]) for b in PRICE_BUCKETS if b in headers]
        self.original = original

    def compare_row(self, row: Row) -> Optional[Dict[str, Any]]:
        code = row.text(self.col_code)
        name = row.text(self.col_name)
        if not code or not name:
            return None

        original_item = self.original.get(f"{code}|{name}".upper())
        if original_item is None:
            return {
                "code": code,
                "name": name,
                "status": NOT_FOUND,
                "message": "Item not found in the original file",
            }

        details = []
        for bucket, col in self.price_columns:
            processed_price = parse_price(row.cell(col).value)
            original_price = original_item["prices"].get(bucket)
            details.append({
                "class": bucket,
                "originalPrice": original_price,
                "processedPrice": processed_price,
                "match": processed_price == original_price,
            })

        status = MATCH if all(d["match"] for d in details) else MISMATCH
        return {"code": code, "name": name, "status": status, "details": details}

    async def __call__(self, rows: List[Row], group: ChunkGroup, start_row: int) -> List[Dict[str, Any]]:
        compared = []
        for row in rows:
            entry = self.compare_row(row)
            if entry is not None:
                compared.append(entry)
        return compared

    def merge(self, results: List[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        return concat_results(results)


def summarize(comparisons: List[Dict[str, Any]]) -> Dict[str, Any]:
    matches = sum(1 for c in comparisons if c["status"] == MATCH)
    mismatches = sum(1 for c in comparisons if c["status"] == MISMATCH)
    not_found = sum(1 for c in comparisons if c["status"] == NOT_FOUND)
    compared = matches + mismatches
    return {
        "itemsCompared": compared,
        "priceMatches": matches,
        "priceMismatches": mismatches,
        "notFound": not_found,
        "matchPercentage": (matches / compared) * 100 if compared > 0 else 0,
    }


async def compare_price_files(
    original: Optional[RowSource],
    processed: Optional[RowSource],
    mappings: ColumnMappings,
    class_map: Dict[str, str],
    chunk_size: int = 500,
    progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationCheck] = None,
    sheet_name: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Compare the prices of a processed price list with the original sheet.

    Progress: 20 while indexing the original, 50 when comparison starts, the
    chunked pass covers 50-95%.

    Returns:
        {summary, priceComparison}
    """
    if original is None:
        raise ValidationFailure(f'Sheet "{sheet_name}" not found in the original file')
    if processed is None:
        raise ValidationFailure("Processed file has no sheets")

    await emit_progress(progress, 20, "Building original data map...")
    loop = asyncio.get_running_loop()
    original_index = await loop.run_in_executor(None, index_original, original, mappings, class_map)
    comparer = PriceComparer(original_index, processed.row(1))

    await emit_progress(progress, 50, "Comparing processed data...")
    chunk_results = await process_rows_in_chunks(
        processed,
        1,
        chunk_size,
        comparer,
        scaled_progress(progress, 50, 95),
        cancel_token,
    )
    comparisons = comparer.merge(chunk_results)
    summary = summarize(comparisons)
    logger.info(f"Comparison finished: {summary}")

    return {"summary": summary, "priceComparison": comparisons}
