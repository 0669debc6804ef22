"""Row grouping/filtering pipeline: builds the consolidated price list.

Rows are grouped by ``code|name``; each row's class column selects the price
bucket its price lands in. Chunks are merged per key with later chunks winning
per field, so an item whose rows straddle a chunk boundary keeps the last price
seen for each bucket.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from tariffworks.errors import ValidationFailure
from tariffworks.io.row_source import Row, RowSource, header_columns
from tariffworks.processing.chunking import (
    CancellationCheck,
    ChunkGroup,
    ProgressCallback,
    emit_progress,
    merge_keyed,
    process_rows_in_chunks,
    scaled_progress,
)
from tariffworks.processing.prices import IGNORE_BUCKET, parse_price

REJECTED_SAMPLE_SIZE = 10
ACCEPTED_SAMPLE_SIZE = 10


class ColumnMappings(BaseModel):
    """Header names of the four designated columns.

    Also accepts the Indonesian form field names (kode, nama, kelas, harga).
    """

    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(alias="kode")
    name: str = Field(alias="nama")
    class_: str = Field(alias="kelas")
    price: str = Field(alias="harga")


class FilterConfig(BaseModel):
    column: Optional[str] = None
    values: List[str] = Field(default_factory=list)

    @property
    def enabled(self) -> bool:
        return bool(self.column) and len(self.values) > 0


class PriceGrouping:
    """Chunk transform plus merge for the grouping pipeline.

    Counters and the rejected sample live on the instance and accumulate across
    chunks, which is why chunks must run in order.
    """

    def __init__(
        self,
        columns: Dict[str, int],
        class_map: Dict[str, str],
        filter_column: Optional[int] = None,
        included_values: Optional[List[str]] = None,
    ):
        self.columns = columns
        self.class_map = {k.strip().upper(): v for k, v in class_map.items()}
        self.filter_column = filter_column
        self.included_values = {v.upper() for v in (included_values or [])}
        self.total_rows_read = 0
        self.total_rows_filtered = 0
        self.rejected_rows_sample: List[Dict[str, str]] = []

    async def __call__(self, rows: List[Row], group: ChunkGroup, start_row: int) -> Dict[str, Dict[str, Any]]:
        chunk_grouped: Dict[str, Dict[str, Any]] = {}
        col = self.columns

        for row in rows:
            self.total_rows_read += 1

            if self.filter_column is not None:
                cell_value = row.text(self.filter_column)
                if cell_value.upper() not in self.included_values:
                    if len(self.rejected_rows_sample) < REJECTED_SAMPLE_SIZE:
                        self.rejected_rows_sample.append({
                            "code": row.text(col["code"]),
                            "name": row.text(col["name"]),
                            "reason": f"Value '{cell_value}' does not match filter",
                        })
                    self.total_rows_filtered += 1
                    continue

            code = row.text(col["code"])
            name = row.text(col["name"])
            if not code or not name:
                continue

            class_from_file = row.text(col["class"]).upper()
            price = parse_price(row.cell(col["price"]).value)
            key = f"{code}|{name}"

            entry = chunk_grouped.setdefault(key, {"code": code, "name": name})
            target = self.class_map.get(class_from_file)
            if target and target != IGNORE_BUCKET:
                entry[target] = price

        return chunk_grouped

    def merge(self, results: List[Dict[str, Dict[str, Any]]]) -> Dict[str, Dict[str, Any]]:
        return merge_keyed(results)


def resolve_grouping(
    header: Row,
    mappings: ColumnMappings,
    class_map: Dict[str, str],
    filter_config: Optional[FilterConfig],
) -> PriceGrouping:
    """Resolve header names to columns. Raises ValidationFailure if any is missing."""
    headers = header_columns(header)
    columns = {
        "code": headers.get(mappings.code),
        "name": headers.get(mappings.name),
        "class": headers.get(mappings.class_),
        "price": headers.get(mappings.price),
    }
    missing = [key for key, value in columns.items() if not value]
    if missing:
        raise ValidationFailure(f"Invalid column mapping, not found: {', '.join(missing)}")

    filter_column = None
    included: List[str] = []
    if filter_config is not None and filter_config.enabled:
        # A filter on an unknown column keeps every row
        filter_column = headers.get(filter_config.column)
        included = filter_config.values

    return PriceGrouping(columns, class_map, filter_column, included)


async def group_price_rows(
    source: Optional[RowSource],
    mappings: ColumnMappings,
    class_map: Dict[str, str],
    filter_config: Optional[FilterConfig] = None,
    chunk_size: int = 500,
    progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationCheck] = None,
    sheet_name: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Group, filter and bucket the rows of ``source``.

    Progress: the chunked pass covers 0-80%, then 85% and 90% for finalizing.

    Returns:
        {summary, rejectedRowsSample, acceptedRowsSample, allAcceptedRows}

    Raises:
        ValidationFailure: Missing sheet or unresolvable column mapping.
        ChunkTransformError: A chunk failed.
    """
    if source is None:
        raise ValidationFailure(f'Sheet "{sheet_name}" not found.')

    grouping = resolve_grouping(source.row(1), mappings, class_map, filter_config)

    chunk_results = await process_rows_in_chunks(
        source,
        1,
        chunk_size,
        grouping,
        scaled_progress(progress, 0, 80),
        cancel_token,
    )
    grouped = grouping.merge(chunk_results)

    await emit_progress(progress, 85, "Finalizing data...")

    all_accepted_rows = list(grouped.values())
    summary = {
        "totalRowsRead": grouping.total_rows_read,
        "totalRowsFiltered": grouping.total_rows_filtered,
        "totalRowsProcessed": grouping.total_rows_read - grouping.total_rows_filtered,
        "uniqueItemCount": len(all_accepted_rows),
    }

    await emit_progress(progress, 90, "Processing completed")

    return {
        "summary": summary,
        "rejectedRowsSample": grouping.rejected_rows_sample,
        "acceptedRowsSample": all_accepted_rows[:ACCEPTED_SAMPLE_SIZE],
        "allAcceptedRows": all_accepted_rows,
    }
