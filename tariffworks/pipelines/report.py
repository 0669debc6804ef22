"""Report-row mapping pipeline: copies mapped columns into a custom report, with dedup."""

from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from tariffworks.errors import ValidationFailure
from tariffworks.io.row_source import Row, RowSource
from tariffworks.logging_config import get_logger
from tariffworks.processing.chunking import (
    CancellationCheck,
    ChunkGroup,
    ProgressCallback,
    concat_results,
    emit_progress,
    process_rows_in_chunks,
    scaled_progress,
)
from tariffworks.processing.headers import combined_headers

logger = get_logger(__name__)


class ReportMapping(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source_header: str = Field(alias="sourceHeader")
    output_header: str = Field(alias="outputHeader")


class ReportConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    selected_sheet: str = Field(alias="selectedSheet")
    header_row_count: int = Field(default=1, alias="headerRowCount", ge=1)
    mappings: List[ReportMapping]
    unique_key_column: Optional[str] = Field(default=None, alias="uniqueKeyColumn")

    @property
    def output_headers(self) -> List[str]:
        return [m.output_header for m in self.mappings]


class ReportRowMapper:
    """Chunk transform that maps source rows to report rows.

    The set of seen unique keys spans all chunks; a row is dropped as a
    duplicate only when its key is non-empty and was seen before.
    """

    def __init__(self, source_headers: List[str], config: ReportConfig):
        self.config = config
        self.columns = []
        for mapping in config.mappings:
            if mapping.source_header in source_headers:
                col = source_headers.index(mapping.source_header) + 1
                self.columns.append((col, mapping.output_header))
            else:
                logger.warning(f"Source header '{mapping.source_header}' not found, column left empty")

        self.key_column = None
        if config.unique_key_column:
            if config.unique_key_column not in source_headers:
                raise ValidationFailure(
                    f"Unique key column '{config.unique_key_column}' not found in sheet headers"
                )
            self.key_column = source_headers.index(config.unique_key_column) + 1

        self.seen_keys: Set[str] = set()
        self.total_rows_read = 0
        self.rows_skipped_duplicate = 0

    async def __call__(self, rows: List[Row], group: ChunkGroup, start_row: int) -> List[Dict[str, Any]]:
        chunk_rows: List[Dict[str, Any]] = []

        for row in rows:
            self.total_rows_read += 1

            if self.key_column is not None:
                key = row.cell(self.key_column).text
                if key:
                    if key in self.seen_keys:
                        self.rows_skipped_duplicate += 1
                        continue
                    self.seen_keys.add(key)

            new_row: Dict[str, Any] = {}
            has_data = False
            for col, output_header in self.columns:
                cell = row.cell(col)
                value = cell.value if cell.is_number_or_date else cell.text
                new_row[output_header] = value
                if value is not None and value != "":
                    has_data = True

            if has_data:
                chunk_rows.append(new_row)

        return chunk_rows

    def merge(self, results: List[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        return concat_results(results)


async def build_report_rows(
    source: Optional[RowSource],
    config: ReportConfig,
    chunk_size: int = 500,
    progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationCheck] = None,
) -> Dict[str, Any]:
    """
    Map the rows of ``source`` to report rows.

    Progress: 10 after reading headers, 20 at the start of row processing, the
    chunked pass covers 20-80%. Writing the workbook (85) and completion are
    left to the caller.

    Returns:
        {rows, headers, diagnostics}
    """
    if source is None:
        raise ValidationFailure(f'Sheet "{config.selected_sheet}" not found.')

    source_headers = combined_headers(source, config.header_row_count)
    await emit_progress(progress, 10, "Reading headers...")

    mapper = ReportRowMapper(source_headers, config)
    await emit_progress(progress, 20, "Starting data processing...")

    chunk_results = await process_rows_in_chunks(
        source,
        config.header_row_count,
        chunk_size,
        mapper,
        scaled_progress(progress, 20, 80),
        cancel_token,
    )
    rows = mapper.merge(chunk_results)

    diagnostics = {
        "totalRowsRead": mapper.total_rows_read,
        "rowsAdded": len(rows),
        "rowsSkipped_DuplicateKey": mapper.rows_skipped_duplicate,
    }
    logger.info(f"Report rows built for sheet '{source.name}': {diagnostics}")

    return {"rows": rows, "headers": config.output_headers, "diagnostics": diagnostics}
