"""Job pipelines as the runner executes them.

Each factory binds a request's parameters and returns the pipeline coroutine
function handed to ``JobRunner.submit``. The pipeline resolves the input files,
loads the workbook off the event loop, runs the transform, writes any output
workbook and returns the job result. Downloaded temp files are removed when the
pipeline ends, whatever the outcome.
"""

import asyncio
from contextlib import ExitStack
from functools import partial
from typing import Any, Callable, Dict, Optional, Union

from tariffworks.config import Settings
from tariffworks.errors import ValidationFailure
from tariffworks.io.file_fetcher import LocalFile, fetch_to_local
from tariffworks.io.row_source import SpreadsheetWorkbook
from tariffworks.io.workbook_writer import write_price_list, write_report
from tariffworks.jobs.runner import JobHandle, Pipeline
from tariffworks.logging_config import get_logger
from tariffworks.pipelines.comparison import compare_price_files
from tariffworks.pipelines.grouping import ColumnMappings, FilterConfig, group_price_rows
from tariffworks.pipelines.inspection import inspect_sheets, inspect_source, inspect_template
from tariffworks.pipelines.report import ReportConfig, build_report_rows
from tariffworks.processing.chunking import scaled_progress

logger = get_logger(__name__)

WorkbookOpener = Callable[[str], Any]


async def _run_blocking(fn, *args, **kwargs):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(fn, *args, **kwargs))


class _Inputs:
    """Fetches file references and opens workbooks, releasing all of them on exit."""

    def __init__(self, settings: Settings, opener: WorkbookOpener):
        self.settings = settings
        self.opener = opener
        self._stack = ExitStack()

    async def workbook(self, ref: str):
        local: LocalFile = await _run_blocking(
            fetch_to_local, ref, self.settings.max_download_bytes
        )
        self._stack.enter_context(local)
        workbook = await _run_blocking(self.opener, local.path)
        self._stack.enter_context(workbook)
        return workbook

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self._stack.close()


def inspection_job(file_ref: str, settings: Settings, opener: WorkbookOpener = SpreadsheetWorkbook.open) -> Pipeline:
    async def run(job: JobHandle) -> Dict[str, Any]:
        with _Inputs(settings, opener) as inputs:
            await job.progress(5, "Fetching file...")
            workbook = await inputs.workbook(file_ref)
            await job.progress(10, "Reading Excel file...")
            return await inspect_sheets(
                workbook.sheets(),
                max_rows=settings.max_rows_to_inspect,
                chunk_size=settings.chunk_excel_inspection,
                progress=job.progress,
                cancel_token=job.cancel_token,
            )

    return run


def processing_job(
    file_ref: str,
    sheet: str,
    mappings: ColumnMappings,
    class_map: Dict[str, str],
    filter_config: Optional[FilterConfig],
    settings: Settings,
    opener: WorkbookOpener = SpreadsheetWorkbook.open,
) -> Pipeline:
    """Group/filter a sheet into the consolidated price-list workbook."""

    async def run(job: JobHandle) -> Dict[str, Any]:
        with _Inputs(settings, opener) as inputs:
            await job.progress(5, "Fetching file...")
            workbook = await inputs.workbook(file_ref)

            result = await group_price_rows(
                workbook.sheet(sheet),
                mappings,
                class_map,
                filter_config,
                chunk_size=settings.chunk_excel_processing,
                progress=job.progress,
                cancel_token=job.cancel_token,
                sheet_name=sheet,
            )

        if not result["allAcceptedRows"]:
            raise ValidationFailure("No rows left to process after the filter was applied.")

        await job.progress(95, "Creating Excel file...")
        excel_path = await _run_blocking(write_price_list, result["allAcceptedRows"], settings.output_dir)
        return {
            "excel": excel_path,
            "diagnostics": {
                "summary": result["summary"],
                "rejectedRowsSample": result["rejectedRowsSample"],
                "acceptedRowsSample": result["acceptedRowsSample"],
            },
        }

    return run


def double_check_job(
    original_ref: str,
    processed_ref: str,
    sheet: str,
    mappings: ColumnMappings,
    class_map: Dict[str, str],
    settings: Settings,
    opener: WorkbookOpener = SpreadsheetWorkbook.open,
) -> Pipeline:
    """Compare a processed price list against the sheet it was built from."""

    async def run(job: JobHandle) -> Dict[str, Any]:
        with _Inputs(settings, opener) as inputs:
            await job.progress(5, "Fetching files...")
            original = await inputs.workbook(original_ref)
            processed = await inputs.workbook(processed_ref)

            await job.progress(10, "Reading files...")
            return await compare_price_files(
                original.sheet(sheet),
                processed.first_sheet(),
                mappings,
                class_map,
                chunk_size=settings.chunk_double_check,
                progress=scaled_progress(job.progress, 10, 95),
                cancel_token=job.cancel_token,
                sheet_name=sheet,
            )

    return run


def source_inspection_job(
    file_ref: str,
    header_row_count: Union[int, str],
    settings: Settings,
    opener: WorkbookOpener = SpreadsheetWorkbook.open,
) -> Pipeline:
    async def run(job: JobHandle) -> Dict[str, Any]:
        with _Inputs(settings, opener) as inputs:
            await job.progress(10, "Fetching file...")
            workbook = await inputs.workbook(file_ref)
            await job.progress(20, "Inspecting source file...")
            return await _run_blocking(inspect_source, workbook.sheets(), header_row_count)

    return run


def report_build_job(
    file_ref: str,
    config: ReportConfig,
    settings: Settings,
    opener: WorkbookOpener = SpreadsheetWorkbook.open,
) -> Pipeline:
    """Map the selected sheet into a custom report workbook."""

    async def run(job: JobHandle) -> Dict[str, Any]:
        with _Inputs(settings, opener) as inputs:
            await job.progress(5, "Fetching file...")
            workbook = await inputs.workbook(file_ref)

            report = await build_report_rows(
                workbook.sheet(config.selected_sheet),
                config,
                chunk_size=settings.chunk_report_building,
                progress=job.progress,
                cancel_token=job.cancel_token,
            )

        await job.progress(85, "Writing output file...")
        excel_path = await _run_blocking(
            write_report, report["rows"], report["headers"], settings.output_dir
        )
        return {"excel": excel_path, "diagnostics": report["diagnostics"]}

    return run


def template_inspection_job(
    file_ref: str,
    settings: Settings,
    opener: WorkbookOpener = SpreadsheetWorkbook.open,
) -> Pipeline:
    async def run(job: JobHandle) -> Dict[str, Any]:
        with _Inputs(settings, opener) as inputs:
            await job.progress(10, "Fetching template...")
            workbook = await inputs.workbook(file_ref)
            await job.progress(30, "Inspecting template...")
            return {"headers": inspect_template(workbook.first_sheet())}

    return run
