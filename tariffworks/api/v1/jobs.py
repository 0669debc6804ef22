"""Job API: start spreadsheet jobs, poll their status, cancel them.

Every ``start-*`` endpoint validates its file references, creates the job and
returns ``{ok, jobId}`` right away; the pipeline keeps running in the
background. Files are referenced by local path or http(s) URL.
"""

from typing import Dict, Literal, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from tariffworks.api.v1.deps import get_context
from tariffworks.errors import InvalidJobStateError, JobNotFoundError
from tariffworks.io.file_fetcher import check_excel_ref
from tariffworks.jobs.context import JobContext
from tariffworks.jobs.models import JobType
from tariffworks.pipelines import handlers
from tariffworks.pipelines.grouping import ColumnMappings, FilterConfig
from tariffworks.pipelines.report import ReportConfig
from tariffworks.processing.prices import DEFAULT_CLASS_MAP

router = APIRouter()


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class FileRequest(_Request):
    file: str


class SourceInspectionRequest(_Request):
    file: str
    header_row_count: Union[int, Literal["auto"]] = Field(default="auto", alias="headerRowCount")


class ProcessingRequest(_Request):
    file: str
    sheet: str
    mappings: ColumnMappings
    class_map: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_CLASS_MAP), alias="classMap")
    filter_config: Optional[FilterConfig] = Field(default=None, alias="filterConfig")


class DoubleCheckRequest(_Request):
    original_file: str = Field(alias="originalFile")
    processed_file: str = Field(alias="processedFile")
    selected_sheet: str = Field(alias="selectedSheet")
    mappings: ColumnMappings
    class_map: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_CLASS_MAP), alias="classMap")


class ReportBuildRequest(_Request):
    file: str
    config: ReportConfig


class JobStartResponse(_Request):
    ok: bool = True
    job_id: str = Field(alias="jobId")


def _check_files(*refs: str) -> None:
    for ref in refs:
        try:
            check_excel_ref(ref)
        except (ValueError, FileNotFoundError) as e:
            raise HTTPException(status_code=400, detail=str(e))


def _started(job_id: str) -> Dict[str, object]:
    return JobStartResponse(job_id=job_id).model_dump(by_alias=True)


@router.post("/jobs/start-inspection")
async def start_inspection(request: FileRequest, context: JobContext = Depends(get_context)):
    """Headers and unique column values of every sheet."""
    _check_files(request.file)
    job_id = await context.runner.submit(
        JobType.INSPECTION.value,
        {"file": request.file},
        handlers.inspection_job(request.file, context.settings),
    )
    return _started(job_id)


@router.post("/jobs/start-processing")
async def start_processing(request: ProcessingRequest, context: JobContext = Depends(get_context)):
    """Group and filter a sheet into the consolidated price list."""
    _check_files(request.file)
    job_id = await context.runner.submit(
        JobType.PROCESSING.value,
        {
            "file": request.file,
            "selectedSheet": request.sheet,
            "mappings": request.mappings.model_dump(by_alias=True),
            "classMap": request.class_map,
            "filterConfig": request.filter_config.model_dump() if request.filter_config else None,
        },
        handlers.processing_job(
            request.file,
            request.sheet,
            request.mappings,
            request.class_map,
            request.filter_config,
            context.settings,
        ),
    )
    return _started(job_id)


@router.post("/jobs/start-double-check")
async def start_double_check(request: DoubleCheckRequest, context: JobContext = Depends(get_context)):
    """Compare a processed price list against its original sheet."""
    _check_files(request.original_file, request.processed_file)
    job_id = await context.runner.submit(
        JobType.DOUBLE_CHECK.value,
        {"originalFile": request.original_file, "processedFile": request.processed_file},
        handlers.double_check_job(
            request.original_file,
            request.processed_file,
            request.selected_sheet,
            request.mappings,
            request.class_map,
            context.settings,
        ),
    )
    return _started(job_id)


@router.post("/jobs/start-source-inspection")
async def start_source_inspection(
    request: SourceInspectionRequest, context: JobContext = Depends(get_context)
):
    _check_files(request.file)
    job_id = await context.runner.submit(
        JobType.SOURCE_INSPECTION.value,
        {"file": request.file},
        handlers.source_inspection_job(request.file, request.header_row_count, context.settings),
    )
    return _started(job_id)


@router.post("/jobs/start-report-build")
async def start_report_build(request: ReportBuildRequest, context: JobContext = Depends(get_context)):
    """Build a custom report from the mapped columns of one sheet."""
    _check_files(request.file)
    job_id = await context.runner.submit(
        JobType.REPORT_BUILD.value,
        {"file": request.file, "config": request.config.model_dump(by_alias=True)},
        handlers.report_build_job(request.file, request.config, context.settings),
    )
    return _started(job_id)


@router.post("/jobs/start-template-inspection")
async def start_template_inspection(request: FileRequest, context: JobContext = Depends(get_context)):
    _check_files(request.file)
    job_id = await context.runner.submit(
        JobType.TEMPLATE_INSPECTION.value,
        {"file": request.file},
        handlers.template_inspection_job(request.file, context.settings),
    )
    return _started(job_id)


@router.get("/jobs/{job_id}/status")
async def get_job_status(job_id: str, context: JobContext = Depends(get_context)):
    """Current status, progress and, once finished, the result or error of a job."""
    view = await context.manager.get_status(job_id)
    if view is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"ok": True, **view.to_dict()}


@router.delete("/jobs/{job_id}")
async def cancel_job(job_id: str, context: JobContext = Depends(get_context)):
    try:
        await context.manager.cancel(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidJobStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "message": "Job cancelled"}
