"""Shared fixtures: job stores, manager and generated workbooks."""

import os
import threading
from typing import Dict, List, Optional, Sequence

import pytest
from openpyxl import Workbook

from tariffworks.config import Settings
from tariffworks.io.row_source import ListRowSource, Row
from tariffworks.jobs.manager import JobManager
from tariffworks.storage.job_backends import FileJobBackend
from tariffworks.storage.job_store import JobStore


class FlagToken:
    """Cancel token whose flag the test flips directly."""

    def __init__(self, job_id: str = "test-job"):
        self.job_id = job_id
        self.cancelled = False

    async def is_cancelled(self) -> bool:
        return self.cancelled


class ProgressRecorder:
    """Collects (percent, message) progress calls."""

    def __init__(self):
        self.calls = []

    async def __call__(self, percent, message):
        self.calls.append((percent, message))

    @property
    def percents(self) -> List[int]:
        return [p for p, _ in self.calls]

    @property
    def messages(self) -> List[str]:
        return [m for _, m in self.calls]


class ThreadRecordingSource(ListRowSource):
    """Row source that remembers which threads read its rows."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.reader_threads = set()

    def row(self, index: int) -> Row:
        self.reader_threads.add(threading.get_ident())
        return super().row(index)


@pytest.fixture
def flag_token() -> FlagToken:
    return FlagToken()


@pytest.fixture
def recorder() -> ProgressRecorder:
    return ProgressRecorder()


@pytest.fixture
def recording_source():
    """Factory for row sources that record their reader threads."""
    return ThreadRecordingSource


@pytest.fixture
def memory_store() -> JobStore:
    """Memory-only store without the background sweep."""
    return JobStore(auto_cleanup=False)


@pytest.fixture
def jobs_dir(tmp_path) -> str:
    return str(tmp_path / "jobs")


@pytest.fixture
async def file_store(jobs_dir) -> JobStore:
    store = JobStore(FileJobBackend(jobs_dir), auto_cleanup=False)
    await store.init()
    yield store
    await store.close()


@pytest.fixture
def manager(memory_store) -> JobManager:
    return JobManager(memory_store)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        storage_type="memory",
        storage_path=str(tmp_path / "jobs"),
        output_dir=str(tmp_path / "output"),
        auto_cleanup_enabled=False,
        chunk_excel_processing=2,
        chunk_report_building=2,
        chunk_double_check=2,
        chunk_excel_inspection=2,
    )


@pytest.fixture
def make_workbook(tmp_path):
    """Write an .xlsx file from ``{sheet name: rows}`` and return its path.

    ``merged`` maps a sheet name to ranges such as ``["B1:C1"]``.
    """

    def _make(
        sheets: Dict[str, Sequence[Sequence]],
        name: str = "book.xlsx",
        merged: Optional[Dict[str, List[str]]] = None,
    ) -> str:
        wb = Workbook()
        wb.remove(wb.active)
        for title, rows in sheets.items():
            ws = wb.create_sheet(title)
            for row in rows:
                ws.append(list(row))
            for cell_range in (merged or {}).get(title, []):
                ws.merge_cells(cell_range)
        path = os.path.join(str(tmp_path), name)
        wb.save(path)
        return path

    return _make
