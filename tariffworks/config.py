"""Application configuration via environment variables."""

import os
import tempfile
from typing import Dict, Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Chunk sizes (rows per unit of work)
    chunk_excel_inspection: int = 1000
    chunk_excel_processing: int = 500
    chunk_report_building: int = 500
    chunk_double_check: int = 500

    # Job management
    job_max_age_ms: int = 60 * 60 * 1000
    cleanup_check_interval_ms: int = 5 * 60 * 1000
    auto_cleanup_enabled: bool = True

    # Job storage: "file" persists one JSON record per job, "memory" is lost on restart
    storage_type: Literal["file", "memory"] = "file"
    storage_path: str = os.path.join(tempfile.gettempdir(), "tariff-app-jobs")

    # Generated workbooks and downloads
    output_dir: str = os.path.join(tempfile.gettempdir(), "tariff-app-output")
    max_download_bytes: int = 50 * 1024 * 1024

    # Inspection
    max_rows_to_inspect: int = 5000

    log_level: str = "INFO"
    port: int = 3000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def chunk_sizes(self) -> Dict[str, int]:
        return {
            "EXCEL_INSPECTION": self.chunk_excel_inspection,
            "EXCEL_PROCESSING": self.chunk_excel_processing,
            "REPORT_BUILDING": self.chunk_report_building,
            "DOUBLE_CHECK": self.chunk_double_check,
        }

    @property
    def durable_storage(self) -> bool:
        return self.storage_type == "file"


settings = Settings()
