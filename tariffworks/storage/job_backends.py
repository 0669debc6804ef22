"""Persistent backends for job records.

A backend is a plain synchronous key-value store of JSON-like dicts keyed by
job id. ``JobStore`` runs every call in a thread executor.
"""

import json
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional

from tariffworks.logging_config import get_logger

logger = get_logger(__name__)


class JobBackend(ABC):
    """Abstract interface for durable per-id job records."""

    @abstractmethod
    def init(self) -> None:
        """Prepare the backend (create directories, open connections)."""
        ...

    @abstractmethod
    def read(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored record, or None if absent or unreadable."""
        ...

    @abstractmethod
    def write(self, job_id: str, record: Dict[str, Any]) -> None:
        """Store the full record, overwriting any previous one."""
        ...

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        """Remove a record. Returns True if something was deleted."""
        ...

    @abstractmethod
    def list_ids(self) -> List[str]:
        """Ids of every stored record."""
        ...

    @abstractmethod
    def list_records(self) -> Iterator[Dict[str, Any]]:
        """Yield every readable stored record."""
        ...


class FileJobBackend(JobBackend):
    """One ``<job_id>.json`` file per job inside ``base_dir``."""

    def __init__(self, base_dir: str):
        self._base_dir = base_dir

    def init(self) -> None:
        os.makedirs(self._base_dir, exist_ok=True)
        logger.info(f"Job storage initialized at: {self._base_dir}")

    def _path(self, job_id: str) -> Optional[str]:
        # Ids arrive from URLs; never let one escape the storage directory
        if not job_id or "/" in job_id or "\\" in job_id or job_id.startswith("."):
            return None
        return os.path.join(self._base_dir, f"{job_id}.json")

    def read(self, job_id: str) -> Optional[Dict[str, Any]]:
        path = self._path(job_id)
        if path is None or not os.path.exists(path):
            return None
        return self._read_file(path)

    def write(self, job_id: str, record: Dict[str, Any]) -> None:
        path = self._path(job_id)
        if path is None:
            raise ValueError(f"Invalid job id: {job_id!r}")
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(record, fh, indent=2)
        os.replace(tmp_path, path)

    def delete(self, job_id: str) -> bool:
        path = self._path(job_id)
        if path is None:
            return False
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return False

    def list_ids(self) -> List[str]:
        if not os.path.isdir(self._base_dir):
            return []
        return sorted(e[: -len(".json")] for e in os.listdir(self._base_dir) if e.endswith(".json"))

    def list_records(self) -> Iterator[Dict[str, Any]]:
        if not os.path.isdir(self._base_dir):
            return
        for entry in sorted(os.listdir(self._base_dir)):
            if not entry.endswith(".json"):
                continue
            record = self._read_file(os.path.join(self._base_dir, entry))
            if record is not None:
                yield record

    def _read_file(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            with open(path, "r", encoding="utf-8") as fh:
                record = json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read job record {path}: {e}")
            return None
        if not isinstance(record, dict):
            logger.warning(f"Ignoring job record {path}: not a JSON object")
            return None
        return record
