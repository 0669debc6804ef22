"""Resolve a file reference (local path or http(s) URL) to a readable local path."""

import os
import tempfile
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import requests

from tariffworks.logging_config import get_logger

logger = get_logger(__name__)

HEADERS = {"User-Agent": "tariffworks/0.1 (+spreadsheet job engine)"}

DEFAULT_MAX_BYTES = 50 * 1024 * 1024


@dataclass
class LocalFile:
    """A local path plus whether it is a temp copy that must be removed."""

    path: str
    is_temporary: bool = False

    def cleanup(self) -> None:
        if self.is_temporary and os.path.exists(self.path):
            os.remove(self.path)

    def __enter__(self) -> "LocalFile":
        return self

    def __exit__(self, *args) -> None:
        self.cleanup()


def is_remote(ref: str) -> bool:
    return urlparse(ref).scheme in ("http", "https")


def fetch_to_local(
    ref: str,
    max_bytes: int = DEFAULT_MAX_BYTES,
    download_dir: Optional[str] = None,
) -> LocalFile:
    """
    Return a local readable path for ``ref``.

    Local paths are returned as-is. URLs are streamed into a temporary file,
    aborting once ``max_bytes`` is exceeded.

    Raises:
        FileNotFoundError: If a local path does not exist.
        RuntimeError: If the download fails.
        ValueError: If the reference is empty or the download is too large.
    """
    if not isinstance(ref, str) or not ref.strip():
        raise ValueError("file reference must be a non-empty path or URL")
    ref = ref.strip()

    if not is_remote(ref):
        if not os.path.isfile(ref):
            raise FileNotFoundError(f"File not found: {ref}")
        return LocalFile(ref)

    suffix = os.path.splitext(urlparse(ref).path)[1] or ".xlsx"
    if download_dir:
        os.makedirs(download_dir, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(suffix=suffix, dir=download_dir)

    total = 0
    try:
        with os.fdopen(fd, "wb") as dst, requests.get(
            ref, timeout=30, allow_redirects=True, headers=HEADERS, stream=True
        ) as resp:
            resp.raise_for_status()
            for chunk in resp.iter_content(chunk_size=1024 * 1024):
                if not chunk:
                    continue
                total += len(chunk)
                if total > max_bytes:
                    raise ValueError(
                        f"Downloaded file exceeds size limit ({max_bytes // (1024 * 1024)} MB)"
                    )
                dst.write(chunk)
    except requests.exceptions.RequestException as e:
        os.remove(tmp_path)
        raise RuntimeError(f"Failed to download file: {e}") from e
    except Exception:
        os.remove(tmp_path)
        raise

    logger.info(f"Downloaded {ref} ({total} bytes) to {tmp_path}")
    return LocalFile(tmp_path, is_temporary=True)


EXCEL_EXTENSIONS = (".xlsx", ".xlsm")


def check_excel_ref(ref: str) -> None:
    """Reject references that cannot be a readable Excel workbook.

    Raises:
        ValueError: Empty reference or not an .xlsx/.xlsm file name.
        FileNotFoundError: A local path that does not exist.
    """
    if not isinstance(ref, str) or not ref.strip():
        raise ValueError("file reference must be a non-empty path or URL")
    ref = ref.strip()
    path = urlparse(ref).path if is_remote(ref) else ref
    # URLs without an extension are accepted and checked when opened
    ext = os.path.splitext(path)[1].lower()
    if ext and ext not in EXCEL_EXTENSIONS:
        raise ValueError(f"Not an Excel workbook: {ref}")
    if not is_remote(ref):
        if not ext:
            raise ValueError(f"Not an Excel workbook: {ref}")
        if not os.path.isfile(ref):
            raise FileNotFoundError(f"File not found: {ref}")
