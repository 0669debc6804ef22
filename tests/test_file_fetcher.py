"""Tests for resolving file references to local paths."""

import os

import pytest
import requests

from tariffworks.io import file_fetcher
from tariffworks.io.file_fetcher import check_excel_ref, fetch_to_local


class FakeResponse:
    def __init__(self, chunks, status_error=None):
        self._chunks = chunks
        self._status_error = status_error

    def raise_for_status(self):
        if self._status_error:
            raise self._status_error

    def iter_content(self, chunk_size=1):
        return iter(self._chunks)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        return False


def test_local_path_passes_through(tmp_path):
    path = tmp_path / "tarif.xlsx"
    path.write_bytes(b"data")

    local = fetch_to_local(str(path))

    assert local.path == str(path)
    assert local.is_temporary is False
    local.cleanup()
    assert path.exists()


def test_missing_local_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        fetch_to_local(str(tmp_path / "nope.xlsx"))


def test_url_is_downloaded_to_temp_file(monkeypatch, tmp_path):
    monkeypatch.setattr(
        file_fetcher.requests, "get", lambda url, **kwargs: FakeResponse([b"abc", b"", b"def"])
    )

    with fetch_to_local("https://files.example.com/tarif.xlsx", download_dir=str(tmp_path)) as local:
        assert local.is_temporary
        assert local.path.endswith(".xlsx")
        with open(local.path, "rb") as fh:
            assert fh.read() == b"abcdef"
    assert not os.path.exists(local.path)


def test_download_over_limit_is_rejected(monkeypatch, tmp_path):
    monkeypatch.setattr(
        file_fetcher.requests, "get", lambda url, **kwargs: FakeResponse([b"x" * 8, b"x" * 8])
    )

    with pytest.raises(ValueError, match="size limit"):
        fetch_to_local("https://files.example.com/big.xlsx", max_bytes=10, download_dir=str(tmp_path))
    assert os.listdir(tmp_path) == []


def test_http_error_becomes_runtime_error(monkeypatch, tmp_path):
    error = requests.exceptions.HTTPError("404 Client Error")
    monkeypatch.setattr(
        file_fetcher.requests, "get", lambda url, **kwargs: FakeResponse([], status_error=error)
    )

    with pytest.raises(RuntimeError, match="Failed to download"):
        fetch_to_local("https://files.example.com/gone.xlsx", download_dir=str(tmp_path))
    assert os.listdir(tmp_path) == []


class TestCheckExcelRef:
    def test_accepts_existing_workbook(self, tmp_path):
        path = tmp_path / "a.xlsx"
        path.write_bytes(b"")
        check_excel_ref(str(path))

    def test_accepts_url_without_extension(self):
        check_excel_ref("https://files.example.com/download?id=1")

    @pytest.mark.parametrize("ref", ["", "   ", "notes.txt", "https://x.example.com/a.csv"])
    def test_rejects_non_workbooks(self, ref):
        with pytest.raises(ValueError):
            check_excel_ref(ref)

    def test_rejects_missing_local_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            check_excel_ref(str(tmp_path / "missing.xlsx"))
