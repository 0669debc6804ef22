"""Tests for report-row mapping and multi-row header combination."""

from datetime import datetime

import pytest

from tariffworks.errors import ValidationFailure
from tariffworks.io.row_source import ListRowSource
from tariffworks.pipelines.report import ReportConfig, build_report_rows
from tariffworks.processing.headers import combined_headers


def config(**overrides):
    payload = {
        "selectedSheet": "Data",
        "headerRowCount": 1,
        "mappings": [
            {"sourceHeader": "Nama", "outputHeader": "Name"},
            {"sourceHeader": "Tarif", "outputHeader": "Price"},
        ],
        "uniqueKeyColumn": "ID",
    }
    payload.update(overrides)
    return ReportConfig.model_validate(payload)


async def test_duplicate_keys_are_skipped_and_empty_rows_dropped(recorder):
    source = ListRowSource(
        [
            ["ID", "Nama", "Tarif"],
            ["1", "Darah", 10],
            ["1", "Darah lagi", 20],
            ["", "Urin", 30],
            ["", "Feses", 40],
            ["3", "", None],
        ],
        name="Data",
    )

    result = await build_report_rows(source, config(), chunk_size=2, progress=recorder)

    assert result["rows"] == [
        {"Name": "Darah", "Price": 10},
        {"Name": "Urin", "Price": 30},
        {"Name": "Feses", "Price": 40},
    ]
    assert result["headers"] == ["Name", "Price"]
    assert result["diagnostics"] == {
        "totalRowsRead": 5,
        "rowsAdded": 3,
        "rowsSkipped_DuplicateKey": 1,
    }
    assert recorder.percents[:2] == [10, 20]
    assert recorder.percents[-1] == 80


async def test_duplicates_detected_across_chunks():
    source = ListRowSource([["ID", "Nama", "Tarif"], ["7", "a", 1], ["8", "b", 2], ["7", "c", 3]])

    result = await build_report_rows(source, config(), chunk_size=1)

    assert [r["Name"] for r in result["rows"]] == ["a", "b"]
    assert result["diagnostics"]["rowsSkipped_DuplicateKey"] == 1


async def test_typed_values_kept_for_numbers_and_dates():
    when = datetime(2024, 5, 1, 8, 30)
    source = ListRowSource([["ID", "Nama", "Tarif"], ["1", 42, when]])

    result = await build_report_rows(source, config(uniqueKeyColumn=None))

    assert result["rows"] == [{"Name": 42, "Price": when}]


async def test_unknown_source_header_is_left_out():
    source = ListRowSource([["ID", "Nama"], ["1", "Darah"]])

    result = await build_report_rows(source, config(uniqueKeyColumn=None))

    assert result["rows"] == [{"Name": "Darah"}]


async def test_missing_unique_key_column_fails():
    source = ListRowSource([["Nama", "Tarif"], ["a", 1]])

    with pytest.raises(ValidationFailure, match="ID"):
        await build_report_rows(source, config())


async def test_missing_sheet_fails():
    with pytest.raises(ValidationFailure, match="Data"):
        await build_report_rows(None, config())


async def test_multi_row_headers_drive_the_mapping():
    source = ListRowSource(
        [
            ["No", "Harga", "Harga"],
            ["", "OPD", "ED"],
            [1, 100, 90],
        ]
    )
    cfg = config(
        headerRowCount=2,
        uniqueKeyColumn=None,
        mappings=[{"sourceHeader": "Harga - ED", "outputHeader": "ED"}],
    )

    result = await build_report_rows(source, cfg)

    assert result["rows"] == [{"ED": 90}]


class TestCombinedHeaders:
    def test_single_row_fills_blank_names(self):
        source = ListRowSource([["A", None, "C"]])
        assert combined_headers(source, 1) == ["A", "Column_2", "C"]

    def test_stacked_labels_are_joined(self):
        source = ListRowSource([["No", "Harga", "Harga"], ["", "OPD", "ED"]])
        assert combined_headers(source, 2) == ["No", "Harga - OPD", "Harga - ED"]

    def test_three_rows_skip_repeated_labels(self):
        source = ListRowSource(
            [
                ["Tarif", "Tarif", "Tarif"],
                ["Rawat Jalan", "Rawat Inap", "Rawat Inap"],
                ["", "Kelas 1", "Kelas 2"],
            ]
        )
        assert combined_headers(source, 3) == [
            "Tarif - Rawat Jalan",
            "Tarif - Rawat Inap - Kelas 1",
            "Tarif - Rawat Inap - Kelas 2",
        ]

    def test_unlabelled_column(self):
        source = ListRowSource([["A", ""], ["B", ""]])
        assert combined_headers(source, 2) == ["A - B", "Column_2"]

    def test_zero_rows(self):
        assert combined_headers(ListRowSource([["A"]]), 0) == []
