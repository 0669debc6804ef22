"""Tests for the chunked iterator and its merge helpers."""

import asyncio

import pytest

from tariffworks.errors import ChunkTransformError, JobCancelledError
from tariffworks.io.row_source import ListRowSource
from tariffworks.processing.chunking import (
    chunk_groups,
    concat_results,
    merge_keyed,
    process_in_chunks,
    process_rows_in_chunks,
    run_chunked,
    scaled_progress,
)


class TestChunkGroups:
    def test_groups_cover_all_items_in_order(self):
        groups = list(chunk_groups(1873, 500))

        assert [(g.start, g.end) for g in groups] == [
            (0, 500), (500, 1000), (1000, 1500), (1500, 1873)
        ]
        assert all(g.total == 4 for g in groups)
        assert groups[-1].size == 373

    def test_no_items_yields_nothing(self):
        assert list(chunk_groups(0, 10)) == []
        assert list(chunk_groups(-3, 10)) == []

    @pytest.mark.parametrize("size", [0, -1])
    def test_non_positive_chunk_size_rejected(self, size):
        with pytest.raises(ValueError):
            list(chunk_groups(10, size))


async def test_progress_reported_after_each_group(recorder):
    seen = []

    async def transform(group):
        seen.append(group.index)
        return group.index

    results = await run_chunked(1873, 500, transform, recorder)

    assert results == [0, 1, 2, 3]
    assert seen == [0, 1, 2, 3]
    assert recorder.percents == [25, 50, 75, 100]
    assert recorder.messages[1] == "Processing chunk 2/4 (501-1000 of 1873)"


async def test_empty_input_never_calls_transform(recorder):
    calls = []

    async def transform(group):
        calls.append(group)

    assert await run_chunked(0, 100, transform, recorder) == []
    assert calls == []
    assert recorder.calls == []


async def test_invalid_chunk_size_fails_before_work():
    calls = []

    async def transform(group):
        calls.append(group)

    with pytest.raises(ValueError):
        await run_chunked(10, 0, transform)
    assert calls == []


async def test_failure_aborts_and_wraps_cause(recorder):
    calls = []

    async def transform(group):
        calls.append(group.index)
        if group.index == 1:
            raise RuntimeError("boom")
        return group.index

    with pytest.raises(ChunkTransformError) as exc_info:
        await run_chunked(30, 10, transform, recorder)

    err = exc_info.value
    assert err.chunk_index == 1
    assert err.total_chunks == 3
    assert isinstance(err.cause, RuntimeError)
    assert str(err) == "Failed at chunk 2/3: boom"
    assert calls == [0, 1]
    assert recorder.percents == [33]


async def test_cancel_token_stops_before_next_group(flag_token):
    calls = []

    async def transform(group):
        calls.append(group.index)
        flag_token.cancelled = True

    with pytest.raises(JobCancelledError):
        await run_chunked(30, 10, transform, cancel_token=flag_token)
    assert calls == [0]


async def test_sync_progress_callback_is_supported():
    calls = []

    async def transform(group):
        return group.size

    results = await run_chunked(5, 2, transform, lambda p, m: calls.append(p))

    assert results == [2, 2, 1]
    assert calls == [33, 67, 100]


async def test_process_in_chunks_passes_slices():
    async def transform(items, group):
        return sum(items)

    assert await process_in_chunks([1, 2, 3, 4, 5], 2, transform) == [3, 7, 5]


class TestRowChunks:
    @pytest.fixture
    def source(self):
        return ListRowSource([["h"]] + [[f"r{i}"] for i in range(2, 7)])

    async def test_rows_after_header_are_chunked(self, source, recorder):
        starts = []

        async def transform(rows, group, start_row):
            starts.append(start_row)
            return [r.text(1) for r in rows]

        results = await process_rows_in_chunks(source, 1, 2, transform, recorder)

        assert starts == [2, 4, 6]
        assert concat_results(results) == ["r2", "r3", "r4", "r5", "r6"]
        assert recorder.messages[0] == "Processing rows 2-3 of 6"
        assert recorder.messages[-1] == "Processing rows 6-6 of 6"

    async def test_header_only_source_gives_empty_list(self):
        async def transform(rows, group, start_row):
            raise AssertionError("not called")

        assert await process_rows_in_chunks(ListRowSource([["h"]]), 1, 10, transform) == []

    async def test_max_rows_limits_data_rows(self, source):
        async def transform(rows, group, start_row):
            return len(rows)

        assert await process_rows_in_chunks(source, 1, 2, transform, max_rows=3) == [2, 1]


def test_merge_keyed_later_chunk_wins_per_field():
    merged = merge_keyed([
        {"A|X": {"code": "A", "OPD": 100}},
        {"A|X": {"code": "A", "ED": 50, "OPD": 120}, "B|Y": {"code": "B"}},
    ])

    assert merged == {"A|X": {"code": "A", "OPD": 120, "ED": 50}, "B|Y": {"code": "B"}}


def test_merge_keyed_does_not_mutate_chunks():
    first = {"A|X": {"OPD": 1}}
    merge_keyed([first, {"A|X": {"ED": 2}}])
    assert first == {"A|X": {"OPD": 1}}


async def test_scaled_progress_maps_into_sub_range(recorder):
    scaled = scaled_progress(recorder, 50, 95)
    await scaled(0, "start")
    await scaled(50, "half")
    await scaled(100, "done")

    assert recorder.percents == [50, 72, 95]


async def test_other_tasks_run_between_groups():
    ticks = {"count": 0}
    seen = []

    async def ticker():
        for _ in range(10):
            ticks["count"] += 1
            await asyncio.sleep(0)

    async def transform(group):
        seen.append(ticks["count"])

    background = asyncio.create_task(ticker())
    await run_chunked(3, 1, transform)
    await background

    assert seen[0] < seen[1] < seen[2]
