"""Chunked iteration utilities for processing long row sequences group by group.

Groups run strictly one after another: later groups may depend on state that
earlier groups seeded (a duplicate-key set, counters), and row sources are not
safe for concurrent access. Every group ends with a yield to the event loop,
so a job blocks it for at most one group.
"""

import asyncio
import inspect
import math
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
    Union,
)

from tariffworks.errors import ChunkTransformError, JobCancelledError
from tariffworks.io.row_source import Row, RowSource
from tariffworks.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")
R_co = TypeVar("R_co", covariant=True)

# Type alias for progress callbacks: fn(percent, message). May return an awaitable.
ProgressCallback = Callable[[int, str], Union[None, Awaitable[None]]]


class CancellationCheck(Protocol):
    async def is_cancelled(self) -> bool: ...

    @property
    def job_id(self) -> str: ...


class ChunkTransform(Protocol[R_co]):
    """Per-group unit of work of a pipeline over a row source."""

    async def __call__(self, rows: List[Row], group: "ChunkGroup", start_row: int) -> R_co: ...


@dataclass(frozen=True)
class ChunkGroup:
    """A contiguous slice ``[start, end)`` of the input sequence."""

    index: int
    total: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start

    @property
    def percent(self) -> int:
        """Progress after this group finishes, 1..100."""
        return round(100 * (self.index + 1) / self.total)

    def describe(self, total_items: int) -> str:
        return (
            f"Processing chunk {self.index + 1}/{self.total} "
            f"({self.start + 1}-{self.end} of {total_items})"
        )


def chunk_groups(total_items: int, chunk_size: int) -> Iterator[ChunkGroup]:
    """Generate the groups covering ``total_items`` in order.

    Yields nothing when ``total_items`` is not positive.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be a positive integer, got {chunk_size}")
    if total_items <= 0:
        return
    total = math.ceil(total_items / chunk_size)
    for i in range(total):
        start = i * chunk_size
        yield ChunkGroup(index=i, total=total, start=start, end=min(start + chunk_size, total_items))


async def _notify(progress: Optional[ProgressCallback], percent: int, message: str) -> None:
    if progress is None:
        return
    outcome = progress(percent, message)
    if inspect.isawaitable(outcome):
        await outcome


async def run_chunked(
    total_items: int,
    chunk_size: int,
    transform: Callable[[ChunkGroup], Awaitable[R]],
    progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationCheck] = None,
    describe: Optional[Callable[[ChunkGroup], str]] = None,
) -> List[R]:
    """Run ``transform`` once per group and return the ordered results.

    Progress is reported after each group resolves. If a transform raises, no
    further groups run and a ``ChunkTransformError`` carrying the group position
    and the cause is raised; results of earlier groups are discarded. The
    cancel token is polled before every group.
    """
    groups = list(chunk_groups(total_items, chunk_size))
    results: List[R] = []

    for group in groups:
        if cancel_token is not None and await cancel_token.is_cancelled():
            logger.info(
                f"Stopping before chunk {group.index + 1}/{group.total}: job cancelled"
            )
            raise JobCancelledError(cancel_token.job_id)

        try:
            result = await transform(group)
        except JobCancelledError:
            raise
        except Exception as e:
            logger.error(f"Error processing chunk {group.index + 1}/{group.total}: {e}")
            raise ChunkTransformError(group.index, group.total, e) from e
        results.append(result)

        message = describe(group) if describe else group.describe(total_items)
        await _notify(progress, group.percent, message)
        await asyncio.sleep(0)

    return results


async def process_in_chunks(
    items: Sequence[T],
    chunk_size: int,
    transform: Callable[[Sequence[T], ChunkGroup], Awaitable[R]],
    progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationCheck] = None,
) -> List[R]:
    """Chunk an in-memory sequence; the transform gets each slice and its group."""

    async def run_group(group: ChunkGroup) -> R:
        return await transform(items[group.start:group.end], group)

    return await run_chunked(len(items), chunk_size, run_group, progress, cancel_token)


def read_rows_in_range(source: RowSource, start_row: int, end_row: int) -> List[Row]:
    """Materialize rows ``start_row..end_row`` (1-based, inclusive)."""
    return [source.row(row_num) for row_num in range(start_row, end_row + 1)]


async def process_rows_in_chunks(
    source: RowSource,
    header_rows: int,
    chunk_size: int,
    transform: ChunkTransform[R],
    progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationCheck] = None,
    max_rows: Optional[int] = None,
) -> List[R]:
    """Chunk the data rows of a tabular source.

    The transform receives the group's rows, the group and the 1-based sheet row
    number of the group's first row. Returns an empty list when the source has
    no data rows below the header.
    """
    total_rows = source.row_count
    data_rows = total_rows - header_rows
    if max_rows is not None:
        data_rows = min(data_rows, max_rows)
    if data_rows <= 0:
        return []

    def row_span(group: ChunkGroup):
        first = header_rows + 1 + group.start
        return first, header_rows + group.end

    async def run_group(group: ChunkGroup) -> R:
        start_row, end_row = row_span(group)
        rows = read_rows_in_range(source, start_row, end_row)
        return await transform(rows, group, start_row)

    def describe(group: ChunkGroup) -> str:
        start_row, end_row = row_span(group)
        return f"Processing rows {start_row}-{end_row} of {total_rows}"

    return await run_chunked(
        data_rows, chunk_size, run_group, progress, cancel_token, describe=describe
    )


def scaled_progress(
    progress: Optional[ProgressCallback], low: int, high: int
) -> ProgressCallback:
    """Map a 0-100 chunk progress callback into the ``[low, high]`` sub-range."""

    async def report(percent: int, message: str) -> None:
        await _notify(progress, low + round(percent * (high - low) / 100), message)

    return report


async def emit_progress(progress: Optional[ProgressCallback], percent: int, message: str) -> None:
    """Report a setup/teardown step outside the chunked range."""
    await _notify(progress, percent, message)


def merge_keyed(results: List[Dict[str, Dict[str, Any]]]) -> Dict[str, Dict[str, Any]]:
    """Union of per-chunk keyed dicts.

    Entries for the same key are shallow-merged; a later chunk's field value
    overwrites an earlier one.
    """
    merged: Dict[str, Dict[str, Any]] = {}
    for chunk in results:
        for key, entry in chunk.items():
            if key not in merged:
                merged[key] = dict(entry)
            else:
                merged[key].update(entry)
    return merged


def concat_results(results: List[List[T]]) -> List[T]:
    """Order-preserving concatenation of per-chunk lists."""
    return [item for chunk in results for item in chunk]
