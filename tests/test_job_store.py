"""Tests for JobStore in memory and file mode."""

import asyncio
import json
import os

from tariffworks.jobs.models import JobRecord, JobStatus, now_ms
from tariffworks.storage.job_backends import FileJobBackend
from tariffworks.storage.job_store import JobStore


def make_job(**overrides) -> JobRecord:
    return JobRecord(type="processing", **overrides)


class TestMemoryMode:
    async def test_save_load_delete(self, memory_store):
        job = make_job()
        await memory_store.save(job)

        assert (await memory_store.load(job.id)).id == job.id
        assert await memory_store.delete(job.id) is True
        assert await memory_store.load(job.id) is None

    async def test_unknown_id_is_absent(self, memory_store):
        assert await memory_store.load("missing") is None
        assert memory_store.mode == "memory"

    async def test_sweep_removes_only_stale_records(self, memory_store):
        now = now_ms()
        stale = make_job(updated_at=now - 10_000)
        fresh = make_job(updated_at=now - 100)
        await memory_store.save(stale)
        await memory_store.save(fresh)

        assert await memory_store.sweep_expired(max_age_ms=5_000, now=now) == 1
        assert await memory_store.load(stale.id) is None
        assert await memory_store.load(fresh.id) is not None


class TestFileMode:
    async def test_record_written_as_camel_case_json(self, file_store, jobs_dir):
        job = make_job(data={"filename": "tarif.xlsx"})
        await file_store.save(job)

        with open(os.path.join(jobs_dir, f"{job.id}.json"), encoding="utf-8") as fh:
            raw = json.load(fh)
        assert raw["id"] == job.id
        assert raw["status"] == "pending"
        assert raw["createdAt"] == job.created_at
        assert raw["updatedAt"] == job.updated_at
        assert raw["data"] == {"filename": "tarif.xlsx"}

    async def test_fresh_store_reads_existing_records(self, file_store, jobs_dir):
        job = make_job(status=JobStatus.PROCESSING, progress=40, message="Halfway")
        await file_store.save(job)

        fresh = JobStore(FileJobBackend(jobs_dir), auto_cleanup=False)
        await fresh.init()
        loaded = await fresh.load(job.id)

        assert loaded is not None
        assert loaded.status == JobStatus.PROCESSING
        assert loaded.progress == 40
        assert loaded.message == "Halfway"
        assert job.id in fresh.cached_ids()

    async def test_corrupt_record_is_treated_as_absent(self, file_store, jobs_dir):
        with open(os.path.join(jobs_dir, "broken.json"), "w", encoding="utf-8") as fh:
            fh.write("{not json")

        assert await file_store.load("broken") is None

    async def test_ids_cannot_escape_storage_dir(self, file_store):
        assert await file_store.load("../etc/passwd") is None
        assert await file_store.load(".hidden") is None

    async def test_delete_removes_file(self, file_store, jobs_dir):
        job = make_job()
        await file_store.save(job)

        assert await file_store.delete(job.id) is True
        assert not os.path.exists(os.path.join(jobs_dir, f"{job.id}.json"))
        assert await file_store.load(job.id) is None

    async def test_sweep_uses_persisted_records(self, file_store, jobs_dir):
        now = now_ms()
        stale = make_job(updated_at=now - 7_200_000)
        fresh = make_job(updated_at=now)
        await file_store.save(stale)
        await file_store.save(fresh)

        assert await file_store.sweep_expired(now=now) == 1
        assert FileJobBackend(jobs_dir).list_ids() == [fresh.id]

    async def test_read_persisted_leaves_cached_copy(self, file_store, jobs_dir):
        job = make_job()
        await file_store.save(job)

        other = JobStore(FileJobBackend(jobs_dir), auto_cleanup=False)
        external = await other.load(job.id)
        external.status = JobStatus.CANCELLED
        await other.save(external)

        assert (await file_store.load(job.id)).status == JobStatus.PENDING
        assert (await file_store.read_persisted(job.id)).status == JobStatus.CANCELLED
        assert (await file_store.load(job.id)).status == JobStatus.PENDING

    async def test_non_object_records_are_skipped(self, file_store, jobs_dir):
        with open(os.path.join(jobs_dir, "listed.json"), "w", encoding="utf-8") as fh:
            json.dump([1, 2], fh)
        stale = make_job(updated_at=now_ms() - 7_200_000)
        await file_store.save(stale)

        assert await file_store.load("listed") is None
        assert await file_store.sweep_expired() == 1
        assert FileJobBackend(jobs_dir).list_ids() == ["listed"]


async def test_background_sweep_runs_periodically():
    store = JobStore(max_age_ms=1_000, sweep_interval_ms=10, auto_cleanup=True)
    stale = make_job(updated_at=now_ms() - 60_000)
    await store.save(stale)

    async with store:
        for _ in range(50):
            if await store.load(stale.id) is None:
                break
            await asyncio.sleep(0.02)

    assert await store.load(stale.id) is None
