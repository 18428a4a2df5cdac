"""Worker package wiring and job status bookkeeping."""

import asyncio
import importlib
import sys
from contextlib import asynccontextmanager

import pytest


class FakeRedis:
    def __init__(self):
        self.hashes = {}
        self.expiries = {}

    async def hset(self, key, mapping):
        self.hashes.setdefault(key, {}).update(mapping)

    async def expire(self, key, seconds):
        self.expiries[key] = seconds


@pytest.fixture
def fresh_workers(monkeypatch):
    """Drop cached workers modules so the next import runs module bodies again."""
    for name in [m for m in sys.modules if m == "workers" or m.startswith("workers.")]:
        monkeypatch.delitem(sys.modules, name)


class TestImports:

    @pytest.mark.parametrize("module", ["workers", "workers.queue", "workers.settings", "workers.jobs"])
    def test_imports_from_cold_start(self, fresh_workers, module):
        assert importlib.import_module(module) is not None

    def test_worker_registry(self, fresh_workers):
        worker_settings = importlib.import_module("workers.settings").WorkerSettings

        names = {f.__name__ for f in worker_settings.functions}
        assert {"run_rfp_scan_job", "run_calendar_sync_job", "run_gmail_sync_job"} <= names
        assert len(worker_settings.cron_jobs) == 3


class TestJobStatus:

    def test_scan_job_records_completion(self, monkeypatch):
        from services import rfp_monitor
        from workers import jobs

        @asynccontextmanager
        async def fake_db():
            yield object()

        async def fake_scan(db, company_id):
            return {"new_count": 2, "total_scanned": 5, "sources_checked": 1}

        monkeypatch.setattr(jobs, "get_db_context", fake_db)
        monkeypatch.setattr(rfp_monitor, "scan_company", fake_scan)
        redis = FakeRedis()

        result = asyncio.run(jobs.run_rfp_scan_job(
            {"redis": redis}, "job-1", "6f1c8a52-3f44-4a8e-9a55-0d4c34e8b001"
        ))

        assert result["status"] == "completed"
        assert result["new_count"] == 2
        assert redis.hashes["job:job-1"]["status"] == "completed"
        assert "job:job-1" in redis.expiries

    def test_scan_job_records_failure(self, monkeypatch):
        from services import rfp_monitor
        from workers import jobs

        @asynccontextmanager
        async def fake_db():
            yield object()

        async def broken_scan(db, company_id):
            raise RuntimeError("Firecrawl down")

        monkeypatch.setattr(jobs, "get_db_context", fake_db)
        monkeypatch.setattr(rfp_monitor, "scan_company", broken_scan)
        redis = FakeRedis()

        result = asyncio.run(jobs.run_rfp_scan_job(
            {"redis": redis}, "job-2", "6f1c8a52-3f44-4a8e-9a55-0d4c34e8b001"
        ))

        assert result == {"status": "failed", "error": "Firecrawl down"}
        assert redis.hashes["job:job-2"]["error"] == "Firecrawl down"
