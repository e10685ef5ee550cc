"""
Tests for service.reconciliation_service.
"""

from __future__ import annotations

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from model.job import Job
from service.reconciliation_service import ReconciliationScheduler
from util.enums import JobStatus
from util.errors import CredentialError


async def _pending(jobs, name: str, root: str, pieces) -> Job:
    return await jobs.create(
        Job(
            owner="alice",
            logical_name=name,
            root_id=root,
            child_piece_ids=list(pieces),
            proof_set_id=390,
        )
    )


@pytest.fixture
def scheduler(jobs, authority, tokens) -> ReconciliationScheduler:
    return ReconciliationScheduler(
        jobs, authority, tokens, interval_seconds=0.01, max_attempts=3
    )


class TestTick:
    @pytest.mark.asyncio
    async def test_registers_root_with_its_subroots(self, jobs, pdp, scheduler):
        job = await _pending(jobs, "a.bin", "bagaRootA", ["bagaP1", "bagaP2"])

        report = await scheduler.tick()

        assert report.completed == [job.id]
        assert pdp.registered == [
            {
                "proof_set_id": 390,
                "roots": [
                    {
                        "rootCid": "bagaRootA",
                        "subroots": [{"subrootCid": "bagaP1"}, {"subrootCid": "bagaP2"}],
                    }
                ],
            }
        ]
        assert (await jobs.get(job.id)).status is JobStatus.completed

    @pytest.mark.asyncio
    async def test_failure_is_isolated_and_retried_next_tick(self, jobs, pdp, scheduler):
        ok = await _pending(jobs, "ok.bin", "bagaRootOk", ["p1"])
        bad = await _pending(jobs, "bad.bin", "bagaRootBad", ["p2"])
        pdp.failing_roots.add("bagaRootBad")

        first = await scheduler.tick()

        assert first.completed == [ok.id]
        assert first.retried == [bad.id]
        assert (await jobs.get(ok.id)).status is JobStatus.completed
        stored_bad = await jobs.get(bad.id)
        assert stored_bad.status is JobStatus.pending
        assert stored_bad.attempts == 1
        assert "500" in stored_bad.last_error

        pdp.failing_roots.clear()
        before = len(pdp.calls("POST", "/pdp/proof-sets"))
        second = await scheduler.tick()

        assert second.pending == 1
        assert second.completed == [bad.id]
        roots_calls = pdp.calls("POST", "/pdp/proof-sets")[before:]
        assert len(roots_calls) == 1
        assert b"bagaRootBad" in roots_calls[0].content

    @pytest.mark.asyncio
    async def test_repeated_failures_demote_to_failed(self, jobs, pdp, scheduler):
        job = await _pending(jobs, "stuck.bin", "bagaStuck", ["p"])
        pdp.failing_roots.add("bagaStuck")

        await scheduler.tick()
        await scheduler.tick()
        report = await scheduler.tick()

        assert report.failed == [job.id]
        stored = await jobs.get(job.id)
        assert stored.status is JobStatus.failed
        assert stored.attempts == 3
        assert await jobs.list_pending() == []

    @pytest.mark.asyncio
    async def test_nothing_pending_makes_no_calls(self, pdp, scheduler):
        report = await scheduler.tick()
        assert report.pending == 0
        assert pdp.requests == []

    @pytest.mark.asyncio
    async def test_token_failure_leaves_jobs_pending(self, jobs, authority, pdp):
        def broken() -> str:
            raise CredentialError("no key")

        job = await _pending(jobs, "a.bin", "bagaR", ["p"])
        scheduler = ReconciliationScheduler(jobs, authority, broken, interval_seconds=0.01)

        report = await scheduler.tick()

        assert report.completed == []
        assert pdp.requests == []
        assert (await jobs.get(job.id)).status is JobStatus.pending
        assert (await jobs.get(job.id)).attempts == 0

    @pytest.mark.asyncio
    async def test_extra_data_is_forwarded(self, jobs, authority, tokens, pdp):
        await _pending(jobs, "a.bin", "bagaR", ["p"])
        scheduler = ReconciliationScheduler(
            jobs, authority, tokens, interval_seconds=0.01, extra_data="0xbeef"
        )

        await scheduler.tick()

        assert pdp.registered[0]["extraData"] == "0xbeef"

    @pytest.mark.asyncio
    async def test_bookkeeping_error_on_one_job_does_not_block_the_next(
        self, jobs, pdp, scheduler, monkeypatch
    ):
        first = await _pending(jobs, "a.bin", "bagaRootA", ["p1"])
        second = await _pending(jobs, "b.bin", "bagaRootB", ["p2"])
        pdp.failing_roots.add("bagaRootA")
        record_failure = jobs.record_failure

        async def flaky_record_failure(job_id, error):
            if job_id == first.id:
                raise RedisConnectionError("connection reset by peer")
            return await record_failure(job_id, error)

        monkeypatch.setattr(jobs, "record_failure", flaky_record_failure)

        report = await scheduler.tick()

        assert report.errored == [first.id]
        assert report.completed == [second.id]
        assert (await jobs.get(second.id)).status is JobStatus.completed
        stored_first = await jobs.get(first.id)
        assert stored_first.status is JobStatus.pending
        assert stored_first.attempts == 0

    @pytest.mark.asyncio
    async def test_each_job_gets_its_own_token(self, jobs, authority, tokens, pdp):
        minted = []

        def counting() -> str:
            token = tokens()
            minted.append(token)
            return token

        for i in range(3):
            await _pending(jobs, f"f{i}.bin", f"bagaRoot{i}", [f"p{i}"])
        scheduler = ReconciliationScheduler(jobs, authority, counting, interval_seconds=0.01)

        report = await scheduler.tick()

        assert len(report.completed) == 3
        assert len(minted) == 3
        sent = [r.headers["Authorization"] for r in pdp.calls("POST", "/pdp/proof-sets")]
        assert sent == [f"Bearer {t}" for t in minted]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_background_loop_completes_pending_jobs(self, jobs, scheduler):
        job = await _pending(jobs, "a.bin", "bagaR", ["p"])

        scheduler.start()
        assert scheduler.running
        try:
            for _ in range(100):
                if (await jobs.get(job.id)).status is JobStatus.completed:
                    break
                await asyncio.sleep(0.01)
        finally:
            await scheduler.stop()

        assert (await jobs.get(job.id)).status is JobStatus.completed
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_stop_prevents_further_ticks(self, jobs, pdp, scheduler):
        scheduler.start()
        await scheduler.stop()

        await _pending(jobs, "late.bin", "bagaLate", ["p"])
        await asyncio.sleep(0.05)

        assert pdp.requests == []
        assert (await jobs.list_pending())[0].root_id == "bagaLate"

    @pytest.mark.asyncio
    async def test_start_is_idempotent_and_stop_without_start_is_noop(self, scheduler):
        await scheduler.stop()
        scheduler.start()
        scheduler.start()
        assert scheduler.running
        await scheduler.stop()
        assert not scheduler.running
