"""
Tests for core.retrieval (bounded, ordered, fail-fast fetch).
"""

from __future__ import annotations

import asyncio
from typing import Dict, List

import pytest

from core.retrieval import RetrievalEngine
from util.errors import FetchError


class ScriptedFetcher:
    """Returns b"<id>" after a per-piece delay; ids listed in `failing` raise."""

    def __init__(self, delays: Dict[str, float], failing=()) -> None:
        self.delays = delays
        self.failing = set(failing)
        self.started: List[str] = []
        self.finished: List[str] = []
        self.cancelled: List[str] = []
        self.in_flight = 0
        self.peak = 0

    async def __call__(self, piece_id: str) -> bytes:
        self.started.append(piece_id)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(piece_id, 0))
            if piece_id in self.failing:
                raise FetchError(piece_id, "status code 404")
            self.finished.append(piece_id)
            return piece_id.encode()
        except asyncio.CancelledError:
            self.cancelled.append(piece_id)
            raise
        finally:
            self.in_flight -= 1


class TestOrdering:
    @pytest.mark.asyncio
    async def test_out_of_order_completion_is_reassembled_in_order(self):
        fetcher = ScriptedFetcher({"A": 0.05, "B": 0.0, "C": 0.02})
        engine = RetrievalEngine(fetcher)

        parts = await engine.fetch_all(["A", "B", "C"])

        assert fetcher.finished[0] == "B"
        assert b"".join(parts) == b"ABC"

    @pytest.mark.asyncio
    async def test_empty_list(self):
        engine = RetrievalEngine(ScriptedFetcher({}))
        assert await engine.fetch_all([]) == []

    @pytest.mark.asyncio
    async def test_stream_yields_in_order(self):
        engine = RetrievalEngine(ScriptedFetcher({"x": 0.01, "y": 0.0}))
        out = [chunk async for chunk in engine.stream(["x", "y"])]
        assert out == [b"x", b"y"]


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_in_flight_requests_are_bounded(self):
        ids = [f"p{i}" for i in range(25)]
        fetcher = ScriptedFetcher({i: 0.01 for i in ids})
        engine = RetrievalEngine(fetcher, concurrency=4)

        parts = await engine.fetch_all(ids)

        assert fetcher.peak <= 4
        assert len(parts) == 25

    @pytest.mark.asyncio
    async def test_default_bound_is_ten(self):
        ids = [f"p{i}" for i in range(30)]
        fetcher = ScriptedFetcher({i: 0.01 for i in ids})
        await RetrievalEngine(fetcher).fetch_all(ids)
        assert fetcher.peak == 10


class TestFailFast:
    @pytest.mark.asyncio
    async def test_first_failure_surfaces_without_partial_result(self):
        ids = ["A", "B", "C", "D"]
        fetcher = ScriptedFetcher({"A": 0.2, "B": 0.0, "C": 0.2, "D": 0.2}, failing={"B"})
        engine = RetrievalEngine(fetcher, concurrency=2)

        with pytest.raises(FetchError) as exc:
            await engine.fetch_all(ids)

        assert exc.value.piece_id == "B"
        # A was in flight and got cancelled; no fetch starts after the failure
        assert "A" in fetcher.cancelled
        started_before = list(fetcher.started)
        await asyncio.sleep(0.05)
        assert fetcher.started == started_before
        assert fetcher.in_flight == 0

    @pytest.mark.asyncio
    async def test_unexpected_errors_become_fetch_errors(self):
        async def broken(piece_id: str) -> bytes:
            raise RuntimeError("socket closed")

        with pytest.raises(FetchError) as exc:
            await RetrievalEngine(broken).fetch_all(["only"])
        assert exc.value.piece_id == "only"
        assert "RuntimeError" in exc.value.reason
