"""
HTTP surface tests. The app runs in-process over httpx.ASGITransport, so the
lifespan never starts; a test context is attached to app.state instead.
"""

from __future__ import annotations

import os
from typing import AsyncIterator

import httpx
import pytest

import main
from config.context import AppContext, build_context
from config.settings import settings
from controller.controller_dependencies import rate_limiter
from util.constants import InternalURIs


@pytest.fixture
def ctx(redis, http, tokens) -> AppContext:
    cfg = settings.model_copy(
        update={
            "CHUNK_SIZE_BYTES": 1000,
            "ROOT_SECTOR_SIZE": 1 << 20,
            "MAX_ROOT_CAPACITY": 2048,
            "MAX_FILE_MB": 1,
            "PROOF_SET_ID": 390,
        }
    )
    return build_context(cfg, redis, http, tokens)


@pytest.fixture
async def client(ctx) -> AsyncIterator[httpx.AsyncClient]:
    async def _no_limit():
        return None

    main.app.state.ctx = ctx
    main.app.dependency_overrides[rate_limiter] = _no_limit
    transport = httpx.ASGITransport(app=main.app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
            yield c
    finally:
        main.app.dependency_overrides.clear()


async def _upload(client, content: bytes, owner="alice", name="report.bin"):
    return await client.post(
        InternalURIs.UPLOAD,
        data={"owner": owner, "fileName": name},
        files={"file": ("local-name.bin", content, "application/octet-stream")},
    )


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthz_and_ping(self, client):
        assert (await client.get("/healthz")).json() == {"ok": True, "scheduler": False}
        assert (await client.get("/ping")).json() == {"message": "pong"}


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_creates_one_job_per_root(self, client, ctx):
        content = os.urandom(5000)  # five 1024-byte pieces, two per root

        res = await _upload(client, content)

        assert res.status_code == 201
        body = res.json()
        assert len(body["jobIds"]) == 3
        assert len(body["rootIds"]) == 3
        assert body["pieces"] == 5
        assert body["bytes"] == 5000
        assert len(await ctx.jobs.list_pending()) == 3

    @pytest.mark.asyncio
    async def test_file_name_falls_back_to_uploaded_filename(self, client, ctx):
        res = await client.post(
            InternalURIs.UPLOAD,
            data={"owner": "alice"},
            files={"file": ("fallback.bin", b"abc" * 10, "application/octet-stream")},
        )
        assert res.status_code == 201
        assert await ctx.jobs.list_names("alice") == ["fallback.bin"]

    @pytest.mark.asyncio
    async def test_duplicate_upload_is_conflict(self, client):
        assert (await _upload(client, b"one" * 100)).status_code == 201

        res = await _upload(client, b"two" * 100)

        assert res.status_code == 409
        assert res.json()["ok"] is False
        assert res.json()["error"] == "duplicate_job"

    @pytest.mark.asyncio
    async def test_empty_file_is_bad_request(self, client):
        res = await _upload(client, b"")
        assert res.status_code == 400

    @pytest.mark.asyncio
    async def test_oversized_file_is_rejected(self, client, pdp):
        res = await _upload(client, b"\x00" * ((1 << 20) + 1))

        assert res.status_code == 413
        assert res.json()["detail"]["error"] == "file_too_large"
        assert pdp.requests == []

    @pytest.mark.asyncio
    async def test_store_failure_is_bad_gateway(self, client, pdp, ctx):
        pdp.probe_status = 500

        res = await _upload(client, b"data" * 100)

        assert res.status_code == 502
        assert res.json()["error"] == "store_rejected"
        assert await ctx.jobs.list_names("alice") == []


class TestDownload:
    @pytest.mark.asyncio
    async def test_round_trip(self, client):
        content = os.urandom(4321)
        await _upload(client, content)

        res = await client.get(
            InternalURIs.DOWNLOAD, params={"owner": "alice", "fileName": "report.bin"}
        )

        assert res.status_code == 200
        assert res.headers["content-type"] == "application/octet-stream"
        assert res.content == content

    @pytest.mark.asyncio
    async def test_unknown_file_is_not_found(self, client):
        res = await client.get(
            InternalURIs.DOWNLOAD, params={"owner": "alice", "fileName": "nope"}
        )
        assert res.status_code == 404

    @pytest.mark.asyncio
    async def test_missing_piece_fails_the_whole_download(self, client, pdp):
        await _upload(client, os.urandom(3000))
        victim = next(iter(pdp.pieces))
        del pdp.pieces[victim]

        res = await client.get(
            InternalURIs.DOWNLOAD, params={"owner": "alice", "fileName": "report.bin"}
        )

        assert res.status_code == 502
        assert res.json()["error"] == "fetch_failed"


class TestRootsAndPieces:
    @pytest.mark.asyncio
    async def test_root_is_served_once_registered(self, client, ctx):
        content = os.urandom(1500)  # two 1024-byte pieces, one root
        body = (await _upload(client, content)).json()
        root_id = body["rootIds"][0]
        url = InternalURIs.ROOT.format(root_id=root_id)

        assert (await client.get(url)).status_code == 404

        await ctx.scheduler.tick()
        res = await client.get(url)

        assert res.status_code == 200
        assert res.content == content

    @pytest.mark.asyncio
    async def test_fetch_pieces_by_id(self, client, ctx):
        content = os.urandom(2500)
        await _upload(client, content)
        ids = await ctx.jobs.find_by_owner_and_name("alice", "report.bin")

        res = await client.post(InternalURIs.PIECES, json={"pieceIds": ids[1:]})

        assert res.status_code == 200
        assert res.content == content[1000:]

    @pytest.mark.asyncio
    async def test_fetch_pieces_rejects_non_commitment_ids(self, client):
        res = await client.post(InternalURIs.PIECES, json={"pieceIds": ["bafynotapiece"]})
        assert res.status_code == 422


class TestListings:
    @pytest.mark.asyncio
    async def test_files_and_jobs(self, client, ctx):
        await _upload(client, os.urandom(3000), name="b.bin")
        await _upload(client, os.urandom(100), name="a.bin")

        files = (await client.get(InternalURIs.FILES, params={"owner": "alice"})).json()
        assert files == {"files": ["a.bin", "b.bin"]}

        res = await client.get(
            InternalURIs.JOBS, params={"owner": "alice", "fileName": "b.bin"}
        )
        jobs = res.json()["jobs"]
        assert [j["rootIndex"] for j in jobs] == [0, 1]
        assert all(j["status"] == "pending" for j in jobs)
        assert all(j["proofSetId"] == 390 for j in jobs)
