"""
tests/conftest.py

Shared fixtures. Environment defaults are set before any application module
imports config.settings, which validates the environment at import time.
"""

from __future__ import annotations

import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("PDP_SERVICE_URL", "https://pdp.test")
os.environ.setdefault("PDP_SERVICE_NAME", "pdp-test")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from typing import AsyncIterator

import fakeredis
import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from core.credentials import TokenIssuer
from core.pdp_client import PdpAuthorityClient
from core.piece_store import PieceStoreClient
from repository.job_repository import JobRepository
from tests.helpers import FakePdpService

BASE_URL = "https://pdp.test"


@pytest.fixture
async def redis() -> AsyncIterator[fakeredis.FakeAsyncRedis]:
    client = fakeredis.FakeAsyncRedis()
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


@pytest.fixture
def jobs(redis) -> JobRepository:
    return JobRepository(redis)


@pytest.fixture
def tokens() -> TokenIssuer:
    return TokenIssuer("pdp-test", ec.generate_private_key(ec.SECP256R1()), ttl_seconds=60)


@pytest.fixture
def pdp() -> FakePdpService:
    return FakePdpService()


@pytest.fixture
async def http(pdp: FakePdpService) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(pdp.handle)) as client:
        yield client


@pytest.fixture
def store(http: httpx.AsyncClient, tokens: TokenIssuer) -> PieceStoreClient:
    return PieceStoreClient(http, BASE_URL, tokens)


@pytest.fixture
def authority(http: httpx.AsyncClient) -> PdpAuthorityClient:
    return PdpAuthorityClient(http, BASE_URL)
