# config/context.py
from dataclasses import dataclass
import httpx
from redis.asyncio import Redis
from config.cache import close_redis, open_redis
from config.settings import Settings
from core.credentials import TokenIssuer
from core.pdp_client import PdpAuthorityClient
from core.piece_store import PieceStoreClient
from core.retrieval import RetrievalEngine
from repository.job_repository import JobRepository
from service.ingest_service import IngestService
from service.reconciliation_service import ReconciliationScheduler
from service.retrieval_service import RetrievalService


@dataclass
class AppContext:
    """
    Everything the process shares, built once and handed to components.
    Nothing below reads the settings module directly.
    """

    settings: Settings
    redis: Redis
    http: httpx.AsyncClient
    tokens: TokenIssuer
    jobs: JobRepository
    store: PieceStoreClient
    authority: PdpAuthorityClient
    ingest: IngestService
    retrieval: RetrievalService
    scheduler: ReconciliationScheduler

    async def aclose(self) -> None:
        await self.scheduler.stop()
        await self.http.aclose()
        await close_redis(self.redis)


def build_context(cfg: Settings, redis: Redis, http: httpx.AsyncClient, tokens: TokenIssuer) -> AppContext:
    jobs = JobRepository(redis)
    store = PieceStoreClient(http, cfg.PDP_SERVICE_URL, tokens)
    authority = PdpAuthorityClient(http, cfg.PDP_SERVICE_URL)
    ingest = IngestService(
        jobs,
        store,
        chunk_size=cfg.CHUNK_SIZE_BYTES,
        max_root_capacity=cfg.MAX_ROOT_CAPACITY,
        sector_size=cfg.ROOT_SECTOR_SIZE,
        proof_set_id=cfg.PROOF_SET_ID,
    )
    retrieval = RetrievalService(
        jobs, RetrievalEngine(store.fetch_piece, cfg.RETRIEVAL_CONCURRENCY)
    )
    scheduler = ReconciliationScheduler(
        jobs,
        authority,
        tokens,
        interval_seconds=cfg.RECONCILE_INTERVAL_SECONDS,
        max_attempts=cfg.MAX_REGISTRATION_ATTEMPTS,
        extra_data=cfg.PROOF_SET_EXTRA_DATA,
    )
    return AppContext(
        settings=cfg,
        redis=redis,
        http=http,
        tokens=tokens,
        jobs=jobs,
        store=store,
        authority=authority,
        ingest=ingest,
        retrieval=retrieval,
        scheduler=scheduler,
    )


async def open_context(cfg: Settings) -> AppContext:
    tokens = TokenIssuer.from_key_file(
        cfg.PDP_SERVICE_NAME, cfg.PRIVATE_KEY_PATH, cfg.AUTHORITY_TOKEN_TTL_SECONDS
    )
    redis = await open_redis(cfg.REDIS_URL)
    http = httpx.AsyncClient(timeout=httpx.Timeout(cfg.HTTP_TIMEOUT_SECONDS, connect=10.0))
    return build_context(cfg, redis, http, tokens)
