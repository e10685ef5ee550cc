# controller/controller_dependencies.py
from fastapi import File, HTTPException, Request, UploadFile
from fastapi_limiter.depends import RateLimiter
from config.context import AppContext
from config.settings import settings
from repository.job_repository import JobRepository
from service.ingest_service import IngestService
from service.retrieval_service import RetrievalService

# Shared instance so tests can override it via app.dependency_overrides.
rate_limiter = RateLimiter(times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS)


def get_context(request: Request) -> AppContext:
    return request.app.state.ctx


def get_ingest_service(request: Request) -> IngestService:
    return get_context(request).ingest


def get_retrieval_service(request: Request) -> RetrievalService:
    return get_context(request).retrieval


def get_job_repository(request: Request) -> JobRepository:
    return get_context(request).jobs


async def enforce_max_upload_size(
    request: Request, file: UploadFile = File(...)
) -> UploadFile:
    max_mb = get_context(request).settings.MAX_FILE_MB
    max_bytes = max_mb * 1024 * 1024
    too_large = HTTPException(
        status_code=413,
        detail={"ok": False, "error": "file_too_large", "maxMb": max_mb},
    )

    # Fast pre-check via Content-Length if present
    cl = request.headers.get("content-length")
    if cl and cl.isdigit() and int(cl) > max_bytes:
        raise too_large

    # Hard cap while reading initial bytes (works even if no Content-Length)
    blob = await file.read(max_bytes + 1)
    if len(blob) > max_bytes:
        raise too_large

    # Reset so downstream can re-read file stream
    await file.seek(0)
    return file
