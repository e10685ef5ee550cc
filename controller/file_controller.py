# controller/file_controller.py
from typing import List
from urllib.parse import quote
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from model.api import (
    FileListResponse,
    JobListResponse,
    JobView,
    PieceFetchRequest,
    UploadResponse,
)
from repository.job_repository import JobRepository
from service.ingest_service import IngestService
from service.retrieval_service import RetrievalService
from util.constants import InternalURIs
from controller.controller_dependencies import (
    enforce_max_upload_size,
    get_ingest_service,
    get_job_repository,
    get_retrieval_service,
    rate_limiter,
)

file_router = APIRouter()


def _octet_stream(pieces: List[bytes], filename: str) -> StreamingResponse:
    async def _body():
        for piece in pieces:
            yield piece

    return StreamingResponse(
        _body(),
        media_type="application/octet-stream",
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}",
            "Content-Length": str(sum(len(p) for p in pieces)),
        },
    )


@file_router.post(
    InternalURIs.UPLOAD,
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limiter), Depends(enforce_max_upload_size)],
)
async def upload_file(
    file: UploadFile = File(...),
    owner: str = Form(...),
    fileName: str = Form(""),
    service: IngestService = Depends(get_ingest_service),
) -> UploadResponse:
    content = await file.read()
    result = await service.ingest(owner, fileName or file.filename or "", content)
    return UploadResponse(
        jobIds=result.job_ids,
        rootIds=[r.root_id for r in result.roots],
        pieces=sum(len(r.pieces) for r in result.roots),
        bytes=result.bytes_total,
    )


@file_router.get(InternalURIs.DOWNLOAD)
async def download_file(
    owner: str = Query(..., min_length=1),
    fileName: str = Query(..., min_length=1),
    service: RetrievalService = Depends(get_retrieval_service),
):
    pieces = await service.fetch_file(owner, fileName)
    return _octet_stream(pieces, fileName)


@file_router.get(InternalURIs.ROOT)
async def fetch_root(
    root_id: str,
    service: RetrievalService = Depends(get_retrieval_service),
):
    pieces = await service.fetch_root(root_id)
    return _octet_stream(pieces, root_id)


@file_router.post(InternalURIs.PIECES)
async def fetch_pieces(
    payload: PieceFetchRequest,
    service: RetrievalService = Depends(get_retrieval_service),
):
    pieces = await service.fetch_pieces(payload.pieceIds)
    return _octet_stream(pieces, payload.fileName or "pieces.bin")


@file_router.get(InternalURIs.FILES, response_model=FileListResponse)
async def list_files(
    owner: str = Query(..., min_length=1),
    jobs: JobRepository = Depends(get_job_repository),
) -> FileListResponse:
    return FileListResponse(files=await jobs.list_names(owner))


@file_router.get(InternalURIs.JOBS, response_model=JobListResponse)
async def list_jobs(
    owner: str = Query(..., min_length=1),
    fileName: str = Query(..., min_length=1),
    jobs: JobRepository = Depends(get_job_repository),
) -> JobListResponse:
    rows = await jobs.list_jobs(owner, fileName)
    return JobListResponse(jobs=[JobView.of(j) for j in rows])
