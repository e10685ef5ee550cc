# service/ingest_service.py
import asyncio
import logging
from typing import List
from core.chunker import commit_window, window_bounds
from core.entities import IngestResult, Root
from core.piece_store import PieceStoreClient, UploadOutcome
from core.root_packer import RootPacker
from model.job import Job
from repository.job_repository import JobRepository
from util.enums import ErrorMessage
from util.errors import AppError, DuplicateJobError
from util.timing import timed

logger = logging.getLogger(__name__)


class IngestService:
    """
    Chunk -> commit -> exists-or-upload -> pack -> one pending job per root.

    Any failure aborts the whole file before a single job is written, so a
    job always points at a fully uploaded, fully packed root.
    """

    def __init__(
        self,
        jobs: JobRepository,
        store: PieceStoreClient,
        *,
        chunk_size: int,
        max_root_capacity: int,
        sector_size: int,
        proof_set_id: int,
    ) -> None:
        self._jobs = jobs
        self._store = store
        self._chunk_size = chunk_size
        self._capacity = max_root_capacity
        self._sector_size = sector_size
        self._proof_set_id = proof_set_id

    async def ingest(self, owner: str, logical_name: str, content: bytes) -> IngestResult:
        owner = (owner or "").strip()
        logical_name = (logical_name or "").strip()
        if not owner:
            raise AppError(*ErrorMessage.OWNER_REQUIRED.value)
        if not logical_name:
            raise AppError(*ErrorMessage.FILE_NAME_REQUIRED.value)
        if not content:
            raise AppError(*ErrorMessage.EMPTY_FILE.value)
        if await self._jobs.name_exists(owner, logical_name):
            raise DuplicateJobError(owner, logical_name)

        with timed(logger, "ingest.file", owner=owner, file=logical_name, bytes=len(content)):
            roots = await self._upload_and_pack(content)
            job_ids = await self._record(owner, logical_name, roots)

        logger.info(
            "ingest.ok owner=%s name=%s roots=%d jobs=%s",
            owner,
            logical_name,
            len(roots),
            ",".join(job_ids),
        )
        return IngestResult(
            owner=owner,
            logical_name=logical_name,
            job_ids=job_ids,
            roots=roots,
            bytes_total=len(content),
        )

    async def _upload_and_pack(self, content: bytes) -> List[Root]:
        packer = RootPacker(self._capacity, self._sector_size)
        uploaded = skipped = 0
        for offset, length in window_bounds(len(content), self._chunk_size):
            # commP hashing is CPU bound; keep the event loop free.
            piece = await asyncio.to_thread(commit_window, content, offset, length)
            packer.add(piece)
            outcome = await self._store.ensure_piece(piece, content)
            if outcome is UploadOutcome.EXISTS:
                skipped += 1
            else:
                uploaded += 1
        logger.info("ingest.pieces uploaded=%d deduplicated=%d", uploaded, skipped)
        return packer.finish()

    async def _record(self, owner: str, logical_name: str, roots: List[Root]) -> List[str]:
        # All jobs of one file land in a single transaction or not at all.
        jobs = [
            Job(
                owner=owner,
                logical_name=logical_name,
                root_id=root.root_id,
                root_index=index,
                child_piece_ids=root.piece_ids,
                proof_set_id=self._proof_set_id,
                size=root.size,
            )
            for index, root in enumerate(roots)
        ]
        await self._jobs.create_many(jobs)
        return [job.id for job in jobs]
