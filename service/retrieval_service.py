# service/retrieval_service.py
import logging
from typing import List
from core.retrieval import RetrievalEngine
from repository.job_repository import JobRepository
from util.enums import ErrorMessage, JobStatus
from util.errors import AppError

logger = logging.getLogger(__name__)


class RetrievalService:
    def __init__(self, jobs: JobRepository, engine: RetrievalEngine) -> None:
        self._jobs = jobs
        self._engine = engine

    async def file_pieces(self, owner: str, logical_name: str) -> List[str]:
        piece_ids = await self._jobs.find_by_owner_and_name(owner, logical_name)
        if not piece_ids:
            raise AppError(*ErrorMessage.FILE_NOT_FOUND.value)
        return piece_ids

    async def fetch_file(self, owner: str, logical_name: str) -> List[bytes]:
        """
        Every piece of the file in order. Raises before any byte is returned
        if one of them cannot be fetched.
        """
        piece_ids = await self.file_pieces(owner, logical_name)
        logger.info(
            "retrieve.file owner=%s name=%s pieces=%d", owner, logical_name, len(piece_ids)
        )
        return await self._engine.fetch_all(piece_ids)

    async def fetch_root(self, root_id: str) -> List[bytes]:
        # Roots are only served once registered with the proof set.
        piece_ids = await self._jobs.find_by_root(root_id, JobStatus.completed)
        if not piece_ids:
            raise AppError(*ErrorMessage.ROOT_NOT_FOUND.value)
        logger.info("retrieve.root root=%s pieces=%d", root_id, len(piece_ids))
        return await self._engine.fetch_all(piece_ids)

    async def fetch_pieces(self, piece_ids: List[str]) -> List[bytes]:
        return await self._engine.fetch_all(piece_ids)
