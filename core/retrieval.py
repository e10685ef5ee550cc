# core/retrieval.py
import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Sequence, Tuple
from util.errors import FetchError
from util.timing import timed

logger = logging.getLogger(__name__)

PieceFetcher = Callable[[str], Awaitable[bytes]]


class RetrievalEngine:
    """
    Fetch pieces with at most `concurrency` requests in flight and reassemble
    them in the order given. The first failure cancels every sibling task;
    callers get either all pieces or that failure, never a partial result.
    """

    def __init__(self, fetcher: PieceFetcher, concurrency: int = 10) -> None:
        self._fetch = fetcher
        self._concurrency = max(1, concurrency)

    async def fetch_all(self, piece_ids: Sequence[str]) -> List[bytes]:
        total = len(piece_ids)
        slots: List[Optional[bytes]] = [None] * total
        if not total:
            return []

        sem = asyncio.Semaphore(self._concurrency)

        async def _one(index: int, piece_id: str) -> Tuple[int, bytes]:
            async with sem:
                try:
                    data = await self._fetch(piece_id)
                except FetchError:
                    raise
                except Exception as e:
                    raise FetchError(piece_id, f"{type(e).__name__}: {e}") from e
                return index, data

        tasks = [asyncio.create_task(_one(i, pid)) for i, pid in enumerate(piece_ids)]
        done = 0
        try:
            with timed(logger, "retrieve.all", pieces=total, conc=self._concurrency):
                for fut in asyncio.as_completed(tasks):
                    index, data = await fut
                    slots[index] = data
                    done += 1
        except BaseException as e:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if isinstance(e, FetchError):
                logger.error(
                    "retrieve.failed piece=%s done=%d total=%d", e.piece_id, done, total
                )
            raise

        return [s for s in slots if s is not None]

    async def stream(self, piece_ids: Sequence[str]) -> AsyncIterator[bytes]:
        """Yield the pieces in order once every one of them has arrived."""
        for data in await self.fetch_all(piece_ids):
            yield data
