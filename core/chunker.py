# core/chunker.py
import hashlib
import logging
from typing import Iterator, Tuple
from core.commp import commit
from core.entities import Piece
from util.functions import ceil_div

logger = logging.getLogger(__name__)


def window_bounds(total: int, chunk_size: int) -> Iterator[Tuple[int, int]]:
    """
    Yield (offset, length) for consecutive, non-overlapping windows.
    ceil(total / chunk_size) windows; only the last may be short.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    for idx in range(ceil_div(total, chunk_size)):
        start = idx * chunk_size
        yield start, min(chunk_size, total - start)


def commit_window(content: bytes, offset: int, length: int) -> Piece:
    window = memoryview(content)[offset : offset + length]
    pc = commit(window)
    return Piece(
        commitment_id=pc.commitment_id,
        padded_size=pc.padded_size,
        raw_digest=pc.digest,
        sha256=hashlib.sha256(window).digest(),
        offset=offset,
        length=length,
    )


class Chunker:
    """Slices content into fixed windows and commits each one in order."""

    def __init__(self, chunk_size: int) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._chunk_size = chunk_size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def count(self, total: int) -> int:
        return ceil_div(total, self._chunk_size)

    def pieces(self, content: bytes) -> Iterator[Piece]:
        for offset, length in window_bounds(len(content), self._chunk_size):
            piece = commit_window(content, offset, length)
            logger.debug(
                "chunk.commit offset=%d len=%d piece=%s padded=%d",
                offset,
                length,
                piece.commitment_id,
                piece.padded_size,
            )
            yield piece
