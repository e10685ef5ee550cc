# core/root_packer.py
import logging
from typing import Iterable, List, Sequence
from core.commp import root_cid
from core.entities import Piece, Root
from util.errors import PieceTooLargeError

logger = logging.getLogger(__name__)


def compute_root_id(pieces: Sequence[Piece], sector_size: int) -> str:
    return root_cid(((p.padded_size, p.raw_digest) for p in pieces), sector_size)


class RootPacker:
    """
    Groups the ordered piece stream into roots of at most `max_capacity`
    padded bytes. A root closes only when the next piece would overflow it.
    """

    def __init__(self, max_capacity: int, sector_size: int) -> None:
        if not 0 < max_capacity <= sector_size:
            raise ValueError("max_capacity must be in (0, sector_size]")
        self._capacity = max_capacity
        self._sector_size = sector_size
        self._open: List[Piece] = []
        self._open_size = 0
        self._closed: List[Root] = []

    @property
    def roots(self) -> List[Root]:
        return list(self._closed)

    def add(self, piece: Piece) -> None:
        if piece.padded_size > self._capacity:
            raise PieceTooLargeError(piece.padded_size, self._capacity)
        if self._open and self._open_size + piece.padded_size > self._capacity:
            self._close_open()
        self._open.append(piece)
        self._open_size += piece.padded_size

    def finish(self) -> List[Root]:
        if self._open:
            self._close_open()
        return self.roots

    def _close_open(self) -> None:
        root = Root(
            root_id=compute_root_id(self._open, self._sector_size),
            pieces=tuple(self._open),
        )
        logger.info(
            "pack.root.closed root=%s pieces=%d size=%d",
            root.root_id,
            len(root.pieces),
            root.size,
        )
        self._closed.append(root)
        self._open = []
        self._open_size = 0


def pack(pieces: Iterable[Piece], max_capacity: int, sector_size: int) -> List[Root]:
    packer = RootPacker(max_capacity, sector_size)
    for piece in pieces:
        packer.add(piece)
    return packer.finish()
