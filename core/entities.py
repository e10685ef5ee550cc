# core/entities.py
from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class Piece:
    commitment_id: str
    padded_size: int
    raw_digest: bytes  # commP digest, sent in the existence probe
    sha256: bytes  # digest of the raw window, logged with each upload
    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


@dataclass(frozen=True)
class Root:
    """
    Ordered, non-empty group of pieces identified by their aggregate commitment.
    Pieces are owned by position; they carry no reference back to the root.
    """

    root_id: str
    pieces: Tuple[Piece, ...]

    @property
    def size(self) -> int:
        return sum(p.padded_size for p in self.pieces)

    @property
    def piece_ids(self) -> List[str]:
        return [p.commitment_id for p in self.pieces]


@dataclass
class IngestResult:
    owner: str
    logical_name: str
    job_ids: List[str]
    roots: List[Root]
    bytes_total: int
