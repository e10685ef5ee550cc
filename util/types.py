# util/types.py
from typing import List, TypedDict


# Flow: Narrow types for the JSON bodies exchanged with the PDP service.
class PieceCheck(TypedDict):
    name: str
    hash: str
    size: int


class PieceProbe(TypedDict):
    check: PieceCheck


class SubrootEntry(TypedDict):
    subrootCid: str


class AddRootEntry(TypedDict):
    rootCid: str
    subroots: List[SubrootEntry]


class AddRootsPayload(TypedDict, total=False):
    roots: List[AddRootEntry]
    extraData: str
