# repository/namespaces.py
from typing import Final
from urllib.parse import quote

ROOT: Final[str] = "arkvault"

JOBS: Final[str] = f"{ROOT}:jobs"  # hash per job id
JOB_SEQ: Final[str] = f"{JOBS}:seq"  # FIFO ordering for the pending index
PENDING: Final[str] = f"{JOBS}:pending"  # zset of pending job ids
NAMES: Final[str] = f"{ROOT}:names"  # set of logical names per owner
BY_NAME: Final[str] = f"{ROOT}:byname"  # zset of job ids per owner+name, scored by root index
BY_ROOT: Final[str] = f"{ROOT}:byroot"  # zset of job ids per root id, scored by creation seq
UNIQUE: Final[str] = f"{ROOT}:unique"  # owner+name+root index -> job id


def part(value: str) -> str:
    # Owners and names are user input; escape ':' so keys stay unambiguous.
    return quote(value, safe="")
