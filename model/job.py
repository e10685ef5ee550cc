# model/job.py
import time
from typing import List, Optional
from uuid import uuid4
from pydantic import BaseModel, Field
from util.enums import JobStatus


def _now() -> int:
    return int(time.time())


class Job(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    owner: str
    logical_name: str
    root_id: str
    root_index: int = 0
    child_piece_ids: List[str]
    proof_set_id: int
    size: int = 0
    status: JobStatus = JobStatus.pending
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: int = Field(default_factory=_now)
    updated_at: int = Field(default_factory=_now)
