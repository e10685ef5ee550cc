# model/api.py
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from core.commp import is_commitment_cid
from model.job import Job
from util.enums import JobStatus


class UploadResponse(BaseModel):
    jobIds: List[str]
    rootIds: List[str]
    pieces: int
    bytes: int


class JobView(BaseModel):
    id: str
    fileName: str
    rootId: str
    rootIndex: int
    pieceIds: List[str]
    proofSetId: int
    size: int
    status: JobStatus
    attempts: int
    lastError: Optional[str] = None

    @classmethod
    def of(cls, job: Job) -> "JobView":
        return cls(
            id=job.id,
            fileName=job.logical_name,
            rootId=job.root_id,
            rootIndex=job.root_index,
            pieceIds=job.child_piece_ids,
            proofSetId=job.proof_set_id,
            size=job.size,
            status=job.status,
            attempts=job.attempts,
            lastError=job.last_error,
        )


class JobListResponse(BaseModel):
    jobs: List[JobView]


class FileListResponse(BaseModel):
    files: List[str]


class ErrorEnvelope(BaseModel):
    ok: bool = False
    error: str
    message: str


class PieceFetchRequest(BaseModel):
    pieceIds: List[str] = Field(min_length=1)
    fileName: Optional[str] = None

    @field_validator("pieceIds")
    @classmethod
    def _only_commitments(cls, v: List[str]) -> List[str]:
        bad = [p for p in v if not is_commitment_cid(p)]
        if bad:
            raise ValueError(f"not piece commitment ids: {', '.join(bad[:3])}")
        return v
