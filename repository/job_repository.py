# repository/job_repository.py
import json
import logging
import time
from typing import Dict, List, Optional
from redis.asyncio import Redis
from redis.exceptions import WatchError
from model.job import Job
from repository.namespaces import (
    BY_NAME,
    BY_ROOT,
    JOB_SEQ,
    JOBS,
    NAMES,
    PENDING,
    UNIQUE,
    part,
)
from util.enums import JobStatus
from util.errors import DuplicateJobError, InvalidTransitionError, JobNotFoundError

logger = logging.getLogger(__name__)


def _s(v: object, default: str = "") -> str:
    if v is None:
        return default
    return v.decode("utf-8") if isinstance(v, (bytes, bytearray)) else str(v)


class JobRepository:
    """
    Redis-backed job records. One hash per job plus small indexes:
    pending (FIFO), owner -> names, owner+name -> jobs, root -> jobs.

    Piece ids are stored as a JSON array so no delimiter can collide with an id.
    """

    def __init__(self, redis: Redis) -> None:
        self._r = redis

    @staticmethod
    def _key(job_id: str) -> str:
        return f"{JOBS}:{job_id}"

    @staticmethod
    def _names_key(owner: str) -> str:
        return f"{NAMES}:{part(owner)}"

    @staticmethod
    def _by_name_key(owner: str, name: str) -> str:
        return f"{BY_NAME}:{part(owner)}:{part(name)}"

    @staticmethod
    def _by_root_key(root_id: str) -> str:
        return f"{BY_ROOT}:{part(root_id)}"

    @staticmethod
    def _unique_key(owner: str, name: str, root_index: int) -> str:
        return f"{UNIQUE}:{part(owner)}:{part(name)}:{root_index}"

    @staticmethod
    def _to_mapping(job: Job) -> Dict[str, str]:
        return {
            "id": job.id,
            "owner": job.owner,
            "logical_name": job.logical_name,
            "root_id": job.root_id,
            "root_index": str(job.root_index),
            "child_piece_ids": json.dumps(job.child_piece_ids, separators=(",", ":")),
            "proof_set_id": str(job.proof_set_id),
            "size": str(job.size),
            "status": job.status.value,
            "attempts": str(job.attempts),
            "last_error": job.last_error or "",
            "created_at": str(job.created_at),
            "updated_at": str(job.updated_at),
        }

    @staticmethod
    def _from_mapping(h: Dict[bytes, bytes]) -> Job:
        f = {_s(k): _s(v) for k, v in h.items()}
        return Job(
            id=f["id"],
            owner=f["owner"],
            logical_name=f["logical_name"],
            root_id=f["root_id"],
            root_index=int(f.get("root_index") or 0),
            child_piece_ids=json.loads(f.get("child_piece_ids") or "[]"),
            proof_set_id=int(f.get("proof_set_id") or 0),
            size=int(f.get("size") or 0),
            status=JobStatus(f.get("status") or JobStatus.pending.value),
            attempts=int(f.get("attempts") or 0),
            last_error=f.get("last_error") or None,
            created_at=int(f.get("created_at") or 0),
            updated_at=int(f.get("updated_at") or 0),
        )

    # ---------------- Core CRUD ----------------

    async def create(self, job: Job) -> Job:
        """
        Persist a new job. Raises DuplicateJobError when owner+name already
        holds a job at this root position.
        """
        await self.create_many([job])
        return job

    async def create_many(self, jobs: List[Job]) -> List[Job]:
        """
        Persist several jobs in one MULTI/EXEC: either every job and index
        entry is written or none is. The unique keys are WATCHed so a
        concurrent writer forces a re-check instead of a partial write.
        """
        if not jobs:
            return []
        uniq = [self._unique_key(j.owner, j.logical_name, j.root_index) for j in jobs]
        async with self._r.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(*uniq)
                    for job, key in zip(jobs, uniq):
                        if await pipe.exists(key):
                            raise DuplicateJobError(job.owner, job.logical_name)
                    last = await pipe.incrby(JOB_SEQ, len(jobs))
                    first = int(last) - len(jobs) + 1

                    pipe.multi()
                    for seq, (job, key) in enumerate(zip(jobs, uniq), start=first):
                        pipe.set(key, job.id)
                        pipe.hset(self._key(job.id), mapping=self._to_mapping(job))
                        if job.status is JobStatus.pending:
                            pipe.zadd(PENDING, {job.id: seq})
                        pipe.sadd(self._names_key(job.owner), job.logical_name)
                        pipe.zadd(
                            self._by_name_key(job.owner, job.logical_name),
                            {job.id: job.root_index},
                        )
                        pipe.zadd(self._by_root_key(job.root_id), {job.id: seq})
                    await pipe.execute()
                    break
                except WatchError:
                    continue

        for job in jobs:
            logger.info(
                "jobs.create job=%s owner=%s name=%s root=%s pieces=%d",
                job.id,
                job.owner,
                job.logical_name,
                job.root_id,
                len(job.child_piece_ids),
            )
        return jobs

    async def get(self, job_id: str) -> Optional[Job]:
        if not job_id:
            return None
        h = await self._r.hgetall(self._key(job_id))
        if not h:
            return None
        return self._from_mapping(h)

    async def _get_many(self, job_ids: List[bytes]) -> List[Job]:
        if not job_ids:
            return []
        async with self._r.pipeline(transaction=False) as pipe:
            for jid in job_ids:
                pipe.hgetall(self._key(_s(jid)))
            rows = await pipe.execute()
        out: List[Job] = []
        for jid, h in zip(job_ids, rows):
            if not h:
                logger.warning("jobs.index.stale job=%s", _s(jid))
                continue
            out.append(self._from_mapping(h))
        return out

    # ---------------- Status transitions ----------------

    async def update_status(
        self, job_id: str, status: JobStatus, error: Optional[str] = None
    ) -> Job:
        """
        Move a pending job to a terminal status. Raises JobNotFoundError when no
        row matches and InvalidTransitionError for anything but pending -> terminal.
        """
        key = self._key(job_id)
        async with self._r.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    current = await pipe.hget(key, "status")
                    if current is None:
                        raise JobNotFoundError(job_id)
                    cur = JobStatus(_s(current))
                    if cur.terminal or not status.terminal:
                        raise InvalidTransitionError(job_id, cur.value, status.value)
                    mapping = {"status": status.value, "updated_at": str(int(time.time()))}
                    if error is not None:
                        mapping["last_error"] = error
                    pipe.multi()
                    pipe.hset(key, mapping=mapping)
                    pipe.zrem(PENDING, job_id)
                    await pipe.execute()
                    break
                except WatchError:
                    continue
        logger.info("jobs.status job=%s %s->%s", job_id, cur.value, status.value)
        job = await self.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def record_failure(self, job_id: str, error: str) -> int:
        """Count one failed registration attempt; returns the new attempt count."""
        key = self._key(job_id)
        if not await self._r.exists(key):
            raise JobNotFoundError(job_id)
        async with self._r.pipeline(transaction=True) as pipe:
            pipe.hincrby(key, "attempts", 1)
            pipe.hset(
                key, mapping={"last_error": error, "updated_at": str(int(time.time()))}
            )
            attempts, _ = await pipe.execute()
        return int(attempts)

    # ---------------- Queries ----------------

    async def list_pending(self) -> List[Job]:
        ids = await self._r.zrange(PENDING, 0, -1)
        jobs = await self._get_many(ids)
        return [j for j in jobs if j.status is JobStatus.pending]

    async def list_jobs(self, owner: str, name: str) -> List[Job]:
        ids = await self._r.zrange(self._by_name_key(owner, name), 0, -1)
        return await self._get_many(ids)

    async def list_names(self, owner: str) -> List[str]:
        names = await self._r.smembers(self._names_key(owner))
        return sorted(_s(n) for n in names)

    async def name_exists(self, owner: str, name: str) -> bool:
        return bool(await self._r.zcard(self._by_name_key(owner, name)))

    async def find_by_owner_and_name(
        self, owner: str, name: str, status: Optional[JobStatus] = None
    ) -> List[str]:
        """Ordered piece ids of every matching job, following root order."""
        out: List[str] = []
        for job in await self.list_jobs(owner, name):
            if status is None or job.status is status:
                out.extend(job.child_piece_ids)
        return out

    async def find_by_root(
        self, root_id: str, status: Optional[JobStatus] = None
    ) -> List[str]:
        ids = await self._r.zrange(self._by_root_key(root_id), 0, -1)
        for job in await self._get_many(ids):
            if status is None or job.status is status:
                return list(job.child_piece_ids)
        return []
