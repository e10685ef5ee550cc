"""
tests/helpers.py

In-memory stand-in for the PDP service, served through httpx.MockTransport.
Covers the piece store (probe / upload / fetch) and the proof-set roots
endpoint, and records every request it sees.
"""

from __future__ import annotations

import json
import itertools
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import httpx
from redis.exceptions import ConnectionError as RedisConnectionError

from core.commp import commitment_to_cid

_UPLOAD_RE = re.compile(r"^/pdp/piece/upload/(?P<token>[\w-]+)$")
_FETCH_RE = re.compile(r"^/piece/(?P<cid>[\w]+)$")
_ROOTS_RE = re.compile(r"^/pdp/proof-sets/(?P<id>\d+)/roots$")


@dataclass
class FakePdpService:
    pieces: Dict[str, bytes] = field(default_factory=dict)  # cid -> bytes
    uploads: Dict[str, str] = field(default_factory=dict)  # upload token -> cid
    registered: List[dict] = field(default_factory=list)
    requests: List[httpx.Request] = field(default_factory=list)
    failing_roots: Set[str] = field(default_factory=set)
    probe_status: Optional[int] = None
    _seq: itertools.count = field(default_factory=itertools.count)
    put_status: Optional[int] = None

    def calls(self, method: str, prefix: str = "") -> List[httpx.Request]:
        return [
            r for r in self.requests if r.method == method and r.url.path.startswith(prefix)
        ]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "POST" and path == "/pdp/piece":
            return self._probe(request)

        m = _UPLOAD_RE.match(path)
        if request.method == "PUT" and m:
            if self.put_status is not None:
                return httpx.Response(self.put_status, text="put rejected")
            cid = self.uploads.pop(m.group("token"), None)
            if cid is None:
                return httpx.Response(404, text="unknown upload")
            self.pieces[cid] = request.content
            return httpx.Response(204)

        m = _FETCH_RE.match(path)
        if request.method == "GET" and m:
            data = self.pieces.get(m.group("cid"))
            if data is None:
                return httpx.Response(404, text="not found")
            return httpx.Response(200, content=data)

        m = _ROOTS_RE.match(path)
        if request.method == "POST" and m:
            body = json.loads(request.content)
            roots = [r["rootCid"] for r in body["roots"]]
            if self.failing_roots.intersection(roots):
                return httpx.Response(500, text="chain busy")
            self.registered.append({"proof_set_id": int(m.group("id")), **body})
            return httpx.Response(201)

        return httpx.Response(404, text=f"no route {request.method} {path}")

    def _probe(self, request: httpx.Request) -> httpx.Response:
        if self.probe_status is not None:
            return httpx.Response(self.probe_status, text="probe rejected")
        check = json.loads(request.content)["check"]
        cid = commitment_to_cid(bytes.fromhex(check["hash"]))
        if cid in self.pieces:
            return httpx.Response(200, json={"pieceCID": cid})
        token = f"u{next(self._seq)}-{check['size']}"
        self.uploads[token] = cid
        return httpx.Response(201, headers={"Location": f"/pdp/piece/upload/{token}"})


def fail_transactions(monkeypatch, redis) -> None:
    """Make every MULTI/EXEC on `redis` fail as if the connection dropped."""
    original = redis.pipeline

    def pipeline(*args, **kwargs):
        pipe = original(*args, **kwargs)

        async def execute(*a, **kw):
            raise RedisConnectionError("connection reset by peer")

        monkeypatch.setattr(pipe, "execute", execute)
        return pipe

    monkeypatch.setattr(redis, "pipeline", pipeline)
