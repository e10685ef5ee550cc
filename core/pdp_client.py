# core/pdp_client.py
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence
import httpx
from fastapi import status
from util.constants import ExternalURIs
from util.errors import RegistrationError
from util.functions import clip_body, join_url
from util.timing import timed
from util.types import AddRootEntry, AddRootsPayload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RootRegistration:
    root_id: str
    subroot_ids: Sequence[str]

    @classmethod
    def parse(cls, raw: str) -> "RootRegistration":
        """
        Parse the CLI form "rootCID:subrootCID1+subrootCID2".
        """
        root_id, sep, subs = raw.partition(":")
        subroot_ids = [s for s in subs.split("+") if s]
        if not sep or not root_id or not subroot_ids:
            raise ValueError(
                f"invalid root input {raw!r}; expected rootCID:subrootCID1+subrootCID2"
            )
        return cls(root_id=root_id, subroot_ids=subroot_ids)

    def entry(self) -> AddRootEntry:
        return {
            "rootCid": self.root_id,
            "subroots": [{"subrootCid": s} for s in self.subroot_ids],
        }


def build_add_roots_payload(
    roots: Sequence[RootRegistration], extra_data: str = ""
) -> AddRootsPayload:
    if not roots:
        raise ValueError("at least one root is required")
    payload: AddRootsPayload = {"roots": [r.entry() for r in roots]}
    if extra_data:
        payload["extraData"] = extra_data
    return payload


@dataclass
class ProofSetCreation:
    location: str
    tx_hash: str


@dataclass
class ProofSetStatus:
    tx_hash: str
    created: bool
    tx_status: str
    ok: Optional[bool]
    proof_set_id: Optional[int]


class PdpAuthorityClient:
    """
    Proof-set endpoints of the PDP service. Every call takes a bearer token
    so the caller decides when to mint a fresh one.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self._base = base_url.rstrip("/")

    @staticmethod
    def _headers(token: str) -> dict:
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    async def add_roots(
        self,
        proof_set_id: int,
        roots: Sequence[RootRegistration],
        token: str,
        extra_data: str = "",
    ) -> None:
        payload = build_add_roots_payload(roots, extra_data)
        url = join_url(
            self._base, ExternalURIs.PROOF_SET_ROOTS.format(proof_set_id=proof_set_id)
        )
        try:
            with timed(logger, "pdp.add_roots", proof_set=proof_set_id, roots=len(roots)):
                res = await self._client.post(url, headers=self._headers(token), json=payload)
        except httpx.RequestError as e:
            raise RegistrationError(f"add roots request failed: {e}") from e

        if res.status_code != status.HTTP_201_CREATED:
            raise RegistrationError(
                f"failed to add roots, status code {res.status_code}: {clip_body(res.text)}",
                status_code=res.status_code,
            )

    async def create_proof_set(
        self, record_keeper: str, token: str, extra_data: str = ""
    ) -> ProofSetCreation:
        body = {"recordKeeper": record_keeper}
        if extra_data:
            body["extraData"] = extra_data
        try:
            res = await self._client.post(
                join_url(self._base, ExternalURIs.PROOF_SETS),
                headers=self._headers(token),
                json=body,
            )
        except httpx.RequestError as e:
            raise RegistrationError(f"create proof set request failed: {e}") from e

        if res.status_code != status.HTTP_201_CREATED:
            raise RegistrationError(
                f"failed to create proof set, status code {res.status_code}: {clip_body(res.text)}",
                status_code=res.status_code,
            )
        location = res.headers.get("Location", "")
        tx_hash = location.rstrip("/").rsplit("/", 1)[-1]
        if not tx_hash:
            raise RegistrationError("failed to extract transaction hash from Location header")
        logger.info("pdp.proof_set.create location=%s tx=%s", location, tx_hash)
        return ProofSetCreation(location=location, tx_hash=tx_hash)

    async def proof_set_status(self, tx_hash: str, token: str) -> ProofSetStatus:
        tx = tx_hash.lower()
        if not tx.startswith("0x"):
            tx = "0x" + tx
        url = join_url(self._base, ExternalURIs.PROOF_SET_CREATED.format(tx_hash=tx))
        try:
            res = await self._client.get(url, headers={"Authorization": f"Bearer {token}"})
        except httpx.RequestError as e:
            raise RegistrationError(f"proof set status request failed: {e}") from e

        if res.status_code != status.HTTP_200_OK:
            raise RegistrationError(
                f"failed to get proof set status, status code {res.status_code}: {clip_body(res.text)}",
                status_code=res.status_code,
            )
        try:
            data = res.json() or {}
        except ValueError as e:
            raise RegistrationError(f"failed to parse proof set status: {e}") from e

        raw_id = data.get("proofSetId")
        return ProofSetStatus(
            tx_hash=tx,
            created=bool(data.get("proofsetCreated")),
            tx_status=str(data.get("txStatus") or ""),
            ok=data.get("ok"),
            proof_set_id=int(raw_id) if raw_id is not None else None,
        )


def registrations_from_job(root_id: str, piece_ids: List[str]) -> List[RootRegistration]:
    return [RootRegistration(root_id=root_id, subroot_ids=list(piece_ids))]
