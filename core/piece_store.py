# core/piece_store.py
import enum
import logging
from typing import Callable, Optional
import httpx
from fastapi import status
from core.entities import Piece
from util.constants import COMMP_HASH_NAME, ExternalURIs
from util.errors import FetchError, StoreRejectedError
from util.functions import clip_body, join_url
from util.types import PieceProbe

logger = logging.getLogger(__name__)

TokenSource = Callable[[], str]


class UploadOutcome(str, enum.Enum):
    EXISTS = "exists"
    UPLOADED = "uploaded"


class PieceStoreClient:
    """
    Exists-or-upload protocol against the PDP content store.

    1) POST /pdp/piece with the commP digest: 200 = already stored,
       201 = upload to the Location header.
    2) PUT the raw window bytes to that location: 204 = stored.

    Anything else is a StoreRejectedError. No retries happen here.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str, token: TokenSource) -> None:
        self._client = client
        self._base = base_url.rstrip("/")
        self._token = token

    def _auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self._token()}"}

    @staticmethod
    def probe_body(piece: Piece) -> PieceProbe:
        return {
            "check": {
                "name": COMMP_HASH_NAME,
                "hash": piece.raw_digest.hex(),
                "size": piece.length,
            }
        }

    async def probe(self, piece: Piece) -> Optional[str]:
        """Return None when the store already holds the piece, else the upload location."""
        try:
            res = await self._client.post(
                join_url(self._base, ExternalURIs.PIECE),
                headers={**self._auth_headers(), "Content-Type": "application/json"},
                json=self.probe_body(piece),
            )
        except httpx.RequestError as e:
            logger.error("store.probe.request_error piece=%s err=%s", piece.commitment_id, e)
            raise StoreRejectedError(0, str(e), piece.commitment_id) from e

        if res.status_code == status.HTTP_200_OK:
            existing = ""
            try:
                existing = str((res.json() or {}).get("pieceCID") or "")
            except ValueError:
                pass
            logger.info(
                "store.probe.exists piece=%s remote=%s", piece.commitment_id, existing or "-"
            )
            return None

        if res.status_code == status.HTTP_201_CREATED:
            location = res.headers.get("Location")
            if not location:
                raise StoreRejectedError(
                    res.status_code, "missing Location header", piece.commitment_id
                )
            return join_url(self._base, location)

        raise StoreRejectedError(res.status_code, clip_body(res.text), piece.commitment_id)

    async def transfer(self, piece: Piece, location: str, data: bytes) -> None:
        if len(data) != piece.length:
            raise ValueError(
                f"piece {piece.commitment_id} declares {piece.length} bytes, got {len(data)}"
            )
        try:
            res = await self._client.put(
                location,
                headers={
                    **self._auth_headers(),
                    "Content-Type": "application/octet-stream",
                    "Content-Length": str(piece.length),
                },
                content=data,
            )
        except httpx.RequestError as e:
            logger.error("store.put.request_error piece=%s err=%s", piece.commitment_id, e)
            raise StoreRejectedError(0, str(e), piece.commitment_id) from e

        if res.status_code != status.HTTP_204_NO_CONTENT:
            raise StoreRejectedError(res.status_code, clip_body(res.text), piece.commitment_id)

    async def ensure_piece(self, piece: Piece, content: bytes) -> UploadOutcome:
        """
        Probe, then upload the window `content[piece.offset:piece.end]` if needed.
        """
        location = await self.probe(piece)
        if location is None:
            return UploadOutcome.EXISTS
        await self.transfer(piece, location, bytes(content[piece.offset : piece.end]))
        logger.info(
            "store.put.ok piece=%s bytes=%d sha256=%s",
            piece.commitment_id,
            piece.length,
            piece.sha256.hex(),
        )
        return UploadOutcome.UPLOADED

    async def fetch_piece(self, piece_id: str) -> bytes:
        url = join_url(self._base, ExternalURIs.PIECE_DOWNLOAD.format(piece_id=piece_id))
        try:
            res = await self._client.get(url)
        except httpx.RequestError as e:
            raise FetchError(piece_id, f"{type(e).__name__}: {e}") from e
        if res.status_code != status.HTTP_200_OK:
            raise FetchError(piece_id, f"status code {res.status_code}")
        return res.content
