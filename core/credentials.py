# core/credentials.py
import json
import logging
import os
import time
from typing import Optional
import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from util.errors import CredentialError

logger = logging.getLogger(__name__)


def _write_key_file(path: str, key: ec.EllipticCurvePrivateKey) -> None:
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        json.dump({"private_key": pem}, fh)
        fh.write("\n")


def _read_key_file(path: str) -> ec.EllipticCurvePrivateKey:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            secret = json.load(fh)
        pem = secret["private_key"].encode("ascii")
        key = serialization.load_pem_private_key(pem, password=None)
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise CredentialError(f"failed to load private key from {path}: {e}") from e
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise CredentialError("private key is not ECDSA")
    return key


def load_private_key(path: str) -> ec.EllipticCurvePrivateKey:
    """
    Load the service key stored as {"private_key": "<PKCS8 PEM>"}.
    A missing file gets a fresh P-256 key written to it (mode 0600).
    """
    if not os.path.exists(path):
        key = ec.generate_private_key(ec.SECP256R1())
        try:
            _write_key_file(path, key)
        except OSError as e:
            raise CredentialError(f"failed to write private key to {path}: {e}") from e
        logger.warning("credentials.key.generated path=%s", path)
        return key
    return _read_key_file(path)


def export_public_key(path: str) -> str:
    key = _read_key_file(path)
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


class TokenIssuer:
    """Mints short-lived ES256 bearer tokens for the PDP service."""

    def __init__(
        self,
        service_name: str,
        private_key: ec.EllipticCurvePrivateKey,
        ttl_seconds: int = 3600,
    ) -> None:
        self._service_name = service_name
        self._key = private_key
        self._ttl = int(ttl_seconds)

    @classmethod
    def from_key_file(cls, service_name: str, path: str, ttl_seconds: int = 3600) -> "TokenIssuer":
        return cls(service_name, load_private_key(path), ttl_seconds)

    def issue(self, now: Optional[float] = None) -> str:
        issued = int(now if now is not None else time.time())
        claims = {"service_name": self._service_name, "exp": issued + self._ttl}
        try:
            return jwt.encode(claims, self._key, algorithm="ES256")
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            raise CredentialError(f"failed to sign token: {e}") from e

    __call__ = issue
