# util/errors.py
from typing import Optional
from fastapi import HTTPException, status

# Starlette renamed the 422 constant; older releases only ship the old name.
_HTTP_422: int = (
    getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", None)
    or status.HTTP_422_UNPROCESSABLE_ENTITY
)


class AppError(HTTPException):
    # Flow: raise AppError to short-circuit with a typed status & message.
    def __init__(
        self, message: str, http_status: int = status.HTTP_400_BAD_REQUEST
    ) -> None:
        super().__init__(status_code=http_status, detail=message)


class ArkError(Exception):
    """
    Base for pipeline failures. `code` and `http_status` feed the JSON
    envelope rendered by the exception handler in main.py.
    """

    code: str = "internal_error"
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR


class ComputationError(ArkError):
    code = "commitment_failed"
    http_status = status.HTTP_502_BAD_GATEWAY


class PieceTooLargeError(ArkError):
    code = "piece_too_large"
    http_status = _HTTP_422

    def __init__(self, padded_size: int, capacity: int) -> None:
        super().__init__(
            f"piece padded size {padded_size} exceeds root capacity {capacity}"
        )
        self.padded_size = padded_size
        self.capacity = capacity


class StoreRejectedError(ArkError):
    code = "store_rejected"
    http_status = status.HTTP_502_BAD_GATEWAY

    def __init__(self, status_code: int, body: str, piece_id: str = "") -> None:
        super().__init__(
            f"store returned status {status_code} for piece {piece_id or '?'}: {body}"
        )
        self.status_code = status_code
        self.body = body
        self.piece_id = piece_id


class DuplicateJobError(ArkError):
    code = "duplicate_job"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, owner: str, logical_name: str) -> None:
        super().__init__(f"{logical_name!r} already exists for owner {owner!r}")
        self.owner = owner
        self.logical_name = logical_name


class JobNotFoundError(ArkError):
    code = "job_not_found"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, job_id: str) -> None:
        super().__init__(f"no job with id {job_id}")
        self.job_id = job_id


class InvalidTransitionError(ArkError):
    code = "invalid_transition"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(f"job {job_id} cannot move from {current} to {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class RegistrationError(ArkError):
    code = "registration_failed"
    http_status = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FetchError(ArkError):
    code = "fetch_failed"
    http_status = status.HTTP_502_BAD_GATEWAY

    def __init__(self, piece_id: str, reason: str) -> None:
        super().__init__(f"failed to fetch piece {piece_id}: {reason}")
        self.piece_id = piece_id
        self.reason = reason


class CredentialError(ArkError):
    code = "credential_error"
