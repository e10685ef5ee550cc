# util/enums.py
from enum import Enum
from typing import NamedTuple
from fastapi import status


class Color(str, Enum):
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"

    def __str__(self):
        return self.value


class Environment(str, Enum):
    DEV = "dev"
    PROD = "prod"


class JobStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"

    @property
    def terminal(self) -> bool:
        return self is not JobStatus.pending


class ErrorInfo(NamedTuple):
    message: str
    http_status: int


class ErrorMessage(Enum):
    OWNER_REQUIRED = ErrorInfo("owner is required", status.HTTP_400_BAD_REQUEST)
    FILE_NAME_REQUIRED = ErrorInfo("fileName is required", status.HTTP_400_BAD_REQUEST)
    EMPTY_FILE = ErrorInfo("uploaded file is empty", status.HTTP_400_BAD_REQUEST)
    FILE_NOT_FOUND = ErrorInfo("file not found", status.HTTP_404_NOT_FOUND)
    ROOT_NOT_FOUND = ErrorInfo("root not found", status.HTTP_404_NOT_FOUND)
