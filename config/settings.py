# config/settings.py
import os
import sys
from dotenv import load_dotenv
from pydantic import ValidationError, Field, model_validator
from pydantic_settings import BaseSettings
from util.constants import GIB, MIB
from util.enums import Environment
import logging


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()

_log = logging.getLogger("config.settings")


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(..., validation_alias="APP_ENV")
    REDIS_URL: str = Field(..., validation_alias="REDIS_URL")
    HOST: str = Field(default="127.0.0.1", validation_alias="HOST")
    PORT: int = Field(default=12345, validation_alias="PORT")

    # CORS & Limits
    ALLOWED_ORIGIN: str = Field(default="*", validation_alias="ALLOWED_ORIGIN")
    RATE_LIMIT_TIMES: int = Field(default=30, validation_alias="RATE_LIMIT_TIMES")
    RATE_LIMIT_SECONDS: int = Field(default=60, validation_alias="RATE_LIMIT_SECONDS")
    MAX_FILE_MB: int = Field(default=512, validation_alias="MAX_FILE_MB")
    TRUST_PROXY: bool = Field(default=False, validation_alias="TRUST_PROXY")

    # PDP service (content store + proof-set authority)
    PDP_SERVICE_URL: str = Field(..., validation_alias="PDP_SERVICE_URL")
    PDP_SERVICE_NAME: str = Field(default="pdp-service", validation_alias="PDP_SERVICE_NAME")
    PROOF_SET_ID: int = Field(default=390, validation_alias="PROOF_SET_ID")
    PROOF_SET_EXTRA_DATA: str = Field(default="", validation_alias="PROOF_SET_EXTRA_DATA")
    PRIVATE_KEY_PATH: str = Field(default="./pdp.pri", validation_alias="PRIVATE_KEY_PATH")
    AUTHORITY_TOKEN_TTL_SECONDS: int = Field(
        default=3600, validation_alias="AUTHORITY_TOKEN_TTL_SECONDS"
    )
    HTTP_TIMEOUT_SECONDS: float = Field(default=60.0, validation_alias="HTTP_TIMEOUT_SECONDS")

    # Piece pipeline
    CHUNK_SIZE_BYTES: int = Field(default=10 * MIB, validation_alias="CHUNK_SIZE_BYTES")
    # 64GiB sector; root ids are always padded to this size.
    ROOT_SECTOR_SIZE: int = Field(default=64 * GIB, validation_alias="ROOT_SECTOR_SIZE")
    MAX_ROOT_CAPACITY: int = Field(default=64 * GIB, validation_alias="MAX_ROOT_CAPACITY")
    RETRIEVAL_CONCURRENCY: int = Field(default=10, validation_alias="RETRIEVAL_CONCURRENCY")

    # Reconciliation
    RECONCILE_INTERVAL_SECONDS: float = Field(
        default=10.0, validation_alias="RECONCILE_INTERVAL_SECONDS"
    )
    MAX_REGISTRATION_ATTEMPTS: int = Field(
        default=30, validation_alias="MAX_REGISTRATION_ATTEMPTS"
    )
    SCHEDULER_ENABLED: bool = Field(default=True, validation_alias="SCHEDULER_ENABLED")

    # Logging knobs
    LOGGER_NAME: str = "ark-vault"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="app.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")

    @model_validator(mode="after")
    def _check_pipeline_sizes(self) -> "Settings":
        sector = self.ROOT_SECTOR_SIZE
        if sector < 128 or sector & (sector - 1):
            raise ValueError("ROOT_SECTOR_SIZE must be a power of two >= 128")
        if not 0 < self.MAX_ROOT_CAPACITY <= sector:
            raise ValueError("MAX_ROOT_CAPACITY must be in (0, ROOT_SECTOR_SIZE]")
        if self.CHUNK_SIZE_BYTES <= 0:
            raise ValueError("CHUNK_SIZE_BYTES must be positive")
        if self.RETRIEVAL_CONCURRENCY < 1:
            raise ValueError("RETRIEVAL_CONCURRENCY must be >= 1")
        return self


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"❌ Settings initialization failed: {e}", file=sys.stderr)
    sys.exit(1)
