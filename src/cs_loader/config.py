from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .batch import MAX_BATCH_BYTES, BatchConfig
from .coordinator.ratelimit import DEFAULT_MIN_INTERVAL_MS


class Settings(BaseSettings):
    """Loader settings from the environment (or a local .env file)."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # source database: either a full SQLAlchemy URL or the parts of a MySQL one
    DB_URL: Optional[str] = None
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: Optional[str] = None
    DB_PASSWORD: Optional[str] = None
    DB_NAME: Optional[str] = None
    SOURCE_QUERY: str = "SELECT id, first_name, last_name, date_of_birth, join_date FROM employee ORDER BY id"
    FETCH_SIZE: int = 1000
    DOCUMENT_ID_PREFIX: str = "di_"

    # document endpoint
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_CS_DOC_ENDPOINT: Optional[str] = None
    AWS_SIGNING_REGION: str = "us-east-1"

    # batching / dispatch
    BATCH_BYTE_CEILING: int = MAX_BATCH_BYTES
    SAFETY_MARGIN_FRACTION: float = 0.995
    MIN_DISPATCH_INTERVAL_MS: int = DEFAULT_MIN_INTERVAL_MS
    USE_ASYNC: bool = False
    MAX_IN_FLIGHT: int = 4

    # failure payloads
    LOG_DIR: Optional[Path] = None

    @field_validator("LOG_DIR", mode="before")
    @classmethod
    def _blank_log_dir(cls, v):
        # blank means the default ~/DatabaseToCloudsearch/logs
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def database_url(self) -> str:
        if self.DB_URL:
            return self.DB_URL
        if not self.DB_NAME:
            raise ValueError("set DB_URL, or DB_HOST/DB_PORT/DB_USER/DB_PASSWORD/DB_NAME")
        auth = self.DB_USER or ""
        if self.DB_PASSWORD:
            auth += f":{self.DB_PASSWORD}"
        return (
            f"mysql+pymysql://{auth}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            "?charset=utf8mb4"
        )

    @property
    def batch_config(self) -> BatchConfig:
        return BatchConfig(ceiling=self.BATCH_BYTE_CEILING, margin=self.SAFETY_MARGIN_FRACTION)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
