from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from pathlib import Path
from typing import Literal
from functools import lru_cache
from ..validators.config_validators import to_uppercase, to_lowercase, to_path_list

class Settings(BaseSettings):
    """
    Request logging settings loaded from environment.
    """

    # Environment
    ENV: Literal["development", "testing", "staging", "production"] = "development"
    SERVICE_NAME: str | None = None

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"
    LOG_TO_STDOUT: bool = True
    LOG_DIR: Path = Path("/var/log/reqlog")
    LOG_MAX_BYTES: int = 10_000_000  # 10 MB
    LOG_BACKUP_COUNT: int = 5

    # Queue-backed logging
    LOG_USE_QUEUE: bool = False
    LOG_QUEUE_MAX_SIZE: int = 0
    LOG_QUEUE_BLOCKING: bool = False

    # Periodic flush of the log handlers, in seconds
    LOG_FLUSH_INTERVAL: float = Field(default=3.0, gt=0)

    # Access log
    ACCESS_LOGGER_NAME: str = "reqlog.access"
    ACCESS_LOG_MESSAGE: str = "[HTTP]"
    # Comma-separated list, e.g. "/health,/metrics"
    ACCESS_LOG_SKIP_PATHS: str = ""
    TRUST_FORWARDED_HEADERS: bool = True

    # Error reporter
    ERROR_REPORTER_TYPE: Literal["ANY", "PRIVATE", "PUBLIC", "BIND", "RENDER"] = "ANY"

    # --- Derived settings ---
    @property
    def access_log_skip_paths(self) -> list[str]:
        """
        ACCESS_LOG_SKIP_PATHS split into a list of paths.
        """
        return to_path_list(self.ACCESS_LOG_SKIP_PATHS)

    # --- Validators ---
    @field_validator("LOG_LEVEL", "ERROR_REPORTER_TYPE", mode="before")
    def normalize_upper(cls, v: str | None) -> str | None:
        """
        Normalize LOG_LEVEL / ERROR_REPORTER_TYPE to uppercase before the Literal check,
        so LOG_LEVEL=debug is accepted.
        """
        return to_uppercase(v)

    @field_validator("LOG_FORMAT", mode="before")
    def normalize_log_format(cls, v: str | None) -> str | None:
        """
        Normalize the LOG_FORMAT environment variable value to lowercase.
        """
        return to_lowercase(v)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

# get_settings() takes no arguments and always returns the same settings from the environment,
# so caching it with @lru_cache() avoids re-reading the environment on every call.
@lru_cache()
def get_settings() -> Settings:
    return Settings()
