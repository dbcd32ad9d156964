"""
Application settings for ReelVault.

This module defines all configuration settings for ReelVault using Pydantic BaseSettings.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main application settings using Pydantic BaseSettings."""

    # Catalog database
    database_url: str = Field(default="sqlite:///./reelvault.db", alias="DATABASE_URL")
    echo_sql: bool = Field(default=False, alias="ECHO_SQL")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    env: str = Field(default="dev", alias="ENV")  # dev|prod|test
    allowed_origins: str = Field(default="*", alias="ALLOWED_ORIGINS")  # Comma-separated origins
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=5000, alias="PORT")

    # Upstream asset provider
    storage_provider: str = Field(default="local", alias="STORAGE_PROVIDER")  # local|http
    storage_base_url: str = Field(default="http://127.0.0.1:8080/", alias="STORAGE_BASE_URL")
    storage_root: str = Field(default="./media", alias="STORAGE_ROOT")
    storage_token: str = Field(default="", alias="STORAGE_TOKEN")
    upstream_timeout: float = Field(default=30.0, alias="UPSTREAM_TIMEOUT")

    placeholder_base_url: str = Field(default="https://picsum.photos", alias="PLACEHOLDER_BASE_URL")

    # Throttle window handling
    throttle_default_reset: int = Field(default=3600, ge=1, alias="THROTTLE_DEFAULT_RESET")
    throttle_short_circuit: bool = Field(default=True, alias="THROTTLE_SHORT_CIRCUIT")

    # Relay preflight: "probe" reads a small prefix and closes it, "prime" holds
    # back the first chunk of the real stream.
    preflight_mode: Literal["probe", "prime"] = Field(default="probe", alias="PREFLIGHT_MODE")
    probe_bytes: int = Field(default=1024, ge=1, alias="PROBE_BYTES")
    probe_timeout: float = Field(default=5.0, gt=0, alias="PROBE_TIMEOUT")
    stream_chunk_size: int = Field(default=64 * 1024, ge=1, alias="STREAM_CHUNK_SIZE")

    # Metadata retry policy
    retry_max_attempts: int = Field(default=5, ge=1, alias="RETRY_MAX_ATTEMPTS")
    retry_base_delay: float = Field(default=2.0, ge=0, alias="RETRY_BASE_DELAY")
    retry_jitter: float = Field(default=1.0, ge=0, alias="RETRY_JITTER")

    model_config: SettingsConfigDict = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


def _resolve_env_file() -> str | None:
    # 1) Explicit override
    explicit = os.getenv("REELVAULT_ENV_FILE")
    if explicit and Path(explicit).is_file():
        return explicit

    # 2) CWD .env
    cwd_env = Path.cwd() / ".env"
    if cwd_env.is_file():
        return str(cwd_env)

    # 3) Walk up from this file to find nearest .env
    here = Path(__file__).resolve()
    for parent in here.parents:
        candidate = parent / ".env"
        if candidate.is_file():
            return str(candidate)
    return None


# Global settings instance (load from best-effort .env discovery)
_env_file = _resolve_env_file()
settings = Settings(_env_file=_env_file) if _env_file else Settings()  # type: ignore[call-arg]
