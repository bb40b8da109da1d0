"""Application settings loaded from environment variables.

Values are read from (highest priority first):
1. OS environment variables
2. the file named by MATZIPLOG_ENV_FILE, or ./.env
3. defaults below
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import SecretStr, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _resolve_env_file_path() -> Path | None:
    env_file_path = os.environ.get("MATZIPLOG_ENV_FILE")
    if env_file_path:
        path = Path(env_file_path)
        if path.exists():
            return path

    local_env = Path.cwd() / ".env"
    if local_env.exists():
        return local_env

    return None


class Settings(BaseSettings):
    """Runtime configuration for the API process."""

    model_config = SettingsConfigDict(
        env_file=_resolve_env_file_path(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Security (MUST be set)
    jwt_secret: SecretStr

    # Application
    app_name: str = "Matzip-Log"
    debug: bool = False
    port: int = 3000

    # Database
    mongo_uri: str = "mongodb://localhost:27017"
    database_name: str = "matziplog"

    # CORS, comma separated
    front_origin: str = ""

    @field_validator("front_origin", mode="before")
    @classmethod
    def _validate_front_origin(cls, v: Any) -> str:
        if isinstance(v, list):
            return ",".join(v)
        return str(v) if v else ""

    # JWT
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 7

    # Password hashing
    bcrypt_rounds: int = 10

    # Image storage
    storage_backend: Literal["local", "s3"] = "local"
    upload_dir: str = "uploads"
    public_base_url: str = "http://localhost:3000"
    aws_region: str = "ap-northeast-2"
    s3_bucket_name: str = ""
    aws_access_key_id: SecretStr | None = None
    aws_secret_access_key: SecretStr | None = None
    max_upload_mb: int = 5

    # Bootstrap administrator, created on startup when no admin exists
    admin_email: str | None = None
    admin_password: SecretStr | None = None

    log_level: str = "INFO"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.front_origin.split(",") if o.strip()]

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings.

    JWT_SECRET must be provided via the environment or .env file.
    """
    return Settings()  # type: ignore[call-arg]


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for tests)."""
    get_settings.cache_clear()
