"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the transfer
sync, loading and validating environment variables at startup. Job and
facilitator tables are static code (see `jobs` and `facilitators`); only
credentials, endpoints and operational knobs come from the environment.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING, Literal

import httpx
from pydantic import Field, PrivateAttr, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from x402_transfer_sync.auth import GoogleCredentialsAuth
from x402_transfer_sync.models import Provider
from x402_transfer_sync.providers.bigquery import bigquery_query_url

if TYPE_CHECKING:
    from x402_transfer_sync.jobs import ChainSyncConfig

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL (or SQLite for local runs) connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v


class BitquerySettings(BaseSettings):
    """Bitquery GraphQL API settings."""

    model_config = SettingsConfigDict(env_prefix="BITQUERY_", extra="ignore")

    api_key: SecretStr | None = Field(
        default=None,
        alias="BITQUERY_API_KEY",
        description="Bearer token for the Bitquery APIs",
    )
    timeout_seconds: float = Field(
        default=120.0,
        alias="BITQUERY_TIMEOUT_SECONDS",
        ge=1.0,
        le=900.0,
        description="Per-request timeout (seconds)",
    )


class BigQuerySettings(BaseSettings):
    """BigQuery REST API settings."""

    model_config = SettingsConfigDict(env_prefix="BIGQUERY_", extra="ignore")

    project_id: str | None = Field(
        default=None,
        alias="BIGQUERY_PROJECT_ID",
        description="Project billed for queries",
    )
    access_token: SecretStr | None = Field(
        default=None,
        alias="BIGQUERY_ACCESS_TOKEN",
        description="Static OAuth2 access token; Application Default Credentials are used when unset",
    )
    timeout_seconds: float = Field(
        default=180.0,
        alias="BIGQUERY_TIMEOUT_SECONDS",
        ge=1.0,
        le=900.0,
        description="Per-request timeout (seconds)",
    )

    @field_validator("project_id")
    @classmethod
    def validate_project_id(cls, v: str | None) -> str | None:
        if v is not None and not v.replace("-", "").replace(":", "").replace(".", "").isalnum():
            raise ValueError("BIGQUERY_PROJECT_ID contains invalid characters")
        return v


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from x402_transfer_sync.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    bitquery: BitquerySettings = Field(
        default_factory=lambda: BitquerySettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    bigquery: BigQuerySettings = Field(
        default_factory=lambda: BigQuerySettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    _google_auth: GoogleCredentialsAuth | None = PrivateAttr(default=None)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def auth_for(self, provider: Provider) -> str | httpx.Auth:
        """Return the request credential for a provider.

        Bitquery uses its static API key. BigQuery uses BIGQUERY_ACCESS_TOKEN
        when set, otherwise Application Default Credentials that refresh
        themselves; those are loaded once per Settings instance.

        Raises:
            ValueError: If the credential is not configured.
        """
        if provider == Provider.BITQUERY:
            if self.bitquery.api_key is None:
                raise ValueError("BITQUERY_API_KEY is required for Bitquery jobs")
            return self.bitquery.api_key.get_secret_value()
        if self.bigquery.access_token is not None:
            return self.bigquery.access_token.get_secret_value()
        if self._google_auth is None:
            self._google_auth = GoogleCredentialsAuth.from_default()
        return self._google_auth

    def api_url_for(self, job: ChainSyncConfig) -> str:
        """Return the endpoint a job posts its queries to."""
        if job.api_url is not None:
            return job.api_url
        if job.provider == Provider.BIGQUERY:
            if not self.bigquery.project_id:
                raise ValueError("BIGQUERY_PROJECT_ID is required for BigQuery jobs")
            return bigquery_query_url(self.bigquery.project_id)
        raise ValueError(f"No API endpoint configured for job {job.job_id}")

    def timeout_for(self, provider: Provider) -> float:
        if provider == Provider.BITQUERY:
            return self.bitquery.timeout_seconds
        return self.bigquery.timeout_seconds

    def validate_requirements(self, job: ChainSyncConfig) -> None:
        """Fail before any I/O if a job's credentials or endpoint are missing."""
        self.api_url_for(job)
        self.auth_for(job.provider)

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "bitquery": {
                "api_key": "(set)" if self.bitquery.api_key else "(not set)",
                "timeout_seconds": str(self.bitquery.timeout_seconds),
            },
            "bigquery": {
                "project_id": self.bigquery.project_id or "(not set)",
                "access_token": "(set)" if self.bigquery.access_token else "(not set, using default credentials)",
                "timeout_seconds": str(self.bigquery.timeout_seconds),
            },
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
