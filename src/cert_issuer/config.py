"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables (12-factor app)
  - Fall back to .env file
  - Validate types and constraints at startup
  - Keep the issuer key password and database credentials out of logs

Only AppSettings is a BaseSettings instance. Sub-settings are plain BaseModel
classes populated via env_nested_delimiter="__", so ISSUER__CERTIFICATE_PATH
maps to issuer.certificate_path, DATABASE__HOST maps to database.host, etc.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class StoreBackend(StrEnum):
    MEMORY = "memory"
    POSTGRES = "postgres"


class DatabaseSettings(BaseModel):
    """
    PostgreSQL connection configuration.

    Accepts either a full connection string via DATABASE__DSN or individual
    components (DATABASE__HOST, DATABASE__PORT, DATABASE__NAME,
    DATABASE__USERNAME, DATABASE__PASSWORD). The DSN wins when both are set.
    """

    dsn: SecretStr | None = Field(
        default=None,
        description="Full PostgreSQL connection string (overrides individual fields)",
    )

    host: str | None = Field(default=None, description="PostgreSQL host")
    port: int = Field(default=5432, ge=1, le=65535, description="PostgreSQL port")
    name: str | None = Field(default=None, description="PostgreSQL database name")
    username: str | None = Field(default=None, description="PostgreSQL username")
    password: SecretStr | None = Field(default=None, description="PostgreSQL password")

    @model_validator(mode="after")
    def resolve_dsn(self) -> DatabaseSettings:
        """Build `dsn` from the components when no full DSN was given."""
        if self.dsn is not None:
            return self
        missing = [f for f, v in [
            ("DATABASE__HOST", self.host),
            ("DATABASE__NAME", self.name),
            ("DATABASE__USERNAME", self.username),
            ("DATABASE__PASSWORD", self.password),
        ] if not v]
        if missing:
            raise ValueError("Set DATABASE__DSN or provide all of: " + ", ".join(missing))
        dsn_value = (
            f"postgresql://{self.username}:{self.password.get_secret_value()}"  # type: ignore[union-attr]
            f"@{self.host}:{self.port}/{self.name}"
        )
        object.__setattr__(self, "dsn", SecretStr(dsn_value))
        return self

    def get_dsn(self) -> str:
        assert self.dsn is not None  # guaranteed by resolve_dsn validator
        return self.dsn.get_secret_value()


class IssuerSettings(BaseModel):
    """
    Issuing authority material.

    The private key and certificate belong to the signing CA (normally the
    intermediate). `chain_path` is the published chain appended to every
    issued certificate (intermediate, then root). `root_certificate_path`
    is only needed when the root is not the last certificate of that chain.
    """

    certificate_path: Path = Field(description="Issuer certificate (PEM)")
    private_key_path: Path = Field(description="Issuer private key (PEM)")
    private_key_password: SecretStr | None = Field(
        default=None, description="Password of the issuer private key, if encrypted"
    )
    chain_path: Path = Field(description="Published CA chain (PEM)")
    root_certificate_path: Path | None = Field(default=None, description="Root CA certificate")
    validity_days: int = Field(default=365, ge=1, le=825)

    def password_bytes(self) -> bytes | None:
        if self.private_key_password is None:
            return None
        return self.private_key_password.get_secret_value().encode("utf-8")


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values

    `database` is optional unless STORE_BACKEND=postgres.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    store_backend: StoreBackend = Field(default=StoreBackend.MEMORY)
    database: DatabaseSettings | None = None
    issuer: IssuerSettings

    auto_approve: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.strip().upper()

    @model_validator(mode="after")
    def require_database_for_postgres(self) -> AppSettings:
        if self.store_backend is StoreBackend.POSTGRES and self.database is None:
            raise ValueError(
                "STORE_BACKEND=postgres requires DATABASE__DSN or DATABASE__* settings"
            )
        return self
