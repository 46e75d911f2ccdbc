"""
Unit tests for the settings layer.

Settings are loaded from environment variables only (`_env_file=None`), so a
developer's local .env never leaks into the assertions.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from cert_issuer.config import AppSettings, DatabaseSettings, IssuerSettings, StoreBackend


@pytest.fixture()
def issuer_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ISSUER__CERTIFICATE_PATH", "/etc/pki/intermediate.crt")
    monkeypatch.setenv("ISSUER__PRIVATE_KEY_PATH", "/etc/pki/intermediate.key")
    monkeypatch.setenv("ISSUER__CHAIN_PATH", "/etc/pki/ca-chain.pem")


def _load() -> AppSettings:
    return AppSettings(_env_file=None)  # type: ignore[call-arg]


class TestAppSettings:
    def test_defaults(self, issuer_env: None) -> None:
        settings = _load()

        assert settings.store_backend is StoreBackend.MEMORY
        assert settings.database is None
        assert settings.auto_approve is False
        assert settings.log_level == "INFO"
        assert settings.issuer.certificate_path == Path("/etc/pki/intermediate.crt")
        assert settings.issuer.validity_days == 365
        assert settings.issuer.root_certificate_path is None

    def test_issuer_is_required(self) -> None:
        with pytest.raises(ValidationError):
            _load()

    def test_log_level_is_normalized(
        self, issuer_env: None, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LOG_LEVEL", " debug ")

        assert _load().log_level == "DEBUG"

    def test_auto_approve_from_env(self, issuer_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AUTO_APPROVE", "true")

        assert _load().auto_approve is True

    def test_postgres_requires_database(
        self, issuer_env: None, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """
        GIVEN STORE_BACKEND=postgres and no DATABASE__* variables
        WHEN settings are loaded
        THEN validation fails naming the missing configuration.
        """
        monkeypatch.setenv("STORE_BACKEND", "postgres")

        with pytest.raises(ValidationError, match="requires DATABASE__DSN"):
            _load()

    def test_postgres_with_dsn(self, issuer_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORE_BACKEND", "postgres")
        monkeypatch.setenv("DATABASE__DSN", "postgresql://u:p@db:5432/certs")

        settings = _load()

        assert settings.store_backend is StoreBackend.POSTGRES
        assert settings.database is not None
        assert settings.database.get_dsn() == "postgresql://u:p@db:5432/certs"

    def test_unknown_backend(self, issuer_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORE_BACKEND", "sqlite")

        with pytest.raises(ValidationError):
            _load()


class TestDatabaseSettings:
    def test_dsn_built_from_components(self) -> None:
        settings = DatabaseSettings(
            host="db", port=5433, name="certs", username="issuer", password="s3cret"
        )

        assert settings.get_dsn() == "postgresql://issuer:s3cret@db:5433/certs"

    def test_explicit_dsn_wins(self) -> None:
        settings = DatabaseSettings(dsn="postgresql://a:b@c/d", host="ignored")

        assert settings.get_dsn() == "postgresql://a:b@c/d"

    def test_missing_components_are_listed(self) -> None:
        with pytest.raises(ValidationError, match="DATABASE__PASSWORD"):
            DatabaseSettings(host="db", name="certs", username="issuer")

    def test_password_hidden_in_repr(self) -> None:
        settings = DatabaseSettings(host="db", name="certs", username="issuer", password="s3cret")

        assert "s3cret" not in repr(settings)


class TestIssuerSettings:
    def _issuer(self, **overrides: object) -> IssuerSettings:
        values: dict[str, object] = {
            "certificate_path": "ca.crt",
            "private_key_path": "ca.key",
            "chain_path": "chain.pem",
        }
        values.update(overrides)
        return IssuerSettings(**values)  # type: ignore[arg-type]

    @pytest.mark.parametrize("days", [0, 826])
    def test_validity_bounds(self, days: int) -> None:
        with pytest.raises(ValidationError):
            self._issuer(validity_days=days)

    def test_password_bytes(self) -> None:
        assert self._issuer(private_key_password="pässword").password_bytes() == (
            "pässword".encode()
        )

    def test_no_password(self) -> None:
        assert self._issuer().password_bytes() is None
