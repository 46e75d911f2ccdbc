"""
Acceptance test fixtures — full engine wiring with the real crypto adapter.

`service` runs on the in-memory store; `pg_service` runs on a PostgreSQL
testcontainer with the production schema.
"""

from __future__ import annotations

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

from cert_issuer.adapters.crypto import CryptographyBackend
from cert_issuer.adapters.memory_store import InMemoryRequestStore
from cert_issuer.adapters.repository import PsycopgRequestStore
from cert_issuer.domain.models import IssuerMaterial
from cert_issuer.lifecycle import IssuanceService
from tests.integration.conftest import TRUNCATE_ALL, psycopg_dsn


@pytest.fixture()
def service(issuer_material: IssuerMaterial) -> IssuanceService:
    return IssuanceService(
        store=InMemoryRequestStore(),
        backend=CryptographyBackend(),
        issuer=issuer_material,
        validity_days=90,
    )


@pytest.fixture(scope="session")
def acceptance_pg() -> PostgresContainer:
    """Start a PostgreSQL container for the acceptance test session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        PsycopgRequestStore(psycopg_dsn(pg)).ensure_schema().value()
        yield pg


@pytest.fixture()
def acceptance_dsn(acceptance_pg: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN and truncate all tables before each test."""
    connection_url = psycopg_dsn(acceptance_pg)
    with psycopg.connect(connection_url) as conn:
        conn.execute(TRUNCATE_ALL)
        conn.commit()
    return connection_url


@pytest.fixture()
def pg_service(acceptance_dsn: str, issuer_material: IssuerMaterial) -> IssuanceService:
    return IssuanceService(
        store=PsycopgRequestStore(acceptance_dsn),
        backend=CryptographyBackend(),
        issuer=issuer_material,
        validity_days=90,
    )
