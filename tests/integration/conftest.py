"""
Integration test fixtures — PostgreSQL testcontainer and schema setup.

Provides a real PostgreSQL instance for each test session via testcontainers.
The schema is created by the adapter itself (PsycopgRequestStore.ensure_schema),
so tests exercise the production DDL. Each test gets a clean database via
truncation.
"""

from __future__ import annotations

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

from cert_issuer.adapters.repository import PsycopgRequestStore

TRUNCATE_ALL = """
TRUNCATE issued_certificates, certificate_requests CASCADE;
"""


def psycopg_dsn(container: PostgresContainer) -> str:
    return container.get_connection_url().replace("postgresql+psycopg2", "postgresql")


@pytest.fixture(scope="session")
def postgres_container() -> PostgresContainer:
    """Start a PostgreSQL container for the entire test session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        PsycopgRequestStore(psycopg_dsn(pg)).ensure_schema().value()
        yield pg


@pytest.fixture()
def dsn(postgres_container: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN and truncate all tables before each test."""
    connection_url = psycopg_dsn(postgres_container)
    with psycopg.connect(connection_url) as conn:
        conn.execute(TRUNCATE_ALL)
        conn.commit()
    return connection_url


@pytest.fixture()
def store(dsn: str) -> PsycopgRequestStore:
    return PsycopgRequestStore(dsn)
