"""
Integration test fixtures — PostgreSQL testcontainer and schema setup.

Provides a real PostgreSQL instance for each test session via testcontainers.
The schema is created by the store adapter itself (ensure_schema), so the
tests exercise the production DDL. Each test gets clean tables via truncation.
"""

from __future__ import annotations

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

from cau.adapters.repository import PsycopgCertificateStore

TRUNCATE_ALL = """
TRUNCATE cert, source;
"""


def connection_url(container: PostgresContainer) -> str:
    """psycopg-compatible DSN for a running container."""
    return container.get_connection_url().replace("postgresql+psycopg2", "postgresql")


@pytest.fixture(scope="session")
def postgres_container() -> PostgresContainer:
    """Start a PostgreSQL container for the entire test session and create the schema."""
    with PostgresContainer("postgres:16-alpine") as pg:
        result = PsycopgCertificateStore(connection_url(pg)).ensure_schema()
        assert result.is_success(), result.error()
        yield pg


@pytest.fixture()
def dsn(postgres_container: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN and truncate all tables before each test."""
    url = connection_url(postgres_container)
    with psycopg.connect(url) as conn:
        conn.execute(TRUNCATE_ALL)
        conn.commit()
    return url
