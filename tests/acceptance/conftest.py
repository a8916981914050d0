"""
Acceptance test fixtures — PostgreSQL testcontainer for end-to-end tests.

Reuses the same container pattern as the integration tests but scoped for acceptance.
"""

from __future__ import annotations

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

from tests.integration.conftest import TRUNCATE_ALL, connection_url


@pytest.fixture(scope="session")
def acceptance_pg() -> PostgresContainer:
    """Start a PostgreSQL container for the acceptance test session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        yield pg


@pytest.fixture()
def acceptance_dsn(acceptance_pg: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN with empty tables (when they exist yet)."""
    url = connection_url(acceptance_pg)
    with psycopg.connect(url) as conn:
        exists = conn.execute("SELECT to_regclass('public.cert') IS NOT NULL").fetchone()
        if exists and exists[0]:
            conn.execute(TRUNCATE_ALL)
        conn.commit()
    return url
