"""
PostgreSQL store adapter — `source` and `cert` tables.

Adapter layer — implements the CertificateStore / StoreSession / SourceTable /
CertificateTable ports using psycopg (v3) with parameterized queries.

Session model:
  1. connect (autocommit: every statement is its own atomic transaction)
  2. pg_try_advisory_lock(CAU_LOCK_KEY) — one pass at a time per database
  3. run the caller's work against the session tables
  4. close the connection (releases the advisory lock) on every exit path

Upserts are single `INSERT ... ON CONFLICT DO UPDATE` statements, so an
interrupted pass never leaves a half-written record behind.

No ORM — raw parameterized SQL, rows mapped straight onto the domain
dataclasses with psycopg's class_row factory.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import psycopg
import structlog
from psycopg.rows import class_row

from cau.domain.models import CertificateRecord, Source
from cau.result import ErrorCode, Result

log = structlog.get_logger()

T = TypeVar("T")

# Arbitrary but fixed: identifies cau's advisory lock among other applications'.
CAU_LOCK_KEY = 0x636175

DDL = """
CREATE TABLE IF NOT EXISTS source (
    id          TEXT PRIMARY KEY,
    url         TEXT NOT NULL,
    updated     TIMESTAMP WITHOUT TIME ZONE NOT NULL
);

CREATE TABLE IF NOT EXISTS cert (
    dn          TEXT PRIMARY KEY,
    slug        TEXT NOT NULL UNIQUE,
    valid_from  TIMESTAMP WITHOUT TIME ZONE NOT NULL,
    valid_to    TIMESTAMP WITHOUT TIME ZONE NOT NULL,
    updated     TIMESTAMP WITHOUT TIME ZONE NOT NULL,
    pem         TEXT NOT NULL,
    url         TEXT NOT NULL
);
"""

_UPSERT_SOURCE = """
INSERT INTO source (id, url, updated) VALUES (%s, %s, %s)
ON CONFLICT (id) DO UPDATE SET url = EXCLUDED.url, updated = EXCLUDED.updated
"""

_UPSERT_CERT = """
INSERT INTO cert (dn, slug, valid_from, valid_to, updated, pem, url)
VALUES (%s, %s, %s, %s, %s, %s, %s)
ON CONFLICT (dn) DO UPDATE SET
    slug = EXCLUDED.slug,
    valid_from = EXCLUDED.valid_from,
    valid_to = EXCLUDED.valid_to,
    updated = EXCLUDED.updated,
    pem = EXCLUDED.pem,
    url = EXCLUDED.url
"""

_SELECT_SOURCES = "SELECT id, url, updated FROM source"
_SELECT_CERTS = "SELECT dn, slug, valid_from, valid_to, updated, pem, url FROM cert"


def _database_call(computation: Callable[[], T], message: str) -> Result[T]:
    return Result.from_computation(computation, ErrorCode.DATABASE_ERROR, message)


class PsycopgSourceTable:
    """The `source` table. Implements the SourceTable port."""

    def __init__(self, conn: psycopg.Connection[Any]) -> None:
        self._conn = conn

    def upsert(self, source: Source) -> Result[Source]:
        def _upsert() -> Source:
            self._conn.execute(_UPSERT_SOURCE, (source.id, source.url, source.updated))
            log.info("store.source_upserted", id=source.id, url=source.url)
            return source

        return _database_call(_upsert, f"Failed to store source {source.id!r}")

    def find_all(self) -> Result[list[Source]]:
        def _find_all() -> list[Source]:
            with self._conn.cursor(row_factory=class_row(Source)) as cur:
                return cur.execute(f"{_SELECT_SOURCES} ORDER BY id").fetchall()

        return _database_call(_find_all, "Failed to read sources")

    def find_one(self, source_id: str) -> Result[Source]:
        def _find_one() -> Result[Source]:
            with self._conn.cursor(row_factory=class_row(Source)) as cur:
                found = cur.execute(f"{_SELECT_SOURCES} WHERE id = %s", (source_id,)).fetchone()
            return Result.from_optional(found, f'no source found with id "{source_id}"')

        return _database_call(_find_one, f"Failed to read source {source_id!r}").flat_map(lambda found: found)

    def delete(self, source_id: str) -> Result[str]:
        def _delete() -> str:
            self._conn.execute("DELETE FROM source WHERE id = %s", (source_id,))
            log.info("store.source_deleted", id=source_id)
            return source_id

        return _database_call(_delete, f"Failed to delete source {source_id!r}")

    def clear(self) -> Result[int]:
        def _clear() -> int:
            count = self._conn.execute("DELETE FROM source").rowcount
            log.info("store.sources_cleared", count=count)
            return count

        return _database_call(_clear, "Failed to clear sources")


class PsycopgCertificateTable:
    """The `cert` table. Implements the CertificateTable port."""

    def __init__(self, conn: psycopg.Connection[Any]) -> None:
        self._conn = conn

    def upsert(self, record: CertificateRecord) -> Result[CertificateRecord]:
        def _upsert() -> CertificateRecord:
            self._conn.execute(
                _UPSERT_CERT,
                (
                    record.dn,
                    record.slug,
                    record.valid_from,
                    record.valid_to,
                    record.updated,
                    record.pem,
                    record.url,
                ),
            )
            log.debug("store.cert_upserted", dn=record.dn, url=record.url)
            return record

        return _database_call(_upsert, f"Failed to store certificate {record.dn!r}")

    def find_all(self, url: str | None = None) -> Result[list[CertificateRecord]]:
        def _find_all() -> list[CertificateRecord]:
            with self._conn.cursor(row_factory=class_row(CertificateRecord)) as cur:
                if url is None:
                    return cur.execute(f"{_SELECT_CERTS} ORDER BY dn").fetchall()
                return cur.execute(f"{_SELECT_CERTS} WHERE url = %s ORDER BY dn", (url,)).fetchall()

        return _database_call(_find_all, "Failed to read certificates")

    def find_one(self, dn: str) -> Result[CertificateRecord]:
        def _find_one() -> Result[CertificateRecord]:
            with self._conn.cursor(row_factory=class_row(CertificateRecord)) as cur:
                found = cur.execute(f"{_SELECT_CERTS} WHERE dn = %s", (dn,)).fetchone()
            return Result.from_optional(found, f'no certificate found with dn "{dn}"')

        return _database_call(_find_one, f"Failed to read certificate {dn!r}").flat_map(lambda found: found)

    def delete(self, dn: str) -> Result[str]:
        def _delete() -> str:
            self._conn.execute("DELETE FROM cert WHERE dn = %s", (dn,))
            log.debug("store.cert_deleted", dn=dn)
            return dn

        return _database_call(_delete, f"Failed to delete certificate {dn!r}")

    def clear(self) -> Result[int]:
        def _clear() -> int:
            count = self._conn.execute("DELETE FROM cert").rowcount
            log.info("store.certs_cleared", count=count)
            return count

        return _database_call(_clear, "Failed to clear certificates")


class PsycopgStoreSession:
    """Both tables over one exclusively held connection. Implements the StoreSession port."""

    def __init__(self, conn: psycopg.Connection[Any]) -> None:
        self._sources = PsycopgSourceTable(conn)
        self._certs = PsycopgCertificateTable(conn)

    @property
    def sources(self) -> PsycopgSourceTable:
        return self._sources

    @property
    def certs(self) -> PsycopgCertificateTable:
        return self._certs


class PsycopgCertificateStore:
    """
    Open exclusive sessions on the PostgreSQL certificate store.

    Implements the CertificateStore port.
    """

    def __init__(self, dsn: str, lock_key: int = CAU_LOCK_KEY) -> None:
        self._dsn = dsn
        self._lock_key = lock_key

    def ensure_schema(self) -> Result[bool]:
        """Create the `source` and `cert` tables if they do not exist yet."""

        def _create() -> bool:
            with psycopg.connect(self._dsn, autocommit=True) as conn:
                conn.execute(DDL)
            log.info("store.schema_ready")
            return True

        return _database_call(_create, "Failed to create store schema")

    def within_session(self, work: Callable[[PsycopgStoreSession], Result[T]]) -> Result[T]:
        """
        Run `work` with an exclusive session; the connection is always closed afterwards.

        Fails with DATABASE_ERROR without calling `work` when the store is
        unreachable or another pass holds the advisory lock.
        """
        return _database_call(
            lambda: psycopg.connect(self._dsn, autocommit=True),
            "Cannot connect to certificate store",
        ).flat_map(lambda conn: self._run_locked(conn, work))

    def _run_locked(
        self,
        conn: psycopg.Connection[Any],
        work: Callable[[PsycopgStoreSession], Result[T]],
    ) -> Result[T]:
        with conn:
            return (
                _database_call(lambda: self._try_lock(conn), "Cannot lock certificate store")
                .ensure(
                    lambda acquired: acquired,
                    ErrorCode.DATABASE_ERROR,
                    "certificate store is in use by another cau process",
                )
                .peek(lambda _: log.debug("store.session_opened"))
                .flat_map(lambda _: work(PsycopgStoreSession(conn)))
            )

    def _try_lock(self, conn: psycopg.Connection[Any]) -> bool:
        row = conn.execute("SELECT pg_try_advisory_lock(%s)", (self._lock_key,)).fetchone()
        return bool(row and row[0])
