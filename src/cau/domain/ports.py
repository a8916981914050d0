"""
Ports — Protocol-based interfaces for infrastructure adapters.

These define WHAT the sync engine needs (contracts) without specifying
HOW it's done (implementation). Following hexagonal architecture:

  Domain ← Ports (protocols) ← Adapters (implementations)

Each port is a Protocol (structural typing) so adapters satisfy
the contract simply by implementing the methods — no inheritance.

Store layout:
  CertificateStore.within_session(work) → work(StoreSession) (exclusive for one invocation)
    StoreSession.sources → SourceTable       (key: id)
    StoreSession.certs   → CertificateTable  (key: dn, unique slug)
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, TypeVar, runtime_checkable

from cau.domain.models import CertificateRecord, DecodedCertificate, Source
from cau.result import Result

T = TypeVar("T")


@runtime_checkable
class BundleFetcher(Protocol):
    """
    Port: fetch the text of a certificate bundle.

    Locators: http(s):// URLs, local paths, file:// URLs, and "-" for stdin.
    Timeouts and retries are the adapter's business; any failure comes back
    as Result.failure(EXTERNAL_SERVICE_ERROR, ...).
    """

    def fetch(self, locator: str) -> Result[str]: ...

    def list_bundles(self, directory: str) -> Result[list[str]]:
        """Paths of the regular files directly inside `directory`, sorted by name."""
        ...


@runtime_checkable
class CertificateDecoder(Protocol):
    """
    Port: decode one canonical PEM block into subject attributes + validity window.

    Structurally malformed input → Result.failure(VALIDATION_ERROR, ...).
    """

    def decode(self, pem: str) -> Result[DecodedCertificate]: ...


@runtime_checkable
class SourceTable(Protocol):
    """Port: the `source` table, keyed by id."""

    def upsert(self, source: Source) -> Result[Source]: ...

    def find_all(self) -> Result[list[Source]]:
        """All sources ordered by id."""
        ...

    def find_one(self, source_id: str) -> Result[Source]:
        """The source with this id, or Result.failure(NOT_FOUND, ...)."""
        ...

    def delete(self, source_id: str) -> Result[str]: ...

    def clear(self) -> Result[int]: ...


@runtime_checkable
class CertificateTable(Protocol):
    """
    Port: the `cert` table, keyed by dn.

    upsert() is atomic per record: match by dn, overwrite every other column,
    or insert when the dn is new.
    """

    def upsert(self, record: CertificateRecord) -> Result[CertificateRecord]: ...

    def find_all(self, url: str | None = None) -> Result[list[CertificateRecord]]:
        """All certificates (optionally only those from one origin url) ordered by dn."""
        ...

    def find_one(self, dn: str) -> Result[CertificateRecord]: ...

    def delete(self, dn: str) -> Result[str]: ...

    def clear(self) -> Result[int]: ...


@runtime_checkable
class StoreSession(Protocol):
    """One exclusively owned store connection with its two tables."""

    @property
    def sources(self) -> SourceTable: ...

    @property
    def certs(self) -> CertificateTable: ...


@runtime_checkable
class CertificateStore(Protocol):
    """
    Port: run work inside one exclusive store session.

    within_session() acquires the session, hands it to `work`, and releases it
    on every exit path, including failure. Acquisition failures (unreachable
    store, another pass holding it) surface as Result.failure(DATABASE_ERROR, ...)
    and `work` is never called.
    """

    def ensure_schema(self) -> Result[bool]: ...

    def within_session(self, work: Callable[[StoreSession], Result[T]]) -> Result[T]: ...


@runtime_checkable
class ExportDestination(Protocol):
    """
    Port: where exported text ends up.

    All failures → Result.failure(DESTINATION_ERROR, ...).
    """

    def write_bundle(self, target: str, content: str) -> Result[str]: ...

    def reset_directory(self, directory: str) -> Result[str]:
        """Create the directory if needed and remove every file it holds."""
        ...

    def write_file(self, directory: str, filename: str, content: str) -> Result[str]: ...

    def read_text(self, path: str) -> Result[str]:
        """Current content of a file, or "" when it does not exist yet."""
        ...

    def write_text(self, path: str, content: str) -> Result[str]: ...
