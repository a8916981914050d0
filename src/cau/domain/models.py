"""
Domain models — immutable data structures for sources, certificates and reports.

These are pure value objects with no behavior beyond computed properties.
They map 1:1 onto the two store tables (`source`, `cert`) and onto the
reports returned by the reconciliation and export use cases.

All models are frozen dataclasses (immutable) following functional principles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Source:
    """
    A declared certificate bundle origin.

    Maps to the `source` table. `url` is any locator the BundleFetcher
    understands: an http(s) URL, a local path, a file:// URL or "-" (stdin).
    """

    id: str
    url: str
    updated: datetime


@dataclass(frozen=True, slots=True)
class CertificateRecord:
    """
    One CA certificate as persisted in the `cert` table.

    `dn` is the primary key and the sole merge identity; `slug` is a
    filesystem-safe derivative that must be unique as well. `pem` always
    holds exactly one canonical BEGIN/END CERTIFICATE pair.
    """

    dn: str
    slug: str
    valid_from: datetime
    valid_to: datetime
    updated: datetime
    pem: str = field(repr=False)
    url: str


@dataclass(frozen=True, slots=True)
class SubjectAttributes:
    """The subject name fields used for identity derivation. Missing fields are None."""

    common_name: str | None = None
    organizational_unit: str | None = None
    organization: str | None = None
    locality: str | None = None
    country: str | None = None


@dataclass(frozen=True, slots=True)
class DecodedCertificate:
    """What the decoder extracts from one PEM block."""

    subject: SubjectAttributes
    valid_from: datetime
    valid_to: datetime


@dataclass(frozen=True, slots=True)
class CertificateIdentity:
    """Distinguished name (store key) plus its slug."""

    dn: str
    slug: str


@dataclass(frozen=True, slots=True)
class DnCollision:
    """
    Two origins in the same pass delivered different PEM bytes for one DN.

    The later origin wins; the collision is only reported.
    """

    dn: str
    previous_url: str
    url: str


@dataclass(frozen=True, slots=True)
class ReconcileReport:
    """Outcome of one successful reconciliation pass."""

    origins: int = 0
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    retained: int = 0
    collisions: tuple[DnCollision, ...] = ()

    @property
    def total_touched(self) -> int:
        return self.inserted + self.updated


@dataclass(frozen=True, slots=True)
class ExportOptions:
    """
    What one export produces: a bundle file (`cert_file`) or a directory (`cert_dir`).

    Exactly one of the two must be set. The manifest fields only apply to
    directory exports.
    """

    cert_file: str = ""
    cert_dir: str = ""
    cert_filenames: str = "uuid"
    manifest_file: str = ""
    manifest_dn: bool = False
    manifest_prefix: str = ""
    exec_command: str = ""


@dataclass(frozen=True, slots=True)
class ExportReport:
    """Outcome of one export: how many certificates went where."""

    certificates: int
    target: str
    manifest: str | None = None
