"""
Store reconciler — merge freshly fetched bundles into the certificate store.

One pass:

  snapshot stored DNs (candidate-obsolete set)
    → for each origin, in order:
        fetch → scan → decode → derive identity → check slug → upsert
    → obsolescence check (safety threshold)
      → delete whatever was not refreshed

Upserts are committed one by one and are never rolled back: a failing
origin or certificate ends the pass, but everything upserted before it
stays. Running the pass again is always safe. Only the deletion step is
guarded: if more than `deletion_threshold` of the records stored before the
pass would disappear, the pass fails without deleting anything unless it
was forced.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from cau.domain.identity import derive_identity
from cau.domain.models import (
    CertificateIdentity,
    CertificateRecord,
    DecodedCertificate,
    DnCollision,
    ReconcileReport,
)
from cau.domain.ports import BundleFetcher, CertificateDecoder, StoreSession
from cau.domain.scanner import scan_pem_blocks
from cau.result import ErrorCode, Result

log = structlog.get_logger()

DEFAULT_DELETION_THRESHOLD = 0.20


def utc_now() -> datetime:
    """Naive UTC wall-clock time at second precision, the store's timestamp format."""
    return datetime.now(UTC).replace(tzinfo=None, microsecond=0)


@dataclass(slots=True)
class _PassState:
    """Bookkeeping for one reconciliation pass."""

    started: datetime
    before: dict[str, CertificateRecord]
    candidates: set[str]
    slugs: dict[str, str]
    touched: dict[str, CertificateRecord] = field(default_factory=dict)
    origins: int = 0
    inserted: int = 0
    updated: int = 0
    collisions: list[DnCollision] = field(default_factory=list)

    @classmethod
    def from_snapshot(cls, records: list[CertificateRecord], started: datetime) -> _PassState:
        return cls(
            started=started,
            before={record.dn: record for record in records},
            candidates={record.dn for record in records},
            slugs={record.slug: record.dn for record in records},
        )

    def claim_slug(self, record: CertificateRecord) -> Result[CertificateRecord]:
        """Fail when the slug already belongs to a different DN."""
        owner = self.slugs.get(record.slug)
        if owner is not None and owner != record.dn:
            return Result.failure(
                ErrorCode.VALIDATION_ERROR,
                f"slug {record.slug!r} of {record.dn!r} collides with {owner!r}",
            )
        return Result.success(record)

    def record_upsert(self, record: CertificateRecord) -> None:
        previous = self.touched.get(record.dn)
        if previous is not None and previous.pem != record.pem and previous.url != record.url:
            collision = DnCollision(dn=record.dn, previous_url=previous.url, url=record.url)
            self.collisions.append(collision)
            log.warning(
                "reconcile.dn_collision",
                dn=record.dn,
                previous_url=previous.url,
                url=record.url,
            )
        if previous is None:
            if record.dn in self.before:
                self.updated += 1
            else:
                self.inserted += 1
        self.touched[record.dn] = record
        self.slugs[record.slug] = record.dn
        self.candidates.discard(record.dn)

    def report(self, deleted: int) -> ReconcileReport:
        return ReconcileReport(
            origins=self.origins,
            inserted=self.inserted,
            updated=self.updated,
            deleted=deleted,
            retained=len(self.before) - len(self.candidates),
            collisions=tuple(self.collisions),
        )


def _to_record(
    identity: CertificateIdentity,
    decoded: DecodedCertificate,
    pem: str,
    url: str,
    updated: datetime,
) -> CertificateRecord:
    return CertificateRecord(
        dn=identity.dn,
        slug=identity.slug,
        valid_from=decoded.valid_from,
        valid_to=decoded.valid_to,
        updated=updated,
        pem=pem,
        url=url,
    )


class Reconciler:
    """
    Run reconciliation passes against one exclusively held store session.

    `clock` supplies the pass-start time stamped on every touched record.
    """

    def __init__(
        self,
        session: StoreSession,
        fetcher: BundleFetcher,
        decoder: CertificateDecoder,
        clock: Callable[[], datetime] = utc_now,
        deletion_threshold: float = DEFAULT_DELETION_THRESHOLD,
    ) -> None:
        self._session = session
        self._fetcher = fetcher
        self._decoder = decoder
        self._clock = clock
        self._deletion_threshold = deletion_threshold

    def reconcile(self, origins: Sequence[str], force: bool = False) -> Result[ReconcileReport]:
        """
        Import every origin in order, then sweep records that were not refreshed.

        Returns the pass report, or the first failure. Upserts made before a
        failure remain committed.
        """
        started = self._clock()
        log.info("reconcile.started", origins=len(origins), force=force)
        return (
            self._session.certs.find_all()
            .map(lambda records: _PassState.from_snapshot(records, started))
            .flat_map(lambda state: self._import_origins(origins, state))
            .flat_map(lambda state: self._sweep(state, force))
            .peek(
                lambda report: log.info(
                    "reconcile.completed",
                    origins=report.origins,
                    inserted=report.inserted,
                    updated=report.updated,
                    deleted=report.deleted,
                    collisions=len(report.collisions),
                )
            )
            .peek_failure(lambda err: log.error("reconcile.failed", failure=str(err)))
        )

    def _import_origins(self, origins: Sequence[str], state: _PassState) -> Result[_PassState]:
        for origin in origins:
            result = (
                self._fetcher.fetch(origin)
                .flat_map(lambda bundle: self._import_bundle(origin, bundle, state))
                .map_failure(lambda err: err.with_context(origin))
            )
            if result.is_failure():
                return result
            state.origins += 1
        return Result.success(state)

    def _import_bundle(self, origin: str, bundle: str, state: _PassState) -> Result[_PassState]:
        return (
            Result.all_of(self._import_pem(origin, pem, state) for pem in scan_pem_blocks(bundle))
            .peek(lambda records: log.info("reconcile.origin_imported", url=origin, certificates=len(records)))
            .map(lambda _: state)
        )

    def _import_pem(self, origin: str, pem: str, state: _PassState) -> Result[CertificateRecord]:
        return (
            self._decoder.decode(pem)
            .flat_map(
                lambda decoded: derive_identity(decoded.subject).map(
                    lambda identity: _to_record(identity, decoded, pem, origin, state.started)
                )
            )
            .flat_map(state.claim_slug)
            .flat_map(self._session.certs.upsert)
            .peek(state.record_upsert)
        )

    def _sweep(self, state: _PassState, force: bool) -> Result[ReconcileReport]:
        obsolete = sorted(state.candidates)
        if not obsolete:
            return Result.success(state.report(deleted=0))

        ratio = len(obsolete) / len(state.before)
        if ratio > self._deletion_threshold and not force:
            log.warning(
                "reconcile.deletion_refused",
                obsolete=len(obsolete),
                stored=len(state.before),
                ratio=round(ratio, 3),
                threshold=self._deletion_threshold,
            )
            return Result.failure(
                ErrorCode.BUSINESS_RULE_ERROR,
                f"refusing to delete {len(obsolete)} of {len(state.before)} stored certificates "
                f"({ratio:.0%} exceeds the {self._deletion_threshold:.0%} safety threshold); "
                "force the import to delete them anyway",
            )

        return (
            Result.all_of(self._session.certs.delete(dn) for dn in obsolete)
            .peek(lambda deleted: log.info("reconcile.obsolete_deleted", count=len(deleted), dns=deleted))
            .map(lambda deleted: state.report(deleted=len(deleted)))
        )
