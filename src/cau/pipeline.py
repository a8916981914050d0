"""
Pipeline — the use cases behind every command, wired from ports.

Domain orchestration only: all I/O is injected via ports (Protocol interfaces)
and every stage returns Result[T], chained with flat_map so the first failure
short-circuits the rest:

  run_import:  open session → resolve origins → Reconciler.reconcile
  run_export:  check target → open session → read certs
                 → render bundle | reset dir → write files → inject manifest
                 → optional post-export command
  run_sync:    run_import(all sources) → run_export(configured target)

Each use case holds the store session only as long as it touches the store.
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

import structlog

from cau.domain.export import filename_strategy, render_bundle, render_certificate
from cau.domain.manifest import inject_block, manifest_lines
from cau.domain.models import (
    CertificateRecord,
    ExportOptions,
    ExportReport,
    ReconcileReport,
    Source,
)
from cau.domain.ports import (
    BundleFetcher,
    CertificateDecoder,
    CertificateStore,
    ExportDestination,
    StoreSession,
)
from cau.domain.reconciler import DEFAULT_DELETION_THRESHOLD, Reconciler, utc_now
from cau.result import ErrorCode, Result

log = structlog.get_logger()

type Clock = Callable[[], datetime]
type CommandRunner = Callable[[str], int]

STANDARD_SOURCE_ID = "standard"


def run_shell_command(command: str) -> int:
    """Run `command` through the shell with inherited stdio and return its exit status."""
    return subprocess.run(command, shell=True, check=False).returncode  # noqa: S602


# ─────────────────────── Source management ───────────────────────


def init_store(
    store: CertificateStore,
    standard_url: str | None = None,
    clock: Clock = utc_now,
) -> Result[list[str]]:
    """
    Create the schema, drop every source and certificate, optionally add the standard source.

    Returns the ids of the sources present afterwards.
    """

    def _reset(session: StoreSession) -> Result[list[str]]:
        result = session.sources.clear().flat_map(lambda _: session.certs.clear())
        if standard_url:
            result = result.flat_map(
                lambda _: session.sources.upsert(Source(STANDARD_SOURCE_ID, standard_url, clock()))
            )
        return result.flat_map(lambda _: list_source_ids(session))

    return store.ensure_schema().flat_map(lambda _: store.within_session(_reset))


def list_source_ids(session: StoreSession) -> Result[list[str]]:
    return session.sources.find_all().map(lambda sources: [source.id for source in sources])


def set_source(session: StoreSession, source_id: str, url: str, clock: Clock = utc_now) -> Result[Source]:
    """Add a source or point an existing one at a new url."""
    return Result.success(source_id).ensure(
        lambda value: bool(value.strip()), ErrorCode.VALIDATION_ERROR, "source id must not be empty"
    ).flat_map(lambda _: session.sources.upsert(Source(source_id, url, clock())))


def remove_source(session: StoreSession, source_id: str | None = None) -> Result[int]:
    """Remove one source (NOT_FOUND if unknown), or all of them when no id is given."""
    if source_id is None:
        return session.sources.clear()
    return (
        session.sources.find_one(source_id)
        .flat_map(lambda source: session.sources.delete(source.id))
        .map(lambda _: 1)
    )


def show_source(session: StoreSession, source_id: str) -> Result[dict[str, Any]]:
    """A source's details plus the number of stored certificates it contributed."""
    return session.sources.find_one(source_id).flat_map(
        lambda source: session.certs.find_all(url=source.url).map(
            lambda certs: {
                "id": source.id,
                "url": source.url,
                "updated": source.updated.isoformat(),
                "certs": len(certs),
            }
        )
    )


# ─────────────────────── Import (reconciliation) ───────────────────────


def resolve_origins(
    session: StoreSession,
    fetcher: BundleFetcher,
    cert_file: str = "",
    cert_dir: str = "",
) -> Result[list[str]]:
    """
    The origins of one pass: an ad-hoc file/URL, every file of a directory,
    or else the urls of all declared sources (in id order).
    """
    if cert_file and cert_dir:
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            "certificate file (--cert-file) and directory (--cert-dir) are mutually exclusive",
        )
    if cert_file:
        return Result.success([cert_file])
    if cert_dir:
        return fetcher.list_bundles(cert_dir)
    return session.sources.find_all().map(lambda sources: [source.url for source in sources])


def run_import(
    store: CertificateStore,
    fetcher: BundleFetcher,
    decoder: CertificateDecoder,
    cert_file: str = "",
    cert_dir: str = "",
    force: bool = False,
    clock: Clock = utc_now,
    deletion_threshold: float = DEFAULT_DELETION_THRESHOLD,
) -> Result[ReconcileReport]:
    """Run one reconciliation pass inside an exclusive store session."""

    def _import(session: StoreSession) -> Result[ReconcileReport]:
        reconciler = Reconciler(session, fetcher, decoder, clock, deletion_threshold)
        return resolve_origins(session, fetcher, cert_file, cert_dir).flat_map(
            lambda origins: reconciler.reconcile(origins, force=force)
        )

    return store.within_session(_import)


# ─────────────────────── Export ───────────────────────


def _check_target(options: ExportOptions) -> Result[ExportOptions]:
    if bool(options.cert_file) == bool(options.cert_dir):
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            "either certificate file (--cert-file) or directory (--cert-dir) required",
        )
    return Result.success(options)


def _export_bundle(
    records: Sequence[CertificateRecord],
    destination: ExportDestination,
    target: str,
    generated: datetime,
) -> Result[ExportReport]:
    return (
        destination.write_bundle(target, render_bundle(records, generated))
        .peek(lambda written: log.info("export.bundle_written", target=written, certificates=len(records)))
        .map(lambda written: ExportReport(certificates=len(records), target=written))
    )


def _update_manifest(
    entries: list[tuple[CertificateRecord, str]],
    destination: ExportDestination,
    options: ExportOptions,
) -> Result[str]:
    body = manifest_lines(entries, prefix=options.manifest_prefix, with_dn=options.manifest_dn)
    return (
        destination.read_text(options.manifest_file)
        .map(lambda current: inject_block(current, body))
        .flat_map(lambda content: destination.write_text(options.manifest_file, content))
        .peek(lambda path: log.info("export.manifest_updated", manifest=path, entries=len(entries)))
    )


def _export_directory(
    records: Sequence[CertificateRecord],
    destination: ExportDestination,
    options: ExportOptions,
) -> Result[ExportReport]:
    directory = options.cert_dir

    def _write_all(naming: Callable[[str], str]) -> Result[list[tuple[CertificateRecord, str]]]:
        return Result.all_of(
            destination.write_file(directory, naming(record.dn), render_certificate(record)).map(
                lambda _, record=record: (record, naming(record.dn))
            )
            for record in records
        )

    def _finish(entries: list[tuple[CertificateRecord, str]]) -> Result[ExportReport]:
        log.info("export.directory_written", directory=directory, certificates=len(entries))
        report = ExportReport(certificates=len(entries), target=directory)
        if not options.manifest_file:
            return Result.success(report)
        return _update_manifest(entries, destination, options).map(
            lambda manifest: ExportReport(report.certificates, report.target, manifest)
        )

    # The filename mode is validated before anything in the directory is touched.
    return (
        filename_strategy(options.cert_filenames)
        .flat_map(lambda naming: destination.reset_directory(directory).map(lambda _: naming))
        .flat_map(_write_all)
        .flat_map(_finish)
    )


def _run_post_export(command: str, runner: CommandRunner) -> Result[str]:
    def _run() -> str:
        log.info("export.exec_started", command=command)
        status = runner(command)
        if status != 0:
            raise RuntimeError(f"command exited with status {status}")
        return command

    return Result.from_computation(_run, ErrorCode.TECHNICAL_ERROR, f"Post-export command failed: {command}")


def run_export(
    store: CertificateStore,
    destination: ExportDestination,
    options: ExportOptions,
    clock: Clock = utc_now,
    runner: CommandRunner = run_shell_command,
) -> Result[ExportReport]:
    """
    Write every stored certificate (ordered by DN) to a bundle or a directory.

    Directory exports rewrite only the managed block of the manifest file.
    The optional post-export command runs only after a successful export.
    """

    def _write(records: list[CertificateRecord]) -> Result[ExportReport]:
        if options.cert_file:
            return _export_bundle(records, destination, options.cert_file, clock())
        return _export_directory(records, destination, options)

    result = (
        _check_target(options)
        .flat_map(lambda _: store.within_session(lambda session: session.certs.find_all()))
        .flat_map(_write)
    )
    if options.exec_command:
        result = result.flat_map(
            lambda report: _run_post_export(options.exec_command, runner).map(lambda _: report)
        )
    return result


# ─────────────────────── Sync (import + export) ───────────────────────


def run_sync(
    store: CertificateStore,
    fetcher: BundleFetcher,
    decoder: CertificateDecoder,
    destination: ExportDestination,
    options: ExportOptions,
    force: bool = False,
    clock: Clock = utc_now,
    deletion_threshold: float = DEFAULT_DELETION_THRESHOLD,
    runner: CommandRunner = run_shell_command,
) -> Result[tuple[ReconcileReport, ExportReport]]:
    """Reconcile all declared sources, then export the resulting store."""
    return run_import(
        store,
        fetcher,
        decoder,
        force=force,
        clock=clock,
        deletion_threshold=deletion_threshold,
    ).flat_map(
        lambda reconciled: run_export(store, destination, options, clock, runner).map(
            lambda exported: (reconciled, exported)
        )
    )
