"""
Application entry point — command line parsing and dependency wiring.

Composition root: creates concrete adapters and hands them to the pipeline
use cases. This is the ONLY place where concrete classes are instantiated;
everything else depends on Protocol interfaces.

Responsibilities:
  1. Load and validate configuration from environment
  2. Parse the command line (global options + one command)
  3. Configure structlog (stderr; stdout is reserved for command output)
  4. Create concrete adapters (store, fetcher, decoder, destination)
  5. Run the command and map its Result to an exit status

Usage: cau [-d DSN] [-o FILE] [-F yaml|json] <command> [<options>] [<arguments>]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from functools import partial
from typing import Any, NoReturn

import structlog
import yaml

from cau import __version__
from cau.adapters.filesystem import FileSystemDestination
from cau.adapters.http_client import HttpBundleFetcher
from cau.adapters.repository import PsycopgCertificateStore
from cau.adapters.x509_decoder import X509CertificateDecoder
from cau.config import AppSettings
from cau.domain.models import ExportOptions
from cau.pipeline import (
    init_store,
    list_source_ids,
    remove_source,
    run_export,
    run_import,
    run_sync,
    set_source,
    show_source,
)
from cau.result import ErrorCode, Result
from cau.scheduler import create_scheduler, run_sync_job


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for human-readable console logging on stderr.

    Unknown level names fall back to INFO.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


type _Adapters = tuple[
    PsycopgCertificateStore,
    HttpBundleFetcher,
    X509CertificateDecoder,
    FileSystemDestination,
]


def _create_adapters(settings: AppSettings, dsn: str) -> _Adapters:
    """Instantiate the four concrete adapters from application settings."""
    store = PsycopgCertificateStore(dsn=dsn)
    fetcher = HttpBundleFetcher(timeout=settings.http_timeout_seconds)
    decoder = X509CertificateDecoder()
    destination = FileSystemDestination()
    return store, fetcher, decoder, destination


# ─────────────────────── Command line ───────────────────────


class _ArgumentParser(argparse.ArgumentParser):
    """Usage errors exit with status 1 like every other failure."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser(settings: AppSettings) -> argparse.ArgumentParser:
    """Global options plus one subcommand each for version, init, source, import, export, sync."""
    parser = _ArgumentParser(
        prog="cau",
        description="Certificate Authority Utility",
    )
    parser.add_argument("-d", "--database", default="", help="PostgreSQL DSN (default: CAU_DATABASE__* settings)")
    parser.add_argument("-o", "--output-file", default="-", help='file receiving command output ("-" for stdout)')
    parser.add_argument(
        "-F", "--format", choices=("yaml", "json"), default=settings.output_format, help="output format"
    )
    commands = parser.add_subparsers(dest="command", required=True, metavar="<command>")

    commands.add_parser("version", help="show program information")

    init = commands.add_parser("init", help="initialize (and empty) the certificate store")
    init.add_argument("-s", "--standard", action="store_true", help="add standard cURL/Firefox certificate source")

    source = commands.add_parser("source", help="list, show, set or remove certificate sources")
    source.add_argument("-r", "--remove", action="store_true", help="remove source(s)")
    source.add_argument("id", nargs="?", help="source id")
    source.add_argument("url", nargs="?", help="source bundle location (URL, path, or - for stdin)")

    imp = commands.add_parser("import", help="reconcile the store with the sources")
    imp.add_argument("-f", "--cert-file", default="", help="ad-hoc bundle file or URL (- for stdin)")
    imp.add_argument("-d", "--cert-dir", default="", help="ad-hoc directory of certificate files")
    imp.add_argument(
        "--force", action="store_true", help="delete obsolete certificates even above the safety threshold"
    )

    defaults = settings.export
    exp = commands.add_parser("export", help="write the stored certificates to a bundle or directory")
    # No default: the configured target applies only when neither -f nor -d is given.
    exp.add_argument("-f", "--cert-file", help="bundle file (- for stdout)")
    exp.add_argument("-d", "--cert-dir", help="(exclusive) directory for certificates")
    exp.add_argument(
        "-n", "--cert-filenames", default=defaults.cert_filenames, help='certificate filenames ("uuid" or "dn")'
    )
    exp.add_argument("-m", "--manifest-file", default=defaults.manifest_file, help="(non-exclusive) manifest file")
    exp.add_argument(
        "--manifest-dn", action="store_true", default=defaults.manifest_dn, help="add DN comment per manifest entry"
    )
    exp.add_argument("-p", "--manifest-prefix", default=defaults.manifest_prefix, help="path prefix for entries")
    exp.add_argument("-e", "--exec", default=defaults.exec_command, help="shell command to run after export")

    sync = commands.add_parser("sync", help="periodically import all sources and export (see CAU_EXPORT__*)")
    sync.add_argument("--once", action="store_true", help="run a single sync and exit")
    sync.add_argument("--force", action="store_true", help="delete obsolete certificates even above the threshold")

    return parser


def _write_output(text: str, output_file: str) -> None:
    if not text.endswith("\n"):
        text += "\n"
    if output_file == "-":
        sys.stdout.write(text)
        return
    with open(output_file, "a", encoding="utf-8") as handle:
        handle.write(text)


def _dump(value: Any, args: argparse.Namespace) -> None:
    """Serialize a command result as YAML or JSON onto the output."""
    if args.format == "json":
        text = json.dumps(value, indent=4)
    else:
        text = yaml.safe_dump(value, sort_keys=False, default_flow_style=False)
    _write_output(text, args.output_file)


def _export_options(args: argparse.Namespace, settings: AppSettings) -> ExportOptions:
    cert_file, cert_dir = args.cert_file, args.cert_dir
    if cert_file is None and cert_dir is None:
        cert_file, cert_dir = settings.export.cert_file, settings.export.cert_dir
    return ExportOptions(
        cert_file=cert_file or "",
        cert_dir=cert_dir or "",
        cert_filenames=args.cert_filenames,
        manifest_file=args.manifest_file,
        manifest_dn=args.manifest_dn,
        manifest_prefix=args.manifest_prefix,
        exec_command=args.exec,
    )


def _settings_export_options(settings: AppSettings) -> ExportOptions:
    export = settings.export
    return ExportOptions(
        cert_file=export.cert_file,
        cert_dir=export.cert_dir,
        cert_filenames=export.cert_filenames,
        manifest_file=export.manifest_file,
        manifest_dn=export.manifest_dn,
        manifest_prefix=export.manifest_prefix,
        exec_command=export.exec_command,
    )


# ─────────────────────── Commands ───────────────────────


def _command_version(args: argparse.Namespace) -> Result[str]:
    sys.stderr.write(f"CAU {__version__} <http://github.com/rse/cau>\n")
    sys.stderr.write("Certificate Authority Utility\n")
    sys.stderr.write("Licensed under MIT <http://spdx.org/licenses/MIT.html>\n")
    return Result.success(__version__)


def _command_source(args: argparse.Namespace, adapters: _Adapters) -> Result[Any]:
    store = adapters[0]
    if args.remove:
        if args.url is not None:
            return Result.failure(ErrorCode.VALIDATION_ERROR, "option --remove requires zero or one argument only")
        return store.within_session(lambda session: remove_source(session, args.id))
    if args.id is not None and args.url is not None:
        return store.within_session(lambda session: set_source(session, args.id, args.url))
    if args.id is not None:
        return store.within_session(lambda session: show_source(session, args.id)).peek(
            lambda shown: _dump(shown, args)
        )
    return store.within_session(list_source_ids).peek(lambda ids: _dump(ids, args))


def _command_sync(args: argparse.Namespace, settings: AppSettings, adapters: _Adapters) -> Result[Any]:
    store, fetcher, decoder, destination = adapters
    sync_fn = partial(
        run_sync,
        store,
        fetcher,
        decoder,
        destination,
        _settings_export_options(settings),
        force=args.force,
        deletion_threshold=settings.reconcile.deletion_threshold,
    )
    if args.once:
        return run_sync_job(sync_fn)

    log = structlog.get_logger()
    scheduler = create_scheduler(
        sync_fn=sync_fn,
        cron=settings.scheduler.cron,
        run_on_startup=settings.run_on_startup,
    )
    log.info("app.scheduler_starting", cron=settings.scheduler.cron)
    try:
        scheduler.start()
    except KeyboardInterrupt:
        log.info("app.shutdown", reason="signal received")
    return Result.success(True)


def _dispatch(args: argparse.Namespace, settings: AppSettings) -> Result[Any]:
    if args.command == "version":
        return _command_version(args)

    dsn = Result.from_computation(
        lambda: args.database or settings.database.get_dsn(),
        ErrorCode.CONFIGURATION_ERROR,
        "no database configured",
    )
    return dsn.flat_map(lambda value: _run_with_store(args, settings, _create_adapters(settings, value)))


def _run_with_store(args: argparse.Namespace, settings: AppSettings, adapters: _Adapters) -> Result[Any]:
    store, fetcher, decoder, destination = adapters
    match args.command:
        case "init":
            standard_url = settings.reconcile.standard_source_url if args.standard else None
            return init_store(store, standard_url)
        case "source":
            return _command_source(args, adapters)
        case "import":
            return run_import(
                store,
                fetcher,
                decoder,
                cert_file=args.cert_file,
                cert_dir=args.cert_dir,
                force=args.force,
                deletion_threshold=settings.reconcile.deletion_threshold,
            )
        case "export":
            return run_export(store, destination, _export_options(args, settings))
        case "sync":
            return _command_sync(args, settings, adapters)
    return Result.failure(ErrorCode.VALIDATION_ERROR, f'unknown command: "{args.command}"')


def run(argv: Sequence[str] | None = None) -> int:
    """Parse `argv`, run the command, and return the process exit status."""
    try:
        settings = AppSettings()
    except Exception as e:
        sys.stderr.write(f"cau: ERROR: configuration error: {e}\n")
        return 1

    try:
        args = build_parser(settings).parse_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1
    configure_structlog(settings.log_level)

    result = _dispatch(args, settings)
    if result.is_failure():
        error = result.error()
        structlog.get_logger().debug("app.failure", trace=error.full_stack_trace())
        sys.stderr.write(f"cau: ERROR: {error}\n")
        return 1
    return 0


def main() -> None:
    """Console script entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
