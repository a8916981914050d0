"""
Export assembly — render stored certificates as bundle text or per-file entries.

Pure text generation only; writing goes through the ExportDestination port.

Bundle layout:

    ##
    ##  Certificate Authority Certificate Bundle
    ##  (certificates: 2, generated: 2024-05-01T10:00:00)
    ##

    #   DN:      CN=..., O=..., C=...
    #   Issued:  2019-01-01T00:00:00
    #   Expires: 2039-01-01T00:00:00

    -----BEGIN CERTIFICATE-----
    ...
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Sequence
from datetime import datetime

from cau.domain.models import CertificateRecord
from cau.result import ErrorCode, Result

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

FILENAME_MODES = ("uuid", "dn")


def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


def render_certificate(record: CertificateRecord) -> str:
    """The per-certificate comment block followed by its PEM."""
    return (
        f"#   DN:      {record.dn}\n"
        f"#   Issued:  {format_timestamp(record.valid_from)}\n"
        f"#   Expires: {format_timestamp(record.valid_to)}\n"
        "\n"
        f"{record.pem}\n"
    )


def render_bundle(records: Sequence[CertificateRecord], generated: datetime) -> str:
    """Header comment plus every certificate, ordered by DN ascending."""
    header = (
        "##\n"
        "##  Certificate Authority Certificate Bundle\n"
        f"##  (certificates: {len(records)}, generated: {format_timestamp(generated)})\n"
        "##\n"
        "\n"
    )
    ordered = sorted(records, key=lambda record: record.dn)
    return header + "".join(render_certificate(record) for record in ordered)


def uuid_filename(dn: str) -> str:
    """Namespace-5 UUID of the DN: the same DN always gives the same filename."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, dn))


def dn_filename(dn: str) -> str:
    return dn


def filename_strategy(mode: str) -> Result[Callable[[str], str]]:
    """Map a filename mode ("uuid" or "dn") to the function deriving filenames from DNs."""
    match mode:
        case "uuid":
            return Result.success(uuid_filename)
        case "dn":
            return Result.success(dn_filename)
    return Result.failure(
        ErrorCode.VALIDATION_ERROR,
        f"invalid certificate filenames type {mode!r} (expected one of: {', '.join(FILENAME_MODES)})",
    )
