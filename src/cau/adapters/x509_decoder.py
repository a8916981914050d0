"""
X.509 decoder adapter — subject attributes and validity window via cryptography.

Adapter layer — implements the CertificateDecoder port using cryptography (PyCA).
Only structural parsing happens here: no chain building, no signature or
revocation checks.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from cryptography import x509
from cryptography.x509.oid import NameOID

from cau.domain.models import DecodedCertificate, SubjectAttributes
from cau.result import ErrorCode, Result

log = structlog.get_logger()


def _first_attribute(name: x509.Name, oid: x509.ObjectIdentifier) -> str | None:
    """Value of the first attribute with this OID, or None when the name has none."""
    attributes = name.get_attributes_for_oid(oid)
    if not attributes:
        return None
    value = attributes[0].value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _naive_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=None)


def _subject_attributes(name: x509.Name) -> SubjectAttributes:
    return SubjectAttributes(
        common_name=_first_attribute(name, NameOID.COMMON_NAME),
        organizational_unit=_first_attribute(name, NameOID.ORGANIZATIONAL_UNIT_NAME),
        organization=_first_attribute(name, NameOID.ORGANIZATION_NAME),
        locality=_first_attribute(name, NameOID.LOCALITY_NAME),
        country=_first_attribute(name, NameOID.COUNTRY_NAME),
    )


class X509CertificateDecoder:
    """
    Decode canonical PEM certificate blocks.

    Implements the CertificateDecoder port.
    All exceptions are caught at this adapter boundary via Result.from_computation().
    """

    def decode(self, pem: str) -> Result[DecodedCertificate]:
        """
        Parse one PEM block into subject attributes and a validity window.

        Validity timestamps are naive UTC, second precision.
        Returns Result.failure(VALIDATION_ERROR, ...) for malformed input.
        """
        return Result.from_computation(
            lambda: self._do_decode(pem),
            ErrorCode.VALIDATION_ERROR,
            "Malformed PEM certificate",
        )

    def _do_decode(self, pem: str) -> DecodedCertificate:
        cert = x509.load_pem_x509_certificate(pem.encode("ascii"))
        decoded = DecodedCertificate(
            subject=_subject_attributes(cert.subject),
            valid_from=_naive_utc(cert.not_valid_before_utc),
            valid_to=_naive_utc(cert.not_valid_after_utc),
        )
        log.debug(
            "decoder.decoded",
            subject=cert.subject.rfc4514_string(),
            serial=hex(cert.serial_number),
        )
        return decoded
