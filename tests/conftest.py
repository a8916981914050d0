"""
Shared test fixtures and helpers for the cau test suite.

Test certificates are generated on the fly with cryptography (one EC key,
self-signed), so every test controls exactly which subject fields and which
validity window a certificate carries.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
import structlog
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from cau.domain.models import CertificateRecord

_KEY = ec.generate_private_key(ec.SECP256R1())

FIXED_NOW = datetime(2024, 5, 1, 10, 0, 0)
NOT_BEFORE = datetime(2020, 1, 1, 0, 0, 0)
NOT_AFTER = datetime(2040, 1, 1, 0, 0, 0)

_SUBJECT_OIDS = {
    "common_name": NameOID.COMMON_NAME,
    "organizational_unit": NameOID.ORGANIZATIONAL_UNIT_NAME,
    "organization": NameOID.ORGANIZATION_NAME,
    "locality": NameOID.LOCALITY_NAME,
    "country": NameOID.COUNTRY_NAME,
    "serial_number": NameOID.SERIAL_NUMBER,
}


def make_certificate_pem(
    not_before: datetime = NOT_BEFORE,
    not_after: datetime = NOT_AFTER,
    **subject: str,
) -> str:
    """
    Build a self-signed certificate PEM with the given subject fields.

    Keyword names: common_name, organizational_unit, organization, locality,
    country, serial_number. Validity bounds are naive UTC.
    """
    name = x509.Name(
        [x509.NameAttribute(_SUBJECT_OIDS[field], value) for field, value in subject.items()]
    )
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(_KEY.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before.replace(tzinfo=UTC))
        .not_valid_after(not_after.replace(tzinfo=UTC))
        .sign(_KEY, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


# `openssl x509 -trustout -addtrust serverAuth` output: certificate DER
# followed by the auxiliary trust settings.
OPENSSL_TRUSTED_PEM = """\
-----BEGIN TRUSTED CERTIFICATE-----
MIIBwTCCAWegAwIBAgICEJIwCgYIKoZIzj0EAwIwPzELMAkGA1UEBhMCREUxFjAU
BgNVBAoMDUV4YW1wbGUgVHJ1c3QxGDAWBgNVBAMMD1RydXN0ZWQgUm9vdCBDQTAe
Fw0yNjEwMTkwOTE0MTdaFw00NjEwMTQwOTE0MTdaMD8xCzAJBgNVBAYTAkRFMRYw
FAYDVQQKDA1FeGFtcGxlIFRydXN0MRgwFgYDVQQDDA9UcnVzdGVkIFJvb3QgQ0Ew
WTATBgcqhkjOPQIBBggqhkjOPQMBBwNCAAQLevHKR2J+W11IHoCtJWAkHq8P96QP
72HqD/g9BLkmbOjzwIMG14SagU5YclJ5MABvufsuQUQ7DyvtuxbaGU1bo1MwUTAd
BgNVHQ4EFgQUFooyqVrtDFAurWaWkrCxnRRi3lYwHwYDVR0jBBgwFoAUFooyqVrt
DFAurWaWkrCxnRRi3lYwDwYDVR0TAQH/BAUwAwEB/zAKBggqhkjOPQQDAgNIADBF
AiEAwdPzss8Oy5IYSDMV/tG9fQ4w+CDPwBigMAy0q37VsCwCIAhsBd5k6tXvWFow
MktDE472HPcMXq7SkGlCP5p5OEuIMAwwCgYIKwYBBQUHAwE=
-----END TRUSTED CERTIFICATE-----
"""

# The same certificate as plain `openssl x509` prints it.
OPENSSL_PLAIN_PEM = """\
-----BEGIN CERTIFICATE-----
MIIBwTCCAWegAwIBAgICEJIwCgYIKoZIzj0EAwIwPzELMAkGA1UEBhMCREUxFjAU
BgNVBAoMDUV4YW1wbGUgVHJ1c3QxGDAWBgNVBAMMD1RydXN0ZWQgUm9vdCBDQTAe
Fw0yNjEwMTkwOTE0MTdaFw00NjEwMTQwOTE0MTdaMD8xCzAJBgNVBAYTAkRFMRYw
FAYDVQQKDA1FeGFtcGxlIFRydXN0MRgwFgYDVQQDDA9UcnVzdGVkIFJvb3QgQ0Ew
WTATBgcqhkjOPQIBBggqhkjOPQMBBwNCAAQLevHKR2J+W11IHoCtJWAkHq8P96QP
72HqD/g9BLkmbOjzwIMG14SagU5YclJ5MABvufsuQUQ7DyvtuxbaGU1bo1MwUTAd
BgNVHQ4EFgQUFooyqVrtDFAurWaWkrCxnRRi3lYwHwYDVR0jBBgwFoAUFooyqVrt
DFAurWaWkrCxnRRi3lYwDwYDVR0TAQH/BAUwAwEB/zAKBggqhkjOPQQDAgNIADBF
AiEAwdPzss8Oy5IYSDMV/tG9fQ4w+CDPwBigMAy0q37VsCwCIAhsBd5k6tXvWFow
MktDE472HPcMXq7SkGlCP5p5OEuI
-----END CERTIFICATE-----
"""


def make_ca_pems(count: int, prefix: str = "Test Root CA") -> list[str]:
    """`count` certificates with distinct subjects "<prefix> NN", O=Example Trust, C=DE."""
    return [
        make_certificate_pem(common_name=f"{prefix} {i:02d}", organization="Example Trust", country="DE")
        for i in range(count)
    ]


def make_record(
    dn: str = "CN=Test Root CA, O=Example Trust, C=DE",
    slug: str = "Test-Root-CA-Example-Trust-DE",
    url: str = "https://example.com/ca.pem",
    pem: str = "-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n",
) -> CertificateRecord:
    """A CertificateRecord with sensible defaults, for tests that never decode it."""
    return CertificateRecord(
        dn=dn,
        slug=slug,
        valid_from=NOT_BEFORE,
        valid_to=NOT_AFTER,
        updated=FIXED_NOW,
        pem=pem,
        url=url,
    )


@pytest.fixture(autouse=True)
def _quiet_structlog():
    """Discard log output so command output on stdout stays parseable."""
    structlog.reset_defaults()
    structlog.configure(logger_factory=structlog.ReturnLoggerFactory(), cache_logger_on_first_use=False)
    yield
    structlog.reset_defaults()
