"""
PEM bundle scanner — pull canonical certificate blocks out of arbitrary text.

Bundles in the wild carry comments, prose, Windows line endings, indented
blocks and the OpenSSL "TRUSTED" / legacy "X509" marker families. The scanner
matches each BEGIN marker with the END marker of the same family and re-frames
the Base64 body as a plain CERTIFICATE block:

    # Some CA                       -----BEGIN CERTIFICATE-----
      -----BEGIN TRUSTED CERTIFICATE-----   →   MIIB...
      MIIB...                               ...
      -----END TRUSTED CERTIFICATE-----     -----END CERTIFICATE-----

A TRUSTED body is the certificate's DER followed by OpenSSL's auxiliary trust
settings; only the leading certificate SEQUENCE is kept.

Anything that does not match is ignored, so text without certificates simply
yields nothing.
"""

from __future__ import annotations

import base64
import binascii
import re
import textwrap
from collections.abc import Iterable, Iterator

PEM_BEGIN = "-----BEGIN CERTIFICATE-----"
PEM_END = "-----END CERTIFICATE-----"

_TRUSTED = "TRUSTED "
_DER_SEQUENCE = 0x30

# The family group always participates (possibly empty) so the END
# backreference also matches the plain "CERTIFICATE" family.
_PEM_BLOCK = re.compile(
    r"-----BEGIN (?P<family>(?:X509 |TRUSTED )?)CERTIFICATE-----[ \t]*\r?\n"
    r"(?P<body>.+?)"
    r"-----END (?P=family)CERTIFICATE-----",
    re.DOTALL,
)


def canonical_pem(body_lines: Iterable[str]) -> str:
    """Frame Base64 body lines as one canonical CERTIFICATE block with a trailing newline."""
    body = "".join(f"{line}\n" for line in body_lines)
    return f"{PEM_BEGIN}\n{body}{PEM_END}\n"


def _normalize_body(body: str) -> list[str]:
    lines = (line.strip(" \t\r") for line in body.split("\n"))
    return [line for line in lines if line]


def _der_sequence_length(der: bytes) -> int | None:
    """Total encoded length of the DER SEQUENCE at the start of `der`, or None."""
    if len(der) < 2 or der[0] != _DER_SEQUENCE:
        return None
    first = der[1]
    if first < 0x80:
        return 2 + first
    size = first & 0x7F
    if size == 0 or len(der) < 2 + size:
        return None
    return 2 + size + int.from_bytes(der[2 : 2 + size], "big")


def _strip_trust_settings(lines: list[str]) -> list[str]:
    """
    Keep only the certificate of a TRUSTED body, re-encoded in 64-column lines.

    Bodies that are not Base64 or do not start with a complete SEQUENCE are
    returned unchanged, so the decoder reports them as malformed.
    """
    try:
        der = base64.b64decode("".join(lines))
    except binascii.Error:
        return lines
    length = _der_sequence_length(der)
    if length is None or length > len(der):
        return lines
    return textwrap.wrap(base64.b64encode(der[:length]).decode("ascii"), 64)


def scan_pem_blocks(text: str) -> Iterator[str]:
    """
    Lazily yield every certificate block found in `text`, in order of appearance.

    Each call starts a fresh scan, so the sequence can be restarted by calling
    again with the same text.
    """
    for match in _PEM_BLOCK.finditer(text):
        lines = _normalize_body(match.group("body"))
        if match.group("family") == _TRUSTED:
            lines = _strip_trust_settings(lines)
        yield canonical_pem(lines)
