"""
Identity deriver — distinguished name (store key) and slug from subject attributes.

The DN is the persistent primary key of the `cert` table, so its shape must
never change between runs: fields are always taken in the order
CN, OU, O, L, C (most specific first) and joined as "CN=..., O=..., C=...".
"""

from __future__ import annotations

import re

from cau.domain.models import CertificateIdentity, SubjectAttributes
from cau.result import ErrorCode, Result

_DN_FIELDS: tuple[tuple[str, str], ...] = (
    ("CN", "common_name"),
    ("OU", "organizational_unit"),
    ("O", "organization"),
    ("L", "locality"),
    ("C", "country"),
)

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]+")
_HYPHEN_RUN = re.compile(r"--+")


def slugify(value: str) -> str:
    """Collapse every run of non-alphanumeric characters into a single hyphen."""
    return _NON_ALNUM.sub("-", value)


def derive_identity(subject: SubjectAttributes) -> Result[CertificateIdentity]:
    """
    Build (dn, slug) from the subject fields that are present and non-empty.

    A subject carrying none of the five fields (or only punctuation, which
    leaves an empty slug) is rejected with VALIDATION_ERROR so that an empty
    key is never persisted.
    """
    dn_parts: list[str] = []
    slug_parts: list[str] = []
    for code, attribute in _DN_FIELDS:
        value = getattr(subject, attribute)
        if value:
            dn_parts.append(f"{code}={value}")
            slug_parts.append(slugify(value))

    dn = ", ".join(dn_parts)
    slug = _HYPHEN_RUN.sub("-", "-".join(slug_parts)).strip("-")

    if not dn:
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            "certificate subject has none of CN, OU, O, L, C: empty distinguished name",
        )
    if not slug:
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            f"distinguished name {dn!r} yields an empty slug",
        )
    return Result.success(CertificateIdentity(dn=dn, slug=slug))
