"""
Manifest block injector — keep one generated block inside a user-owned file.

The block is delimited by two literal marker lines. Injection replaces the
existing block when there is one and appends a new one otherwise; every byte
outside the block is left exactly as it was, so injecting the same block
twice gives the same file as injecting it once.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from cau.domain.models import CertificateRecord

TAG_OPEN = "# -----BEGIN CAU CERTIFICATE MANIFEST-----\n"
TAG_CLOSE = "# -----END CAU CERTIFICATE MANIFEST-----\n"


# The block may only start at the beginning of the file or of a line.
_BLOCK = re.compile(
    f"^{re.escape(TAG_OPEN)}.*?{re.escape(TAG_CLOSE)}",
    re.DOTALL | re.MULTILINE,
)


def render_block(body: str) -> str:
    """Wrap generated lines in the open/close markers."""
    return f"{TAG_OPEN}{body}{TAG_CLOSE}"


def inject_block(content: str, body: str) -> str:
    """
    Return `content` with the managed block set to `body`.

    `content` is the full current text of the target file ("" if it does not
    exist). Only the first managed block is replaced. When appending to text
    that does not end with a line break, one is inserted first so the new
    block starts on its own line and is found again next time.
    """
    block = render_block(body)
    if _BLOCK.search(content):
        return _BLOCK.sub(lambda _: block, content, count=1)
    if content and not content.endswith("\n"):
        content += "\n"
    return content + block


def manifest_lines(
    entries: Iterable[tuple[CertificateRecord, str]],
    prefix: str = "",
    with_dn: bool = False,
) -> str:
    """
    One manifest line per exported certificate: "<prefix><filename>".

    With `with_dn`, each line is preceded by a "# DN: <dn>" comment line.
    """
    lines: list[str] = []
    for record, filename in entries:
        if with_dn:
            lines.append(f"# DN: {record.dn}\n")
        lines.append(f"{prefix}{filename}\n")
    return "".join(lines)
