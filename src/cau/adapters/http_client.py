"""
Transport adapter — fetch certificate bundles over HTTP, from files, or from stdin.

Adapter layer — implements the BundleFetcher port using httpx for sync HTTP calls.

Locators:
  "-"                      → standard input
  http://... / https://... → HTTP GET (User-Agent: CAU/<version>)
  file:///path, /path, rel → local file

Retry/backoff via tenacity on transient errors (network, timeout).
All errors are captured into Result failures — no exceptions leak to the
reconciler.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TextIO
from urllib.parse import urlsplit

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cau import __version__
from cau.result import ErrorCode, Result

log = structlog.get_logger()

STDIN_LOCATOR = "-"


class HttpBundleFetcher:
    """
    Read bundle text from any supported locator.

    Implements the BundleFetcher port.
    Uses tenacity retry on transient network errors only; HTTP error
    statuses fail immediately.
    """

    def __init__(self, timeout: int = 60, stdin: TextIO | None = None) -> None:
        self._timeout = timeout
        self._stdin = stdin if stdin is not None else sys.stdin
        self._headers = {"User-Agent": f"CAU/{__version__}"}

    def fetch(self, locator: str) -> Result[str]:
        """
        Fetch the bundle at `locator` as text.

        Returns Result.failure(EXTERNAL_SERVICE_ERROR, ...) on any transport
        problem, including timeouts and unsupported schemes.
        """
        return Result.from_computation(
            lambda: self._dispatch(locator),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            "Bundle fetch failed",
        )

    def list_bundles(self, directory: str) -> Result[list[str]]:
        """Regular files directly inside `directory`, sorted by name."""
        return Result.from_computation(
            lambda: sorted(str(p) for p in Path(directory).iterdir() if p.is_file()),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            f"Cannot list certificate directory {directory}",
        )

    def _dispatch(self, locator: str) -> str:
        if locator == STDIN_LOCATOR:
            content = self._stdin.read()
            log.info("fetch.stdin_read", size_chars=len(content))
            return content

        scheme = urlsplit(locator).scheme.lower()
        if scheme in ("http", "https"):
            return self._do_http_get(locator)
        if scheme == "file":
            return self._read_file(urlsplit(locator).path)
        # Windows drive letters parse as one-letter schemes.
        if scheme == "" or len(scheme) == 1:
            return self._read_file(locator)
        raise ValueError(f"unsupported locator scheme {scheme!r} in {locator!r}")

    def _read_file(self, path: str) -> str:
        content = Path(path).read_text(encoding="utf-8")
        log.info("fetch.file_read", path=path, size_chars=len(content))
        return content

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=0.1, max=30),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True,
    )
    def _do_http_get(self, url: str) -> str:
        """HTTP GET with retry — exceptions caught by from_computation."""
        with httpx.Client(timeout=self._timeout, follow_redirects=True) as client:
            response = client.get(url, headers=self._headers)
            response.raise_for_status()
            content = response.text
            log.info("fetch.download_complete", url=url, size_bytes=len(response.content))
            return content
