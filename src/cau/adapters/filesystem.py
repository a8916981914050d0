"""
Filesystem destination adapter — bundle files, certificate directories, manifests.

Adapter layer — implements the ExportDestination port with pathlib.
Every write is one call with content fully computed in memory beforehand;
failures come back as Result.failure(DESTINATION_ERROR, ...).
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import TextIO, TypeVar

import structlog

from cau.result import ErrorCode, Result

log = structlog.get_logger()

T = TypeVar("T")

STDOUT_TARGET = "-"


def _destination_call(computation: Callable[[], T], message: str) -> Result[T]:
    return Result.from_computation(computation, ErrorCode.DESTINATION_ERROR, message)


def _local_path(target: str) -> Path:
    return Path(target.removeprefix("file://"))


class FileSystemDestination:
    """Write export output to local files (or stdout for bundles). Implements ExportDestination."""

    def __init__(self, stdout: TextIO | None = None) -> None:
        self._stdout = stdout if stdout is not None else sys.stdout

    def write_bundle(self, target: str, content: str) -> Result[str]:
        """Write the bundle to `target`, or to standard output when target is "-"."""
        if target == STDOUT_TARGET:
            return _destination_call(lambda: self._write_stdout(content), "Cannot write bundle to stdout")
        return self.write_text(target, content)

    def reset_directory(self, directory: str) -> Result[str]:
        """Create `directory` if needed, then remove every regular file inside it."""

        def _reset() -> str:
            path = _local_path(directory)
            path.mkdir(mode=0o755, parents=True, exist_ok=True)
            pruned = 0
            for entry in path.iterdir():
                if entry.is_file() or entry.is_symlink():
                    entry.unlink()
                    pruned += 1
            log.info("export.directory_pruned", directory=str(path), files=pruned)
            return str(path)

        return _destination_call(_reset, f"Cannot prepare certificate directory {directory}")

    def write_file(self, directory: str, filename: str, content: str) -> Result[str]:
        return self.write_text(str(_local_path(directory) / filename), content)

    def read_text(self, path: str) -> Result[str]:
        def _read() -> str:
            local = _local_path(path)
            if not local.exists():
                return ""
            # newline="" keeps \r\n intact so untouched manifest lines stay byte-identical
            with local.open(encoding="utf-8", newline="") as handle:
                return handle.read()

        return _destination_call(_read, f"Cannot read {path}")

    def write_text(self, path: str, content: str) -> Result[str]:
        def _write() -> str:
            local = _local_path(path)
            local.write_text(content, encoding="utf-8", newline="")
            log.debug("export.file_written", path=str(local), size_chars=len(content))
            return str(local)

        return _destination_call(_write, f"Cannot write {path}")

    def _write_stdout(self, content: str) -> str:
        self._stdout.write(content)
        self._stdout.flush()
        return STDOUT_TARGET
