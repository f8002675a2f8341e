"""
Output adapters — deliver the encoded envelope to a file or to the console.

Adapter layer — implements the EnvelopeSink port.
  - FileEnvelopeSink:    create-or-truncate, fixed permission bits
  - ConsoleEnvelopeSink: "Encrypted using CMS:" header followed by the PEM text
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import TextIO

import structlog

from cms_encrypt.failure import ErrorCode
from cms_encrypt.result import Result

log = structlog.get_logger()

DEFAULT_FILE_MODE = 0o644
CONSOLE_HEADER = "Encrypted using CMS:"


class FileEnvelopeSink:
    """
    Write the envelope to `path`, replacing any previous content.

    `mode` applies only when the file is created; the process umask still applies.
    """

    def __init__(self, path: Path, mode: int = DEFAULT_FILE_MODE) -> None:
        self._path = path
        self._mode = mode

    @property
    def path(self) -> Path:
        return self._path

    def write(self, encoded: bytes) -> Result[int]:
        return Result.from_computation(
            lambda: self._write(encoded),
            ErrorCode.IO_ERROR,
            f"Failed to write CMS content to {self._path}",
        )

    def _write(self, encoded: bytes) -> int:
        fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, self._mode)
        with os.fdopen(fd, "wb") as handle:
            written = handle.write(encoded)
        log.info("sink.file_written", path=str(self._path), size_bytes=written)
        return written


class ConsoleEnvelopeSink:
    """Print the envelope as text. Defaults to the current sys.stdout at write time."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def write(self, encoded: bytes) -> Result[int]:
        return Result.from_computation(
            lambda: self._write(encoded),
            ErrorCode.IO_ERROR,
            "Failed to print CMS content",
        )

    def _write(self, encoded: bytes) -> int:
        stream = self._stream if self._stream is not None else sys.stdout
        stream.write(f"{CONSOLE_HEADER}\n")
        stream.write(encoded.decode("ascii"))
        if not encoded.endswith(b"\n"):
            stream.write("\n")
        stream.flush()
        return len(encoded)
