"""
Ports — Protocol-based interfaces for infrastructure adapters.

These define WHAT the run needs without specifying HOW it is done:

  Domain ← Ports (protocols) ← Adapters (implementations)

Each port is a Protocol (structural typing) so adapters satisfy
the contract simply by implementing the methods — no inheritance.

Run order:
  1. CertificateLoader → LoadedCertificate from a PEM file
  2. EnvelopeEncryptor → PEM-wrapped CMS envelope for that certificate
  3. EnvelopeSink      → file or standard output
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from cms_encrypt.domain.models import LoadedCertificate
from cms_encrypt.result import Result


@runtime_checkable
class CertificateLoader(Protocol):
    """
    Port: read and parse the recipient certificate.

    Fails with IO_ERROR, FORMAT_ERROR or PARSE_ERROR.
    """

    def load(self, path: Path) -> Result[LoadedCertificate]: ...


@runtime_checkable
class EnvelopeEncryptor(Protocol):
    """
    Port: encrypt a message for exactly one recipient certificate.

    The implementation runs the fixed sequence
    partial init → add recipient → finalize → encode,
    and returns the encoded envelope bytes.
    """

    def encrypt(self, data: bytes, certificate: LoadedCertificate) -> Result[bytes]: ...


@runtime_checkable
class EnvelopeSink(Protocol):
    """Port: deliver the encoded envelope. Returns the number of bytes written."""

    def write(self, encoded: bytes) -> Result[int]: ...
