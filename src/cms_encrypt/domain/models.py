"""
Domain models — immutable values flowing through the encryption run.

All models are frozen dataclasses or enums; none of them performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class ContentEncryptionAlgorithm(str, Enum):
    """
    AES-GCM content-encryption algorithms (RFC 5084).

    The value is the configuration name; `oid` and `key_size` describe the
    algorithm for the CMS layer.
    """

    AES_128_GCM = "aes128_gcm"
    AES_192_GCM = "aes192_gcm"
    AES_256_GCM = "aes256_gcm"

    @property
    def oid(self) -> str:
        return _GCM_OIDS[self]

    @property
    def key_size(self) -> int:
        """Content-encryption key length in bytes."""
        return _GCM_KEY_SIZES[self]


_GCM_OIDS = {
    ContentEncryptionAlgorithm.AES_128_GCM: "2.16.840.1.101.3.4.1.6",
    ContentEncryptionAlgorithm.AES_192_GCM: "2.16.840.1.101.3.4.1.26",
    ContentEncryptionAlgorithm.AES_256_GCM: "2.16.840.1.101.3.4.1.46",
}

_GCM_KEY_SIZES = {
    ContentEncryptionAlgorithm.AES_128_GCM: 16,
    ContentEncryptionAlgorithm.AES_192_GCM: 24,
    ContentEncryptionAlgorithm.AES_256_GCM: 32,
}


class KeyTransport(str, Enum):
    """RSA key-transport schemes for the recipient's wrapped content key."""

    RSAES_PKCS1V15 = "rsaes_pkcs1v15"
    RSAES_OAEP = "rsaes_oaep"


@dataclass(frozen=True, slots=True)
class LoadedCertificate:
    """
    An X.509 certificate parsed from a PEM file.

    `der` holds the raw DER bytes exactly as they appeared in the PEM block;
    the remaining fields are parsed from it for logging and recipient matching.
    """

    der: bytes = field(repr=False)
    subject: str
    issuer: str
    x500_issuer: bytes = field(repr=False)
    serial_number: int
    not_valid_before: datetime
    not_valid_after: datetime
    public_key_algorithm: str
    public_key_size: int | None = None

    def is_valid_at(self, moment: datetime) -> bool:
        return self.not_valid_before <= moment <= self.not_valid_after


@dataclass(frozen=True, slots=True)
class EncryptionRequest:
    """
    One invocation of the tool: whose certificate, what message, where to write.

    `out_file` of None means the envelope is printed to standard output.
    """

    certificate_path: Path
    message: bytes = field(repr=False)
    out_file: Path | None = None
