"""
PEM certificate loader adapter — file read + PEM decode + X.509 parse.

Adapter layer — implements the CertificateLoader port using:
  - asn1crypto.pem: PEM envelope decoding (label + DER payload)
  - cryptography (PyCA): X.509 parsing and metadata extraction

Pipeline:
  path
    → read_bytes()                       (IO_ERROR)
    → pem.unarmor() → label == CERTIFICATE (FORMAT_ERROR)
    → x509.load_der_x509_certificate()   (PARSE_ERROR)
    → LoadedCertificate (domain model)

Only the first PEM block of the file is considered.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import NamedTuple

import structlog
from asn1crypto import pem
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from cms_encrypt.domain.models import LoadedCertificate
from cms_encrypt.failure import ErrorCode
from cms_encrypt.result import Result

log = structlog.get_logger()

CERTIFICATE_LABEL = "CERTIFICATE"


class _PemBlock(NamedTuple):
    label: str
    der: bytes


def _decode_pem_block(raw: bytes) -> Result[_PemBlock]:
    """Decode the first PEM block and require the CERTIFICATE label."""
    decoded = Result.from_computation(
        lambda: pem.unarmor(raw),
        ErrorCode.FORMAT_ERROR,
        "Failed to decode PEM block containing certificate",
    )
    return decoded.map(lambda unarmored: _PemBlock(unarmored[0], unarmored[2])).flat_map(
        lambda block: Result.success(block)
        if block.label == CERTIFICATE_LABEL
        else Result.failure(
            ErrorCode.FORMAT_ERROR,
            f"Expected a {CERTIFICATE_LABEL} PEM block, found {block.label!r}",
        )
    )


def _describe_public_key(cert: x509.Certificate) -> tuple[str, int | None]:
    """Public key algorithm name and size, or the raw OID for unsupported keys."""
    try:
        key = cert.public_key()
    except (UnsupportedAlgorithm, ValueError):
        return cert.public_key_algorithm_oid.dotted_string, None
    if isinstance(key, rsa.RSAPublicKey):
        return "rsa", key.key_size
    if isinstance(key, ec.EllipticCurvePublicKey):
        return "ec", key.key_size
    return type(key).__name__, None


def _der_to_loaded_certificate(der_bytes: bytes) -> LoadedCertificate:
    """Parse DER bytes into a LoadedCertificate. Raises ValueError on malformed input."""
    cert = x509.load_der_x509_certificate(der_bytes)
    algorithm, key_size = _describe_public_key(cert)
    return LoadedCertificate(
        der=der_bytes,
        subject=cert.subject.rfc4514_string(),
        issuer=cert.issuer.rfc4514_string(),
        x500_issuer=cert.issuer.public_bytes(),
        serial_number=cert.serial_number,
        not_valid_before=cert.not_valid_before_utc,
        not_valid_after=cert.not_valid_after_utc,
        public_key_algorithm=algorithm,
        public_key_size=key_size,
    )


def _log_loaded(certificate: LoadedCertificate) -> None:
    if not certificate.is_valid_at(datetime.now(UTC)):
        log.warning(
            "certificate.outside_validity",
            subject=certificate.subject,
            not_valid_before=certificate.not_valid_before.isoformat(),
            not_valid_after=certificate.not_valid_after.isoformat(),
        )
    log.info(
        "loader.loaded",
        subject=certificate.subject,
        serial=hex(certificate.serial_number),
        key_algorithm=certificate.public_key_algorithm,
        key_size=certificate.public_key_size,
    )


class PemCertificateLoader:
    """
    Load a recipient certificate from a PEM file.

    Implements the CertificateLoader port.
    All exceptions are caught at this adapter boundary via Result.from_computation().
    """

    def load(self, path: Path) -> Result[LoadedCertificate]:
        """
        Read `path`, decode its first PEM block and parse the certificate.

        Returns Result[LoadedCertificate] on success, or a failure with
        IO_ERROR, FORMAT_ERROR or PARSE_ERROR depending on the failing step.
        """
        return (
            Result.from_computation(
                lambda: path.read_bytes(),
                ErrorCode.IO_ERROR,
                f"Failed to read certificate {path}",
            )
            .flat_map(_decode_pem_block)
            .flat_map(
                lambda block: Result.from_computation(
                    lambda: _der_to_loaded_certificate(block.der),
                    ErrorCode.PARSE_ERROR,
                    "Error parsing certificate",
                )
            )
            .peek(_log_loaded)
        )
