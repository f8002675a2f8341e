"""
Shared test fixtures for the cms-encrypt test suite.

Provides generated recipient keys and certificates (RSA and EC), the matching
PEM files on disk, and a structlog reset between tests so a logger bound to a
closed capture stream never leaks into the next test.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from cms_encrypt.adapters.certificate_loader import PemCertificateLoader
from cms_encrypt.assertions import ResultAssertions
from cms_encrypt.domain.models import LoadedCertificate
from tests.certificates import (
    build_certificate,
    certificate_pem,
    ec_private_key,
    rsa_private_key,
    write_file,
)


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


@pytest.fixture()
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa_private_key()


@pytest.fixture()
def rsa_certificate(rsa_key: rsa.RSAPrivateKey) -> x509.Certificate:
    return build_certificate(rsa_key)


@pytest.fixture()
def certificate_path(tmp_path: Path, rsa_certificate: x509.Certificate) -> Path:
    """PEM file holding the RSA recipient certificate."""
    return write_file(tmp_path, "recipient.pem", certificate_pem(rsa_certificate))


@pytest.fixture()
def ec_certificate_path(tmp_path: Path) -> Path:
    """PEM file holding a certificate with an EC public key."""
    certificate = build_certificate(ec_private_key(), common_name="EC Recipient")
    return write_file(tmp_path, "ec-recipient.pem", certificate_pem(certificate))


@pytest.fixture()
def loaded_certificate(certificate_path: Path) -> LoadedCertificate:
    return ResultAssertions.assert_success(PemCertificateLoader().load(certificate_path))


@pytest.fixture()
def rsa_certificate_der(rsa_certificate: x509.Certificate) -> bytes:
    return rsa_certificate.public_bytes(serialization.Encoding.DER)
