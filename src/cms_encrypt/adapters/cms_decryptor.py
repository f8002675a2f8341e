"""
CMS decryptor adapter — opens AES-GCM AuthEnvelopedData with an RSA private key.

Adapter layer — the inverse of CmsAuthEnvelopeEncryptor, using:
  - asn1crypto: PEM unarmoring and CMS structure parsing
  - cryptography (PyCA): RSA key-transport unwrapping and AES-GCM decryption

Pipeline:
  PEM ("CMS" / "PKCS7") or DER bytes                        (FORMAT_ERROR)
    → ContentInfo.load(), AES-GCM algorithm and parameters  (PARSE_ERROR)
    → matching KeyTransRecipientInfo → RSA decrypt CEK       (RECIPIENT_ERROR)
    → AESGCM.decrypt(nonce, ciphertext + mac, authAttrs)     (DECRYPTION_ERROR)
"""

from __future__ import annotations

from typing import NamedTuple

import structlog
from asn1crypto import cms, core, pem
from asn1crypto import x509 as asn1_x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.padding import (
    MGF1,
    OAEP,
    AsymmetricPadding,
    PKCS1v15,
)
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from cms_encrypt.adapters.cms_schema import GcmParameters, gcm_parameters_of
from cms_encrypt.domain.models import ContentEncryptionAlgorithm, LoadedCertificate
from cms_encrypt.failure import ErrorCode
from cms_encrypt.result import Result

log = structlog.get_logger()

ENVELOPE_PEM_LABELS = frozenset({"CMS", "PKCS7"})
SUPPORTED_ICV_LENGTH = 16

_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    "sha1": hashes.SHA1,
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


class _ParsedEnvelope(NamedTuple):
    data: cms.AuthEnvelopedData
    algorithm: ContentEncryptionAlgorithm
    gcm_parameters: GcmParameters


class _UnwrappedEnvelope(NamedTuple):
    envelope: _ParsedEnvelope
    content_key: bytes


# ─────────────────────── Decoding ───────────────────────


def _unarmor_envelope(encoded: bytes) -> bytes:
    """Return DER bytes from PEM-armored or raw DER input."""
    if pem.detect(encoded):
        label, _, der_bytes = pem.unarmor(encoded)
        if label not in ENVELOPE_PEM_LABELS:
            raise ValueError(f"Expected a CMS PEM block, found {label!r}")
        return der_bytes
    if not encoded or encoded[0] != 0x30:
        raise ValueError("Input is neither PEM nor a DER-encoded SEQUENCE")
    return encoded


def _algorithm_for_oid(dotted: str) -> ContentEncryptionAlgorithm:
    for algorithm in ContentEncryptionAlgorithm:
        if algorithm.oid == dotted:
            return algorithm
    raise ValueError(f"Unsupported content-encryption algorithm {dotted}")


def _load_auth_enveloped_data(der_bytes: bytes) -> _ParsedEnvelope:
    content_info = cms.ContentInfo.load(der_bytes, strict=True)
    content_type = content_info["content_type"]
    if content_type.native != "authenticated_enveloped_data":
        raise ValueError(
            f"Expected authenticated enveloped data, got content type {content_type.native}"
        )
    data: cms.AuthEnvelopedData = content_info["content"]
    algorithm_id = data["auth_encrypted_content_info"]["content_encryption_algorithm"]
    return _ParsedEnvelope(
        data=data,
        algorithm=_algorithm_for_oid(algorithm_id["algorithm"].dotted),
        gcm_parameters=gcm_parameters_of(algorithm_id),
    )


# ─────────────────────── Key Transport ───────────────────────


def _hash_for(name: str) -> hashes.HashAlgorithm:
    try:
        return _HASHES[name]()
    except KeyError:
        raise ValueError(f"Unsupported digest algorithm {name!r}") from None


def _padding_for(algorithm: cms.KeyEncryptionAlgorithm) -> AsymmetricPadding:
    """RSA padding described by a KeyEncryptionAlgorithm (PKCS#1 v1.5 or OAEP/MGF1)."""
    name = algorithm["algorithm"].native
    if name == "rsaes_pkcs1v15":
        return PKCS1v15()
    if name == "rsaes_oaep":
        params = algorithm["parameters"]
        mgf = params["mask_gen_algorithm"]
        if mgf["algorithm"].native != "mgf1":
            raise ValueError(f"Only MGF1 is implemented, got {mgf['algorithm'].native!r}")
        return OAEP(
            mgf=MGF1(_hash_for(mgf["parameters"]["algorithm"].native)),
            algorithm=_hash_for(params["hash_algorithm"]["algorithm"].native),
            label=None,
        )
    raise ValueError(f"Unsupported key transport algorithm {name!r}")


def _matches_certificate(rid: cms.RecipientIdentifier, certificate: LoadedCertificate) -> bool:
    if rid.name != "issuer_and_serial_number":
        return False
    issuer_and_serial = rid.chosen
    return bool(
        issuer_and_serial["serial_number"].native == certificate.serial_number
        and issuer_and_serial["issuer"] == asn1_x509.Name.load(certificate.x500_issuer)
    )


# ─────────────────────── Content ───────────────────────


def _open_content(unwrapped: _UnwrappedEnvelope) -> bytes:
    envelope, content_key = unwrapped
    if len(content_key) != envelope.algorithm.key_size:
        raise ValueError(
            f"Content key is {len(content_key)} bytes, "
            f"{envelope.algorithm.value} needs {envelope.algorithm.key_size}"
        )

    content_info = envelope.data["auth_encrypted_content_info"]
    icv_length = envelope.gcm_parameters["aes_icvlen"].native
    mac = envelope.data["mac"].native
    if icv_length != SUPPORTED_ICV_LENGTH or len(mac) != icv_length:
        raise ValueError(f"Unsupported GCM tag length {len(mac)} (declared {icv_length})")

    auth_attrs = envelope.data["auth_attrs"]
    # authenticated attributes are MACed with their universal SET OF tag
    aad = None if isinstance(auth_attrs, core.Void) else auth_attrs.untag().dump()
    ciphertext = content_info["encrypted_content"].native or b""

    return AESGCM(content_key).decrypt(
        envelope.gcm_parameters["aes_nonce"].native, ciphertext + mac, aad
    )


# ─────────────────────── Public Decryptor Class ───────────────────────


class CmsAuthEnvelopeDecryptor:
    """
    Decrypt PEM or DER CMS AuthEnvelopedData produced for an RSA recipient.

    When `certificate` is given, only the recipient entry issued to that
    certificate is used; otherwise the first key-transport recipient is tried.
    """

    def __init__(
        self,
        private_key: RSAPrivateKey,
        certificate: LoadedCertificate | None = None,
    ) -> None:
        self._private_key = private_key
        self._certificate = certificate

    def decrypt(self, encoded: bytes) -> Result[bytes]:
        """Return Result[bytes] with the recovered plaintext."""
        return (
            Result.from_computation(
                lambda: _unarmor_envelope(encoded),
                ErrorCode.FORMAT_ERROR,
                "Error decoding CMS envelope",
            )
            .flat_map(
                lambda der_bytes: Result.from_computation(
                    lambda: _load_auth_enveloped_data(der_bytes),
                    ErrorCode.PARSE_ERROR,
                    "Error parsing CMS authenticated enveloped data",
                )
            )
            .flat_map(
                lambda envelope: Result.from_computation(
                    lambda: _UnwrappedEnvelope(envelope, self._recover_content_key(envelope)),
                    ErrorCode.RECIPIENT_ERROR,
                    "Recovering the content key failed",
                )
            )
            .flat_map(
                lambda unwrapped: Result.from_computation(
                    lambda: _open_content(unwrapped),
                    ErrorCode.DECRYPTION_ERROR,
                    "CMS content decryption failed",
                )
            )
            .peek(lambda plaintext: log.info("decryptor.complete", content_bytes=len(plaintext)))
        )

    def _recover_content_key(self, envelope: _ParsedEnvelope) -> bytes:
        for recipient_info in envelope.data["recipient_infos"]:
            if recipient_info.name != "ktri":
                continue
            ktri = recipient_info.chosen
            if self._certificate is not None and not _matches_certificate(
                ktri["rid"], self._certificate
            ):
                continue
            return self._private_key.decrypt(
                ktri["encrypted_key"].native,
                _padding_for(ktri["key_encryption_algorithm"]),
            )
        raise LookupError("No key-transport recipient matches the decryption key")
