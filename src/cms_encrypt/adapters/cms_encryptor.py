"""
CMS encryptor adapter — AES-GCM AuthEnvelopedData for a single recipient.

Adapter layer — implements the EnvelopeEncryptor port using:
  - asn1crypto: CMS structures (RecipientInfo, KeyTransRecipientInfo) and PEM armor
  - cryptography (PyCA): AES-GCM content encryption and RSA key transport

Sequence (strict, enforced by AuthEnvelope):
  1. AuthEnvelope(algorithm)     partial envelope, fresh content key + nonce  (CRYPTO_INIT_ERROR)
  2. asn1crypto Certificate      recipient certificate for the CMS layer      (CERTIFICATE_LOAD_ERROR)
     envelope.add_recipient()    sole key-transport recipient                 (RECIPIENT_ERROR)
  3. envelope.finalize(data)     encrypt content, wrap content key            (FINALIZATION_ERROR)
  4. envelope.to_pem()           DER wrapped in "-----BEGIN CMS-----"         (ENCODING_ERROR)

The content key lives in a bytearray that is zeroed when the envelope's
`with` block exits, whichever step failed. This is best effort: the AES-GCM
backend and the RSA key wrap keep their own short-lived copies of the key,
which are outside the envelope's reach.
"""

from __future__ import annotations

import secrets
from enum import Enum, auto
from typing import NamedTuple

import structlog
from asn1crypto import algos, cms, pem
from asn1crypto import x509 as asn1_x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.padding import (
    MGF1,
    OAEP,
    AsymmetricPadding,
    PKCS1v15,
)
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from cms_encrypt.adapters.cms_schema import GcmParameters
from cms_encrypt.domain.models import (
    ContentEncryptionAlgorithm,
    KeyTransport,
    LoadedCertificate,
)
from cms_encrypt.failure import ErrorCode
from cms_encrypt.result import Result

log = structlog.get_logger()

CMS_PEM_LABEL = "CMS"
GCM_NONCE_SIZE = 12
GCM_TAG_SIZE = 16


class _EnvelopeState(Enum):
    PARTIAL = auto()
    RECIPIENT_ADDED = auto()
    FINALIZED = auto()
    CLOSED = auto()


_STATE_DESCRIPTIONS = {
    _EnvelopeState.PARTIAL: "has no recipient yet",
    _EnvelopeState.RECIPIENT_ADDED: "already has a recipient",
    _EnvelopeState.FINALIZED: "is already finalized",
    _EnvelopeState.CLOSED: "is closed",
}


class _Recipient(NamedTuple):
    rid: cms.RecipientIdentifier
    public_key: RSAPublicKey


# ─────────────────────── Key Transport ───────────────────────


def _key_transport_scheme(
    key_transport: KeyTransport,
) -> tuple[cms.KeyEncryptionAlgorithm, AsymmetricPadding]:
    """CMS algorithm identifier and matching RSA padding for the key transport."""
    if key_transport is KeyTransport.RSAES_OAEP:
        algorithm = cms.KeyEncryptionAlgorithm(
            {
                "algorithm": cms.KeyEncryptionAlgorithmId("rsaes_oaep"),
                "parameters": algos.RSAESOAEPParams(
                    {
                        "hash_algorithm": {"algorithm": "sha256"},
                        "mask_gen_algorithm": {
                            "algorithm": "mgf1",
                            "parameters": {"algorithm": "sha256"},
                        },
                    }
                ),
            }
        )
        return algorithm, OAEP(mgf=MGF1(hashes.SHA256()), algorithm=hashes.SHA256(), label=None)

    algorithm = cms.KeyEncryptionAlgorithm(
        {"algorithm": cms.KeyEncryptionAlgorithmId("rsaes_pkcs1v15")}
    )
    return algorithm, PKCS1v15()


def _format_ktri(
    rid: cms.RecipientIdentifier,
    algorithm: cms.KeyEncryptionAlgorithm,
    encrypted_key: bytes,
) -> cms.RecipientInfo:
    # version 0 because the recipient is identified by issuer and serial number
    return cms.RecipientInfo(
        {
            "ktri": cms.KeyTransRecipientInfo(
                {
                    "version": 0,
                    "rid": rid,
                    "key_encryption_algorithm": algorithm,
                    "encrypted_key": encrypted_key,
                }
            )
        }
    )


# ─────────────────────── Envelope ───────────────────────


class AuthEnvelope:
    """
    One AES-GCM AuthEnvelopedData under construction.

    Usage:
        with AuthEnvelope(ContentEncryptionAlgorithm.AES_128_GCM) as envelope:
            encoded = envelope.add_recipient(cert).finalize(b"message").to_pem()

    Calls out of order raise RuntimeError. An envelope accepts exactly one
    recipient, is finalized exactly once, and cannot be reused after close().
    """

    def __init__(
        self,
        algorithm: ContentEncryptionAlgorithm | str,
        key_transport: KeyTransport | str = KeyTransport.RSAES_PKCS1V15,
    ) -> None:
        self._algorithm = ContentEncryptionAlgorithm(algorithm)
        self._key_transport = KeyTransport(key_transport)
        self._content_key = bytearray(secrets.token_bytes(self._algorithm.key_size))
        self._nonce = secrets.token_bytes(GCM_NONCE_SIZE)
        self._recipient: _Recipient | None = None
        self._content_info: cms.ContentInfo | None = None
        self._state = _EnvelopeState.PARTIAL

    @property
    def algorithm(self) -> ContentEncryptionAlgorithm:
        return self._algorithm

    @property
    def is_finalized(self) -> bool:
        return self._state is _EnvelopeState.FINALIZED

    def _require_state(self, expected: _EnvelopeState, action: str) -> None:
        if self._state is not expected:
            raise RuntimeError(
                f"Cannot {action}: envelope {_STATE_DESCRIPTIONS[self._state]}"
            )

    def add_recipient(self, certificate: asn1_x509.Certificate) -> AuthEnvelope:
        """Attach the single key-transport recipient. Only RSA keys are supported."""
        self._require_state(_EnvelopeState.PARTIAL, "add recipient")

        public_key_info = certificate.public_key
        public_key = serialization.load_der_public_key(public_key_info.dump())
        if not isinstance(public_key, RSAPublicKey):
            raise TypeError(
                f"Unsupported recipient key type {public_key_info.algorithm!r}, "
                f"key transport requires an RSA public key"
            )

        rid = cms.RecipientIdentifier(
            {
                "issuer_and_serial_number": cms.IssuerAndSerialNumber(
                    {"issuer": certificate.issuer, "serial_number": certificate.serial_number}
                )
            }
        )
        self._recipient = _Recipient(rid=rid, public_key=public_key)
        self._state = _EnvelopeState.RECIPIENT_ADDED
        return self

    def finalize(self, content: bytes) -> AuthEnvelope:
        """Encrypt `content` and wrap the content key for the recipient."""
        self._require_state(_EnvelopeState.RECIPIENT_ADDED, "finalize")
        assert self._recipient is not None

        sealed = AESGCM(self._content_key).encrypt(self._nonce, content, None)
        ciphertext, mac = sealed[:-GCM_TAG_SIZE], sealed[-GCM_TAG_SIZE:]

        key_algorithm, padding = _key_transport_scheme(self._key_transport)
        encrypted_key = self._recipient.public_key.encrypt(bytes(self._content_key), padding)

        content_encryption_algorithm = algos.EncryptionAlgorithm(
            {
                "algorithm": self._algorithm.oid,
                "parameters": GcmParameters(
                    {"aes_nonce": self._nonce, "aes_icvlen": GCM_TAG_SIZE}
                ),
            }
        )
        self._content_info = cms.ContentInfo(
            {
                "content_type": "authenticated_enveloped_data",
                "content": cms.AuthEnvelopedData(
                    {
                        # v0: no originatorInfo, only version 0 ktri recipients
                        "version": "v0",
                        "recipient_infos": [
                            _format_ktri(self._recipient.rid, key_algorithm, encrypted_key)
                        ],
                        "auth_encrypted_content_info": cms.EncryptedContentInfo(
                            {
                                "content_type": "data",
                                "content_encryption_algorithm": content_encryption_algorithm,
                                "encrypted_content": ciphertext,
                            }
                        ),
                        "mac": mac,
                    }
                ),
            }
        )
        self._state = _EnvelopeState.FINALIZED
        return self

    def to_der(self) -> bytes:
        self._require_state(_EnvelopeState.FINALIZED, "encode")
        assert self._content_info is not None
        return self._content_info.dump()

    def to_pem(self) -> bytes:
        return pem.armor(CMS_PEM_LABEL, self.to_der())

    def close(self) -> None:
        """Zero the content key and drop all envelope state. Safe to call twice."""
        for index in range(len(self._content_key)):
            self._content_key[index] = 0
        self._recipient = None
        self._content_info = None
        self._state = _EnvelopeState.CLOSED

    def __enter__(self) -> AuthEnvelope:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


# ─────────────────────── Certificate Conversion ───────────────────────


def _to_cms_certificate(der_bytes: bytes) -> asn1_x509.Certificate:
    """
    Load DER bytes as an asn1crypto Certificate.

    asn1crypto parses lazily, so the fields the recipient step reads are
    touched here to surface malformed input at this stage.
    """
    if not der_bytes:
        raise ValueError("Invalid certificate input: empty DER payload")
    cms_certificate = asn1_x509.Certificate.load(der_bytes, strict=True)
    _ = (
        cms_certificate.serial_number,
        cms_certificate.issuer.dump(),
        cms_certificate.public_key.algorithm,
    )
    return cms_certificate


# ─────────────────────── Public Encryptor Class ───────────────────────


class CmsAuthEnvelopeEncryptor:
    """
    Encrypt a message for one certificate as PEM-wrapped CMS AuthEnvelopedData.

    Implements the EnvelopeEncryptor port.
    Each step is wrapped with Result.from_computation() under its own ErrorCode,
    so the failing stage is visible to the caller.
    """

    def __init__(
        self,
        algorithm: ContentEncryptionAlgorithm | str = ContentEncryptionAlgorithm.AES_128_GCM,
        key_transport: KeyTransport | str = KeyTransport.RSAES_PKCS1V15,
    ) -> None:
        self._algorithm = algorithm
        self._key_transport = key_transport

    def encrypt(self, data: bytes, certificate: LoadedCertificate) -> Result[bytes]:
        """
        Run the partial → add recipient → finalize → encode sequence.

        Returns Result[bytes] with the PEM-encoded envelope on success.
        """
        return Result.from_computation(
            lambda: AuthEnvelope(self._algorithm, self._key_transport),
            ErrorCode.CRYPTO_INIT_ERROR,
            "CMS envelope initialisation failed",
        ).flat_map(lambda envelope: self._seal(envelope, data, certificate))

    def _seal(
        self,
        envelope: AuthEnvelope,
        data: bytes,
        certificate: LoadedCertificate,
    ) -> Result[bytes]:
        with envelope:
            return (
                Result.from_computation(
                    lambda: _to_cms_certificate(certificate.der),
                    ErrorCode.CERTIFICATE_LOAD_ERROR,
                    "Load cert: error parsing DER certificate",
                )
                .flat_map(
                    lambda cms_certificate: Result.from_computation(
                        lambda: envelope.add_recipient(cms_certificate),
                        ErrorCode.RECIPIENT_ERROR,
                        "Adding CMS recipient failed",
                    )
                )
                .flat_map(
                    lambda _: Result.from_computation(
                        lambda: envelope.finalize(data),
                        ErrorCode.FINALIZATION_ERROR,
                        "CMS finalization failed",
                    )
                )
                .flat_map(
                    lambda _: Result.from_computation(
                        envelope.to_pem,
                        ErrorCode.ENCODING_ERROR,
                        "CMS PEM encoding failed",
                    )
                )
                .peek(
                    lambda encoded: log.info(
                        "encryptor.complete",
                        recipient=certificate.subject,
                        algorithm=envelope.algorithm.value,
                        content_bytes=len(data),
                        encoded_bytes=len(encoded),
                    )
                )
            )
