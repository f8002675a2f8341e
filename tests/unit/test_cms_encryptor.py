"""
Unit tests for the CMS AuthEnvelopedData encryptor.

Test categories:
  - Output shape: PEM armor, AuthEnvelopedData structure, GCM parameters
  - Round trip: CmsAuthEnvelopeDecryptor recovers the message
  - Stage failures: each stage maps to its own ErrorCode
  - AuthEnvelope sequencing: out-of-order calls raise, close() zeroes the key
"""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest
from asn1crypto import cms, pem
from asn1crypto import x509 as asn1_x509
from cryptography.hazmat.primitives.asymmetric import rsa

from cms_encrypt.adapters import cms_encryptor
from cms_encrypt.adapters.certificate_loader import PemCertificateLoader
from cms_encrypt.adapters.cms_decryptor import CmsAuthEnvelopeDecryptor
from cms_encrypt.adapters.cms_encryptor import (
    AuthEnvelope,
    CmsAuthEnvelopeEncryptor,
)
from cms_encrypt.adapters.cms_schema import gcm_parameters_of
from cms_encrypt.assertions import ResultAssertions
from cms_encrypt.domain.models import (
    ContentEncryptionAlgorithm,
    KeyTransport,
    LoadedCertificate,
)
from cms_encrypt.failure import ErrorCode

MESSAGE = b"Hello, CMS recipient"


def _parse(encoded: bytes) -> cms.ContentInfo:
    label, _, der_bytes = pem.unarmor(encoded)
    assert label == "CMS"
    return cms.ContentInfo.load(der_bytes)


@pytest.fixture()
def encryptor() -> CmsAuthEnvelopeEncryptor:
    return CmsAuthEnvelopeEncryptor()


@pytest.fixture()
def cms_certificate(rsa_certificate_der: bytes) -> asn1_x509.Certificate:
    return asn1_x509.Certificate.load(rsa_certificate_der)


# ─────────────────────── Output Shape ───────────────────────


class TestEnvelopeOutput:
    def test_output_is_cms_pem(
        self, encryptor: CmsAuthEnvelopeEncryptor, loaded_certificate: LoadedCertificate
    ) -> None:
        """
        GIVEN a loaded RSA certificate
        WHEN a message is encrypted for it
        THEN the output is a single PEM block labelled CMS.
        """
        encoded = ResultAssertions.assert_success(encryptor.encrypt(MESSAGE, loaded_certificate))
        assert encoded.startswith(b"-----BEGIN CMS-----\n")
        assert encoded.rstrip().endswith(b"-----END CMS-----")
        assert MESSAGE not in encoded

    def test_structure_is_auth_enveloped_data(
        self,
        encryptor: CmsAuthEnvelopeEncryptor,
        loaded_certificate: LoadedCertificate,
    ) -> None:
        """
        GIVEN an encrypted envelope
        WHEN its DER is parsed
        THEN it is AuthEnvelopedData v0 with one issuer-and-serial ktri recipient
             and AES-128-GCM parameters (12-byte nonce, 16-byte tag).
        """
        encoded = ResultAssertions.assert_success(encryptor.encrypt(MESSAGE, loaded_certificate))
        content_info = _parse(encoded)
        assert content_info["content_type"].native == "authenticated_enveloped_data"

        data = content_info["content"]
        assert isinstance(data, cms.AuthEnvelopedData)
        assert data["version"].native == "v0"

        recipients = list(data["recipient_infos"])
        assert len(recipients) == 1
        assert recipients[0].name == "ktri"
        ktri = recipients[0].chosen
        assert ktri["version"].native == "v0"
        assert ktri["key_encryption_algorithm"]["algorithm"].native == "rsaes_pkcs1v15"
        assert len(ktri["encrypted_key"].native) == 256
        rid = ktri["rid"]
        assert rid.name == "issuer_and_serial_number"
        assert rid.chosen["serial_number"].native == loaded_certificate.serial_number

        content = data["auth_encrypted_content_info"]
        assert content["content_type"].native == "data"
        algorithm = content["content_encryption_algorithm"]
        assert algorithm["algorithm"].dotted == ContentEncryptionAlgorithm.AES_128_GCM.oid
        gcm_parameters = gcm_parameters_of(algorithm)
        assert len(gcm_parameters["aes_nonce"].native) == 12
        assert gcm_parameters["aes_icvlen"].native == 16
        assert len(content["encrypted_content"].native) == len(MESSAGE)
        assert len(data["mac"].native) == 16

    def test_oaep_key_transport_is_declared(self, loaded_certificate: LoadedCertificate) -> None:
        encryptor = CmsAuthEnvelopeEncryptor(key_transport=KeyTransport.RSAES_OAEP)
        encoded = ResultAssertions.assert_success(encryptor.encrypt(MESSAGE, loaded_certificate))
        ktri = _parse(encoded)["content"]["recipient_infos"][0].chosen
        algorithm = ktri["key_encryption_algorithm"]
        assert algorithm["algorithm"].native == "rsaes_oaep"
        assert algorithm["parameters"]["hash_algorithm"]["algorithm"].native == "sha256"

    def test_each_run_uses_fresh_key_and_nonce(
        self, encryptor: CmsAuthEnvelopeEncryptor, loaded_certificate: LoadedCertificate
    ) -> None:
        """
        GIVEN the same message and certificate
        WHEN encrypted twice
        THEN nonce and ciphertext differ between the runs.
        """
        first = _parse(encryptor.encrypt(MESSAGE, loaded_certificate).value())
        second = _parse(encryptor.encrypt(MESSAGE, loaded_certificate).value())

        def nonce(info: cms.ContentInfo) -> bytes:
            content = info["content"]["auth_encrypted_content_info"]
            return gcm_parameters_of(content["content_encryption_algorithm"])["aes_nonce"].native

        assert nonce(first) != nonce(second)
        assert first.dump() != second.dump()


# ─────────────────────── Round Trip ───────────────────────


class TestRoundTrip:
    @pytest.mark.parametrize(
        ("algorithm", "key_transport"),
        [
            (ContentEncryptionAlgorithm.AES_128_GCM, KeyTransport.RSAES_PKCS1V15),
            (ContentEncryptionAlgorithm.AES_128_GCM, KeyTransport.RSAES_OAEP),
            (ContentEncryptionAlgorithm.AES_256_GCM, KeyTransport.RSAES_PKCS1V15),
        ],
    )
    def test_decryptor_recovers_message(
        self,
        algorithm: ContentEncryptionAlgorithm,
        key_transport: KeyTransport,
        loaded_certificate: LoadedCertificate,
        rsa_key: rsa.RSAPrivateKey,
    ) -> None:
        encryptor = CmsAuthEnvelopeEncryptor(algorithm=algorithm, key_transport=key_transport)
        encoded = ResultAssertions.assert_success(encryptor.encrypt(MESSAGE, loaded_certificate))

        decrypted = CmsAuthEnvelopeDecryptor(rsa_key, loaded_certificate).decrypt(encoded)
        ResultAssertions.assert_success_value(decrypted, MESSAGE)

    def test_unicode_message(
        self,
        encryptor: CmsAuthEnvelopeEncryptor,
        loaded_certificate: LoadedCertificate,
        rsa_key: rsa.RSAPrivateKey,
    ) -> None:
        message = "Grüße, 世界".encode()
        encoded = ResultAssertions.assert_success(encryptor.encrypt(message, loaded_certificate))
        decrypted = CmsAuthEnvelopeDecryptor(rsa_key).decrypt(encoded)
        ResultAssertions.assert_success_value(decrypted, message)

    def test_empty_message(
        self,
        encryptor: CmsAuthEnvelopeEncryptor,
        loaded_certificate: LoadedCertificate,
        rsa_key: rsa.RSAPrivateKey,
    ) -> None:
        """
        GIVEN an empty message
        WHEN encrypted
        THEN a valid envelope is produced and decrypts to empty content.
        """
        encoded = ResultAssertions.assert_success(encryptor.encrypt(b"", loaded_certificate))
        decrypted = CmsAuthEnvelopeDecryptor(rsa_key, loaded_certificate).decrypt(encoded)
        ResultAssertions.assert_success_value(decrypted, b"")

    def test_expired_certificate_is_still_a_recipient(
        self,
        encryptor: CmsAuthEnvelopeEncryptor,
        loaded_certificate: LoadedCertificate,
    ) -> None:
        expired = dataclasses.replace(
            loaded_certificate, not_valid_after=loaded_certificate.not_valid_before
        )
        ResultAssertions.assert_success(encryptor.encrypt(MESSAGE, expired))


# ─────────────────────── Stage Failures ───────────────────────


class TestStageFailures:
    def test_unknown_algorithm_is_crypto_init_error(
        self, loaded_certificate: LoadedCertificate
    ) -> None:
        """
        GIVEN an encryptor configured with a non-GCM algorithm name
        WHEN encrypt is called
        THEN the envelope cannot be initialised: CRYPTO_INIT_ERROR.
        """
        encryptor = CmsAuthEnvelopeEncryptor(algorithm="aes128_cbc")
        ResultAssertions.assert_failure(
            encryptor.encrypt(MESSAGE, loaded_certificate), ErrorCode.CRYPTO_INIT_ERROR
        )

    def test_empty_der_is_certificate_load_error(
        self, encryptor: CmsAuthEnvelopeEncryptor, loaded_certificate: LoadedCertificate
    ) -> None:
        broken = dataclasses.replace(loaded_certificate, der=b"")
        result = encryptor.encrypt(MESSAGE, broken)
        ResultAssertions.assert_failure(result, ErrorCode.CERTIFICATE_LOAD_ERROR)
        ResultAssertions.assert_failure_message_contains(result, "Load cert")

    def test_non_sequence_der_is_certificate_load_error(
        self, encryptor: CmsAuthEnvelopeEncryptor, loaded_certificate: LoadedCertificate
    ) -> None:
        broken = dataclasses.replace(loaded_certificate, der=b"\x04\x03abc")
        ResultAssertions.assert_failure(
            encryptor.encrypt(MESSAGE, broken), ErrorCode.CERTIFICATE_LOAD_ERROR
        )

    def test_ec_certificate_is_recipient_error(
        self, encryptor: CmsAuthEnvelopeEncryptor, ec_certificate_path: Path
    ) -> None:
        """
        GIVEN a certificate with an EC public key
        WHEN encrypt is called
        THEN the recipient cannot be added: RECIPIENT_ERROR.
        """
        ec_certificate = ResultAssertions.assert_success(
            PemCertificateLoader().load(ec_certificate_path)
        )
        result = encryptor.encrypt(MESSAGE, ec_certificate)
        error = ResultAssertions.assert_failure(result, ErrorCode.RECIPIENT_ERROR)
        assert isinstance(error.exception, TypeError)
        assert "RSA" in error.detail()


# ─────────────────────── AuthEnvelope Sequencing ───────────────────────


class TestAuthEnvelopeSequencing:
    def test_finalize_without_recipient_raises(self) -> None:
        with AuthEnvelope(ContentEncryptionAlgorithm.AES_128_GCM) as envelope:
            with pytest.raises(RuntimeError, match="has no recipient yet"):
                envelope.finalize(MESSAGE)

    def test_second_recipient_raises(self, cms_certificate: asn1_x509.Certificate) -> None:
        with AuthEnvelope(ContentEncryptionAlgorithm.AES_128_GCM) as envelope:
            envelope.add_recipient(cms_certificate)
            with pytest.raises(RuntimeError, match="already has a recipient"):
                envelope.add_recipient(cms_certificate)

    def test_encode_before_finalize_raises(self, cms_certificate: asn1_x509.Certificate) -> None:
        with AuthEnvelope(ContentEncryptionAlgorithm.AES_128_GCM) as envelope:
            envelope.add_recipient(cms_certificate)
            with pytest.raises(RuntimeError, match="Cannot encode"):
                envelope.to_der()

    def test_finalize_twice_raises(self, cms_certificate: asn1_x509.Certificate) -> None:
        with AuthEnvelope(ContentEncryptionAlgorithm.AES_128_GCM) as envelope:
            envelope.add_recipient(cms_certificate).finalize(MESSAGE)
            assert envelope.is_finalized
            with pytest.raises(RuntimeError, match="already finalized"):
                envelope.finalize(MESSAGE)

    def test_der_and_pem_carry_the_same_envelope(
        self, cms_certificate: asn1_x509.Certificate
    ) -> None:
        with AuthEnvelope("aes128_gcm") as envelope:
            envelope.add_recipient(cms_certificate).finalize(MESSAGE)
            label, _, der_bytes = pem.unarmor(envelope.to_pem())
            assert label == "CMS"
            assert der_bytes == envelope.to_der()

    def test_close_zeroes_key_and_blocks_reuse(
        self, cms_certificate: asn1_x509.Certificate
    ) -> None:
        """
        GIVEN a finalized envelope
        WHEN its `with` block exits
        THEN the content key is zeroed and every further call raises.
        """
        with AuthEnvelope(ContentEncryptionAlgorithm.AES_128_GCM) as envelope:
            envelope.add_recipient(cms_certificate).finalize(MESSAGE)

        assert envelope._content_key == bytearray(16)
        with pytest.raises(RuntimeError, match="is closed"):
            envelope.to_der()
        with pytest.raises(RuntimeError, match="is closed"):
            envelope.add_recipient(cms_certificate)

    def test_content_cipher_uses_the_zeroed_key_buffer(
        self, monkeypatch: pytest.MonkeyPatch, cms_certificate: asn1_x509.Certificate
    ) -> None:
        """
        GIVEN an envelope being finalized
        WHEN the AES-GCM cipher is created
        THEN it receives the envelope's own key bytearray, which is zeroed on exit.
        """
        keys_seen: list[object] = []
        real_aesgcm = cms_encryptor.AESGCM

        def recording_aesgcm(key: bytearray) -> object:
            keys_seen.append(key)
            return real_aesgcm(key)

        monkeypatch.setattr(cms_encryptor, "AESGCM", recording_aesgcm)

        with AuthEnvelope(ContentEncryptionAlgorithm.AES_128_GCM) as envelope:
            envelope.add_recipient(cms_certificate).finalize(MESSAGE)

        assert len(keys_seen) == 1
        assert keys_seen[0] is envelope._content_key
        assert keys_seen[0] == bytearray(16)

    def test_unknown_algorithm_raises_value_error(self) -> None:
        with pytest.raises(ValueError):
            AuthEnvelope("aes128_cbc")
