"""
Pipeline — the ROP pipeline orchestrating one encryption run.

All I/O is injected via ports (Protocol interfaces):

  load(certificate_path)
    → encrypt(message, certificate)
      → write(encoded)

Each stage returns Result[T]. Failures short-circuit automatically
through the railway — no try/except needed.
"""

from __future__ import annotations

from cms_encrypt.domain.models import EncryptionRequest
from cms_encrypt.domain.ports import CertificateLoader, EnvelopeEncryptor, EnvelopeSink
from cms_encrypt.result import Result


def run_pipeline(
    request: EncryptionRequest,
    loader: CertificateLoader,
    encryptor: EnvelopeEncryptor,
    sink: EnvelopeSink,
) -> Result[int]:
    """
    Load the recipient certificate, encrypt the message for it, write the envelope.

    Returns Result[int] with the number of bytes written on success,
    or the failure from the first stage that failed.
    """
    return (
        loader.load(request.certificate_path)
        .flat_map(lambda certificate: encryptor.encrypt(request.message, certificate))
        .flat_map(sink.write)
    )
