"""
ASN.1 schema for the AES-GCM algorithm parameters (RFC 5084).

asn1crypto ships AuthEnvelopedData (RFC 5083) and maps the AES-GCM OIDs in
EncryptionAlgorithmId, but has no parameter spec for them, so
EncryptionAlgorithm["parameters"] stays an untyped Any. GcmParameters is
placed there when building an envelope and parsed from it when reading one.
"""

from __future__ import annotations

from asn1crypto import algos, core

# GCMParameters ::= SEQUENCE {
#     aes-nonce   OCTET STRING,  -- recommended size is 12 octets
#     aes-ICVlen  AES-GCM-ICVlen DEFAULT 12
# }


class GcmParameters(core.Sequence):  # type: ignore[misc]
    """RFC 5084 GCMParameters."""

    _fields = [
        ("aes_nonce", core.OctetString),
        ("aes_icvlen", core.Integer, {"default": 12}),
    ]


def gcm_parameters_of(algorithm: algos.EncryptionAlgorithm) -> GcmParameters:
    """Parse the GCMParameters carried by a content-encryption AlgorithmIdentifier."""
    parameters = algorithm["parameters"]
    if isinstance(parameters, core.Void):
        raise ValueError("AES-GCM algorithm identifier has no GCMParameters")
    return GcmParameters.load(parameters.dump())
