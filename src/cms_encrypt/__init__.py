"""
cms_encrypt — encrypt a message for an X.509 certificate holder as CMS.

Reads a PEM certificate, builds a CMS AuthEnvelopedData structure with
AES-128-GCM content encryption and a single RSA key-transport recipient,
and emits it PEM-wrapped ("-----BEGIN CMS-----").

Built on Railway-Oriented Programming: every stage returns a Result,
and failures carry a stage-specific ErrorCode.
"""

__version__ = "0.1.0"
