"""
Failure description — structured error information for the failure track.

Every stage of the encryption run maps its errors onto one ErrorCode, so the
top level can report which stage failed without inspecting exception types.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique


@unique
class ErrorCode(Enum):
    """
    Stage-specific error codes, ordered as the stages run.

    Loading:     IO, FORMAT, PARSE
    Encrypting:  CRYPTO_INIT, CERTIFICATE_LOAD, RECIPIENT, FINALIZATION, ENCODING
    Decrypting:  DECRYPTION
    """

    IO_ERROR = "IO_ERROR"
    """File could not be read or written."""

    FORMAT_ERROR = "FORMAT_ERROR"
    """No PEM block, or a PEM block with the wrong label."""

    PARSE_ERROR = "PARSE_ERROR"
    """DER payload is not a valid X.509 certificate or CMS structure."""

    CRYPTO_INIT_ERROR = "CRYPTO_INIT_ERROR"
    """Partial envelope could not be initialised."""

    CERTIFICATE_LOAD_ERROR = "CERTIFICATE_LOAD_ERROR"
    """Certificate could not be converted for the CMS layer."""

    RECIPIENT_ERROR = "RECIPIENT_ERROR"
    """Recipient could not be attached or its key could not be used."""

    FINALIZATION_ERROR = "FINALIZATION_ERROR"
    """Content encryption or key wrapping failed."""

    ENCODING_ERROR = "ENCODING_ERROR"
    """Finalized envelope could not be serialized."""

    DECRYPTION_ERROR = "DECRYPTION_ERROR"
    """Authenticated decryption failed (wrong key or tampered content)."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor carrying error code, message, optional exception, and timestamp.

    >>> desc = FailureDescription(ErrorCode.IO_ERROR, "Failed to read certificate")
    >>> desc.code
    <ErrorCode.IO_ERROR: 'IO_ERROR'>
    """

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def detail(self) -> str:
        """
        Stage message followed by the underlying library error, if any.

        This is the text shown to the operator when a run fails.
        """
        if self.exception is None:
            return self.message
        reason = str(self.exception) or type(self.exception).__name__
        return f"{self.message}: {reason}"

    def full_stack_trace(self) -> str:
        """Full stack trace string including the message and exception chain."""
        if self.exception is None:
            return self.message
        tb = "".join(
            traceback.format_exception(
                type(self.exception), self.exception, self.exception.__traceback__
            )
        )
        return f"{self.message}\n{tb}"
