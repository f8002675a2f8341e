"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables prefixed with CMS_ENCRYPT_
  - Fall back to the project's .env file
  - Validate types and constraints before any file is touched

Command-line flags carry the per-run inputs (certificate, message, output
path); settings carry the envelope policy and logging, which rarely change
between runs.

env_nested_delimiter="__" maps CMS_ENCRYPT_ENVELOPE__KEY_TRANSPORT to
envelope.key_transport, CMS_ENCRYPT_OUTPUT__FILE_MODE to output.file_mode, etc.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cms_encrypt.domain.models import ContentEncryptionAlgorithm, KeyTransport

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class EnvelopeSettings(BaseModel):
    """CMS envelope policy: content cipher and RSA key transport."""

    content_encryption_algorithm: ContentEncryptionAlgorithm = Field(
        default=ContentEncryptionAlgorithm.AES_128_GCM,
        description="AES-GCM variant used for the content",
    )
    key_transport: KeyTransport = Field(
        default=KeyTransport.RSAES_PKCS1V15,
        description="RSA padding used to wrap the content key",
    )


class OutputSettings(BaseModel):
    """Settings for files written with -out."""

    file_mode: int = Field(
        default=0o644,
        description="Permission bits applied when the output file is created",
    )

    @field_validator("file_mode")
    @classmethod
    def validate_file_mode(cls, value: int) -> int:
        """Reject values that are not plain permission bits (0..0o777)."""
        if not 0 <= value <= 0o777:
            raise ValueError(f"file_mode must be between 0 and 0o777, got {oct(value)}")
        return value


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="CMS_ENCRYPT_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    envelope: EnvelopeSettings = Field(default_factory=lambda: EnvelopeSettings())
    output: OutputSettings = Field(default_factory=lambda: OutputSettings())

    log_level: str = Field(default="WARNING")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Accept standard logging level names, case-insensitively."""
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value!r}")
        return level
