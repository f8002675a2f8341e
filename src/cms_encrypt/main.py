"""
Application entry point — parses flags, wires dependencies, runs the pipeline.

Composition root: creates concrete adapters and injects them into the
pipeline. This is the ONLY place where concrete classes are instantiated.
Everything else depends on Protocol interfaces.

Responsibilities:
  1. Parse -cert / -message / -out
  2. Load and validate configuration from environment
  3. Configure structlog (stderr, so stdout carries only command output)
  4. Create concrete adapters (loader, encryptor, sink)
  5. Run the pipeline and report the outcome

Exit codes: 0 on success, 1 when the run fails, 2 when a required flag is missing.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence
from pathlib import Path

import structlog
from pydantic import ValidationError

from cms_encrypt import __version__
from cms_encrypt.adapters.certificate_loader import PemCertificateLoader
from cms_encrypt.adapters.cms_encryptor import CmsAuthEnvelopeEncryptor
from cms_encrypt.adapters.output import ConsoleEnvelopeSink, FileEnvelopeSink
from cms_encrypt.config import AppSettings
from cms_encrypt.domain.models import EncryptionRequest
from cms_encrypt.domain.ports import EnvelopeSink
from cms_encrypt.failure import FailureDescription
from cms_encrypt.pipeline import run_pipeline

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for structured console logging on stderr.

    Loggers are not cached so a reconfiguration (or a swapped sys.stderr)
    takes effect for module-level loggers too.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cms-encrypt",
        description="Encrypt a message for an X.509 certificate as CMS (AES-128-GCM).",
    )
    parser.add_argument("-cert", dest="cert", default="", help="Certificate path")
    parser.add_argument(
        "-message",
        dest="message",
        default="",
        help="Message to encrypt (use -message=-text for a value starting with a dash)",
    )
    parser.add_argument("-out", dest="out", default="", help="Output file")
    parser.add_argument("-version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _create_adapters(
    settings: AppSettings,
    request: EncryptionRequest,
) -> tuple[PemCertificateLoader, CmsAuthEnvelopeEncryptor, EnvelopeSink]:
    """Instantiate the loader, the encryptor and the sink chosen by -out."""
    loader = PemCertificateLoader()
    encryptor = CmsAuthEnvelopeEncryptor(
        algorithm=settings.envelope.content_encryption_algorithm,
        key_transport=settings.envelope.key_transport,
    )
    sink: EnvelopeSink
    if request.out_file is not None:
        sink = FileEnvelopeSink(request.out_file, mode=settings.output.file_mode)
    else:
        sink = ConsoleEnvelopeSink()
    return loader, encryptor, sink


def _report_success(request: EncryptionRequest) -> int:
    if request.out_file is not None:
        print(f"Wrote CMS content to file: {request.out_file}")  # noqa: T201
    return EXIT_OK


def _report_failure(error: FailureDescription) -> int:
    log = structlog.get_logger()
    log.debug("app.failure_trace", trace=error.full_stack_trace())
    log.error("app.run_failed", code=error.code.value, error=error.detail())
    print(f"Error running the command: {error.detail()}")  # noqa: T201
    return EXIT_FAILURE


def main(argv: Sequence[str] | None = None) -> int:
    """Parse flags, run one encryption and return the process exit code."""
    args = build_arg_parser().parse_args(argv)

    if not args.cert:
        print("missing required argument: -cert")  # noqa: T201
        return EXIT_USAGE
    if not args.message:
        print("missing required argument: -message")  # noqa: T201
        return EXIT_USAGE

    try:
        settings = AppSettings()
    except ValidationError as e:
        print(f"FATAL: Configuration error: {e}", file=sys.stderr)  # noqa: T201
        return EXIT_FAILURE

    configure_structlog(settings.log_level)
    log = structlog.get_logger()

    request = EncryptionRequest(
        certificate_path=Path(args.cert),
        message=os.fsencode(args.message),
        out_file=Path(args.out) if args.out else None,
    )

    log.info(
        "app.starting",
        version=__version__,
        certificate=str(request.certificate_path),
        out_file=str(request.out_file) if request.out_file else None,
        algorithm=settings.envelope.content_encryption_algorithm.value,
        key_transport=settings.envelope.key_transport.value,
    )

    loader, encryptor, sink = _create_adapters(settings, request)
    result = run_pipeline(request, loader=loader, encryptor=encryptor, sink=sink)

    return result.either(
        on_success=lambda _: _report_success(request),
        on_failure=_report_failure,
    )


if __name__ == "__main__":
    sys.exit(main())
