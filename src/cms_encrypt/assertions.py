"""
Result assertions for tests.

    from cms_encrypt.assertions import ResultAssertions

    def test_missing_file(loader):
        ResultAssertions.assert_failure(loader.load(Path("missing.pem")), ErrorCode.IO_ERROR)

Assertion messages show the failing stage and the full detail line, as the
CLI would print it.
"""

from __future__ import annotations

from typing import Any, TypeVar

from cms_encrypt.failure import ErrorCode, FailureDescription
from cms_encrypt.result import Result

T = TypeVar("T")


def _describe(result: Result[Any]) -> str:
    if result.is_success():
        return f"Success({result.value()!r})"
    error = result.error()
    return f"Failure[{error.code.value}] {error.detail()!r}"


class ResultAssertions:
    @staticmethod
    def assert_success(result: Result[T], message: str = "") -> T:
        """Assert a Success and return its value."""
        assert result.is_success(), f"expected Success, got {_describe(result)} {message}".rstrip()
        return result.value()

    @staticmethod
    def assert_failure(
        result: Result[T],
        expected_code: ErrorCode | None = None,
        message: str = "",
    ) -> FailureDescription:
        """Assert a Failure (optionally of `expected_code`) and return its description."""
        assert result.is_failure(), f"expected Failure, got {_describe(result)} {message}".rstrip()
        error = result.error()
        if expected_code is not None:
            assert error.code is expected_code, (
                f"expected {expected_code.value}, got {_describe(result)} {message}".rstrip()
            )
        return error

    @staticmethod
    def assert_failure_message_contains(result: Result[T], substring: str) -> None:
        """Case-insensitive check on the stage message (not the exception text)."""
        error = ResultAssertions.assert_failure(result)
        assert substring.lower() in error.message.lower(), (
            f"{substring!r} not in failure message {error.message!r}"
        )

    @staticmethod
    def assert_success_value(result: Result[T], expected_value: Any) -> None:
        value = ResultAssertions.assert_success(result)
        assert value == expected_value, f"expected {expected_value!r}, got {value!r}"
