"""Dispatch-specific exceptions."""

from __future__ import annotations


class DispatchError(Exception):
    """Base exception for all httpdispatch failures."""

    def __init__(
        self,
        message: str,
        *,
        method: str | None = None,
        url: str | None = None,
        attempts: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.url = url
        self.attempts = attempts
        self.cause = cause

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        if self.method is None or self.url is None:
            return str(self.args[0])
        return f"{self.method} {self.url}: {self.args[0]}"


class DispatchValidationError(DispatchError, ValueError):
    """Raised when request options are invalid."""


class InvalidURLError(DispatchValidationError):
    """Raised when the target URL cannot be parsed or is not an absolute http(s) URL."""


class QueryParamTypeError(DispatchError, TypeError):
    """Raised when a query parameter value cannot be rendered as a string."""


class RequestCancelledError(DispatchError):
    """Raised when the caller's context is cancelled before the call completes."""


class DeadlineExceededError(RequestCancelledError):
    """Raised when the caller's context deadline passes before the call completes."""
