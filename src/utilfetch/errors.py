"""Error hierarchy and diagnostics for utilfetch.

Errors are raised inside the fetch pipeline and converted to diagnostics at
the boundary of :meth:`utilfetch.Fetcher.fetch`, so callers always receive
data rather than exceptions.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class Severity(enum.Enum):
    """Diagnostic severity."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A single problem report.

    Attributes:
        severity: Whether the diagnostic is fatal for the invocation.
        kind: Short machine-usable name, e.g. ``TLSConfigError``.
        summary: One-line human-readable title.
        detail: Longer description with enough context to fix the input.

    """

    severity: Severity
    kind: str
    summary: str
    detail: str = ""

    @classmethod
    def error(cls, kind: str, summary: str, detail: str = "") -> Diagnostic:
        """Build an error diagnostic."""
        return cls(Severity.ERROR, kind, summary, detail)

    @classmethod
    def warning(cls, kind: str, summary: str, detail: str = "") -> Diagnostic:
        """Build a warning diagnostic."""
        return cls(Severity.WARNING, kind, summary, detail)


class Diagnostics(list[Diagnostic]):
    """Ordered collection of diagnostics."""

    def has_error(self) -> bool:
        """Return True if any diagnostic is an error."""
        return any(d.severity is Severity.ERROR for d in self)

    def errors(self) -> list[Diagnostic]:
        """Return the error diagnostics in order."""
        return [d for d in self if d.severity is Severity.ERROR]

    def warnings(self) -> list[Diagnostic]:
        """Return the warning diagnostics in order."""
        return [d for d in self if d.severity is Severity.WARNING]

    def kinds(self) -> list[str]:
        """Return the kind of every diagnostic in order."""
        return [d.kind for d in self]


class FetcherError(Exception):
    """Base exception for all utilfetch errors.

    Attributes:
        message: Human-readable error description.
        cause: The original exception that caused this error.
        url: The URL that was being fetched when the error occurred.

    """

    summary = "Error making request"

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        url: str | None = None,
    ) -> None:
        """Initialize FetcherError.

        Args:
            message: Human-readable error description.
            cause: The original exception that caused this error.
            url: The URL that was being fetched when the error occurred.

        """
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.url = url

    @property
    def kind(self) -> str:
        """Machine-usable name of the error."""
        return type(self).__name__

    def __str__(self) -> str:
        """Return a string representation of the error."""
        parts = [self.message]
        if self.url:
            parts.append(f"URL: {self.url}")
        if self.cause:
            parts.append(f"Caused by: {type(self.cause).__name__}: {self.cause}")
        return " | ".join(parts)

    def to_diagnostic(self) -> Diagnostic:
        """Convert the error into an error diagnostic."""
        return Diagnostic.error(self.kind, self.summary, str(self))


class TLSConfigError(FetcherError):
    """Malformed CA bundle or client key pair."""

    summary = "Error configuring TLS client"


class RequestBuildError(FetcherError):
    """The request could not be built from the given method, URL or body."""

    summary = "Error creating request"


class RequestError(FetcherError):
    """Transport-level failure or rejected response after retries.

    This includes network errors, DNS failures, connection issues and
    responses the retry policy never accepted.

    Attributes:
        status: HTTP status of the last response, if one was received.
        attempts: Number of attempts made before giving up.

    """

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        url: str | None = None,
        status: int | None = None,
        attempts: int | None = None,
    ) -> None:
        super().__init__(message, cause=cause, url=url)
        self.status = status
        self.attempts = attempts

    def __str__(self) -> str:
        """Return a string representation of the error."""
        parts = [self.message]
        if self.status:
            parts.append(f"Status: {self.status}")
        if self.url:
            parts.append(f"URL: {self.url}")
        if self.cause:
            parts.append(f"Caused by: {type(self.cause).__name__}: {self.cause}")
        return " | ".join(parts)


class RequestTimeoutError(RequestError):
    """Request execution exceeded the configured timeout."""


class RequestCancelledError(FetcherError):
    """The caller cancelled the fetch."""


class ResponseReadError(FetcherError):
    """Reading the response body failed after a successful status line."""

    summary = "Error reading response body"
