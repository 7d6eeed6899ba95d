"""Request and result types for utilfetch.

This module provides the frozen dataclasses that describe one fetch: the
declared request, its TLS and retry settings, and the observed result.
"""

from __future__ import annotations

import base64
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from aiohttp import hdrs

from .errors import Diagnostics

# HTTP method type - reuses aiohttp's method string constants
HttpMethod = str

ALLOWED_METHODS = frozenset({hdrs.METH_GET, hdrs.METH_HEAD, hdrs.METH_POST})


@dataclass(frozen=True)
class TLSConfig:
    """TLS trust and identity settings.

    Attributes:
        insecure: Disables verification of the server's certificate chain and hostname.
        ca_cert_pem: One or more PEM encoded CA certificates used as the only trust root.
        client_cert_pem: PEM encoded client certificate.
        client_key_pem: PEM encoded client private key.

    """

    insecure: bool = False
    ca_cert_pem: str | None = None
    client_cert_pem: str | None = None
    client_key_pem: str | None = None

    def __post_init__(self) -> None:
        if (self.client_cert_pem is None) != (self.client_key_pem is None):
            msg = "client_cert_pem and client_key_pem must be set together"
            raise ValueError(msg)


@dataclass(frozen=True)
class RetryConfig:
    """Retry bounds.

    Attributes:
        attempts: Number of retries after the first try; 2 means at most 3 tries.
        min_delay_ms: Minimum delay between tries. None uses the fetcher default.
        max_delay_ms: Maximum delay between tries. None uses the fetcher default.

    """

    attempts: int = 0
    min_delay_ms: int | None = None
    max_delay_ms: int | None = None

    def __post_init__(self) -> None:
        if self.attempts < 0:
            msg = f"retry attempts must be at least 0, got {self.attempts}"
            raise ValueError(msg)
        for name in ("min_delay_ms", "max_delay_ms"):
            value = getattr(self, name)
            if value is not None and value < 0:
                msg = f"{name} must be at least 0, got {value}"
                raise ValueError(msg)
        if (
            self.min_delay_ms is not None
            and self.max_delay_ms is not None
            and self.max_delay_ms < self.min_delay_ms
        ):
            msg = f"max_delay_ms ({self.max_delay_ms}) must be at least min_delay_ms ({self.min_delay_ms})"
            raise ValueError(msg)


@dataclass(frozen=True)
class RequestSpec:
    """A declared HTTP request.

    Attributes:
        url: Absolute ``http`` or ``https`` URL.
        method: One of GET, HEAD or POST. Empty means GET.
        headers: Request header names and values. A ``Host`` header overrides
            the Host sent to the server but not the connection target.
        body: Request payload. None sends no body at all.
        timeout_ms: Per-attempt timeout. None or <= 0 means no timeout.
        tls: TLS settings.
        retry: Retry settings. None means a single attempt.
        success_status_codes: Status codes accepted as success. Empty uses the
            default policy.

    """

    url: str
    method: HttpMethod = hdrs.METH_GET
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str | None = None
    timeout_ms: int | None = None
    tls: TLSConfig | None = None
    retry: RetryConfig | None = None
    success_status_codes: frozenset[int] = frozenset()

    def __post_init__(self) -> None:
        method = (self.method or hdrs.METH_GET).upper()
        if method not in ALLOWED_METHODS:
            msg = f"unsupported method {self.method!r}, expected one of {sorted(ALLOWED_METHODS)}"
            raise ValueError(msg)
        object.__setattr__(self, "method", method)
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        object.__setattr__(self, "success_status_codes", frozenset(self.success_status_codes))

    @property
    def timeout_seconds(self) -> float | None:
        """Timeout in seconds, or None when no timeout applies."""
        if self.timeout_ms is None or self.timeout_ms <= 0:
            return None
        return self.timeout_ms / 1000


@dataclass(frozen=True)
class FetchResult:
    """Observed HTTP response.

    Attributes:
        status_code: HTTP status of the final response.
        response_headers: Header names and values, repeated headers joined with ", ".
        body: Raw response bytes.
        utf8_valid: Whether the raw bytes are valid UTF-8.

    """

    status_code: int
    response_headers: Mapping[str, str]
    body: bytes
    utf8_valid: bool

    @property
    def response_body(self) -> str:
        """Body decoded as UTF-8, invalid sequences replaced with U+FFFD."""
        return self.body.decode("utf-8", errors="replace")

    @property
    def response_body_base64(self) -> str:
        """Standard base64 encoding of the raw body."""
        return base64.b64encode(self.body).decode("ascii")


@dataclass
class FetchOutcome:
    """What a fetch produced: a result, diagnostics, or both.

    ``result`` is set if and only if ``diagnostics`` holds no error.
    """

    result: FetchResult | None = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def ok(self) -> bool:
        """Whether the fetch produced a result without errors."""
        return self.result is not None and not self.diagnostics.has_error()
