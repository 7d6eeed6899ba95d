"""HTTP fetch engine and small managed resources for a utilities plugin."""

from .config import FetcherConfig, TransportDefaults
from .errors import (
    Diagnostic,
    Diagnostics,
    FetcherError,
    RequestBuildError,
    RequestCancelledError,
    RequestError,
    RequestTimeoutError,
    ResponseReadError,
    Severity,
    TLSConfigError,
)
from .fetcher import Fetcher
from .log import LeveledLogger
from .resources import FileResource, HttpResource, NanoIdResource
from .types import FetchOutcome, FetchResult, HttpMethod, RequestSpec, RetryConfig, TLSConfig

__all__ = [
    "Diagnostic",
    "Diagnostics",
    "FetchOutcome",
    "FetchResult",
    "Fetcher",
    "FetcherConfig",
    "FetcherError",
    "FileResource",
    "HttpMethod",
    "HttpResource",
    "LeveledLogger",
    "NanoIdResource",
    "RequestBuildError",
    "RequestCancelledError",
    "RequestError",
    "RequestSpec",
    "RequestTimeoutError",
    "ResponseReadError",
    "RetryConfig",
    "Severity",
    "TLSConfig",
    "TLSConfigError",
    "TransportDefaults",
]
__version__ = "0.1.0"
