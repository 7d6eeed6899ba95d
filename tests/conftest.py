"""Common test fixtures for the utilfetch project."""

import socket
import typing as t

import pytest
from pytest_httpserver import HTTPServer

from utilfetch import Fetcher, FetcherConfig, RetryConfig

_PROXY_VARIABLES = ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy")


@pytest.fixture(autouse=True)
def no_proxy_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep requests to the local test server away from any configured proxy."""
    for name in _PROXY_VARIABLES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fetcher() -> Fetcher:
    """Test fixture providing a default instance of Fetcher."""
    return Fetcher(FetcherConfig())


@pytest.fixture
def no_delay() -> t.Callable[[int], RetryConfig]:
    """Test fixture building retry settings without backoff delays."""

    def build(attempts: int) -> RetryConfig:
        return RetryConfig(attempts=attempts, min_delay_ms=0, max_delay_ms=0)

    return build


@pytest.fixture
def page_url(httpserver: HTTPServer) -> str:
    """Test fixture providing a single URL."""
    httpserver.expect_request("/page").respond_with_data("test response")
    return httpserver.url_for("/page")


@pytest.fixture
def unavailable_url(httpserver: HTTPServer) -> str:
    """Test fixture providing a URL that always answers 503."""
    httpserver.expect_request("/unavailable").respond_with_data("unavailable", status=503)
    return httpserver.url_for("/unavailable")


@pytest.fixture
def closed_port_url() -> str:
    """Test fixture providing a URL nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}/closed"
