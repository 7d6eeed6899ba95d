"""Tests for per-fetch TLS context construction."""

from __future__ import annotations

import ssl
import typing as t

import pytest
import trustme
from pytest_httpserver import HTTPServer

from utilfetch import Fetcher, RequestSpec, TLSConfig, TLSConfigError
from utilfetch.tls import build_ssl_context

if t.TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture(scope="module")
def ca() -> trustme.CA:
    """Test fixture providing a throwaway certificate authority."""
    return trustme.CA()


def _serve(context: ssl.SSLContext) -> Iterator[HTTPServer]:
    server = HTTPServer(ssl_context=context)
    server.expect_request("/secure").respond_with_data("secret")
    server.start()
    yield server
    server.clear()
    if server.is_running():
        server.stop()


@pytest.fixture
def https_server(ca: trustme.CA) -> Iterator[HTTPServer]:
    """Test fixture providing an HTTPS server with a certificate from ``ca``."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ca.issue_cert("localhost", "127.0.0.1", "::1").configure_cert(context)
    yield from _serve(context)


@pytest.fixture
def mtls_server(ca: trustme.CA) -> Iterator[HTTPServer]:
    """Test fixture providing an HTTPS server that requires a client certificate from ``ca``."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ca.issue_cert("localhost", "127.0.0.1", "::1").configure_cert(context)
    ca.configure_trust(context)
    context.verify_mode = ssl.CERT_REQUIRED
    yield from _serve(context)


def _ca_pem(ca: trustme.CA) -> str:
    return ca.cert_pem.bytes().decode()


def test_no_settings_use_default_verification() -> None:
    """Test that nothing configured keeps aiohttp's default verification."""
    assert build_ssl_context(None) is True
    assert build_ssl_context(TLSConfig()) is True


def test_insecure_disables_verification() -> None:
    """Test that insecure turns off both chain and hostname checks."""
    context = build_ssl_context(TLSConfig(insecure=True))

    assert isinstance(context, ssl.SSLContext)
    assert context.verify_mode == ssl.CERT_NONE
    assert not context.check_hostname


def test_each_call_gets_its_own_context() -> None:
    """Test that contexts are never shared between fetches."""
    first = build_ssl_context(TLSConfig(insecure=True))
    second = build_ssl_context(TLSConfig(insecure=True))

    assert first is not second


@pytest.mark.parametrize("pem", ["not a certificate", "", "-----BEGIN CERTIFICATE-----\ngarbage\n-----END CERTIFICATE-----\n"])
def test_unparsable_ca_certificate(pem: str) -> None:
    """Test that a CA bundle without certificates is rejected."""
    with pytest.raises(TLSConfigError, match="Only PEM encoded certificates are supported"):
        build_ssl_context(TLSConfig(ca_cert_pem=pem))


def test_unparsable_client_key_pair() -> None:
    """Test that a malformed client identity is rejected."""
    with pytest.raises(TLSConfigError, match="x509 key pair") as exc_info:
        build_ssl_context(TLSConfig(client_cert_pem="cert", client_key_pem="key"))

    assert exc_info.value.to_diagnostic().kind == "TLSConfigError"


def test_client_certificate_requires_key() -> None:
    """Test that a client certificate alone is refused."""
    with pytest.raises(ValueError, match="must be set together"):
        TLSConfig(client_cert_pem="cert")


class TestHandshake:
    """Tests for TLS settings against live HTTPS servers."""

    async def test_untrusted_server_is_refused(self, fetcher: Fetcher, https_server: HTTPServer) -> None:
        """Test that default verification rejects a certificate from an unknown CA."""
        outcome = await fetcher.fetch(RequestSpec(https_server.url_for("/secure")))

        assert outcome.result is None
        assert outcome.diagnostics.kinds() == ["RequestError"]

    async def test_ca_certificate_is_trusted(
        self,
        fetcher: Fetcher,
        https_server: HTTPServer,
        ca: trustme.CA,
    ) -> None:
        """Test that a configured CA becomes the trust root of the fetch."""
        spec = RequestSpec(https_server.url_for("/secure"), tls=TLSConfig(ca_cert_pem=_ca_pem(ca)))

        outcome = await fetcher.fetch(spec)

        assert outcome.ok
        assert outcome.result is not None
        assert outcome.result.response_body == "secret"

    async def test_other_ca_is_not_trusted(self, fetcher: Fetcher, https_server: HTTPServer) -> None:
        """Test that only the configured CA is trusted."""
        spec = RequestSpec(https_server.url_for("/secure"), tls=TLSConfig(ca_cert_pem=_ca_pem(trustme.CA())))

        outcome = await fetcher.fetch(spec)

        assert outcome.diagnostics.kinds() == ["RequestError"]

    async def test_insecure_accepts_unknown_certificate(self, fetcher: Fetcher, https_server: HTTPServer) -> None:
        """Test that insecure skips verification for this fetch."""
        spec = RequestSpec(https_server.url_for("/secure"), tls=TLSConfig(insecure=True))

        outcome = await fetcher.fetch(spec)

        assert outcome.ok

    async def test_client_identity_is_presented(
        self,
        fetcher: Fetcher,
        mtls_server: HTTPServer,
        ca: trustme.CA,
    ) -> None:
        """Test that a configured client certificate satisfies a server requiring one."""
        client = ca.issue_cert("client.example.org")
        tls = TLSConfig(
            ca_cert_pem=_ca_pem(ca),
            client_cert_pem=client.cert_chain_pems[0].bytes().decode(),
            client_key_pem=client.private_key_pem.bytes().decode(),
        )

        outcome = await fetcher.fetch(RequestSpec(mtls_server.url_for("/secure"), tls=tls))

        assert outcome.ok
        assert outcome.result is not None
        assert outcome.result.response_body == "secret"

    async def test_missing_client_identity_is_refused(
        self,
        fetcher: Fetcher,
        mtls_server: HTTPServer,
        ca: trustme.CA,
    ) -> None:
        """Test that a server requiring a client certificate rejects a fetch without one."""
        spec = RequestSpec(mtls_server.url_for("/secure"), tls=TLSConfig(ca_cert_pem=_ca_pem(ca)))

        outcome = await fetcher.fetch(spec)

        assert outcome.result is None
        assert outcome.diagnostics.kinds() == ["RequestError"]
