"""Per-fetch TLS context construction."""

from __future__ import annotations

import os
import ssl
import tempfile

from .errors import TLSConfigError
from .types import TLSConfig


def build_ssl_context(tls: TLSConfig | None) -> ssl.SSLContext | bool:
    """Build the TLS setting handed to the connector of a single fetch.

    Args:
        tls: TLS settings of the request, or None.

    Returns:
        ``True`` for default verification when nothing is configured,
        otherwise a fresh :class:`ssl.SSLContext` owned by this fetch.

    Raises:
        TLSConfigError: If the CA bundle or the client key pair cannot be parsed.

    """
    if tls is None or (
        not tls.insecure and tls.ca_cert_pem is None and tls.client_cert_pem is None
    ):
        return True

    if tls.ca_cert_pem is not None:
        # Only the given certificates are trusted
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        try:
            context.load_verify_locations(cadata=tls.ca_cert_pem)
        except (ssl.SSLError, ValueError) as e:
            msg = "Can't add the CA certificate to certificate pool. Only PEM encoded certificates are supported."
            raise TLSConfigError(msg, cause=e) from e
    else:
        context = ssl.create_default_context()

    if tls.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    if tls.client_cert_pem is not None and tls.client_key_pem is not None:
        _load_client_identity(context, tls.client_cert_pem, tls.client_key_pem)

    return context


def _load_client_identity(context: ssl.SSLContext, cert_pem: str, key_pem: str) -> None:
    # load_cert_chain only reads from the filesystem
    with tempfile.TemporaryDirectory(prefix="utilfetch-") as tmpdir:
        cert_path = os.path.join(tmpdir, "client.crt")
        key_path = os.path.join(tmpdir, "client.key")
        with open(cert_path, "w", encoding="utf-8") as f:
            f.write(cert_pem)
        with open(os.open(key_path, os.O_WRONLY | os.O_CREAT, 0o600), "w", encoding="utf-8") as f:
            f.write(key_pem)
        try:
            context.load_cert_chain(certfile=cert_path, keyfile=key_path)
        except (ssl.SSLError, ValueError) as e:
            msg = "error creating x509 key pair from provided pem blocks"
            raise TLSConfigError(msg, cause=e) from e
