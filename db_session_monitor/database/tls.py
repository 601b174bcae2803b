"""
TLS helpers for database connections.

A ``cert_path`` directory holds the client certificate, the client key and the
CA certificate. When it is not set, ``ssl_mode`` selects the driver TLS mode.
"""

import ssl
from pathlib import Path
from typing import Optional, Union

from ..config import CLIENT_CERT_FILE, CLIENT_KEY_FILE, CA_CERT_FILE, DatabaseConfig


# ssl_mode values accepted in configuration, normalized to libpq spelling
SSL_MODE_ALIASES = {
    "disabled": "disable",
    "disable": "disable",
    "false": "disable",
    "preferred": "prefer",
    "prefer": "prefer",
    "": "prefer",
    "required": "require",
    "require": "require",
    "true": "require",
    "verify_ca": "verify-ca",
    "verify-ca": "verify-ca",
    "verify_identity": "verify-full",
    "verify-full": "verify-full",
}


def normalize_ssl_mode(ssl_mode: Optional[str]) -> str:
    """Normalize an ssl_mode to ``disable``/``prefer``/``require``/``verify-ca``/``verify-full``."""
    return SSL_MODE_ALIASES.get((ssl_mode or "").strip().lower(), "prefer")


def load_tls_context(cert_path: Union[str, Path]) -> ssl.SSLContext:
    """
    Create an SSL context from the certificate files in ``cert_path``.

    Raises:
        FileNotFoundError: when a certificate file is missing
        ssl.SSLError: when a certificate cannot be loaded
    """
    cert_dir = Path(cert_path)
    cert_file = cert_dir / CLIENT_CERT_FILE
    key_file = cert_dir / CLIENT_KEY_FILE
    ca_file = cert_dir / CA_CERT_FILE

    for description, path in (
        ("client certificate", cert_file),
        ("client key", key_file),
        ("CA certificate", ca_file),
    ):
        if not path.is_file():
            raise FileNotFoundError(f"{description} file not found: {path}")

    context = ssl.create_default_context(cafile=str(ca_file))
    # Server names are not part of the certificate bundle
    context.check_hostname = False
    context.verify_mode = ssl.CERT_REQUIRED
    context.load_cert_chain(certfile=str(cert_file), keyfile=str(key_file))
    return context


def unverified_tls_context() -> ssl.SSLContext:
    """Encrypted connection without certificate verification (``require`` mode)."""
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def mysql_ssl_option(config: DatabaseConfig) -> Optional[ssl.SSLContext]:
    """
    Get the ``ssl`` argument for aiomysql.

    aiomysql has no "preferred" mode, so ``prefer`` connects without TLS.
    """
    if config.cert_path:
        return load_tls_context(config.cert_path)

    mode = normalize_ssl_mode(config.ssl_mode)
    if mode == "require":
        return unverified_tls_context()
    if mode in ("verify-ca", "verify-full"):
        context = ssl.create_default_context()
        context.check_hostname = mode == "verify-full"
        return context
    return None


def postgresql_ssl_option(config: DatabaseConfig) -> Union[ssl.SSLContext, str]:
    """Get the ``ssl`` argument for asyncpg (an SSL context or a libpq sslmode)."""
    if config.cert_path:
        return load_tls_context(config.cert_path)
    return normalize_ssl_mode(config.ssl_mode)
