"""TLS context construction from PEM files for mutual authentication."""

import os
import ssl
from dataclasses import dataclass
from pathlib import Path

from ..config.settings import CredentialPaths
from ..utils.errors import CertificateError, ConfigError
from ..utils.logger import get_logger

logger = get_logger(__name__)

PEM_CERT_MARKER = "-----BEGIN CERTIFICATE-----"


@dataclass(frozen=True)
class CredentialBundle:
    """
    Credentials checked once at startup.

    The root CA bundle is held as bytes. The client certificate and key stay
    as paths because ``SSLContext.load_cert_chain`` only loads from files.
    """
    root_ca_pem: bytes
    client_cert: Path
    client_key: Path


def _read_file(path: Path, label: str) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise ConfigError(f"Cannot read {label} file {path}: {e}") from e


def _require_readable(path: Path, label: str) -> Path:
    if not path.is_file():
        raise ConfigError(f"Cannot read {label} file {path}: not a regular file")
    if not os.access(path, os.R_OK):
        raise ConfigError(f"Cannot read {label} file {path}: permission denied")
    return path


def _no_passphrase() -> bytes:
    # Encrypted keys fail to load instead of prompting on the terminal
    return b""


def load_credentials(paths: CredentialPaths) -> CredentialBundle:
    """Read the root CA and check the client files, failing with ConfigError if any is unreadable."""
    return CredentialBundle(
        root_ca_pem=_read_file(paths.root_ca, "root CA"),
        client_cert=_require_readable(paths.client_cert, "client certificate"),
        client_key=_require_readable(paths.client_key, "client key"),
    )


def build_tls_context(bundle: CredentialBundle) -> ssl.SSLContext:
    """
    Build a client-side TLS context from a credential bundle.

    The context trusts only the CAs found in the bundle's root PEM, verifies
    the broker certificate and hostname, requires TLS 1.2 or newer and
    presents the client certificate/key pair.

    Raises:
        CertificateError: PEM content cannot be parsed, the bundle holds no
            certificate, or the certificate does not match the key.
        ConfigError: The certificate or key file disappeared after loading.
    """
    try:
        cadata = bundle.root_ca_pem.decode("ascii")
    except UnicodeDecodeError as e:
        raise CertificateError(f"Root CA bundle is not PEM encoded: {e}") from e

    if PEM_CERT_MARKER not in cadata:
        raise CertificateError("Root CA bundle contains no PEM certificate")

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.verify_mode = ssl.CERT_REQUIRED
    context.check_hostname = True

    try:
        context.load_verify_locations(cadata=cadata)
    except (ssl.SSLError, ValueError) as e:
        raise CertificateError(f"Failed to parse root CA bundle: {e}") from e

    try:
        context.load_cert_chain(
            certfile=str(bundle.client_cert),
            keyfile=str(bundle.client_key),
            password=_no_passphrase,
        )
    except ssl.SSLError as e:
        raise CertificateError(
            f"Failed to load client certificate/key pair: {e}"
        ) from e
    except OSError as e:
        raise ConfigError(f"Cannot read client certificate/key: {e}") from e

    logger.debug(f"TLS context ready with {len(context.get_ca_certs())} trusted CA(s)")
    return context


def create_tls_context(paths: CredentialPaths) -> ssl.SSLContext:
    """Load the credential files and build the TLS context in one step."""
    return build_tls_context(load_credentials(paths))
