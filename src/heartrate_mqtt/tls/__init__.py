"""TLS context construction."""

from .context import CredentialBundle, build_tls_context, create_tls_context, load_credentials

__all__ = ["CredentialBundle", "build_tls_context", "create_tls_context", "load_credentials"]
