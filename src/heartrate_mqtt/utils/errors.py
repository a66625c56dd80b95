"""Custom exception classes for the application."""


class HeartrateMQTTError(Exception):
    """Base exception for all application errors."""
    pass


class ConfigError(HeartrateMQTTError):
    """Missing or unreadable environment or credential files."""
    pass


class CertificateError(HeartrateMQTTError):
    """Malformed PEM content or mismatched certificate/key pair."""
    pass


class ConnectError(HeartrateMQTTError):
    """Broker handshake, authentication or network failure."""
    pass


class PublishError(HeartrateMQTTError):
    """Publish rejected by the session or transport."""
    pass


class SubscribeError(HeartrateMQTTError):
    """Malformed topic filter or subscription rejected."""
    pass


class MarshalError(HeartrateMQTTError):
    """Payload could not be encoded."""
    pass
