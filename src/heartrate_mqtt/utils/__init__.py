"""Utility modules for logging and error handling."""

from .errors import (
    CertificateError,
    ConfigError,
    ConnectError,
    HeartrateMQTTError,
    MarshalError,
    PublishError,
    SubscribeError,
)
from .logger import get_logger, set_log_level

__all__ = [
    "CertificateError",
    "ConfigError",
    "ConnectError",
    "HeartrateMQTTError",
    "MarshalError",
    "PublishError",
    "SubscribeError",
    "get_logger",
    "set_log_level",
]
