"""Configuration settings loaded from an env file and environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from dotenv import load_dotenv

from ..utils.errors import ConfigError

DEFAULT_ENV_FILE = ".env"
DEFAULT_PORT = 8883
DEFAULT_CLIENT_ID = "someThing"
DEFAULT_PUBLISH_DELAY = 3.0


def _require_env(key: str) -> str:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        raise ConfigError(f"Missing required environment variable: {key}")
    return value.strip()


@dataclass(frozen=True)
class CredentialPaths:
    """Locations of the PEM files used for mutual TLS."""
    root_ca: Path
    client_cert: Path
    client_key: Path

    @staticmethod
    def from_env() -> 'CredentialPaths':
        """Load from ROOT_PEM, PUB_CERT and PRIV_KEY."""
        return CredentialPaths(
            root_ca=Path(_require_env("ROOT_PEM")),
            client_cert=Path(_require_env("PUB_CERT")),
            client_key=Path(_require_env("PRIV_KEY")),
        )


@dataclass(frozen=True)
class MQTTConfig:
    """MQTT broker configuration."""
    broker_host: str
    broker_port: int = DEFAULT_PORT
    client_id: str = DEFAULT_CLIENT_ID
    clean_session: bool = True
    keepalive: int = 60

    @staticmethod
    def from_env() -> 'MQTTConfig':
        """Load from environment variables with validation."""
        broker_host = _require_env("HOST")

        try:
            broker_port = int(os.getenv("MQTT_PORT", str(DEFAULT_PORT)))
        except ValueError as e:
            raise ConfigError(f"Invalid MQTT port configuration: {e}") from e

        if not 0 < broker_port < 65536:
            raise ConfigError(f"MQTT port out of range: {broker_port}")

        client_id = os.getenv("MQTT_CLIENT_ID", DEFAULT_CLIENT_ID).strip()
        if not client_id:
            raise ConfigError("MQTT_CLIENT_ID must not be empty")

        return MQTTConfig(
            broker_host=broker_host,
            broker_port=broker_port,
            client_id=client_id,
        )


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    mqtt: MQTTConfig
    credentials: CredentialPaths
    publish_delay: float
    log_level: str

    @staticmethod
    def from_env() -> 'AppConfig':
        """Load complete configuration from environment."""
        try:
            publish_delay = float(
                os.getenv("PUBLISH_DELAY_SECONDS", str(DEFAULT_PUBLISH_DELAY))
            )
        except ValueError as e:
            raise ConfigError(f"Invalid PUBLISH_DELAY_SECONDS: {e}") from e

        if publish_delay < 0:
            raise ConfigError("PUBLISH_DELAY_SECONDS must not be negative")

        return AppConfig(
            mqtt=MQTTConfig.from_env(),
            credentials=CredentialPaths.from_env(),
            publish_delay=publish_delay,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def load_config(env_file: Union[str, Path] = DEFAULT_ENV_FILE) -> AppConfig:
    """
    Load configuration from the env file and environment variables.

    The env file is mandatory. Variables already present in the process
    environment take precedence over the file.
    """
    path = Path(env_file)
    if not path.is_file():
        raise ConfigError(f"Error loading env file: {path}")

    try:
        load_dotenv(dotenv_path=path, override=False)
    except OSError as e:
        raise ConfigError(f"Error loading env file {path}: {e}") from e

    return AppConfig.from_env()
