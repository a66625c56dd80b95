"""Configuration management for the heartrate MQTT client."""

from .settings import AppConfig, CredentialPaths, MQTTConfig, load_config

__all__ = ["AppConfig", "CredentialPaths", "MQTTConfig", "load_config"]
