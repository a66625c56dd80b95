"""Demonstration MQTT client: mutual TLS, one heartrate publish, logged subscription."""

__version__ = "0.1.0"
