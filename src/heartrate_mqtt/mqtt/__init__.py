"""MQTT session, topics and payloads."""

from .client import BrokerSession, ConnectionState, MessageHandler
from .payloads import HeartratePayload, Message, heartrate_message
from .topics import DEMO_TOPIC, broker_url, validate_topic_filter

__all__ = [
    "BrokerSession",
    "ConnectionState",
    "DEMO_TOPIC",
    "HeartratePayload",
    "Message",
    "MessageHandler",
    "broker_url",
    "heartrate_message",
    "validate_topic_filter",
]
