"""Topic structure and validation for MQTT."""

from typing import Optional

from ..utils.errors import SubscribeError

DEMO_TOPIC = "/dummy"
MAX_TOPIC_LENGTH = 65535


def broker_url(host: str, port: int) -> str:
    """Format: tcps://{host}:{port}"""
    return f"tcps://{host}:{port}"


def topic_filter_error(topic: str) -> Optional[str]:
    """Return why a topic filter is malformed, or None if it is valid."""
    if not isinstance(topic, str) or topic == "":
        return "topic filter must be a non-empty string"

    if "\x00" in topic:
        return "topic filter must not contain NUL characters"

    if len(topic.encode("utf-8")) > MAX_TOPIC_LENGTH:
        return f"topic filter exceeds {MAX_TOPIC_LENGTH} bytes"

    levels = topic.split("/")
    for index, level in enumerate(levels):
        if "#" in level and (level != "#" or index != len(levels) - 1):
            return "'#' must occupy the whole last level"
        if "+" in level and level != "+":
            return "'+' must occupy a whole level"

    return None


def validate_topic_filter(topic: str) -> str:
    """Raise SubscribeError when the topic filter is malformed."""
    reason = topic_filter_error(topic)
    if reason:
        raise SubscribeError(f"Malformed topic filter {topic!r}: {reason}")
    return topic
