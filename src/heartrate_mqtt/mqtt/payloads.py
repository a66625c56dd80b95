"""Message payloads published by the client."""

import json
from dataclasses import dataclass

from ..utils.errors import MarshalError


@dataclass
class Message:
    """A message published to, or received from, the broker."""
    topic: str
    payload: bytes
    qos: int = 0
    retain: bool = False


@dataclass(frozen=True)
class HeartratePayload:
    """Heartrate reading wrapped in a "message" envelope."""
    event: str
    data: int

    def to_dict(self) -> dict:
        return {"message": {"event": self.event, "data": self.data}}

    def encode(self) -> bytes:
        """Compact JSON, e.g. {"message":{"event":"heartrate","data":80}}"""
        try:
            return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise MarshalError(f"Failed to marshal JSON: {e}") from e


def heartrate_message(topic: str, bpm: int = 80) -> Message:
    """Build the demonstration heartrate message for a topic."""
    payload = HeartratePayload(event="heartrate", data=bpm)
    return Message(topic=topic, payload=payload.encode(), qos=0, retain=False)
