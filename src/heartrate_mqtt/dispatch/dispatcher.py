"""Default handler for inbound MQTT messages."""

import logging
from typing import Optional

from ..utils.logger import get_logger


class MessageDispatcher:
    """
    Logs the topic and payload of every message it receives.

    Never raises; a failure to log is dropped so the network thread keeps running.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger: logging.Logger = logger or get_logger(__name__)

    def __call__(self, topic: str, payload: bytes) -> None:
        try:
            self.logger.info(f"TOPIC: {topic}")
            self.logger.info(f"MSG: {payload.decode('utf-8', errors='replace')}")
        except Exception:
            pass
