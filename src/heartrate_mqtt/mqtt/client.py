"""MQTT broker session wrapper with connection state tracking."""

import asyncio
import functools
import ssl
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import paho.mqtt.client as mqtt

from ..config.settings import MQTTConfig
from ..utils.errors import ConnectError, PublishError, SubscribeError
from ..utils.logger import get_logger
from .topics import broker_url, validate_topic_filter

logger = get_logger(__name__)

MessageHandler = Callable[[str, bytes], None]

VALID_QOS = (0, 1, 2)
DEFAULT_GRACE_MS = 250
ACK_POLL_INTERVAL = 0.5


class ConnectionState(Enum):
    """Lifecycle of the single broker connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class BrokerSession:
    """
    Wrapper for paho.mqtt.client owning exactly one broker connection.

    The default message handler is injected at construction time and receives
    every message whose topic has no topic-specific handler. Transport loss
    while connected is terminal; no reconnection is attempted.
    """

    def __init__(
        self,
        config: MQTTConfig,
        tls_context: ssl.SSLContext,
        default_handler: MessageHandler,
        on_connection_lost: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.config: MQTTConfig = config
        self.default_handler: MessageHandler = default_handler
        self.on_connection_lost: Optional[Callable[[str], None]] = on_connection_lost
        self.client: mqtt.Client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            clean_session=config.clean_session,
            protocol=mqtt.MQTTv311,
            reconnect_on_failure=False,
        )
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._state: ConnectionState = ConnectionState.DISCONNECTED
        self._lock = threading.Lock()
        self._connect_future: Optional[asyncio.Future] = None
        self._pending_subscriptions: Dict[int, asyncio.Future] = {}
        self._inflight: Dict[int, mqtt.MQTTMessageInfo] = {}
        self.client.tls_set_context(tls_context)
        self._setup_callbacks()

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def _set_state(self, state: ConnectionState) -> ConnectionState:
        with self._lock:
            previous = self._state
            self._state = state
        logger.debug(f"Connection state {previous.value} -> {state.value}")
        return previous

    def _setup_callbacks(self) -> None:
        """Configure MQTT callbacks for connection events."""
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message
        self.client.on_subscribe = self._on_subscribe

    def _resolve(
        self,
        future: Optional[asyncio.Future],
        error: Optional[BaseException] = None,
        result: Any = None,
    ) -> None:
        """Complete a future owned by the event loop from paho's network thread."""
        if future is None or self.loop is None or self.loop.is_closed():
            return

        def _apply() -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        self.loop.call_soon_threadsafe(_apply)

    def _on_connect(self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        """Handle CONNACK."""
        if reason_code.is_failure:
            logger.error(f"Broker refused connection: {reason_code}")
            self._set_state(ConnectionState.DISCONNECTED)
            self._resolve(
                self._connect_future,
                ConnectError(f"Connection refused by broker: {reason_code}"),
            )
            return

        self._set_state(ConnectionState.CONNECTED)
        logger.info("Connected to MQTT broker")
        self._resolve(self._connect_future)

    def _on_disconnect(self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        """Handle disconnection; transport loss while connected is terminal."""
        with self._lock:
            previous = self._state
            self._state = ConnectionState.DISCONNECTED
            pending = list(self._pending_subscriptions.values())
            self._pending_subscriptions.clear()

        if previous is ConnectionState.CONNECTING:
            self._resolve(
                self._connect_future,
                ConnectError(f"Connection closed before CONNACK: {reason_code}"),
            )

        for future in pending:
            self._resolve(future, SubscribeError(f"Connection closed before SUBACK: {reason_code}"))

        if previous is ConnectionState.CONNECTED:
            logger.error(f"Connection to MQTT broker lost (reason={reason_code})")
            if self.on_connection_lost:
                self.on_connection_lost(str(reason_code))
        else:
            logger.debug(f"Disconnected from MQTT broker (reason={reason_code})")

    def _on_message(self, client: Any, userdata: Any, msg: Any) -> None:
        """Pass messages without a topic-specific handler to the default handler."""
        try:
            self.default_handler(msg.topic, msg.payload)
        except Exception as e:
            logger.error(f"Error processing MQTT message on {msg.topic}: {e}", exc_info=True)

    def _on_subscribe(self, client: Any, userdata: Any, mid: int, reason_code_list: List[Any], properties: Any) -> None:
        """Handle SUBACK."""
        with self._lock:
            future = self._pending_subscriptions.pop(mid, None)

        failures = [rc for rc in reason_code_list if rc.is_failure]
        if failures:
            self._resolve(future, SubscribeError(f"Broker rejected subscription: {failures[0]}"))
        else:
            self._resolve(future, result=reason_code_list)

    @staticmethod
    def _wrap_handler(handler: MessageHandler) -> Callable[[Any, Any, Any], None]:
        def _callback(client: Any, userdata: Any, msg: Any) -> None:
            try:
                handler(msg.topic, msg.payload)
            except Exception as e:
                logger.error(f"Topic handler failed for {msg.topic}: {e}", exc_info=True)

        return _callback

    async def connect(self) -> None:
        """Open the TLS transport and wait for the broker handshake."""
        self.loop = asyncio.get_running_loop()

        with self._lock:
            if self._state is not ConnectionState.DISCONNECTED:
                raise ConnectError(f"Cannot connect while {self._state.value}")
            self._state = ConnectionState.CONNECTING

        self._connect_future = self.loop.create_future()
        logger.info(
            f"Connecting to MQTT broker {broker_url(self.config.broker_host, self.config.broker_port)} "
            f"as {self.config.client_id}"
        )

        try:
            await self.loop.run_in_executor(
                None,
                functools.partial(
                    self.client.connect,
                    self.config.broker_host,
                    self.config.broker_port,
                    keepalive=self.config.keepalive,
                ),
            )
        except (OSError, ValueError) as e:
            self._set_state(ConnectionState.DISCONNECTED)
            self._connect_future = None
            logger.error(f"Failed to connect to MQTT broker: {e}")
            raise ConnectError(f"Connection failed: {e}") from e

        # Start the MQTT client loop in a separate thread
        self.client.loop_start()

        try:
            await self._connect_future
        except ConnectError:
            self.client.loop_stop()
            self._set_state(ConnectionState.DISCONNECTED)
            raise
        finally:
            self._connect_future = None

        logger.info("MQTT client connected successfully")

    async def publish(self, topic: str, payload: bytes, qos: int = 0, retain: bool = False) -> None:
        """
        Publish a message to a specific topic.

        QoS 0 returns once the message is handed to paho; QoS 1 and 2 wait for
        the broker's acknowledgement.

        Args:
            topic: MQTT topic
            payload: Raw message bytes
            qos: Quality of Service level (0, 1, or 2)
            retain: Whether to retain the message
        """
        if qos not in VALID_QOS:
            raise PublishError(f"Invalid QoS level: {qos}")

        if not self.is_connected:
            raise PublishError("Not connected to MQTT broker")

        try:
            info = self.client.publish(topic, payload, qos=qos, retain=retain)
        except (TypeError, ValueError) as e:
            raise PublishError(f"Failed to publish to {topic}: {e}") from e

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(f"Failed to publish to {topic}: {mqtt.error_string(info.rc)}")

        logger.debug(f"Published to {topic}: {payload[:100]!r}")

        if qos == 0:
            return

        with self._lock:
            self._inflight[info.mid] = info

        try:
            while not info.is_published():
                if self.state not in (ConnectionState.CONNECTED, ConnectionState.DISCONNECTING):
                    raise PublishError(f"Connection closed before {topic} was acknowledged")
                await self.loop.run_in_executor(None, info.wait_for_publish, ACK_POLL_INTERVAL)
        except (RuntimeError, ValueError) as e:
            raise PublishError(f"Failed to publish to {topic}: {e}") from e
        finally:
            with self._lock:
                self._inflight.pop(info.mid, None)

    async def subscribe(self, topic: str, qos: int = 0, handler: Optional[MessageHandler] = None) -> None:
        """
        Subscribe to a topic filter and wait for the SUBACK.

        Messages matching the filter go to ``handler`` when given, otherwise
        to the session's default handler.
        """
        validate_topic_filter(topic)

        if qos not in VALID_QOS:
            raise SubscribeError(f"Invalid QoS level: {qos}")

        if not self.is_connected:
            raise SubscribeError("Not connected to MQTT broker")

        if handler is not None:
            self.client.message_callback_add(topic, self._wrap_handler(handler))

        future = self.loop.create_future()
        try:
            # Held across subscribe() so a fast SUBACK finds the pending future
            with self._lock:
                try:
                    result, mid = self.client.subscribe(topic, qos=qos)
                except ValueError as e:
                    raise SubscribeError(f"Failed to subscribe to {topic}: {e}") from e

                if result != mqtt.MQTT_ERR_SUCCESS:
                    raise SubscribeError(
                        f"Failed to subscribe to {topic}: {mqtt.error_string(result)}"
                    )
                self._pending_subscriptions[mid] = future

            await future
        except SubscribeError:
            if handler is not None:
                self.client.message_callback_remove(topic)
            raise

        logger.debug(f"Subscription to {topic} acknowledged (qos={qos})")

    def disconnect(self, grace_timeout_ms: int = DEFAULT_GRACE_MS) -> None:
        """
        Gracefully disconnect from MQTT broker.

        Waits up to ``grace_timeout_ms`` for in-flight QoS 1/2 publishes, then
        closes the transport. Never raises.
        """
        with self._lock:
            previous = self._state
            if previous is not ConnectionState.DISCONNECTED:
                self._state = ConnectionState.DISCONNECTING
            inflight = list(self._inflight.values())

        if previous is ConnectionState.DISCONNECTED:
            logger.debug("Disconnect requested while already disconnected")
            try:
                self.client.loop_stop()
            except Exception as e:
                logger.error(f"Error stopping MQTT network loop: {e}")
            return

        logger.info("Disconnecting from MQTT broker")
        deadline = time.monotonic() + max(grace_timeout_ms, 0) / 1000.0
        unacknowledged = 0
        for info in inflight:
            remaining = deadline - time.monotonic()
            try:
                if remaining > 0:
                    info.wait_for_publish(timeout=remaining)
                if not info.is_published():
                    unacknowledged += 1
            except (RuntimeError, ValueError) as e:
                logger.warning(f"In-flight message {info.mid} failed: {e}")
                unacknowledged += 1

        if unacknowledged:
            logger.warning(
                f"{unacknowledged} in-flight message(s) unacknowledged after {grace_timeout_ms}ms"
            )

        try:
            self.client.disconnect()
        except Exception as e:
            logger.error(f"Error during disconnect: {e}")

        try:
            self.client.loop_stop()
        except Exception as e:
            logger.error(f"Error stopping MQTT network loop: {e}")

        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Disconnected from MQTT broker")
