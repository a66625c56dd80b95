"""Main application entry point for the heartrate MQTT client."""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

from .config import AppConfig, load_config
from .config.settings import DEFAULT_ENV_FILE
from .dispatch import MessageDispatcher
from .mqtt import DEMO_TOPIC, BrokerSession, MessageHandler, heartrate_message
from .tls import create_tls_context
from .utils import ConfigError, HeartrateMQTTError, SubscribeError, get_logger, set_log_level

logger = get_logger(__name__)

DISCONNECT_GRACE_MS = 250
HEARTRATE_BPM = 80


class HeartrateMQTTService:
    """
    Orchestrates startup and shutdown of the heartrate MQTT client.

    Startup order: configuration, TLS context, broker connection, delayed
    heartrate publish (background task), subscription. The service then waits
    for SIGINT/SIGTERM and disconnects with a bounded grace period.
    """

    def __init__(
        self,
        env_file: Union[str, Path] = DEFAULT_ENV_FILE,
        dispatcher: Optional[MessageHandler] = None,
        session_factory: Callable[..., BrokerSession] = BrokerSession,
    ) -> None:
        self.env_file = env_file
        self.dispatcher: MessageHandler = dispatcher or MessageDispatcher()
        self.session_factory = session_factory
        self.config: Optional[AppConfig] = None
        self.session: Optional[BrokerSession] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown_event: asyncio.Event = asyncio.Event()
        self._exit_code: int = 0

    async def initialize(self) -> None:
        """Load configuration, build the TLS context and connect."""
        logger.info("Loading configuration")
        self.config = load_config(self.env_file)

        try:
            set_log_level(self.config.log_level)
        except ValueError as e:
            raise ConfigError(str(e)) from e

        logger.info("Building TLS context")
        tls_context = create_tls_context(self.config.credentials)

        self.session = self.session_factory(
            self.config.mqtt,
            tls_context,
            self.dispatcher,
            on_connection_lost=self._on_connection_lost,
        )
        await self.session.connect()
        logger.info("[MQTT] Connected")

    async def _publish_after_delay(self) -> None:
        """Publish the demonstration heartrate message once the delay elapses."""
        await asyncio.sleep(self.config.publish_delay)

        message = heartrate_message(DEMO_TOPIC, HEARTRATE_BPM)
        await self.session.publish(
            message.topic, message.payload, qos=message.qos, retain=message.retain
        )
        logger.info(f"Published heartrate message to {message.topic}")

    def _on_publish_done(self, task: "asyncio.Task[None]") -> None:
        if task.cancelled():
            return

        error = task.exception()
        if error is not None:
            logger.critical(f"Failed to publish to {DEMO_TOPIC}: {error}")
            self._fail()

    def _on_connection_lost(self, reason: str) -> None:
        # Called from paho's network thread
        logger.critical(f"Lost connection to broker: {reason}")
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._fail)

    def _fail(self) -> None:
        self._exit_code = 1
        self._shutdown_event.set()

    async def _until_shutdown(self, coro: Awaitable[None]) -> bool:
        """
        Await ``coro`` unless the shutdown event fires first.

        Returns True when ``coro`` completed (re-raising its error), False
        when shutdown won and ``coro`` was cancelled.
        """
        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(self._shutdown_event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()

        if task.done():
            task.result()
            return True

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except HeartrateMQTTError as e:
            logger.debug(f"Startup step ended during shutdown: {e}")
        return False

    async def run(self) -> int:
        """Main service loop. Returns the process exit code."""
        self._loop = asyncio.get_running_loop()

        try:
            started = await self._until_shutdown(self.initialize())
        except HeartrateMQTTError as e:
            logger.critical(f"Startup failed: {e}")
            return 1

        if not started:
            logger.info("Shutdown signal received during startup")
            await self.shutdown()
            return self._exit_code

        publish_task = asyncio.create_task(self._publish_after_delay())
        publish_task.add_done_callback(self._on_publish_done)

        try:
            if await self._until_shutdown(self.session.subscribe(DEMO_TOPIC, qos=0)):
                logger.info(f"Subscribed to {DEMO_TOPIC}")

                logger.info("Service is running. Waiting for messages...")
                await self._shutdown_event.wait()
            logger.info("Shutdown signal received")
        except SubscribeError as e:
            logger.critical(f"Failed to create subscription: {e}")
            self._exit_code = 1
        finally:
            if not publish_task.done():
                publish_task.cancel()
                try:
                    await publish_task
                except asyncio.CancelledError:
                    pass
            await self.shutdown()

        return self._exit_code

    async def shutdown(self) -> None:
        """Graceful shutdown of the broker session."""
        logger.info("Shutting down service")

        if self.session:
            self.session.disconnect(DISCONNECT_GRACE_MS)
            logger.info("[MQTT] Disconnected")

    def signal_handler(self, sig: int, frame: Any) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM)."""
        logger.info(f"Received signal {sig}, initiating shutdown")
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._shutdown_event.set)
        else:
            self._shutdown_event.set()


async def main(env_file: Union[str, Path] = DEFAULT_ENV_FILE) -> int:
    """Application entry point."""
    service = HeartrateMQTTService(env_file)

    # Register signal handlers
    signal.signal(signal.SIGINT, service.signal_handler)
    signal.signal(signal.SIGTERM, service.signal_handler)

    return await service.run()


def run_app() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run_app()
