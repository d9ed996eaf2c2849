"""
JMX pipe lifecycle.

``JmxPipe`` wires the connector, the query executor, the notification
subscriber and the scheduler for one remote endpoint, and exposes the
three lifecycle hooks a host process drives: ``start``, ``request_stop``
and ``await_termination``.

Example:
    pipe = JmxPipe(settings, sink=QueueOutputSink())

    async with pipe:
        # Pipe polls until the block exits
        await asyncio.sleep(60)
"""

import asyncio
import logging
import threading
from typing import Any, Dict, List, Optional

from ..common.config import PipeSettings, build_settings
from ..common.exceptions import ConfigurationError
from ..models.queries import Subscription
from .connection import ConnectionManager
from .core import RegistryConnector, load_connector
from .notifications import NotificationSubscriber
from .output import OutputSink, RecordEmitter
from .query_executor import QueryExecutor
from .scheduler import Scheduler


class JmxPipe:
    """Polls one registry endpoint and forwards notifications as records."""

    def __init__(
        self,
        settings: PipeSettings,
        connector: Optional[RegistryConnector] = None,
        sink: Optional[OutputSink] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            settings: Validated pipe settings
            connector: Connector instance; loaded from ``settings.connector_class`` if omitted
            sink: Default output sink used by ``start`` and ``async with``
            logger: Logger instance (created if not provided)

        Raises:
            ConfigurationError: If no usable connector is available
        """
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.sink = sink

        if connector is None:
            if not settings.connector_class:
                raise ConfigurationError("connector_class is required when no connector is given")
            connector = load_connector(settings.connector_class, settings.connector_options, self.logger)
        self.connector = connector

        self.connection = ConnectionManager(
            connector, settings.host, settings.port, settings.credentials, self.logger
        )

        self.scheduler: Optional[Scheduler] = None
        self.subscriber: Optional[NotificationSubscriber] = None
        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[int] = None

        self.logger.info(
            "JMX pipe initialized",
            extra={
                "host": settings.host,
                "port": settings.port,
                "interval": settings.interval,
                "queries": len(settings.queries),
                "subscriptions": len(settings.subscriptions),
                "connector_class": connector.__class__.__name__,
            },
        )

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        connector: Optional[RegistryConnector] = None,
        sink: Optional[OutputSink] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "JmxPipe":
        """Validate a raw configuration mapping and build a pipe from it."""
        return cls(build_settings(config), connector=connector, sink=sink, logger=logger)

    @property
    def pending_subscriptions(self) -> List[Subscription]:
        if self.subscriber is None:
            return list(self.settings.subscriptions)
        return self.subscriber.pending

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, sink: Optional[OutputSink] = None) -> asyncio.Task:
        """Start polling in a new task on the running event loop."""
        if self._task is not None:
            raise RuntimeError("JMX pipe already started")

        sink = sink or self.sink
        if sink is None:
            raise ValueError("An output sink is required to start the pipe")
        self.sink = sink

        settings = self.settings
        emitter = RecordEmitter(sink, settings.host, self.logger)

        self.subscriber = NotificationSubscriber(
            settings.subscriptions,
            emitter,
            self.connection.is_lost,
            event_context=settings.event_context,
            host=settings.host,
            port=settings.port,
            logger=self.logger,
        )
        executor = QueryExecutor(
            emitter,
            self.connection.is_lost,
            event_context=settings.event_context,
            emit_context_only_records=settings.emit_context_only_records,
            host=settings.host,
            port=settings.port,
            logger=self.logger,
        )
        self.scheduler = Scheduler(
            self.connection,
            self.subscriber,
            executor,
            settings.queries,
            interval=settings.interval,
            reconnect_delay=settings.reconnect_delay,
            logger=self.logger,
        )

        self._loop = asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()
        self._task = asyncio.create_task(self._run(), name=f"jmx-pipe-{settings.host}:{settings.port}")
        return self._task

    async def _run(self) -> None:
        try:
            await self.scheduler.run()
        except asyncio.CancelledError:
            self.logger.info("JMX pipe cancelled")
            raise
        except Exception as e:
            self.logger.error(f"Cannot run JMX pipe, aborting: {e}", exc_info=True)

    def request_stop(self) -> None:
        """Ask the pipe to stop. Safe to call from any thread."""
        if self.scheduler is None:
            return
        loop = self._loop
        if loop is not None and loop.is_running() and threading.get_ident() != self._loop_thread:
            loop.call_soon_threadsafe(self.scheduler.request_stop)
        else:
            self.scheduler.request_stop()

    async def await_termination(self, timeout: Optional[float] = None) -> None:
        """Wait for the polling task to finish."""
        if self._task is None:
            return
        await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Request a stop and wait for it."""
        self.logger.info("Shutting down.")
        self.request_stop()
        await self.await_termination(timeout)

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
