"""
Drift-correcting polling scheduler.

One asyncio task runs ticks back to back: make sure a session exists,
retry pending notification subscriptions, run every query, then sleep
until the next planned iteration. Ticks that overrun the interval are not
made up for; the plan is moved forward instead so it never lags behind.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from ..common.exceptions import DegradedCondition
from ..models.queries import Query
from .connection import ConnectionManager
from .core import RegistrySession
from .notifications import NotificationSubscriber
from .query_executor import QueryExecutor


@dataclass
class SchedulerState:
    """State owned by the scheduler task and handed to every tick."""
    next_iteration: float
    session: Optional[RegistrySession] = None
    ticks: int = 0
    skipped_iterations: int = 0
    reconnects: int = 0


class Scheduler:
    """Runs ticks on a fixed interval until a stop is requested."""

    def __init__(
        self,
        connection: ConnectionManager,
        subscriber: NotificationSubscriber,
        executor: QueryExecutor,
        queries: Sequence[Query],
        interval: float,
        reconnect_delay: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            connection: Session lifecycle manager
            subscriber: Notification subscriber holding the pending set
            executor: Query executor
            queries: Queries to run on every tick
            interval: Seconds between planned iterations
            reconnect_delay: Pause after a lost connection before the next tick
            clock: Monotonic clock, in seconds
            logger: Logger instance
        """
        if interval <= 0:
            raise ValueError("interval must be positive")

        self.connection = connection
        self.endpoint = {"host": connection.host, "port": connection.port}
        self.subscriber = subscriber
        self.executor = executor
        self.queries = tuple(queries)
        self.interval = interval
        self.reconnect_delay = reconnect_delay
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

        self._stop_event = asyncio.Event()
        self.state: Optional[SchedulerState] = None

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def request_stop(self) -> None:
        """Stop the loop; an idle wait in progress ends immediately."""
        self._stop_event.set()

    async def run(self) -> SchedulerState:
        """Run ticks until stopped. Returns the final state."""
        state = SchedulerState(next_iteration=self.clock() + self.interval)
        self.state = state

        self.logger.info(
            "Scheduler started",
            extra={**self.endpoint, "interval": self.interval, "queries": len(self.queries)},
        )
        try:
            while not self._stop_event.is_set():
                try:
                    await self.tick(state)
                except Exception as e:
                    if self.connection.is_lost(e):
                        await self._handle_connection_lost(state, e)
                        continue
                    self.logger.error(
                        f"Tick failed: {e}",
                        exc_info=True,
                        extra={**self.endpoint, "condition": DegradedCondition.UNEXPECTED_TICK.value},
                    )
                await self.sleep_until_next_iteration(state)
        finally:
            await self.connection.discard(state.session)
            state.session = None
            self.logger.info("Scheduler stopped", extra={**self.endpoint, "ticks": state.ticks})

        return state

    async def tick(self, state: SchedulerState) -> None:
        """One poll-and-resubscribe cycle."""
        if state.session is None:
            state.session = await self.connection.connect()

        await self.subscriber.resubscribe(state.session)
        emitted = await self.executor.execute_all(state.session, self.queries)
        state.ticks += 1

        self.logger.debug(
            "Tick completed",
            extra={
                **self.endpoint,
                "tick": state.ticks,
                "records": emitted,
                "pending_subscriptions": len(self.subscriber.pending),
            },
        )

    async def _handle_connection_lost(self, state: SchedulerState, error: BaseException) -> None:
        self.logger.error(
            f"Connection lost; will try to reestablish in {self.reconnect_delay} second(s). Error was: {error}",
            exc_info=True,
            extra={
                **self.endpoint,
                "condition": DegradedCondition.CONNECTION_LOST.value,
            },
        )
        await self.connection.discard(state.session)
        state.session = None
        state.reconnects += 1
        self.subscriber.reset()
        await self._wait(self.reconnect_delay)

    async def sleep_until_next_iteration(self, state: SchedulerState) -> None:
        """Wait for the planned iteration time, or move the plan forward if late."""
        sleep_time = state.next_iteration - self.clock()

        if sleep_time < 0:
            overshoot = -sleep_time
            skip_iterations = int(overshoot // self.interval)
            self.logger.warning(
                f"Overshot the planned iteration time for {overshoot:.3f} seconds"
                + (f", skipping {skip_iterations} iterations" if skip_iterations > 0 else "")
                + ", querying immediately!",
                extra={**self.endpoint, "overshoot": overshoot, "skipped_iterations": skip_iterations},
            )
            state.next_iteration += skip_iterations * self.interval
            state.skipped_iterations += skip_iterations
        elif sleep_time > 0:
            self.logger.debug(f"Sleeping for {sleep_time:.3f} seconds.")
            await self._wait(sleep_time)

        state.next_iteration += self.interval

    async def _wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; True if woken by a stop request."""
        if timeout <= 0:
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        return self._stop_event.is_set()
