"""
Notification subscriptions.

Subscriptions whose pattern matched nothing yet, or whose listener
installation failed, stay pending and are retried on every tick. Listeners
already installed on the current session are remembered, so a retry never
installs a second listener on the same object.
"""

import logging
from typing import Any, Callable, List, Mapping, Optional, Sequence, Set, Tuple

from ..common.exceptions import DegradedCondition
from ..models.queries import AttributePath, Subscription
from ..models.registry import ManagedObject, Notification, unquote
from ..models.values import to_value
from .coercion import resolve
from .core import RegistrySession
from .output import RecordEmitter


class NotificationListener:
    """Listener bound to one subscription and the object it was installed on."""

    def __init__(self, subscriber: "NotificationSubscriber", subscription: Subscription, source: ManagedObject):
        self.subscriber = subscriber
        self.subscription = subscription
        self.source = source

    def __call__(self, notification: Notification) -> None:
        self.subscriber.logger.debug(
            f"Handling notification {self.subscription.name}.",
            extra={**self.subscriber.endpoint, "source": str(self.source.name)},
        )
        self.subscriber.handle_notification(self.subscription, notification, self.source)


class NotificationSubscriber:
    """Keeps the pending-subscription set and turns notifications into records.

    ``resubscribe`` and ``reset`` must only be called from the scheduler's
    task. ``handle_notification`` may run on any thread.
    """

    def __init__(
        self,
        subscriptions: Sequence[Subscription],
        emitter: RecordEmitter,
        is_connection_lost: Callable[[BaseException], bool],
        event_context: Optional[Mapping[str, Any]] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.subscriptions: Tuple[Subscription, ...] = tuple(subscriptions)
        self.emitter = emitter
        self.is_connection_lost = is_connection_lost
        self.event_context = dict(event_context or {})
        self.endpoint = {"host": host, "port": port}
        self.logger = logger or logging.getLogger(__name__)

        self._pending: List[int] = list(range(len(self.subscriptions)))
        self._installed: Set[Tuple[int, str]] = set()

    @property
    def pending(self) -> List[Subscription]:
        """Subscriptions not yet attached on the current session."""
        return [self.subscriptions[i] for i in self._pending]

    def reset(self) -> None:
        """Mark every subscription pending again (listeners died with the session)."""
        self._pending = list(range(len(self.subscriptions)))
        self._installed.clear()
        if self.subscriptions:
            self.logger.info(
                "All notification subscriptions marked pending",
                extra={**self.endpoint, "pending": len(self._pending)},
            )

    async def resubscribe(self, session: RegistrySession) -> int:
        """Try to attach every pending subscription.

        Returns:
            Number of subscriptions attached by this call

        Raises:
            Exception: Only errors classified as connection loss propagate
        """
        still_pending: List[int] = []
        attached = 0

        for position, index in enumerate(self._pending):
            try:
                done = await self._subscribe(session, index)
            except Exception:
                self._pending = still_pending + self._pending[position:]
                raise
            if done:
                attached += 1
            else:
                still_pending.append(index)

        self._pending = still_pending
        return attached

    async def _subscribe(self, session: RegistrySession, index: int) -> bool:
        subscription = self.subscriptions[index]
        pattern = subscription.object_pattern
        try:
            objects = await session.find_objects(pattern)
            if not objects:
                self.logger.info(
                    f"No object found for name {pattern}; postponing notification subscription.",
                    extra={**self.endpoint, "subscription": subscription.name},
                )
                return False

            for managed_object in objects:
                key = (index, managed_object.name.canonical_name)
                if key in self._installed:
                    continue
                await session.add_notification_listener(
                    managed_object.handle, NotificationListener(self, subscription, managed_object)
                )
                self._installed.add(key)
                self.logger.debug(
                    f"Successfully added notification listener to object {managed_object.name}",
                    extra={**self.endpoint, "subscription": subscription.name},
                )
            return True

        except Exception as e:
            if self.is_connection_lost(e):
                raise
            self.logger.warning(
                f"Error while setting up a notification listener {subscription.name}: {e}",
                exc_info=True,
                extra={**self.endpoint, "pattern": pattern, "condition": DegradedCondition.SUBSCRIPTION_INSTALL.value},
            )
            return False

    def handle_notification(
        self,
        subscription: Subscription,
        notification: Notification,
        source: Optional[ManagedObject] = None,
    ) -> None:
        """Convert one notification into a record. Never raises."""
        try:
            values = dict(self.event_context)
            values["message"] = notification.message
            payload = to_value(notification.user_data)

            for path_text, alias in subscription.attributes.items():
                path = AttributePath.parse(path_text)
                if path.identity:
                    raw = source.name.get_key_property(path.attribute) if source else None
                    if raw is not None and raw.startswith('"'):
                        raw = unquote(raw)
                    resolve(to_value(raw), alias, path.segments, values, self.logger, self.endpoint)
                else:
                    resolve(payload, alias, (path.attribute,) + path.segments, values, self.logger, self.endpoint)

            self.emitter.emit(subscription.name, values)
        except Exception as e:
            self.logger.warning(
                f"Error handling notification {subscription.name}: {e}",
                exc_info=True,
                extra={**self.endpoint, "subscription": subscription.name},
            )
