"""
Tests for notification subscriptions and delivery.
"""

import logging
import threading

import pytest

from conftest import FakeSession, lost
from jmx_pipe.adapters.notifications import NotificationSubscriber
from jmx_pipe.common.exceptions import ConnectionLostError, ConnectorError
from jmx_pipe.models.queries import Subscription
from jmx_pipe.models.registry import Notification

GC_PATTERN = "java.lang:type=GarbageCollector,*"


def _subscription(name="gc", pattern=GC_PATTERN, attributes=None):
    return Subscription(name=name, object=pattern, attributes=attributes or {})


@pytest.fixture
def gc_subscription():
    return _subscription(attributes={"info.duration": "GCDuration", "=name": "Collector"})


class TestResubscribe:
    """Pending-set bookkeeping across ticks."""

    @pytest.mark.asyncio
    async def test_installs_on_every_match(self, emitter, session, gc_subscription, logger):
        subscriber = NotificationSubscriber([gc_subscription], emitter, lost, logger=logger)

        attached = await subscriber.resubscribe(session)

        assert attached == 1
        assert subscriber.pending == []
        assert len(session.listeners) == 3
        assert all(len(listeners) == 1 for listeners in session.listeners.values())

    @pytest.mark.asyncio
    async def test_zero_matches_stay_pending(self, emitter, logger, caplog):
        session = FakeSession()
        subscription = _subscription()
        subscriber = NotificationSubscriber([subscription], emitter, lost, logger=logger)

        with caplog.at_level(logging.INFO):
            assert await subscriber.resubscribe(session) == 0

        assert subscriber.pending == [subscription]
        assert "postponing" in caplog.text

        session.add_object("java.lang:type=GarbageCollector,name=ZGC", {})
        assert await subscriber.resubscribe(session) == 1
        assert subscriber.pending == []

    @pytest.mark.asyncio
    async def test_install_failure_stays_pending_and_is_retried(self, emitter, session, gc_subscription, logger, caplog):
        failing = "java.lang:type=GarbageCollector,name=PS MarkSweep"
        session.listener_errors[failing] = ConnectorError("listener refused")
        subscriber = NotificationSubscriber([gc_subscription], emitter, lost, logger=logger)

        with caplog.at_level(logging.WARNING):
            assert await subscriber.resubscribe(session) == 0

        assert subscriber.pending == [gc_subscription]
        assert any(r.condition == "subscription_install" for r in caplog.records if hasattr(r, "condition"))

        del session.listener_errors[failing]
        assert await subscriber.resubscribe(session) == 1
        assert subscriber.pending == []
        # no object got a second listener
        assert all(len(listeners) == 1 for listeners in session.listeners.values())
        assert len(session.listeners) == 3

    @pytest.mark.asyncio
    async def test_retry_is_unbounded(self, emitter, logger):
        session = FakeSession()
        subscriber = NotificationSubscriber([_subscription()], emitter, lost, logger=logger)

        for _ in range(25):
            await subscriber.resubscribe(session)

        assert len(session.find_calls) == 25
        assert len(subscriber.pending) == 1

    @pytest.mark.asyncio
    async def test_attached_subscriptions_are_not_retried(self, emitter, session, gc_subscription, logger):
        subscriber = NotificationSubscriber([gc_subscription], emitter, lost, logger=logger)

        await subscriber.resubscribe(session)
        await subscriber.resubscribe(session)

        assert session.find_calls == [GC_PATTERN]

    @pytest.mark.asyncio
    async def test_reset_marks_everything_pending(self, emitter, session, logger):
        subscriptions = [
            _subscription("gc"),
            _subscription("memory", "java.lang:type=Memory"),
            _subscription("missing", "java.lang:type=Missing"),
        ]
        subscriber = NotificationSubscriber(subscriptions, emitter, lost, logger=logger)

        await subscriber.resubscribe(session)
        assert [s.name for s in subscriber.pending] == ["missing"]

        subscriber.reset()

        assert subscriber.pending == subscriptions

    @pytest.mark.asyncio
    async def test_reset_allows_reinstall_on_new_session(self, emitter, session, gc_subscription, logger):
        subscriber = NotificationSubscriber([gc_subscription], emitter, lost, logger=logger)
        await subscriber.resubscribe(session)

        subscriber.reset()
        fresh = FakeSession(session.objects)
        await subscriber.resubscribe(fresh)

        assert len(fresh.listeners) == 3

    @pytest.mark.asyncio
    async def test_connection_loss_propagates_and_keeps_order(self, emitter, session, logger):
        subscriptions = [
            _subscription("memory", "java.lang:type=Memory"),
            _subscription("threads", "java.lang:type=Threading"),
            _subscription("gc"),
        ]
        session.find_errors["java.lang:type=Threading"] = ConnectionLostError("session closed")
        subscriber = NotificationSubscriber(subscriptions, emitter, lost, logger=logger)

        with pytest.raises(ConnectionLostError):
            await subscriber.resubscribe(session)

        assert [s.name for s in subscriber.pending] == ["threads", "gc"]

    @pytest.mark.asyncio
    async def test_duplicate_subscriptions_are_tracked_separately(self, emitter, session, logger):
        first = _subscription("gc")
        second = _subscription("gc")
        subscriber = NotificationSubscriber([first, second], emitter, lost, logger=logger)

        assert await subscriber.resubscribe(session) == 2
        assert all(len(listeners) == 2 for listeners in session.listeners.values())


class TestDelivery:
    """Turning notifications into records."""

    @pytest.mark.asyncio
    async def test_notification_round_trip(self, emitter, sink, session, gc_subscription, logger):
        subscriber = NotificationSubscriber([gc_subscription], emitter, lost, event_context={"env": "prod"}, logger=logger)
        await subscriber.resubscribe(session)

        delivered = session.notify(
            "java.lang:type=GarbageCollector,name=G1 Old",
            Notification(message="gc", user_data={"info": {"duration": 42, "cause": "Allocation Failure"}}),
        )

        assert delivered == 1
        assert sink.drain() == [
            {
                "host": "app01",
                "name": "gc",
                "env": "prod",
                "message": "gc",
                "GCDuration": 42,
                "Collector": "G1 Old",
            }
        ]

    def test_whole_payload_attribute_is_flattened(self, emitter, sink, logger):
        subscription = _subscription(attributes={"info": "Info"})
        subscriber = NotificationSubscriber([subscription], emitter, lost, logger=logger)

        subscriber.handle_notification(
            subscription, Notification(message="gc", user_data={"info": {"duration": 42, "concurrent": True}})
        )

        record = sink.drain()[0]
        assert record["Info_duration"] == 42
        assert record["Info_concurrent"] == 1

    def test_missing_payload_field_is_omitted(self, emitter, sink, logger):
        subscription = _subscription(attributes={"info.duration": "GCDuration"})
        subscriber = NotificationSubscriber([subscription], emitter, lost, logger=logger)

        subscriber.handle_notification(subscription, Notification(message="gc", user_data="not a composite"))

        assert sink.drain() == [{"host": "app01", "name": "gc", "message": "gc"}]

    def test_missing_message_is_omitted(self, emitter, sink, logger):
        subscription = _subscription()
        subscriber = NotificationSubscriber([subscription], emitter, lost, logger=logger)

        subscriber.handle_notification(subscription, Notification())

        assert sink.drain() == [{"host": "app01", "name": "gc"}]

    def test_delivery_failure_is_logged_not_raised(self, sink, logger, caplog):
        class BrokenEmitter:
            def emit(self, name, values):
                raise RuntimeError("sink closed")

        subscription = _subscription()
        subscriber = NotificationSubscriber([subscription], BrokenEmitter(), lost, logger=logger)

        with caplog.at_level(logging.WARNING):
            subscriber.handle_notification(subscription, Notification(message="gc"))

        assert "Error handling notification gc" in caplog.text

    def test_delivery_from_other_threads(self, emitter, sink, logger):
        subscription = _subscription(attributes={"info.duration": "GCDuration"})
        subscriber = NotificationSubscriber([subscription], emitter, lost, logger=logger)

        def deliver(n):
            for i in range(50):
                subscriber.handle_notification(
                    subscription, Notification(message=f"t{n}", user_data={"info": {"duration": i}})
                )

        threads = [threading.Thread(target=deliver, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        records = sink.drain()
        assert len(records) == 200
        assert all(set(r) == {"host", "name", "message", "GCDuration"} for r in records)


class TestLogContext:
    """Log lines identify the remote endpoint."""

    @pytest.mark.asyncio
    async def test_postponed_subscription_carries_endpoint(self, emitter, logger, caplog):
        subscriber = NotificationSubscriber([_subscription()], emitter, lost, host="app01", port=9999, logger=logger)

        with caplog.at_level(logging.INFO):
            await subscriber.resubscribe(FakeSession())

        record = next(r for r in caplog.records if "postponing" in r.getMessage())
        assert (record.host, record.port) == ("app01", 9999)
        assert record.subscription == "gc"

    @pytest.mark.asyncio
    async def test_install_failure_carries_endpoint(self, emitter, session, gc_subscription, logger, caplog):
        session.listener_errors["java.lang:type=GarbageCollector,name=G1 Old"] = ConnectorError("listener refused")
        subscriber = NotificationSubscriber([gc_subscription], emitter, lost, host="app01", port=9999, logger=logger)

        with caplog.at_level(logging.WARNING):
            await subscriber.resubscribe(session)

        record = next(r for r in caplog.records if getattr(r, "condition", None) == "subscription_install")
        assert (record.host, record.port) == ("app01", 9999)

    def test_payload_traversal_warning_carries_endpoint(self, emitter, sink, logger, caplog):
        subscription = _subscription(attributes={"info.duration": "GCDuration"})
        subscriber = NotificationSubscriber([subscription], emitter, lost, host="app01", port=9999, logger=logger)

        with caplog.at_level(logging.WARNING):
            subscriber.handle_notification(subscription, Notification(message="gc", user_data={"info": 42}))

        record = next(r for r in caplog.records if getattr(r, "condition", None) == "attribute_traversal")
        assert (record.host, record.port) == ("app01", 9999)
        assert sink.drain() == [{"host": "app01", "name": "gc", "message": "gc"}]
