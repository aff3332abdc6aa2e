"""
Tests for in-process property change notifications.
"""

from app.services.events import PropertyEvent, PropertyEventManager, PropertyEventType


class TestPropertyEventManager:

    def test_listeners_receive_events_in_order(self):
        manager = PropertyEventManager()
        received = []
        manager.subscribe(received.append)

        manager.notify_added("p1")
        manager.notify_updated("p1")
        manager.notify_deleted("p1")
        manager.notify_refresh()

        assert [e.type for e in received] == [
            PropertyEventType.ADDED,
            PropertyEventType.UPDATED,
            PropertyEventType.DELETED,
            PropertyEventType.REFRESH,
        ]
        assert received[0].property_id == "p1"
        assert received[3].property_id is None

    def test_unsubscribe_stops_delivery(self):
        manager = PropertyEventManager()
        received = []
        unsubscribe = manager.subscribe(received.append)

        unsubscribe()
        unsubscribe()
        manager.notify_added("p1")

        assert received == []
        assert manager.listener_count == 0

    def test_failing_listener_does_not_block_others(self):
        manager = PropertyEventManager()
        received = []

        def broken(event: PropertyEvent):
            raise RuntimeError("listener failed")

        manager.subscribe(broken)
        manager.subscribe(received.append)

        manager.notify_updated("p2")

        assert len(received) == 1
        assert received[0].type == PropertyEventType.UPDATED

    def test_listener_may_unsubscribe_during_emit(self):
        manager = PropertyEventManager()
        received = []
        unsubscribe = None

        def once(event: PropertyEvent):
            received.append(event)
            unsubscribe()

        unsubscribe = manager.subscribe(once)

        manager.notify_added("a")
        manager.notify_added("b")

        assert [e.property_id for e in received] == ["a"]

    def test_late_subscriber_misses_earlier_events(self):
        manager = PropertyEventManager()
        manager.notify_added("p1")

        received = []
        manager.subscribe(received.append)

        assert received == []
