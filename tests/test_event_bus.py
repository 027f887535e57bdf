"""
Tests for the in-process event bus.
"""
from cost_engine.domain.events import COST_ALERT, COST_RECORDED, DomainEvent, InMemoryEventBus


class TestInMemoryEventBus:
    """Tests for dispatch and the published-event history."""

    def test_dispatch_by_type_and_wildcard(self):
        bus = InMemoryEventBus()
        recorded, everything = [], []
        bus.subscribe(COST_RECORDED, recorded.append)
        bus.subscribe('*', everything.append)

        bus.publish(DomainEvent(COST_RECORDED, "P-1", {'amount': "10.00"}))
        bus.publish(DomainEvent(COST_ALERT, "P-1"))

        assert [e.event_type for e in recorded] == [COST_RECORDED]
        assert [e.event_type for e in everything] == [COST_RECORDED, COST_ALERT]

    def test_failing_handler_does_not_reach_publisher(self):
        bus = InMemoryEventBus()
        received = []

        def broken(event):
            raise RuntimeError("subscriber down")

        bus.subscribe(COST_RECORDED, broken)
        bus.subscribe(COST_RECORDED, received.append)
        bus.publish(DomainEvent(COST_RECORDED, "P-1"))

        assert len(received) == 1

    def test_history_keeps_most_recent_events(self):
        bus = InMemoryEventBus(history_limit=2)
        for project_id in ("P-1", "P-2", "P-3"):
            bus.publish(DomainEvent(COST_RECORDED, project_id))

        assert [e.project_id for e in bus.published()] == ["P-2", "P-3"]
        assert [e.project_id for e in bus.published(COST_RECORDED)] == ["P-2", "P-3"]
