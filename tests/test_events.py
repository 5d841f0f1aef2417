"""
Tests for job lifecycle events.
"""

import asyncio

import pytest

from collection_runtime.events import EventSubscription, InMemoryEventBus, JobEvent, JobEventType


class TestJobEvent:
    """Test JobEvent serialization."""

    def test_roundtrip(self):
        event = JobEvent(type=JobEventType.JOB_CANCELLED, job_id="collection-1", owner_id="u1", data={"state": "cancelled"})

        restored = JobEvent.from_dict(event.to_dict())

        assert restored == event

    def test_subscription_filters(self):
        sub = EventSubscription(job_id="collection-1", event_types={JobEventType.JOB_COMPLETED})

        assert sub.matches(JobEvent(type=JobEventType.JOB_COMPLETED, job_id="collection-1"))
        assert not sub.matches(JobEvent(type=JobEventType.JOB_PROGRESS, job_id="collection-1"))
        assert not sub.matches(JobEvent(type=JobEventType.JOB_COMPLETED, job_id="collection-2"))


class TestInMemoryEventBus:
    """Test publish/subscribe behavior."""

    @pytest.mark.asyncio
    async def test_publish_reaches_matching_subscribers(self):
        bus = InMemoryEventBus()
        everything = bus.subscribe()
        only_one = bus.subscribe(job_id="collection-2")

        await bus.publish(JobEvent(type=JobEventType.JOB_STARTED, job_id="collection-1"))
        await bus.publish(JobEvent(type=JobEventType.JOB_STARTED, job_id="collection-2"))

        assert [e.job_id for e in bus.drain(everything)] == ["collection-1", "collection-2"]
        assert [e.job_id for e in bus.drain(only_one)] == ["collection-2"]

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self):
        bus = InMemoryEventBus(max_queue_size=2)
        sub = bus.subscribe()

        for i in range(3):
            await bus.publish(JobEvent(job_id=f"collection-{i}"))

        assert [e.job_id for e in bus.drain(sub)] == ["collection-1", "collection-2"]

    @pytest.mark.asyncio
    async def test_events_iterator_ends_on_unsubscribe(self):
        bus = InMemoryEventBus()
        sub = bus.subscribe()
        received = []

        async def consume():
            async for event in bus.events(sub):
                received.append(event)

        consumer = asyncio.create_task(consume())
        await bus.publish(JobEvent(job_id="collection-1"))
        await asyncio.sleep(0)
        bus.unsubscribe(sub)
        await asyncio.wait_for(consumer, timeout=1)

        assert [e.job_id for e in received] == ["collection-1"]

    @pytest.mark.asyncio
    async def test_wait_for_event_timeout(self):
        bus = InMemoryEventBus()
        sub = bus.subscribe()

        assert await bus.wait_for_event(sub, timeout=0.01) is None

    @pytest.mark.asyncio
    async def test_closed_bus_ignores_publish(self):
        bus = InMemoryEventBus()
        sub = bus.subscribe()
        await bus.close()

        await bus.publish(JobEvent(job_id="collection-1"))

        assert bus.drain(sub) == []


class TestManagerEvents:
    """Test events emitted by the job manager."""

    @pytest.mark.asyncio
    async def test_lifecycle_events(self, manager, event_bus):
        sub = event_bus.subscribe()

        receipt = await manager.trigger("u1", "full")
        await manager.report_progress(receipt.job_id, 50, 500)
        await manager.complete(receipt.job_id, 800)

        events = event_bus.drain(sub)
        assert [e.type for e in events] == [
            JobEventType.JOB_STARTED,
            JobEventType.JOB_PROGRESS,
            JobEventType.JOB_COMPLETED,
        ]
        assert all(e.job_id == receipt.job_id and e.owner_id == "u1" for e in events)
        assert events[1].data["previous_state"] == "started"
        assert events[2].data["records_processed"] == 800

    @pytest.mark.asyncio
    async def test_repeat_cancel_emits_once(self, manager, event_bus):
        receipt = await manager.trigger("u1", "full")
        sub = event_bus.subscribe(event_types={JobEventType.JOB_CANCELLED})

        await manager.cancel(receipt.job_id, "u1", None)
        await manager.cancel(receipt.job_id, "u1", None)

        assert len(event_bus.drain(sub)) == 1

    @pytest.mark.asyncio
    async def test_ignored_report_emits_nothing(self, manager, event_bus):
        receipt = await manager.trigger("u1", "full")
        await manager.fail(receipt.job_id, "boom")
        sub = event_bus.subscribe()

        await manager.report_progress(receipt.job_id, 10, 10)

        assert event_bus.drain(sub) == []
