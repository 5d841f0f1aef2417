"""
Publish/subscribe for job lifecycle events.

Publishing never blocks: each subscriber owns a bounded queue, and when it
is full the oldest pending event is discarded to make room.
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator

from .types import JobEvent, JobEventType


@dataclass(frozen=True)
class EventSubscription:
    """Filter describing which events a subscriber receives.

    ``job_id`` and ``event_types`` left as None match everything.
    """
    job_id: str | None = None
    event_types: frozenset[JobEventType] | None = None
    subscription_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def matches(self, event: JobEvent) -> bool:
        if self.job_id is not None and event.job_id != self.job_id:
            return False
        return not self.event_types or event.type in self.event_types


class EventBus(ABC):
    """Fan-out of JobEvents to subscribers."""

    @abstractmethod
    async def publish(self, event: JobEvent) -> None:
        ...

    @abstractmethod
    def subscribe(
        self,
        job_id: str | None = None,
        event_types: set[JobEventType] | None = None,
    ) -> EventSubscription:
        ...

    @abstractmethod
    def events(self, subscription: EventSubscription) -> AsyncIterator[JobEvent]:
        """Yield events for ``subscription`` until it is removed or the bus closes."""
        ...

    @abstractmethod
    def unsubscribe(self, subscription: EventSubscription) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


# Queued after the last event to end an ``events()`` iteration.
_END = None


class _Mailbox:
    def __init__(self, maxsize: int):
        self.queue: asyncio.Queue[JobEvent | None] = asyncio.Queue(maxsize=maxsize)

    def offer(self, item: JobEvent | None) -> None:
        if self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(item)


class InMemoryEventBus(EventBus):
    """Single-process event bus backed by one asyncio.Queue per subscriber."""

    def __init__(self, max_queue_size: int = 1000):
        self._max_queue_size = max_queue_size
        self._mailboxes: dict[str, tuple[EventSubscription, _Mailbox]] = {}
        self._closed = False

    async def publish(self, event: JobEvent) -> None:
        if self._closed:
            return
        for subscription, mailbox in list(self._mailboxes.values()):
            if subscription.matches(event):
                mailbox.offer(event)

    def subscribe(
        self,
        job_id: str | None = None,
        event_types: set[JobEventType] | None = None,
    ) -> EventSubscription:
        subscription = EventSubscription(
            job_id=job_id,
            event_types=frozenset(event_types) if event_types else None,
        )
        self._mailboxes[subscription.subscription_id] = (subscription, _Mailbox(self._max_queue_size))
        return subscription

    async def events(self, subscription: EventSubscription) -> AsyncIterator[JobEvent]:
        entry = self._mailboxes.get(subscription.subscription_id)
        if entry is None:
            return
        queue = entry[1].queue
        while (event := await queue.get()) is not _END:
            yield event

    def unsubscribe(self, subscription: EventSubscription) -> None:
        entry = self._mailboxes.pop(subscription.subscription_id, None)
        if entry is not None:
            entry[1].offer(_END)

    async def close(self) -> None:
        self._closed = True
        for _, mailbox in self._mailboxes.values():
            mailbox.offer(_END)
        self._mailboxes.clear()

    async def wait_for_event(
        self,
        subscription: EventSubscription,
        timeout: float | None = None,
    ) -> JobEvent | None:
        """Next event for ``subscription``, or None on timeout or end of stream."""
        entry = self._mailboxes.get(subscription.subscription_id)
        if entry is None:
            return None
        try:
            return await asyncio.wait_for(entry[1].queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def drain(self, subscription: EventSubscription) -> list[JobEvent]:
        """Pop every queued event without waiting."""
        entry = self._mailboxes.get(subscription.subscription_id)
        if entry is None:
            return []
        queue = entry[1].queue
        drained = []
        while not queue.empty():
            event = queue.get_nowait()
            if event is not _END:
                drained.append(event)
        return drained


__all__ = [
    "EventBus",
    "InMemoryEventBus",
    "EventSubscription",
]
