"""
Status-change notifications for job and workflow updates.

The hierarchy publishes through an EventBus after each persisted change.
Subscribers filter by job, workflow or event kind. Delivery is at most once:
a bus never blocks or fails the status write that produced the event.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from redis.exceptions import RedisError

from ..jobs.types import JobStatus
from ..logging import get_logger
from .types import HierarchyEvent, HierarchyEventType

_CLOSED = None


@dataclass
class EventSubscription:
    """Filter on job id, workflow id and event kind; unset fields match anything."""
    subscription_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    job_id: str | None = None
    workflow_id: str | None = None
    kinds: set[HierarchyEventType] | None = None

    def matches(self, event: HierarchyEvent) -> bool:
        return (
            (not self.job_id or event.job_id == self.job_id)
            and (not self.workflow_id or event.workflow_id == self.workflow_id)
            and (not self.kinds or event.kind in self.kinds)
        )


class EventBus(ABC):
    """Where hierarchy events go after a status change is stored."""

    @abstractmethod
    async def publish(self, event: HierarchyEvent) -> None:
        ...

    async def publish_status(
        self,
        kind: HierarchyEventType,
        job_id: str,
        new_status: JobStatus,
        old_status: JobStatus,
        workflow_id: str | None = None,
    ) -> HierarchyEvent:
        """Publish a ``kind`` event for ``job_id`` moving old -> new."""
        event = HierarchyEvent(
            kind=kind,
            job_id=job_id,
            new_status=new_status,
            old_status=old_status,
            workflow_id=workflow_id,
        )
        await self.publish(event)
        return event

    @abstractmethod
    def subscribe(
        self,
        job_id: str | None = None,
        workflow_id: str | None = None,
        kinds: set[HierarchyEventType] | None = None,
    ) -> EventSubscription:
        ...

    @abstractmethod
    def events(
        self,
        subscription: EventSubscription,
    ) -> AsyncIterator[HierarchyEvent]:
        """Yield matching events until the subscription ends."""
        ...

    @abstractmethod
    def unsubscribe(self, subscription: EventSubscription) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class NullEventBus(EventBus):
    """Default bus when notifications are off; drops everything."""

    async def publish(self, event: HierarchyEvent) -> None:
        return None

    def subscribe(
        self,
        job_id: str | None = None,
        workflow_id: str | None = None,
        kinds: set[HierarchyEventType] | None = None,
    ) -> EventSubscription:
        return EventSubscription(job_id=job_id, workflow_id=workflow_id, kinds=kinds)

    async def events(
        self,
        subscription: EventSubscription,
    ) -> AsyncIterator[HierarchyEvent]:
        return
        yield  # pragma: no cover

    def unsubscribe(self, subscription: EventSubscription) -> None:
        return None

    async def close(self) -> None:
        return None


class InMemoryEventBus(EventBus):
    """Process-local bus with one bounded mailbox per subscription.

    When a mailbox is full, ``drop_policy`` decides which event is lost:
    ``"oldest"`` evicts the head, ``"newest"`` discards the incoming event.
    Every accepted event is also appended to ``published``, which tests use
    to inspect what the hierarchy emitted.
    """

    def __init__(
        self,
        max_queue_size: int = 1000,
        drop_policy: str = "oldest",
    ):
        if drop_policy not in ("oldest", "newest"):
            raise ValueError(f"drop_policy must be 'oldest' or 'newest', got {drop_policy!r}")
        self._mailboxes: dict[str, tuple[EventSubscription, asyncio.Queue]] = {}
        self._max_queue_size = max_queue_size
        self._drop_policy = drop_policy
        self._closed = False
        self._lock = asyncio.Lock()
        self.published: list[HierarchyEvent] = []

    def _deliver(self, mailbox: asyncio.Queue, event: HierarchyEvent) -> None:
        if mailbox.full():
            if self._drop_policy == "newest":
                return
            mailbox.get_nowait()
        mailbox.put_nowait(event)

    async def publish(self, event: HierarchyEvent) -> None:
        if self._closed:
            return
        async with self._lock:
            self.published.append(event)
            for subscription, mailbox in list(self._mailboxes.values()):
                if subscription.matches(event):
                    self._deliver(mailbox, event)

    def subscribe(
        self,
        job_id: str | None = None,
        workflow_id: str | None = None,
        kinds: set[HierarchyEventType] | None = None,
    ) -> EventSubscription:
        subscription = EventSubscription(job_id=job_id, workflow_id=workflow_id, kinds=kinds)
        mailbox: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._mailboxes[subscription.subscription_id] = (subscription, mailbox)
        return subscription

    def _mailbox(self, subscription: EventSubscription) -> asyncio.Queue | None:
        entry = self._mailboxes.get(subscription.subscription_id)
        return entry[1] if entry else None

    async def events(
        self,
        subscription: EventSubscription,
    ) -> AsyncIterator[HierarchyEvent]:
        mailbox = self._mailbox(subscription)
        if mailbox is None:
            return
        while (event := await mailbox.get()) is not _CLOSED:
            yield event

    @staticmethod
    def _wake(mailbox: asyncio.Queue) -> None:
        # A reader blocked on get() needs the close marker to return
        if mailbox.full():
            mailbox.get_nowait()
        mailbox.put_nowait(_CLOSED)

    def unsubscribe(self, subscription: EventSubscription) -> None:
        entry = self._mailboxes.pop(subscription.subscription_id, None)
        if entry is not None:
            self._wake(entry[1])

    async def close(self) -> None:
        self._closed = True
        async with self._lock:
            for _, mailbox in self._mailboxes.values():
                self._wake(mailbox)
            self._mailboxes.clear()

    async def wait_for_event(
        self,
        subscription: EventSubscription,
        timeout: float | None = None,
    ) -> HierarchyEvent | None:
        """Next event for ``subscription``, or None on timeout or close."""
        mailbox = self._mailbox(subscription)
        if mailbox is None:
            return None
        try:
            return await asyncio.wait_for(mailbox.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

class RedisEventBus(EventBus):
    """Publishes events as JSON over Redis pub/sub.

    Channels are ``{channel_prefix}:{kind}``, e.g. ``hierarchy:events:job.update``.
    A failed publish is logged and swallowed: notifications are best effort
    and must not undo a status change that is already persisted.

    Example:
        ```python
        bus = RedisEventBus(redis_client)
        sub = bus.subscribe(workflow_id="root-jid")
        async for event in bus.events(sub):
            print(event.kind, event.job_id, event.new_status)
        ```
    """

    def __init__(
        self,
        client: Any,  # redis.asyncio.Redis
        channel_prefix: str = "hierarchy:events",
    ):
        self._client = client
        self._prefix = channel_prefix
        self._subscriptions: dict[str, EventSubscription] = {}
        self._pubsubs: dict[str, Any] = {}
        self._logger = get_logger()

    def channel(self, kind: HierarchyEventType) -> str:
        return f"{self._prefix}:{kind.value}"

    async def publish(self, event: HierarchyEvent) -> None:
        try:
            await self._client.publish(self.channel(event.kind), event.to_json())
        except RedisError as e:
            self._logger.log_error(e, "Failed to publish hierarchy event", event_id=event.event_id)

    def subscribe(
        self,
        job_id: str | None = None,
        workflow_id: str | None = None,
        kinds: set[HierarchyEventType] | None = None,
    ) -> EventSubscription:
        subscription = EventSubscription(job_id=job_id, workflow_id=workflow_id, kinds=kinds)
        self._subscriptions[subscription.subscription_id] = subscription
        return subscription

    async def events(
        self,
        subscription: EventSubscription,
    ) -> AsyncIterator[HierarchyEvent]:
        if subscription.subscription_id not in self._subscriptions:
            return

        kinds = subscription.kinds or set(HierarchyEventType)
        pubsub = self._client.pubsub()
        self._pubsubs[subscription.subscription_id] = pubsub
        await pubsub.subscribe(*(self.channel(kind) for kind in kinds))
        try:
            async for message in pubsub.listen():
                if subscription.subscription_id not in self._subscriptions:
                    break
                if message.get("type") != "message":
                    continue
                try:
                    event = HierarchyEvent.from_json(message["data"])
                except (json.JSONDecodeError, KeyError, ValueError):
                    continue
                if subscription.matches(event):
                    yield event
        finally:
            self._pubsubs.pop(subscription.subscription_id, None)
            await pubsub.aclose()

    def unsubscribe(self, subscription: EventSubscription) -> None:
        self._subscriptions.pop(subscription.subscription_id, None)

    async def close(self) -> None:
        self._subscriptions.clear()
        for pubsub in list(self._pubsubs.values()):
            await pubsub.aclose()
        self._pubsubs.clear()


__all__ = [
    "EventBus",
    "EventSubscription",
    "NullEventBus",
    "InMemoryEventBus",
    "RedisEventBus",
]
