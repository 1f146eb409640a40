"""
Subscription Service - in-process fan-out of live records.

Writers publish to a topic; every open Subscription on that topic buffers the
record until its owner reads it. Publishing never waits on readers: a
subscriber that falls more than ``max_pending`` records behind is closed and
must resubscribe. Subscriptions are handles owned by the caller and must be
closed, either explicitly or with ``async with``.
"""

from collections import deque
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set
import asyncio
import logging
from uuid import uuid4

from ..core.config import settings

logger = logging.getLogger(__name__)


def conversation_topic(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"

CONVERSATIONS_TOPIC = "conversations"
COMMUNITY_TOPIC = "community"


def _record_id(record: Any) -> Optional[str]:
    if isinstance(record, dict):
        return record.get('id')
    return getattr(record, 'id', None)


class Subscription:
    """
    Cancellable handle over a live stream of records.

    ``transform`` turns each published record into what the owner receives;
    returning None drops the record. ``enrich`` is awaited on every record as
    it is read, for lookups that cannot run inside ``publish``. Iterating a
    closed subscription ends the loop once the buffer is drained.
    """

    def __init__(
        self,
        hub: "SubscriptionHub",
        topic: str,
        transform: Optional[Callable[[Any], Any]] = None,
        enrich: Optional[Callable[[Any], Awaitable[Any]]] = None,
        max_pending: Optional[int] = None,
    ):
        self.id = str(uuid4())
        self.topic = topic
        self._hub = hub
        self._transform = transform
        self._enrich = enrich
        self._buffer: deque = deque()
        self._ready = asyncio.Event()
        self._replayed_ids: Set[str] = set()
        self.max_pending = max_pending or settings.SUBSCRIPTION_MAX_PENDING
        self.closed = False
        self.overflowed = False

    def prime(self, records: Iterable[Any], discard_pending: bool = False):
        """
        Place a replay snapshot ahead of anything published since subscribing.

        Records already buffered are kept unless their id is in the snapshot,
        or dropped entirely with ``discard_pending`` when the snapshot
        supersedes them.
        """
        snapshot = list(records)
        self._replayed_ids = {_record_id(record) for record in snapshot if _record_id(record)}
        pending = [] if discard_pending else [
            record for record in self._buffer if _record_id(record) not in self._replayed_ids
        ]
        self._buffer = deque(snapshot + pending)
        if self._buffer:
            self._ready.set()

    def push(self, record: Any):
        if self.closed:
            return
        if _record_id(record) in self._replayed_ids:
            return
        if self._transform is not None:
            record = self._transform(record)
            if record is None:
                return
        if len(self._buffer) >= self.max_pending:
            logger.warning(f"Subscription {self.id} on {self.topic} fell {self.max_pending} records behind, closing")
            self.overflowed = True
            self.close()
            return
        self._buffer.append(record)
        self._ready.set()

    async def next(self) -> Any:
        """Wait for the next record; raises StopAsyncIteration once closed and drained"""
        while not self._buffer:
            if self.closed:
                raise StopAsyncIteration
            self._ready.clear()
            await self._ready.wait()
        record = self._buffer.popleft()
        if self._enrich is not None:
            record = await self._enrich(record)
        return record

    def __aiter__(self):
        return self

    async def __anext__(self):
        return await self.next()

    def close(self):
        if self.closed:
            return
        self.closed = True
        self._hub._unregister(self)
        self._ready.set()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()


class SubscriptionHub:
    """Registry of open subscriptions keyed by topic"""

    def __init__(self):
        self._topics: Dict[str, Set[Subscription]] = {}

    def subscribe(
        self,
        topic: str,
        transform: Optional[Callable[[Any], Any]] = None,
        enrich: Optional[Callable[[Any], Awaitable[Any]]] = None,
        max_pending: Optional[int] = None,
    ) -> Subscription:
        subscription = Subscription(self, topic, transform, enrich=enrich, max_pending=max_pending)
        self._topics.setdefault(topic, set()).add(subscription)
        logger.info(f"Subscription {subscription.id} opened on {topic}")
        return subscription

    def publish(self, topic: str, record: Any) -> int:
        """Deliver a record to every subscriber of a topic, returns the fan-out count"""
        subscribers = list(self._topics.get(topic, ()))
        for subscription in subscribers:
            try:
                subscription.push(record)
            except Exception as e:
                logger.error(f"Error delivering to subscription {subscription.id} on {topic}: {str(e)}")
        return len(subscribers)

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    def _unregister(self, subscription: Subscription):
        subscribers = self._topics.get(subscription.topic)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._topics[subscription.topic]
        logger.info(f"Subscription {subscription.id} closed on {subscription.topic}")


subscription_hub = SubscriptionHub()
