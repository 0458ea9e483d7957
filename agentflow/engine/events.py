"""
Lifecycle event fan-out.

Each workflow has one EventBroadcaster holding the live observers of its
runs. Every observer gets its own queue; broadcasting only enqueues, so a
slow or broken observer never holds up the run. Transports (the WebSocket
route, tests) drain a Subscription by iterating it.
"""

from typing import Any, AsyncIterator, Dict, List, Optional
from enum import Enum
import asyncio
import itertools
import json
import logging

from agentflow.engine.errors import BroadcastError


logger = logging.getLogger(__name__)

_subscription_ids = itertools.count(1)


class EventType(str, Enum):
    """Lifecycle events emitted during a run."""
    EXECUTION_STARTED = "execution_started"
    NODE_STARTED = "node_started"
    NODE_COMPLETED = "node_completed"
    NODE_FAILED = "node_failed"
    EXECUTION_COMPLETED = "execution_completed"
    EXECUTION_FAILED = "execution_failed"
    STATE = "state"


def make_event(event_type: EventType, **data: Any) -> Dict[str, Any]:
    """Build a ``{type, data}`` event."""
    return {"type": event_type.value, "data": data}


def serialize_event(event: Dict[str, Any]) -> str:
    return json.dumps(event, default=str)


class Subscription:
    """
    One observer's handle.

    Events arrive as serialized JSON strings. Iterating the subscription
    yields them in emission order until it is closed.
    """

    def __init__(self, max_pending: int = 1000):
        self.id = next(_subscription_ids)
        self.max_pending = max_pending
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def deliver(self, payload: str) -> None:
        """
        Enqueue a serialized event.

        Raises:
            BroadcastError: If the subscription is closed or its backlog is full
        """
        if self._closed:
            raise BroadcastError(f"Subscription {self.id} is closed")
        if self._queue.qsize() >= self.max_pending:
            raise BroadcastError(
                f"Subscription {self.id} has {self.max_pending} undelivered events"
            )
        self._queue.put_nowait(payload)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    def get_nowait(self) -> Optional[str]:
        """Pop the next queued event, or None if nothing is queued."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def drain(self) -> List[Dict[str, Any]]:
        """Pop every queued event and decode it."""
        events = []
        while True:
            payload = self.get_nowait()
            if payload is None:
                return events
            events.append(json.loads(payload))

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            payload = await self._queue.get()
            if payload is None:
                return
            yield payload

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, pending={self.pending}, closed={self._closed})"


class EventBroadcaster:
    """
    Registry of live observers for one workflow.

    Usage:
        broadcaster = EventBroadcaster("wf-1")
        sub = broadcaster.subscribe(current_state)
        broadcaster.broadcast(make_event(EventType.NODE_STARTED, nodeId="a"))
        broadcaster.unsubscribe(sub)
    """

    def __init__(self, workflow_id: str, max_pending: int = 1000):
        self.workflow_id = workflow_id
        self.max_pending = max_pending
        self._subscriptions: Dict[int, Subscription] = {}

    @property
    def observer_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, current_state: Optional[Dict[str, Any]] = None) -> Subscription:
        """
        Register a new observer.

        Args:
            current_state: Serialized ExecutionState of the current or most
                recent run; when given, the observer first receives a
                ``state`` event carrying it
        """
        subscription = Subscription(self.max_pending)
        if current_state is not None:
            subscription.deliver(
                serialize_event(make_event(EventType.STATE, execution=current_state))
            )
        self._subscriptions[subscription.id] = subscription
        logger.info(
            f"Observer {subscription.id} subscribed to workflow {self.workflow_id} "
            f"({self.observer_count} live)"
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove an observer. Unknown or already removed handles are ignored."""
        removed = self._subscriptions.pop(subscription.id, None)
        subscription.close()
        if removed is not None:
            logger.info(f"Observer {subscription.id} left workflow {self.workflow_id}")

    def broadcast(self, event: Dict[str, Any]) -> int:
        """
        Deliver an event to every observer.

        The event is serialized once. Observers that cannot take it are
        dropped; the others are unaffected.

        Returns:
            Number of observers the event was delivered to
        """
        payload = serialize_event(event)
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            try:
                subscription.deliver(payload)
                delivered += 1
            except BroadcastError as e:
                logger.warning(f"Dropping observer: {e}")
                self.unsubscribe(subscription)
        return delivered

    def close(self) -> None:
        """Close every subscription."""
        for subscription in list(self._subscriptions.values()):
            self.unsubscribe(subscription)
