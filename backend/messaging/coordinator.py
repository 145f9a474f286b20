"""Message coordination for builder feedback and swarm completions.

This module defines the MessageCoordinator capability consumed by agents and
an in-process implementation backed by asyncio.Queue.

Delivery is fire-and-forget from the sender's side: ``send_*`` returns once
the message has been handed to subscriber queues (or buffered), not after any
downstream processing. Messages carrying an idempotency key are delivered at
most once per key; redelivering the same key is a logged no-op.
"""

import asyncio
import threading
from collections import defaultdict
from typing import Protocol, runtime_checkable

import structlog

from config import settings
from messaging.types import (
    AgentCompletionMessage,
    BuilderErrorMessage,
    BuilderNotificationMessage,
    CoordinatedMessage,
    MessageEnvelope,
    MessageType,
)

logger = structlog.get_logger(__name__)


@runtime_checkable
class MessageCoordinator(Protocol):
    """Delivers builder and swarm messages to downstream consumers."""

    async def send_notification(self, message: BuilderNotificationMessage) -> None: ...

    async def send_error(self, message: BuilderErrorMessage) -> None: ...

    async def send_completion(self, message: AgentCompletionMessage) -> None: ...


class InMemoryMessageCoordinator:
    """Async per-project pub/sub coordinator.

    Subscriptions are per project id. Messages published before any
    subscriber connects are buffered and handed to the first subscriber.
    Every accepted message is also kept in the project's history.

    Thread Safety:
        Registry access goes through a threading.Lock so that subscribe and
        unsubscribe can be called from worker threads.

    Attributes:
        delivery_timeout: Seconds to wait on a full subscriber queue.
        _subscribers: project_id -> subscriber queues
        _buffer: project_id -> envelopes waiting for a first subscriber
        _history: project_id -> all accepted envelopes, in order
        _seen_keys: idempotency keys already accepted, oldest first, capped at
            MAX_SEEN_KEYS
    """

    MAX_HISTORY_PER_PROJECT = 5000
    MAX_SEEN_KEYS = 50_000

    def __init__(self, delivery_timeout: float | None = None) -> None:
        self.delivery_timeout = (
            delivery_timeout
            if delivery_timeout is not None
            else settings.message_delivery_timeout_seconds
        )
        self._subscribers: dict[str, list[asyncio.Queue[MessageEnvelope]]] = defaultdict(list)
        self._buffer: dict[str, list[MessageEnvelope]] = defaultdict(list)
        self._history: dict[str, list[MessageEnvelope]] = defaultdict(list)
        self._seen_keys: dict[str, None] = {}
        self._lock = threading.Lock()
        logger.info("message_coordinator_initialized")

    async def send_notification(self, message: BuilderNotificationMessage) -> None:
        await self._publish(MessageType.BUILDER_NOTIFICATION, message.project_id, message)

    async def send_error(self, message: BuilderErrorMessage) -> None:
        await self._publish(MessageType.BUILDER_ERROR, message.project_id, message)

    async def send_completion(self, message: AgentCompletionMessage) -> None:
        await self._publish(MessageType.AGENT_COMPLETION, message.project_id, message)

    def subscribe(self, project_id: str) -> asyncio.Queue[MessageEnvelope]:
        """Subscribe to messages for a project.

        Buffered messages for the project are delivered to the new queue
        immediately.

        Args:
            project_id: The project to subscribe to

        Returns:
            A queue receiving MessageEnvelope objects
        """
        queue: asyncio.Queue[MessageEnvelope] = asyncio.Queue()

        with self._lock:
            self._subscribers[project_id].append(queue)
            subscriber_count = len(self._subscribers[project_id])
            buffered = self._buffer.pop(project_id, [])

        for envelope in buffered:
            queue.put_nowait(envelope)

        logger.info(
            "subscriber_added",
            project_id=project_id,
            subscriber_count=subscriber_count,
            buffered_messages_delivered=len(buffered),
        )
        return queue

    def unsubscribe(self, project_id: str, queue: asyncio.Queue[MessageEnvelope]) -> None:
        """Remove a subscriber queue. Unknown queues are a no-op."""
        with self._lock:
            queues = self._subscribers.get(project_id)
            if not queues or queue not in queues:
                logger.warning("unsubscribe_queue_not_found", project_id=project_id)
                return
            queues.remove(queue)
            if not queues:
                del self._subscribers[project_id]
        logger.info("subscriber_removed", project_id=project_id)

    async def _publish(
        self,
        message_type: MessageType,
        project_id: str,
        message: CoordinatedMessage,
    ) -> None:
        envelope = MessageEnvelope(type=message_type, project_id=project_id, message=message)
        key = envelope.idempotency_key

        with self._lock:
            if key is not None:
                if key in self._seen_keys:
                    logger.info(
                        "duplicate_message_dropped",
                        project_id=project_id,
                        message_type=message_type.value,
                        idempotency_key=key,
                    )
                    return
                self._seen_keys[key] = None
                if len(self._seen_keys) > self.MAX_SEEN_KEYS:
                    del self._seen_keys[next(iter(self._seen_keys))]

            history = self._history[project_id]
            history.append(envelope)
            if len(history) > self.MAX_HISTORY_PER_PROJECT:
                self._history[project_id] = history[-self.MAX_HISTORY_PER_PROJECT:]

            subscribers = list(self._subscribers.get(project_id, []))
            if not subscribers:
                self._buffer[project_id].append(envelope)
                logger.debug(
                    "message_buffered",
                    project_id=project_id,
                    message_type=message_type.value,
                    buffer_size=len(self._buffer[project_id]),
                )
                return

        for queue in subscribers:
            try:
                await asyncio.wait_for(queue.put(envelope), timeout=self.delivery_timeout)
            except TimeoutError:
                logger.warning(
                    "message_delivery_timeout",
                    project_id=project_id,
                    message_type=message_type.value,
                )

        logger.debug(
            "message_published",
            project_id=project_id,
            message_type=message_type.value,
            subscriber_count=len(subscribers),
        )

    def get_history(
        self,
        project_id: str,
        message_type: MessageType | None = None,
    ) -> list[MessageEnvelope]:
        """Return accepted messages for a project in publish order.

        Args:
            project_id: Project to read.
            message_type: Optional filter on the routing key.
        """
        with self._lock:
            history = list(self._history.get(project_id, []))
        if message_type is None:
            return history
        return [envelope for envelope in history if envelope.type == message_type]

    def get_subscriber_count(self, project_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(project_id, []))

    def clear_project(self, project_id: str) -> None:
        """Drop buffered messages and history for a project.

        Idempotency keys are kept so that late redeliveries stay suppressed.
        """
        with self._lock:
            self._buffer.pop(project_id, None)
            self._history.pop(project_id, None)
