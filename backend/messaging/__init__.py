"""Messaging for the build feedback loop and swarm coordination.

Key Components:
    - BuilderNotificationMessage: one per aggregated file on a successful build
    - BuilderErrorMessage: one per build error on a failed build
    - AgentCompletionMessage: sent by swarm agents when their work ends
    - MessageCoordinator: capability protocol consumed by agents
    - InMemoryMessageCoordinator: asyncio.Queue backed implementation

Usage:
    >>> from messaging import InMemoryMessageCoordinator
    >>> coordinator = InMemoryMessageCoordinator()
    >>> queue = coordinator.subscribe("project_123")
    >>> await coordinator.send_error(error_message)
    >>> envelope = await queue.get()
"""

from messaging.coordinator import InMemoryMessageCoordinator, MessageCoordinator
from messaging.types import (
    AgentCompletionMessage,
    BuilderErrorMessage,
    BuilderNotificationMessage,
    MessageEnvelope,
    MessageType,
    NotificationStatus,
    build_idempotency_key,
)

__all__ = [
    # Message types
    "AgentCompletionMessage",
    "BuilderErrorMessage",
    "BuilderNotificationMessage",
    "MessageEnvelope",
    "MessageType",
    "NotificationStatus",
    "build_idempotency_key",
    # Coordination
    "InMemoryMessageCoordinator",
    "MessageCoordinator",
]
