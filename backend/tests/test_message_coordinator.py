"""Tests for messaging/coordinator.py -- per-project builder message fan-out.

Covers subscribe/publish, buffering before the first subscriber,
idempotency-key de-duplication, history filtering and unsubscribe.
"""

import asyncio

from messaging.coordinator import InMemoryMessageCoordinator, MessageCoordinator
from messaging.types import (
    AgentCompletionMessage,
    BuilderErrorMessage,
    BuilderNotificationMessage,
    MessageType,
    build_idempotency_key,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _notification(
    project_id: str = "proj_1",
    code_unit: str = "UserService",
    attempt: str = "att_1",
) -> BuilderNotificationMessage:
    return BuilderNotificationMessage(
        idempotency_key=build_idempotency_key(project_id, code_unit, attempt),
        project_id=project_id,
        pipeline_execution_id="pipe_1",
        code_unit_name=code_unit,
        code_unit_id=code_unit,
        build_attempt_id=attempt,
        total_functions=4,
        completed_functions=4,
        quality_score=9,
    )


def _error(index: int, project_id: str = "proj_1", attempt: str = "att_1") -> BuilderErrorMessage:
    return BuilderErrorMessage(
        idempotency_key=build_idempotency_key(project_id, "UserService", attempt, index),
        project_id=project_id,
        pipeline_execution_id="pipe_1",
        code_unit_name="UserService",
        code_unit_id="UserService",
        builder_agent_id="EnhancedBuilder",
        build_attempt_id=attempt,
        error_type="CompileError",
        error_message="; expected",
        severity=7,
    )


# =========================================================================
# Idempotency keys
# =========================================================================


class TestIdempotencyKey:
    def test_notification_key(self) -> None:
        assert build_idempotency_key("p", "Unit", "a1") == "p:Unit:a1"

    def test_error_key_includes_index(self) -> None:
        assert build_idempotency_key("p", "Unit", "a1", 0) == "p:Unit:a1:0"
        assert build_idempotency_key("p", "Unit", "a1", 3) == "p:Unit:a1:3"


# =========================================================================
# Subscribe / Publish
# =========================================================================


class TestSubscribePublish:
    async def test_satisfies_protocol(self, coordinator: InMemoryMessageCoordinator) -> None:
        assert isinstance(coordinator, MessageCoordinator)

    async def test_notification_delivered(self, coordinator: InMemoryMessageCoordinator) -> None:
        queue = coordinator.subscribe("proj_1")
        await coordinator.send_notification(_notification())
        envelope = await asyncio.wait_for(queue.get(), timeout=1.0)
        assert envelope.type == MessageType.BUILDER_NOTIFICATION
        assert envelope.message.code_unit_name == "UserService"

    async def test_does_not_cross_projects(self, coordinator: InMemoryMessageCoordinator) -> None:
        q1 = coordinator.subscribe("proj_1")
        q2 = coordinator.subscribe("proj_2")
        await coordinator.send_error(_error(0, project_id="proj_1"))
        envelope = await asyncio.wait_for(q1.get(), timeout=1.0)
        assert envelope.project_id == "proj_1"
        assert q2.empty()

    async def test_completion_routed(self, coordinator: InMemoryMessageCoordinator) -> None:
        queue = coordinator.subscribe("proj_1")
        await coordinator.send_completion(
            AgentCompletionMessage(
                agent_id="exec_1",
                agent_type="MethodAgent",
                project_id="proj_1",
                pipeline_execution_id="pipe_1",
                success=True,
            )
        )
        envelope = await asyncio.wait_for(queue.get(), timeout=1.0)
        assert envelope.type == MessageType.AGENT_COMPLETION
        assert envelope.idempotency_key is None


# =========================================================================
# Buffering
# =========================================================================


class TestBuffering:
    """Messages sent before anyone subscribes go to the first subscriber."""

    async def test_buffered_messages_delivered_on_subscribe(
        self, coordinator: InMemoryMessageCoordinator
    ) -> None:
        await coordinator.send_error(_error(0))
        await coordinator.send_error(_error(1))
        queue = coordinator.subscribe("proj_1")
        assert queue.qsize() == 2
        first = queue.get_nowait()
        assert first.message.idempotency_key.endswith(":0")

    async def test_buffer_cleared_after_first_subscriber(
        self, coordinator: InMemoryMessageCoordinator
    ) -> None:
        await coordinator.send_notification(_notification())
        coordinator.subscribe("proj_1")
        second = coordinator.subscribe("proj_1")
        assert second.empty()


# =========================================================================
# De-duplication
# =========================================================================


class TestDeduplication:
    async def test_redelivery_is_dropped(self, coordinator: InMemoryMessageCoordinator) -> None:
        queue = coordinator.subscribe("proj_1")
        await coordinator.send_notification(_notification())
        await coordinator.send_notification(_notification())
        assert queue.qsize() == 1
        assert len(coordinator.get_history("proj_1")) == 1

    async def test_errors_with_distinct_indexes_are_kept(
        self, coordinator: InMemoryMessageCoordinator
    ) -> None:
        await coordinator.send_error(_error(0))
        await coordinator.send_error(_error(1))
        await coordinator.send_error(_error(0))
        assert len(coordinator.get_history("proj_1", MessageType.BUILDER_ERROR)) == 2

    async def test_new_attempt_is_not_a_duplicate(
        self, coordinator: InMemoryMessageCoordinator
    ) -> None:
        await coordinator.send_notification(_notification(attempt="att_1"))
        await coordinator.send_notification(_notification(attempt="att_2"))
        assert len(coordinator.get_history("proj_1")) == 2

    async def test_keys_survive_clear_project(
        self, coordinator: InMemoryMessageCoordinator
    ) -> None:
        await coordinator.send_notification(_notification())
        coordinator.clear_project("proj_1")
        assert coordinator.get_history("proj_1") == []
        await coordinator.send_notification(_notification())
        assert coordinator.get_history("proj_1") == []

    async def test_seen_keys_are_capped_oldest_first(
        self, coordinator: InMemoryMessageCoordinator, monkeypatch
    ) -> None:
        monkeypatch.setattr(InMemoryMessageCoordinator, "MAX_SEEN_KEYS", 2)
        for attempt in ("att_1", "att_2", "att_3"):
            await coordinator.send_notification(_notification(attempt=attempt))

        assert len(coordinator._seen_keys) == 2
        # att_1 was evicted, att_3 is still remembered.
        await coordinator.send_notification(_notification(attempt="att_3"))
        await coordinator.send_notification(_notification(attempt="att_1"))
        attempts = [env.message.build_attempt_id for env in coordinator.get_history("proj_1")]
        assert attempts == ["att_1", "att_2", "att_3", "att_1"]


# =========================================================================
# History and subscriptions
# =========================================================================


class TestHistoryAndSubscriptions:
    async def test_history_filter(self, coordinator: InMemoryMessageCoordinator) -> None:
        await coordinator.send_notification(_notification())
        await coordinator.send_error(_error(0))
        assert len(coordinator.get_history("proj_1")) == 2
        errors = coordinator.get_history("proj_1", MessageType.BUILDER_ERROR)
        assert [env.type for env in errors] == [MessageType.BUILDER_ERROR]

    async def test_unsubscribe(self, coordinator: InMemoryMessageCoordinator) -> None:
        queue = coordinator.subscribe("proj_1")
        assert coordinator.get_subscriber_count("proj_1") == 1
        coordinator.unsubscribe("proj_1", queue)
        assert coordinator.get_subscriber_count("proj_1") == 0

    async def test_unsubscribe_unknown_queue_is_noop(
        self, coordinator: InMemoryMessageCoordinator
    ) -> None:
        coordinator.unsubscribe("proj_1", asyncio.Queue())
        assert coordinator.get_subscriber_count("proj_1") == 0
