"""Message type definitions for builder feedback and swarm coordination.

These are the wire-level envelopes exchanged between the build subsystem and
the coordination layer. Each message carries enough of the build result for a
remote consumer (e.g. the remediation spawner) to act without re-querying it.

Invariant kept by the producer: within one build attempt there is exactly one
BuilderNotificationMessage per aggregated file on success, or exactly one
BuilderErrorMessage per build error on failure, never both.
"""

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MessageType(StrEnum):
    """Routing keys for coordinated messages."""

    BUILDER_NOTIFICATION = "builder.notification"
    BUILDER_ERROR = "builder.error"
    AGENT_COMPLETION = "swarm.agent.completed"


class NotificationStatus(StrEnum):
    """Status carried by a builder notification."""

    READY = "Ready"
    COMPLETE = "Complete"
    FAILED = "Failed"


def build_idempotency_key(
    project_id: str,
    code_unit_id: str,
    build_attempt_id: str,
    error_index: int | None = None,
) -> str:
    """Build the stable de-duplication key for a builder message.

    Redelivery of the same message produces the same key, so a consumer can
    refuse to spawn remediation twice for one defect.

    Args:
        project_id: Owning project.
        code_unit_id: Code unit the message is about.
        build_attempt_id: The build attempt that produced the message.
        error_index: Position of the error in the attempt's error list, for
            error messages (one code unit can have several errors).

    Returns:
        A colon-joined key.
    """
    parts = [project_id, code_unit_id, build_attempt_id]
    if error_index is not None:
        parts.append(str(error_index))
    return ":".join(parts)


class BuilderNotificationMessage(BaseModel):
    """Notification that a code unit built successfully.

    Attributes:
        notification_id: Unique id of this message instance.
        idempotency_key: Stable key for de-duplication on redelivery.
        project_id: Owning project.
        pipeline_execution_id: Pipeline run this build belongs to.
        code_unit_controller_id: Consumer-side controller the message targets.
        code_unit_name: Name of the code unit (owner of the aggregated file).
        code_unit_id: Identity of the code unit.
        build_attempt_id: Build attempt that produced the notification.
        status: Completion status, "Complete" for successful builds.
        total_functions: Functions in the code unit.
        completed_functions: Functions that built.
        failed_functions: Functions that did not build.
        quality_score: Build quality score (0-10).
    """

    notification_id: str = Field(default_factory=_new_id)
    idempotency_key: str
    project_id: str
    pipeline_execution_id: str
    code_unit_controller_id: str = "CUCS"
    code_unit_name: str
    code_unit_id: str
    build_attempt_id: str
    status: NotificationStatus = NotificationStatus.COMPLETE
    message: str = ""
    total_functions: int = Field(default=0, ge=0)
    completed_functions: int = Field(default=0, ge=0)
    failed_functions: int = Field(default=0, ge=0)
    quality_score: int = Field(default=0, ge=0, le=10)
    total_cost: float = 0.0
    total_duration_seconds: float = 0.0
    priority: str = "Medium"
    completed_at: datetime = Field(default_factory=_utcnow)
    notified_at: datetime = Field(default_factory=_utcnow)


class BuilderErrorMessage(BaseModel):
    """Error report for one build defect; drives bug-fix agent spawning.

    Attributes:
        error_id: Unique id of this message instance.
        idempotency_key: Stable key for de-duplication on redelivery.
        builder_agent_id: Agent type that produced the report.
        error_type: Error taxonomy value (e.g. "CompileError").
        severity: 1-10, 10 being critical.
        build_stage: Where in the build the error surfaced.
        related_functions: Functions implicated by the error.
    """

    error_id: str = Field(default_factory=_new_id)
    idempotency_key: str
    project_id: str
    pipeline_execution_id: str
    code_unit_name: str
    code_unit_id: str
    builder_agent_id: str
    build_attempt_id: str

    error_type: str
    error_message: str
    error_details: str | None = None
    stack_trace: str | None = None

    file_name: str | None = None
    function_name: str | None = None
    function_signature: str | None = None
    line_number: int | None = None

    build_stage: str | None = "Compilation"
    build_output: str | None = None

    severity: int = Field(default=5, ge=1, le=10)
    priority: str = "High"

    suggested_fix: str | None = None
    related_functions: list[str] = Field(default_factory=list)

    error_occurred_at: datetime = Field(default_factory=_utcnow)
    reported_at: datetime = Field(default_factory=_utcnow)


class AgentCompletionMessage(BaseModel):
    """Completion notice sent by a swarm agent when its unit of work ends."""

    agent_id: str
    agent_type: str
    request_id: str = Field(default_factory=_new_id)
    project_id: str
    pipeline_execution_id: str
    success: bool
    error_message: str | None = None

    output_response: str = ""
    quality_score: int = Field(default=0, ge=0, le=10)
    confidence_score: int = Field(default=0, ge=0, le=10)
    duration_seconds: float = 0.0

    input_tokens: int = 0
    output_tokens: int = 0

    completed_at: datetime = Field(default_factory=_utcnow)


CoordinatedMessage = BuilderNotificationMessage | BuilderErrorMessage | AgentCompletionMessage


class MessageEnvelope(BaseModel):
    """A message as delivered to subscribers of a project."""

    type: MessageType
    project_id: str
    message: CoordinatedMessage
    published_at: datetime = Field(default_factory=_utcnow)

    @property
    def idempotency_key(self) -> str | None:
        """De-duplication key of the wrapped message, if it has one."""
        return getattr(self.message, "idempotency_key", None)
