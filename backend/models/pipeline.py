"""Pipeline, stage and agent execution records.

A PipelineExecution is owned by whoever drives the pipeline. The stage runner
appends one StageExecution per stage it runs and one AgentExecutionRecord per
agent it dispatched; records are not modified after their stage completes.
"""

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StageName(StrEnum):
    """Ordered pipeline stages."""

    PLANNING = "Planning"
    DESIGNING = "Designing"
    SWARMING = "Swarming"
    BUILDING = "Building"
    VALIDATING = "Validating"


STAGE_ORDER: tuple[StageName, ...] = (
    StageName.PLANNING,
    StageName.DESIGNING,
    StageName.SWARMING,
    StageName.BUILDING,
    StageName.VALIDATING,
)


class PipelineStatus(StrEnum):
    """Lifecycle status shared by pipelines and stages."""

    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


class AgentExecutionRecord(BaseModel):
    """What one agent produced in one stage."""

    id: str = Field(default_factory=_new_id)
    stage_execution_id: str
    agent_type: str
    agent_name: str
    success: bool
    error_message: str | None = None
    quality_score: int = Field(default=0, ge=0, le=10)
    confidence_score: int = Field(default=0, ge=0, le=10)
    duration_seconds: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    output: str = ""
    artifact_names: list[str] = Field(default_factory=list)
    storage_outcome: str = "ok"
    completed_at: datetime = Field(default_factory=_utcnow)


class StageExecution(BaseModel):
    """One run of one stage."""

    id: str = Field(default_factory=_new_id)
    pipeline_execution_id: str
    stage_name: str
    status: PipelineStatus = PipelineStatus.PENDING
    execution_order: int = 0
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None
    duration_seconds: float | None = None
    items_processed: int = 0
    items_completed: int = 0
    items_failed: int = 0
    error_message: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == PipelineStatus.COMPLETED and self.completed_at is not None

    @property
    def is_failed(self) -> bool:
        return self.status in (PipelineStatus.FAILED, PipelineStatus.CANCELLED)

    @property
    def success_rate(self) -> float:
        if self.items_processed == 0:
            return 0.0
        return self.items_completed / self.items_processed


class PipelineExecution(BaseModel):
    """A pipeline run and everything its stages recorded.

    Attributes:
        project_id: Project the pipeline builds.
        stage: The stage currently (or last) running.
        stage_executions: One entry per stage run, in run order.
        agent_executions: One entry per dispatched agent, in completion order.
    """

    id: str = Field(default_factory=_new_id)
    project_id: str
    stage: str = "Pending"
    status: PipelineStatus = PipelineStatus.PENDING
    target_language: str | None = None
    deployment_target: str | None = None
    agent_pool_size: int | None = None
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None
    progress_percentage: int = Field(default=0, ge=0, le=100)
    error_message: str | None = None
    stage_executions: list[StageExecution] = Field(default_factory=list)
    agent_executions: list[AgentExecutionRecord] = Field(default_factory=list)

    def stage_outputs(self) -> dict[str, str]:
        """Latest successful output per agent type, for later stages' context."""
        outputs: dict[str, str] = {}
        for record in self.agent_executions:
            if record.success and record.output:
                outputs[record.agent_type] = record.output
        return outputs
