"""Execution context, result and artifact types shared by all agents.

AgentExecutionContext is immutable for the duration of a run and is shared by
every agent in a stage. AgentExecutionResult is created by the agent that ran
and is only mutated by its own lifecycle hooks.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from config import settings


class AgentPriority(StrEnum):
    """Scheduling priority advertised by an agent."""

    HIGH = "High"
    MEDIUM = "Medium"
    NORMAL = "Normal"
    LOW = "Low"


class ProjectFile(BaseModel):
    """A file already present in the project, visible to agents."""

    model_config = ConfigDict(frozen=True)

    path: str
    content: str = ""
    file_type: str = ""
    last_modified: datetime = Field(default_factory=lambda: datetime.now(UTC))
    size: int = 0


class AgentExecutionContext(BaseModel):
    """Immutable inputs for one agent run.

    Attributes:
        project_id: Owning project.
        pipeline_execution_id: Pipeline run the stage belongs to.
        execution_id: Unique id of this execution context.
        stage_execution_id: Stage run the context was built for.
        stage: Stage name, e.g. "Building".
        target_language: Language the project is generated in.
        deployment_target: Where the output is meant to run.
        input_prompt: Instructions for the agent.
        parameters: Stage-specific parameters (e.g. FunctionId, CodeUnitId).
        agent_pool_size: Hint for same-stage concurrency.
        previous_results: Outputs of earlier stages keyed by agent type.
        project_files: Files already in the project.
    """

    model_config = ConfigDict(frozen=True)

    project_id: str
    pipeline_execution_id: str
    execution_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    stage_execution_id: str | None = None
    stage: str | None = None

    target_language: str = ""
    deployment_target: str = ""
    input_prompt: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)

    agent_pool_size: int = Field(default_factory=lambda: settings.default_agent_pool_size, ge=1)
    max_tokens: int = Field(default_factory=lambda: settings.default_max_tokens, gt=0)
    temperature: float = Field(default_factory=lambda: settings.default_temperature, ge=0.0, le=2.0)
    model: str | None = None

    previous_results: dict[str, str] = Field(default_factory=dict)
    project_files: list[ProjectFile] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    start_time: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def get_parameter(self, key: str, default: Any = None) -> Any:
        """Look a value up in parameters, then in metadata."""
        if key in self.parameters:
            return self.parameters[key]
        return self.metadata.get(key, default)


@dataclass(frozen=True)
class Artifact:
    """Immutable output produced by an agent."""

    name: str
    content_type: str
    content: str
    path: str
    size: int = -1

    def __post_init__(self) -> None:
        if self.size < 0:
            object.__setattr__(self, "size", len(self.content))


@dataclass(frozen=True)
class StorageOk:
    """Post-execution persistence succeeded or was not needed."""

    detail: str | None = None


@dataclass(frozen=True)
class StorageDegraded:
    """Persistence reported a failure; the core result stands."""

    reason: str


@dataclass(frozen=True)
class StorageFailed:
    """Persistence raised; the core result stands."""

    reason: str


StorageOutcome = StorageOk | StorageDegraded | StorageFailed

# Metadata keys written next to the typed storage outcome.
STORAGE_RESULT_KEY = "StorageResult"
STORAGE_ERROR_KEY = "StorageError"
STORAGE_EXCEPTION_KEY = "StorageException"


@dataclass
class AgentExecutionResult:
    """Outcome of one agent run.

    Scores are integers in 0-10. ``storage`` records what happened in the
    post-execution hook and never affects ``success``.
    """

    success: bool
    output: str = ""
    error_message: str | None = None
    quality_score: int = 0
    confidence_score: int = 0
    duration_seconds: float = 0.0
    artifacts: list[Artifact] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    input_tokens: int = 0
    output_tokens: int = 0
    storage: StorageOutcome = field(default_factory=StorageOk)

    @classmethod
    def failure(
        cls,
        error_message: str,
        quality_score: int = 0,
        confidence_score: int = 0,
        output: str = "",
    ) -> "AgentExecutionResult":
        return cls(
            success=False,
            output=output,
            error_message=error_message,
            quality_score=quality_score,
            confidence_score=confidence_score,
        )

    def record_storage_degraded(self, reason: str | None) -> None:
        reason = reason or "Unknown storage error"
        self.storage = StorageDegraded(reason)
        self.metadata[STORAGE_ERROR_KEY] = reason

    def record_storage_failed(self, reason: str) -> None:
        self.storage = StorageFailed(reason)
        self.metadata[STORAGE_EXCEPTION_KEY] = reason
