"""Base agent and the uniform execution lifecycle.

Every agent runs ``pre_execute`` -> ``execute_internal`` -> ``post_execute``
through ``BaseAgent.execute``. Faults in the first two become a failed
result; faults in ``post_execute`` are recorded as a storage outcome and never
change ``success``.
"""

import time
from abc import ABC, abstractmethod
from typing import ClassVar

import structlog

from agents.cancellation import CancellationToken
from agents.capabilities import Capability
from agents.llm import ModelInvocation
from agents.prompts import get_role_prompt
from agents.types import AgentExecutionContext, AgentExecutionResult, AgentPriority, Artifact

logger = structlog.get_logger(__name__)

# Scores for a run whose internal execution raised.
FAULT_QUALITY_SCORE = 1
FAULT_CONFIDENCE_SCORE = 5

DEFAULT_EXPECTED_SECTIONS: tuple[str, ...] = ("overview", "result", "analysis")


class BaseAgent(ABC):
    """Abstract base for all pipeline agents.

    Subclasses declare their identity and required capabilities as class
    variables; the factory reads them at registration.

    Attributes:
        agent_type: Registry key, e.g. "Planner".
        agent_name: Display name.
        priority: Scheduling priority.
        required_capabilities: Constructor dependencies, in keyword order.
        expected_sections: Keywords the quality analysis looks for.
    """

    agent_type: ClassVar[str]
    agent_name: ClassVar[str]
    priority: ClassVar[AgentPriority] = AgentPriority.MEDIUM
    required_capabilities: ClassVar[tuple[Capability, ...]] = (Capability.LLM,)
    expected_sections: ClassVar[tuple[str, ...]] = DEFAULT_EXPECTED_SECTIONS

    def __init__(self, llm_client: ModelInvocation) -> None:
        self.llm_client = llm_client
        self._logger = logger.bind(agent_type=self.agent_type)

    async def execute(
        self,
        context: AgentExecutionContext,
        cancel_token: CancellationToken | None = None,
    ) -> AgentExecutionResult:
        """Run the full lifecycle and return a result. Never raises ``Exception``.

        Args:
            context: Immutable inputs for the run.
            cancel_token: Observed at every suspension point. A fresh,
                never-cancelled token is used when omitted.
        """
        token = cancel_token or CancellationToken()
        log = self._logger.bind(
            execution_id=context.execution_id,
            project_id=context.project_id,
        )
        started = time.monotonic()
        log.info("agent_execution_started", stage=context.stage)

        if not self.can_execute(context):
            error_message = f"Agent {self.agent_type} cannot execute with the provided context"
            log.error(
                "agent_validation_failed",
                prompt_provided=bool(context.input_prompt),
                pipeline_execution_id=context.pipeline_execution_id,
            )
            return AgentExecutionResult.failure(error_message)

        try:
            token.raise_if_cancelled()
            await self.pre_execute(context, token)
            result = await self.execute_internal(context, token)
        except Exception as e:
            log.exception("agent_execution_failed", error_type=type(e).__name__)
            result = AgentExecutionResult.failure(
                f"Agent execution failed: {e}",
                quality_score=FAULT_QUALITY_SCORE,
                confidence_score=FAULT_CONFIDENCE_SCORE,
            )
            result.duration_seconds = time.monotonic() - started
            return result

        try:
            await self.post_execute(context, result, token)
        except Exception as e:
            log.warning(
                "agent_post_execute_failed",
                error_type=type(e).__name__,
                error=str(e),
            )
            result.record_storage_failed(str(e) or type(e).__name__)

        result.duration_seconds = time.monotonic() - started
        log.info(
            "agent_execution_completed",
            success=result.success,
            duration_seconds=round(result.duration_seconds, 3),
            quality_score=result.quality_score,
        )
        return result

    def can_execute(self, context: AgentExecutionContext) -> bool:
        """Whether the context carries what this agent needs."""
        return bool(
            context.input_prompt
            and context.project_id
            and context.pipeline_execution_id
        )

    def estimated_duration_seconds(self, context: AgentExecutionContext) -> int:
        """Rough runtime estimate; 30s base plus 15s per 1000 prompt chars, capped."""
        complexity = min(len(context.input_prompt) // 1000, 10)
        return 30 + complexity * 15

    async def pre_execute(self, context: AgentExecutionContext, token: CancellationToken) -> None:
        return None

    @abstractmethod
    async def execute_internal(
        self, context: AgentExecutionContext, token: CancellationToken
    ) -> AgentExecutionResult:
        """Do the agent's work. May raise; the lifecycle converts faults."""

    async def post_execute(
        self,
        context: AgentExecutionContext,
        result: AgentExecutionResult,
        token: CancellationToken,
    ) -> None:
        return None

    async def execute_llm_call(
        self,
        system_prompt: str,
        context: AgentExecutionContext,
        token: CancellationToken,
    ) -> AgentExecutionResult:
        """Invoke the model and score the output."""
        result = await token.guard(self.llm_client.generate(system_prompt, context))
        if not result.success:
            return result
        result.quality_score, result.confidence_score = self.analyze_output_quality(
            result.output, context
        )
        return result

    def analyze_output_quality(
        self, output: str, context: AgentExecutionContext
    ) -> tuple[int, int]:
        """Score model output on a 0-10 scale.

        Quality starts at 70/100 and rises with length, markdown structure
        and how many of ``expected_sections`` appear. Confidence starts at
        60/100 and rises when the output is longer than the prompt and
        mentions the target language.

        Returns:
            (quality, confidence), each 0-10.
        """
        if not output:
            return 0, 0

        quality = 70
        confidence = 60

        if len(output) > 2000:
            quality += 15
        elif len(output) > 1000:
            quality += 10
        elif len(output) > 500:
            quality += 5

        if "##" in output:
            quality += 10
        if "- " in output:
            quality += 5
        if "```" in output:
            quality += 5

        lowered = output.lower()
        sections = self.expected_sections or DEFAULT_EXPECTED_SECTIONS
        found = sum(1 for section in sections if section.lower() in lowered)
        quality += (found * 10 // len(sections)) * 10

        if len(output) > len(context.input_prompt):
            confidence += 20
        if context.target_language and context.target_language.lower() in lowered:
            confidence += 15

        return min(100, quality) // 10, min(100, confidence) // 10


class PromptedAgent(BaseAgent):
    """A model-backed agent that makes one call and emits one markdown artifact.

    Subclasses set the artifact location and the duration model:
    ``base_duration_seconds + (len(prompt) // duration_chars_per_step) * duration_step_seconds``.
    """

    artifact_name: ClassVar[str]
    artifact_path: ClassVar[str]
    base_duration_seconds: ClassVar[int] = 30
    duration_chars_per_step: ClassVar[int] = 1000
    duration_step_seconds: ClassVar[int] = 15

    async def execute_internal(
        self, context: AgentExecutionContext, token: CancellationToken
    ) -> AgentExecutionResult:
        self._logger.info("agent_prompted_call", project_id=context.project_id)
        result = await self.execute_llm_call(
            get_role_prompt(self.agent_type, context.stage), context, token
        )
        if not result.success:
            return result
        result.artifacts = [self.build_artifact(result.output)]
        return result

    def build_artifact(self, output: str) -> Artifact:
        return Artifact(
            name=self.artifact_name,
            content_type="markdown",
            content=output,
            path=self.artifact_path,
        )

    def estimated_duration_seconds(self, context: AgentExecutionContext) -> int:
        steps = len(context.input_prompt) // self.duration_chars_per_step
        return self.base_duration_seconds + steps * self.duration_step_seconds
