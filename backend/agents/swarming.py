"""Swarming stage agent: one method agent per function.

A MethodAgent implements a single function identified by the ``FunctionId``
and ``CodeUnitId`` parameters. It analyses the requirement, generates the
implementation and reports back through the message coordinator.
"""

from typing import ClassVar

from agents.base import BaseAgent
from agents.cancellation import CancellationToken, OperationCancelledError
from agents.capabilities import Capability
from agents.llm import ModelInvocation
from agents.types import AgentExecutionContext, AgentExecutionResult, AgentPriority, Artifact
from config import SwarmConfiguration
from messaging.coordinator import MessageCoordinator
from messaging.types import AgentCompletionMessage

DEFAULT_COMPLEXITY = 5

ANALYSIS_PROMPT = """\
You are a Method Agent analysing one function before it is implemented.
Cover purpose, inputs, outputs, edge cases, dependencies and error conditions.
Target language: {language}. Complexity rating: {complexity}."""

IMPLEMENTATION_PROMPT = """\
You are a Method Agent implementing one function from its analysis.
Return the complete implementation in one fenced code block with no
placeholders. Target language: {language}."""


class MethodAgent(BaseAgent):
    """Implements one function and notifies the coordinator on completion."""

    agent_type = "MethodAgent"
    agent_name = "Method Agent"
    priority = AgentPriority.NORMAL
    required_capabilities: ClassVar[tuple[Capability, ...]] = (
        Capability.LLM,
        Capability.MESSAGE_COORDINATOR,
        Capability.SWARM_CONFIG,
    )
    expected_sections = ("```", "return", "error", "validation")

    def __init__(
        self,
        llm_client: ModelInvocation,
        message_coordinator: MessageCoordinator,
        swarm_config: SwarmConfiguration,
    ) -> None:
        super().__init__(llm_client)
        self.message_coordinator = message_coordinator
        self.swarm_config = swarm_config

    def can_execute(self, context: AgentExecutionContext) -> bool:
        return (
            super().can_execute(context)
            and context.get_parameter("FunctionId") is not None
            and context.get_parameter("CodeUnitId") is not None
        )

    def estimated_duration_seconds(self, context: AgentExecutionContext) -> int:
        try:
            complexity = int(context.get_parameter("ComplexityRating", DEFAULT_COMPLEXITY))
        except (TypeError, ValueError):
            complexity = DEFAULT_COMPLEXITY
        return 60 + complexity * 30

    async def execute_internal(
        self, context: AgentExecutionContext, token: CancellationToken
    ) -> AgentExecutionResult:
        function_id = str(context.get_parameter("FunctionId"))
        code_unit_id = str(context.get_parameter("CodeUnitId"))
        complexity = int(context.get_parameter("ComplexityRating", DEFAULT_COMPLEXITY))
        limits = self.swarm_config.get_resource_limits(self.agent_type)
        bounded = context.model_copy(
            update={"max_tokens": min(context.max_tokens, limits.max_tokens)}
        )
        log = self._logger.bind(function_id=function_id, code_unit_id=code_unit_id)
        log.info("method_agent_started", complexity=complexity)

        try:
            analysis = await token.guard(
                self.llm_client.generate(
                    ANALYSIS_PROMPT.format(language=context.target_language, complexity=complexity),
                    bounded,
                )
            )
            if not analysis.success:
                await self._send_completion(context, analysis, token)
                return analysis

            implementation_context = bounded.model_copy(
                update={
                    "input_prompt": (
                        f"{context.input_prompt}\n\n## Analysis\n{analysis.output}"
                    ),
                    "temperature": 0.2,
                }
            )
            result = await self.execute_llm_call(
                IMPLEMENTATION_PROMPT.format(language=context.target_language),
                implementation_context,
                token,
            )
        except OperationCancelledError:
            raise
        except Exception as e:
            log.error("method_agent_failed", error=str(e))
            failed = AgentExecutionResult.failure(f"Method Agent failed: {e}")
            await self._send_completion(context, failed, token)
            raise

        if result.success:
            result.input_tokens += analysis.input_tokens
            result.output_tokens += analysis.output_tokens
            result.artifacts = [
                Artifact(
                    name=f"{function_id}.md",
                    content_type="markdown",
                    content=result.output,
                    path=f"/swarm/{code_unit_id}/{function_id}.md",
                )
            ]
            result.metadata.update(
                {
                    "FunctionId": function_id,
                    "CodeUnitId": code_unit_id,
                    "ComplexityRating": complexity,
                    "AnalysisLength": len(analysis.output),
                }
            )

        await self._send_completion(context, result, token)
        return result

    async def _send_completion(
        self,
        context: AgentExecutionContext,
        result: AgentExecutionResult,
        token: CancellationToken,
    ) -> None:
        message = AgentCompletionMessage(
            agent_id=context.execution_id,
            agent_type=self.agent_type,
            project_id=context.project_id,
            pipeline_execution_id=context.pipeline_execution_id,
            success=result.success,
            error_message=result.error_message,
            output_response=result.output,
            quality_score=result.quality_score,
            confidence_score=result.confidence_score,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
        )
        try:
            await token.guard(self.message_coordinator.send_completion(message))
        except OperationCancelledError:
            raise
        except Exception as e:
            self._logger.warning("completion_message_undelivered", error=str(e))
            result.metadata["undelivered_messages"] = (
                result.metadata.get("undelivered_messages", 0) + 1
            )
