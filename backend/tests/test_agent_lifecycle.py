"""Tests for agents/base.py -- the uniform execution lifecycle.

Covers context validation, fault conversion, post-execution faults,
quality scoring, duration estimates and the method agent.
"""

from __future__ import annotations

from agents.base import FAULT_CONFIDENCE_SCORE, FAULT_QUALITY_SCORE, BaseAgent
from agents.building import CodeGeneratorAgent
from agents.cancellation import CancellationToken
from agents.llm import MockLLMClient
from agents.planning import AnalystAgent, PlannerAgent
from agents.swarming import MethodAgent
from agents.types import AgentExecutionContext, AgentExecutionResult, StorageFailed, StorageOk
from agents.validating import ValidatorAgent
from config import SwarmConfiguration
from messaging.coordinator import InMemoryMessageCoordinator
from messaging.types import MessageType
from tests.conftest import make_context, make_llm_response

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class ExplodingPostPlanner(PlannerAgent):
    """Planner whose post-execution hook always raises."""

    async def post_execute(
        self,
        context: AgentExecutionContext,
        result: AgentExecutionResult,
        token: CancellationToken,
    ) -> None:
        raise RuntimeError("audit log unavailable")


class ExplodingAgent(BaseAgent):
    agent_type = "Exploding"
    agent_name = "Exploding Agent"

    async def execute_internal(
        self, context: AgentExecutionContext, token: CancellationToken
    ) -> AgentExecutionResult:
        raise ValueError("bad input")


# =========================================================================
# Lifecycle
# =========================================================================


class TestLifecycle:
    async def test_prompted_agent_success(self, mock_llm: MockLLMClient) -> None:
        agent = PlannerAgent(mock_llm)

        result = await agent.execute(make_context())

        assert result.success is True
        assert result.input_tokens == 10
        assert result.output_tokens == 20
        assert result.storage == StorageOk()
        assert result.duration_seconds >= 0
        (artifact,) = result.artifacts
        assert artifact.name == "project_plan.md"
        assert artifact.path == "/planning/project_plan.md"
        assert artifact.size == len(result.output)

    async def test_role_prompt_is_the_system_message(self, mock_llm: MockLLMClient) -> None:
        await AnalystAgent(mock_llm).execute(make_context(stage="Planning"))

        messages = mock_llm.call_history[0]["messages"]
        assert messages[0]["role"] == "system"
        assert "Stage: Planning" in messages[0]["content"]
        assert messages[1]["content"].startswith("Build a user management service.")

    async def test_invalid_context_fails_without_model_call(self, mock_llm: MockLLMClient) -> None:
        result = await PlannerAgent(mock_llm).execute(make_context(input_prompt=""))

        assert result.success is False
        assert result.error_message == "Agent Planner cannot execute with the provided context"
        assert result.quality_score == 0
        assert result.confidence_score == 0
        assert mock_llm.call_history == []

    async def test_internal_fault_becomes_failed_result(self, mock_llm: MockLLMClient) -> None:
        result = await ExplodingAgent(mock_llm).execute(make_context())

        assert result.success is False
        assert result.error_message == "Agent execution failed: bad input"
        assert result.quality_score == FAULT_QUALITY_SCORE == 1
        assert result.confidence_score == FAULT_CONFIDENCE_SCORE == 5

    async def test_model_fault_becomes_failed_result(self) -> None:
        agent = ValidatorAgent(MockLLMClient([ConnectionError("model down")]))

        result = await agent.execute(make_context())

        assert result.success is False
        assert result.error_message == "Agent execution failed: model down"

    async def test_post_execute_fault_keeps_success(self, mock_llm: MockLLMClient) -> None:
        result = await ExplodingPostPlanner(mock_llm).execute(make_context())

        assert result.success is True
        assert result.storage == StorageFailed("audit log unavailable")

    async def test_pre_cancelled_token(self, mock_llm: MockLLMClient) -> None:
        token = CancellationToken()
        token.cancel("Pipeline cancelled")

        result = await CodeGeneratorAgent(mock_llm).execute(make_context(), token)

        assert result.success is False
        assert result.error_message == "Agent execution failed: Pipeline cancelled"
        assert mock_llm.call_history == []


# =========================================================================
# Quality analysis
# =========================================================================


class TestQualityAnalysis:
    def test_empty_output(self, mock_llm: MockLLMClient) -> None:
        assert PlannerAgent(mock_llm).analyze_output_quality("", make_context()) == (0, 0)

    def test_plain_short_output(self, mock_llm: MockLLMClient) -> None:
        context = make_context(target_language="")
        assert PlannerAgent(mock_llm).analyze_output_quality("ok", context) == (7, 6)

    def test_structured_output_scores_higher(self, mock_llm: MockLLMClient) -> None:
        output = "## Overview\n- plan phase one\n```\ncode\n```\nrecommendation for CSharp"
        quality, confidence = PlannerAgent(mock_llm).analyze_output_quality(output, make_context())
        assert quality == 10
        assert confidence == 9

    def test_scores_are_capped(self, mock_llm: MockLLMClient) -> None:
        output = "## overview plan phase recommendation\n- x\n```\n" + "y" * 3000
        quality, confidence = PlannerAgent(mock_llm).analyze_output_quality(output, make_context())
        assert 0 <= quality <= 10
        assert 0 <= confidence <= 10


# =========================================================================
# Duration estimates
# =========================================================================


class TestDurationEstimates:
    def test_planner(self, mock_llm: MockLLMClient) -> None:
        agent = PlannerAgent(mock_llm)
        assert agent.estimated_duration_seconds(make_context(input_prompt="x" * 100)) == 120
        assert agent.estimated_duration_seconds(make_context(input_prompt="x" * 1000)) == 180

    def test_base_estimate_is_capped(self, mock_llm: MockLLMClient) -> None:
        agent = ExplodingAgent(mock_llm)
        assert agent.estimated_duration_seconds(make_context(input_prompt="x" * 50_000)) == 180

    def test_method_agent_uses_complexity(self, mock_llm: MockLLMClient) -> None:
        agent = MethodAgent(mock_llm, InMemoryMessageCoordinator(), SwarmConfiguration())
        assert agent.estimated_duration_seconds(make_context()) == 210
        context = make_context(parameters={"ComplexityRating": 2})
        assert agent.estimated_duration_seconds(context) == 120

    def test_method_agent_ignores_unparseable_complexity(self, mock_llm: MockLLMClient) -> None:
        agent = MethodAgent(mock_llm, InMemoryMessageCoordinator(), SwarmConfiguration())
        for rating in ("high", None, [3]):
            context = make_context(parameters={"ComplexityRating": rating})
            assert agent.estimated_duration_seconds(context) == 210


# =========================================================================
# Method agent
# =========================================================================


class TestMethodAgent:
    def _context(self) -> AgentExecutionContext:
        return make_context(
            stage="Swarming",
            max_tokens=4000,
            parameters={"FunctionId": "GetUser", "CodeUnitId": "UserService", "ComplexityRating": 3},
        )

    async def test_requires_function_and_code_unit(self, mock_llm: MockLLMClient) -> None:
        agent = MethodAgent(mock_llm, InMemoryMessageCoordinator(), SwarmConfiguration())
        assert agent.can_execute(make_context()) is False
        assert agent.can_execute(self._context()) is True

    async def test_implements_and_reports_completion(self, mock_llm: MockLLMClient) -> None:
        coordinator = InMemoryMessageCoordinator()
        agent = MethodAgent(mock_llm, coordinator, SwarmConfiguration())

        result = await agent.execute(self._context())

        assert result.success is True
        assert result.input_tokens == 20
        assert result.output_tokens == 40
        (artifact,) = result.artifacts
        assert artifact.path == "/swarm/UserService/GetUser.md"
        assert result.metadata["FunctionId"] == "GetUser"
        assert result.metadata["ComplexityRating"] == 3
        assert mock_llm.call_history[0]["max_tokens"] == 1500
        assert mock_llm.call_history[1]["temperature"] == 0.2
        (completion,) = coordinator.get_history("proj_1", MessageType.AGENT_COMPLETION)
        assert completion.message.success is True
        assert completion.message.agent_type == "MethodAgent"

    async def test_failure_still_reports_completion(self) -> None:
        coordinator = InMemoryMessageCoordinator()
        agent = MethodAgent(
            MockLLMClient([make_llm_response(), RuntimeError("rate limited")]),
            coordinator,
            SwarmConfiguration(),
        )

        result = await agent.execute(self._context())

        assert result.success is False
        (completion,) = coordinator.get_history("proj_1", MessageType.AGENT_COMPLETION)
        assert completion.message.success is False
        assert "rate limited" in (completion.message.error_message or "")
