"""Tests for stage_runner.py -- running stages and whole pipelines."""

import asyncio

from agents.base import BaseAgent
from agents.cancellation import CancellationToken
from agents.capabilities import CapabilitySet
from agents.factory import AgentFactory, AgentRegistry, build_default_registry
from agents.llm import MockLLMClient
from agents.planning import AnalystAgent, ArchitectAgent, PlannerAgent
from agents.types import AgentExecutionContext, AgentExecutionResult, StorageDegraded
from config import settings
from models.pipeline import PipelineExecution, PipelineStatus, StageName
from stage_runner import StageRunner, create_stage_runner, storage_outcome_name
from tests.conftest import make_context, make_llm_response

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class SlowAgent(BaseAgent):
    """Records peak concurrency and sleeps through its run."""

    agent_type = "Slow"
    agent_name = "Slow Agent"
    running = 0
    peak = 0
    delay = 0.05

    async def execute_internal(
        self, context: AgentExecutionContext, token: CancellationToken
    ) -> AgentExecutionResult:
        SlowAgent.running += 1
        SlowAgent.peak = max(SlowAgent.peak, SlowAgent.running)
        try:
            await token.guard(asyncio.sleep(SlowAgent.delay))
        finally:
            SlowAgent.running -= 1
        return AgentExecutionResult(success=True, output=f"done in {context.stage}")


class SlowAgentB(SlowAgent):
    agent_type = "SlowB"


class SlowAgentC(SlowAgent):
    agent_type = "SlowC"


def _slow_factory() -> AgentFactory:
    SlowAgent.running = 0
    SlowAgent.peak = 0
    SlowAgent.delay = 0.05
    registry = AgentRegistry()
    for agent_class in (SlowAgent, SlowAgentB, SlowAgentC):
        registry.register(agent_class)
    registry.map_stage("Planning", ["Slow", "SlowB", "SlowC"])
    return AgentFactory(registry, CapabilitySet(llm_client=MockLLMClient()))


def _planning_factory(llm: MockLLMClient) -> AgentFactory:
    registry = AgentRegistry()
    for agent_class in (PlannerAgent, ArchitectAgent, AnalystAgent):
        registry.register(agent_class)
    registry.map_stage("Planning", ["Planner", "Architect", "Analyst"])
    registry.map_stage("Designing", ["Architect"])
    return AgentFactory(registry, CapabilitySet(llm_client=llm))


# =========================================================================
# run_stage
# =========================================================================


class TestRunStage:
    async def test_planning_stage_records_every_agent(self, mock_llm: MockLLMClient) -> None:
        runner = StageRunner(_planning_factory(mock_llm), stage_timeout=5)
        pipeline = PipelineExecution(project_id="proj_1")

        stage = await runner.run_stage(pipeline, StageName.PLANNING, make_context())

        assert stage.status == PipelineStatus.COMPLETED
        assert stage.is_completed is True
        assert stage.items_processed == 3
        assert stage.success_rate == 1.0
        assert stage.execution_order == 1
        assert pipeline.stage_executions == [stage]
        assert {r.agent_type for r in pipeline.agent_executions} == {
            "Planner",
            "Architect",
            "Analyst",
        }
        assert all(r.stage_execution_id == stage.id for r in pipeline.agent_executions)
        assert pipeline.agent_executions[0].artifact_names

    async def test_agents_see_stage_identifiers(self) -> None:
        runner = StageRunner(_slow_factory(), stage_timeout=5)
        pipeline = PipelineExecution(project_id="proj_1")

        await runner.run_stage(pipeline, "Planning", make_context(stage=None))

        assert {r.output for r in pipeline.agent_executions} == {"done in Planning"}

    async def test_pool_size_bounds_concurrency(self) -> None:
        runner = StageRunner(_slow_factory(), stage_timeout=5)
        pipeline = PipelineExecution(project_id="proj_1")

        await runner.run_stage(pipeline, StageName.PLANNING, make_context(agent_pool_size=2))

        assert SlowAgent.peak == 2

    async def test_failed_agent_fails_stage(self) -> None:
        llm = MockLLMClient([make_llm_response(), make_llm_response(), RuntimeError("boom")])
        runner = StageRunner(_planning_factory(llm), stage_timeout=5)
        pipeline = PipelineExecution(project_id="proj_1")

        stage = await runner.run_stage(
            pipeline, StageName.PLANNING, make_context(agent_pool_size=1)
        )

        assert stage.status == PipelineStatus.FAILED
        assert stage.items_failed == 1
        assert stage.items_completed == 2
        assert stage.error_message == "Agents failed: Analyst"

    async def test_timeout_cancels_stage(self) -> None:
        factory = _slow_factory()
        SlowAgent.delay = 10
        runner = StageRunner(factory, stage_timeout=0.05)
        pipeline = PipelineExecution(project_id="proj_1")

        stage = await runner.run_stage(pipeline, StageName.PLANNING, make_context())

        assert stage.status == PipelineStatus.CANCELLED
        assert stage.is_failed is True
        assert stage.error_message == "Operation timed out after 0.05 seconds"
        assert all(not r.success for r in pipeline.agent_executions)
        assert all(r.quality_score == 1 for r in pipeline.agent_executions)

    async def test_stage_without_agents_is_a_no_op(self, capabilities: CapabilitySet) -> None:
        runner = StageRunner(AgentFactory(AgentRegistry(), capabilities), stage_timeout=5)
        pipeline = PipelineExecution(project_id="proj_1")

        stage = await runner.run_stage(pipeline, StageName.VALIDATING, make_context())

        assert stage.status == PipelineStatus.COMPLETED
        assert stage.items_processed == 0
        assert stage.error_message is None
        assert pipeline.agent_executions == []

    async def test_unknown_stage_name_is_a_no_op(self, capabilities: CapabilitySet) -> None:
        runner = StageRunner(AgentFactory(build_default_registry(), capabilities), stage_timeout=5)
        pipeline = PipelineExecution(project_id="proj_1")

        stage = await runner.run_stage(pipeline, "Deploying", make_context())

        assert stage.stage_name == "Deploying"
        assert stage.status == PipelineStatus.COMPLETED
        assert pipeline.stage == "Deploying"
        assert pipeline.agent_executions == []


# =========================================================================
# run_pipeline
# =========================================================================


class TestRunPipeline:
    async def test_runs_stages_in_order_and_passes_outputs(self) -> None:
        llm = MockLLMClient([make_llm_response(f"# Output {i}") for i in range(4)])
        runner = StageRunner(_planning_factory(llm), stage_timeout=5)
        pipeline = PipelineExecution(project_id="proj_1")

        await runner.run_pipeline(
            pipeline,
            make_context(agent_pool_size=1),
            stages=[StageName.PLANNING, StageName.DESIGNING],
        )

        assert pipeline.status == PipelineStatus.COMPLETED
        assert pipeline.progress_percentage == 100
        assert pipeline.completed_at is not None
        assert [s.stage_name for s in pipeline.stage_executions] == [
            StageName.PLANNING,
            StageName.DESIGNING,
        ]
        designing_prompt = llm.call_history[3]["messages"][1]["content"]
        assert "## Previous Result: Planner" in designing_prompt

    async def test_empty_stages_do_not_stop_the_pipeline(self) -> None:
        llm = MockLLMClient([make_llm_response(f"# Output {i}") for i in range(3)])
        runner = StageRunner(_planning_factory(llm), stage_timeout=5)
        pipeline = PipelineExecution(project_id="proj_1")

        await runner.run_pipeline(
            pipeline,
            make_context(agent_pool_size=1),
            stages=[StageName.SWARMING, StageName.PLANNING],
        )

        assert pipeline.status == PipelineStatus.COMPLETED
        assert [s.status for s in pipeline.stage_executions] == [
            PipelineStatus.COMPLETED,
            PipelineStatus.COMPLETED,
        ]
        assert pipeline.stage_executions[0].items_processed == 0
        assert len(pipeline.agent_executions) == 3

    async def test_stops_at_first_failed_stage(self, capabilities: CapabilitySet) -> None:
        runner = StageRunner(AgentFactory(build_default_registry(), capabilities), stage_timeout=5)
        pipeline = PipelineExecution(project_id="proj_1")

        await runner.run_pipeline(pipeline, make_context())

        # The method agent needs FunctionId and CodeUnitId, so Swarming fails.
        assert pipeline.status == PipelineStatus.FAILED
        assert [s.stage_name for s in pipeline.stage_executions] == [
            StageName.PLANNING,
            StageName.DESIGNING,
            StageName.SWARMING,
        ]
        assert pipeline.progress_percentage == 60
        assert pipeline.error_message == "Agents failed: MethodAgent"


# =========================================================================
# Wiring
# =========================================================================


class TestWiring:
    async def test_create_stage_runner(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr(settings, "designer_store_path", str(tmp_path / "designer.db"))

        runner = await create_stage_runner(MockLLMClient())

        assert (tmp_path / "designer.db").exists()
        assert runner.stage_timeout == settings.stage_timeout_seconds
        types = [a.agent_type for a in runner.factory.agents_for_stage("Building")]
        assert types == ["Builder", "CodeGenerator", "Compiler", "EnhancedBuilder"]

    def test_storage_outcome_name(self) -> None:
        result = AgentExecutionResult(success=True)
        assert storage_outcome_name(result) == "ok"
        result.storage = StorageDegraded("disk full")
        assert storage_outcome_name(result) == "degraded"
