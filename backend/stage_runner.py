"""Stage runner for driving agents through pipeline stages.

The StageRunner resolves a stage's agents from the AgentFactory, runs them
concurrently under the context's agent pool size, and records what each one
produced on the PipelineExecution.

Every agent in a stage shares one CancellationToken. The stage timeout is
applied through ``token.cancel_after`` so a stage that overruns ends with
each pending agent returning a failed result rather than hanging.

Usage:
    >>> factory = AgentFactory(build_default_registry(), capabilities)
    >>> runner = StageRunner(factory)
    >>> pipeline = PipelineExecution(project_id="proj-1")
    >>> stage = await runner.run_stage(pipeline, StageName.PLANNING, context)
    >>> print(stage.status, stage.success_rate)
"""

import asyncio
import time
from collections.abc import Sequence
from datetime import UTC, datetime

import structlog

from agents.base import BaseAgent
from agents.cancellation import CancellationToken
from agents.capabilities import CapabilitySet
from agents.factory import AgentFactory, build_default_registry
from agents.llm import LLMClient, ModelInvocation
from agents.types import (
    AgentExecutionContext,
    AgentExecutionResult,
    StorageDegraded,
    StorageFailed,
)
from builds.aggregator import InMemoryDocumentAggregator
from builds.executor import LocalBuildExecutor
from config import settings
from messaging.coordinator import InMemoryMessageCoordinator
from models.pipeline import (
    STAGE_ORDER,
    AgentExecutionRecord,
    PipelineExecution,
    PipelineStatus,
    StageExecution,
    StageName,
)
from storage.designer_outputs import SQLiteDesignerOutputStore

logger = structlog.get_logger(__name__)


def storage_outcome_name(result: AgentExecutionResult) -> str:
    if isinstance(result.storage, StorageFailed):
        return "failed"
    if isinstance(result.storage, StorageDegraded):
        return "degraded"
    return "ok"


class StageRunner:
    """Runs the agents of one stage, or of every stage in order.

    Attributes:
        factory: Source of agents for each stage.
        stage_timeout: Seconds before a stage's shared token is cancelled.
    """

    def __init__(self, factory: AgentFactory, stage_timeout: float | None = None) -> None:
        self.factory = factory
        self.stage_timeout = (
            stage_timeout if stage_timeout is not None else settings.stage_timeout_seconds
        )

    async def run_stage(
        self,
        pipeline: PipelineExecution,
        stage: StageName | str,
        context: AgentExecutionContext,
    ) -> StageExecution:
        """Run every agent mapped to ``stage`` and record the outcome.

        The stage is Completed when every agent succeeded, Cancelled when the
        shared token fired, and Failed otherwise. A stage with no mapped
        agents, including an unknown stage name, completes with nothing
        processed.

        Returns:
            The StageExecution appended to ``pipeline.stage_executions``.
        """
        stage_execution = StageExecution(
            pipeline_execution_id=pipeline.id,
            stage_name=str(stage),
            status=PipelineStatus.RUNNING,
            execution_order=len(pipeline.stage_executions) + 1,
        )
        pipeline.stage = stage_execution.stage_name
        pipeline.status = PipelineStatus.RUNNING
        log = logger.bind(
            pipeline_execution_id=pipeline.id,
            stage=pipeline.stage,
            stage_execution_id=stage_execution.id,
        )

        stage_context = context.model_copy(
            update={
                "stage": pipeline.stage,
                "stage_execution_id": stage_execution.id,
                "pipeline_execution_id": pipeline.id,
            }
        )

        agents = self.factory.agents_for_stage(pipeline.stage)
        log.info("stage_started", agent_count=len(agents), pool_size=stage_context.agent_pool_size)
        started = time.monotonic()

        if not agents:
            stage_execution.status = PipelineStatus.COMPLETED
            self._finish(pipeline, stage_execution, started)
            log.info("stage_has_no_agents")
            return stage_execution

        token = CancellationToken()
        token.cancel_after(self.stage_timeout)
        semaphore = asyncio.Semaphore(max(1, stage_context.agent_pool_size))

        async def run_agent(agent: BaseAgent) -> tuple[BaseAgent, AgentExecutionResult]:
            async with semaphore:
                return agent, await agent.execute(stage_context, token)

        try:
            outcomes = await asyncio.gather(*(run_agent(agent) for agent in agents))
        finally:
            token.dispose()

        for agent, result in outcomes:
            pipeline.agent_executions.append(
                AgentExecutionRecord(
                    stage_execution_id=stage_execution.id,
                    agent_type=agent.agent_type,
                    agent_name=agent.agent_name,
                    success=result.success,
                    error_message=result.error_message,
                    quality_score=result.quality_score,
                    confidence_score=result.confidence_score,
                    duration_seconds=result.duration_seconds,
                    input_tokens=result.input_tokens,
                    output_tokens=result.output_tokens,
                    output=result.output,
                    artifact_names=[artifact.name for artifact in result.artifacts],
                    storage_outcome=storage_outcome_name(result),
                )
            )

        failed = [agent.agent_type for agent, result in outcomes if not result.success]
        stage_execution.items_processed = len(outcomes)
        stage_execution.items_failed = len(failed)
        stage_execution.items_completed = len(outcomes) - len(failed)

        if token.cancelled:
            stage_execution.status = PipelineStatus.CANCELLED
            stage_execution.error_message = token.reason
        elif failed:
            stage_execution.status = PipelineStatus.FAILED
            stage_execution.error_message = f"Agents failed: {', '.join(failed)}"
        else:
            stage_execution.status = PipelineStatus.COMPLETED

        self._finish(pipeline, stage_execution, started)
        log.info(
            "stage_completed",
            status=stage_execution.status.value,
            items_completed=stage_execution.items_completed,
            items_failed=stage_execution.items_failed,
            duration_seconds=round(stage_execution.duration_seconds or 0.0, 3),
        )
        return stage_execution

    async def run_pipeline(
        self,
        pipeline: PipelineExecution,
        context: AgentExecutionContext,
        stages: Sequence[StageName | str] = STAGE_ORDER,
    ) -> PipelineExecution:
        """Run ``stages`` in order, stopping at the first stage that does not complete.

        Each stage sees the successful outputs of earlier stages in
        ``context.previous_results``, keyed by agent type.
        """
        logger.info("pipeline_started", pipeline_execution_id=pipeline.id, stages=list(stages))
        for index, stage in enumerate(stages):
            stage_context = context.model_copy(
                update={"previous_results": {**context.previous_results, **pipeline.stage_outputs()}}
            )
            stage_execution = await self.run_stage(pipeline, stage, stage_context)
            pipeline.progress_percentage = (index + 1) * 100 // len(stages)
            if not stage_execution.is_completed:
                pipeline.status = (
                    PipelineStatus.CANCELLED
                    if stage_execution.status == PipelineStatus.CANCELLED
                    else PipelineStatus.FAILED
                )
                pipeline.error_message = stage_execution.error_message
                break
        else:
            pipeline.status = PipelineStatus.COMPLETED
            pipeline.progress_percentage = 100

        pipeline.completed_at = datetime.now(UTC)
        logger.info(
            "pipeline_completed",
            pipeline_execution_id=pipeline.id,
            status=pipeline.status.value,
            stages_run=len(pipeline.stage_executions),
        )
        return pipeline

    @staticmethod
    def _finish(
        pipeline: PipelineExecution, stage_execution: StageExecution, started: float
    ) -> None:
        stage_execution.completed_at = datetime.now(UTC)
        stage_execution.duration_seconds = time.monotonic() - started
        pipeline.stage_executions.append(stage_execution)


async def create_stage_runner(llm_client: ModelInvocation | None = None) -> StageRunner:
    """Wire the default capabilities into a StageRunner.

    The designer output store is initialized before it is handed out.
    """
    store = SQLiteDesignerOutputStore()
    await store.init()
    capabilities = CapabilitySet(
        llm_client=llm_client or LLMClient(),
        output_storage=store,
        message_coordinator=InMemoryMessageCoordinator(),
        swarm_config=settings.swarm,
        document_aggregator=InMemoryDocumentAggregator(),
        build_executor=LocalBuildExecutor(),
    )
    return StageRunner(AgentFactory(build_default_registry(), capabilities))
