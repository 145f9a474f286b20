"""Enhanced builder: the Building stage feedback loop.

One execution runs one build attempt through these states:

    Aggregating -> Building -> NotifyingSuccess | NotifyingFailure -> Done

Aggregating collects the project's granular code documents into one file per
code unit. Building writes them into a working area keyed by project id and a
fresh attempt id and runs the toolchain for the dominant (first) language.
On success one BuilderNotificationMessage is sent per aggregated file; on
failure one BuilderErrorMessage is sent per BuildError, which is what spawns
bug-fix agents downstream. An attempt never sends both kinds.
"""

import uuid
from collections.abc import Awaitable
from datetime import UTC, datetime
from pathlib import PurePath
from typing import ClassVar

from agents.base import BaseAgent
from agents.cancellation import CancellationToken, OperationCancelledError
from agents.capabilities import Capability
from agents.llm import ModelInvocation
from agents.types import AgentExecutionContext, AgentExecutionResult, AgentPriority, Artifact
from builds.aggregator import DocumentAggregator
from builds.executor import BuildExecutor
from builds.types import BuildAggregationResult, BuildError, BuildExecutionResult
from builds.workspace import BuildWorkspace
from config import settings
from messaging.coordinator import MessageCoordinator
from messaging.types import (
    BuilderErrorMessage,
    BuilderNotificationMessage,
    NotificationStatus,
    build_idempotency_key,
)

SUCCESS_QUALITY_SCORE = 9
SUCCESS_CONFIDENCE_SCORE = 9
FAILURE_CONFIDENCE_SCORE = 8
UNKNOWN_CODE_UNIT = "Unknown"


def build_quality_score(build: BuildExecutionResult) -> int:
    """9 for a successful build, otherwise ``max(1, 5 - error_count)``."""
    if build.success:
        return SUCCESS_QUALITY_SCORE
    return max(1, 5 - len(build.errors))


class EnhancedBuilderAgent(BaseAgent):
    """Aggregates, builds and reports one build attempt per execution."""

    agent_type = "EnhancedBuilder"
    agent_name = "Enhanced System Builder"
    priority = AgentPriority.HIGH
    required_capabilities: ClassVar[tuple[Capability, ...]] = (
        Capability.LLM,
        Capability.DOCUMENT_AGGREGATOR,
        Capability.MESSAGE_COORDINATOR,
        Capability.BUILD_EXECUTOR,
    )

    def __init__(
        self,
        llm_client: ModelInvocation,
        document_aggregator: DocumentAggregator,
        message_coordinator: MessageCoordinator,
        build_executor: BuildExecutor,
        build_root: str | None = None,
    ) -> None:
        super().__init__(llm_client)
        self.document_aggregator = document_aggregator
        self.message_coordinator = message_coordinator
        self.build_executor = build_executor
        self.build_root = build_root

    def estimated_duration_seconds(self, context: AgentExecutionContext) -> int:
        return 120 + min(len(context.input_prompt) // 1000, 10) * 15

    async def execute_internal(
        self, context: AgentExecutionContext, token: CancellationToken
    ) -> AgentExecutionResult:
        log = self._logger.bind(project_id=context.project_id)
        log.info("enhanced_build_started")

        try:
            aggregation = await token.guard(
                self.document_aggregator.aggregate_for_build(context.project_id)
            )
            if not aggregation.success:
                log.warning("enhanced_build_aggregation_failed", reason=aggregation.message)
                return AgentExecutionResult.failure(
                    aggregation.message,
                    output=f"Failed to aggregate code documents: {aggregation.message}",
                )

            log.info(
                "enhanced_build_aggregated",
                documents=aggregation.total_documents,
                files=len(aggregation.aggregated_files),
            )

            attempt_id = uuid.uuid4().hex
            build = await self._attempt_build(aggregation, context, attempt_id, token)

            if build.success:
                undelivered = await self._send_success_notifications(
                    aggregation, build, context, attempt_id, token
                )
                report = render_success_report(aggregation, build)
                result = AgentExecutionResult(
                    success=True,
                    output=report,
                    quality_score=build_quality_score(build),
                    confidence_score=SUCCESS_CONFIDENCE_SCORE,
                )
            else:
                undelivered = await self._send_error_messages(
                    aggregation, build, context, attempt_id, token
                )
                report = render_error_report(aggregation, build)
                result = AgentExecutionResult(
                    success=False,
                    output=report,
                    error_message=build.error_message or "Build failed",
                    quality_score=build_quality_score(build),
                    confidence_score=FAILURE_CONFIDENCE_SCORE,
                )
        except OperationCancelledError:
            raise
        except Exception as e:
            log.exception("enhanced_build_failed", error_type=type(e).__name__)
            return AgentExecutionResult(
                success=False,
                output=f"Build execution failed: {e}",
                error_message=str(e),
                quality_score=1,
                confidence_score=5,
            )

        result.artifacts = build_artifacts(report, build)
        result.metadata.update(
            {
                "build_attempt_id": attempt_id,
                "build_result": build,
                "files_built": len(aggregation.aggregated_files),
                "undelivered_messages": undelivered,
            }
        )
        log.info(
            "enhanced_build_completed",
            success=build.success,
            error_count=len(build.errors),
            undelivered_messages=undelivered,
        )
        return result

    async def _attempt_build(
        self,
        aggregation: BuildAggregationResult,
        context: AgentExecutionContext,
        attempt_id: str,
        token: CancellationToken,
    ) -> BuildExecutionResult:
        """Materialize files and run the build. Faults become a BuildSystemError."""
        language = aggregation.dominant_language or settings.default_build_language
        try:
            async with BuildWorkspace(context.project_id, attempt_id, root=self.build_root) as workspace:
                await token.guard(workspace.write_files(aggregation.aggregated_files))
                return await token.guard(
                    self.build_executor.execute(str(workspace.path), language)
                )
        except OperationCancelledError:
            raise
        except Exception as e:
            self._logger.error(
                "build_attempt_failed",
                project_id=context.project_id,
                attempt_id=attempt_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return BuildExecutionResult.system_failure(e)

    async def _send_success_notifications(
        self,
        aggregation: BuildAggregationResult,
        build: BuildExecutionResult,
        context: AgentExecutionContext,
        attempt_id: str,
        token: CancellationToken,
    ) -> int:
        undelivered = 0
        for aggregated_file in aggregation.aggregated_files:
            unit = aggregated_file.code_unit_name
            notification = BuilderNotificationMessage(
                idempotency_key=build_idempotency_key(context.project_id, unit, attempt_id),
                project_id=context.project_id,
                pipeline_execution_id=context.pipeline_execution_id,
                code_unit_name=unit,
                code_unit_id=unit,
                build_attempt_id=attempt_id,
                status=NotificationStatus.COMPLETE,
                message="Build completed successfully",
                total_functions=aggregated_file.function_count,
                completed_functions=aggregated_file.function_count,
                failed_functions=0,
                quality_score=build_quality_score(build),
                total_duration_seconds=build.duration_seconds,
                priority="High",
            )
            if not await self._deliver(self.message_coordinator.send_notification(notification), token):
                undelivered += 1
                continue
            self._logger.info("build_success_notification_sent", code_unit=unit)
        return undelivered

    async def _send_error_messages(
        self,
        aggregation: BuildAggregationResult,
        build: BuildExecutionResult,
        context: AgentExecutionContext,
        attempt_id: str,
        token: CancellationToken,
    ) -> int:
        units_by_file = code_units_by_file(aggregation)
        undelivered = 0
        for index, error in enumerate(build.errors):
            unit = attribute_code_unit(error, units_by_file)
            message = BuilderErrorMessage(
                idempotency_key=build_idempotency_key(context.project_id, unit, attempt_id, index),
                project_id=context.project_id,
                pipeline_execution_id=context.pipeline_execution_id,
                code_unit_name=unit,
                code_unit_id=unit,
                builder_agent_id=self.agent_type,
                build_attempt_id=attempt_id,
                error_type=error.error_type.value,
                error_message=error.error_message,
                error_details=error.details,
                stack_trace=error.stack_trace,
                file_name=error.file_name,
                function_name=error.function_name,
                function_signature=error.function_signature,
                line_number=error.line_number,
                build_stage="Compilation",
                build_output=build.build_output,
                severity=error.severity,
                priority="High",
                suggested_fix=error.suggested_fix,
                related_functions=list(error.related_functions),
            )
            if not await self._deliver(self.message_coordinator.send_error(message), token):
                undelivered += 1
                continue
            self._logger.info(
                "build_error_message_sent",
                code_unit=unit,
                error_type=error.error_type.value,
                severity=error.severity,
            )
        return undelivered

    async def _deliver(self, send: Awaitable[None], token: CancellationToken) -> bool:
        """Await one send. Delivery faults are logged and reported as False."""
        try:
            await token.guard(send)
        except OperationCancelledError:
            raise
        except Exception as e:
            self._logger.warning(
                "builder_message_undelivered",
                error_type=type(e).__name__,
                error=str(e),
            )
            return False
        return True


def _file_key(file_name: str) -> str:
    return PurePath(file_name.replace("\\", "/")).name


def code_units_by_file(aggregation: BuildAggregationResult) -> dict[str, str]:
    """Map each aggregated file's base name to its code unit.

    Compiler diagnostics report paths relative to wherever the toolchain ran,
    so both sides are keyed by base name. The first file wins on a clash.
    """
    units: dict[str, str] = {}
    for aggregated_file in aggregation.aggregated_files:
        units.setdefault(_file_key(aggregated_file.file_name), aggregated_file.code_unit_name)
    return units


def attribute_code_unit(error: BuildError, units_by_file: dict[str, str]) -> str:
    """Code unit an error belongs to: its own, else the one owning its file."""
    if error.code_unit_name:
        return error.code_unit_name
    if error.file_name:
        return units_by_file.get(_file_key(error.file_name), UNKNOWN_CODE_UNIT)
    return UNKNOWN_CODE_UNIT


def _timestamp() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")


def render_success_report(aggregation: BuildAggregationResult, build: BuildExecutionResult) -> str:
    files = "\n".join(
        f"- **{f.file_name}** ({f.language}): {f.function_count} functions, {f.total_size} chars"
        for f in aggregation.aggregated_files
    )
    artifacts = "\n".join(f"- {path}" for path in build.generated_artifacts) or "- None"
    return f"""# Build Success Report

## Build Summary
- **Status**: SUCCESS
- **Files Built**: {len(aggregation.aggregated_files)}
- **Total Code Documents**: {aggregation.total_documents}
- **Code Units**: {aggregation.total_code_units}
- **Languages**: {", ".join(aggregation.languages)}
- **Build Duration**: {build.duration_seconds:.1f} seconds

## Generated Files
{files}

## Build Output
```
{build.build_output}
```

## Artifacts Generated
{artifacts}

---
*Generated by Enhanced Builder at {_timestamp()} UTC*"""


def render_error_report(aggregation: BuildAggregationResult, build: BuildExecutionResult) -> str:
    details = "\n\n".join(
        f"""### {e.error_type.value}
- **Message**: {e.error_message}
- **File**: {e.file_name or "Unknown"}
- **Function**: {e.function_name or "Unknown"}
- **Line**: {e.line_number if e.line_number is not None else "Unknown"}
- **Severity**: {e.severity}/10"""
        for e in build.errors
    ) or "No structured errors were reported."
    return f"""# Build Error Report

## Build Summary
- **Status**: FAILED
- **Files Attempted**: {len(aggregation.aggregated_files)}
- **Total Code Documents**: {aggregation.total_documents}
- **Code Units**: {aggregation.total_code_units}
- **Languages**: {", ".join(aggregation.languages)}
- **Build Duration**: {build.duration_seconds:.1f} seconds

## Error Details
{details}

## Build Output
```
{build.build_output}
```

## Next Steps
Builder error messages have been sent to spawn bug-fix method agents for each error.

---
*Generated by Enhanced Builder at {_timestamp()} UTC*"""


def build_artifacts(report: str, build: BuildExecutionResult) -> list[Artifact]:
    """The report artifact, plus one reference per generated output on success."""
    artifacts = [
        Artifact(
            name="build_report.md",
            content_type="markdown",
            content=report,
            path="/build/build_report.md",
        )
    ]
    if build.success:
        for path in build.generated_artifacts:
            name = PurePath(path).name
            artifacts.append(
                Artifact(
                    name=name,
                    content_type=PurePath(path).suffix.lstrip("."),
                    content=f"Built artifact: {path}",
                    path=f"/build/artifacts/{name}",
                )
            )
    return artifacts
