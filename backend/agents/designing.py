"""Designing stage agents.

Designers persist their output after a successful run. Persistence is
non-fatal: a failed or raising store is recorded on the result and the
designer's own success stands.
"""

from typing import TYPE_CHECKING, ClassVar

from agents.base import PromptedAgent
from agents.cancellation import CancellationToken
from agents.capabilities import Capability
from agents.llm import ModelInvocation
from agents.types import (
    STORAGE_RESULT_KEY,
    AgentExecutionContext,
    AgentExecutionResult,
    AgentPriority,
    StorageOk,
)

if TYPE_CHECKING:
    from storage.designer_outputs import DesignerOutputStorage


class BaseDesignerAgent(PromptedAgent):
    """Prompted agent whose output is persisted by ``post_execute``."""

    required_capabilities: ClassVar[tuple[Capability, ...]] = (
        Capability.LLM,
        Capability.DESIGNER_STORAGE,
    )
    expected_sections = ("design", "specification", "component", "architecture")

    def __init__(
        self,
        llm_client: ModelInvocation,
        output_storage: "DesignerOutputStorage",
    ) -> None:
        super().__init__(llm_client)
        self.output_storage = output_storage

    async def post_execute(
        self,
        context: AgentExecutionContext,
        result: AgentExecutionResult,
        token: CancellationToken,
    ) -> None:
        if not result.success or not result.output:
            self._logger.warning(
                "designer_storage_skipped",
                success=result.success,
                has_output=bool(result.output),
            )
            return

        try:
            storage_result = await token.guard(
                self.output_storage.store_designer_output(
                    context, result, self.agent_type, self.agent_name
                )
            )
        except Exception as e:
            self._logger.error(
                "designer_storage_exception",
                error_type=type(e).__name__,
                error=str(e),
            )
            result.record_storage_failed(str(e) or type(e).__name__)
            return

        if not storage_result.success:
            self._logger.error(
                "designer_storage_failed",
                error=storage_result.error_message,
            )
            result.record_storage_degraded(storage_result.error_message)
            return

        for warning in storage_result.warnings:
            self._logger.warning("designer_storage_warning", warning=warning)

        result.storage = StorageOk(storage_result.designer_output_id)
        result.metadata[STORAGE_RESULT_KEY] = {
            "success": True,
            "cross_reference_id": storage_result.cross_reference_id,
            "designer_output_id": storage_result.designer_output_id,
            "function_specs_stored": storage_result.function_specifications_stored,
            "code_units_stored": storage_result.code_units_stored,
        }
        self._logger.info(
            "designer_output_persisted",
            function_specs=storage_result.function_specifications_stored,
            code_units=storage_result.code_units_stored,
        )


class DesignerAgent(BaseDesignerAgent):
    agent_type = "Designer"
    agent_name = "System Designer"
    priority = AgentPriority.HIGH
    expected_sections = ("design", "architecture", "component", "api", "database", "security")

    artifact_name = "system_design.md"
    artifact_path = "/design/system_design.md"
    base_duration_seconds = 200
    duration_chars_per_step = 250
    duration_step_seconds = 15


class UIDesignerAgent(BaseDesignerAgent):
    agent_type = "UIDesigner"
    agent_name = "UI/UX Designer"
    priority = AgentPriority.MEDIUM
    expected_sections = ("ui", "design", "component", "style", "responsive", "accessibility")

    artifact_name = "ui_design_system.md"
    artifact_path = "/design/ui_design_system.md"
    base_duration_seconds = 160
    duration_chars_per_step = 300
    duration_step_seconds = 20


class APIDesignerAgent(BaseDesignerAgent):
    agent_type = "APIDesigner"
    agent_name = "API Designer"
    priority = AgentPriority.HIGH
    expected_sections = ("api", "endpoint", "schema", "authentication", "documentation", "openapi")

    artifact_name = "api_specification.md"
    artifact_path = "/design/api_specification.md"
    base_duration_seconds = 180
    duration_chars_per_step = 300
    duration_step_seconds = 25
