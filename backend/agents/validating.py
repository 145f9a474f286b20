"""Validating stage agents: validator, tester and quality assurance."""

from agents.base import PromptedAgent
from agents.types import AgentPriority


class ValidatorAgent(PromptedAgent):
    agent_type = "Validator"
    agent_name = "System Validator"
    priority = AgentPriority.HIGH
    expected_sections = ("validation", "quality", "compliance", "result")

    artifact_name = "validation_report.md"
    artifact_path = "/validation/validation_report.md"
    base_duration_seconds = 120
    duration_chars_per_step = 500
    duration_step_seconds = 20


class TesterAgent(PromptedAgent):
    agent_type = "Tester"
    agent_name = "Test Executor"
    priority = AgentPriority.HIGH
    expected_sections = ("test", "coverage", "result", "execution")

    artifact_name = "test_execution_report.md"
    artifact_path = "/testing/execution_report.md"
    base_duration_seconds = 150
    duration_chars_per_step = 400
    duration_step_seconds = 25


class QualityAssuranceAgent(PromptedAgent):
    agent_type = "QualityAssurance"
    agent_name = "Quality Assurance"
    priority = AgentPriority.HIGH
    expected_sections = ("quality", "maintainability", "security", "recommendation")

    artifact_name = "quality_assurance_report.md"
    artifact_path = "/qa/quality_report.md"
    base_duration_seconds = 120
    duration_chars_per_step = 500
    duration_step_seconds = 20
