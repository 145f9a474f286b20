"""Planning stage agents: planner, architect and analyst."""

from agents.base import PromptedAgent
from agents.types import AgentPriority


class PlannerAgent(PromptedAgent):
    agent_type = "Planner"
    agent_name = "Project Planner"
    priority = AgentPriority.HIGH
    expected_sections = ("overview", "plan", "phase", "recommendation")

    artifact_name = "project_plan.md"
    artifact_path = "/planning/project_plan.md"
    base_duration_seconds = 120
    duration_chars_per_step = 500
    duration_step_seconds = 30


class ArchitectAgent(PromptedAgent):
    agent_type = "Architect"
    agent_name = "System Architect"
    priority = AgentPriority.HIGH
    expected_sections = ("architecture", "component", "design", "pattern")

    artifact_name = "system_architecture.md"
    artifact_path = "/architecture/system_architecture.md"
    base_duration_seconds = 180
    duration_chars_per_step = 300
    duration_step_seconds = 20


class AnalystAgent(PromptedAgent):
    agent_type = "Analyst"
    agent_name = "Business Analyst"
    priority = AgentPriority.MEDIUM
    expected_sections = ("analysis", "requirement", "risk", "feasibility")

    artifact_name = "requirements_analysis.md"
    artifact_path = "/analysis/requirements_analysis.md"
    base_duration_seconds = 150
    duration_chars_per_step = 400
    duration_step_seconds = 25
