"""Model-backed Building stage agents.

These produce build plans, generated code and compilation strategy as
markdown. The build feedback loop itself lives in ``agents.enhanced_builder``.
"""

from agents.base import PromptedAgent
from agents.types import AgentPriority


class BuilderAgent(PromptedAgent):
    agent_type = "Builder"
    agent_name = "System Builder"
    priority = AgentPriority.HIGH
    expected_sections = ("build", "artifact", "compilation", "deployment")

    artifact_name = "build_execution_report.md"
    artifact_path = "/build/execution_report.md"


class CodeGeneratorAgent(PromptedAgent):
    agent_type = "CodeGenerator"
    agent_name = "Code Generator"
    priority = AgentPriority.HIGH
    expected_sections = ("```", "class", "function", "implementation")

    artifact_name = "code_generation_report.md"
    artifact_path = "/codegen/generation_report.md"
    base_duration_seconds = 180
    duration_chars_per_step = 300
    duration_step_seconds = 30


class CompilerAgent(PromptedAgent):
    agent_type = "Compiler"
    agent_name = "Code Compiler"
    priority = AgentPriority.HIGH
    expected_sections = ("compil", "build", "optimization", "error")

    artifact_name = "compilation_strategy.md"
    artifact_path = "/build/compilation_strategy.md"
    base_duration_seconds = 150
    duration_chars_per_step = 400
    duration_step_seconds = 20
