"""Agent registry and factory.

The registry is a closed set of agent classes, each declaring the
capabilities it needs, plus a stage -> agent types table. The factory builds
agents by looking up the declared capability set in the CapabilitySet it was
given; there is no per-type construction branch and no global table.

Usage:
    >>> registry = build_default_registry()
    >>> factory = AgentFactory(registry, CapabilitySet(llm_client=client))
    >>> agent = factory.resolve("Planner")
    >>> agents = factory.agents_for_stage("Planning")
"""

from dataclasses import dataclass

import structlog

from agents.base import BaseAgent
from agents.building import BuilderAgent, CodeGeneratorAgent, CompilerAgent
from agents.capabilities import Capability, CapabilitySet
from agents.designing import APIDesignerAgent, DesignerAgent, UIDesignerAgent
from agents.enhanced_builder import EnhancedBuilderAgent
from agents.planning import AnalystAgent, ArchitectAgent, PlannerAgent
from agents.swarming import MethodAgent
from agents.validating import QualityAssuranceAgent, TesterAgent, ValidatorAgent

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AgentNotFound:
    """Typed miss returned by ``AgentFactory.resolve``."""

    agent_type: str
    reason: str


@dataclass(frozen=True)
class AgentSpec:
    """A registered agent class and the capabilities it declared."""

    agent_type: str
    agent_class: type[BaseAgent]
    required_capabilities: tuple[Capability, ...]


class AgentRegistry:
    """Closed set of agent variants and the stage table."""

    def __init__(self) -> None:
        self._specs: dict[str, AgentSpec] = {}
        self._stages: dict[str, tuple[str, ...]] = {}

    def register(self, agent_class: type[BaseAgent]) -> AgentSpec:
        """Register an agent class under its ``agent_type``.

        Raises:
            ValueError: If the agent type is already registered.
        """
        agent_type = agent_class.agent_type
        if agent_type in self._specs:
            raise ValueError(f"Agent type '{agent_type}' is already registered")
        spec = AgentSpec(
            agent_type=agent_type,
            agent_class=agent_class,
            required_capabilities=tuple(agent_class.required_capabilities),
        )
        self._specs[agent_type] = spec
        return spec

    def map_stage(self, stage: str, agent_types: list[str] | tuple[str, ...]) -> None:
        """Set the agent types dispatched for a stage, in order.

        Raises:
            ValueError: If any agent type is not registered.
        """
        unknown = [agent_type for agent_type in agent_types if agent_type not in self._specs]
        if unknown:
            raise ValueError(f"Cannot map stage '{stage}' to unregistered agent types: {unknown}")
        self._stages[str(stage)] = tuple(agent_types)

    def get(self, agent_type: str) -> AgentSpec | None:
        return self._specs.get(agent_type)

    def agent_types(self) -> list[str]:
        return list(self._specs)

    def stages(self) -> list[str]:
        return list(self._stages)

    def stage_agent_types(self, stage: str) -> tuple[str, ...] | None:
        return self._stages.get(str(stage))


class AgentFactory:
    """Builds agents from a registry and the capabilities available to it.

    Attributes:
        registry: The closed set of agent variants.
        capabilities: Dependencies handed to agent constructors.
    """

    def __init__(self, registry: AgentRegistry, capabilities: CapabilitySet) -> None:
        self.registry = registry
        self.capabilities = capabilities

    def resolve(self, agent_type: str) -> BaseAgent | AgentNotFound:
        """Construct an agent, or return AgentNotFound. Never raises."""
        spec = self.registry.get(agent_type)
        if spec is None:
            logger.warning("unknown_agent_type", agent_type=agent_type)
            return AgentNotFound(agent_type, f"Unknown agent type: {agent_type}")

        try:
            kwargs = self.capabilities.kwargs_for(agent_type, spec.required_capabilities)
            agent = spec.agent_class(**kwargs)
        except Exception as e:
            logger.error(
                "agent_construction_failed",
                agent_type=agent_type,
                error_type=type(e).__name__,
                error=str(e),
            )
            return AgentNotFound(agent_type, f"Failed to create agent of type {agent_type}: {e}")

        logger.debug("agent_created", agent_type=agent_type)
        return agent

    def agents_for_stage(self, stage: str) -> list[BaseAgent]:
        """Construct every agent mapped to a stage, skipping failures.

        Unknown stages yield an empty list.
        """
        agent_types = self.registry.stage_agent_types(stage)
        if agent_types is None:
            logger.warning("unknown_stage", stage=str(stage))
            return []

        agents: list[BaseAgent] = []
        for agent_type in agent_types:
            agent = self.resolve(agent_type)
            if isinstance(agent, AgentNotFound):
                continue
            agents.append(agent)
        return agents

    def available_agent_types(self) -> list[str]:
        return self.registry.agent_types()

    def is_agent_type_available(self, agent_type: str) -> bool:
        return self.registry.get(agent_type) is not None

    def agent_types_for_stage(self, stage: str) -> list[str]:
        return list(self.registry.stage_agent_types(stage) or ())


DEFAULT_AGENT_CLASSES: tuple[type[BaseAgent], ...] = (
    PlannerAgent,
    ArchitectAgent,
    AnalystAgent,
    DesignerAgent,
    UIDesignerAgent,
    APIDesignerAgent,
    MethodAgent,
    BuilderAgent,
    EnhancedBuilderAgent,
    CodeGeneratorAgent,
    CompilerAgent,
    ValidatorAgent,
    TesterAgent,
    QualityAssuranceAgent,
)

DEFAULT_STAGE_TABLE: dict[str, tuple[str, ...]] = {
    "Planning": ("Planner", "Architect", "Analyst"),
    "Designing": ("Designer", "UIDesigner", "APIDesigner"),
    "Swarming": ("MethodAgent",),
    "Building": ("Builder", "CodeGenerator", "Compiler", "EnhancedBuilder"),
    "Validating": ("Validator", "Tester", "QualityAssurance"),
}


def build_default_registry() -> AgentRegistry:
    """Registry with every built-in agent and the default stage table.

    EnhancedBuilder runs last in Building so the build feedback loop sees the
    other Building agents' work.
    """
    registry = AgentRegistry()
    for agent_class in DEFAULT_AGENT_CLASSES:
        registry.register(agent_class)
    for stage, agent_types in DEFAULT_STAGE_TABLE.items():
        registry.map_stage(stage, agent_types)
    return registry
