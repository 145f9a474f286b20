"""Capabilities an agent can require from the factory.

Each Capability value doubles as the constructor keyword the agent class
accepts, so construction is a lookup over the declared set rather than a
per-type branch.
"""

from dataclasses import dataclass, fields
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from agents.llm import ModelInvocation
    from builds.aggregator import DocumentAggregator
    from builds.executor import BuildExecutor
    from config import SwarmConfiguration
    from messaging.coordinator import MessageCoordinator
    from storage.designer_outputs import DesignerOutputStorage


class Capability(StrEnum):
    """A dependency an agent variant declares at registration."""

    LLM = "llm_client"
    DESIGNER_STORAGE = "output_storage"
    MESSAGE_COORDINATOR = "message_coordinator"
    SWARM_CONFIG = "swarm_config"
    DOCUMENT_AGGREGATOR = "document_aggregator"
    BUILD_EXECUTOR = "build_executor"


class MissingCapabilityError(Exception):
    """Raised when an agent needs a capability the factory was not given."""

    def __init__(self, agent_type: str, missing: list[Capability]) -> None:
        self.agent_type = agent_type
        self.missing = missing
        names = ", ".join(capability.value for capability in missing)
        super().__init__(f"Agent {agent_type} requires unavailable capabilities: {names}")


@dataclass
class CapabilitySet:
    """The dependencies available to the factory for agent construction.

    Field names match Capability values.
    """

    llm_client: "ModelInvocation | None" = None
    output_storage: "DesignerOutputStorage | None" = None
    message_coordinator: "MessageCoordinator | None" = None
    swarm_config: "SwarmConfiguration | None" = None
    document_aggregator: "DocumentAggregator | None" = None
    build_executor: "BuildExecutor | None" = None

    def get(self, capability: Capability) -> Any:
        return getattr(self, capability.value)

    def available(self) -> set[Capability]:
        return {
            Capability(f.name) for f in fields(self) if getattr(self, f.name) is not None
        }

    def kwargs_for(self, agent_type: str, required: tuple[Capability, ...]) -> dict[str, Any]:
        """Constructor kwargs for an agent requiring ``required``.

        Raises:
            MissingCapabilityError: If any required capability is absent.
        """
        missing = [capability for capability in required if self.get(capability) is None]
        if missing:
            raise MissingCapabilityError(agent_type, missing)
        return {capability.value: self.get(capability) for capability in required}
