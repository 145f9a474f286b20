"""Pipeline agents, their lifecycle, and the factory that builds them.

This module exports the key components needed for agent dispatch:
- Execution context, result and artifact types
- BaseAgent lifecycle with non-fatal post-execution storage
- Agent registry and factory keyed on declared capabilities
- LLM client with retry and fallback
- The enhanced builder feedback loop
"""

from agents.base import BaseAgent, PromptedAgent
from agents.cancellation import CancellationToken, OperationCancelledError
from agents.capabilities import Capability, CapabilitySet, MissingCapabilityError
from agents.enhanced_builder import EnhancedBuilderAgent
from agents.factory import (
    AgentFactory,
    AgentNotFound,
    AgentRegistry,
    AgentSpec,
    build_default_registry,
)
from agents.llm import LLMClient, LLMMetrics, LLMResponse, MockLLMClient, ModelInvocation
from agents.types import (
    AgentExecutionContext,
    AgentExecutionResult,
    AgentPriority,
    Artifact,
    ProjectFile,
    StorageDegraded,
    StorageFailed,
    StorageOk,
)

__all__ = [
    # Types
    "AgentExecutionContext",
    "AgentExecutionResult",
    "AgentPriority",
    "Artifact",
    "ProjectFile",
    "StorageDegraded",
    "StorageFailed",
    "StorageOk",
    # Lifecycle
    "BaseAgent",
    "PromptedAgent",
    "CancellationToken",
    "OperationCancelledError",
    "EnhancedBuilderAgent",
    # Factory
    "AgentFactory",
    "AgentNotFound",
    "AgentRegistry",
    "AgentSpec",
    "Capability",
    "CapabilitySet",
    "MissingCapabilityError",
    "build_default_registry",
    # LLM
    "LLMClient",
    "LLMMetrics",
    "LLMResponse",
    "MockLLMClient",
    "ModelInvocation",
]
