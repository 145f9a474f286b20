"""Application configuration using Pydantic Settings.

This module provides centralized configuration management for the Maestro
pipeline core. All settings can be overridden via environment variables or a
.env file. Nested swarm settings use a double underscore delimiter, e.g.
``SWARM__MAX_CONCURRENT_AGENTS=20``.
"""

import logging
import tempfile
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentResourceLimits(BaseModel):
    """Per-agent-type resource limits applied by swarm agents."""

    max_tokens: int = 2000
    max_cost_per_execution: float = 2.0
    timeout_minutes: int = 5


class SwarmConfiguration(BaseModel):
    """Limits and thresholds for the swarming stage.

    Attributes:
        max_concurrent_agents: Maximum agents running at once across the swarm.
        max_agents_per_project: Maximum agents spawned for a single project.
        max_method_agents_per_controller: Method agents per code unit controller.
        max_controllers: Code unit controllers per project.
        complexity_threshold_for_method_agent: Functions at or above this
            complexity get a dedicated method agent.
        max_cost_per_project: Budget ceiling in USD.
        max_agent_execution_minutes: Hard limit for a single agent run.
        resource_limits: Limits keyed by agent type.
    """

    max_concurrent_agents: int = 10
    max_agents_per_project: int = 50
    max_method_agents_per_controller: int = 8
    max_controllers: int = 15
    complexity_threshold_for_method_agent: int = 4
    max_cost_per_project: float = 100.0
    max_agent_execution_minutes: int = 10
    resource_limits: dict[str, AgentResourceLimits] = Field(
        default_factory=lambda: {
            "Designer": AgentResourceLimits(max_tokens=4000, max_cost_per_execution=5.0),
            "UIDesigner": AgentResourceLimits(
                max_tokens=3000, max_cost_per_execution=3.0, timeout_minutes=4
            ),
            "APIDesigner": AgentResourceLimits(max_tokens=3500, max_cost_per_execution=4.0),
            "CodeUnitController": AgentResourceLimits(timeout_minutes=8),
            "MethodAgent": AgentResourceLimits(
                max_tokens=1500, max_cost_per_execution=1.5, timeout_minutes=3
            ),
        }
    )

    def get_resource_limits(self, agent_type: str) -> AgentResourceLimits:
        """Return the limits for an agent type, falling back to defaults."""
        return self.resource_limits.get(agent_type, AgentResourceLimits())


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        default_model: Default model for every model-backed agent.
        llm_fallback_model: Model tried once after the primary exhausts retries.
        llm_max_retries: Retries on transient model errors.
        llm_request_timeout_seconds: Timeout for a single model request.
        default_max_tokens: Token budget used when the context does not set one.
        default_temperature: Sampling temperature used when the context does not set one.
        stage_timeout_seconds: Timeout for one whole stage; cancels all agents in it.
        default_agent_pool_size: Concurrent agents per stage when the context gives no hint.
        build_root: Directory under which per-attempt build working areas are created.
        build_command_timeout_seconds: Timeout for a single toolchain command.
        keep_build_workspaces: If True, working areas are left on disk after a build.
        default_build_language: Language assumed when an aggregation reports none.
        designer_store_path: SQLite file for designer outputs.
        message_delivery_timeout_seconds: Per-subscriber put timeout in the coordinator.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_format: Log format (json or text).
        swarm: Nested swarm limits.
    """

    # LLM Configuration
    # Model names must include provider prefix for LiteLLM (e.g., openai/, anthropic/)
    default_model: str = "openai/gpt-4o"
    llm_fallback_model: str | None = None
    llm_max_retries: int = 3
    llm_request_timeout_seconds: int = 120
    default_max_tokens: int = 4000
    default_temperature: float = 0.7

    # Stage execution
    stage_timeout_seconds: int = 900
    default_agent_pool_size: int = 3

    # Build Configuration
    build_root: str = str(Path(tempfile.gettempdir()) / "maestro_build")
    build_command_timeout_seconds: int = 300
    keep_build_workspaces: bool = False
    default_build_language: str = "CSharp"

    # Storage
    designer_store_path: str = "./data/designer_outputs.db"

    # Messaging
    message_delivery_timeout_seconds: float = 5.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    swarm: SwarmConfiguration = Field(default_factory=SwarmConfiguration)

    @field_validator("log_format", mode="before")
    @classmethod
    def normalize_log_format(cls, v: Any) -> str:
        """Accept any casing and fall back to json for unknown formats."""
        value = str(v).strip().lower()
        return value if value in ("json", "text") else "json"

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging for the application.

    Sets up structlog with appropriate processors for either JSON or console output.

    Args:
        log_level: The minimum log level to emit (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format - 'json' for production, 'text' for development.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Global settings instance
settings = Settings()

# Configure logging on module import
configure_logging(settings.log_level, settings.log_format)
