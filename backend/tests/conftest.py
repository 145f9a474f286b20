"""Shared test fixtures for backend tests.

Provides execution contexts, scripted LLM clients, in-memory messaging and
document stores, and a scripted build executor so that tests never call a
real model API or a real compiler.
"""

import sys
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Ensure the backend package root is on sys.path so that absolute imports
# like ``from agents.types import ...`` resolve correctly when running
# pytest from the repository root.
_backend_root = str(
    __import__("pathlib").Path(__file__).resolve().parent.parent
)
if _backend_root not in sys.path:
    sys.path.insert(0, _backend_root)

from agents.capabilities import CapabilitySet  # noqa: E402
from agents.llm import LLMMetrics, LLMResponse, MockLLMClient  # noqa: E402
from agents.types import AgentExecutionContext  # noqa: E402
from builds.aggregator import InMemoryDocumentAggregator  # noqa: E402
from builds.types import BuildExecutionResult, CodeDocument  # noqa: E402
from config import SwarmConfiguration  # noqa: E402
from messaging.coordinator import InMemoryMessageCoordinator  # noqa: E402
from storage.designer_outputs import DesignerOutputStorageResult  # noqa: E402

# A response long enough, structured enough and keyword-rich enough to score well.
RICH_MARKDOWN = """# Overview
This document covers the overview, the result and the analysis for the CSharp project.

## Plan
- Phase 1: design the architecture and each component
- Phase 2: implement the specification

## Result
```csharp
public class UserService { }
```

## Analysis
- Risks are low; the recommendation is to proceed.
"""

# ---------------------------------------------------------------------------
# Response Factories
# ---------------------------------------------------------------------------


def make_llm_response(
    content: str = RICH_MARKDOWN,
    finish_reason: str = "stop",
    input_tokens: int = 10,
    output_tokens: int = 20,
) -> LLMResponse:
    """Create an LLMResponse with sensible defaults."""
    return LLMResponse(
        content=content,
        finish_reason=finish_reason,
        metrics=LLMMetrics(
            model="mock",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=100,
        ),
    )


def make_context(**overrides: Any) -> AgentExecutionContext:
    """Create an AgentExecutionContext with sensible defaults."""
    values: dict[str, Any] = {
        "project_id": "proj_1",
        "pipeline_execution_id": "pipe_1",
        "stage": "Planning",
        "target_language": "CSharp",
        "deployment_target": "Azure",
        "input_prompt": "Build a user management service.",
        "agent_pool_size": 3,
    }
    values.update(overrides)
    return AgentExecutionContext(**values)


def make_document(
    document_id: str,
    code_unit_name: str,
    function_names: tuple[str, ...],
    project_id: str = "proj_1",
    language: str = "CSharp",
) -> CodeDocument:
    body = "\n".join(f"    public void {name}() {{ }}" for name in function_names)
    return CodeDocument(
        document_id=document_id,
        project_id=project_id,
        code_unit_name=code_unit_name,
        language=language,
        content=body,
        function_names=function_names,
    )


def scripted_executor(result: BuildExecutionResult | Exception) -> AsyncMock:
    """A BuildExecutor whose ``execute`` returns (or raises) ``result``."""
    executor = AsyncMock()
    if isinstance(result, Exception):
        executor.execute = AsyncMock(side_effect=result)
    else:
        executor.execute = AsyncMock(return_value=result)
    return executor


def drain(queue: Any) -> list[Any]:
    """Take everything currently in an asyncio.Queue."""
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def context() -> AgentExecutionContext:
    return make_context()


@pytest.fixture()
def mock_llm() -> MockLLMClient:
    """An LLM client with plenty of rich markdown responses."""
    return MockLLMClient(responses=[make_llm_response() for _ in range(20)])


@pytest.fixture()
def coordinator() -> InMemoryMessageCoordinator:
    return InMemoryMessageCoordinator(delivery_timeout=1.0)


@pytest.fixture()
def aggregator() -> InMemoryDocumentAggregator:
    return InMemoryDocumentAggregator()


@pytest.fixture()
def build_root(tmp_path: Any) -> str:
    """A throwaway root for build working areas."""
    return str(tmp_path / "builds")


@pytest.fixture()
def designer_storage() -> AsyncMock:
    """A designer output store that always succeeds."""
    storage = AsyncMock()
    storage.store_designer_output = AsyncMock(
        return_value=DesignerOutputStorageResult(
            success=True,
            cross_reference_id="xref_1",
            designer_output_id="out_1",
            function_specifications_stored=3,
            code_units_stored=1,
        )
    )
    return storage


@pytest.fixture()
def capabilities(
    mock_llm: MockLLMClient,
    coordinator: InMemoryMessageCoordinator,
    aggregator: InMemoryDocumentAggregator,
    designer_storage: AsyncMock,
) -> CapabilitySet:
    """Every capability, with a build executor that always succeeds."""
    return CapabilitySet(
        llm_client=mock_llm,
        output_storage=designer_storage,
        message_coordinator=coordinator,
        swarm_config=SwarmConfiguration(),
        document_aggregator=aggregator,
        build_executor=scripted_executor(
            BuildExecutionResult(success=True, build_output="Build succeeded.")
        ),
    )
