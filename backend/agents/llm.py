"""Model invocation for model-backed agents.

This module provides:
- ModelInvocation: the capability protocol agents depend on
- LLMClient: LiteLLM-backed implementation with retries and a fallback model
- MockLLMClient: scripted responses for tests
- build_user_message: renders an execution context into a user prompt
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import structlog
from litellm import ModelResponse, acompletion
from litellm.exceptions import (
    AuthenticationError,
    BadRequestError,
    RateLimitError,
    ServiceUnavailableError,
    Timeout,
)

from agents.types import AgentExecutionContext, AgentExecutionResult
from config import settings

logger = structlog.get_logger(__name__)

# Errors worth retrying against the same model.
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (RateLimitError, ServiceUnavailableError, Timeout)
# Errors that will not go away on retry or fallback.
PERMANENT_ERRORS: tuple[type[Exception], ...] = (AuthenticationError, BadRequestError)

MAX_BACKOFF_SECONDS = 4.0


def backoff_delay(base: float, attempt: int) -> float:
    """Exponential backoff for a zero-based retry attempt, capped."""
    return min(base * (2 ** attempt), MAX_BACKOFF_SECONDS)


@dataclass
class LLMMetrics:
    """Token and latency metrics for a single model call."""

    model: str
    input_tokens: int
    output_tokens: int
    latency_ms: int

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class LLMResponse:
    """A completed model call.

    Attributes:
        content: Text of the first choice
        finish_reason: Why the model stopped (stop, length, etc.)
        metrics: Token usage and latency
        raw_response: The LiteLLM ModelResponse, when there was one
    """

    content: str
    finish_reason: str
    metrics: LLMMetrics
    raw_response: ModelResponse | None = field(default=None, repr=False)


@runtime_checkable
class ModelInvocation(Protocol):
    """Capability: turn a system prompt and a context into an agent result."""

    async def generate(
        self, system_prompt: str, context: AgentExecutionContext
    ) -> AgentExecutionResult: ...


def build_user_message(context: AgentExecutionContext) -> str:
    """Render the parts of a context a model needs to see.

    Previous stage outputs and project files are appended as markdown
    sections after the prompt itself.
    """
    sections = [context.input_prompt.strip()]

    details = []
    if context.target_language:
        details.append(f"- Target language: {context.target_language}")
    if context.deployment_target:
        details.append(f"- Deployment target: {context.deployment_target}")
    for key, value in context.parameters.items():
        details.append(f"- {key}: {value}")
    if details:
        sections.append("## Project Details\n" + "\n".join(details))

    for agent_type, output in context.previous_results.items():
        sections.append(f"## Previous Result: {agent_type}\n{output}")

    if context.project_files:
        listing = "\n".join(f"- {f.path} ({f.size} bytes)" for f in context.project_files)
        sections.append("## Project Files\n" + listing)

    return "\n\n".join(section for section in sections if section)


class LLMClient:
    """LiteLLM-backed ModelInvocation.

    A call goes to the requested model (or ``default_model``) and is retried
    with capped exponential backoff on TRANSIENT_ERRORS. PERMANENT_ERRORS
    propagate at once. If the primary model is still failing after its
    retries, ``fallback_model`` gets one attempt; if that also fails the
    primary model's error is raised.

    Attributes:
        default_model: Model used when the caller names none
        fallback_model: Model tried once after the primary gives up
        retry_attempts: Retries after the first attempt on the primary model
        retry_delay: Base backoff delay in seconds
    """

    def __init__(
        self,
        default_model: str | None = None,
        fallback_model: str | None = None,
        retry_attempts: int | None = None,
        retry_delay: float = 1.0,
    ) -> None:
        self.default_model = default_model or settings.default_model
        self.fallback_model = fallback_model or settings.llm_fallback_model
        self.retry_attempts = (
            settings.llm_max_retries if retry_attempts is None else retry_attempts
        )
        self.retry_delay = retry_delay

    async def generate(
        self, system_prompt: str, context: AgentExecutionContext
    ) -> AgentExecutionResult:
        """Run one completion for an agent and wrap it as a result.

        Scores are left at zero; the calling agent scores the output.
        """
        response = await self.call(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": build_user_message(context)},
            ],
            model=context.model,
            temperature=context.temperature,
            max_tokens=context.max_tokens,
        )
        return AgentExecutionResult(
            success=True,
            output=response.content,
            input_tokens=response.metrics.input_tokens,
            output_tokens=response.metrics.output_tokens,
            metadata={
                "model": response.metrics.model,
                "finish_reason": response.finish_reason,
                "latency_ms": response.metrics.latency_ms,
            },
        )

    async def call(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Complete ``messages``, retrying and falling back as configured.

        Raises:
            AuthenticationError: If the provider rejects the credentials
            BadRequestError: If the request is malformed
            RateLimitError | ServiceUnavailableError | Timeout: If the
                primary model (and fallback, when set) never succeeded
        """
        primary = model or self.default_model
        started = time.monotonic()

        try:
            return await self._call_with_retries(primary, messages, temperature, max_tokens, started)
        except TRANSIENT_ERRORS as primary_error:
            fallback = self.fallback_model
            if not fallback or fallback == primary:
                raise
            logger.warning(
                "llm_switching_to_fallback",
                primary_model=primary,
                fallback_model=fallback,
                error_type=type(primary_error).__name__,
            )
            try:
                return await self._complete(fallback, messages, temperature, max_tokens, started)
            except Exception as fallback_error:
                logger.error(
                    "llm_fallback_failed",
                    fallback_model=fallback,
                    error_type=type(fallback_error).__name__,
                    error=str(fallback_error),
                )
                raise primary_error from fallback_error

    async def _call_with_retries(
        self,
        model: str,
        messages: list[dict[str, Any]],
        temperature: float,
        max_tokens: int | None,
        started: float,
    ) -> LLMResponse:
        attempt = 0
        while True:
            try:
                return await self._complete(model, messages, temperature, max_tokens, started)
            except PERMANENT_ERRORS as e:
                logger.error(
                    "llm_call_rejected",
                    model=model,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise
            except TRANSIENT_ERRORS as e:
                if attempt >= self.retry_attempts:
                    logger.error(
                        "llm_retries_exhausted",
                        model=model,
                        attempts=attempt + 1,
                        error_type=type(e).__name__,
                    )
                    raise
                delay = backoff_delay(self.retry_delay, attempt)
                logger.warning(
                    "llm_call_retry",
                    model=model,
                    attempt=attempt + 1,
                    retry_delay=delay,
                    error_type=type(e).__name__,
                )
                await self._async_sleep(delay)
                attempt += 1

    async def _complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        temperature: float,
        max_tokens: int | None,
        started: float,
    ) -> LLMResponse:
        response = await self._make_request(messages, model, temperature, max_tokens)
        latency_ms = int((time.monotonic() - started) * 1000)
        llm_response = self._parse_response(response, model, latency_ms)
        logger.info(
            "llm_call_complete",
            model=model,
            input_tokens=llm_response.metrics.input_tokens,
            output_tokens=llm_response.metrics.output_tokens,
            latency_ms=latency_ms,
        )
        return llm_response

    async def _make_request(
        self,
        messages: list[dict[str, Any]],
        model: str,
        temperature: float,
        max_tokens: int | None,
    ) -> ModelResponse:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "timeout": settings.llm_request_timeout_seconds,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        return await acompletion(**kwargs)

    @staticmethod
    def _parse_response(response: ModelResponse, model: str, latency_ms: int) -> LLMResponse:
        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=choice.message.content or "",
            finish_reason=choice.finish_reason or "unknown",
            metrics=LLMMetrics(
                model=model,
                input_tokens=usage.prompt_tokens if usage else 0,
                output_tokens=usage.completion_tokens if usage else 0,
                latency_ms=latency_ms,
            ),
            raw_response=response,
        )

    async def _async_sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class MockLLMClient(LLMClient):
    """Scripted LLM client for tests.

    Responses are handed out in order. An exception in the script is raised
    instead of returned, so tests can script model failures mid-run.

    Usage:
        >>> client = MockLLMClient(responses=[make_llm_response("# Plan")])
        >>> result = await client.generate("You are a planner.", context)
    """

    def __init__(
        self,
        responses: list[LLMResponse | Exception] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.responses = list(responses or [])
        self.call_history: list[dict[str, Any]] = []
        self._next = 0

    async def call(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Record the call and return the next scripted response.

        Raises:
            IndexError: If the script is exhausted
        """
        self.call_history.append({
            "messages": messages,
            "model": model or self.default_model,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if self._next >= len(self.responses):
            raise IndexError("No more mock responses available")

        scripted = self.responses[self._next]
        self._next += 1
        if isinstance(scripted, Exception):
            raise scripted
        return scripted

    def reset(self) -> None:
        """Rewind the script and forget recorded calls."""
        self._next = 0
        self.call_history.clear()
