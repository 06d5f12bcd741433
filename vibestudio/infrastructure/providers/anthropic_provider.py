"""Anthropic Provider - reference adapter: AsyncAnthropic streaming tool loop + error mapping.

Invariants:
    - Text deltas and tool_use block starts are forwarded in stream order
    - Tool calls of one response execute sequentially, in content order
    - Streaming calls are never retried (a retry would replay text already shown);
      generate() retries rate limits and transient errors with backoff
    - All SDK failures mapped to ProviderError (core/errors.py)

Design Decisions:
    - get_final_message() for post-processing (avoids manual block reconstruction)
    - Prompt caching tags the system prompt and the last tool definition
    - +/-25% jitter on backoff: prevents thundering herd on shared rate limits
"""

import asyncio
import logging
import random
from contextlib import asynccontextmanager
from typing import Any

import anthropic
from anthropic import (
    APIError,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    InternalServerError,
    PermissionDeniedError,
    RateLimitError,
)

from vibestudio.core.cost_model import TokenUsage
from vibestudio.core.errors import AgentLoopExceededError, ErrorContext, ProviderError
from vibestudio.infrastructure.providers.contract import (
    AgentEvents, LLMResponse, ToolExecutor,
)

logger = logging.getLogger(__name__)

# OverloadedError (HTTP 529) is detected via status code on APIStatusError
_OVERLOADED_STATUS = 529
_CACHE = {"type": "ephemeral"}


def _is_overloaded(e: APIError) -> bool:
    return isinstance(e, APIStatusError) and e.status_code == _OVERLOADED_STATUS


def with_system_cache(system: str) -> list[dict]:
    return [{"type": "text", "text": system, "cache_control": _CACHE}]


def with_tools_cache(tools: list[dict]) -> list[dict]:
    if not tools:
        return tools
    cached = list(tools)
    cached[-1] = {**cached[-1], "cache_control": _CACHE}
    return cached


def usage_from_response(usage: Any) -> TokenUsage:
    """Prompt tokens include cache writes and reads."""
    cache_create = getattr(usage, "cache_creation_input_tokens", 0) or 0
    cache_read = getattr(usage, "cache_read_input_tokens", 0) or 0
    return TokenUsage(
        prompt_tokens=usage.input_tokens + cache_create + cache_read,
        completion_tokens=usage.output_tokens,
    )


class AnthropicProvider:
    """Anthropic variant of the LLMProvider contract."""

    provider = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: str | None = None,
        max_tokens: int = 8192,
        max_retries: int = 2,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 30_000,
        timeout_seconds: int = 300,
        client: Any = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.client = client or anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=0,
        )

    async def generate(
        self,
        messages: list[dict],
        *,
        system: str | None = None,
        model: str | None = None,
        max_tokens: int = 256,
    ) -> LLMResponse:
        """Single non-streaming completion with retry on transient failures."""
        kwargs: dict[str, Any] = {
            "model": model or self.model,
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        ctx = ErrorContext(provider=self.provider)

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.messages.create(**kwargs)
                self._log_success(response, attempt)
                text = "".join(
                    b.text for b in response.content
                    if getattr(b, "type", None) == "text"
                )
                return LLMResponse(text, usage_from_response(response.usage))
            except RateLimitError as e:
                await self._handle_rate_limit(e, attempt, ctx)
            except (AuthenticationError, PermissionDeniedError) as e:
                raise ProviderError(str(e), ProviderError.AUTH_FAILED, context=ctx)
            except (APIConnectionError, InternalServerError) as e:
                await self._handle_transient_error(e, attempt, ctx)
            except APIError as e:
                if _is_overloaded(e):
                    await self._handle_transient_error(e, attempt, ctx)
                    continue
                raise ProviderError(str(e), ProviderError.OTHER, context=ctx)
        raise ProviderError("Retries exhausted", ProviderError.OTHER, context=ctx)

    async def run_agent(
        self,
        *,
        system: str,
        messages: list[dict],
        tools: list[dict],
        execute_tool: ToolExecutor,
        events: AgentEvents,
        max_iterations: int,
    ) -> TokenUsage:
        """Stream + execute tools until the model stops asking for them."""
        messages = list(messages)
        total = TokenUsage()
        ctx = ErrorContext(provider=self.provider)

        for _ in range(max_iterations):
            async with self.stream_message(
                system=system, tools=tools, messages=messages, context=ctx,
            ) as stream:
                async for event in stream:
                    await self._forward_stream_event(event, events)
                response = await stream.get_final_message()

            total = total + usage_from_response(response.usage)
            self._log_success(response, 0)
            tool_blocks = [
                b for b in response.content
                if getattr(b, "type", None) == "tool_use"
            ]
            if not tool_blocks:
                return total

            messages.append({
                "role": "assistant",
                "content": [
                    b.model_dump(exclude_none=True) for b in response.content
                ],
            })
            tool_results = []
            for block in tool_blocks:
                args = dict(block.input or {})
                await events.on_tool_call(block.id, block.name, args)
                result = await execute_tool(block.name, args)
                await events.on_tool_result(block.id, block.name, result)
                tool_results.append({
                    "type": "tool_result",
                    "tool_use_id": block.id,
                    "content": result,
                })
            messages.append({"role": "user", "content": tool_results})

        raise AgentLoopExceededError(max_iterations, ctx)

    @asynccontextmanager
    async def stream_message(
        self,
        *,
        system: str,
        tools: list[dict],
        messages: list[dict],
        context: ErrorContext | None = None,
    ):
        """Stream message with SDK error -> ProviderError mapping.

        No retry. Catches errors from both connection setup AND mid-stream
        (errors from the caller's async for propagate through the yield).
        CancelledError (BaseException) passes through uncaught.
        """
        try:
            cm = self.client.messages.stream(
                model=self.model,
                max_tokens=self.max_tokens,
                system=with_system_cache(system),
                tools=with_tools_cache(tools),
                messages=messages,
            )
            async with cm as stream:
                yield stream
        except RateLimitError as e:
            raise ProviderError(
                "Rate limit exceeded (streaming)",
                ProviderError.RATE_LIMITED,
                retry_after_seconds=self._extract_retry_after(e),
                context=context,
            )
        except (AuthenticationError, PermissionDeniedError) as e:
            raise ProviderError(str(e), ProviderError.AUTH_FAILED, context=context)
        except (APIConnectionError, APITimeoutError) as e:
            raise ProviderError(
                f"Connection error during stream: {e}",
                ProviderError.NETWORK,
                context=context,
            )
        except APIError as e:
            if _is_overloaded(e):
                raise ProviderError(
                    "Anthropic API overloaded (529)",
                    ProviderError.RATE_LIMITED,
                    context=context,
                )
            raise ProviderError(str(e), ProviderError.OTHER, context=context)

    async def _forward_stream_event(self, event: Any, events: AgentEvents) -> None:
        etype = getattr(event, "type", None)
        if etype == "content_block_start":
            block = event.content_block
            if getattr(block, "type", None) == "tool_use":
                await events.on_tool_call_start(block.id, block.name)
        elif etype == "content_block_delta":
            delta = event.delta
            if getattr(delta, "type", None) == "text_delta" and delta.text:
                await events.on_text(delta.text)

    def _log_success(self, response: Any, attempt: int) -> None:
        usage = response.usage
        logger.info(
            "Anthropic API success",
            extra={
                "provider": self.provider,
                "model": self.model,
                "attempt": attempt + 1,
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
            },
        )

    async def _handle_rate_limit(
        self, e: RateLimitError, attempt: int, context: ErrorContext,
    ) -> None:
        retry_after = self._extract_retry_after(e)
        if attempt >= self.max_retries:
            raise ProviderError(
                "Rate limit exceeded after retries",
                ProviderError.RATE_LIMITED,
                retry_after_seconds=retry_after,
                context=context,
            )
        delay_ms = retry_after * 1000 if retry_after else self._backoff(attempt)
        logger.warning(
            f"Rate limit hit, retry after {delay_ms}ms (attempt {attempt + 1})",
        )
        await asyncio.sleep(delay_ms / 1000)

    async def _handle_transient_error(
        self, e: Exception, attempt: int, context: ErrorContext,
    ) -> None:
        if attempt >= self.max_retries:
            kind = (
                ProviderError.NETWORK if isinstance(e, APIConnectionError)
                else ProviderError.OTHER
            )
            raise ProviderError(
                f"Transient failure after {self.max_retries} retries: {e}",
                kind,
                context=context,
            )
        delay = self._backoff(attempt)
        logger.warning(f"Transient error, retry after {delay}ms: {e}")
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with +/-25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    def _extract_retry_after(self, error: APIStatusError) -> int | None:
        """Retry-After header in seconds."""
        try:
            val = error.response.headers.get("retry-after")
            return int(val) if val else None
        except (AttributeError, ValueError):
            return None
