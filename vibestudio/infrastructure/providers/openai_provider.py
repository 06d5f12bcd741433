"""OpenAI-compatible Provider - chat.completions streaming tool loop.

Serves OpenAI itself plus DeepSeek and Gemini through their OpenAI-compatible
endpoints (only base_url differs).

Invariants:
    - Tool-call fragments are accumulated by stream index; on_tool_call_start
      fires once per index, when the index is first seen
    - Every call gets a unique id: a stream that omits ids gets generated ones,
      so parallel calls to the same tool never share a correlation id
    - Arguments are parsed only after the stream ends; unparseable JSON -> {}
    - Usage comes from the final chunk (stream_options.include_usage)
    - All SDK failures mapped to ProviderError (core/errors.py)

Design Decisions:
    - Raw create(stream=True) over the beta stream helper: chunks are plain and
      the adapter owns accumulation
    - Connection-level retries delegated to the SDK's own max_retries
"""

import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

import openai
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
)

from vibestudio.core.cost_model import TokenUsage
from vibestudio.core.errors import AgentLoopExceededError, ErrorContext, ProviderError
from vibestudio.infrastructure.providers.contract import (
    AgentEvents, LLMResponse, ToolExecutor,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URLS = {
    "deepseek": "https://api.deepseek.com",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai/",
}


def to_function_tools(tools: list[dict]) -> list[dict]:
    """Neutral {name, description, input_schema} -> OpenAI function tools."""
    return [
        {
            "type": "function",
            "function": {
                "name": t["name"],
                "description": t.get("description", ""),
                "parameters": t.get("input_schema") or {"type": "object", "properties": {}},
            },
        }
        for t in tools
    ]


def _parse_args(raw: str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Unparseable tool arguments: %s", raw[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _usage(usage: Any) -> TokenUsage:
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=usage.prompt_tokens or 0,
        completion_tokens=usage.completion_tokens or 0,
    )


class _PendingCall:
    __slots__ = ("id", "name", "arguments")

    def __init__(self) -> None:
        self.id = ""
        self.name = ""
        self.arguments = ""


class OpenAICompatibleProvider:
    """OpenAI / DeepSeek / Gemini variant of the LLMProvider contract."""

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        provider: str = "openai",
        base_url: str | None = None,
        max_tokens: int = 8192,
        max_retries: int = 2,
        timeout_seconds: int = 300,
        client: Any = None,
    ):
        self.provider = provider
        self.model = model
        self.max_tokens = max_tokens
        self.client = client or openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url or DEFAULT_BASE_URLS.get(provider),
            timeout=timeout_seconds,
            max_retries=max_retries,
        )

    async def generate(
        self,
        messages: list[dict],
        *,
        system: str | None = None,
        model: str | None = None,
        max_tokens: int = 256,
    ) -> LLMResponse:
        payload = ([{"role": "system", "content": system}] if system else []) + list(messages)
        async with self._mapped_errors():
            response = await self.client.chat.completions.create(
                model=model or self.model,
                max_tokens=max_tokens,
                messages=payload,
            )
        content = response.choices[0].message.content if response.choices else ""
        return LLMResponse(content or "", _usage(response.usage))

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
        """Stream + execute tools until a response carries no tool calls."""
        conversation = [{"role": "system", "content": system}, *messages]
        function_tools = to_function_tools(tools)
        total = TokenUsage()
        ctx = ErrorContext(provider=self.provider)

        for _ in range(max_iterations):
            text_parts: list[str] = []
            pending: dict[int, _PendingCall] = {}
            async with self._mapped_errors(ctx):
                stream = await self.client.chat.completions.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    messages=conversation,
                    tools=function_tools,
                    stream=True,
                    stream_options={"include_usage": True},
                )
                async for chunk in stream:
                    if chunk.usage is not None:
                        total = total + _usage(chunk.usage)
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta
                    if delta.content:
                        text_parts.append(delta.content)
                        await events.on_text(delta.content)
                    for fragment in delta.tool_calls or []:
                        await self._accumulate(fragment, pending, events)

            logger.info(
                "OpenAI-compatible stream complete",
                extra={"provider": self.provider, "model": self.model},
            )
            if not pending:
                return total

            calls = [pending[i] for i in sorted(pending)]
            conversation.append({
                "role": "assistant",
                "content": "".join(text_parts) or None,
                "tool_calls": [
                    {
                        "id": c.id,
                        "type": "function",
                        "function": {"name": c.name, "arguments": c.arguments or "{}"},
                    }
                    for c in calls
                ],
            })
            for call in calls:
                args = _parse_args(call.arguments)
                await events.on_tool_call(call.id, call.name, args)
                result = await execute_tool(call.name, args)
                await events.on_tool_result(call.id, call.name, result)
                conversation.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": result,
                })

        raise AgentLoopExceededError(max_iterations, ctx)

    async def _accumulate(
        self, fragment: Any, pending: dict[int, _PendingCall], events: AgentEvents,
    ) -> None:
        index = fragment.index if fragment.index is not None else len(pending)
        is_new = index not in pending
        call = pending.setdefault(index, _PendingCall())
        fn = fragment.function
        if fn is not None:
            if fn.name:
                call.name += fn.name
            if fn.arguments:
                call.arguments += fn.arguments
        if is_new:
            call.id = fragment.id or f"call_{uuid.uuid4().hex[:24]}"
            await events.on_tool_call_start(call.id, call.name)

    @asynccontextmanager
    async def _mapped_errors(self, context: ErrorContext | None = None):
        """SDK exception -> ProviderError. Non-SDK errors pass through."""
        ctx = context or ErrorContext(provider=self.provider)
        try:
            yield
        except RateLimitError as e:
            raise ProviderError(
                str(e), ProviderError.RATE_LIMITED,
                retry_after_seconds=_retry_after(e), context=ctx,
            )
        except (AuthenticationError, PermissionDeniedError) as e:
            raise ProviderError(str(e), ProviderError.AUTH_FAILED, context=ctx)
        except APIConnectionError as e:
            raise ProviderError(str(e), ProviderError.NETWORK, context=ctx)
        except APIError as e:
            raise ProviderError(str(e), ProviderError.OTHER, context=ctx)


def _retry_after(error: APIStatusError) -> int | None:
    try:
        val = error.response.headers.get("retry-after")
        return int(val) if val else None
    except (AttributeError, ValueError):
        return None
