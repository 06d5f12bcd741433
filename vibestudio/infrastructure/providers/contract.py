"""Provider Contract - the uniform surface every LLM vendor adapter implements.

Invariants:
    - run_agent() delivers events in wire order: text deltas as they stream,
      tool_call_start when a tool block opens, tool_call once its arguments are
      complete, tool_result after execute_tool returns
    - Every tool event carries the call id; results correlate by id, never by name
    - run_agent() returns exactly one usage report, summed over all iterations
    - Transport/auth/rate-limit failures surface as ProviderError, never as
      silent empty output

Design Decisions:
    - Protocol over ABC: adapters are plain classes, dispatch is structural
    - Tool definitions use one neutral shape {name, description, input_schema};
      each adapter converts to its vendor's format
    - execute_tool returns the result as a string fed back to the model
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from vibestudio.core.cost_model import TokenUsage

ToolExecutor = Callable[[str, dict[str, Any]], Awaitable[str]]


@dataclass(frozen=True)
class LLMConfig:
    """Resolved provider configuration for one run."""
    provider: str
    api_key: str
    model: str
    base_url: str | None = None


@dataclass(frozen=True)
class LLMResponse:
    content: str
    usage: TokenUsage


class AgentEvents(Protocol):
    """Callbacks the coordinator registers for one run."""
    async def on_text(self, delta: str) -> None: ...
    async def on_tool_call_start(self, call_id: str, name: str) -> None: ...
    async def on_tool_call(self, call_id: str, name: str, args: dict[str, Any]) -> None: ...
    async def on_tool_result(self, call_id: str, name: str, result: str) -> None: ...


class LLMProvider(Protocol):
    """One variant per vendor: {generate, run_agent}."""
    provider: str
    model: str

    async def generate(
        self,
        messages: list[dict],
        *,
        system: str | None = None,
        model: str | None = None,
        max_tokens: int = 256,
    ) -> LLMResponse: ...

    async def run_agent(
        self,
        *,
        system: str,
        messages: list[dict],
        tools: list[dict],
        execute_tool: ToolExecutor,
        events: AgentEvents,
        max_iterations: int,
    ) -> TokenUsage: ...
