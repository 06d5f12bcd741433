"""Run Transcript - the in-progress assistant entry mutated by one agent run.

Invariants:
    - Concatenating the text items of stream_items always equals content
    - Tool items and ToolCallRecords correlate by call id only (never by name),
      so two concurrent calls to the same tool stay distinct
    - A tool item is created on first sight of its id, whichever callback arrives first
    - args are set (possibly {}) before a result is attached
    - Once a tool item has a result it is never mutated again
    - The entry is frozen once status leaves RUNNING; further mutation raises

Design Decisions:
    - Pure in-memory model, no IO: the coordinator owns persistence timing
    - None means "not yet known" for args/result and is omitted from the record
"""

import time
from dataclasses import dataclass, field
from typing import Any

from vibestudio.core.cost_model import TokenUsage
from vibestudio.core.domain_types import MessageRole, RunStatus, StreamItemType


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class StreamItem:
    """Tagged union: text item (content) or tool item (id, name, args, result)."""
    type: StreamItemType
    content: str | None = None
    id: str | None = None
    name: str | None = None
    args: dict[str, Any] | None = None
    result: str | None = None

    def to_dict(self) -> dict:
        if self.type == StreamItemType.TEXT:
            return {"type": self.type.value, "content": self.content or ""}
        item: dict[str, Any] = {
            "type": self.type.value, "id": self.id, "name": self.name,
        }
        if self.args is not None:
            item["args"] = dict(self.args)
        if self.result is not None:
            item["result"] = self.result
        return item


@dataclass
class ToolCallRecord:
    id: str
    name: str
    args: dict[str, Any] | None = None
    result: str | None = None

    def to_dict(self) -> dict:
        record: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.args is not None:
            record["args"] = dict(self.args)
        if self.result is not None:
            record["result"] = self.result
        return record


@dataclass(frozen=True)
class RunUsage:
    """Token usage plus estimated cost, computed once at run completion."""
    prompt_tokens: int
    completion_tokens: int
    model: str
    cost: float

    @classmethod
    def from_tokens(cls, usage: TokenUsage, model: str, cost: float) -> "RunUsage":
        return cls(usage.prompt_tokens, usage.completion_tokens, model, cost)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> dict:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
            "model": self.model,
            "cost": self.cost,
        }


class TranscriptFinalizedError(RuntimeError):
    """Mutation attempted after the run reached a terminal status."""


@dataclass
class RunTranscript:
    """RunTranscriptEntry: owned by exactly one run while status is RUNNING."""
    content: str = ""
    stream_items: list[StreamItem] = field(default_factory=list)
    tool_calls: dict[str, ToolCallRecord] = field(default_factory=dict)
    status: RunStatus = RunStatus.RUNNING
    usage: RunUsage | None = None
    error: str | None = None
    timestamp: int = field(default_factory=now_ms)

    # -- streaming mutations -----------------------------------------------

    def append_text(self, delta: str) -> None:
        self._ensure_running()
        if not delta:
            return
        self.content += delta
        last = self.stream_items[-1] if self.stream_items else None
        if last is not None and last.type == StreamItemType.TEXT:
            last.content = (last.content or "") + delta
        else:
            self.stream_items.append(
                StreamItem(StreamItemType.TEXT, content=delta),
            )

    def start_tool(self, call_id: str, name: str) -> None:
        self._ensure_running()
        self._tool_item(call_id, name)
        self._tool_record(call_id, name)

    def set_tool_args(
        self, call_id: str, name: str, args: dict[str, Any] | None,
    ) -> None:
        self._ensure_running()
        args = dict(args or {})
        record = self._tool_record(call_id, name)
        if record.result is None:
            record.args = {**(record.args or {}), **args}
        item = self._tool_item(call_id, name)
        if item.result is None:
            item.args = {**(item.args or {}), **args}

    def set_tool_result(self, call_id: str, name: str, result: str) -> None:
        self._ensure_running()
        record = self._tool_record(call_id, name)
        if record.result is None:
            if record.args is None:
                record.args = {}
            record.result = result
        item = self._tool_item(call_id, name)
        if item.result is None:
            if item.args is None:
                item.args = {}
            item.result = result

    # -- terminal transitions ----------------------------------------------

    def complete(self, usage: RunUsage) -> None:
        self._ensure_running()
        self.usage = usage
        self.status = RunStatus.COMPLETE
        self.timestamp = now_ms()

    def fail(self, message: str) -> None:
        self._ensure_running()
        if not self.content:
            self.content = f"Error: {message}"
        self.error = message
        self.status = RunStatus.ERROR
        self.timestamp = now_ms()

    # -- views -------------------------------------------------------------

    @property
    def finished(self) -> bool:
        return self.status != RunStatus.RUNNING

    def tool_names(self) -> list[str]:
        """Tool names in call order, one entry per call."""
        return [record.name for record in self.tool_calls.values()]

    def text_from_items(self) -> str:
        return "".join(
            item.content or "" for item in self.stream_items
            if item.type == StreamItemType.TEXT
        )

    def to_record(self) -> dict:
        """JSON-safe entry for the project's agent_chat sequence."""
        record: dict[str, Any] = {
            "role": MessageRole.ASSISTANT.value,
            "content": self.content,
            "stream_items": [item.to_dict() for item in self.stream_items],
            "status": self.status.value,
            "timestamp": self.timestamp,
        }
        if self.tool_calls:
            record["tool_calls"] = [
                call.to_dict() for call in self.tool_calls.values()
            ]
        if self.usage is not None:
            record["usage"] = self.usage.to_dict()
        if self.error is not None:
            record["error"] = self.error
        return record

    # -- internals ---------------------------------------------------------

    def _ensure_running(self) -> None:
        if self.finished:
            raise TranscriptFinalizedError(
                f"transcript is {self.status.value}; no further mutation",
            )

    def _tool_item(self, call_id: str, name: str) -> StreamItem:
        for item in self.stream_items:
            if item.type == StreamItemType.TOOL and item.id == call_id:
                return item
        item = StreamItem(StreamItemType.TOOL, id=call_id, name=name)
        self.stream_items.append(item)
        return item

    def _tool_record(self, call_id: str, name: str) -> ToolCallRecord:
        record = self.tool_calls.get(call_id)
        if record is None:
            record = ToolCallRecord(call_id, name)
            self.tool_calls[call_id] = record
        return record
