"""Domain Types - rich types that replace bare primitives across the codebase.

Invariants:
    - ProjectId/SnapshotId wrap document-store string ids
    - All valid states encoded as Enums, no raw string matching
    - Enum values are exactly the strings persisted in the document store

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders
"""

from enum import Enum
from typing import NewType


# --- Identity Types ----------------------------------------------

ProjectId = NewType("ProjectId", str)
SnapshotId = NewType("SnapshotId", str)
ToolCallId = NewType("ToolCallId", str)


# --- Enums -------------------------------------------------------

class AgentStatus(str, Enum):
    """Project-level agent state, mirrored to `agent_status`."""
    IDLE = "idle"
    RUNNING = "running"
    ERROR = "error"


class RunStatus(str, Enum):
    """Lifecycle of one RunTranscriptEntry. Leaves RUNNING exactly once."""
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class StreamItemType(str, Enum):
    TEXT = "text"
    TOOL = "tool"


class SnapshotKind(str, Enum):
    """Run boundary a snapshot was taken at."""
    BEFORE = "before"
    AFTER = "after"
    MANUAL = "manual"


class ProviderName(str, Enum):
    """LLM vendors the provider factory can resolve."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"
