"""Agent Schemas - request/response shapes of the project agent endpoints.

Invariants:
    - AgentRequest accepts an empty prompt: emptiness is a coordinator
      precondition (400 with the {"error": ...} envelope), not a schema error
    - messages entries stay free-form dicts; only role/content are read

Design Decisions:
    - extra="allow" on AgentRequest: clients post extra UI fields alongside
      the prompt and they must not be rejected
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AgentRequest(BaseModel):
    """POST /projects/{id}/agent body: a prompt, or the chat to take it from."""
    model_config = ConfigDict(extra="allow")

    prompt: str | None = Field(None, max_length=50_000)
    messages: list[dict[str, Any]] | None = None
    spec: str | None = None


class AgentStarted(BaseModel):
    started: bool = True
    status: str = "running"


class AgentHistory(BaseModel):
    messages: list[dict[str, Any]]


class SuccessResponse(BaseModel):
    success: bool = True
