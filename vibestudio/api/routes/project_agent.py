"""Project Agent - chat history, run start, and the live change stream.

Invariants:
    - POST returns as soon as the run is admitted; progress is observed through
      the persisted agent_chat (GET) or the change stream (GET /events)
    - Precondition failures surface as {"error": ...} with 400/404/409/429/500;
      429 carries Retry-After (seconds)
    - The change stream unsubscribes from the store when the client disconnects

Design Decisions:
    - StreamingResponse for SSE: the generator yields formatted SSE lines
    - Heartbeat comment lines keep idle connections open through proxies
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from vibestudio.api.dependencies import (
    client_key, get_coordinator, get_store,
)
from vibestudio.core.errors import ResourceNotFoundError
from vibestudio.core.repository_protocols import DocumentStore
from vibestudio.schemas.agent import (
    AgentHistory, AgentRequest, AgentStarted, SuccessResponse,
)
from vibestudio.services.agent_coordinator import AgentCoordinator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/projects", tags=["agent"])

# SSE headers prevent proxy/browser buffering of streamed events.
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}
HEARTBEAT_SECONDS = 15.0


def sse_line(event: dict) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False, default=str)}\n\n"


async def stream_project_changes(
    store: DocumentStore,
    project_id: str,
    is_disconnected: Callable[[], Awaitable[bool]],
    heartbeat_seconds: float = HEARTBEAT_SECONDS,
) -> AsyncIterator[str]:
    """Current document first, then the latest document after each update.

    Updates that land while the client is still reading the previous event
    collapse into one: only the newest document is queued.
    """
    queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=1)

    def on_change(document: dict) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(document)

    unsubscribe = store.subscribe(project_id, on_change)
    try:
        project = await store.get(project_id)
        if project is None:
            return
        yield sse_line({"type": "snapshot", "project": project})
        while not await is_disconnected():
            try:
                document = await asyncio.wait_for(queue.get(), heartbeat_seconds)
            except asyncio.TimeoutError:
                yield ": heartbeat\n\n"
                continue
            yield sse_line({"type": "change", "project": document})
    finally:
        unsubscribe()


@router.get("/{project_id}/agent", response_model=AgentHistory)
async def get_agent_history(
    project_id: str,
    coordinator: AgentCoordinator = Depends(get_coordinator),
):
    """Full agent chat for the project."""
    return AgentHistory(messages=await coordinator.get_history(project_id))


@router.delete("/{project_id}/agent", response_model=SuccessResponse)
async def clear_agent_history(
    project_id: str,
    coordinator: AgentCoordinator = Depends(get_coordinator),
):
    await coordinator.clear_history(project_id)
    return SuccessResponse()


@router.post("/{project_id}/agent", response_model=AgentStarted)
async def start_agent(
    project_id: str,
    body: AgentRequest,
    request: Request,
    coordinator: AgentCoordinator = Depends(get_coordinator),
):
    """Admit a background run. Never waits for the run itself."""
    result = await coordinator.start_run(
        project_id,
        prompt=body.prompt,
        messages=body.messages,
        spec=body.spec,
        client_key=client_key(request),
    )
    return AgentStarted(**result)


@router.get("/{project_id}/agent/events")
async def agent_events(
    project_id: str,
    request: Request,
    store: DocumentStore = Depends(get_store),
):
    """SSE stream of project document changes (agent_chat progress included)."""
    if await store.get(project_id) is None:
        raise ResourceNotFoundError("Project", project_id)
    return StreamingResponse(
        stream_project_changes(store, project_id, request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
