"""Persistence Throttle - per-run debounce of transcript writes to the document store.

Invariants:
    - At most one unforced write per interval while text streams in
    - force=True always writes immediately, even inside the interval
    - Writes are serialized (asyncio.Lock) and each one persists the state as of
      its own start, so coalesced writes never reorder mutations
    - A failed write is logged and swallowed; the run is never aborted by storage
    - TranscriptWriter only exists with a RunPermit: single writer per project

Design Decisions:
    - Deferred write is an asyncio task sleeping out the remaining interval,
      then writing with force=True (mirrors the original setTimeout debounce)
    - finish() cancels the deferred write before the terminal write, so nothing
      stale can land after the final status
    - Clock injectable for tests (time.monotonic by default)
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from vibestudio.core.domain_types import AgentStatus
from vibestudio.core.repository_protocols import DocumentStore
from vibestudio.core.run_registry import RunPermit
from vibestudio.core.transcript import RunTranscript

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 300


class PersistenceThrottle:
    """Leaky-bucket debounce around one async write function."""

    def __init__(
        self,
        write: Callable[[], Awaitable[None]],
        interval_ms: int = DEFAULT_INTERVAL_MS,
        clock: Callable[[], float] = time.monotonic,
        label: str | None = None,
    ):
        self._write = write
        self.interval = interval_ms / 1000
        self._clock = clock
        self._label = label
        self._last_write: float | None = None
        self._pending: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self.write_count = 0
        self.failure_count = 0

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def flush(self, force: bool = False) -> None:
        """Write now, or schedule one deferred write for the rest of the interval."""
        if force:
            await self._write_now()
            return
        now = self._clock()
        elapsed = (
            self.interval if self._last_write is None
            else now - self._last_write
        )
        if elapsed >= self.interval:
            await self._write_now()
            return
        if self.pending:
            return
        self._pending = asyncio.create_task(
            self._deferred(self.interval - elapsed),
        )

    async def cancel_pending(self) -> None:
        task, self._pending = self._pending, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _deferred(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._pending = None
        await self._write_now()

    async def _write_now(self) -> None:
        async with self._lock:
            self._last_write = self._clock()
            try:
                await self._write()
                self.write_count += 1
            except Exception as e:
                self.failure_count += 1
                logger.error("Transcript write failed: %s", e,
                    extra={"project_id": self._label})


class TranscriptWriter:
    """Persists `history + [transcript]` as the project's agent_chat.

    The history list is the project's agent_chat as read at admission,
    without the running entry; the entry is always re-serialized from the
    live transcript, so the tail is the only element that changes.
    """

    def __init__(
        self,
        store: DocumentStore,
        permit: RunPermit,
        history: list[dict],
        transcript: RunTranscript,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.permit = permit
        self.history = list(history)
        self.transcript = transcript
        self._agent_status: AgentStatus | None = None
        self.throttle = PersistenceThrottle(
            self._persist, interval_ms, clock, label=permit.project_id,
        )

    @property
    def project_id(self) -> str:
        return self.permit.project_id

    def agent_chat(self) -> list[dict]:
        return [*self.history, self.transcript.to_record()]

    async def start(self) -> None:
        """Run-has-started checkpoint. Unthrottled, and failures propagate."""
        await self.store.update(self.project_id, {
            "agent_chat": self.agent_chat(),
            "agent_status": AgentStatus.RUNNING.value,
        })

    async def request_flush(self, force: bool = False) -> None:
        await self.throttle.flush(force=force)

    async def finish(self, agent_status: AgentStatus) -> None:
        """Terminal write: drop any deferred write, then persist status + entry."""
        await self.throttle.cancel_pending()
        self._agent_status = agent_status
        await self.throttle.flush(force=True)

    async def _persist(self) -> None:
        if not self.permit.held:
            raise RuntimeError(
                f"run slot for {self.project_id} no longer held; write refused",
            )
        fields: dict = {"agent_chat": self.agent_chat()}
        if self._agent_status is not None:
            fields["agent_status"] = self._agent_status.value
        await self.store.update(self.project_id, fields)
