"""Run Registry - process-wide single-flight guard, one active run per project.

Invariants:
    - try_acquire() is atomic per project id: concurrent callers for the same id
      get exactly one True
    - release() is idempotent
    - A RunPermit only exists while its project holds a slot; transcript writers
      require one, so no transcript mutation happens without single-writer ownership

Design Decisions:
    - A held/free table, not a queue: a second request while running is rejected
    - threading.Lock around the table: operations never await, so the lock is held
      for a dict lookup only, and stays correct if a worker thread ever calls in
    - No cross-process coordination; the document store stays the durable record
      and interrupted runs are reconciled at startup
"""

import threading
from dataclasses import dataclass


class RunRegistry:
    """Held/free slot per project id. Created once per process."""

    def __init__(self) -> None:
        self._running: dict[str, bool] = {}
        self._lock = threading.Lock()

    def try_acquire(self, project_id: str) -> bool:
        with self._lock:
            if self._running.get(project_id):
                return False
            self._running[project_id] = True
            return True

    def release(self, project_id: str) -> None:
        with self._lock:
            self._running.pop(project_id, None)

    def is_running(self, project_id: str) -> bool:
        with self._lock:
            return bool(self._running.get(project_id))

    def active(self) -> list[str]:
        with self._lock:
            return list(self._running)

    def claim(self, project_id: str) -> "RunPermit | None":
        """try_acquire() returning a permit instead of a bool."""
        if not self.try_acquire(project_id):
            return None
        return RunPermit(project_id, self)


@dataclass(frozen=True)
class RunPermit:
    """Proof that the holder owns the run slot for `project_id`."""
    project_id: str
    registry: RunRegistry

    @property
    def held(self) -> bool:
        return self.registry.is_running(self.project_id)

    def release(self) -> None:
        self.registry.release(self.project_id)
