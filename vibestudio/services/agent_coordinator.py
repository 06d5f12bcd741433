"""Agent Run Coordinator - admits one background agent run per project and drives it.

Invariants:
    - start_run() checks, in order: prompt, run slot, rate limit, project, api key;
      every failure surfaces to the caller before any run starts
    - The run slot is claimed before the first await (no two concurrent admissions
      for one project) and released on every path, including cancellation
    - The running transcript entry is persisted before start_run() returns
    - Transcript mutations apply in callback order; writes may coalesce, never reorder
    - Storage failures during streaming never abort the provider call
    - Snapshot failures are logged only; no "after" snapshot on error

Design Decisions:
    - Fire-and-forget via asyncio.create_task; tasks are held in a coordinator
      dict until done, so they are never garbage-collected mid-run
    - The run opens its own store sessions (never the request's session)
    - Provider errors are classified once, here, into user-readable messages
    - Startup sweep (reconcile_interrupted_runs) closes runs orphaned by a restart
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from vibestudio.config import Settings, get_settings
from vibestudio.core.cost_model import calculate_cost
from vibestudio.core.domain_types import AgentStatus, MessageRole, RunStatus
from vibestudio.core.errors import (
    RateLimitedError, ResourceNotFoundError, RunConflictError, StudioError,
    ValidationError, classify_provider_error,
)
from vibestudio.core.format_messages import (
    build_conversation_history, ends_with_prompt, extract_user_prompt, user_message,
)
from vibestudio.core.rate_limiter import RateLimiter
from vibestudio.core.repository_protocols import DocumentStore, SettingsRepository
from vibestudio.core.run_registry import RunPermit, RunRegistry
from vibestudio.core.transcript import RunTranscript, RunUsage, now_ms
from vibestudio.infrastructure.providers import create_provider
from vibestudio.infrastructure.observability import log_context
from vibestudio.infrastructure.providers.contract import LLMConfig, LLMProvider
from vibestudio.services.llm_settings import resolve_llm_config
from vibestudio.services.persistence_throttle import TranscriptWriter
from vibestudio.services.snapshot_service import SnapshotService, summarize_change
from vibestudio.services.system_prompt import build_system_prompt
from vibestudio.services.tool_dispatch import ToolDispatch
from vibestudio.services.tools_registry import TOOL_DEFINITIONS

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[LLMConfig], LLMProvider]

INTERRUPTED_MESSAGE = "Run interrupted by a server restart."


class RunEvents:
    """AgentEvents bound to one transcript + writer."""

    def __init__(self, transcript: RunTranscript, writer: TranscriptWriter):
        self.transcript = transcript
        self.writer = writer

    async def on_text(self, delta: str) -> None:
        self.transcript.append_text(delta)
        await self.writer.request_flush()

    async def on_tool_call_start(self, call_id: str, name: str) -> None:
        self.transcript.start_tool(call_id, name)
        await self.writer.request_flush()

    async def on_tool_call(self, call_id: str, name: str, args: dict[str, Any]) -> None:
        self.transcript.set_tool_args(call_id, name, args)
        await self.writer.request_flush()

    async def on_tool_result(self, call_id: str, name: str, result: str) -> None:
        self.transcript.set_tool_result(call_id, name, result)
        await self.writer.request_flush(force=True)


@dataclass
class AdmittedRun:
    """Everything a background run needs, captured at admission."""
    permit: RunPermit
    project: dict
    prompt: str
    spec: str | None
    config: LLMConfig
    conversation: list[dict]
    transcript: RunTranscript
    writer: TranscriptWriter

    @property
    def project_id(self) -> str:
        return self.permit.project_id


class AgentCoordinator:
    """start_run() + the background execution it spawns."""

    def __init__(
        self,
        store: DocumentStore,
        settings_repo: SettingsRepository,
        snapshots: SnapshotService,
        registry: RunRegistry,
        limiter: RateLimiter,
        provider_factory: ProviderFactory = create_provider,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.settings_repo = settings_repo
        self.snapshots = snapshots
        self.registry = registry
        self.limiter = limiter
        self.provider_factory = provider_factory
        self.settings = settings or get_settings()
        self._clock = clock
        self._tasks: dict[str, asyncio.Task] = {}

    # -- history -------------------------------------------------------------

    async def get_history(self, project_id: str) -> list[dict]:
        project = await self.store.get(project_id)
        if project is None:
            raise ResourceNotFoundError("Project", project_id)
        return list(project.get("agent_chat") or [])

    async def clear_history(self, project_id: str) -> None:
        if self.registry.is_running(project_id):
            raise RunConflictError(project_id)
        await self.store.update(project_id, {"agent_chat": []})

    # -- admission -----------------------------------------------------------

    async def start_run(
        self,
        project_id: str,
        *,
        prompt: str | None = None,
        messages: list[dict] | None = None,
        spec: str | None = None,
        client_key: str = "unknown",
    ) -> dict:
        """Admit a run and spawn it. Returns {"started": True, "status": "running"}."""
        user_prompt = extract_user_prompt(prompt, messages)
        if not user_prompt:
            raise ValidationError("Prompt is required", "prompt")

        permit = self.registry.claim(project_id)
        if permit is None:
            raise RunConflictError(project_id)
        try:
            run = await self._admit(permit, user_prompt, spec, client_key)
        except BaseException:
            permit.release()
            raise

        # The task copies the bound fields; every log line of the run carries them.
        with log_context(project_id=project_id, provider=run.config.provider,
                model=run.config.model):
            task = asyncio.create_task(self._run(run), name=f"agent-run-{project_id}")
        self._tasks[project_id] = task
        task.add_done_callback(lambda t: self._forget(project_id, t))
        logger.info("Agent run started",
            extra={"project_id": project_id, "provider": run.config.provider,
                "model": run.config.model})
        return {"started": True, "status": RunStatus.RUNNING.value}

    async def _admit(
        self, permit: RunPermit, prompt: str, spec: str | None, client_key: str,
    ) -> AdmittedRun:
        decision = self.limiter.allowed(client_key)
        if not decision.allowed:
            raise RateLimitedError(decision.retry_after)

        project_id = permit.project_id
        project = await self.store.get(project_id)
        if project is None:
            raise ResourceNotFoundError("Project", project_id)
        config, _ = await resolve_llm_config(self.settings_repo, self.settings)

        history = list(project.get("agent_chat") or [])
        if not ends_with_prompt(history, prompt):
            history.append(user_message(prompt))

        transcript = RunTranscript()
        writer = TranscriptWriter(
            self.store, permit, history, transcript,
            interval_ms=self.settings.persist_interval_ms, clock=self._clock,
        )
        await writer.start()

        return AdmittedRun(
            permit=permit,
            project=project,
            prompt=prompt,
            spec=spec,
            config=config,
            conversation=build_conversation_history(history),
            transcript=transcript,
            writer=writer,
        )

    # -- execution -----------------------------------------------------------

    async def _run(self, run: AdmittedRun) -> None:
        project_id = run.project_id
        before = asyncio.create_task(self._capture_before(run))
        try:
            provider = self.provider_factory(run.config)
            usage = await provider.run_agent(
                system=build_system_prompt(run.project, run.spec),
                messages=run.conversation,
                tools=TOOL_DEFINITIONS,
                execute_tool=ToolDispatch(self.store, project_id).execute,
                events=RunEvents(run.transcript, run.writer),
                max_iterations=self.settings.agent_max_iterations,
            )
            cost = calculate_cost(run.config.model, usage, run.config.provider)
            run.transcript.complete(
                RunUsage.from_tokens(usage, run.config.model, cost),
            )
            await run.writer.finish(AgentStatus.IDLE)
            logger.info("Agent run complete",
                extra={"project_id": project_id, "model": run.config.model,
                    "input_tokens": usage.prompt_tokens,
                    "output_tokens": usage.completion_tokens})

            await before
            await self._capture_after(run, provider)
        except Exception as e:
            error = classify_provider_error(e)
            logger.error("Agent run failed: %s", error.message,
                extra={"project_id": project_id, "error_code": error.code,
                    "provider": run.config.provider},
                exc_info=not isinstance(e, StudioError))
            if not run.transcript.finished:
                run.transcript.fail(error.user_message)
                await run.writer.finish(AgentStatus.ERROR)
        finally:
            if not before.done():
                await asyncio.wait([before])
            run.permit.release()

    async def _capture_before(self, run: AdmittedRun) -> None:
        try:
            await self.snapshots.capture_before(run.project, run.prompt)
        except Exception as e:
            logger.error("Before snapshot failed: %s", e,
                extra={"project_id": run.project_id})

    async def _capture_after(self, run: AdmittedRun, provider: LLMProvider) -> None:
        tool_names = run.transcript.tool_names()
        try:
            summary = await summarize_change(
                provider, run.prompt, run.transcript.content, tool_names,
            )
            await self.snapshots.capture_after(run.project_id, summary, tool_names)
        except Exception as e:
            logger.error("After snapshot failed: %s", e,
                extra={"project_id": run.project_id})

    # -- task bookkeeping ----------------------------------------------------

    def _forget(self, project_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(project_id) is task:
            del self._tasks[project_id]

    def task_for(self, project_id: str) -> asyncio.Task | None:
        return self._tasks.get(project_id)

    async def drain(self) -> None:
        """Wait for every in-flight run to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight runs; their entries are reconciled on next startup."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def reconcile_interrupted_runs(store: DocumentStore) -> int:
    """Startup sweep: projects left at agent_status=running -> error.

    No run can be in flight when this is called (the registry is empty at
    process start), so any running tail entry is an orphan.
    """
    projects = await store.find_by_status(AgentStatus.RUNNING.value)
    for project in projects:
        chat = [dict(entry) for entry in project.get("agent_chat") or []]
        if chat:
            tail = chat[-1]
            if (tail.get("role") == MessageRole.ASSISTANT.value
                    and tail.get("status") == RunStatus.RUNNING.value):
                tail["status"] = RunStatus.ERROR.value
                tail["error"] = INTERRUPTED_MESSAGE
                if not tail.get("content"):
                    tail["content"] = f"Error: {INTERRUPTED_MESSAGE}"
                tail["timestamp"] = now_ms()
        await store.update(project["id"], {
            "agent_chat": chat,
            "agent_status": AgentStatus.ERROR.value,
        })
        logger.warning("Reconciled interrupted run", extra={"project_id": project["id"]})
    return len(projects)
