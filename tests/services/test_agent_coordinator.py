"""AgentCoordinator tests - admission order, background execution, terminal states.

Tests cover:
    - Successful run: text/tool/text transcript, usage + cost, idle status,
      before/after snapshots with tool names
    - Running entry persisted before start_run() returns
    - Provider failure keeps partial content, classifies the error, no after snapshot
    - 409 while running never adds a second entry; 409 consumes no rate quota
    - 429 / unconfigured / missing project / empty prompt release the slot
    - Persistence and snapshot failures never abort the run
    - Conversation history + prompt de-duplication
    - Shutdown mid-run, then startup reconciliation
    - Tool results bypass the write throttle; no deferred write outlives the run

Design Decisions:
    - MemoryDocumentStore: deterministic writes, failure injection per call
    - persist_interval_ms=0 in test settings: every flush writes
"""

import asyncio

import pytest

from vibestudio.config import Settings
from vibestudio.core.cost_model import TokenUsage, calculate_cost
from vibestudio.core.errors import (
    PersistenceError, ProviderError, RateLimitedError, ResourceNotFoundError,
    RunConflictError, UnconfiguredError, ValidationError,
)
from vibestudio.core.format_messages import user_message
from vibestudio.core.rate_limiter import RateLimiter
from vibestudio.services import agent_coordinator
from vibestudio.services.agent_coordinator import (
    INTERRUPTED_MESSAGE, AgentCoordinator, reconcile_interrupted_runs,
)

CONTACT_FORM = "<form><input name='email'></form>"


def _tail(store, project_id) -> dict:
    return store.chat(project_id)[-1]


# ==============================================================================
# Happy path
# ==============================================================================


async def test_contact_form_run_completes(
    coordinator, store, snapshot_repo, seed_project, provider,
):
    """Text, one write_file call, more text -> complete entry + snapshots."""
    pid = seed_project["id"]
    provider.steps = [
        ("text", "Added"),
        ("tool", "call_1", "write_file", {"path": "contact.html", "content": CONTACT_FORM}),
        ("text", " a contact form."),
    ]

    result = await coordinator.start_run(pid, prompt="add a contact form")
    assert result == {"started": True, "status": "running"}
    await coordinator.drain()

    chat = store.chat(pid)
    assert [e["role"] for e in chat] == ["user", "assistant"]
    assert chat[0]["content"] == "add a contact form"

    entry = chat[1]
    assert entry["status"] == "complete"
    assert entry["content"] == "Added a contact form."
    assert [i["type"] for i in entry["stream_items"]] == ["text", "tool", "text"]
    tool = entry["stream_items"][1]
    assert tool["id"] == "call_1"
    assert tool["name"] == "write_file"
    assert tool["args"] == {"path": "contact.html", "content": CONTACT_FORM}
    assert tool["result"] == f"Wrote contact.html ({len(CONTACT_FORM)} chars)"
    assert entry["tool_calls"] == [{
        "id": "call_1", "name": "write_file",
        "args": {"path": "contact.html", "content": CONTACT_FORM},
        "result": tool["result"],
    }]
    assert "error" not in entry

    expected_cost = calculate_cost("gpt-4o", TokenUsage(1200, 300), "openai")
    assert entry["usage"] == {
        "promptTokens": 1200, "completionTokens": 300, "totalTokens": 1500,
        "model": "gpt-4o", "cost": expected_cost,
    }

    project = await store.get(pid)
    assert project["agent_status"] == "idle"
    assert project["files"]["contact.html"] == CONTACT_FORM

    assert snapshot_repo.kinds() == ["before", "after"]
    before, after = snapshot_repo.rows
    assert before["summary"] == "Before: add a contact form"
    assert "contact.html" not in before["files"]
    assert after["summary"] == "Added a contact form"
    assert after["tool_names"] == ["write_file"]
    assert "contact.html" in after["files"]
    assert not coordinator.registry.is_running(pid)


async def test_running_entry_persisted_before_return(
    coordinator, store, seed_project, provider,
):
    pid = seed_project["id"]
    release = asyncio.Event()
    provider.steps = [("wait", release)]

    await coordinator.start_run(pid, prompt="add a footer")

    project = await store.get(pid)
    assert project["agent_status"] == "running"
    tail = project["agent_chat"][-1]
    assert tail["role"] == "assistant"
    assert tail["status"] == "running"
    assert tail["content"] == ""
    assert tail["stream_items"] == []

    release.set()
    await coordinator.drain()
    assert _tail(store, pid)["status"] == "complete"


async def test_summary_uses_cheapest_model(
    coordinator, seed_project, provider,
):
    await coordinator.start_run(seed_project["id"], prompt="add a form")
    await coordinator.drain()
    assert provider.generate_calls[0]["model"] == "gpt-4o-mini"
    assert provider.generate_calls[0]["max_tokens"] == 60


async def test_summary_failure_falls_back_to_prompt(
    coordinator, snapshot_repo, seed_project, provider,
):
    provider.summary_error = RuntimeError("summary model down")
    await coordinator.start_run(seed_project["id"], prompt="add a contact form")
    await coordinator.drain()
    assert snapshot_repo.rows[-1]["summary"] == "After: add a contact form"


async def test_unknown_tool_is_reported_to_model(
    coordinator, store, seed_project, provider,
):
    pid = seed_project["id"]
    provider.steps = [("tool", "c1", "deploy_site", {}), ("text", "Could not deploy.")]
    await coordinator.start_run(pid, prompt="deploy")
    await coordinator.drain()

    entry = _tail(store, pid)
    assert entry["status"] == "complete"
    assert entry["stream_items"][0]["result"] == "Error: Tool 'deploy_site' does not exist."


async def test_tool_args_before_start_single_item(
    coordinator, store, seed_project, provider,
):
    pid = seed_project["id"]
    provider.steps = [("tool_args_first", "c1", "list_files", {})]
    await coordinator.start_run(pid, prompt="what files exist?")
    await coordinator.drain()

    items = _tail(store, pid)["stream_items"]
    assert len(items) == 1
    assert items[0] == {
        "type": "tool", "id": "c1", "name": "list_files",
        "args": {}, "result": "index.html",
    }


# ==============================================================================
# Provider failure
# ==============================================================================


async def test_auth_failure_keeps_partial_text(
    coordinator, store, snapshot_repo, seed_project, provider,
):
    pid = seed_project["id"]
    provider.steps = [
        ("text", "Addi"),
        ("raise", ProviderError("Error code: 401", ProviderError.AUTH_FAILED)),
    ]
    await coordinator.start_run(pid, prompt="add a contact form")
    await coordinator.drain()

    entry = _tail(store, pid)
    assert entry["status"] == "error"
    assert entry["content"] == "Addi"
    assert entry["error"] == (
        "AI service authentication failed. Please check your API key configuration."
    )
    assert "usage" not in entry
    assert (await store.get(pid))["agent_status"] == "error"
    assert snapshot_repo.kinds() == ["before"]
    assert not coordinator.registry.is_running(pid)


async def test_unclassified_exception_is_classified_by_text(
    coordinator, store, seed_project, provider,
):
    pid = seed_project["id"]
    provider.steps = [("raise", OSError("connect ECONNREFUSED 10.0.0.1:443"))]
    await coordinator.start_run(pid, prompt="add a form")
    await coordinator.drain()

    entry = _tail(store, pid)
    assert entry["content"] == (
        "Error: Could not connect to AI service. Please check your network connection."
    )
    assert entry["error"].startswith("Could not connect")


# ==============================================================================
# Admission preconditions
# ==============================================================================


async def test_second_run_conflicts_without_new_entry(
    coordinator, store, seed_project, provider,
):
    pid = seed_project["id"]
    release = asyncio.Event()
    provider.steps = [("wait", release), ("text", "ok")]

    await coordinator.start_run(pid, prompt="first")
    with pytest.raises(RunConflictError):
        await coordinator.start_run(pid, prompt="second")
    assert len(store.chat(pid)) == 2

    release.set()
    await coordinator.drain()
    chat = store.chat(pid)
    assert [e["content"] for e in chat] == ["first", "ok"]


async def test_conflict_does_not_consume_rate_quota(
    coordinator, seed_project, provider,
):
    pid = seed_project["id"]
    coordinator.limiter = RateLimiter(limit=2, window_seconds=60)
    release = asyncio.Event()
    provider.steps = [("wait", release)]

    await coordinator.start_run(pid, prompt="one", client_key="1.2.3.4")
    with pytest.raises(RunConflictError):
        await coordinator.start_run(pid, prompt="two", client_key="1.2.3.4")
    release.set()
    await coordinator.drain()

    await coordinator.start_run(pid, prompt="three", client_key="1.2.3.4")
    await coordinator.drain()

    with pytest.raises(RateLimitedError) as exc_info:
        await coordinator.start_run(pid, prompt="four", client_key="1.2.3.4")
    assert 1 <= exc_info.value.retry_after_seconds <= 60
    assert not coordinator.registry.is_running(pid)


async def test_empty_prompt_rejected_before_claim(coordinator, store, seed_project):
    pid = seed_project["id"]
    with pytest.raises(ValidationError):
        await coordinator.start_run(pid, prompt="   ")
    with pytest.raises(ValidationError):
        await coordinator.start_run(pid, messages=[{"role": "assistant", "content": "hi"}])
    assert store.chat(pid) == []
    assert not coordinator.registry.is_running(pid)


async def test_missing_project_releases_slot(coordinator):
    with pytest.raises(ResourceNotFoundError):
        await coordinator.start_run("missing", prompt="hello")
    assert not coordinator.registry.is_running("missing")


async def test_unconfigured_releases_slot(coordinator, store, seed_project):
    pid = seed_project["id"]
    coordinator.settings = Settings(llm_api_key="", persist_interval_ms=0)
    with pytest.raises(UnconfiguredError):
        await coordinator.start_run(pid, prompt="hello")
    assert store.chat(pid) == []
    assert (await store.get(pid))["agent_status"] == "idle"
    assert not coordinator.registry.is_running(pid)


async def test_stored_settings_win_over_env(
    coordinator, settings_repo, seed_project, provider_configs,
):
    settings_repo.values["llm"] = {
        "provider": "anthropic",
        "model": "claude-sonnet-4-20250514",
        "api_key": "sk-ant-stored-9999",
    }
    await coordinator.start_run(seed_project["id"], prompt="hello")
    await coordinator.drain()
    assert provider_configs[0].provider == "anthropic"
    assert provider_configs[0].api_key == "sk-ant-stored-9999"


async def test_initial_write_failure_surfaces_and_releases(
    coordinator, store, seed_project,
):
    pid = seed_project["id"]
    store.fail_updates = 1
    with pytest.raises(PersistenceError):
        await coordinator.start_run(pid, prompt="hello")
    assert coordinator.task_for(pid) is None
    assert not coordinator.registry.is_running(pid)


# ==============================================================================
# History
# ==============================================================================


async def test_prompt_from_messages_not_duplicated(
    coordinator, store, seed_project, provider,
):
    pid = seed_project["id"]
    await store.update(pid, {"agent_chat": [user_message("add a form")]})

    await coordinator.start_run(
        pid, messages=[{"role": "user", "content": "add a form"}],
    )
    await coordinator.drain()

    chat = store.chat(pid)
    assert [e["role"] for e in chat] == ["user", "assistant"]


async def test_provider_receives_history_and_context(
    coordinator, store, seed_project, provider,
):
    pid = seed_project["id"]
    await store.update(pid, {"agent_chat": [
        user_message("hi"),
        {"role": "assistant", "content": "hello", "status": "complete", "stream_items": []},
        {"role": "assistant", "content": "", "status": "error", "stream_items": []},
    ]})

    await coordinator.start_run(pid, prompt="add a form", spec="A bakery site")
    await coordinator.drain()

    call = provider.run_calls[0]
    assert call["messages"] == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
        {"role": "user", "content": "add a form"},
    ]
    assert "Name: Bakery" in call["system"]
    assert "<spec>\nA bakery site\n</spec>" in call["system"]
    assert len(call["tools"]) == 6
    assert call["max_iterations"] == 5


async def test_get_and_clear_history(coordinator, store, seed_project, provider):
    pid = seed_project["id"]
    release = asyncio.Event()
    provider.steps = [("wait", release)]
    await coordinator.start_run(pid, prompt="hello")

    with pytest.raises(RunConflictError):
        await coordinator.clear_history(pid)

    release.set()
    await coordinator.drain()
    assert len(await coordinator.get_history(pid)) == 2
    await coordinator.clear_history(pid)
    assert await coordinator.get_history(pid) == []

    with pytest.raises(ResourceNotFoundError):
        await coordinator.get_history("missing")


# ==============================================================================
# Resilience
# ==============================================================================


async def test_streaming_write_failures_do_not_abort(
    coordinator, store, seed_project, provider,
):
    pid = seed_project["id"]
    provider.steps = [("text", "a"), ("text", "b"), ("text", "c")]

    await coordinator.start_run(pid, prompt="hello")
    # the three streaming flushes fail, the terminal write succeeds
    store.fail_updates = 3
    await coordinator.drain()

    entry = _tail(store, pid)
    assert entry["status"] == "complete"
    assert entry["content"] == "abc"
    assert (await store.get(pid))["agent_status"] == "idle"


async def test_snapshot_failures_are_non_fatal(
    coordinator, store, snapshot_repo, seed_project,
):
    pid = seed_project["id"]
    snapshot_repo.fail_saves = 2

    await coordinator.start_run(pid, prompt="hello")
    await coordinator.drain()

    assert snapshot_repo.rows == []
    assert _tail(store, pid)["status"] == "complete"
    assert (await store.get(pid))["agent_status"] == "idle"
    assert not coordinator.registry.is_running(pid)


async def test_shutdown_then_reconcile(coordinator, store, seed_project, provider):
    pid = seed_project["id"]
    never = asyncio.Event()
    provider.steps = [("text", "Work"), ("wait", never)]

    await coordinator.start_run(pid, prompt="long job")
    await asyncio.sleep(0.01)
    await coordinator.shutdown()

    assert not coordinator.registry.is_running(pid)
    entry = _tail(store, pid)
    assert entry["status"] == "running"
    assert entry["content"] == "Work"

    assert await reconcile_interrupted_runs(store) == 1
    entry = _tail(store, pid)
    assert entry["status"] == "error"
    assert entry["error"] == INTERRUPTED_MESSAGE
    assert entry["content"] == "Work"
    assert (await store.get(pid))["agent_status"] == "error"

    assert await reconcile_interrupted_runs(store) == 0


async def test_reconcile_fills_empty_content(store):
    project = await store.create({
        "name": "Orphan",
        "agent_status": "running",
        "agent_chat": [
            user_message("hello"),
            {"role": "assistant", "content": "", "status": "running",
             "stream_items": [], "timestamp": 1},
        ],
    })
    await reconcile_interrupted_runs(store)
    tail = store.chat(project["id"])[-1]
    assert tail["content"] == f"Error: {INTERRUPTED_MESSAGE}"
    assert tail["timestamp"] > 1


# ==============================================================================
# Write throttling
# ==============================================================================


async def test_tool_result_written_inside_throttle_interval(
    services, store, seed_project, provider, test_settings, monkeypatch,
):
    """A tool result is persisted at once even while text writes are deferred."""
    writers = []

    class RecordingWriter(agent_coordinator.TranscriptWriter):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            writers.append(self)

    monkeypatch.setattr(agent_coordinator, "TranscriptWriter", RecordingWriter)
    coordinator = AgentCoordinator(
        services.store, services.settings_repo, services.snapshots,
        services.registry, services.limiter,
        provider_factory=lambda config: provider,
        settings=test_settings.model_copy(update={"persist_interval_ms": 10_000}),
        clock=lambda: 100.0,
    )
    pid = seed_project["id"]
    provider.steps = [
        ("text", "Adding"),
        ("tool", "call_1", "write_file", {"path": "contact.html", "content": CONTACT_FORM}),
        ("text", " Done."),
    ]

    await coordinator.start_run(pid, prompt="add a contact form")
    await coordinator.drain()

    chat_writes = [fields for _, fields in store.updates if "agent_chat" in fields]
    terminal = chat_writes[-1]
    assert terminal["agent_status"] == "idle"
    assert terminal["agent_chat"][-1]["status"] == "complete"

    def has_result(fields):
        calls = fields["agent_chat"][-1].get("tool_calls") or []
        return any("result" in call for call in calls)

    assert any(has_result(fields) for fields in chat_writes[:-1])

    (writer,) = writers
    assert not writer.throttle.pending
