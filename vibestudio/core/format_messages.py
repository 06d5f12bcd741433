"""Message Formatting - pure helpers that shape prompts, history and labels.

Invariants:
    - All functions are pure (no IO, no async, no DB)
    - Provider history contains only user/assistant messages with non-empty content
    - Snapshot labels never exceed their limits (prompt excerpt 60, summary 80)

Design Decisions:
    - Prompt extraction falls back to the last user message of a provided list,
      matching clients that send the full chat instead of a single prompt
"""

from typing import Any

from vibestudio.core.domain_types import MessageRole
from vibestudio.core.transcript import now_ms

PROMPT_EXCERPT_CHARS = 60
SUMMARY_MAX_CHARS = 80


def extract_user_prompt(
    prompt: str | None, messages: list[dict[str, Any]] | None,
) -> str:
    """Return the prompt, or the last user message content. '' when none."""
    if prompt and prompt.strip():
        return prompt.strip()
    for message in reversed(messages or []):
        if message.get("role") == MessageRole.USER.value:
            content = message.get("content")
            return content.strip() if isinstance(content, str) else ""
    return ""


def truncate_prompt(prompt: str, limit: int = PROMPT_EXCERPT_CHARS) -> str:
    if len(prompt) > limit:
        return prompt[:limit] + "..."
    return prompt


def before_label(prompt: str) -> str:
    return f"Before: {truncate_prompt(prompt)}"


def fallback_summary(prompt: str) -> str:
    return clip_summary(f"After: {truncate_prompt(prompt)}")


def clip_summary(text: str, limit: int = SUMMARY_MAX_CHARS) -> str:
    """First non-empty line, surrounding quotes removed, at most `limit` chars."""
    line = next(
        (ln.strip() for ln in (text or "").splitlines() if ln.strip()), "",
    )
    line = line.strip("\"'` ").rstrip(".")
    if len(line) > limit:
        line = line[: limit - 3].rstrip() + "..."
    return line


def user_message(prompt: str) -> dict:
    return {
        "role": MessageRole.USER.value,
        "content": prompt,
        "timestamp": now_ms(),
    }


def ends_with_prompt(agent_chat: list[dict], prompt: str) -> bool:
    """True when the last entry is already this user message."""
    if not agent_chat:
        return False
    last = agent_chat[-1]
    return (
        last.get("role") == MessageRole.USER.value
        and (last.get("content") or "").strip() == prompt
    )


def build_conversation_history(agent_chat: list[dict]) -> list[dict]:
    """Provider-ready history: {role, content} for entries with content."""
    history = []
    for entry in agent_chat:
        role = entry.get("role")
        content = entry.get("content")
        if role not in (MessageRole.USER.value, MessageRole.ASSISTANT.value):
            continue
        if not isinstance(content, str) or not content.strip():
            continue
        history.append({"role": role, "content": content})
    return history


def build_summary_prompt(final_text: str, tool_names: list[str]) -> str:
    tools = ", ".join(tool_names) if tool_names else "none"
    return (
        "Summarize the change an AI assistant just made to a web project "
        f"in one short line (max {SUMMARY_MAX_CHARS} characters, no quotes).\n\n"
        f"Tools used: {tools}\n\n"
        f"Assistant's final message:\n{final_text[:2000]}"
    )
