"""Agent System Prompt - behavioral contract plus a live project context block.

Invariants:
    - Constant part first, project context last: the constant prefix stays
      byte-identical across runs (prompt-cache friendly)
    - Context lists file paths and collection names, never file bodies;
      the model reads files through read_file
    - XML tags delimit sections for reliable parsing
"""

_IDENTITY = """<identity>
You are the build agent of a web studio. You change a hosted web project on the
user's behalf: its files, its editable content fields and its data collections.
</identity>"""

_RULES = """<rules>
- Use the tools for every change. Never paste file contents into the chat instead.
- Read a file before rewriting it unless you are creating it.
- write_file replaces the whole file: always send complete content.
- Put user-editable text in content fields (update_content) and lists of items
  in data collections (insert_records) instead of hardcoding them in markup.
- Keep changes focused on the request. Do not rename or delete unrelated files.
</rules>"""

_REPLY_STYLE = """<reply_style>
Reply in a few short sentences: what you changed and anything the user should
check. No code blocks unless the user asked for code.
</reply_style>"""

_CONSTANT = f"{_IDENTITY}\n\n{_RULES}\n\n{_REPLY_STYLE}"


def _format_project_context(project: dict, spec: str | None) -> str:
    files = sorted((project.get("files") or {}).keys())
    content_keys = sorted((project.get("content") or {}).keys())
    data = project.get("data") or {}

    lines = ["<project>", f"Name: {project.get('name') or 'Untitled'}"]
    lines.append("Files:" if files else "Files: (none yet)")
    lines.extend(f"  - {path}" for path in files)
    if content_keys:
        lines.append("Content fields: " + ", ".join(content_keys))
    if data:
        lines.append("Data collections:")
        lines.extend(
            f"  - {name} ({len(records or [])} records)"
            for name, records in sorted(data.items())
        )
    lines.append("</project>")

    if spec and spec.strip():
        lines.append(f"\n<spec>\n{spec.strip()}\n</spec>")
    return "\n".join(lines)


def build_system_prompt(project: dict, spec: str | None = None) -> str:
    """Constant instructions + the project's current shape."""
    return f"{_CONSTANT}\n\n{_format_project_context(project, spec)}"
