"""Tools Registry - schemas of the project-editing tools offered to the model.

Invariants:
    - Every schema uses the neutral {name, description, input_schema} shape;
      providers convert it to their vendor format
    - Required fields enforced by schema, re-checked by the handler
    - Every name here has exactly one handler in tool_dispatch.py

Design Decisions:
    - One flat list offered on every iteration; order is stable across runs
    - Explicit literals, no auto-discovery
"""

from typing import Any

TOOLS_FILES: list[dict[str, Any]] = [
    {
        "name": "list_files",
        "description": "List every file path in the project, one per line.",
        "input_schema": {"type": "object", "properties": {}},
    },
    {
        "name": "read_file",
        "description": "Read the full text of one project file.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Project-relative path, e.g. 'index.html'",
                },
            },
            "required": ["path"],
        },
    },
    {
        "name": "write_file",
        "description": """Create a file or replace its entire content.

Always send the complete file. Partial content overwrites the rest of the file.""",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Project-relative path, e.g. 'contact.html'",
                },
                "content": {
                    "type": "string",
                    "description": "Full new file content",
                },
            },
            "required": ["path", "content"],
        },
    },
    {
        "name": "delete_file",
        "description": "Delete one project file.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Project-relative path"},
            },
            "required": ["path"],
        },
    },
]

TOOLS_CONTENT: list[dict[str, Any]] = [
    {
        "name": "update_content",
        "description": """Set an editable content field (headline, copy, settings value).

Content fields are shown to the site owner as editable text; use them for
strings a non-developer should be able to change.""",
        "input_schema": {
            "type": "object",
            "properties": {
                "key": {"type": "string", "description": "Content field key"},
                "value": {"description": "New value (string, number, boolean or object)"},
            },
            "required": ["key", "value"],
        },
    },
    {
        "name": "insert_records",
        "description": "Append records to a data collection, creating the collection if needed.",
        "input_schema": {
            "type": "object",
            "properties": {
                "collection": {"type": "string", "description": "Collection name"},
                "records": {
                    "type": "array",
                    "description": "Records to append; an 'id' is generated when missing",
                    "items": {"type": "object"},
                },
            },
            "required": ["collection", "records"],
        },
    },
]

TOOL_DEFINITIONS: list[dict[str, Any]] = [*TOOLS_FILES, *TOOLS_CONTENT]


def tool_names() -> list[str]:
    return [t["name"] for t in TOOL_DEFINITIONS]
