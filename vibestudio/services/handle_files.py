"""File Handlers - list/read/write/delete over the project's `files` mapping (4 methods).

Invariants:
    - Paths are normalized before use; empty paths and '..' segments rejected
    - Each mutating call re-reads the project, so it sees writes made by
      earlier tool calls of the same run
    - Only the `files` field is written; agent_chat is never touched here

Design Decisions:
    - Handlers raise StudioError subclasses; ToolDispatch turns them into
      error strings for the model
"""

from vibestudio.core.errors import ResourceNotFoundError, ValidationError
from vibestudio.core.repository_protocols import DocumentStore


def normalize_path(raw: object) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("path is required", "path")
    path = raw.strip().replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    path = path.lstrip("/")
    parts = path.split("/")
    if not path or ".." in parts:
        raise ValidationError(f"Invalid path: {raw}", "path")
    return path


class FileHandlers:
    """Project file tools."""

    def __init__(self, store: DocumentStore, project_id: str):
        self.store = store
        self.project_id = project_id

    async def _files(self) -> dict[str, str]:
        project = await self.store.get(self.project_id)
        if project is None:
            raise ResourceNotFoundError("Project", self.project_id)
        return dict(project.get("files") or {})

    async def list_files(self, input_data: dict) -> str:
        files = await self._files()
        return "\n".join(sorted(files)) if files else "(no files)"

    async def read_file(self, input_data: dict) -> str:
        path = normalize_path(input_data.get("path"))
        files = await self._files()
        if path not in files:
            raise ResourceNotFoundError("File", path)
        return files[path]

    async def write_file(self, input_data: dict) -> str:
        path = normalize_path(input_data.get("path"))
        content = input_data.get("content")
        if not isinstance(content, str):
            raise ValidationError("content must be a string", "content")
        files = await self._files()
        files[path] = content
        await self.store.update(self.project_id, {"files": files})
        return f"Wrote {path} ({len(content)} chars)"

    async def delete_file(self, input_data: dict) -> str:
        path = normalize_path(input_data.get("path"))
        files = await self._files()
        if path not in files:
            raise ResourceNotFoundError("File", path)
        del files[path]
        await self.store.update(self.project_id, {"files": files})
        return f"Deleted {path}"
