"""Content Handlers - editable content fields and data collections (2 methods).

Invariants:
    - update_content replaces one key of `content`, other keys untouched
    - insert_records only appends; existing records are never rewritten
    - Every inserted record carries an `id` (generated uuid4 hex when missing)
"""

from uuid import uuid4

from vibestudio.core.errors import ResourceNotFoundError, ValidationError
from vibestudio.core.repository_protocols import DocumentStore


class ContentHandlers:
    """Content field + data collection tools."""

    def __init__(self, store: DocumentStore, project_id: str):
        self.store = store
        self.project_id = project_id

    async def _project(self) -> dict:
        project = await self.store.get(self.project_id)
        if project is None:
            raise ResourceNotFoundError("Project", self.project_id)
        return project

    async def update_content(self, input_data: dict) -> str:
        key = input_data.get("key")
        if not isinstance(key, str) or not key.strip():
            raise ValidationError("key is required", "key")
        if "value" not in input_data:
            raise ValidationError("value is required", "value")
        project = await self._project()
        content = dict(project.get("content") or {})
        content[key.strip()] = input_data["value"]
        await self.store.update(self.project_id, {"content": content})
        return f"Updated content field {key.strip()}"

    async def insert_records(self, input_data: dict) -> str:
        collection = input_data.get("collection")
        records = input_data.get("records")
        if not isinstance(collection, str) or not collection.strip():
            raise ValidationError("collection is required", "collection")
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            raise ValidationError("records must be a list of objects", "records")

        project = await self._project()
        data = {k: list(v) for k, v in (project.get("data") or {}).items()}
        bucket = data.setdefault(collection.strip(), [])
        for record in records:
            bucket.append({"id": uuid4().hex, **record})
        await self.store.update(self.project_id, {"data": data})
        return f"Inserted {len(records)} record(s) into {collection.strip()}"
