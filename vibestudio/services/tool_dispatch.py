"""Tool Dispatch - explicit routing from tool_name to handler function.

Invariants:
    - Every tool->handler mapping is visible - no getattr magic, no auto-discovery
    - execute() never raises: unknown tools, bad input and handler failures all
      come back as an "Error: ..." string the model can react to
    - Every tool call is logged with tool_name + project_id

Design Decisions:
    - Explicit dict over getattr: every mapping visible in one place
    - Handlers split by concern (files / content), instantiated per run with
      the shared store + project id
    - Result is a plain string: it is both fed back to the model and stored
      verbatim in the transcript
"""

import logging

from vibestudio.core.errors import ResourceNotFoundError, StudioError
from vibestudio.core.repository_protocols import DocumentStore
from vibestudio.services.handle_content import ContentHandlers
from vibestudio.services.handle_files import FileHandlers

logger = logging.getLogger(__name__)

_RESULT_LOG_CHARS = 100


class ToolDispatch:
    """Routes tool_name -> handler for one project."""

    def __init__(self, store: DocumentStore, project_id: str):
        self.project_id = project_id
        files = FileHandlers(store, project_id)
        content = ContentHandlers(store, project_id)

        # every mapping explicit: adding a tool requires editing this dict
        self._handlers = {
            "list_files": files.list_files,
            "read_file": files.read_file,
            "write_file": files.write_file,
            "delete_file": files.delete_file,
            "update_content": content.update_content,
            "insert_records": content.insert_records,
        }

    @property
    def names(self) -> list[str]:
        return list(self._handlers)

    async def execute(self, tool_name: str, input_data: dict | None) -> str:
        """Route tool_name to handler. Returns the result string. Logs every call."""
        handler = self._handlers.get(tool_name)
        if handler is None:
            result = f"Error: Tool '{tool_name}' does not exist."
            self._log_tool_call(tool_name, result, error_code="UNKNOWN_TOOL")
            return result
        try:
            result = await handler(dict(input_data or {}))
        except ResourceNotFoundError as e:
            result = f"Error: {e.message}: {e.resource_id}"
            self._log_tool_call(tool_name, result, error_code=e.code)
            return result
        except StudioError as e:
            result = f"Error: {e.message}"
            self._log_tool_call(tool_name, result, error_code=e.code)
            return result
        except Exception as e:
            logger.error("Unexpected error in tool '%s': %s", tool_name, e,
                extra={"project_id": self.project_id, "tool_name": tool_name},
                exc_info=True)
            return f"Error: Internal error executing {tool_name}"
        self._log_tool_call(tool_name, result)
        return result

    def _log_tool_call(
        self, tool_name: str, result: str, error_code: str | None = None,
    ) -> None:
        logger.info(
            "Tool %s -> %s", tool_name, result[:_RESULT_LOG_CHARS],
            extra={
                "project_id": self.project_id,
                "tool_name": tool_name,
                "error_code": error_code,
            },
        )
