"""Error Hierarchy - typed, categorized exceptions for all studio failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Request errors (400-level) are raised before any run starts
    - to_response() produces the REST envelope {"error": <message>, ...}
    - ProviderError.user_message is the only text persisted into a failed run

Design Decisions:
    - Single hierarchy with StudioError base: the FastAPI global handler catches all
    - ErrorContext as dataclass: rich observability without coupling to logging framework
    - Provider failures carry a kind (rate_limited, auth_failed, network, other)
      instead of one subclass per kind; the coordinator only needs the message
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    RATE_LIMIT = "rate_limit"
    CONFIGURATION = "configuration"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    project_id: str | None = None
    tool_name: str | None = None
    provider: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_seconds: int | None = None


class StudioError(Exception):
    """Base exception for all studio errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": self.message,
            "code": self.code,
            "category": self.category.value,
            "severity": self.severity.value,
            "timestamp": self.context.timestamp.isoformat(),
        }

    def response_headers(self) -> dict[str, str] | None:
        return None


# --- Request Errors (400-level) ----------------------------------

class ValidationError(StudioError):
    """Request is missing required input (e.g. an empty prompt)."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, context, 400,
        )
        self.field = field


class ResourceNotFoundError(StudioError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.WARNING, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class RunConflictError(StudioError):
    """An agent run is already active for the project."""
    def __init__(self, project_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.project_id = project_id
        super().__init__(
            "Agent is already processing a request",
            "RUN_CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, ctx, 409,
        )


class RateLimitedError(StudioError):
    """Client exceeded its request quota for the current window."""
    def __init__(self, retry_after_seconds: int, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Rate limit exceeded. Try again in {retry_after_seconds} seconds.",
            "RATE_LIMITED", ErrorCategory.RATE_LIMIT,
            ErrorSeverity.WARNING, ctx, 429,
        )
        self.retry_after_seconds = retry_after_seconds

    def response_headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after_seconds)}


# --- Configuration / Infrastructure Errors (500-level) -----------

class UnconfiguredError(StudioError):
    """No LLM api key resolvable from settings or environment."""
    def __init__(
        self,
        message: str = "AI not configured. Add your API key in Settings.",
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "LLM_UNCONFIGURED", ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, context, 500,
        )


class PersistenceError(StudioError):
    """Document store operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "PERSISTENCE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class ProviderError(StudioError):
    """LLM provider call failed, classified for the user."""

    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    NETWORK = "network"
    OTHER = "other"

    def __init__(
        self,
        message: str,
        kind: str = OTHER,
        retry_after_seconds: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_seconds = retry_after_seconds
        super().__init__(
            message, "PROVIDER_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx, 502,
        )
        self.kind = kind

    @property
    def user_message(self) -> str:
        if self.kind == self.RATE_LIMITED:
            return "AI service rate limit reached. Please wait a moment and try again."
        if self.kind == self.AUTH_FAILED:
            return "AI service authentication failed. Please check your API key configuration."
        if self.kind == self.NETWORK:
            return "Could not connect to AI service. Please check your network connection."
        return f"AI service error: {self.message[:200]}"


class AgentLoopExceededError(StudioError):
    """Agent exceeded maximum tool-call iteration limit."""
    def __init__(self, max_iterations: int, context: ErrorContext | None = None):
        super().__init__(
            f"Agent exceeded maximum iteration limit ({max_iterations})",
            "AGENT_LOOP_EXCEEDED", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 500,
        )


def classify_provider_error(error: BaseException) -> ProviderError:
    """Classify any failure escaping a run into a ProviderError.

    Adapters already raise ProviderError for SDK failures; everything else is
    inspected by its text the same way for every vendor.
    """
    if isinstance(error, ProviderError):
        return error
    if isinstance(error, StudioError):
        return ProviderError(error.message, ProviderError.OTHER, context=error.context)

    text = str(error) or type(error).__name__
    lowered = text.lower()
    if "429" in text or "rate_limit" in lowered or "rate limit" in lowered:
        kind = ProviderError.RATE_LIMITED
    elif "401" in text or "invalid_api_key" in lowered or "authentication" in lowered:
        kind = ProviderError.AUTH_FAILED
    elif (
        "econnrefused" in lowered or "etimedout" in lowered
        or isinstance(error, (ConnectionError, TimeoutError))
    ):
        kind = ProviderError.NETWORK
    else:
        kind = ProviderError.OTHER
    return ProviderError(text, kind)
