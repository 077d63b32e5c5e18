"""Error Hierarchy — typed, categorized exceptions for every pipeline failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Client-caused errors are 400-level and never retried by the server
    - Dependency errors are 500-level and retryable by the client
    - to_response(verbose=False) never leaks dependency internals

Design Decisions:
    - Single hierarchy with RegistrationServiceError base: FastAPI global handler catches all
    - ErrorContext as dataclass: rich observability without coupling to logging framework
    - PersistenceError and PoisonMessage are consumer-side only; they never reach a client
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    DEPENDENCY = "dependency"
    RELAY = "relay"
    DATABASE = "database"
    POISON = "poison"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    email: str | None = None
    dependency: str | None = None
    topic: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class RegistrationServiceError(Exception):
    """Base exception for all registration pipeline errors."""

    # Shown instead of the real message for 5xx errors outside development
    public_message = "Service temporarily unavailable. Please retry later."

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status
        self.retryable = retryable

    def to_response(self, verbose: bool = True) -> dict:
        """Convert to standardized REST error response."""
        hide = not verbose and self.http_status >= 500
        body = {
            "code": self.code,
            "message": self.public_message if hide else self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "timestamp": self.context.timestamp.isoformat(),
        }
        if not hide:
            body["context"] = {
                "email": self.context.email,
                "dependency": self.context.dependency,
                "topic": self.context.topic,
                "retry_after_ms": self.context.retry_after_ms,
            }
        return {"success": False, "error": body}


# ─── Client Errors (400-level) ──────────────────────────────────

class ValidationError(RegistrationServiceError):
    """Submitted record failed the registration schema."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            f"Validation error: {message}", "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, context, 400,
        )
        self.field = field


class PoisonMessage(RegistrationServiceError):
    """Relay message whose payload can never be processed."""
    def __init__(self, reason: str, context: ErrorContext | None = None):
        super().__init__(
            f"Unprocessable relay message: {reason}", "POISON_MESSAGE",
            ErrorCategory.POISON, ErrorSeverity.ERROR, context, 422,
        )
        self.reason = reason


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DependencyUnavailable(RegistrationServiceError):
    """Staging/completion store could not be reached."""
    def __init__(
        self, dependency: str, operation: str, detail: str = "",
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.dependency = dependency
        message = f"{dependency} unavailable during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(
            message, "DEPENDENCY_UNAVAILABLE", ErrorCategory.DEPENDENCY,
            ErrorSeverity.CRITICAL, ctx, 503, retryable=True,
        )
        self.dependency = dependency
        self.operation = operation


class RelayUnavailable(RegistrationServiceError):
    """Publish to the relay failed after internal retries."""
    def __init__(
        self, topic: str, detail: str, attempts: int = 1,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.topic = topic
        ctx.dependency = "relay"
        super().__init__(
            f"Relay publish to '{topic}' failed after {attempts} attempt(s): {detail}",
            "RELAY_UNAVAILABLE", ErrorCategory.RELAY,
            ErrorSeverity.CRITICAL, ctx, 503, retryable=True,
        )
        self.topic = topic
        self.attempts = attempts


class PersistenceError(RegistrationServiceError):
    """System-of-record operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.dependency = "database"
        super().__init__(
            f"Database {operation} failed: {message}",
            "PERSISTENCE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, ctx, 503, retryable=True,
        )
        self.operation = operation


class SubmissionTimeout(RegistrationServiceError):
    """Submission exceeded its end-to-end deadline."""
    def __init__(self, deadline_seconds: float, stage: str, context: ErrorContext | None = None):
        super().__init__(
            f"Submission exceeded {deadline_seconds:g}s deadline during {stage}",
            "SUBMISSION_TIMEOUT", ErrorCategory.TIMEOUT,
            ErrorSeverity.ERROR, context, 504, retryable=True,
        )
        self.stage = stage
