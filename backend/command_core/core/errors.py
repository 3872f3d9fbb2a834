"""Error Hierarchy - structured error records and typed exceptions for every failure mode.

Invariants:
    - Every error crossing the bus boundary is an ErrorRecord: id, code, category,
      severity, message, context, optional cause, retryable
    - Category, default severity, retryability and HTTP status are derived from the
      code via CODE_TABLE (single source of truth)
    - ErrorRecord is immutable; context is exposed read-only
    - to_response() never echoes the record id or the internal message for
      High/Critical severity

Design Decisions:
    - One exception hierarchy rooted at CommandCoreError, each exception carrying its
      ErrorRecord: services raise, the bus normalizes (ADR: uniform error shape)
    - ErrorBuilder for ad-hoc records, ErrorFactory for the common cases, so every
      record is built through the same path
    - Rate limiting lives under BUSINESS_RULE: terminal, never retried
"""

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping
from enum import Enum

from command_core.core.domain_types import (
    ErrorCategory, ErrorSeverity, ErrorId, SEVERITY_RANK,
)

GENERIC_USER_MESSAGE = "An unexpected error occurred. Please try again later."
_MAX_CAUSE_DEPTH = 5


class ErrorCode(str, Enum):
    """Machine-readable error codes."""
    # Authentication
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"

    # Authorization
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"

    # Validation
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    INVALID_FORMAT = "INVALID_FORMAT"

    # Business rules
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    OPERATION_NOT_ALLOWED = "OPERATION_NOT_ALLOWED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_ALREADY_EXISTS = "RESOURCE_ALREADY_EXISTS"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    UNKNOWN_COMMAND = "UNKNOWN_COMMAND"
    NOT_UNDOABLE = "NOT_UNDOABLE"
    NOT_AVAILABLE = "NOT_AVAILABLE"
    HISTORY_EXHAUSTED = "HISTORY_EXHAUSTED"

    # System
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    DATABASE_ERROR = "DATABASE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Integration
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    API_ERROR = "API_ERROR"
    EMAIL_SEND_FAILED = "EMAIL_SEND_FAILED"


@dataclass(frozen=True)
class CodeSpec:
    """Defaults attached to an ErrorCode."""
    category: ErrorCategory
    severity: ErrorSeverity
    retryable: bool
    http_status: int
    user_message: str


_A, _Z, _V, _B, _S, _I = (
    ErrorCategory.AUTHENTICATION, ErrorCategory.AUTHORIZATION,
    ErrorCategory.VALIDATION, ErrorCategory.BUSINESS_RULE,
    ErrorCategory.SYSTEM, ErrorCategory.INTEGRATION,
)
_LOW, _MED, _HIGH, _CRIT = (
    ErrorSeverity.LOW, ErrorSeverity.MEDIUM,
    ErrorSeverity.HIGH, ErrorSeverity.CRITICAL,
)

CODE_TABLE: dict[ErrorCode, CodeSpec] = {
    ErrorCode.AUTHENTICATION_FAILED: CodeSpec(_A, _MED, False, 401, "Authentication failed."),
    ErrorCode.INVALID_CREDENTIALS: CodeSpec(_A, _LOW, False, 401, "Invalid email or password."),
    ErrorCode.SESSION_EXPIRED: CodeSpec(_A, _LOW, False, 401, "Your session has expired. Please sign in again."),
    ErrorCode.ACCOUNT_LOCKED: CodeSpec(_A, _HIGH, False, 403, "Your account is locked."),
    ErrorCode.UNAUTHORIZED: CodeSpec(_Z, _LOW, False, 401, "You need to sign in to do that."),
    ErrorCode.FORBIDDEN: CodeSpec(_Z, _LOW, False, 403, "You do not have access to this resource."),
    ErrorCode.INSUFFICIENT_PERMISSIONS: CodeSpec(_Z, _LOW, False, 403, "You do not have permission to do that."),
    ErrorCode.VALIDATION_FAILED: CodeSpec(_V, _LOW, False, 400, "Some fields are invalid."),
    ErrorCode.INVALID_INPUT: CodeSpec(_V, _LOW, False, 400, "The input is invalid."),
    ErrorCode.MISSING_REQUIRED_FIELD: CodeSpec(_V, _LOW, False, 400, "A required field is missing."),
    ErrorCode.INVALID_FORMAT: CodeSpec(_V, _LOW, False, 400, "A field has an invalid format."),
    ErrorCode.BUSINESS_RULE_VIOLATION: CodeSpec(_B, _MED, False, 422, "The operation violates a business rule."),
    ErrorCode.OPERATION_NOT_ALLOWED: CodeSpec(_B, _LOW, False, 422, "This operation is not allowed."),
    ErrorCode.RESOURCE_NOT_FOUND: CodeSpec(_B, _LOW, False, 404, "The requested resource was not found."),
    ErrorCode.RESOURCE_ALREADY_EXISTS: CodeSpec(_B, _LOW, False, 409, "The resource already exists."),
    ErrorCode.CONCURRENT_MODIFICATION: CodeSpec(_B, _LOW, False, 409, "The resource was modified concurrently."),
    ErrorCode.RATE_LIMIT_EXCEEDED: CodeSpec(_B, _MED, False, 429, "Too many attempts. Please wait and try again."),
    ErrorCode.UNKNOWN_COMMAND: CodeSpec(_B, _LOW, False, 404, "Unknown command."),
    ErrorCode.NOT_UNDOABLE: CodeSpec(_B, _LOW, False, 409, "There is nothing to undo."),
    ErrorCode.NOT_AVAILABLE: CodeSpec(_B, _LOW, False, 409, "There is nothing to redo."),
    ErrorCode.HISTORY_EXHAUSTED: CodeSpec(_B, _LOW, False, 409, "Older actions can no longer be undone."),
    ErrorCode.INTERNAL_ERROR: CodeSpec(_S, _HIGH, False, 500, GENERIC_USER_MESSAGE),
    ErrorCode.SERVICE_UNAVAILABLE: CodeSpec(_S, _CRIT, True, 503, "The service is temporarily unavailable."),
    ErrorCode.DATABASE_ERROR: CodeSpec(_S, _CRIT, True, 503, GENERIC_USER_MESSAGE),
    ErrorCode.NETWORK_ERROR: CodeSpec(_S, _MED, True, 504, "A network error occurred. Please try again."),
    ErrorCode.TIMEOUT: CodeSpec(_S, _HIGH, True, 504, "The operation timed out."),
    ErrorCode.CONFIGURATION_ERROR: CodeSpec(_S, _CRIT, False, 500, GENERIC_USER_MESSAGE),
    ErrorCode.EXTERNAL_SERVICE_ERROR: CodeSpec(_I, _HIGH, True, 502, "An external service failed."),
    ErrorCode.API_ERROR: CodeSpec(_I, _MED, True, 502, "An external service failed."),
    ErrorCode.EMAIL_SEND_FAILED: CodeSpec(_I, _MED, True, 502, "We could not send the email."),
}


def new_error_id() -> ErrorId:
    return ErrorId(f"err_{uuid.uuid4().hex}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Records ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class ValidationIssue:
    """One field-level validation problem."""
    field: str
    message: str
    code: str = "invalid"

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message, "code": self.code}


@dataclass(frozen=True)
class ErrorRecord:
    """Immutable, normalized description of a failure."""
    code: ErrorCode
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    retryable: bool = False
    context: Mapping[str, Any] = field(default_factory=dict)
    cause: "ErrorRecord | None" = None
    id: ErrorId = field(default_factory=new_error_id)
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        object.__setattr__(self, "context", MappingProxyType(dict(self.context)))

    @property
    def http_status(self) -> int:
        return CODE_TABLE[self.code].http_status

    @property
    def user_message(self) -> str:
        return CODE_TABLE[self.code].user_message

    @property
    def is_critical(self) -> bool:
        return self.severity is ErrorSeverity.CRITICAL

    @property
    def hides_details(self) -> bool:
        return SEVERITY_RANK[self.severity] >= SEVERITY_RANK[ErrorSeverity.HIGH]

    def with_context(self, **extra: Any) -> "ErrorRecord":
        """Copy with extra context keys; existing keys win. Same id."""
        merged = {**extra, **self.context}
        return replace(self, context=merged)

    def to_dict(self) -> dict:
        """Full server-side representation (logs, audit, alerts)."""
        return {
            "id": self.id,
            "code": self.code.value,
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": dict(self.context),
            "cause": self.cause.to_dict() if self.cause else None,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_response(self) -> dict:
        """Caller-safe envelope.

        Low/Medium: safe per-code message plus error_id for support correlation.
        High/Critical: generic message, no id.
        """
        body: dict[str, Any] = {
            "code": self.code.value,
            "category": self.category.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
        }
        if self.hides_details:
            body["message"] = GENERIC_USER_MESSAGE
        else:
            body["message"] = self.user_message
            body["error_id"] = self.id
        issues = self.context.get("issues")
        if self.category is ErrorCategory.VALIDATION and issues:
            body["details"] = [dict(i) for i in issues]
        return {"error": body}


# ─── Exceptions ──────────────────────────────────────────────────

class CommandCoreError(Exception):
    """Base exception; always carries an ErrorRecord."""

    def __init__(self, record: ErrorRecord):
        super().__init__(record.message)
        self.record = record

    @classmethod
    def from_record(cls, record: ErrorRecord) -> "CommandCoreError":
        """Rebuild the most specific exception type for an existing record."""
        exc_cls = _EXCEPTION_BY_CODE.get(record.code) or _EXCEPTION_BY_CATEGORY.get(
            record.category, CommandCoreError,
        )
        exc = exc_cls.__new__(exc_cls)
        CommandCoreError.__init__(exc, record)
        return exc

    @property
    def code(self) -> ErrorCode:
        return self.record.code

    @property
    def category(self) -> ErrorCategory:
        return self.record.category

    @property
    def severity(self) -> ErrorSeverity:
        return self.record.severity

    @property
    def message(self) -> str:
        return self.record.message

    @property
    def http_status(self) -> int:
        return self.record.http_status

    def to_response(self) -> dict:
        return self.record.to_response()


class ValidationFailedError(CommandCoreError):
    """Input failed validation; carries field-level issues."""
    def __init__(
        self, issues: list[ValidationIssue], message: str = "Validation failed",
        context: Mapping[str, Any] | None = None,
    ):
        super().__init__(
            ErrorBuilder(ErrorCode.VALIDATION_FAILED)
            .with_message(message)
            .with_context(**(context or {}))
            .with_context(issues=tuple(i.to_dict() for i in issues))
            .build()
        )

    @property
    def issues(self) -> list[ValidationIssue]:
        return [ValidationIssue(**i) for i in self.record.context.get("issues", ())]


class BusinessRuleError(CommandCoreError):
    """A domain rule forbids the operation."""
    def __init__(
        self, message: str, code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        context: Mapping[str, Any] | None = None,
    ):
        super().__init__(
            ErrorBuilder(code).with_message(message)
            .with_context(**(context or {})).build()
        )


class NotFoundError(BusinessRuleError):
    """Requested resource does not exist."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            ErrorCode.RESOURCE_NOT_FOUND,
            {"resource_type": resource_type, "resource_id": resource_id},
        )


class ConflictError(BusinessRuleError):
    """Resource already exists or was concurrently modified."""
    def __init__(
        self, resource_type: str, identifier: Mapping[str, Any],
        code: ErrorCode = ErrorCode.RESOURCE_ALREADY_EXISTS,
    ):
        fields = ", ".join(f"{k}={v}" for k, v in identifier.items())
        super().__init__(
            f"{resource_type} with {fields} already exists",
            code, {"resource_type": resource_type},
        )


class RateLimitError(BusinessRuleError):
    def __init__(self, key: str, retry_after_seconds: float):
        super().__init__(
            "Too many attempts",
            ErrorCode.RATE_LIMIT_EXCEEDED,
            {"rate_limit_key": key, "retry_after_seconds": round(retry_after_seconds, 3)},
        )


class AuthenticationError(CommandCoreError):
    def __init__(
        self, message: str = "Invalid credentials",
        code: ErrorCode = ErrorCode.INVALID_CREDENTIALS,
        context: Mapping[str, Any] | None = None,
    ):
        super().__init__(
            ErrorBuilder(code).with_message(message)
            .with_context(**(context or {})).build()
        )


class AuthorizationError(CommandCoreError):
    def __init__(self, message: str = "Forbidden", code: ErrorCode = ErrorCode.FORBIDDEN):
        super().__init__(ErrorBuilder(code).with_message(message).build())


class SystemFailureError(CommandCoreError):
    """Internal failure (500-level)."""
    def __init__(
        self, message: str, code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        context: Mapping[str, Any] | None = None,
    ):
        super().__init__(
            ErrorBuilder(code).with_message(message)
            .with_context(**(context or {})).build()
        )


class ServiceUnavailableError(SystemFailureError):
    def __init__(self, dependency: str, message: str | None = None):
        super().__init__(
            message or f"Service '{dependency}' is unavailable",
            ErrorCode.SERVICE_UNAVAILABLE, {"dependency": dependency},
        )


class CommandTimeoutError(SystemFailureError):
    def __init__(self, timeout_seconds: float, operation: str = "command"):
        super().__init__(
            f"{operation} exceeded {timeout_seconds}s",
            ErrorCode.TIMEOUT,
            {"timeout_seconds": timeout_seconds, "operation": operation},
        )


class DatabaseError(SystemFailureError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str):
        super().__init__(
            f"Database {operation} failed: {message}",
            ErrorCode.DATABASE_ERROR, {"operation": operation},
        )
        self.operation = operation


class IntegrationError(CommandCoreError):
    """External service call failed."""
    def __init__(
        self, service: str, message: str,
        code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
    ):
        super().__init__(
            ErrorBuilder(code).with_message(f"{service}: {message}")
            .with_context(dependency=service).build()
        )


_EXCEPTION_BY_CODE: dict[ErrorCode, type[CommandCoreError]] = {
    ErrorCode.RESOURCE_NOT_FOUND: NotFoundError,
    ErrorCode.RESOURCE_ALREADY_EXISTS: ConflictError,
    ErrorCode.CONCURRENT_MODIFICATION: ConflictError,
    ErrorCode.RATE_LIMIT_EXCEEDED: RateLimitError,
    ErrorCode.SERVICE_UNAVAILABLE: ServiceUnavailableError,
    ErrorCode.TIMEOUT: CommandTimeoutError,
    ErrorCode.DATABASE_ERROR: DatabaseError,
}

_EXCEPTION_BY_CATEGORY: dict[ErrorCategory, type[CommandCoreError]] = {
    ErrorCategory.AUTHENTICATION: AuthenticationError,
    ErrorCategory.AUTHORIZATION: AuthorizationError,
    ErrorCategory.VALIDATION: ValidationFailedError,
    ErrorCategory.BUSINESS_RULE: BusinessRuleError,
    ErrorCategory.SYSTEM: SystemFailureError,
    ErrorCategory.INTEGRATION: IntegrationError,
}


# ─── Construction ────────────────────────────────────────────────

class ErrorBuilder:
    """Fluent builder; starts from the code's defaults in CODE_TABLE."""

    def __init__(self, code: ErrorCode):
        entry = CODE_TABLE[code]
        self._code = code
        self._category = entry.category
        self._severity = entry.severity
        self._retryable = entry.retryable
        self._message = code.value.replace("_", " ").capitalize()
        self._context: dict[str, Any] = {}
        self._cause: ErrorRecord | None = None

    def with_message(self, message: str) -> "ErrorBuilder":
        self._message = message
        return self

    def with_severity(self, severity: ErrorSeverity) -> "ErrorBuilder":
        self._severity = severity
        return self

    def with_retryable(self, retryable: bool) -> "ErrorBuilder":
        self._retryable = retryable
        return self

    def with_context(self, **context: Any) -> "ErrorBuilder":
        self._context.update(context)
        return self

    def with_cause(self, cause: "ErrorRecord | BaseException | None") -> "ErrorBuilder":
        if isinstance(cause, BaseException):
            cause = ErrorFactory.wrap(cause)
        self._cause = cause
        return self

    def build(self) -> ErrorRecord:
        return ErrorRecord(
            code=self._code,
            category=self._category,
            severity=self._severity,
            message=self._message,
            retryable=self._retryable,
            context=self._context,
            cause=self._cause,
        )

    def error(self) -> CommandCoreError:
        return CommandCoreError.from_record(self.build())


class ErrorFactory:
    """Shortcuts for the records the bus and commands produce most."""

    @staticmethod
    def validation(
        issues: list[ValidationIssue], message: str = "Validation failed",
    ) -> ValidationFailedError:
        return ValidationFailedError(issues, message)

    @staticmethod
    def not_found(resource_type: str, resource_id: str) -> NotFoundError:
        return NotFoundError(resource_type, resource_id)

    @staticmethod
    def conflict(resource_type: str, **identifier: Any) -> ConflictError:
        return ConflictError(resource_type, identifier)

    @staticmethod
    def unknown_command(command_type: str) -> ErrorRecord:
        return (
            ErrorBuilder(ErrorCode.UNKNOWN_COMMAND)
            .with_message(f"No command registered for '{command_type}'")
            .with_context(command_type=command_type)
            .build()
        )

    @staticmethod
    def not_undoable(message: str = "Nothing to undo") -> ErrorRecord:
        return ErrorBuilder(ErrorCode.NOT_UNDOABLE).with_message(message).build()

    @staticmethod
    def history_exhausted(evicted: int) -> ErrorRecord:
        return (
            ErrorBuilder(ErrorCode.HISTORY_EXHAUSTED)
            .with_message("Undo history exhausted; older entries were evicted")
            .with_context(evicted=evicted)
            .build()
        )

    @staticmethod
    def not_available() -> ErrorRecord:
        return ErrorBuilder(ErrorCode.NOT_AVAILABLE).with_message("Nothing to redo").build()

    @staticmethod
    def timeout(timeout_seconds: float, operation: str = "command") -> ErrorRecord:
        return CommandTimeoutError(timeout_seconds, operation).record

    @staticmethod
    def circuit_open(key: str, retry_after_seconds: float) -> ServiceUnavailableError:
        """Fail-fast error for an open breaker; terminal for this call."""
        record = (
            ErrorBuilder(ErrorCode.SERVICE_UNAVAILABLE)
            .with_message(f"Circuit open for '{key}'")
            .with_severity(ErrorSeverity.HIGH)
            .with_retryable(False)
            .with_context(
                dependency=key, circuit_open=True,
                retry_after_seconds=round(max(retry_after_seconds, 0.0), 3),
            )
            .build()
        )
        return CommandCoreError.from_record(record)

    @staticmethod
    def wrap(
        exc: BaseException, context: Mapping[str, Any] | None = None,
        _depth: int = 0,
    ) -> ErrorRecord:
        """Normalize any exception into an ErrorRecord, preserving the cause chain."""
        context = dict(context or {})
        if isinstance(exc, CommandCoreError):
            return exc.record.with_context(**context) if context else exc.record

        if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
            builder = ErrorBuilder(ErrorCode.TIMEOUT).with_message(
                str(exc) or "Operation timed out",
            )
        elif isinstance(exc, (ConnectionError, OSError)):
            builder = ErrorBuilder(ErrorCode.NETWORK_ERROR).with_message(
                str(exc) or type(exc).__name__,
            )
        else:
            builder = ErrorBuilder(ErrorCode.INTERNAL_ERROR).with_message(
                str(exc) or type(exc).__name__,
            )
        builder.with_context(**{"exception_type": type(exc).__name__, **context})

        inner = exc.__cause__ or exc.__context__
        if inner is not None and _depth < _MAX_CAUSE_DEPTH:
            builder.with_cause(ErrorFactory.wrap(inner, _depth=_depth + 1))
        return builder.build()
