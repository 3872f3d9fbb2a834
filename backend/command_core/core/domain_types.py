"""Domain Types - identifiers and enums shared by every layer of the command core.

Invariants:
    - Ids are plain strings wrapped in NewType, never bare str in domain signatures
    - All closed sets of states are str Enums; no raw string matching
    - Severity order is Low < Medium < High < Critical (see SEVERITY_RANK)

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON (audit records, API envelopes) without custom encoders
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

CommandId = NewType("CommandId", str)
CorrelationId = NewType("CorrelationId", str)
ActorId = NewType("ActorId", str)
ErrorId = NewType("ErrorId", str)
UserId = NewType("UserId", str)
SubscriptionToken = NewType("SubscriptionToken", str)


# ─── Enums ───────────────────────────────────────────────────────

class ErrorCategory(str, Enum):
    """Top-level error taxonomy; drives recovery routing."""
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    SYSTEM = "system"
    INTEGRATION = "integration"


class ErrorSeverity(str, Enum):
    """Impact level; High/Critical hide details from callers, Critical alerts."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


SEVERITY_RANK = {
    ErrorSeverity.LOW: 0,
    ErrorSeverity.MEDIUM: 1,
    ErrorSeverity.HIGH: 2,
    ErrorSeverity.CRITICAL: 3,
}

# Categories that are terminal: recovery never runs for these
TERMINAL_CATEGORIES = frozenset({
    ErrorCategory.AUTHENTICATION,
    ErrorCategory.AUTHORIZATION,
    ErrorCategory.VALIDATION,
    ErrorCategory.BUSINESS_RULE,
})


class BreakerState(str, Enum):
    """Circuit breaker state machine."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class RecoveryStrategyKind(str, Enum):
    """Recovery strategies selectable per category or per dependency key."""
    RETRY = "retry"
    FALLBACK = "fallback"
    CIRCUIT_BREAKER = "circuit_breaker"
    COMPENSATION = "compensation"
    CACHE = "cache"


class CommandOperation(str, Enum):
    """Which bus entry point a pipeline run belongs to."""
    EXECUTE = "execute"
    UNDO = "undo"
    REDO = "redo"


class AuditOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
