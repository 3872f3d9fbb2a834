"""Recovery Manager - pluggable strategies applied to recoverable failures.

Invariants:
    - Validation, BusinessRule, Authentication and Authorization errors are terminal:
      no strategy ever runs for them
    - Strategy chain comes from the dependency key's policies when the key has any,
      else from the error category's policies; strategies are tried in order and the
      first success wins
    - Retry only re-attempts while the latest error is retryable; backoff is exponential
      with +-25% jitter, capped at max_delay_ms
    - Keyed calls pass through the key's CircuitBreaker (one breaker per key per
      manager, shared by every caller using that key)
    - Compensation counteracts partial effects; it never turns a failure into success.
      The original error propagates with context compensated=True, or compensated=False
      when the inverse action itself failed
    - Compensation is attempted at most once per failure: the presence of the
      `compensated` key marks the attempt, whatever its value
    - Critical records fire the AlertDispatcher whatever the recovery outcome

Design Decisions:
    - Breaker as a guard, not a post-failure strategy: it decides whether a call may run
    - RecoveryPolicy is declarative (kind + params); strategies are built from it once
    - Sleep and clock injectable: tests exercise backoff and cooldowns without waiting
    - Cache is fed by the manager: every success on a key is offered to that key's
      strategies, so a cached value is always one the dependency really returned
"""

import asyncio
import functools
import inspect
import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, ClassVar, Collection, Mapping

from command_core.core.domain_types import (
    ErrorCategory, RecoveryStrategyKind, TERMINAL_CATEGORIES,
)
from command_core.core.errors import (
    CommandCoreError, ErrorCode, ErrorFactory, ErrorRecord,
)
from command_core.services.alerts import AlertDispatcher
from command_core.services.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class RecoveryPolicy:
    strategy: RecoveryStrategyKind
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RecoveryResult:
    recovered: bool
    value: Any = None
    error: ErrorRecord | None = None
    strategy: RecoveryStrategyKind | None = None
    attempts: int = 0


DEFAULT_CATEGORY_POLICIES: dict[ErrorCategory, list[RecoveryPolicy]] = {
    ErrorCategory.SYSTEM: [RecoveryPolicy(RecoveryStrategyKind.RETRY)],
    ErrorCategory.INTEGRATION: [RecoveryPolicy(RecoveryStrategyKind.RETRY)],
}


# ─── Strategies ──────────────────────────────────────────────────

class RecoveryStrategy:
    """Base: recovers nothing and guards nothing."""
    kind: ClassVar[RecoveryStrategyKind]

    def can_recover(self, error: ErrorRecord) -> bool:
        return False

    async def recover(
        self, error: ErrorRecord, operation: Operation,
        compensate: Operation | None = None,
    ) -> RecoveryResult:
        return RecoveryResult(False, error=error, strategy=self.kind)

    def guard(self, operation: Operation, key: str | None) -> Operation:
        return operation

    def remember(self, key: str, value: Any) -> None:
        """Observe a good value for key; only caching strategies keep it."""


class RetryStrategy(RecoveryStrategy):
    """Re-attempt up to max_attempts times with exponential backoff."""
    kind = RecoveryStrategyKind.RETRY

    def __init__(
        self, max_attempts: int = 3, base_delay_ms: int = 100,
        max_delay_ms: int = 5_000,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._sleep = sleep

    def can_recover(self, error: ErrorRecord) -> bool:
        return error.retryable and error.category not in TERMINAL_CATEGORIES

    async def recover(self, error, operation, compensate=None) -> RecoveryResult:
        last = error
        for attempt in range(1, self.max_attempts + 1):
            delay = self._backoff(attempt - 1)
            logger.warning(
                f"Retrying after {last.code.value}, attempt {attempt}/{self.max_attempts} in {delay}ms",
                extra={
                    "attempt": attempt, "error_code": last.code.value,
                    "dependency": last.context.get("dependency"),
                },
            )
            await self._sleep(delay / 1000)
            try:
                value = await operation()
            except Exception as e:
                last = ErrorFactory.wrap(e)
                if not self.can_recover(last):
                    return RecoveryResult(False, error=last, strategy=self.kind, attempts=attempt)
                continue
            return RecoveryResult(True, value=value, strategy=self.kind, attempts=attempt)
        return RecoveryResult(
            False, error=last.with_context(retries_exhausted=True),
            strategy=self.kind, attempts=self.max_attempts,
        )

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311


class FallbackStrategy(RecoveryStrategy):
    """Substitute a predetermined safe value (or factory(error) result)."""
    kind = RecoveryStrategyKind.FALLBACK

    def __init__(
        self, value: Any = None, factory: Callable[[ErrorRecord], Any] | None = None,
        codes: Collection[ErrorCode] | None = None,
    ):
        self._value = value
        self._factory = factory
        self._codes = frozenset(codes) if codes is not None else None

    def can_recover(self, error: ErrorRecord) -> bool:
        if error.category in TERMINAL_CATEGORIES:
            return False
        return self._codes is None or error.code in self._codes

    async def recover(self, error, operation, compensate=None) -> RecoveryResult:
        value = self._factory(error) if self._factory else self._value
        if inspect.isawaitable(value):
            value = await value
        logger.info(
            f"Fallback substituted for {error.code.value}",
            extra={"error_code": error.code.value, "error_id": error.id},
        )
        return RecoveryResult(True, value=value, strategy=self.kind)


class CompensationStrategy(RecoveryStrategy):
    """Run an inverse action; the failure still propagates, marked compensated."""
    kind = RecoveryStrategyKind.COMPENSATION

    def __init__(self, action: Operation | None = None):
        self._action = action

    def can_recover(self, error: ErrorRecord) -> bool:
        return "compensated" not in error.context

    async def recover(self, error, operation, compensate=None) -> RecoveryResult:
        action = compensate or self._action
        return RecoveryResult(
            False, error=await run_compensation(error, action), strategy=self.kind,
        )


class CacheStrategy(RecoveryStrategy):
    """Serve the last good value seen for the call key while it is fresh.

    Values are recorded by RecoveryManager.run() on every success for the key;
    the manager tags failures with recovery_key so the lookup matches the call,
    whatever dependency the error itself names. Stale values recover nothing.
    """
    kind = RecoveryStrategyKind.CACHE

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}

    def remember(self, key: str, value: Any) -> None:
        self._entries[key] = (value, self._clock())

    def forget(self, key: str | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def can_recover(self, error: ErrorRecord) -> bool:
        if error.category in TERMINAL_CATEGORIES:
            return False
        return self._fresh(error.context.get("recovery_key")) is not None

    async def recover(self, error, operation, compensate=None) -> RecoveryResult:
        key = error.context.get("recovery_key")
        entry = self._fresh(key)
        if entry is None:
            return RecoveryResult(False, error=error, strategy=self.kind)
        logger.info(
            f"Serving cached value for '{key}' after {error.code.value}",
            extra={"dependency": key, "error_id": error.id},
        )
        return RecoveryResult(True, value=entry[0], strategy=self.kind)

    def _fresh(self, key: str | None) -> tuple[Any, float] | None:
        entry = self._entries.get(key) if key is not None else None
        if entry is None or self._clock() - entry[1] >= self.ttl_seconds:
            return None
        return entry


class CircuitBreakerStrategy(RecoveryStrategy):
    """Guards keyed calls with the manager's shared breaker for that key."""
    kind = RecoveryStrategyKind.CIRCUIT_BREAKER

    def __init__(self, breaker_for: Callable[..., CircuitBreaker], params: Mapping[str, Any] | None = None):
        self._breaker_for = breaker_for
        self._params = dict(params or {})

    def guard(self, operation: Operation, key: str | None) -> Operation:
        if key is None:
            return operation
        breaker = self._breaker_for(key, **self._params)
        return lambda: breaker.call(operation)


async def run_compensation(error: ErrorRecord, action: Operation | None) -> ErrorRecord:
    if action is None or "compensated" in error.context:
        return error
    try:
        await action()
    except Exception as e:
        logger.error(
            f"Compensation failed for {error.id}: {e}",
            exc_info=True, extra={"error_id": error.id},
        )
        return error.with_context(compensated=False, compensation_error=str(e))
    logger.info(f"Compensated {error.code.value}", extra={"error_id": error.id})
    return error.with_context(compensated=True)


# ─── Manager ─────────────────────────────────────────────────────

class RecoveryManager:
    """Owns the strategy chains and the per-key circuit breakers."""

    def __init__(
        self,
        category_policies: Mapping[ErrorCategory, list[RecoveryPolicy]] | None = None,
        key_policies: Mapping[str, list[RecoveryPolicy]] | None = None,
        *,
        alerts: AlertDispatcher | None = None,
        retry_max_attempts: int = 3,
        retry_base_delay_ms: int = 100,
        retry_max_delay_ms: int = 5_000,
        breaker_failure_threshold: int = 5,
        breaker_window_seconds: float = 60.0,
        breaker_cooldown_seconds: float = 30.0,
        breaker_half_open_max_calls: int = 1,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.alerts = alerts or AlertDispatcher()
        self._retry_defaults = {
            "max_attempts": retry_max_attempts,
            "base_delay_ms": retry_base_delay_ms,
            "max_delay_ms": retry_max_delay_ms,
        }
        self._breaker_defaults = {
            "failure_threshold": breaker_failure_threshold,
            "window_seconds": breaker_window_seconds,
            "cooldown_seconds": breaker_cooldown_seconds,
            "half_open_max_calls": breaker_half_open_max_calls,
        }
        self._sleep = sleep
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._breakers_lock = threading.Lock()

        policies = DEFAULT_CATEGORY_POLICIES if category_policies is None else category_policies
        self._category_chains = {
            category: [self._build(p) for p in chain]
            for category, chain in policies.items()
        }
        self._key_chains = {
            key: [self._build(p) for p in chain]
            for key, chain in (key_policies or {}).items()
        }
        self._default_guard = CircuitBreakerStrategy(self.breaker)

    @classmethod
    def from_settings(cls, settings, **overrides) -> "RecoveryManager":
        kwargs = {
            "retry_max_attempts": settings.retry_max_attempts,
            "retry_base_delay_ms": settings.retry_base_delay_ms,
            "retry_max_delay_ms": settings.retry_max_delay_ms,
            "breaker_failure_threshold": settings.breaker_failure_threshold,
            "breaker_window_seconds": settings.breaker_window_seconds,
            "breaker_cooldown_seconds": settings.breaker_cooldown_seconds,
            "breaker_half_open_max_calls": settings.breaker_half_open_max_calls,
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    def breaker(self, key: str, **params: Any) -> CircuitBreaker:
        """Get or create the shared breaker for a dependency key."""
        with self._breakers_lock:
            breaker = self._breakers.get(key)
            if breaker is None:
                config = {**self._breaker_defaults, **params}
                breaker = CircuitBreaker(key, clock=self._clock, **config)
                self._breakers[key] = breaker
            return breaker

    def breakers_snapshot(self) -> list[dict]:
        with self._breakers_lock:
            return [b.snapshot() for b in self._breakers.values()]

    async def run(
        self,
        operation: Operation,
        *,
        key: str | None = None,
        compensate: Operation | None = None,
    ) -> Any:
        """Call operation under the key's breaker; recover or raise CommandCoreError."""
        guarded = self._guarded(operation, key)
        try:
            value = await guarded()
        except Exception as exc:
            record = ErrorFactory.wrap(exc, {"dependency": key} if key else None)
            self.alerts.notify(record)
            result = await self.recover(record, guarded, key=key, compensate=compensate)
            if result.recovered:
                if result.strategy is RecoveryStrategyKind.RETRY:
                    self._remember(key, result.value)
                return result.value
            final = await run_compensation(result.error, compensate)
            self.alerts.notify(final)
            raise CommandCoreError.from_record(final) from exc
        self._remember(key, value)
        return value

    async def recover(
        self,
        error: ErrorRecord,
        operation: Operation,
        *,
        key: str | None = None,
        compensate: Operation | None = None,
    ) -> RecoveryResult:
        """Try the chain for (key or category) in order; first success wins."""
        if error.category in TERMINAL_CATEGORIES:
            return RecoveryResult(False, error=error)
        current = error.with_context(recovery_key=key) if key is not None else error
        for strategy in self._chain(key, error.category):
            if not strategy.can_recover(current):
                continue
            result = await strategy.recover(current, operation, compensate)
            if result.recovered:
                logger.info(
                    f"Recovered {error.code.value} via {strategy.kind.value}",
                    extra={"error_id": error.id, "dependency": key, "attempt": result.attempts},
                )
                return result
            current = result.error or current
            if key is not None:
                current = current.with_context(recovery_key=key)
            self.alerts.notify(current)
        return RecoveryResult(False, error=current)

    def _chain(self, key: str | None, category: ErrorCategory) -> list[RecoveryStrategy]:
        if key is not None and key in self._key_chains:
            return self._key_chains[key]
        return self._category_chains.get(category, [])

    def _remember(self, key: str | None, value: Any) -> None:
        if key is None:
            return
        if key in self._key_chains:
            chains = [self._key_chains[key]]
        else:
            chains = list(self._category_chains.values())
        for chain in chains:
            for strategy in chain:
                strategy.remember(key, value)

    def _guarded(self, operation: Operation, key: str | None) -> Operation:
        if key is None:
            return operation
        chain = self._key_chains.get(key)
        if chain is None:
            return self._default_guard.guard(operation, key)
        for strategy in chain:
            operation = strategy.guard(operation, key)
        return operation

    def _build(self, policy: RecoveryPolicy) -> RecoveryStrategy:
        params = dict(policy.params)
        kind = policy.strategy
        if kind is RecoveryStrategyKind.RETRY:
            return RetryStrategy(sleep=self._sleep, **{**self._retry_defaults, **params})
        if kind is RecoveryStrategyKind.FALLBACK:
            return FallbackStrategy(
                params.get("value"), params.get("factory"), params.get("codes"),
            )
        if kind is RecoveryStrategyKind.COMPENSATION:
            return CompensationStrategy(params.get("action"))
        if kind is RecoveryStrategyKind.CIRCUIT_BREAKER:
            return CircuitBreakerStrategy(self.breaker, params)
        if kind is RecoveryStrategyKind.CACHE:
            return CacheStrategy(clock=self._clock, **params)
        raise ValueError(f"Unknown recovery strategy: {kind}")


# ─── Decorator and presets ───────────────────────────────────────

def recoverable(
    manager: RecoveryManager,
    *,
    key: str | None = None,
    compensate: Operation | None = None,
):
    """Route every call of an async function through manager.run()."""
    def decorator(fn: Callable[..., Awaitable[Any]]):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            return await manager.run(
                lambda: fn(*args, **kwargs), key=key, compensate=compensate,
            )
        return wrapper
    return decorator


_NO_FALLBACK = object()


def _with_fallback(chain: list[RecoveryPolicy], fallback: Any, **params) -> list[RecoveryPolicy]:
    if fallback is not _NO_FALLBACK:
        chain.append(RecoveryPolicy(
            RecoveryStrategyKind.FALLBACK, {"value": fallback, **params},
        ))
    return chain


class RecoveryPatterns:
    """Ready-made policy chains, meant as key_policies values."""

    @staticmethod
    def database(fallback: Any = _NO_FALLBACK) -> list[RecoveryPolicy]:
        """Two slow retries; the fallback only covers database errors and timeouts."""
        chain = [RecoveryPolicy(
            RecoveryStrategyKind.RETRY, {"max_attempts": 2, "base_delay_ms": 1_000},
        )]
        return _with_fallback(
            chain, fallback, codes=(ErrorCode.DATABASE_ERROR, ErrorCode.TIMEOUT),
        )

    @staticmethod
    def external_api(
        fallback: Any = _NO_FALLBACK,
        *,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
    ) -> list[RecoveryPolicy]:
        chain = [RecoveryPolicy(RecoveryStrategyKind.CIRCUIT_BREAKER, {
            "failure_threshold": failure_threshold,
            "cooldown_seconds": cooldown_seconds,
        })]
        return _with_fallback(chain, fallback)

    @staticmethod
    def cached(ttl_seconds: float = 60.0) -> list[RecoveryPolicy]:
        return [RecoveryPolicy(RecoveryStrategyKind.CACHE, {"ttl_seconds": ttl_seconds})]

    @staticmethod
    def critical(compensate: Operation, fallback: Any = _NO_FALLBACK) -> list[RecoveryPolicy]:
        chain = [
            RecoveryPolicy(
                RecoveryStrategyKind.RETRY, {"max_attempts": 2, "base_delay_ms": 2_000},
            ),
            RecoveryPolicy(RecoveryStrategyKind.COMPENSATION, {"action": compensate}),
        ]
        return _with_fallback(chain, fallback)
