"""Circuit Breaker - per-dependency Closed -> Open -> HalfOpen state machine.

Invariants:
    - Closed: calls pass; failures inside the sliding window are counted; reaching
      failure_threshold opens the breaker. A success clears the window
    - Open: calls fail fast with SERVICE_UNAVAILABLE (circuit_open=True) without
      invoking the operation, until cooldown_seconds elapse
    - HalfOpen: at most half_open_max_calls trial calls in flight; a trial success
      closes the breaker, a trial failure re-opens it and restarts the cooldown
    - Every transition happens under one asyncio.Lock, so two callers cannot both
      observe Closed and both trip past the threshold
    - Only System/Integration failures count; terminal categories release the trial slot
    - A cancelled call (timeout, caller gone) releases its slot without a verdict

Design Decisions:
    - Lazy Open -> HalfOpen transition on the next acquire(): no background timers
    - Injectable monotonic clock: tests drive cooldowns without sleeping
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable

from command_core.core.domain_types import BreakerState, TERMINAL_CATEGORIES
from command_core.core.errors import CommandCoreError, ErrorFactory

logger = logging.getLogger(__name__)


def counts_as_failure(exc: BaseException) -> bool:
    if isinstance(exc, CommandCoreError):
        return exc.category not in TERMINAL_CATEGORIES and not exc.record.context.get(
            "circuit_open",
        )
    return True


class CircuitBreaker:
    def __init__(
        self,
        key: str,
        failure_threshold: int = 5,
        window_seconds: float = 60.0,
        cooldown_seconds: float = 30.0,
        half_open_max_calls: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1 or half_open_max_calls < 1:
            raise ValueError("failure_threshold and half_open_max_calls must be >= 1")
        self.key = key
        self.failure_threshold = failure_threshold
        self.window_seconds = window_seconds
        self.cooldown_seconds = cooldown_seconds
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock
        self._state = BreakerState.CLOSED
        self._failures: deque[float] = deque()
        self._opened_at: float | None = None
        self._trials_in_flight = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> BreakerState:
        return self._state

    @property
    def failure_count(self) -> int:
        return len(self._failures)

    async def call(
        self,
        operation: Callable[[], Awaitable[Any]],
        counts: Callable[[BaseException], bool] = counts_as_failure,
    ) -> Any:
        await self.acquire()
        try:
            result = await operation()
        except asyncio.CancelledError:
            self._release_trial()
            raise
        except Exception as exc:
            if counts(exc):
                await self.record_failure()
            else:
                await self.release()
            raise
        await self.record_success()
        return result

    async def acquire(self) -> None:
        """Admit one call or raise the fail-fast ServiceUnavailableError."""
        async with self._lock:
            now = self._clock()
            if self._state is BreakerState.OPEN:
                remaining = self._opened_at + self.cooldown_seconds - now
                if remaining > 0:
                    raise ErrorFactory.circuit_open(self.key, remaining)
                self._transition(BreakerState.HALF_OPEN)
            if self._state is BreakerState.HALF_OPEN:
                if self._trials_in_flight >= self.half_open_max_calls:
                    raise ErrorFactory.circuit_open(self.key, 0.0)
                self._trials_in_flight += 1

    async def record_success(self) -> None:
        async with self._lock:
            if self._state is BreakerState.HALF_OPEN:
                self._transition(BreakerState.CLOSED)
            elif self._state is BreakerState.CLOSED:
                self._failures.clear()

    async def record_failure(self) -> None:
        async with self._lock:
            now = self._clock()
            if self._state is BreakerState.HALF_OPEN:
                self._open(now)
            elif self._state is BreakerState.CLOSED:
                cutoff = now - self.window_seconds
                while self._failures and self._failures[0] <= cutoff:
                    self._failures.popleft()
                self._failures.append(now)
                if len(self._failures) >= self.failure_threshold:
                    self._open(now)

    async def release(self) -> None:
        """Give back a trial slot without a verdict (non-counted error)."""
        async with self._lock:
            self._release_trial()

    async def reset(self) -> None:
        async with self._lock:
            self._transition(BreakerState.CLOSED)

    def snapshot(self) -> dict:
        return {
            "key": self.key,
            "state": self._state.value,
            "failure_count": len(self._failures),
            "opened_at": self._opened_at,
        }

    def _release_trial(self) -> None:
        # No await: also runs from a cancelled task's unwind path
        if self._state is BreakerState.HALF_OPEN and self._trials_in_flight:
            self._trials_in_flight -= 1

    def _open(self, now: float) -> None:
        self._transition(BreakerState.OPEN)
        self._opened_at = now

    def _transition(self, new_state: BreakerState) -> None:
        old_state = self._state
        self._state = new_state
        self._trials_in_flight = 0
        if new_state is BreakerState.CLOSED:
            self._failures.clear()
            self._opened_at = None
        if old_state is new_state:
            return
        log = logger.warning if new_state is BreakerState.OPEN else logger.info
        log(
            f"Circuit '{self.key}' {old_state.value} -> {new_state.value}",
            extra={"dependency": self.key},
        )
