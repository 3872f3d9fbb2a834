"""Login attempt tracking - sliding-window limiter keyed by normalized email.

Invariants:
    - At most `max_attempts` recorded failures per key inside `window_seconds`
    - A successful login clears the key
    - Clock is injectable (monotonic seconds) so tests never sleep
"""

import threading
import time
from collections import defaultdict, deque
from typing import Callable


class LoginAttemptTracker:
    def __init__(
        self, max_attempts: int = 5, window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._failures: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def retry_after(self, key: str) -> float:
        """Seconds until another attempt is allowed; 0.0 when allowed now."""
        with self._lock:
            window = self._prune(key)
            if len(window) < self.max_attempts:
                return 0.0
            return max(window[0] + self.window_seconds - self._clock(), 0.0)

    def record_failure(self, key: str) -> int:
        with self._lock:
            window = self._prune(key)
            window.append(self._clock())
            return len(window)

    def reset(self, key: str) -> None:
        with self._lock:
            self._failures.pop(key, None)

    def _prune(self, key: str) -> deque[float]:
        window = self._failures[key]
        cutoff = self._clock() - self.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()
        return window
