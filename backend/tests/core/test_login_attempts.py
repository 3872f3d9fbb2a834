"""Tests for the sliding-window login attempt tracker."""

from command_core.core.login_attempts import LoginAttemptTracker


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_blocks_after_max_attempts_until_window_passes():
    clock = _Clock()
    tracker = LoginAttemptTracker(max_attempts=2, window_seconds=60, clock=clock)
    assert tracker.retry_after("a@b.co") == 0.0
    tracker.record_failure("a@b.co")
    assert tracker.record_failure("a@b.co") == 2
    assert tracker.retry_after("a@b.co") == 60.0

    clock.now += 61
    assert tracker.retry_after("a@b.co") == 0.0


def test_reset_clears_key_only():
    tracker = LoginAttemptTracker(max_attempts=1, clock=_Clock())
    tracker.record_failure("a")
    tracker.record_failure("b")
    tracker.reset("a")
    assert tracker.retry_after("a") == 0.0
    assert tracker.retry_after("b") > 0
