"""Alert Dispatch - fires the caller's AlertHook once per Critical ErrorRecord.

Invariants:
    - Hook invoked synchronously, at most once per record id (cause chain included)
    - Hook failures are logged and swallowed: alerting never changes an outcome
"""

import logging
import threading
from collections import OrderedDict

from command_core.core.domain_types import ErrorSeverity
from command_core.core.errors import ErrorRecord
from command_core.core.repository_protocols import AlertHook

logger = logging.getLogger(__name__)


class AlertDispatcher:
    def __init__(self, hook: AlertHook | None = None, remember: int = 1000):
        self._hook = hook
        self._remember = remember
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    def notify(self, record: ErrorRecord | None) -> int:
        """Alert on every unseen Critical record in the chain; returns alerts fired."""
        fired = 0
        while record is not None:
            if record.severity is ErrorSeverity.CRITICAL and self._mark(record.id):
                self._fire(record)
                fired += 1
            record = record.cause
        return fired

    def _mark(self, record_id: str) -> bool:
        with self._lock:
            if record_id in self._seen:
                return False
            self._seen[record_id] = None
            while len(self._seen) > self._remember:
                self._seen.popitem(last=False)
            return True

    def _fire(self, record: ErrorRecord) -> None:
        if self._hook is None:
            return
        try:
            self._hook(record)
        except Exception as e:
            logger.error(
                f"Alert hook failed for {record.id}: {e}",
                exc_info=True,
                extra={"error_id": record.id, "error_code": record.code.value},
            )
