"""Logging alert hook - default AlertHook that writes Critical records at CRITICAL level."""

import logging

from command_core.core.errors import ErrorRecord

logger = logging.getLogger(__name__)


class LoggingAlertHook:
    def __call__(self, record: ErrorRecord) -> None:
        logger.critical(
            f"ALERT {record.code.value}: {record.message}",
            extra={
                "error_id": record.id,
                "error_code": record.code.value,
                "dependency": record.context.get("dependency"),
            },
        )
