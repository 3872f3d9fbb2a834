"""Sensitive-field redaction for audit records, event payloads and logs.

Invariants:
    - Matching is case-insensitive and ignores "_" and "-" (newPassword == new_password)
    - Redaction is recursive through mappings and sequences; input is never mutated
"""

from typing import Any, Iterable, Mapping

REDACTED = "[REDACTED]"

DEFAULT_SENSITIVE_FIELDS = (
    "password", "confirm_password", "current_password", "new_password",
    "token", "secret", "password_hash",
)


def _normalize(key: str) -> str:
    return key.lower().replace("_", "").replace("-", "")


class Redactor:
    def __init__(self, sensitive_fields: Iterable[str] = DEFAULT_SENSITIVE_FIELDS):
        self._fields = frozenset(_normalize(f) for f in sensitive_fields)

    def is_sensitive(self, key: str) -> bool:
        return _normalize(str(key)) in self._fields

    def redact(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {
                k: REDACTED if self.is_sensitive(k) else self.redact(v)
                for k, v in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [self.redact(v) for v in value]
        return value


def redact(value: Any, sensitive_fields: Iterable[str] = DEFAULT_SENSITIVE_FIELDS) -> Any:
    return Redactor(sensitive_fields).redact(value)
