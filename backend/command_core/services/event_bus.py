"""Event Bus - in-process publish/subscribe with awaited, isolated handler fan-out.

Invariants:
    - publish() awaits every matching handler in subscription order before returning
    - A failing handler is caught, logged and reported; remaining handlers still run
    - "*" subscribers receive every event, interleaved by subscription order
    - Registry mutations and publish snapshots hold one threading.Lock; handlers are
      invoked outside it, so a handler may subscribe/unsubscribe safely
    - No durability: undelivered events are lost on process exit

Design Decisions:
    - Explicit awaited loop over fire-and-forget tasks: ordering and failure isolation
      stay deterministic and testable
    - Handlers may be plain callables (sync or async) or objects exposing handle(event)
"""

import inspect
import itertools
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable

from command_core.core.domain_types import SubscriptionToken
from command_core.core.events import Event, WILDCARD

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerFailure:
    token: SubscriptionToken
    event_type: str
    exception_type: str
    message: str


@dataclass
class DeliveryReport:
    event: Event
    delivered: int = 0
    failures: list[HandlerFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class _Subscription:
    token: SubscriptionToken
    event_type: str
    handler: Any
    sequence: int


class EventBus:
    def __init__(self):
        self._by_type: dict[str, dict[SubscriptionToken, _Subscription]] = {}
        self._by_token: dict[SubscriptionToken, _Subscription] = {}
        self._sequence = itertools.count()
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: Any) -> SubscriptionToken:
        if not event_type:
            raise ValueError("event_type is required")
        if not (callable(handler) or callable(getattr(handler, "handle", None))):
            raise TypeError("handler must be callable or expose handle(event)")
        token = SubscriptionToken(f"sub_{uuid.uuid4().hex}")
        with self._lock:
            sub = _Subscription(token, event_type, handler, next(self._sequence))
            self._by_type.setdefault(event_type, {})[token] = sub
            self._by_token[token] = sub
        logger.debug(f"Subscribed {token} to {event_type}", extra={"event_type": event_type})
        return token

    def unsubscribe(self, token: SubscriptionToken) -> bool:
        with self._lock:
            sub = self._by_token.pop(token, None)
            if sub is None:
                return False
            subs = self._by_type.get(sub.event_type, {})
            subs.pop(token, None)
            if not subs:
                self._by_type.pop(sub.event_type, None)
            return True

    def unsubscribe_all(self, event_type: str | None = None) -> int:
        with self._lock:
            if event_type is None:
                removed = len(self._by_token)
                self._by_type.clear()
                self._by_token.clear()
                return removed
            subs = self._by_type.pop(event_type, {})
            for token in subs:
                self._by_token.pop(token, None)
            return len(subs)

    def subscriber_count(self, event_type: str | None = None) -> int:
        with self._lock:
            if event_type is None:
                return len(self._by_token)
            return len(self._by_type.get(event_type, {}))

    async def publish(self, event: Event) -> DeliveryReport:
        with self._lock:
            matching = list(self._by_type.get(event.type, {}).values())
            matching += list(self._by_type.get(WILDCARD, {}).values())
        matching.sort(key=lambda s: s.sequence)

        report = DeliveryReport(event=event)
        for sub in matching:
            try:
                await _invoke(sub.handler, event)
                report.delivered += 1
            except Exception as e:
                logger.warning(
                    f"Event handler {sub.token} failed on {event.type}: {e}",
                    exc_info=True,
                    extra={
                        "event_type": event.type,
                        "correlation_id": event.metadata.correlation_id,
                    },
                )
                report.failures.append(HandlerFailure(
                    sub.token, event.type, type(e).__name__, str(e),
                ))
        return report

    async def publish_many(self, events: Iterable[Event]) -> list[DeliveryReport]:
        return [await self.publish(event) for event in events]


async def _invoke(handler: Any, event: Event) -> None:
    target = handler.handle if callable(getattr(handler, "handle", None)) else handler
    result = target(event)
    if inspect.isawaitable(result):
        await result
