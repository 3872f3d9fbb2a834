"""In-Memory Event Store - bounded log of every published Event, with simple queries.

Invariants:
    - Append order is publication order; oldest events drop first beyond max_events
    - attach() subscribes to the wildcard, so the store sees every event type
"""

from collections import Counter, deque

from command_core.core.domain_types import SubscriptionToken
from command_core.core.events import WILDCARD, Event


class InMemoryEventStore:
    def __init__(self, max_events: int = 10_000):
        self._events: deque[Event] = deque(maxlen=max_events)

    async def handle(self, event: Event) -> None:
        self.append(event)

    def append(self, event: Event) -> None:
        self._events.append(event)

    def attach(self, event_bus) -> SubscriptionToken:
        return event_bus.subscribe(WILDCARD, self)

    @property
    def events(self) -> list[Event]:
        return list(self._events)

    def by_type(self, event_type: str) -> list[Event]:
        return [e for e in self._events if e.type == event_type]

    def by_correlation(self, correlation_id: str) -> list[Event]:
        return [e for e in self._events if e.metadata.correlation_id == correlation_id]

    def by_actor(self, actor_id: str) -> list[Event]:
        return [e for e in self._events if e.metadata.actor_id == actor_id]

    def stats(self) -> dict:
        return {
            "total": len(self._events),
            "by_type": dict(Counter(e.type for e in self._events)),
        }

    def clear(self) -> None:
        self._events.clear()
