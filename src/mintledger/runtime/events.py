from __future__ import annotations

"""Observable ledger events.

The EventManager collects events for the current transition and forwards each
one to registered sinks. Sinks are fire-and-forget: a failing sink is logged
and skipped, it never fails the transition that emitted the event.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Tuple

from mintledger.runtime.ledger_logging import log_event

Json = Dict[str, Any]

EVENT_TYPE_MINT = "mint"
ATTRIBUTE_KEY_INFLATION = "inflation"
ATTRIBUTE_KEY_AMOUNT = "amount"

log = logging.getLogger("mintledger.events")


@dataclass(frozen=True, slots=True)
class Event:
    type: str
    attributes: Tuple[Tuple[str, str], ...] = ()

    def attr(self, key: str, default: str = "") -> str:
        for k, v in self.attributes:
            if k == key:
                return v
        return default

    def to_json(self) -> Json:
        return {"type": self.type, "attributes": [{"key": k, "value": v} for k, v in self.attributes]}


def new_event(type_: str, **attrs: Any) -> Event:
    return Event(type=str(type_), attributes=tuple((str(k), str(v)) for k, v in attrs.items()))


EventSink = Callable[[Event], None]


@dataclass
class EventManager:
    events: List[Event] = field(default_factory=list)
    sinks: List[EventSink] = field(default_factory=list)

    def emit(self, ev: Event) -> None:
        self.events.append(ev)
        for sink in list(self.sinks):
            try:
                sink(ev)
            except Exception as e:
                log_event(log, "event_sink_error", level=logging.WARNING, event_type=ev.type, error=str(e))

    def subscribe(self, sink: EventSink) -> None:
        self.sinks.append(sink)

    def of_type(self, type_: str) -> List[Event]:
        return [e for e in self.events if e.type == type_]

    def drain(self) -> List[Event]:
        out = list(self.events)
        self.events.clear()
        return out


__all__ = [
    "ATTRIBUTE_KEY_AMOUNT",
    "ATTRIBUTE_KEY_INFLATION",
    "EVENT_TYPE_MINT",
    "Event",
    "EventManager",
    "EventSink",
    "new_event",
]
