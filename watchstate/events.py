"""Typed events published by the tracker to its UI consumers."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """Base class for all events."""

    user_id: str


@dataclass(frozen=True)
class WatchStateChanged(Event):
    nmr: int
    season_numbers: Tuple[int, ...]
    mode: str
    newly_watched: int = 0
    rewatched: int = 0
    unwatched: int = 0


@dataclass(frozen=True)
class RewatchStarted(Event):
    nmr: int
    round: int


@dataclass(frozen=True)
class RewatchCompleted(Event):
    nmr: int
    round: int


@dataclass(frozen=True)
class SeriesCompleted(Event):
    series_id: int
    title: str


@dataclass(frozen=True)
class WriteFailed(Event):
    path: str
    error: str
    nmr: Optional[int] = None


Handler = Callable[[Event], None]


@dataclass
class EventChannel:
    """Dispatch events to handlers registered per event type.

    Handlers registered for ``Event`` receive everything.
    """

    _handlers: Dict[Type[Event], List[Handler]] = field(default_factory=lambda: defaultdict(list))

    def subscribe(self, event_type: Type[Event], handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event: Event) -> None:
        for event_type, handlers in list(self._handlers.items()):
            if not isinstance(event, event_type):
                continue
            for handler in list(handlers):
                try:
                    handler(event)
                except Exception:
                    logger.exception("Handler failed for %s", type(event).__name__)
