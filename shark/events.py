"""
shark/events.py - Notifications emitted by the registry and payout engine.

Frozen dataclasses, one per notification, plus a small synchronous bus that
keeps history and fans out to subscribers (the arena persists them, tests
inspect them).
"""

import logging
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TournamentCreated:
    id: int

    name = "TournamentCreated"

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.name, **asdict(self)}


@dataclass(frozen=True)
class TournamentStarted:
    id: int

    name = "TournamentStarted"

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.name, **asdict(self)}


@dataclass(frozen=True)
class TournamentEnded:
    id: int

    name = "TournamentEnded"

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.name, **asdict(self)}


@dataclass(frozen=True)
class PlayerJoined:
    id: int
    player: str
    amount: int

    name = "PlayerJoined"

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.name, **asdict(self)}


@dataclass(frozen=True)
class PrizePoolDistributed:
    id: int
    owner_cut: int
    remaining_pool: int

    name = "PrizePoolDistributed"

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.name, **asdict(self)}


Event = TournamentCreated | TournamentStarted | TournamentEnded | PlayerJoined | PrizePoolDistributed

EVENT_TYPES: dict[str, type] = {
    cls.name: cls
    for cls in (TournamentCreated, TournamentStarted, TournamentEnded, PlayerJoined, PrizePoolDistributed)
}


def event_from_dict(data: dict[str, Any]) -> Event:
    """Rebuild an event from its ``to_dict()`` form."""
    fields = dict(data)
    cls = EVENT_TYPES[fields.pop("event")]
    return cls(**fields)


DEFAULT_MAX_HISTORY = 1000


class EventBus:
    """Synchronous fan-out with history.

    Subscribers run inline, in registration order. A subscriber that raises
    is logged and skipped so one bad listener can't wedge the ledger after
    its state has already changed.

    Only the newest ``max_history`` events are kept in memory; the arena
    persists the full log in SQLite. ``max_history=None`` keeps everything.
    """

    def __init__(self, max_history: int | None = DEFAULT_MAX_HISTORY):
        self._history: deque[Event] = deque(maxlen=max_history)
        self._subscribers: list[Callable[[Event], None]] = []

    def subscribe(self, callback: Callable[[Event], None]) -> None:
        self._subscribers.append(callback)

    def emit(self, event: Event) -> None:
        self._history.append(event)
        logger.debug(f"Event: {event}")
        for callback in self._subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Event subscriber failed on {event.name}: {e}")

    def history(self, tournament_id: int | None = None, name: str | None = None) -> list[Event]:
        """Past events, optionally filtered by tournament and event name."""
        return [
            e for e in self._history
            if (tournament_id is None or e.id == tournament_id)
            and (name is None or e.name == name)
        ]

    def __len__(self) -> int:
        return len(self._history)
