from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field

MAX_EVENTS = 10_000


@dataclass(frozen=True)
class RankingEvent:
    """One served ranking request, recorded after the response is decided."""

    surface: str
    limit: int
    source: str
    count: int
    response_time_ms: float
    not_modified: bool = False
    region: str | None = None
    category: str | None = None
    failures: tuple[str, ...] = ()
    timestamp: float = field(default_factory=time.time)

    @property
    def tiers(self) -> list[str]:
        """Tiers that contributed candidates; empty when nothing was served."""
        return [] if self.source == "none" else self.source.split("+")

    @property
    def short(self) -> bool:
        return 0 < self.count < self.limit


# Oldest events drop off once the buffer is full.
_events: deque[RankingEvent] = deque(maxlen=MAX_EVENTS)


def record_event(event: RankingEvent) -> None:
    _events.append(event)


def get_events(surface: str | None = None, since: float | None = None) -> list[RankingEvent]:
    return [
        e for e in _events
        if (surface is None or e.surface == surface)
        and (since is None or e.timestamp >= since)
    ]


def clear_events() -> None:
    _events.clear()
