"""Queries over one day's study plan entries.

The index is an immutable snapshot: build a new one whenever the day's plans
change. Entries are assumed valid (``start < end``); the write path enforces
that before anything is stored.

When several entries cover the same instant the winner is decided by
``(start, end, topic, storage position)``, so the answer never depends on the
order the store happens to return buckets in.
"""
from __future__ import annotations

import math
from datetime import datetime, time
from typing import Iterable, NamedTuple, Sequence

from tsureben.schemas.plan import StudyPlanEntry, parse_clock

HOURS = [f"{hour:02d}" for hour in range(24)]


class Slot(NamedTuple):
    hour: str
    entries: list[StudyPlanEntry]


def _instant_seconds(instant: datetime | time | str) -> tuple[str | None, int]:
    """Split an instant into (day or None, seconds since midnight)."""
    if isinstance(instant, str):
        if "T" in instant:
            instant = datetime.fromisoformat(instant)
        elif instant.count(":") == 2:
            instant = time.fromisoformat(instant)
        else:
            return None, parse_clock(instant) * 60
    if isinstance(instant, datetime):
        return instant.date().isoformat(), (
            instant.hour * 3600 + instant.minute * 60 + instant.second
        )
    return None, instant.hour * 3600 + instant.minute * 60 + instant.second


def overlaps(a: StudyPlanEntry, b: StudyPlanEntry) -> bool:
    return a.start_minutes < b.end_minutes and a.end_minutes > b.start_minutes


class ScheduleIndex:
    def __init__(self, entries: Iterable[StudyPlanEntry], day: str | None = None) -> None:
        self._entries: tuple[StudyPlanEntry, ...] = tuple(entries)
        self.day = day or (self._entries[0].date if self._entries else None)
        ranked = sorted(
            enumerate(self._entries),
            key=lambda item: (
                item[1].start_minutes,
                item[1].end_minutes,
                item[1].topic,
                item[0],
            ),
        )
        self._ordered: tuple[StudyPlanEntry, ...] = tuple(entry for _, entry in ranked)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Sequence[StudyPlanEntry]:
        """Entries in storage order."""
        return self._entries

    @property
    def ordered(self) -> Sequence[StudyPlanEntry]:
        """Entries in tie-break order."""
        return self._ordered

    def covering(self, instant: datetime | time | str) -> list[StudyPlanEntry]:
        day, seconds = _instant_seconds(instant)
        if day is not None and self.day is not None and day != self.day:
            return []
        return [
            entry
            for entry in self._ordered
            if entry.start_minutes * 60 <= seconds < entry.end_minutes * 60
        ]

    def find_covering(self, instant: datetime | time | str) -> StudyPlanEntry | None:
        matches = self.covering(instant)
        return matches[0] if matches else None

    def upcoming(self, instant: datetime | time | str) -> list[StudyPlanEntry]:
        """Entries that have not started yet at ``instant``."""
        day, seconds = _instant_seconds(instant)
        if day is not None and self.day is not None and day != self.day:
            return list(self._ordered) if day < self.day else []
        return [entry for entry in self._ordered if entry.start_minutes * 60 > seconds]

    def overlaps_with(self, entry: StudyPlanEntry) -> list[StudyPlanEntry]:
        return [other for other in self._ordered if overlaps(other, entry)]

    def masked_hours(self) -> set[str]:
        masked: set[str] = set()
        for entry in self._entries:
            duration_hours = (entry.end_minutes - entry.start_minutes) / 60
            start_hour = entry.start_minutes // 60
            for offset in range(1, math.ceil(duration_hours)):
                hour = start_hour + offset
                if hour < 24:
                    masked.add(f"{hour:02d}")
        return masked

    def slots(self) -> list[Slot]:
        """Calendar rows: one per visible hour, each entry rendered once.

        A row lists the entries starting in its hour plus anything overlapping
        the row's first entry. Entries that start inside a masked hour are
        folded into the row that masked it.
        """
        masked = self.masked_hours()
        shown: set[int] = set()
        slots: list[Slot] = []
        for hour in HOURS:
            starting = [
                (position, entry)
                for position, entry in enumerate(self._ordered)
                if position not in shown and entry.hour_bucket == hour
            ]
            if hour in masked:
                if slots and starting:
                    for position, entry in starting:
                        shown.add(position)
                        slots[-1].entries.append(entry)
                continue
            entries: list[StudyPlanEntry] = []
            if starting:
                master = starting[0][1]
                for position, entry in enumerate(self._ordered):
                    if position in shown:
                        continue
                    if entry.hour_bucket == hour or overlaps(entry, master):
                        shown.add(position)
                        entries.append(entry)
            slots.append(Slot(hour, entries))
        return slots
