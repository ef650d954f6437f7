"""Type definitions for races, entries and timing records.

Status values match what the storage layer persists (``on_water``,
``finished``...), so enum members can be built straight from stored rows.
All instants are epoch milliseconds (UTC).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class RaceStatus(str, Enum):
    SCHEDULED = "scheduled"
    READY = "ready"
    STARTED = "started"
    FINISHED = "finished"
    CANCELLED = "cancelled"
    ABANDONED = "abandoned"


class RaceKind(str, Enum):
    TIME_TRIAL = "time_trial"
    HEAD_RACE = "head_race"
    SPRINT = "sprint"


class EntryStatus(str, Enum):
    """A boat's participation status in one race."""

    ENTERED = "entered"
    READY = "ready"
    ON_WATER = "on_water"
    FINISHED = "finished"
    DNS = "dns"
    DNF = "dnf"
    DSQ = "dsq"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def unranked(self) -> bool:
        """True for statuses carried outside the elapsed-time ranking."""
        return self in _UNRANKED


_TERMINAL = frozenset({EntryStatus.FINISHED, EntryStatus.DNS, EntryStatus.DNF, EntryStatus.DSQ})
_UNRANKED = frozenset({EntryStatus.DNS, EntryStatus.DNF, EntryStatus.DSQ})

# Timing records only ever mirror these two entry states.
RECORD_STATUSES = frozenset({EntryStatus.ON_WATER, EntryStatus.FINISHED})


class ClockState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


class EventKind(str, Enum):
    START = "start"
    FINISH = "finish"


@dataclass(frozen=True)
class Race:
    id: int
    kind: RaceKind = RaceKind.HEAD_RACE
    status: RaceStatus = RaceStatus.SCHEDULED
    name: str = ""
    scheduled_start: Optional[int] = None
    actual_start: Optional[int] = None


@dataclass(frozen=True)
class Entry:
    """A team's registered boat in one race."""

    id: int
    team_id: int
    race_id: int
    bow_number: int
    status: EntryStatus = EntryStatus.ENTERED
    team_name: str = ""
    # Letter separating several boats of the same team ("A", "B", ...)
    level: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.level:
            return f"{self.team_name} {self.level}".strip()
        return self.team_name


@dataclass(frozen=True)
class TimingRecord:
    """Persisted start/end pair for one entry's attempt."""

    id: int
    entry_id: int
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    adjustment: Optional[int] = None
    status: Optional[EntryStatus] = None

    @property
    def is_active(self) -> bool:
        return self.status == EntryStatus.ON_WATER

    @property
    def elapsed_ms(self) -> Optional[int]:
        if self.start_time is None or self.end_time is None:
            return None
        return self.end_time - self.start_time


@dataclass(frozen=True)
class RecordView:
    """A timing record joined with its entry's display fields."""

    record: TimingRecord
    bow_number: int
    team_name: str = ""

    @property
    def id(self) -> int:
        return self.record.id

    @property
    def entry_id(self) -> int:
        return self.record.entry_id
