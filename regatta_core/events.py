"""Operator timing events.

An event is created the instant an operator marks a time. It is either
pending (no boat identified yet) or assigned (linked to an entry and its
timing record). Events are in-memory only; records are what gets persisted.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .types import EventKind, RecordView


@dataclass(frozen=True)
class PendingEvent:
    id: str
    kind: EventKind
    captured_at: int

    @property
    def is_pending(self) -> bool:
        return True


@dataclass(frozen=True)
class AssignedEvent:
    id: str
    kind: EventKind
    captured_at: int
    entry_id: int
    bow_number: int
    record_id: int
    team_name: str = ""
    # The backing record has an end time (start events flip when the boat finishes)
    finished: bool = False

    @property
    def is_pending(self) -> bool:
        return False

    @property
    def key(self) -> Tuple[int, EventKind]:
        return (self.record_id, self.kind)


TimingEvent = Union[PendingEvent, AssignedEvent]


def new_event_id() -> str:
    return uuid.uuid4().hex


def assign(
    event: PendingEvent,
    *,
    entry_id: int,
    bow_number: int,
    record_id: int,
    team_name: str = "",
    finished: bool = False,
) -> AssignedEvent:
    """Bind a pending event to a boat, keeping its id and capture time."""
    return AssignedEvent(
        id=event.id,
        kind=event.kind,
        captured_at=event.captured_at,
        entry_id=entry_id,
        bow_number=bow_number,
        record_id=record_id,
        team_name=team_name,
        finished=finished,
    )


def order_events(events: Iterable[TimingEvent]) -> List[TimingEvent]:
    """Most recent capture first. Equal capture times keep their input order."""
    return sorted(events, key=lambda e: e.captured_at, reverse=True)


def events_from_records(
    views: Sequence[RecordView],
    existing: Iterable[TimingEvent] = (),
) -> List[AssignedEvent]:
    """Rebuild assigned events from persisted records.

    One start event per record with a start time, plus a finish event when
    the record has an end time. Events already known for the same
    (record, kind) keep their id so references held by the UI stay valid.
    """
    known_ids: Dict[Tuple[int, EventKind], str] = {
        e.key: e.id for e in existing if isinstance(e, AssignedEvent)
    }
    rebuilt: List[AssignedEvent] = []
    for view in views:
        record = view.record
        if record.start_time is None:
            continue
        finished = record.end_time is not None
        # Finish before start: a finish is always marked after its start, and
        # equal capture times keep input order
        if finished:
            rebuilt.append(
                AssignedEvent(
                    id=known_ids.get((record.id, EventKind.FINISH)) or f"finish-{record.id}",
                    kind=EventKind.FINISH,
                    captured_at=record.end_time,
                    entry_id=record.entry_id,
                    bow_number=view.bow_number,
                    record_id=record.id,
                    team_name=view.team_name,
                    finished=True,
                )
            )
        rebuilt.append(
            AssignedEvent(
                id=known_ids.get((record.id, EventKind.START)) or f"start-{record.id}",
                kind=EventKind.START,
                captured_at=record.start_time,
                entry_id=record.entry_id,
                bow_number=view.bow_number,
                record_id=record.id,
                team_name=view.team_name,
                finished=finished,
            )
        )
    return rebuilt


def mark_start_finished(events: Iterable[TimingEvent], record_id: int) -> List[TimingEvent]:
    out: List[TimingEvent] = []
    for e in events:
        if isinstance(e, AssignedEvent) and e.record_id == record_id and e.kind == EventKind.START:
            e = replace(e, finished=True)
        out.append(e)
    return out


def find_event(events: Iterable[TimingEvent], event_id: str) -> Optional[TimingEvent]:
    for e in events:
        if e.id == event_id:
            return e
    return None
