"""Head-race timing engine.

Owns the race clock and turns operator actions into timing records:

- start_clock / stop_clock: NOT_STARTED -> RUNNING -> STOPPED
- mark_time: stamps a start or finish, optionally for a known bow number
- assign_bow_number: binds a pending event to a boat, using the event's
  original capture time
- apply_external_change: merges an authoritative store snapshot into the
  in-memory state (used by the change-feed reconciler)

Every precondition is checked before any store write. A failed store write
raises StoreUnavailable and leaves local state untouched. Start/finish
preconditions are re-validated against records fetched from the store, not
only the local cache, so a second station's write is seen.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .clock import format_elapsed, now_ms
from .errors import (
    AlreadyAssigned,
    AlreadyFinished,
    AlreadyStarted,
    ConflictingRecords,
    InvalidClockTransition,
    NotAHeadRace,
    NotYetStarted,
    StoreUnavailable,
    UnknownTimingEvent,
)
from .events import (
    AssignedEvent,
    PendingEvent,
    TimingEvent,
    assign,
    events_from_records,
    find_event,
    mark_start_finished,
    new_event_id,
    order_events,
)
from .results import ResultsTable, compute_results
from .roster import Roster, assign_levels
from .store import RaceStore, ResultStore, call_store
from .types import (
    ClockState,
    Entry,
    EntryStatus,
    EventKind,
    Race,
    RaceKind,
    RaceStatus,
    RecordView,
    TimingRecord,
)

logger = logging.getLogger(__name__)

# Race statuses after which no more times can be taken
_CLOSED_STATUSES = frozenset({RaceStatus.FINISHED, RaceStatus.CANCELLED, RaceStatus.ABANDONED})

# Forward progress of an entry through a race. DNS/DNF/DSQ are set by officials
# and never derived from records.
_PROGRESS = {
    EntryStatus.ENTERED: 0,
    EntryStatus.READY: 1,
    EntryStatus.ON_WATER: 2,
    EntryStatus.FINISHED: 3,
}


@dataclass(frozen=True)
class RaceSnapshot:
    """Authoritative state of one race as read from the stores."""

    race: Race
    entries: tuple
    records: tuple
    # Engine write sequence read before the fetch; None when unknown
    as_of: Optional[int] = None


def fetch_snapshot(
    race_id: int,
    *,
    races: RaceStore,
    results: ResultStore,
    as_of: Optional[int] = None,
) -> RaceSnapshot:
    """Read race, roster and records.

    Pass ``as_of=engine.write_seq`` taken before the call so the engine can
    tell which of its own writes the snapshot is guaranteed to include.
    """
    race = call_store("get_race", races.get_race, race_id)
    entries = call_store("list_entries_for_race", races.list_entries_for_race, race_id)
    records = call_store("list_records_for_race", results.list_records_for_race, race_id)
    entries = assign_levels(entries)
    names = {e.id: e.display_name for e in entries}
    records = [
        replace(view, team_name=names[view.entry_id]) if view.entry_id in names else view
        for view in records
    ]
    return RaceSnapshot(race=race, entries=tuple(entries), records=tuple(records), as_of=as_of)


def _catch_up_statuses(entries: Sequence[Entry], records) -> List[Entry]:
    """Move entries whose stored status lags their timing records forward.

    A boat with an ON_WATER record is at least on the water, and one whose
    record has an end time is finished. Statuses never move backwards.
    """
    implied: Dict[int, EntryStatus] = {}
    for view in records:
        if view.record.is_active:
            status = EntryStatus.ON_WATER
        elif view.record.end_time is not None:
            status = EntryStatus.FINISHED
        else:
            continue
        current = implied.get(view.entry_id)
        if current is None or _PROGRESS[status] > _PROGRESS[current]:
            implied[view.entry_id] = status
    out = []
    for entry in entries:
        status = implied.get(entry.id)
        lagging = status is not None and entry.status in _PROGRESS
        if lagging and _PROGRESS[entry.status] < _PROGRESS[status]:
            entry = replace(entry, status=status)
        out.append(entry)
    return out


class TimingEngine:
    def __init__(
        self,
        race: Race,
        *,
        races: RaceStore,
        results: ResultStore,
        entries: Sequence[Entry] = (),
        records: Sequence[RecordView] = (),
        now: Optional[Callable[[], int]] = None,
    ):
        if race.kind != RaceKind.HEAD_RACE:
            raise NotAHeadRace(f"Race {race.id} is a {race.kind.value}; timing is only for head races")
        self.race_id = race.id
        self._races = races
        self._results = results
        self._now = now or now_ms
        self._lock = threading.RLock()

        self._race = race
        self._roster = Roster(entries)
        self._records: Dict[int, RecordView] = {view.id: view for view in records}
        # Records written locally, keyed by id, with the write sequence number
        # they were written under; dropped once a later snapshot covers them
        self._in_flight: Dict[int, Tuple[int, RecordView]] = {}
        self._write_seq = 0
        # Entry statuses whose store write failed and must be re-issued
        self._status_repairs: Dict[int, EntryStatus] = {}
        self._events: List[TimingEvent] = order_events(events_from_records(records))

        self.actual_start: Optional[int] = race.actual_start
        self.stopped_at: Optional[int] = None
        if race.status in _CLOSED_STATUSES:
            self.clock_state = ClockState.STOPPED
            self.stopped_at = self._fallback_stop_instant()
        elif race.actual_start is not None:
            self.clock_state = ClockState.RUNNING
        else:
            self.clock_state = ClockState.NOT_STARTED

    @classmethod
    def load(
        cls,
        race_id: int,
        *,
        races: RaceStore,
        results: ResultStore,
        now: Optional[Callable[[], int]] = None,
    ) -> "TimingEngine":
        """Initial load: race, roster and existing records from the stores."""
        snapshot = fetch_snapshot(race_id, races=races, results=results)
        engine = cls(
            snapshot.race,
            races=races,
            results=results,
            entries=snapshot.entries,
            records=snapshot.records,
            now=now,
        )
        logger.info(
            f"Loaded race {race_id}: clock={engine.clock_state.value} "
            f"entries={len(snapshot.entries)} records={len(snapshot.records)}"
        )
        return engine

    # ---- read side ----

    def now(self) -> int:
        """The engine's wall clock (epoch ms)."""
        return self._now()

    @property
    def race(self) -> Race:
        return self._race

    @property
    def roster(self) -> Roster:
        return self._roster

    def events(self) -> List[TimingEvent]:
        with self._lock:
            return list(self._events)

    def pending_events(self) -> List[PendingEvent]:
        with self._lock:
            return [e for e in self._events if isinstance(e, PendingEvent)]

    def records(self) -> List[RecordView]:
        with self._lock:
            return list(self._records.values())

    def results(self) -> ResultsTable:
        with self._lock:
            return compute_results(self._records.values(), self._roster.entries())

    @property
    def write_seq(self) -> int:
        """Number of record writes this engine has made."""
        return self._write_seq

    def unsynced_entries(self) -> Dict[int, EntryStatus]:
        """Entry statuses the store has not accepted yet, by entry id."""
        with self._lock:
            return dict(self._status_repairs)

    def elapsed_ms(self, now: Optional[int] = None) -> int:
        with self._lock:
            if self.clock_state == ClockState.NOT_STARTED or self.actual_start is None:
                return 0
            if self.clock_state == ClockState.STOPPED:
                end = self.stopped_at if self.stopped_at is not None else self.actual_start
            else:
                end = now if now is not None else self._now()
            return max(0, end - self.actual_start)

    def elapsed_display(self, now: Optional[int] = None) -> str:
        return format_elapsed(self.elapsed_ms(now))

    # ---- clock ----

    def start_clock(self) -> int:
        with self._lock:
            if self.clock_state != ClockState.NOT_STARTED:
                raise InvalidClockTransition(
                    f"Cannot start the clock while it is {self.clock_state.value}"
                )
            started_at = self._now()
            call_store(
                "set_race_actual_start", self._races.set_race_actual_start, self.race_id, started_at
            )
            self.actual_start = started_at
            self._race = replace(self._race, actual_start=started_at, status=RaceStatus.STARTED)
            self.clock_state = ClockState.RUNNING
            logger.info(f"Race {self.race_id} clock started at {started_at}")
            return started_at

    def stop_clock(self) -> int:
        with self._lock:
            if self.clock_state != ClockState.RUNNING:
                raise InvalidClockTransition(
                    f"Cannot stop the clock while it is {self.clock_state.value}"
                )
            stopped_at = self._now()
            call_store(
                "set_race_status", self._races.set_race_status, self.race_id, RaceStatus.FINISHED
            )
            self.stopped_at = stopped_at
            self._race = replace(self._race, status=RaceStatus.FINISHED)
            self.clock_state = ClockState.STOPPED
            logger.info(
                f"Race {self.race_id} clock stopped at {self.elapsed_display()}"
            )
            return stopped_at

    # ---- operator actions ----

    def mark_time(
        self,
        kind: EventKind,
        captured_at: int,
        bow_number: Optional[int] = None,
    ) -> TimingEvent:
        kind = EventKind(kind)
        with self._lock:
            self._require_running("mark a time")
            event = PendingEvent(id=new_event_id(), kind=kind, captured_at=captured_at)
            if bow_number is None:
                self._events = order_events([event, *self._events])
                logger.debug(f"Pending {kind.value} captured at {captured_at}")
                return event
            entry = self._roster.resolve(bow_number)
            return self._apply(event, entry)

    def assign_bow_number(self, event_id: str, bow_number: int) -> AssignedEvent:
        with self._lock:
            self._require_running("assign a bow number")
            event = find_event(self._events, event_id)
            if event is None:
                raise UnknownTimingEvent(f"No timing event {event_id}")
            if not isinstance(event, PendingEvent):
                raise AlreadyAssigned(
                    f"Event {event_id} is already assigned to bow number {event.bow_number}"
                )
            entry = self._roster.resolve(bow_number)
            return self._apply(event, entry)

    def _require_running(self, action: str) -> None:
        if self.clock_state != ClockState.RUNNING:
            raise InvalidClockTransition(
                f"Cannot {action} while the clock is {self.clock_state.value}"
            )

    def _apply(self, event: PendingEvent, entry: Entry) -> AssignedEvent:
        if event.kind == EventKind.START:
            return self._apply_start(event, entry)
        return self._apply_finish(event, entry)

    def _apply_start(self, event: PendingEvent, entry: Entry) -> AssignedEvent:
        existing = self._fetch_entry_records(entry)
        if any(r.start_time is not None or r.is_active for r in existing):
            raise AlreadyStarted(f"Bow number {entry.bow_number} has already started")

        record = call_store(
            "create_timing_record",
            self._results.create_timing_record,
            entry.id,
            start_time=event.captured_at,
            status=EntryStatus.ON_WATER,
        )
        self._set_entry_status(entry, EntryStatus.ON_WATER)
        self._remember(RecordView(record=record, bow_number=entry.bow_number, team_name=entry.display_name))

        assigned = assign(
            event,
            entry_id=entry.id,
            bow_number=entry.bow_number,
            record_id=record.id,
            team_name=entry.display_name,
        )
        self._put_event(assigned)
        logger.debug(f"Bow {entry.bow_number} started at {event.captured_at} (record {record.id})")
        return assigned

    def _apply_finish(self, event: PendingEvent, entry: Entry) -> AssignedEvent:
        existing = self._fetch_entry_records(entry)
        active = [r for r in existing if r.is_active]
        if len(active) > 1:
            raise ConflictingRecords(
                f"Bow number {entry.bow_number} has {len(active)} records on the water"
            )
        if not active:
            if any(r.end_time is not None for r in existing):
                raise AlreadyFinished(f"Bow number {entry.bow_number} has already finished")
            raise NotYetStarted(f"Bow number {entry.bow_number} has not started yet")
        record = active[0]
        if record.end_time is not None:
            raise AlreadyFinished(f"Bow number {entry.bow_number} has already finished")
        if record.start_time is not None and event.captured_at < record.start_time:
            raise NotYetStarted(
                f"Finish time precedes the start of bow number {entry.bow_number}"
            )

        call_store(
            "update_timing_record",
            self._results.update_timing_record,
            record.id,
            end_time=event.captured_at,
            status=EntryStatus.FINISHED,
        )
        self._set_entry_status(entry, EntryStatus.FINISHED)
        finished = replace(record, end_time=event.captured_at, status=EntryStatus.FINISHED)
        self._remember(RecordView(record=finished, bow_number=entry.bow_number, team_name=entry.display_name))

        assigned = assign(
            event,
            entry_id=entry.id,
            bow_number=entry.bow_number,
            record_id=record.id,
            team_name=entry.display_name,
            finished=True,
        )
        self._events = mark_start_finished(self._events, record.id)
        self._put_event(assigned)
        logger.debug(
            f"Bow {entry.bow_number} finished at {event.captured_at} "
            f"(record {record.id}, elapsed {finished.elapsed_ms} ms)"
        )
        return assigned

    def _fetch_entry_records(self, entry: Entry) -> List[TimingRecord]:
        return list(
            call_store(
                "list_records_for_entry", self._results.list_records_for_entry, entry.id
            )
        )

    def _set_entry_status(self, entry: Entry, status: EntryStatus) -> None:
        self._roster = self._roster.with_status(entry.id, status)
        self._status_repairs.pop(entry.id, None)
        try:
            call_store("set_entry_status", self._races.set_entry_status, entry.id, status)
        except StoreUnavailable:
            # The timing record is already durable; the write is re-issued on
            # the next reconciliation.
            self._status_repairs[entry.id] = status
            logger.warning(
                f"Entry {entry.id} status not updated to {status.value}; timing record kept"
            )

    def _repair_entry_statuses(self) -> None:
        for entry_id, status in list(self._status_repairs.items()):
            if self._status_repairs.get(entry_id) != status:
                continue
            del self._status_repairs[entry_id]
            try:
                call_store("set_entry_status", self._races.set_entry_status, entry_id, status)
            except StoreUnavailable:
                self._status_repairs.setdefault(entry_id, status)
                logger.warning(f"Entry {entry_id} status still not updated to {status.value}")
                continue
            self._roster = self._roster.with_status(entry_id, status)
            logger.info(f"Entry {entry_id} status repaired to {status.value}")

    def _remember(self, view: RecordView) -> None:
        self._write_seq += 1
        self._records[view.id] = view
        self._in_flight[view.id] = (self._write_seq, view)

    def _put_event(self, event: AssignedEvent) -> None:
        kept = [
            e
            for e in self._events
            if e.id != event.id and not (isinstance(e, AssignedEvent) and e.key == event.key)
        ]
        self._events = order_events([event, *kept])

    def _fallback_stop_instant(self) -> Optional[int]:
        if self.actual_start is None:
            return None
        instants = [self.actual_start]
        for view in self._records.values():
            instants.extend(t for t in (view.record.start_time, view.record.end_time) if t is not None)
        return max(instants)

    # ---- reconciliation ----

    def apply_external_change(self, snapshot: RaceSnapshot) -> None:
        """Merge an authoritative snapshot into the local state.

        Records are merged by identity. Local pending events have no store
        representation and are always kept; so are locally written records
        the snapshot does not reflect yet.
        """
        if snapshot.race.id != self.race_id:
            raise ValueError(f"Snapshot for race {snapshot.race.id} applied to race {self.race_id}")
        with self._lock:
            race = snapshot.race
            if self.actual_start is None and race.actual_start is not None:
                self.actual_start = race.actual_start
                if self.clock_state == ClockState.NOT_STARTED:
                    self.clock_state = ClockState.RUNNING
                    logger.info(f"Race {self.race_id} clock started by another station")
            if race.status in _CLOSED_STATUSES and self.clock_state != ClockState.STOPPED:
                self.clock_state = ClockState.STOPPED
                if self.stopped_at is None:
                    self.stopped_at = self._now()
                logger.info(f"Race {self.race_id} closed by another station ({race.status.value})")
            self._race = replace(race, actual_start=self.actual_start)

            fetched = {view.id: view for view in snapshot.records}
            for record_id, (seq, _) in list(self._in_flight.items()):
                if snapshot.as_of is not None:
                    # Fetched after the write: the store's copy wins, even if
                    # it changed or the record is gone
                    covered = seq <= snapshot.as_of
                else:
                    covered = record_id in fetched
                if covered:
                    del self._in_flight[record_id]
            merged = dict(fetched)
            merged.update({record_id: view for record_id, (_, view) in self._in_flight.items()})
            self._records = merged

            self._roster = Roster(_catch_up_statuses(snapshot.entries, merged.values()))
            for entry_id, status in list(self._status_repairs.items()):
                stored = next((e.status for e in snapshot.entries if e.id == entry_id), None)
                if stored not in _PROGRESS or _PROGRESS[stored] >= _PROGRESS[status]:
                    # Caught up by another writer, or overridden by an official
                    del self._status_repairs[entry_id]

            pending = [e for e in self._events if isinstance(e, PendingEvent)]
            rebuilt = events_from_records(list(merged.values()), existing=self._events)
            self._events = order_events([*pending, *rebuilt])
            logger.debug(
                f"Reconciled race {self.race_id}: records={len(merged)} "
                f"pending={len(pending)} in_flight={len(self._in_flight)}"
            )
            self._repair_entry_statuses()
