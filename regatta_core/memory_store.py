"""In-process implementation of the result and race store adapters.

Used by the test-suite and by embedding applications that keep a race in
memory. Every successful write emits a ``ChangeNotification`` to the
subscribers, synchronously, after the write has been applied.
"""
from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from .errors import StoreUnavailable
from .store import ENTRIES_TABLE, RACES_TABLE, RESULTS_TABLE, ChangeNotification
from .types import Entry, EntryStatus, Race, RaceStatus, RecordView, TimingRecord

logger = logging.getLogger(__name__)

Subscriber = Callable[[ChangeNotification], None]

_UPDATABLE_RECORD_FIELDS = frozenset({"start_time", "end_time", "adjustment", "status"})


class MemoryStore:
    """Implements both ``ResultStore`` and ``RaceStore``."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._races: Dict[int, Race] = {}
        self._entries: Dict[int, Entry] = {}
        self._records: Dict[int, TimingRecord] = {}
        self._record_ids = itertools.count(1)
        self._subscribers: List[Subscriber] = []
        self._failures_left = 0
        self._failing_operation: Optional[str] = None
        # (operation, key) for every applied write; lets callers assert "no mutation"
        self.writes: List[tuple] = []

    # ---- seeding (roster CRUD lives outside the timing core) ----

    def add_race(self, race: Race) -> Race:
        with self._lock:
            self._races[race.id] = race
        return race

    def add_entry(self, entry: Entry) -> Entry:
        with self._lock:
            for other in self._entries.values():
                if (
                    other.race_id == entry.race_id
                    and other.bow_number == entry.bow_number
                    and other.id != entry.id
                ):
                    raise ValueError(f"Bow number {entry.bow_number} already used in race {entry.race_id}")
            self._entries[entry.id] = entry
        return entry

    # ---- fault injection ----

    def fail_next(self, count: int = 1, operation: Optional[str] = None) -> None:
        """Make the next ``count`` adapter calls (of ``operation`` only, if given) fail."""
        self._failures_left = count
        self._failing_operation = operation

    def _check_available(self, operation: str) -> None:
        if self._failures_left <= 0:
            return
        if self._failing_operation is not None and self._failing_operation != operation:
            return
        self._failures_left -= 1
        raise StoreUnavailable(f"{operation}: store unavailable")

    # ---- change feed ----

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self, table: str, race_id: Optional[int]) -> None:
        notification = ChangeNotification(table=table, race_id=race_id)
        for callback in list(self._subscribers):
            callback(notification)

    # ---- RaceStore ----

    def _race(self, race_id: int) -> Race:
        race = self._races.get(race_id)
        if race is None:
            raise KeyError(f"Race {race_id} not found")
        return race

    def get_race(self, race_id: int) -> Race:
        self._check_available("get_race")
        with self._lock:
            return self._race(race_id)

    def set_race_actual_start(self, race_id: int, time: int) -> None:
        self._check_available("set_race_actual_start")
        with self._lock:
            race = self._race(race_id)
            self._races[race_id] = replace(race, actual_start=time, status=RaceStatus.STARTED)
            self.writes.append(("set_race_actual_start", race_id))
        self._emit(RACES_TABLE, race_id)

    def set_race_status(self, race_id: int, status: RaceStatus) -> None:
        self._check_available("set_race_status")
        with self._lock:
            race = self._race(race_id)
            self._races[race_id] = replace(race, status=RaceStatus(status))
            self.writes.append(("set_race_status", race_id))
        self._emit(RACES_TABLE, race_id)

    def set_entry_status(self, entry_id: int, status: EntryStatus) -> None:
        self._check_available("set_entry_status")
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise StoreUnavailable(f"Entry {entry_id} not found")
            self._entries[entry_id] = replace(entry, status=EntryStatus(status))
            self.writes.append(("set_entry_status", entry_id))
        self._emit(ENTRIES_TABLE, entry.race_id)

    def list_entries_for_race(self, race_id: int) -> List[Entry]:
        self._check_available("list_entries_for_race")
        with self._lock:
            entries = [e for e in self._entries.values() if e.race_id == race_id]
        return sorted(entries, key=lambda e: e.bow_number)

    # ---- ResultStore ----

    def create_timing_record(
        self,
        entry_id: int,
        *,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        adjustment: Optional[int] = None,
        status: Optional[EntryStatus] = None,
    ) -> TimingRecord:
        self._check_available("create_timing_record")
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise StoreUnavailable(f"Entry {entry_id} not found")
            record = TimingRecord(
                id=next(self._record_ids),
                entry_id=entry_id,
                start_time=start_time,
                end_time=end_time,
                adjustment=adjustment,
                status=EntryStatus(status) if status is not None else None,
            )
            self._records[record.id] = record
            self.writes.append(("create_timing_record", record.id))
        logger.debug(f"Created timing record {record.id} for entry {entry_id}")
        self._emit(RESULTS_TABLE, entry.race_id)
        return record

    def update_timing_record(self, record_id: int, **fields) -> None:
        self._check_available("update_timing_record")
        unknown = set(fields) - _UPDATABLE_RECORD_FIELDS
        if unknown:
            raise ValueError(f"Cannot update timing record fields: {sorted(unknown)}")
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise StoreUnavailable(f"Timing record {record_id} not found")
            if fields.get("status") is not None:
                fields["status"] = EntryStatus(fields["status"])
            self._records[record_id] = replace(record, **fields)
            self.writes.append(("update_timing_record", record_id))
            entry = self._entries.get(record.entry_id)
        self._emit(RESULTS_TABLE, entry.race_id if entry else None)

    def list_records_for_entry(self, entry_id: int) -> List[TimingRecord]:
        self._check_available("list_records_for_entry")
        with self._lock:
            return [r for r in self._records.values() if r.entry_id == entry_id]

    def list_records_for_race(self, race_id: int) -> List[RecordView]:
        self._check_available("list_records_for_race")
        with self._lock:
            views = []
            for record in self._records.values():
                entry = self._entries.get(record.entry_id)
                if entry is None or entry.race_id != race_id:
                    continue
                views.append(
                    RecordView(record=record, bow_number=entry.bow_number, team_name=entry.display_name)
                )
        return views

    def delete_timing_record(self, record_id: int) -> None:
        """Remove a record, as an official correcting the results would."""
        with self._lock:
            record = self._records.pop(record_id)
            self.writes.append(("delete_timing_record", record_id))
            entry = self._entries.get(record.entry_id)
        self._emit(RESULTS_TABLE, entry.race_id if entry else None)

    def get_record(self, record_id: int) -> TimingRecord:
        with self._lock:
            return self._records[record_id]
