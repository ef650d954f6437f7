"""Store adapter interfaces consumed by the timing engine.

The real implementations live in the storage layer of the parent
application. Adapters signal failure by raising ``StoreUnavailable``;
``TimeoutError`` and ``ConnectionError`` are accepted too and converted by
``call_store``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, TypeVar

from .errors import StoreUnavailable
from .types import Entry, EntryStatus, Race, RaceStatus, RecordView, TimingRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Tables the change feed reports on
RACES_TABLE = "races"
ENTRIES_TABLE = "entries"
RESULTS_TABLE = "race_results"
WATCHED_TABLES = frozenset({RACES_TABLE, ENTRIES_TABLE, RESULTS_TABLE})


class ResultStore(Protocol):
    def create_timing_record(
        self,
        entry_id: int,
        *,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        adjustment: Optional[int] = None,
        status: Optional[EntryStatus] = None,
    ) -> TimingRecord:
        ...

    def update_timing_record(self, record_id: int, **fields) -> None:
        ...

    def list_records_for_entry(self, entry_id: int) -> Sequence[TimingRecord]:
        ...

    def list_records_for_race(self, race_id: int) -> Sequence[RecordView]:
        ...


class RaceStore(Protocol):
    def get_race(self, race_id: int) -> Race:
        ...

    def set_race_actual_start(self, race_id: int, time: int) -> None:
        """Persist the actual start instant and move the race to STARTED."""
        ...

    def set_race_status(self, race_id: int, status: RaceStatus) -> None:
        ...

    def set_entry_status(self, entry_id: int, status: EntryStatus) -> None:
        ...

    def list_entries_for_race(self, race_id: int) -> Sequence[Entry]:
        ...


@dataclass(frozen=True)
class ChangeNotification:
    """'Table X changed'. The payload is never trusted; consumers re-fetch."""

    table: str
    race_id: Optional[int] = None


def call_store(operation: str, fn: Callable[..., T], *args, **kwargs) -> T:
    """Run an adapter call, normalising transport failures to StoreUnavailable."""
    try:
        return fn(*args, **kwargs)
    except StoreUnavailable as exc:
        logger.warning(f"Store call {operation} failed: {exc}")
        raise
    except (TimeoutError, ConnectionError) as exc:
        logger.warning(f"Store call {operation} failed: {exc!r}")
        raise StoreUnavailable(f"{operation} failed: {exc}") from exc


__all__ = [
    "ResultStore",
    "RaceStore",
    "ChangeNotification",
    "call_store",
    "RACES_TABLE",
    "ENTRIES_TABLE",
    "RESULTS_TABLE",
    "WATCHED_TABLES",
]
