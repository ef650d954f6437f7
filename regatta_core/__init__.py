from .commands import CommandOutcome, ValidationError, apply_command, event_payload
from .engine import RaceSnapshot, TimingEngine, fetch_snapshot
from .errors import (
    AlreadyAssigned,
    AlreadyFinished,
    AlreadyStarted,
    ConflictingRecords,
    InvalidClockTransition,
    NotAHeadRace,
    NotYetStarted,
    StoreUnavailable,
    TimingError,
    UnknownBowNumber,
    UnknownTimingEvent,
)
from .events import AssignedEvent, PendingEvent, TimingEvent
from .memory_store import MemoryStore
from .reconciler import ChangeFeedReconciler
from .results import ResultRow, ResultsTable, UnrankedRow, compute_results
from .store import ChangeNotification, RaceStore, ResultStore
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
from .validation import InputSanitizer, ValidatedCommand

__all__ = [
    "CommandOutcome",
    "ValidationError",
    "apply_command",
    "event_payload",
    "RaceSnapshot",
    "TimingEngine",
    "fetch_snapshot",
    "TimingError",
    "UnknownBowNumber",
    "UnknownTimingEvent",
    "AlreadyStarted",
    "AlreadyFinished",
    "AlreadyAssigned",
    "NotYetStarted",
    "ConflictingRecords",
    "InvalidClockTransition",
    "NotAHeadRace",
    "StoreUnavailable",
    "PendingEvent",
    "AssignedEvent",
    "TimingEvent",
    "MemoryStore",
    "ChangeFeedReconciler",
    "ResultRow",
    "ResultsTable",
    "UnrankedRow",
    "compute_results",
    "ChangeNotification",
    "RaceStore",
    "ResultStore",
    "ClockState",
    "Entry",
    "EntryStatus",
    "EventKind",
    "Race",
    "RaceKind",
    "RaceStatus",
    "RecordView",
    "TimingRecord",
    "ValidatedCommand",
    "InputSanitizer",
]
