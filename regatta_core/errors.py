"""Timing engine error taxonomy.

Precondition violations are raised before any store write and represent
operator input errors. ``StoreUnavailable`` is the only transient failure;
the operator re-initiates the action.
"""
from __future__ import annotations


class TimingError(Exception):
    """Base class for every rejected timing action."""

    kind = "timing_error"
    status_code = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class UnknownBowNumber(TimingError):
    kind = "unknown_bow_number"
    status_code = 404

    def __init__(self, bow_number: int):
        super().__init__(f"Bow number {bow_number} not found in this race")
        self.bow_number = bow_number


class UnknownTimingEvent(TimingError):
    kind = "unknown_timing_event"
    status_code = 404


class AlreadyStarted(TimingError):
    kind = "already_started"
    status_code = 409


class AlreadyFinished(TimingError):
    kind = "already_finished"
    status_code = 409


class NotYetStarted(TimingError):
    kind = "not_yet_started"
    status_code = 409


class AlreadyAssigned(TimingError):
    kind = "already_assigned"
    status_code = 409


class ConflictingRecords(TimingError):
    """More than one ON_WATER record exists for a single entry."""

    kind = "conflicting_records"
    status_code = 409


class InvalidClockTransition(TimingError):
    kind = "invalid_clock_transition"
    status_code = 409


class NotAHeadRace(TimingError):
    kind = "not_a_head_race"
    status_code = 400


class StoreUnavailable(TimingError):
    kind = "store_unavailable"
    status_code = 503


__all__ = [
    "TimingError",
    "UnknownBowNumber",
    "UnknownTimingEvent",
    "AlreadyStarted",
    "AlreadyFinished",
    "NotYetStarted",
    "AlreadyAssigned",
    "ConflictingRecords",
    "InvalidClockTransition",
    "NotAHeadRace",
    "StoreUnavailable",
]
