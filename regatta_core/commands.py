"""Operator command surface for the timing engine.

Timing stations send plain dict commands with a 'type' field. apply_command()
validates the dict, routes it to the engine and returns a CommandOutcome that
the parent application (API/websocket layer) can serialize and broadcast.
Rejected actions never raise: the outcome carries a ValidationError with a
stable ``kind`` the UI can show the operator directly.

Command types:
- START_CLOCK: capture "now" as the race's actual start
- STOP_CLOCK: close the race; later marks are rejected
- MARK_TIME: {kind: start|finish, bowNumber?, capturedAt?}; a blank bow
  number leaves the event pending
- ASSIGN_BOW_NUMBER: {eventId, bowNumber}; binds a pending event using its
  original capture time
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from .engine import TimingEngine
from .errors import TimingError
from .events import AssignedEvent, TimingEvent
from .types import ClockState
from .validation import ValidatedCommand

logger = logging.getLogger(__name__)


@dataclass
class ValidationError:
    """Represents a rejected operator action."""

    kind: str
    message: str | None = None
    status_code: int | None = None


@dataclass
class CommandOutcome:
    """Result of applying an operator command."""

    ok: bool
    clock_state: ClockState
    cmd_payload: Dict[str, Any] = field(default_factory=dict)
    event: TimingEvent | None = None
    error: ValidationError | None = None


def event_payload(event: TimingEvent) -> Dict[str, Any]:
    """Wire shape of a timing event for the operator UI."""
    payload: Dict[str, Any] = {
        "id": event.id,
        "type": event.kind.value,
        "time": event.captured_at,
        "status": "pending",
        "bowNumber": None,
        "teamName": None,
        "raceResultId": None,
    }
    if isinstance(event, AssignedEvent):
        payload.update(
            {
                "status": "finished" if event.finished else "assigned",
                "bowNumber": event.bow_number,
                "teamName": event.team_name,
                "raceResultId": event.record_id,
            }
        )
    return payload


def _rejected(engine: TimingEngine, payload: Dict[str, Any], error: ValidationError) -> CommandOutcome:
    logger.warning(f"Command {payload.get('type')} rejected: {error.kind} ({error.message})")
    return CommandOutcome(ok=False, clock_state=engine.clock_state, cmd_payload=payload, error=error)


def apply_command(engine: TimingEngine, cmd: Dict[str, Any]) -> CommandOutcome:
    """Validate and apply an operator command.

    Args:
        engine: Timing engine for the race the station is working on
        cmd: Command dict with 'type' field and command-specific params

    Returns:
        CommandOutcome with ok flag, resulting clock state, enriched payload
        (resolved event, capture time, elapsed display) and the error when
        the action did not take effect.
    """
    payload = dict(cmd)
    try:
        validated = ValidatedCommand.parse(cmd)
    except ValueError as e:
        return _rejected(
            engine, payload, ValidationError(kind="invalid_command", message=str(e), status_code=400)
        )

    ctype = validated.type
    payload["type"] = ctype
    event: TimingEvent | None = None
    try:
        if ctype == "START_CLOCK":
            payload["actualStart"] = engine.start_clock()

        elif ctype == "STOP_CLOCK":
            payload["stoppedAt"] = engine.stop_clock()

        elif ctype == "MARK_TIME":
            captured_at = validated.capturedAt
            if captured_at is None:
                captured_at = engine.now()
            event = engine.mark_time(validated.kind, captured_at, validated.bowNumber)

        elif ctype == "ASSIGN_BOW_NUMBER":
            event = engine.assign_bow_number(validated.eventId, validated.bowNumber)

    except TimingError as e:
        return _rejected(
            engine, payload, ValidationError(kind=e.kind, message=e.message, status_code=e.status_code)
        )

    if event is not None:
        payload["event"] = event_payload(event)
    unsynced = engine.unsynced_entries()
    if unsynced:
        # Timing was recorded but the boat status write is still outstanding
        payload["unsyncedEntries"] = {entry_id: s.value for entry_id, s in unsynced.items()}
    payload["elapsed"] = engine.elapsed_display()
    return CommandOutcome(ok=True, clock_state=engine.clock_state, cmd_payload=payload, event=event)
