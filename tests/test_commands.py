from dataclasses import replace

from conftest import T0
from regatta_core import (
    AssignedEvent,
    ClockState,
    EventKind,
    PendingEvent,
    apply_command,
    event_payload,
)


def test_start_clock_reports_actual_start(engine):
    outcome = apply_command(engine, {"type": "start_clock"})
    assert outcome.ok
    assert outcome.clock_state == ClockState.RUNNING
    assert outcome.cmd_payload["type"] == "START_CLOCK"
    assert outcome.cmd_payload["actualStart"] == T0
    assert outcome.cmd_payload["elapsed"] == "00:00:00.0"


def test_full_station_flow(engine, clock, store):
    apply_command(engine, {"type": "START_CLOCK"})

    clock.advance(4_000)
    started = apply_command(engine, {"type": "MARK_TIME", "kind": "start", "bowNumber": " 7 "})
    assert started.ok
    assert started.cmd_payload["event"]["status"] == "assigned"
    assert started.cmd_payload["event"]["bowNumber"] == 7
    assert started.cmd_payload["event"]["time"] == T0 + 4_000
    assert started.cmd_payload["elapsed"] == "00:00:04.0"

    clock.advance(60_000)
    pending = apply_command(engine, {"type": "MARK_TIME", "kind": "FINISH", "bowNumber": ""})
    assert pending.ok
    assert isinstance(pending.event, PendingEvent)
    assert pending.cmd_payload["event"]["status"] == "pending"

    clock.advance(5_000)
    assigned = apply_command(
        engine,
        {"type": "ASSIGN_BOW_NUMBER", "eventId": pending.event.id, "bowNumber": 7},
    )
    assert assigned.ok
    assert assigned.cmd_payload["event"]["status"] == "finished"
    # Finish keeps the instant the operator pressed the button
    [record] = store.list_records_for_entry(11)
    assert record.end_time == T0 + 64_000

    stopped = apply_command(engine, {"type": "STOP_CLOCK"})
    assert stopped.ok
    assert stopped.clock_state == ClockState.STOPPED
    assert stopped.cmd_payload["stoppedAt"] == T0 + 69_000


def test_mark_time_uses_explicit_capture_instant(running):
    outcome = apply_command(
        running,
        {"type": "MARK_TIME", "kind": "start", "bowNumber": 3, "capturedAt": "2023-11-14T22:13:22Z"},
    )
    assert outcome.ok
    assert outcome.event.captured_at == 1_700_000_002_000


def test_invalid_type_is_rejected(engine):
    outcome = apply_command(engine, {"type": "RESET_RACE"})
    assert not outcome.ok
    assert outcome.error.kind == "invalid_command"
    assert outcome.error.status_code == 400
    assert outcome.clock_state == ClockState.NOT_STARTED


def test_non_numeric_bow_number_is_rejected(running, store):
    outcome = apply_command(running, {"type": "MARK_TIME", "kind": "start", "bowNumber": "7a"})
    assert not outcome.ok
    assert outcome.error.kind == "invalid_command"
    assert store.writes == [("set_race_actual_start", 1)]


def test_assign_requires_event_id(running):
    outcome = apply_command(running, {"type": "ASSIGN_BOW_NUMBER", "bowNumber": 3})
    assert not outcome.ok
    assert outcome.error.kind == "invalid_command"
    assert "eventId" in outcome.error.message


def test_unknown_bow_number_maps_to_not_found(running):
    outcome = apply_command(running, {"type": "MARK_TIME", "kind": "start", "bowNumber": 99})
    assert not outcome.ok
    assert outcome.error.kind == "unknown_bow_number"
    assert outcome.error.status_code == 404
    assert outcome.error.message == "Bow number 99 not found in this race"
    assert running.events() == []


def test_mark_before_clock_start_is_rejected(engine):
    outcome = apply_command(engine, {"type": "MARK_TIME", "kind": "start", "bowNumber": 3})
    assert not outcome.ok
    assert outcome.error.kind == "invalid_clock_transition"
    assert outcome.error.status_code == 409


def test_double_start_is_a_conflict(running):
    apply_command(running, {"type": "MARK_TIME", "kind": "start", "bowNumber": 3})
    outcome = apply_command(running, {"type": "MARK_TIME", "kind": "start", "bowNumber": 3})
    assert not outcome.ok
    assert outcome.error.kind == "already_started"
    assert outcome.error.status_code == 409


def test_store_outage_is_reported(engine, store):
    store.fail_next(1, "set_race_actual_start")
    outcome = apply_command(engine, {"type": "START_CLOCK"})
    assert not outcome.ok
    assert outcome.error.kind == "store_unavailable"
    assert outcome.error.status_code == 503
    assert outcome.clock_state == ClockState.NOT_STARTED


def test_event_payload_shapes():
    pending = PendingEvent(id="e1", kind=EventKind.FINISH, captured_at=T0)
    assert event_payload(pending) == {
        "id": "e1",
        "type": "finish",
        "time": T0,
        "status": "pending",
        "bowNumber": None,
        "teamName": None,
        "raceResultId": None,
    }

    started = AssignedEvent(
        id="e2",
        kind=EventKind.START,
        captured_at=T0,
        entry_id=11,
        bow_number=7,
        record_id=5,
        team_name="Goldie A",
    )
    payload = event_payload(started)
    assert payload["status"] == "assigned"
    assert payload["teamName"] == "Goldie A"
    assert payload["raceResultId"] == 5

    done = replace(started, finished=True)
    assert event_payload(done)["status"] == "finished"


def test_outstanding_entry_status_is_reported(running, store):
    store.fail_next(1, "set_entry_status")
    outcome = apply_command(running, {"type": "MARK_TIME", "kind": "start", "bowNumber": 3})
    assert outcome.ok
    assert outcome.cmd_payload["unsyncedEntries"] == {10: "on_water"}

    ok = apply_command(running, {"type": "MARK_TIME", "kind": "start", "bowNumber": 7})
    assert "unsyncedEntries" in ok.cmd_payload
    assert 11 not in ok.cmd_payload["unsyncedEntries"]
