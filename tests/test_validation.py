import pytest

from regatta_core.types import EventKind
from regatta_core.validation import InputSanitizer, ValidatedCommand


def test_type_is_normalized_and_checked():
    cmd = ValidatedCommand.parse({"type": " mark_time ", "kind": "Start"})
    assert cmd.type == "MARK_TIME"
    assert cmd.kind == EventKind.START

    with pytest.raises(ValueError, match="Invalid command"):
        ValidatedCommand.parse({"type": "DELETE_RACE"})


def test_unknown_fields_are_ignored():
    cmd = ValidatedCommand.parse({"type": "START_CLOCK", "boxId": 4, "sessionId": "abc"})
    assert cmd.type == "START_CLOCK"


def test_mark_time_requires_kind():
    with pytest.raises(ValueError, match="requires kind"):
        ValidatedCommand.parse({"type": "MARK_TIME", "bowNumber": 3})
    with pytest.raises(ValueError):
        ValidatedCommand.parse({"type": "MARK_TIME", "kind": "halfway"})


def test_assign_requires_event_and_bow_number():
    with pytest.raises(ValueError, match="requires bowNumber"):
        ValidatedCommand.parse({"type": "ASSIGN_BOW_NUMBER", "eventId": "abc", "bowNumber": "  "})
    cmd = ValidatedCommand.parse({"type": "ASSIGN_BOW_NUMBER", "eventId": "abc", "bowNumber": "12"})
    assert cmd.bowNumber == 12


def test_bow_number_upper_bound():
    with pytest.raises(ValueError, match="at most"):
        ValidatedCommand.parse({"type": "MARK_TIME", "kind": "start", "bowNumber": 10_000})


def test_captured_at_accepts_iso_and_epoch():
    iso = ValidatedCommand.parse(
        {"type": "MARK_TIME", "kind": "finish", "capturedAt": "2024-05-01T10:00:00Z"}
    )
    assert iso.capturedAt == 1_714_557_600_000
    epoch = ValidatedCommand.parse({"type": "MARK_TIME", "kind": "finish", "capturedAt": 1_714_557_600_000})
    assert epoch.capturedAt == 1_714_557_600_000
    with pytest.raises(ValueError):
        ValidatedCommand.parse({"type": "MARK_TIME", "kind": "finish", "capturedAt": "yesterday"})


@pytest.mark.parametrize(
    "raw,expected",
    [
        (None, None),
        ("", None),
        ("   ", None),
        (" 7 ", 7),
        (7, 7),
        (7.0, 7),
        ("007", 7),
    ],
)
def test_parse_bow_number_accepts(raw, expected):
    assert InputSanitizer.parse_bow_number(raw) == expected


@pytest.mark.parametrize("raw", ["7a", "-3", "1.5", 0, -1, 2.5, True])
def test_parse_bow_number_rejects(raw):
    with pytest.raises(ValueError):
        InputSanitizer.parse_bow_number(raw)


def test_sanitize_string_strips_and_truncates():
    assert InputSanitizer.sanitize_string("  Isis\0  ") == "Isis"
    assert InputSanitizer.sanitize_string("x" * 300) == "x" * 255
    assert InputSanitizer.sanitize_string(42) == "42"
