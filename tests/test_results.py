from __future__ import annotations

from conftest import T0
from regatta_core import (
    Entry,
    EntryStatus,
    EventKind,
    RecordView,
    TimingRecord,
    compute_results,
)


def _view(record_id, entry_id, bow, start, end, *, adjustment=None, name=""):
    status = EntryStatus.FINISHED if end is not None else EntryStatus.ON_WATER
    record = TimingRecord(
        id=record_id,
        entry_id=entry_id,
        start_time=start,
        end_time=end,
        adjustment=adjustment,
        status=status,
    )
    return RecordView(record=record, bow_number=bow, team_name=name or f"Crew {bow}")


def test_fastest_elapsed_ranks_first():
    records = [
        _view(1, 10, 3, T0, T0 + 65_000),
        _view(2, 11, 7, T0 + 5_000, T0 + 50_000),
    ]
    table = compute_results(records)
    assert [(r.rank, r.record_id, r.elapsed_ms) for r in table.rows] == [
        (1, 2, 45_000),
        (2, 1, 65_000),
    ]
    assert table.winner.bow_number == 7


def test_incomplete_records_are_not_ranked():
    records = [
        _view(1, 10, 3, T0, None),
        _view(2, 11, 7, T0 + 1_000, T0 + 70_000),
        _view(3, 12, 12, None, None),
    ]
    table = compute_results(records)
    assert [r.record_id for r in table.rows] == [2]


def test_no_finishers_means_no_winner():
    table = compute_results([_view(1, 10, 3, T0, None)])
    assert table.rows == ()
    assert table.winner is None


def test_ties_share_rank_and_order_by_entry_id():
    records = [
        _view(1, 12, 12, T0, T0 + 60_000),
        _view(2, 10, 3, T0 + 2_000, T0 + 62_000),
        _view(3, 11, 7, T0 + 4_000, T0 + 70_000),
    ]
    table = compute_results(records)
    assert [(r.rank, r.entry_id) for r in table.rows] == [(1, 10), (1, 12), (3, 11)]


def test_gap_and_race_time_display():
    records = [
        _view(1, 10, 3, T0, T0 + 125_430),
        _view(2, 11, 7, T0, T0 + 59_990),
    ]
    winner, second = compute_results(records).rows
    assert winner.race_time == "59.99"
    assert winner.gap_ms == 0
    assert second.race_time == "2:05.43"
    assert second.gap_ms == 125_430 - 59_990


def test_adjustment_is_carried_through_without_changing_rank():
    records = [
        _view(1, 10, 3, T0, T0 + 60_000, adjustment=30_000),
        _view(2, 11, 7, T0, T0 + 61_000),
    ]
    rows = compute_results(records).rows
    assert rows[0].entry_id == 10
    assert rows[0].adjustment == 30_000
    assert rows[0].elapsed_ms == 60_000
    assert rows[1].adjustment is None


def test_disqualified_entries_are_listed_but_not_ranked():
    entries = [
        Entry(id=10, team_id=100, race_id=1, bow_number=3, status=EntryStatus.DSQ, team_name="Isis"),
        Entry(id=11, team_id=101, race_id=1, bow_number=7, status=EntryStatus.FINISHED, team_name="Goldie"),
        Entry(id=12, team_id=102, race_id=1, bow_number=1, status=EntryStatus.DNS, team_name="Tyrian"),
    ]
    records = [
        _view(1, 10, 3, T0, T0 + 50_000),
        _view(2, 11, 7, T0, T0 + 60_000),
    ]
    table = compute_results(records, entries)
    assert [r.entry_id for r in table.rows] == [11]
    assert table.rows[0].rank == 1
    assert [(u.bow_number, u.status) for u in table.unranked] == [(1, "dns"), (3, "dsq")]


def test_engine_results_follow_marks(running, clock):
    running.mark_time(EventKind.START, T0 + 1_000, bow_number=3)
    running.mark_time(EventKind.START, T0 + 2_000, bow_number=7)
    running.mark_time(EventKind.FINISH, T0 + 80_000, bow_number=7)
    running.mark_time(EventKind.FINISH, T0 + 90_000, bow_number=3)

    table = running.results()
    assert [(r.bow_number, r.elapsed_ms) for r in table.rows] == [(7, 78_000), (3, 89_000)]
    assert table.rows[0].team_name == "Goldie A"
