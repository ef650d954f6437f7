"""Head-race results projection.

Single source of truth for finish rankings across API/UI/export:
- Only records with both a start and an end time are ranked.
- Comparator: elapsed time ascending; ties broken by entry id.
- Equal elapsed times share a rank; the next rank skips (1, 1, 3).
- DNS/DNF/DSQ entries are listed separately and never ranked.
- The adjustment field is carried through untouched.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from .clock import format_race_time
from .types import Entry, RecordView


@dataclass(frozen=True)
class ResultRow:
    rank: int
    entry_id: int
    record_id: int
    bow_number: int
    team_name: str
    start_time: int
    end_time: int
    elapsed_ms: int
    race_time: str
    gap_ms: int
    adjustment: Optional[int] = None


@dataclass(frozen=True)
class UnrankedRow:
    entry_id: int
    bow_number: int
    team_name: str
    status: str


@dataclass(frozen=True)
class ResultsTable:
    rows: tuple[ResultRow, ...]
    unranked: tuple[UnrankedRow, ...]

    @property
    def winner(self) -> Optional[ResultRow]:
        return self.rows[0] if self.rows else None


def _is_complete(view: RecordView) -> bool:
    return view.record.start_time is not None and view.record.end_time is not None


def _sort_key(view: RecordView) -> tuple[int, int, int]:
    return (view.record.elapsed_ms, view.record.entry_id, view.record.id)


def compute_results(
    records: Iterable[RecordView],
    entries: Sequence[Entry] = (),
) -> ResultsTable:
    """
    Rank finished records by elapsed time.

    Args:
      records: record views for one race; incomplete records are skipped.
      entries: roster used to list DNS/DNF/DSQ boats and to drop records
        of disqualified entries from the ranking.
    """
    unranked_ids = {e.id for e in entries if e.status.unranked}
    finished = sorted(
        (v for v in records if _is_complete(v) and v.entry_id not in unranked_ids),
        key=_sort_key,
    )

    rows: list[ResultRow] = []
    leader_ms: Optional[int] = None
    prev_elapsed: Optional[int] = None
    rank = 0
    for pos, view in enumerate(finished, start=1):
        elapsed = view.record.elapsed_ms
        if elapsed != prev_elapsed:
            rank = pos
            prev_elapsed = elapsed
        if leader_ms is None:
            leader_ms = elapsed
        rows.append(
            ResultRow(
                rank=rank,
                entry_id=view.entry_id,
                record_id=view.id,
                bow_number=view.bow_number,
                team_name=view.team_name,
                start_time=view.record.start_time,
                end_time=view.record.end_time,
                elapsed_ms=elapsed,
                race_time=format_race_time(elapsed),
                gap_ms=elapsed - leader_ms,
                adjustment=view.record.adjustment,
            )
        )

    unranked = tuple(
        UnrankedRow(
            entry_id=e.id,
            bow_number=e.bow_number,
            team_name=e.display_name,
            status=e.status.value,
        )
        for e in sorted(entries, key=lambda e: e.bow_number)
        if e.status.unranked
    )
    return ResultsTable(rows=tuple(rows), unranked=unranked)
