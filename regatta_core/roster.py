"""Race roster snapshot used for bow-number resolution."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import UnknownBowNumber
from .types import Entry, EntryStatus, Race, RaceStatus

logger = logging.getLogger(__name__)


def assign_levels(entries: Iterable[Entry]) -> List[Entry]:
    """Label several boats of one team in one race A, B, C... by entry id.

    Teams with a single boat get no level.
    """
    by_team: Dict[tuple, List[Entry]] = {}
    for entry in entries:
        by_team.setdefault((entry.race_id, entry.team_id), []).append(entry)
    levels: Dict[int, Optional[str]] = {}
    for boats in by_team.values():
        if len(boats) == 1:
            levels[boats[0].id] = None
            continue
        for idx, entry in enumerate(sorted(boats, key=lambda e: e.id)):
            levels[entry.id] = chr(ord("A") + idx)
    return [replace(e, level=levels.get(e.id)) for e in entries]


def can_change_bow_number(race: Race) -> bool:
    return race.status == RaceStatus.SCHEDULED


class Roster:
    """Immutable-by-convention view of a race's entries keyed by bow number."""

    def __init__(self, entries: Sequence[Entry] = ()):
        self._by_bow: Dict[int, Entry] = {}
        self._by_id: Dict[int, Entry] = {}
        for entry in entries:
            if entry.bow_number in self._by_bow:
                # Uniqueness is enforced at registration; keep the first and say so
                logger.warning(
                    f"Duplicate bow number {entry.bow_number} in roster "
                    f"(entries {self._by_bow[entry.bow_number].id} and {entry.id})"
                )
                continue
            self._by_bow[entry.bow_number] = entry
            self._by_id[entry.id] = entry

    def __len__(self) -> int:
        return len(self._by_bow)

    def __iter__(self):
        return iter(sorted(self._by_bow.values(), key=lambda e: e.bow_number))

    def resolve(self, bow_number: int) -> Entry:
        entry = self._by_bow.get(bow_number)
        if entry is None:
            raise UnknownBowNumber(bow_number)
        return entry

    def get(self, entry_id: int) -> Optional[Entry]:
        return self._by_id.get(entry_id)

    def with_status(self, entry_id: int, status: EntryStatus) -> "Roster":
        return Roster(
            [replace(e, status=status) if e.id == entry_id else e for e in self]
        )

    def entries(self) -> List[Entry]:
        return list(self)
