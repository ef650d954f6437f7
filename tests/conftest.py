"""
Pytest fixtures shared by the timing core tests.
"""

import pytest

from regatta_core import Entry, MemoryStore, Race, RaceKind, RaceStatus, TimingEngine

T0 = 1_700_000_000_000
RACE_ID = 1


class FakeClock:
    """Settable wall clock in epoch milliseconds."""

    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


def seed_store(store: MemoryStore, race: Race | None = None) -> MemoryStore:
    store.add_race(race or Race(id=RACE_ID, name="Head of the River", kind=RaceKind.HEAD_RACE))
    store.add_entry(Entry(id=10, team_id=100, race_id=RACE_ID, bow_number=3, team_name="Isis"))
    store.add_entry(Entry(id=11, team_id=101, race_id=RACE_ID, bow_number=7, team_name="Goldie"))
    store.add_entry(Entry(id=12, team_id=101, race_id=RACE_ID, bow_number=12, team_name="Goldie"))
    # A boat in a different race with a clashing bow number
    store.add_race(Race(id=2, name="Sprint", kind=RaceKind.SPRINT, status=RaceStatus.SCHEDULED))
    store.add_entry(Entry(id=20, team_id=100, race_id=2, bow_number=5, team_name="Isis"))
    return store


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return seed_store(MemoryStore())


@pytest.fixture
def engine(store, clock):
    return TimingEngine.load(RACE_ID, races=store, results=store, now=clock)


@pytest.fixture
def running(engine, clock):
    """Engine whose clock was started at T0."""
    engine.start_clock()
    return engine
