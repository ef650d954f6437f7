"""Change-feed reconciler.

Consumes "table X changed" notifications for the active race, re-fetches the
authoritative race/roster/records and hands the snapshot to the engine. The
notification body is never trusted. Bursts can be coalesced with a debounce
window; with ``debounce_ms=0`` every relevant notification re-fetches
immediately.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .clock import now_ms
from .engine import RaceSnapshot, TimingEngine, fetch_snapshot
from .errors import StoreUnavailable
from .settings import get_settings
from .store import WATCHED_TABLES, ChangeNotification, RaceStore, ResultStore

logger = logging.getLogger(__name__)


class ChangeFeedReconciler:
    def __init__(
        self,
        engine: TimingEngine,
        *,
        races: RaceStore,
        results: ResultStore,
        debounce_ms: Optional[int] = None,
        now: Optional[Callable[[], int]] = None,
    ):
        self.engine = engine
        self._races = races
        self._results = results
        self.debounce_ms = get_settings().reconcile_debounce_ms if debounce_ms is None else debounce_ms
        self._now = now or now_ms
        self._lock = threading.Lock()
        self._dirty_since: Optional[int] = None
        self.reconcile_count = 0

    @property
    def dirty(self) -> bool:
        return self._dirty_since is not None

    def is_relevant(self, notification: ChangeNotification) -> bool:
        if notification.table not in WATCHED_TABLES:
            return False
        return notification.race_id is None or notification.race_id == self.engine.race_id

    def handle(self, notification: ChangeNotification) -> bool:
        """Feed one notification in. Returns True if a reconciliation ran."""
        if not self.is_relevant(notification):
            logger.debug(f"Ignoring change on {notification.table} (race {notification.race_id})")
            return False
        with self._lock:
            if self._dirty_since is None:
                self._dirty_since = self._now()
        if self.debounce_ms <= 0:
            return self.flush()
        return False

    # Subscriptions deliver notifications by calling the reconciler directly
    __call__ = handle

    def poll(self, now: Optional[int] = None) -> bool:
        """Reconcile if the debounce window of a pending change has elapsed."""
        with self._lock:
            since = self._dirty_since
        if since is None:
            return False
        current = now if now is not None else self._now()
        if current - since < self.debounce_ms:
            return False
        return self.flush()

    def flush(self) -> bool:
        """Reconcile now if anything changed since the last pass."""
        if not self.dirty:
            return False
        return self.reconcile() is not None

    def reconcile(self) -> Optional[RaceSnapshot]:
        """Full re-fetch and merge. Store failures keep the reconciler dirty."""
        with self._lock:
            self._dirty_since = None
        as_of = self.engine.write_seq
        try:
            snapshot = fetch_snapshot(
                self.engine.race_id, races=self._races, results=self._results, as_of=as_of
            )
        except StoreUnavailable as exc:
            with self._lock:
                if self._dirty_since is None:
                    self._dirty_since = self._now()
            logger.warning(f"Reconciliation of race {self.engine.race_id} deferred: {exc}")
            return None
        self.engine.apply_external_change(snapshot)
        self.reconcile_count += 1
        logger.info(
            f"Race {self.engine.race_id} reconciled "
            f"({len(snapshot.entries)} entries, {len(snapshot.records)} records)"
        )
        return snapshot
