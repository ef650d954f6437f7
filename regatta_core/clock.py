"""Race clock helpers: instant coercion, time formatting and the display ticker.

Every instant in the core is an integer count of epoch milliseconds. No
timezone offset is ever added to or subtracted from a stored instant; naive
datetimes are read as UTC.
"""
from __future__ import annotations

import logging
import math
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from .settings import get_settings
from .types import ClockState

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def to_ms(value: Any) -> Optional[int]:
    """Coerce an instant to epoch milliseconds.

    Accepts ints/floats (already epoch ms), datetimes and ISO-8601 strings.
    ``None`` and empty strings map to ``None``; anything else unparseable
    raises ``ValueError``.

    Examples:
        - 1700000000000 → 1700000000000
        - "2024-05-01T10:00:00Z" → 1714557600000
        - datetime(2024, 5, 1, 10) → 1714557600000 (naive = UTC)
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("instant cannot be a boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError("instant must be finite")
        return int(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(round(value.timestamp() * 1000))
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        if stripped.lstrip("-").isdigit():
            return int(stripped)
        if stripped.endswith("Z"):
            stripped = stripped[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(stripped)
        except ValueError:
            raise ValueError(f"not an ISO-8601 instant: {value!r}")
        return to_ms(parsed)
    raise ValueError(f"unsupported instant type: {type(value).__name__}")


def format_elapsed(elapsed_ms: Optional[int]) -> str:
    """Clock display: ``HH:MM:SS.t`` with tenths truncated."""
    if not elapsed_ms or elapsed_ms < 0:
        return "00:00:00.0"
    total_seconds, rest = divmod(int(elapsed_ms), 1000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{rest // 100}"


def format_race_time(elapsed_ms: Optional[int]) -> str:
    """Results display: ``M:SS.cc`` above a minute, ``S.cc`` below."""
    if elapsed_ms is None:
        return ""
    elapsed_ms = max(0, int(elapsed_ms))
    total_seconds, rest = divmod(elapsed_ms, 1000)
    minutes, seconds = divmod(total_seconds, 60)
    centis = rest // 10
    if minutes > 0:
        return f"{minutes}:{seconds:02d}.{centis:02d}"
    return f"{seconds}.{centis:02d}"


class ElapsedTicker:
    """Pushes the elapsed clock display to ``on_tick`` while the race runs.

    Presentation only: it reads engine state and never mutates it. It may be
    started before the clock: it idles while NOT_STARTED and exits on
    ``stop()`` or once the clock is STOPPED.
    """

    def __init__(self, engine, on_tick: Callable[[str], None], interval_ms: Optional[int] = None):
        self.engine = engine
        self.on_tick = on_tick
        self.interval_ms = interval_ms or get_settings().tick_interval_ms
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="elapsed-ticker", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 1.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        interval = self.interval_ms / 1000.0
        while not self._stop.wait(interval):
            state = self.engine.clock_state
            if state == ClockState.NOT_STARTED:
                continue
            if state != ClockState.RUNNING:
                break
            try:
                self.on_tick(self.engine.elapsed_display())
            except Exception:
                logger.exception("Elapsed ticker callback failed")
        logger.debug("Elapsed ticker stopped")
