from __future__ import annotations
import math
from datetime import datetime, timedelta

from .clock import as_utc, epoch_ms
from .errors import DuplicateAward, DuplicateVisit

DEFAULT_WINDOW_MINUTES = 30


def effective_window_minutes(window_minutes: float | None) -> float:
    """Unusable values (None, NaN, inf, <= 0) fall back to the default window."""
    if window_minutes is None:
        return DEFAULT_WINDOW_MINUTES
    try:
        minutes = float(window_minutes)
    except (TypeError, ValueError):
        return DEFAULT_WINDOW_MINUTES
    if not math.isfinite(minutes) or minutes <= 0:
        return DEFAULT_WINDOW_MINUTES
    return minutes


def compute_throttle_expiry(last_at: datetime, window_minutes: float | None = None) -> datetime:
    return as_utc(last_at) + timedelta(minutes=effective_window_minutes(window_minutes))


def check_award_throttle(last_awarded_at: datetime | None, now: datetime, window_minutes: float | None = None) -> None:
    if last_awarded_at is None:
        return
    available_at = compute_throttle_expiry(last_awarded_at, window_minutes)
    if as_utc(now) < available_at:
        raise DuplicateAward(available_at)


def check_visit_throttle(last_visited_at: datetime | None) -> None:
    # one visit per (student, booth), no repeat window
    if last_visited_at is not None:
        raise DuplicateVisit(as_utc(last_visited_at))


def award_slot(at: datetime, window_minutes: float | None = None) -> int:
    """Window-sized bucket index of ``at``.

    Two awards in the same bucket are always less than one window apart, so a
    unique (student, booth, slot) key only rejects pairs the rolling check rejects too.
    """
    window_ms = int(effective_window_minutes(window_minutes) * 60 * 1000)
    return epoch_ms(at) // window_ms
