"""
Freshness gate and job spacing for scraper fan-out.

Two concerns live here:

- should_process / filter_candidates decide whether a previously seen venue
  is stale enough to re-fetch. This is checked before any detail request.
- schedule_delays / schedule_hourly_capped compute countdowns so one index
  run does not hit a source with all of its detail jobs at once.

Everything in this module is pure; callers supply "now" and the last-seen
lookup.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (sqlite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed from earlier to later."""
    return (_as_utc(later) - _as_utc(earlier)).days


def should_process(
    last_seen_at: Optional[datetime],
    now: datetime,
    skip_window_days: int,
    force: bool = False,
) -> bool:
    """
    Decide whether a candidate needs a detail fetch.

    Args:
        last_seen_at: When the candidate was last reconciled, None if never
        now: Current time
        skip_window_days: Freshness window in days
        force: Bypass the window entirely

    Returns:
        True when the candidate should be processed

    Examples:
        >>> from datetime import timedelta
        >>> now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        >>> should_process(now - timedelta(days=19), now, 20)
        False
        >>> should_process(now - timedelta(days=21), now, 20)
        True
        >>> should_process(now, now, 20, force=True)
        True
    """
    if force:
        return True
    if last_seen_at is None:
        return True
    return days_between(last_seen_at, now) >= skip_window_days


def filter_candidates(
    candidates: Iterable[T],
    last_seen: Mapping[str, datetime],
    now: datetime,
    skip_window_days: int,
    force: bool = False,
    identity=lambda candidate: candidate.identity,
) -> Tuple[List[T], List[T]]:
    """
    Split candidates into (to_process, skipped).

    Args:
        candidates: Candidates discovered by an index job
        last_seen: Map of candidate identity to last reconciliation time
        now: Current time
        skip_window_days: Freshness window in days
        force: Process everything regardless of freshness
        identity: Function returning a candidate's lookup key

    Returns:
        Tuple of (candidates to process, candidates skipped as fresh)
    """
    to_process: List[T] = []
    skipped: List[T] = []

    for candidate in candidates:
        if should_process(last_seen.get(identity(candidate)), now, skip_window_days, force):
            to_process.append(candidate)
        else:
            skipped.append(candidate)

    logger.debug(
        f"Freshness filter: {len(to_process)} to process, {len(skipped)} skipped "
        f"(window={skip_window_days}d, force={force})"
    )
    return to_process, skipped


def schedule_delays(count: int, delay_seconds: int) -> List[int]:
    """
    Countdown in seconds for each of count jobs, spaced delay_seconds apart.

    Examples:
        >>> schedule_delays(4, 2)
        [0, 2, 4, 6]
    """
    return [index * delay_seconds for index in range(count)]


def schedule_hourly_capped(count: int, max_per_hour: int) -> List[int]:
    """
    Spread count jobs evenly so no hour receives more than max_per_hour.

    Examples:
        >>> schedule_hourly_capped(3, 2)
        [0, 1800, 3600]
    """
    if max_per_hour <= 0:
        raise ValueError("max_per_hour must be positive")

    seconds_per_job = 3600 // max_per_hour
    delays = []
    for index in range(count):
        hour, position_in_hour = divmod(index, max_per_hour)
        delays.append(hour * 3600 + position_in_hour * seconds_per_job)
    return delays


def pick_delays(count: int, delay_seconds: int, max_per_hour: Optional[int] = None) -> Sequence[int]:
    """Choose capped scheduling when a cap is given and would be exceeded."""
    if max_per_hour and count > max_per_hour:
        return schedule_hourly_capped(count, max_per_hour)
    return schedule_delays(count, delay_seconds)
