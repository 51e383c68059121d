"""
Scheduled changes vs. active outages.

A change is "hot" when its service offering matches the offering of a
currently active outage. Only in-flight changes touching today are kept.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, time, timezone, tzinfo
from typing import Iterable, List, Optional, Set, Tuple

from statusboard.models import CanonicalOutage, ChangeRecord

# Substrings of the state display text that count as in flight
IN_FLIGHT_STATES = ("scheduled", "implement", "review")


def offering_key(offering: Optional[str]) -> str:
    return (offering or "").strip().lower()


def is_cancelled(state: Optional[str]) -> bool:
    # Covers both "Canceled" and "Cancelled"
    return "cancel" in (state or "").lower()


def is_in_flight(state: Optional[str]) -> bool:
    text = (state or "").lower()
    return any(token in text for token in IN_FLIGHT_STATES)


def today_bounds(now: datetime, tz: tzinfo) -> Tuple[datetime, datetime]:
    """Start and (inclusive) end of the calendar day containing ``now``."""
    today = now.astimezone(tz).date()
    day_start = datetime.combine(today, time.min, tzinfo=tz)
    day_end = datetime.combine(today, time.max, tzinfo=tz)
    return day_start, day_end


def overlaps_today(change: ChangeRecord, day_start: datetime, day_end: datetime) -> bool:
    start, end = change.start, change.end
    if start and end:
        return start <= day_end and end >= day_start
    if start:
        return start <= day_end
    if end:
        return end >= day_start
    # No dates at all: keep it visible
    return True


def filter_changes(
    changes: Iterable[ChangeRecord],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[ChangeRecord]:
    """Drop cancelled and non-in-flight changes, and those not touching today."""
    tz = tz or timezone.utc
    day_start, day_end = today_bounds(now or datetime.now(timezone.utc), tz)
    return [
        change
        for change in changes
        if not is_cancelled(change.state)
        and is_in_flight(change.state)
        and overlaps_today(change, day_start, day_end)
    ]


def hot_offerings(active_outages: Iterable[CanonicalOutage]) -> Set[str]:
    keys = {offering_key(outage.offering) for outage in active_outages}
    keys.discard("")
    return keys


def correlate(
    changes: Iterable[ChangeRecord],
    active_outages: Iterable[CanonicalOutage],
) -> List[ChangeRecord]:
    """Return copies of ``changes`` with ``is_hot`` recomputed."""
    hot = hot_offerings(active_outages)
    return [
        replace(change, is_hot=bool(key) and key in hot)
        for change in changes
        for key in (offering_key(change.offering),)
    ]


def _sort_key(change: ChangeRecord):
    if change.start is None:
        return (1, datetime.max.replace(tzinfo=timezone.utc))
    return (0, change.start)


def scheduled_changes(
    changes: Iterable[ChangeRecord],
    active_outages: Iterable[CanonicalOutage],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[ChangeRecord]:
    """Today's in-flight changes, hot-flagged, earliest start first (nulls last)."""
    kept = filter_changes(changes, now=now, tz=tz)
    return sorted(correlate(kept, active_outages), key=_sort_key)
