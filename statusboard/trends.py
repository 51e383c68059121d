"""
Seven-day outage trend aggregation.

Buckets outages by the calendar day of their start time over the trailing
window ending today (inclusive). Every bucket carries an explicit count for
every key, so stacked series can be rendered without gaps.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Dict, Iterable, List, Optional

from statusboard.models import IMPACT_LEVELS, CanonicalOutage, TrendBucket, TrendSeries

GROUP_BY_IMPACT = "impact"
GROUP_BY_SYSTEM = "system"
GROUP_BY_CHOICES = (GROUP_BY_IMPACT, GROUP_BY_SYSTEM)

WINDOW_DAYS = 7

UNKNOWN_SYSTEM = "Unknown System"


def day_label(day: date) -> str:
    """Short human label, e.g. ``"Oct 19"``."""
    return f"{day:%b} {day.day}"


def normalize_system(name: Optional[str]) -> str:
    """Collapse "Printer " and "Printer" into one key."""
    return (name or "").strip() or UNKNOWN_SYSTEM


def window_days(now: datetime, tz: tzinfo) -> List[date]:
    """Calendar days of the trailing window, oldest first."""
    today = now.astimezone(tz).date()
    return [today - timedelta(days=offset) for offset in range(WINDOW_DAYS - 1, -1, -1)]


def aggregate(
    outages: Iterable[CanonicalOutage],
    group_by: str = GROUP_BY_IMPACT,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> TrendSeries:
    """
    Bucket ``outages`` into the seven days ending today.

    Args:
        outages: Canonical outages; those starting outside the window
            are ignored.
        group_by: GROUP_BY_IMPACT (fixed impact vocabulary) or
            GROUP_BY_SYSTEM (systems with at least one outage, sorted).
        now: Reference instant, defaults to the current time.
        tz: Zone that defines calendar days, defaults to UTC.

    Returns:
        A TrendSeries with exactly seven buckets.
    """
    if group_by not in GROUP_BY_CHOICES:
        raise ValueError(f"group_by must be one of {GROUP_BY_CHOICES}, got {group_by!r}")

    tz = tz or timezone.utc
    now = now or datetime.now(timezone.utc)
    days = window_days(now, tz)
    buckets: Dict[date, TrendBucket] = {
        day: TrendBucket(day=day, label=day_label(day)) for day in days
    }

    if group_by == GROUP_BY_IMPACT:
        keys = list(IMPACT_LEVELS)
        for bucket in buckets.values():
            bucket.counts = {key: 0 for key in keys}
        for outage in outages:
            bucket = buckets.get(outage.start_time.astimezone(tz).date())
            if bucket is None or outage.impact_level not in bucket.counts:
                continue
            bucket.counts[outage.impact_level] += 1
        return TrendSeries(group_by=group_by, buckets=list(buckets.values()), keys=keys)

    # By system name: count first, then keep only systems seen in the window
    for outage in outages:
        bucket = buckets.get(outage.start_time.astimezone(tz).date())
        if bucket is None:
            continue
        system = normalize_system(outage.system_name)
        bucket.counts[system] = bucket.counts.get(system, 0) + 1

    keys = sorted({key for b in buckets.values() for key, n in b.counts.items() if n > 0})

    # Explicit zeros so every bucket has the same key shape
    for bucket in buckets.values():
        bucket.counts = {key: bucket.counts.get(key, 0) for key in keys}

    return TrendSeries(group_by=group_by, buckets=list(buckets.values()), keys=keys)
