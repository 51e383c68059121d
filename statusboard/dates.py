"""
Heterogeneous date parsing.

Upstream systems send ISO strings, ``"YYYY-MM-DD HH:MM:SS"`` display
values, epoch numbers, or garbage. Free-form text is accepted only when it
names a four-digit year, and a zero epoch counts as empty.
``DateNormalizer.parse`` always returns a timezone-aware instant: a
malformed timestamp must not abort the normalization of an otherwise
valid record, so failures fall back to "now". With the ``warn`` policy
each fallback is also logged and counted.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Optional

from dateutil import parser as dateutil_parser
from dateutil import tz as dateutil_tz

logger = logging.getLogger(__name__)

FALLBACK_NOW = "now"
FALLBACK_WARN = "warn"
_POLICIES = (FALLBACK_NOW, FALLBACK_WARN)

_SPACE_SEPARATED_RE = re.compile(r"^(\d{4}-\d{2}-\d{2}) (\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)")

# Epoch values at or above this are treated as milliseconds
_MILLIS_THRESHOLD = 1e11

# Free-form dates are only trusted when they carry an explicit year
_YEAR_RE = re.compile(r"(?<!\d)\d{4}(?!\d)")


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Look up a tz database name, defaulting to UTC when unknown."""
    if not name:
        return timezone.utc
    zone = dateutil_tz.gettz(name)
    if zone is None:
        logger.warning("Unknown timezone %r, using UTC", name)
        return timezone.utc
    return zone


def to_iso_like(raw: str) -> str:
    """Rewrite ``"2024-01-05 10:00:00"`` as ``"2024-01-05T10:00:00"``."""
    return _SPACE_SEPARATED_RE.sub(r"\1T\2", raw.strip(), count=1)


class DateNormalizer:
    """
    Parses upstream timestamps into aware datetimes.

    Attributes:
        default_tz: Zone assumed for naive timestamps.
        policy: FALLBACK_NOW (silent) or FALLBACK_WARN (log and count).
        failures: Number of inputs that fell back to "now".
    """

    def __init__(
        self,
        default_tz: Optional[tzinfo] = None,
        policy: str = FALLBACK_NOW,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if policy not in _POLICIES:
            raise ValueError(f"unknown date fallback policy: {policy!r}")
        self.default_tz = default_tz or timezone.utc
        self.policy = policy
        self.failures = 0
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._clock()

    def parse(self, raw: Any) -> datetime:
        """Parse ``raw``; null/empty or unparseable input yields now."""
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return self.now()
        if isinstance(raw, (int, float)) and not isinstance(raw, bool) and raw == 0:
            return self.now()

        try:
            if isinstance(raw, bool):
                raise TypeError("boolean is not a timestamp")
            if isinstance(raw, (int, float)):
                seconds = raw / 1000.0 if abs(raw) >= _MILLIS_THRESHOLD else float(raw)
                return datetime.fromtimestamp(seconds, tz=timezone.utc)
            if isinstance(raw, datetime):
                parsed = raw
            else:
                parsed = dateutil_parser.isoparse(to_iso_like(str(raw)))
        except (ValueError, TypeError, OverflowError, OSError):
            if isinstance(raw, bool) or not _YEAR_RE.search(str(raw)):
                return self._fallback(raw)
            try:
                parsed = dateutil_parser.parse(str(raw))
            except (ValueError, TypeError, OverflowError):
                return self._fallback(raw)

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=self.default_tz)
        return parsed

    def parse_optional(self, raw: Any) -> Optional[datetime]:
        """Like :meth:`parse`, but null/empty input stays None."""
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return None
        return self.parse(raw)

    def _fallback(self, raw: Any) -> datetime:
        self.failures += 1
        if self.policy == FALLBACK_WARN:
            logger.warning("Unparseable timestamp %r, using now", raw)
        return self.now()
