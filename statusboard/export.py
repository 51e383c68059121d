"""
CSV export of outage history.

System names and descriptions are always quoted; the remaining columns
are only quoted when they contain a delimiter, quote or line break.
"""

from __future__ import annotations

from typing import Iterable

from statusboard.models import CanonicalOutage

HEADER = ["ID", "System Name", "Impact Level", "Start Time", "ETA", "Description", "Bridge URL"]

_SPECIAL = (",", '"', "\n", "\r")


def _quoted(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def _cell(text: str) -> str:
    return _quoted(text) if any(ch in text for ch in _SPECIAL) else text


def outages_to_csv(outages: Iterable[CanonicalOutage]) -> str:
    """Render outages as CSV text, one line per outage after the header."""
    lines = [",".join(HEADER)]
    for outage in outages:
        lines.append(",".join([
            _cell(outage.id),
            _quoted(outage.system_name),
            _cell(outage.impact_level),
            _cell(outage.start_time.isoformat()),
            _cell(outage.eta.isoformat()),
            _quoted(outage.description),
            _cell(outage.bridge_url or ""),
        ]))
    return "\n".join(lines) + "\n"


def export_filename(day) -> str:
    return f"outage-history-{day:%Y-%m-%d}.csv"
