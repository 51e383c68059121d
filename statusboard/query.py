"""
Filter-query construction for the external systems.

Builds ServiceNow table-API query strings (encoded query + field
projection) for a given window, and the SWQL statement used against the
monitoring system.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Dict, Iterable, List, Optional, Union
from urllib.parse import quote

from statusboard.impact import external_tokens_for
from statusboard.models import IMPACT_LEVELS, IntegrationConfig

IDENTIFIER_FIELDS = ("sys_id", "number")

# Characters JavaScript's encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "-_.!~*'()"

_SN_DATETIME = "%Y-%m-%d %H:%M:%S"

# Ticket states excluded from the ticket feed (resolved, closed, cancelled)
_CLOSED_TICKET_STATES = "6,7,8"


@dataclass(frozen=True)
class ActiveWindow:
    """Records that are active and have no completion time yet."""


@dataclass(frozen=True)
class TrailingWindow:
    """Records that ended within the last ``days`` days."""

    days: int = 7
    categories: tuple = IMPACT_LEVELS


@dataclass(frozen=True)
class TodayWindow:
    """Records still open at or after the start of today."""


WindowSpec = Union[ActiveWindow, TrailingWindow, TodayWindow]


def encode_component(text: str) -> str:
    """Percent-encode like ``encodeURIComponent``."""
    return quote(text, safe=_URI_COMPONENT_SAFE)


def projection(mapping: Dict[str, str]) -> List[str]:
    """Identifier fields followed by the mapped paths, deduplicated in order."""
    seen: List[str] = []
    for name in list(IDENTIFIER_FIELDS) + [p for p in mapping.values() if p]:
        if name not in seen:
            seen.append(name)
    return seen


def format_sn_datetime(moment: datetime) -> str:
    return moment.strftime(_SN_DATETIME)


def _assemble(encoded_query: str, fields: Iterable[str], limit: Optional[int] = None) -> str:
    parts = [
        "sysparm_display_value=true",
        f"sysparm_query={encode_component(encoded_query)}",
    ]
    if limit is not None:
        parts.append(f"sysparm_limit={limit}")
    parts.append(f"sysparm_fields={','.join(fields)}")
    return "&".join(parts)


class QueryBuilder:
    """
    Builds encoded table queries from an IntegrationConfig.

    ``now`` and ``tz`` are injectable so windows are reproducible.
    """

    def __init__(self, clock=None, tz: Optional[tzinfo] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.tz = tz or timezone.utc

    # ── Filters ───────────────────────────────────────────

    def outage_filter(self, config: IntegrationConfig, window: WindowSpec) -> str:
        mapping = config.field_mapping
        end_field = mapping.get("eta", "end")

        if isinstance(window, ActiveWindow):
            return f"active=true^{end_field}ISEMPTY"

        if isinstance(window, TrailingWindow):
            now = self._clock().astimezone(self.tz)
            cutoff = format_sn_datetime(now - timedelta(days=window.days))
            impact_field = mapping.get("impact_level", "type")
            tokens = external_tokens_for(config.impact_mapping, window.categories)
            return f"{end_field}>={cutoff}^{impact_field}IN{','.join(tokens)}"

        raise TypeError(f"unsupported outage window: {window!r}")

    def change_filter(self, config: IntegrationConfig, window: WindowSpec = TodayWindow()) -> str:
        mapping = config.change_field_mapping
        if isinstance(window, TodayWindow):
            return self._today_filter(mapping.get("end", "end_date"), mapping.get("start", "start_date"))
        raise TypeError(f"unsupported change window: {window!r}")

    def ticket_filter(self, config: IntegrationConfig) -> str:
        priority_field = config.ticket_field_mapping.get("priority", "priority")
        return (
            f"stateNOT IN {_CLOSED_TICKET_STATES}^ORDERBYDESCsys_updated_on"
            f"^{priority_field}=1"
        )

    def _today_filter(self, end_field: str, start_field: str) -> str:
        now = self._clock().astimezone(self.tz)
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return (
            f"{end_field}>={format_sn_datetime(day_start)}"
            f"^OR{end_field}ISEMPTY^ORDERBY{start_field}"
        )

    # ── Query strings ─────────────────────────────────────

    def build(self, config: IntegrationConfig, window: WindowSpec) -> str:
        """Outage-table query string for ``window``."""
        return _assemble(self.outage_filter(config, window), projection(config.field_mapping))

    def build_tickets(self, config: IntegrationConfig, limit: int = 20) -> str:
        return _assemble(
            self.ticket_filter(config),
            projection(config.ticket_field_mapping),
            limit=limit,
        )

    def build_changes(self, config: IntegrationConfig, window: WindowSpec = TodayWindow()) -> str:
        return _assemble(
            self.change_filter(config, window),
            projection(config.change_field_mapping),
        )

    @staticmethod
    def table_url(config: IntegrationConfig, table: str, query: str) -> str:
        return f"{config.instance_url}/api/now/table/{table}?{query}"


def build_alert_query(config: IntegrationConfig) -> str:
    """
    SWQL statement selecting the mapped alert columns.

    Columns follow the field mapping order; the timestamp column drives
    the ordering, newest first.
    """
    mapping = config.field_mapping
    columns: List[str] = []
    for column in mapping.values():
        if column and column not in columns:
            columns.append(column)
    if not columns:
        columns = ["AlertObjectID"]
    order_by = mapping.get("timestamp", "TriggerTimeStamp")
    return f"SELECT {', '.join(columns)} FROM {config.table} ORDER BY {order_by} DESC"
