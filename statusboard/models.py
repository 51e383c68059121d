"""
Data models for the dashboard engine.

Defines the canonical records handed to the dashboard (outages, tickets,
alerts, changes, vendor statuses), the integration configuration they are
normalized with, and the bucketed trend series.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, is_dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

# Canonical vocabularies
IMPACT_LEVELS = ("Outage", "Degradation")
ALERT_SEVERITIES = ("Critical", "Warning", "Info")
VENDOR_STATUSES = ("Operational", "Degraded", "Outage")

OPERATIONAL = "Operational"
DEGRADED = "Degraded"
OUTAGE = "Outage"

# Integration kinds
SERVICENOW = "servicenow"
SOLARWINDS = "solarwinds"
INTEGRATION_KINDS = (SERVICENOW, SOLARWINDS)

SINGLETON_ID = "global-config"


# ─── Canonical records ────────────────────────────────────────


@dataclass(frozen=True)
class CanonicalOutage:
    """
    An outage as shown on the dashboard.

    Attributes:
        id: Outage number, or the record's sys_id when it has none.
        system_name: Affected system, never empty.
        impact_level: One of IMPACT_LEVELS.
        start_time: When the outage began.
        eta: Expected (or actual) end.
        description: Free text, never empty.
        bridge_url: Link to the collaboration bridge, if any.
        offering: Service offering used to correlate changes. May be "".
    """

    id: str
    system_name: str
    impact_level: str
    start_time: datetime
    eta: datetime
    description: str
    bridge_url: Optional[str] = None
    offering: str = ""


@dataclass(frozen=True)
class CanonicalTicket:
    """A high-priority ticket from the ticketing system."""

    id: str
    summary: str
    affected_system: str
    status: str
    assigned_team: str
    ticket_url: str


@dataclass(frozen=True)
class MonitoringAlert:
    """An active alert from the monitoring system."""

    id: str
    type: str
    affected_system: str
    timestamp: datetime
    severity: str  # one of ALERT_SEVERITIES
    validated: bool = False


@dataclass(frozen=True)
class ChangeRecord:
    """
    A change request.

    ``is_hot`` is a join result, recomputed on every pass by the
    correlator; it is never read from the upstream record.
    """

    id: str
    number: str
    summary: str
    offering: str
    start: Optional[datetime]
    end: Optional[datetime]
    state: str
    type: str
    url: str
    is_hot: bool = False


# ─── Vendors ──────────────────────────────────────────────────


@dataclass
class VendorProbeSpec:
    """How to check a single vendor's health."""

    id: str
    name: str
    url: str
    status_type: str = "MANUAL"  # "MANUAL" or "API_JSON"
    api_url: Optional[str] = None
    json_path: Optional[str] = None
    expected_value: Optional[str] = None

    @property
    def is_manual(self) -> bool:
        return (
            self.status_type.upper() != "API_JSON"
            or not self.api_url
            or not self.json_path
            or not self.expected_value
        )


@dataclass(frozen=True)
class VendorProbeResult:
    """One probe verdict. Ephemeral, never persisted."""

    id: str
    name: str
    url: str
    status: str  # one of VENDOR_STATUSES


# ─── Integration configuration ────────────────────────────────


@dataclass
class ImpactMapping:
    """One row of an impact table: external token -> canonical value."""

    external_value: str
    canonical_value: str


@dataclass
class IntegrationConfig:
    """
    Singleton configuration of one external integration.

    Attributes:
        kind: SERVICENOW or SOLARWINDS.
        enabled: Whether the integration should be queried at all.
        base_url: Instance / API root, without trailing slash.
        username_var: Name of the variable holding the username.
        password_var: Name of the variable holding the password.
        table: Outage table (or monitoring entity for SOLARWINDS).
        field_mapping: Canonical field -> dotted external path.
        impact_mapping: Ordered external -> canonical impact table.
        ticket_table / ticket_field_mapping: Ticket feed.
        change_table / change_field_mapping: Change feed.
    """

    kind: str
    enabled: bool = False
    base_url: str = ""
    username_var: str = ""
    password_var: str = ""
    table: str = ""
    field_mapping: Dict[str, str] = field(default_factory=dict)
    impact_mapping: List[ImpactMapping] = field(default_factory=list)
    ticket_table: str = ""
    ticket_field_mapping: Dict[str, str] = field(default_factory=dict)
    change_table: str = ""
    change_field_mapping: Dict[str, str] = field(default_factory=dict)
    id: str = SINGLETON_ID

    @property
    def instance_url(self) -> str:
        return self.base_url.rstrip("/")

    @classmethod
    def from_dict(cls, kind: str, raw: Dict[str, Any]) -> "IntegrationConfig":
        """Build a config from a plain mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in raw.items() if k in known and k != "kind"}
        mapping = values.get("impact_mapping")
        if isinstance(mapping, list):
            values["impact_mapping"] = [
                ImpactMapping(
                    external_value=str(item.get("external_value", "")),
                    canonical_value=str(item.get("canonical_value", "")),
                )
                if isinstance(item, dict) else item
                for item in mapping
            ]
        return cls(kind=kind, **values)


# ─── Trends ───────────────────────────────────────────────────


@dataclass
class TrendBucket:
    """Counts for a single calendar day."""

    day: date
    label: str  # e.g. "Oct 19"
    counts: Dict[str, int] = field(default_factory=dict)


@dataclass
class TrendSeries:
    """Seven day buckets sharing the same key shape."""

    group_by: str
    buckets: List[TrendBucket]
    keys: List[str]

    @property
    def total(self) -> int:
        return sum(sum(b.counts.values()) for b in self.buckets)

    def rows(self) -> List[Dict[str, Any]]:
        """Flatten into stacked-chart rows: {"date": label, key: count, ...}."""
        return [{"date": b.label, **b.counts} for b in self.buckets]


# ─── Settings ─────────────────────────────────────────────────


@dataclass
class Settings:
    """Global dashboard settings."""

    log_level: str = "INFO"
    refresh_interval: int = 300  # seconds
    port: int = 10000
    timezone: str = "UTC"
    date_fallback: str = "now"  # "now" or "warn"
    request_timeout: float = 15.0
    max_retries: int = 5
    base_backoff: int = 2


# ─── Serialization ────────────────────────────────────────────


def to_jsonable(obj: Any) -> Any:
    """Convert models (and containers of them) into JSON-ready values."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return to_jsonable(asdict(obj))
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    return obj
