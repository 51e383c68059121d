"""
Raw external record -> canonical record.

Every canonical field is resolved through its configured path; impact
fields go through the impact table, dates through the DateNormalizer,
and anything that resolves to nothing receives a readable placeholder.
Canonical records are therefore always fully populated.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional

from statusboard import impact
from statusboard.dates import DateNormalizer
from statusboard.models import (
    CanonicalOutage,
    CanonicalTicket,
    ChangeRecord,
    IntegrationConfig,
    MonitoringAlert,
)
from statusboard.paths import resolve

OUTAGE = "outage"
TICKET = "ticket"
CHANGE = "change"
ALERT = "alert"
RECORD_KINDS = (OUTAGE, TICKET, CHANGE, ALERT)

DEFAULT_IMPACT = "Degradation"
DEFAULT_SEVERITY = "Info"

# Placeholders for fields that resolve to nothing
UNKNOWN_SYSTEM = "Unknown System"
NO_DESCRIPTION = "No description provided."
NO_SUMMARY = "No summary"
NO_CHANGE_SUMMARY = "(no summary)"
NOT_AVAILABLE = "N/A"
NEW_STATUS = "New"
UNASSIGNED = "Unassigned"
UNKNOWN_STATE = "Unknown"
DEFAULT_CHANGE_TYPE = "Change"

_TRUTHY = {"true", "1", "yes", "y"}


def _text(value: Any, placeholder: str) -> str:
    if value is None:
        return placeholder
    text = str(value).strip()
    return text if text else placeholder


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUTHY


def record_url(config: IntegrationConfig, table: str, sys_id: Any) -> str:
    """Deep link into the ticketing UI for one record."""
    return f"{config.instance_url}/nav_to.do?uri={table}.do?sys_id={sys_id or ''}"


class RecordNormalizer:
    """
    Turns raw external records into canonical ones.

    A single DateNormalizer is shared so that its fallback policy and
    failure count apply across a whole normalization pass.
    """

    def __init__(self, dates: Optional[DateNormalizer] = None) -> None:
        self.dates = dates or DateNormalizer()
        self._dispatch: Dict[str, Callable[[Dict[str, Any], IntegrationConfig], Any]] = {
            OUTAGE: self.normalize_outage,
            TICKET: self.normalize_ticket,
            CHANGE: self.normalize_change,
            ALERT: self.normalize_alert,
        }

    def normalize(self, raw: Dict[str, Any], config: IntegrationConfig, kind: str) -> Any:
        """Normalize one record of the given ``kind``."""
        try:
            handler = self._dispatch[kind]
        except KeyError:
            raise ValueError(f"record kind must be one of {RECORD_KINDS}, got {kind!r}") from None
        return handler(raw, config)

    def normalize_all(
        self, records: Iterable[Dict[str, Any]], config: IntegrationConfig, kind: str
    ) -> List[Any]:
        return [self.normalize(raw, config, kind) for raw in records]

    # ── Record kinds ──────────────────────────────────────

    def normalize_outage(self, raw: Dict[str, Any], config: IntegrationConfig) -> CanonicalOutage:
        mapping = config.field_mapping

        def field(name: str) -> Any:
            return resolve(raw, mapping.get(name))

        bridge_url = field("bridge_url")
        offering = field("offering")
        return CanonicalOutage(
            id=_text(resolve(raw, "number") or resolve(raw, "sys_id"), NOT_AVAILABLE),
            system_name=_text(field("system_name"), UNKNOWN_SYSTEM),
            impact_level=impact.translate(
                field("impact_level"), config.impact_mapping, DEFAULT_IMPACT
            ),
            start_time=self.dates.parse(field("start_time")),
            eta=self.dates.parse(field("eta")),
            description=_text(field("description"), NO_DESCRIPTION),
            bridge_url=_text(bridge_url, "") or None,
            offering=_text(offering, ""),
        )

    def normalize_ticket(self, raw: Dict[str, Any], config: IntegrationConfig) -> CanonicalTicket:
        mapping = config.ticket_field_mapping

        def field(name: str) -> Any:
            return resolve(raw, mapping.get(name))

        return CanonicalTicket(
            id=_text(field("id"), NOT_AVAILABLE),
            summary=_text(field("summary"), NO_SUMMARY),
            affected_system=_text(field("affected_system"), NOT_AVAILABLE),
            status=_text(field("status"), NEW_STATUS),
            assigned_team=_text(field("assigned_team"), UNASSIGNED),
            ticket_url=record_url(config, config.ticket_table, resolve(raw, "sys_id")),
        )

    def normalize_change(self, raw: Dict[str, Any], config: IntegrationConfig) -> ChangeRecord:
        mapping = config.change_field_mapping

        def field(name: str) -> Any:
            return resolve(raw, mapping.get(name))

        sys_id = resolve(raw, "sys_id")
        number = _text(field("number"), "")
        return ChangeRecord(
            id=_text(sys_id, "") or number or NOT_AVAILABLE,
            number=number or NOT_AVAILABLE,
            summary=_text(field("summary"), NO_CHANGE_SUMMARY),
            offering=_text(field("offering"), ""),
            start=self.dates.parse_optional(field("start")),
            end=self.dates.parse_optional(field("end")),
            state=_text(field("state"), UNKNOWN_STATE),
            type=_text(field("type"), DEFAULT_CHANGE_TYPE),
            url=record_url(config, config.change_table, sys_id),
        )

    def normalize_alert(self, raw: Dict[str, Any], config: IntegrationConfig) -> MonitoringAlert:
        mapping = config.field_mapping

        def field(name: str) -> Any:
            return resolve(raw, mapping.get(name))

        return MonitoringAlert(
            id=_text(field("id"), NOT_AVAILABLE),
            type=_text(field("type"), NOT_AVAILABLE),
            affected_system=_text(field("affected_system"), NOT_AVAILABLE),
            timestamp=self.dates.parse(field("timestamp")),
            severity=impact.translate(field("severity"), config.impact_mapping, DEFAULT_SEVERITY),
            validated=_flag(field("validated")),
        )
