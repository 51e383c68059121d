"""
Tests for raw -> canonical record normalization.

Uses realistic ServiceNow table API and SolarWinds SWIS payloads.
"""

from datetime import datetime, timezone

import pytest

from statusboard.config import default_integration
from statusboard.dates import DateNormalizer
from statusboard.models import SERVICENOW, SOLARWINDS
from statusboard.normalizer import ALERT, CHANGE, OUTAGE, TICKET, RecordNormalizer

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def normalizer():
    return RecordNormalizer(DateNormalizer(clock=lambda: FIXED_NOW))


@pytest.fixture
def servicenow():
    config = default_integration(SERVICENOW)
    config.base_url = "https://acme.service-now.com/"
    return config


# ─── Sample Records ───────────────────────────────────────────

OUTAGE_RECORD = {
    "sys_id": "a1b2c3",
    "number": "OUT0010042",
    "cmdb_ci.name": "Payments API",
    "cmdb_ci": {"display_value": "Payments", "link": "https://acme.service-now.com/api/x"},
    "type": "Outage",
    "begin": "2026-10-19 09:15:00",
    "end": "",
    "short_description": "  Card authorizations failing  ",
    "u_teams_bridge_url": "https://teams.example.com/bridge/42",
}

TICKET_RECORD = {
    "sys_id": "46d44a5d",
    "number": "INC0012345",
    "short_description": "VPN down for EMEA",
    "cmdb_ci.name": "Corporate VPN",
    "state": "In Progress",
    "assignment_group": {"name": "Network Ops", "link": "https://acme.service-now.com/api/y"},
    "priority": "1 - Critical",
}

CHANGE_RECORD = {
    "sys_id": "c0ffee",
    "number": "CHG0030001",
    "short_description": "Rotate TLS certs",
    "service_offering": {"display_value": "Payments"},
    "start_date": "2026-10-19 08:00:00",
    "end_date": "",
    "state": "Scheduled",
    "type": "Normal",
}

ALERT_RECORD = {
    "AlertObjectID": 42,
    "EntityCaption": "Node down",
    "EntityDetailsUrl": "core-sw-01",
    "TriggerTimeStamp": "2026-10-19T11:58:00Z",
    "Acknowledged": True,
    "Severity": 2,
}


# ─── Outages ──────────────────────────────────────────────────


class TestNormalizeOutage:
    def test_full_record(self, normalizer, servicenow):
        outage = normalizer.normalize(OUTAGE_RECORD, servicenow, OUTAGE)
        assert outage.id == "OUT0010042"
        assert outage.system_name == "Payments API"
        assert outage.impact_level == "Outage"
        assert outage.start_time == datetime(2026, 10, 19, 9, 15, tzinfo=timezone.utc)
        assert outage.eta == FIXED_NOW
        assert outage.description == "Card authorizations failing"
        assert outage.bridge_url == "https://teams.example.com/bridge/42"
        assert outage.offering == "Payments"

    def test_empty_record_gets_placeholders(self, normalizer, servicenow):
        outage = normalizer.normalize({}, servicenow, OUTAGE)
        assert outage.id == "N/A"
        assert outage.system_name == "Unknown System"
        assert outage.impact_level == "Degradation"
        assert outage.description == "No description provided."
        assert outage.bridge_url is None
        assert outage.offering == ""
        assert outage.start_time == FIXED_NOW

    def test_falls_back_to_sys_id(self, normalizer, servicenow):
        outage = normalizer.normalize({"sys_id": "a1b2c3"}, servicenow, OUTAGE)
        assert outage.id == "a1b2c3"

    def test_unknown_impact_defaults_to_degradation(self, normalizer, servicenow):
        outage = normalizer.normalize({"type": "planned"}, servicenow, OUTAGE)
        assert outage.impact_level == "Degradation"

    def test_nested_system_name(self, normalizer, servicenow):
        raw = {"cmdb_ci": {"name": "Core DB"}}
        assert normalizer.normalize(raw, servicenow, OUTAGE).system_name == "Core DB"

    def test_normalize_all(self, normalizer, servicenow):
        outages = normalizer.normalize_all([OUTAGE_RECORD, {}], servicenow, OUTAGE)
        assert [o.id for o in outages] == ["OUT0010042", "N/A"]


# ─── Tickets ──────────────────────────────────────────────────


class TestNormalizeTicket:
    def test_full_record(self, normalizer, servicenow):
        ticket = normalizer.normalize(TICKET_RECORD, servicenow, TICKET)
        assert ticket.id == "INC0012345"
        assert ticket.summary == "VPN down for EMEA"
        assert ticket.affected_system == "Corporate VPN"
        assert ticket.status == "In Progress"
        assert ticket.assigned_team == "Network Ops"
        assert ticket.ticket_url == (
            "https://acme.service-now.com/nav_to.do?uri=incident.do?sys_id=46d44a5d"
        )

    def test_flat_assignment_group(self, normalizer, servicenow):
        raw = {"assignment_group.name": "Service Desk"}
        assert normalizer.normalize(raw, servicenow, TICKET).assigned_team == "Service Desk"

    def test_placeholders(self, normalizer, servicenow):
        ticket = normalizer.normalize({}, servicenow, TICKET)
        assert ticket.summary == "No summary"
        assert ticket.status == "New"
        assert ticket.assigned_team == "Unassigned"
        assert ticket.affected_system == "N/A"


# ─── Changes ──────────────────────────────────────────────────


class TestNormalizeChange:
    def test_full_record(self, normalizer, servicenow):
        change = normalizer.normalize(CHANGE_RECORD, servicenow, CHANGE)
        assert change.id == "c0ffee"
        assert change.number == "CHG0030001"
        assert change.offering == "Payments"
        assert change.start == datetime(2026, 10, 19, 8, tzinfo=timezone.utc)
        assert change.end is None
        assert change.state == "Scheduled"
        assert change.type == "Normal"
        assert change.is_hot is False
        assert change.url.endswith("uri=change_request.do?sys_id=c0ffee")

    def test_placeholders(self, normalizer, servicenow):
        change = normalizer.normalize({"number": "CHG1"}, servicenow, CHANGE)
        assert change.id == "CHG1"
        assert change.summary == "(no summary)"
        assert change.state == "Unknown"
        assert change.type == "Change"
        assert change.start is None


# ─── Alerts ───────────────────────────────────────────────────


class TestNormalizeAlert:
    def test_full_record(self, normalizer):
        config = default_integration(SOLARWINDS)
        alert = normalizer.normalize(ALERT_RECORD, config, ALERT)
        assert alert.id == "42"
        assert alert.type == "Node down"
        assert alert.affected_system == "core-sw-01"
        assert alert.timestamp == datetime(2026, 10, 19, 11, 58, tzinfo=timezone.utc)
        assert alert.severity == "Critical"
        assert alert.validated is True

    def test_unmapped_severity_is_info(self, normalizer):
        config = default_integration(SOLARWINDS)
        alert = normalizer.normalize({"Severity": 7, "Acknowledged": "false"}, config, ALERT)
        assert alert.severity == "Info"
        assert alert.validated is False


def test_unknown_kind_rejected(normalizer, servicenow):
    with pytest.raises(ValueError):
        normalizer.normalize({}, servicenow, "incident")
