"""
YAML configuration loader and integration config store.

Reads config.yaml and produces typed Settings / VendorProbeSpec objects
plus seed IntegrationConfig records. Falls back to sensible defaults if
the config file is missing.

Integration configs are singletons, one per kind: created lazily from
the built-in defaults on first read, replaced wholesale on save, never
patched field by field.
"""

from __future__ import annotations

import copy
import logging
import os
import tempfile
import threading
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from statusboard.errors import InvalidConfiguration
from statusboard.impact import first_unknown
from statusboard.models import (
    ALERT_SEVERITIES,
    IMPACT_LEVELS,
    INTEGRATION_KINDS,
    SERVICENOW,
    SOLARWINDS,
    ImpactMapping,
    IntegrationConfig,
    Settings,
    VendorProbeSpec,
)

logger = logging.getLogger(__name__)

# Default path: config.yaml next to the project root
_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"

_VOCABULARY = {
    SERVICENOW: IMPACT_LEVELS,
    SOLARWINDS: ALERT_SEVERITIES,
}


def default_integration(kind: str) -> IntegrationConfig:
    """Built-in defaults for ``kind``."""
    if kind == SERVICENOW:
        return IntegrationConfig(
            kind=SERVICENOW,
            enabled=False,
            base_url="",
            username_var="SERVICENOW_USERNAME",
            password_var="SERVICENOW_PASSWORD",
            table="cmdb_ci_outage",
            field_mapping={
                "system_name": "cmdb_ci.name",
                "impact_level": "type",
                "start_time": "begin",
                "eta": "end",
                "description": "short_description",
                "bridge_url": "u_teams_bridge_url",
                "offering": "cmdb_ci",
            },
            impact_mapping=[
                ImpactMapping("outage", "Outage"),
                ImpactMapping("degradation", "Degradation"),
            ],
            ticket_table="incident",
            ticket_field_mapping={
                "id": "number",
                "summary": "short_description",
                "affected_system": "cmdb_ci.name",
                "status": "state",
                "assigned_team": "assignment_group.name",
                "priority": "priority",
            },
            change_table="change_request",
            change_field_mapping={
                "number": "number",
                "summary": "short_description",
                "offering": "service_offering",
                "start": "start_date",
                "end": "end_date",
                "state": "state",
                "type": "type",
            },
        )
    if kind == SOLARWINDS:
        return IntegrationConfig(
            kind=SOLARWINDS,
            enabled=False,
            base_url="",
            username_var="SOLARWINDS_USERNAME",
            password_var="SOLARWINDS_PASSWORD",
            table="Orion.AlertActive",
            field_mapping={
                "id": "AlertObjectID",
                "type": "EntityCaption",
                "affected_system": "EntityDetailsUrl",
                "timestamp": "TriggerTimeStamp",
                "validated": "Acknowledged",
                "severity": "Severity",
            },
            impact_mapping=[
                ImpactMapping("2", "Critical"),
                ImpactMapping("3", "Warning"),
                ImpactMapping("1", "Info"),
            ],
        )
    raise InvalidConfiguration(f"unknown integration kind: {kind!r}")


def _impact_mapping_valid(kind: str, mapping: Any) -> bool:
    if not isinstance(mapping, list) or not mapping:
        return False
    if not all(isinstance(item, ImpactMapping) for item in mapping):
        return False
    return first_unknown(mapping, _VOCABULARY[kind]) is None


_TEXT_FIELDS = ("base_url", "username_var", "password_var", "table", "ticket_table", "change_table", "id")
_FIELD_MAPPINGS = ("field_mapping", "ticket_field_mapping", "change_field_mapping")
_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0", ""}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    raise InvalidConfiguration(f"enabled must be a boolean, got {value!r}")


def _checked(kind: str, value: IntegrationConfig) -> IntegrationConfig:
    """Deep copy of ``value`` with every field type-checked."""
    for name in _TEXT_FIELDS:
        if not isinstance(getattr(value, name), str):
            raise InvalidConfiguration(f"{name} must be a string")
    for name in _FIELD_MAPPINGS:
        mapping = getattr(value, name)
        if not isinstance(mapping, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in mapping.items()
        ):
            raise InvalidConfiguration(f"{name} must map field names to string paths")
    rows = value.impact_mapping
    if not isinstance(rows, list) or not all(isinstance(row, ImpactMapping) for row in rows):
        raise InvalidConfiguration(
            "impact_mapping must be a list of {external_value, canonical_value} objects"
        )
    bad = first_unknown(rows, _VOCABULARY[kind])
    if bad is not None:
        raise InvalidConfiguration(
            f"impact mapping value {bad.canonical_value!r} is not one of "
            f"{', '.join(_VOCABULARY[kind])}"
        )
    checked = copy.deepcopy(value)
    checked.enabled = _as_bool(value.enabled)
    return checked


def _config_to_dict(config: IntegrationConfig) -> Dict[str, Any]:
    raw = asdict(config)
    raw.pop("kind", None)
    return raw


class ConfigStore:
    """
    Process-wide store of integration configs, one per kind.

    Reads hand out deep copies, so callers can never partially mutate
    the live record. When ``path`` is given the records are persisted
    to YAML and reloaded from it on construction.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        seeds: Optional[Dict[str, IntegrationConfig]] = None,
    ) -> None:
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._records: Dict[str, IntegrationConfig] = {}

        if seeds:
            for kind, config in seeds.items():
                self._records[kind] = copy.deepcopy(config)
        if self.path and self.path.exists():
            self._records.update(self._read_file(self.path))

    def get(self, kind: str) -> IntegrationConfig:
        """Current config for ``kind``, initialized with defaults if unset."""
        with self._lock:
            record = self._records.get(kind)
            if record is None:
                record = default_integration(kind)
                self._records[kind] = record
            if not _impact_mapping_valid(kind, record.impact_mapping):
                logger.warning("Repairing impact mapping for %s to defaults", kind)
                record.impact_mapping = default_integration(kind).impact_mapping
            return copy.deepcopy(record)

    def put(self, kind: str, value: IntegrationConfig) -> IntegrationConfig:
        """Validate and replace the whole record for ``kind``."""
        if kind not in INTEGRATION_KINDS:
            raise InvalidConfiguration(f"unknown integration kind: {kind!r}")
        if value.kind != kind:
            raise InvalidConfiguration(f"config kind {value.kind!r} does not match {kind!r}")
        replacement = _checked(kind, value)
        with self._lock:
            self._records[kind] = replacement
            if self.path:
                self._write_file(self.path, dict(self._records))
        logger.info("Saved %s integration config", kind)
        return copy.deepcopy(replacement)

    # ── Persistence ───────────────────────────────────────

    @staticmethod
    def _read_file(path: Path) -> Dict[str, IntegrationConfig]:
        with open(path, "r") as fh:
            raw = yaml.safe_load(fh) or {}
        return parse_integrations(raw)

    @staticmethod
    def _write_file(path: Path, records: Dict[str, IntegrationConfig]) -> None:
        payload = {kind: _config_to_dict(cfg) for kind, cfg in records.items()}
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as fh:
                yaml.safe_dump(payload, fh, sort_keys=False)
            os.replace(tmp, path)
        except BaseException:
            os.unlink(tmp)
            raise


def parse_integrations(raw: Dict[str, Any]) -> Dict[str, IntegrationConfig]:
    """Merge per-kind mappings over the built-in defaults."""
    configs: Dict[str, IntegrationConfig] = {}
    for kind, entry in (raw or {}).items():
        if kind not in INTEGRATION_KINDS or not isinstance(entry, dict):
            logger.warning("Ignoring integration config %r", kind)
            continue
        merged = _config_to_dict(default_integration(kind))
        merged.update(entry)
        configs[kind] = IntegrationConfig.from_dict(kind, merged)
    return configs


def load_config(
    path: str | Path | None = None,
) -> Tuple[Settings, List[VendorProbeSpec], Dict[str, IntegrationConfig]]:
    """
    Load and parse the YAML configuration file.

    Returns:
        A tuple of (Settings, list of VendorProbeSpec, seed integration
        configs keyed by kind).
    """
    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.warning("Config file not found at %s, using defaults.", config_path)
        return Settings(), [], {}

    with open(config_path, "r") as fh:
        raw = yaml.safe_load(fh) or {}

    # Parse global settings
    raw_settings = raw.get("settings", {}) or {}
    defaults = Settings()
    settings = Settings(
        log_level=str(raw_settings.get("log_level", defaults.log_level)).upper(),
        refresh_interval=int(raw_settings.get("refresh_interval", defaults.refresh_interval)),
        port=int(raw_settings.get("port", defaults.port)),
        timezone=raw_settings.get("timezone", defaults.timezone),
        date_fallback=raw_settings.get("date_fallback", defaults.date_fallback),
        request_timeout=float(raw_settings.get("request_timeout", defaults.request_timeout)),
        max_retries=int(raw_settings.get("max_retries", defaults.max_retries)),
        base_backoff=int(raw_settings.get("base_backoff", defaults.base_backoff)),
    )

    # Parse vendors
    vendors: List[VendorProbeSpec] = []
    for index, entry in enumerate(raw.get("vendors", []) or []):
        vendors.append(
            VendorProbeSpec(
                id=str(entry.get("id") or f"vendor-{index + 1}"),
                name=entry["name"],
                url=entry.get("url", ""),
                status_type=entry.get("status_type", "MANUAL"),
                api_url=entry.get("api_url"),
                json_path=entry.get("json_path"),
                expected_value=(
                    None if entry.get("expected_value") is None
                    else str(entry["expected_value"])
                ),
            )
        )

    integrations = parse_integrations(raw.get("integrations", {}) or {})

    return settings, vendors, integrations
