"""
Tests for the YAML loader and the integration config store.
"""

import pytest
import yaml

from statusboard.config import ConfigStore, default_integration, load_config
from statusboard.errors import InvalidConfiguration
from statusboard.models import SERVICENOW, SINGLETON_ID, SOLARWINDS, ImpactMapping


# ─── ConfigStore ──────────────────────────────────────────────


class TestConfigStore:
    def test_lazy_default(self):
        store = ConfigStore()
        config = store.get(SERVICENOW)
        assert config.id == SINGLETON_ID
        assert config.table == "cmdb_ci_outage"
        assert config.enabled is False
        assert [m.canonical_value for m in config.impact_mapping] == ["Outage", "Degradation"]

    def test_solarwinds_default(self):
        config = ConfigStore().get(SOLARWINDS)
        assert config.table == "Orion.AlertActive"
        assert config.field_mapping["severity"] == "Severity"

    def test_reads_are_isolated_copies(self):
        store = ConfigStore()
        config = store.get(SERVICENOW)
        config.field_mapping["system_name"] = "mutated"
        config.impact_mapping.clear()
        again = store.get(SERVICENOW)
        assert again.field_mapping["system_name"] == "cmdb_ci.name"
        assert len(again.impact_mapping) == 2

    def test_put_replaces_wholesale(self):
        store = ConfigStore()
        config = store.get(SERVICENOW)
        config.enabled = True
        config.base_url = "https://acme.service-now.com"
        config.field_mapping = {"system_name": "u_system"}
        store.put(SERVICENOW, config)

        saved = store.get(SERVICENOW)
        assert saved.enabled is True
        assert saved.field_mapping == {"system_name": "u_system"}

    def test_put_returns_copy(self):
        store = ConfigStore()
        config = store.get(SERVICENOW)
        returned = store.put(SERVICENOW, config)
        returned.table = "other"
        assert store.get(SERVICENOW).table == "cmdb_ci_outage"

    def test_empty_mapping_is_repaired_on_read(self):
        store = ConfigStore()
        config = store.get(SERVICENOW)
        config.impact_mapping = []
        store.put(SERVICENOW, config)
        assert [m.external_value for m in store.get(SERVICENOW).impact_mapping] == [
            "outage",
            "degradation",
        ]

    def test_invalid_canonical_value_rejected(self):
        store = ConfigStore()
        config = store.get(SERVICENOW)
        config.impact_mapping = [ImpactMapping("maint", "Maintenance")]
        with pytest.raises(InvalidConfiguration):
            store.put(SERVICENOW, config)
        assert store.get(SERVICENOW).impact_mapping[0].canonical_value == "Outage"

    def test_severity_vocabulary_for_solarwinds(self):
        store = ConfigStore()
        config = store.get(SOLARWINDS)
        config.impact_mapping = [ImpactMapping("1", "Outage")]
        with pytest.raises(InvalidConfiguration):
            store.put(SOLARWINDS, config)

    @pytest.mark.parametrize(
        "name", ["field_mapping", "ticket_field_mapping", "change_field_mapping"]
    )
    def test_field_mapping_must_be_string_map(self, name):
        store = ConfigStore()
        config = store.get(SERVICENOW)
        setattr(config, name, None)
        with pytest.raises(InvalidConfiguration):
            store.put(SERVICENOW, config)
        setattr(config, name, {"system_name": 7})
        with pytest.raises(InvalidConfiguration):
            store.put(SERVICENOW, config)
        assert isinstance(getattr(store.get(SERVICENOW), name), dict)

    def test_impact_mapping_must_be_list_of_rows(self):
        store = ConfigStore()
        config = store.get(SERVICENOW)
        config.impact_mapping = {"outage": "Outage"}
        with pytest.raises(InvalidConfiguration):
            store.put(SERVICENOW, config)
        config.impact_mapping = ["outage"]
        with pytest.raises(InvalidConfiguration):
            store.put(SERVICENOW, config)

    def test_text_fields_must_be_strings(self):
        store = ConfigStore()
        config = store.get(SERVICENOW)
        config.base_url = None
        with pytest.raises(InvalidConfiguration):
            store.put(SERVICENOW, config)

    def test_enabled_is_coerced_to_bool(self):
        store = ConfigStore()
        config = store.get(SERVICENOW)
        config.enabled = "true"
        assert store.put(SERVICENOW, config).enabled is True
        config.enabled = 0
        assert store.put(SERVICENOW, config).enabled is False
        config.enabled = "sometimes"
        with pytest.raises(InvalidConfiguration):
            store.put(SERVICENOW, config)
        assert store.get(SERVICENOW).enabled is False

    def test_kind_mismatch_rejected(self):
        store = ConfigStore()
        with pytest.raises(InvalidConfiguration):
            store.put(SERVICENOW, store.get(SOLARWINDS))

    def test_unknown_kind(self):
        store = ConfigStore()
        with pytest.raises(InvalidConfiguration):
            store.get("jira")
        with pytest.raises(InvalidConfiguration):
            store.put("jira", default_integration(SERVICENOW))

    def test_seeds_are_used(self):
        seed = default_integration(SERVICENOW)
        seed.base_url = "https://seed.service-now.com"
        store = ConfigStore(seeds={SERVICENOW: seed})
        assert store.get(SERVICENOW).base_url == "https://seed.service-now.com"


class TestPersistence:
    def test_roundtrip(self, tmp_path):
        path = tmp_path / "state" / "integrations.yaml"
        store = ConfigStore(path=path)
        config = store.get(SERVICENOW)
        config.enabled = True
        config.impact_mapping = [
            ImpactMapping("SEV1", "Outage"),
            ImpactMapping("SEV2", "Degradation"),
        ]
        store.put(SERVICENOW, config)
        assert path.exists()

        reloaded = ConfigStore(path=path).get(SERVICENOW)
        assert reloaded.enabled is True
        assert reloaded.impact_mapping == [
            ImpactMapping("SEV1", "Outage"),
            ImpactMapping("SEV2", "Degradation"),
        ]

    def test_garbage_mapping_on_disk_is_repaired(self, tmp_path):
        path = tmp_path / "integrations.yaml"
        path.write_text(yaml.safe_dump({"servicenow": {"impact_mapping": "garbage"}}))
        config = ConfigStore(path=path).get(SERVICENOW)
        assert [m.canonical_value for m in config.impact_mapping] == ["Outage", "Degradation"]


# ─── load_config ──────────────────────────────────────────────


class TestLoadConfig:
    def test_parses_all_sections(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            """
settings:
  log_level: debug
  refresh_interval: 60
  timezone: Europe/Berlin
  date_fallback: warn
vendors:
  - name: GitHub
    url: https://www.githubstatus.com
    status_type: API_JSON
    api_url: https://www.githubstatus.com/api/v2/status.json
    json_path: status.indicator
    expected_value: none
  - id: vpn
    name: Internal VPN
    url: https://vpn.example.com
integrations:
  servicenow:
    enabled: true
    base_url: https://acme.service-now.com
  jira:
    enabled: true
"""
        )
        settings, vendors, integrations = load_config(path)

        assert settings.log_level == "DEBUG"
        assert settings.refresh_interval == 60
        assert settings.timezone == "Europe/Berlin"
        assert settings.date_fallback == "warn"
        assert settings.port == 10000

        assert [v.id for v in vendors] == ["vendor-1", "vpn"]
        assert vendors[0].is_manual is False
        assert vendors[1].is_manual is True

        assert list(integrations) == [SERVICENOW]
        assert integrations[SERVICENOW].enabled is True
        assert integrations[SERVICENOW].table == "cmdb_ci_outage"

    def test_missing_file_uses_defaults(self, tmp_path):
        settings, vendors, integrations = load_config(tmp_path / "absent.yaml")
        assert settings.refresh_interval == 300
        assert vendors == []
        assert integrations == {}
