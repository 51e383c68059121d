"""
Tests for impact vocabulary translation.
"""

from statusboard.impact import build_index, external_tokens_for, first_unknown, translate
from statusboard.models import IMPACT_LEVELS, ImpactMapping

MAPPING = [
    ImpactMapping("outage", "Outage"),
    ImpactMapping("degradation", "Degradation"),
]


class TestTranslate:
    def test_exact_match(self):
        assert translate("outage", MAPPING, "Degradation") == "Outage"

    def test_case_and_whitespace_insensitive(self):
        assert translate("  OUTAGE ", MAPPING, "Degradation") == "Outage"
        assert translate("Degradation\n", MAPPING, "Outage") == "Degradation"

    def test_unknown_token_yields_default(self):
        assert translate("planned", MAPPING, "Degradation") == "Degradation"

    def test_null_and_empty_yield_default(self):
        assert translate(None, MAPPING, "Degradation") == "Degradation"
        assert translate("   ", MAPPING, "Degradation") == "Degradation"

    def test_idempotent(self):
        for token in ("outage", "DEGRADATION", "unknown", None):
            once = translate(token, MAPPING, "Degradation")
            assert translate(once, MAPPING, "Degradation") == once

    def test_result_is_canonical(self):
        for token in ("outage", "Outage ", "sev1", "", None):
            assert translate(token, MAPPING, "Degradation") in IMPACT_LEVELS

    def test_first_duplicate_wins(self):
        mapping = [
            ImpactMapping("outage", "Outage"),
            ImpactMapping("OUTAGE", "Degradation"),
        ]
        assert translate("outage", mapping, "Degradation") == "Outage"

    def test_non_string_token(self):
        mapping = [ImpactMapping("2", "Critical"), ImpactMapping("3", "Warning")]
        assert translate(2, mapping, "Info") == "Critical"
        assert translate(9, mapping, "Info") == "Info"


class TestIndexHelpers:
    def test_build_index_lowercases_keys(self):
        assert build_index([ImpactMapping(" Major ", "Outage")]) == {"major": "Outage"}

    def test_external_tokens_for_categories(self):
        mapping = MAPPING + [ImpactMapping("Partial", "Degradation")]
        assert external_tokens_for(mapping, IMPACT_LEVELS) == ["outage", "degradation", "partial"]

    def test_external_tokens_skip_shadowed_duplicates(self):
        mapping = [ImpactMapping("outage", "Outage"), ImpactMapping("Outage", "Degradation")]
        assert external_tokens_for(mapping, ["Degradation"]) == []

    def test_first_unknown(self):
        bad = ImpactMapping("maint", "Maintenance")
        assert first_unknown(MAPPING + [bad], IMPACT_LEVELS) is bad
        assert first_unknown(MAPPING, IMPACT_LEVELS) is None
