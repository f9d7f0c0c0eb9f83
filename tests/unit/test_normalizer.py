#!/usr/bin/env python3
"""
Tests for the finding normalizer: severity shift, confidence mapping,
type table and generic fallback.
"""

import re
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "scripts"))

from contract_audit.models import CodeLocation, RawFinding
from contract_audit.normalizer import (
    DEFAULT_TYPE_RULES,
    VULNERABILITY_TYPES,
    FindingNormalizer,
    extract_location,
    make_title,
    map_confidence,
    map_severity,
    vulnerability_id,
)
from contract_audit.recommendations import GENERIC_RECOMMENDATION, TOOL_RECOMMENDATIONS

SEVERITY_SHIFT_CASES = [
    ("high", "critical"),
    ("medium", "high"),
    ("low", "medium"),
    ("informational", "low"),
]


@pytest.fixture
def normalizer():
    return FindingNormalizer()


def _finding(check="reentrancy-eth", impact="High", confidence="High", **kwargs) -> RawFinding:
    kwargs.setdefault("description", "Reentrancy in Vault.withdraw()")
    kwargs.setdefault("locations", [CodeLocation(file="Vault.sol", line=12, column=5)])
    return RawFinding(check=check, impact=impact, confidence=confidence, **kwargs)


class TestSeverityShift:
    @pytest.mark.parametrize("label,expected", SEVERITY_SHIFT_CASES)
    def test_shift_is_exact(self, label, expected):
        assert map_severity(label) == expected

    @pytest.mark.parametrize("label,expected", SEVERITY_SHIFT_CASES)
    def test_shift_ignores_case(self, label, expected):
        assert map_severity(label.capitalize()) == expected
        assert map_severity(label.upper()) == expected

    @pytest.mark.parametrize("label,expected", SEVERITY_SHIFT_CASES)
    def test_shift_applied_through_normalizer(self, normalizer, label, expected):
        vuln = normalizer.normalize(_finding(impact=label.capitalize()))
        assert vuln.severity == expected

    def test_optimization_is_low(self):
        assert map_severity("Optimization") == "low"

    def test_critical_stays_critical(self):
        assert map_severity("critical") == "critical"

    @pytest.mark.parametrize("label", [None, "", "bogus"])
    def test_unknown_and_absent_are_low(self, label):
        assert map_severity(label) == "low"

    @pytest.mark.parametrize("label,expected", [("error", "high"), ("warning", "medium"), ("info", "low"), ("note", "low")])
    def test_marker_labels_not_shifted(self, label, expected):
        assert map_severity(label, shift=False) == expected
        assert map_severity(label) == expected

    def test_unshifted_scale_labels_pass_through(self):
        assert map_severity("high", shift=False) == "high"
        assert map_severity("informational", shift=False) == "low"


class TestConfidence:
    @pytest.mark.parametrize("label,expected", [("high", 0.9), ("Medium", 0.7), ("LOW", 0.5)])
    def test_labels(self, label, expected):
        assert map_confidence(label) == expected

    def test_absent_is_half(self):
        assert map_confidence(None) == 0.5

    @pytest.mark.parametrize("label,expected", [("0.8", 0.8), ("2", 1.0), ("-1", 0.0), ("nan", 0.5), ("bogus", 0.5)])
    def test_numeric_and_garbage(self, label, expected):
        assert map_confidence(label) == expected

    def test_normalized_confidence_absent(self, normalizer):
        assert normalizer.normalize(_finding(confidence=None)).confidence == 0.5


class TestTypeMapping:
    @pytest.mark.parametrize("check,expected", [
        ("reentrancy-eth", "reentrancy"),
        ("reentrancy-no-eth", "reentrancy"),
        ("tx-origin", "access_control"),
        ("arbitrary-send-eth", "access_control"),
        ("controlled-delegatecall", "delegatecall"),
        ("delegatecall-loop", "denial_of_service"),
        ("timestamp", "timestamp_dependence"),
        ("uninitialized-storage", "uninitialized_state"),
        ("locked-ether", "locked_funds"),
        ("shadowing-state", "shadowing"),
        ("low-level-calls", "unchecked_call"),
        ("constable-states", "gas_optimization"),
        ("naming-convention", "best_practice"),
    ])
    def test_known_checks(self, normalizer, check, expected):
        vuln_type, rule = normalizer.map_type(check)
        assert vuln_type == expected
        assert rule != "generic"

    def test_rules_target_known_types(self):
        for _, vuln_type in DEFAULT_TYPE_RULES:
            assert vuln_type in VULNERABILITY_TYPES

    def test_unrecognized_falls_back_to_generic(self, normalizer):
        vuln = normalizer.normalize(_finding(check="brand-new-detector"))
        assert vuln.type == "security"
        assert vuln.platform_specific_data["mappingUsed"] == "generic"
        assert vuln.platform_specific_data["originalType"] == "brand-new-detector"
        assert vuln.recommendation == GENERIC_RECOMMENDATION

    def test_custom_rules(self):
        normalizer = FindingNormalizer(type_rules=[("foo", "overflow")])
        assert normalizer.map_type("foo-bar") == ("overflow", "foo")
        assert normalizer.map_type("reentrancy-eth") == ("security", "generic")


class TestNormalize:
    def test_structured_high_high(self, normalizer):
        vuln = normalizer.normalize(_finding(impact="High", confidence="High"))
        assert vuln.severity == "critical"
        assert vuln.confidence == 0.9
        assert vuln.type == "reentrancy"
        assert vuln.location.line == 12
        assert vuln.recommendation == TOOL_RECOMMENDATIONS["reentrancy-eth"]
        assert vuln.source == "static"
        assert vuln.platform_specific_data["platformSpecific"] is False
        assert vuln.platform_specific_data["originalSeverity"] == "High"

    def test_id_format(self, normalizer):
        vuln = normalizer.normalize(_finding())
        assert re.fullmatch(r"static-[0-9a-f]{12}", vuln.id)

    def test_platform_prefixes_id(self, normalizer):
        vuln = normalizer.normalize(_finding(), platform="ethereum")
        assert vuln.id.startswith("ethereum-")
        assert vuln.platform == "ethereum"

    def test_platform_recommendation_preferred(self, normalizer):
        vuln = normalizer.normalize(_finding(), platform="ethereum")
        assert "ReentrancyGuard" in vuln.recommendation

    def test_heuristic_finding_not_shifted(self, normalizer):
        finding = RawFinding(
            check="text-parsed",
            impact="warning",
            description="WARNING: file.sol:10:1: issue",
            locations=[CodeLocation(file="file.sol", line=10, column=1)],
            source="heuristic",
        )
        vuln = normalizer.normalize(finding)
        assert vuln.severity == "medium"
        assert vuln.type == "security"
        assert vuln.location.line == 10
        assert vuln.platform_specific_data["parseStrategy"] == "heuristic"

    def test_missing_location_placeholder(self, normalizer):
        vuln = normalizer.normalize(_finding(locations=[]))
        assert (vuln.location.file, vuln.location.line, vuln.location.column) == ("unknown", 0, 0)

    def test_empty_description_gets_text(self, normalizer):
        vuln = normalizer.normalize(_finding(description=""))
        assert vuln.description == "reentrancy-eth issue detected"
        assert vuln.title == "reentrancy-eth issue detected"

    def test_normalize_all_keeps_order(self, normalizer):
        findings = [_finding(check="tx-origin"), _finding(check="timestamp")]
        assert [v.type for v in normalizer.normalize_all(findings)] == ["access_control", "timestamp_dependence"]


class TestHelpers:
    def test_extract_location_first(self):
        first = CodeLocation(file="A.sol", line=1)
        assert extract_location([first, CodeLocation(file="B.sol", line=2)]) is first

    def test_vulnerability_id_deterministic(self):
        loc = CodeLocation(file="A.sol", line=3)
        assert vulnerability_id("reentrancy", loc, "d") == vulnerability_id("reentrancy", loc, "d")
        assert vulnerability_id("reentrancy", loc, "d") != vulnerability_id("overflow", loc, "d")

    def test_title_first_line_truncated(self):
        assert make_title("line one\nline two", "x") == "line one"
        assert len(make_title("a" * 300, "x")) == 100
        assert make_title("   ", "fallback") == "fallback"
