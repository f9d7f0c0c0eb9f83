#!/usr/bin/env python3
"""
Tests for the recommendation engine lookup order.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "scripts"))

from contract_audit.normalizer import VULNERABILITY_TYPES
from contract_audit.platforms import canonical_platform
from contract_audit.recommendations import (
    GENERIC_RECOMMENDATION,
    PLATFORM_RECOMMENDATIONS,
    TOOL_RECOMMENDATIONS,
    TYPE_RECOMMENDATIONS,
    recommend,
)


class TestRecommend:
    def test_platform_original_type_first(self):
        assert recommend("security", "solana", "pda-security") == PLATFORM_RECOMMENDATIONS["solana"]["pda-security"]

    def test_platform_normalized_type_second(self):
        assert recommend("overflow", "solana", "unknown-lint") == PLATFORM_RECOMMENDATIONS["solana"]["overflow"]

    def test_tool_table_third(self):
        assert recommend("reentrancy", None, "reentrancy-eth") == TOOL_RECOMMENDATIONS["reentrancy-eth"]

    def test_type_table_fourth(self):
        assert recommend("shadowing", None, "shadowing-state") == TYPE_RECOMMENDATIONS["shadowing"]

    def test_generic_last(self):
        assert recommend("security") == GENERIC_RECOMMENDATION
        assert recommend("not-a-type", "nowhere", "nothing") == GENERIC_RECOMMENDATION

    def test_platform_beats_tool_table(self):
        assert recommend("reentrancy", "ethereum", "reentrancy-eth") == PLATFORM_RECOMMENDATIONS["ethereum"]["reentrancy"]

    @pytest.mark.parametrize("alias", ["polygon", "BSC", "arbitrum", "base"])
    def test_evm_aliases_share_ethereum_guidance(self, alias):
        assert recommend("access_control", alias) == PLATFORM_RECOMMENDATIONS["ethereum"]["access_control"]

    @pytest.mark.parametrize("vuln_type", VULNERABILITY_TYPES)
    @pytest.mark.parametrize("platform", [None, "ethereum", "solana", "cardano", "aptos", "sui", "move", "tezos"])
    def test_never_empty(self, vuln_type, platform):
        assert recommend(vuln_type, platform).strip()

    def test_tables_read_only(self):
        with pytest.raises(TypeError):
            TYPE_RECOMMENDATIONS["overflow"] = "changed"
        with pytest.raises(TypeError):
            PLATFORM_RECOMMENDATIONS["solana"]["pda-security"] = "changed"

    def test_generic_wording(self):
        assert "best practices" in GENERIC_RECOMMENDATION


class TestPlatforms:
    @pytest.mark.parametrize("tag,expected", [
        ("ethereum", "ethereum"),
        ("Polygon", "ethereum"),
        (" optimism ", "ethereum"),
        ("solana", "solana"),
        ("", None),
        (None, None),
    ])
    def test_canonical_platform(self, tag, expected):
        assert canonical_platform(tag) == expected
