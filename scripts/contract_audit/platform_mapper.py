"""
Platform Vulnerability Mapper - per-platform tables to the canonical taxonomy.

Each non-EVM platform registers a PlatformMappingTable describing its
idiomatic vulnerability classes (account model issues on Solana, UTXO and
datum issues on Cardano, resource and capability issues on Move chains).
Lookup is exact type first, then substring, then the generic ``security``
bucket with ``mappingUsed="generic"``.

EVM platforms have no entry here; their findings go through the default
FindingNormalizer table.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence, Tuple

from contract_audit.models import NormalizedVulnerability, RawFinding
from contract_audit.normalizer import (
    GENERIC_TYPE,
    MAPPING_GENERIC,
    extract_location,
    make_title,
    map_confidence,
    map_severity,
    vulnerability_id,
)
from contract_audit.platforms import canonical_platform
from contract_audit.recommendations import recommend

__all__ = [
    "VulnerabilityMapping",
    "PlatformMappingTable",
    "PLATFORM_MAPPINGS",
    "build_registry",
    "PlatformVulnerabilityMapper",
]

logger = logging.getLogger(__name__)

# Severity presets. Keys cover both the platform scale and compiler levels.
_PASS_THROUGH = MappingProxyType({
    "critical": "critical", "high": "high", "medium": "medium", "low": "low",
    "informational": "low", "error": "high", "warning": "medium", "note": "low",
    "help": "low", "info": "low",
})
_CAPPED_HIGH = MappingProxyType(dict(_PASS_THROUGH, critical="high"))
_ADVISORY = MappingProxyType({
    "critical": "medium", "high": "medium", "medium": "low", "low": "low",
    "informational": "low", "error": "medium", "warning": "low", "note": "low",
    "help": "low", "info": "low",
})

_UNKNOWN_SEVERITY = "medium"


@dataclass(frozen=True)
class VulnerabilityMapping:
    """One platform-specific finding class and how it normalizes"""

    platform_specific_type: str
    standardized_type: str
    severity_mapping: Mapping[str, str]
    description_template: str = "{description}"

    def matches(self, vuln_type: str) -> bool:
        return self.platform_specific_type in vuln_type

    def severity_for(self, label: Optional[str]) -> str:
        if not label:
            return _UNKNOWN_SEVERITY
        return self.severity_mapping.get(label.strip().lower(), _UNKNOWN_SEVERITY)

    def describe(self, description: str) -> str:
        return self.description_template.replace("{description}", description or "Security issue detected")


@dataclass(frozen=True)
class PlatformMappingTable:
    platform: str
    mappings: Tuple[VulnerabilityMapping, ...]

    def find(self, vuln_type: str) -> Optional[VulnerabilityMapping]:
        vuln_type = (vuln_type or "").lower()
        for mapping in self.mappings:
            if mapping.platform_specific_type == vuln_type:
                return mapping
        for mapping in self.mappings:
            if mapping.matches(vuln_type):
                return mapping
        return None


SOLANA_TABLE = PlatformMappingTable("solana", (
    VulnerabilityMapping("pda-security", "security", _PASS_THROUGH,
                         "PDA security issue in Solana program: {description}"),
    VulnerabilityMapping("insecure-pda-derivation", "security", _PASS_THROUGH,
                         "PDA security issue in Solana program: {description}"),
    VulnerabilityMapping("account-validation", "access_control", _CAPPED_HIGH,
                         "Account validation issue: {description}"),
    VulnerabilityMapping("missing-owner-validation", "access_control", _CAPPED_HIGH,
                         "Account validation issue: {description}"),
    VulnerabilityMapping("anchor-missing-signer", "access_control", _PASS_THROUGH,
                         "Missing signer check: {description}"),
    VulnerabilityMapping("missing-signer-check", "access_control", _PASS_THROUGH,
                         "Missing signer check: {description}"),
    VulnerabilityMapping("anchor-constraints", "best_practice", _ADVISORY,
                         "Anchor constraint issue: {description}"),
    VulnerabilityMapping("anchor-missing-constraints", "best_practice", _ADVISORY,
                         "Anchor constraint issue: {description}"),
    VulnerabilityMapping("compute-optimization", "gas_optimization", _ADVISORY,
                         "Compute unit optimization opportunity: {description}"),
    VulnerabilityMapping("compute-unit-risk", "gas_optimization", _ADVISORY,
                         "Compute unit optimization opportunity: {description}"),
    VulnerabilityMapping("cpi-security", "security", _CAPPED_HIGH,
                         "Cross-program invocation security issue: {description}"),
    VulnerabilityMapping("integer-overflow", "overflow", _CAPPED_HIGH,
                         "Integer overflow/underflow risk: {description}"),
    VulnerabilityMapping("rent-exemption", "best_practice", _ADVISORY,
                         "Rent exemption issue: {description}"),
    VulnerabilityMapping("state-validation", "security", _CAPPED_HIGH,
                         "Program state validation issue: {description}"),
    VulnerabilityMapping("clippy::integer_arithmetic", "overflow", _CAPPED_HIGH),
    VulnerabilityMapping("clippy::arithmetic_side_effects", "overflow", _CAPPED_HIGH),
    VulnerabilityMapping("clippy::unwrap_used", "best_practice", _ADVISORY),
    VulnerabilityMapping("clippy::expect_used", "best_practice", _ADVISORY),
    VulnerabilityMapping("clippy::panic", "best_practice", _ADVISORY),
    VulnerabilityMapping("clippy::indexing_slicing", "security", _ADVISORY),
    VulnerabilityMapping("clippy::cast_possible_truncation", "overflow", _ADVISORY),
))

CARDANO_TABLE = PlatformMappingTable("cardano", (
    VulnerabilityMapping("utxo-validation", "security", _PASS_THROUGH,
                         "UTXO validation issue in Plutus script: {description}"),
    VulnerabilityMapping("plutus-missing-context", "security", _PASS_THROUGH,
                         "Validator ignores script context: {description}"),
    VulnerabilityMapping("plutus-missing-value-validation", "security", _PASS_THROUGH,
                         "Output value is not validated: {description}"),
    VulnerabilityMapping("double-satisfaction", "security", _PASS_THROUGH,
                         "Double satisfaction risk: {description}"),
    VulnerabilityMapping("datum-validation", "access_control", _CAPPED_HIGH,
                         "Datum validation issue: {description}"),
    VulnerabilityMapping("plutus-unsafe-datum", "access_control", _CAPPED_HIGH,
                         "Datum validation issue: {description}"),
    VulnerabilityMapping("redeemer-validation", "access_control", _CAPPED_HIGH,
                         "Redeemer validation issue: {description}"),
    VulnerabilityMapping("cardano-eutxo-compliance", "security", _CAPPED_HIGH,
                         "eUTXO model compliance issue: {description}"),
    VulnerabilityMapping("script-efficiency", "gas_optimization", _ADVISORY,
                         "Plutus script efficiency issue: {description}"),
    VulnerabilityMapping("plutus-best-practice", "best_practice", _ADVISORY,
                         "Plutus best practice violation: {description}"),
    VulnerabilityMapping("hlint-suggestion", "best_practice", _ADVISORY,
                         "Plutus best practice violation: {description}"),
))

_MOVE_MAPPINGS: Tuple[VulnerabilityMapping, ...] = (
    VulnerabilityMapping("resource-leak", "security", _PASS_THROUGH,
                         "Move resource safety issue: {description}"),
    VulnerabilityMapping("capability-leak", "access_control", _PASS_THROUGH,
                         "Capability exposed to untrusted code: {description}"),
    VulnerabilityMapping("missing-signer-check", "access_control", _PASS_THROUGH,
                         "Missing signer check: {description}"),
    VulnerabilityMapping("ability-misuse", "security", _CAPPED_HIGH,
                         "Type ability misuse: {description}"),
    VulnerabilityMapping("integer-overflow", "overflow", _CAPPED_HIGH,
                         "Arithmetic abort risk: {description}"),
    VulnerabilityMapping("unchecked-abort", "best_practice", _ADVISORY,
                         "Abort handling issue: {description}"),
    VulnerabilityMapping("gas-inefficiency", "gas_optimization", _ADVISORY,
                         "Gas optimization opportunity: {description}"),
)

MOVE_TABLE = PlatformMappingTable("move", _MOVE_MAPPINGS)

APTOS_TABLE = PlatformMappingTable("aptos", _MOVE_MAPPINGS + (
    VulnerabilityMapping("resource-account-misuse", "access_control", _CAPPED_HIGH,
                         "Resource account signer exposure: {description}"),
))

SUI_TABLE = PlatformMappingTable("sui", _MOVE_MAPPINGS + (
    VulnerabilityMapping("object-ownership", "access_control", _CAPPED_HIGH,
                         "Object ownership issue: {description}"),
    VulnerabilityMapping("shared-object-race", "security", _CAPPED_HIGH,
                         "Shared object ordering issue: {description}"),
))


def build_registry(*tables: PlatformMappingTable) -> Mapping[str, PlatformMappingTable]:
    """Freeze a set of tables into a read-only platform -> table mapping"""
    return MappingProxyType({table.platform: table for table in tables})


PLATFORM_MAPPINGS = build_registry(SOLANA_TABLE, CARDANO_TABLE, MOVE_TABLE, APTOS_TABLE, SUI_TABLE)


class PlatformVulnerabilityMapper:
    """Normalizes findings using the table registered for their platform"""

    def __init__(self, registry: Mapping[str, PlatformMappingTable] = PLATFORM_MAPPINGS):
        self.registry = registry

    def table_for(self, platform: Optional[str]) -> Optional[PlatformMappingTable]:
        return self.registry.get(canonical_platform(platform) or "")

    def has_table(self, platform: Optional[str]) -> bool:
        return self.table_for(platform) is not None

    def map(self, finding: RawFinding, platform: str) -> NormalizedVulnerability:
        platform = canonical_platform(platform) or platform
        table = self.table_for(platform)
        mapping = table.find(finding.check) if table else None
        location = extract_location(finding.locations)
        original_description = finding.description or f"{finding.check} issue detected"

        if mapping is not None:
            vuln_type = mapping.standardized_type
            severity = mapping.severity_for(finding.impact)
            description = mapping.describe(finding.description)
            rule = mapping.platform_specific_type
        else:
            vuln_type = GENERIC_TYPE
            severity = map_severity(finding.impact, shift=False) if finding.impact else _UNKNOWN_SEVERITY
            description = original_description
            rule = MAPPING_GENERIC
            logger.debug("No %s mapping for %s, using generic bucket", platform, finding.check)

        return NormalizedVulnerability(
            id=vulnerability_id(vuln_type, location, description, platform),
            type=vuln_type,
            severity=severity,
            confidence=map_confidence(finding.confidence),
            title=make_title(original_description, finding.check),
            description=description,
            location=location,
            recommendation=recommend(vuln_type, platform, finding.check),
            platform=platform,
            platform_specific_data={
                "originalType": finding.check,
                "mappingUsed": rule,
                "originalSeverity": finding.impact,
                "originalConfidence": finding.confidence,
                "originalDescription": finding.description,
                "parseStrategy": finding.source,
                "platformSpecific": True,
            },
        )

    def map_all(self, findings: Sequence[RawFinding], platform: str) -> List[NormalizedVulnerability]:
        return [self.map(f, platform) for f in findings]
