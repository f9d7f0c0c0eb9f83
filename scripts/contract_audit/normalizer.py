"""
Finding Normalizer - tool-native findings to the canonical taxonomy.

Severity policy is a fixed upward shift for the analyzer's own impact
labels (high->critical, medium->high, low->medium, informational->low).
The shift is a policy constant; do not "correct" it to pass-through.

Marker labels produced by the text fallback and compiler diagnostics
(error/warning/info/note/help) are already on the product scale and are
not shifted.
"""

import hashlib
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from contract_audit.models import (
    SEVERITY_LEVELS,
    CodeLocation,
    NormalizedVulnerability,
    RawFinding,
)
from contract_audit.recommendations import recommend

__all__ = [
    "VULNERABILITY_TYPES",
    "GENERIC_TYPE",
    "MAPPING_GENERIC",
    "DEFAULT_TYPE_RULES",
    "map_severity",
    "map_confidence",
    "extract_location",
    "vulnerability_id",
    "make_title",
    "FindingNormalizer",
]

logger = logging.getLogger(__name__)

GENERIC_TYPE = "security"
MAPPING_GENERIC = "generic"

VULNERABILITY_TYPES: Tuple[str, ...] = (
    "reentrancy",
    "access_control",
    "overflow",
    "unchecked_call",
    "delegatecall",
    "timestamp_dependence",
    "denial_of_service",
    "uninitialized_state",
    "locked_funds",
    "shadowing",
    "gas_optimization",
    "best_practice",
    "security",
)

# Analyzer impact labels, shifted up one tier
SEVERITY_SHIFT: Dict[str, str] = {
    "high": "critical",
    "medium": "high",
    "low": "medium",
    "informational": "low",
    "optimization": "low",
}

# Labels already on the product scale
_DIRECT_SEVERITY: Dict[str, str] = {
    "critical": "critical",
    "error": "high",
    "warning": "medium",
    "info": "low",
    "note": "low",
    "help": "low",
}

CONFIDENCE_MAP: Dict[str, float] = {
    "high": 0.9,
    "medium": 0.7,
    "low": 0.5,
}
DEFAULT_CONFIDENCE = 0.5

# (substring of tool check id, canonical type). First match wins, so more
# specific substrings come before broader ones.
DEFAULT_TYPE_RULES: Tuple[Tuple[str, str], ...] = (
    ("reentrancy", "reentrancy"),
    ("tx-origin", "access_control"),
    ("arbitrary-send", "access_control"),
    ("suicidal", "access_control"),
    ("unprotected-upgrade", "access_control"),
    ("access-control", "access_control"),
    ("events-access", "best_practice"),
    ("delegatecall-loop", "denial_of_service"),
    ("delegatecall", "delegatecall"),
    ("overflow", "overflow"),
    ("underflow", "overflow"),
    ("divide-before-multiply", "overflow"),
    ("unchecked", "unchecked_call"),
    ("low-level-calls", "unchecked_call"),
    ("missing-zero-check", "unchecked_call"),
    ("timestamp", "timestamp_dependence"),
    ("weak-prng", "timestamp_dependence"),
    ("msg-value-loop", "denial_of_service"),
    ("calls-loop", "denial_of_service"),
    ("uninitialized", "uninitialized_state"),
    ("locked-ether", "locked_funds"),
    ("shadowing", "shadowing"),
    ("costly-loop", "gas_optimization"),
    ("constable-states", "gas_optimization"),
    ("immutable-states", "gas_optimization"),
    ("external-function", "gas_optimization"),
    ("unused-state", "gas_optimization"),
    ("dead-code", "gas_optimization"),
    ("redundant-statements", "gas_optimization"),
    ("naming-convention", "best_practice"),
    ("pragma", "best_practice"),
    ("solc-version", "best_practice"),
    ("similar-names", "best_practice"),
    ("too-many-digits", "best_practice"),
    ("assembly", "best_practice"),
    ("boolean-", "best_practice"),
    ("erc20-interface", "best_practice"),
    ("erc721-interface", "best_practice"),
    ("deprecated-standards", "best_practice"),
    ("missing-inheritance", "best_practice"),
    ("void-cst", "best_practice"),
    ("events-maths", "best_practice"),
)


def map_severity(label: Optional[str], shift: bool = True) -> str:
    """Map a tool severity label onto critical/high/medium/low"""
    key = (label or "").strip().lower()
    if shift and key in SEVERITY_SHIFT:
        return SEVERITY_SHIFT[key]
    if key in _DIRECT_SEVERITY:
        return _DIRECT_SEVERITY[key]
    if key in SEVERITY_LEVELS:
        return key
    # Unknown, absent and unshifted informational labels sit at the bottom
    return "low"


def map_confidence(label: Optional[str]) -> float:
    """Map a confidence label (or numeric string) to [0, 1]; absent gives 0.5"""
    if label is None:
        return DEFAULT_CONFIDENCE
    key = str(label).strip().lower()
    if key in CONFIDENCE_MAP:
        return CONFIDENCE_MAP[key]
    try:
        value = float(key)
    except ValueError:
        return DEFAULT_CONFIDENCE
    if value != value:  # NaN
        return DEFAULT_CONFIDENCE
    return min(max(value, 0.0), 1.0)


def extract_location(locations: Sequence[CodeLocation]) -> CodeLocation:
    """First reported location, or the unknown/0 placeholder"""
    if locations:
        return locations[0]
    return CodeLocation()


def vulnerability_id(vuln_type: str, location: CodeLocation, description: str,
                     platform: Optional[str] = None) -> str:
    digest = hashlib.sha256(
        f"{vuln_type}-{location.file}-{location.line}-{description}".encode("utf-8")
    ).hexdigest()[:12]
    return f"{platform or 'static'}-{digest}"


def make_title(description: str, fallback: str) -> str:
    first_line = description.strip().splitlines()[0] if description.strip() else ""
    return first_line[:100] or fallback


class FindingNormalizer:
    """Maps RawFinding records from the default analyzer table"""

    def __init__(self, type_rules: Sequence[Tuple[str, str]] = DEFAULT_TYPE_RULES):
        self.type_rules = tuple(type_rules)

    def map_type(self, check: str) -> Tuple[str, str]:
        """Return (canonical type, rule that fired); rule is 'generic' on fallback"""
        check_lower = (check or "").lower()
        for needle, vuln_type in self.type_rules:
            if needle in check_lower:
                return vuln_type, needle
        return GENERIC_TYPE, MAPPING_GENERIC

    def normalize(self, finding: RawFinding, platform: Optional[str] = None) -> NormalizedVulnerability:
        vuln_type, rule = self.map_type(finding.check)
        location = extract_location(finding.locations)
        description = finding.description or f"{finding.check} issue detected"

        logger.debug("Mapped %s -> %s (rule=%s)", finding.check, vuln_type, rule)

        return NormalizedVulnerability(
            id=vulnerability_id(vuln_type, location, description, platform),
            type=vuln_type,
            severity=map_severity(finding.impact, shift=finding.source != "heuristic"),
            confidence=map_confidence(finding.confidence),
            title=make_title(description, finding.check),
            description=description,
            location=location,
            recommendation=recommend(vuln_type, platform, finding.check),
            platform=platform,
            platform_specific_data={
                "originalType": finding.check,
                "mappingUsed": rule,
                "originalSeverity": finding.impact,
                "originalConfidence": finding.confidence,
                "parseStrategy": finding.source,
                "platformSpecific": False,
            },
        )

    def normalize_all(self, findings: Sequence[RawFinding], platform: Optional[str] = None) -> List[NormalizedVulnerability]:
        return [self.normalize(f, platform) for f in findings]
