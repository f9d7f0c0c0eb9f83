"""
Contract Audit Data Models.

Typed models for data flowing through the static analysis pipeline.

Hierarchy:
    AnalysisConfig            - per-request limits and tool options (frozen)
    AnalysisRequest           - inbound request (frozen)
    RawToolOutput             - captured child process output (ephemeral)
    RawFinding                - tool-native finding record (ephemeral)
    CodeLocation              - file/line/column of a finding
    NormalizedVulnerability   - canonical output unit
    AnalysisResult            - outbound result envelope (frozen)
    InstallationCheckResult   - health check outcome
    ContractStructureResult   - AST/summary extraction outcome
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from contract_audit.exceptions import ErrorKind

SEVERITY_LEVELS: Tuple[str, ...] = ("critical", "high", "medium", "low")

# Mirrors the detector set the analysis service has always enabled by default
DEFAULT_DETECTORS: Tuple[str, ...] = (
    "reentrancy-eth",
    "reentrancy-no-eth",
    "reentrancy-unlimited-gas",
    "uninitialized-state",
    "uninitialized-storage",
    "arbitrary-send",
    "controlled-delegatecall",
    "delegatecall-loop",
    "msg-value-loop",
    "tx-origin",
    "assembly",
    "assert-state-change",
    "boolean-equal",
    "dangerous-unary",
    "deprecated-standards",
    "divide-before-multiply",
    "enum-conversion",
    "erc20-interface",
    "erc721-interface",
    "incorrect-equality",
    "locked-ether",
    "mapping-deletion",
    "shadowing-abstract",
    "shadowing-builtin",
    "shadowing-local",
    "shadowing-state",
    "timestamp",
    "tautology",
    "boolean-cst",
    "similar-names",
    "too-many-digits",
    "constable-states",
    "external-function",
    "naming-convention",
    "pragma",
    "solc-version",
    "unused-state",
    "costly-loop",
    "dead-code",
    "reentrancy-benign",
    "reentrancy-events",
    "low-level-calls",
    "missing-zero-check",
    "calls-loop",
    "events-access",
    "events-maths",
    "incorrect-unary",
    "missing-inheritance",
    "redundant-statements",
    "void-cst",
)


# ---------------------------------------------------------------------------
# Inbound models
# ---------------------------------------------------------------------------


class AnalysisConfig(BaseModel):
    """Limits and tool options for a single analysis run."""

    timeout_ms: int = 60_000
    max_bytes: int = 10 * 1024 * 1024
    output_format: Literal["json", "text"] = "json"
    termination_grace_ms: int = 5_000
    tool_binary: str = "slither"
    enabled_detectors: Tuple[str, ...] = DEFAULT_DETECTORS
    disabled_detectors: Tuple[str, ...] = ()
    severity_threshold: str = "low"
    deduplicate: bool = False

    model_config = {"frozen": True}

    @field_validator("timeout_ms", "max_bytes")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Timeouts and size limits must be positive."""
        if v <= 0:
            raise ValueError(f"must be positive, got {v}")
        return v

    @field_validator("termination_grace_ms")
    @classmethod
    def validate_grace(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"termination_grace_ms cannot be negative, got {v}")
        return v

    @field_validator("severity_threshold")
    @classmethod
    def validate_threshold(cls, v: str) -> str:
        v = v.lower()
        if v not in SEVERITY_LEVELS:
            raise ValueError(f"severity_threshold must be one of {SEVERITY_LEVELS}, got '{v}'")
        return v


class AnalysisRequest(BaseModel):
    """Immutable request to audit one source sample."""

    source_code: str
    display_name: str = "Contract"
    platform: Optional[str] = None
    config: AnalysisConfig = Field(default_factory=AnalysisConfig)

    model_config = {"frozen": True}

    @field_validator("platform")
    @classmethod
    def normalize_platform(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lower()
        return v or None


# ---------------------------------------------------------------------------
# Ephemeral tool-side records
# ---------------------------------------------------------------------------


class CodeLocation(BaseModel):
    """Source position of a finding; unknown/0 when the tool gives none."""

    file: str = "unknown"
    line: int = 0
    column: int = 0
    length: Optional[int] = None

    model_config = {"frozen": True}


@dataclass
class RawToolOutput:
    """Captured output of one tool invocation"""

    stdout: bytes
    stderr: bytes
    exit_code: Optional[int]
    timed_out: bool = False
    elapsed_ms: int = 0

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


@dataclass
class RawFinding:
    """Tool-native finding, alive only between parsing and normalization"""

    check: str
    impact: Optional[str] = None  # tool vocabulary: high/medium/low/informational, error/warning/...
    confidence: Optional[str] = None
    description: str = ""
    locations: List[CodeLocation] = field(default_factory=list)
    source: str = "structured"  # 'structured' or 'heuristic'
    raw: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Outbound models
# ---------------------------------------------------------------------------


class NormalizedVulnerability(BaseModel):
    """A finding translated into the canonical vulnerability taxonomy."""

    id: str = ""
    type: str
    severity: str
    confidence: float = Field(ge=0.0, le=1.0)
    title: str = ""
    description: str = ""
    location: CodeLocation = Field(default_factory=CodeLocation)
    recommendation: str
    platform: Optional[str] = None
    source: str = "static"
    platform_specific_data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("type cannot be empty")
        return v

    @field_validator("severity")
    @classmethod
    def validate_severity(cls, v: str) -> str:
        """Ensure severity is drawn from the closed set."""
        if v not in SEVERITY_LEVELS:
            raise ValueError(f"severity must be one of {SEVERITY_LEVELS}, got '{v}'")
        return v

    @field_validator("recommendation")
    @classmethod
    def validate_recommendation(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("recommendation cannot be empty")
        return v

    def to_contract_dict(self) -> Dict[str, Any]:
        """Serialize using the camelCase keys consumed by reporting."""
        location = {
            "file": self.location.file,
            "line": self.location.line,
            "column": self.location.column,
        }
        if self.location.length is not None:
            location["length"] = self.location.length
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "confidence": self.confidence,
            "title": self.title,
            "description": self.description,
            "location": location,
            "recommendation": self.recommendation,
            "platform": self.platform,
            "source": self.source,
            "platformSpecificData": dict(self.platform_specific_data),
        }


class AnalysisResult(BaseModel):
    """Result envelope for one AnalysisRequest. Never mutated after return."""

    success: bool
    vulnerabilities: List[NormalizedVulnerability] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    execution_time_ms: int = 0
    error_kind: Optional[ErrorKind] = None
    tool_version: Optional[str] = None

    model_config = {"frozen": True}

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, execution_time_ms: int = 0,
                warnings: Optional[List[str]] = None) -> "AnalysisResult":
        return cls(
            success=False,
            errors=[message],
            warnings=list(warnings or []),
            execution_time_ms=execution_time_ms,
            error_kind=kind,
        )

    def count_by_severity(self) -> Dict[str, int]:
        """Count vulnerabilities per severity level"""
        counts = {level: 0 for level in SEVERITY_LEVELS}
        for vuln in self.vulnerabilities:
            counts[vuln.severity] += 1
        return counts

    def to_contract_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "vulnerabilities": [v.to_contract_dict() for v in self.vulnerabilities],
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "executionTimeMs": self.execution_time_ms,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "toolVersion": self.tool_version,
        }


class InstallationCheckResult(BaseModel):
    installed: bool
    version: Optional[str] = None
    error: Optional[str] = None


class ContractStructureResult(BaseModel):
    success: bool
    ast: Optional[Any] = None
    error: Optional[str] = None


__all__ = [
    "SEVERITY_LEVELS",
    "DEFAULT_DETECTORS",
    "AnalysisConfig",
    "AnalysisRequest",
    "CodeLocation",
    "RawToolOutput",
    "RawFinding",
    "NormalizedVulnerability",
    "AnalysisResult",
    "InstallationCheckResult",
    "ContractStructureResult",
]
