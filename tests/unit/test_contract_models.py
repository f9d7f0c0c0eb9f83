#!/usr/bin/env python3
"""
Tests for the contract audit data models and exception hierarchy.
"""

import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

# Ensure scripts directory is on the path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "scripts"))

from contract_audit.exceptions import (
    AnalysisCancelledError,
    ContractAuditError,
    EmptyInputError,
    ErrorKind,
    ExecutionFailedError,
    InputValidationError,
    OversizedInputError,
    ParseFailureError,
    ScannerError,
    ToolTimeoutError,
)
from contract_audit.models import (
    DEFAULT_DETECTORS,
    SEVERITY_LEVELS,
    AnalysisConfig,
    AnalysisRequest,
    AnalysisResult,
    CodeLocation,
    NormalizedVulnerability,
    RawToolOutput,
)


def _vuln(**overrides) -> NormalizedVulnerability:
    fields = {
        "id": "static-abc",
        "type": "reentrancy",
        "severity": "critical",
        "confidence": 0.9,
        "title": "Reentrancy in withdraw",
        "description": "Reentrancy in withdraw",
        "location": CodeLocation(file="Vault.sol", line=12, column=4),
        "recommendation": "Use checks-effects-interactions",
    }
    fields.update(overrides)
    return NormalizedVulnerability(**fields)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TestExceptionHierarchy:
    def test_input_errors_share_base(self):
        assert issubclass(EmptyInputError, InputValidationError)
        assert issubclass(OversizedInputError, InputValidationError)
        assert issubclass(InputValidationError, ContractAuditError)

    def test_scanner_errors_share_base(self):
        for cls in (ExecutionFailedError, ToolTimeoutError, AnalysisCancelledError):
            assert issubclass(cls, ScannerError)
        assert issubclass(ScannerError, ContractAuditError)

    def test_kinds(self):
        assert EmptyInputError().kind is ErrorKind.EMPTY_INPUT
        assert OversizedInputError(10, 5).kind is ErrorKind.OVERSIZED_INPUT
        assert ExecutionFailedError("x").kind is ErrorKind.EXECUTION_FAILED
        assert ToolTimeoutError(100, 120).kind is ErrorKind.TIMED_OUT
        assert AnalysisCancelledError().kind is ErrorKind.CANCELLED
        assert ParseFailureError("x").kind is ErrorKind.PARSE_FAILURE
        assert ContractAuditError("x").kind is ErrorKind.UNKNOWN_FATAL

    def test_messages(self):
        assert str(EmptyInputError()) == "Source code cannot be empty"
        assert str(OversizedInputError(20, 10)) == "Contract size exceeds maximum limit of 10 bytes"
        assert str(ToolTimeoutError(500, 510)) == "Analysis timed out after 500 ms"
        assert str(AnalysisCancelledError()) == "Analysis cancelled"

    def test_timeout_keeps_partial_output(self):
        err = ToolTimeoutError(500, 510, stdout=b"partial", stderr=b"warn")
        assert err.stdout == b"partial"
        assert err.elapsed_ms == 510

    def test_error_kind_values_are_strings(self):
        assert ErrorKind.TIMED_OUT == "TimedOut"
        assert ErrorKind.OVERSIZED_INPUT.value == "OversizedInput"


# ---------------------------------------------------------------------------
# AnalysisConfig / AnalysisRequest
# ---------------------------------------------------------------------------


class TestAnalysisConfig:
    def test_defaults(self):
        config = AnalysisConfig()
        assert config.timeout_ms == 60_000
        assert config.max_bytes == 10 * 1024 * 1024
        assert config.output_format == "json"
        assert config.termination_grace_ms == 5_000
        assert config.tool_binary == "slither"
        assert config.enabled_detectors == DEFAULT_DETECTORS
        assert config.disabled_detectors == ()
        assert config.severity_threshold == "low"
        assert config.deduplicate is False

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValidationError):
            AnalysisConfig(timeout_ms=0)

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValidationError):
            AnalysisConfig(max_bytes=-1)

    def test_rejects_unknown_output_format(self):
        with pytest.raises(ValidationError):
            AnalysisConfig(output_format="xml")

    def test_threshold_lowercased(self):
        assert AnalysisConfig(severity_threshold="HIGH").severity_threshold == "high"

    def test_rejects_unknown_threshold(self):
        with pytest.raises(ValidationError):
            AnalysisConfig(severity_threshold="informational")

    def test_frozen(self):
        config = AnalysisConfig()
        with pytest.raises(ValidationError):
            config.timeout_ms = 5


class TestAnalysisRequest:
    def test_platform_normalized(self):
        request = AnalysisRequest(source_code="x", platform="  Solana ")
        assert request.platform == "solana"

    def test_blank_platform_is_none(self):
        assert AnalysisRequest(source_code="x", platform="").platform is None

    def test_default_config(self):
        request = AnalysisRequest(source_code="x")
        assert request.display_name == "Contract"
        assert request.config == AnalysisConfig()


# ---------------------------------------------------------------------------
# Tool-side records
# ---------------------------------------------------------------------------


class TestRawToolOutput:
    def test_text_decoding_replaces_invalid_bytes(self):
        raw = RawToolOutput(stdout=b"ok \xff", stderr=b"", exit_code=0)
        assert raw.stdout_text.startswith("ok ")
        assert "�" in raw.stdout_text


# ---------------------------------------------------------------------------
# NormalizedVulnerability
# ---------------------------------------------------------------------------


class TestNormalizedVulnerability:
    def test_valid(self):
        vuln = _vuln()
        assert vuln.source == "static"
        assert vuln.platform is None

    @pytest.mark.parametrize("confidence", [-0.1, 1.01])
    def test_confidence_bounds(self, confidence):
        with pytest.raises(ValidationError):
            _vuln(confidence=confidence)

    def test_severity_closed_set(self):
        with pytest.raises(ValidationError):
            _vuln(severity="informational")

    def test_empty_type_rejected(self):
        with pytest.raises(ValidationError):
            _vuln(type="  ")

    def test_empty_recommendation_rejected(self):
        with pytest.raises(ValidationError):
            _vuln(recommendation="")

    def test_contract_dict_keys(self):
        data = _vuln(platform_specific_data={"originalType": "reentrancy-eth"}).to_contract_dict()
        assert data["platformSpecificData"] == {"originalType": "reentrancy-eth"}
        assert data["location"] == {"file": "Vault.sol", "line": 12, "column": 4}
        assert data["severity"] == "critical"

    def test_contract_dict_includes_length_when_known(self):
        vuln = _vuln(location=CodeLocation(file="A.sol", line=1, column=2, length=30))
        assert vuln.to_contract_dict()["location"]["length"] == 30


# ---------------------------------------------------------------------------
# AnalysisResult
# ---------------------------------------------------------------------------


class TestAnalysisResult:
    def test_failure_factory(self):
        result = AnalysisResult.failure(ErrorKind.EMPTY_INPUT, "Source code cannot be empty")
        assert result.success is False
        assert result.errors == ["Source code cannot be empty"]
        assert result.vulnerabilities == []
        assert result.error_kind is ErrorKind.EMPTY_INPUT

    def test_count_by_severity(self):
        result = AnalysisResult(
            success=True,
            vulnerabilities=[_vuln(), _vuln(severity="low"), _vuln(severity="low")],
        )
        counts = result.count_by_severity()
        assert counts == {"critical": 1, "high": 0, "medium": 0, "low": 2}
        assert set(counts) == set(SEVERITY_LEVELS)

    def test_contract_dict(self):
        result = AnalysisResult.failure(ErrorKind.TIMED_OUT, "Analysis timed out after 5 ms", execution_time_ms=7)
        data = result.to_contract_dict()
        assert data == {
            "success": False,
            "vulnerabilities": [],
            "warnings": [],
            "errors": ["Analysis timed out after 5 ms"],
            "executionTimeMs": 7,
            "errorKind": "TimedOut",
            "toolVersion": None,
        }

    def test_success_has_no_error_kind(self):
        assert AnalysisResult(success=True).to_contract_dict()["errorKind"] is None
