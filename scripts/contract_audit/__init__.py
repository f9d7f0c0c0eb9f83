"""Static contract analysis and cross-platform vulnerability normalization."""

from contract_audit.analyzer import (
    ContractAnalyzer,
    analyze,
    check_tool_installation,
    get_contract_structure,
)
from contract_audit.exceptions import ContractAuditError, ErrorKind
from contract_audit.models import (
    AnalysisConfig,
    AnalysisRequest,
    AnalysisResult,
    CodeLocation,
    ContractStructureResult,
    InstallationCheckResult,
    NormalizedVulnerability,
)

__version__ = "1.0.0"

__all__ = [
    "AnalysisConfig",
    "AnalysisRequest",
    "AnalysisResult",
    "CodeLocation",
    "ContractAnalyzer",
    "ContractAuditError",
    "ContractStructureResult",
    "ErrorKind",
    "InstallationCheckResult",
    "NormalizedVulnerability",
    "analyze",
    "check_tool_installation",
    "get_contract_structure",
]
