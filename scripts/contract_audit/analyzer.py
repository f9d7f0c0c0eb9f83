"""
Static Analysis Pipeline - facade over the contract audit components.

    AnalysisRequest
        -> prepare_sandbox        (size/empty checks before any I/O)
        -> ProcessRunner.run      (tool child process, hard timeout)
        -> parse_tool_output      (structured, then heuristic)
        -> FindingNormalizer / PlatformVulnerabilityMapper
        -> dedup + severity threshold
    AnalysisResult

Components raise; this module is the only place exceptions are turned into
returned results. ``analyze`` never raises for any input.
"""

import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from contract_audit.config_loader import build_analysis_config
from contract_audit.exceptions import (
    ContractAuditError,
    ErrorKind,
    ExecutionFailedError,
    InputValidationError,
    ToolTimeoutError,
)
from contract_audit.models import (
    SEVERITY_LEVELS,
    AnalysisConfig,
    AnalysisRequest,
    AnalysisResult,
    ContractStructureResult,
    InstallationCheckResult,
    NormalizedVulnerability,
    RawFinding,
    RawToolOutput,
)
from contract_audit.normalizer import FindingNormalizer
from contract_audit.output_parser import ParsedOutput, classify_stderr, parse_tool_output
from contract_audit.platform_mapper import PlatformVulnerabilityMapper
from contract_audit.platforms import canonical_platform
from contract_audit.process_runner import ProcessRunner
from contract_audit.sandbox import prepare_sandbox
from contract_audit.tools import ToolSpec, get_tool_spec

__all__ = [
    "ContractAnalyzer",
    "deduplicate_vulnerabilities",
    "filter_by_severity",
    "analyze",
    "check_tool_installation",
    "get_contract_structure",
]

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def deduplicate_vulnerabilities(vulnerabilities: Iterable[NormalizedVulnerability]) -> List[NormalizedVulnerability]:
    """Drop later findings sharing (type, file, line, column); order is kept"""
    seen = set()
    unique = []
    for vuln in vulnerabilities:
        key = (vuln.type, vuln.location.file, vuln.location.line, vuln.location.column)
        if key in seen:
            continue
        seen.add(key)
        unique.append(vuln)
    return unique


def filter_by_severity(vulnerabilities: Iterable[NormalizedVulnerability], threshold: str) -> List[NormalizedVulnerability]:
    """Keep findings at or above ``threshold`` (critical > high > medium > low)"""
    cutoff = SEVERITY_LEVELS.index(threshold)
    return [v for v in vulnerabilities if SEVERITY_LEVELS.index(v.severity) <= cutoff]


class ContractAnalyzer:
    """
    Runs the static analysis pipeline for contract source samples

    One instance may serve concurrent requests: per-request state lives in
    the call, and the mapping tables it consults are read-only.
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        tool: Optional[ToolSpec] = None,
        runner: Optional[ProcessRunner] = None,
        normalizer: Optional[FindingNormalizer] = None,
        platform_mapper: Optional[PlatformVulnerabilityMapper] = None,
        max_workers: int = 4,
        version_timeout_ms: int = 10_000,
        spawn_retry_attempts: int = 3,
    ):
        """
        Args:
            config: Defaults for health checks and structure extraction
            tool: Command-line spec of the analysis tool (from config.tool_binary if omitted)
            runner: Process runner; built from config if omitted
            normalizer: Default (EVM) finding normalizer
            platform_mapper: Registry-backed mapper for non-EVM platforms
            max_workers: Default concurrency bound for analyze_many
            version_timeout_ms: Budget for the version check
            spawn_retry_attempts: Attempts for transient spawn failures
        """
        self.config = config or AnalysisConfig()
        self.tool = tool or get_tool_spec(self.config.tool_binary)
        self.runner = runner or ProcessRunner(
            termination_grace_ms=self.config.termination_grace_ms,
            spawn_attempts=spawn_retry_attempts,
        )
        self.normalizer = normalizer or FindingNormalizer()
        self.platform_mapper = platform_mapper or PlatformVulnerabilityMapper()
        self.max_workers = max_workers
        self.version_timeout_ms = version_timeout_ms
        self.tool_version: Optional[str] = None

    @classmethod
    def from_config(cls, config: Dict) -> "ContractAnalyzer":
        """Build an analyzer from a flat dict produced by config_loader"""
        return cls(
            config=build_analysis_config(config),
            max_workers=int(config.get("max_workers", 4)),
            version_timeout_ms=int(config.get("version_timeout_ms", 10_000)),
            spawn_retry_attempts=int(config.get("spawn_retry_attempts", 3)),
        )

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze(self, request: AnalysisRequest, cancel_event: Optional[threading.Event] = None) -> AnalysisResult:
        """
        Audit one source sample

        Args:
            request: Source, display name, platform and limits
            cancel_event: Set by the caller to abort; reported as Cancelled

        Returns:
            AnalysisResult; failures are expressed through success/errors/error_kind
        """
        start = time.monotonic()
        config = request.config
        platform = canonical_platform(request.platform)

        logger.info("Starting static analysis of %s (platform=%s)", request.display_name, platform or "default")

        try:
            raw = self._run_tool(request, platform, cancel_event)
            parsed = parse_tool_output(raw, config.output_format)
            result = self._build_result(raw, parsed, platform, config, start)
        except InputValidationError as e:
            logger.info("Rejected %s: %s", request.display_name, e)
            return AnalysisResult.failure(e.kind, str(e), _elapsed_ms(start))
        except ToolTimeoutError as e:
            warnings, _ = classify_stderr(e.stderr.decode("utf-8", errors="replace"))
            return AnalysisResult.failure(e.kind, str(e), _elapsed_ms(start), warnings=warnings)
        except ContractAuditError as e:
            logger.warning("Static analysis of %s failed: %s", request.display_name, e)
            return AnalysisResult.failure(e.kind, str(e), _elapsed_ms(start))
        except Exception as e:
            logger.exception("Unexpected failure analysing %s", request.display_name)
            return AnalysisResult.failure(ErrorKind.UNKNOWN_FATAL, f"Analysis failed: {e}", _elapsed_ms(start))

        logger.info(
            "Finished static analysis of %s in %dms: %d findings (success=%s)",
            request.display_name, result.execution_time_ms, len(result.vulnerabilities), result.success,
        )
        return result

    def _run_tool(self, request: AnalysisRequest, platform: Optional[str],
                  cancel_event: Optional[threading.Event]) -> RawToolOutput:
        config = request.config
        with prepare_sandbox(request.source_code, request.display_name, config.max_bytes, platform) as sandbox:
            cmd = self.tool.analysis_command(sandbox.source_path, config)
            return self.runner.run(
                cmd,
                timeout_ms=config.timeout_ms,
                cwd=str(sandbox.directory),
                cancel_event=cancel_event,
                termination_grace_ms=config.termination_grace_ms,
            )

    def _build_result(self, raw: RawToolOutput, parsed: ParsedOutput, platform: Optional[str],
                      config: AnalysisConfig, start: float) -> AnalysisResult:
        tool_name = self.tool.name

        if parsed.tool_error:
            return AnalysisResult(
                success=False,
                warnings=parsed.warnings,
                errors=[f"{tool_name} analysis failed: {parsed.tool_error}", *parsed.errors],
                execution_time_ms=_elapsed_ms(start),
                error_kind=ErrorKind.EXECUTION_FAILED,
                tool_version=self.tool_version,
            )

        # Nothing on stdout and a failing exit: the tool never got to analysis
        if not raw.stdout.strip() and raw.exit_code not in (0, None):
            detail = parsed.errors[-1] if parsed.errors else raw.stderr_text.strip()[-500:]
            return AnalysisResult(
                success=False,
                warnings=parsed.warnings,
                errors=[f"{tool_name} analysis failed (exit code {raw.exit_code}): {detail or 'no output'}"],
                execution_time_ms=_elapsed_ms(start),
                error_kind=ErrorKind.EXECUTION_FAILED,
                tool_version=self.tool_version,
            )

        warnings = list(parsed.warnings)
        vulnerabilities = self._normalize(parsed.findings, platform, warnings)

        if config.deduplicate:
            before = len(vulnerabilities)
            vulnerabilities = deduplicate_vulnerabilities(vulnerabilities)
            logger.debug("Deduplication removed %d findings", before - len(vulnerabilities))

        vulnerabilities = filter_by_severity(vulnerabilities, config.severity_threshold)

        return AnalysisResult(
            success=True,
            vulnerabilities=vulnerabilities,
            warnings=warnings,
            errors=parsed.errors,
            execution_time_ms=_elapsed_ms(start),
            tool_version=self.tool_version,
        )

    def _normalize(self, findings: Sequence[RawFinding], platform: Optional[str],
                   warnings: List[str]) -> List[NormalizedVulnerability]:
        """Normalize each finding; one malformed record does not sink the rest"""
        use_platform_table = self.platform_mapper.has_table(platform)

        vulnerabilities = []
        for finding in findings:
            try:
                if use_platform_table:
                    vulnerabilities.append(self.platform_mapper.map(finding, platform))
                else:
                    vulnerabilities.append(self.normalizer.normalize(finding, platform))
            except ValidationError as e:
                logger.warning("Skipping finding %s: %s", finding.check, e)
                warnings.append(f"Skipped malformed finding '{finding.check}'")
        return vulnerabilities

    def analyze_many(
        self,
        requests: Sequence[AnalysisRequest],
        max_workers: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[AnalysisResult]:
        """Analyze requests concurrently; results come back in request order"""
        if not requests:
            return []

        workers = max(1, max_workers or self.max_workers)
        logger.info("Analyzing %d contracts with %d workers", len(requests), workers)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self.analyze, request, cancel_event) for request in requests]
            return [future.result() for future in futures]

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def check_tool_installation(self) -> InstallationCheckResult:
        """Run the tool's version command; never raises"""
        cmd = self.tool.version_command(self.config.tool_binary)
        try:
            raw = self.runner.run(cmd, timeout_ms=self.version_timeout_ms)
        except ExecutionFailedError as e:
            return InstallationCheckResult(installed=False, error=str(e))
        except ContractAuditError as e:
            return InstallationCheckResult(installed=False, error=f"{self.tool.name} version check failed: {e}")

        if raw.exit_code != 0:
            detail = raw.stderr_text.strip() or f"exit code {raw.exit_code}"
            return InstallationCheckResult(installed=False, error=f"{self.tool.name} version check failed: {detail}")

        version = (raw.stdout_text.strip() or raw.stderr_text.strip()).splitlines()
        self.tool_version = version[0] if version else None
        logger.info("%s installed (version %s)", self.tool.name, self.tool_version or "unknown")
        return InstallationCheckResult(installed=True, version=self.tool_version)

    def get_contract_structure(
        self,
        source_code: str,
        display_name: str = "Contract",
        platform: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ContractStructureResult:
        """Run the tool's summary printer and return its JSON document as ``ast``"""
        config = self.config
        try:
            with prepare_sandbox(source_code, display_name, config.max_bytes, canonical_platform(platform)) as sandbox:
                cmd = self.tool.structure_command(sandbox.source_path, config.tool_binary)
                raw = self.runner.run(
                    cmd,
                    timeout_ms=config.timeout_ms,
                    cwd=str(sandbox.directory),
                    cancel_event=cancel_event,
                    termination_grace_ms=config.termination_grace_ms,
                )
        except ContractAuditError as e:
            return ContractStructureResult(success=False, error=str(e))

        try:
            document = json.loads(raw.stdout_text)
        except json.JSONDecodeError:
            detail = raw.stderr_text.strip()[-500:]
            message = "Failed to parse contract structure"
            return ContractStructureResult(success=False, error=f"{message}: {detail}" if detail else message)

        if isinstance(document, dict) and document.get("success") is False:
            return ContractStructureResult(success=False, error=str(document.get("error") or "Structure extraction failed"))

        return ContractStructureResult(success=True, ast=document)


# ---------------------------------------------------------------------------
# Module-level conveniences
# ---------------------------------------------------------------------------


def analyze(request: AnalysisRequest, cancel_event: Optional[threading.Event] = None) -> AnalysisResult:
    return ContractAnalyzer(config=request.config).analyze(request, cancel_event)


def check_tool_installation(config: Optional[AnalysisConfig] = None) -> InstallationCheckResult:
    return ContractAnalyzer(config=config).check_tool_installation()


def get_contract_structure(source_code: str, display_name: str = "Contract",
                           config: Optional[AnalysisConfig] = None) -> ContractStructureResult:
    return ContractAnalyzer(config=config).get_contract_structure(source_code, display_name)
