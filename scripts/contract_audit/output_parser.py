"""
Output Parser for analysis tool results.

Two ordered attempts over stdout:
1. Structured: a single JSON document, or line-delimited JSON records,
   containing a discoverable collection of findings
2. Heuristic: line-by-line scan for INFO/WARNING/ERROR markers, with
   ``file:line:column`` locations pulled out of the line when present

Neither attempt is fatal. Zero findings from both is a valid, successful
parse. Stderr lines mentioning errors or warnings are always collected.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from contract_audit.models import CodeLocation, RawFinding, RawToolOutput

__all__ = [
    "ParsedOutput",
    "parse_tool_output",
    "parse_structured",
    "parse_heuristic",
    "classify_stderr",
]

logger = logging.getLogger(__name__)

STRATEGY_STRUCTURED = "structured"
STRATEGY_HEURISTIC = "heuristic"
STRATEGY_NONE = "none"

# Keys under which generic JSON reports keep their findings, in priority order
_COLLECTION_KEYS = ("detectors", "findings", "vulnerabilities", "issues", "results")

_MARKER_PATTERN = re.compile(r"\b(INFO|WARNING|ERROR)\s*:")
_LOCATION_PATTERN = re.compile(r"([\w./\\-]+\.[A-Za-z]\w*):(\d+)(?::(\d+))?")

_MARKER_SEVERITY = {
    "ERROR": "error",
    "WARNING": "warning",
    "INFO": "info",
}


@dataclass
class ParsedOutput:
    """What the parser recovered from one tool run"""

    findings: List[RawFinding] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    strategy: str = STRATEGY_NONE
    tool_error: Optional[str] = None  # set when the tool's own report declares failure


def parse_tool_output(raw: RawToolOutput, output_format: str = "json") -> ParsedOutput:
    """Interpret a tool run, structured first, heuristic second"""
    parsed = ParsedOutput()
    parsed.warnings, parsed.errors = classify_stderr(raw.stderr_text)

    stdout = raw.stdout_text
    if not stdout.strip():
        logger.debug("Tool produced no stdout (exit code %s)", raw.exit_code)
        return parsed

    if output_format == "json":
        document = _decode_json(stdout)
        if isinstance(document, dict) and document.get("success") is False and document.get("error"):
            parsed.tool_error = str(document["error"]).strip()
            parsed.strategy = STRATEGY_STRUCTURED
            return parsed

        findings = parse_structured(stdout, document, parsed.warnings)
        if findings is not None:
            parsed.findings = findings
            parsed.strategy = STRATEGY_STRUCTURED
            logger.debug("Structured parse recovered %d findings", len(findings))
            return parsed

        logger.warning("Structured output unavailable, falling back to text parsing")
        parsed.warnings.append("Structured tool output could not be decoded; used text fallback")

    parsed.findings = parse_heuristic(stdout)
    parsed.strategy = STRATEGY_HEURISTIC if parsed.findings else STRATEGY_NONE
    return parsed


def classify_stderr(stderr: str) -> "tuple[List[str], List[str]]":
    """Split stderr into (warnings, errors); unmarked lines are dropped"""
    warnings: List[str] = []
    errors: List[str] = []
    for line in stderr.splitlines():
        if not line.strip():
            continue
        lowered = line.lower()
        if "error" in lowered:
            errors.append(line)
        elif "warning" in lowered:
            warnings.append(line)
    return warnings, errors


# ---------------------------------------------------------------------------
# Structured attempt
# ---------------------------------------------------------------------------


def _decode_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def parse_structured(stdout: str, document: Any = None,
                     warnings: Optional[List[str]] = None) -> Optional[List[RawFinding]]:
    """Return findings from JSON output, or None when no collection is found.

    An empty list means "decoded fine, tool reported nothing". Records that
    cannot be converted are dropped; a note for each is appended to
    ``warnings`` when given.
    """
    if warnings is None:
        warnings = []

    if document is None:
        document = _decode_json(stdout)

    if document is not None:
        records = _discover_collection(document)
        if records is None:
            # A lone finding record, e.g. a single compiler message line
            single = _convert_record(document, warnings) if isinstance(document, dict) else None
            return [single] if single is not None else None
        return [f for f in (_convert_record(r, warnings) for r in records) if f is not None]

    return _parse_json_lines(stdout, warnings)


def _discover_collection(document: Any) -> Optional[List[Dict[str, Any]]]:
    """Locate the list of finding records inside a decoded report"""
    if isinstance(document, list):
        return [r for r in document if isinstance(r, dict)]

    if not isinstance(document, dict):
        return None

    # Slither: {"success": true, "results": {"detectors": [...]}}
    results = document.get("results")
    if isinstance(results, dict):
        for key in _COLLECTION_KEYS:
            if isinstance(results.get(key), list):
                return [r for r in results[key] if isinstance(r, dict)]
        # Slither omits "detectors" entirely when nothing was found
        if document.get("success") is True:
            return []

    for key in _COLLECTION_KEYS:
        if isinstance(document.get(key), list):
            return [r for r in document[key] if isinstance(r, dict)]

    return None


def _parse_json_lines(stdout: str, warnings: List[str]) -> Optional[List[RawFinding]]:
    """Line-delimited JSON (cargo/clippy style); non-JSON lines are skipped"""
    findings: List[RawFinding] = []
    decoded_any = False

    for line in stdout.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            continue
        decoded_any = True
        if not isinstance(record, dict):
            continue
        finding = _convert_record(record, warnings)
        if finding is not None:
            findings.append(finding)

    return findings if decoded_any else None


def _convert_record(record: Dict[str, Any], warnings: List[str]) -> Optional[RawFinding]:
    """Convert one record; a malformed record is dropped, not fatal to the run"""
    try:
        return _record_to_finding(record)
    except (ValidationError, ValueError, TypeError, AttributeError, OverflowError) as e:
        label = record.get("check") or record.get("type") or record.get("rule_id") or record.get("id") or "unknown"
        logger.warning("Skipping malformed tool record %s: %s", label, e)
        warnings.append(f"Skipped malformed tool record '{label}'")
        return None


def _record_to_finding(record: Dict[str, Any]) -> Optional[RawFinding]:
    if "check" in record and "impact" in record:
        return _slither_finding(record)

    message = record.get("message")
    if isinstance(message, dict) and isinstance(message.get("spans"), list):
        return _compiler_message_finding(message)

    check = (
        record.get("check")
        or record.get("type")
        or record.get("rule_id")
        or record.get("id")
    )
    if not check:
        return None

    return RawFinding(
        check=str(check),
        impact=_optional_str(record.get("impact") or record.get("severity")),
        confidence=_optional_str(record.get("confidence")),
        description=str(record.get("description") or record.get("message") or ""),
        locations=_generic_locations(record),
        raw=record,
    )


def _slither_finding(detector: Dict[str, Any]) -> RawFinding:
    locations = []
    for element in detector.get("elements") or []:
        mapping = element.get("source_mapping") if isinstance(element, dict) else None
        if not isinstance(mapping, dict):
            continue
        lines = mapping.get("lines") or []
        locations.append(CodeLocation(
            file=(
                mapping.get("filename_relative")
                or mapping.get("filename_short")
                or mapping.get("filename")
                or mapping.get("filename_absolute")
                or "unknown"
            ),
            line=_to_int(lines[0]) if lines else 0,
            column=_to_int(mapping.get("starting_column")),
            length=_optional_int(mapping.get("length")),
        ))

    return RawFinding(
        check=str(detector.get("check") or "unknown"),
        impact=_optional_str(detector.get("impact")),
        confidence=_optional_str(detector.get("confidence")),
        description=str(detector.get("description") or detector.get("markdown") or "").strip(),
        locations=locations,
        raw=detector,
    )


def _compiler_message_finding(message: Dict[str, Any]) -> Optional[RawFinding]:
    spans = message.get("spans") or []
    if not spans:
        return None

    span = spans[0]
    column_start = _to_int(span.get("column_start"))
    column_end = _optional_int(span.get("column_end"))
    code = message.get("code") or {}

    return RawFinding(
        check=str(code.get("code") if isinstance(code, dict) and code.get("code") else "clippy-warning"),
        impact=_optional_str(message.get("level")),
        description=str(message.get("message") or ""),
        locations=[CodeLocation(
            file=span.get("file_name") or "unknown",
            line=_to_int(span.get("line_start")),
            column=column_start,
            length=(column_end - column_start) if column_end else None,
        )],
        raw=message,
    )


def _generic_locations(record: Dict[str, Any]) -> List[CodeLocation]:
    location = record.get("location")
    if isinstance(location, dict):
        return [CodeLocation(
            file=location.get("file") or "unknown",
            line=_to_int(location.get("line")),
            column=_to_int(location.get("column")),
            length=_optional_int(location.get("length")),
        )]

    file_path = record.get("file") or record.get("file_path") or record.get("path")
    if file_path:
        return [CodeLocation(
            file=str(file_path),
            line=_to_int(record.get("line") or record.get("start_line")),
            column=_to_int(record.get("column")),
        )]
    return []


def _to_int(value: Any) -> int:
    """Absent means 0; numeric strings and floats are accepted, garbage raises ValueError"""
    if value is None or value == "":
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"not a position: {value!r}")
    return int(float(value)) if isinstance(value, str) and "." in value else int(value)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return _to_int(value)


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


# ---------------------------------------------------------------------------
# Heuristic fallback
# ---------------------------------------------------------------------------


def parse_heuristic(stdout: str) -> List[RawFinding]:
    """One finding per line carrying an INFO/WARNING/ERROR marker"""
    return [f for f in (_parse_marked_line(line) for line in stdout.splitlines()) if f]


def _parse_marked_line(line: str) -> Optional[RawFinding]:
    line = line.strip()
    marker = _MARKER_PATTERN.search(line)
    if not marker:
        return None

    locations: Iterable[CodeLocation] = ()
    match = _LOCATION_PATTERN.search(line, marker.end())
    if match:
        locations = [CodeLocation(
            file=match.group(1),
            line=int(match.group(2)),
            column=int(match.group(3) or 0),
        )]

    return RawFinding(
        check="text-parsed",
        impact=_MARKER_SEVERITY[marker.group(1)],
        description=line,
        locations=list(locations),
        source="heuristic",
    )
