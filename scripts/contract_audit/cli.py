"""CLI entry point for the contract audit pipeline.

Commands:
    contract-audit analyze FILE   Run static analysis and print the result JSON
    contract-audit check          Verify the analysis tool is installed
    contract-audit structure FILE Print the tool's structural summary

Exit codes: 0 clean, 1 critical/high findings present, 2 failure.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from contract_audit.analyzer import ContractAnalyzer
from contract_audit.config_loader import build_unified_config, list_available_profiles, validate_config
from contract_audit.models import AnalysisRequest

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_FAILURE = 2


def build_parser() -> argparse.ArgumentParser:
    # Options shared by every command, accepted after the command name
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    common.add_argument("--profile", default=None, help=f"Configuration profile ({', '.join(list_available_profiles()) or 'none found'})")
    common.add_argument("--tool", default=None, help="Analysis tool binary (default: slither)")
    common.add_argument("--timeout-ms", type=int, default=None, help="Wall-clock budget for the tool in milliseconds")
    common.add_argument("--max-bytes", type=int, default=None, help="Maximum accepted source size in bytes")

    parser = argparse.ArgumentParser(
        prog="contract-audit",
        description="Static smart-contract analysis with cross-platform vulnerability normalization",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    analyze_parser = subparsers.add_parser("analyze", parents=[common], help="Analyze a contract source file")
    analyze_parser.add_argument("file", help="Contract source file")
    analyze_parser.add_argument("--platform", default=None, help="Target platform (ethereum, solana, cardano, aptos, sui, ...)")
    analyze_parser.add_argument("--name", default=None, help="Display name (default: file name)")
    analyze_parser.add_argument("--format", choices=["json", "text"], default=None, help="Tool output mode")
    analyze_parser.add_argument("--severity-threshold", choices=["critical", "high", "medium", "low"], default=None)
    analyze_parser.add_argument("--deduplicate", action="store_true", default=None, help="Drop duplicate findings")
    analyze_parser.add_argument("--output", default=None, help="Write the result JSON here instead of stdout")

    subparsers.add_parser("check", parents=[common], help="Check that the analysis tool is installed")

    structure_parser = subparsers.add_parser("structure", parents=[common], help="Extract the contract structure summary")
    structure_parser.add_argument("file", help="Contract source file")
    structure_parser.add_argument("--platform", default=None)
    structure_parser.add_argument("--output", default=None, help="Write the result JSON here instead of stdout")

    return parser


def _emit(payload: Dict[str, Any], output: Optional[str]) -> None:
    text = json.dumps(payload, indent=2, default=str)
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        logger.info("Result written to %s", output)
    else:
        print(text)


def _read_source(path: str) -> Optional[str]:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error("Cannot read %s: %s", path, e)
        return None


def _run_analyze(analyzer: ContractAnalyzer, args: argparse.Namespace) -> int:
    source = _read_source(args.file)
    if source is None:
        return EXIT_FAILURE

    request = AnalysisRequest(
        source_code=source,
        display_name=args.name or Path(args.file).name,
        platform=args.platform,
        config=analyzer.config,
    )
    result = analyzer.analyze(request)
    _emit(result.to_contract_dict(), args.output)

    if not result.success:
        for error in result.errors:
            logger.error(error)
        return EXIT_FAILURE

    counts = result.count_by_severity()
    if counts["critical"] > 0 or counts["high"] > 0:
        return EXIT_FINDINGS
    return EXIT_OK


def _run_check(analyzer: ContractAnalyzer) -> int:
    result = analyzer.check_tool_installation()
    _emit(result.model_dump(), None)
    return EXIT_OK if result.installed else EXIT_FAILURE


def _run_structure(analyzer: ContractAnalyzer, args: argparse.Namespace) -> int:
    source = _read_source(args.file)
    if source is None:
        return EXIT_FAILURE

    result = analyzer.get_contract_structure(source, Path(args.file).name, platform=args.platform)
    _emit(result.model_dump(), args.output)
    return EXIT_OK if result.success else EXIT_FAILURE


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for contract audit"""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if not args.command:
        parser.print_help()
        return EXIT_FAILURE

    config = build_unified_config(profile=args.profile, cli_args=args)
    issues = validate_config(config)
    for issue in issues:
        logger.warning(issue)
    if any(issue.startswith("ERROR") for issue in issues):
        return EXIT_FAILURE

    try:
        analyzer = ContractAnalyzer.from_config(config)
    except ValidationError as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_FAILURE

    if args.command == "analyze":
        return _run_analyze(analyzer, args)
    if args.command == "check":
        return _run_check(analyzer)
    return _run_structure(analyzer, args)


if __name__ == "__main__":
    sys.exit(main())
