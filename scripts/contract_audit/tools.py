"""
Command-line specs for the external analysis tools.

A ToolSpec knows how to build the argument vector for an analysis run,
a version check, and a structural (AST / summary) extraction. Adding a
tool means registering a new spec, not branching in the pipeline.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

from contract_audit.models import AnalysisConfig

__all__ = ["ToolSpec", "SLITHER", "TOOL_SPECS", "get_tool_spec"]


@dataclass(frozen=True)
class ToolSpec:
    """How to invoke one analysis tool"""

    name: str
    binary: str
    version_args: Tuple[str, ...] = ("--version",)
    json_args: Tuple[str, ...] = ("--json", "-")
    detect_flag: str = "--detect"
    exclude_flag: str = "--exclude"
    extra_args: Tuple[str, ...] = ()
    structure_args: Tuple[str, ...] = ()

    def analysis_command(self, source_path: Path, config: AnalysisConfig) -> List[str]:
        """Build argv for a full analysis of ``source_path``"""
        binary = config.tool_binary or self.binary
        cmd = [binary, str(source_path)]

        if config.output_format == "json":
            cmd.extend(self.json_args)

        if config.enabled_detectors:
            cmd.extend([self.detect_flag, ",".join(config.enabled_detectors)])

        if config.disabled_detectors:
            cmd.extend([self.exclude_flag, ",".join(config.disabled_detectors)])

        cmd.extend(self.extra_args)
        return cmd

    def version_command(self, binary: str = "") -> List[str]:
        return [binary or self.binary, *self.version_args]

    def structure_command(self, source_path: Path, binary: str = "") -> List[str]:
        return [binary or self.binary, str(source_path), *self.structure_args]


SLITHER = ToolSpec(
    name="slither",
    binary="slither",
    extra_args=("--disable-color", "--no-fail-pedantic"),
    structure_args=("--print", "human-summary", "--json", "-"),
)

TOOL_SPECS: Dict[str, ToolSpec] = {
    SLITHER.name: SLITHER,
}


def get_tool_spec(name: str) -> ToolSpec:
    """Look up a registered tool; unknown names reuse the Slither argument layout"""
    return TOOL_SPECS.get(Path(name).name, SLITHER)
