"""
Configuration Loader for the contract audit pipeline.

Implements a layered configuration system:
    hardcoded defaults < profile YAML < env vars < explicit overrides (CLI)

Usage:
    from contract_audit.config_loader import build_unified_config, build_analysis_config
    config = build_unified_config(profile="quick")
    analysis_config = build_analysis_config(config)
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from contract_audit.models import DEFAULT_DETECTORS, SEVERITY_LEVELS, AnalysisConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Project root detection
# ---------------------------------------------------------------------------

def _find_project_root() -> Path:
    """Find the project root by looking for the profiles/ + scripts/ pair."""
    current = Path(__file__).resolve().parent
    for ancestor in [current, *current.parents]:
        if (ancestor / "profiles").is_dir() and (ancestor / "scripts").is_dir():
            return ancestor
    return current.parent


PROJECT_ROOT = _find_project_root()

USER_DIR_NAME = ".contract-audit"

# ---------------------------------------------------------------------------
# Default configuration
# ---------------------------------------------------------------------------

def get_default_config() -> Dict[str, Any]:
    """Return all configuration parameters with their defaults.

    This is the lowest-priority layer.  Every configurable key must appear
    here so that downstream code never needs to guard against missing keys.
    """
    return {
        # -- Tool --
        "tool_binary": "slither",
        "output_format": "json",             # json, text

        # -- Limits --
        "timeout_ms": 60_000,
        "max_bytes": 10 * 1024 * 1024,
        "termination_grace_ms": 5_000,
        "version_timeout_ms": 10_000,
        "spawn_retry_attempts": 3,
        "max_workers": 4,

        # -- Detectors --
        "enabled_detectors": list(DEFAULT_DETECTORS),
        "disabled_detectors": [],

        # -- Output --
        "severity_threshold": "low",          # critical, high, medium, low
        "deduplicate": False,
    }

# ---------------------------------------------------------------------------
# Profile loading
# ---------------------------------------------------------------------------

def _profile_search_paths(profile_name: str) -> List[Path]:
    """Return candidate YAML paths for *profile_name*, in priority order.

    The first existing file wins: built-in, then user, then project-local.
    """
    return [
        PROJECT_ROOT / "profiles" / f"{profile_name}.yml",
        Path.home() / USER_DIR_NAME / "profiles" / f"{profile_name}.yml",
        Path(USER_DIR_NAME) / "profiles" / f"{profile_name}.yml",
    ]


def _load_raw_profile(profile_name: str, _chain: Optional[List[str]] = None) -> dict:
    """Load raw YAML dict for *profile_name*, resolving ``_extends``.

    Raises
    ------
    FileNotFoundError
        If the profile YAML cannot be found in any search path.
    ValueError
        If a circular ``_extends`` chain is detected.
    """
    if _chain is None:
        _chain = []

    if profile_name in _chain:
        raise ValueError(
            f"Circular profile inheritance detected: "
            f"{' -> '.join(_chain)} -> {profile_name}"
        )
    _chain.append(profile_name)

    loaded_path: Optional[Path] = None
    for candidate in _profile_search_paths(profile_name):
        if candidate.is_file():
            loaded_path = candidate
            break

    if loaded_path is None:
        raise FileNotFoundError(
            f"Profile '{profile_name}' not found.  Searched: "
            + ", ".join(str(p) for p in _profile_search_paths(profile_name))
        )

    logger.info("Loading profile '%s' from %s", profile_name, loaded_path)
    with open(loaded_path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    parent_name = raw.pop("_extends", None)
    if parent_name:
        parent = _load_raw_profile(parent_name, _chain=_chain)
        raw = _deep_merge_nested(parent, raw)

    return raw


def _deep_merge_nested(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (nested dicts)."""
    merged = dict(base)
    for key, value in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = _deep_merge_nested(merged[key], value)
        else:
            merged[key] = value
    return merged

# ---------------------------------------------------------------------------
# Flatten nested YAML -> flat config dict
# ---------------------------------------------------------------------------

_TOOL_KEY_MAP = {
    "binary": "tool_binary",
    "output_format": "output_format",
}

_DETECTOR_KEY_MAP = {
    "enabled": "enabled_detectors",
    "disabled": "disabled_detectors",
}


def flatten_profile(nested: dict) -> Dict[str, Any]:
    """Convert a nested profile YAML dict to a flat config dict.

    Mapping rules:
    - ``nested["tool"]["binary"]``        -> ``tool_binary``
    - ``nested["tool"]["output_format"]`` -> ``output_format``
    - ``nested["limits"][key]``           -> key (directly)
    - ``nested["detectors"]["enabled"]``  -> ``enabled_detectors``
    - ``nested["detectors"]["disabled"]`` -> ``disabled_detectors``
    - ``nested["output"][key]``           -> key (directly)
    - Top-level ``name`` and ``description`` are passed through as-is.

    Only non-None values are included.
    """
    flat: Dict[str, Any] = {}

    tool = nested.get("tool")
    if isinstance(tool, dict):
        for key, config_key in _TOOL_KEY_MAP.items():
            if tool.get(key) is not None:
                flat[config_key] = tool[key]

    for section in ("limits", "output"):
        block = nested.get(section)
        if isinstance(block, dict):
            for key, value in block.items():
                if value is not None:
                    flat[key] = value

    detectors = nested.get("detectors")
    if isinstance(detectors, dict):
        for key, config_key in _DETECTOR_KEY_MAP.items():
            if detectors.get(key) is not None:
                flat[config_key] = _as_list(detectors[key])

    for scalar_key in ("name", "description"):
        if nested.get(scalar_key) is not None:
            flat[scalar_key] = nested[scalar_key]

    return flat


def load_profile(profile_name: str) -> Dict[str, Any]:
    """Load a profile by name and return a flat config dict.

    Search order (first match wins):
      1. ``{PROJECT_ROOT}/profiles/{name}.yml``        (built-in)
      2. ``~/.contract-audit/profiles/{name}.yml``     (user)
      3. ``.contract-audit/profiles/{name}.yml``       (project-local)

    The ``_extends`` key enables profile inheritance: the parent profile is
    loaded first and the child values are overlaid on top.
    """
    raw = _load_raw_profile(profile_name)
    return flatten_profile(raw)

# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

# Mapping: (env_var_name, ...) -> (config_key, type)
# Types: "str", "bool", "int", "list"
_ENV_MAPPINGS: List[tuple] = [
    (("CONTRACT_AUDIT_TOOL",),                "tool_binary",          "str"),
    (("CONTRACT_AUDIT_OUTPUT_FORMAT",),       "output_format",        "str"),
    (("CONTRACT_AUDIT_TIMEOUT_MS",),          "timeout_ms",           "int"),
    (("CONTRACT_AUDIT_MAX_BYTES",),           "max_bytes",            "int"),
    (("CONTRACT_AUDIT_GRACE_MS",),            "termination_grace_ms", "int"),
    (("CONTRACT_AUDIT_MAX_WORKERS",),         "max_workers",          "int"),
    (("CONTRACT_AUDIT_SEVERITY_THRESHOLD",),  "severity_threshold",   "str"),
    (("CONTRACT_AUDIT_DEDUPLICATE",),         "deduplicate",          "bool"),
    (("CONTRACT_AUDIT_DETECTORS",),           "enabled_detectors",    "list"),
    (("CONTRACT_AUDIT_EXCLUDE_DETECTORS",),   "disabled_detectors",   "list"),
]


def _as_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item) for item in value]


def _coerce(raw: str, type_tag: str) -> Any:
    """Convert a raw env-var string to the appropriate Python type."""
    if type_tag == "bool":
        return raw.lower() == "true"
    if type_tag == "int":
        return int(raw)
    if type_tag == "list":
        return _as_list(raw)
    return raw


def load_env_overrides() -> Dict[str, Any]:
    """Load configuration values from explicitly-set environment variables.

    Only variables that are **present** in ``os.environ`` are returned, so
    that defaults or profile values are not accidentally overwritten.
    """
    overrides: Dict[str, Any] = {}

    for env_names, config_key, type_tag in _ENV_MAPPINGS:
        for env_name in env_names:
            if env_name in os.environ:
                try:
                    overrides[config_key] = _coerce(os.environ[env_name], type_tag)
                except (ValueError, TypeError) as exc:
                    logger.warning(
                        "Ignoring env var %s: could not convert %r to %s (%s)",
                        env_name, os.environ[env_name], type_tag, exc,
                    )
                break  # first match wins

    return overrides

# ---------------------------------------------------------------------------
# CLI argument extraction
# ---------------------------------------------------------------------------

# Mapping: argparse attribute -> config key
_CLI_ATTR_MAP: Dict[str, str] = {
    "tool": "tool_binary",
    "format": "output_format",
    "timeout_ms": "timeout_ms",
    "max_bytes": "max_bytes",
    "severity_threshold": "severity_threshold",
    "deduplicate": "deduplicate",
}


def extract_cli_overrides(args: Any) -> Dict[str, Any]:
    """Extract explicitly-set CLI arguments into a flat config dict.

    Only attributes whose value is not ``None`` are included, so that
    argparse defaults do not shadow earlier layers.
    """
    if args is None:
        return {}

    overrides: Dict[str, Any] = {}
    for attr, config_key in _CLI_ATTR_MAP.items():
        value = getattr(args, attr, None)
        if value is not None:
            overrides[config_key] = value
    return overrides

# ---------------------------------------------------------------------------
# Merge helpers
# ---------------------------------------------------------------------------

def deep_merge(base: dict, override: dict) -> dict:
    """Merge *override* into *base*.  Only non-None override values win.

    This operates on **flat** dicts (no recursive descent).
    """
    merged = dict(base)
    for key, value in override.items():
        if value is not None:
            merged[key] = value
    return merged

# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def build_unified_config(
    profile: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    cli_args: Any = None,
) -> Dict[str, Any]:
    """Build a fully-merged configuration dict.

    Layer precedence (last wins):
        1. Hard-coded defaults          (``get_default_config()``)
        2. Profile YAML                 (``load_profile()``)
        3. Environment variables        (``load_env_overrides()``)
        4. Explicit overrides / CLI     (``overrides``, ``extract_cli_overrides()``)

    Parameters
    ----------
    profile:
        Explicit profile name.  If ``None``, the function checks
        ``cli_args.profile``, then the ``CONTRACT_AUDIT_PROFILE`` env var.
    overrides:
        Flat dict of caller-supplied values; ``None`` values are ignored.
    cli_args:
        An ``argparse.Namespace`` (or ``None``).
    """
    config = get_default_config()

    profile_name = profile
    if profile_name is None and cli_args is not None:
        profile_name = getattr(cli_args, "profile", None)
    if profile_name is None:
        profile_name = os.environ.get("CONTRACT_AUDIT_PROFILE")

    if profile_name:
        try:
            config = deep_merge(config, load_profile(profile_name))
            logger.info("Applied profile '%s'", profile_name)
        except FileNotFoundError:
            logger.warning("Profile '%s' not found; skipping", profile_name)

    env_overrides = load_env_overrides()
    if env_overrides:
        config = deep_merge(config, env_overrides)
        logger.debug("Applied %d env-var overrides", len(env_overrides))

    explicit = deep_merge(extract_cli_overrides(cli_args), overrides or {})
    if explicit:
        config = deep_merge(config, explicit)
        logger.debug("Applied %d explicit overrides", len(explicit))

    return config

# ---------------------------------------------------------------------------
# Profile discovery
# ---------------------------------------------------------------------------

def list_available_profiles() -> List[str]:
    """Return the names of all available profiles across the search dirs."""
    names: set = set()

    search_dirs = [
        PROJECT_ROOT / "profiles",
        Path.home() / USER_DIR_NAME / "profiles",
        Path(USER_DIR_NAME) / "profiles",
    ]
    for directory in search_dirs:
        if directory.is_dir():
            for yml_file in directory.glob("*.yml"):
                names.add(yml_file.stem)

    return sorted(names)

# ---------------------------------------------------------------------------
# Configuration validation
# ---------------------------------------------------------------------------

_VALID_OUTPUT_FORMATS = {"json", "text"}


def validate_config(config: Dict[str, Any]) -> List[str]:
    """Validate a configuration dict and return a list of warnings/errors.

    An empty list means the config is valid.
    """
    issues: List[str] = []

    output_format = config.get("output_format", "json")
    if output_format not in _VALID_OUTPUT_FORMATS:
        issues.append(
            f"ERROR: Invalid output_format '{output_format}'. "
            f"Must be one of: {', '.join(sorted(_VALID_OUTPUT_FORMATS))}"
        )

    threshold = str(config.get("severity_threshold", "low")).lower()
    if threshold not in SEVERITY_LEVELS:
        issues.append(
            f"ERROR: Invalid severity_threshold '{threshold}'. "
            f"Must be one of: {', '.join(SEVERITY_LEVELS)}"
        )

    for key in ("timeout_ms", "max_bytes", "version_timeout_ms", "max_workers", "spawn_retry_attempts"):
        value = config.get(key)
        if isinstance(value, (int, float)) and value < 1:
            issues.append(f"ERROR: {key} must be >= 1.")

    grace = config.get("termination_grace_ms", 0)
    if isinstance(grace, (int, float)) and grace < 0:
        issues.append("ERROR: termination_grace_ms must be >= 0.")

    if not config.get("tool_binary"):
        issues.append("ERROR: tool_binary must not be empty.")

    overlap = set(config.get("enabled_detectors") or ()) & set(config.get("disabled_detectors") or ())
    if overlap:
        issues.append(
            "WARNING: detectors both enabled and disabled will be excluded: "
            + ", ".join(sorted(overlap))
        )

    return issues


def build_analysis_config(config: Dict[str, Any]) -> AnalysisConfig:
    """Convert a flat config dict into a validated AnalysisConfig.

    Keys that do not belong to AnalysisConfig (``max_workers``, profile
    ``name`` ...) are ignored.  Raises pydantic.ValidationError on bad values.
    """
    fields = {key: value for key, value in config.items() if key in AnalysisConfig.model_fields}
    for key in ("enabled_detectors", "disabled_detectors"):
        if key in fields and fields[key] is not None:
            fields[key] = tuple(_as_list(fields[key]))
    return AnalysisConfig(**fields)
