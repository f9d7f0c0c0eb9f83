"""
Sandbox preparation for a single analysis run.

Input limits are checked before anything touches the filesystem; the
temporary directory is removed on every exit path of the ``with`` block.
"""

import logging
import re
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from contract_audit.exceptions import EmptyInputError, OversizedInputError

__all__ = ["SandboxHandle", "validate_source", "source_filename", "prepare_sandbox"]

logger = logging.getLogger(__name__)

SANDBOX_PREFIX = "contract_audit_"

# Source extension per platform tag; anything unlisted is treated as Solidity
PLATFORM_EXTENSIONS = {
    "ethereum": ".sol",
    "solana": ".rs",
    "cardano": ".hs",
    "aptos": ".move",
    "sui": ".move",
    "move": ".move",
}

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass
class SandboxHandle:
    """Owns one temporary directory and the source file written into it"""

    directory: Path
    source_path: Path

    @property
    def exists(self) -> bool:
        return self.directory.exists()


def validate_source(source_code: str, max_bytes: int) -> int:
    """Reject empty or oversized source. Returns the UTF-8 byte size."""
    if not source_code or not source_code.strip():
        raise EmptyInputError()

    size = len(source_code.encode("utf-8"))
    if size > max_bytes:
        raise OversizedInputError(size, max_bytes)
    return size


def source_filename(display_name: str, platform: Optional[str] = None) -> str:
    """Derive a deterministic, filesystem-safe filename from the display name"""
    extension = PLATFORM_EXTENSIONS.get(platform or "", ".sol")

    stem = Path(display_name or "").name
    if stem.lower().endswith(extension):
        stem = stem[: -len(extension)]
    stem = _UNSAFE_NAME_CHARS.sub("_", stem).strip("._")

    return f"{stem or 'Contract'}{extension}"


@contextmanager
def prepare_sandbox(
    source_code: str,
    display_name: str,
    max_bytes: int,
    platform: Optional[str] = None,
) -> Iterator[SandboxHandle]:
    """Create an isolated working directory holding the source sample.

    Args:
        source_code: Contract source text
        display_name: Human-readable contract name, used for the filename
        max_bytes: Maximum accepted UTF-8 size of the source
        platform: Optional platform tag selecting the file extension

    Yields:
        SandboxHandle for the duration of the block

    Raises:
        EmptyInputError, OversizedInputError: before any directory is created
    """
    validate_source(source_code, max_bytes)

    directory = Path(tempfile.mkdtemp(prefix=SANDBOX_PREFIX))
    try:
        source_path = directory / source_filename(display_name, platform)
        source_path.write_text(source_code, encoding="utf-8")
        logger.debug("Sandbox ready at %s", directory)
        yield SandboxHandle(directory=directory, source_path=source_path)
    finally:
        shutil.rmtree(directory, ignore_errors=True)
        if directory.exists():
            logger.warning("Failed to remove sandbox directory %s", directory)
