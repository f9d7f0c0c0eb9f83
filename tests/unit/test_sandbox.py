#!/usr/bin/env python3
"""
Tests for sandbox preparation: input limits, filenames and cleanup.
"""

import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "scripts"))

from contract_audit.exceptions import EmptyInputError, OversizedInputError
from contract_audit.sandbox import (
    SANDBOX_PREFIX,
    prepare_sandbox,
    source_filename,
    validate_source,
)

SOURCE = "pragma solidity ^0.8.0;\ncontract Vault {}\n"


class TestValidateSource:
    def test_returns_byte_size(self):
        assert validate_source("abc", 10) == 3

    def test_counts_utf8_bytes(self):
        # two characters, four bytes
        with pytest.raises(OversizedInputError) as exc_info:
            validate_source("éé", 3)
        assert exc_info.value.size == 4
        assert exc_info.value.limit == 3

    @pytest.mark.parametrize("source", ["", "   ", "\n\t"])
    def test_empty_rejected(self, source):
        with pytest.raises(EmptyInputError):
            validate_source(source, 100)

    def test_exact_limit_accepted(self):
        assert validate_source("x" * 10, 10) == 10

    def test_double_limit_message(self):
        with pytest.raises(OversizedInputError, match="exceeds maximum limit"):
            validate_source("x" * 20, 10)


class TestSourceFilename:
    def test_default_extension(self):
        assert source_filename("Vault") == "Vault.sol"

    def test_existing_extension_not_doubled(self):
        assert source_filename("Vault.sol") == "Vault.sol"

    @pytest.mark.parametrize("platform,expected", [
        ("solana", "program.rs"),
        ("cardano", "program.hs"),
        ("aptos", "program.move"),
        ("sui", "program.move"),
        ("ethereum", "program.sol"),
        ("unknown-chain", "program.sol"),
    ])
    def test_platform_extension(self, platform, expected):
        assert source_filename("program", platform) == expected

    def test_path_components_stripped(self):
        assert source_filename("../../etc/passwd") == "passwd.sol"

    def test_unsafe_characters_replaced(self):
        assert source_filename("My Token (v2)") == "My_Token_v2.sol"

    def test_empty_name_falls_back(self):
        assert source_filename("") == "Contract.sol"
        assert source_filename("...") == "Contract.sol"

    def test_deterministic(self):
        assert source_filename("Vault", "solana") == source_filename("Vault", "solana")


class TestPrepareSandbox:
    def test_writes_source(self):
        with prepare_sandbox(SOURCE, "Vault", 1024) as sandbox:
            assert sandbox.exists
            assert sandbox.source_path.name == "Vault.sol"
            assert sandbox.source_path.read_text(encoding="utf-8") == SOURCE
            assert sandbox.directory.name.startswith(SANDBOX_PREFIX)

    def test_removed_after_success(self):
        with prepare_sandbox(SOURCE, "Vault", 1024) as sandbox:
            directory = sandbox.directory
        assert not directory.exists()

    def test_removed_after_exception(self):
        captured = {}
        with pytest.raises(RuntimeError):
            with prepare_sandbox(SOURCE, "Vault", 1024) as sandbox:
                captured["dir"] = sandbox.directory
                raise RuntimeError("boom")
        assert not captured["dir"].exists()

    def test_oversized_creates_nothing(self):
        with patch("contract_audit.sandbox.tempfile.mkdtemp", wraps=tempfile.mkdtemp) as mkdtemp:
            with pytest.raises(OversizedInputError):
                with prepare_sandbox("x" * 11, "Vault", 10):
                    pass
            mkdtemp.assert_not_called()

    def test_empty_creates_nothing(self):
        with patch("contract_audit.sandbox.tempfile.mkdtemp") as mkdtemp:
            with pytest.raises(EmptyInputError):
                with prepare_sandbox("", "Vault", 10):
                    pass
            mkdtemp.assert_not_called()

    def test_platform_extension_used(self):
        with prepare_sandbox("fn main() {}", "program", 1024, platform="solana") as sandbox:
            assert sandbox.source_path.suffix == ".rs"

    def test_separate_runs_get_separate_directories(self):
        with prepare_sandbox(SOURCE, "A", 1024) as first, prepare_sandbox(SOURCE, "A", 1024) as second:
            assert first.directory != second.directory
