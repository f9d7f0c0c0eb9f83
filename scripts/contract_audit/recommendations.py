"""
Recommendation Engine - remediation guidance per finding.

Lookup order for ``recommend(type, platform, original_type)``:
    1. platform table, by tool-native type, then by normalized type
    2. tool table (platform-agnostic), by tool-native type
    3. type table (platform-agnostic), by normalized type
    4. GENERIC_RECOMMENDATION

All tables are read-only after import. The result is never empty.
"""

from types import MappingProxyType
from typing import Mapping, Optional

from contract_audit.platforms import canonical_platform

__all__ = [
    "GENERIC_RECOMMENDATION",
    "PLATFORM_RECOMMENDATIONS",
    "TOOL_RECOMMENDATIONS",
    "TYPE_RECOMMENDATIONS",
    "recommend",
]

GENERIC_RECOMMENDATION = "Review the identified issue against platform security best practices."

TOOL_RECOMMENDATIONS: Mapping[str, str] = MappingProxyType({
    "reentrancy-eth": "Use the checks-effects-interactions pattern and consider using ReentrancyGuard.",
    "reentrancy-no-eth": "Ensure state changes occur before external calls.",
    "uninitialized-state": "Initialize all state variables explicitly.",
    "uninitialized-storage": "Initialize storage pointers explicitly or use memory for local structs.",
    "arbitrary-send": "Validate recipient addresses and use pull payment patterns.",
    "arbitrary-send-eth": "Validate recipient addresses and use pull payment patterns.",
    "controlled-delegatecall": "Avoid delegatecall with user-controlled data.",
    "tx-origin": "Use msg.sender instead of tx.origin for authorization.",
    "timestamp": "Avoid using block.timestamp for critical logic.",
    "locked-ether": "Implement a withdrawal function to prevent locked funds.",
    "pragma": "Use a specific compiler version pragma.",
    "solc-version": "Use a recent, stable Solidity compiler version.",
    "naming-convention": "Follow Solidity naming conventions.",
    "unused-state": "Remove unused state variables to save gas.",
    "external-function": "Mark functions as external if they're not called internally.",
    "low-level-calls": "Check the return value of low-level calls or use higher-level wrappers.",
    "missing-zero-check": "Validate that address parameters are not the zero address.",
    "divide-before-multiply": "Perform multiplication before division to avoid precision loss.",
    "calls-loop": "Avoid external calls inside loops; use a pull pattern instead.",
    # Rust / clippy lints surfaced by Solana tooling
    "clippy::integer_arithmetic": "Use checked arithmetic operations to prevent overflow",
    "clippy::arithmetic_side_effects": "Use checked arithmetic operations to prevent overflow",
    "clippy::panic": "Avoid panic! in production code, use proper error handling",
    "clippy::unwrap_used": "Avoid unwrap(), use proper error handling with match or if let",
    "clippy::expect_used": "Consider using proper error handling instead of expect()",
    "clippy::indexing_slicing": "Use safe indexing methods like get() instead of direct indexing",
    "clippy::cast_lossless": "Use From/Into traits for lossless conversions",
    "clippy::cast_possible_truncation": "Validate numeric conversions to prevent data loss",
    "hlint-suggestion": "Follow HLint suggestions for better Haskell code quality and safety",
})

TYPE_RECOMMENDATIONS: Mapping[str, str] = MappingProxyType({
    "reentrancy": "Implement checks-effects-interactions pattern and use reentrancy guards",
    "access_control": "Implement proper access control mechanisms and role-based permissions",
    "overflow": "Use safe math libraries or built-in overflow protection",
    "unchecked_call": "Check the result of every external call and handle failure explicitly",
    "delegatecall": "Restrict delegatecall targets to trusted, immutable implementations",
    "timestamp_dependence": "Do not rely on block timestamps for randomness or critical deadlines",
    "denial_of_service": "Bound loops and avoid external calls whose failure can block execution",
    "uninitialized_state": "Initialize all state and storage explicitly before use",
    "locked_funds": "Provide a controlled withdrawal path for any funds the contract can receive",
    "shadowing": "Rename variables so that no declaration shadows another",
    "gas_optimization": "Review gas usage patterns and optimize contract efficiency",
    "best_practice": "Follow platform-specific coding standards and best practices",
})

_SOLANA = {
    "insecure-pda-derivation": "Use canonical bump seeds and validate PDA derivation parameters",
    "pda-security": "Ensure PDA derivation uses canonical bump seeds and proper validation",
    "missing-owner-validation": "Always validate account ownership before processing account data",
    "account-validation": "Implement comprehensive account ownership and signer validation",
    "anchor-missing-constraints": "Add appropriate Anchor constraints to validate account relationships",
    "anchor-constraints": "Use Anchor constraints to validate account relationships and data",
    "anchor-missing-signer": "Ensure proper signer validation in all instruction contexts",
    "missing-signer-check": "Require the authority account to be a signer before mutating state",
    "compute-unit-risk": "Optimize code to stay within Solana's compute unit limits",
    "compute-optimization": "Optimize compute unit usage to avoid transaction failures",
    "missing-rent-exemption": "Ensure accounts maintain rent exemption or handle rent collection properly",
    "rent-exemption": "Ensure accounts maintain rent exemption or handle rent collection",
    "cpi-security": "Validate all accounts and parameters in cross-program invocations",
    "integer-overflow": "Use checked arithmetic operations to prevent overflow in Solana programs",
    "state-validation": "Validate program state transitions and account data integrity",
    "security": "Validate account ownership, use canonical bump seeds, and implement proper signer checks",
    "access_control": "Use Anchor constraints or manual account validation to control access",
    "overflow": "Use checked_add/checked_sub/checked_mul for all arithmetic on account balances",
}

_CARDANO = {
    "plutus-missing-context": "Include ScriptContext parameter in validator functions for proper validation",
    "plutus-unsafe-datum": "Use fromBuiltinData for safe datum deserialization with error handling",
    "plutus-missing-value-validation": "Validate the value locked and paid in every transaction output",
    "cardano-utxo-validation": "Implement comprehensive UTXO input and output validation",
    "utxo-validation": "Implement proper UTXO validation logic",
    "cardano-datum-validation": "Validate datum structure and content using proper type checking",
    "datum-validation": "Add comprehensive datum validation and type checking",
    "redeemer-validation": "Validate every redeemer constructor the validator can receive",
    "cardano-script-efficiency": "Optimize script execution units and memory usage for cost efficiency",
    "script-efficiency": "Optimize script execution to reduce costs and improve performance",
    "cardano-eutxo-compliance": "Ensure proper eUTXO model compliance with transaction info validation",
    "double-satisfaction": "Tie each validated input to a uniquely identified output to prevent double satisfaction",
    "security": "Validate all UTXOs, datums, and script context thoroughly",
}

_MOVE = {
    "resource-leak": "Ensure every resource is stored, returned, or explicitly destroyed",
    "capability-leak": "Never return or store capabilities where untrusted modules can reach them",
    "missing-signer-check": "Require a &signer argument and verify its address before privileged actions",
    "unchecked-abort": "Use descriptive abort codes and assert preconditions before state changes",
    "ability-misuse": "Grant copy and drop abilities only to types that may be duplicated or discarded",
    "integer-overflow": "Guard arithmetic with explicit bounds checks before it can abort",
    "gas-inefficiency": "Reduce global storage reads and writes inside loops",
    "access_control": "Gate privileged entry functions on signer address or held capability",
}

_SUI = dict(_MOVE, **{
    "object-ownership": "Check object ownership and transfer policies before mutating shared objects",
    "shared-object-race": "Minimize shared-object mutation or design operations to be order independent",
})

_APTOS = dict(_MOVE, **{
    "resource-account-misuse": "Protect resource account signer capabilities behind access checks",
})

_ETHEREUM = {
    "reentrancy": "Use OpenZeppelin's ReentrancyGuard or implement checks-effects-interactions pattern",
    "access_control": "Use OpenZeppelin's AccessControl, Ownable, or custom role-based permissions",
    "overflow": "Use SafeMath library or Solidity 0.8+ built-in overflow protection",
}

PLATFORM_RECOMMENDATIONS: Mapping[str, Mapping[str, str]] = MappingProxyType({
    "ethereum": MappingProxyType(_ETHEREUM),
    "solana": MappingProxyType(_SOLANA),
    "cardano": MappingProxyType(_CARDANO),
    "move": MappingProxyType(_MOVE),
    "aptos": MappingProxyType(_APTOS),
    "sui": MappingProxyType(_SUI),
})


def recommend(normalized_type: str, platform: Optional[str] = None, original_type: Optional[str] = None) -> str:
    """Remediation text for a finding. Never returns an empty string."""
    platform_table = PLATFORM_RECOMMENDATIONS.get(canonical_platform(platform) or "", {})

    for table, key in (
        (platform_table, original_type),
        (platform_table, normalized_type),
        (TOOL_RECOMMENDATIONS, original_type),
        (TYPE_RECOMMENDATIONS, normalized_type),
    ):
        if key and table.get(key):
            return table[key]

    return GENERIC_RECOMMENDATION
