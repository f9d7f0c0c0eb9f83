"""Platform tags and aliases shared by the mappers and the recommendation engine."""

from typing import Optional

__all__ = ["EVM_PLATFORMS", "canonical_platform"]

# EVM chains run the same Solidity toolchain, so they share Ethereum's tables
EVM_PLATFORMS = frozenset({
    "ethereum",
    "evm",
    "polygon",
    "bsc",
    "arbitrum",
    "optimism",
    "avalanche",
    "base",
})


def canonical_platform(platform: Optional[str]) -> Optional[str]:
    """Lower-case the tag and fold EVM aliases into ``ethereum``"""
    if not platform:
        return None
    platform = platform.strip().lower()
    if platform in EVM_PLATFORMS:
        return "ethereum"
    return platform or None
