"""Scenario configuration."""

from .loader import config_from_dict, load_config
from .schema import (
    MAX_TIERS,
    SNAPSHOT_STEP,
    CagrDecay,
    ContributionPolicy,
    LendingPolicy,
    MarketConditions,
    ParticipantConfig,
    PlatformTreasury,
    PlatformUsersData,
    ReferralNode,
    ReferralSettings,
    ScenarioConfig,
    Simulation,
    TierConfig,
    TreasuryGrowthInput,
    UserSimulationInput,
)

__all__ = [
    "MAX_TIERS",
    "SNAPSHOT_STEP",
    "CagrDecay",
    "ContributionPolicy",
    "LendingPolicy",
    "MarketConditions",
    "ParticipantConfig",
    "PlatformTreasury",
    "PlatformUsersData",
    "ReferralNode",
    "ReferralSettings",
    "ScenarioConfig",
    "Simulation",
    "TierConfig",
    "TreasuryGrowthInput",
    "UserSimulationInput",
    "config_from_dict",
    "load_config",
]
