"""BTC pension workbench: DCA accumulation, collateralised yield, referrals and platform revenue."""

from .behavior.growth import (
    UserTimelinePoint,
    get_platform_users_timeline,
    get_users_with_exponential_growth,
    get_users_with_linear_growth,
)
from .behavior.referrals import ReferralTree, simulate_referral_tree, simulate_user_with_referrals
from .config import (
    ContributionPolicy,
    LendingPolicy,
    MarketConditions,
    ParticipantConfig,
    PlatformUsersData,
    ReferralNode,
    ReferralSettings,
    ScenarioConfig,
    TierConfig,
    TreasuryGrowthInput,
    UserSimulationInput,
    load_config,
)
from .engine.accounting import SimulationPoint
from .engine.fees import calculate_user_btc_and_platform_fees
from .engine.rates import monthly_rate
from .platform.aggregation import (
    accumulate_cohort_results,
    build_cohort_simulation_set,
    build_platform_monthly_snapshots,
    build_platform_monthly_snapshots_with_investment,
    simulate_platform_treasury_growth,
)
from .simulation.runner import first_month_for_collateral_loan, simulate_user
from .simulation.treasury import simulate_user_treasury_growth

__version__ = "0.1.0"

__all__ = [
    "ContributionPolicy",
    "LendingPolicy",
    "MarketConditions",
    "ParticipantConfig",
    "PlatformUsersData",
    "ReferralNode",
    "ReferralSettings",
    "ReferralTree",
    "ScenarioConfig",
    "TierConfig",
    "SimulationPoint",
    "TreasuryGrowthInput",
    "UserSimulationInput",
    "UserTimelinePoint",
    "accumulate_cohort_results",
    "build_cohort_simulation_set",
    "build_platform_monthly_snapshots",
    "build_platform_monthly_snapshots_with_investment",
    "calculate_user_btc_and_platform_fees",
    "first_month_for_collateral_loan",
    "get_platform_users_timeline",
    "get_users_with_exponential_growth",
    "get_users_with_linear_growth",
    "load_config",
    "monthly_rate",
    "simulate_platform_treasury_growth",
    "simulate_referral_tree",
    "simulate_user",
    "simulate_user_treasury_growth",
    "simulate_user_with_referrals",
]
