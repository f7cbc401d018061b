"""Analysis tools for BTC pension simulation."""

from .scenarios import (
    SCENARIO_LIBRARY,
    Scenario,
    ScenarioComparison,
    ScenarioResult,
    ScenarioRunner,
    build_referral_tree,
    format_comparison_table,
    make_participant,
    run_config,
)

__all__ = [
    "Scenario",
    "ScenarioComparison",
    "ScenarioResult",
    "ScenarioRunner",
    "SCENARIO_LIBRARY",
    "build_referral_tree",
    "format_comparison_table",
    "make_participant",
    "run_config",
]
