"""Predefined scenario library for BTC pension simulation comparison."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from ..behavior.referrals import simulate_referral_tree
from ..config.schema import (
    ContributionPolicy,
    LendingPolicy,
    ParticipantConfig,
    ReferralNode,
    ScenarioConfig,
    TierConfig,
)
from ..engine.accounting import SimulationPoint
from ..validation.sanity_checks import ValidationWarning, validate_simulation_results


@dataclass
class Scenario:
    """A named scenario with configuration overrides."""
    name: str
    description: str
    category: str  # "outlook", "stress_test", "referrals"
    overrides: Dict[str, Any]  # Config path -> value


@dataclass
class ScenarioResult:
    """Snapshots of one scenario run."""
    config: ScenarioConfig
    points: List[SimulationPoint]
    warnings: List[ValidationWarning] = field(default_factory=list)


@dataclass
class ScenarioComparison:
    """Result of comparing multiple scenarios."""
    scenarios: Dict[str, Scenario]
    results: Dict[str, ScenarioResult]
    summary: Dict[str, Dict[str, Any]]  # scenario_name -> metrics summary


def make_participant(
    monthly_contribution: float,
    tiers: Sequence[Tuple[float, float]],
    fee_pct: float,
    upstream_share_pct: float,
    ltv: float = 0.0,
    loan_rate: float = 0.0,
    yield_rate: float = 0.0,
    exchange_fee_pct: float = 0.001
) -> ParticipantConfig:
    """
    Participant config from the handful of numbers scenarios vary.

    Args:
        monthly_contribution: Fiat DCA per month
        tiers: (allocation fraction, APY) per staking tier
        fee_pct: Platform cut of gross yield, percent
        upstream_share_pct: Referrer's share of gross yield, percent
        ltv: Target loan-to-value (0 disables the loan)
        loan_rate: Annual borrowing APR
        yield_rate: Annual APY on the drawn loan
        exchange_fee_pct: Fraction of each contribution lost to the exchange fee

    Returns:
        ParticipantConfig
    """
    return ParticipantConfig(
        contribution=ContributionPolicy(
            monthly_contribution=monthly_contribution,
            enable_indexing=False,
            exchange_fee_pct=exchange_fee_pct,
        ),
        tiers=[TierConfig(allocation_pct=allocation, apy=apy) for allocation, apy in tiers],
        lending=LendingPolicy(
            ltv=ltv,
            loan_rate=loan_rate,
            yield_rate=yield_rate,
            fee_pct=fee_pct,
            upstream_share_pct=upstream_share_pct,
        ),
    )


def build_referral_tree(
    branching: Sequence[int],
    participant: ParticipantConfig,
    delay_months: int = 0
) -> List[ReferralNode]:
    """
    Build a uniform referral tree.

    Args:
        branching: Referrals per participant at each level (e.g. [8, 5])
        participant: Policy shared by every referral
        delay_months: Join delay of every level below the first

    Returns:
        Direct referrals of the root (one node per level, using counts)
    """
    node = None
    for level in range(len(branching), 0, -1):
        count = branching[level - 1]
        if count <= 0:
            node = None
            continue
        node = ReferralNode(
            participant=participant,
            join_delay_months=0 if level == 1 else delay_months,
            count=count,
            children=[node] if node is not None else [],
        )
    return [node] if node is not None else []


def _outlook(cagr: float, tiers: Sequence[Tuple[float, float]], fee_pct: float, upstream: float,
             branching: Sequence[int], delay_years: int) -> Dict[str, Any]:
    participant = make_participant(300.0, tiers, fee_pct, upstream)
    return {
        "market.cagr": cagr,
        "market.cpi_rate": 0.03,
        "market.years": 25,
        "user": participant,
        "referrals": build_referral_tree(branching, participant, delay_years * 12),
    }


# ============================================================================
# PREDEFINED SCENARIOS
# ============================================================================

SCENARIO_LIBRARY = {
    # === Outlook Scenarios ===
    "conservative": Scenario(
        name="Conservative",
        description="8% CAGR, 3-6% staking tiers, 5 direct referrals sharing 3% of yield",
        category="outlook",
        overrides=_outlook(0.08, [(0.4, 0.03), (0.3, 0.04), (0.2, 0.06)], 10.0, 3.0, [5], 5),
    ),

    "probable": Scenario(
        name="Probable",
        description="10% CAGR, 4-7% staking tiers, 8 referrals each bringing 5 more after 4 years",
        category="outlook",
        overrides=_outlook(0.10, [(0.4, 0.04), (0.3, 0.05), (0.2, 0.07)], 12.0, 4.0, [8, 5], 4),
    ),

    "optimistic": Scenario(
        name="Optimistic",
        description="14% CAGR, 6-12% staking tiers, 10 referrals each bringing 10 more after 3 years",
        category="outlook",
        overrides=_outlook(0.14, [(0.4, 0.06), (0.3, 0.08), (0.2, 0.12)], 15.0, 5.0, [10, 10], 3),
    ),

    # === Stress Test Scenarios ===
    "negative_carry": Scenario(
        name="Negative Carry",
        description="Loan APR above yield APY: deficits drain cash, then BTC",
        category="stress_test",
        overrides={
            "user.lending.loan_rate": 0.10,
            "user.lending.yield_rate": 0.04,
        }
    ),

    "flat_price": Scenario(
        name="Flat Price",
        description="BTC price never moves",
        category="stress_test",
        overrides={
            "market.cagr": 0.0,
        }
    ),

    "bear_market": Scenario(
        name="Bear Market",
        description="BTC falls 20% a year; loan cannot be repaid without cash",
        category="stress_test",
        overrides={
            "market.cagr": -0.20,
        }
    ),

    "no_leverage": Scenario(
        name="No Leverage",
        description="Pure DCA, no loan drawn",
        category="stress_test",
        overrides={
            "user.lending.ltv": 0.0,
        }
    ),

    "high_inflation": Scenario(
        name="High Inflation",
        description="8% CPI with indexed contributions",
        category="stress_test",
        overrides={
            "market.cpi_rate": 0.08,
            "user.contribution.enable_indexing": True,
        }
    ),
}


def run_config(config: ScenarioConfig) -> ScenarioResult:
    """
    Simulate a scenario config (user plus referral tree) and sanity-check it.

    Args:
        config: Scenario configuration

    Returns:
        Scenario result
    """
    points = simulate_referral_tree(
        config.to_user_input(),
        config.referrals,
        auto_draw_to_target=config.simulation.auto_draw_to_target,
        snapshot_step=config.simulation.snapshot_step,
    )
    return ScenarioResult(
        config=config,
        points=points,
        warnings=validate_simulation_results(config, points),
    )


class ScenarioRunner:
    """Run and compare predefined scenarios."""

    def __init__(self, base_config: ScenarioConfig):
        """
        Initialize scenario runner.

        Args:
            base_config: Base configuration to apply overrides to
        """
        self.base_config = base_config

    def get_available_scenarios(self) -> Dict[str, Scenario]:
        """Get all available scenarios."""
        return SCENARIO_LIBRARY.copy()

    def get_scenarios_by_category(self, category: str) -> Dict[str, Scenario]:
        """Get scenarios filtered by category."""
        return {
            name: scenario
            for name, scenario in SCENARIO_LIBRARY.items()
            if scenario.category == category
        }

    def apply_scenario(self, scenario: Scenario) -> ScenarioConfig:
        """
        Apply scenario overrides to base config.

        Overrides are written into the dumped config and re-validated, so an
        override that breaks a constraint raises.

        Args:
            scenario: Scenario with overrides

        Returns:
            Modified config
        """
        data = self.base_config.to_dict()
        for path, value in scenario.overrides.items():
            self._set_config_value(data, path, value)
        return ScenarioConfig.from_dict(data)

    def run_scenario(self, scenario_name: str) -> ScenarioResult:
        """
        Run a single scenario.

        Args:
            scenario_name: Name of scenario from library

        Returns:
            Scenario result
        """
        if scenario_name not in SCENARIO_LIBRARY:
            raise ValueError(f"Unknown scenario: {scenario_name}")

        return run_config(self.apply_scenario(SCENARIO_LIBRARY[scenario_name]))

    def compare_scenarios(
        self,
        scenario_names: List[str],
        include_base: bool = True
    ) -> ScenarioComparison:
        """
        Run and compare multiple scenarios.

        Args:
            scenario_names: List of scenario names to compare
            include_base: Whether to include base case

        Returns:
            ScenarioComparison result
        """
        scenarios = {}
        results = {}
        summary = {}

        if include_base:
            scenarios["base"] = Scenario(
                name="Base Case",
                description="Default configuration without modifications",
                category="base",
                overrides={}
            )
            results["base"] = run_config(self.base_config)
            summary["base"] = self._extract_summary(results["base"])

        for name in scenario_names:
            if name not in SCENARIO_LIBRARY:
                continue

            scenarios[name] = SCENARIO_LIBRARY[name]
            results[name] = self.run_scenario(name)
            summary[name] = self._extract_summary(results[name])

        return ScenarioComparison(
            scenarios=scenarios,
            results=results,
            summary=summary
        )

    def compare_outlooks(self) -> ScenarioComparison:
        """Compare conservative, probable and optimistic outlooks."""
        return self.compare_scenarios(["conservative", "probable", "optimistic"], include_base=True)

    def run_stress_tests(self) -> ScenarioComparison:
        """Run all stress test scenarios."""
        stress_scenarios = list(self.get_scenarios_by_category("stress_test").keys())
        return self.compare_scenarios(stress_scenarios, include_base=True)

    def _extract_summary(self, result: ScenarioResult) -> Dict[str, Any]:
        """Extract key metrics summary from a scenario result."""
        final = result.points[-1]
        roi = final.pnl_net / final.total_contrib if final.total_contrib > 0 else 0.0

        return {
            'final_btc': final.btc_holding,
            'final_net_worth': final.net_worth,
            'final_real_net_worth': final.real_net_worth,
            'total_contrib': final.total_contrib,
            'roi': roi,
            'btc_from_referrals': final.btc_from_referrals,
            'loan_outstanding': final.loan_outstanding,
            'errors': sum(1 for w in result.warnings if w.severity == "error"),
        }

    def _set_config_value(self, data: Dict[str, Any], path: str, value: Any) -> None:
        """Set a value in the config dict using dot-notation path."""
        parts = path.split('.')
        obj = data
        for part in parts[:-1]:
            obj = obj[part]
        if hasattr(value, 'model_dump'):
            value = value.model_dump()
        elif isinstance(value, list):
            value = [v.model_dump() if hasattr(v, 'model_dump') else v for v in value]
        obj[parts[-1]] = value


def format_comparison_table(comparison: ScenarioComparison) -> str:
    """
    Format scenario comparison as a text table.

    Args:
        comparison: ScenarioComparison result

    Returns:
        Formatted table string
    """
    lines = []
    headers = ["Scenario", "BTC", "Net worth (k)", "Real NW (k)", "ROI", "Ref. BTC"]
    lines.append(" | ".join(f"{h:>13}" for h in headers))
    lines.append("-" * 95)

    for name, summary in comparison.summary.items():
        scenario = comparison.scenarios.get(name)
        display_name = scenario.name if scenario else name

        row = [
            f"{display_name[:13]:>13}",
            f"{summary['final_btc']:>13,.4f}",
            f"{summary['final_net_worth']/1e3:>13,.1f}",
            f"{summary['final_real_net_worth']/1e3:>13,.1f}",
            f"{summary['roi']*100:>12.1f}%",
            f"{summary['btc_from_referrals']:>13,.4f}"
        ]
        lines.append(" | ".join(row))

    return "\n".join(lines)
