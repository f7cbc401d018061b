"""Tests for sanity checks, the scenario library, export and the demo CLI."""

import dataclasses
import json
import pytest
import sys
import os

import pandas as pd

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from btcpension.analysis.scenarios import (
    SCENARIO_LIBRARY,
    Scenario,
    ScenarioRunner,
    build_referral_tree,
    format_comparison_table,
    make_participant,
    run_config,
)
from btcpension.cli import main
from btcpension.config.loader import config_from_dict, load_config
from btcpension.reporting.export import (
    export_csv,
    export_json,
    platform_snapshots_to_dataframe,
    points_to_dataframe,
)
from btcpension.platform.aggregation import build_platform_monthly_snapshots_with_investment, CohortSeries
from btcpension.simulation.runner import simulate_user
from btcpension.simulation.treasury import TreasurySnapshot
from btcpension.validation import SanityChecker, validate_simulation_results


def short_config(**lending):
    """Default config shortened to 3 years, with optional lending overrides."""
    data = load_config().to_dict()
    data['market']['years'] = 3
    data['user']['lending'].update(lending)
    return config_from_dict(data)


class TestSanityChecks:
    """Input plausibility and output identity checks."""

    def test_default_config_is_clean(self):
        config = short_config()
        points = simulate_user(config.to_user_input())
        warnings = validate_simulation_results(config, points)
        assert not [w for w in warnings if w.severity == "error"]

    def test_high_ltv_warns(self):
        warnings = SanityChecker(short_config(ltv=0.9)).check_config_inputs()
        assert any(w.category == "bounds" and "LTV" in w.message for w in warnings)

    def test_negative_carry_warns(self):
        warnings = SanityChecker(short_config(loan_rate=0.1, yield_rate=0.05)).check_config_inputs()
        assert any("Loan rate exceeds yield rate" in w.message for w in warnings)

    def test_large_exchange_fee_warns(self):
        data = short_config().to_dict()
        data["user"]["contribution"]["exchange_fee_pct"] = 0.1
        warnings = SanityChecker(config_from_dict(data)).check_config_inputs()
        assert any("Exchange fee" in w.message for w in warnings)
        assert not any("Exchange fee" in w.message for w in SanityChecker(short_config()).check_config_inputs())

    def test_tampered_point_is_flagged(self):
        config = short_config()
        points = simulate_user(config.to_user_input())
        points[-1] = dataclasses.replace(points[-1], net_worth=points[-1].net_worth + 1000)
        errors = SanityChecker(config).check_points(points)
        assert any(w.category == "identity" for w in errors)

    def test_unordered_months_are_flagged(self):
        config = short_config()
        points = simulate_user(config.to_user_input())
        errors = SanityChecker(config).check_points([points[0], points[2], points[1]])
        assert any("strictly increasing" in w.message for w in errors)

    def test_empty_series_is_an_error(self):
        errors = SanityChecker(short_config()).check_points([])
        assert errors[0].severity == "error"


class TestScenarioLibrary:
    """Scenario overrides and comparison."""

    def test_outlooks_present(self):
        for name in ("conservative", "probable", "optimistic"):
            assert SCENARIO_LIBRARY[name].category == "outlook"

    def test_build_referral_tree(self):
        participant = make_participant(300, [(0.4, 0.04), (0.3, 0.05)], 12.0, 4.0)
        tree = build_referral_tree([8, 5], participant, delay_months=48)
        assert len(tree) == 1
        assert tree[0].count == 8
        assert tree[0].join_delay_months == 0
        assert tree[0].children[0].count == 5
        assert tree[0].children[0].join_delay_months == 48
        assert tree[0].children[0].children == []

    def test_build_referral_tree_drops_empty_levels(self):
        participant = make_participant(300, [(0.4, 0.03)], 10.0, 3.0)
        tree = build_referral_tree([5, 0], participant, delay_months=60)
        assert tree[0].count == 5
        assert tree[0].children == []
        assert build_referral_tree([], participant) == []

    def test_apply_scenario_does_not_mutate_base(self):
        base = load_config()
        runner = ScenarioRunner(base)
        modified = runner.apply_scenario(SCENARIO_LIBRARY["no_leverage"])
        assert modified.user.lending.ltv == 0.0
        assert base.user.lending.ltv == 0.3

    def test_apply_outlook_sets_tree(self):
        modified = ScenarioRunner(load_config()).apply_scenario(SCENARIO_LIBRARY["probable"])
        assert modified.market.cagr == 0.10
        assert modified.user.lending.upstream_share_pct == 4.0
        assert [(t.allocation_pct, t.apy) for t in modified.user.tiers] == [(0.4, 0.04), (0.3, 0.05), (0.2, 0.07)]
        assert modified.referrals[0].count == 8
        assert modified.referrals[0].participant == modified.user

    def test_make_participant_builds_tiers(self):
        participant = make_participant(300, [(0.4, 0.06), (0.3, 0.08)], 15.0, 5.0)
        assert len(participant.tiers) == 2
        assert participant.tiers[1].apy == 0.08
        assert participant.contribution.exchange_fee_pct == 0.001
        assert participant.lending.ltv == 0.0

    def test_outlook_root_share_goes_to_platform(self):
        result = ScenarioRunner(short_config()).run_scenario("conservative")
        final = result.points[-1]
        assert final.upstream_paid_total == 0.0
        assert final.yield_fee_paid_total > 0

    def test_invalid_override_raises(self):
        runner = ScenarioRunner(load_config())
        bad = Scenario(name="Bad", description="", category="stress_test",
                       overrides={"user.lending.ltv": -0.5})
        with pytest.raises(ValueError):
            runner.apply_scenario(bad)

    def test_unknown_scenario_raises(self):
        with pytest.raises(ValueError):
            ScenarioRunner(load_config()).run_scenario("moonshot")

    def test_conservative_run_earns_referral_income(self):
        result = ScenarioRunner(short_config()).run_scenario("conservative")
        assert result.points[-1].month == 300
        assert result.points[-1].btc_from_referrals > 0

    def test_compare_scenarios(self):
        comparison = ScenarioRunner(short_config()).compare_scenarios(["flat_price", "no_leverage", "nope"])
        assert list(comparison.summary) == ["base", "flat_price", "no_leverage"]
        assert comparison.summary["flat_price"]["final_net_worth"] < comparison.summary["base"]["final_net_worth"]

        table = format_comparison_table(comparison)
        assert "Base Case" in table
        assert "Flat Price" in table

    def test_bear_market_runs(self):
        result = ScenarioRunner(short_config()).run_scenario("bear_market")
        assert result.points[-1].pnl_net < 0
        assert all(p.btc_holding >= 0 for p in result.points)

    def test_run_config_collects_warnings(self):
        result = run_config(short_config(ltv=0.9))
        assert any("LTV" in w.message for w in result.warnings)


class TestExport:
    """DataFrame, CSV and JSON export."""

    def test_points_dataframe(self):
        points = simulate_user(short_config().to_user_input())
        df = points_to_dataframe(points)
        assert len(df) == len(points)
        for column in ("month", "year", "ltv", "net_worth", "real_net_worth", "btc_from_referrals"):
            assert column in df.columns
        assert df["month"].iloc[-1] == 36

    def test_csv_round_trip(self, tmp_path):
        points = simulate_user(short_config().to_user_input())
        path = tmp_path / "points.csv"
        export_csv(points, str(path))
        df = pd.read_csv(path)
        assert df["btc_holding"].iloc[-1] == pytest.approx(points[-1].btc_holding)

    def test_json_export(self, tmp_path):
        config = short_config()
        points = simulate_user(config.to_user_input())
        path = tmp_path / "points.json"
        export_json(points, str(path), config=config)
        data = json.loads(path.read_text())
        assert data["config_hash"] == config.compute_hash()
        assert len(data["points"]) == len(points)
        assert data["final_metrics"]["final_btc"] == pytest.approx(points[-1].btc_holding)

    def test_platform_dataframe(self):
        snapshots = [TreasurySnapshot(month=m, btc_price=1.0, platform_fee_from_yield_btc=1.0,
                                      platform_exchange_fee_btc=0.0, user_accumulated_btc_holding=0.0)
                     for m in range(3)]
        platform = build_platform_monthly_snapshots_with_investment(
            [CohortSeries(start_month=0, number_of_users=1, snapshots=snapshots)], 0.0)
        df = platform_snapshots_to_dataframe(platform)
        assert list(df["platform_principal_end_btc"]) == pytest.approx([1.0, 2.0, 3.0])


class TestCli:
    """Demo entry point."""

    def test_runs_scenarios(self, capsys):
        assert main(["flat_price"]) == 0
        out = capsys.readouterr().out
        assert "Base Case" in out
        assert "Flat Price" in out

    def test_unknown_scenario(self):
        assert main(["moonshot"]) == 2

    def test_writes_csv(self, tmp_path):
        path = tmp_path / "base.csv"
        assert main(["no_leverage", "--csv", str(path)]) == 0
        assert len(pd.read_csv(path)) == 101
