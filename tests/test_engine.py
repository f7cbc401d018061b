"""Tests for rate conversion, the single-period fee calculator and the loan model."""

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from btcpension.config.schema import TierConfig
from btcpension.engine.accounting import ParticipantState, SimulationPoint
from btcpension.engine.fees import calculate_monthly_dca, calculate_user_btc_and_platform_fees
from btcpension.engine.lending import CollateralLoanModel, is_rebalance_month
from btcpension.engine.rates import (
    get_annual_btc_cagr,
    get_monthly_btc_cagr_rate,
    growth_index,
    monthly_rate,
)
from btcpension.engine.staking import StakingModel


class TestMonthlyRate:
    """Annual to monthly effective rate conversion."""

    def test_zero_rate(self):
        assert monthly_rate(0.0) == 0.0

    def test_compounds_back_to_annual(self):
        m = monthly_rate(0.12)
        assert (1 + m) ** 12 == pytest.approx(1.12, rel=1e-12)

    def test_negative_rate(self):
        m = monthly_rate(-0.5)
        assert m < 0
        assert (1 + m) ** 12 == pytest.approx(0.5, rel=1e-12)

    def test_total_loss_raises(self):
        with pytest.raises(ValueError):
            monthly_rate(-1.0)

    def test_non_finite_raises(self):
        with pytest.raises(ValueError):
            monthly_rate(float('nan'))
        with pytest.raises(ValueError):
            monthly_rate(float('inf'))

    def test_growth_index(self):
        assert growth_index(0.21, 12) == pytest.approx(1.21)
        assert growth_index(0.21, 0) == 1.0


class TestCagrSchedule:
    """Decaying CAGR between a start value and an asymptote."""

    def test_starts_at_start_value(self):
        assert get_annual_btc_cagr(0, 0.5, 0.1, 10) == pytest.approx(0.5)

    def test_residual_gap_at_settling_time(self):
        # 5% of the 0.4 gap remains after 10 years
        assert get_annual_btc_cagr(10, 0.5, 0.1, 10) == pytest.approx(0.12)

    def test_zero_settling_time_is_asymptote(self):
        assert get_annual_btc_cagr(0, 0.5, 0.1, 0) == 0.1

    def test_monthly_rate_is_clamped(self):
        assert get_monthly_btc_cagr_rate(-2.0) == pytest.approx(monthly_rate(-0.999))
        assert get_monthly_btc_cagr_rate(0.1) == pytest.approx(monthly_rate(0.1))


class TestFeeCalculation:
    """One month of DCA and yield on BTC holdings."""

    def test_reference_values(self):
        result = calculate_user_btc_and_platform_fees(
            monthly_yield_rate=0.02,
            current_btc_price=50_000,
            user_accumulated_btc_holding=1.0,
            monthly_dca=1000,
            platform_fee_from_yield_pct=0.1,
            platform_exchange_fee_pct=0.01,
        )
        assert result.user_accumulated_btc_holding == pytest.approx(1.0381564, abs=1e-9)
        assert result.platform_fee_from_yield_btc == pytest.approx(0.0020396, abs=1e-9)
        assert result.platform_exchange_fee_btc == pytest.approx(0.0002, abs=1e-12)

    def test_zero_dca(self):
        """Without DCA only the net yield on the prior holding is added."""
        result = calculate_user_btc_and_platform_fees(0.02, 50_000, 1.0, 0.0, 0.1, 0.01)
        assert result.platform_exchange_fee_btc == 0.0
        assert result.platform_fee_from_yield_btc == pytest.approx(0.002)
        assert result.user_accumulated_btc_holding == pytest.approx(1.018)

    def test_zero_yield(self):
        """Without yield the holding grows by the net DCA only."""
        result = calculate_user_btc_and_platform_fees(0.0, 50_000, 1.0, 1000, 0.1, 0.01)
        assert result.platform_fee_from_yield_btc == 0.0
        assert result.user_accumulated_btc_holding == pytest.approx(1.0198)

    def test_zero_fees(self):
        """Without fees yield accrues on the full post-contribution balance."""
        result = calculate_user_btc_and_platform_fees(0.02, 50_000, 1.0, 1000, 0.0, 0.0)
        assert result.platform_fee_from_yield_btc == 0.0
        assert result.platform_exchange_fee_btc == 0.0
        assert result.user_accumulated_btc_holding == pytest.approx(1.02 * 1.02)

    def test_fees_non_negative(self):
        result = calculate_user_btc_and_platform_fees(0.01, 20_000, 0.5, 250, 0.2, 0.005)
        assert result.platform_fee_from_yield_btc >= 0
        assert result.platform_exchange_fee_btc >= 0
        assert result.user_accumulated_btc_holding >= 0.5

    def test_non_positive_price_raises(self):
        with pytest.raises(ValueError):
            calculate_user_btc_and_platform_fees(0.01, 0.0, 1.0, 100, 0.1, 0.01)

    def test_indexing_gate(self):
        assert calculate_monthly_dca(300, 1.5, True) == pytest.approx(450)
        assert calculate_monthly_dca(300, 1.5, False) == 300


class TestCollateralLoanModel:
    """Accrual, deficit absorption and rebalancing."""

    def test_accrual_breakdown(self):
        model = CollateralLoanModel(ltv=0.3, loan_rate=0.0, yield_rate=0.12,
                                    fee_pct=15, upstream_share_pct=5)
        accrual = model.compute_accrual(1000.0)
        gross = 1000.0 * monthly_rate(0.12)
        assert accrual.interest == 0.0
        assert accrual.yield_gross == pytest.approx(gross)
        assert accrual.yield_fee == pytest.approx(0.15 * gross)
        assert accrual.upstream_share == pytest.approx(0.05 * gross)
        assert accrual.net_yield == pytest.approx(0.80 * gross)

    def test_surplus_buys_btc(self):
        model = CollateralLoanModel()
        state = ParticipantState(btc_holding=1.0)
        assert model.apply_net_yield(state, 100.0, 1000.0) == 0.0
        assert state.btc_holding == pytest.approx(1.1)

    def test_deficit_drains_cash_first(self):
        model = CollateralLoanModel()
        state = ParticipantState(btc_holding=1.0, cash_balance=50.0)
        model.apply_net_yield(state, -30.0, 100.0)
        assert state.cash_balance == pytest.approx(20.0)
        assert state.btc_holding == 1.0

    def test_deficit_then_sells_btc(self):
        model = CollateralLoanModel()
        state = ParticipantState(btc_holding=1.0, cash_balance=20.0)
        uncovered = model.apply_net_yield(state, -100.0, 100.0)
        assert state.cash_balance == 0.0
        assert state.btc_holding == pytest.approx(0.2)
        assert uncovered == 0.0

    def test_deficit_floors_btc_at_zero(self):
        model = CollateralLoanModel()
        state = ParticipantState(btc_holding=0.5)
        uncovered = model.apply_net_yield(state, -100.0, 100.0)
        assert state.btc_holding == 0.0
        assert uncovered == pytest.approx(50.0)

    def test_rebalance_draws_to_target(self):
        model = CollateralLoanModel(ltv=0.3)
        state = ParticipantState(btc_holding=1.0)
        result = model.rebalance(state, 1000.0)
        assert result.drawn == pytest.approx(300.0)
        assert state.loan_outstanding == pytest.approx(300.0)
        # Drawn capital does not buy BTC
        assert state.btc_holding == 1.0

    def test_conservative_rebalance_never_draws(self):
        model = CollateralLoanModel(ltv=0.3, auto_draw_to_target=False)
        state = ParticipantState(btc_holding=1.0)
        result = model.rebalance(state, 1000.0)
        assert result.drawn == 0.0
        assert state.loan_outstanding == 0.0

    def test_rebalance_repays_from_cash_only(self):
        for auto in (True, False):
            model = CollateralLoanModel(ltv=0.3, auto_draw_to_target=auto)
            state = ParticipantState(btc_holding=1.0, loan_outstanding=50.0, cash_balance=100.0)
            result = model.rebalance(state, 100.0)
            assert result.repaid == pytest.approx(20.0)
            assert state.loan_outstanding == pytest.approx(30.0)
            assert state.cash_balance == pytest.approx(80.0)

    def test_rebalance_without_cash_keeps_loan(self):
        model = CollateralLoanModel(ltv=0.3)
        state = ParticipantState(btc_holding=1.0, loan_outstanding=50.0)
        result = model.rebalance(state, 100.0)
        assert result.repaid == 0.0
        assert state.loan_outstanding == 50.0

    def test_zero_delta_is_noop(self):
        model = CollateralLoanModel(ltv=0.5)
        state = ParticipantState(btc_holding=1.0, loan_outstanding=50.0, cash_balance=10.0)
        result = model.rebalance(state, 100.0)
        assert result.drawn == 0.0 and result.repaid == 0.0
        assert state.cash_balance == 10.0

    def test_rebalance_months(self):
        assert is_rebalance_month(0, 3, 10)
        assert is_rebalance_month(3, 3, 10)
        assert is_rebalance_month(10, 3, 10)
        assert not is_rebalance_month(4, 3, 10)


class TestStakingModel:
    """Tier yield on the allocated share of the holding."""

    def test_no_tiers_is_inactive(self):
        model = StakingModel([])
        assert not model.active
        assert model.compute_accrual(1.0).yield_gross == 0.0

    def test_blended_rate_weights_allocation(self):
        tiers = [TierConfig(allocation_pct=0.4, apy=0.03), TierConfig(allocation_pct=0.3, apy=0.04)]
        model = StakingModel(tiers)
        assert model.blended_monthly_rate == pytest.approx(
            0.4 * monthly_rate(0.03) + 0.3 * monthly_rate(0.04))

    def test_fee_and_upstream_are_percent_of_gross(self):
        model = StakingModel([TierConfig(allocation_pct=1.0, apy=0.12)], fee_pct=10.0, upstream_share_pct=5.0)
        accrual = model.compute_accrual(2.0)
        assert accrual.yield_gross == pytest.approx(2.0 * monthly_rate(0.12))
        assert accrual.yield_fee == pytest.approx(accrual.yield_gross * 0.10)
        assert accrual.upstream_share == pytest.approx(accrual.yield_gross * 0.05)
        assert accrual.net_yield == pytest.approx(accrual.yield_gross * 0.85)

    def test_unallocated_share_earns_nothing(self):
        half = StakingModel([TierConfig(allocation_pct=0.5, apy=0.12)]).compute_accrual(1.0)
        full = StakingModel([TierConfig(allocation_pct=1.0, apy=0.12)]).compute_accrual(1.0)
        assert half.yield_gross == pytest.approx(full.yield_gross / 2)


class TestParticipantState:
    """Non-negativity check on the mutable state."""

    def test_fresh_state_is_valid(self):
        assert ParticipantState().validate_non_negative() == (True, None)

    def test_negative_holding_reported(self):
        is_valid, error = ParticipantState(btc_holding=-1.0).validate_non_negative()
        assert not is_valid
        assert "btc_holding" in error


class TestSimulationPoint:
    """Snapshot identities and derived fields."""

    def _point(self, **overrides):
        fields = dict(
            month=12, price=100.0, contribution=10.0, btc_bought=0.1, btc_holding=2.0,
            btc_value=200.0, loan_outstanding=60.0, interest_accrued=0.0, yield_earned=1.0,
            cash_balance=5.0, total_contrib=120.0, total_contrib_real=110.0,
            net_worth=145.0, pnl_net=25.0, inflation_index=1.25, real_net_worth=116.0,
            real_pnl_net=6.0,
        )
        fields.update(overrides)
        return SimulationPoint(**fields)

    def test_valid_identities(self):
        is_valid, error = self._point().validate_identities()
        assert is_valid, error

    def test_broken_net_worth_detected(self):
        is_valid, error = self._point(net_worth=150.0, pnl_net=30.0).validate_identities()
        assert not is_valid
        assert "Net worth" in error

    def test_derived_fields(self):
        point = self._point(month=27)
        assert point.year == 2
        assert point.ltv == pytest.approx(0.3)
        assert self._point(btc_value=0.0, net_worth=-55.0, pnl_net=-175.0).ltv == 0.0
        assert point.to_dict()['year'] == 2

    def test_state_non_negative_check(self):
        assert ParticipantState(btc_holding=1.0).validate_non_negative()[0]
        is_valid, error = ParticipantState(btc_holding=-1.0).validate_non_negative()
        assert not is_valid
        assert "btc_holding" in error
