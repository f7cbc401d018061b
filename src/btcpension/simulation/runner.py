"""Single-user simulation runner - monthly state evolution with periodic LTV rebalancing.

Each month:
1. Price and inflation path: price(m) = P0 * (1 + cagr)^(m/12), cpi(m) = (1 + cpi)^(m/12)
2. DCA purchase (from month 1, once the participant has joined)
3. Staking tier yield on the post-DCA holding, net of platform fee and upstream share
4. Interest and yield on the outstanding loan; surplus reinvested in BTC,
   deficit absorbed by cash, then by BTC (floored at zero)
5. Fiat income from downstream referrals converted into BTC
6. Rebalance toward the target LTV at snapshot months
7. Snapshot emission, period accumulators reset
"""

import logging
from typing import List, Mapping, Optional, Sequence, Union

from ..config.schema import UserSimulationInput
from ..engine.accounting import ParticipantState, SimulationPoint
from ..engine.fees import calculate_monthly_dca
from ..engine.lending import CollateralLoanModel, is_rebalance_month
from ..engine.rates import growth_index, months_for_years
from ..engine.staking import StakingModel

logger = logging.getLogger(__name__)

MonthlyIncome = Union[Sequence[float], Mapping[int, float]]


class UserSimulator:
    """Month-by-month simulator for one participant."""

    def __init__(
        self,
        user_input: UserSimulationInput,
        auto_draw_to_target: bool = True,
        snapshot_step: Optional[int] = None,
        start_month: int = 0,
        referral_income: Optional[MonthlyIncome] = None
    ):
        """
        Initialize simulator.

        Args:
            user_input: Market, contribution, staking and lending policy
            auto_draw_to_target: Symmetric rebalancing when True, repay-only otherwise
            snapshot_step: Months between snapshots (defaults to market.snapshot_step)
            start_month: First month the participant contributes and accrues
            referral_income: Fiat income from downstream referrals, indexed by month

        Raises:
            ValueError: If snapshot_step < 1 or start_month < 0
        """
        self.user_input = user_input
        self.market = user_input.market
        self.contribution = user_input.contribution
        self.snapshot_step = snapshot_step if snapshot_step is not None else self.market.snapshot_step
        if self.snapshot_step < 1:
            raise ValueError(f"snapshot_step must be >= 1, got {self.snapshot_step}")
        if start_month < 0:
            raise ValueError(f"start_month must be >= 0, got {start_month}")
        self.start_month = start_month
        self.referral_income = referral_income
        self.months_total = months_for_years(self.market.years)

        lending = user_input.lending
        self.loan_model = CollateralLoanModel(
            ltv=lending.ltv,
            loan_rate=lending.loan_rate,
            yield_rate=lending.yield_rate,
            fee_pct=lending.fee_pct,
            upstream_share_pct=lending.upstream_share_pct,
            auto_draw_to_target=auto_draw_to_target
        )
        self.staking_model = StakingModel(
            user_input.tiers,
            fee_pct=lending.fee_pct,
            upstream_share_pct=lending.upstream_share_pct,
        )

        # Run diagnostics, refreshed by run()
        self.total_drawn = 0.0
        self.total_repaid = 0.0
        self.state_errors: List[str] = []

    def price_at(self, month: int) -> float:
        return self.market.initial_price * growth_index(self.market.cagr, month)

    def inflation_index_at(self, month: int) -> float:
        return growth_index(self.market.cpi_rate, month)

    def _income_at(self, month: int) -> float:
        income = self.referral_income
        if income is None:
            return 0.0
        if isinstance(income, Mapping):
            return float(income.get(month, 0.0))
        if month < len(income):
            return float(income[month])
        return 0.0

    def run(self) -> List[SimulationPoint]:
        """
        Run the simulation.

        Returns:
            Snapshots at month 0, every snapshot_step months, and the final month
        """
        state = ParticipantState()
        points: List[SimulationPoint] = []
        exhausted_logged = False
        exchange_fee = self.contribution.exchange_fee_pct
        self.total_drawn = 0.0
        self.total_repaid = 0.0
        self.state_errors = []

        for month in range(self.months_total + 1):
            price = self.price_at(month)
            inflation_index = self.inflation_index_at(month)
            active = month > 0 and month >= self.start_month

            if active:
                nominal = calculate_monthly_dca(
                    self.contribution.monthly_contribution,
                    inflation_index,
                    self.contribution.enable_indexing
                )
                fee = nominal * exchange_fee
                net = nominal - fee

                state.total_contrib += nominal
                state.total_contrib_real += nominal / inflation_index
                state.last_contribution = net
                state.btc_holding += net / price
                state.period.exchange_fee += fee
                state.exchange_fee_paid_total += fee

                if self.staking_model.active:
                    staking = self.staking_model.compute_accrual(state.btc_holding)
                    state.btc_holding += staking.net_yield
                    self._book_yield(
                        state,
                        gross=staking.yield_gross * price,
                        fee=staking.yield_fee * price,
                        upstream=staking.upstream_share * price,
                    )
                    state.period.staking_yield += staking.yield_gross * price

                accrual = self.loan_model.compute_accrual(state.loan_outstanding)
                state.period.interest += accrual.interest
                self._book_yield(state, accrual.yield_gross, accrual.yield_fee, accrual.upstream_share)

                shortfall = self.loan_model.apply_net_yield(state, accrual.net_yield, price)
                if state.btc_holding == 0.0 and accrual.net_yield < 0 and not exhausted_logged:
                    logger.warning(
                        "Yield deficit exhausted BTC holdings at month %d (uncovered %.2f)",
                        month, shortfall
                    )
                    exhausted_logged = True

                income = self._income_at(month)
                if income > 0:
                    income_btc = income / price
                    state.btc_holding += income_btc
                    state.btc_from_referrals += income_btc
                    state.eur_from_referrals += income

            if is_rebalance_month(month, self.snapshot_step, self.months_total):
                rebalance = self.loan_model.rebalance(state, price)
                self.total_drawn += rebalance.drawn
                self.total_repaid += rebalance.repaid

                is_valid, error = state.validate_non_negative()
                if not is_valid and error not in self.state_errors:
                    logger.warning("Month %d: %s", month, error)
                    self.state_errors.append(error)

                points.append(self._snapshot(state, month, price, inflation_index))
                state.period.reset()

        logger.debug(
            "Simulated %d months (%d snapshots), final BTC %.8f, drawn %.2f, repaid %.2f",
            self.months_total, len(points), state.btc_holding, self.total_drawn, self.total_repaid
        )
        return points

    @staticmethod
    def _book_yield(state: ParticipantState, gross: float, fee: float, upstream: float):
        state.period.yield_gross += gross
        state.period.yield_fee += fee
        state.period.upstream_paid += upstream
        state.yield_fee_paid_total += fee
        state.upstream_paid_total += upstream

    def _snapshot(
        self,
        state: ParticipantState,
        month: int,
        price: float,
        inflation_index: float
    ) -> SimulationPoint:
        btc_value = state.btc_holding * price
        net_worth = btc_value - state.loan_outstanding + state.cash_balance
        real_net_worth = net_worth / inflation_index
        contribution = state.last_contribution if month > 0 else 0.0

        return SimulationPoint(
            month=month,
            price=price,
            contribution=contribution,
            btc_bought=contribution / price,
            btc_holding=state.btc_holding,
            btc_value=btc_value,
            loan_outstanding=state.loan_outstanding,
            interest_accrued=state.period.interest,
            yield_earned=state.period.yield_gross,
            cash_balance=state.cash_balance,
            total_contrib=state.total_contrib,
            total_contrib_real=state.total_contrib_real,
            net_worth=net_worth,
            pnl_net=net_worth - state.total_contrib,
            inflation_index=inflation_index,
            real_net_worth=real_net_worth,
            real_pnl_net=real_net_worth - state.total_contrib_real,
            yield_fee_paid=state.period.yield_fee,
            upstream_paid=state.period.upstream_paid,
            btc_from_referrals=state.btc_from_referrals,
            eur_from_referrals=state.eur_from_referrals,
            staking_yield=state.period.staking_yield,
            exchange_fee_paid=state.period.exchange_fee,
            exchange_fee_paid_total=state.exchange_fee_paid_total,
            yield_fee_paid_total=state.yield_fee_paid_total,
            upstream_paid_total=state.upstream_paid_total,
        )


def simulate_user(
    user_input: UserSimulationInput,
    auto_draw_to_target: bool = True,
    snapshot_step: Optional[int] = None,
    start_month: int = 0,
    referral_income: Optional[MonthlyIncome] = None
) -> List[SimulationPoint]:
    """
    Simulate one participant's BTC pension plan.

    Args:
        user_input: Simulation input
        auto_draw_to_target: Draw and repay toward the target LTV when True;
            only repay excess when False
        snapshot_step: Months between snapshots (defaults to market.snapshot_step)
        start_month: First active month for late joiners
        referral_income: Fiat income from referrals, indexed by month

    Returns:
        Ordered snapshots, first at month 0 and last at the final month
    """
    return UserSimulator(
        user_input,
        auto_draw_to_target=auto_draw_to_target,
        snapshot_step=snapshot_step,
        start_month=start_month,
        referral_income=referral_income
    ).run()


def first_month_for_collateral_loan(
    series: Sequence[SimulationPoint],
    desired_amount: float,
    ltv: float
) -> Optional[int]:
    """
    Earliest month whose free borrowing capacity covers `desired_amount`.

    capacity = ltv * btc_value - loan_outstanding

    Args:
        series: Chronologically ordered snapshots
        desired_amount: Loan amount wanted (fiat)
        ltv: Loan-to-value used to size capacity

    Returns:
        Month number, or None if capacity never reaches the amount
    """
    for point in series:
        if ltv * point.btc_value - point.loan_outstanding >= desired_amount:
            return point.month
    return None
