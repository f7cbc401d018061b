"""Collateralised lending - monthly interest/yield accrual and LTV rebalancing."""

from dataclasses import dataclass

from .accounting import ParticipantState
from .rates import monthly_rate


@dataclass
class MonthlyAccrual:
    """Interest and yield on the outstanding loan for one month (fiat)."""
    interest: float
    yield_gross: float
    yield_fee: float
    upstream_share: float
    net_yield: float  # yield_gross - yield_fee - upstream_share - interest


@dataclass
class RebalanceResult:
    """Loan movement at a rebalance point."""
    target_loan: float
    drawn: float = 0.0
    repaid: float = 0.0


def is_rebalance_month(month: int, snapshot_step: int, months_total: int) -> bool:
    """Rebalance and snapshot boundary: month 0, every step, and the final month."""
    return month == 0 or month % snapshot_step == 0 or month == months_total


class CollateralLoanModel:
    """Loan against BTC collateral whose proceeds are deployed for yield."""

    def __init__(
        self,
        ltv: float = 0.0,
        loan_rate: float = 0.0,
        yield_rate: float = 0.0,
        fee_pct: float = 0.0,
        upstream_share_pct: float = 0.0,
        auto_draw_to_target: bool = True
    ):
        """
        Initialize collateral loan model.

        Args:
            ltv: Target loan-to-value (0.3 = 30%)
            loan_rate: Annual borrowing APR
            yield_rate: Annual APY earned on the drawn loan
            fee_pct: Platform cut of gross yield in percent (15 = 15%)
            upstream_share_pct: Referrer's share of gross yield in percent
            auto_draw_to_target: Symmetric rebalancing (draw and repay) when True,
                repay-only when False
        """
        self.ltv = ltv
        self.loan_rate = loan_rate
        self.yield_rate = yield_rate
        self.fee_pct = fee_pct
        self.upstream_share_pct = upstream_share_pct
        self.auto_draw_to_target = auto_draw_to_target
        self.monthly_interest_rate = monthly_rate(loan_rate)
        self.monthly_yield_rate = monthly_rate(yield_rate)

    def compute_accrual(self, loan_outstanding: float) -> MonthlyAccrual:
        """
        Compute one month of interest and yield on the loan.

        Args:
            loan_outstanding: Loan principal (fiat)

        Returns:
            Monthly accrual breakdown
        """
        interest = loan_outstanding * self.monthly_interest_rate
        yield_gross = loan_outstanding * self.monthly_yield_rate
        yield_fee = yield_gross * (self.fee_pct / 100.0)
        upstream_share = yield_gross * (self.upstream_share_pct / 100.0)
        net_yield = yield_gross - yield_fee - upstream_share - interest

        return MonthlyAccrual(
            interest=interest,
            yield_gross=yield_gross,
            yield_fee=yield_fee,
            upstream_share=upstream_share,
            net_yield=net_yield
        )

    def apply_net_yield(self, state: ParticipantState, net_yield: float, price: float) -> float:
        """
        Reinvest a surplus into BTC or absorb a deficit.

        A deficit drains cash first; any remainder is sold out of BTC at the
        current price, with holdings floored at zero.

        Args:
            state: Participant state (mutated)
            net_yield: Net yield for the month (fiat, may be negative)
            price: Current BTC price

        Returns:
            Fiat shortfall that could not be covered by cash or BTC
        """
        if net_yield >= 0:
            state.btc_holding += net_yield / price
            return 0.0

        deficit = -net_yield
        if state.cash_balance >= deficit:
            state.cash_balance -= deficit
            return 0.0

        deficit -= state.cash_balance
        state.cash_balance = 0.0
        deficit_btc = deficit / price
        uncovered_btc = max(0.0, deficit_btc - state.btc_holding)
        state.btc_holding = max(0.0, state.btc_holding - deficit_btc)
        return uncovered_btc * price

    def rebalance(self, state: ParticipantState, price: float) -> RebalanceResult:
        """
        Move the loan toward ltv * collateral value.

        Drawn capital is not converted into BTC; it only raises the deployed
        principal. Repayments come out of non-negative cash only.

        Args:
            state: Participant state (mutated)
            price: Current BTC price

        Returns:
            Rebalance result
        """
        btc_value = state.btc_holding * price
        target_loan = self.ltv * btc_value
        result = RebalanceResult(target_loan=target_loan)

        delta = target_loan - state.loan_outstanding
        if delta > 0 and self.auto_draw_to_target:
            state.loan_outstanding += delta
            result.drawn = delta
        elif delta < 0:
            repay = min(-delta, max(state.cash_balance, 0.0))
            state.loan_outstanding -= repay
            state.cash_balance -= repay
            result.repaid = repay

        return result
