"""Participant accounting - per-run mutable state and immutable snapshots.

Net Worth Identity:
    net_worth = btc_value - loan_outstanding + cash_balance
    pnl_net = net_worth - total_contrib

Real-Value Identity:
    real_net_worth = net_worth / inflation_index
    real_pnl_net = real_net_worth - total_contrib_real
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class PeriodAccumulators:
    """Flows summed since the last snapshot; cleared at every snapshot."""
    interest: float = 0.0  # Loan interest accrued (fiat)
    yield_gross: float = 0.0  # Gross yield on the drawn loan and staking tiers (fiat)
    yield_fee: float = 0.0  # Platform cut of gross yield (fiat)
    upstream_paid: float = 0.0  # Share of gross yield paid to the referrer (fiat)
    staking_yield: float = 0.0  # Gross tier yield, included in yield_gross (fiat)
    exchange_fee: float = 0.0  # Exchange fee on DCA purchases (fiat)

    def reset(self):
        """Zero all period counters."""
        self.interest = 0.0
        self.yield_gross = 0.0
        self.yield_fee = 0.0
        self.upstream_paid = 0.0
        self.staking_yield = 0.0
        self.exchange_fee = 0.0


@dataclass
class ParticipantState:
    """Mutable state of one participant across the month loop."""
    btc_holding: float = 0.0
    loan_outstanding: float = 0.0  # Principal, changed only at rebalance points
    cash_balance: float = 0.0  # Buffer absorbing net yield shortfalls
    total_contrib: float = 0.0  # Nominal fiat contributed
    total_contrib_real: float = 0.0  # Fiat contributed, deflated to month-0 prices
    last_contribution: float = 0.0  # Net fiat of the latest DCA
    btc_from_referrals: float = 0.0
    eur_from_referrals: float = 0.0
    exchange_fee_paid_total: float = 0.0
    yield_fee_paid_total: float = 0.0
    upstream_paid_total: float = 0.0
    period: PeriodAccumulators = field(default_factory=PeriodAccumulators)

    def validate_non_negative(self, tolerance: float = 1e-12) -> tuple[bool, Optional[str]]:
        """Validate holdings and loan are non-negative."""
        buckets = [
            ('btc_holding', self.btc_holding),
            ('loan_outstanding', self.loan_outstanding),
            ('total_contrib', self.total_contrib),
        ]
        for name, value in buckets:
            if value < -tolerance:
                return False, f"Negative bucket: {name}={value:.8f}"
        return True, None


@dataclass(frozen=True)
class SimulationPoint:
    """State of a participant at a sampled month. Never mutated after emission."""
    month: int
    price: float
    contribution: float  # Net fiat contributed in this month (after exchange fee)
    btc_bought: float
    btc_holding: float
    btc_value: float
    loan_outstanding: float
    interest_accrued: float  # Since the previous snapshot
    yield_earned: float  # Gross, since the previous snapshot
    cash_balance: float
    total_contrib: float
    total_contrib_real: float
    net_worth: float
    pnl_net: float
    inflation_index: float
    real_net_worth: float
    real_pnl_net: float
    yield_fee_paid: float = 0.0  # Since the previous snapshot
    upstream_paid: float = 0.0  # Since the previous snapshot
    btc_from_referrals: float = 0.0  # Cumulative
    eur_from_referrals: float = 0.0  # Cumulative
    staking_yield: float = 0.0  # Gross tier yield since the previous snapshot, part of yield_earned
    exchange_fee_paid: float = 0.0  # Since the previous snapshot
    exchange_fee_paid_total: float = 0.0  # Cumulative
    yield_fee_paid_total: float = 0.0  # Cumulative
    upstream_paid_total: float = 0.0  # Cumulative

    @property
    def year(self) -> int:
        return self.month // 12

    @property
    def ltv(self) -> float:
        """Realised loan-to-value, 0 when there is no collateral."""
        if self.btc_value <= 0:
            return 0.0
        return self.loan_outstanding / self.btc_value

    def validate_identities(self, tolerance: float = 1e-6) -> tuple[bool, Optional[str]]:
        """
        Validate the net-worth and real-value identities.

        Returns:
            (is_valid, error_message)
        """
        scale = max(1.0, abs(self.btc_value), abs(self.loan_outstanding), abs(self.total_contrib))
        scaled_tolerance = tolerance * scale

        expected_net_worth = self.btc_value - self.loan_outstanding + self.cash_balance
        if abs(self.net_worth - expected_net_worth) > scaled_tolerance:
            return False, (
                f"Net worth identity violated at month {self.month}: "
                f"net_worth={self.net_worth:.2f}, expected={expected_net_worth:.2f} "
                f"(btc_value={self.btc_value:.2f}, loan={self.loan_outstanding:.2f}, "
                f"cash={self.cash_balance:.2f})"
            )
        if abs(self.pnl_net - (self.net_worth - self.total_contrib)) > scaled_tolerance:
            return False, f"P&L identity violated at month {self.month}: pnl_net={self.pnl_net:.2f}"
        if abs(self.real_net_worth - self.net_worth / self.inflation_index) > scaled_tolerance:
            return False, f"Real net worth identity violated at month {self.month}"
        if abs(self.real_pnl_net - (self.real_net_worth - self.total_contrib_real)) > scaled_tolerance:
            return False, f"Real P&L identity violated at month {self.month}"
        return True, None

    def to_dict(self) -> dict:
        """Plain dictionary including the derived year."""
        data = dict(self.__dict__)
        data['year'] = self.year
        return data
