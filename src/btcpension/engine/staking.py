"""Staking tiers - monthly yield on the BTC allocated to each tier."""

from dataclasses import dataclass
from typing import Sequence

from ..config.schema import TierConfig
from .rates import monthly_rate


@dataclass
class StakingAccrual:
    """One month of staking yield (BTC)."""
    yield_gross: float
    yield_fee: float
    upstream_share: float
    net_yield: float  # Reinvested into the holding


class StakingModel:
    """Up to five tiers, each earning its own APY on a fixed share of the holding."""

    def __init__(self, tiers: Sequence[TierConfig], fee_pct: float = 0.0, upstream_share_pct: float = 0.0):
        """
        Initialize staking model.

        Args:
            tiers: Staking tiers (allocation fraction and APY)
            fee_pct: Platform cut of gross yield in percent
            upstream_share_pct: Referrer's share of gross yield in percent
        """
        self.fee_pct = fee_pct
        self.upstream_share_pct = upstream_share_pct
        # Blended monthly rate on the whole holding; unallocated BTC earns nothing
        self.blended_monthly_rate = sum(t.allocation_pct * monthly_rate(t.apy) for t in tiers)

    @property
    def active(self) -> bool:
        return self.blended_monthly_rate != 0.0

    def compute_accrual(self, btc_holding: float) -> StakingAccrual:
        """
        Compute one month of tier yield on the current holding.

        Args:
            btc_holding: Holding after this month's DCA

        Returns:
            Staking accrual in BTC
        """
        gross = btc_holding * self.blended_monthly_rate
        fee = gross * (self.fee_pct / 100.0)
        upstream = gross * (self.upstream_share_pct / 100.0)
        return StakingAccrual(
            yield_gross=gross,
            yield_fee=fee,
            upstream_share=upstream,
            net_yield=gross - fee - upstream,
        )
