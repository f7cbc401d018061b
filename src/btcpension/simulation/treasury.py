"""Per-user treasury growth - yield on BTC holdings and the platform fees it generates.

This is the fee profile used for platform aggregation: every month the user
buys BTC with the (optionally CPI-indexed) DCA, pays the exchange fee, and
earns yield on the whole holding, from which the platform takes its cut.
"""

from dataclasses import dataclass
from typing import List

from ..config.schema import TreasuryGrowthInput
from ..engine.fees import calculate_monthly_dca, calculate_user_btc_and_platform_fees
from ..engine.rates import get_annual_btc_cagr, get_monthly_btc_cagr_rate, monthly_rate, months_for_years


@dataclass(frozen=True)
class TreasurySnapshot:
    """One month of a user's treasury growth."""
    month: int
    btc_price: float
    platform_fee_from_yield_btc: float  # This month only
    platform_exchange_fee_btc: float  # This month only
    user_accumulated_btc_holding: float  # Cumulative

    @property
    def platform_fee_total_btc(self) -> float:
        return self.platform_fee_from_yield_btc + self.platform_exchange_fee_btc


def simulate_user_treasury_growth(treasury_input: TreasuryGrowthInput) -> List[TreasurySnapshot]:
    """
    Simulate a user's monthly BTC accumulation and the fees it pays.

    Months before `start_month` are zero-filled (the user has not joined yet)
    but still advance the price path and the CPI factor.

    Args:
        treasury_input: Market, DCA and fee parameters

    Returns:
        One snapshot per month, months 0 .. months-1
    """
    market = treasury_input.market
    number_of_months = months_for_years(market.years)
    monthly_yield = monthly_rate(treasury_input.yearly_yield_pct)
    monthly_cpi = monthly_rate(market.cpi_rate)
    decay = treasury_input.cagr_decay

    snapshots: List[TreasurySnapshot] = []
    price = market.initial_price
    holding = treasury_input.initial_btc_holding
    cpi_factor = 1.0

    for month in range(number_of_months):
        dca = calculate_monthly_dca(treasury_input.monthly_dca, cpi_factor, treasury_input.enable_indexing)
        result = calculate_user_btc_and_platform_fees(
            monthly_yield_rate=monthly_yield,
            current_btc_price=price,
            user_accumulated_btc_holding=holding,
            monthly_dca=dca,
            platform_fee_from_yield_pct=treasury_input.platform_fee_from_yield_pct,
            platform_exchange_fee_pct=treasury_input.platform_exchange_fee_pct,
        )

        if month >= treasury_input.start_month:
            snapshots.append(TreasurySnapshot(
                month=month,
                btc_price=price,
                platform_fee_from_yield_btc=result.platform_fee_from_yield_btc,
                platform_exchange_fee_btc=result.platform_exchange_fee_btc,
                user_accumulated_btc_holding=result.user_accumulated_btc_holding,
            ))
            holding = result.user_accumulated_btc_holding
        else:
            snapshots.append(TreasurySnapshot(
                month=month,
                btc_price=price,
                platform_fee_from_yield_btc=0.0,
                platform_exchange_fee_btc=0.0,
                user_accumulated_btc_holding=0.0,
            ))

        if decay is None:
            btc_monthly_rate = get_monthly_btc_cagr_rate(market.cagr)
        else:
            btc_monthly_rate = get_monthly_btc_cagr_rate(get_annual_btc_cagr(
                years_since_start=month / 12.0,
                annual_cagr_start=decay.annual_cagr_start,
                annual_cagr_asymptote=decay.annual_cagr_asymptote,
                years_to_settle=decay.years_to_settle,
                residual_fraction=decay.residual_fraction,
            ))
        price *= 1.0 + btc_monthly_rate
        cpi_factor *= 1.0 + monthly_cpi

    return snapshots
