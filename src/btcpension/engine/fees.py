"""Single-period fee and yield calculator and contribution indexing."""

from dataclasses import dataclass


@dataclass(frozen=True)
class FeeCalculation:
    """Result of one month of DCA + yield on the user's BTC."""
    user_accumulated_btc_holding: float  # Holding after DCA and net yield
    platform_fee_from_yield_btc: float  # Platform cut of the gross yield
    platform_exchange_fee_btc: float  # BTC skimmed from the DCA purchase


def calculate_user_btc_and_platform_fees(
    monthly_yield_rate: float,
    current_btc_price: float,
    user_accumulated_btc_holding: float,
    monthly_dca: float,
    platform_fee_from_yield_pct: float,
    platform_exchange_fee_pct: float
) -> FeeCalculation:
    """
    Compute one month of BTC accumulation and the platform's revenue.

    Order of operations:
        1. dca_btc = dca / price
        2. net_dca_btc = dca_btc * (1 - exchange_fee)
        3. gross_yield = (prior_holding + net_dca_btc) * monthly_yield_rate
        4. yield_fee = gross_yield * yield_fee_pct
        5. net_yield = gross_yield - yield_fee
        6. holding = prior_holding + net_dca_btc + net_yield

    Yield accrues on capital that already includes this month's net DCA.

    Args:
        monthly_yield_rate: Monthly yield rate on BTC holdings
        current_btc_price: BTC price this month (fiat per BTC)
        user_accumulated_btc_holding: Holding before this month
        monthly_dca: Fiat contributed this month
        platform_fee_from_yield_pct: Platform cut of gross yield (fraction)
        platform_exchange_fee_pct: Exchange fee on the DCA (fraction)

    Returns:
        FeeCalculation with the new holding and both fees in BTC

    Raises:
        ValueError: If the BTC price is not positive
    """
    if current_btc_price <= 0:
        raise ValueError(f"BTC price must be positive, got {current_btc_price}")

    user_dca_btc = monthly_dca / current_btc_price
    user_net_dca_btc = user_dca_btc * (1.0 - platform_exchange_fee_pct)

    monthly_yield_btc = (user_accumulated_btc_holding + user_net_dca_btc) * monthly_yield_rate
    platform_fee_from_yield_btc = monthly_yield_btc * platform_fee_from_yield_pct
    platform_exchange_fee_btc = user_dca_btc - user_net_dca_btc
    user_net_yield_btc = monthly_yield_btc - platform_fee_from_yield_btc

    return FeeCalculation(
        user_accumulated_btc_holding=user_accumulated_btc_holding + user_net_dca_btc + user_net_yield_btc,
        platform_fee_from_yield_btc=platform_fee_from_yield_btc,
        platform_exchange_fee_btc=platform_exchange_fee_btc,
    )


def calculate_monthly_dca(base_dca: float, cpi_factor: float, enable_indexing: bool) -> float:
    """Scale the base contribution by the cumulative CPI factor when indexing is on."""
    return base_dca * cpi_factor if enable_indexing else base_dca
