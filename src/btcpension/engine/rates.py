"""Rate conversion - annual rates to monthly effective rates and CAGR schedules."""

import math


def monthly_rate(annual_rate: float) -> float:
    """
    Convert an annual rate to the equivalent monthly effective rate.

    Formula: (1 + m)^12 = 1 + r  =>  m = (1 + r)^(1/12) - 1

    Args:
        annual_rate: Annual rate as fraction (e.g., 0.14 = 14%)

    Returns:
        Monthly effective rate

    Raises:
        ValueError: If the rate is not finite or implies (1 + r) <= 0
    """
    if not math.isfinite(annual_rate):
        raise ValueError(f"Annual rate must be finite, got {annual_rate}")
    if annual_rate <= -1.0:
        raise ValueError(f"Annual rate must be > -100%, got {annual_rate:.4f}")
    return (1.0 + annual_rate) ** (1.0 / 12.0) - 1.0


def growth_index(annual_rate: float, months: float) -> float:
    """Cumulative growth factor (1 + r)^(months/12)."""
    if annual_rate <= -1.0:
        raise ValueError(f"Annual rate must be > -100%, got {annual_rate:.4f}")
    return (1.0 + annual_rate) ** (months / 12.0)


def get_annual_btc_cagr(
    years_since_start: float,
    annual_cagr_start: float,
    annual_cagr_asymptote: float,
    years_to_settle: float,
    residual_fraction: float = 0.05
) -> float:
    """
    Annual BTC CAGR decaying exponentially from a start value to an asymptote.

    tau is chosen so that after `years_to_settle` only `residual_fraction`
    of the initial gap remains:

        cagr(t) = asymptote + (start - asymptote) * exp(-t / tau)
        tau = -years_to_settle / ln(residual_fraction)

    Args:
        years_since_start: Elapsed time in years
        annual_cagr_start: CAGR at t=0
        annual_cagr_asymptote: Long-run CAGR
        years_to_settle: Settling time in years
        residual_fraction: Remaining gap fraction at settling time

    Returns:
        Annual CAGR at the given time
    """
    eps = min(max(residual_fraction, 1e-6), 0.999999)
    if years_to_settle <= 0:
        return annual_cagr_asymptote
    tau = -years_to_settle / math.log(eps)
    return (
        annual_cagr_asymptote +
        (annual_cagr_start - annual_cagr_asymptote) * math.exp(-years_since_start / tau)
    )


def get_monthly_btc_cagr_rate(annual_btc_cagr: float) -> float:
    """Monthly price growth for an annual CAGR, clamped at -99.9%/year."""
    clamped = max(annual_btc_cagr, -0.999)
    return monthly_rate(clamped)


def months_for_years(years: float) -> int:
    """Whole months in the horizon, rounding half up."""
    if not math.isfinite(years) or years <= 0:
        raise ValueError(f"years must be a positive finite number, got {years}")
    return int(math.floor(years * 12 + 0.5))
