"""Platform aggregation - cohort convolution of per-user fees and treasury compounding.

Key Concepts:
- A cohort is the group of users that joins in one month; it contributes
  number_of_users x the per-user fee curve from its start month on
- Every cohort shares the same calendar price path
- The platform reinvests collected fees and compounds them at its own yield:
    working(m) = principal_end(m-1)
    yield(m) = working(m) * monthly_rate(platform_yield)
    principal_end(m) = working(m) + fees(m) + yield(m),  principal_end(-1) = 0
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from ..behavior.growth import get_platform_users_timeline
from ..config.schema import PlatformTreasury, PlatformUsersData, TreasuryGrowthInput, UserSimulationInput
from ..engine.accounting import SimulationPoint
from ..engine.rates import monthly_rate
from ..simulation.runner import simulate_user
from ..simulation.treasury import TreasurySnapshot, simulate_user_treasury_growth

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CohortSeries:
    """Per-user fee curve of a cohort and its size."""
    start_month: int
    number_of_users: int
    snapshots: List[TreasurySnapshot]


@dataclass(frozen=True)
class PlatformMonthlySnapshot:
    """Platform revenue in one calendar month (BTC)."""
    month: int
    btc_price: float
    btc_fee_from_yield: float
    btc_fee_from_exchange: float
    btc_fee_total: float
    total_users: int


@dataclass(frozen=True)
class PlatformTreasurySnapshot(PlatformMonthlySnapshot):
    """Platform revenue plus the compounding treasury it funds."""
    platform_working_btc: float = 0.0  # Principal at the start of the month
    platform_monthly_yield_btc: float = 0.0
    platform_principal_end_btc: float = 0.0


def build_cohort_simulation_set(
    platform_users: PlatformUsersData,
    treasury_input: TreasuryGrowthInput
) -> List[CohortSeries]:
    """
    Simulate one representative user per joining cohort.

    Args:
        platform_users: User growth between two endpoints
        treasury_input: Per-user DCA, yield and fee parameters

    Returns:
        Initial cohort (user_starts users, month 0) followed by one cohort per timeline month
    """
    timeline = get_platform_users_timeline(platform_users, treasury_input.market.years)

    cohorts = [CohortSeries(
        start_month=0,
        number_of_users=platform_users.user_starts,
        snapshots=simulate_user_treasury_growth(treasury_input),
    )]
    for point in timeline:
        cohort_input = treasury_input.model_copy(update={'start_month': point.month})
        cohorts.append(CohortSeries(
            start_month=point.month,
            number_of_users=point.new_users,
            snapshots=simulate_user_treasury_growth(cohort_input),
        ))
    return cohorts


def fee_series_from_points(points: Sequence[SimulationPoint]) -> List[TreasurySnapshot]:
    """
    Convert a monthly single-user run into a per-user platform fee curve.

    Args:
        points: Snapshots taken every month (snapshot_step=1)

    Returns:
        Monthly yield and exchange fees in BTC

    Raises:
        ValueError: If the points are not consecutive months
    """
    series = []
    for expected_month, point in enumerate(points):
        if point.month != expected_month:
            raise ValueError(
                f"fee series needs monthly snapshots, got month {point.month} at position {expected_month}"
            )
        series.append(TreasurySnapshot(
            month=point.month,
            btc_price=point.price,
            platform_fee_from_yield_btc=point.yield_fee_paid / point.price,
            platform_exchange_fee_btc=point.exchange_fee_paid / point.price,
            user_accumulated_btc_holding=point.btc_holding,
        ))
    return series


def build_lending_cohort_set(
    platform_users: PlatformUsersData,
    user_input: UserSimulationInput,
    auto_draw_to_target: bool = True
) -> List[CohortSeries]:
    """
    Cohort set for the collateralised-loan product.

    Args:
        platform_users: User growth between two endpoints
        user_input: Per-user simulation input
        auto_draw_to_target: Rebalancing policy

    Returns:
        Cohorts whose curves come from the single-user simulator
    """
    timeline = get_platform_users_timeline(platform_users, user_input.market.years)

    def fee_curve(start_month: int) -> List[TreasurySnapshot]:
        points = simulate_user(
            user_input,
            auto_draw_to_target=auto_draw_to_target,
            snapshot_step=1,
            start_month=start_month,
        )
        return fee_series_from_points(points)

    cohorts = [CohortSeries(0, platform_users.user_starts, fee_curve(0))]
    cohorts.extend(
        CohortSeries(point.month, point.new_users, fee_curve(point.month))
        for point in timeline
    )
    return cohorts


def build_platform_monthly_snapshots(cohorts: Sequence[CohortSeries]) -> List[PlatformMonthlySnapshot]:
    """
    Sum number_of_users x per-user fees over every cohort that has started.

    Args:
        cohorts: Cohort curves, all of the same length

    Returns:
        One platform snapshot per month

    Raises:
        ValueError: If the cohort curves differ in length
    """
    if not cohorts:
        return []

    total_months = len(cohorts[0].snapshots)
    for cohort in cohorts:
        if len(cohort.snapshots) != total_months:
            raise ValueError("All cohort snapshot series must have the same length")

    months = np.arange(total_months)
    fee_yield = np.zeros(total_months)
    fee_exchange = np.zeros(total_months)
    total_users = np.zeros(total_months, dtype=np.int64)

    for cohort in cohorts:
        started = months >= cohort.start_month
        yield_curve = np.array([s.platform_fee_from_yield_btc for s in cohort.snapshots])
        exchange_curve = np.array([s.platform_exchange_fee_btc for s in cohort.snapshots])
        fee_yield += np.where(started, cohort.number_of_users * yield_curve, 0.0)
        fee_exchange += np.where(started, cohort.number_of_users * exchange_curve, 0.0)
        total_users += np.where(started, cohort.number_of_users, 0)

    reference = cohorts[0].snapshots
    return [
        PlatformMonthlySnapshot(
            month=m,
            btc_price=reference[m].btc_price,
            btc_fee_from_yield=float(fee_yield[m]),
            btc_fee_from_exchange=float(fee_exchange[m]),
            btc_fee_total=float(fee_yield[m] + fee_exchange[m]),
            total_users=int(total_users[m]),
        )
        for m in range(total_months)
    ]


def build_platform_monthly_snapshots_with_investment(
    cohorts: Sequence[CohortSeries],
    yearly_yield_pct: float
) -> List[PlatformTreasurySnapshot]:
    """
    Platform snapshots with collected fees compounding in the platform treasury.

    Args:
        cohorts: Cohort curves
        yearly_yield_pct: Annual yield the platform earns on its treasury

    Returns:
        Platform snapshots with working capital, yield and closing principal
    """
    base = build_platform_monthly_snapshots(cohorts)
    rate = monthly_rate(yearly_yield_pct)

    out = []
    principal = 0.0
    for snapshot in base:
        working = principal
        invest_yield = working * rate
        principal = working + snapshot.btc_fee_total + invest_yield
        out.append(PlatformTreasurySnapshot(
            **snapshot.__dict__,
            platform_working_btc=working,
            platform_monthly_yield_btc=invest_yield,
            platform_principal_end_btc=principal,
        ))

    if out:
        logger.debug(
            "Platform treasury after %d months: %.8f BTC",
            len(out), out[-1].platform_principal_end_btc
        )
    return out


def simulate_platform_treasury_growth(
    platform_users: PlatformUsersData,
    treasury_input: TreasuryGrowthInput,
    platform_treasury: PlatformTreasury
) -> List[PlatformTreasurySnapshot]:
    """Cohort set, platform revenue and treasury compounding in one call."""
    cohorts = build_cohort_simulation_set(platform_users, treasury_input)
    return build_platform_monthly_snapshots_with_investment(cohorts, platform_treasury.yearly_yield_pct)


def accumulate_cohort_results(
    rows_with_multipliers: Sequence[Tuple[float, Sequence[float]]],
    step_factor: float,
    initial_value: float = 0.0
) -> float:
    """
    Fold cohort results column by column with a per-step growth factor.

    Row k is scaled by its multiplier and left-padded by k columns (cohort k
    joins k periods late). The column sums are then folded:
        acc = acc * step_factor + column_sum

    Args:
        rows_with_multipliers: (multiplier, per-period values) per cohort
        step_factor: Growth applied to the running total each period
        initial_value: Starting total

    Returns:
        Accumulated total after the last column
    """
    if not rows_with_multipliers:
        return initial_value

    width = max(shift + len(values) for shift, (_, values) in enumerate(rows_with_multipliers))
    matrix = np.zeros((len(rows_with_multipliers), width))
    for shift, (multiplier, values) in enumerate(rows_with_multipliers):
        matrix[shift, shift:shift + len(values)] = np.asarray(values, dtype=float) * multiplier

    acc = initial_value
    for column_sum in matrix.sum(axis=0):
        acc = acc * step_factor + column_sum
    return float(acc)
