"""User base growth - integer new-user timelines between two endpoints.

Both growth modes close exactly: the increments sum to user_ends - user_starts
and the last month's total equals user_ends.
"""

import math
from dataclasses import dataclass
from typing import List

import numpy as np

from ..config.schema import PlatformUsersData


@dataclass(frozen=True)
class UserTimelinePoint:
    """Users at one month of the platform timeline."""
    month: int  # 1-indexed
    new_users: int
    total_users: int


def get_users_with_linear_growth(start: int, end: int, months: int) -> List[int]:
    """
    Spread end - start evenly over `months`.

    The truncated per-month base leaves |remainder| units; every month carries
    the same fractional remainder, so the largest-remainder rule hands one
    unit each to the earliest months.

    Args:
        start: Users at month 0
        end: Users at the last month
        months: Number of months

    Returns:
        New users per month (negative when shrinking)
    """
    if months <= 0:
        return []
    delta = end - start
    base = int(delta / months)  # truncation toward zero
    remainder = delta - base * months
    sign = (remainder > 0) - (remainder < 0)
    extra = abs(remainder)

    return [base + (sign if m < extra else 0) for m in range(months)]


def get_users_with_exponential_growth(start: int, end: int, months: int) -> List[int]:
    """
    Grow the total by a constant factor g = (end/start)^(1/months) per month.

    Real increments T(m) - T(m-1) with T(m) = start * g^(m+1) are floored,
    and the shortfall against end - start is distributed one unit at a time
    to the months with the largest fractional parts.

    Args:
        start: Users at month 0 (> 0)
        end: Users at the last month (> 0)
        months: Number of months

    Returns:
        New users per month

    Raises:
        ValueError: If start or end is not positive
    """
    if months <= 0:
        return []
    if not (start > 0 and end > 0):
        raise ValueError(f"exponential growth requires start > 0 and end > 0, got {start} and {end}")

    g = (end / start) ** (1.0 / months)
    totals = start * g ** np.arange(1, months + 1)
    increments = np.diff(np.concatenate(([float(start)], totals)))

    floors = np.floor(increments)
    need = int(round((end - start) - floors.sum()))
    fractions = increments - floors
    # Stable sort keeps earlier months first on equal remainders
    order = np.argsort(-fractions, kind="stable")
    floors[order[:need]] += 1

    return [int(x) for x in floors]


def get_platform_users_timeline(data: PlatformUsersData, years: float) -> List[UserTimelinePoint]:
    """
    Build the month-by-month user timeline.

    Args:
        data: Start/end users and growth type
        years: Horizon in years; months = floor(years * 12)

    Returns:
        Timeline points for months 1 .. months

    Raises:
        ValueError: If the user counts are not finite or the horizon is shorter than a month
    """
    if not (math.isfinite(data.user_starts) and math.isfinite(data.user_ends)):
        raise ValueError("user_starts and user_ends must be finite numbers")
    if not (years > 0):
        raise ValueError(f"years must be > 0, got {years}")
    months = int(math.floor(years * 12))
    if months < 1:
        raise ValueError(f"Horizon of {years} years is shorter than one month")

    if data.growth_type == "linear":
        new_users = get_users_with_linear_growth(data.user_starts, data.user_ends, months)
    else:
        new_users = get_users_with_exponential_growth(data.user_starts, data.user_ends, months)

    timeline = []
    total = data.user_starts
    for m, added in enumerate(new_users):
        total += added
        timeline.append(UserTimelinePoint(month=m + 1, new_users=added, total_users=total))

    # Closure at the final month
    last = timeline[-1]
    timeline[-1] = UserTimelinePoint(month=last.month, new_users=last.new_users, total_users=data.user_ends)
    return timeline
