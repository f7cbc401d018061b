"""Sanity checks and validation for simulation inputs and outputs."""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..config.schema import ScenarioConfig
from ..engine.accounting import SimulationPoint


@dataclass
class ValidationWarning:
    """A validation warning with severity and message."""
    severity: str  # "warning" or "error"
    category: str  # e.g., "input", "identity", "bounds"
    message: str
    details: Optional[str] = None


class SanityChecker:
    """Run sanity checks on configuration and simulation snapshots."""

    def __init__(self, config: ScenarioConfig):
        """Initialize with configuration."""
        self.config = config

    def check_config_inputs(self) -> List[ValidationWarning]:
        """
        Check configuration inputs for implausible values.

        Returns:
            List of validation warnings
        """
        warnings = []
        market = self.config.market
        lending = self.config.user.lending

        if lending.ltv > 0.8:
            warnings.append(ValidationWarning(
                severity="warning",
                category="bounds",
                message="Target LTV above 80% leaves little room before liquidation",
                details=f"Current LTV: {lending.ltv*100:.1f}%"
            ))

        if lending.ltv > 0 and lending.loan_rate > lending.yield_rate:
            warnings.append(ValidationWarning(
                severity="warning",
                category="input",
                message="Loan rate exceeds yield rate: borrowing erodes BTC holdings",
                details=f"Loan APR {lending.loan_rate*100:.2f}% vs yield APY {lending.yield_rate*100:.2f}%"
            ))

        if market.cagr > 1.0:
            warnings.append(ValidationWarning(
                severity="warning",
                category="bounds",
                message="BTC CAGR above 100% compounds to extreme prices",
                details=f"Current CAGR: {market.cagr*100:.1f}%"
            ))

        if market.cagr < 0 and lending.ltv > 0:
            warnings.append(ValidationWarning(
                severity="warning",
                category="input",
                message="Falling BTC price with a loan: excess debt can only be repaid from cash",
                details=f"CAGR {market.cagr*100:.1f}%, LTV {lending.ltv*100:.1f}%"
            ))

        if lending.fee_pct + lending.upstream_share_pct > 90:
            warnings.append(ValidationWarning(
                severity="warning",
                category="input",
                message="Platform fee and upstream share leave under 10% of gross yield",
                details=f"Fee {lending.fee_pct:.1f}% + upstream {lending.upstream_share_pct:.1f}%"
            ))

        exchange_fee = self.config.user.contribution.exchange_fee_pct
        if exchange_fee > 0.05:
            warnings.append(ValidationWarning(
                severity="warning",
                category="input",
                message="Exchange fee above 5% of each contribution (the fee is a fraction, 0.001 = 0.1%)",
                details=f"Exchange fee: {exchange_fee*100:.2f}%"
            ))

        if self.config.user.contribution.monthly_contribution == 0:
            warnings.append(ValidationWarning(
                severity="warning",
                category="input",
                message="Monthly contribution is zero: holdings stay at zero without referral income"
            ))

        return warnings

    def check_points(self, points: Sequence[SimulationPoint]) -> List[ValidationWarning]:
        """
        Check a snapshot series for identity and ordering violations.

        Args:
            points: Snapshot series from the simulator

        Returns:
            List of validation warnings
        """
        warnings = []
        if not points:
            return [ValidationWarning(severity="error", category="output", message="Empty snapshot series")]

        if points[0].month != 0:
            warnings.append(ValidationWarning(
                severity="error",
                category="output",
                message=f"Series starts at month {points[0].month}, expected 0"
            ))

        previous_month = -1
        for point in points:
            if point.month <= previous_month:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="output",
                    message=f"Snapshot months not strictly increasing at month {point.month}"
                ))
            previous_month = point.month

            is_valid, error = point.validate_identities()
            if not is_valid:
                warnings.append(ValidationWarning(severity="error", category="identity", message=error))

            if point.btc_holding < 0 or point.loan_outstanding < 0:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="bounds",
                    message=f"Negative holding or loan at month {point.month}",
                    details=f"btc={point.btc_holding:.8f}, loan={point.loan_outstanding:.2f}"
                ))

        final = points[-1]
        if final.real_pnl_net < 0 < final.pnl_net:
            warnings.append(ValidationWarning(
                severity="warning",
                category="output",
                message="Nominal profit but real loss: gains do not beat inflation",
                details=f"Nominal P&L {final.pnl_net:,.0f}, real P&L {final.real_pnl_net:,.0f}"
            ))

        return warnings


def validate_simulation_results(
    config: ScenarioConfig,
    points: Sequence[SimulationPoint]
) -> List[ValidationWarning]:
    """Run all config and output checks."""
    checker = SanityChecker(config)
    return checker.check_config_inputs() + checker.check_points(points)
