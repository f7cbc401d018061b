"""Pydantic schema for configuration validation."""

import hashlib
import json
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..engine.rates import months_for_years

SNAPSHOT_STEP = 3  # quarterly sampling by default
MAX_TIERS = 5


class MarketConditions(BaseModel):
    """Market assumptions shared by every participant of a run."""
    model_config = ConfigDict(frozen=True)

    initial_price: float = Field(gt=0, description="BTC price at month 0 (fiat per BTC)")
    cagr: float = Field(gt=-1, description="Annual BTC price growth")
    cpi_rate: float = Field(default=0.0, gt=-1, description="Annual CPI inflation")
    years: float = Field(gt=0, description="Projection horizon in years")
    snapshot_step: int = Field(default=SNAPSHOT_STEP, ge=1, description="Months between snapshots")


class ContributionPolicy(BaseModel):
    """Monthly DCA contribution policy."""
    model_config = ConfigDict(frozen=True)

    monthly_contribution: float = Field(ge=0, description="Fiat contributed per month")
    enable_indexing: bool = Field(default=False, description="Scale contribution with CPI")
    exchange_fee_pct: float = Field(
        default=0.0, ge=0, le=1,
        description="Fraction of the contribution lost to the exchange fee (0.001 = 0.1%)"
    )


class TierConfig(BaseModel):
    """A staking tier: share of the BTC holding deployed at its own APY."""
    model_config = ConfigDict(frozen=True)

    allocation_pct: float = Field(ge=0, le=1, description="Fraction of the BTC holding in this tier")
    apy: float = Field(gt=-1, description="Annual yield on the allocated BTC")


class LendingPolicy(BaseModel):
    """Collateralised loan and yield deployment policy."""
    model_config = ConfigDict(frozen=True)

    ltv: float = Field(default=0.0, ge=0, description="Target loan-to-value")
    loan_rate: float = Field(default=0.0, gt=-1, description="Annual borrowing APR")
    yield_rate: float = Field(default=0.0, gt=-1, description="Annual APY earned on the drawn loan")
    fee_pct: float = Field(default=0.0, ge=0, le=100, description="Platform cut of gross yield, percent")
    upstream_share_pct: float = Field(
        default=0.0, ge=0, le=100,
        description="Share of gross yield paid to the referrer, percent"
    )

    @model_validator(mode='after')
    def validate_yield_split(self):
        """Platform fee and upstream share cannot exceed the gross yield."""
        if self.fee_pct + self.upstream_share_pct > 100 + 1e-9:
            raise ValueError(
                f"fee_pct + upstream_share_pct must be <= 100, got "
                f"{self.fee_pct:.2f} + {self.upstream_share_pct:.2f}"
            )
        return self


def _validate_tiers(tiers: List[TierConfig]) -> List[TierConfig]:
    if len(tiers) > MAX_TIERS:
        raise ValueError(f"At most {MAX_TIERS} staking tiers are supported, got {len(tiers)}")
    allocated = sum(tier.allocation_pct for tier in tiers)
    if allocated > 1 + 1e-9:
        raise ValueError(f"Tier allocations must sum to <= 1, got {allocated:.4f}")
    return tiers


class ParticipantConfig(BaseModel):
    """Everything that describes one participant except the market."""
    model_config = ConfigDict(frozen=True)

    contribution: ContributionPolicy
    tiers: List[TierConfig] = Field(default_factory=list, description="Staking tiers; unallocated BTC stays idle")
    lending: LendingPolicy = Field(default_factory=LendingPolicy)

    @field_validator("tiers")
    @classmethod
    def validate_tiers(cls, v):
        """At most five tiers, allocating at most the whole holding."""
        return _validate_tiers(v)


class UserSimulationInput(BaseModel):
    """Complete input of the single-user simulator."""
    model_config = ConfigDict(frozen=True)

    market: MarketConditions
    contribution: ContributionPolicy
    tiers: List[TierConfig] = Field(default_factory=list)
    lending: LendingPolicy = Field(default_factory=LendingPolicy)

    @field_validator("tiers")
    @classmethod
    def validate_tiers(cls, v):
        """At most five tiers, allocating at most the whole holding."""
        return _validate_tiers(v)

    @property
    def months_total(self) -> int:
        return months_for_years(self.market.years)

    @property
    def participant(self) -> ParticipantConfig:
        return ParticipantConfig(contribution=self.contribution, tiers=self.tiers, lending=self.lending)

    def with_participant(self, participant: ParticipantConfig) -> 'UserSimulationInput':
        """Same market, different participant policies."""
        return UserSimulationInput(
            market=self.market,
            contribution=participant.contribution,
            tiers=participant.tiers,
            lending=participant.lending,
        )


class ReferralNode(BaseModel):
    """A referred participant and the participants they referred in turn."""
    model_config = ConfigDict(frozen=True)

    participant: ParticipantConfig
    join_delay_months: int = Field(default=0, ge=0, description="Month the referral starts contributing")
    count: int = Field(default=1, ge=1, description="Number of identical referrals this node stands for")
    children: List['ReferralNode'] = Field(default_factory=list)


class ReferralSettings(BaseModel):
    """Single-level referral shortcut: `count` identical referrals sharing `share_pct` of yield."""
    model_config = ConfigDict(frozen=True)

    count: int = Field(ge=0, description="Number of referrals")
    share_pct: float = Field(ge=0, le=100, description="Share of each referral's gross yield, percent")
    referral: ParticipantConfig
    join_delay_months: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def validate_share(self):
        """The share paid upstream must come out of yield left after the platform fee."""
        fee = self.referral.lending.fee_pct
        if fee + self.share_pct > 100 + 1e-9:
            raise ValueError(
                f"Referral share ({self.share_pct:.2f}%) exceeds the referral's yield "
                f"after its platform fee ({100 - fee:.2f}%)"
            )
        return self


ReferralNode.model_rebuild()


class PlatformUsersData(BaseModel):
    """User base growth between two endpoints."""
    user_starts: int = Field(ge=0, description="Users at month 0")
    user_ends: int = Field(ge=0, description="Users at the final month")
    growth_type: Literal["linear", "exponential"] = Field(default="linear")

    @model_validator(mode='after')
    def validate_exponential(self):
        """Exponential growth needs positive endpoints."""
        if self.growth_type == "exponential" and not (self.user_starts > 0 and self.user_ends > 0):
            raise ValueError("exponential growth requires user_starts > 0 and user_ends > 0")
        return self


class CagrDecay(BaseModel):
    """CAGR that decays from a starting value toward an asymptote."""
    model_config = ConfigDict(frozen=True)

    annual_cagr_start: float = Field(gt=-1)
    annual_cagr_asymptote: float = Field(gt=-1)
    years_to_settle: float = Field(description="Years until only residual_fraction of the gap remains")
    residual_fraction: float = Field(default=0.05, gt=0, lt=1)


class TreasuryGrowthInput(BaseModel):
    """Input of the per-user treasury growth (fee profile) simulator."""
    model_config = ConfigDict(frozen=True)

    market: MarketConditions
    monthly_dca: float = Field(ge=0, description="Fiat DCA per month")
    enable_indexing: bool = False
    initial_btc_holding: float = Field(default=0.0, ge=0)
    start_month: int = Field(default=0, ge=0)
    yearly_yield_pct: float = Field(default=0.0, gt=-1, description="Annual yield on BTC holdings")
    platform_fee_from_yield_pct: float = Field(default=0.0, ge=0, le=1)
    platform_exchange_fee_pct: float = Field(default=0.0, ge=0, le=1)
    cagr_decay: Optional[CagrDecay] = None


class PlatformTreasury(BaseModel):
    """The platform's own treasury policy."""
    yearly_yield_pct: float = Field(default=0.0, gt=-1, description="Annual yield on collected fees")


class Simulation(BaseModel):
    """Simulator options."""
    auto_draw_to_target: bool = Field(default=True, description="Symmetric LTV rebalancing")
    snapshot_step: Optional[int] = Field(default=None, ge=1, description="Overrides market.snapshot_step")

    @field_validator("snapshot_step", mode="before")
    @classmethod
    def validate_snapshot_step(cls, v):
        """Accept integral floats like 3.0 from YAML; reject 3.7."""
        if isinstance(v, float) and not v.is_integer():
            raise ValueError(f"snapshot_step must be a whole number of months, got {v}")
        return v


class ScenarioConfig(BaseModel):
    """Complete configuration for one projection scenario."""
    market: MarketConditions
    user: ParticipantConfig
    referrals: List[ReferralNode] = Field(default_factory=list)
    platform_users: PlatformUsersData = Field(
        default_factory=lambda: PlatformUsersData(user_starts=0, user_ends=0)
    )
    platform_treasury: PlatformTreasury = Field(default_factory=PlatformTreasury)
    simulation: Simulation = Field(default_factory=Simulation)

    def to_user_input(self) -> UserSimulationInput:
        """Build the single-user simulator input."""
        return UserSimulationInput(
            market=self.market,
            contribution=self.user.contribution,
            tiers=self.user.tiers,
            lending=self.user.lending,
        )

    def compute_hash(self) -> str:
        """Compute config hash for reproducibility."""
        config_dict = self.model_dump()
        config_str = json.dumps(config_dict, sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScenarioConfig':
        """Create config from dictionary."""
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump()
