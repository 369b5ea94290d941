"""Pydantic schema for configuration validation."""

import hashlib
import json
from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator, model_validator


class Token(BaseModel):
    """Base token (PLN) parameters."""
    name: str = Field(default="PLN", description="Base token symbol")
    decimals: int = Field(default=18, ge=0, le=36, description="Token decimals")
    initial_supply: int = Field(gt=0, description="Initial supply in whole tokens, owned by the admin")


class Asset(BaseModel):
    """Tracked asset."""
    symbol: str = Field(min_length=1, description="Asset symbol")
    initial_price: int = Field(gt=0, description="Initial price in 18-decimal fixed point")


class Assets(BaseModel):
    """Tracked assets; the first one is the stable quote asset."""
    items: List[Asset] = Field(min_length=2, description="Asset list, stable asset first")
    max_price_change_permille: int = Field(
        default=100, ge=0, lt=1000,
        description="Upper bound on a single price move, in permille of price"
    )

    @field_validator("items")
    @classmethod
    def validate_stable_asset(cls, v):
        """The quote asset is valued at face value, so its price must be 1e18."""
        if v and v[0].initial_price != 10 ** 18:
            raise ValueError("first asset is the stable asset and must be priced at 1e18")
        return v


class Benchmark(BaseModel):
    """Benchmark portfolio allocation."""
    weights: List[int] = Field(description="Allocation per asset in percent")

    @field_validator("weights")
    @classmethod
    def validate_weights(cls, v):
        """Ensure weights are non-negative and sum to 100."""
        if any(w < 0 for w in v):
            raise ValueError("benchmark weights must be non-negative")
        if sum(v) != 100:
            raise ValueError(f"benchmark weights must sum to 100, got {sum(v)}")
        return v


class ScheduleSegment(BaseModel):
    """Issuance curve segment (times in seconds since the issuance epoch)."""
    max_time: int = Field(gt=0, description="End of the segment window")
    offset_x: int = Field(ge=0, description="Segment start")
    offset_y: int = Field(ge=0, description="Target supply at offset_x, in wei")
    rate: int = Field(ge=0, description="Issuance rate in wei per second")


class IssuanceScheduleConfig(BaseModel):
    """Piecewise linear issuance schedule."""
    epoch: int = Field(default=1654473600, ge=0, description="Schedule reference timestamp")
    segments: List[ScheduleSegment] = Field(min_length=1, description="Ordered curve segments")

    @field_validator("segments")
    @classmethod
    def validate_increasing(cls, v):
        """Ensure max_time is strictly increasing."""
        for prev, seg in zip(v, v[1:]):
            if seg.max_time <= prev.max_time:
                raise ValueError("issuance segments must have strictly increasing max_time")
        return v


class Locks(BaseModel):
    """Lock period bounds in days."""
    min_lock_days: int = Field(default=90, gt=0, description="Minimum lock period")
    max_lock_days: int = Field(default=1405, gt=0, description="Lock period giving full voting power")

    @field_validator("max_lock_days")
    @classmethod
    def validate_max_lock(cls, v, info):
        """Ensure min < max lock period."""
        if "min_lock_days" in info.data and v <= info.data["min_lock_days"]:
            raise ValueError("max_lock_days must be greater than min_lock_days")
        return v


class Fees(BaseModel):
    """Reward split between portfolio owner and delegator."""
    delegator_fee_percent: int = Field(default=20, ge=0, le=100, description="Owner share of delegator rewards")


class Actors(BaseModel):
    """Test identities and roles."""
    num_wallets: int = Field(default=20, ge=2, description="Test wallets, the first one is admin")
    num_managers: int = Field(default=3, ge=1, description="Portfolio managers")
    num_delegators: int = Field(default=8, ge=0, description="Delegators")
    delegator_sample_percent: float = Field(default=0.5, description="Share of delegators acting per handler")
    distribution_divisor: int = Field(
        default=100, gt=0,
        description="Each wallet receives admin_balance / num_wallets / divisor at init"
    )

    @field_validator("delegator_sample_percent")
    @classmethod
    def validate_sample_percent(cls, v):
        if not 0 < v <= 1:
            raise ValueError(f"delegator_sample_percent must be in (0, 1], got {v}")
        return v

    @model_validator(mode="after")
    def validate_capacity(self):
        """Ensure wallets cover admin, managers and delegators."""
        needed = 1 + self.num_managers + self.num_delegators
        if needed > self.num_wallets:
            raise ValueError(
                f"num_wallets ({self.num_wallets}) must cover admin + managers + delegators ({needed})"
            )
        return self


class Simulation(BaseModel):
    """Simulation parameters."""
    num_rounds: int = Field(default=10, gt=0, description="Rounds per run")
    random_seed: int = Field(default=42, description="Random seed for reproducibility")
    start_timestamp: int = Field(default=1654473600, ge=0, description="Clock value at start of run")
    max_time_step_days: int = Field(default=90, ge=0, description="Upper bound on time advanced per round")
    strict_invariants: bool = Field(
        default=False,
        description="Re-check ledger conservation after every mutation"
    )


class Config(BaseModel):
    """Complete configuration for the vePLN simulator."""
    token: Token
    assets: Assets
    benchmark: Benchmark
    issuance_schedule: IssuanceScheduleConfig
    locks: Locks = Field(default_factory=Locks)
    fees: Fees = Field(default_factory=Fees)
    actors: Actors = Field(default_factory=Actors)
    simulation: Simulation = Field(default_factory=Simulation)

    @model_validator(mode="after")
    def validate_benchmark_assets(self):
        """Ensure the benchmark allocates across exactly the tracked assets."""
        if len(self.benchmark.weights) != len(self.assets.items):
            raise ValueError(
                f"benchmark has {len(self.benchmark.weights)} weights "
                f"for {len(self.assets.items)} assets"
            )
        return self

    def compute_hash(self) -> str:
        """Compute config hash for reproducibility."""
        config_dict = self.model_dump()
        config_str = json.dumps(config_dict, sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create config from dictionary."""
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump()
