from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from wallet_rebalancer.numeric import finite_or_zero, round_usd

DEFAULT_THRESHOLD_PERCENT = 10.0


class TokenMeta(BaseModel):
    ticker: Optional[str] = None
    name: Optional[str] = None
    is_ada: bool = False
    # on-chain identity; ADA itself has neither
    policy_id: Optional[str] = None
    asset_name: Optional[str] = None
    decimals: int = Field(0, ge=0)

    def label(self) -> str:
        if self.ticker:
            return self.ticker
        if self.is_ada:
            return "ADA"
        return self.name or "Token"


class Holding(BaseModel):
    token_id: Optional[str] = Field(None, description="None when the asset is not registered")
    quantity: float = 0.0
    usd_value: float = 0.0
    ticker: Optional[str] = None
    name: Optional[str] = None
    is_ada: bool = False

    @field_validator("quantity", "usd_value", mode="before")
    @classmethod
    def coerce_number(cls, v: Any) -> float:
        return finite_or_zero(v)


class Position(BaseModel):
    """Raw balance of one token before it is valued in USD."""

    token_id: str
    quantity: float = Field(0.0, ge=0.0)
    usd_value: Optional[float] = None


class Target(BaseModel):
    token_id: str
    target_weight_percent: float = 0.0

    @field_validator("target_weight_percent", mode="before")
    @classmethod
    def coerce_number(cls, v: Any) -> float:
        return finite_or_zero(v)


class TargetSet(BaseModel):
    """Targets as they are saved for a wallet; weights must add up to 100.00."""

    targets: List[Target] = Field(default_factory=list)

    @field_validator("targets")
    @classmethod
    def validate_weights(cls, targets: List[Target]) -> List[Target]:
        if not targets:
            raise ValueError("At least one target is required.")
        ids = [t.token_id for t in targets]
        if len(set(ids)) != len(ids):
            raise ValueError("Each token may only be targeted once.")
        if any(t.target_weight_percent < 0 or t.target_weight_percent > 100 for t in targets):
            raise ValueError("Target weights must be between 0 and 100.")
        total = sum(t.target_weight_percent for t in targets)
        if round(total * 100) != 10000:
            raise ValueError(f"Target weights must sum to 100.00, got {total:.2f}")
        return targets


class ThresholdConfig(BaseModel):
    # globalPercent / byTokenId are accepted as well as the field names
    model_config = ConfigDict(populate_by_name=True)

    global_percent: float = Field(DEFAULT_THRESHOLD_PERCENT, alias="globalPercent")
    by_token_id: Dict[str, float] = Field(default_factory=dict, alias="byTokenId")

    @field_validator("global_percent", mode="before")
    @classmethod
    def default_global(cls, v: Any) -> float:
        if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
            return DEFAULT_THRESHOLD_PERCENT
        return float(v)

    @field_validator("by_token_id", mode="before")
    @classmethod
    def drop_bad_overrides(cls, v: Any) -> Dict[str, float]:
        if not isinstance(v, dict):
            return {}
        out: Dict[str, float] = {}
        for k, x in v.items():
            if isinstance(x, bool) or not isinstance(x, (int, float)):
                continue
            if math.isfinite(x):
                out[str(k)] = float(x)
        return out


class Deviation(BaseModel):
    token_id: str
    actual_pct: float
    target_pct: float
    delta: float


class SwapSuggestion(BaseModel):
    from_token_id: str
    to_token_id: str
    usd_amount: float = Field(..., gt=0.0)
    from_ticker: Optional[str] = None
    to_ticker: Optional[str] = None
    # None when no per-unit price can be derived from current holdings
    from_quantity: Optional[float] = None
    to_quantity: Optional[float] = None
    is_needed_by_thresholds: bool = False


class RebalancePlan(BaseModel):
    swaps: List[SwapSuggestion] = Field(default_factory=list)
    total_sell_usd: float = 0.0
    total_buy_usd: float = 0.0
    note: Optional[str] = None

    def summary(self) -> Dict[str, float]:
        needed = sum(1 for s in self.swaps if s.is_needed_by_thresholds)
        return {
            "sells": round_usd(self.total_sell_usd),
            "buys": round_usd(self.total_buy_usd),
            "needed": needed,
            "optional": len(self.swaps) - needed,
        }


class PriceQuote(BaseModel):
    price: float = Field(..., ge=0.0)
    is_fallback: bool = False
