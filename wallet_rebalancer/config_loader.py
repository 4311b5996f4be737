from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from wallet_rebalancer.holdings import labels_by_token
from wallet_rebalancer.models import Position, Target, TargetSet, ThresholdConfig, TokenMeta
from wallet_rebalancer.thresholds import thresholds_from_wallet


class WalletConfig(BaseModel):
    """One wallet as described in a YAML file.

    ``threshold_percent`` and ``config`` mirror the stored wallet row; per-token
    overrides live under ``config.thresholds_by_token_id``.
    """

    id: str
    name: Optional[str] = None
    threshold_percent: Optional[float] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    tokens: Dict[str, TokenMeta] = Field(default_factory=dict)
    targets: List[Target] = Field(default_factory=list)
    positions: List[Position] = Field(default_factory=list)
    # read balances from chain when no positions are listed
    address: Optional[str] = None
    prices: Dict[str, float] = Field(default_factory=dict)
    price_source: Literal["static", "live"] = "static"

    @field_validator("targets")
    @classmethod
    def targets_sum_to_100(cls, v: List[Target]) -> List[Target]:
        return TargetSet(targets=v).targets

    @field_validator("prices")
    @classmethod
    def upper(cls, v: Dict[str, float]) -> Dict[str, float]:
        return {k.upper(): float(p) for k, p in v.items()}

    @property
    def label(self) -> str:
        return self.name or self.id

    def thresholds(self) -> ThresholdConfig:
        return thresholds_from_wallet(self.threshold_percent, self.config)

    def token_labels(self) -> Dict[str, str]:
        return labels_by_token(self.tokens)


def load_wallet_config(path: str | Path) -> WalletConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")
    with open(p, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    return WalletConfig.model_validate(raw)
