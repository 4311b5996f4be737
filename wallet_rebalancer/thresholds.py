from __future__ import annotations

import math
from typing import Any, Mapping, Optional

from wallet_rebalancer.models import DEFAULT_THRESHOLD_PERCENT, ThresholdConfig


def effective_threshold(token_id: str, config: ThresholdConfig) -> float:
    """Per-token override when it is a finite number, else the global percent."""
    v = (config.by_token_id or {}).get(token_id)
    if isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v):
        return float(v)
    return config.global_percent


def thresholds_from_wallet(
    threshold_percent: Any, config: Optional[Mapping[str, Any]] = None
) -> ThresholdConfig:
    by_token = {}
    if isinstance(config, Mapping):
        raw = config.get("thresholds_by_token_id")
        if isinstance(raw, Mapping):
            by_token = dict(raw)
    if isinstance(threshold_percent, bool) or not isinstance(threshold_percent, (int, float)):
        threshold_percent = DEFAULT_THRESHOLD_PERCENT
    return ThresholdConfig(global_percent=threshold_percent, by_token_id=by_token)


def as_threshold_config(v: Any) -> ThresholdConfig:
    if isinstance(v, ThresholdConfig):
        return v
    if isinstance(v, Mapping):
        return ThresholdConfig.model_validate(dict(v))
    return ThresholdConfig()
