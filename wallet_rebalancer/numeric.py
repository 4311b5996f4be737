from __future__ import annotations

import math
from typing import Any


def finite_or_zero(x: Any) -> float:
    if x is None or isinstance(x, bool):
        return 0.0
    try:
        v = float(x)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(v):
        return 0.0
    return v


def round_usd(x: float) -> float:
    """Round half up to whole cents."""
    v = finite_or_zero(x)
    scaled = v * 100
    # amounts this large have no sub-cent digits left to round
    if not math.isfinite(scaled):
        return v
    return math.floor(scaled + 0.5) / 100
