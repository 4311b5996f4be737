from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from wallet_rebalancer.models import (
    Holding,
    RebalancePlan,
    SwapSuggestion,
    Target,
    ThresholdConfig,
    TokenMeta,
)
from wallet_rebalancer.numeric import finite_or_zero, round_usd
from wallet_rebalancer.thresholds import as_threshold_config, effective_threshold

log = logging.getLogger(__name__)

# |delta_usd| at or below this is float noise, not an imbalance
IMBALANCE_EPSILON_USD = 0.0001
# a bucket with at most this much left is exhausted
RESIDUAL_EPSILON_USD = 0.009

M = TypeVar("M", bound=BaseModel)


def coerce_rows(items: Any, model: Type[M]) -> List[M]:
    """Best-effort conversion of an input collection into models.

    Anything that is not a collection of rows becomes an empty list and rows
    that do not validate are skipped.
    """
    if items is None or isinstance(items, (str, bytes, dict)):
        return []
    try:
        rows = list(items)
    except TypeError:
        return []
    out: List[M] = []
    for item in rows:
        if isinstance(item, model):
            out.append(item)
            continue
        try:
            out.append(model.model_validate(item))
        except ValidationError as e:
            log.debug("skipping malformed %s row %r: %s", model.__name__, item, e)
    return out


def sum_usd_by_token(holdings: Iterable[Holding]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for h in coerce_rows(holdings, Holding):
        if not h.token_id:
            continue
        out[h.token_id] = out.get(h.token_id, 0.0) + h.usd_value
    return out


class _Bucket(BaseModel):
    """Working residual for one side of the matcher."""

    token_id: str
    usd: float


def _unit_price(usd: float, qty: float) -> Optional[float]:
    if usd > 0 and qty > 0:
        return usd / qty
    return None


def calculate_rebalance_swaps(
    targets: Iterable[Target],
    holdings: Iterable[Holding],
    total_usd_value: float,
    thresholds: ThresholdConfig,
    token_meta: Optional[Dict[str, TokenMeta]] = None,
) -> RebalancePlan:
    target_pct: Dict[str, float] = {}
    for t in coerce_rows(targets, Target):
        target_pct[t.token_id] = t.target_weight_percent

    thresholds = as_threshold_config(thresholds)
    total = finite_or_zero(total_usd_value)
    if total <= 0:
        return RebalancePlan(swaps=[], note="No portfolio value")
    if not target_pct:
        return RebalancePlan(swaps=[])

    usd_by_id: Dict[str, float] = {tid: 0.0 for tid in target_pct}
    qty_by_id: Dict[str, float] = {tid: 0.0 for tid in target_pct}
    for h in coerce_rows(holdings, Holding):
        # untargeted holdings are never sold
        if not h.token_id or h.token_id not in target_pct:
            continue
        usd_by_id[h.token_id] += h.usd_value
        qty_by_id[h.token_id] += h.quantity

    surpluses: List[_Bucket] = []
    deficits: List[_Bucket] = []
    breaches = set()
    for tid, pct in target_pct.items():
        current_pct = usd_by_id[tid] / total * 100
        delta_pct = current_pct - pct
        delta_usd = delta_pct / 100 * total
        if delta_usd > IMBALANCE_EPSILON_USD:
            surpluses.append(_Bucket(token_id=tid, usd=abs(delta_usd)))
        elif delta_usd < -IMBALANCE_EPSILON_USD:
            deficits.append(_Bucket(token_id=tid, usd=abs(delta_usd)))
        if abs(delta_pct) > effective_threshold(tid, thresholds):
            breaches.add(tid)

    surpluses.sort(key=lambda b: b.usd, reverse=True)
    deficits.sort(key=lambda b: b.usd, reverse=True)

    meta = token_meta or {}
    swaps: List[SwapSuggestion] = []
    i = j = 0
    while i < len(surpluses) and j < len(deficits):
        s = surpluses[i]
        d = deficits[j]
        move = round_usd(min(s.usd, d.usd))
        if move <= 0:
            break

        from_price = _unit_price(usd_by_id[s.token_id], qty_by_id[s.token_id])
        to_price = _unit_price(usd_by_id[d.token_id], qty_by_id[d.token_id])
        swaps.append(
            SwapSuggestion(
                from_token_id=s.token_id,
                to_token_id=d.token_id,
                usd_amount=move,
                from_ticker=meta[s.token_id].ticker if s.token_id in meta else None,
                to_ticker=meta[d.token_id].ticker if d.token_id in meta else None,
                from_quantity=move / from_price if from_price else None,
                to_quantity=move / to_price if to_price else None,
                is_needed_by_thresholds=s.token_id in breaches or d.token_id in breaches,
            )
        )

        s.usd = round_usd(s.usd - move)
        d.usd = round_usd(d.usd - move)
        if s.usd <= RESIDUAL_EPSILON_USD:
            i += 1
        if d.usd <= RESIDUAL_EPSILON_USD:
            j += 1

    total_sell = round_usd(sum(x.usd_amount for x in swaps))
    log.debug(
        "rebalance: %d swaps, $%.2f moved, breaches=%s",
        len(swaps),
        total_sell,
        sorted(breaches),
    )
    return RebalancePlan(
        swaps=swaps,
        total_sell_usd=total_sell,
        total_buy_usd=total_sell,
        note="rebalance plan",
    )
