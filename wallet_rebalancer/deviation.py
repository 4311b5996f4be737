from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from wallet_rebalancer.formatting import format_deviation_alert
from wallet_rebalancer.models import Deviation, Holding, Target, ThresholdConfig
from wallet_rebalancer.notifiers import discord
from wallet_rebalancer.numeric import finite_or_zero
from wallet_rebalancer.rebalancer import coerce_rows, sum_usd_by_token
from wallet_rebalancer.thresholds import as_threshold_config, effective_threshold

log = logging.getLogger(__name__)


def analyze_deviations(
    targets: Iterable[Target],
    current_usd_by_token_id: Mapping[str, float],
    total_usd_value: float,
    thresholds: ThresholdConfig,
) -> List[Deviation]:
    """Targets whose actual weight drifted past their threshold, worst first.

    A targeted token missing from ``current_usd_by_token_id`` counts as
    sold off to zero.
    """
    total = finite_or_zero(total_usd_value)
    if total <= 0:
        return []
    thresholds = as_threshold_config(thresholds)
    usd_by_id = current_usd_by_token_id if isinstance(current_usd_by_token_id, Mapping) else {}

    out: List[Deviation] = []
    for t in coerce_rows(targets, Target):
        actual_pct = finite_or_zero(usd_by_id.get(t.token_id)) / total * 100
        delta = actual_pct - t.target_weight_percent
        if abs(delta) > effective_threshold(t.token_id, thresholds):
            out.append(
                Deviation(
                    token_id=t.token_id,
                    actual_pct=actual_pct,
                    target_pct=t.target_weight_percent,
                    delta=delta,
                )
            )
    out.sort(key=lambda d: abs(d.delta), reverse=True)
    return out


def notify_if_deviations_exceed_threshold(
    wallet_label: str,
    targets: Iterable[Target],
    holdings: Iterable[Holding],
    total_usd_value: float,
    thresholds: ThresholdConfig,
    token_labels: Optional[Dict[str, str]] = None,
    notifier: Optional[Callable[[str], object]] = None,
) -> List[Deviation]:
    deviations = analyze_deviations(
        targets, sum_usd_by_token(holdings), total_usd_value, thresholds
    )
    if not deviations:
        log.info("wallet %s within thresholds", wallet_label)
        return deviations

    message = format_deviation_alert(
        wallet_label,
        deviations,
        total_usd_value,
        as_threshold_config(thresholds).global_percent,
        token_labels,
    )
    notifier = notifier or discord.notify
    try:
        notifier(message)
    except Exception as e:
        log.warning("deviation alert for wallet %s not delivered: %s", wallet_label, e)
    return deviations
