from __future__ import annotations

import math
from typing import Dict, Iterable, Optional

from wallet_rebalancer.models import Deviation, RebalancePlan
from wallet_rebalancer.numeric import finite_or_zero


def _label(token_id: str, ticker: Optional[str], labels: Optional[Dict[str, str]]) -> str:
    return (labels or {}).get(token_id) or ticker or "Token"


def _qty(q: Optional[float], label: str) -> str:
    if q is None or not math.isfinite(q):
        return ""
    return f" (~{q:.4f} {label})"


def format_rebalance_message(
    wallet_label: str,
    plan: RebalancePlan,
    token_labels: Optional[Dict[str, str]] = None,
) -> str:
    if not plan.swaps:
        return f"No rebalancing needed for wallet {wallet_label}."

    lines = [f"Rebalance suggestions for wallet {wallet_label}"]
    for s in plan.swaps:
        src = _label(s.from_token_id, s.from_ticker, token_labels)
        dst = _label(s.to_token_id, s.to_ticker, token_labels)
        flag = "NEEDED" if s.is_needed_by_thresholds else "OPTIONAL"
        lines.append(
            f"- [{flag}] Sell ${s.usd_amount:.2f} of {src}{_qty(s.from_quantity, src)}"
            f" -> buy {dst}{_qty(s.to_quantity, dst)}"
        )
    lines.append(f"Totals: Sell ${plan.total_sell_usd:.2f}, Buy ${plan.total_buy_usd:.2f}")
    return "\n".join(lines)


def format_deviation_alert(
    wallet_label: str,
    deviations: Iterable[Deviation],
    total_usd_value: float,
    global_percent: float,
    token_labels: Optional[Dict[str, str]] = None,
) -> str:
    lines = [
        f"Portfolio deviation alert for wallet {wallet_label}",
        f"Global threshold: {finite_or_zero(global_percent):.2f}%",
        f"Total USD value: ${finite_or_zero(total_usd_value):.2f}",
        "",
    ]
    for d in deviations:
        label = _label(d.token_id, None, token_labels)
        lines.append(
            f"- {label}: actual {d.actual_pct:.2f}% vs target {d.target_pct:.2f}%"
            f" (delta {d.delta:+.2f}%)"
        )
    return "\n".join(lines)
