from __future__ import annotations

from typing import Dict, Iterable, List, Mapping

from wallet_rebalancer.models import Holding, Position, Target, TokenMeta
from wallet_rebalancer.numeric import finite_or_zero

# DJED is a USD stablecoin; valued at par instead of asking an exchange
PEGGED_USD = {"DJED": 1.0}


def build_holdings(
    positions: Iterable[Position],
    tokens: Mapping[str, TokenMeta],
    usd_by_ticker: Mapping[str, float],
    ada_usd: float,
) -> List[Holding]:
    prices = {k.upper(): finite_or_zero(v) for k, v in (usd_by_ticker or {}).items()}
    out: List[Holding] = []
    for p in positions:
        meta = tokens.get(p.token_id) or TokenMeta()
        ticker = (meta.ticker or ("ADA" if meta.is_ada else "")).upper() or None
        if p.usd_value is not None:
            usd = finite_or_zero(p.usd_value)
        elif meta.is_ada:
            usd = p.quantity * finite_or_zero(ada_usd)
        elif ticker in PEGGED_USD:
            usd = p.quantity * PEGGED_USD[ticker]
        else:
            # unknown price is worth nothing rather than an error
            usd = p.quantity * prices.get(ticker or "", 0.0)
        out.append(
            Holding(
                token_id=p.token_id,
                quantity=p.quantity,
                usd_value=usd,
                ticker=ticker,
                name=meta.name or ("Cardano ADA" if meta.is_ada else None),
                is_ada=meta.is_ada,
            )
        )
    return out


def restrict_to_targets(holdings: Iterable[Holding], targets: Iterable[Target]) -> List[Holding]:
    ids = {t.token_id for t in targets}
    return [h for h in holdings if h.token_id in ids]


def total_usd_value(holdings: Iterable[Holding]) -> float:
    return sum(h.usd_value for h in holdings)


def priced_tickers(tokens: Mapping[str, TokenMeta]) -> List[str]:
    """Tickers that need an exchange quote (ADA and pegged tokens do not)."""
    out = set()
    for meta in tokens.values():
        if meta.is_ada or not meta.ticker:
            continue
        t = meta.ticker.upper()
        if t not in PEGGED_USD:
            out.add(t)
    return sorted(out)


def labels_by_token(tokens: Mapping[str, TokenMeta]) -> Dict[str, str]:
    return {tid: meta.label() for tid, meta in tokens.items()}
