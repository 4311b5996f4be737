from __future__ import annotations

import logging
import math
from typing import Dict, Iterable

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from wallet_rebalancer.models import PriceQuote

log = logging.getLogger(__name__)

KRAKEN_TICKER_URL = "https://api.kraken.com/0/public/Ticker"
COINGECKO_SIMPLE_URL = "https://api.coingecko.com/api/v3/simple/price"

FALLBACK_ADA_USD = 0.5

# Extend as more Cardano native tokens are targeted.
COINGECKO_IDS = {
    "ADA": "cardano",
    "AGIX": "singularitynet",
    "RJV": "rejuve-ai",
    "COPI": "cornucopias",
    "DJED": "djed",
}


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(min=0.5, max=4),
    retry=retry_if_exception_type(requests.RequestException),
    reraise=True,
)
def _http_json(url: str, params: Dict[str, str]) -> dict:
    r = requests.get(url, params=params, timeout=5)
    r.raise_for_status()
    return r.json() or {}


def _positive(v) -> float:
    try:
        p = float(v)
    except (TypeError, ValueError):
        return 0.0
    return p if math.isfinite(p) and p > 0 else 0.0


def _kraken_last(result: dict, key: str) -> float:
    rec = result.get(key) or {}
    last = (rec.get("c") or [None])[0]
    return _positive(last)


def fetch_ada_usd() -> PriceQuote:
    """ADA/USD from Kraken, then CoinGecko, else a flagged fallback price."""
    try:
        data = _http_json(KRAKEN_TICKER_URL, {"pair": "ADAUSD"})
        price = _kraken_last(data.get("result") or {}, "ADAUSD")
        if not price:
            data = _http_json(COINGECKO_SIMPLE_URL, {"ids": "cardano", "vs_currencies": "usd"})
            price = _positive((data.get("cardano") or {}).get("usd"))
    except Exception as e:
        log.warning("[pricing][ADA] lookup failed: %s", e)
        price = 0.0
    if not price:
        log.warning("[pricing][ADA] using fallback rate $%.2f", FALLBACK_ADA_USD)
        return PriceQuote(price=FALLBACK_ADA_USD, is_fallback=True)
    return PriceQuote(price=price, is_fallback=False)


def fetch_usd_prices_for_tickers(tickers: Iterable[str]) -> Dict[str, float]:
    """TICKER -> USD price. Kraken first, CoinGecko fills whatever is missing."""
    cleaned = sorted({(t or "").upper() for t in (tickers or []) if t})
    out: Dict[str, float] = {}
    if not cleaned:
        return out

    pairs = ",".join(f"{t}USD" for t in cleaned)
    try:
        result = _http_json(KRAKEN_TICKER_URL, {"pair": pairs}).get("result") or {}
        for key in result:
            price = _kraken_last(result, key)
            if not price:
                continue
            k = key.upper()
            for t in cleaned:
                if k == f"{t}USD" or (k.endswith("USD") and t in k):
                    out.setdefault(t, price)
                    break
    except Exception as e:
        log.error("[pricing][Kraken] error fetching pairs %s: %s", pairs, e)

    missing = [t for t in cleaned if t not in out]
    if not missing:
        return out
    log.info("[pricing][Kraken] no price for %s", ", ".join(missing))

    ids = {t: COINGECKO_IDS.get(t, t.lower()) for t in missing}
    try:
        data = _http_json(
            COINGECKO_SIMPLE_URL,
            {"ids": ",".join(sorted(set(ids.values()))), "vs_currencies": "usd"},
        )
        for t, cid in ids.items():
            price = _positive((data.get(cid) or {}).get("usd"))
            if price:
                out[t] = price
    except Exception as e:
        log.error("[pricing][CoinGecko] error fetching simple price: %s", e)
    return out
