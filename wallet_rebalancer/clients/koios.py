from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Tuple

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from wallet_rebalancer.models import Position, TokenMeta
from wallet_rebalancer.numeric import finite_or_zero

log = logging.getLogger(__name__)

KOIOS_BASE_URL = "https://api.koios.rest/api/v1"
LOVELACE_PER_ADA = 1_000_000


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(min=0.5, max=4),
    retry=retry_if_exception_type(requests.RequestException),
    reraise=True,
)
def _http_json(url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Any:
    r = requests.post(url, json=payload, headers=headers, timeout=10)
    r.raise_for_status()
    return r.json()


class KoiosClient:
    def __init__(self, api_key: Optional[str] = None, base_url: str = KOIOS_BASE_URL):
        self.api_key = api_key if api_key is not None else os.getenv("KOIOS_API_KEY", "")
        self.base_url = base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        h = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.api_key:
            h["Authorization"] = f"Bearer {self.api_key}"
        return h

    def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        return _http_json(self.base_url + path, payload, self._headers())

    def address_lovelace(self, address: str) -> int:
        data = self._post("/address_info", {"_addresses": [address]})
        rows = data if isinstance(data, list) else []
        return int(finite_or_zero((rows[0] if rows else {}).get("balance")))

    def address_assets(self, address: str) -> List[Dict[str, Any]]:
        data = self._post("/address_assets", {"_addresses": [address]})
        rows = data if isinstance(data, list) else []
        # responses may nest the assets under asset_list per address
        if rows and isinstance(rows[0], dict) and "asset_list" in rows[0]:
            return list(rows[0].get("asset_list") or [])
        return rows


def _asset_key(policy_id: Optional[str], asset_name: Optional[str]) -> Tuple[str, str]:
    return ((policy_id or "").lower(), (asset_name or "").lower())


def fetch_positions(
    address: str,
    tokens: Mapping[str, TokenMeta],
    client: Optional[KoiosClient] = None,
) -> List[Position]:
    """On-chain balances of ``address`` for the registered tokens.

    Assets that are not in ``tokens`` are skipped.
    """
    client = client or KoiosClient()
    by_key = {
        _asset_key(meta.policy_id, meta.asset_name): tid
        for tid, meta in tokens.items()
        if meta.policy_id and not meta.is_ada
    }
    out: List[Position] = []

    ada_id = next((tid for tid, meta in tokens.items() if meta.is_ada), None)
    if ada_id:
        lovelace = client.address_lovelace(address)
        out.append(Position(token_id=ada_id, quantity=lovelace / LOVELACE_PER_ADA))

    for a in client.address_assets(address):
        tid = by_key.get(_asset_key(a.get("policy_id"), a.get("asset_name")))
        if tid is None:
            log.debug("skipping unregistered asset %s.%s", a.get("policy_id"), a.get("asset_name"))
            continue
        raw = max(0.0, finite_or_zero(a.get("quantity")))
        out.append(Position(token_id=tid, quantity=raw / 10 ** tokens[tid].decimals))
    return out
