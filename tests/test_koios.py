import pytest
import requests

from wallet_rebalancer.clients import koios
from wallet_rebalancer.models import TokenMeta

DJED_POLICY = "8db269c3ec630e06ae29f74bc39edd1f87c819f1056206e879a1cd61"
DJED_NAME = "446a65644d6963726f555344"

TOKENS = {
    "ada": TokenMeta(ticker="ADA", is_ada=True),
    "djed": TokenMeta(ticker="DJED", policy_id=DJED_POLICY, asset_name=DJED_NAME, decimals=6),
    "agix": TokenMeta(ticker="AGIX", policy_id="f43a62fdc3965df486de8a0d32fe800963589c41b38946602a0dc535", asset_name="41474958", decimals=8),
}

INFO_URL = koios.KOIOS_BASE_URL + "/address_info"
ASSETS_URL = koios.KOIOS_BASE_URL + "/address_assets"


def _fake_http(responses):
    """responses: {url: payload or exception}; records payload and headers per call."""
    calls = []

    def fake(url, payload, headers):
        calls.append((url, payload, dict(headers)))
        r = responses.get(url)
        if isinstance(r, Exception):
            raise r
        return r if r is not None else []

    return fake, calls


def test_positions_from_flat_asset_list(monkeypatch):
    fake, calls = _fake_http(
        {
            INFO_URL: [{"address": "addr1", "balance": "2500000000"}],
            ASSETS_URL: [
                {"policy_id": DJED_POLICY, "asset_name": DJED_NAME, "quantity": "150000000"},
                {"policy_id": "ff" * 28, "asset_name": "6a756e6b", "quantity": "999"},
            ],
        }
    )
    monkeypatch.setattr(koios, "_http_json", fake)
    out = koios.fetch_positions("addr1", TOKENS, koios.KoiosClient(api_key=""))
    assert [(p.token_id, p.quantity) for p in out] == [("ada", 2500.0), ("djed", 150.0)]
    assert calls[0][1] == {"_addresses": ["addr1"]}
    assert "Authorization" not in calls[0][2]


def test_positions_from_nested_asset_list(monkeypatch):
    fake, _ = _fake_http(
        {
            INFO_URL: [{"balance": "1000000"}],
            ASSETS_URL: [
                {
                    "address": "addr1",
                    "asset_list": [
                        {"policy_id": TOKENS["agix"].policy_id, "asset_name": "41474958", "quantity": "40000000000"},
                    ],
                }
            ],
        }
    )
    monkeypatch.setattr(koios, "_http_json", fake)
    out = koios.fetch_positions("addr1", TOKENS, koios.KoiosClient(api_key=""))
    assert [(p.token_id, p.quantity) for p in out] == [("ada", 1.0), ("agix", 400.0)]


def test_api_key_from_env_is_sent_as_bearer(monkeypatch):
    monkeypatch.setenv("KOIOS_API_KEY", "secret")
    fake, calls = _fake_http({INFO_URL: [], ASSETS_URL: []})
    monkeypatch.setattr(koios, "_http_json", fake)
    out = koios.fetch_positions("addr1", TOKENS)
    assert [(p.token_id, p.quantity) for p in out] == [("ada", 0.0)]
    assert [c[0] for c in calls] == [INFO_URL, ASSETS_URL]
    for _, _, headers in calls:
        assert headers["Authorization"] == "Bearer secret"
        assert headers["Content-Type"] == "application/json"


def test_malformed_quantity_counts_as_zero(monkeypatch):
    fake, _ = _fake_http(
        {
            INFO_URL: [{"balance": None}],
            ASSETS_URL: [{"policy_id": DJED_POLICY.upper(), "asset_name": DJED_NAME, "quantity": "lots"}],
        }
    )
    monkeypatch.setattr(koios, "_http_json", fake)
    out = koios.fetch_positions("addr1", TOKENS, koios.KoiosClient(api_key=""))
    assert [(p.token_id, p.quantity) for p in out] == [("ada", 0.0), ("djed", 0.0)]


def test_http_errors_propagate(monkeypatch):
    fake, _ = _fake_http({INFO_URL: requests.ConnectionError("offline")})
    monkeypatch.setattr(koios, "_http_json", fake)
    with pytest.raises(requests.ConnectionError):
        koios.fetch_positions("addr1", TOKENS, koios.KoiosClient(api_key=""))
