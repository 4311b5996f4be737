import math
import random

from wallet_rebalancer.deviation import analyze_deviations
from wallet_rebalancer.models import Holding, Target, ThresholdConfig
from wallet_rebalancer.numeric import round_usd
from wallet_rebalancer.rebalancer import calculate_rebalance_swaps, sum_usd_by_token


def _random_portfolio(rng):
    n = rng.randint(2, 7)
    ids = [f"T{i}" for i in range(n)]
    cuts = sorted(rng.sample(range(1, 100), n - 1))
    weights = [b - a for a, b in zip([0] + cuts, cuts + [100])]
    targets = [Target(token_id=t, target_weight_percent=w) for t, w in zip(ids, weights)]
    holdings = []
    for t in ids:
        usd = 0.0 if rng.random() < 0.2 else round(rng.uniform(0, 5000), 2)
        qty = 0.0 if usd == 0 else round(usd / rng.uniform(0.05, 50), 6)
        holdings.append(Holding(token_id=t, quantity=qty, usd_value=usd))
    total = sum(h.usd_value for h in holdings)
    thresholds = ThresholdConfig(
        global_percent=rng.uniform(1, 15), by_token_id={ids[0]: rng.uniform(1, 15)}
    )
    return targets, holdings, total, thresholds


def test_conservation_and_no_self_swap():
    rng = random.Random(7)
    for _ in range(200):
        targets, holdings, total, thresholds = _random_portfolio(rng)
        plan = calculate_rebalance_swaps(targets, holdings, total, thresholds)
        assert plan.total_sell_usd == plan.total_buy_usd
        assert plan.total_sell_usd == round_usd(sum(s.usd_amount for s in plan.swaps))
        for s in plan.swaps:
            assert s.from_token_id != s.to_token_id
            assert s.usd_amount > 0
            for q in (s.from_quantity, s.to_quantity):
                assert q is None or math.isfinite(q)


def test_moves_never_exceed_imbalance():
    rng = random.Random(11)
    for _ in range(200):
        targets, holdings, total, thresholds = _random_portfolio(rng)
        plan = calculate_rebalance_swaps(targets, holdings, total, thresholds)
        if total <= 0:
            continue
        usd = sum_usd_by_token(holdings)
        for t in targets:
            imbalance = abs(usd.get(t.token_id, 0.0) - t.target_weight_percent / 100 * total)
            moved = sum(
                s.usd_amount
                for s in plan.swaps
                if t.token_id in (s.from_token_id, s.to_token_id)
            )
            assert moved <= imbalance + 0.01 * max(1, len(plan.swaps))


def test_breaching_tokens_only_appear_in_needed_swaps():
    rng = random.Random(3)
    for _ in range(200):
        targets, holdings, total, thresholds = _random_portfolio(rng)
        plan = calculate_rebalance_swaps(targets, holdings, total, thresholds)
        breaching = {
            d.token_id
            for d in analyze_deviations(targets, sum_usd_by_token(holdings), total, thresholds)
        }
        for s in plan.swaps:
            if s.from_token_id in breaching or s.to_token_id in breaching:
                assert s.is_needed_by_thresholds
            else:
                assert not s.is_needed_by_thresholds


def test_exactly_on_target_is_idempotent():
    targets = [
        Target(token_id="A", target_weight_percent=25),
        Target(token_id="B", target_weight_percent=25),
        Target(token_id="C", target_weight_percent=50),
    ]
    holdings = [
        Holding(token_id="A", quantity=1, usd_value=250.0),
        Holding(token_id="B", quantity=2, usd_value=250.0),
        Holding(token_id="C", quantity=3, usd_value=500.0),
    ]
    plan = calculate_rebalance_swaps(targets, holdings, 1000.0, ThresholdConfig())
    assert plan.swaps == []
    assert plan.total_sell_usd == plan.total_buy_usd == 0.0


def test_malformed_numbers_are_treated_as_zero():
    targets = [
        {"token_id": "A", "target_weight_percent": 50},
        {"token_id": "B", "target_weight_percent": float("nan")},
        {"target_weight_percent": 10},
    ]
    holdings = [
        {"token_id": "A", "quantity": None, "usd_value": float("nan")},
        {"token_id": "B", "quantity": "lots", "usd_value": 100.0},
    ]
    plan = calculate_rebalance_swaps(targets, holdings, 100.0, ThresholdConfig())
    assert [(s.from_token_id, s.to_token_id, s.usd_amount) for s in plan.swaps] == [
        ("B", "A", 50.0)
    ]
    # B has no usable quantity and A no usable value
    assert plan.swaps[0].from_quantity is None
    assert plan.swaps[0].to_quantity is None


def test_bad_collections_degrade_to_empty_plan():
    for targets, holdings, total in [
        (None, None, 100.0),
        ("A", [], 100.0),
        ([Target(token_id="A", target_weight_percent=100)], 42, float("nan")),
        ([Target(token_id="A", target_weight_percent=100)], [], float("inf")),
    ]:
        plan = calculate_rebalance_swaps(targets, holdings, total, None)
        assert plan.swaps == []
        assert plan.total_sell_usd == plan.total_buy_usd == 0.0
