from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Dict, List, Tuple

import requests
from dotenv import load_dotenv
from pydantic import ValidationError

from wallet_rebalancer.clients.koios import fetch_positions
from wallet_rebalancer.config_loader import WalletConfig, load_wallet_config
from wallet_rebalancer.deviation import (
    analyze_deviations,
    notify_if_deviations_exceed_threshold,
)
from wallet_rebalancer.formatting import format_deviation_alert, format_rebalance_message
from wallet_rebalancer.holdings import (
    build_holdings,
    priced_tickers,
    restrict_to_targets,
    total_usd_value,
)
from wallet_rebalancer.models import Holding
from wallet_rebalancer.notifiers.discord import notify
from wallet_rebalancer.prices.oracle import fetch_ada_usd, fetch_usd_prices_for_tickers
from wallet_rebalancer.rebalancer import calculate_rebalance_swaps, sum_usd_by_token


def setup_logging() -> None:
    level = os.getenv("LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(path: str) -> WalletConfig:
    try:
        return load_wallet_config(path)
    except (FileNotFoundError, ValidationError) as e:
        raise SystemExit(f"Invalid wallet config {path}: {e}")


def _portfolio_holdings(cfg: WalletConfig) -> Tuple[List[Holding], float]:
    prices: Dict[str, float] = dict(cfg.prices)
    ada_usd = prices.get("ADA", 0.0)
    if cfg.price_source == "live":
        quote = fetch_ada_usd()
        if quote.is_fallback:
            print(f"[pricing] ADA price unavailable, using fallback ${quote.price:.2f}")
        ada_usd = quote.price
        prices.update(fetch_usd_prices_for_tickers(priced_tickers(cfg.tokens)))

    positions = cfg.positions
    if not positions and cfg.address:
        try:
            positions = fetch_positions(cfg.address, cfg.tokens)
        except requests.RequestException as e:
            raise SystemExit(f"Could not read balances for {cfg.address}: {e}")

    holdings = build_holdings(positions, cfg.tokens, prices, ada_usd)
    holdings = restrict_to_targets(holdings, cfg.targets)
    return holdings, total_usd_value(holdings)


def plan_cmd(args: argparse.Namespace) -> int:
    load_dotenv()
    cfg = _load(args.config)
    holdings, total = _portfolio_holdings(cfg)

    plan = calculate_rebalance_swaps(
        cfg.targets,
        holdings,
        total,
        cfg.thresholds(),
        token_meta=cfg.tokens,
    )
    message = format_rebalance_message(cfg.label, plan, cfg.token_labels())

    if args.json:
        print(plan.model_dump_json(indent=2))
    else:
        print(f"Portfolio value: ${total:.2f}")
        print(message)

    if args.send:
        sent = notify(message)
        print("[discord] sent" if sent else "[discord] not sent")
    return 0


def check_cmd(args: argparse.Namespace) -> int:
    load_dotenv()
    cfg = _load(args.config)
    holdings, total = _portfolio_holdings(cfg)
    thresholds = cfg.thresholds()

    if args.send:
        deviations = notify_if_deviations_exceed_threshold(
            cfg.label, cfg.targets, holdings, total, thresholds, cfg.token_labels()
        )
    else:
        deviations = analyze_deviations(
            cfg.targets, sum_usd_by_token(holdings), total, thresholds
        )

    if not deviations:
        print(f"Wallet {cfg.label} is within thresholds.")
        return 0
    print(
        format_deviation_alert(
            cfg.label, deviations, total, thresholds.global_percent, cfg.token_labels()
        )
    )
    return 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="wallet rebalancer CLI")
    sub = p.add_subparsers(dest="cmd")

    p_plan = sub.add_parser("plan", help="Suggest swaps that bring a wallet back to its targets")
    p_plan.add_argument("--config", "-c", required=True, help="Path to wallet YAML")
    p_plan.add_argument("--json", action="store_true", help="Print the plan as JSON")
    p_plan.add_argument("--send", action="store_true", help="Post the plan to Discord")
    p_plan.set_defaults(func=plan_cmd)

    p_check = sub.add_parser(
        "check", help="Report tokens whose weight drifted past their threshold"
    )
    p_check.add_argument("--config", "-c", required=True, help="Path to wallet YAML")
    p_check.add_argument(
        "--send", action="store_true", help="Post a deviation alert to Discord"
    )
    p_check.set_defaults(func=check_cmd)
    return p


def main(argv: List[str] | None = None) -> int:
    setup_logging()
    p = build_parser()
    args = p.parse_args(argv)
    if not hasattr(args, "func"):
        p.print_help()
        return 2
    return int(args.func(args))


if __name__ == "__main__":
    sys.exit(main())
