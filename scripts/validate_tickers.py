#!/usr/bin/env python3
"""
Validate the ticker snapshot endpoint of the server.

Checks performed:
- HTTP 200 and a {"data": [...]} body
- Every exchange entry carries an exchange name and a ticker list
- Required ticker fields present with correct types
- exchange is lowercase and matches its group; pair has first/second codes
- Logical price consistency (high >= low, bid <= ask, non-negative values)
- last_updated parses as an ISO timestamp and is not older than --max-age

Usage examples:
  python scripts/validate_tickers.py
  python scripts/validate_tickers.py --host 127.0.0.1 --port 8000 --max-age 120 --print-sample 3
"""

import argparse
import sys
from datetime import datetime, timezone
from typing import Any, List, Tuple

import httpx
from dateutil import parser as dateparser


REQUIRED_FIELDS = [
    "exchange",
    "pair",
    "asset_type",
    "last_updated",
    "last",
    "high",
    "low",
    "bid",
    "ask",
    "volume",
]


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Validate /exchanges/enabled/latest/all response.")
    p.add_argument("--host", default="localhost", help="Server host (default: localhost)")
    p.add_argument("--port", type=int, default=8000, help="Server port (default: 8000)")
    p.add_argument("--max-age", type=float, default=0, help="Fail on tickers older than N seconds (0 = no check)")
    p.add_argument("--allow-empty", action="store_true", help="Do not fail if no tickers are returned")
    p.add_argument("--print-sample", type=int, default=0, help="Print first N tickers for visual inspection")
    return p.parse_args()


def is_number(x: Any) -> bool:
    return isinstance(x, (int, float))


def validate_ticker(item: dict, group_exchange: str, max_age: float) -> Tuple[bool, str]:
    for f in REQUIRED_FIELDS:
        if f not in item:
            return False, f"missing field: {f}"

    if not isinstance(item["exchange"], str):
        return False, "exchange must be string"
    if item["exchange"] != item["exchange"].lower():
        return False, "exchange should be lowercase"
    if item["exchange"] != group_exchange:
        return False, f"exchange mismatch: grouped under {group_exchange}, got {item['exchange']}"

    pair = item["pair"]
    if not isinstance(pair, dict) or not pair.get("first") or not pair.get("second"):
        return False, f"invalid pair: {pair}"

    for f in ("last", "high", "low", "bid", "ask", "volume"):
        if not is_number(item[f]):
            return False, f"{f} must be a number"
        if item[f] < 0:
            return False, f"{f} negative"

    if item["high"] and item["low"] and item["high"] < item["low"]:
        return False, f"high < low ({item['high']} < {item['low']})"
    if item["bid"] and item["ask"] and item["bid"] > item["ask"]:
        return False, f"crossed book: bid {item['bid']} > ask {item['ask']}"

    try:
        updated = dateparser.isoparse(item["last_updated"])
    except Exception:
        return False, f"invalid last_updated: {item['last_updated']}"

    if max_age > 0:
        if updated.tzinfo is None:
            updated = updated.replace(tzinfo=timezone.utc)
        age = (datetime.now(timezone.utc) - updated).total_seconds()
        if age > max_age:
            return False, f"stale ticker: {age:.0f}s old (max {max_age:.0f}s)"

    return True, ""


def main() -> int:
    args = parse_args()
    url = f"http://{args.host}:{args.port}/exchanges/enabled/latest/all"
    print(f"[Info] Requesting: {url}")

    try:
        resp = httpx.get(url, timeout=30.0)
    except Exception as e:
        print(f"[Error] Request failed: {e}")
        return 2

    if resp.status_code != 200:
        print(f"[Error] HTTP {resp.status_code}: {resp.text[:300]}")
        return 2

    try:
        body = resp.json()
    except Exception as e:
        print(f"[Error] Invalid JSON: {e}")
        return 2

    groups = body.get("data") if isinstance(body, dict) else None
    if not isinstance(groups, list):
        print("[Error] Response has no 'data' list")
        return 2

    tickers: List[dict] = []
    for group in groups:
        name = group.get("exchange")
        values = group.get("exchange_values")
        if not isinstance(name, str) or not isinstance(values, list):
            print(f"[Error] Invalid exchange entry: {str(group)[:200]}")
            return 1
        for idx, item in enumerate(values):
            ok, msg = validate_ticker(item, name, args.max_age)
            if not ok:
                print(f"[Error] {name} ticker {idx} invalid: {msg}")
                return 1
        tickers.extend(values)

    if not tickers:
        if args.allow_empty:
            print("[Warn] No tickers (allowed by flag).")
            return 0
        print("[Error] No tickers (use --allow-empty to accept).")
        return 1

    if args.print_sample > 0:
        sample = tickers[: args.print_sample]
        print(f"[Info] Sample ({len(sample)} of {len(tickers)}):")
        for it in sample:
            print(it)

    print(f"[OK] Validated {len(tickers)} tickers across {len(groups)} exchange(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
