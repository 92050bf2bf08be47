"""
Print the weekly profit-share fee schedule for one account.

Usage: python scripts/calculate_fees.py <account> [rate]
"""
import os
import sys

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import pandas as pd

from backend.app.analytics import format_usd
from backend.app.config import settings
from backend.app.db import ensure_schema
from backend.app.fees import performance_fee_schedule
from backend.app.services import wallet


def main(argv: list[str]) -> int:
    if not argv:
        print("Usage: python scripts/calculate_fees.py <account> [rate]", file=sys.stderr)
        return 1
    account = argv[0]
    rate = float(argv[1]) if len(argv) > 1 else settings.performance.profit_share

    ensure_schema()
    values = wallet.load_valuations(account)
    if not values:
        print(f"No account value data found for {account}.", file=sys.stderr)
        return 1
    flows = wallet.load_cash_flows(account)

    print(f"Calculating fees for account: {account} (rate {rate:.2%})")
    frame: pd.DataFrame = performance_fee_schedule(values, flows, rate)
    display = frame.copy()
    for column in ("gross", "net_flow", "gain", "fee", "cumulative_fee"):
        display[column] = display[column].map(format_usd)
    print(display.to_string(index=False))
    print("-" * 80)
    print(f"Total fees: {format_usd(float(frame['fee'].sum()))}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
