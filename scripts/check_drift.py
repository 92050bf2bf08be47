"""
Print live Drift equity for one or more authorities.

Usage: python scripts/check_drift.py [ADDR1,ADDR2,...]
Falls back to DRIFT_SNAPSHOT_ADDRESSES when no addresses are given.
"""
import asyncio
import os
import sys

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from backend.app.analytics import format_usd
from backend.app.config import settings
from backend.app.services import drift


async def _run(addresses: list[str]) -> int:
    failures = 0
    for address in addresses:
        try:
            totals = await drift.fetch_authority_equity(address)
        except Exception as exc:
            failures += 1
            print(f"{address}: error {exc}")
            continue
        print(
            f"{address}: equity {format_usd(totals['equity_usd'])} "
            f"(settled {format_usd(totals['settled_usd'])}, unsettled {format_usd(totals['unsettled_usd'])})"
        )
    return 1 if failures else 0


def main(argv: list[str]) -> int:
    if argv:
        addresses = [a.strip() for a in argv[0].split(",") if a.strip()]
    else:
        addresses = list(settings.drift.snapshot_addresses)
    if not addresses:
        print("Provide addresses via DRIFT_SNAPSHOT_ADDRESSES or: python scripts/check_drift.py <ADDR[,ADDR2]>", file=sys.stderr)
        return 1
    if not settings.drift.enabled:
        print("DRIFT_ENABLED is not set to 1.", file=sys.stderr)
        return 1
    print(f"RPC: {settings.drift.rpc_url} env: {settings.drift.env}")
    return asyncio.run(_run(addresses))


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
