"""
Drift protocol client: live account equity for a Solana authority or user account.
Equity is total collateral plus unrealized perp PnL, in USD.
"""
import inspect
import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

try:
    from anchorpy import Wallet
    from driftpy.account_subscription_config import AccountSubscriptionConfig
    from driftpy.addresses import get_user_account_public_key
    from driftpy.constants.numeric_constants import QUOTE_PRECISION
    from driftpy.drift_client import DriftClient
    from driftpy.drift_user import DriftUser
    from solana.rpc.async_api import AsyncClient
    from solders.keypair import Keypair
    from solders.pubkey import Pubkey
except Exception:  # pragma: no cover - optional dependency
    DriftClient = None

from ..config import settings
from ..db import with_conn
from .cache import invalidate_wallet

logger = logging.getLogger(__name__)

_BASE58_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


class DriftDisabledError(RuntimeError):
    pass


class DriftUserNotFoundError(RuntimeError):
    pass


def is_valid_solana_address(address: str) -> bool:
    return bool(_BASE58_ADDRESS.match((address or "").strip()))


def require_enabled() -> None:
    if not settings.drift.enabled:
        raise DriftDisabledError("drift temporarily disabled")


def _require_sdk() -> None:
    if DriftClient is None:
        raise RuntimeError("driftpy is required for live equity. Install the drift extra.")


def _sdk_env() -> str:
    env = (settings.drift.env or "").strip().lower()
    return "devnet" if env.startswith("devnet") else "mainnet"


def _pubkey(address: str) -> "Pubkey":
    if not is_valid_solana_address(address):
        raise ValueError(f"Invalid Solana address: {address}")
    return Pubkey.from_string(address.strip())


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


@asynccontextmanager
async def drift_session() -> AsyncIterator["DriftClient"]:
    """Read-only client subscribed for the duration of the block."""
    require_enabled()
    _require_sdk()
    connection = AsyncClient(settings.drift.rpc_url, timeout=settings.drift.timeout)
    client = DriftClient(
        connection,
        Wallet(Keypair()),
        env=_sdk_env(),
        account_subscription=AccountSubscriptionConfig("cached"),
    )
    try:
        await client.subscribe()
        yield client
    finally:
        try:
            await _maybe_await(client.unsubscribe())
        except Exception as exc:
            logger.warning("Drift client unsubscribe failed: %s", exc)
        await connection.close()


async def read_user_equity(client: "DriftClient", user_account: "Pubkey") -> Dict[str, float]:
    user = DriftUser(client, user_public_key=user_account, account_subscription=AccountSubscriptionConfig("cached"))
    try:
        await user.subscribe()
    except Exception as exc:
        raise DriftUserNotFoundError(f"user_not_found_or_unloaded: {user_account}") from exc
    try:
        total_collateral = user.get_total_collateral()
        if total_collateral is None:
            raise DriftUserNotFoundError("user_totals_unavailable")
        settled = float(total_collateral) / QUOTE_PRECISION
        unsettled = float(user.get_unrealized_pnl(True) or 0) / QUOTE_PRECISION
    finally:
        try:
            await _maybe_await(user.unsubscribe())
        except Exception as exc:
            logger.debug("Drift user unsubscribe failed: %s", exc)
    return {"settled_usd": settled, "unsettled_usd": unsettled, "equity_usd": settled + unsettled}


def _resolve_user_account(client: "DriftClient", address: Optional[str], user_account: Optional[str], sub_account_id: int) -> "Pubkey":
    if address:
        return get_user_account_public_key(client.program_id, _pubkey(address), int(sub_account_id))
    if user_account:
        return _pubkey(user_account)
    raise ValueError("missing address or userAccount")


async def fetch_equity(address: Optional[str] = None, user_account: Optional[str] = None, sub_account_id: int = 0) -> float:
    """Equity (USD) of one Drift user, addressed by authority + subaccount or by user account."""
    if not address and not user_account:
        raise ValueError("missing address or userAccount")
    for candidate in (address, user_account):
        if candidate and not is_valid_solana_address(candidate):
            raise ValueError(f"Invalid Solana address: {candidate}")
    async with drift_session() as client:
        pk = _resolve_user_account(client, address, user_account, sub_account_id)
        totals = await read_user_equity(client, pk)
    return totals["equity_usd"]


async def fetch_authority_equity(address: str, sub_account_ids: Optional[List[int]] = None) -> Dict[str, Any]:
    """Summed equity across the authority's subaccounts; subaccounts that don't exist are skipped."""
    subs = sub_account_ids or settings.drift.subaccounts
    if not is_valid_solana_address(address):
        raise ValueError(f"Invalid Solana address: {address}")
    settled = 0.0
    unsettled = 0.0
    found = 0
    async with drift_session() as client:
        authority = _pubkey(address)
        for sub in subs:
            pk = get_user_account_public_key(client.program_id, authority, int(sub))
            try:
                totals = await read_user_equity(client, pk)
            except DriftUserNotFoundError:
                logger.info("No Drift user for %s subaccount %s", address, sub)
                continue
            settled += totals["settled_usd"]
            unsettled += totals["unsettled_usd"]
            found += 1
    if not found:
        raise DriftUserNotFoundError("no_drift_user_accounts_for_authority")
    return {
        "address": address,
        "settled_usd": settled,
        "unsettled_usd": unsettled,
        "equity_usd": settled + unsettled,
    }


def store_snapshot(address: str, sub_account_id: int, as_of: str, equity_usd: float) -> None:
    label = address.strip().lower()

    def _run(conn):
        cur = conn.cursor()
        cur.execute(
            "INSERT OR REPLACE INTO drift_nav_snapshots(address, subaccount, as_of, equity_usd) VALUES(?,?,?,?)",
            (label, int(sub_account_id), as_of, float(equity_usd)),
        )
        conn.commit()

    with_conn(_run)
    invalidate_wallet(label)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def snapshot_equity(address: Optional[str] = None, user_account: Optional[str] = None, sub_account_id: int = 0) -> Dict[str, Any]:
    equity = await fetch_equity(address=address, user_account=user_account, sub_account_id=sub_account_id)
    as_of = now_iso()
    store_snapshot(address or user_account or "", sub_account_id, as_of, equity)
    return {
        "ok": True,
        "address": address,
        "user_account": user_account,
        "sub": sub_account_id,
        "equity_usd": equity,
        "as_of": as_of,
    }


def _configured_addresses() -> List[str]:
    addresses = settings.drift.snapshot_addresses
    if not addresses:
        raise ValueError("no addresses configured")
    return addresses


async def accounts_equity() -> List[Dict[str, Any]]:
    """Per-address equity for every configured snapshot address; failures are reported inline."""
    require_enabled()
    results: List[Dict[str, Any]] = []
    for address in _configured_addresses():
        try:
            results.append(await fetch_authority_equity(address))
        except Exception as exc:
            logger.warning("Drift equity failed for %s: %s", address, exc)
            results.append({"address": address, "error": str(exc)})
    return results


async def snapshot_configured() -> List[Dict[str, Any]]:
    """Store one equity snapshot per configured address and subaccount, sharing one timestamp."""
    require_enabled()
    addresses = _configured_addresses()
    as_of = now_iso()
    results: List[Dict[str, Any]] = []
    async with drift_session() as client:
        for address in addresses:
            for sub in settings.drift.subaccounts:
                try:
                    pk = _resolve_user_account(client, address, None, sub)
                    totals = await read_user_equity(client, pk)
                    store_snapshot(address, sub, as_of, totals["equity_usd"])
                    results.append({"address": address, "sub": sub, "ok": True})
                except Exception as exc:
                    logger.warning("Drift snapshot failed for %s/%s: %s", address, sub, exc)
                    results.append({"address": address, "sub": sub, "ok": False, "error": str(exc)})
    return results
