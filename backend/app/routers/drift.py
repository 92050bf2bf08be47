import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from ..schemas import EquityResponse, SnapshotRequest
from ..services import drift

router = APIRouter(prefix="/drift", tags=["drift"])
logger = logging.getLogger(__name__)


def _raise_drift_error(exc: Exception) -> None:
    detail = str(exc)
    if isinstance(exc, drift.DriftDisabledError):
        raise HTTPException(status_code=503, detail=detail)
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=400, detail=detail)
    logger.exception("Drift error: %s", detail)
    raise HTTPException(status_code=500, detail=detail or exc.__class__.__name__)


@router.get("/equity", response_model=EquityResponse)
async def equity(
    address: Optional[str] = None,
    user_account: Optional[str] = Query(None, alias="userAccount"),
    sub: int = 0,
):
    try:
        drift.require_enabled()
        if not address and not user_account:
            raise ValueError("missing address or userAccount")
        value = await drift.fetch_equity(address=address, user_account=user_account, sub_account_id=sub)
        return {"address": address, "userAccount": user_account, "sub": sub, "equityUsd": value}
    except Exception as exc:
        _raise_drift_error(exc)


@router.post("/snapshot")
async def snapshot(payload: SnapshotRequest):
    try:
        drift.require_enabled()
        if not payload.address and not payload.userAccount:
            raise ValueError("missing address or userAccount")
        out = await drift.snapshot_equity(
            address=payload.address,
            user_account=payload.userAccount,
            sub_account_id=int(payload.sub or 0),
        )
        return {
            "ok": True,
            "address": out["address"],
            "userAccount": out["user_account"],
            "sub": out["sub"],
            "equityUsd": out["equity_usd"],
            "asOf": out["as_of"],
        }
    except Exception as exc:
        _raise_drift_error(exc)


@router.get("/accounts")
async def accounts():
    try:
        results = await drift.accounts_equity()
        return {"ok": True, "results": results}
    except Exception as exc:
        _raise_drift_error(exc)
