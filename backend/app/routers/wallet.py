import logging
from fastapi import APIRouter, HTTPException

from ..analytics import format_pct_or_dash
from ..schemas import ApyResult, FeeRow, HistoryPage, WalletChart, WalletDetails, WalletOverview
from ..services import wallet

router = APIRouter(prefix="/wallet", tags=["wallet"])
logger = logging.getLogger(__name__)


def _raise_wallet_error(exc: Exception) -> None:
    detail = str(exc)
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=400, detail=detail)
    logger.exception("Wallet error: %s", detail)
    raise HTTPException(status_code=503, detail=detail)


@router.get("/{address}/chart", response_model=WalletChart)
def chart(address: str, period: str = "30D"):
    try:
        return wallet.get_chart(address, period=period)
    except Exception as exc:
        _raise_wallet_error(exc)


@router.get("/{address}/overview", response_model=WalletOverview)
def overview(address: str):
    try:
        return wallet.get_overview(address)
    except Exception as exc:
        _raise_wallet_error(exc)


@router.get("/{address}/apy", response_model=ApyResult)
def apy(address: str, weeks: int = 4):
    try:
        value = wallet.get_apy(address, weeks)
        return {"account": address, "weeks": weeks, "apy": value, "display": format_pct_or_dash(value)}
    except Exception as exc:
        _raise_wallet_error(exc)


@router.get("/{address}/history", response_model=HistoryPage)
def history(address: str, page: int = 1, page_size: int = wallet.DEFAULT_PAGE_SIZE):
    try:
        return wallet.get_history(address, page=page, page_size=page_size)
    except Exception as exc:
        _raise_wallet_error(exc)


@router.get("/{address}/details", response_model=WalletDetails)
def details(address: str):
    try:
        return wallet.get_details(address)
    except Exception as exc:
        _raise_wallet_error(exc)


@router.get("/{address}/fees", response_model=list[FeeRow])
def fees(address: str):
    try:
        return wallet.get_fee_schedule(address)
    except Exception as exc:
        _raise_wallet_error(exc)
