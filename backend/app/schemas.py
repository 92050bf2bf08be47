from typing import List, Optional
from pydantic import BaseModel


class SeriesPoint(BaseModel):
    ts: int
    value: float


class WalletChart(BaseModel):
    account: str
    period: str
    values: List[SeriesPoint]
    deposits: List[SeriesPoint]
    change_pct: Optional[float] = None
    change_ratio_diff: Optional[float] = None


class WalletOverview(BaseModel):
    account: str
    as_of: str
    current_value: Optional[float] = None
    total_deposits: float
    pending_deposits: float
    total_return: Optional[float] = None
    apy_7d: Optional[float] = None
    apy_30d: Optional[float] = None
    apy_90d: Optional[float] = None


class ApyResult(BaseModel):
    account: str
    weeks: int
    apy: Optional[float] = None
    display: str


class HistoryRow(BaseModel):
    date: str
    event: str
    amount: float
    exchange: Optional[str] = None
    notes: Optional[str] = None
    sub_account: Optional[str] = None


class HistoryPage(BaseModel):
    account: str
    page: int
    page_size: int
    rows: List[HistoryRow]


class WalletDetails(BaseModel):
    account: str
    profit_share: Optional[float] = None


class FeeRow(BaseModel):
    date: str
    gross: float
    net_flow: float
    gain: float
    fee: float
    cumulative_fee: float


class EquityResponse(BaseModel):
    address: Optional[str] = None
    userAccount: Optional[str] = None
    sub: int
    equityUsd: float


class SnapshotRequest(BaseModel):
    address: Optional[str] = None
    userAccount: Optional[str] = None
    sub: Optional[int] = 0


class DataStatus(BaseModel):
    component: str
    asof: str
    source: str
    ok: bool
