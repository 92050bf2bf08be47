from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import pytest

from backend.app.config import settings
from backend.app.db import ensure_schema, with_conn
from backend.app.services import drift

ADDR_A = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"
ADDR_B = "DRiFtupJYLTosbwoN8koMbEYSx54aFAVLddWsbksjwg7"


@pytest.fixture()
def drift_db(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "db_url", "")
    monkeypatch.setattr(settings, "db_path", str(tmp_path / "drift.db"))
    monkeypatch.setattr(settings.drift, "enabled", True)
    monkeypatch.setattr(settings.drift, "snapshot_addresses", [ADDR_A, ADDR_B])
    monkeypatch.setattr(settings.drift, "subaccounts", [0, 1])
    ensure_schema()
    return tmp_path


def _snapshots():
    def _run(conn):
        cur = conn.cursor()
        cur.execute("SELECT address, subaccount, as_of, equity_usd FROM drift_nav_snapshots ORDER BY address, subaccount")
        return cur.fetchall()

    return with_conn(_run)


def test_address_validation():
    assert drift.is_valid_solana_address(ADDR_A)
    assert drift.is_valid_solana_address(f"  {ADDR_B} ")
    assert not drift.is_valid_solana_address("")
    assert not drift.is_valid_solana_address("0x" + "a" * 40)
    assert not drift.is_valid_solana_address("short")


def test_disabled_client_refuses_calls(monkeypatch):
    monkeypatch.setattr(settings.drift, "enabled", False)
    with pytest.raises(drift.DriftDisabledError):
        drift.require_enabled()
    with pytest.raises(drift.DriftDisabledError):
        asyncio.run(drift.fetch_equity(address=ADDR_A))
    with pytest.raises(drift.DriftDisabledError):
        asyncio.run(drift.snapshot_configured())


def test_fetch_equity_validates_before_connecting(monkeypatch):
    monkeypatch.setattr(settings.drift, "enabled", True)
    with pytest.raises(ValueError):
        asyncio.run(drift.fetch_equity())
    with pytest.raises(ValueError):
        asyncio.run(drift.fetch_equity(user_account="not an address"))


def test_store_snapshot_upserts_lowercased(drift_db):
    drift.store_snapshot(ADDR_A, 0, "2024-01-21T00:00:00+00:00", 100.0)
    drift.store_snapshot(ADDR_A, 0, "2024-01-21T00:00:00+00:00", 125.0)
    rows = _snapshots()
    assert len(rows) == 1
    assert rows[0]["address"] == ADDR_A.lower()
    assert rows[0]["equity_usd"] == 125.0


def test_snapshot_configured_reports_failures_inline(drift_db, monkeypatch):
    @asynccontextmanager
    async def fake_session():
        yield object()

    def fake_resolve(client, address, user_account, sub):
        return (address, sub)

    async def fake_read(client, pk):
        address, sub = pk
        if sub == 1:
            raise drift.DriftUserNotFoundError("user_not_found_or_unloaded")
        return {"settled_usd": 90.0, "unsettled_usd": 10.0, "equity_usd": 100.0}

    monkeypatch.setattr(drift, "drift_session", fake_session)
    monkeypatch.setattr(drift, "_resolve_user_account", fake_resolve)
    monkeypatch.setattr(drift, "read_user_equity", fake_read)

    results = asyncio.run(drift.snapshot_configured())
    assert [(r["address"], r["sub"], r["ok"]) for r in results] == [
        (ADDR_A, 0, True),
        (ADDR_A, 1, False),
        (ADDR_B, 0, True),
        (ADDR_B, 1, False),
    ]
    assert "user_not_found" in results[1]["error"]

    rows = _snapshots()
    assert len(rows) == 2
    assert {r["subaccount"] for r in rows} == {0}
    assert len({r["as_of"] for r in rows}) == 1


def test_accounts_equity_collects_errors(drift_db, monkeypatch):
    async def fake_authority(address, sub_account_ids=None):
        if address == ADDR_B:
            raise drift.DriftUserNotFoundError("no_drift_user_accounts_for_authority")
        return {"address": address, "settled_usd": 1.0, "unsettled_usd": 2.0, "equity_usd": 3.0}

    monkeypatch.setattr(drift, "fetch_authority_equity", fake_authority)
    results = asyncio.run(drift.accounts_equity())
    assert results[0]["equity_usd"] == 3.0
    assert results[1] == {"address": ADDR_B, "error": "no_drift_user_accounts_for_authority"}
