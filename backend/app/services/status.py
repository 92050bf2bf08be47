import logging
from datetime import datetime
from typing import Dict, List

import httpx

from ..config import settings
from ..db import ping
from .cache import cache

logger = logging.getLogger(__name__)


def rpc_healthy(timeout: float = 4.0) -> bool:
    payload = {"jsonrpc": "2.0", "id": 1, "method": "getHealth"}
    try:
        with httpx.Client(timeout=timeout) as client:
            resp = client.post(settings.drift.rpc_url, json=payload)
            resp.raise_for_status()
            return resp.json().get("result") == "ok"
    except Exception as exc:
        logger.warning("Solana RPC health check failed: %s", exc)
        return False


def _db_ok() -> bool:
    try:
        return ping()
    except Exception as exc:
        logger.warning("Database ping failed: %s", exc)
        return False


def get_status() -> List[Dict[str, object]]:
    now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    db_source = "postgres" if settings.db_url else "sqlite"
    cache_health = cache.health_check()
    components = [
        {"component": "database", "asof": now, "source": db_source, "ok": _db_ok()},
        {
            "component": "cache",
            "asof": now,
            "source": cache_health.get("backend", "memory"),
            "ok": cache_health.get("status") == "healthy",
        },
        {"component": "drift", "asof": now, "source": settings.drift.env, "ok": settings.drift.enabled},
    ]
    if settings.drift.enabled:
        components.append({"component": "rpc", "asof": now, "source": settings.drift.rpc_url, "ok": rpc_healthy()})
    components.append({"component": "method", "asof": now, "source": settings.method_version, "ok": True})
    return components
