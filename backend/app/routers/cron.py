import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException

from ..config import settings
from ..services import drift

router = APIRouter(prefix="/cron", tags=["cron"])
logger = logging.getLogger(__name__)


def _secret_matches(provided: Optional[str]) -> bool:
    expected = settings.drift.cron_secret
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided, expected)


@router.get("/drift-snapshot")
async def drift_snapshot(x_cron_secret: Optional[str] = Header(None)):
    if not settings.drift.enabled:
        raise HTTPException(status_code=503, detail="drift temporarily disabled")
    if not _secret_matches(x_cron_secret):
        raise HTTPException(status_code=401, detail="unauthorized")
    try:
        results = await drift.snapshot_configured()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Drift snapshot job failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    logger.info("Stored %d of %d drift snapshots", sum(1 for r in results if r.get("ok")), len(results))
    return {"ok": True, "results": results}
