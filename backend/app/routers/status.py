from fastapi import APIRouter

from ..schemas import DataStatus
from ..config import settings
from ..services.status import get_status

router = APIRouter(prefix="/status", tags=["status"])


@router.get("/components", response_model=list[DataStatus])
def components():
    return get_status()


@router.get("/drift")
def drift_status():
    if not settings.drift.enabled:
        return {
            "enabled": False,
            "status": "disabled",
            "message": "drift temporarily disabled",
        }
    return {
        "enabled": True,
        "status": "active",
        "env": settings.drift.env,
        "rpc_url": settings.drift.rpc_url,
        "snapshot_addresses": len(settings.drift.snapshot_addresses),
        "subaccounts": settings.drift.subaccounts,
        "cron_configured": bool(settings.drift.cron_secret),
    }
