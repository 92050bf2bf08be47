import logging
import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .routers import wallet, drift, cron, status
from .db import ensure_schema
from .bootstrap_seed import seed_demo_wallet_if_empty

_log_path = settings.log_path
try:
    log_dir = os.path.dirname(os.path.abspath(_log_path))
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    logging.basicConfig(
        filename=_log_path,
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
except Exception:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    logging.getLogger(__name__).warning("Failed to initialize file logging at %s.", _log_path)

app = FastAPI(title="WalletView", docs_url=None, redoc_url=None)

allow_all = os.getenv("WV_ALLOW_ALL_ORIGINS", "0") == "1"
raw_origins = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173",
)
allowed_origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]

render_url = os.getenv("RENDER_EXTERNAL_URL", "").strip()
if render_url:
    allowed_origins.append(render_url)

# De-dupe while preserving order
allowed_origins = list(dict.fromkeys(allowed_origins))

if allow_all:
    allowed_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=False if allow_all else True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "x-cron-secret"],
    max_age=600,
)

app.include_router(wallet.router, prefix=settings.api_prefix)
app.include_router(drift.router, prefix=settings.api_prefix)
app.include_router(cron.router, prefix=settings.api_prefix)
app.include_router(status.router, prefix=settings.api_prefix)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/version")
def version():
    return {
        "build_id": os.getenv("RENDER_GIT_COMMIT", os.getenv("GIT_COMMIT", "local")),
        "build_time": os.getenv("BUILD_TIMESTAMP", "unknown"),
        "environment": os.getenv("ENVIRONMENT", "development"),
        "method": settings.method_version,
    }


@app.on_event("startup")
def _startup():
    ensure_schema()
    if os.getenv("WV_SEED_DEMO", "0") == "1":
        seed_demo_wallet_if_empty()
    if settings.drift.enabled and not settings.drift.cron_secret:
        logging.getLogger(__name__).warning("Drift is enabled but CRON_SECRET is unset; snapshot job will reject all calls.")
