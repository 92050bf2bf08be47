import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from repo root for local/dev runs (no-op if missing)
# Avoid loading .env in production so platform env vars are authoritative.
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
_ENVIRONMENT = os.environ.get("ENVIRONMENT", "").strip().lower()
if _ENVIRONMENT not in {"production", "prod"}:
    load_dotenv(_ENV_PATH, override=False)


@dataclass
class DriftConfig:
    enabled: bool
    rpc_url: str
    env: str
    snapshot_addresses: list[str] = field(default_factory=list)
    subaccounts: list[int] = field(default_factory=lambda: [0])
    cron_secret: str = ""
    timeout: float = 30.0


@dataclass
class PerformanceConfig:
    anchor_weekday: int
    bucket_days: int
    tolerance_days: float
    profit_share: float


@dataclass
class CacheConfig:
    redis_url: str
    default_ttl: int


def _split_csv(value: str | None) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def _int_list(value: str | None, default: list[int]) -> list[int]:
    out: list[int] = []
    for part in _split_csv(value):
        try:
            out.append(int(part))
        except ValueError:
            continue
    return out or list(default)


class Settings:
    def __init__(self) -> None:
        def _clean_optional(value: str | None) -> str:
            raw = (value or "").strip()
            if not raw:
                return ""
            lowered = raw.lower()
            placeholder_tokens = (
                "your_db_",
                "your_redis_",
                "your_secret",
                "your_rpc_",
            )
            if any(token in lowered for token in placeholder_tokens):
                return ""
            return raw

        # API prefix
        self.api_prefix = os.environ.get("WV_API_PREFIX", "/api")

        # Database configuration
        self.db_url = _clean_optional(os.environ.get("DATABASE_URL") or os.environ.get("WV_DATABASE_URL"))
        self.db_path = os.environ.get("WV_DB_PATH", str(Path.home() / "walletview.db"))

        # Logging / method metadata
        self.log_path = os.environ.get("WV_LOG_PATH", "walletview.log")
        self.method_version = os.environ.get("WV_METHOD_VERSION", "v1.0.0")

        # Drift protocol client
        try:
            drift_timeout = float(os.environ.get("DRIFT_TIMEOUT", "30"))
        except Exception:
            drift_timeout = 30.0
        self.drift = DriftConfig(
            enabled=os.environ.get("DRIFT_ENABLED", "0") == "1",
            rpc_url=_clean_optional(os.environ.get("SOLANA_RPC_URL")) or "https://api.mainnet-beta.solana.com",
            env=os.environ.get("DRIFT_ENV", "mainnet"),
            snapshot_addresses=_split_csv(os.environ.get("DRIFT_SNAPSHOT_ADDRESSES")),
            subaccounts=_int_list(os.environ.get("DRIFT_SUBACCOUNTS"), [0]),
            cron_secret=_clean_optional(os.environ.get("CRON_SECRET")),
            timeout=drift_timeout,
        )

        # Week bucketing and APY windows. Weekday follows date.weekday(): Monday=0 .. Sunday=6.
        try:
            anchor_weekday = int(os.environ.get("WV_WEEK_ANCHOR_WEEKDAY", "6")) % 7
        except Exception:
            anchor_weekday = 6
        try:
            bucket_days = max(1, int(os.environ.get("WV_WEEK_BUCKET_DAYS", "7")))
        except Exception:
            bucket_days = 7
        try:
            tolerance_days = float(os.environ.get("WV_MATCH_TOLERANCE_DAYS", "3"))
        except Exception:
            tolerance_days = 3.0
        try:
            profit_share = float(os.environ.get("WV_PROFIT_SHARE", "0.25"))
        except Exception:
            profit_share = 0.25
        self.performance = PerformanceConfig(
            anchor_weekday=anchor_weekday,
            bucket_days=bucket_days,
            tolerance_days=tolerance_days,
            profit_share=profit_share,
        )

        # Cache configuration
        try:
            default_ttl = int(os.environ.get("CACHE_TTL") or os.environ.get("WV_CACHE_TTL") or "300")
        except Exception:
            default_ttl = 300
        self.cache = CacheConfig(
            redis_url=_clean_optional(os.environ.get("REDIS_URL") or os.environ.get("WV_REDIS_URL", "")),
            default_ttl=default_ttl,
        )


settings = Settings()
