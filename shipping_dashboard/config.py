import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pytz
from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parent
load_dotenv(ROOT.parent / ".env")

PAGE_FAILURE_POLICIES = ("skip", "retry", "abort")


@dataclass
class DRXSettings:
    base_url: str
    api_key: str
    timeout: float = 30.0
    page_size: int = 100
    page_failure_policy: str = "skip"
    page_retries: int = 3


@dataclass
class DashboardSettings:
    timezone: str = "America/Chicago"
    bucket_timezone: Optional[str] = None
    cache_ttl: float = 15 * 60
    cache_max_entries: int = 64
    cache_sweep_factor: int = 4
    default_days: int = 30
    max_days: int = 365
    prewarm_days: int = 1
    prewarm_delay: float = 1.0
    port: int = 3500
    log_level: str = "INFO"


def _check_timezone(name: Optional[str]) -> Optional[str]:
    if name:
        try:
            pytz.timezone(name)
        except pytz.UnknownTimeZoneError as exc:
            raise ValueError(f"Unknown timezone: {name}") from exc
    return name


def get_drx_settings() -> DRXSettings:
    base_url = os.getenv("DRX_BASE_URL", "").strip().rstrip("/")
    api_key = os.getenv("DRX_API_KEY", "").strip()

    missing = [
        name for name, value in (
            ("DRX_BASE_URL", base_url),
            ("DRX_API_KEY", api_key),
        )
        if not value
    ]
    if missing:
        raise RuntimeError(f"Missing environment variables: {', '.join(missing)}")

    policy = os.getenv("DRX_PAGE_FAILURE_POLICY", "skip").strip().lower()
    if policy not in PAGE_FAILURE_POLICIES:
        raise ValueError(
            f"Unknown page failure policy: {policy}. Valid options are {', '.join(PAGE_FAILURE_POLICIES)}."
        )

    return DRXSettings(
        base_url=base_url,
        api_key=api_key,
        timeout=float(os.getenv("DRX_TIMEOUT_S", "30")),
        page_size=max(1, int(os.getenv("DRX_PAGE_SIZE", "100"))),
        page_failure_policy=policy,
        page_retries=max(1, int(os.getenv("DRX_PAGE_RETRIES", "3"))),
    )


def get_dashboard_settings() -> DashboardSettings:
    bucket_timezone = os.getenv("SHIPPING_BUCKET_TIMEZONE", "").strip() or None
    return DashboardSettings(
        timezone=_check_timezone(os.getenv("SHIPPING_TIMEZONE", "America/Chicago").strip() or "America/Chicago"),
        bucket_timezone=_check_timezone(bucket_timezone),
        cache_ttl=float(os.getenv("SHIPPING_CACHE_TTL_S", "900")),
        cache_max_entries=max(1, int(os.getenv("SHIPPING_CACHE_MAX_ENTRIES", "64"))),
        cache_sweep_factor=max(1, int(os.getenv("SHIPPING_CACHE_SWEEP_FACTOR", "4"))),
        default_days=max(1, int(os.getenv("SHIPPING_DEFAULT_DAYS", "30"))),
        max_days=max(1, int(os.getenv("SHIPPING_MAX_DAYS", "365"))),
        prewarm_days=max(1, int(os.getenv("SHIPPING_PREWARM_DAYS", "1"))),
        prewarm_delay=float(os.getenv("SHIPPING_PREWARM_DELAY_S", "1")),
        port=int(os.getenv("PORT", "3500")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
