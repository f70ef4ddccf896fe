"""Tests for environment-driven settings."""
import pytest

from shipping_dashboard.config import get_dashboard_settings, get_drx_settings

DRX_VARS = (
    "DRX_BASE_URL",
    "DRX_API_KEY",
    "DRX_TIMEOUT_S",
    "DRX_PAGE_SIZE",
    "DRX_PAGE_FAILURE_POLICY",
    "DRX_PAGE_RETRIES",
)
DASHBOARD_VARS = (
    "SHIPPING_TIMEZONE",
    "SHIPPING_BUCKET_TIMEZONE",
    "SHIPPING_CACHE_TTL_S",
    "SHIPPING_CACHE_MAX_ENTRIES",
    "SHIPPING_CACHE_SWEEP_FACTOR",
    "SHIPPING_DEFAULT_DAYS",
    "SHIPPING_MAX_DAYS",
    "SHIPPING_PREWARM_DAYS",
    "SHIPPING_PREWARM_DELAY_S",
    "PORT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in DRX_VARS + DASHBOARD_VARS:
        monkeypatch.delenv(name, raising=False)


def test_missing_drx_variables_are_listed():
    with pytest.raises(RuntimeError, match="DRX_BASE_URL, DRX_API_KEY"):
        get_drx_settings()


def test_drx_settings_from_environment(monkeypatch):
    monkeypatch.setenv("DRX_BASE_URL", "https://drx.example.test/api/")
    monkeypatch.setenv("DRX_API_KEY", "key")
    monkeypatch.setenv("DRX_PAGE_FAILURE_POLICY", "Retry")

    settings = get_drx_settings()

    assert settings.base_url == "https://drx.example.test/api"
    assert settings.page_size == 100
    assert settings.timeout == 30.0
    assert settings.page_failure_policy == "retry"


def test_unknown_page_policy_is_rejected(monkeypatch):
    monkeypatch.setenv("DRX_BASE_URL", "https://drx.example.test")
    monkeypatch.setenv("DRX_API_KEY", "key")
    monkeypatch.setenv("DRX_PAGE_FAILURE_POLICY", "ignore")

    with pytest.raises(ValueError, match="page failure policy"):
        get_drx_settings()


def test_dashboard_defaults():
    settings = get_dashboard_settings()

    assert settings.timezone == "America/Chicago"
    assert settings.bucket_timezone is None
    assert settings.cache_ttl == 900
    assert settings.default_days == 30
    assert settings.prewarm_days == 1
    assert settings.port == 3500


def test_unknown_timezone_is_rejected(monkeypatch):
    monkeypatch.setenv("SHIPPING_TIMEZONE", "Mars/Olympus")

    with pytest.raises(ValueError, match="Unknown timezone"):
        get_dashboard_settings()
