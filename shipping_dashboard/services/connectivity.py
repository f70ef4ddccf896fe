from __future__ import annotations

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)

# One-record page from the shipments listing: cheap, and it exercises the API key.
CHECK_PATH = "/shipping"
REJECTED_KEY_STATUSES = (401, 403)


class ConnectivityError(RuntimeError):
    """Raised when the DRX API cannot be used with the configured endpoint and key."""


def ensure_online_connectivity(base_url: str, *, api_key: str = "", timeout: float = 5.0) -> None:
    """Request one shipment record so a bad endpoint or a rejected key fails at start-up.

    Server errors are only logged; the fetch jobs report those per request.
    """
    target = base_url.strip().rstrip("/") if base_url else ""
    if not target:
        raise ConnectivityError("DRX endpoint is not configured.")
    url = f"{target}{CHECK_PATH}"

    session = requests.Session()
    session.headers.setdefault("User-Agent", "ShippingDashboard/1.0")
    session.headers["Accept"] = "application/json"
    if api_key:
        session.headers["X-DRX-Key"] = api_key

    response: Optional[requests.Response] = None
    try:
        try:
            response = session.get(url, params={"offset": 0, "limit": 1}, timeout=timeout)
        except requests.RequestException as exc:
            raise ConnectivityError(
                f"Could not reach the DRX API at {target}. "
                "Check network access and DRX_BASE_URL."
            ) from exc

        status = response.status_code
        if status in REJECTED_KEY_STATUSES:
            raise ConnectivityError(f"DRX API rejected the key (HTTP {status}). Check DRX_API_KEY.")
        if status == 404:
            raise ConnectivityError(f"No DRX shipments endpoint at {url}. Check DRX_BASE_URL.")
        if status >= 500:
            logger.warning("DRX API answered HTTP %d to the start-up check; continuing", status)
        else:
            logger.info("DRX API reachable at %s (HTTP %d)", target, status)
    finally:
        if response is not None:
            response.close()
        session.close()
