import logging
import time
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import pytz
import requests

from shipping_dashboard.config import DRXSettings, get_drx_settings
from shipping_dashboard.services.client_interface import DataClientInterface
from shipping_dashboard.services.date_range import exclusive_bounds
from shipping_dashboard.services.paging import PagedResult, PageFailurePolicy
from shipping_dashboard.services.timestamps import day_key, parse_day

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 500


class DRXError(RuntimeError):
    pass


class DRXClient(DataClientInterface):
    """Paginating client for the DRX logistics API."""

    def __init__(
        self,
        settings: Optional[DRXSettings] = None,
        *,
        session: Optional[requests.Session] = None,
        bucket_timezone: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or get_drx_settings()
        self.session = session or requests.Session()
        self.policy = PageFailurePolicy(self.settings.page_failure_policy)
        self._bucket_tz = pytz.timezone(bucket_timezone) if bucket_timezone else None
        self._sleep = sleep

    def _request(self, path: str, *, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.settings.base_url}/{path.lstrip('/')}"
        headers = {"X-DRX-Key": self.settings.api_key, "Accept": "application/json"}
        delay = 1.0
        max_attempts = 3
        for _ in range(max_attempts):
            try:
                resp = self.session.get(url, params=params, headers=headers, timeout=self.settings.timeout)
            except requests.RequestException as exc:
                raise DRXError(f"Request to {path} failed: {exc}") from exc

            if resp.status_code == 429:
                retry_after = resp.headers.get("Retry-After")
                try:
                    wait_s = float(retry_after) if retry_after else delay
                except (TypeError, ValueError):
                    wait_s = delay
                self._sleep(wait_s)
                delay = min(delay * 2, 16)
                continue

            try:
                resp.raise_for_status()
            except requests.RequestException as exc:
                raise DRXError(f"HTTP {resp.status_code} from {path}: {resp.text[:200]}") from exc

            try:
                payload = resp.json()
            except ValueError as exc:
                raise DRXError(f"Failed to parse response from {path}: {resp.text[:200]}") from exc
            if not isinstance(payload, dict):
                raise DRXError(f"Unexpected response shape from {path}: {type(payload).__name__}")
            return payload

        raise DRXError(f"Failed request after retries: {url}")

    def _request_page(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if self.policy is not PageFailurePolicy.RETRY:
            return self._request(path, params=params)
        delay = 1.0
        attempts = max(1, self.settings.page_retries)
        for attempt in range(1, attempts + 1):
            try:
                return self._request(path, params=params)
            except DRXError as exc:
                if attempt == attempts:
                    raise
                logger.info(
                    "Retrying %s at offset %s in %.1fs (attempt %d/%d): %s",
                    path, params.get("offset"), delay, attempt, attempts, exc,
                )
                self._sleep(delay)
                delay = min(delay * 2, 16)
        raise DRXError(f"Failed page after retries: {path}")

    @staticmethod
    def _extract_items(payload: Dict[str, Any], fallback_key: str) -> List[Dict[str, Any]]:
        data = payload.get("data") or payload.get(fallback_key)
        if not data:
            return []
        if isinstance(data, dict):
            return [data]
        return [item for item in data if isinstance(item, dict)]

    @staticmethod
    def _to_int(value: Any) -> int:
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return 0

    def _paginate_with_total(
        self,
        path: str,
        fallback_key: str,
        label: str,
        extra_params: Optional[Dict[str, Any]] = None,
    ) -> PagedResult:
        page_size = self.settings.page_size
        extra = dict(extra_params or {})

        # No total without the first page, so its errors are not caught here.
        first = self._request(path, params={"offset": 0, "limit": page_size, **extra})
        total = self._to_int(first.get("total"))
        result = PagedResult(total_reported=total)
        first_batch = self._extract_items(first, fallback_key)
        result.items.extend(first_batch)
        offset = len(first_batch)
        logger.info("API reports %d total %s", total, label)

        while offset < total:
            params = {"offset": offset, "limit": page_size, **extra}
            try:
                payload = self._request_page(path, params)
            except DRXError as exc:
                if self.policy is PageFailurePolicy.ABORT:
                    raise
                logger.warning("Error fetching %s at offset %d: %s", label, offset, exc)
                result.failed_offsets.append(offset)
                offset += page_size
                continue
            batch = self._extract_items(payload, fallback_key)
            if not batch:
                break
            result.items.extend(batch)
            offset += len(batch)
            if offset % PROGRESS_EVERY < page_size:
                logger.info("... fetched %d/%d %s", len(result.items), total, label)
        return result

    def _paginate_until_empty(self, path: str, fallback_key: str, label: str) -> PagedResult:
        page_size = self.settings.page_size
        result = PagedResult()
        offset = 0
        while True:
            try:
                payload = self._request(path, params={"offset": offset, "limit": page_size})
            except DRXError as exc:
                logger.warning("Error fetching %s at offset %d: %s", label, offset, exc)
                result.failed_offsets.append(offset)
                result.stopped_early = True
                break
            batch = self._extract_items(payload, fallback_key)
            if not batch:
                break
            result.items.extend(batch)
            offset += len(batch)
            if offset % PROGRESS_EVERY < len(batch):
                logger.info("... fetched %d %s", len(result.items), label)
        return result

    def fetch_shipments_in_range(self, start_date: str, end_date: str) -> PagedResult:
        after, before = exclusive_bounds(start_date, end_date)
        logger.info(
            "Fetching shipments from %s to %s (API filter: afterDate=%s, beforeDate=%s)",
            start_date, end_date, after, before,
        )
        result = self._paginate_with_total(
            "/shipping",
            "shipments",
            "shipments",
            {"afterDate": after, "beforeDate": before},
        )
        logger.info("Total shipments fetched: %d", len(result.items))
        return result

    def fetch_deliveries_in_range(self, start_date: str, end_date: str) -> PagedResult:
        logger.info("Fetching deliveries from %s to %s", start_date, end_date)
        # The deliveries endpoint has no range filter: page through everything, then filter here.
        everything = self._paginate_with_total("/deliveries", "deliveries", "deliveries")
        start = date.fromisoformat(start_date)
        end = date.fromisoformat(end_date)
        in_range = [item for item in everything.items if self._within(item, start, end)]
        logger.info("Total deliveries in range: %d (of %d fetched)", len(in_range), len(everything.items))
        return PagedResult(
            items=in_range,
            total_reported=everything.total_reported,
            failed_offsets=list(everything.failed_offsets),
            stopped_early=everything.stopped_early,
        )

    def _within(self, delivery: Dict[str, Any], start: date, end: date) -> bool:
        day = parse_day(day_key(delivery.get("delivery_on") or delivery.get("created_at"), self._bucket_tz))
        return day is not None and start <= day <= end

    def fetch_delivery_routes(self) -> PagedResult:
        logger.info("Fetching delivery routes...")
        result = self._paginate_until_empty("/deliveries/routes", "routes", "delivery routes")
        logger.info("Total delivery routes fetched: %d", len(result.items))
        return result

    def fetch_packing_lists(self) -> PagedResult:
        logger.info("Fetching packing lists...")
        result = self._paginate_until_empty("/packing-lists", "packing_lists", "packing lists")
        logger.info("Total packing lists fetched: %d", len(result.items))
        return result
