import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait as wait_futures
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from shipping_dashboard.config import DashboardSettings
from shipping_dashboard.services.client_interface import DataClientInterface
from shipping_dashboard.services.date_range import DateRange, get_range_params
from shipping_dashboard.services.shipping_metrics import compute_shipping_metrics, round_half_up

logger = logging.getLogger(__name__)

PHASE_FETCHING = "fetching"
PHASE_COMPUTING = "computing"


@dataclass
class CacheEntry:
    data: Dict[str, Any]
    timestamp: float


@dataclass
class FetchJob:
    started_at: float
    phase: str = PHASE_FETCHING
    error: Optional[str] = None


class ShippingDataService:
    """Per-range cache of shipping metrics with at most one background fetch per range.

    ``get_or_fetch`` never blocks on the remote API: it answers from the cache,
    reports the progress of a running job, or starts one and returns at once.
    """

    def __init__(
        self,
        client: DataClientInterface,
        settings: Optional[DashboardSettings] = None,
        *,
        clock: Callable[[], float] = time.time,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._client = client
        self.settings = settings or DashboardSettings()
        self._clock = clock
        self._now = now
        self._lock = threading.Lock()
        self._cache: Dict[str, CacheEntry] = {}
        self._jobs: Dict[str, FetchJob] = {}
        self._workers: Dict[str, threading.Thread] = {}
        self._last_errors: Dict[str, str] = {}

    def range_for(self, days: int) -> DateRange:
        now = self._now() if self._now is not None else None
        return get_range_params(days, self.settings.timezone, now)

    def get_or_fetch(self, days: int) -> Dict[str, Any]:
        date_range = self.range_for(days)
        key = date_range.key
        with self._lock:
            current = self._clock()
            entry = self._cache.get(key)
            if entry is not None and current - entry.timestamp < self.settings.cache_ttl:
                return {"status": "ready", "data": entry.data}

            job = self._jobs.get(key)
            if job is not None:
                return {
                    "status": "loading",
                    "phase": job.phase,
                    "elapsed": round_half_up(current - job.started_at),
                }

            job = FetchJob(started_at=current)
            self._jobs[key] = job
            worker = threading.Thread(
                target=self._run_job,
                args=(date_range, job),
                name=f"shipping-fetch-{key}",
                daemon=True,
            )
            self._workers[key] = worker
            worker.start()
        return {"status": "loading", "phase": PHASE_FETCHING, "elapsed": 0}

    def _run_job(self, date_range: DateRange, job: FetchJob) -> None:
        key = date_range.key
        start_date, end_date = date_range.start_date, date_range.end_date
        logger.info("Fetching shipping data for %s to %s", start_date, end_date)
        try:
            shipments, deliveries, routes = self._fetch_all(date_range, job)

            with self._lock:
                job.phase = PHASE_COMPUTING
            data = compute_shipping_metrics(
                shipments,
                deliveries,
                routes,
                start_date,
                end_date,
                timezone=self.settings.bucket_timezone,
            )
            data["partial"] = any(getattr(result, "partial", False) for result in (shipments, deliveries, routes))

            with self._lock:
                self._store(key, data)
                self._last_errors.pop(key, None)
            logger.info("Shipping data cached for %s%s", key, " (partial)" if data["partial"] else "")
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Error fetching shipping data for %s: %s", key, exc)
            with self._lock:
                job.error = str(exc)
                self._last_errors[key] = str(exc)
        finally:
            with self._lock:
                if self._jobs.get(key) is job:
                    del self._jobs[key]
                if self._workers.get(key) is threading.current_thread():
                    del self._workers[key]

    def _fetch_all(self, date_range: DateRange, job: FetchJob):
        start_date, end_date = date_range.start_date, date_range.end_date
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix=f"drx-{date_range.key}") as pool:
            futures = [
                pool.submit(self._client.fetch_shipments_in_range, start_date, end_date),
                pool.submit(self._client.fetch_deliveries_in_range, start_date, end_date),
                pool.submit(self._client.fetch_delivery_routes),
            ]
            done, _ = wait_futures(futures, return_when=FIRST_EXCEPTION)
            for future in done:
                exc = future.exception()
                if exc is not None:
                    # The pool still drains the other fetches; pollers keep seeing "fetching".
                    with self._lock:
                        job.error = str(exc)
                        self._last_errors[date_range.key] = str(exc)
                    raise exc
        return tuple(future.result() for future in futures)

    def _store(self, key: str, data: Dict[str, Any]) -> None:
        current = self._clock()
        self._cache[key] = CacheEntry(data=data, timestamp=current)
        horizon = self.settings.cache_ttl * self.settings.cache_sweep_factor
        for stale_key in [k for k, entry in self._cache.items() if current - entry.timestamp >= horizon]:
            del self._cache[stale_key]
        while len(self._cache) > self.settings.cache_max_entries:
            oldest = min(self._cache, key=lambda k: self._cache[k].timestamp)
            del self._cache[oldest]

    def wait(self, days: int, timeout: Optional[float] = None) -> bool:
        """Block until the background job for ``days`` finishes. True if none is left running."""
        key = self.range_for(days).key
        with self._lock:
            worker = self._workers.get(key)
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    def prewarm(self, days: Optional[int] = None, delay: Optional[float] = None) -> threading.Timer:
        days = days if days is not None else self.settings.prewarm_days
        delay = delay if delay is not None else self.settings.prewarm_delay
        logger.info("Pre-warming the %d-day range in %.1fs", days, delay)
        timer = threading.Timer(delay, self.get_or_fetch, args=(days,))
        timer.daemon = True
        timer.start()
        return timer

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            current = self._clock()
            return {
                "cache": [
                    {
                        "key": key,
                        "age": round_half_up(current - entry.timestamp),
                        "fresh": current - entry.timestamp < self.settings.cache_ttl,
                    }
                    for key, entry in self._cache.items()
                ],
                "jobs": [
                    {
                        "key": key,
                        "phase": job.phase,
                        "elapsed": round_half_up(current - job.started_at),
                        "error": job.error,
                    }
                    for key, job in self._jobs.items()
                ],
                "errors": dict(self._last_errors),
            }
