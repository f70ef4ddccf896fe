"""Shared fixtures: DRX settings, mocked HTTP responses and an in-memory data client."""
import threading
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
import requests

from shipping_dashboard.config import DashboardSettings, DRXSettings
from shipping_dashboard.services.client_interface import DataClientInterface
from shipping_dashboard.services.paging import PagedResult


def make_response(
    payload: Any = None,
    *,
    status: int = 200,
    text: str = "",
    json_error: bool = False,
    headers: Optional[Dict[str, str]] = None,
) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.text = text
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    if json_error:
        resp.json.side_effect = ValueError("Expecting value")
    else:
        resp.json.return_value = payload
    return resp


def session_for(handler: Callable[[str, Dict[str, Any]], Any]) -> MagicMock:
    """Session whose ``get`` delegates to ``handler(url, params)``."""
    session = MagicMock()

    def _get(url, params=None, headers=None, timeout=None):
        return handler(url, dict(params or {}))

    session.get.side_effect = _get
    return session


def records(count: int, start: int = 0, **fields) -> List[Dict[str, Any]]:
    return [{"id": start + index, **fields} for index in range(count)]


class FakeDataClient(DataClientInterface):
    """Data client backed by fixed lists, with call counters and an optional gate."""

    def __init__(
        self,
        shipments: Optional[List[Dict[str, Any]]] = None,
        deliveries: Optional[List[Dict[str, Any]]] = None,
        routes: Optional[List[Dict[str, Any]]] = None,
        *,
        gate: Optional[threading.Event] = None,
        fail_deliveries: Optional[Exception] = None,
        partial_shipments: bool = False,
    ) -> None:
        self.shipments = shipments or []
        self.deliveries = deliveries or []
        self.routes = routes or []
        self.gate = gate
        self.fail_deliveries = fail_deliveries
        self.partial_shipments = partial_shipments
        self.calls = {"shipments": 0, "deliveries": 0, "routes": 0, "packing_lists": 0}
        self.ranges: List[tuple] = []
        self._lock = threading.Lock()

    def _count(self, name: str) -> None:
        with self._lock:
            self.calls[name] += 1

    def fetch_shipments_in_range(self, start_date: str, end_date: str) -> PagedResult:
        self._count("shipments")
        self.ranges.append((start_date, end_date))
        if self.gate is not None:
            self.gate.wait(5)
        failed = [100] if self.partial_shipments else []
        return PagedResult(items=list(self.shipments), total_reported=len(self.shipments), failed_offsets=failed)

    def fetch_deliveries_in_range(self, start_date: str, end_date: str) -> PagedResult:
        self._count("deliveries")
        if self.fail_deliveries is not None:
            raise self.fail_deliveries
        return PagedResult(items=list(self.deliveries), total_reported=len(self.deliveries))

    def fetch_delivery_routes(self) -> PagedResult:
        self._count("routes")
        return PagedResult(items=list(self.routes))

    def fetch_packing_lists(self) -> PagedResult:
        self._count("packing_lists")
        return PagedResult()


@pytest.fixture
def drx_settings() -> DRXSettings:
    return DRXSettings(base_url="https://drx.example.test/api", api_key="secret-key", page_size=100)


@pytest.fixture
def dashboard_settings() -> DashboardSettings:
    return DashboardSettings(timezone="America/Chicago", cache_ttl=900, prewarm_delay=0)


@pytest.fixture
def sample_shipments() -> List[Dict[str, Any]]:
    return [
        {
            "id": 1,
            "patient_id": "p1",
            "patient": {"first_name": "Jane"},
            "created_at": "2024-01-01T15:00:00Z",
            "ship_date": "2024-01-01",
            "carrier_code": "usps",
            "service_code": "priority",
            "shipment_cost": 10.0,
            "address": {"city": "Austin", "state": "tx"},
        },
        {
            "id": 2,
            "patient_id": "p2",
            "patient": {"first_name": "Co. Main Clinic"},
            "created_at": "2024-01-02T09:00:00Z",
            "ship_date": "2024-01-03",
            "carrier_code": "USPS",
            "service_code": "ground",
            "shipment_cost": 20.0,
            "address": {"city": "Dallas", "state": " TX "},
        },
    ]


@pytest.fixture
def sample_deliveries() -> List[Dict[str, Any]]:
    return [
        {"id": 10, "patient_id": "p1", "delivery_on": "2024-01-02", "completed_at": "2024-01-02T12:00:00Z", "route": "North"},
        {"id": 11, "patient_id": "p3", "delivery_on": "2024-01-02", "refused_at": "2024-01-02T13:00:00Z", "route": "North"},
        {"id": 12, "patient_id": "p4", "created_at": "2024-01-03T08:00:00Z"},
    ]
