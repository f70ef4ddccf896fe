"""Tests for the Flask query endpoint."""
from unittest.mock import MagicMock

import pytest

from shipping_dashboard.api import create_app, parse_days
from shipping_dashboard.services.orchestrator import ShippingDataService


@pytest.fixture
def service(dashboard_settings):
    stub = MagicMock(spec=ShippingDataService)
    stub.settings = dashboard_settings
    stub.get_or_fetch.return_value = {"status": "loading", "phase": "fetching", "elapsed": 0}
    stub.snapshot.return_value = {"cache": [], "jobs": [], "errors": {}}
    return stub


@pytest.fixture
def client(service, dashboard_settings):
    app = create_app(service, dashboard_settings)
    app.config["TESTING"] = True
    return app.test_client()


class TestShippingEndpoint:
    """GET /api/shipping"""

    def test_defaults_to_thirty_days(self, client, service):
        response = client.get("/api/shipping")

        assert response.status_code == 200
        assert response.get_json() == {"status": "loading", "phase": "fetching", "elapsed": 0}
        service.get_or_fetch.assert_called_once_with(30)

    @pytest.mark.parametrize("raw, expected", [("7", 7), ("abc", 30), ("0", 30), ("-4", 30), ("1000", 365)])
    def test_days_parameter(self, client, service, raw, expected):
        client.get(f"/api/shipping?days={raw}")

        service.get_or_fetch.assert_called_once_with(expected)

    def test_ready_payload_is_returned_as_is(self, client, service):
        service.get_or_fetch.return_value = {"status": "ready", "data": {"kpi": {"totalShipments": 3}}}

        response = client.get("/api/shipping?days=1")

        assert response.get_json() == {"status": "ready", "data": {"kpi": {"totalShipments": 3}}}


class TestHealthEndpoint:
    """GET /api/health"""

    def test_reports_snapshot(self, client, service):
        service.snapshot.return_value = {
            "cache": [{"key": "2024-01-01_2024-01-01", "age": 5, "fresh": True}],
            "jobs": [],
            "errors": {},
        }

        body = client.get("/api/health").get_json()

        assert body["status"] == "ok"
        assert body["cache"][0]["key"] == "2024-01-01_2024-01-01"


def test_parse_days_without_value_uses_default():
    assert parse_days(None, 30, 365) == 30
    assert parse_days("12", 30, 10) == 10
