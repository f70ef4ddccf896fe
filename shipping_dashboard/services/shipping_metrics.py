"""Aggregate statistics over raw DRX shipments, deliveries and routes.

Everything here is a pure function of its inputs: no network, no cache, no
clock. Records are the raw JSON dicts returned by the API; missing fields
default to zero or are left out of set-based counts.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pytz

from shipping_dashboard.services.timestamps import day_key, parse_day, parse_timestamp

logger = logging.getLogger(__name__)

CLINIC_PREFIX = "Co."
UNASSIGNED_ROUTE = "Unassigned"
UNKNOWN_CARRIER = "unknown"
UNKNOWN_SERVICE = "unknown"
TOP_CITIES_LIMIT = 20
DOW_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
LAG_BUCKETS = (("0", "Same Day"), ("1", "1 Day"), ("2", "2 Days"), ("3+", "3+ Days"))
SECONDS_PER_DAY = 86400.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def is_clinic_shipment(shipment: Dict[str, Any]) -> bool:
    """Clinics are registered upstream as patients whose first name starts with "Co."."""
    patient = shipment.get("patient")
    first_name = patient.get("first_name") if isinstance(patient, dict) else None
    return isinstance(first_name, str) and first_name.startswith(CLINIC_PREFIX)


def delivery_status(delivery: Dict[str, Any]) -> str:
    if delivery.get("completed_at"):
        return "completed"
    if delivery.get("refused_at"):
        return "refused"
    return "pending"


def _route_name(delivery: Dict[str, Any]) -> str:
    route = delivery.get("route")
    if isinstance(route, dict):
        route = route.get("name")
    return str(route) if route else UNASSIGNED_ROUTE


def _cost(record: Dict[str, Any]) -> float:
    value = record.get("shipment_cost")
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        cost = float(value)
    except (TypeError, ValueError):
        return 0.0
    return cost if math.isfinite(cost) else 0.0


def _day_of_week(key: Optional[str]) -> Optional[int]:
    day = parse_day(key)
    if day is None:
        return None
    # Python weeks start on Monday; the dashboard counts from Sunday.
    return (day.weekday() + 1) % 7


def _address_field(shipment: Dict[str, Any], name: str) -> str:
    address = shipment.get("address")
    if not isinstance(address, dict):
        return ""
    value = address.get(name)
    return value.strip() if isinstance(value, str) else ""


def total_days_between(start_date: str, end_date: str) -> int:
    start = datetime.fromisoformat(start_date)
    end = datetime.fromisoformat(end_date) + timedelta(hours=23, minutes=59, seconds=59)
    return max(1, round_half_up((end - start).total_seconds() / SECONDS_PER_DAY))


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def _by_count_desc(rows: Iterable[Dict[str, Any]], field: str) -> List[Dict[str, Any]]:
    return sorted(rows, key=lambda row: row[field], reverse=True)


def _label_lag_days(shipment: Dict[str, Any], tz) -> Optional[int]:
    ship_date = parse_day(day_key(shipment.get("ship_date")))
    created = parse_timestamp(shipment.get("created_at"), tz)
    if ship_date is None or created is None:
        return None
    shipped = tz.localize(datetime.combine(ship_date, datetime.min.time()))
    lag = (shipped - created).total_seconds() / SECONDS_PER_DAY
    # A label printed on the ship date itself has created_at later than midnight.
    return max(0, round_half_up(lag))


def compute_shipping_metrics(
    shipments: Sequence[Dict[str, Any]],
    deliveries: Sequence[Dict[str, Any]],
    routes: Sequence[Dict[str, Any]],
    start_date: str,
    end_date: str,
    *,
    timezone: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the dashboard aggregate for one inclusive date range.

    ``timezone`` names the zone that offset-carrying timestamps are converted
    into before bucketing by day. When omitted, days are the literal
    ``YYYY-MM-DD`` prefix of each timestamp and ship dates are read as UTC
    midnight for the label-lag computation.
    """
    shipments = list(shipments)
    deliveries = list(deliveries)
    routes = list(routes)
    bucket_tz = pytz.timezone(timezone) if timezone else None
    lag_tz = bucket_tz or pytz.utc
    logger.info("Computing shipping metrics for %s to %s", start_date, end_date)
    logger.info(
        "Raw data: %d shipments, %d deliveries, %d routes",
        len(shipments), len(deliveries), len(routes),
    )

    total_days = total_days_between(start_date, end_date)

    # Shipments
    total_shipments = len(shipments)
    patient_ids = set()
    shipments_by_day: Dict[str, int] = {}
    shipments_by_dow = [0] * 7
    ship_to_patient = 0
    ship_to_clinic = 0
    for shipment in shipments:
        if shipment.get("patient_id"):
            patient_ids.add(shipment["patient_id"])
        if is_clinic_shipment(shipment):
            ship_to_clinic += 1
        else:
            ship_to_patient += 1
        key = day_key(shipment.get("created_at") or shipment.get("shipped_at"), bucket_tz)
        if key:
            shipments_by_day[key] = shipments_by_day.get(key, 0) + 1
            dow = _day_of_week(key)
            if dow is not None:
                shipments_by_dow[dow] += 1

    # Deliveries
    total_deliveries = len(deliveries)
    status_counts = {"completed": 0, "pending": 0, "refused": 0}
    deliveries_by_day: Dict[str, int] = {}
    deliveries_by_dow = [0] * 7
    route_map: Dict[str, Dict[str, Any]] = {}
    for delivery in deliveries:
        if delivery.get("patient_id"):
            patient_ids.add(delivery["patient_id"])
        status = delivery_status(delivery)
        status_counts[status] += 1
        key = day_key(delivery.get("delivery_on") or delivery.get("created_at"), bucket_tz)
        if key:
            deliveries_by_day[key] = deliveries_by_day.get(key, 0) + 1
            dow = _day_of_week(key)
            if dow is not None:
                deliveries_by_dow[dow] += 1
        route_name = _route_name(delivery)
        entry = route_map.get(route_name)
        if entry is None:
            entry = {"name": route_name, "total": 0, "completed": 0, "pending": 0, "refused": 0}
            route_map[route_name] = entry
        entry["total"] += 1
        entry[status] += 1

    status_breakdown = [
        {"name": "Completed", "value": status_counts["completed"]},
        {"name": "Pending", "value": status_counts["pending"]},
        {"name": "Refused", "value": status_counts["refused"]},
    ]

    daily_trends = []
    for day in sorted(set(shipments_by_day) | set(deliveries_by_day)):
        shipped = shipments_by_day.get(day, 0)
        delivered = deliveries_by_day.get(day, 0)
        daily_trends.append({"date": day, "shipments": shipped, "deliveries": delivered, "total": shipped + delivered})

    dow_distribution = [
        {
            "name": name,
            "shipments": shipments_by_dow[index],
            "deliveries": deliveries_by_dow[index],
            "total": shipments_by_dow[index] + deliveries_by_dow[index],
        }
        for index, name in enumerate(DOW_NAMES)
    ]

    # Carriers, costs and geography
    carrier_map: Dict[str, Dict[str, Any]] = {}
    cost_by_day: Dict[str, Dict[str, float]] = {}
    state_map: Dict[str, Dict[str, Any]] = {}
    city_map: Dict[str, Dict[str, Any]] = {}
    total_cost = 0.0
    for shipment in shipments:
        cost = _cost(shipment)
        total_cost += cost

        carrier = str(shipment.get("carrier_code") or UNKNOWN_CARRIER).upper()
        service = str(shipment.get("service_code") or UNKNOWN_SERVICE)
        carrier_entry = carrier_map.get(carrier)
        if carrier_entry is None:
            carrier_entry = {"name": carrier, "shipments": 0, "cost": 0.0, "services": {}}
            carrier_map[carrier] = carrier_entry
        carrier_entry["shipments"] += 1
        carrier_entry["cost"] += cost
        carrier_entry["services"][service] = carrier_entry["services"].get(service, 0) + 1

        key = day_key(shipment.get("created_at") or shipment.get("ship_date"), bucket_tz)
        if key:
            bucket = cost_by_day.setdefault(key, {"cost": 0.0, "count": 0})
            bucket["cost"] += cost
            bucket["count"] += 1

        state = _address_field(shipment, "state").upper()
        if state:
            state_entry = state_map.setdefault(state, {"name": state, "shipments": 0, "cost": 0.0})
            state_entry["shipments"] += 1
            state_entry["cost"] += cost
        city = _address_field(shipment, "city")
        if city and state:
            city_key = f"{city}, {state}"
            city_entry = city_map.setdefault(city_key, {"name": city_key, "shipments": 0, "cost": 0.0})
            city_entry["shipments"] += 1
            city_entry["cost"] += cost

    carrier_breakdown = _by_count_desc(
        (
            {
                "name": entry["name"],
                "shipments": entry["shipments"],
                "cost": entry["cost"],
                "avgCost": _ratio(entry["cost"], entry["shipments"]),
                "services": _by_count_desc(
                    ({"name": name, "count": count} for name, count in entry["services"].items()),
                    "count",
                ),
            }
            for entry in carrier_map.values()
        ),
        "shipments",
    )

    cost_trends = []
    for day in sorted(set(shipments_by_day) | set(cost_by_day)):
        bucket = cost_by_day.get(day)
        cost_trends.append({
            "date": day,
            "name": day,
            "cost": bucket["cost"] if bucket else 0.0,
            "shipments": shipments_by_day.get(day, 0),
            "avgCost": _ratio(bucket["cost"], bucket["count"]) if bucket else 0.0,
        })

    state_breakdown = _by_count_desc(state_map.values(), "shipments")
    top_cities = _by_count_desc(city_map.values(), "shipments")[:TOP_CITIES_LIMIT]

    # Label lag
    lag_counts = {bucket: 0 for bucket, _ in LAG_BUCKETS}
    total_lag_days = 0
    lag_count = 0
    for shipment in shipments:
        lag = _label_lag_days(shipment, lag_tz)
        if lag is None:
            continue
        total_lag_days += lag
        lag_count += 1
        lag_counts[str(lag) if lag < 3 else "3+"] += 1
    lag_distribution = [{"name": label, "value": lag_counts[bucket]} for bucket, label in LAG_BUCKETS]

    return {
        "startDate": start_date,
        "endDate": end_date,
        "totalDays": total_days,
        "kpi": {
            "totalShipments": total_shipments,
            "totalCost": total_cost,
            "avgCostPerShipment": _ratio(total_cost, total_shipments),
            "avgDailyCost": _ratio(total_cost, total_days),
            "avgShipmentsPerDay": _ratio(total_shipments, total_days),
            "shipToPatient": ship_to_patient,
            "shipToClinic": ship_to_clinic,
            "avgLagDays": _ratio(total_lag_days, lag_count),
            "uniquePatients": len(patient_ids),
        },
        "deliveryKpi": {
            "totalDeliveries": total_deliveries,
            "completed": status_counts["completed"],
            "pending": status_counts["pending"],
            "refused": status_counts["refused"],
            "completionRate": _ratio(status_counts["completed"], total_deliveries) * 100,
            "refusalRate": _ratio(status_counts["refused"], total_deliveries) * 100,
        },
        "statusBreakdown": status_breakdown,
        "dailyTrends": daily_trends,
        "routeBreakdown": _by_count_desc(route_map.values(), "total"),
        "dowDistribution": dow_distribution,
        "carrierBreakdown": carrier_breakdown,
        "costTrends": cost_trends,
        "stateBreakdown": state_breakdown,
        "topCities": top_cities,
        "lagDistribution": lag_distribution,
        "routesFetched": len(routes),
    }
