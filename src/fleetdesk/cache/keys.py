"""Cache key schema for fleetdesk.

Key format: {namespace}:{suffix}

Where:
- namespace: entity family ("booking", "bookings", "vehicle", "dashboard", ...)
- suffix: entity id, a sub-family plus id, or a canonicalized filter set

Singular namespaces hold one entity per key ("vehicle:v1"); plural
namespaces hold listings and aggregates ("vehicles:status:\"available\"").
The namespace doubles as the entry's invalidation tag, see
``fleetdesk.cache.invalidation``.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from typing import Any

import orjson

EMPTY_PARAMS = "{}"


def _default(value: Any) -> Any:
    """Serialize types orjson does not handle natively."""
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=lambda item: orjson.dumps(item, default=_default))
    raise TypeError(f"Type is not cacheable as a key part: {type(value).__name__}")


def _encode(value: Any) -> str:
    return orjson.dumps(value, default=_default, option=orjson.OPT_SORT_KEYS).decode()


def build_key(prefix: str, params: Mapping[str, Any] | None = None) -> str:
    """Build a deterministic key from a namespace and a filter mapping.

    Parameters are ordered by name and each value is JSON-encoded with
    sorted object keys, so equivalent filters always collide:

        >>> build_key("bookings", {"status": "active", "page": 1})
        'bookings:page:1|status:"active"'

    ``None`` values are dropped. An empty filter set maps to ``{}``.
    """
    if not prefix:
        raise ValueError("Cache key prefix must not be empty")

    parts = [
        f"{name}:{_encode(value)}"
        for name, value in sorted((params or {}).items())
        if value is not None
    ]
    suffix = "|".join(parts) if parts else EMPTY_PARAMS
    return f"{prefix}:{suffix}"


def namespace(key: str) -> str:
    """Return the namespace (first segment) of a key."""
    return key.split(":", 1)[0]


def entity_tag(entity: str, identifier: str) -> str:
    """Tag attached to every entry derived from a single entity."""
    return f"{entity}:{identifier}"


class CacheKeys:
    """Named key families used by request handlers."""

    # Users
    @classmethod
    def user(cls, user_id: str) -> str:
        return f"user:{user_id}"

    @classmethod
    def user_by_email(cls, email: str) -> str:
        return f"user:email:{email.lower()}"

    @classmethod
    def user_sessions(cls, user_id: str) -> str:
        return f"user:sessions:{user_id}"

    # Bookings
    @classmethod
    def booking(cls, booking_id: str) -> str:
        return f"booking:{booking_id}"

    @classmethod
    def bookings(cls, filters: Mapping[str, Any] | None = None) -> str:
        return build_key("bookings", filters)

    @classmethod
    def bookings_by_customer(cls, customer_id: str) -> str:
        return f"bookings:customer:{customer_id}"

    @classmethod
    def bookings_by_vehicle(cls, vehicle_id: str) -> str:
        return f"bookings:vehicle:{vehicle_id}"

    @classmethod
    def bookings_today(cls, today: date | None = None) -> str:
        return f"bookings:today:{(today or date.today()).isoformat()}"

    # Customers
    @classmethod
    def customer(cls, customer_id: str) -> str:
        return f"customer:{customer_id}"

    @classmethod
    def customers(cls, filters: Mapping[str, Any] | None = None) -> str:
        return build_key("customers", filters)

    @classmethod
    def customer_stats(cls, customer_id: str) -> str:
        return f"customer:stats:{customer_id}"

    # Vehicles
    @classmethod
    def vehicle(cls, vehicle_id: str) -> str:
        return f"vehicle:{vehicle_id}"

    @classmethod
    def vehicles(cls, filters: Mapping[str, Any] | None = None) -> str:
        return build_key("vehicles", filters)

    @classmethod
    def vehicles_available(cls) -> str:
        return "vehicles:available"

    @classmethod
    def vehicle_maintenance(cls, vehicle_id: str) -> str:
        return f"vehicle:maintenance:{vehicle_id}"

    # Dashboard
    @classmethod
    def dashboard_summary(cls, user_id: str | None = None) -> str:
        return f"dashboard:summary:{user_id}" if user_id else "dashboard:summary"

    @classmethod
    def dashboard_widgets(cls, user_id: str | None = None) -> str:
        return f"dashboard:widgets:{user_id}" if user_id else "dashboard:widgets"

    @classmethod
    def dashboard_metrics(cls, time_range: str | None = None) -> str:
        return f"dashboard:metrics:{time_range}" if time_range else "dashboard:metrics"

    # Financials
    @classmethod
    def financial_summary(cls, filters: Mapping[str, Any] | None = None) -> str:
        return build_key("financial", {"view": "summary", **(filters or {})})

    @classmethod
    def invoices(cls, filters: Mapping[str, Any] | None = None) -> str:
        return build_key("invoices", filters)

    @classmethod
    def invoice(cls, invoice_id: str) -> str:
        return f"invoice:{invoice_id}"

    @classmethod
    def payments(cls, filters: Mapping[str, Any] | None = None) -> str:
        return build_key("payments", filters)

    @classmethod
    def report(cls, report_type: str, params: Mapping[str, Any] | None = None) -> str:
        return build_key("report", {"type": report_type, **(params or {})})

    # Settings
    @classmethod
    def settings(cls) -> str:
        return "settings:global"

    @classmethod
    def settings_by_key(cls, key: str) -> str:
        return f"settings:{key}"

    # Maintenance
    @classmethod
    def maintenance(cls, record_id: str) -> str:
        return f"maintenance:{record_id}"

    @classmethod
    def maintenance_urgent(cls) -> str:
        return "maintenance:urgent"

    @classmethod
    def maintenance_by_vehicle(cls, vehicle_id: str) -> str:
        return f"maintenance:vehicle:{vehicle_id}"

    # Investors
    @classmethod
    def investor(cls, investor_id: str) -> str:
        return f"investor:{investor_id}"

    @classmethod
    def investors(cls, filters: Mapping[str, Any] | None = None) -> str:
        return build_key("investors", filters)

    @classmethod
    def investor_reports(cls, investor_id: str, filters: Mapping[str, Any] | None = None) -> str:
        return build_key("investors", {"reports": investor_id, **(filters or {})})

    # Recurring expenses
    @classmethod
    def recurring_upcoming(cls, days_ahead: int, today: date | None = None) -> str:
        return build_key(
            "recurring",
            {"upcoming": days_ahead, "from": (today or date.today()).isoformat()},
        )

    @classmethod
    def parse_key(cls, key: str) -> dict[str, str] | None:
        """Split a key into namespace and suffix.

        Returns None if the key has no namespace separator.
        """
        ns, sep, suffix = key.partition(":")
        if not sep or not ns:
            return None
        return {"namespace": ns, "suffix": suffix}
