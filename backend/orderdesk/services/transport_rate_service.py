# Overview: Transport rate lookup for order pricing.

"""
Transport rates are reference data maintained by the platform. Pricing only
needs one question answered: what does moving this order cost?

Lookup precedence for (city, trip type, vehicle type):
1. active rate specific to the order's company
2. active platform-wide rate (company_id IS NULL)
Within a level the most recently created row wins.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, TransportRate
from ..models.reference import TRIP_TYPES


def find_transport_rate(
    *,
    city_id: int | None,
    trip_type: str | None,
    vehicle_type_id: int | None,
    company_id: int | None = None,
) -> TransportRate | None:
    if city_id is None or trip_type is None or vehicle_type_id is None:
        return None

    base = db.session.query(TransportRate).filter_by(
        city_id=city_id,
        trip_type=trip_type,
        vehicle_type_id=vehicle_type_id,
        is_active=True,
    )

    if company_id is not None:
        specific = (
            base.filter(TransportRate.company_id == company_id)
            .order_by(TransportRate.id.desc())
            .first()
        )
        if specific is not None:
            return specific

    return (
        base.filter(TransportRate.company_id.is_(None))
        .order_by(TransportRate.id.desc())
        .first()
    )


def rate_for_order(order: Order) -> TransportRate | None:
    return find_transport_rate(
        city_id=order.venue_city_id,
        trip_type=order.trip_type,
        vehicle_type_id=order.vehicle_type_id,
        company_id=order.company_id,
    )


def lookup_context(order: Order) -> dict:
    """What a caller needs to create the missing rate and retry."""
    return {
        "company_id": order.company_id,
        "city_id": order.venue_city_id,
        "city": order.venue_city.name if order.venue_city else None,
        "trip_type": order.trip_type,
        "vehicle_type_id": order.vehicle_type_id,
        "vehicle_type": order.vehicle_type.name if order.vehicle_type else None,
    }


def create_transport_rate(
    *,
    city_id: int,
    trip_type: str,
    vehicle_type_id: int,
    rate_cents: int,
    company_id: int | None = None,
    area: str | None = None,
) -> TransportRate:
    """Seed/maintenance helper (CLI). Raises ValueError on bad input."""
    if trip_type not in TRIP_TYPES:
        raise ValueError(f"trip_type must be one of: {', '.join(TRIP_TYPES)}")
    if rate_cents < 0:
        raise ValueError("rate_cents must be >= 0")

    rate = TransportRate(
        company_id=company_id,
        city_id=city_id,
        area=area,
        trip_type=trip_type,
        vehicle_type_id=vehicle_type_id,
        rate_cents=rate_cents,
    )
    db.session.add(rate)
    db.session.commit()
    return rate
