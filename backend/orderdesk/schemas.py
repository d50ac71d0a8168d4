# Overview: Request body schemas for the order API.

"""
Each request dataclass is built with from_payload(payload), which rejects
unknown fields, coerces types and raises ValidationError (422) before a
service is called. Business rules (reason length, override redundancy,
editability) stay in the services.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from .validation import (
    MAX_AMOUNT,
    MAX_QUANTITY,
    ValidationError,
    ensure_payload,
    parse_decimal,
    parse_int,
    parse_optional_text,
    parse_text,
    reject_unknown_fields,
    require_fields,
)
from orderdesk.time_utils import parse_iso_date


def _optional_int(payload: dict, field: str) -> int | None:
    value = payload.get(field)
    return None if value is None else parse_int(value, field)


def _optional_reason(payload: dict) -> str | None:
    value = payload.get("reason")
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("reason must be a string", details={"fields": ["reason"]})
    return value


@dataclass(frozen=True)
class CreateOrderRequest:
    company_id: int
    base_ops_total: Decimal
    event_start_date: date | None = None
    venue_location: str | None = None
    venue_city_id: int | None = None
    trip_type: str | None = None
    vehicle_type_id: int | None = None

    FIELDS = frozenset({
        "company_id", "base_ops_total", "event_start_date", "venue_location",
        "venue_city_id", "trip_type", "vehicle_type_id",
    })

    @classmethod
    def from_payload(cls, payload: Any) -> "CreateOrderRequest":
        payload = ensure_payload(payload)
        reject_unknown_fields(payload, cls.FIELDS)
        require_fields(payload, {"company_id"})

        base = payload.get("base_ops_total")
        base_ops_total = (
            Decimal("0") if base is None
            else parse_decimal(base, "base_ops_total", minimum=Decimal("0"), maximum=MAX_AMOUNT)
        )

        raw_date = payload.get("event_start_date")
        if raw_date is not None and not isinstance(raw_date, str):
            raise ValidationError("event_start_date must be an ISO date string")
        try:
            event_start_date = parse_iso_date(raw_date)
        except ValueError:
            raise ValidationError("event_start_date must be an ISO date (YYYY-MM-DD)")

        trip_type = parse_optional_text(payload.get("trip_type"), "trip_type", max_length=16)

        return cls(
            company_id=parse_int(payload["company_id"], "company_id"),
            base_ops_total=base_ops_total,
            event_start_date=event_start_date,
            venue_location=parse_optional_text(payload.get("venue_location"), "venue_location", max_length=255),
            venue_city_id=_optional_int(payload, "venue_city_id"),
            trip_type=trip_type.upper() if trip_type else None,
            vehicle_type_id=_optional_int(payload, "vehicle_type_id"),
        )


@dataclass(frozen=True)
class ApproveQuoteRequest:
    margin_override_percent: Decimal | None = None
    margin_override_reason: str | None = None

    FIELDS = frozenset({"margin_override_percent", "margin_override_reason"})

    @classmethod
    def from_payload(cls, payload: Any) -> "ApproveQuoteRequest":
        payload = ensure_payload(payload)
        reject_unknown_fields(payload, cls.FIELDS)

        percent = payload.get("margin_override_percent")
        reason = payload.get("margin_override_reason")
        if reason is not None and not isinstance(reason, str):
            raise ValidationError("margin_override_reason must be a string")

        return cls(
            margin_override_percent=(
                None if percent is None
                else parse_decimal(
                    percent, "margin_override_percent",
                    minimum=Decimal("0"), maximum=Decimal("100"),
                )
            ),
            margin_override_reason=reason,
        )


@dataclass(frozen=True)
class ReasonRequest:
    """Body of return/decline/cancel/void. Length rules live in the services."""
    reason: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ReasonRequest":
        payload = ensure_payload(payload)
        reject_unknown_fields(payload, {"reason"})
        return cls(reason=_optional_reason(payload))


@dataclass(frozen=True)
class CatalogItemRequest:
    service_type_id: int
    quantity: Decimal
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CatalogItemRequest":
        payload = ensure_payload(payload)
        reject_unknown_fields(payload, {"service_type_id", "quantity", "notes"})
        require_fields(payload, {"service_type_id", "quantity"})
        return cls(
            service_type_id=parse_int(payload["service_type_id"], "service_type_id"),
            quantity=parse_decimal(
                payload["quantity"], "quantity",
                minimum=Decimal("0"), exclusive_minimum=True, maximum=MAX_QUANTITY,
            ),
            notes=parse_optional_text(payload.get("notes"), "notes", max_length=2000),
        )


@dataclass(frozen=True)
class CustomItemRequest:
    description: str
    quantity: Decimal
    unit_rate: Decimal
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CustomItemRequest":
        payload = ensure_payload(payload)
        reject_unknown_fields(payload, {"description", "quantity", "unit_rate", "notes"})
        require_fields(payload, {"description", "quantity", "unit_rate"})
        return cls(
            description=parse_text(payload["description"], "description", max_length=255, allow_blank=False),
            quantity=parse_decimal(
                payload["quantity"], "quantity",
                minimum=Decimal("0"), exclusive_minimum=True, maximum=MAX_QUANTITY,
            ),
            unit_rate=parse_decimal(payload["unit_rate"], "unit_rate", minimum=Decimal("0"), maximum=MAX_AMOUNT),
            notes=parse_optional_text(payload.get("notes"), "notes", max_length=2000),
        )


@dataclass(frozen=True)
class UpdateLineItemRequest:
    quantity: Decimal | None = None
    unit_rate: Decimal | None = None
    description: str | None = None
    notes: str | None = None

    FIELDS = frozenset({"quantity", "unit_rate", "description", "notes"})

    @classmethod
    def from_payload(cls, payload: Any) -> "UpdateLineItemRequest":
        payload = ensure_payload(payload)
        reject_unknown_fields(payload, cls.FIELDS)
        if not any(payload.get(f) is not None for f in cls.FIELDS):
            raise ValidationError(
                "Nothing to update",
                details={"fields": sorted(cls.FIELDS)},
            )

        quantity = payload.get("quantity")
        unit_rate = payload.get("unit_rate")
        description = payload.get("description")
        notes = payload.get("notes")
        return cls(
            quantity=(
                None if quantity is None
                else parse_decimal(quantity, "quantity", minimum=Decimal("0"), exclusive_minimum=True, maximum=MAX_QUANTITY)
            ),
            unit_rate=(
                None if unit_rate is None
                else parse_decimal(unit_rate, "unit_rate", minimum=Decimal("0"), maximum=MAX_AMOUNT)
            ),
            description=(
                None if description is None
                else parse_text(description, "description", max_length=255, allow_blank=False)
            ),
            notes=None if notes is None else parse_text(notes, "notes", max_length=2000),
        )


@dataclass(frozen=True)
class LinkServiceRequestRequest:
    request_type: str = "RESKIN"
    description: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "LinkServiceRequestRequest":
        payload = ensure_payload(payload)
        reject_unknown_fields(payload, {"request_type", "description"})
        request_type = parse_optional_text(payload.get("request_type"), "request_type", max_length=16)
        return cls(
            request_type=(request_type or "RESKIN").upper(),
            description=parse_optional_text(payload.get("description"), "description", max_length=2000),
        )


@dataclass(frozen=True)
class ResolveServiceRequestRequest:
    completion_notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ResolveServiceRequestRequest":
        payload = ensure_payload(payload)
        reject_unknown_fields(payload, {"completion_notes"})
        return cls(
            completion_notes=parse_optional_text(payload.get("completion_notes"), "completion_notes", max_length=2000),
        )


@dataclass(frozen=True)
class ProcessServiceRequestRequest:
    cost: Decimal
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ProcessServiceRequestRequest":
        payload = ensure_payload(payload)
        reject_unknown_fields(payload, {"cost", "notes"})
        require_fields(payload, {"cost"})
        return cls(
            cost=parse_decimal(payload["cost"], "cost", minimum=Decimal("0"), exclusive_minimum=True, maximum=MAX_AMOUNT),
            notes=parse_optional_text(payload.get("notes"), "notes", max_length=2000),
        )
