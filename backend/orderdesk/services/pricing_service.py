# Overview: Order pricing calculator and snapshot maintenance.

"""
Order Pricing Service

================================================================================
PURPOSE: Compute order totals in fixed-point and keep OrderPricing current
================================================================================

FORMULA:
    subtotal      = base_ops + transport + catalog + custom
    margin_amount = round_half_up(subtotal * margin_percent / 100, 2)
    total         = subtotal + margin_amount

RULES:
1. compute_totals is pure: no I/O, no session access, Decimal only
2. Every amount rounds ROUND_HALF_UP to 2 places, never binary float
3. Voided line items never count toward catalog/custom totals
4. A locked margin (quote issued) is never replaced by a recompute
5. A missing transport rate counts as 0 and is reported as null

Inputs that break these rules (negative amounts, margin outside [0, 100])
mean a caller upstream is broken. They raise InvalidPricingInput, which
the API reports as a server error rather than a client mistake.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import Order, OrderPricing, LineItem
from ..money import (
    HUNDRED,
    bps_to_percent,
    cents_to_decimal,
    decimal_to_cents,
    format_money,
    format_percent,
    percent_to_bps,
    quantize_money,
    to_decimal,
)
from orderdesk.time_utils import to_utc_z, utcnow


MIN_MARGIN_PERCENT = Decimal("0")
MAX_MARGIN_PERCENT = Decimal("100")


class InvalidPricingInput(ValueError):
    """Pricing inputs violate calculator preconditions (caller bug upstream)."""

    code = "InvalidPricingInput"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class PricingInputs:
    base_ops_total: Decimal
    transport_rate: Decimal
    catalog_total: Decimal
    custom_total: Decimal


@dataclass(frozen=True)
class PricingTotals:
    subtotal: Decimal
    margin_amount: Decimal
    total: Decimal


def _checked_amount(name: str, value: Any) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError as exc:
        raise InvalidPricingInput(f"{name} is not a decimal amount", details={"field": name}) from exc
    if amount < 0:
        raise InvalidPricingInput(f"{name} cannot be negative", details={"field": name, "value": str(amount)})
    return amount


def compute_totals(inputs: PricingInputs, margin_percent: Any) -> PricingTotals:
    """
    Compute margin amount and grand total.

    Args:
        inputs: base ops, transport, catalog and custom totals (>= 0)
        margin_percent: effective margin in [0, 100]

    Returns:
        PricingTotals with every value quantized to 2 places

    Raises:
        InvalidPricingInput: negative/non-numeric amount or margin out of range
    """
    base = _checked_amount("base_ops_total", inputs.base_ops_total)
    transport = _checked_amount("transport_rate", inputs.transport_rate)
    catalog = _checked_amount("catalog_total", inputs.catalog_total)
    custom = _checked_amount("custom_total", inputs.custom_total)

    try:
        percent = to_decimal(margin_percent)
    except ValueError as exc:
        raise InvalidPricingInput("margin_percent is not a decimal", details={"field": "margin_percent"}) from exc
    if percent < MIN_MARGIN_PERCENT or percent > MAX_MARGIN_PERCENT:
        raise InvalidPricingInput(
            "margin_percent must be between 0 and 100",
            details={"field": "margin_percent", "value": str(percent)},
        )

    subtotal = quantize_money(base + transport + catalog + custom)
    margin_amount = quantize_money(subtotal * percent / HUNDRED)
    return PricingTotals(
        subtotal=subtotal,
        margin_amount=margin_amount,
        total=subtotal + margin_amount,
    )


def default_margin_percent(order: Order) -> Decimal:
    """Company platform margin, falling back to DEFAULT_MARGIN_PERCENT."""
    company = order.company
    if company is not None and company.platform_margin_percent_bps is not None:
        return bps_to_percent(company.platform_margin_percent_bps)
    return quantize_money(to_decimal(current_app.config["DEFAULT_MARGIN_PERCENT"]))


def effective_margin_percent(order: Order) -> Decimal:
    """
    Margin applied to the order's current pricing: the admin override (or
    the margin frozen when the quote was issued), else the company default.
    """
    pricing = order.pricing
    if pricing is not None and (pricing.margin_is_override or pricing.margin_locked):
        return bps_to_percent(pricing.margin_percent_bps)
    return default_margin_percent(order)


def line_item_totals(order_id: int) -> tuple[int, int]:
    """(catalog_total_cents, custom_total_cents) over non-voided items."""
    items = db.session.query(LineItem).filter_by(order_id=order_id, voided=False).all()
    catalog = sum(item.amount_cents for item in items if item.kind == "CATALOG")
    custom = sum(item.amount_cents for item in items if item.kind == "CUSTOM")
    return catalog, custom


def recompute_order_pricing(order: Order, *, margin_percent: Decimal | None = None) -> OrderPricing:
    """
    Rebuild the order's pricing snapshot. Caller commits.

    Args:
        order: the (locked) order
        margin_percent: new effective margin; ignored while the margin is locked

    Flushing bumps OrderPricing.version, which invalidates any cached copy
    a client holds.
    """
    pricing = order.pricing
    if pricing is None:
        pricing = OrderPricing(order=order)
        db.session.add(pricing)

    if pricing.margin_locked:
        percent = bps_to_percent(pricing.margin_percent_bps)
    elif margin_percent is not None:
        percent = margin_percent
    else:
        percent = effective_margin_percent(order)

    catalog_cents, custom_cents = line_item_totals(order.id) if order.id else (0, 0)
    transport_cents = order.transport_rate_cents

    totals = compute_totals(
        PricingInputs(
            base_ops_total=cents_to_decimal(order.base_ops_total_cents or 0),
            transport_rate=cents_to_decimal(transport_cents or 0),
            catalog_total=cents_to_decimal(catalog_cents),
            custom_total=cents_to_decimal(custom_cents),
        ),
        percent,
    )

    pricing.base_ops_total_cents = order.base_ops_total_cents or 0
    pricing.transport_rate_cents = transport_cents
    pricing.catalog_total_cents = catalog_cents
    pricing.custom_total_cents = custom_cents
    pricing.margin_percent_bps = percent_to_bps(percent)
    pricing.margin_amount_cents = decimal_to_cents(totals.margin_amount)
    pricing.total_cents = decimal_to_cents(totals.total)
    pricing.calculated_at = utcnow()

    db.session.flush()
    return pricing


def pricing_to_dict(pricing: OrderPricing) -> dict:
    """Wire snapshot: every amount is a 2-place decimal string."""
    logistics_sub_total = (
        pricing.base_ops_total_cents
        + (pricing.transport_rate_cents or 0)
        + pricing.catalog_total_cents
        + pricing.custom_total_cents
    )
    return {
        "order_id": pricing.order_id,
        "base_ops_total": format_money(pricing.base_ops_total_cents),
        "transport": {
            "final_rate": format_money(pricing.transport_rate_cents),
        },
        "line_items": {
            "catalog_total": format_money(pricing.catalog_total_cents),
            "custom_total": format_money(pricing.custom_total_cents),
        },
        "logistics_sub_total": format_money(logistics_sub_total),
        "margin": {
            "percent": format_percent(pricing.margin_percent_bps),
            "amount": format_money(pricing.margin_amount_cents),
            "is_override": pricing.margin_is_override,
            "override_reason": pricing.margin_override_reason,
            "locked": pricing.margin_locked,
        },
        "total": format_money(pricing.total_cents),
        "currency": current_app.config["CURRENCY"],
        "version": pricing.version,
        "calculated_at": to_utc_z(pricing.calculated_at),
    }
