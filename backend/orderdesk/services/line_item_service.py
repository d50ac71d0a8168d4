# Overview: Line item ledger for order pricing (add, edit, void).

"""
Line Item Ledger

Catalog and custom charges attached to an order. They are additive to the
base ops + transport pricing and feed the catalog/custom totals of the
pricing snapshot.

RULES:
1. Items change only while the order is PRICING_REVIEW or PENDING_APPROVAL
2. Items are never deleted: voiding keeps the row, its reason and actor
3. Voided items are excluded from every total
4. Every change recomputes the pricing snapshot in the same transaction,
   under the order row lock
"""

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import LineItem, ServiceType
from ..money import cents_to_decimal, decimal_to_cents, quantize_money, to_decimal
from ..permissions import ORDERS_PRICING_ADJUST
from ..validation import MAX_AMOUNT, MAX_QUANTITY
from .order_service import InvalidReason, get_order, load_locked_order, require_editable, run_order_op
from .permission_service import Actor, require_capability
from .pricing_service import recompute_order_pricing
from orderdesk.time_utils import utcnow


MAX_DESCRIPTION_LENGTH = 255
MAX_VOID_REASON_LENGTH = 255


class LineItemError(Exception):
    """Base for ledger errors."""

    code = "LineItemError"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class LineItemNotFound(LineItemError):
    code = "LineItemNotFound"
    http_status = 404


class ItemAlreadyVoided(LineItemError):
    code = "ItemAlreadyVoided"
    http_status = 409


class InvalidLineItem(LineItemError):
    code = "InvalidLineItem"
    http_status = 422


def _check_quantity(quantity) -> Decimal:
    try:
        value = to_decimal(quantity)
    except ValueError:
        raise InvalidLineItem("quantity must be a number", details={"field": "quantity"})
    if value <= 0:
        raise InvalidLineItem("quantity must be > 0", details={"field": "quantity", "value": str(value)})
    if value > MAX_QUANTITY:
        raise InvalidLineItem(f"quantity cannot exceed {MAX_QUANTITY}", details={"field": "quantity"})
    return quantize_money(value)


def _check_unit_rate(unit_rate) -> Decimal:
    try:
        value = to_decimal(unit_rate)
    except ValueError:
        raise InvalidLineItem("unit_rate must be a number", details={"field": "unit_rate"})
    if value < 0:
        raise InvalidLineItem("unit_rate must be >= 0", details={"field": "unit_rate", "value": str(value)})
    if value > MAX_AMOUNT:
        raise InvalidLineItem(f"unit_rate cannot exceed {MAX_AMOUNT}", details={"field": "unit_rate"})
    return quantize_money(value)


def _check_description(description) -> str:
    text = (description or "").strip()
    if not text:
        raise InvalidLineItem("description is required", details={"field": "description"})
    if len(text) > MAX_DESCRIPTION_LENGTH:
        raise InvalidLineItem(
            f"description exceeds max length {MAX_DESCRIPTION_LENGTH}",
            details={"field": "description"},
        )
    return text


def _line_amount_cents(quantity: Decimal, unit_rate: Decimal) -> int:
    amount = quantize_money(quantity * unit_rate)
    if amount > MAX_AMOUNT:
        raise InvalidLineItem(f"line amount cannot exceed {MAX_AMOUNT}", details={"amount": str(amount)})
    return decimal_to_cents(amount)


def _load_item(order_id: int, item_id: int) -> LineItem:
    item = db.session.get(LineItem, item_id)
    if item is None or item.order_id != order_id:
        raise LineItemNotFound(
            f"Line item {item_id} not found on order {order_id}",
            details={"order_id": order_id, "line_item_id": item_id},
        )
    return item


def list_line_items(order_id: int, *, include_voided: bool = True) -> list[LineItem]:
    get_order(order_id)
    q = db.session.query(LineItem).filter_by(order_id=order_id)
    if not include_voided:
        q = q.filter_by(voided=False)
    return q.order_by(LineItem.id.asc()).all()


def add_catalog_item(
    order_id: int,
    actor: Actor,
    *,
    service_type_id: int,
    quantity,
    notes: str | None = None,
) -> LineItem:
    """
    Add a catalog service at its current default rate.

    The rate is copied onto the item: later catalog price changes do not
    reprice existing orders.

    Raises:
        OrderNotFound, OrderNotEditable
        InvalidLineItem: unknown/inactive service type, no default rate,
            quantity <= 0
    """
    require_capability(actor, ORDERS_PRICING_ADJUST)

    def _op():
        order = load_locked_order(order_id)
        require_editable(order, "add_line_item")

        service_type = db.session.get(ServiceType, service_type_id)
        if service_type is None or not service_type.is_active:
            raise InvalidLineItem(
                f"Service type {service_type_id} not found",
                details={"service_type_id": service_type_id},
            )
        if service_type.default_rate_cents is None:
            raise InvalidLineItem(
                f"Service type '{service_type.name}' has no default rate; add it as a custom item",
                details={"service_type_id": service_type_id},
            )

        qty = _check_quantity(quantity)
        unit_rate = cents_to_decimal(service_type.default_rate_cents)
        item = LineItem(
            order_id=order.id,
            kind="CATALOG",
            service_type_id=service_type.id,
            description=service_type.name,
            notes=notes,
            quantity=qty,
            unit_rate_cents=service_type.default_rate_cents,
            amount_cents=_line_amount_cents(qty, unit_rate),
            voided=False,
            created_by_user_id=actor.user_id,
        )
        db.session.add(item)
        db.session.flush()

        recompute_order_pricing(order)
        order.updated_at = utcnow()
        db.session.commit()
        return item

    return run_order_op(_op)


def add_custom_item(
    order_id: int,
    actor: Actor,
    *,
    description: str,
    quantity,
    unit_rate,
    notes: str | None = None,
) -> LineItem:
    """Add an ad-hoc charge with a rate typed in by logistics/admin."""
    require_capability(actor, ORDERS_PRICING_ADJUST)

    def _op():
        order = load_locked_order(order_id)
        item = append_custom_item(
            order, actor, description=description, quantity=quantity, unit_rate=unit_rate, notes=notes,
        )
        db.session.commit()
        return item

    return run_order_op(_op)


def append_custom_item(order, actor: Actor, *, description, quantity, unit_rate, notes=None) -> LineItem:
    """Insert a custom item on an already locked order and reprice it. Caller commits."""
    require_editable(order, "add_line_item")

    text = _check_description(description)
    qty = _check_quantity(quantity)
    rate = _check_unit_rate(unit_rate)
    item = LineItem(
        order_id=order.id,
        kind="CUSTOM",
        description=text,
        notes=notes,
        quantity=qty,
        unit_rate_cents=decimal_to_cents(rate),
        amount_cents=_line_amount_cents(qty, rate),
        voided=False,
        created_by_user_id=actor.user_id,
    )
    db.session.add(item)
    db.session.flush()

    recompute_order_pricing(order)
    order.updated_at = utcnow()
    return item


def update_line_item(
    order_id: int,
    item_id: int,
    actor: Actor,
    *,
    quantity=None,
    unit_rate=None,
    description: str | None = None,
    notes: str | None = None,
) -> LineItem:
    """
    Edit an active item. Only fields passed (not None) change.

    Catalog items keep their snapshotted rate and name; only quantity and
    notes may change on them.
    """
    require_capability(actor, ORDERS_PRICING_ADJUST)

    def _op():
        order = load_locked_order(order_id)
        require_editable(order, "update_line_item")
        item = _load_item(order.id, item_id)
        if item.voided:
            raise ItemAlreadyVoided(
                f"Line item {item.id} is voided and cannot be edited",
                details={"line_item_id": item.id},
            )
        if item.kind == "CATALOG" and (unit_rate is not None or description is not None):
            raise InvalidLineItem(
                "Catalog items only allow quantity and notes to change",
                details={"line_item_id": item.id},
            )

        qty = _check_quantity(quantity) if quantity is not None else to_decimal(item.quantity)
        rate = _check_unit_rate(unit_rate) if unit_rate is not None else cents_to_decimal(item.unit_rate_cents)
        if description is not None:
            item.description = _check_description(description)
        if notes is not None:
            item.notes = notes.strip() or None

        item.quantity = qty
        item.unit_rate_cents = decimal_to_cents(rate)
        item.amount_cents = _line_amount_cents(qty, rate)
        item.updated_at = utcnow()

        recompute_order_pricing(order)
        order.updated_at = item.updated_at
        db.session.commit()
        return item

    return run_order_op(_op)


def void_item(order_id: int, item_id: int, actor: Actor, reason: str | None) -> LineItem:
    """
    Soft-void an item and drop it from the totals.

    Raises:
        OrderNotEditable: order is not open for pricing changes
        LineItemNotFound: item missing or on another order
        ItemAlreadyVoided: item was voided before
        InvalidReason: blank or over-long reason
    """
    require_capability(actor, ORDERS_PRICING_ADJUST)

    def _op():
        order = load_locked_order(order_id)
        require_editable(order, "void_line_item")
        item = _load_item(order.id, item_id)
        if item.voided:
            raise ItemAlreadyVoided(
                f"Line item {item.id} is already voided",
                details={"line_item_id": item.id, "voided_at": item.voided_at.isoformat() if item.voided_at else None},
            )
        text = (reason or "").strip()
        if not text:
            raise InvalidReason("A reason is required to void a line item", details={"min_length": 1, "length": 0})
        if len(text) > MAX_VOID_REASON_LENGTH:
            raise InvalidReason(
                f"Void reason cannot exceed {MAX_VOID_REASON_LENGTH} characters",
                details={"max_length": MAX_VOID_REASON_LENGTH, "length": len(text)},
            )

        now = utcnow()
        item.voided = True
        item.void_reason = text
        item.voided_at = now
        item.voided_by_user_id = actor.user_id
        item.updated_at = now

        recompute_order_pricing(order)
        order.updated_at = now
        db.session.commit()
        return item

    return run_order_op(_op)
