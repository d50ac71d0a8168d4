# Overview: Order lifecycle state machine; the only code allowed to change Order.order_status.

"""
Order Lifecycle Service

================================================================================
PURPOSE: Enforce the order pricing & approval workflow
================================================================================

STATE MACHINE:
    DRAFT -> SUBMITTED -> PRICING_REVIEW -> PENDING_APPROVAL -> QUOTED -> CONFIRMED
    PENDING_APPROVAL -> PRICING_REVIEW     (admin returns quote to logistics)
    PENDING_APPROVAL -> DECLINED
    CONFIRMED -> AWAITING_FABRICATION -> IN_PREPARATION -> COMPLETED
    CONFIRMED -> IN_PREPARATION            (nothing to fabricate)
    any non-terminal status -> CANCELLED

    Terminal: CANCELLED, DECLINED, COMPLETED

WHO MAY TRIGGER WHAT:
    client     submit_order, confirm_quote
    logistics  start_pricing_review, recalculate_pricing, submit_for_approval
    admin      approve_quote, return_to_logistics, decline_quote, cancel_order
    system     advance_fabrication (background rule, no user action)

RULES:
1. order_status changes only through _transition (history row + log line)
2. Every mutating call runs under the order row lock and is retried as a
   whole on optimistic-lock conflicts, so two concurrent approvals cannot
   both succeed: the loser re-reads QUOTED and fails the status check
3. Notifications are emitted after commit; their failure never undoes a
   transition
4. Domain errors are returned to the caller as-is; nothing is retried
   internally except concurrency conflicts
================================================================================
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable

from flask import current_app

from ..extensions import db
from ..models import Company, LineItem, Order, OrderStatusHistory, ServiceRequest
from ..models.orders import (
    LINE_ITEM_EDITABLE_STATUSES,
    RESOLVED_SERVICE_REQUEST_STATUSES,
    TERMINAL_STATUSES,
    OrderStatus,
)
from ..models.reference import TRIP_TYPES
from ..money import decimal_to_cents, format_money, format_percent, quantize_money, to_decimal
from ..permissions import (
    ORDERS_CANCEL,
    ORDERS_CONFIRM,
    ORDERS_CREATE,
    ORDERS_FABRICATION_MANAGE,
    ORDERS_PRICING_ADMIN_APPROVE,
    ORDERS_PRICING_REVIEW,
    ORDERS_SUBMIT,
)
from .concurrency import lock_order, run_with_retry
from .notification_service import emit_order_event
from .permission_service import Actor, SYSTEM_ACTOR, require_capability
from .pricing_service import (
    MAX_MARGIN_PERCENT,
    MIN_MARGIN_PERCENT,
    default_margin_percent,
    effective_margin_percent,
    recompute_order_pricing,
)
from .transport_rate_service import lookup_context, rate_for_order
from orderdesk.time_utils import utcnow


S = OrderStatus

VALID_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.DRAFT: frozenset({S.SUBMITTED, S.CANCELLED}),
    S.SUBMITTED: frozenset({S.PRICING_REVIEW, S.CANCELLED}),
    S.PRICING_REVIEW: frozenset({S.PENDING_APPROVAL, S.CANCELLED}),
    S.PENDING_APPROVAL: frozenset({S.QUOTED, S.PRICING_REVIEW, S.DECLINED, S.CANCELLED}),
    S.QUOTED: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.AWAITING_FABRICATION, S.IN_PREPARATION, S.CANCELLED}),
    S.AWAITING_FABRICATION: frozenset({S.IN_PREPARATION, S.CANCELLED}),
    S.IN_PREPARATION: frozenset({S.COMPLETED, S.CANCELLED}),
    S.DECLINED: frozenset(),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

# Return/decline reasons must explain themselves
MIN_REASON_LENGTH = 10

# Overrides closer than this to the current margin change nothing
MARGIN_OVERRIDE_EPSILON = Decimal("0.0001")


class OrderError(Exception):
    """Base for order workflow errors. Carries a stable code and details for the API."""

    code = "OrderError"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class OrderNotFound(OrderError):
    code = "OrderNotFound"
    http_status = 404


class InvalidStateTransition(OrderError):
    """Action attempted from a status that does not permit it."""
    code = "InvalidStateTransition"
    http_status = 409


class OrderNotEditable(OrderError):
    """Pricing/line-item change attempted outside PRICING_REVIEW / PENDING_APPROVAL."""
    code = "OrderNotEditable"
    http_status = 409


class MissingTransportRate(OrderError):
    """No transport rate matches the order's city / trip type / vehicle type."""
    code = "MissingTransportRate"
    http_status = 422


class OrderValidationError(OrderError):
    code = "OrderValidationError"
    http_status = 422


class RedundantMarginOverride(OrderValidationError):
    code = "RedundantMarginOverride"


class MissingOverrideReason(OrderValidationError):
    code = "MissingOverrideReason"


class InvalidReason(OrderValidationError):
    code = "InvalidReason"


class NoActiveLineItems(OrderValidationError):
    code = "NoActiveLineItems"


def can_transition(from_status: OrderStatus | str, to_status: OrderStatus | str) -> bool:
    """True if the lifecycle allows from_status -> to_status."""
    return OrderStatus(to_status) in VALID_TRANSITIONS[OrderStatus(from_status)]


def is_terminal(status: OrderStatus | str) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


# ================================================================================
# Shared helpers (also used by the line item ledger)
# ================================================================================

def run_order_op(op):
    """Run op under retry; any failure leaves the session clean."""
    try:
        return run_with_retry(op)
    except Exception:
        db.session.rollback()
        raise


def load_locked_order(order_id: int) -> Order:
    order = lock_order(order_id)
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def _require_status(order: Order, allowed: Iterable[OrderStatus], action: str) -> None:
    allowed = set(allowed)
    if order.status not in allowed:
        raise InvalidStateTransition(
            f"Cannot {action.replace('_', ' ')} order {order.id}: "
            f"current status is '{order.order_status}', "
            f"must be {' or '.join(sorted(repr(s.value) for s in allowed))}",
            details={
                "order_id": order.id,
                "action": action,
                "current_status": order.order_status,
                "allowed_statuses": sorted(s.value for s in allowed),
            },
        )


def require_editable(order: Order, action: str) -> None:
    """Raise OrderNotEditable unless pricing is open for changes."""
    if order.status not in LINE_ITEM_EDITABLE_STATUSES:
        raise OrderNotEditable(
            f"Cannot {action.replace('_', ' ')} on order {order.id} in status '{order.order_status}'",
            details={
                "order_id": order.id,
                "current_status": order.order_status,
                "editable_statuses": sorted(s.value for s in LINE_ITEM_EDITABLE_STATUSES),
            },
        )


def _validate_reason(reason: str | None, *, min_length: int = MIN_REASON_LENGTH) -> str:
    text = (reason or "").strip()
    if len(text) < min_length:
        if min_length <= 1:
            message = "A reason is required"
        else:
            message = f"Reason must be at least {min_length} characters"
        raise InvalidReason(message, details={"min_length": min_length, "length": len(text)})
    return text


def _transition(order: Order, to_status: OrderStatus, actor: Actor, note: str | None = None) -> None:
    from_status = order.status
    if not can_transition(from_status, to_status):
        raise InvalidStateTransition(
            f"Illegal transition {from_status.value} -> {to_status.value} for order {order.id}",
            details={
                "order_id": order.id,
                "current_status": from_status.value,
                "requested_status": to_status.value,
            },
        )

    now = utcnow()
    order.order_status = to_status.value
    order.updated_at = now
    db.session.add(OrderStatusHistory(
        order_id=order.id,
        from_status=from_status.value,
        to_status=to_status.value,
        actor_user_id=actor.user_id,
        note=note,
        occurred_at=now,
    ))
    current_app.logger.info(
        "Order %s: %s -> %s (actor=%s)",
        order.id, from_status.value, to_status.value,
        "system" if actor.is_system else actor.user_id,
    )


def _refresh_transport_rate(order: Order) -> bool:
    """Pull the current matching transport rate onto the order. False if none matches."""
    rate = rate_for_order(order)
    order.transport_rate_cents = rate.rate_cents if rate is not None else None
    return rate is not None


def _active_line_item_count(order_id: int) -> int:
    return db.session.query(LineItem).filter_by(order_id=order_id, voided=False).count()


def _pending_service_requests(order: Order) -> list[ServiceRequest]:
    return (
        db.session.query(ServiceRequest)
        .filter(
            ServiceRequest.order_id == order.id,
            ServiceRequest.request_status.notin_(RESOLVED_SERVICE_REQUEST_STATUSES),
        )
        .order_by(ServiceRequest.id.asc())
        .all()
    )


# ================================================================================
# Reads
# ================================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def list_orders(
    *,
    status: OrderStatus | str | None = None,
    company_id: int | None = None,
    limit: int = 200,
) -> list[Order]:
    """
    Query orders, newest first.

    USAGE EXAMPLES:
    - Admin approval queue: list_orders(status="PENDING_APPROVAL")
    - Logistics work queue: list_orders(status="PRICING_REVIEW")
    """
    q = db.session.query(Order)
    if status is not None:
        q = q.filter(Order.order_status == OrderStatus(status).value)
    if company_id is not None:
        q = q.filter(Order.company_id == company_id)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


def get_status_history(order_id: int) -> list[OrderStatusHistory]:
    get_order(order_id)
    return (
        db.session.query(OrderStatusHistory)
        .filter_by(order_id=order_id)
        .order_by(OrderStatusHistory.occurred_at.asc(), OrderStatusHistory.id.asc())
        .all()
    )


# ================================================================================
# Creation and intake
# ================================================================================

def create_order(
    actor: Actor,
    *,
    company_id: int,
    base_ops_total: Decimal = Decimal("0"),
    event_start_date: date | None = None,
    venue_location: str | None = None,
    venue_city_id: int | None = None,
    trip_type: str | None = None,
    vehicle_type_id: int | None = None,
) -> Order:
    """Create a DRAFT order with its initial pricing snapshot."""
    require_capability(actor, ORDERS_CREATE)

    company = db.session.get(Company, company_id)
    if company is None or not company.is_active:
        raise OrderValidationError(f"Company {company_id} not found", details={"company_id": company_id})
    if trip_type is not None and trip_type not in TRIP_TYPES:
        raise OrderValidationError(
            f"trip_type must be one of: {', '.join(TRIP_TYPES)}",
            details={"trip_type": trip_type},
        )
    base = quantize_money(to_decimal(base_ops_total))
    if base < 0:
        raise OrderValidationError("base_ops_total must be >= 0")

    try:
        order = Order(
            order_status=OrderStatus.DRAFT.value,
            company_id=company_id,
            event_start_date=event_start_date,
            venue_location=venue_location,
            venue_city_id=venue_city_id,
            trip_type=trip_type,
            vehicle_type_id=vehicle_type_id,
            base_ops_total_cents=decimal_to_cents(base),
            created_by_user_id=actor.user_id,
        )
        db.session.add(order)
        db.session.flush()
        order.order_number = f"ORD-{order.id:06d}"

        _refresh_transport_rate(order)
        recompute_order_pricing(order)

        db.session.add(OrderStatusHistory(
            order_id=order.id,
            from_status=None,
            to_status=OrderStatus.DRAFT.value,
            actor_user_id=actor.user_id,
            occurred_at=utcnow(),
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Order %s created as DRAFT (actor=%s)", order.id, actor.user_id)
    return order


def submit_order(order_id: int, actor: Actor) -> Order:
    """Client hands a DRAFT order to the platform (DRAFT -> SUBMITTED)."""
    require_capability(actor, ORDERS_SUBMIT)

    def _op():
        order = load_locked_order(order_id)
        _require_status(order, {S.DRAFT}, "submit")
        _transition(order, S.SUBMITTED, actor)
        db.session.commit()
        return order

    return run_order_op(_op)


def start_pricing_review(order_id: int, actor: Actor) -> Order:
    """Logistics picks up a submitted order (SUBMITTED -> PRICING_REVIEW)."""
    require_capability(actor, ORDERS_PRICING_REVIEW)

    def _op():
        order = load_locked_order(order_id)
        _require_status(order, {S.SUBMITTED}, "start_pricing_review")
        _refresh_transport_rate(order)
        recompute_order_pricing(order)
        _transition(order, S.PRICING_REVIEW, actor)
        db.session.commit()
        return order

    return run_order_op(_op)


def recalculate_pricing(order_id: int, actor: Actor) -> Order:
    """
    Re-resolve the transport rate and rebuild the pricing snapshot.

    Used after a missing transport rate has been created. No status change.
    """
    require_capability(actor, ORDERS_PRICING_REVIEW)

    def _op():
        order = load_locked_order(order_id)
        require_editable(order, "recalculate_pricing")
        _refresh_transport_rate(order)
        recompute_order_pricing(order)
        order.updated_at = utcnow()
        db.session.commit()
        return order

    return run_order_op(_op)


# ================================================================================
# Pricing review and approval
# ================================================================================

def submit_for_approval(order_id: int, actor: Actor) -> Order:
    """
    Logistics sends a priced order to admin (PRICING_REVIEW -> PENDING_APPROVAL).

    Raises:
        InvalidStateTransition: order is not in PRICING_REVIEW
        NoActiveLineItems: nothing has been priced yet
        MissingTransportRate: no rate for city/trip type/vehicle type; details
            carry the lookup keys so the caller can add one and resubmit
    """
    require_capability(actor, ORDERS_PRICING_REVIEW)

    def _op():
        order = load_locked_order(order_id)
        _require_status(order, {S.PRICING_REVIEW}, "submit_for_approval")

        if _active_line_item_count(order.id) == 0:
            raise NoActiveLineItems(
                f"Order {order.id} has no active line items to submit",
                details={"order_id": order.id},
            )

        if not _refresh_transport_rate(order):
            raise MissingTransportRate(
                f"No transport rate configured for order {order.id}",
                details={"order_id": order.id, **lookup_context(order)},
            )

        recompute_order_pricing(order)
        _transition(order, S.PENDING_APPROVAL, actor)
        db.session.commit()
        return order

    return run_order_op(_op)


def approve_quote(
    order_id: int,
    actor: Actor,
    *,
    margin_override_percent: Decimal | None = None,
    margin_override_reason: str | None = None,
) -> Order:
    """
    Admin approves pricing and issues the quote (PENDING_APPROVAL -> QUOTED).

    With an override, the override percent becomes the effective margin and
    the reason is stored with it. Either way the margin is locked until the
    order is returned to PRICING_REVIEW.

    Raises:
        InvalidStateTransition: order is not PENDING_APPROVAL
        RedundantMarginOverride: override equals the current effective margin
        MissingOverrideReason: override without a reason
        OrderValidationError: override outside [0, 100]
    """
    require_capability(actor, ORDERS_PRICING_ADMIN_APPROVE)

    def _op():
        order = load_locked_order(order_id)
        _require_status(order, {S.PENDING_APPROVAL}, "approve_quote")
        pricing = order.pricing
        current = effective_margin_percent(order)

        if margin_override_percent is not None:
            requested = quantize_money(to_decimal(margin_override_percent))
            if requested < MIN_MARGIN_PERCENT or requested > MAX_MARGIN_PERCENT:
                raise OrderValidationError(
                    "margin_override_percent must be between 0 and 100",
                    details={"margin_override_percent": str(requested)},
                )
            if abs(requested - current) < MARGIN_OVERRIDE_EPSILON:
                raise RedundantMarginOverride(
                    f"Margin override {requested}% is the same as the current margin",
                    details={"current_percent": str(current), "requested_percent": str(requested)},
                )
            reason = (margin_override_reason or "").strip()
            if not reason:
                raise MissingOverrideReason("A reason is required to override the margin")

            pricing = recompute_order_pricing(order, margin_percent=requested)
            pricing.margin_is_override = True
            pricing.margin_override_reason = reason
            pricing.margin_overridden_by_user_id = actor.user_id
        else:
            pricing = recompute_order_pricing(order, margin_percent=current)

        pricing.margin_locked = True
        _transition(order, S.QUOTED, actor, note=pricing.margin_override_reason)
        db.session.commit()
        return order

    order = run_order_op(_op)
    pricing = order.pricing
    emit_order_event(
        "order.quote_issued",
        order,
        actor_user_id=actor.user_id,
        payload={
            "total": format_money(pricing.total_cents),
            "currency": current_app.config["CURRENCY"],
            "margin_percent": format_percent(pricing.margin_percent_bps),
        },
    )
    return order


def return_to_logistics(order_id: int, actor: Actor, reason: str | None) -> Order:
    """
    Admin sends a quote back for rework (PENDING_APPROVAL -> PRICING_REVIEW).

    Clears any margin override and lock; line items are kept as they are.
    """
    require_capability(actor, ORDERS_PRICING_ADMIN_APPROVE)

    def _op():
        order = load_locked_order(order_id)
        _require_status(order, {S.PENDING_APPROVAL}, "return_to_logistics")
        text = _validate_reason(reason)

        pricing = order.pricing
        if pricing is not None:
            pricing.margin_is_override = False
            pricing.margin_override_reason = None
            pricing.margin_overridden_by_user_id = None
            pricing.margin_locked = False
        recompute_order_pricing(order, margin_percent=default_margin_percent(order))

        _transition(order, S.PRICING_REVIEW, actor, note=text)
        db.session.commit()
        return order

    return run_order_op(_op)


def decline_quote(order_id: int, actor: Actor, reason: str | None) -> Order:
    """Admin rejects the order outright (PENDING_APPROVAL -> DECLINED)."""
    require_capability(actor, ORDERS_PRICING_ADMIN_APPROVE)

    def _op():
        order = load_locked_order(order_id)
        _require_status(order, {S.PENDING_APPROVAL}, "decline_quote")
        text = _validate_reason(reason)
        _transition(order, S.DECLINED, actor, note=text)
        db.session.commit()
        return order

    return run_order_op(_op)


def cancel_order(order_id: int, actor: Actor, reason: str | None) -> Order:
    """
    Cancel any non-terminal order.

    Idempotent: cancelling a CANCELLED order succeeds without a second
    history row or cancellation event. Line items are left untouched.
    """
    require_capability(actor, ORDERS_CANCEL)

    def _op():
        order = load_locked_order(order_id)
        if order.status == S.CANCELLED:
            return order, False

        if is_terminal(order.status):
            _require_status(order, set(VALID_TRANSITIONS) - TERMINAL_STATUSES, "cancel")
        text = _validate_reason(reason, min_length=1)

        now = utcnow()
        order.cancelled_at = now
        order.cancelled_by_user_id = actor.user_id
        order.cancellation_reason = text
        _transition(order, S.CANCELLED, actor, note=text)
        db.session.commit()
        return order, True

    order, changed = run_order_op(_op)
    if changed:
        emit_order_event(
            "order.cancelled",
            order,
            actor_user_id=actor.user_id,
            payload={"reason": order.cancellation_reason},
        )
    return order


# ================================================================================
# Confirmation, fabrication and preparation
# ================================================================================

def confirm_quote(order_id: int, actor: Actor) -> Order:
    """
    Client accepts the quote (QUOTED -> CONFIRMED).

    Orders with unresolved fabrication requests continue straight to
    AWAITING_FABRICATION.
    """
    require_capability(actor, ORDERS_CONFIRM)

    def _op():
        order = load_locked_order(order_id)
        _require_status(order, {S.QUOTED}, "confirm_quote")
        _transition(order, S.CONFIRMED, actor)

        pending = _pending_service_requests(order)
        if pending:
            _transition(
                order, S.AWAITING_FABRICATION, SYSTEM_ACTOR,
                note=f"{len(pending)} fabrication request(s) pending",
            )
        db.session.commit()
        return order

    return run_order_op(_op)


def hold_for_fabrication(order: Order) -> None:
    """Move a CONFIRMED order with new pending requests to AWAITING_FABRICATION. Caller commits."""
    if order.status == S.CONFIRMED and _pending_service_requests(order):
        _transition(order, S.AWAITING_FABRICATION, SYSTEM_ACTOR, note="Fabrication request linked")


def release_fabrication_hold(order: Order) -> bool:
    """
    Move a locked AWAITING_FABRICATION order to IN_PREPARATION when no
    request is open. Caller commits.

    Any other status is left alone and reported as False.
    """
    if order.status != S.AWAITING_FABRICATION or _pending_service_requests(order):
        return False
    _transition(order, S.IN_PREPARATION, SYSTEM_ACTOR, note="All fabrication requests resolved")
    return True


def advance_fabrication(order_id: int) -> bool:
    """
    Background rule: AWAITING_FABRICATION -> IN_PREPARATION once every
    linked service request is resolved (COMPLETED or CANCELLED).

    Returns True if the order advanced, False if requests are still open.

    Raises:
        InvalidStateTransition: order is not AWAITING_FABRICATION
    """
    def _op():
        order = load_locked_order(order_id)
        _require_status(order, {S.AWAITING_FABRICATION}, "advance_fabrication")
        if not release_fabrication_hold(order):
            return False
        db.session.commit()
        return True

    return run_order_op(_op)


def start_preparation(order_id: int, actor: Actor) -> Order:
    """CONFIRMED -> IN_PREPARATION for orders with nothing to fabricate."""
    require_capability(actor, ORDERS_FABRICATION_MANAGE)

    def _op():
        order = load_locked_order(order_id)
        _require_status(order, {S.CONFIRMED}, "start_preparation")
        pending = _pending_service_requests(order)
        if pending:
            raise InvalidStateTransition(
                f"Order {order.id} has {len(pending)} unresolved fabrication request(s)",
                details={
                    "order_id": order.id,
                    "pending_service_request_ids": [sr.id for sr in pending],
                },
            )
        _transition(order, S.IN_PREPARATION, actor)
        db.session.commit()
        return order

    return run_order_op(_op)


def complete_order(order_id: int, actor: Actor) -> Order:
    """IN_PREPARATION -> COMPLETED."""
    require_capability(actor, ORDERS_FABRICATION_MANAGE)

    def _op():
        order = load_locked_order(order_id)
        _require_status(order, {S.IN_PREPARATION}, "complete")
        _transition(order, S.COMPLETED, actor)
        db.session.commit()
        return order

    return run_order_op(_op)
