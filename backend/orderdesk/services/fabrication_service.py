# Overview: Service requests (reskin / fabrication) linked to orders.

"""
Fabrication requests hold a confirmed order in AWAITING_FABRICATION until
each one is resolved. Resolving the last request moves the order to
IN_PREPARATION.

Every change to a request runs under its order's row lock and commits
together with whatever the change does to the order. Two users resolving
the last two requests at once therefore both succeed: whoever commits
second sees the other's resolution and performs the advance.

Processing a request prices it: the cost becomes a CUSTOM line item on
the order and the request's commercial status moves to QUOTED.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import ServiceRequest
from ..models.orders import SERVICE_REQUEST_TYPES, OrderStatus
from ..money import to_decimal
from ..permissions import ORDERS_FABRICATION_CANCEL, ORDERS_FABRICATION_MANAGE, ORDERS_PRICING_ADJUST
from .line_item_service import InvalidLineItem, append_custom_item
from .order_service import (
    OrderNotEditable,
    OrderValidationError,
    get_order,
    hold_for_fabrication,
    load_locked_order,
    release_fabrication_hold,
    run_order_op,
)
from .permission_service import Actor, require_capability
from orderdesk.time_utils import utcnow


class ServiceRequestError(Exception):
    code = "ServiceRequestError"
    http_status = 409

    def __init__(self, message: str, details: dict | None = None, http_status: int | None = None):
        super().__init__(message)
        self.details = details or {}
        if http_status is not None:
            self.http_status = http_status


# Statuses in which new fabrication work may still be attached
LINKABLE_STATUSES = frozenset({
    OrderStatus.PRICING_REVIEW,
    OrderStatus.PENDING_APPROVAL,
    OrderStatus.QUOTED,
    OrderStatus.CONFIRMED,
    OrderStatus.AWAITING_FABRICATION,
})


def list_service_requests(order_id: int) -> list[ServiceRequest]:
    get_order(order_id)
    return (
        db.session.query(ServiceRequest)
        .filter_by(order_id=order_id)
        .order_by(ServiceRequest.id.asc())
        .all()
    )


def link_service_request(
    order_id: int,
    actor: Actor,
    *,
    request_type: str = "RESKIN",
    description: str | None = None,
) -> ServiceRequest:
    """
    Attach a new fabrication request to an order.

    A CONFIRMED order moves to AWAITING_FABRICATION in the same transaction.
    """
    require_capability(actor, ORDERS_FABRICATION_MANAGE)
    if request_type not in SERVICE_REQUEST_TYPES:
        raise OrderValidationError(
            f"request_type must be one of: {', '.join(SERVICE_REQUEST_TYPES)}",
            details={"request_type": request_type},
        )

    def _op():
        order = load_locked_order(order_id)
        if order.status not in LINKABLE_STATUSES:
            raise OrderNotEditable(
                f"Cannot link a service request to order {order.id} in status '{order.order_status}'",
                details={
                    "order_id": order.id,
                    "current_status": order.order_status,
                    "linkable_statuses": sorted(s.value for s in LINKABLE_STATUSES),
                },
            )

        sr = ServiceRequest(
            order_id=order.id,
            request_type=request_type,
            request_status="SUBMITTED",
            commercial_status="PENDING_QUOTE",
            description=description,
            created_by_user_id=actor.user_id,
        )
        db.session.add(sr)
        db.session.flush()
        sr.service_request_number = f"SR-{sr.id:06d}"

        hold_for_fabrication(order)
        db.session.commit()
        return sr

    return run_order_op(_op)


def _lock_service_request(service_request_id: int):
    """Lock the request's order, then re-read the request under that lock."""
    sr = db.session.get(ServiceRequest, service_request_id)
    if sr is None:
        raise ServiceRequestError(
            f"Service request {service_request_id} not found",
            details={"service_request_id": service_request_id},
            http_status=404,
        )
    order = load_locked_order(sr.order_id)
    db.session.refresh(sr)
    return sr, order


def _resolve(service_request_id: int, new_status: str, actor: Actor, notes: str | None) -> ServiceRequest:
    def _op():
        sr, order = _lock_service_request(service_request_id)
        if sr.is_resolved:
            raise ServiceRequestError(
                f"Service request {sr.id} is already {sr.request_status}",
                details={"service_request_id": sr.id, "request_status": sr.request_status},
            )

        now = utcnow()
        sr.request_status = new_status
        sr.completed_at = now
        sr.completed_by_user_id = actor.user_id
        sr.completion_notes = notes
        # Bumps the order version so concurrent resolutions serialize
        order.updated_at = now

        advanced = release_fabrication_hold(order)
        db.session.commit()

        current_app.logger.info(
            "Service request %s %s (order=%s, actor=%s, advanced=%s)",
            sr.id, new_status, sr.order_id, actor.user_id, advanced,
        )
        return sr

    return run_order_op(_op)


def complete_service_request(service_request_id: int, actor: Actor, completion_notes: str | None = None) -> ServiceRequest:
    require_capability(actor, ORDERS_FABRICATION_MANAGE)
    return _resolve(service_request_id, "COMPLETED", actor, completion_notes)


def cancel_service_request(service_request_id: int, actor: Actor, reason: str | None = None) -> ServiceRequest:
    """Admin-only. Cancelling the last open request releases the fabrication hold."""
    require_capability(actor, ORDERS_FABRICATION_CANCEL)
    return _resolve(service_request_id, "CANCELLED", actor, reason)


def process_service_request(
    service_request_id: int,
    actor: Actor,
    *,
    cost,
    notes: str | None = None,
) -> ServiceRequest:
    """
    Price a request: add its cost to the order as a CUSTOM line item.

    The order must still be open for pricing changes (PRICING_REVIEW or
    PENDING_APPROVAL), and a request is processed at most once.

    Raises:
        ServiceRequestError: unknown request (404), cancelled or already processed (409)
        OrderNotEditable: order pricing is closed
        InvalidLineItem: cost <= 0 or above the amount limit
    """
    require_capability(actor, ORDERS_FABRICATION_MANAGE)
    require_capability(actor, ORDERS_PRICING_ADJUST)
    try:
        amount = to_decimal(cost)
    except ValueError:
        raise InvalidLineItem("cost must be a number", details={"field": "cost"})
    if amount <= Decimal("0"):
        raise InvalidLineItem("cost must be > 0", details={"field": "cost", "value": str(amount)})

    def _op():
        sr, order = _lock_service_request(service_request_id)
        if sr.request_status == "CANCELLED":
            raise ServiceRequestError(
                f"Service request {sr.id} is cancelled",
                details={"service_request_id": sr.id, "request_status": sr.request_status},
            )
        if sr.commercial_status != "PENDING_QUOTE":
            raise ServiceRequestError(
                f"Service request {sr.id} is already {sr.commercial_status}",
                details={"service_request_id": sr.id, "commercial_status": sr.commercial_status},
            )

        item = append_custom_item(
            order,
            actor,
            description=f"{sr.request_type.title()} {sr.service_request_number}",
            quantity=Decimal("1"),
            unit_rate=amount,
            notes=notes,
        )
        sr.commercial_status = "QUOTED"
        sr.cost_line_item_id = item.id
        db.session.commit()

        current_app.logger.info(
            "Service request %s processed (order=%s, line_item=%s, actor=%s)",
            sr.id, order.id, item.id, actor.user_id,
        )
        return sr

    return run_order_op(_op)
