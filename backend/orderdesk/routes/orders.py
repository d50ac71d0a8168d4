# backend/orderdesk/routes/orders.py
"""
Order Workflow API Routes

Order intake, pricing review, admin approval, confirmation and
preparation. Every mutating route returns the new status together with
the current pricing snapshot:

    {"order_id": 7, "order_status": "QUOTED", "pricing": {...}}

SECURITY:
- All routes require a bearer token
- Each route requires the capability of the transition it triggers; the
  service checks the same capability again
- Actor identity comes from the token (g.actor), never from the body
"""

from flask import Blueprint, request, jsonify, g

from ..api_errors import DOMAIN_ERRORS, error_response, internal_error
from ..decorators import require_auth, require_permission
from ..models import OrderStatus
from ..permissions import (
    ORDERS_CANCEL,
    ORDERS_CONFIRM,
    ORDERS_CREATE,
    ORDERS_FABRICATION_MANAGE,
    ORDERS_PRICING_ADMIN_APPROVE,
    ORDERS_PRICING_REVIEW,
    ORDERS_READ,
    ORDERS_SUBMIT,
)
from ..schemas import ApproveQuoteRequest, CreateOrderRequest, ReasonRequest
from ..services import fabrication_service, line_item_service, order_service
from ..services.pricing_service import pricing_to_dict
from ..validation import ValidationError, parse_int


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _transition_body(order) -> dict:
    return {
        "order_id": order.id,
        "order_status": order.order_status,
        "pricing": pricing_to_dict(order.pricing) if order.pricing else None,
    }


@orders_bp.post("")
@require_auth
@require_permission(ORDERS_CREATE)
def create_order_route():
    """
    Create a DRAFT order.

    Request body:
        {
            "company_id": 1,
            "base_ops_total": "500.00",
            "event_start_date": "2026-11-20",     // optional
            "venue_location": "Hall 4",           // optional
            "venue_city_id": 1,                   // optional, transport lookup key
            "trip_type": "ROUND_TRIP",            // optional, transport lookup key
            "vehicle_type_id": 2                  // optional, transport lookup key
        }
    """
    try:
        req = CreateOrderRequest.from_payload(request.get_json(silent=True))
        order = order_service.create_order(
            g.actor,
            company_id=req.company_id,
            base_ops_total=req.base_ops_total,
            event_start_date=req.event_start_date,
            venue_location=req.venue_location,
            venue_city_id=req.venue_city_id,
            trip_type=req.trip_type,
            vehicle_type_id=req.vehicle_type_id,
        )
        return jsonify({"order": order.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("create order")


@orders_bp.get("")
@require_auth
@require_permission(ORDERS_READ)
def list_orders_route():
    """
    List orders, newest first.

    Query params:
        status: filter by order status (e.g. PENDING_APPROVAL)
        company_id: filter by company
        limit: max results (default 200, max 500)
    """
    try:
        status = request.args.get("status")
        if status is not None:
            status = status.strip().upper()
            if status not in OrderStatus.__members__:
                raise ValidationError(
                    f"Unknown status: {status}",
                    details={"allowed": [s.value for s in OrderStatus]},
                )

        company_id = request.args.get("company_id")
        company_id = parse_int(company_id, "company_id") if company_id else None

        limit = parse_int(request.args.get("limit", "200"), "limit")
        if limit < 1 or limit > 500:
            raise ValidationError("limit must be between 1 and 500")

        orders = order_service.list_orders(status=status, company_id=company_id, limit=limit)
        return jsonify({
            "orders": [o.to_dict() for o in orders],
            "count": len(orders),
        }), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("list orders")


@orders_bp.get("/<int:order_id>")
@require_auth
@require_permission(ORDERS_READ)
def get_order_route(order_id: int):
    """Order with pricing snapshot, line items (voided included) and service requests."""
    try:
        order = order_service.get_order(order_id)
        data = order.to_dict()
        data["line_items"] = [i.to_dict() for i in line_item_service.list_line_items(order_id)]
        data["service_requests"] = [sr.to_dict() for sr in fabrication_service.list_service_requests(order_id)]
        return jsonify({"order": data}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("get order")


@orders_bp.get("/<int:order_id>/status-history")
@require_auth
@require_permission(ORDERS_READ)
def status_history_route(order_id: int):
    try:
        history = order_service.get_status_history(order_id)
        return jsonify({"history": [h.to_dict() for h in history]}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("get status history")


@orders_bp.post("/<int:order_id>/submit")
@require_auth
@require_permission(ORDERS_SUBMIT)
def submit_order_route(order_id: int):
    """DRAFT -> SUBMITTED."""
    try:
        order = order_service.submit_order(order_id, g.actor)
        return jsonify(_transition_body(order)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("submit order")


@orders_bp.post("/<int:order_id>/start-pricing-review")
@require_auth
@require_permission(ORDERS_PRICING_REVIEW)
def start_pricing_review_route(order_id: int):
    """SUBMITTED -> PRICING_REVIEW."""
    try:
        order = order_service.start_pricing_review(order_id, g.actor)
        return jsonify(_transition_body(order)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("start pricing review")


@orders_bp.post("/<int:order_id>/pricing/recalculate")
@require_auth
@require_permission(ORDERS_PRICING_REVIEW)
def recalculate_pricing_route(order_id: int):
    """Re-resolve the transport rate and rebuild the pricing snapshot (no status change)."""
    try:
        order = order_service.recalculate_pricing(order_id, g.actor)
        return jsonify(_transition_body(order)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("recalculate pricing")


@orders_bp.post("/<int:order_id>/submit-for-approval")
@require_auth
@require_permission(ORDERS_PRICING_REVIEW)
def submit_for_approval_route(order_id: int):
    """
    PRICING_REVIEW -> PENDING_APPROVAL.

    Error responses:
        409 InvalidStateTransition: order not in PRICING_REVIEW
        422 NoActiveLineItems: nothing priced yet
        422 MissingTransportRate: details carry city / trip type / vehicle
            type so the rate can be added before retrying
    """
    try:
        order = order_service.submit_for_approval(order_id, g.actor)
        return jsonify(_transition_body(order)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("submit order for approval")


@orders_bp.post("/<int:order_id>/admin-approve")
@require_auth
@require_permission(ORDERS_PRICING_ADMIN_APPROVE)
def admin_approve_route(order_id: int):
    """
    PENDING_APPROVAL -> QUOTED, optionally overriding the margin.

    Request body (all optional):
        {
            "margin_override_percent": "25.00",
            "margin_override_reason": "High-value client"
        }

    Error responses:
        409 InvalidStateTransition
        422 RedundantMarginOverride: override equals the current margin
        422 MissingOverrideReason: override without a reason
    """
    try:
        req = ApproveQuoteRequest.from_payload(request.get_json(silent=True))
        order = order_service.approve_quote(
            order_id,
            g.actor,
            margin_override_percent=req.margin_override_percent,
            margin_override_reason=req.margin_override_reason,
        )
        return jsonify(_transition_body(order)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("approve quote")


@orders_bp.post("/<int:order_id>/return-to-logistics")
@require_auth
@require_permission(ORDERS_PRICING_ADMIN_APPROVE)
def return_to_logistics_route(order_id: int):
    """PENDING_APPROVAL -> PRICING_REVIEW. Body: {"reason": "..."} (>= 10 characters)."""
    try:
        req = ReasonRequest.from_payload(request.get_json(silent=True))
        order = order_service.return_to_logistics(order_id, g.actor, req.reason)
        return jsonify(_transition_body(order)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("return order to logistics")


@orders_bp.post("/<int:order_id>/decline")
@require_auth
@require_permission(ORDERS_PRICING_ADMIN_APPROVE)
def decline_quote_route(order_id: int):
    """PENDING_APPROVAL -> DECLINED. Body: {"reason": "..."} (>= 10 characters)."""
    try:
        req = ReasonRequest.from_payload(request.get_json(silent=True))
        order = order_service.decline_quote(order_id, g.actor, req.reason)
        return jsonify(_transition_body(order)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("decline quote")


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_permission(ORDERS_CANCEL)
def cancel_order_route(order_id: int):
    """
    Cancel a non-terminal order. Body: {"reason": "..."}.

    Cancelling an already cancelled order returns 200 with no side effects.
    """
    try:
        req = ReasonRequest.from_payload(request.get_json(silent=True))
        order = order_service.cancel_order(order_id, g.actor, req.reason)
        return jsonify(_transition_body(order)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("cancel order")


@orders_bp.post("/<int:order_id>/confirm")
@require_auth
@require_permission(ORDERS_CONFIRM)
def confirm_quote_route(order_id: int):
    """QUOTED -> CONFIRMED (-> AWAITING_FABRICATION when requests are pending)."""
    try:
        order = order_service.confirm_quote(order_id, g.actor)
        return jsonify(_transition_body(order)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("confirm quote")


@orders_bp.post("/<int:order_id>/start-preparation")
@require_auth
@require_permission(ORDERS_FABRICATION_MANAGE)
def start_preparation_route(order_id: int):
    try:
        order = order_service.start_preparation(order_id, g.actor)
        return jsonify(_transition_body(order)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("start preparation")


@orders_bp.post("/<int:order_id>/complete")
@require_auth
@require_permission(ORDERS_FABRICATION_MANAGE)
def complete_order_route(order_id: int):
    try:
        order = order_service.complete_order(order_id, g.actor)
        return jsonify(_transition_body(order)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("complete order")
