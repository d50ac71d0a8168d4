# backend/orderdesk/routes/service_requests.py
"""
Fabrication / reskin request routes.

Resolving the last open request of an AWAITING_FABRICATION order moves
the order to IN_PREPARATION; the response carries the resulting status.
Cancelling a request is admin-only.
"""

from flask import Blueprint, request, jsonify, g

from ..api_errors import DOMAIN_ERRORS, error_response, internal_error
from ..decorators import require_auth, require_permission
from ..permissions import ORDERS_FABRICATION_CANCEL, ORDERS_FABRICATION_MANAGE, ORDERS_PRICING_ADJUST, ORDERS_READ
from ..schemas import LinkServiceRequestRequest, ProcessServiceRequestRequest, ResolveServiceRequestRequest
from ..services import fabrication_service, order_service
from ..services.pricing_service import pricing_to_dict


service_requests_bp = Blueprint("service_requests", __name__, url_prefix="/api")


@service_requests_bp.get("/orders/<int:order_id>/service-requests")
@require_auth
@require_permission(ORDERS_READ)
def list_service_requests_route(order_id: int):
    try:
        requests_ = fabrication_service.list_service_requests(order_id)
        return jsonify({"service_requests": [sr.to_dict() for sr in requests_]}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("list service requests")


@service_requests_bp.post("/orders/<int:order_id>/service-requests")
@require_auth
@require_permission(ORDERS_FABRICATION_MANAGE)
def link_service_request_route(order_id: int):
    """Body: {"request_type": "RESKIN" | "FABRICATION", "description": "..."}."""
    try:
        req = LinkServiceRequestRequest.from_payload(request.get_json(silent=True))
        sr = fabrication_service.link_service_request(
            order_id,
            g.actor,
            request_type=req.request_type,
            description=req.description,
        )
        order = order_service.get_order(order_id)
        return jsonify({"service_request": sr.to_dict(), "order_status": order.order_status}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("link service request")


def _resolve_route(service_request_id: int, resolver, action: str):
    try:
        req = ResolveServiceRequestRequest.from_payload(request.get_json(silent=True))
        sr = resolver(service_request_id, g.actor, req.completion_notes)
        order = order_service.get_order(sr.order_id)
        return jsonify({"service_request": sr.to_dict(), "order_status": order.order_status}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(action)


@service_requests_bp.post("/service-requests/<int:service_request_id>/complete")
@require_auth
@require_permission(ORDERS_FABRICATION_MANAGE)
def complete_service_request_route(service_request_id: int):
    """Body: {"completion_notes": "..."} (optional)."""
    return _resolve_route(service_request_id, fabrication_service.complete_service_request, "complete service request")


@service_requests_bp.post("/service-requests/<int:service_request_id>/cancel")
@require_auth
@require_permission(ORDERS_FABRICATION_CANCEL)
def cancel_service_request_route(service_request_id: int):
    return _resolve_route(service_request_id, fabrication_service.cancel_service_request, "cancel service request")


@service_requests_bp.post("/service-requests/<int:service_request_id>/process")
@require_auth
@require_permission(ORDERS_FABRICATION_MANAGE)
@require_permission(ORDERS_PRICING_ADJUST)
def process_service_request_route(service_request_id: int):
    """
    Price a request and add its cost to the order.

    Request body:
        {"cost": "450.00", "notes": "optional"}

    Response:
        {"service_request": {...}, "line_item_id": 12, "pricing": {...}}
    """
    try:
        req = ProcessServiceRequestRequest.from_payload(request.get_json(silent=True))
        sr = fabrication_service.process_service_request(
            service_request_id, g.actor, cost=req.cost, notes=req.notes,
        )
        order = order_service.get_order(sr.order_id)
        return jsonify({
            "service_request": sr.to_dict(),
            "line_item_id": sr.cost_line_item_id,
            "pricing": pricing_to_dict(order.pricing) if order.pricing else None,
        }), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("process service request")
