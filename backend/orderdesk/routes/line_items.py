# backend/orderdesk/routes/line_items.py
"""
Line item ledger routes.

Mutations are allowed only while the order is PRICING_REVIEW or
PENDING_APPROVAL (409 OrderNotEditable otherwise) and return the item
with the recomputed pricing snapshot:

    {"line_item": {...}, "pricing": {...}}
"""

from flask import Blueprint, request, jsonify, g

from ..api_errors import DOMAIN_ERRORS, error_response, internal_error
from ..decorators import require_auth, require_permission
from ..permissions import ORDERS_PRICING_ADJUST, ORDERS_READ
from ..schemas import CatalogItemRequest, CustomItemRequest, ReasonRequest, UpdateLineItemRequest
from ..services import line_item_service, order_service
from ..services.pricing_service import pricing_to_dict


line_items_bp = Blueprint("line_items", __name__, url_prefix="/api/orders/<int:order_id>/line-items")


def _item_body(item) -> dict:
    order = order_service.get_order(item.order_id)
    return {
        "line_item": item.to_dict(),
        "pricing": pricing_to_dict(order.pricing) if order.pricing else None,
    }


@line_items_bp.get("")
@require_auth
@require_permission(ORDERS_READ)
def list_line_items_route(order_id: int):
    """Query params: include_voided (default true)."""
    try:
        include_voided = request.args.get("include_voided", "true").strip().lower() not in ("0", "false", "no")
        items = line_item_service.list_line_items(order_id, include_voided=include_voided)
        return jsonify({"line_items": [i.to_dict() for i in items]}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("list line items")


@line_items_bp.post("/catalog")
@require_auth
@require_permission(ORDERS_PRICING_ADJUST)
def add_catalog_item_route(order_id: int):
    """
    Add a catalog service at its current default rate.

    Request body:
        {"service_type_id": 3, "quantity": "2", "notes": "optional"}
    """
    try:
        req = CatalogItemRequest.from_payload(request.get_json(silent=True))
        item = line_item_service.add_catalog_item(
            order_id,
            g.actor,
            service_type_id=req.service_type_id,
            quantity=req.quantity,
            notes=req.notes,
        )
        return jsonify(_item_body(item)), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("add catalog line item")


@line_items_bp.post("/custom")
@require_auth
@require_permission(ORDERS_PRICING_ADJUST)
def add_custom_item_route(order_id: int):
    """
    Add an ad-hoc charge.

    Request body:
        {"description": "Extra crew", "quantity": "1", "unit_rate": "120.00", "notes": "optional"}
    """
    try:
        req = CustomItemRequest.from_payload(request.get_json(silent=True))
        item = line_item_service.add_custom_item(
            order_id,
            g.actor,
            description=req.description,
            quantity=req.quantity,
            unit_rate=req.unit_rate,
            notes=req.notes,
        )
        return jsonify(_item_body(item)), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("add custom line item")


@line_items_bp.put("/<int:item_id>")
@require_auth
@require_permission(ORDERS_PRICING_ADJUST)
def update_line_item_route(order_id: int, item_id: int):
    try:
        req = UpdateLineItemRequest.from_payload(request.get_json(silent=True))
        item = line_item_service.update_line_item(
            order_id,
            item_id,
            g.actor,
            quantity=req.quantity,
            unit_rate=req.unit_rate,
            description=req.description,
            notes=req.notes,
        )
        return jsonify(_item_body(item)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("update line item")


@line_items_bp.delete("/<int:item_id>")
@require_auth
@require_permission(ORDERS_PRICING_ADJUST)
def void_line_item_route(order_id: int, item_id: int):
    """
    Void (never delete) a line item. Body: {"reason": "..."}.

    Error responses:
        404 LineItemNotFound
        409 ItemAlreadyVoided / OrderNotEditable
        422 InvalidReason
    """
    try:
        req = ReasonRequest.from_payload(request.get_json(silent=True))
        item = line_item_service.void_item(order_id, item_id, g.actor, req.reason)
        return jsonify(_item_body(item)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("void line item")
