"""
Service request / fabrication hold tests.

Verifies:
- Confirmed orders with open requests wait in AWAITING_FABRICATION
- Resolving the last open request advances the order automatically
- Resolved requests cannot be resolved again
- Processing a request adds its cost as a custom line item, once
- Cancelling a request is admin-only
"""

from decimal import Decimal

import pytest

from orderdesk.models.orders import OrderStatus
from orderdesk.services import fabrication_service, line_item_service, order_service
from orderdesk.services.fabrication_service import ServiceRequestError
from orderdesk.services.line_item_service import InvalidLineItem
from orderdesk.services.order_service import OrderNotEditable
from orderdesk.services.permission_service import PermissionDeniedError


S = OrderStatus


class TestLinking:

    def test_request_numbered(self, make_order, admin_actor):
        order = make_order(S.QUOTED)
        sr = fabrication_service.link_service_request(order.id, admin_actor, description="Reskin bar front")
        assert sr.service_request_number == f"SR-{sr.id:06d}"
        assert sr.request_status == "SUBMITTED"
        assert order_service.get_order(order.id).order_status == "QUOTED"

    def test_linking_to_confirmed_order_holds_it(self, make_order, admin_actor):
        order = make_order(S.CONFIRMED)
        fabrication_service.link_service_request(order.id, admin_actor, request_type="FABRICATION")
        assert order_service.get_order(order.id).order_status == "AWAITING_FABRICATION"

    @pytest.mark.parametrize("status", [S.DRAFT, S.IN_PREPARATION, S.CANCELLED])
    def test_not_linkable(self, make_order, admin_actor, status):
        order = make_order(status)
        with pytest.raises(OrderNotEditable):
            fabrication_service.link_service_request(order.id, admin_actor)


class TestAutoAdvance:

    def test_last_resolution_advances_order(self, make_order, admin_actor):
        order = make_order(S.QUOTED)
        first = fabrication_service.link_service_request(order.id, admin_actor, description="Panels")
        second = fabrication_service.link_service_request(order.id, admin_actor, description="Signage")
        order_service.confirm_quote(order.id, admin_actor)
        assert order_service.get_order(order.id).order_status == "AWAITING_FABRICATION"

        fabrication_service.complete_service_request(first.id, admin_actor, "Delivered to warehouse")
        assert order_service.get_order(order.id).order_status == "AWAITING_FABRICATION"

        fabrication_service.cancel_service_request(second.id, admin_actor, "Client dropped signage")
        order = order_service.get_order(order.id)
        assert order.order_status == "IN_PREPARATION"

        last = order_service.get_status_history(order.id)[-1]
        assert (last.from_status, last.to_status) == ("AWAITING_FABRICATION", "IN_PREPARATION")
        assert last.actor_user_id is None

    def test_advance_reports_pending(self, make_order):
        order = make_order(S.AWAITING_FABRICATION)
        assert order_service.advance_fabrication(order.id) is False

    def test_resolve_twice(self, make_order, admin_actor):
        order = make_order(S.AWAITING_FABRICATION)
        sr = fabrication_service.list_service_requests(order.id)[0]
        fabrication_service.complete_service_request(sr.id, admin_actor)

        with pytest.raises(ServiceRequestError) as exc:
            fabrication_service.complete_service_request(sr.id, admin_actor)
        assert exc.value.http_status == 409

    def test_unknown_request(self, db_session, admin_actor):
        with pytest.raises(ServiceRequestError) as exc:
            fabrication_service.cancel_service_request(424242, admin_actor)
        assert exc.value.http_status == 404

    def test_resolving_request_on_unheld_order_leaves_status(self, make_order, admin_actor):
        order = make_order(S.QUOTED)
        sr = fabrication_service.link_service_request(order.id, admin_actor)

        resolved = fabrication_service.complete_service_request(sr.id, admin_actor, "Done early")
        assert resolved.request_status == "COMPLETED"
        assert order_service.get_order(order.id).order_status == "QUOTED"

    def test_logistics_completes_but_cannot_cancel(self, make_order, admin_actor, logistics_actor):
        order = make_order(S.QUOTED)
        first = fabrication_service.link_service_request(order.id, admin_actor)
        second = fabrication_service.link_service_request(order.id, admin_actor)

        assert fabrication_service.complete_service_request(first.id, logistics_actor).request_status == "COMPLETED"
        with pytest.raises(PermissionDeniedError):
            fabrication_service.cancel_service_request(second.id, logistics_actor, "Not needed")
        assert fabrication_service.list_service_requests(order.id)[1].request_status == "SUBMITTED"


class TestProcessing:

    def test_cost_becomes_custom_line_item(self, make_order, admin_actor):
        order = make_order(S.PRICING_REVIEW)
        sr = fabrication_service.link_service_request(order.id, admin_actor, description="Bar front")

        processed = fabrication_service.process_service_request(
            sr.id, admin_actor, cost=Decimal("450.00"), notes="Vinyl wrap",
        )
        assert processed.commercial_status == "QUOTED"

        item = [i for i in line_item_service.list_line_items(order.id) if i.id == processed.cost_line_item_id][0]
        assert item.kind == "CUSTOM"
        assert item.description == f"Reskin {sr.service_request_number}"
        assert item.amount_cents == 45000
        assert item.notes == "Vinyl wrap"

        pricing = order_service.get_order(order.id).pricing
        assert pricing.custom_total_cents == 45000
        # (920.00 + 450.00) * 1.20
        assert pricing.total_cents == 164400

    def test_processed_once(self, make_order, admin_actor):
        order = make_order(S.PENDING_APPROVAL)
        sr = fabrication_service.link_service_request(order.id, admin_actor)
        fabrication_service.process_service_request(sr.id, admin_actor, cost="100.00")

        with pytest.raises(ServiceRequestError) as exc:
            fabrication_service.process_service_request(sr.id, admin_actor, cost="100.00")
        assert exc.value.http_status == 409
        assert order_service.get_order(order.id).pricing.custom_total_cents == 10000

    def test_cancelled_request_not_processed(self, make_order, admin_actor):
        order = make_order(S.PRICING_REVIEW)
        sr = fabrication_service.link_service_request(order.id, admin_actor)
        fabrication_service.cancel_service_request(sr.id, admin_actor, "Dropped")

        with pytest.raises(ServiceRequestError):
            fabrication_service.process_service_request(sr.id, admin_actor, cost="100.00")

    def test_closed_pricing_rejected(self, make_order, admin_actor):
        order = make_order(S.QUOTED)
        sr = fabrication_service.link_service_request(order.id, admin_actor)

        with pytest.raises(OrderNotEditable):
            fabrication_service.process_service_request(sr.id, admin_actor, cost="100.00")

        assert fabrication_service.list_service_requests(order.id)[0].commercial_status == "PENDING_QUOTE"
        assert len(line_item_service.list_line_items(order.id)) == 1

    @pytest.mark.parametrize("cost", ["0", "-5.00", "abc"])
    def test_bad_cost(self, make_order, admin_actor, cost):
        order = make_order(S.PRICING_REVIEW)
        sr = fabrication_service.link_service_request(order.id, admin_actor)
        with pytest.raises(InvalidLineItem):
            fabrication_service.process_service_request(sr.id, admin_actor, cost=cost)
