"""
Line item ledger tests.

Verifies:
- Catalog items snapshot the service type rate
- Custom items and edits reprice the order in the same call
- Voiding is soft, audited, and happens once
- Items are frozen outside PRICING_REVIEW / PENDING_APPROVAL
"""

from decimal import Decimal

import pytest

from orderdesk.models.orders import OrderStatus
from orderdesk.services import line_item_service, order_service
from orderdesk.services.line_item_service import (
    InvalidLineItem,
    ItemAlreadyVoided,
    LineItemNotFound,
)
from orderdesk.services.order_service import InvalidReason, OrderNotEditable
from orderdesk.services.permission_service import PermissionDeniedError


S = OrderStatus


def _only_item(order_id):
    items = line_item_service.list_line_items(order_id)
    assert len(items) == 1
    return items[0]


class TestCatalogItems:

    def test_rate_is_snapshotted(self, db_session, make_order, service_type, logistics_actor):
        order = make_order(S.PRICING_REVIEW, with_item=False)
        item = line_item_service.add_catalog_item(
            order.id, logistics_actor, service_type_id=service_type.id, quantity=Decimal("2"),
        )
        assert item.unit_rate_cents == 12000
        assert item.amount_cents == 24000
        assert item.description == "Assembly crew"

        service_type.default_rate_cents = 99900
        db_session.commit()
        order_service.recalculate_pricing(order.id, logistics_actor)

        order = order_service.get_order(order.id)
        assert order.pricing.catalog_total_cents == 24000

    def test_inactive_service_type_rejected(self, db_session, make_order, service_type, admin_actor):
        order = make_order(S.PRICING_REVIEW, with_item=False)
        service_type.is_active = False
        db_session.commit()

        with pytest.raises(InvalidLineItem):
            line_item_service.add_catalog_item(order.id, admin_actor, service_type_id=service_type.id, quantity=1)

    @pytest.mark.parametrize("quantity", [0, -1, "abc"])
    def test_bad_quantity(self, make_order, service_type, admin_actor, quantity):
        order = make_order(S.PRICING_REVIEW, with_item=False)
        with pytest.raises(InvalidLineItem):
            line_item_service.add_catalog_item(
                order.id, admin_actor, service_type_id=service_type.id, quantity=quantity,
            )


class TestCustomItems:

    def test_custom_item_feeds_custom_total(self, make_order, admin_actor):
        order = make_order(S.PRICING_REVIEW)
        item = line_item_service.add_custom_item(
            order.id, admin_actor, description="Night shift surcharge", quantity="1.5", unit_rate="100.00",
        )
        assert item.kind == "CUSTOM"
        assert item.amount_cents == 15000

        pricing = order_service.get_order(order.id).pricing
        assert pricing.custom_total_cents == 15000
        # subtotal 1070.00 * 20% = 214.00
        assert pricing.total_cents == 128400

    def test_blank_description_rejected(self, make_order, admin_actor):
        order = make_order(S.PRICING_REVIEW)
        with pytest.raises(InvalidLineItem):
            line_item_service.add_custom_item(order.id, admin_actor, description="  ", quantity=1, unit_rate=10)

    def test_update_custom_item(self, make_order, admin_actor):
        order = make_order(S.PRICING_REVIEW)
        item = line_item_service.add_custom_item(
            order.id, admin_actor, description="Storage", quantity=1, unit_rate="50.00",
        )
        item = line_item_service.update_line_item(order.id, item.id, admin_actor, quantity=3)
        assert item.amount_cents == 15000
        assert order_service.get_order(order.id).pricing.custom_total_cents == 15000

    def test_catalog_rate_cannot_be_edited(self, make_order, admin_actor):
        order = make_order(S.PRICING_REVIEW)
        item = _only_item(order.id)
        with pytest.raises(InvalidLineItem):
            line_item_service.update_line_item(order.id, item.id, admin_actor, unit_rate="1.00")


class TestVoid:

    def test_void_removes_item_from_totals(self, make_order, admin_actor, admin_user):
        order = make_order(S.PENDING_APPROVAL)
        item = _only_item(order.id)

        voided = line_item_service.void_item(order.id, item.id, admin_actor, "Client supplies own crew")
        assert voided.voided is True
        assert voided.void_reason == "Client supplies own crew"
        assert voided.voided_by_user_id == admin_user.id
        assert voided.voided_at is not None

        pricing = order_service.get_order(order.id).pricing
        assert pricing.catalog_total_cents == 0
        # 800.00 * 20% = 160.00
        assert pricing.total_cents == 96000

        # Row is kept for audit
        assert len(line_item_service.list_line_items(order.id)) == 1
        assert line_item_service.list_line_items(order.id, include_voided=False) == []

    def test_void_twice_fails(self, make_order, admin_actor):
        order = make_order(S.PRICING_REVIEW)
        item = _only_item(order.id)
        line_item_service.void_item(order.id, item.id, admin_actor, "Duplicate line")

        with pytest.raises(ItemAlreadyVoided) as exc:
            line_item_service.void_item(order.id, item.id, admin_actor, "Duplicate line")
        assert exc.value.http_status == 409

        pricing = order_service.get_order(order.id).pricing
        assert pricing.catalog_total_cents == 0
        assert pricing.total_cents == 96000

    def test_void_requires_reason(self, make_order, admin_actor):
        order = make_order(S.PRICING_REVIEW)
        item = _only_item(order.id)
        with pytest.raises(InvalidReason):
            line_item_service.void_item(order.id, item.id, admin_actor, "")
        assert _only_item(order.id).voided is False

    def test_overlong_void_reason_rejected(self, make_order, admin_actor):
        order = make_order(S.PRICING_REVIEW)
        item = _only_item(order.id)
        with pytest.raises(InvalidReason) as exc:
            line_item_service.void_item(order.id, item.id, admin_actor, "x" * 256)
        assert exc.value.details["max_length"] == 255
        assert _only_item(order.id).voided is False

        voided = line_item_service.void_item(order.id, item.id, admin_actor, "y" * 255)
        assert voided.void_reason == "y" * 255

    def test_item_from_another_order(self, make_order, admin_actor):
        first = make_order(S.PRICING_REVIEW)
        second = make_order(S.PRICING_REVIEW)
        item = _only_item(first.id)

        with pytest.raises(LineItemNotFound):
            line_item_service.void_item(second.id, item.id, admin_actor, "Wrong order")

    def test_voided_item_cannot_be_edited(self, make_order, admin_actor):
        order = make_order(S.PRICING_REVIEW)
        item = _only_item(order.id)
        line_item_service.void_item(order.id, item.id, admin_actor, "Not needed")

        with pytest.raises(ItemAlreadyVoided):
            line_item_service.update_line_item(order.id, item.id, admin_actor, quantity=2)


class TestEditability:

    @pytest.mark.parametrize("status", [S.DRAFT, S.SUBMITTED, S.QUOTED, S.CONFIRMED, S.CANCELLED])
    def test_add_outside_pricing_window(self, make_order, admin_actor, status):
        order = make_order(status)
        with pytest.raises(OrderNotEditable):
            line_item_service.add_custom_item(order.id, admin_actor, description="Extra", quantity=1, unit_rate=1)

    def test_void_on_quoted_order(self, make_order, admin_actor):
        order = make_order(S.QUOTED)
        item = _only_item(order.id)
        with pytest.raises(OrderNotEditable):
            line_item_service.void_item(order.id, item.id, admin_actor, "Too late")

    def test_client_cannot_adjust(self, make_order, client_actor):
        order = make_order(S.PRICING_REVIEW)
        with pytest.raises(PermissionDeniedError):
            line_item_service.add_custom_item(order.id, client_actor, description="Extra", quantity=1, unit_rate=1)
