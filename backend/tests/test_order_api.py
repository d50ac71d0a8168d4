"""
Order API tests: request validation, error bodies and the full quote
workflow over HTTP.
"""

import pytest

from orderdesk.models.orders import OrderStatus


S = OrderStatus


def _error(resp):
    body = resp.get_json()
    assert set(body) == {"error", "code", "details"}
    return body


class TestCreateOrder:

    def test_create_returns_201(self, client, company, city, vehicle, transport_rate, client_headers):
        resp = client.post(
            "/api/orders",
            json={
                "company_id": company.id,
                "base_ops_total": "500.00",
                "event_start_date": "2026-11-20",
                "venue_city_id": city.id,
                "trip_type": "round_trip",
                "vehicle_type_id": vehicle.id,
            },
            headers=client_headers,
        )
        assert resp.status_code == 201
        order = resp.get_json()["order"]
        assert order["order_status"] == "DRAFT"
        assert order["trip_type"] == "ROUND_TRIP"
        assert order["event_start_date"] == "2026-11-20"
        assert order["pricing"]["transport"]["final_rate"] == "300.00"
        assert order["pricing"]["total"] == "960.00"

    def test_unknown_field_rejected(self, client, company, client_headers):
        resp = client.post(
            "/api/orders",
            json={"company_id": company.id, "order_status": "QUOTED"},
            headers=client_headers,
        )
        assert resp.status_code == 422
        body = _error(resp)
        assert body["code"] == "ValidationError"
        assert body["details"]["fields"] == ["order_status"]

    @pytest.mark.parametrize("value", ["-1", "abc", "1.001"])
    def test_bad_base_ops_total(self, client, company, client_headers, value):
        resp = client.post(
            "/api/orders",
            json={"company_id": company.id, "base_ops_total": value},
            headers=client_headers,
        )
        assert resp.status_code == 422

    def test_unknown_company(self, client, client_headers):
        resp = client.post("/api/orders", json={"company_id": 999}, headers=client_headers)
        assert resp.status_code == 422
        assert _error(resp)["code"] == "OrderValidationError"


class TestReads:

    def test_get_order_includes_items(self, client, make_order, admin_headers):
        order = make_order(S.PRICING_REVIEW)
        resp = client.get(f"/api/orders/{order.id}", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.get_json()["order"]
        assert len(body["line_items"]) == 1
        assert body["line_items"][0]["amount"] == "120.00"
        assert body["service_requests"] == []

    def test_missing_order(self, client, admin_headers, db_session):
        resp = client.get("/api/orders/424242", headers=admin_headers)
        assert resp.status_code == 404
        assert _error(resp)["code"] == "OrderNotFound"

    def test_list_rejects_unknown_status(self, client, admin_headers):
        resp = client.get("/api/orders?status=SHIPPED", headers=admin_headers)
        assert resp.status_code == 422

    def test_status_history(self, client, make_order, admin_headers):
        order = make_order(S.SUBMITTED)
        resp = client.get(f"/api/orders/{order.id}/status-history", headers=admin_headers)
        history = resp.get_json()["history"]
        assert [h["to_status"] for h in history] == ["DRAFT", "SUBMITTED"]
        assert history[0]["from_status"] is None


class TestTransitionErrors:

    def test_wrong_status_is_409(self, client, make_order, admin_headers):
        order = make_order(S.DRAFT)
        resp = client.post(f"/api/orders/{order.id}/admin-approve", json={}, headers=admin_headers)
        assert resp.status_code == 409
        body = _error(resp)
        assert body["code"] == "InvalidStateTransition"
        assert body["details"]["current_status"] == "DRAFT"

    def test_redundant_override_is_422(self, client, make_order, admin_headers):
        order = make_order(S.PENDING_APPROVAL)
        resp = client.post(
            f"/api/orders/{order.id}/admin-approve",
            json={"margin_override_percent": "20.00", "margin_override_reason": "Same"},
            headers=admin_headers,
        )
        assert resp.status_code == 422
        assert _error(resp)["code"] == "RedundantMarginOverride"

    def test_override_precision_rejected(self, client, make_order, admin_headers):
        order = make_order(S.PENDING_APPROVAL)
        resp = client.post(
            f"/api/orders/{order.id}/admin-approve",
            json={"margin_override_percent": "25.005", "margin_override_reason": "Odd"},
            headers=admin_headers,
        )
        assert resp.status_code == 422
        assert _error(resp)["code"] == "ValidationError"

    def test_short_return_reason(self, client, make_order, admin_headers):
        order = make_order(S.PENDING_APPROVAL)
        resp = client.post(
            f"/api/orders/{order.id}/return-to-logistics",
            json={"reason": "short"},
            headers=admin_headers,
        )
        assert resp.status_code == 422
        assert _error(resp)["code"] == "InvalidReason"

    def test_line_item_on_quoted_order(self, client, make_order, admin_headers):
        order = make_order(S.QUOTED)
        resp = client.post(
            f"/api/orders/{order.id}/line-items/custom",
            json={"description": "Late extra", "quantity": "1", "unit_rate": "10.00"},
            headers=admin_headers,
        )
        assert resp.status_code == 409
        assert _error(resp)["code"] == "OrderNotEditable"

    def test_void_twice(self, client, make_order, admin_headers):
        order = make_order(S.PRICING_REVIEW)
        item_id = client.get(f"/api/orders/{order.id}/line-items", headers=admin_headers).get_json()["line_items"][0]["id"]
        url = f"/api/orders/{order.id}/line-items/{item_id}"

        first = client.delete(url, json={"reason": "Duplicate"}, headers=admin_headers)
        assert first.status_code == 200
        assert first.get_json()["pricing"]["total"] == "960.00"

        second = client.delete(url, json={"reason": "Duplicate"}, headers=admin_headers)
        assert second.status_code == 409
        assert _error(second)["code"] == "ItemAlreadyVoided"


class TestQuoteWorkflow:

    def test_full_workflow(self, client, company, city, vehicle, transport_rate, service_type,
                           client_headers, logistics_headers, admin_headers, sender):
        created = client.post(
            "/api/orders",
            json={
                "company_id": company.id,
                "base_ops_total": "500.00",
                "venue_city_id": city.id,
                "trip_type": "ROUND_TRIP",
                "vehicle_type_id": vehicle.id,
            },
            headers=client_headers,
        )
        order_id = created.get_json()["order"]["id"]

        resp = client.post(f"/api/orders/{order_id}/submit", headers=client_headers)
        assert resp.get_json()["order_status"] == "SUBMITTED"

        resp = client.post(f"/api/orders/{order_id}/start-pricing-review", headers=logistics_headers)
        assert resp.get_json()["order_status"] == "PRICING_REVIEW"

        resp = client.post(
            f"/api/orders/{order_id}/line-items/catalog",
            json={"service_type_id": service_type.id, "quantity": "1"},
            headers=logistics_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["pricing"]["total"] == "1104.00"

        resp = client.post(f"/api/orders/{order_id}/submit-for-approval", headers=logistics_headers)
        assert resp.get_json()["order_status"] == "PENDING_APPROVAL"

        resp = client.post(
            f"/api/orders/{order_id}/admin-approve",
            json={"margin_override_percent": "25", "margin_override_reason": "High-value client"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["order_status"] == "QUOTED"
        assert body["pricing"]["margin"]["percent"] == "25.00"
        assert body["pricing"]["margin"]["is_override"] is True
        assert body["pricing"]["total"] == "1150.00"
        assert sender.sent[-1]["template_key"] == "quote_issued"

        resp = client.post(f"/api/orders/{order_id}/confirm", headers=client_headers)
        assert resp.get_json()["order_status"] == "CONFIRMED"

    def test_fabrication_hold_over_http(self, client, make_order, admin_headers):
        order = make_order(S.CONFIRMED)
        resp = client.post(
            f"/api/orders/{order.id}/service-requests",
            json={"request_type": "reskin", "description": "Brand the stage"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["order_status"] == "AWAITING_FABRICATION"

        sr_id = body["service_request"]["id"]
        resp = client.post(
            f"/api/service-requests/{sr_id}/complete",
            json={"completion_notes": "Printed and mounted"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["order_status"] == "IN_PREPARATION"

    def test_process_service_request_over_http(self, client, make_order, logistics_headers):
        order = make_order(S.PRICING_REVIEW)
        created = client.post(
            f"/api/orders/{order.id}/service-requests",
            json={"request_type": "RESKIN", "description": "Wrap the stage"},
            headers=logistics_headers,
        )
        sr_id = created.get_json()["service_request"]["id"]

        resp = client.post(
            f"/api/service-requests/{sr_id}/process",
            json={"cost": "450.00", "notes": "Vinyl"},
            headers=logistics_headers,
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["service_request"]["commercial_status"] == "QUOTED"
        assert body["line_item_id"] == body["service_request"]["cost_line_item_id"]
        assert body["pricing"]["line_items"]["custom_total"] == "450.00"
        assert body["pricing"]["total"] == "1644.00"

        again = client.post(f"/api/service-requests/{sr_id}/process", json={"cost": "450.00"}, headers=logistics_headers)
        assert again.status_code == 409
        assert _error(again)["code"] == "ServiceRequestError"

    def test_process_requires_positive_cost(self, client, make_order, admin_headers):
        order = make_order(S.PRICING_REVIEW)
        created = client.post(f"/api/orders/{order.id}/service-requests", json={}, headers=admin_headers)
        sr_id = created.get_json()["service_request"]["id"]

        resp = client.post(f"/api/service-requests/{sr_id}/process", json={"cost": "0"}, headers=admin_headers)
        assert resp.status_code == 422
        assert _error(resp)["code"] == "ValidationError"
