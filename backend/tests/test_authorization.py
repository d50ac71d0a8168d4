"""
Authorization tests for the order desk API.

Verifies:
- Unauthenticated requests return 401
- Client role denied pricing and approval operations (403)
- Logistics role denied admin approval (403)
- Denials are recorded as security events
- Revoked tokens stop working
"""

import pytest

from orderdesk.models import SecurityEvent
from orderdesk.models.orders import OrderStatus
from orderdesk.services import order_service, token_service


S = OrderStatus


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/orders"),
            ("POST", "/api/orders"),
            ("GET", "/api/orders/1"),
            ("GET", "/api/orders/1/status-history"),
            ("POST", "/api/orders/1/submit"),
            ("POST", "/api/orders/1/submit-for-approval"),
            ("POST", "/api/orders/1/admin-approve"),
            ("POST", "/api/orders/1/return-to-logistics"),
            ("POST", "/api/orders/1/cancel"),
            ("GET", "/api/orders/1/line-items"),
            ("POST", "/api/orders/1/line-items/custom"),
            ("DELETE", "/api/orders/1/line-items/1"),
            ("POST", "/api/service-requests/1/complete"),
            ("GET", "/api/notifications/failed"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["code"] == "AuthenticationRequired"

    def test_unknown_token(self, client, db_session):
        resp = client.get("/api/orders", headers=_bearer("not-a-real-token"))
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "InvalidToken"

        event = db_session.query(SecurityEvent).filter_by(event_type="TOKEN_INVALID").one()
        assert event.success is False
        assert event.resource == "/api/orders"

    def test_revoked_token(self, client, admin_user):
        record, token = token_service.issue_token(admin_user.id, label="short-lived")
        assert client.get("/api/orders", headers=_bearer(token)).status_code == 200

        token_service.revoke_token(record.id)
        assert client.get("/api/orders", headers=_bearer(token)).status_code == 401

    def test_health_is_public(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"


# =============================================================================
# CLIENT DENIED PRICING OPERATIONS (403)
# =============================================================================


class TestClientDenied:
    """Client role cannot price, approve or manage fabrication."""

    def test_cannot_submit_for_approval(self, client, make_order, client_headers):
        order = make_order(S.PRICING_REVIEW)
        resp = client.post(f"/api/orders/{order.id}/submit-for-approval", headers=client_headers)
        assert resp.status_code == 403
        assert order_service.get_order(order.id).order_status == "PRICING_REVIEW"

    def test_cannot_approve(self, client, make_order, client_headers):
        order = make_order(S.PENDING_APPROVAL)
        resp = client.post(f"/api/orders/{order.id}/admin-approve", json={}, headers=client_headers)
        assert resp.status_code == 403
        body = resp.get_json()
        assert body["code"] == "PermissionDenied"
        assert body["details"]["required_permission"] == "orders:pricing_admin_approve"

    def test_cannot_add_line_items(self, client, make_order, client_headers):
        order = make_order(S.PRICING_REVIEW)
        resp = client.post(
            f"/api/orders/{order.id}/line-items/custom",
            json={"description": "Free upgrade", "quantity": "1", "unit_rate": "0"},
            headers=client_headers,
        )
        assert resp.status_code == 403

    def test_cannot_cancel(self, client, make_order, client_headers):
        order = make_order(S.QUOTED)
        resp = client.post(
            f"/api/orders/{order.id}/cancel",
            json={"reason": "Changed my mind"},
            headers=client_headers,
        )
        assert resp.status_code == 403

    def test_cannot_view_failed_notifications(self, client, client_headers):
        resp = client.get("/api/notifications/failed", headers=client_headers)
        assert resp.status_code == 403

    def test_denial_is_logged(self, client, db_session, make_order, client_user, client_headers):
        order = make_order(S.PENDING_APPROVAL)
        client.post(f"/api/orders/{order.id}/decline", json={"reason": "Too expensive"}, headers=client_headers)

        event = db_session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
        assert event.user_id == client_user.id
        assert event.action == "orders:pricing_admin_approve"


# =============================================================================
# LOGISTICS DENIED ADMIN APPROVAL (403)
# =============================================================================


class TestLogisticsDenied:

    @pytest.mark.parametrize("action", ["admin-approve", "return-to-logistics", "decline"])
    def test_cannot_decide_quotes(self, client, make_order, logistics_headers, action):
        order = make_order(S.PENDING_APPROVAL)
        resp = client.post(
            f"/api/orders/{order.id}/{action}",
            json={"reason": "Looks fine to me"} if action != "admin-approve" else {},
            headers=logistics_headers,
        )
        assert resp.status_code == 403
        assert order_service.get_order(order.id).order_status == "PENDING_APPROVAL"

    def test_can_price(self, client, make_order, logistics_headers):
        order = make_order(S.PRICING_REVIEW)
        resp = client.post(f"/api/orders/{order.id}/submit-for-approval", headers=logistics_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order_status"] == "PENDING_APPROVAL"

    def test_cannot_cancel_service_request(self, client, make_order, logistics_headers):
        order = make_order(S.AWAITING_FABRICATION)
        sr_id = client.get(f"/api/orders/{order.id}/service-requests", headers=logistics_headers).get_json()["service_requests"][0]["id"]

        resp = client.post(
            f"/api/service-requests/{sr_id}/cancel",
            json={"completion_notes": "Skip it"},
            headers=logistics_headers,
        )
        assert resp.status_code == 403
        assert order_service.get_order(order.id).order_status == "AWAITING_FABRICATION"


# =============================================================================
# ADMIN ALLOWED
# =============================================================================


class TestAdminAllowed:

    def test_can_approve(self, client, make_order, admin_headers):
        order = make_order(S.PENDING_APPROVAL)
        resp = client.post(f"/api/orders/{order.id}/admin-approve", json={}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order_status"] == "QUOTED"

    def test_can_view_failed_notifications(self, client, admin_headers):
        resp = client.get("/api/notifications/failed", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["notifications"] == []
