"""
Pytest fixtures for order desk backend tests.

Provides the application with an in-memory database, per-test table
cleanup, reference data, role-based actors and bearer tokens, and a
factory that walks an order to any lifecycle status through the services.
"""

from decimal import Decimal

import pytest
from orderdesk import create_app
from orderdesk.extensions import db
from orderdesk.models import City, Company, ServiceType, TransportRate, User, VehicleType
from orderdesk.models.orders import OrderStatus
from orderdesk.services import fabrication_service, line_item_service, order_service
from orderdesk.services import permission_service, token_service
from orderdesk.services.permission_service import actor_for_user


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'DEFAULT_MARGIN_PERCENT': '25.00',
    'CURRENCY': 'AED',
    'NOTIFICATION_MAX_ATTEMPTS': 3,
    'LOG_LEVEL': 'WARNING',
}


class RecordingSender:
    """Notification sender double: records messages, fails on demand."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, *, recipient, subject, body, template_key):
        if self.fail:
            raise RuntimeError("mail relay unavailable")
        self.sent.append({
            "recipient": recipient,
            "subject": subject,
            "body": body,
            "template_key": template_key,
        })
        return f"msg-{len(self.sent)}"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def sender(app):
    """Swap in a recording notification sender for one test."""
    previous = app.extensions.get("notification_sender")
    recording = RecordingSender()
    app.extensions["notification_sender"] = recording
    yield recording
    app.extensions["notification_sender"] = previous


@pytest.fixture(scope='function')
def setup_roles(db_session):
    """Setup default roles and capabilities."""
    permission_service.initialize_permissions()
    permission_service.create_default_roles()
    permission_service.assign_default_role_permissions()
    db_session.commit()


def _make_user(db_session, username: str, role: str, company_id=None) -> User:
    user = User(username=username, email=f"{username}@orderdesk.test", company_id=company_id)
    db_session.add(user)
    db_session.commit()
    permission_service.assign_role(user.id, role)
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, setup_roles):
    return _make_user(db_session, "admin", "admin")


@pytest.fixture(scope='function')
def logistics_user(db_session, setup_roles):
    return _make_user(db_session, "logistics", "logistics")


@pytest.fixture(scope='function')
def client_user(db_session, setup_roles, company):
    return _make_user(db_session, "client", "client", company_id=company.id)


@pytest.fixture(scope='function')
def admin_actor(admin_user):
    return actor_for_user(admin_user)


@pytest.fixture(scope='function')
def logistics_actor(logistics_user):
    return actor_for_user(logistics_user)


@pytest.fixture(scope='function')
def client_actor(client_user):
    return actor_for_user(client_user)


@pytest.fixture(scope='function')
def company(db_session):
    """Company with a 20.00% platform margin."""
    company = Company(
        name="Acme Events",
        contact_email="events@acme.test",
        platform_margin_percent_bps=2000,
    )
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def city(db_session):
    city = City(name="Dubai", country_code="AE")
    db_session.add(city)
    db_session.commit()
    return city


@pytest.fixture(scope='function')
def vehicle(db_session):
    vehicle = VehicleType(name="3 Ton Truck", capacity_m3=18)
    db_session.add(vehicle)
    db_session.commit()
    return vehicle


@pytest.fixture(scope='function')
def transport_rate(db_session, city, vehicle):
    """Platform-wide ROUND_TRIP rate of 300.00."""
    rate = TransportRate(
        city_id=city.id,
        trip_type="ROUND_TRIP",
        vehicle_type_id=vehicle.id,
        rate_cents=30000,
    )
    db_session.add(rate)
    db_session.commit()
    return rate


@pytest.fixture(scope='function')
def service_type(db_session):
    """Catalog service with a 120.00 default rate."""
    st = ServiceType(name="Assembly crew", category="ASSEMBLY", unit="crew", default_rate_cents=12000)
    db_session.add(st)
    db_session.commit()
    return st


@pytest.fixture(scope='function')
def make_order(db_session, company, city, vehicle, transport_rate, service_type, admin_actor):
    """
    Build an order and walk it to the requested status.

    Priced orders carry base ops 500.00, transport 300.00 and one catalog
    item of 120.00: subtotal 920.00, 20% margin 184.00, total 1104.00.
    """
    S = OrderStatus

    def _make(status=S.DRAFT, *, with_item: bool = True):
        status = S(status)
        order = order_service.create_order(
            admin_actor,
            company_id=company.id,
            base_ops_total=Decimal("500.00"),
            venue_city_id=city.id,
            trip_type="ROUND_TRIP",
            vehicle_type_id=vehicle.id,
        )
        order_id = order.id
        if status == S.DRAFT:
            return order
        if status == S.CANCELLED:
            return order_service.cancel_order(order_id, admin_actor, "Client withdrew")

        order_service.submit_order(order_id, admin_actor)
        if status == S.SUBMITTED:
            return order_service.get_order(order_id)

        order = order_service.start_pricing_review(order_id, admin_actor)
        if with_item:
            line_item_service.add_catalog_item(
                order_id, admin_actor, service_type_id=service_type.id, quantity=Decimal("1"),
            )
        if status == S.PRICING_REVIEW:
            return order_service.get_order(order_id)

        order = order_service.submit_for_approval(order_id, admin_actor)
        if status == S.PENDING_APPROVAL:
            return order
        if status == S.DECLINED:
            return order_service.decline_quote(order_id, admin_actor, "Budget no longer approved")

        order = order_service.approve_quote(order_id, admin_actor)
        if status == S.QUOTED:
            return order

        if status == S.AWAITING_FABRICATION:
            fabrication_service.link_service_request(
                order_id, admin_actor, request_type="RESKIN", description="Reskin booth panels",
            )
            return order_service.confirm_quote(order_id, admin_actor)

        order = order_service.confirm_quote(order_id, admin_actor)
        if status == S.CONFIRMED:
            return order

        order = order_service.start_preparation(order_id, admin_actor)
        if status == S.IN_PREPARATION:
            return order

        return order_service.complete_order(order_id, admin_actor)

    return _make


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    _record, token = token_service.issue_token(admin_user.id, label="tests")
    return auth_headers(token)


@pytest.fixture(scope='function')
def logistics_headers(logistics_user):
    _record, token = token_service.issue_token(logistics_user.id, label="tests")
    return auth_headers(token)


@pytest.fixture(scope='function')
def client_headers(client_user):
    _record, token = token_service.issue_token(client_user.id, label="tests")
    return auth_headers(token)
