# Overview: Concurrency safeguards for order transitions.

"""
Two admins approving the same quote at once must produce exactly one
QUOTED transition. Two users finishing the last two fabrication requests at
once must both succeed, with the order advanced exactly once. Runs against a file-backed SQLite database so each
thread gets its own connection.
"""

import os
import tempfile
import threading
import unittest
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.orm.exc import StaleDataError

from orderdesk import create_app
from orderdesk.extensions import db
from orderdesk.models import (
    City, Company, Order, OrderStatusHistory, ServiceRequest, ServiceType, TransportRate, VehicleType,
)
from orderdesk.permissions import ORDERS_FABRICATION_MANAGE, ORDERS_PRICING_ADMIN_APPROVE
from orderdesk.services import fabrication_service, line_item_service, order_service
from orderdesk.services.concurrency import run_with_retry
from orderdesk.services.order_service import InvalidStateTransition
from orderdesk.services.permission_service import SYSTEM_ACTOR, Actor


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "LOG_LEVEL": "WARNING",
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            company = Company(name="Concurrent Co", platform_margin_percent_bps=2000)
            city = City(name="Abu Dhabi", country_code="AE")
            vehicle = VehicleType(name="Van")
            service_type = ServiceType(name="Handling", category="HANDLING", default_rate_cents=5000)
            db.session.add_all([company, city, vehicle, service_type])
            db.session.commit()

            db.session.add(TransportRate(
                city_id=city.id, trip_type="ONE_WAY", vehicle_type_id=vehicle.id, rate_cents=10000,
            ))
            db.session.commit()

            order = order_service.create_order(
                SYSTEM_ACTOR,
                company_id=company.id,
                base_ops_total=Decimal("100.00"),
                venue_city_id=city.id,
                trip_type="ONE_WAY",
                vehicle_type_id=vehicle.id,
            )
            self.order_id = order.id
            order_service.submit_order(self.order_id, SYSTEM_ACTOR)
            order_service.start_pricing_review(self.order_id, SYSTEM_ACTOR)
            line_item_service.add_catalog_item(
                self.order_id, SYSTEM_ACTOR, service_type_id=service_type.id, quantity=1,
            )
            order_service.submit_for_approval(self.order_id, SYSTEM_ACTOR)

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def test_concurrent_approvals_single_winner(self):
        approver = Actor(user_id=None, permissions=frozenset({ORDERS_PRICING_ADMIN_APPROVE}))
        barrier = threading.Barrier(2)
        outcomes = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                barrier.wait()
                try:
                    order_service.approve_quote(self.order_id, approver)
                    result = "ok"
                except InvalidStateTransition:
                    result = "conflict"
                finally:
                    db.session.remove()
                with lock:
                    outcomes.append(result)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(sorted(outcomes), ["conflict", "ok"])

        with self.app.app_context():
            order = db.session.get(Order, self.order_id)
            self.assertEqual(order.order_status, "QUOTED")
            quoted_rows = (
                db.session.query(OrderStatusHistory)
                .filter_by(order_id=self.order_id, to_status="QUOTED")
                .count()
            )
            self.assertEqual(quoted_rows, 1)

    def test_concurrent_request_completion_advances_once(self):
        with self.app.app_context():
            order_service.approve_quote(self.order_id, SYSTEM_ACTOR)
            request_ids = [
                fabrication_service.link_service_request(self.order_id, SYSTEM_ACTOR, description=name).id
                for name in ("Panels", "Signage")
            ]
            order_service.confirm_quote(self.order_id, SYSTEM_ACTOR)
            self.assertEqual(db.session.get(Order, self.order_id).order_status, "AWAITING_FABRICATION")
            db.session.remove()

        worker_actor = Actor(user_id=None, permissions=frozenset({ORDERS_FABRICATION_MANAGE}))
        barrier = threading.Barrier(2)
        outcomes = []
        lock = threading.Lock()

        def worker(service_request_id):
            with self.app.app_context():
                barrier.wait()
                try:
                    fabrication_service.complete_service_request(service_request_id, worker_actor, "Done")
                    result = "ok"
                except Exception as exc:
                    result = type(exc).__name__
                finally:
                    db.session.remove()
                with lock:
                    outcomes.append(result)

        threads = [threading.Thread(target=worker, args=(sr_id,)) for sr_id in request_ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(outcomes, ["ok", "ok"])

        with self.app.app_context():
            order = db.session.get(Order, self.order_id)
            self.assertEqual(order.order_status, "IN_PREPARATION")
            statuses = {
                sr.request_status
                for sr in db.session.query(ServiceRequest).filter_by(order_id=self.order_id)
            }
            self.assertEqual(statuses, {"COMPLETED"})
            advanced_rows = (
                db.session.query(OrderStatusHistory)
                .filter_by(order_id=self.order_id, to_status="IN_PREPARATION")
                .count()
            )
            self.assertEqual(advanced_rows, 1)

    def test_stale_version_detected(self):
        with self.app.app_context():
            order = db.session.get(Order, self.order_id)
            # Another writer commits behind this session's back
            db.session.execute(
                text("UPDATE orders SET version_id = version_id + 1 WHERE id = :id"),
                {"id": self.order_id},
            )
            order.venue_location = "Hall 9"
            with self.assertRaises(StaleDataError):
                db.session.flush()
            db.session.rollback()

    def test_retry_reruns_operation(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise StaleDataError("version mismatch")
            return "done"

        with self.app.app_context():
            self.assertEqual(run_with_retry(flaky, backoff_base=0), "done")
        self.assertEqual(len(calls), 2)

    def test_domain_errors_not_retried(self):
        calls = []

        def rejected():
            calls.append(1)
            raise InvalidStateTransition("nope")

        with self.app.app_context():
            with self.assertRaises(InvalidStateTransition):
                run_with_retry(rejected, backoff_base=0)
        self.assertEqual(len(calls), 1)


if __name__ == "__main__":
    unittest.main()
