from __future__ import annotations

import enum

from ..extensions import db
from orderdesk.money import format_money
from orderdesk.time_utils import to_utc_z


class OrderStatus(str, enum.Enum):
    """
    Order lifecycle states.

    The value is what gets stored in orders.order_status and sent on the wire.
    Transitions are defined in services/order_service.py; nothing else may
    assign Order.order_status.
    """
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    PRICING_REVIEW = "PRICING_REVIEW"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    QUOTED = "QUOTED"
    CONFIRMED = "CONFIRMED"
    AWAITING_FABRICATION = "AWAITING_FABRICATION"
    IN_PREPARATION = "IN_PREPARATION"
    DECLINED = "DECLINED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    def __str__(self) -> str:
        return self.value


TERMINAL_STATUSES = frozenset({
    OrderStatus.CANCELLED,
    OrderStatus.DECLINED,
    OrderStatus.COMPLETED,
})

# Line items may be added, edited or voided only while pricing is open
LINE_ITEM_EDITABLE_STATUSES = frozenset({
    OrderStatus.PRICING_REVIEW,
    OrderStatus.PENDING_APPROVAL,
})


class Order(db.Model):
    """
    One rental/fabrication job.

    LIFECYCLE:
        DRAFT -> SUBMITTED -> PRICING_REVIEW -> PENDING_APPROVAL -> QUOTED -> CONFIRMED
        CONFIRMED -> AWAITING_FABRICATION -> IN_PREPARATION -> COMPLETED
        any non-terminal status -> CANCELLED

    Orders are never deleted. Cancellation is a terminal status and keeps
    every line item and history row for audit.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_status_created", "order_status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "ORD-000042")
    order_number = db.Column(db.String(32), nullable=True)

    order_status = db.Column(db.String(32), nullable=False, default=OrderStatus.DRAFT.value, index=True)

    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    event_start_date = db.Column(db.Date, nullable=True)
    venue_location = db.Column(db.String(255), nullable=True)

    # Transport lookup keys
    venue_city_id = db.Column(db.Integer, db.ForeignKey("cities.id"), nullable=True)
    trip_type = db.Column(db.String(16), nullable=True)
    vehicle_type_id = db.Column(db.Integer, db.ForeignKey("vehicle_types.id"), nullable=True)

    # Warehouse operations cost, supplied by the ops calculator (volume based)
    base_ops_total_cents = db.Column(db.Integer, nullable=False, default=0)

    # Resolved from TransportRate; NULL until a matching rate exists
    transport_rate_cents = db.Column(db.Integer, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    company = db.relationship("Company")
    venue_city = db.relationship("City")
    vehicle_type = db.relationship("VehicleType")
    pricing = db.relationship("OrderPricing", uselist=False, back_populates="order")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def status(self) -> OrderStatus:
        return OrderStatus(self.order_status)

    def to_dict(self, *, include_pricing: bool = True) -> dict:
        from orderdesk.services.pricing_service import pricing_to_dict

        data = {
            "id": self.id,
            "order_number": self.order_number,
            "order_status": self.order_status,
            "company_id": self.company_id,
            "event_start_date": self.event_start_date.isoformat() if self.event_start_date else None,
            "venue_location": self.venue_location,
            "venue_city_id": self.venue_city_id,
            "trip_type": self.trip_type,
            "vehicle_type_id": self.vehicle_type_id,
            "base_ops_total": format_money(self.base_ops_total_cents),
            "transport_rate": format_money(self.transport_rate_cents),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
        }
        if include_pricing:
            data["pricing"] = pricing_to_dict(self.pricing) if self.pricing else None
        return data


class OrderPricing(db.Model):
    """
    Cost breakdown snapshot for one order.

    Rewritten only by pricing_service.recompute_order_pricing. The version
    column doubles as the optimistic lock and the snapshot version handed
    to callers so they can detect a stale view.

    INVARIANTS:
    - total = base_ops + transport + catalog + custom + margin_amount
    - margin_amount = round_half_up(subtotal * margin_percent / 100)
    """
    __tablename__ = "order_pricing"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True, index=True)

    base_ops_total_cents = db.Column(db.Integer, nullable=False, default=0)
    transport_rate_cents = db.Column(db.Integer, nullable=True)
    catalog_total_cents = db.Column(db.BigInteger, nullable=False, default=0)
    custom_total_cents = db.Column(db.BigInteger, nullable=False, default=0)

    margin_percent_bps = db.Column(db.Integer, nullable=False, default=0)
    margin_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    total_cents = db.Column(db.BigInteger, nullable=False, default=0)

    # Admin override (set only on PENDING_APPROVAL -> QUOTED)
    margin_is_override = db.Column(db.Boolean, nullable=False, default=False)
    margin_override_reason = db.Column(db.Text, nullable=True)
    margin_overridden_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Set when the quote is issued; cleared only by a return to PRICING_REVIEW
    margin_locked = db.Column(db.Boolean, nullable=False, default=False)

    calculated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", back_populates="pricing")
    __mapper_args__ = {"version_id_col": version}


class OrderStatusHistory(db.Model):
    """Append-only audit of order status changes."""
    __tablename__ = "order_status_history"
    __table_args__ = (
        db.Index("ix_order_status_history_order_occurred", "order_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    from_status = db.Column(db.String(32), nullable=True)
    to_status = db.Column(db.String(32), nullable=False)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    note = db.Column(db.Text, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }


# Service request statuses
SERVICE_REQUEST_TYPES = ("RESKIN", "FABRICATION")
RESOLVED_SERVICE_REQUEST_STATUSES = frozenset({"COMPLETED", "CANCELLED"})


class ServiceRequest(db.Model):
    """
    Fabrication / reskin job linked to an order.

    While any linked request is unresolved, a confirmed order waits in
    AWAITING_FABRICATION. Resolving the last one moves it to IN_PREPARATION.
    """
    __tablename__ = "service_requests"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    # Human-readable number (e.g., "SR-000007")
    service_request_number = db.Column(db.String(32), nullable=True, unique=True)

    request_type = db.Column(db.String(16), nullable=False, default="RESKIN")
    # SUBMITTED, then COMPLETED or CANCELLED
    request_status = db.Column(db.String(16), nullable=False, default="SUBMITTED", index=True)
    # PENDING_QUOTE until processed with a cost, then QUOTED
    commercial_status = db.Column(db.String(16), nullable=False, default="PENDING_QUOTE")
    cost_line_item_id = db.Column(db.Integer, db.ForeignKey("order_line_items.id"), nullable=True)
    description = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completion_notes = db.Column(db.Text, nullable=True)

    order = db.relationship("Order", backref=db.backref("linked_service_requests", lazy=True))

    @property
    def is_resolved(self) -> bool:
        return self.request_status in RESOLVED_SERVICE_REQUEST_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "service_request_number": self.service_request_number,
            "request_type": self.request_type,
            "request_status": self.request_status,
            "commercial_status": self.commercial_status,
            "description": self.description,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "completion_notes": self.completion_notes,
            "cost_line_item_id": self.cost_line_item_id,
        }
