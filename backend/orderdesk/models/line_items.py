from __future__ import annotations

from ..extensions import db
from orderdesk.money import format_money
from orderdesk.time_utils import to_utc_z


LINE_ITEM_KINDS = ("CATALOG", "CUSTOM")


class LineItem(db.Model):
    """
    Billable charge attached to an order, additive to base pricing.

    CATALOG items snapshot the service type's default rate at insertion;
    CUSTOM items carry a rate typed in by logistics/admin.

    Rows are never deleted. Voiding keeps the row (with reason and actor)
    and only removes it from the pricing totals.
    """
    __tablename__ = "order_line_items"
    __table_args__ = (
        db.Index("ix_order_line_items_order_voided", "order_id", "voided"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False)
    service_type_id = db.Column(db.Integer, db.ForeignKey("service_types.id"), nullable=True)
    description = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    quantity = db.Column(db.Numeric(10, 2), nullable=False)
    unit_rate_cents = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    # Soft void audit trail
    voided = db.Column(db.Boolean, nullable=False, default=False)
    void_reason = db.Column(db.String(255), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    order = db.relationship("Order", backref=db.backref("line_items", lazy=True, order_by="LineItem.id"))
    service_type = db.relationship("ServiceType")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "kind": self.kind,
            "service_type_id": self.service_type_id,
            "description": self.description,
            "notes": self.notes,
            "quantity": f"{self.quantity:.2f}",
            "unit_rate": format_money(self.unit_rate_cents),
            "amount": format_money(self.amount_cents),
            "voided": self.voided,
            "void_reason": self.void_reason,
            "voided_at": to_utc_z(self.voided_at),
            "voided_by_user_id": self.voided_by_user_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
