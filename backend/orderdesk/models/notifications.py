from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z


NOTIFICATION_STATUSES = ("QUEUED", "SENT", "FAILED", "RETRYING")


class SystemEvent(db.Model):
    """
    Domain event raised by a committed order transition.

    Events are written after the transition commits, so a delivery problem
    downstream can never undo the transition that produced the event.
    """
    __tablename__ = "system_events"
    __table_args__ = (
        db.Index("ix_system_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "payload": self.payload,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class NotificationLog(db.Model):
    """
    One delivery of one event to one recipient.

    FAILED rows stay until retried; attempts counts every delivery try.
    """
    __tablename__ = "notification_logs"
    __table_args__ = (
        db.Index("ix_notification_logs_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("system_events.id"), nullable=False, index=True)
    recipient_email = db.Column(db.String(255), nullable=False)
    template_key = db.Column(db.String(64), nullable=False)
    subject = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="QUEUED", index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_attempt_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    message_id = db.Column(db.String(255), nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    event = db.relationship("SystemEvent", backref=db.backref("notifications", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "recipient_email": self.recipient_email,
            "template_key": self.template_key,
            "subject": self.subject,
            "status": self.status,
            "attempts": self.attempts,
            "last_attempt_at": to_utc_z(self.last_attempt_at),
            "sent_at": to_utc_z(self.sent_at),
            "message_id": self.message_id,
            "error_message": self.error_message,
            "created_at": to_utc_z(self.created_at),
            "event": self.event.to_dict() if self.event else None,
        }
