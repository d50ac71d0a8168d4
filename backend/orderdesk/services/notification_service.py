# Overview: Order event recording and fire-and-forget notification delivery.

"""
Notification side channel.

Order transitions commit first; only then is the event recorded and the
quote/cancellation email attempted. Delivery belongs to an external mail
service reached through a pluggable sender, so:

- a sender failure marks the NotificationLog FAILED (with the error and
  attempt count) and is logged as a warning
- it never propagates to the caller and never rolls back the transition
- FAILED logs can be retried on their own, one by one or in a batch

The default sender writes the rendered message to the application log.
Deployments install a real sender in app.extensions["notification_sender"].
"""

from __future__ import annotations

import uuid

from flask import current_app

from ..extensions import NOTIFICATION_SENDER_KEY, db
from ..models import NotificationLog, Order, SystemEvent
from orderdesk.time_utils import utcnow


# event_type -> (template_key, subject template)
EVENT_TEMPLATES = {
    "order.quote_issued": ("quote_issued", "Your quote for order {order_number} is ready"),
    "order.cancelled": ("order_cancelled", "Order {order_number} has been cancelled"),
}


class NotificationError(Exception):
    """Raised for invalid retry requests."""

    code = "NotificationError"

    def __init__(self, message: str, details: dict | None = None, http_status: int = 409):
        super().__init__(message)
        self.details = details or {}
        self.http_status = http_status


class LogNotificationSender:
    """Development sender: logs instead of emailing."""

    def send(self, *, recipient: str, subject: str, body: str, template_key: str) -> str:
        current_app.logger.info(
            "Notification [%s] to %s: %s | %s", template_key, recipient, subject, body,
        )
        return f"log-{uuid.uuid4().hex}"


def get_sender():
    sender = current_app.extensions.get(NOTIFICATION_SENDER_KEY)
    if sender is None:
        sender = LogNotificationSender()
        current_app.extensions[NOTIFICATION_SENDER_KEY] = sender
    return sender


def _render_body(event: SystemEvent) -> str:
    payload = event.payload or {}
    lines = [f"Order: {payload.get('order_number')}", f"Status: {payload.get('order_status')}"]
    if payload.get("total") is not None:
        lines.append(f"Total: {payload['total']} {payload.get('currency', '')}".rstrip())
    if payload.get("reason"):
        lines.append(f"Reason: {payload['reason']}")
    return "\n".join(lines)


def _attempt_delivery(log: NotificationLog) -> NotificationLog:
    log.attempts = (log.attempts or 0) + 1
    log.last_attempt_at = utcnow()
    try:
        message_id = get_sender().send(
            recipient=log.recipient_email,
            subject=log.subject or "",
            body=_render_body(log.event),
            template_key=log.template_key,
        )
    except Exception as exc:
        log.status = "FAILED"
        log.error_message = str(exc) or type(exc).__name__
        current_app.logger.warning(
            "Notification %s (%s to %s) failed on attempt %d: %s",
            log.id, log.template_key, log.recipient_email, log.attempts, log.error_message,
        )
    else:
        log.status = "SENT"
        log.sent_at = utcnow()
        log.message_id = message_id
        log.error_message = None
    db.session.commit()
    return log


def emit_order_event(
    event_type: str,
    order: Order,
    *,
    actor_user_id: int | None = None,
    payload: dict | None = None,
) -> SystemEvent | None:
    """
    Record an order event and attempt its notifications.

    Must be called after the transition has committed. Returns the event,
    or None when even recording failed (logged; the transition stands).
    """
    try:
        event = SystemEvent(
            event_type=event_type,
            entity_type="ORDER",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            payload={
                "order_number": order.order_number,
                "order_status": order.order_status,
                **(payload or {}),
            },
            occurred_at=utcnow(),
        )
        db.session.add(event)

        template = EVENT_TEMPLATES.get(event_type)
        recipient = order.company.contact_email if order.company else None
        logs = []
        if template is not None and recipient:
            template_key, subject = template
            log = NotificationLog(
                event=event,
                recipient_email=recipient,
                template_key=template_key,
                subject=subject.format(order_number=order.order_number),
                status="QUEUED",
                attempts=0,
            )
            db.session.add(log)
            logs.append(log)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record %s event for order %s", event_type, order.id)
        return None

    for log in logs:
        log_id = log.id
        try:
            _attempt_delivery(log)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Failed to record delivery of notification %s", log_id)
    return event


def retry_notification(log_id: int) -> NotificationLog:
    """
    Re-attempt one FAILED delivery.

    Raises:
        NotificationError: log not found (404) or not in FAILED status (409)
    """
    log = db.session.get(NotificationLog, log_id)
    if log is None:
        raise NotificationError(f"Notification {log_id} not found", http_status=404)
    if log.status != "FAILED":
        raise NotificationError(
            f"Only FAILED notifications can be retried (current status: {log.status})",
            details={"status": log.status},
        )

    log.status = "RETRYING"
    db.session.commit()
    return _attempt_delivery(log)


def retry_failed_notifications(limit: int = 100) -> list[NotificationLog]:
    """Retry FAILED logs that still have attempts left (oldest first)."""
    max_attempts = current_app.config["NOTIFICATION_MAX_ATTEMPTS"]
    candidates = (
        db.session.query(NotificationLog)
        .filter(NotificationLog.status == "FAILED", NotificationLog.attempts < max_attempts)
        .order_by(NotificationLog.created_at.asc(), NotificationLog.id.asc())
        .limit(limit)
        .all()
    )
    return [retry_notification(log.id) for log in candidates]


def list_failed_notifications(limit: int = 200) -> list[NotificationLog]:
    return (
        db.session.query(NotificationLog)
        .filter(NotificationLog.status == "FAILED")
        .order_by(NotificationLog.created_at.desc(), NotificationLog.id.desc())
        .limit(limit)
        .all()
    )


def list_events_for_order(order_id: int) -> list[SystemEvent]:
    return (
        db.session.query(SystemEvent)
        .filter_by(entity_type="ORDER", entity_id=order_id)
        .order_by(SystemEvent.occurred_at.asc(), SystemEvent.id.asc())
        .all()
    )
