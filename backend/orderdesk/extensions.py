# Overview: Flask extension instances for database, migrations and notification delivery.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

NOTIFICATION_SENDER_KEY = "notification_sender"


def init_extensions(app):
    """Bind db/migrate and install the default notification sender unless one is set."""
    db.init_app(app)
    migrate.init_app(app, db)

    # Quote/cancellation delivery; replace with a real mail sender in deployment
    from .services.notification_service import LogNotificationSender
    app.extensions.setdefault(NOTIFICATION_SENDER_KEY, LogNotificationSender())
