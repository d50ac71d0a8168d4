from __future__ import annotations

from ..extensions import db
from orderdesk.money import format_money, format_percent
from orderdesk.time_utils import to_utc_z


# Transport trip types (must match TransportRate.trip_type / Order.trip_type)
TRIP_TYPES = ("ONE_WAY", "ROUND_TRIP")

SERVICE_CATEGORIES = ("ASSEMBLY", "EQUIPMENT", "HANDLING", "RESKIN", "OTHER")


class Company(db.Model):
    """
    Client company that owns orders.

    Reference data owned by the platform's company directory. This service
    only reads it: the platform margin is the default margin for every
    order the company places, and the contact email receives quotes.
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_email = db.Column(db.String(255), nullable=True)

    # Default margin for the company's orders, in basis points (2000 == 20.00%)
    # NULL means "use the platform default from config"
    platform_margin_percent_bps = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_email": self.contact_email,
            "platform_margin_percent": format_percent(self.platform_margin_percent_bps),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class City(db.Model):
    __tablename__ = "cities"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    country_code = db.Column(db.String(2), nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "country_code": self.country_code}


class VehicleType(db.Model):
    __tablename__ = "vehicle_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    capacity_m3 = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "capacity_m3": self.capacity_m3}


class ServiceType(db.Model):
    """
    Catalog service (assembly, handling, reskin, ...).

    Catalog line items snapshot default_rate_cents at insertion time;
    changing the rate here never reprices existing line items.
    """
    __tablename__ = "service_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    category = db.Column(db.String(32), nullable=False, default="OTHER")
    unit = db.Column(db.String(32), nullable=False, default="unit")
    default_rate_cents = db.Column(db.Integer, nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "default_rate": format_money(self.default_rate_cents),
            "description": self.description,
            "is_active": self.is_active,
        }


class TransportRate(db.Model):
    """
    Transport price for a (city, trip type, vehicle type) combination.

    company_id NULL is the platform-wide rate; a company-specific row wins
    over it when both exist.
    """
    __tablename__ = "transport_rates"
    __table_args__ = (
        db.Index("ix_transport_rates_lookup", "city_id", "trip_type", "vehicle_type_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    city_id = db.Column(db.Integer, db.ForeignKey("cities.id"), nullable=False)
    area = db.Column(db.String(128), nullable=True)
    trip_type = db.Column(db.String(16), nullable=False)
    vehicle_type_id = db.Column(db.Integer, db.ForeignKey("vehicle_types.id"), nullable=False)
    rate_cents = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "city_id": self.city_id,
            "area": self.area,
            "trip_type": self.trip_type,
            "vehicle_type_id": self.vehicle_type_id,
            "rate": format_money(self.rate_cents),
            "is_active": self.is_active,
        }
