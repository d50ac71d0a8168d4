# Overview: Flask CLI command groups for bootstrap, tokens, reference data and maintenance.

# backend/orderdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: capabilities, default roles (admin, logistics, client) and their grants.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users and tokens:
# - python -m flask users create --username ops1 --email ops1@example.com --role logistics
#   Create a user with a default role (client users take --company-id).
# - python -m flask users list
#   List users with their roles.
# - python -m flask users issue-token --username ops1 [--label laptop] [--ttl-hours 24]
#   Issue a bearer token. The plaintext is shown once.
#
# Capability inspection:
# - python -m flask perms list [--role admin] [--category PRICING]
#   List capabilities (optionally filtered by role or category).
# - python -m flask perms describe orders:pricing_admin_approve
#   Show one capability and the roles holding it.
#
# Reference data:
# - python -m flask reference seed-demo
#   Demo company, city, vehicle type, service types and transport rate.
# - python -m flask reference add-transport-rate --city-id 1 --trip-type ROUND_TRIP --vehicle-type-id 1 --rate 300.00
#   Add the rate a MissingTransportRate error asked for.
#
# Notifications:
# - python -m flask notifications retry-failed [--limit 100]
#   Retry FAILED quote/cancellation deliveries that still have attempts left.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import (
    City,
    Company,
    Permission,
    Role,
    RolePermission,
    ServiceType,
    User,
    UserRole,
    VehicleType,
)
from .money import decimal_to_cents, percent_to_bps, to_decimal
from .permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    get_permission_definition,
    get_permissions_by_category,
)
from .services import notification_service, permission_service, token_service
from .services.transport_rate_service import create_transport_rate, find_transport_rate


@click.group('system')
def system_group():
    """System bootstrap and repair."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize capabilities and default roles.

    Creates:
    - Every capability in the catalogue
    - Roles: admin, logistics, client
    - Default grants for each role

    Safe to re-run: existing rows are left alone.
    """
    click.echo("START Initializing order desk...")

    click.echo("\nSECURITY Initializing capabilities...")
    perm_count = permission_service.initialize_permissions()
    click.echo(f"PASS Created {perm_count} capabilities")

    click.echo("\nLIST Creating roles...")
    roles = permission_service.create_default_roles()
    permission_service.assign_default_role_permissions()
    click.echo(f"PASS Roles ready: {', '.join(r.name for r in roles)}")

    click.echo("\nDONE Order desk initialized. Create users with 'python -m flask users create'.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User management."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--role', type=click.Choice(sorted(DEFAULT_ROLE_PERMISSIONS)), prompt=True, help='Role')
@click.option('--company-id', type=int, help='Company (client users)')
@with_appcontext
def create_user_cli(username, email, role, company_id):
    """Create a user and assign a default role."""
    if db.session.query(User).filter_by(username=username).first():
        click.echo(f"FAIL User '{username}' already exists")
        return
    if company_id is not None and db.session.get(Company, company_id) is None:
        click.echo(f"FAIL Company {company_id} not found")
        return

    user = User(username=username, email=email, company_id=company_id)
    db.session.add(user)
    db.session.commit()

    try:
        permission_service.assign_role(user.id, role)
    except ValueError as e:
        click.echo(f"FAIL {e}. Run 'python -m flask system init' first.")
        return

    click.echo(f"PASS Created user: {username} ({email}) with role '{role}' (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with roles and active status."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"\n{'ID':<5} {'Username':<20} {'Email':<32} {'Company':<8} {'Active':<7} {'Roles'}")
    click.echo("-" * 90)
    for user in users:
        roles = (
            db.session.query(Role.name)
            .join(UserRole, UserRole.role_id == Role.id)
            .filter(UserRole.user_id == user.id)
            .all()
        )
        role_names = ", ".join(name for (name,) in roles) or "-"
        click.echo(
            f"{user.id:<5} {user.username:<20} {user.email:<32} "
            f"{str(user.company_id or '-'):<8} {'yes' if user.is_active else 'no':<7} {role_names}"
        )
    click.echo(f"\n Total: {len(users)} users\n")


@users_group.command('issue-token')
@click.option('--username', required=True, help='Username')
@click.option('--label', help='Token label (device, integration)')
@click.option('--ttl-hours', type=int, help='Lifetime in hours (default API_TOKEN_TTL_HOURS)')
@with_appcontext
def issue_token_cli(username, label, ttl_hours):
    """Issue a bearer token. The plaintext is printed once and never stored."""
    user = db.session.query(User).filter_by(username=username).first()
    if user is None:
        click.echo(f"FAIL User '{username}' not found")
        return

    try:
        record, plaintext = token_service.issue_token(user.id, label=label, ttl_hours=ttl_hours)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    permission_service.log_security_event(
        user_id=user.id,
        event_type="TOKEN_ISSUED",
        success=True,
        resource="cli",
        action="issue-token",
    )
    click.echo(f"PASS Token issued for {username} (expires {record.expires_at.isoformat()}Z)")
    click.echo(plaintext)


@click.group('perms')
def perms_group():
    """Capability inspection."""


@perms_group.command('list')
@click.option('--role', help='Filter by role name')
@click.option('--category', help='Filter by category')
@with_appcontext
def list_permissions_cli(role, category):
    """List capabilities, optionally filtered by role or category."""
    if role:
        role_obj = db.session.query(Role).filter_by(name=role).first()
        if not role_obj:
            click.echo(f"FAIL Role '{role}' not found")
            return

        perms = (
            db.session.query(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .filter(RolePermission.role_id == role_obj.id)
            .order_by(Permission.code)
            .all()
        )
        click.echo(f"\n{'='*80}")
        click.echo(f"Capabilities for role: {role.upper()}")
        click.echo(f"{'='*80}\n")
        for perm in perms:
            click.echo(f"{perm.code:<36} {perm.name:<30} {perm.category}")
        click.echo(f"\n Total: {len(perms)} capabilities\n")

    elif category:
        definitions = get_permissions_by_category(category.upper())
        click.echo(f"\n{'='*80}")
        click.echo(f"Capabilities in category: {category.upper()}")
        click.echo(f"{'='*80}\n")
        for code, name, _description, _category in definitions:
            click.echo(f"{code:<36} {name}")
        click.echo(f"\n Total: {len(definitions)} capabilities\n")

    else:
        perms = db.session.query(Permission).order_by(Permission.category, Permission.code).all()
        click.echo(f"\n{'='*80}")
        click.echo("All Capabilities")
        click.echo(f"{'='*80}\n")

        current_category = None
        for perm in perms:
            if perm.category != current_category:
                if current_category:
                    click.echo("")
                click.echo(f"CATEGORY {perm.category}")
                click.echo("-"*80)
                current_category = perm.category
            click.echo(f"  {perm.code:<34} {perm.name}")

        click.echo(f"\n Total: {len(perms)} capabilities\n")


@perms_group.command('describe')
@click.argument('permission_code')
@with_appcontext
def describe_permission_cli(permission_code):
    """Show one capability and the default roles that hold it."""
    definition = get_permission_definition(permission_code)
    if definition is None:
        click.echo(f"FAIL Unknown capability '{permission_code}'")
        return

    holders = sorted(r for r, codes in DEFAULT_ROLE_PERMISSIONS.items() if permission_code in codes)
    click.echo(f"{definition['code']} ({definition['category']})")
    click.echo(f"  {definition['name']}: {definition['description']}")
    click.echo(f"  Default roles: {', '.join(holders) or '-'}")


@click.group('reference')
def reference_group():
    """Reference data maintenance."""


@reference_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Demo reference data for local development (idempotent)."""
    company = db.session.query(Company).filter_by(name="Demo Events LLC").first()
    if company is None:
        company = Company(
            name="Demo Events LLC",
            contact_email="events@demo.example",
            platform_margin_percent_bps=percent_to_bps(to_decimal("20.00")),
        )
        db.session.add(company)

    city = db.session.query(City).filter_by(name="Dubai").first()
    if city is None:
        city = City(name="Dubai", country_code="AE")
        db.session.add(city)

    vehicle = db.session.query(VehicleType).filter_by(name="3 Ton Truck").first()
    if vehicle is None:
        vehicle = VehicleType(name="3 Ton Truck", capacity_m3=18)
        db.session.add(vehicle)

    for name, category, unit, rate in (
        ("Assembly crew", "ASSEMBLY", "crew", "300.00"),
        ("Forklift", "EQUIPMENT", "day", "450.00"),
        ("Graphic reskin", "RESKIN", "panel", None),
    ):
        if db.session.query(ServiceType).filter_by(name=name).first() is None:
            db.session.add(ServiceType(
                name=name,
                category=category,
                unit=unit,
                default_rate_cents=decimal_to_cents(to_decimal(rate)) if rate else None,
            ))
    db.session.commit()

    if find_transport_rate(city_id=city.id, trip_type="ROUND_TRIP", vehicle_type_id=vehicle.id) is None:
        create_transport_rate(
            city_id=city.id,
            trip_type="ROUND_TRIP",
            vehicle_type_id=vehicle.id,
            rate_cents=decimal_to_cents(to_decimal("300.00")),
        )

    click.echo(f"PASS Company: {company.name} (ID: {company.id})")
    click.echo(f"PASS City: {city.name} (ID: {city.id}), vehicle: {vehicle.name} (ID: {vehicle.id})")
    click.echo("PASS Service types and ROUND_TRIP transport rate ready")


@reference_group.command('add-transport-rate')
@click.option('--city-id', type=int, required=True)
@click.option('--trip-type', type=click.Choice(["ONE_WAY", "ROUND_TRIP"]), required=True)
@click.option('--vehicle-type-id', type=int, required=True)
@click.option('--rate', required=True, help='Rate, e.g. 300.00')
@click.option('--company-id', type=int, help='Company-specific rate (default: platform-wide)')
@click.option('--area', help='Area within the city')
@with_appcontext
def add_transport_rate_cli(city_id, trip_type, vehicle_type_id, rate, company_id, area):
    """Add a transport rate."""
    try:
        record = create_transport_rate(
            city_id=city_id,
            trip_type=trip_type,
            vehicle_type_id=vehicle_type_id,
            rate_cents=decimal_to_cents(to_decimal(rate)),
            company_id=company_id,
            area=area,
        )
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Transport rate {record.id} created")


@click.group('notifications')
def notifications_group():
    """Notification delivery maintenance."""


@notifications_group.command('retry-failed')
@click.option('--limit', type=int, default=100, show_default=True)
@with_appcontext
def retry_failed_cli(limit):
    """Retry FAILED deliveries that have attempts left."""
    logs = notification_service.retry_failed_notifications(limit=limit)
    sent = sum(1 for log in logs if log.status == "SENT")
    click.echo(f"PASS Retried {len(logs)} notifications: {sent} sent, {len(logs) - sent} still failing")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(reference_group)
    app.cli.add_command(notifications_group)
