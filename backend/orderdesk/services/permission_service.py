# Overview: Capability resolution, enforcement and security event logging.

"""
Capability checks for the approval workflow.

Every state-changing service call receives an Actor and checks the
capability it needs itself. Routes check too (via @require_permission),
but services never rely on that: the same functions are called from the
CLI and from background rules, and the UI's own gating is never trusted.

DESIGN PRINCIPLES:
- Fail closed: deny by default, require an explicit grant
- Log denials only: grants are not logged
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..extensions import db
from ..models import User, UserRole, Role, RolePermission, Permission, SecurityEvent
from ..permissions import PERMISSION_DEFINITIONS, DEFAULT_ROLE_PERMISSIONS
from orderdesk.time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when the caller lacks a required capability."""

    code = "PermissionDenied"

    def __init__(self, message: str, permission_code: str | None = None):
        super().__init__(message)
        self.permission_code = permission_code
        self.details = {"required_permission": permission_code} if permission_code else {}


@dataclass(frozen=True)
class Actor:
    """
    Who is performing an operation and what they may do.

    user_id is None for system-triggered transitions (background rules).
    """
    user_id: int | None
    permissions: frozenset[str] = field(default_factory=frozenset)
    is_system: bool = False

    def can(self, permission_code: str) -> bool:
        return self.is_system or permission_code in self.permissions


SYSTEM_ACTOR = Actor(user_id=None, is_system=True)


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
) -> SecurityEvent:
    """
    Record a security event in its own commit.

    event_type examples:
    - PERMISSION_DENIED
    - TOKEN_INVALID
    - TOKEN_ISSUED
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    db.session.commit()
    return event


def get_user_permissions(user_id: int) -> set[str]:
    """Union of the capability codes granted by all of the user's roles."""
    rows = (
        db.session.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user_id)
        .all()
    )
    return {code for (code,) in rows}


def actor_for_user(user: User) -> Actor:
    return Actor(user_id=user.id, permissions=frozenset(get_user_permissions(user.id)))


def require_capability(actor: Actor, permission_code: str) -> None:
    """
    Raise PermissionDeniedError unless the actor holds the capability.

    Raises:
        PermissionDeniedError: actor lacks permission_code
    """
    if actor.can(permission_code):
        return
    raise PermissionDeniedError(
        f"Missing capability: {permission_code}",
        permission_code=permission_code,
    )


def initialize_permissions() -> int:
    """Create Permission rows for every catalogue entry. Returns rows created."""
    existing = {code for (code,) in db.session.query(Permission.code).all()}
    created = 0
    for code, name, description, category in PERMISSION_DEFINITIONS:
        if code in existing:
            continue
        db.session.add(Permission(code=code, name=name, description=description, category=category))
        created += 1
    db.session.commit()
    return created


def create_default_roles() -> list[Role]:
    roles = []
    for name in DEFAULT_ROLE_PERMISSIONS:
        role = db.session.query(Role).filter_by(name=name).first()
        if role is None:
            role = Role(name=name, description=f"Default {name} role")
            db.session.add(role)
        roles.append(role)
    db.session.commit()
    return roles


def assign_default_role_permissions() -> None:
    """Grant each default role its catalogue capabilities (idempotent)."""
    permissions = {p.code: p for p in db.session.query(Permission).all()}
    for role_name, codes in DEFAULT_ROLE_PERMISSIONS.items():
        role = db.session.query(Role).filter_by(name=role_name).first()
        if role is None:
            continue
        granted = {
            rp.permission_id
            for rp in db.session.query(RolePermission).filter_by(role_id=role.id).all()
        }
        for code in codes:
            permission = permissions.get(code)
            if permission is None or permission.id in granted:
                continue
            db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
    db.session.commit()


def assign_role(user_id: int, role_name: str) -> UserRole:
    role = db.session.query(Role).filter_by(name=role_name).first()
    if role is None:
        raise ValueError(f"Role '{role_name}' not found")

    existing = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if existing:
        return existing

    user_role = UserRole(user_id=user_id, role_id=role.id)
    db.session.add(user_role)
    db.session.commit()
    return user_role
