# Overview: Capability catalogue package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    ORDER_PERMISSIONS,
    PRICING_PERMISSIONS,
    FABRICATION_PERMISSIONS,
    NOTIFICATION_PERMISSIONS,
    ORDERS_READ,
    ORDERS_CREATE,
    ORDERS_SUBMIT,
    ORDERS_CONFIRM,
    ORDERS_CANCEL,
    ORDERS_PRICING_REVIEW,
    ORDERS_PRICING_ADJUST,
    ORDERS_PRICING_ADMIN_APPROVE,
    ORDERS_FABRICATION_MANAGE,
    ORDERS_FABRICATION_CANCEL,
    NOTIFICATIONS_READ,
    NOTIFICATIONS_RETRY,
)
from .roles import DEFAULT_ROLE_PERMISSIONS
from .helpers import (
    get_permissions_by_category,
    get_permission_definition,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "ORDER_PERMISSIONS",
    "PRICING_PERMISSIONS",
    "FABRICATION_PERMISSIONS",
    "NOTIFICATION_PERMISSIONS",
    "ORDERS_READ",
    "ORDERS_CREATE",
    "ORDERS_SUBMIT",
    "ORDERS_CONFIRM",
    "ORDERS_CANCEL",
    "ORDERS_PRICING_REVIEW",
    "ORDERS_PRICING_ADJUST",
    "ORDERS_PRICING_ADMIN_APPROVE",
    "ORDERS_FABRICATION_MANAGE",
    "ORDERS_FABRICATION_CANCEL",
    "NOTIFICATIONS_READ",
    "NOTIFICATIONS_RETRY",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_permissions_by_category",
    "get_permission_definition",
]
