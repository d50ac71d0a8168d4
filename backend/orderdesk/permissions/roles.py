# Overview: Default role -> capability assignments.

from .definitions import (
    PERMISSION_DEFINITIONS,
    ORDERS_READ,
    ORDERS_CREATE,
    ORDERS_SUBMIT,
    ORDERS_CONFIRM,
    ORDERS_PRICING_REVIEW,
    ORDERS_PRICING_ADJUST,
    ORDERS_FABRICATION_MANAGE,
    NOTIFICATIONS_READ,
)


DEFAULT_ROLE_PERMISSIONS = {
    # Admin holds every capability
    "admin": [perm[0] for perm in PERMISSION_DEFINITIONS],
    "logistics": [
        ORDERS_READ,
        ORDERS_PRICING_REVIEW,
        ORDERS_PRICING_ADJUST,
        ORDERS_FABRICATION_MANAGE,
        NOTIFICATIONS_READ,
    ],
    "client": [
        ORDERS_READ,
        ORDERS_CREATE,
        ORDERS_SUBMIT,
        ORDERS_CONFIRM,
    ],
}
