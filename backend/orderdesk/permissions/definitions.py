# Overview: All capability definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# Capability codes referenced from routes and services
ORDERS_READ = "orders:read"
ORDERS_CREATE = "orders:create"
ORDERS_SUBMIT = "orders:submit"
ORDERS_CONFIRM = "orders:confirm"
ORDERS_CANCEL = "orders:cancel"
ORDERS_PRICING_REVIEW = "orders:pricing_review"
ORDERS_PRICING_ADJUST = "orders:pricing_adjust"
ORDERS_PRICING_ADMIN_APPROVE = "orders:pricing_admin_approve"
ORDERS_FABRICATION_MANAGE = "orders:fabrication_manage"
ORDERS_FABRICATION_CANCEL = "orders:fabrication_cancel"
NOTIFICATIONS_READ = "notifications:read"
NOTIFICATIONS_RETRY = "notifications:retry"


# -- ORDERS --

ORDER_PERMISSIONS = [
    (
        ORDERS_READ,
        "View Orders",
        "View orders, pricing snapshots and status history",
        PermissionCategory.ORDERS,
    ),
    (
        ORDERS_CREATE,
        "Create Orders",
        "Create DRAFT orders",
        PermissionCategory.ORDERS,
    ),
    (
        ORDERS_SUBMIT,
        "Submit Orders",
        "Submit DRAFT orders for review",
        PermissionCategory.ORDERS,
    ),
    (
        ORDERS_CONFIRM,
        "Confirm Quotes",
        "Accept an issued quote (QUOTED -> CONFIRMED)",
        PermissionCategory.ORDERS,
    ),
    (
        ORDERS_CANCEL,
        "Cancel Orders",
        "Cancel any non-terminal order",
        PermissionCategory.ORDERS,
    ),
]


# -- PRICING --

PRICING_PERMISSIONS = [
    (
        ORDERS_PRICING_REVIEW,
        "Review Pricing",
        "Start pricing review, recalculate pricing and submit for admin approval",
        PermissionCategory.PRICING,
    ),
    (
        ORDERS_PRICING_ADJUST,
        "Adjust Pricing",
        "Add, edit and void catalog/custom line items",
        PermissionCategory.PRICING,
    ),
    (
        ORDERS_PRICING_ADMIN_APPROVE,
        "Approve Quotes",
        "Approve, decline or return quotes; override platform margin",
        PermissionCategory.PRICING,
    ),
]


# -- FABRICATION --

FABRICATION_PERMISSIONS = [
    (
        ORDERS_FABRICATION_MANAGE,
        "Manage Fabrication",
        "Link and complete reskin/fabrication requests; move orders through preparation",
        PermissionCategory.FABRICATION,
    ),
    (
        ORDERS_FABRICATION_CANCEL,
        "Cancel Fabrication Requests",
        "Cancel an open reskin/fabrication request",
        PermissionCategory.FABRICATION,
    ),
]


# -- NOTIFICATIONS --

NOTIFICATION_PERMISSIONS = [
    (
        NOTIFICATIONS_READ,
        "View Notification Failures",
        "View the notification delivery monitor",
        PermissionCategory.NOTIFICATIONS,
    ),
    (
        NOTIFICATIONS_RETRY,
        "Retry Notifications",
        "Re-attempt failed notification deliveries",
        PermissionCategory.NOTIFICATIONS,
    ),
]


PERMISSION_DEFINITIONS = (
    ORDER_PERMISSIONS
    + PRICING_PERMISSIONS
    + FABRICATION_PERMISSIONS
    + NOTIFICATION_PERMISSIONS
)
