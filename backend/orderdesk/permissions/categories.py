# Overview: Permission category constants for grouping related capabilities.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    ORDERS = "ORDERS"
    PRICING = "PRICING"
    FABRICATION = "FABRICATION"
    NOTIFICATIONS = "NOTIFICATIONS"
