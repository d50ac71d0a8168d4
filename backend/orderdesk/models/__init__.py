from .reference import Company, City, VehicleType, ServiceType, TransportRate
from .auth import User, Role, UserRole, Permission, RolePermission, ApiToken, SecurityEvent
from .orders import Order, OrderPricing, OrderStatusHistory, OrderStatus, ServiceRequest
from .line_items import LineItem
from .notifications import SystemEvent, NotificationLog

__all__ = [
    'Company', 'City', 'VehicleType', 'ServiceType', 'TransportRate',
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'ApiToken', 'SecurityEvent',
    'Order', 'OrderPricing', 'OrderStatusHistory', 'OrderStatus', 'ServiceRequest',
    'LineItem',
    'SystemEvent', 'NotificationLog',
]
