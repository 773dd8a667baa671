from enum import Enum


class PlanType(str, Enum):
    STANDARD = "STANDARD"
    ADVANCED = "ADVANCED"
    PREMIUM = "PREMIUM"


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    SHOP_ADMIN = "SHOP_ADMIN"
    SHOP_STAFF = "SHOP_STAFF"
    CUSTOMER = "CUSTOMER"


class OrderSource(str, Enum):
    ONLINE = "ONLINE"
    IN_STORE = "IN_STORE"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class NotificationType(str, Enum):
    ORDER_UPDATE = "ORDER_UPDATE"
    ORDER_CANCELLED = "ORDER_CANCELLED"
