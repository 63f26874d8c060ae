from freshmarket.models.users import User
from freshmarket.models.product import Product
from freshmarket.models.order import Order, OrderItem, OrderStatusHistory
from freshmarket.models.log import Log
from freshmarket.models.webhook_event import WebhookEvent

__all__ = ["User", "Product", "Order", "OrderItem", "OrderStatusHistory", "Log", "WebhookEvent"]
