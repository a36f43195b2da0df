from .order import Order
from .order_item import OrderItem
from .payment_attempt import PaymentAttempt
from .ticket import Ticket

__all__ = [
    "Order",
    "OrderItem",
    "PaymentAttempt",
    "Ticket",
]
