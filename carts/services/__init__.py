from .cart_service import (
    clear_cart,
    get_or_create_active_cart,
    owner_key_for,
    remove_item,
    set_item_quantity,
)
from .snapshot import CartLine, CartSnapshot, build_cart_snapshot

__all__ = [
    "CartLine",
    "CartSnapshot",
    "build_cart_snapshot",
    "clear_cart",
    "get_or_create_active_cart",
    "owner_key_for",
    "remove_item",
    "set_item_quantity",
]
