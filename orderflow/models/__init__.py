"""Application models package."""

from orderflow.models.cart import Cart, CartItem
from orderflow.models.casso_transaction import CassoTransaction
from orderflow.models.inventory import InventoryDecrement, InventoryItem, StockMovement
from orderflow.models.order import Order, OrderItem, OrderTimelineEntry
from orderflow.models.reconcile_task import ReconcileTask

__all__ = [
    "Cart", "CartItem", "CassoTransaction", "InventoryDecrement", "InventoryItem", "StockMovement",
    "Order", "OrderItem", "OrderTimelineEntry", "ReconcileTask",
]
