"""ORM models for the warehouse kernel.

Importing this package registers every table on ``Base.metadata``.
"""

from warehouse_kernel.models.allocation import OrderAllocation
from warehouse_kernel.models.movement import InventoryMovement
from warehouse_kernel.models.order import Order, OrderLine
from warehouse_kernel.models.product import Product
from warehouse_kernel.models.slot import Slot, make_label
from warehouse_kernel.models.slot_item import SlotItem
from warehouse_kernel.models.snapshot import StoreSnapshot

__all__ = [
    "InventoryMovement",
    "Order",
    "OrderAllocation",
    "OrderLine",
    "Product",
    "Slot",
    "SlotItem",
    "StoreSnapshot",
    "make_label",
]
