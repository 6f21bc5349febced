"""Services for the warehouse kernel (write side)."""

from warehouse_kernel.services.allocation_service import AllocationService
from warehouse_kernel.services.fulfillment_service import FulfillmentService
from warehouse_kernel.services.movement_log import MovementLog
from warehouse_kernel.services.occupancy_service import OccupancyService
from warehouse_kernel.services.reversal_service import ReversalService
from warehouse_kernel.services.slot_service import SlotService
from warehouse_kernel.services.snapshot_service import SnapshotService
from warehouse_kernel.services.stock_ledger_service import StockLedgerService

__all__ = [
    "AllocationService",
    "FulfillmentService",
    "MovementLog",
    "OccupancyService",
    "ReversalService",
    "SlotService",
    "SnapshotService",
    "StockLedgerService",
]
