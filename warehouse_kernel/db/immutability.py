"""
ORM-Level Immutability Enforcement for the movement log (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

The movement log is the audit trail for every unit of stock.  Conservation
(signed sum of movements == on-hand qty) only means something if history
cannot be rewritten, so movements are append-only:

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/sql/01_inventory_movement.sql (PostgreSQL triggers)
    - Catches raw SQL, bulk UPDATE statements, direct psql access

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update event] --> _check_movement_immutability() --> ImmutabilityViolationError
         |
    [before_delete event] --> _check_movement_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

A correction is recorded as a new compensating movement, never as an edit.

===============================================================================
USAGE
===============================================================================

    from warehouse_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

    # Tests that need to bypass the guard:
    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
"""

from sqlalchemy import event

from warehouse_kernel.exceptions import ImmutabilityViolationError
from warehouse_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_movement_immutability(mapper, connection, target):
    """Prevent any update to InventoryMovement rows."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "invariant": "append_only_ledger",
            "entity_type": "InventoryMovement",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="InventoryMovement",
        entity_id=str(target.id),
        reason="Inventory movements are append-only and cannot be modified",
    )


def _check_movement_delete(mapper, connection, target):
    """Prevent deletion of InventoryMovement rows."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "invariant": "append_only_ledger",
            "entity_type": "InventoryMovement",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="InventoryMovement",
        entity_id=str(target.id),
        reason="Inventory movements cannot be deleted",
    )


def register_immutability_listeners():
    """
    Register the movement-log immutability listeners.

    Idempotent: listeners already registered are not added twice.
    """
    from warehouse_kernel.models.movement import InventoryMovement

    if not event.contains(InventoryMovement, "before_update", _check_movement_immutability):
        event.listen(InventoryMovement, "before_update", _check_movement_immutability)
    if not event.contains(InventoryMovement, "before_delete", _check_movement_delete):
        event.listen(InventoryMovement, "before_delete", _check_movement_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the movement-log immutability listeners.

    WARNING: Only use this in tests that intentionally violate immutability
    to verify detection at another layer.
    """
    from warehouse_kernel.models.movement import InventoryMovement

    _safe_remove_listener(InventoryMovement, "before_update", _check_movement_immutability)
    _safe_remove_listener(InventoryMovement, "before_delete", _check_movement_delete)
