"""
Typed Exception Hierarchy for the Warehouse Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock operations fail for a small number of distinct reasons, and callers
react to each one differently: a malformed request is shown back to the
user, a missing row is a 404, a locked order is a business rule, and a
stock change that raced a finalize is worth retrying.  Parsing message
strings to tell these apart is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Every exception has an http_status class attribute (400 / 404 / 409)
  4. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        fulfillment.finalize_allocations(order_id, actor_id)
    except StockChangedError as e:       # retryable
        schedule_retry(e.order_id)
    except PreconditionError as e:       # business rule, show to user
        api_response(status=e.http_status, code=e.code, message=str(e))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WarehouseKernelError (base)
    |
    +-- ValidationError                      400
    |   +-- InvalidIdentifierError
    |   +-- InvalidQuantityError
    |   +-- InvalidFilterError
    |   +-- InvalidSlotDefinitionError
    |   +-- ProductNotInOrderError
    |   +-- AllocationOrderMismatchError
    |   +-- MoveRequestError
    |
    +-- NotFoundError                        404
    |   +-- OrderNotFoundError
    |   +-- ProductNotFoundError
    |   +-- SlotNotFoundError
    |   +-- SlotItemNotFoundError
    |   +-- AllocationNotFoundError
    |
    +-- PreconditionError                    409
    |   +-- OrderLockedError
    |   +-- StockFinalizedError
    |   +-- AllocationsDeductedError
    |   +-- ReservationExistsError
    |   +-- OrderNotDeliverableError
    |   +-- InvoiceRequiredError
    |   +-- NoReservationsError
    |   +-- OrderNotCancelledError
    |   +-- NothingToReverseError
    |   +-- SlotInUseError
    |   +-- DuplicateSlotError
    |
    +-- CapacityError                        409
    |   +-- InsufficientAvailableStockError
    |   +-- OrderedQuantityExceededError
    |   +-- IncompleteReservationError
    |   +-- SlotCapacityExceededError
    |
    +-- ConsistencyError                     409 (never auto-repaired)
    |   +-- PartiallyDeductedError
    |   +-- ForeignProductAllocationError
    |
    +-- ConcurrencyError                     409, retryable
    |   +-- StockChangedError
    |
    +-- ImmutabilityError                    409
        +-- ImmutabilityViolationError

===============================================================================
DESIGN DECISIONS
===============================================================================

1. WHY INHERIT FROM Exception (not ValueError, etc.)?
   Domain exceptions should be catchable as a group. Inheriting from
   built-in types mixes domain errors with programming errors.

2. WHY code AND http_status AS CLASS ATTRIBUTES?
   Both are static per exception type.  An outer HTTP layer maps errors
   without instantiating or inspecting them.

3. WHY A retryable FLAG?
   Only StockChangedError is safe to retry blindly: it means the ledger
   moved between the caller's read and the deduction.  Consistency errors
   look similar but must be investigated, never retried.

===============================================================================
"""


class WarehouseKernelError(Exception):
    """
    Base exception for all warehouse kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    identification and an `http_status` for the outer request layer.
    """

    code: str = "WAREHOUSE_KERNEL_ERROR"
    http_status: int = 500
    retryable: bool = False


# =============================================================================
# Validation (400)
# =============================================================================


class ValidationError(WarehouseKernelError):
    """Base exception for malformed input."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400


class InvalidIdentifierError(ValidationError):
    """An id argument is not a well-formed UUID."""

    code: str = "INVALID_IDENTIFIER"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = str(value)
        super().__init__(f"Invalid {field}: {value!r}")


class InvalidQuantityError(ValidationError):
    """A quantity argument is not a positive integer."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: object, reason: str = "must be a positive integer"):
        self.field = field
        self.value = str(value)
        self.reason = reason
        super().__init__(f"{field} {reason}, got {value!r}")


class InvalidFilterError(ValidationError):
    """A list/filter argument is not recognised."""

    code: str = "INVALID_FILTER"

    def __init__(self, field: str, value: object, allowed: list[str] | None = None):
        self.field = field
        self.value = str(value)
        self.allowed = allowed
        suffix = f" (allowed: {', '.join(allowed)})" if allowed else ""
        super().__init__(f"Invalid {field}: {value!r}{suffix}")


class InvalidSlotDefinitionError(ValidationError):
    """A slot create/update request is missing fields or has bad values."""

    code: str = "INVALID_SLOT_DEFINITION"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid slot {field}: {reason}")


class ProductNotInOrderError(ValidationError):
    """The product is not one of the order's lines."""

    code: str = "PRODUCT_NOT_IN_ORDER"

    def __init__(self, order_id: str, product_id: str):
        self.order_id = order_id
        self.product_id = product_id
        super().__init__(f"Product {product_id} is not in order {order_id}")


class AllocationOrderMismatchError(ValidationError):
    """The allocation belongs to a different order than the one named."""

    code: str = "ALLOCATION_ORDER_MISMATCH"

    def __init__(self, allocation_id: str, order_id: str):
        self.allocation_id = allocation_id
        self.order_id = order_id
        super().__init__(
            f"Allocation {allocation_id} does not belong to order {order_id}"
        )


class MoveRequestError(ValidationError):
    """A move request is malformed (same slot, duplicates, qty > on-hand)."""

    code: str = "MOVE_REQUEST_INVALID"

    def __init__(self, reason: str, slot_item_id: str | None = None):
        self.reason = reason
        self.slot_item_id = slot_item_id
        super().__init__(f"Invalid move request: {reason}")


# =============================================================================
# Not found (404)
# =============================================================================


class NotFoundError(WarehouseKernelError):
    """Base exception for a referenced row that does not exist."""

    code: str = "NOT_FOUND"
    http_status: int = 404

    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class OrderNotFoundError(NotFoundError):
    code: str = "ORDER_NOT_FOUND"
    entity_type = "Order"


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"
    entity_type = "Product"


class SlotNotFoundError(NotFoundError):
    code: str = "SLOT_NOT_FOUND"
    entity_type = "Slot"


class SlotItemNotFoundError(NotFoundError):
    """No stock row for a (product, slot) pair, or a slot item id is unknown."""

    code: str = "SLOT_ITEM_NOT_FOUND"
    entity_type = "SlotItem"

    def __init__(self, entity_id: str, product_id: str | None = None, slot_id: str | None = None):
        self.product_id = product_id
        self.slot_id = slot_id
        super().__init__(entity_id)


class AllocationNotFoundError(NotFoundError):
    code: str = "ALLOCATION_NOT_FOUND"
    entity_type = "OrderAllocation"


# =============================================================================
# Preconditions (409)
# =============================================================================


class PreconditionError(WarehouseKernelError):
    """Base exception for a business-state precondition that does not hold."""

    code: str = "PRECONDITION_FAILED"
    http_status: int = 409


class OrderLockedError(PreconditionError):
    """The order's status does not permit allocation edits."""

    code: str = "ORDER_LOCKED"

    def __init__(self, order_id: str, status: str, reason: str = ""):
        self.order_id = order_id
        self.status = status
        self.reason = reason
        super().__init__(
            f"Order {order_id} is locked for allocation edits (status={status})"
            + (f": {reason}" if reason else "")
        )


class StockFinalizedError(PreconditionError):
    """The order's stock has already been finalized."""

    code: str = "STOCK_FINALIZED"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Stock already finalized for order {order_id}")


class AllocationsDeductedError(PreconditionError):
    """At least one of the order's allocations has already been deducted."""

    code: str = "ALLOCATIONS_DEDUCTED"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} already has deducted allocations")


class ReservationExistsError(PreconditionError):
    """Stock rows with Reserved allocations cannot be edited directly."""

    code: str = "RESERVATION_EXISTS"

    def __init__(self, slot_id: str, product_ids: list[str]):
        self.slot_id = slot_id
        self.product_ids = product_ids
        super().__init__(
            f"Slot {slot_id} has reserved allocations for product(s) "
            f"{', '.join(product_ids)}; release them first"
        )


class OrderNotDeliverableError(PreconditionError):
    """The order is not in the status finalize requires."""

    code: str = "ORDER_NOT_DELIVERABLE"

    def __init__(self, order_id: str, status: str, required_status: str):
        self.order_id = order_id
        self.status = status
        self.required_status = required_status
        super().__init__(
            f"Order {order_id} must be {required_status} to finalize (status={status})"
        )


class InvoiceRequiredError(PreconditionError):
    code: str = "INVOICE_REQUIRED"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} has no invoice")


class NoReservationsError(PreconditionError):
    code: str = "NO_RESERVATIONS"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} has no allocations to finalize")


class OrderNotCancelledError(PreconditionError):
    code: str = "ORDER_NOT_CANCELLED"

    def __init__(self, order_id: str, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(
            f"Order {order_id} must be cancelled before reversal (status={status})"
        )


class NothingToReverseError(PreconditionError):
    """The order has no finalized deduction to reverse."""

    code: str = "NOTHING_TO_REVERSE"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} has no finalized deductions to reverse")


class SlotInUseError(PreconditionError):
    """A slot referenced by stock or allocation rows cannot be deleted."""

    code: str = "SLOT_IN_USE"

    def __init__(self, slot_id: str, slot_item_count: int, allocation_count: int):
        self.slot_id = slot_id
        self.slot_item_count = slot_item_count
        self.allocation_count = allocation_count
        super().__init__(
            f"Slot {slot_id} is in use ({slot_item_count} stock rows, "
            f"{allocation_count} allocations)"
        )


class DuplicateSlotError(PreconditionError):
    code: str = "DUPLICATE_SLOT"

    def __init__(self, store: str, unit: str, position: int):
        self.store = store
        self.unit = unit
        self.position = position
        super().__init__(f"Slot already exists: {store}/{unit}{position}")


# =============================================================================
# Capacity (409)
# =============================================================================


class CapacityError(WarehouseKernelError):
    """Base exception for quantity or volume limits."""

    code: str = "CAPACITY_ERROR"
    http_status: int = 409


class InsufficientAvailableStockError(CapacityError):
    """The requested reservation exceeds unreserved on-hand quantity."""

    code: str = "INSUFFICIENT_AVAILABLE_STOCK"

    def __init__(
        self,
        product_id: str,
        slot_id: str,
        requested_qty: int,
        available_qty: int,
        on_hand_qty: int,
        reserved_by_others: int,
    ):
        self.product_id = product_id
        self.slot_id = slot_id
        self.requested_qty = requested_qty
        self.available_qty = available_qty
        self.on_hand_qty = on_hand_qty
        self.reserved_by_others = reserved_by_others
        super().__init__(
            f"Requested {requested_qty} of product {product_id} in slot {slot_id}, "
            f"available {available_qty} (on hand {on_hand_qty}, "
            f"reserved by others {reserved_by_others})"
        )


class OrderedQuantityExceededError(CapacityError):
    """The order's total allocation for a product would exceed the ordered qty."""

    code: str = "ORDERED_QUANTITY_EXCEEDED"

    def __init__(self, order_id: str, product_id: str, ordered_qty: int, allocated_qty: int):
        self.order_id = order_id
        self.product_id = product_id
        self.ordered_qty = ordered_qty
        self.allocated_qty = allocated_qty
        super().__init__(
            f"Allocation for product {product_id} on order {order_id} would be "
            f"{allocated_qty}, ordered {ordered_qty}"
        )


class IncompleteReservationError(CapacityError):
    """Finalize requires every line to be exactly reserved."""

    code: str = "INCOMPLETE_RESERVATION"

    def __init__(self, order_id: str, product_id: str, ordered_qty: int, reserved_qty: int):
        self.order_id = order_id
        self.product_id = product_id
        self.ordered_qty = ordered_qty
        self.reserved_qty = reserved_qty
        super().__init__(
            f"Product {product_id} on order {order_id} is reserved "
            f"{reserved_qty} of {ordered_qty}"
        )


class SlotCapacityExceededError(CapacityError):
    """Restocking would push a slot past its over-capacity ceiling."""

    code: str = "SLOT_CAPACITY_EXCEEDED"

    def __init__(self, slot_id: str, label: str, current_cbm, incoming_cbm, ceiling_cbm):
        self.slot_id = slot_id
        self.label = label
        self.current_cbm = current_cbm
        self.incoming_cbm = incoming_cbm
        self.ceiling_cbm = ceiling_cbm
        super().__init__(
            f"Slot {label} cannot take {incoming_cbm} cbm "
            f"(current {current_cbm}, ceiling {ceiling_cbm})"
        )


# =============================================================================
# Consistency (409)
# =============================================================================


class ConsistencyError(WarehouseKernelError):
    """Base exception for stored state that contradicts itself.

    Never repaired automatically.
    """

    code: str = "CONSISTENCY_ERROR"
    http_status: int = 409


class PartiallyDeductedError(ConsistencyError):
    """The order has a mix of Deducted and Reserved allocations."""

    code: str = "PARTIALLY_DEDUCTED"

    def __init__(self, order_id: str, deducted_count: int, reserved_count: int):
        self.order_id = order_id
        self.deducted_count = deducted_count
        self.reserved_count = reserved_count
        super().__init__(
            f"Order {order_id} is partially deducted "
            f"({deducted_count} deducted, {reserved_count} reserved)"
        )


class ForeignProductAllocationError(ConsistencyError):
    """An allocation references a product that is not on the order."""

    code: str = "FOREIGN_PRODUCT_ALLOCATION"

    def __init__(self, order_id: str, product_id: str):
        self.order_id = order_id
        self.product_id = product_id
        super().__init__(
            f"Order {order_id} has an allocation for product {product_id} "
            "which is not on the order"
        )


# =============================================================================
# Concurrency (409, retryable)
# =============================================================================


class ConcurrencyError(WarehouseKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    http_status: int = 409
    retryable: bool = True


class StockChangedError(ConcurrencyError):
    """On-hand quantity fell below a reservation between reserve and finalize."""

    code: str = "STOCK_CHANGED"

    def __init__(self, order_id: str, product_id: str, slot_id: str, on_hand_qty: int, required_qty: int):
        self.order_id = order_id
        self.product_id = product_id
        self.slot_id = slot_id
        self.on_hand_qty = on_hand_qty
        self.required_qty = required_qty
        super().__init__(
            f"Stock changed for product {product_id} in slot {slot_id}: "
            f"on hand {on_hand_qty}, reserved {required_qty}; retry"
        )


# =============================================================================
# Immutability
# =============================================================================


class ImmutabilityError(WarehouseKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"
    http_status: int = 409


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
