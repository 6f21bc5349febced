"""
Warehouse Kernel - slot inventory reservation and fulfillment.

Tracks physical stock across storage slots with:
- Per-slot on-hand ledger with derived volume
- Reservations against open orders with overbooking guards
- Atomic finalize (reservation -> permanent deduction)
- Reversal of finalized orders on cancellation
- Append-only movement log and incrementally maintained occupancy
"""

__version__ = "0.1.0"
