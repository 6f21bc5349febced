#!/usr/bin/env python3
"""
Rebuild the slot occupancy cache and store snapshots from the stock ledger.

Usage:
    python scripts/rebuild_occupancy.py [--database-url URL] [--store CODE]
                                        [--snapshots] [--verify]
                                        [--purge-expired]

The database URL defaults to $DATABASE_URL.

The script:
  1. Recomputes occupied_cbm / fill_percent for every slot (or one store)
     and reports slots whose cached value had drifted
  2. With --snapshots, rebuilds the StoreSnapshot of each affected store
  3. With --verify, replays the movement log for every stock row and
     reports rows whose qty disagrees with the log
  4. With --purge-expired, deletes finalized allocations whose grace
     window has passed

Exit status is 1 when --verify finds a mismatch, 0 otherwise.  Drift in
the occupancy cache is repaired, not treated as a failure.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from sqlalchemy import select

from warehouse_kernel.db.engine import get_session, init_engine_from_url
from warehouse_kernel.logging_config import configure_logging
from warehouse_kernel.models.slot import Slot
from warehouse_kernel.models.slot_item import SlotItem
from warehouse_kernel.selectors.movement_selector import MovementSelector
from warehouse_kernel.services.allocation_service import AllocationService
from warehouse_kernel.services.occupancy_service import OccupancyService
from warehouse_kernel.services.snapshot_service import SnapshotService


def verify_ledger(session) -> int:
    """Print stock rows whose qty differs from the movement log.  Returns the count."""
    selector = MovementSelector(session)
    mismatches = 0
    for item in session.execute(select(SlotItem)).scalars():
        expected = selector.ledger_quantity(item.product_id, item.slot_id)
        if expected != item.qty:
            mismatches += 1
            print(
                f"  MISMATCH product={item.product_id} slot={item.slot_id} "
                f"qty={item.qty} ledger={expected}"
            )
    return mismatches


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.split("\n\n")[0])
    parser.add_argument("--database-url", default=os.environ.get("DATABASE_URL"))
    parser.add_argument("--store", help="Limit the rebuild to one store")
    parser.add_argument("--snapshots", action="store_true", help="Also rebuild store snapshots")
    parser.add_argument("--verify", action="store_true", help="Check SlotItem qty against the movement log")
    parser.add_argument(
        "--purge-expired", action="store_true", help="Delete allocations past their grace window"
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    if not args.database_url:
        parser.error("no database URL: pass --database-url or set DATABASE_URL")

    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    init_engine_from_url(args.database_url)
    session = get_session()
    try:
        result = OccupancyService(session).rebuild_slot_occupancy(store=args.store)
        print(f"Occupancy rebuilt for {result.updated} slot(s)")
        for slot_id in result.drifted_slot_ids:
            print(f"  drift repaired: slot {slot_id}")

        if args.snapshots:
            snapshots = SnapshotService(session)
            if args.store:
                stores = [args.store]
            else:
                stores = session.execute(
                    select(Slot.store).distinct().order_by(Slot.store)
                ).scalars().all()
            for store in stores:
                info = snapshots.rebuild_store_snapshot(store)
                print(
                    f"Snapshot {info.store}: {info.occupied_cbm}/{info.capacity_cbm} cbm "
                    f"in {info.n_slots} slot(s)"
                )

        if args.purge_expired:
            purged = AllocationService(session).purge_expired_allocations()
            print(f"Purged {purged} expired allocation(s)")

        if args.verify:
            print("Verifying stock rows against the movement log...")
            mismatches = verify_ledger(session)
            if mismatches:
                print(f"{mismatches} mismatch(es) found")
                return 1
            print("OK")
        return 0
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
