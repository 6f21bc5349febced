"""
SnapshotSelector -- read the persisted store snapshots.
"""

from sqlalchemy import select

from warehouse_kernel.domain.dtos import StoreSnapshotInfo
from warehouse_kernel.models.snapshot import StoreSnapshot
from warehouse_kernel.selectors.base import BaseSelector


def snapshot_to_info(snapshot: StoreSnapshot) -> StoreSnapshotInfo:
    return StoreSnapshotInfo(
        store=snapshot.store,
        capacity_cbm=snapshot.capacity_cbm,
        occupied_cbm=snapshot.occupied_cbm,
        free_cbm=snapshot.free_cbm,
        n_units=snapshot.n_units,
        n_slots=snapshot.n_slots,
        n_slot_items=snapshot.n_slot_items,
        units=dict(snapshot.units or {}),
        generated_at=snapshot.generated_at,
    )


class SnapshotSelector(BaseSelector):
    """Read-only snapshot queries."""

    def get_store_snapshot(self, store: str) -> StoreSnapshotInfo | None:
        """The last snapshot built for ``store``, or None."""
        snapshot = self.session.execute(
            select(StoreSnapshot).where(StoreSnapshot.store == store)
        ).scalar_one_or_none()
        return snapshot_to_info(snapshot) if snapshot is not None else None

    def list_store_snapshots(self) -> tuple[StoreSnapshotInfo, ...]:
        rows = self.session.execute(
            select(StoreSnapshot).order_by(StoreSnapshot.store)
        ).scalars()
        return tuple(snapshot_to_info(s) for s in rows)
