"""
Database-level guards (PostgreSQL only).

Raw SQL bypasses the ORM listeners; the triggers installed by
create_tables() must still refuse movement edits and negative occupancy.
"""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from warehouse_kernel.db.engine import is_postgres
from warehouse_kernel.db.triggers import ALL_TRIGGER_NAMES, get_installed_triggers, triggers_installed

pytestmark = pytest.mark.postgres


@pytest.fixture
def movement_id(make_slot, make_product, stock_service):
    return stock_service.adjust_slot_item(make_product().id, make_slot().id, 2).movement_id


def test_triggers_installed(db_engine):
    assert is_postgres()
    assert triggers_installed(db_engine)
    assert get_installed_triggers(db_engine) == sorted(ALL_TRIGGER_NAMES)


def test_raw_update_refused(movement_id, session):
    with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
        session.execute(
            text("UPDATE inventory_movements SET note = 'edited' WHERE id = :id"),
            {"id": str(movement_id)},
        )
    session.rollback()


def test_raw_delete_refused(movement_id, session):
    with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
        session.execute(
            text("DELETE FROM inventory_movements WHERE id = :id"),
            {"id": str(movement_id)},
        )
    session.rollback()


def test_negative_occupancy_refused(make_slot, session):
    slot = make_slot()
    with pytest.raises(DBAPIError):
        session.execute(
            text("UPDATE slots SET occupied_cbm = -1 WHERE id = :id"),
            {"id": str(slot.id)},
        )
    session.rollback()
