from unittest import mock

import pytest
from sqlalchemy.exc import OperationalError

from barangay_system.models import Household, Resident
from barangay_system.store import RecordStore, StoreError


def test_insert_returns_generated_values(store):
    row = store.insert("households", {"house_number": "21", "purok": "Purok 3"})

    assert row["id"]
    assert row["house_number"] == "21"
    assert row["created_at"] is not None
    assert Household.query.count() == 1


def test_select_with_columns_filters_and_order(store, make_household, make_resident):
    household = make_household()
    make_resident(first_name="Zed", household=household)
    make_resident(first_name="Amy", household=household)
    make_resident(first_name="Out")

    rows = store.select(
        "residents",
        columns=["id", "first_name"],
        where={"household_id": household.id},
        order_by="first_name",
    )

    assert [r["first_name"] for r in rows] == ["Amy", "Zed"]
    assert set(rows[0]) == {"id", "first_name"}


def test_where_none_matches_null(store, make_household, make_resident):
    make_resident(first_name="Loose")
    make_resident(first_name="Housed", household=make_household())

    rows = store.select("residents", columns=["first_name"], where={"household_id": None})

    assert [r["first_name"] for r in rows] == ["Loose"]


def test_update_with_where_in_returns_count(store, make_resident):
    a = make_resident(first_name="A")
    b = make_resident(first_name="B")
    make_resident(first_name="C")

    count = store.update("residents", {"purok": "Purok 9"}, where_in={"id": [a.id, b.id]})

    assert count == 2
    assert Resident.query.filter_by(purok="Purok 9").count() == 2


def test_unfiltered_writes_are_refused(store):
    with pytest.raises(StoreError):
        store.update("residents", {"purok": "x"})
    with pytest.raises(StoreError):
        store.delete("residents")


def test_unknown_table_and_column(store):
    with pytest.raises(StoreError) as excinfo:
        store.select("nope")
    assert excinfo.value.table == "nope"

    with pytest.raises(StoreError) as excinfo:
        store.update("residents", {"shoe_size": 9}, where={"id": "x"})
    assert excinfo.value.operation == "update"


def test_delete_returns_count(store, make_household):
    household_id = make_household().id

    assert store.delete("households", where={"id": household_id}) == 1
    assert store.delete("households", where={"id": household_id}) == 0


def test_database_errors_become_store_errors():
    session = mock.Mock()
    session.execute.side_effect = OperationalError("UPDATE residents", {}, Exception("db down"))
    store = RecordStore(session)

    with pytest.raises(StoreError) as excinfo:
        store.update("residents", {"purok": "x"}, where={"id": "r1"})

    assert excinfo.value.operation == "update"
    session.rollback.assert_called_once()
    session.commit.assert_not_called()
