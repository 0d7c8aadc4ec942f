from unittest import mock

import pytest

from barangay_system.extensions import db
from barangay_system.membership import (
    MembershipError,
    MembershipReconciler,
    plan_membership,
    reconcile_membership,
)
from barangay_system.models import Resident
from barangay_system.store import StoreError


def _mock_store(current_ids):
    store = mock.Mock()
    store.select.return_value = [{"id": rid} for rid in current_ids]
    store.update.return_value = 1
    return store


def test_plan_partitions_current_and_target():
    plan = plan_membership("h1", "12", {"A", "B", "C"}, {"B", "C", "D"})

    assert plan.to_remove == {"A"}
    assert plan.to_add == {"D"}
    assert plan.unchanged == {"B", "C"}
    assert not plan.to_remove & plan.to_add
    assert plan.summary == {"removed": 1, "added": 1, "unchanged": 2}


def test_new_household_adds_every_member():
    store = _mock_store([])

    plan = reconcile_membership(store, "h1", "12", ["A", "B"])

    store.select.assert_called_once_with("residents", columns=["id"], where={"household_id": "h1"})
    store.update.assert_called_once_with(
        "residents",
        {"household_id": "h1", "house_number": "12"},
        where_in={"id": ["A", "B"]},
    )
    assert plan.to_add == {"A", "B"}
    assert not plan.to_remove


def test_swap_members_removes_before_adding():
    store = _mock_store(["A", "B", "C"])

    reconcile_membership(store, "h1", "12", ["B", "C", "D"])

    assert store.update.call_args_list == [
        mock.call("residents", {"household_id": None, "house_number": None}, where_in={"id": ["A"]}),
        mock.call("residents", {"household_id": "h1", "house_number": "12"}, where_in={"id": ["D"]}),
    ]


def test_shrinking_household_removes_only_dropped_members():
    store = _mock_store(["r1", "r2", "r3"])
    bystander = "r9"

    plan = reconcile_membership(store, "h1", "12", ["r2"])

    store.update.assert_called_once_with(
        "residents",
        {"household_id": None, "house_number": None},
        where_in={"id": ["r1", "r3"]},
    )
    assert plan.unchanged == {"r2"}
    assert not plan.to_add
    for call in store.update.call_args_list:
        ids = call.kwargs["where_in"]["id"]
        assert bystander not in ids
        assert "r2" not in ids


def test_clearing_members_detaches_all():
    store = _mock_store(["A", "B"])

    plan = reconcile_membership(store, "h1", "12", [])

    store.update.assert_called_once_with(
        "residents",
        {"household_id": None, "house_number": None},
        where_in={"id": ["A", "B"]},
    )
    assert plan.to_remove == {"A", "B"}


def test_resubmitting_same_members_writes_nothing():
    store = _mock_store(["A", "B"])

    plan = reconcile_membership(store, "h1", "12", ["B", "A"])

    assert plan.is_noop
    store.update.assert_not_called()


def test_duplicate_target_ids_are_collapsed():
    store = _mock_store([])

    plan = reconcile_membership(store, "h1", "12", ["A", "A", "B"])

    assert plan.to_add == {"A", "B"}
    store.update.assert_called_once()
    assert store.update.call_args.kwargs["where_in"] == {"id": ["A", "B"]}


def test_failed_removal_skips_addition():
    store = _mock_store(["A"])
    store.update.side_effect = StoreError("residents", "update", "connection lost")

    with pytest.raises(MembershipError) as excinfo:
        reconcile_membership(store, "h1", "12", ["B"])

    assert excinfo.value.stage == "remove"
    assert isinstance(excinfo.value.__cause__, StoreError)
    assert store.update.call_count == 1


def test_failed_addition_reports_add_stage():
    store = _mock_store(["A"])
    store.update.side_effect = [1, StoreError("residents", "update", "constraint")]

    with pytest.raises(MembershipError) as excinfo:
        reconcile_membership(store, "h1", "12", ["B"])

    assert excinfo.value.stage == "add"
    assert excinfo.value.plan.to_remove == {"A"}
    assert store.update.call_count == 2


def test_fetch_failure_propagates_without_writes():
    store = mock.Mock()
    store.select.side_effect = StoreError("residents", "select", "timeout")

    with pytest.raises(StoreError):
        MembershipReconciler(store).reconcile("h1", "12", ["A"])

    store.update.assert_not_called()


def test_reconcile_against_database(store, make_household, make_resident):
    household = make_household(house_number="7")
    other = make_household(house_number="9")
    a = make_resident(first_name="Ana", household=household)
    b = make_resident(first_name="Ben", household=household)
    c = make_resident(first_name="Cid")
    bystander = make_resident(first_name="Dee", household=other)
    ids = {name: r.id for name, r in (("a", a), ("b", b), ("c", c), ("d", bystander))}

    plan = reconcile_membership(store, household.id, "7", [ids["b"], ids["c"]])

    assert plan.to_remove == {ids["a"]}
    assert plan.to_add == {ids["c"]}

    rows = {r.id: r for r in Resident.query.all()}
    assert rows[ids["a"]].household_id is None
    assert rows[ids["a"]].house_number is None
    assert rows[ids["b"]].household_id == household.id
    assert rows[ids["c"]].household_id == household.id
    assert rows[ids["c"]].house_number == "7"
    assert rows[ids["d"]].household_id == other.id
    assert rows[ids["d"]].house_number == "9"


def test_target_from_another_household_is_moved(store, make_household, make_resident):
    first = make_household(house_number="1")
    second = make_household(house_number="2")
    mover = make_resident(household=first)
    mover_id = mover.id

    reconcile_membership(store, second.id, "2", [mover_id])

    moved = db.session.get(Resident, mover_id)
    assert moved.household_id == second.id
    assert moved.house_number == "2"
