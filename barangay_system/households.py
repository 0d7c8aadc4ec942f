"""
Household workflows used by the Add/Edit/Delete household views.

These functions take the record store explicitly and know nothing about
forms or requests; the views translate their exceptions into flash
messages.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

from .membership import MembershipPlan, reconcile_membership
from .records import HouseholdInput, HouseholdRecord, ResidentRecord
from .store import RecordStore


logger = logging.getLogger(__name__)


class HouseholdNotFound(LookupError):
    pass


def get_household(store: RecordStore, household_id: str, *, default_location: tuple[float, float]) -> HouseholdRecord:
    rows = store.select("households", where={"id": household_id})
    if not rows:
        raise HouseholdNotFound(household_id)
    return HouseholdRecord.from_row(rows[0], default_location)


def create_household(
    store: RecordStore,
    data: HouseholdInput,
    member_ids: Iterable[str],
    *,
    default_location: tuple[float, float],
) -> tuple[HouseholdRecord, MembershipPlan]:
    """Insert a household and attach its initial members."""
    row = store.insert("households", data.as_row())
    household = HouseholdRecord.from_row(row, default_location)
    plan = reconcile_membership(store, household.id, household.house_number, member_ids)
    logger.info("Created household %s (%s) with %s member(s)", household.id, household.house_number, len(plan.to_add))
    return household, plan


def update_household(
    store: RecordStore,
    household_id: str,
    data: HouseholdInput,
    member_ids: Iterable[str],
    *,
    default_location: tuple[float, float],
) -> tuple[HouseholdRecord, MembershipPlan]:
    """Update household fields, then reconcile its member list.

    The reconciler leaves members that stay in the household untouched, so
    a renumbered household gets one extra bulk write afterwards to keep
    their denormalised house number in step.
    """
    previous = get_household(store, household_id, default_location=default_location)
    store.update("households", data.as_row(), where={"id": household_id})
    household = get_household(store, household_id, default_location=default_location)
    plan = reconcile_membership(store, household.id, household.house_number, member_ids)
    if plan.unchanged and previous.house_number != household.house_number:
        store.update(
            "residents",
            {"house_number": household.house_number},
            where_in={"id": sorted(plan.unchanged)},
        )
    return household, plan


def delete_household(store: RecordStore, household_id: str) -> int:
    """Detach every member, then delete the household.

    Returns the number of residents that were detached.
    """
    detached = store.update(
        "residents",
        {"household_id": None, "house_number": None},
        where={"household_id": household_id},
    )
    deleted = store.delete("households", where={"id": household_id})
    if not deleted:
        raise HouseholdNotFound(household_id)
    logger.info("Deleted household %s, detached %s resident(s)", household_id, detached)
    return detached


def members_by_household(store: RecordStore, household_ids: Iterable[str]) -> dict[str, list[ResidentRecord]]:
    ids = list(household_ids)
    if not ids:
        return {}
    rows = store.select(
        "residents",
        columns=["id", "first_name", "last_name", "household_id", "house_number"],
        where_in={"household_id": ids},
        order_by="first_name",
    )
    grouped: dict[str, list[ResidentRecord]] = defaultdict(list)
    for row in rows:
        resident = ResidentRecord.from_row(row)
        grouped[resident.household_id].append(resident)
    return dict(grouped)


def assignable_residents(store: RecordStore) -> list[ResidentRecord]:
    """All residents, ordered by first name, for the member picker."""
    rows = store.select(
        "residents",
        columns=["id", "first_name", "last_name", "household_id", "house_number"],
        order_by="first_name",
    )
    return [ResidentRecord.from_row(row) for row in rows]
