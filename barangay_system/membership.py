"""
Household membership reconciliation.

Given a household and the set of residents the user wants in it, bring the
`residents.household_id` / `residents.house_number` columns in line with
that set while writing as little as possible:

- residents currently in the household but not wanted are detached
  (household_id and house_number cleared) in one bulk update;
- wanted residents not currently in the household are attached
  (household_id and house_number set) in a second bulk update;
- residents already in the household and still wanted, and residents
  mentioned in neither set, are not written.

Removal runs before addition.  The store gives no transaction across the
two writes, so a failure leaves a partially reconciled household; calling
`reconcile` again re-fetches the current members and finishes the job.
A resident that belongs to another household is simply moved (the last
submission wins).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from .store import RecordStore, StoreError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MembershipPlan:
    household_id: str
    house_number: str
    to_remove: frozenset
    to_add: frozenset
    unchanged: frozenset

    @property
    def is_noop(self) -> bool:
        return not self.to_remove and not self.to_add

    @property
    def summary(self) -> dict:
        return {
            "removed": len(self.to_remove),
            "added": len(self.to_add),
            "unchanged": len(self.unchanged),
        }


class MembershipError(Exception):
    """A bulk membership write failed.

    `stage` is "remove" or "add"; `plan` is the plan being applied.  When
    the stage is "add", the removals in `plan` were already written.
    """

    def __init__(self, stage: str, plan: MembershipPlan, cause: Exception):
        super().__init__(f"Failed to {stage} household members: {cause}")
        self.stage = stage
        self.plan = plan


def plan_membership(
    household_id: str,
    house_number: str,
    current_ids: Iterable[str],
    target_ids: Iterable[str],
) -> MembershipPlan:
    """Diff the current member set against the target set."""
    current = frozenset(current_ids)
    target = frozenset(target_ids)
    return MembershipPlan(
        household_id=household_id,
        house_number=house_number,
        to_remove=current - target,
        to_add=target - current,
        unchanged=current & target,
    )


class MembershipReconciler:
    """Applies membership plans through a `RecordStore`."""

    def __init__(self, store: RecordStore):
        self.store = store

    def current_member_ids(self, household_id: str) -> set[str]:
        rows = self.store.select("residents", columns=["id"], where={"household_id": household_id})
        return {row["id"] for row in rows}

    def apply(self, plan: MembershipPlan) -> MembershipPlan:
        if plan.to_remove:
            try:
                self.store.update(
                    "residents",
                    {"household_id": None, "house_number": None},
                    where_in={"id": sorted(plan.to_remove)},
                )
            except StoreError as exc:
                raise MembershipError("remove", plan, exc) from exc

        if plan.to_add:
            try:
                self.store.update(
                    "residents",
                    {"household_id": plan.household_id, "house_number": plan.house_number},
                    where_in={"id": sorted(plan.to_add)},
                )
            except StoreError as exc:
                raise MembershipError("add", plan, exc) from exc

        return plan

    def reconcile(self, household_id: str, house_number: str, target_ids: Iterable[str]) -> MembershipPlan:
        current = self.current_member_ids(household_id)
        plan = plan_membership(household_id, house_number, current, target_ids)
        if plan.is_noop:
            logger.debug("Household %s membership unchanged", household_id)
            return plan
        self.apply(plan)
        logger.info(
            "Reconciled household %s members: removed=%s added=%s unchanged=%s",
            household_id,
            len(plan.to_remove),
            len(plan.to_add),
            len(plan.unchanged),
        )
        return plan


def reconcile_membership(
    store: RecordStore,
    household_id: str,
    house_number: str,
    target_member_ids: Iterable[str],
) -> MembershipPlan:
    """Make `target_member_ids` the exact member set of the household.

    Raises `StoreError` if the current members cannot be fetched and
    `MembershipError` if either bulk write fails.
    """
    return MembershipReconciler(store).reconcile(household_id, house_number, target_member_ids)
