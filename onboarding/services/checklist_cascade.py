"""
Checklist cascade — derived effects of a single item transition.

Called by checklist_instance_service after every complete / skip / reopen,
inside the same transaction and after the owning instance row has been
locked. Works on the instance's items as an in-memory arena keyed by id;
the dependents index is rebuilt from the items' depends_on pointers on each
call (instances hold tens of items).

Effects:
    complete  → BLOCKED direct dependents become PENDING,
                then instance completion is evaluated
    skip      → BLOCKED direct dependents become PENDING
    reopen    → a COMPLETED instance reverts to IN_PROGRESS when the reopened
                item is required and had been completed; then every PENDING
                item downstream of the reopened item is re-blocked, walking on
                from each newly blocked item

Instance completion hands over to lifecycle_bridge.on_instance_completed,
which may advance the customer from ONBOARDING to ACTIVE.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from onboarding.core.context import ChecklistContext
from onboarding.models.checklist import (
    SATISFYING_STATUSES,
    ChecklistInstance,
    ChecklistInstanceItem,
    validate_instance_transition,
)
from onboarding.services import lifecycle_bridge
from onboarding.services.dependency_graph import dependency_edges, dependents_index

logger = logging.getLogger(__name__)


@dataclass
class CascadeResult:
    """Everything one item transition changed besides the item itself."""

    item_id: str
    action: str
    unblocked: list[str] = field(default_factory=list)
    reblocked: list[str] = field(default_factory=list)
    instance_completed: bool = False
    instance_reopened: bool = False
    customer_activated: bool = False

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "action": self.action,
            "unblocked": self.unblocked,
            "reblocked": self.reblocked,
            "instance_completed": self.instance_completed,
            "instance_reopened": self.instance_reopened,
            "customer_activated": self.customer_activated,
        }


def _arena(items: list[ChecklistInstanceItem]) -> tuple[dict, dict]:
    by_id = {item.id: item for item in items}
    index = dependents_index(dependency_edges(items))
    return by_id, index


def prerequisite_satisfied(item: ChecklistInstanceItem, by_id: dict) -> bool:
    """True when the item has no prerequisite or its prerequisite is COMPLETED/SKIPPED."""
    if item.depends_on_item_id is None:
        return True
    prerequisite = by_id.get(item.depends_on_item_id)
    return prerequisite is not None and prerequisite.status in SATISFYING_STATUSES


def _unblock_direct_dependents(item_id: str, by_id: dict, index: dict) -> list[str]:
    unblocked = []
    for dependent_id in index.get(item_id, []):
        dependent = by_id[dependent_id]
        if dependent.status == "BLOCKED":
            dependent.status = "PENDING"
            unblocked.append(dependent_id)
    return unblocked


def _reblock_downstream(item_id: str, by_id: dict, index: dict) -> list[str]:
    reblocked = []
    frontier = [item_id]
    while frontier:
        current = frontier.pop(0)
        for dependent_id in index.get(current, []):
            dependent = by_id[dependent_id]
            if dependent.status == "PENDING":
                dependent.status = "BLOCKED"
                reblocked.append(dependent_id)
                frontier.append(dependent_id)
    return reblocked


def required_items_satisfied(items: list[ChecklistInstanceItem]) -> bool:
    """At least one required item, and every required item COMPLETED.

    SKIPPED does not count toward required satisfaction; optional items in
    any state never block completion.
    """
    required = [i for i in items if i.required]
    return bool(required) and all(i.status == "COMPLETED" for i in required)


def evaluate_instance_completion(
    ctx: ChecklistContext,
    instance: ChecklistInstance,
    items: list[ChecklistInstanceItem],
    now: datetime | None = None,
) -> bool:
    """Complete the instance when its required items are all COMPLETED.

    Returns True only when this call moved the instance to COMPLETED.
    """
    if instance.status != "IN_PROGRESS" or not required_items_satisfied(items):
        return False
    if not validate_instance_transition(instance.status, "COMPLETED"):
        return False
    instance.complete(ctx.actor_id, now or datetime.now(timezone.utc))
    logger.info(
        "Checklist instance completed instance_id=%s customer_id=%s tenant_id=%s",
        instance.id, instance.customer_id, ctx.tenant_id,
    )
    return True


def after_complete(
    ctx: ChecklistContext,
    instance: ChecklistInstance,
    item: ChecklistInstanceItem,
    items: list[ChecklistInstanceItem],
) -> CascadeResult:
    by_id, index = _arena(items)
    result = CascadeResult(item_id=item.id, action="complete")
    result.unblocked = _unblock_direct_dependents(item.id, by_id, index)

    if evaluate_instance_completion(ctx, instance, items, item.completed_at):
        result.instance_completed = True
        result.customer_activated = lifecycle_bridge.on_instance_completed(ctx, instance)

    _log(ctx, instance, result)
    return result


def after_skip(
    ctx: ChecklistContext,
    instance: ChecklistInstance,
    item: ChecklistInstanceItem,
    items: list[ChecklistInstanceItem],
) -> CascadeResult:
    by_id, index = _arena(items)
    result = CascadeResult(item_id=item.id, action="skip")
    result.unblocked = _unblock_direct_dependents(item.id, by_id, index)
    _log(ctx, instance, result)
    return result


def after_reopen(
    ctx: ChecklistContext,
    instance: ChecklistInstance,
    item: ChecklistInstanceItem,
    items: list[ChecklistInstanceItem],
    *,
    previous_status: str,
) -> CascadeResult:
    by_id, index = _arena(items)
    result = CascadeResult(item_id=item.id, action="reopen")

    # Only a required item can break "every required item COMPLETED"
    if item.required and previous_status == "COMPLETED" and instance.status == "COMPLETED":
        instance.reopen()
        result.instance_reopened = True

    result.reblocked = _reblock_downstream(item.id, by_id, index)
    _log(ctx, instance, result)
    return result


def _log(ctx: ChecklistContext, instance: ChecklistInstance, result: CascadeResult) -> None:
    logger.debug(
        "Cascade %s item_id=%s instance_id=%s tenant_id=%s unblocked=%s reblocked=%s "
        "instance_completed=%s instance_reopened=%s",
        result.action, result.item_id, instance.id, ctx.tenant_id,
        result.unblocked, result.reblocked,
        result.instance_completed, result.instance_reopened,
    )
