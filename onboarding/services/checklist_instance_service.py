"""
Checklist instance service — instantiation and item transitions.

Entry points (each is one transaction: commit at the end, rollback on error):
    instantiate(ctx, template_id, customer_id)
    instantiate_for_customer(ctx, customer_id)
    complete_item(ctx, item_id, notes=None, document_ref=None)
    skip_item(ctx, item_id, reason=None)
    reopen_item(ctx, item_id)

Every item transition locks the owning instance row first, validates against
the item state machine, mutates the item, then hands over to
checklist_cascade for dependents, instance completion and the lifecycle
bridge. Validation always precedes mutation.

Instantiation copies the template's items in two passes:
    1. allocate a new id per template item, build {template_item_id: new_id}
       and copy the snapshot fields;
    2. resolve every depends_on pointer through that map; items with a
       prerequisite start BLOCKED, the rest PENDING.
Rows are added prerequisites-first so self-referencing foreign keys are
satisfied on flush regardless of the template's declared order.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from onboarding.core.context import ChecklistContext
from onboarding.core.exceptions import (
    CannotSkipRequiredError,
    DuplicateInstanceError,
    InvalidItemTransitionError,
    ItemBlockedError,
    NotFoundError,
    TemplateNotFoundError,
)
from onboarding.models import db
from onboarding.models.checklist import (
    ChecklistInstance,
    ChecklistInstanceItem,
    ChecklistTemplate,
    validate_item_transition,
)
from onboarding.models.base import _uuid
from onboarding.models.customer import Customer
from onboarding.services import checklist_cascade
from onboarding.services.dependency_graph import dependency_edges, topological_order
from onboarding.services.document_resolver import resolve_document
from onboarding.services.helpers.scoped_queries import get_instance_item_scoped, get_scoped

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Instantiation
# ═════════════════════════════════════════════════════════════════════════════


def existing_template_ids(customer_id: str) -> set[str]:
    """Template ids that already have an instance for this customer (any status)."""
    rows = db.session.execute(
        select(ChecklistInstance.template_id).where(ChecklistInstance.customer_id == customer_id)
    ).scalars().all()
    return set(rows)


def _get_active_template(ctx: ChecklistContext, template_id: str) -> ChecklistTemplate:
    try:
        template = get_scoped(ChecklistTemplate, template_id, tenant_id=ctx.tenant_id)
    except NotFoundError:
        raise TemplateNotFoundError(template_id, ctx.tenant_id)
    if not template.active:
        raise TemplateNotFoundError(template_id, ctx.tenant_id)
    return template


def create_instance(
    ctx: ChecklistContext,
    template: ChecklistTemplate,
    customer: Customer,
) -> ChecklistInstance:
    """Build and flush an instance of ``template`` for ``customer``. Does not commit.

    Raises:
        DuplicateInstanceError: The (customer, template) pair already has an instance.
    """
    if template.id in existing_template_ids(customer.id):
        raise DuplicateInstanceError(customer.id, template.id)

    now = datetime.now(timezone.utc)
    instance = ChecklistInstance(
        id=_uuid(),
        tenant_id=ctx.tenant_id,
        template_id=template.id,
        customer_id=customer.id,
        status="IN_PROGRESS",
        started_at=now,
    )

    template_items = list(template.items)

    # Pass 1: new ids + snapshot copy
    id_map: dict[str, str] = {}
    copies: dict[str, ChecklistInstanceItem] = {}
    for seq, t_item in enumerate(template_items):
        new_id = _uuid()
        id_map[t_item.id] = new_id
        copies[t_item.id] = ChecklistInstanceItem(
            id=new_id,
            instance_id=instance.id,
            template_item_id=t_item.id,
            name=t_item.name,
            description=t_item.description,
            sort_order=t_item.sort_order,
            created_seq=seq,
            required=t_item.required,
            requires_document=t_item.requires_document,
            required_document_label=t_item.required_document_label,
            created_at=now,
        )

    # Pass 2: remap dependency pointers
    for t_item in template_items:
        copy = copies[t_item.id]
        if t_item.depends_on_item_id is not None:
            copy.depends_on_item_id = id_map[t_item.depends_on_item_id]
            copy.status = "BLOCKED"
        else:
            copy.depends_on_item_id = None
            copy.status = "PENDING"

    # The unique (customer_id, template_id) constraint catches a racing creator
    # that passed the pre-check above.
    try:
        db.session.add(instance)
        db.session.flush()
        for template_item_id in topological_order(dependency_edges(template_items)):
            db.session.add(copies[template_item_id])
        db.session.flush()
    except IntegrityError:
        raise DuplicateInstanceError(customer.id, template.id)

    logger.info(
        "Checklist instantiated instance_id=%s template_id=%s customer_id=%s tenant_id=%s items=%d",
        instance.id, template.id, customer.id, ctx.tenant_id, len(copies),
    )
    return instance


def instantiate(ctx: ChecklistContext, template_id: str, customer_id: str) -> ChecklistInstance:
    """Create a checklist instance of the template for the customer.

    Raises:
        TemplateNotFoundError: Template missing, in another tenant, or inactive.
        NotFoundError: Customer missing or in another tenant.
        DuplicateInstanceError: An instance already exists for the pair.
    """
    try:
        template = _get_active_template(ctx, template_id)
        customer = get_scoped(Customer, customer_id, tenant_id=ctx.tenant_id)
        instance = create_instance(ctx, template, customer)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return instance


def instantiate_for_customer(ctx: ChecklistContext, customer_id: str) -> list[ChecklistInstance]:
    """Instantiate every matching auto_instantiate template the customer lacks.

    Same behaviour as entering ONBOARDING, usable on demand (e.g. after new
    templates were seeded for customers already onboarding).
    """
    from onboarding.services import lifecycle_bridge

    try:
        created = lifecycle_bridge.on_customer_transitioned_to(ctx, customer_id, "ONBOARDING")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return created


# ═════════════════════════════════════════════════════════════════════════════
# Item transitions
# ═════════════════════════════════════════════════════════════════════════════


def _load_for_transition(ctx: ChecklistContext, item_id: str, action: str):
    """Lock the owning instance and return (instance, item, items).

    Items of a CANCELLED instance accept no transition.
    """
    item = get_instance_item_scoped(item_id, tenant_id=ctx.tenant_id)
    instance = get_scoped(
        ChecklistInstance, item.instance_id, tenant_id=ctx.tenant_id, for_update=True,
    )
    if instance.status == "CANCELLED":
        raise InvalidItemTransitionError(item.id, item.status, action)
    return instance, item, list(instance.items)


def complete_item(
    ctx: ChecklistContext,
    item_id: str,
    notes: str | None = None,
    document_ref: str | None = None,
) -> tuple[ChecklistInstanceItem, checklist_cascade.CascadeResult]:
    """Complete a PENDING item and run the cascade.

    Raises:
        NotFoundError: Item missing or in another tenant.
        ItemBlockedError: Item is BLOCKED.
        InvalidItemTransitionError: Item already COMPLETED/SKIPPED, or instance cancelled.
        DocumentRequiredError: Item requires a document and the ref is missing or unresolvable.
    """
    try:
        instance, item, items = _load_for_transition(ctx, item_id, "complete")

        if item.status == "BLOCKED":
            raise ItemBlockedError(item.id)
        if not validate_item_transition(item.status, "complete"):
            raise InvalidItemTransitionError(item.id, item.status, "complete")
        if item.requires_document:
            resolve_document(ctx, instance.customer_id, document_ref, item_id=item.id)

        item.complete(ctx.actor_id, datetime.now(timezone.utc), notes=notes, document_ref=document_ref)
        result = checklist_cascade.after_complete(ctx, instance, item, items)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Checklist item completed item_id=%s instance_id=%s tenant_id=%s actor=%s",
        item.id, instance.id, ctx.tenant_id, ctx.actor_id,
    )
    return item, result


def skip_item(
    ctx: ChecklistContext,
    item_id: str,
    reason: str | None = None,
) -> tuple[ChecklistInstanceItem, checklist_cascade.CascadeResult]:
    """Skip an optional PENDING or BLOCKED item and unblock its dependents.

    Raises:
        NotFoundError: Item missing or in another tenant.
        CannotSkipRequiredError: Item is required.
        InvalidItemTransitionError: Item already COMPLETED/SKIPPED, or instance cancelled.
    """
    try:
        instance, item, items = _load_for_transition(ctx, item_id, "skip")

        if not validate_item_transition(item.status, "skip"):
            raise InvalidItemTransitionError(item.id, item.status, "skip")
        if item.required:
            raise CannotSkipRequiredError(item.id)

        item.skip(ctx.actor_id, datetime.now(timezone.utc), reason=reason)
        result = checklist_cascade.after_skip(ctx, instance, item, items)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Checklist item skipped item_id=%s instance_id=%s tenant_id=%s actor=%s",
        item.id, instance.id, ctx.tenant_id, ctx.actor_id,
    )
    return item, result


def reopen_item(
    ctx: ChecklistContext,
    item_id: str,
) -> tuple[ChecklistInstanceItem, checklist_cascade.CascadeResult]:
    """Return a COMPLETED or SKIPPED item to PENDING (or BLOCKED) and re-block downstream.

    Raises:
        NotFoundError: Item missing or in another tenant.
        InvalidItemTransitionError: Item is PENDING/BLOCKED, or instance cancelled.
    """
    try:
        instance, item, items = _load_for_transition(ctx, item_id, "reopen")

        if not validate_item_transition(item.status, "reopen"):
            raise InvalidItemTransitionError(item.id, item.status, "reopen")

        previous_status = item.status
        by_id = {i.id: i for i in items}
        item.reopen(blocked=not checklist_cascade.prerequisite_satisfied(item, by_id))
        result = checklist_cascade.after_reopen(
            ctx, instance, item, items, previous_status=previous_status,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Checklist item reopened item_id=%s instance_id=%s tenant_id=%s status=%s",
        item.id, instance.id, ctx.tenant_id, item.status,
    )
    return item, result


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════


def calculate_progress(items: list[ChecklistInstanceItem]) -> dict:
    """Counts for progress display. SKIPPED counts toward total only."""
    required = [i for i in items if i.required]
    return {
        "total": len(items),
        "completed": sum(1 for i in items if i.status == "COMPLETED"),
        "required": len(required),
        "required_completed": sum(1 for i in required if i.status == "COMPLETED"),
    }


def get_instance(ctx: ChecklistContext, instance_id: str) -> dict:
    """Instance with its ordered items and progress."""
    instance = get_scoped(ChecklistInstance, instance_id, tenant_id=ctx.tenant_id)
    return instance.to_dict(include_items=True, progress=calculate_progress(instance.items))


def list_instances_for_customer(ctx: ChecklistContext, customer_id: str) -> list[dict]:
    """All instances of a customer, newest first, each with progress."""
    get_scoped(Customer, customer_id, tenant_id=ctx.tenant_id)
    instances = db.session.execute(
        select(ChecklistInstance)
        .where(
            ChecklistInstance.tenant_id == ctx.tenant_id,
            ChecklistInstance.customer_id == customer_id,
        )
        .order_by(ChecklistInstance.started_at.desc())
    ).scalars().all()
    return [
        i.to_dict(include_items=True, progress=calculate_progress(i.items))
        for i in instances
    ]
