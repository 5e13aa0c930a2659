"""
Lifecycle bridge — keeps customer lifecycle status and checklist completion consistent.

Two directions:
    checklist → customer   on_instance_completed(): when the last in-progress
                           instance of an ONBOARDING customer completes, request
                           ONBOARDING → ACTIVE from the customer lifecycle service.
                           A refusal is logged and swallowed; it never fails the
                           item completion that triggered it.
    customer → checklist   on_customer_transitioned_to(): entering ONBOARDING
                           auto-instantiates every matching auto_instantiate
                           template; reaching OFFBOARDED cancels in-progress
                           instances.

Both run synchronously inside the caller's transaction. Nothing here commits.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import func, select

from onboarding.core.context import ChecklistContext
from onboarding.core.exceptions import InvalidLifecycleTransitionError
from onboarding.models import db
from onboarding.models.checklist import ChecklistInstance
from onboarding.models.customer import Customer
from onboarding.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


def count_in_progress_instances(customer_id: str) -> int:
    return db.session.execute(
        select(func.count(ChecklistInstance.id)).where(
            ChecklistInstance.customer_id == customer_id,
            ChecklistInstance.status == "IN_PROGRESS",
        )
    ).scalar() or 0


def on_instance_completed(ctx: ChecklistContext, instance: ChecklistInstance) -> bool:
    """Request ONBOARDING → ACTIVE when no instance of the customer is still in progress.

    Returns True when the customer was advanced.
    """
    from onboarding.services import customer_lifecycle_service

    if not current_app.config.get("CHECKLIST_AUTO_ADVANCE_CUSTOMER", True):
        return False

    customer = get_scoped(Customer, instance.customer_id, tenant_id=ctx.tenant_id)
    if customer.lifecycle_status != "ONBOARDING":
        return False

    if count_in_progress_instances(customer.id) > 0:
        return False

    try:
        customer_lifecycle_service.apply_transition(
            ctx, customer, "ACTIVE", notes="All onboarding checklists completed",
        )
    except InvalidLifecycleTransitionError as exc:
        logger.warning(
            "Auto-advance to ACTIVE rejected customer_id=%s tenant_id=%s: %s",
            customer.id, ctx.tenant_id, exc,
        )
        return False

    logger.info(
        "Customer auto-transitioned to ACTIVE customer_id=%s tenant_id=%s",
        customer.id, ctx.tenant_id,
    )
    return True


def on_customer_transitioned_to(
    ctx: ChecklistContext,
    customer_id: str,
    new_status: str,
) -> list[ChecklistInstance]:
    """React to a customer lifecycle change.

    ONBOARDING: instantiate every active auto_instantiate template whose
    customer_type matches (or is ANY). Pairs that already have an instance are
    skipped, so re-running the same event never double-creates. Each template
    runs in its own SAVEPOINT; one failing template is logged and the rest
    are still attempted.

    OFFBOARDED: cancel the customer's in-progress instances.

    Returns the instances created by this call (empty for other statuses).
    """
    from onboarding.services import checklist_instance_service, checklist_template_service

    customer = get_scoped(Customer, customer_id, tenant_id=ctx.tenant_id)

    if new_status == "OFFBOARDED":
        cancel_active_instances(ctx, customer.id)
        return []

    if new_status != "ONBOARDING":
        return []

    templates = checklist_template_service.find_auto_instantiate_templates(
        ctx, customer.customer_type,
    )
    existing = checklist_instance_service.existing_template_ids(customer.id)

    created = []
    for template in templates:
        if template.id in existing:
            logger.debug(
                "Auto-instantiate skipped (exists) customer_id=%s template_id=%s",
                customer.id, template.id,
            )
            continue
        try:
            with db.session.begin_nested():
                instance = checklist_instance_service.create_instance(ctx, template, customer)
        except Exception:
            logger.exception(
                "Auto-instantiate failed customer_id=%s template_id=%s",
                customer.id, template.id,
            )
            continue
        created.append(instance)

    logger.info(
        "Auto-instantiated %d checklist(s) customer_id=%s tenant_id=%s",
        len(created), customer.id, ctx.tenant_id,
    )
    return created


def cancel_active_instances(ctx: ChecklistContext, customer_id: str) -> int:
    """Set every IN_PROGRESS instance of the customer to CANCELLED. Returns the count."""
    instances = db.session.execute(
        select(ChecklistInstance)
        .where(
            ChecklistInstance.tenant_id == ctx.tenant_id,
            ChecklistInstance.customer_id == customer_id,
            ChecklistInstance.status == "IN_PROGRESS",
        )
        .with_for_update()
    ).scalars().all()

    for instance in instances:
        instance.status = "CANCELLED"

    if instances:
        logger.info(
            "Cancelled %d checklist instance(s) customer_id=%s tenant_id=%s",
            len(instances), customer_id, ctx.tenant_id,
        )
    return len(instances)
