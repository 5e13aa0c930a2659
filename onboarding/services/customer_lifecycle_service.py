"""
Customer lifecycle service.

Owns the Customer.lifecycle_status state machine (LIFECYCLE_TRANSITIONS in
models/customer.py). Two layers:

    apply_transition()     validate + mutate one customer, no commit. Used by
                           the lifecycle bridge inside a checklist transaction.
    transition_customer()  public entry point: apply, then let the lifecycle
                           bridge react (auto-instantiate on ONBOARDING, cancel
                           on OFFBOARDED), then commit everything at once.

ONBOARDING → ACTIVE is additionally guarded: it is refused while any
checklist instance of the customer is still IN_PROGRESS.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from onboarding.core.context import ChecklistContext
from onboarding.core.exceptions import InvalidLifecycleTransitionError, ValidationError
from onboarding.models import db
from onboarding.models.customer import (
    CUSTOMER_TYPES,
    Customer,
    CustomerDocument,
    validate_lifecycle_transition,
)
from onboarding.services import lifecycle_bridge
from onboarding.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


def apply_transition(
    ctx: ChecklistContext,
    customer: Customer,
    target: str,
    notes: str | None = None,
) -> Customer:
    """Move the customer to ``target``. Flushes nothing, commits nothing.

    Raises:
        InvalidLifecycleTransitionError: Transition not in the table, or
            ONBOARDING → ACTIVE while onboarding checklists are in progress.
    """
    old_status = customer.lifecycle_status
    if not validate_lifecycle_transition(old_status, target):
        raise InvalidLifecycleTransitionError(customer.id, old_status, target)

    if old_status == "ONBOARDING" and target == "ACTIVE":
        if lifecycle_bridge.count_in_progress_instances(customer.id) > 0:
            raise InvalidLifecycleTransitionError(
                customer.id, old_status, target, reason="Onboarding incomplete",
            )

    now = datetime.now(timezone.utc)
    customer.lifecycle_status = target
    customer.lifecycle_status_changed_at = now
    customer.lifecycle_status_changed_by = ctx.actor_id
    if target == "OFFBOARDED":
        customer.offboarded_at = now
    elif old_status == "OFFBOARDED":
        customer.offboarded_at = None

    logger.info(
        "Customer lifecycle %s -> %s customer_id=%s tenant_id=%s actor=%s%s",
        old_status, target, customer.id, ctx.tenant_id, ctx.actor_id,
        f" notes={notes!r}" if notes else "",
    )
    return customer


def transition_customer(
    ctx: ChecklistContext,
    customer_id: str,
    target: str,
    notes: str | None = None,
) -> tuple[Customer, list]:
    """Transition a customer and run the checklist reactions in one transaction.

    Returns:
        (customer, instances created by auto-instantiation)
    """
    try:
        customer = get_scoped(Customer, customer_id, tenant_id=ctx.tenant_id, for_update=True)
        apply_transition(ctx, customer, target, notes=notes)
        db.session.flush()
        created = lifecycle_bridge.on_customer_transitioned_to(ctx, customer.id, target)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return customer, created


def create_customer(ctx: ChecklistContext, data: dict) -> Customer:
    """Create a PROSPECT customer.

    Args:
        data: {"name": str, "email": str, "customer_type": "INDIVIDUAL"|"COMPANY"}
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})

    customer_type = data.get("customer_type", "INDIVIDUAL")
    if customer_type not in CUSTOMER_TYPES:
        raise ValidationError(
            f"customer_type must be one of {sorted(CUSTOMER_TYPES)}",
            details={"customer_type": customer_type},
        )

    customer = Customer(
        tenant_id=ctx.tenant_id,
        name=name,
        email=data.get("email", ""),
        customer_type=customer_type,
        lifecycle_status="PROSPECT",
    )
    db.session.add(customer)
    db.session.commit()
    logger.info("Customer created customer_id=%s tenant_id=%s", customer.id, ctx.tenant_id)
    return customer


def get_customer(ctx: ChecklistContext, customer_id: str) -> Customer:
    return get_scoped(Customer, customer_id, tenant_id=ctx.tenant_id)


def add_document(ctx: ChecklistContext, customer_id: str, file_name: str) -> CustomerDocument:
    """Register an uploaded document for the customer (storage is external)."""
    customer = get_scoped(Customer, customer_id, tenant_id=ctx.tenant_id)
    if not file_name:
        raise ValidationError("file_name is required", details={"file_name": "required"})
    document = CustomerDocument(
        tenant_id=ctx.tenant_id, customer_id=customer.id, file_name=file_name,
    )
    db.session.add(document)
    db.session.commit()
    return document
