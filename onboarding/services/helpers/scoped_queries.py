"""
Tenant-scoped query helpers.

Every get-by-id in the checklist services MUST use these helpers instead of
Model.query.get(pk) or db.session.get(Model, pk). Direct .get() calls bypass
tenant isolation.

Usage:
    # Scope by tenant_id (TenantModel subclasses)
    template = get_scoped(ChecklistTemplate, template_id, tenant_id=tenant_id)

    # Scope by parent (child tables without their own tenant_id)
    item = get_scoped(ChecklistTemplateItem, item_id, template_id=template_id)

    # Instance items are reached through their instance's tenant
    item = get_instance_item_scoped(item_id, tenant_id=tenant_id)

    # When None is an acceptable outcome
    customer = get_scoped_or_none(Customer, customer_id, tenant_id=tenant_id)

Scope field resolution:
    Each keyword argument maps directly to a column name on the model.
    If the model does not have that column, a ValueError is raised at
    call time so the bug surfaces immediately during development/testing
    rather than silently allowing unscoped access in production.
"""

import logging

from sqlalchemy import select

from onboarding.core.exceptions import NotFoundError
from onboarding.models import db

logger = logging.getLogger(__name__)


def get_scoped(
    model,
    pk,
    *,
    tenant_id: int | None = None,
    template_id: str | None = None,
    instance_id: str | None = None,
    customer_id: str | None = None,
    for_update: bool = False,
):
    """Fetch a single entity by PK with mandatory scope filter.

    At least one scope parameter MUST be provided and MUST correspond to a
    column that actually exists on the model. Cross-tenant access is
    indistinguishable from a missing record: both raise NotFoundError.

    Args:
        model: SQLAlchemy model class with an `id` PK column.
        pk: Primary key value to look up.
        tenant_id: Scope by tenant_id column.
        template_id: Scope by template_id column.
        instance_id: Scope by instance_id column.
        customer_id: Scope by customer_id column.
        for_update: Lock the row (SELECT ... FOR UPDATE) for the rest of the transaction.

    Returns:
        The model instance if found within the given scope.

    Raises:
        ValueError: If no scope parameter is provided, or no provided scope
                    field exists as a column on the model.
        NotFoundError: If the entity does not exist OR belongs to a different scope.
    """
    provided_scopes = {
        "tenant_id": tenant_id,
        "template_id": template_id,
        "instance_id": instance_id,
        "customer_id": customer_id,
    }
    provided_scopes = {k: v for k, v in provided_scopes.items() if v is not None}

    if not provided_scopes:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter "
            "(tenant_id, template_id, instance_id, or customer_id). "
            "Unscoped lookups are forbidden — they bypass tenant isolation."
        )

    applicable_scopes = {
        field: value
        for field, value in provided_scopes.items()
        if hasattr(model, field)
    }

    missing_fields = set(provided_scopes) - set(applicable_scopes)
    if missing_fields:
        logger.warning(
            "get_scoped(%s, %s): scope field(s) %s not found on model — "
            "those filters were NOT applied.",
            model.__name__,
            pk,
            sorted(missing_fields),
        )

    if not applicable_scopes:
        raise ValueError(
            f"{model.__name__} id={pk}: no applicable scope — "
            f"none of the provided scope fields {sorted(provided_scopes)} "
            f"exist as columns on {model.__name__}. "
            "Refusing to perform an unscoped lookup."
        )

    stmt = select(model).where(model.id == pk)
    for field, value in applicable_scopes.items():
        stmt = stmt.where(getattr(model, field) == value)
    if for_update:
        stmt = stmt.with_for_update()

    result = db.session.execute(stmt).scalar_one_or_none()

    if result is None:
        logger.debug(
            "get_scoped: %s id=%s not found in scope %s",
            model.__name__,
            pk,
            applicable_scopes,
        )
        raise NotFoundError(resource=model.__name__, resource_id=pk)

    return result


def get_scoped_or_none(model, pk, **scopes):
    """Same as get_scoped but returns None instead of raising NotFoundError.

    Still enforces the scope parameter requirement (raises ValueError if no
    scope is provided or if no scope field exists on the model).
    """
    try:
        return get_scoped(model, pk, **scopes)
    except NotFoundError:
        return None


def get_instance_item_scoped(item_id, *, tenant_id: int):
    """Fetch a ChecklistInstanceItem whose owning instance belongs to tenant_id.

    Instance items carry no tenant_id of their own; the scope is enforced
    through a join on checklist_instances.

    Raises:
        NotFoundError: If the item does not exist or belongs to another tenant.
    """
    from onboarding.models.checklist import ChecklistInstance, ChecklistInstanceItem

    if tenant_id is None:
        raise ValueError(
            f"ChecklistInstanceItem id={item_id} requires tenant_id. "
            "Unscoped lookups are forbidden — they bypass tenant isolation."
        )

    stmt = (
        select(ChecklistInstanceItem)
        .join(ChecklistInstance, ChecklistInstanceItem.instance_id == ChecklistInstance.id)
        .where(
            ChecklistInstanceItem.id == item_id,
            ChecklistInstance.tenant_id == tenant_id,
        )
    )
    item = db.session.execute(stmt).scalar_one_or_none()
    if item is None:
        raise NotFoundError(resource="ChecklistInstanceItem", resource_id=item_id)
    return item
