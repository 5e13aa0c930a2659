"""
Checklist template service — create / update / clone / deactivate templates.

Items in a request reference their prerequisite by a client-side key:

    {"name": "KYC", "items": [
        {"key": "id-doc",  "name": "Collect ID",  "requires_document": true},
        {"key": "verify",  "name": "Verify ID",   "depends_on_key": "id-doc"},
    ]}

``key`` defaults to the item's ``id`` (when re-submitting an existing item on
update) and then to its list position; ``depends_on_key`` may also be given
as ``depends_on_item_id``. The full proposed item set is checked by the
dependency graph validator before any row is written. Update replaces all
items; existing instances are unaffected because they hold snapshots.

Slugs are derived from the name and made unique per tenant with -2, -3, ...
"""

from __future__ import annotations

import logging
import re

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from onboarding.core.context import ChecklistContext
from onboarding.core.exceptions import (
    ConflictError,
    NotFoundError,
    TemplateNotFoundError,
    ValidationError,
)
from onboarding.models import db
from onboarding.models.base import _uuid
from onboarding.models.checklist import (
    TEMPLATE_CUSTOMER_TYPES,
    ChecklistTemplate,
    ChecklistTemplateItem,
)
from onboarding.services.dependency_graph import topological_order, validate_dependency_graph
from onboarding.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


def slugify(name: str) -> str:
    slug = _SLUG_STRIP.sub("-", (name or "").lower()).strip("-")
    return slug or "checklist"


def unique_slug(tenant_id: int, base: str, exclude_id: str | None = None) -> str:
    """Return ``base`` or the first free ``base-N`` (N >= 2) in the tenant."""
    stmt = select(ChecklistTemplate.id, ChecklistTemplate.slug).where(
        ChecklistTemplate.tenant_id == tenant_id,
        ChecklistTemplate.slug.like(f"{base}%"),
    )
    taken = {slug for tid, slug in db.session.execute(stmt).all() if tid != exclude_id}
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


def flush_template(template: ChecklistTemplate) -> None:
    """Flush the template row. A slug taken by a concurrent writer becomes a ConflictError."""
    try:
        db.session.flush()
    except IntegrityError as exc:
        if "slug" not in str(exc.orig):
            raise
        raise ConflictError("ChecklistTemplate", "slug", template.slug)


def _item_key(data: dict, position: int):
    key = data.get("key") or data.get("id")
    return str(key) if key is not None else str(position)


def _item_dep_key(data: dict):
    dep = data.get("depends_on_key")
    if dep is None:
        dep = data.get("depends_on_item_id")
    return str(dep) if dep is not None else None


def prepare_items(items_data: list[dict]) -> list[tuple[str, str | None, dict]]:
    """Validate a proposed item list. Returns [(key, dep_key, data), ...].

    Raises:
        ValidationError: Missing item name or duplicate key.
        CrossTemplateDependencyError / DependencyCycleError: Invalid graph.
    """
    if not isinstance(items_data, list):
        raise ValidationError("items must be a list", details={"items": "must be a list"})

    prepared = []
    seen = set()
    for position, data in enumerate(items_data):
        if not isinstance(data, dict):
            raise ValidationError(
                f"Item at position {position} must be an object",
                details={f"items[{position}]": "must be an object"},
            )
        if not str(data.get("name") or "").strip():
            raise ValidationError(
                f"Item at position {position} has no name",
                details={f"items[{position}].name": "required"},
            )
        key = _item_key(data, position)
        if key in seen:
            raise ValidationError(
                f"Duplicate item key {key!r}", details={f"items[{position}].key": "duplicate"},
            )
        seen.add(key)
        prepared.append((key, _item_dep_key(data), data))

    validate_dependency_graph({key: dep for key, dep, _ in prepared})
    return prepared


def write_items(template: ChecklistTemplate, prepared: list[tuple[str, str | None, dict]]) -> list:
    """Insert the template's items, remapping dependency keys to the new row ids.

    Rows are added prerequisites-first so the self-referencing foreign key
    holds at every insert.
    """
    key_to_id = {key: _uuid() for key, _, _ in prepared}
    rows = {}
    for seq, (key, dep_key, data) in enumerate(prepared):
        rows[key] = ChecklistTemplateItem(
            id=key_to_id[key],
            template_id=template.id,
            name=str(data["name"]).strip(),
            description=data.get("description", ""),
            sort_order=data.get("sort_order", seq),
            created_seq=seq,
            required=bool(data.get("required", True)),
            requires_document=bool(data.get("requires_document", False)),
            required_document_label=data.get("required_document_label"),
            depends_on_item_id=key_to_id[dep_key] if dep_key is not None else None,
        )

    ordered = topological_order({key: dep for key, dep, _ in prepared})
    for key in ordered:
        db.session.add(rows[key])
    db.session.flush()
    db.session.expire(template, ["items"])
    return [rows[key] for key, _, _ in prepared]


def _validate_template_fields(data: dict, partial: bool = False) -> None:
    if not partial or "name" in data:
        if not (data.get("name") or "").strip():
            raise ValidationError("name is required", details={"name": "required"})
    if "customer_type" in data and data["customer_type"] not in TEMPLATE_CUSTOMER_TYPES:
        raise ValidationError(
            f"customer_type must be one of {sorted(TEMPLATE_CUSTOMER_TYPES)}",
            details={"customer_type": data["customer_type"]},
        )


# ═════════════════════════════════════════════════════════════════════════════
# Commands
# ═════════════════════════════════════════════════════════════════════════════


def create_template(ctx: ChecklistContext, data: dict) -> ChecklistTemplate:
    """Create an ORG_CUSTOM template with its items."""
    _validate_template_fields(data)
    prepared = prepare_items(data.get("items", []))

    try:
        name = data["name"].strip()
        template = ChecklistTemplate(
            id=_uuid(),
            tenant_id=ctx.tenant_id,
            name=name,
            slug=unique_slug(ctx.tenant_id, slugify(data.get("slug") or name)),
            description=data.get("description", ""),
            customer_type=data.get("customer_type", "ANY"),
            source="ORG_CUSTOM",
            auto_instantiate=bool(data.get("auto_instantiate", False)),
            sort_order=data.get("sort_order", 0),
            active=True,
        )
        db.session.add(template)
        flush_template(template)
        write_items(template, prepared)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Checklist template created template_id=%s slug=%s tenant_id=%s items=%d",
        template.id, template.slug, ctx.tenant_id, len(prepared),
    )
    return template


def update_template(ctx: ChecklistContext, template_id: str, data: dict) -> ChecklistTemplate:
    """Update template fields; when ``items`` is present, replace all items."""
    template = get_template(ctx, template_id, active_only=False)
    _validate_template_fields(data, partial=True)
    prepared = prepare_items(data["items"]) if "items" in data else None

    try:
        if "name" in data:
            template.name = data["name"].strip()
            template.slug = unique_slug(ctx.tenant_id, slugify(template.name), exclude_id=template.id)
        for field in ("description", "customer_type", "sort_order"):
            if field in data:
                setattr(template, field, data[field])
        if "auto_instantiate" in data:
            template.auto_instantiate = bool(data["auto_instantiate"])
        flush_template(template)

        if prepared is not None:
            for old in list(template.items):
                db.session.delete(old)
            db.session.flush()
            write_items(template, prepared)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Checklist template updated template_id=%s tenant_id=%s", template.id, ctx.tenant_id)
    return template


def clone_template(ctx: ChecklistContext, template_id: str, name: str | None = None) -> ChecklistTemplate:
    """Copy a template (typically PLATFORM) into an editable ORG_CUSTOM one."""
    source = get_template(ctx, template_id, active_only=False)
    prepared = prepare_items([
        {
            "key": item.id,
            "depends_on_key": item.depends_on_item_id,
            "name": item.name,
            "description": item.description,
            "sort_order": item.sort_order,
            "required": item.required,
            "requires_document": item.requires_document,
            "required_document_label": item.required_document_label,
        }
        for item in source.items
    ])

    try:
        clone = ChecklistTemplate(
            id=_uuid(),
            tenant_id=ctx.tenant_id,
            name=name or f"{source.name} (Custom)",
            slug=unique_slug(ctx.tenant_id, f"{source.slug}-custom"),
            description=source.description,
            customer_type=source.customer_type,
            source="ORG_CUSTOM",
            auto_instantiate=source.auto_instantiate,
            sort_order=source.sort_order,
            active=True,
        )
        db.session.add(clone)
        flush_template(clone)
        write_items(clone, prepared)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Checklist template cloned source_id=%s clone_id=%s tenant_id=%s",
        source.id, clone.id, ctx.tenant_id,
    )
    return clone


def deactivate_template(ctx: ChecklistContext, template_id: str) -> ChecklistTemplate:
    """Soft delete. Existing instances keep running; no new ones can be created."""
    template = get_template(ctx, template_id, active_only=False)
    template.active = False
    db.session.commit()
    logger.info("Checklist template deactivated template_id=%s tenant_id=%s", template.id, ctx.tenant_id)
    return template


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════


def get_template(ctx: ChecklistContext, template_id: str, active_only: bool = True) -> ChecklistTemplate:
    try:
        template = get_scoped(ChecklistTemplate, template_id, tenant_id=ctx.tenant_id)
    except NotFoundError:
        raise TemplateNotFoundError(template_id, ctx.tenant_id)
    if active_only and not template.active:
        raise TemplateNotFoundError(template_id, ctx.tenant_id)
    return template


def list_templates(ctx: ChecklistContext, active_only: bool = True, customer_type: str | None = None):
    """Query of the tenant's templates ordered by sort_order, name. Caller paginates."""
    query = ChecklistTemplate.query_for_tenant(ctx.tenant_id)
    if active_only:
        query = query.filter(ChecklistTemplate.active.is_(True))
    if customer_type:
        query = query.filter(ChecklistTemplate.customer_type == customer_type)
    return query.order_by(ChecklistTemplate.sort_order, ChecklistTemplate.name)


def find_auto_instantiate_templates(ctx: ChecklistContext, customer_type: str) -> list[ChecklistTemplate]:
    """Active auto_instantiate templates for the customer type or ANY."""
    return db.session.execute(
        select(ChecklistTemplate)
        .where(
            ChecklistTemplate.tenant_id == ctx.tenant_id,
            ChecklistTemplate.active.is_(True),
            ChecklistTemplate.auto_instantiate.is_(True),
            ChecklistTemplate.customer_type.in_([customer_type, "ANY"]),
        )
        .order_by(ChecklistTemplate.sort_order, ChecklistTemplate.created_at)
    ).scalars().all()
