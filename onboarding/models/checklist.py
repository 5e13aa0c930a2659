"""
Customer Onboarding Checklists
Checklist domain models.

Models:
    - ChecklistTemplate:       tenant-level reusable checklist definition
    - ChecklistTemplateItem:   ordered step of a template, optionally gated on another step
    - ChecklistInstance:       a template's copy bound to one customer (the unit progressed)
    - ChecklistInstanceItem:   snapshot of a template item inside one instance

Architecture:
    Tenant ──1:N──▶ ChecklistTemplate ──1:N──▶ ChecklistTemplateItem
    ChecklistTemplateItem ──N:1──▶ ChecklistTemplateItem   (depends_on_item_id, same template)
    Customer ──1:N──▶ ChecklistInstance ──1:N──▶ ChecklistInstanceItem
    ChecklistInstanceItem ──N:1──▶ ChecklistInstanceItem   (depends_on_item_id, same instance)

    An instance keeps only the template id; later template edits never reach
    existing instances.

Lifecycle states:
    ChecklistInstance:      IN_PROGRESS → COMPLETED → IN_PROGRESS (reopen)
                            IN_PROGRESS → CANCELLED (customer offboarded)
    ChecklistInstanceItem:  PENDING | BLOCKED → COMPLETED | SKIPPED → PENDING | BLOCKED
"""

from onboarding.models import db
from onboarding.models.base import TenantModel, _utcnow, _uuid, iso


# ── Constants ────────────────────────────────────────────────────────────────

TEMPLATE_CUSTOMER_TYPES = {"INDIVIDUAL", "COMPANY", "ANY"}

TEMPLATE_SOURCES = {"PLATFORM", "ORG_CUSTOM"}

INSTANCE_STATUSES = {"IN_PROGRESS", "COMPLETED", "CANCELLED"}

ITEM_STATUSES = {"PENDING", "BLOCKED", "COMPLETED", "SKIPPED"}

# Statuses that satisfy a dependent item's prerequisite.
SATISFYING_STATUSES = {"COMPLETED", "SKIPPED"}


# ── Lifecycle Transition Guards ──────────────────────────────────────────────

# action -> statuses the action may start from
ITEM_TRANSITIONS = {
    "complete": ["PENDING"],
    "skip":     ["PENDING", "BLOCKED"],
    "reopen":   ["COMPLETED", "SKIPPED"],
}

INSTANCE_TRANSITIONS = {
    "IN_PROGRESS": ["COMPLETED", "CANCELLED"],
    "COMPLETED":   ["IN_PROGRESS"],
    "CANCELLED":   [],
}


def validate_item_transition(old_status, action):
    """Return True if the item action is allowed from old_status."""
    return old_status in ITEM_TRANSITIONS.get(action, [])


def validate_instance_transition(old_status, new_status):
    """Return True if ChecklistInstance status transition is valid."""
    return new_status in INSTANCE_TRANSITIONS.get(old_status, [])


# ═════════════════════════════════════════════════════════════════════════════
# 1. ChecklistTemplate
# ═════════════════════════════════════════════════════════════════════════════


class ChecklistTemplate(TenantModel):
    """
    Reusable checklist definition. Soft-deleted via active=False.
    Slug is unique per tenant and derived from the name in the service layer.
    """

    __tablename__ = "checklist_templates"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(220), nullable=False)
    description = db.Column(db.Text, default="")
    customer_type = db.Column(
        db.String(20), nullable=False, default="ANY",
        comment="INDIVIDUAL | COMPANY | ANY",
    )
    source = db.Column(
        db.String(20), nullable=False, default="ORG_CUSTOM",
        comment="PLATFORM (seeded from a compliance pack) | ORG_CUSTOM",
    )
    pack_id = db.Column(db.String(100), nullable=True, index=True)
    pack_template_key = db.Column(db.String(100), nullable=True)
    auto_instantiate = db.Column(db.Boolean, nullable=False, default=False)
    active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "slug", name="uq_checklist_template_tenant_slug"),
        db.CheckConstraint(
            "customer_type IN ('INDIVIDUAL','COMPANY','ANY')",
            name="ck_checklist_template_customer_type",
        ),
        db.CheckConstraint(
            "source IN ('PLATFORM','ORG_CUSTOM')",
            name="ck_checklist_template_source",
        ),
    )

    items = db.relationship(
        "ChecklistTemplateItem", backref="template", lazy="select",
        cascade="all, delete-orphan",
        order_by="(ChecklistTemplateItem.sort_order, ChecklistTemplateItem.created_seq)",
    )

    def to_dict(self, include_items=False):
        result = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "customer_type": self.customer_type,
            "source": self.source,
            "pack_id": self.pack_id,
            "pack_template_key": self.pack_template_key,
            "auto_instantiate": self.auto_instantiate,
            "active": self.active,
            "sort_order": self.sort_order,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_items:
            result["items"] = [i.to_dict() for i in self.items]
        return result

    def __repr__(self):
        return f"<ChecklistTemplate {self.id}: {self.slug}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. ChecklistTemplateItem
# ═════════════════════════════════════════════════════════════════════════════


class ChecklistTemplateItem(db.Model):
    __tablename__ = "checklist_template_items"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    template_id = db.Column(
        db.String(36), db.ForeignKey("checklist_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_seq = db.Column(
        db.Integer, nullable=False, default=0,
        comment="Position in the submitted item list, tie-breaker for sort_order",
    )
    required = db.Column(db.Boolean, nullable=False, default=True)
    requires_document = db.Column(db.Boolean, nullable=False, default=False)
    required_document_label = db.Column(db.String(200), nullable=True)
    depends_on_item_id = db.Column(
        db.String(36),
        db.ForeignKey("checklist_template_items.id", ondelete="SET NULL"),
        nullable=True,
        comment="Prerequisite item of the same template",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "depends_on_item_id IS NULL OR depends_on_item_id != id",
            name="ck_template_item_no_self_dep",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "template_id": self.template_id,
            "name": self.name,
            "description": self.description,
            "sort_order": self.sort_order,
            "required": self.required,
            "requires_document": self.requires_document,
            "required_document_label": self.required_document_label,
            "depends_on_item_id": self.depends_on_item_id,
        }

    def __repr__(self):
        return f"<ChecklistTemplateItem {self.id}: {self.name[:40]}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. ChecklistInstance
# ═════════════════════════════════════════════════════════════════════════════


class ChecklistInstance(TenantModel):
    """
    A template instantiated for one customer.
    At most one instance per (customer, template) — enforced by unique constraint.
    """

    __tablename__ = "checklist_instances"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    template_id = db.Column(
        db.String(36), db.ForeignKey("checklist_templates.id"),
        nullable=False, index=True,
    )
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    status = db.Column(
        db.String(20), nullable=False, default="IN_PROGRESS",
        comment="IN_PROGRESS | COMPLETED | CANCELLED",
    )
    started_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(db.String(100), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("customer_id", "template_id", name="uq_checklist_instance_customer_template"),
        db.CheckConstraint(
            "status IN ('IN_PROGRESS','COMPLETED','CANCELLED')",
            name="ck_checklist_instance_status",
        ),
    )

    items = db.relationship(
        "ChecklistInstanceItem", backref="instance", lazy="select",
        cascade="all, delete-orphan",
        order_by="(ChecklistInstanceItem.sort_order, ChecklistInstanceItem.created_seq)",
    )

    def complete(self, completed_by, now):
        self.status = "COMPLETED"
        self.completed_at = now
        self.completed_by = completed_by

    def reopen(self):
        self.status = "IN_PROGRESS"
        self.completed_at = None
        self.completed_by = None

    def to_dict(self, include_items=False, progress=None):
        result = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "template_id": self.template_id,
            "customer_id": self.customer_id,
            "status": self.status,
            "started_at": iso(self.started_at),
            "completed_at": iso(self.completed_at),
            "completed_by": self.completed_by,
        }
        if progress is not None:
            result["progress"] = progress
        if include_items:
            result["items"] = [i.to_dict() for i in self.items]
        return result

    def __repr__(self):
        return f"<ChecklistInstance {self.id}: customer={self.customer_id} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 4. ChecklistInstanceItem
# ═════════════════════════════════════════════════════════════════════════════


class ChecklistInstanceItem(db.Model):
    """
    Per-instance copy of a template item. depends_on_item_id points to another
    ChecklistInstanceItem of the same instance, never to a template item.
    """

    __tablename__ = "checklist_instance_items"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    instance_id = db.Column(
        db.String(36), db.ForeignKey("checklist_instances.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    template_item_id = db.Column(
        db.String(36), nullable=True,
        comment="Provenance only, not a foreign key: template items may be replaced",
    )

    # Snapshot of the template item at instantiation time
    name = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_seq = db.Column(db.Integer, nullable=False, default=0)
    required = db.Column(db.Boolean, nullable=False, default=True)
    requires_document = db.Column(db.Boolean, nullable=False, default=False)
    required_document_label = db.Column(db.String(200), nullable=True)

    status = db.Column(
        db.String(20), nullable=False,
        comment="PENDING | BLOCKED | COMPLETED | SKIPPED",
    )
    depends_on_item_id = db.Column(
        db.String(36),
        db.ForeignKey("checklist_instance_items.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )

    # Completion metadata
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    document_ref = db.Column(db.String(36), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('PENDING','BLOCKED','COMPLETED','SKIPPED')",
            name="ck_checklist_instance_item_status",
        ),
    )

    def complete(self, completed_by, now, notes=None, document_ref=None):
        self.status = "COMPLETED"
        self.completed_at = now
        self.completed_by = completed_by
        self.notes = notes
        self.document_ref = document_ref

    def skip(self, skipped_by, now, reason=None):
        self.status = "SKIPPED"
        self.completed_at = now
        self.completed_by = skipped_by
        self.notes = reason

    def reopen(self, blocked):
        self.status = "BLOCKED" if blocked else "PENDING"
        self.completed_at = None
        self.completed_by = None
        self.notes = None
        self.document_ref = None

    def to_dict(self):
        return {
            "id": self.id,
            "instance_id": self.instance_id,
            "template_item_id": self.template_item_id,
            "name": self.name,
            "description": self.description,
            "sort_order": self.sort_order,
            "required": self.required,
            "requires_document": self.requires_document,
            "required_document_label": self.required_document_label,
            "status": self.status,
            "depends_on_item_id": self.depends_on_item_id,
            "completed_at": iso(self.completed_at),
            "completed_by": self.completed_by,
            "notes": self.notes,
            "document_ref": self.document_ref,
        }

    def __repr__(self):
        return f"<ChecklistInstanceItem {self.id}: {self.name[:40]} [{self.status}]>"
