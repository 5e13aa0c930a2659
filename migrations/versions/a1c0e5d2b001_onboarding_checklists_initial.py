"""onboarding_checklists_initial

Creates the onboarding checklist schema:
  - tenants
  - customers, customer_documents
  - checklist_templates, checklist_template_items
  - checklist_instances, checklist_instance_items

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via
db.create_all() in a development environment.

Revision ID: a1c0e5d2b001
Revises:
Create Date: 2026-10-17 09:12:40.118204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1c0e5d2b001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Tenant ────────────────────────────────────────────────────────────
    if "tenants" not in existing:
        op.create_table(
            "tenants",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug"),
        )

    # ── Customer ──────────────────────────────────────────────────────────
    if "customers" not in existing:
        op.create_table(
            "customers",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("customer_type", sa.String(length=20), nullable=False,
                      comment="INDIVIDUAL | COMPANY"),
            sa.Column("lifecycle_status", sa.String(length=20), nullable=False,
                      comment="PROSPECT | ONBOARDING | ACTIVE | DORMANT | OFFBOARDING | OFFBOARDED"),
            sa.Column("lifecycle_status_changed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("lifecycle_status_changed_by", sa.String(length=100), nullable=True),
            sa.Column("offboarded_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.CheckConstraint("customer_type IN ('INDIVIDUAL','COMPANY')", name="ck_customer_type"),
            sa.CheckConstraint(
                "lifecycle_status IN ('PROSPECT','ONBOARDING','ACTIVE',"
                "'DORMANT','OFFBOARDING','OFFBOARDED')",
                name="ck_customer_lifecycle_status",
            ),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_customers_tenant_id", "customers", ["tenant_id"])

    if "customer_documents" not in existing:
        op.create_table(
            "customer_documents",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("customer_id", sa.String(length=36), nullable=False),
            sa.Column("file_name", sa.String(length=255), nullable=False),
            sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_customer_documents_tenant_id", "customer_documents", ["tenant_id"])
        op.create_index("ix_customer_documents_customer_id", "customer_documents", ["customer_id"])

    # ── ChecklistTemplate ─────────────────────────────────────────────────
    if "checklist_templates" not in existing:
        op.create_table(
            "checklist_templates",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=220), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("customer_type", sa.String(length=20), nullable=False,
                      comment="INDIVIDUAL | COMPANY | ANY"),
            sa.Column("source", sa.String(length=20), nullable=False,
                      comment="PLATFORM (seeded from a compliance pack) | ORG_CUSTOM"),
            sa.Column("pack_id", sa.String(length=100), nullable=True),
            sa.Column("pack_template_key", sa.String(length=100), nullable=True),
            sa.Column("auto_instantiate", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.CheckConstraint(
                "customer_type IN ('INDIVIDUAL','COMPANY','ANY')",
                name="ck_checklist_template_customer_type",
            ),
            sa.CheckConstraint("source IN ('PLATFORM','ORG_CUSTOM')", name="ck_checklist_template_source"),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", "slug", name="uq_checklist_template_tenant_slug"),
        )
        op.create_index("ix_checklist_templates_tenant_id", "checklist_templates", ["tenant_id"])
        op.create_index("ix_checklist_templates_pack_id", "checklist_templates", ["pack_id"])

    if "checklist_template_items" not in existing:
        op.create_table(
            "checklist_template_items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("template_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_seq", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("requires_document", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("required_document_label", sa.String(length=200), nullable=True),
            sa.Column("depends_on_item_id", sa.String(length=36), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint(
                "depends_on_item_id IS NULL OR depends_on_item_id != id",
                name="ck_template_item_no_self_dep",
            ),
            sa.ForeignKeyConstraint(["template_id"], ["checklist_templates.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(
                ["depends_on_item_id"], ["checklist_template_items.id"], ondelete="SET NULL",
            ),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_checklist_template_items_template_id", "checklist_template_items", ["template_id"])

    # ── ChecklistInstance ─────────────────────────────────────────────────
    if "checklist_instances" not in existing:
        op.create_table(
            "checklist_instances",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.String(length=36), nullable=False),
            sa.Column("customer_id", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False,
                      comment="IN_PROGRESS | COMPLETED | CANCELLED"),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_by", sa.String(length=100), nullable=True),
            sa.CheckConstraint(
                "status IN ('IN_PROGRESS','COMPLETED','CANCELLED')",
                name="ck_checklist_instance_status",
            ),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["template_id"], ["checklist_templates.id"]),
            sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("customer_id", "template_id", name="uq_checklist_instance_customer_template"),
        )
        op.create_index("ix_checklist_instances_tenant_id", "checklist_instances", ["tenant_id"])
        op.create_index("ix_checklist_instances_template_id", "checklist_instances", ["template_id"])
        op.create_index("ix_checklist_instances_customer_id", "checklist_instances", ["customer_id"])

    if "checklist_instance_items" not in existing:
        op.create_table(
            "checklist_instance_items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("instance_id", sa.String(length=36), nullable=False),
            sa.Column("template_item_id", sa.String(length=36), nullable=True),
            sa.Column("name", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_seq", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("requires_document", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("required_document_label", sa.String(length=200), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False,
                      comment="PENDING | BLOCKED | COMPLETED | SKIPPED"),
            sa.Column("depends_on_item_id", sa.String(length=36), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_by", sa.String(length=100), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("document_ref", sa.String(length=36), nullable=True),
            *_timestamps(),
            sa.CheckConstraint(
                "status IN ('PENDING','BLOCKED','COMPLETED','SKIPPED')",
                name="ck_checklist_instance_item_status",
            ),
            sa.ForeignKeyConstraint(["instance_id"], ["checklist_instances.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(
                ["depends_on_item_id"], ["checklist_instance_items.id"], ondelete="SET NULL",
            ),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_checklist_instance_items_instance_id", "checklist_instance_items", ["instance_id"])
        op.create_index(
            "ix_checklist_instance_items_depends_on_item_id",
            "checklist_instance_items", ["depends_on_item_id"],
        )


def downgrade():
    for table in (
        "checklist_instance_items",
        "checklist_instances",
        "checklist_template_items",
        "checklist_templates",
        "customer_documents",
        "customers",
        "tenants",
    ):
        op.drop_table(table)
