"""
Customer domain models.

Models:
    - Customer:          the organization's client, carrying a lifecycle status
    - CustomerDocument:  uploaded evidence referenced by checklist items (documentRef)

Lifecycle states:
    Customer:  PROSPECT → ONBOARDING → ACTIVE ⇄ DORMANT
               ONBOARDING | ACTIVE | DORMANT → OFFBOARDING → OFFBOARDED
               OFFBOARDING | OFFBOARDED → ACTIVE  (reactivation)
"""

from onboarding.models import db
from onboarding.models.base import TenantModel, _utcnow, _uuid, iso


# ── Constants ────────────────────────────────────────────────────────────────

CUSTOMER_TYPES = {"INDIVIDUAL", "COMPANY"}

LIFECYCLE_STATUSES = {
    "PROSPECT", "ONBOARDING", "ACTIVE",
    "DORMANT", "OFFBOARDING", "OFFBOARDED",
}

LIFECYCLE_TRANSITIONS = {
    "PROSPECT":    ["ONBOARDING"],
    "ONBOARDING":  ["ACTIVE", "OFFBOARDING"],
    "ACTIVE":      ["DORMANT", "OFFBOARDING"],
    "DORMANT":     ["ACTIVE", "OFFBOARDING"],
    "OFFBOARDING": ["OFFBOARDED", "ACTIVE"],
    "OFFBOARDED":  ["ACTIVE"],
}


def validate_lifecycle_transition(old_status, new_status):
    """Return True if Customer lifecycle transition is valid."""
    return new_status in LIFECYCLE_TRANSITIONS.get(old_status, [])


# ═════════════════════════════════════════════════════════════════════════════
# 1. Customer
# ═════════════════════════════════════════════════════════════════════════════


class Customer(TenantModel):
    __tablename__ = "customers"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), default="")
    customer_type = db.Column(
        db.String(20), nullable=False, default="INDIVIDUAL",
        comment="INDIVIDUAL | COMPANY",
    )
    lifecycle_status = db.Column(
        db.String(20), nullable=False, default="PROSPECT",
        comment="PROSPECT | ONBOARDING | ACTIVE | DORMANT | OFFBOARDING | OFFBOARDED",
    )
    lifecycle_status_changed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    lifecycle_status_changed_by = db.Column(db.String(100), nullable=True)
    offboarded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "customer_type IN ('INDIVIDUAL','COMPANY')",
            name="ck_customer_type",
        ),
        db.CheckConstraint(
            "lifecycle_status IN ('PROSPECT','ONBOARDING','ACTIVE',"
            "'DORMANT','OFFBOARDING','OFFBOARDED')",
            name="ck_customer_lifecycle_status",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "email": self.email,
            "customer_type": self.customer_type,
            "lifecycle_status": self.lifecycle_status,
            "lifecycle_status_changed_at": iso(self.lifecycle_status_changed_at),
            "lifecycle_status_changed_by": self.lifecycle_status_changed_by,
            "offboarded_at": iso(self.offboarded_at),
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Customer {self.id}: {self.name} [{self.lifecycle_status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. CustomerDocument
# ═════════════════════════════════════════════════════════════════════════════


class CustomerDocument(TenantModel):
    """Uploaded document owned by one customer; storage itself lives elsewhere."""

    __tablename__ = "customer_documents"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    file_name = db.Column(db.String(255), nullable=False)
    uploaded_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "file_name": self.file_name,
            "uploaded_at": iso(self.uploaded_at),
        }
