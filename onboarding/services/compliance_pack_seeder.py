"""
Compliance pack seeder — installs platform checklist templates per tenant.

Packs live in ``COMPLIANCE_PACKS_DIR/<pack>/pack.json``:

    {
      "packId": "kyc-individual",
      "version": "1.0",
      "customerType": "INDIVIDUAL",
      "checklistTemplate": {
        "key": "kyc-individual",
        "name": "Individual KYC",
        "description": "...",
        "autoInstantiate": true,
        "items": [
          {"key": "id-doc", "name": "...", "sortOrder": 1, "required": true,
           "requiresDocument": true, "requiredDocumentLabel": "Passport or ID",
           "dependsOnKey": null},
          ...
        ]
      }
    }

Idempotent: a pack is skipped when the tenant already has a template with
its pack_id. Items go through the same validation and key remapping as
templates created via the API, so a broken pack fails before writing.
"""

from __future__ import annotations

import json
import logging
import os

from flask import current_app
from sqlalchemy import select

from onboarding.core.context import ChecklistContext
from onboarding.core.exceptions import ValidationError
from onboarding.models import db
from onboarding.models.base import _uuid
from onboarding.models.checklist import ChecklistTemplate
from onboarding.models.tenant import Tenant
from onboarding.services.checklist_template_service import (
    flush_template,
    prepare_items,
    slugify,
    unique_slug,
    write_items,
)

logger = logging.getLogger(__name__)


def load_packs(packs_dir: str | None = None) -> list[dict]:
    """Read every ``*/pack.json`` under the packs directory, sorted by folder name."""
    packs_dir = packs_dir or current_app.config["COMPLIANCE_PACKS_DIR"]
    if not os.path.isdir(packs_dir):
        logger.warning("Compliance packs directory not found: %s", packs_dir)
        return []

    packs = []
    for entry in sorted(os.listdir(packs_dir)):
        path = os.path.join(packs_dir, entry, "pack.json")
        if not os.path.isfile(path):
            continue
        with open(path, encoding="utf-8") as f:
            try:
                packs.append(json.load(f))
            except json.JSONDecodeError as exc:
                raise ValidationError(f"Failed to parse compliance pack {path}: {exc}")
    return packs


def _applied_pack_ids(tenant_id: int) -> set[str]:
    rows = db.session.execute(
        select(ChecklistTemplate.pack_id).where(
            ChecklistTemplate.tenant_id == tenant_id,
            ChecklistTemplate.pack_id.isnot(None),
        )
    ).scalars().all()
    return set(rows)


def _pack_items(template_def: dict) -> list[dict]:
    return [
        {
            "key": item["key"],
            "depends_on_key": item.get("dependsOnKey"),
            "name": item.get("name", ""),
            "description": item.get("description", ""),
            "sort_order": item.get("sortOrder", position),
            "required": item.get("required", True),
            "requires_document": item.get("requiresDocument", False),
            "required_document_label": item.get("requiredDocumentLabel"),
        }
        for position, item in enumerate(template_def.get("items", []))
    ]


def apply_pack(ctx: ChecklistContext, pack: dict) -> ChecklistTemplate:
    """Create the pack's PLATFORM template and items. Flushes, does not commit."""
    template_def = pack["checklistTemplate"]
    prepared = prepare_items(_pack_items(template_def))

    key = template_def.get("key") or pack["packId"]
    template = ChecklistTemplate(
        id=_uuid(),
        tenant_id=ctx.tenant_id,
        name=template_def["name"],
        slug=unique_slug(ctx.tenant_id, slugify(key)),
        description=template_def.get("description", ""),
        customer_type=pack.get("customerType", "ANY"),
        source="PLATFORM",
        pack_id=pack["packId"],
        pack_template_key=key,
        auto_instantiate=bool(template_def.get("autoInstantiate", False)),
        sort_order=template_def.get("sortOrder", 0),
        active=True,
    )
    db.session.add(template)
    flush_template(template)
    write_items(template, prepared)
    return template


def seed_packs_for_tenant(tenant_id: int, packs: list[dict] | None = None) -> int:
    """Apply every pack not yet applied for the tenant. Returns the number applied."""
    ctx = ChecklistContext(tenant_id=tenant_id)
    packs = load_packs() if packs is None else packs
    if not packs:
        logger.info("No compliance packs found tenant_id=%s", tenant_id)
        return 0

    applied = _applied_pack_ids(tenant_id)
    count = 0
    try:
        for pack in packs:
            if pack["packId"] in applied:
                logger.info(
                    "Compliance pack %s already applied tenant_id=%s, skipping",
                    pack["packId"], tenant_id,
                )
                continue
            apply_pack(ctx, pack)
            applied.add(pack["packId"])
            count += 1
            logger.info(
                "Applied compliance pack %s v%s tenant_id=%s",
                pack["packId"], pack.get("version", "?"), tenant_id,
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return count


def seed_all_tenants() -> dict[int, int]:
    """Seed packs for every active tenant. Returns {tenant_id: packs applied}."""
    packs = load_packs()
    tenant_ids = db.session.execute(
        select(Tenant.id).where(Tenant.is_active.is_(True)).order_by(Tenant.id)
    ).scalars().all()
    return {tid: seed_packs_for_tenant(tid, packs) for tid in tenant_ids}
