"""
Explicit call context for checklist operations.

Tenant and actor are passed to every service call instead of being read from
request globals, so services can run from a blueprint, a CLI command or a
test without a request context.

Usage:
    ctx = ChecklistContext(tenant_id=1, actor_id="member-42")
    checklist_instance_service.complete_item(ctx, item_id)
"""

from __future__ import annotations

from dataclasses import dataclass


SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class ChecklistContext:
    """Tenant scope plus the opaque identifier stamped onto completion records."""

    tenant_id: int
    actor_id: str = SYSTEM_ACTOR
