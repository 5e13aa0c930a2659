"""
Customer Onboarding Checklists
Blueprint registry and shared request helpers.

Tenant and actor are taken from the X-Tenant-ID / X-Actor-ID headers, falling
back to ``tenant_id`` / ``actor_id`` in the query string or JSON body. Auth is
enforced upstream; these blueprints only pass the scope through to services.
"""

import logging

from flask import jsonify, request

from onboarding.core.context import SYSTEM_ACTOR, ChecklistContext
from onboarding.core.exceptions import (
    ConflictError,
    InvalidLifecycleTransitionError,
    NotFoundError,
    ValidationError,
)
from onboarding.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


# ── Request scope ─────────────────────────────────────────────────────────────


def _tenant_id() -> int | None:
    raw = request.headers.get("X-Tenant-ID") or request.args.get("tenant_id")
    if not raw:
        data: dict = request.get_json(silent=True) or {}
        raw = data.get("tenant_id")
    try:
        return int(raw) if raw else None
    except (TypeError, ValueError):
        return None


def _actor_id() -> str:
    actor = request.headers.get("X-Actor-ID")
    if not actor:
        data: dict = request.get_json(silent=True) or {}
        actor = data.get("actor_id")
    return str(actor) if actor else SYSTEM_ACTOR


def context_required() -> tuple[ChecklistContext | None, tuple | None]:
    """Build the call context. Returns (ctx, error_response)."""
    tid = _tenant_id()
    if not tid:
        return None, api_error(E.VALIDATION_REQUIRED, "tenant_id is required")
    return ChecklistContext(tenant_id=tid, actor_id=_actor_id()), None


# ── Error handlers ────────────────────────────────────────────────────────────


def register_error_handlers(bp) -> None:
    """Map service exceptions to HTTP responses on a blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(error.code, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(error.code, str(error), status=error.http_status, details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(error.code, str(error), status=409)

    @bp.errorhandler(InvalidLifecycleTransitionError)
    def _handle_lifecycle(error: InvalidLifecycleTransitionError):
        return api_error(
            error.code, str(error), status=409,
            details={"from": error.old_status, "to": error.new_status},
        )

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return jsonify({"error": "Internal server error", "code": E.INTERNAL}), 500
