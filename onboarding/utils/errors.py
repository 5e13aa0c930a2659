"""Standardised API error responses.

Usage
-----
    from onboarding.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Template not found")
    return api_error(E.VALIDATION_REQUIRED, "customer_id is required")
    return api_error(E.ITEM_BLOCKED, str(exc), details={"item_id": exc.item_id})

Service exceptions carry their own ``code`` attribute (see
onboarding.core.exceptions); blueprints hand them to ``api_error`` with that
code so the HTTP status comes from the mapping below.
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for every application error
    """

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    CROSS_TEMPLATE_DEPENDENCY = "ERR_CROSS_TEMPLATE_DEPENDENCY"
    DEPENDENCY_CYCLE = "ERR_DEPENDENCY_CYCLE"
    DOCUMENT_REQUIRED = "ERR_DOCUMENT_REQUIRED"
    CANNOT_SKIP_REQUIRED = "ERR_CANNOT_SKIP_REQUIRED"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    ITEM_BLOCKED = "ERR_ITEM_BLOCKED"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.CROSS_TEMPLATE_DEPENDENCY: 400,
    E.DEPENDENCY_CYCLE: 400,
    E.DOCUMENT_REQUIRED: 400,
    E.CANNOT_SKIP_REQUIRED: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.ITEM_BLOCKED: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (offending item ids, cycle path, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
