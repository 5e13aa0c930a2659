"""
Customer Blueprint — customer records, documents and lifecycle transitions.

Endpoints:
    POST   /api/v1/customers                          Body: {name, email?, customer_type?}
    GET    /api/v1/customers/<cid>
    POST   /api/v1/customers/<cid>/documents          Body: {file_name}
    POST   /api/v1/customers/<cid>/transition         Body: {target_status, notes?}
           Returns: {customer, created_checklists}

A transition to ONBOARDING auto-instantiates matching checklists in the same
transaction; OFFBOARDED cancels the customer's in-progress checklists.
"""

import logging

from flask import Blueprint, jsonify, request

from onboarding.blueprints import context_required, register_error_handlers
from onboarding.models.customer import LIFECYCLE_STATUSES
from onboarding.services import customer_lifecycle_service as lifecycle
from onboarding.utils.errors import E, api_error

logger = logging.getLogger(__name__)

customer_bp = Blueprint("customers", __name__, url_prefix="/api/v1")

register_error_handlers(customer_bp)


@customer_bp.route("/customers", methods=["POST"])
def create_customer():
    ctx, err = context_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    customer = lifecycle.create_customer(ctx, data)
    return jsonify(customer.to_dict()), 201


@customer_bp.route("/customers/<customer_id>", methods=["GET"])
def get_customer(customer_id):
    ctx, err = context_required()
    if err:
        return err
    return jsonify(lifecycle.get_customer(ctx, customer_id).to_dict()), 200


@customer_bp.route("/customers/<customer_id>/documents", methods=["POST"])
def add_document(customer_id):
    ctx, err = context_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    document = lifecycle.add_document(ctx, customer_id, (data.get("file_name") or "").strip())
    return jsonify(document.to_dict()), 201


@customer_bp.route("/customers/<customer_id>/transition", methods=["POST"])
def transition_customer(customer_id):
    ctx, err = context_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    target = (data.get("target_status") or "").strip().upper()
    if target not in LIFECYCLE_STATUSES:
        return api_error(
            E.VALIDATION_INVALID,
            f"target_status must be one of {sorted(LIFECYCLE_STATUSES)}",
            status=400,
        )
    customer, created = lifecycle.transition_customer(ctx, customer_id, target, notes=data.get("notes"))
    return jsonify({
        "customer": customer.to_dict(),
        "created_checklists": [i.id for i in created],
    }), 200
