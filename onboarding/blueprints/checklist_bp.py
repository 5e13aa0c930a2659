"""
Checklist Blueprint — templates, instances and item transitions.

Endpoints:
    Templates
        GET    /api/v1/checklist-templates                 ?active_only=&customer_type=&limit=&offset=
        POST   /api/v1/checklist-templates                 Body: {name, customer_type?, auto_instantiate?, items[]}
        GET    /api/v1/checklist-templates/<id>
        PUT    /api/v1/checklist-templates/<id>            Body: any template field, items[] replaces all
        POST   /api/v1/checklist-templates/<id>/clone      Body: {name?}
        DELETE /api/v1/checklist-templates/<id>            soft delete (active=false)

    Instances
        POST   /api/v1/customers/<cid>/checklists          Body: {template_id}
        GET    /api/v1/customers/<cid>/checklists
        GET    /api/v1/checklist-instances/<id>

    Items
        POST   /api/v1/checklist-items/<id>/complete       Body: {notes?, document_ref?}
        POST   /api/v1/checklist-items/<id>/skip           Body: {reason?}
        POST   /api/v1/checklist-items/<id>/reopen

Layer contract:
    - Blueprint: parse input, build the ChecklistContext, call service, return JSON.
    - NO db.session calls here; all writes are owned by the services.
"""

import logging

from flask import Blueprint, jsonify, request

from onboarding.blueprints import context_required, paginate_query, register_error_handlers
from onboarding.services import checklist_instance_service as instances
from onboarding.services import checklist_template_service as templates
from onboarding.utils.errors import E, api_error

logger = logging.getLogger(__name__)

checklist_bp = Blueprint("checklists", __name__, url_prefix="/api/v1")

register_error_handlers(checklist_bp)


def _item_response(item, result):
    return jsonify({"item": item.to_dict(), "cascade": result.to_dict()}), 200


# ═════════════════════════════════════════════════════════════════════════
# Templates
# ═════════════════════════════════════════════════════════════════════════


@checklist_bp.route("/checklist-templates", methods=["GET"])
def list_templates():
    ctx, err = context_required()
    if err:
        return err
    active_only = request.args.get("active_only", "true").lower() != "false"
    query = templates.list_templates(
        ctx, active_only=active_only, customer_type=request.args.get("customer_type"),
    )
    items, total = paginate_query(query)
    return jsonify({"items": [t.to_dict() for t in items], "total": total}), 200


@checklist_bp.route("/checklist-templates", methods=["POST"])
def create_template():
    ctx, err = context_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    template = templates.create_template(ctx, data)
    return jsonify(template.to_dict(include_items=True)), 201


@checklist_bp.route("/checklist-templates/<template_id>", methods=["GET"])
def get_template(template_id):
    ctx, err = context_required()
    if err:
        return err
    template = templates.get_template(ctx, template_id, active_only=False)
    return jsonify(template.to_dict(include_items=True)), 200


@checklist_bp.route("/checklist-templates/<template_id>", methods=["PUT"])
def update_template(template_id):
    ctx, err = context_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    template = templates.update_template(ctx, template_id, data)
    return jsonify(template.to_dict(include_items=True)), 200


@checklist_bp.route("/checklist-templates/<template_id>/clone", methods=["POST"])
def clone_template(template_id):
    ctx, err = context_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    clone = templates.clone_template(ctx, template_id, name=data.get("name"))
    return jsonify(clone.to_dict(include_items=True)), 201


@checklist_bp.route("/checklist-templates/<template_id>", methods=["DELETE"])
def deactivate_template(template_id):
    ctx, err = context_required()
    if err:
        return err
    template = templates.deactivate_template(ctx, template_id)
    return jsonify(template.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Instances
# ═════════════════════════════════════════════════════════════════════════


@checklist_bp.route("/customers/<customer_id>/checklists", methods=["POST"])
def instantiate(customer_id):
    ctx, err = context_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    template_id = data.get("template_id")
    if not template_id:
        return api_error(E.VALIDATION_REQUIRED, "template_id is required")
    instance = instances.instantiate(ctx, template_id, customer_id)
    return jsonify(instances.get_instance(ctx, instance.id)), 201


@checklist_bp.route("/customers/<customer_id>/checklists", methods=["GET"])
def list_customer_checklists(customer_id):
    ctx, err = context_required()
    if err:
        return err
    return jsonify({"items": instances.list_instances_for_customer(ctx, customer_id)}), 200


@checklist_bp.route("/checklist-instances/<instance_id>", methods=["GET"])
def get_instance(instance_id):
    ctx, err = context_required()
    if err:
        return err
    return jsonify(instances.get_instance(ctx, instance_id)), 200


# ═════════════════════════════════════════════════════════════════════════
# Item transitions
# ═════════════════════════════════════════════════════════════════════════


@checklist_bp.route("/checklist-items/<item_id>/complete", methods=["POST"])
def complete_item(item_id):
    ctx, err = context_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    item, result = instances.complete_item(
        ctx, item_id, notes=data.get("notes"), document_ref=data.get("document_ref"),
    )
    return _item_response(item, result)


@checklist_bp.route("/checklist-items/<item_id>/skip", methods=["POST"])
def skip_item(item_id):
    ctx, err = context_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    item, result = instances.skip_item(ctx, item_id, reason=data.get("reason"))
    return _item_response(item, result)


@checklist_bp.route("/checklist-items/<item_id>/reopen", methods=["POST"])
def reopen_item(item_id):
    ctx, err = context_required()
    if err:
        return err
    item, result = instances.reopen_item(ctx, item_id)
    return _item_response(item, result)
