"""
tests/test_lifecycle_bridge.py — Checklist ⇄ customer lifecycle coupling.

Covers:
    1.  Completing the last in-progress instance advances ONBOARDING → ACTIVE
    2.  No advance while another instance is IN_PROGRESS, or outside ONBOARDING
    3.  CHECKLIST_AUTO_ADVANCE_CUSTOMER=False disables the advance
    4.  A refused lifecycle transition is swallowed; the item completion stands
    5.  Entering ONBOARDING auto-instantiates matching templates, idempotently
    6.  One failing template does not stop the others
    7.  Reaching OFFBOARDED cancels in-progress instances only
"""

import pytest

from onboarding.core.exceptions import InvalidLifecycleTransitionError
from onboarding.models import db
from onboarding.models.checklist import ChecklistInstance
from onboarding.models.customer import Customer
from onboarding.services import checklist_instance_service as instances
from onboarding.services import customer_lifecycle_service as lifecycle
from onboarding.services import lifecycle_bridge


def _single_item_instance(ctx, make_template, customer, name="KYC"):
    template = make_template(name=name, items=[{"key": "a", "name": f"{name} step"}])
    instance = instances.instantiate(ctx, template.id, customer.id)
    return instance, instance.items[0].id


def _customer_status(customer_id):
    return db.session.get(Customer, customer_id).lifecycle_status


# ═════════════════════════════════════════════════════════════════════════════
# checklist → customer
# ═════════════════════════════════════════════════════════════════════════════


class TestAutoAdvance:

    def test_last_instance_completion_activates_customer(self, ctx, make_template, make_customer):
        customer = make_customer(lifecycle_status="ONBOARDING")
        _, item_id = _single_item_instance(ctx, make_template, customer)

        _, result = instances.complete_item(ctx, item_id)

        assert result.instance_completed is True
        assert result.customer_activated is True
        activated = db.session.get(Customer, customer.id)
        assert activated.lifecycle_status == "ACTIVE"
        assert activated.lifecycle_status_changed_by == "member-1"
        assert activated.lifecycle_status_changed_at is not None

    def test_waits_for_every_instance(self, ctx, make_template, make_customer):
        customer = make_customer(lifecycle_status="ONBOARDING")
        _, first = _single_item_instance(ctx, make_template, customer, name="KYC")
        _, second = _single_item_instance(ctx, make_template, customer, name="AML")

        _, result = instances.complete_item(ctx, first)
        assert result.instance_completed is True
        assert result.customer_activated is False
        assert _customer_status(customer.id) == "ONBOARDING"

        _, result = instances.complete_item(ctx, second)
        assert result.customer_activated is True
        assert _customer_status(customer.id) == "ACTIVE"

    @pytest.mark.parametrize("status", ["PROSPECT", "ACTIVE", "DORMANT"])
    def test_no_advance_outside_onboarding(self, ctx, make_template, make_customer, status):
        customer = make_customer(lifecycle_status=status)
        _, item_id = _single_item_instance(ctx, make_template, customer)

        _, result = instances.complete_item(ctx, item_id)

        assert result.instance_completed is True
        assert result.customer_activated is False
        assert _customer_status(customer.id) == status

    def test_disabled_by_config(self, app, monkeypatch, ctx, make_template, make_customer):
        monkeypatch.setitem(app.config, "CHECKLIST_AUTO_ADVANCE_CUSTOMER", False)
        customer = make_customer(lifecycle_status="ONBOARDING")
        _, item_id = _single_item_instance(ctx, make_template, customer)

        _, result = instances.complete_item(ctx, item_id)

        assert result.instance_completed is True
        assert result.customer_activated is False
        assert _customer_status(customer.id) == "ONBOARDING"

    def test_refused_transition_is_swallowed(self, monkeypatch, ctx, make_template, make_customer):
        customer = make_customer(lifecycle_status="ONBOARDING")
        instance, item_id = _single_item_instance(ctx, make_template, customer)

        def _refuse(ctx, customer, target, notes=None):
            raise InvalidLifecycleTransitionError(customer.id, customer.lifecycle_status, target, reason="frozen")

        monkeypatch.setattr(lifecycle, "apply_transition", _refuse)

        item, result = instances.complete_item(ctx, item_id)

        assert item.status == "COMPLETED"
        assert result.instance_completed is True
        assert result.customer_activated is False
        assert db.session.get(ChecklistInstance, instance.id).status == "COMPLETED"
        assert _customer_status(customer.id) == "ONBOARDING"

    def test_reopen_after_activation_keeps_customer_active(self, ctx, make_template, make_customer):
        customer = make_customer(lifecycle_status="ONBOARDING")
        instance, item_id = _single_item_instance(ctx, make_template, customer)
        instances.complete_item(ctx, item_id)

        _, result = instances.reopen_item(ctx, item_id)

        assert result.instance_reopened is True
        assert db.session.get(ChecklistInstance, instance.id).status == "IN_PROGRESS"
        assert _customer_status(customer.id) == "ACTIVE"


# ═════════════════════════════════════════════════════════════════════════════
# customer → checklist
# ═════════════════════════════════════════════════════════════════════════════


class TestAutoInstantiate:

    @pytest.fixture()
    def auto_templates(self, make_template):
        return {
            "individual": make_template(name="Individual", customer_type="INDIVIDUAL", auto_instantiate=True),
            "any": make_template(name="Any", customer_type="ANY", auto_instantiate=True),
            "company": make_template(name="Company", customer_type="COMPANY", auto_instantiate=True),
            "manual": make_template(name="Manual", customer_type="INDIVIDUAL", auto_instantiate=False),
        }

    def test_onboarding_instantiates_matching_templates(self, ctx, make_customer, auto_templates):
        customer = make_customer(customer_type="INDIVIDUAL")

        _, created = lifecycle.transition_customer(ctx, customer.id, "ONBOARDING")

        assert {i.template_id for i in created} == {
            auto_templates["individual"].id, auto_templates["any"].id,
        }
        assert all(i.status == "IN_PROGRESS" for i in created)
        assert _customer_status(customer.id) == "ONBOARDING"

    def test_company_customer_gets_company_templates(self, ctx, make_customer, auto_templates):
        customer = make_customer(customer_type="COMPANY")

        _, created = lifecycle.transition_customer(ctx, customer.id, "ONBOARDING")

        assert {i.template_id for i in created} == {
            auto_templates["company"].id, auto_templates["any"].id,
        }

    def test_repeated_event_does_not_duplicate(self, ctx, make_customer, auto_templates):
        customer = make_customer()
        lifecycle.transition_customer(ctx, customer.id, "ONBOARDING")

        again = instances.instantiate_for_customer(ctx, customer.id)

        assert again == []
        assert ChecklistInstance.query.filter_by(customer_id=customer.id).count() == 2

    def test_manual_instance_is_not_duplicated(self, ctx, make_customer, auto_templates):
        customer = make_customer()
        instances.instantiate(ctx, auto_templates["any"].id, customer.id)

        _, created = lifecycle.transition_customer(ctx, customer.id, "ONBOARDING")

        assert [i.template_id for i in created] == [auto_templates["individual"].id]
        assert ChecklistInstance.query.filter_by(customer_id=customer.id).count() == 2

    def test_new_template_picked_up_on_demand(self, ctx, make_customer, make_template, auto_templates):
        customer = make_customer()
        lifecycle.transition_customer(ctx, customer.id, "ONBOARDING")
        late = make_template(name="Late", customer_type="ANY", auto_instantiate=True)

        created = instances.instantiate_for_customer(ctx, customer.id)

        assert [i.template_id for i in created] == [late.id]

    def test_failing_template_skipped(self, monkeypatch, ctx, make_customer, auto_templates):
        original = instances.create_instance

        def _flaky(ctx, template, customer):
            if template.name == "Any":
                raise RuntimeError("storage unavailable")
            return original(ctx, template, customer)

        monkeypatch.setattr(instances, "create_instance", _flaky)
        customer = make_customer()

        _, created = lifecycle.transition_customer(ctx, customer.id, "ONBOARDING")

        assert [i.template_id for i in created] == [auto_templates["individual"].id]
        assert _customer_status(customer.id) == "ONBOARDING"
        assert ChecklistInstance.query.filter_by(customer_id=customer.id).count() == 1

    def test_other_statuses_create_nothing(self, ctx, make_customer, auto_templates):
        customer = make_customer(lifecycle_status="ONBOARDING")
        lifecycle.transition_customer(ctx, customer.id, "OFFBOARDING")
        created = lifecycle_bridge.on_customer_transitioned_to(ctx, customer.id, "OFFBOARDING")
        assert created == []


class TestOffboarding:

    def test_offboarded_cancels_in_progress_instances(self, ctx, make_template, make_customer):
        customer = make_customer(lifecycle_status="ONBOARDING")
        done, done_item = _single_item_instance(ctx, make_template, customer, name="KYC")
        open_, _ = _single_item_instance(ctx, make_template, customer, name="AML")
        instances.complete_item(ctx, done_item)

        lifecycle.transition_customer(ctx, customer.id, "OFFBOARDING")
        lifecycle.transition_customer(ctx, customer.id, "OFFBOARDED")

        assert db.session.get(ChecklistInstance, done.id).status == "COMPLETED"
        assert db.session.get(ChecklistInstance, open_.id).status == "CANCELLED"

    def test_offboarding_alone_keeps_instances(self, ctx, make_template, make_customer):
        customer = make_customer(lifecycle_status="ONBOARDING")
        instance, _ = _single_item_instance(ctx, make_template, customer)

        lifecycle.transition_customer(ctx, customer.id, "OFFBOARDING")

        assert db.session.get(ChecklistInstance, instance.id).status == "IN_PROGRESS"

    def test_cancel_returns_count(self, ctx, make_template, make_customer):
        customer = make_customer()
        _single_item_instance(ctx, make_template, customer, name="KYC")
        _single_item_instance(ctx, make_template, customer, name="AML")

        assert lifecycle_bridge.cancel_active_instances(ctx, customer.id) == 2
        assert lifecycle_bridge.cancel_active_instances(ctx, customer.id) == 0
