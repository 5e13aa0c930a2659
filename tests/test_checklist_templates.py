"""
tests/test_checklist_templates.py — Template management service.

Covers:
    1.  Create with items, key-based dependencies remapped to row ids
    2.  Slug derivation and -2 / -3 disambiguation per tenant
    3.  Validation: missing names, duplicate keys, cycles, dangling keys (nothing written)
    3a. A slug claimed by a concurrent writer surfaces as ConflictError
    4.  Update replaces all items and re-validates the full set
    5.  Clone copies items with remapped dependencies into an ORG_CUSTOM template
    6.  Deactivate hides the template from active lookups
    7.  find_auto_instantiate_templates filters by customer type / ANY / active
    8.  Tenant isolation on get
"""

import pytest

from onboarding.core.exceptions import (
    ConflictError,
    CrossTemplateDependencyError,
    DependencyCycleError,
    TemplateNotFoundError,
    ValidationError,
)
from onboarding.models.checklist import ChecklistTemplate, ChecklistTemplateItem
from onboarding.services import checklist_template_service as svc


def _by_name(template):
    return {item.name: item for item in template.items}


class TestCreateTemplate:

    def test_items_created_with_remapped_dependencies(self, ctx, make_template):
        template = make_template(items=[
            {"key": "b", "name": "Verify", "depends_on_key": "a", "sort_order": 2},
            {"key": "a", "name": "Collect", "sort_order": 1},
        ])
        items = _by_name(template)
        assert set(items) == {"Collect", "Verify"}
        assert items["Verify"].depends_on_item_id == items["Collect"].id
        assert items["Collect"].depends_on_item_id is None

    def test_items_returned_in_sort_order(self, ctx, make_template):
        template = make_template(items=[
            {"name": "Third", "sort_order": 3},
            {"name": "First", "sort_order": 1},
            {"name": "Second", "sort_order": 2},
        ])
        assert [i.name for i in template.items] == ["First", "Second", "Third"]

    def test_positional_keys_when_no_key_given(self, ctx, make_template):
        template = make_template(items=[
            {"name": "A"},
            {"name": "B", "depends_on_key": "0"},
        ])
        items = _by_name(template)
        assert items["B"].depends_on_item_id == items["A"].id

    def test_defaults(self, ctx, make_template):
        template = make_template(name="Basic")
        assert template.source == "ORG_CUSTOM"
        assert template.customer_type == "ANY"
        assert template.active is True
        assert template.auto_instantiate is False
        assert template.items[0].required is True
        assert template.items[0].requires_document is False

    def test_slug_derived_from_name(self, ctx, make_template):
        template = make_template(name="  Company KYC / AML  ")
        assert template.slug == "company-kyc-aml"

    def test_slug_collision_suffixes(self, ctx, make_template):
        first = make_template(name="KYC")
        second = make_template(name="KYC")
        third = make_template(name="kyc")
        assert (first.slug, second.slug, third.slug) == ("kyc", "kyc-2", "kyc-3")

    def test_slug_unique_per_tenant_only(self, ctx, other_ctx, make_template):
        mine = make_template(name="KYC")
        theirs = make_template(name="KYC", context=other_ctx)
        assert mine.slug == theirs.slug == "kyc"

    def test_name_required(self, ctx):
        with pytest.raises(ValidationError):
            svc.create_template(ctx, {"name": "  ", "items": []})

    def test_item_name_required(self, ctx):
        with pytest.raises(ValidationError):
            svc.create_template(ctx, {"name": "T", "items": [{"name": ""}]})

    def test_non_object_item_rejected_and_nothing_written(self, ctx):
        with pytest.raises(ValidationError) as exc_info:
            svc.create_template(ctx, {"name": "T", "items": [{"name": "A"}, "x"]})
        assert exc_info.value.details == {"items[1]": "must be an object"}
        assert ChecklistTemplate.query.count() == 0

    def test_slug_taken_concurrently_is_conflict(self, monkeypatch, ctx, make_template):
        make_template(name="KYC")
        # Another writer inserted "kyc" after this caller picked its slug
        monkeypatch.setattr(svc, "unique_slug", lambda tenant_id, base, exclude_id=None: base)

        with pytest.raises(ConflictError):
            svc.create_template(ctx, {"name": "KYC", "items": [{"name": "A"}]})

        assert ChecklistTemplate.query.count() == 1
        assert ChecklistTemplateItem.query.count() == 1

    def test_duplicate_item_keys_rejected(self, ctx):
        with pytest.raises(ValidationError):
            svc.create_template(ctx, {"name": "T", "items": [
                {"key": "a", "name": "A"}, {"key": "a", "name": "A again"},
            ]})

    def test_invalid_customer_type_rejected(self, ctx):
        with pytest.raises(ValidationError):
            svc.create_template(ctx, {"name": "T", "customer_type": "ROBOT", "items": []})

    def test_cycle_rejected_and_nothing_written(self, ctx):
        with pytest.raises(DependencyCycleError):
            svc.create_template(ctx, {"name": "Loop", "items": [
                {"key": "a", "name": "A", "depends_on_key": "c"},
                {"key": "b", "name": "B", "depends_on_key": "a"},
                {"key": "c", "name": "C", "depends_on_key": "b"},
            ]})
        assert ChecklistTemplate.query.count() == 0
        assert ChecklistTemplateItem.query.count() == 0

    def test_self_dependency_rejected(self, ctx):
        with pytest.raises(DependencyCycleError):
            svc.create_template(ctx, {"name": "Self", "items": [
                {"key": "a", "name": "A", "depends_on_key": "a"},
            ]})

    def test_dangling_dependency_rejected(self, ctx):
        with pytest.raises(CrossTemplateDependencyError):
            svc.create_template(ctx, {"name": "T", "items": [
                {"key": "a", "name": "A", "depends_on_key": "missing"},
            ]})
        assert ChecklistTemplate.query.count() == 0


class TestUpdateTemplate:

    def test_fields_updated(self, ctx, make_template):
        template = make_template(name="KYC")
        updated = svc.update_template(ctx, template.id, {
            "description": "New", "auto_instantiate": True, "customer_type": "COMPANY",
        })
        assert updated.description == "New"
        assert updated.auto_instantiate is True
        assert updated.customer_type == "COMPANY"
        assert updated.slug == "kyc"

    def test_rename_recomputes_slug(self, ctx, make_template):
        template = make_template(name="KYC")
        make_template(name="AML")
        updated = svc.update_template(ctx, template.id, {"name": "AML"})
        assert updated.slug == "aml-2"

    def test_rename_onto_taken_slug_is_conflict(self, monkeypatch, ctx, make_template):
        make_template(name="AML")
        template = make_template(name="KYC")
        monkeypatch.setattr(svc, "unique_slug", lambda tenant_id, base, exclude_id=None: base)

        with pytest.raises(ConflictError):
            svc.update_template(ctx, template.id, {"name": "AML"})

        assert svc.get_template(ctx, template.id).slug == "kyc"

    def test_items_replaced(self, ctx, make_template):
        template = make_template(items=[{"key": "a", "name": "Old"}])
        old_ids = {i.id for i in template.items}

        updated = svc.update_template(ctx, template.id, {"items": [
            {"key": "x", "name": "New X"},
            {"key": "y", "name": "New Y", "depends_on_key": "x"},
        ]})

        items = _by_name(updated)
        assert set(items) == {"New X", "New Y"}
        assert items["New Y"].depends_on_item_id == items["New X"].id
        assert not old_ids & {i.id for i in updated.items}
        assert ChecklistTemplateItem.query.filter_by(template_id=template.id).count() == 2

    def test_existing_ids_usable_as_keys(self, ctx, make_template):
        template = make_template(items=[{"key": "a", "name": "A"}, {"key": "b", "name": "B"}])
        a, b = (_by_name(template)[n] for n in ("A", "B"))

        updated = svc.update_template(ctx, template.id, {"items": [
            {"id": a.id, "name": "A"},
            {"id": b.id, "name": "B", "depends_on_item_id": a.id},
        ]})
        items = _by_name(updated)
        assert items["B"].depends_on_item_id == items["A"].id

    def test_cycle_in_update_leaves_items_untouched(self, ctx, make_template):
        template = make_template(items=[{"key": "a", "name": "Keep me"}])
        with pytest.raises(DependencyCycleError):
            svc.update_template(ctx, template.id, {"items": [
                {"key": "x", "name": "X", "depends_on_key": "y"},
                {"key": "y", "name": "Y", "depends_on_key": "x"},
            ]})
        names = [i.name for i in svc.get_template(ctx, template.id).items]
        assert names == ["Keep me"]


class TestCloneTemplate:

    def test_clone_copies_items_and_remaps_dependencies(self, ctx, make_template):
        source = make_template(name="KYC", items=[
            {"key": "a", "name": "A"},
            {"key": "b", "name": "B", "depends_on_key": "a"},
            {"key": "c", "name": "C", "depends_on_key": "b", "required": False},
        ])
        clone = svc.clone_template(ctx, source.id)

        assert clone.id != source.id
        assert clone.slug == "kyc-custom"
        assert clone.source == "ORG_CUSTOM"
        items = _by_name(clone)
        source_ids = {i.id for i in source.items}
        assert not source_ids & {i.id for i in clone.items}
        assert items["B"].depends_on_item_id == items["A"].id
        assert items["C"].depends_on_item_id == items["B"].id
        assert items["C"].required is False

    def test_second_clone_gets_disambiguated_slug(self, ctx, make_template):
        source = make_template(name="KYC")
        svc.clone_template(ctx, source.id)
        again = svc.clone_template(ctx, source.id, name="Another copy")
        assert again.slug == "kyc-custom-2"
        assert again.name == "Another copy"


class TestTemplateQueries:

    def test_deactivate_hides_template(self, ctx, make_template):
        template = make_template()
        svc.deactivate_template(ctx, template.id)
        with pytest.raises(TemplateNotFoundError):
            svc.get_template(ctx, template.id)
        assert svc.get_template(ctx, template.id, active_only=False).active is False
        assert svc.list_templates(ctx).count() == 0
        assert svc.list_templates(ctx, active_only=False).count() == 1

    def test_other_tenant_cannot_see_template(self, ctx, other_ctx, make_template):
        template = make_template()
        with pytest.raises(TemplateNotFoundError):
            svc.get_template(other_ctx, template.id)

    def test_find_auto_instantiate_templates(self, ctx, make_template):
        ind = make_template(name="Individual", customer_type="INDIVIDUAL", auto_instantiate=True)
        any_ = make_template(name="Any", customer_type="ANY", auto_instantiate=True)
        make_template(name="Company", customer_type="COMPANY", auto_instantiate=True)
        make_template(name="Manual", customer_type="INDIVIDUAL", auto_instantiate=False)
        inactive = make_template(name="Retired", customer_type="ANY", auto_instantiate=True)
        svc.deactivate_template(ctx, inactive.id)

        found = {t.id for t in svc.find_auto_instantiate_templates(ctx, "INDIVIDUAL")}
        assert found == {ind.id, any_.id}
