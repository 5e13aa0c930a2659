"""
tests/test_cli.py — flask CLI commands.

Covers:
    1.  create-tenant creates the tenant and seeds its compliance packs
    2.  seed-compliance-packs for one tenant, then a no-op re-run
"""

from onboarding.models.checklist import ChecklistTemplate
from onboarding.models.tenant import Tenant


class TestCli:

    def test_create_tenant_seeds_packs(self, app):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["create-tenant", "acme", "--name", "Acme Ltd"])

        assert result.exit_code == 0, result.output
        assert "2 compliance pack(s) applied" in result.output
        tenant = Tenant.query.filter_by(slug="acme").one()
        assert tenant.name == "Acme Ltd"
        assert ChecklistTemplate.query.filter_by(tenant_id=tenant.id, source="PLATFORM").count() == 2

    def test_seed_single_tenant(self, app, default_tenant):
        runner = app.test_cli_runner()
        args = ["seed-compliance-packs", "--tenant-id", str(default_tenant.id)]

        first = runner.invoke(args=args)
        second = runner.invoke(args=args)

        assert first.exit_code == 0, first.output
        assert f"tenant {default_tenant.id}: 2 compliance pack(s) applied" in first.output
        assert f"tenant {default_tenant.id}: 0 compliance pack(s) applied" in second.output
