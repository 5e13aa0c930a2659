"""
Customer Onboarding Checklists
Flask Application Factory.

Usage:
    from onboarding import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from onboarding.config import config
from onboarding.models import db
from onboarding.middleware.logging_config import configure_logging
from onboarding.middleware.rate_limiter import init_rate_limits
from onboarding.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from onboarding.models import tenant as _tenant_models        # noqa: F401
    from onboarding.models import customer as _customer_models    # noqa: F401
    from onboarding.models import checklist as _checklist_models  # noqa: F401

    # ── Auto-create tables outside of tests (CREATE IF NOT EXISTS) ───────
    if not app.config.get("TESTING"):
        with app.app_context():
            if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///"):
                os.makedirs(app.instance_path, exist_ok=True)
            db.create_all()
            app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from onboarding.blueprints.checklist_bp import checklist_bp
    from onboarding.blueprints.customer_bp import customer_bp

    app.register_blueprint(checklist_bp)
    app.register_blueprint(customer_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("create-tenant")
    @click.argument("slug")
    @click.option("--name", default=None, help="Display name (defaults to slug).")
    def create_tenant_cmd(slug, name):
        """Create a tenant and seed its compliance packs."""
        from onboarding.models.tenant import Tenant
        from onboarding.services.compliance_pack_seeder import seed_packs_for_tenant

        tenant = Tenant(slug=slug, name=name or slug)
        db.session.add(tenant)
        db.session.commit()
        count = seed_packs_for_tenant(tenant.id)
        click.echo(f"Created tenant {tenant.slug} (id={tenant.id}), {count} compliance pack(s) applied.")

    @app.cli.command("seed-compliance-packs")
    @click.option("--tenant-id", type=int, default=None, help="Seed one tenant only.")
    def seed_compliance_packs_cmd(tenant_id):
        """Apply compliance packs not yet applied (all active tenants by default)."""
        from onboarding.services.compliance_pack_seeder import seed_all_tenants, seed_packs_for_tenant

        if tenant_id is not None:
            results = {tenant_id: seed_packs_for_tenant(tenant_id)}
        else:
            results = seed_all_tenants()
        for tid, count in results.items():
            click.echo(f"tenant {tid}: {count} compliance pack(s) applied")

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Customer Onboarding Checklists"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        from flask import request
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
