"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in onboarding/__init__.py with no default limits; this module
applies limits per blueprint once they are registered.

Usage:
    from onboarding.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# blueprint name -> limit string
BLUEPRINT_LIMITS = {
    "checklists": "120/minute",
    "customers": "120/minute",
}


def init_rate_limits(app, limiter):
    """Apply rate limits to API blueprints. Disabled in testing mode."""
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)

    app.logger.info("Rate limiter configured: %s", BLUEPRINT_LIMITS)
