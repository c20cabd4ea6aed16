"""
Per-blueprint rate limits (Flask-Limiter, keyed by remote address).

The Limiter in app/__init__.py has no default limit; each blueprint group
below gets its own. Limits can be overridden through config, e.g.
``RATELIMIT_AUTH="5/minute"``. Nothing is applied under TESTING.
"""

import logging

logger = logging.getLogger(__name__)

# config key -> (default limit, blueprint names)
LIMIT_GROUPS = {
    "RATELIMIT_AUTH": ("10/minute", ("auth",)),
    "RATELIMIT_ADMIN": ("60/minute", ("users", "roles", "tenants", "email")),
    "RATELIMIT_REGISTRY": ("200/minute", ("projects", "indicators", "documents", "dashboard", "reference")),
}

EXEMPT_BLUEPRINTS = ("health",)


def init_rate_limits(app, limiter):
    if app.config.get("TESTING"):
        return

    applied = {}
    for key, (default, names) in LIMIT_GROUPS.items():
        limit = app.config.get(key, default)
        for name in names:
            bp = app.blueprints.get(name)
            if bp is not None:
                limiter.limit(limit)(bp)
                applied[name] = limit

    for name in EXEMPT_BLUEPRINTS:
        bp = app.blueprints.get(name)
        if bp is not None:
            limiter.exempt(bp)

    logger.info("Rate limits applied: %s", applied)
