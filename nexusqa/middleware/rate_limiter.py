"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in nexusqa/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from nexusqa.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Automation ingestion: 600/minute (runner posts one result per case)
        - Catalog / ledger writes: 60/minute
        - Traceability reads: 200/minute

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("automation")
    if bp:
        limiter.limit("600/minute")(bp)

    for bp_name in ("testing", "project"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("60/minute")(bp)

    bp = app.blueprints.get("traceability")
    if bp:
        limiter.limit("200/minute")(bp)

    app.logger.info(
        "Rate limiter configured — automation: 600/min, write: 60/min, read: 200/min"
    )
