"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

MATRIX_LIMIT = "120/minute"
EXPORT_LIMIT = "20/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Training matrix:  120/minute (each call fans out to five queries)
        - Matrix exports:   20/minute  (builds a whole file in memory)
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("training_matrix")
    if bp:
        limiter.limit(MATRIX_LIMIT)(bp)

    export_view = app.view_functions.get("training_matrix.export_matrix")
    if export_view:
        limiter.limit(EXPORT_LIMIT)(export_view)

    # Health check: exempt from rate limiting
    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — training matrix: %s, export: %s",
        MATRIX_LIMIT, EXPORT_LIMIT,
    )
