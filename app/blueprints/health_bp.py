"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — detailed system health (DB, training tables,
                                live matrix refresher)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import inspect

from app.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")

TRAINING_TABLES = (
    "users",
    "modules",
    "documents",
    "user_assignments",
    "user_training_completions",
)


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Training tables ──────────────────────────────────────────────
    # user_training_completions is optional and never fails the check
    if overall:
        existing = set(inspect(db.engine).get_table_names())
        tables = {name: ("ok" if name in existing else "missing") for name in TRAINING_TABLES}
        checks["training_tables"] = tables
        required = [t for t in TRAINING_TABLES if t != "user_training_completions"]
        if any(tables[t] != "ok" for t in required):
            overall = False

    # ── Live matrix refresher ────────────────────────────────────────
    host = current_app.extensions.get("training_matrix_live")
    if host is None:
        checks["live_refresh"] = {"status": "disabled"}
    else:
        state = host.state
        checks["live_refresh"] = {
            "status": "ok" if host.running else "stopped",
            "last_updated": state.last_updated.isoformat() if state and state.last_updated else None,
            "error": state.error if state else None,
        }

    # ── App info ─────────────────────────────────────────────────────
    checks["app"] = {
        "name": "Training Matrix Platform",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
