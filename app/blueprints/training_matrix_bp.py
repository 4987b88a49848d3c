"""
Training Matrix API.

Endpoints:
    GET  /api/v1/training-matrix                  one-shot matrix JSON
    GET  /api/v1/training-matrix/export           CSV / Excel download
    GET  /api/v1/training-matrix/filters          department / role options
    GET  /api/v1/training-matrix/live             latest published live state
    POST /api/v1/training-matrix/live/refresh     manual refresh
    PUT  /api/v1/training-matrix/live/settings    auto-refresh, interval, filters

Person filters (``name``, ``department_id``, ``role_id``) are read from the
query string on GET endpoints and from the JSON body on ``live/settings``.
"""

import logging

from flask import Blueprint, Response, current_app, jsonify, request

from app.core.exceptions import LiveRefreshStoppedError, MatrixSourceError, ValidationError
from app.services import training_matrix_service as svc
from app.services.training_matrix.filters import MatrixFilters
from app.utils.errors import E, api_error
from app.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

training_matrix_bp = Blueprint("training_matrix", __name__, url_prefix="/api/v1/training-matrix")


def _source_error(exc: MatrixSourceError):
    return api_error(E.SOURCE_UNAVAILABLE, str(exc), details={"source": exc.source})


def _live_host():
    return current_app.extensions.get("training_matrix_live")


def _live_stopped(exc: LiveRefreshStoppedError):
    logger.warning("Training matrix live command rejected: %s", exc)
    return api_error(E.CONFLICT_STATE, str(exc))


@training_matrix_bp.route("", methods=["GET"])
def get_matrix():
    """Build the matrix from a fresh fetch of every source.

    Query params:
        name: case-insensitive substring of the person's full name
        department_id: exact department id
        role_id: exact role id
    """
    filters = MatrixFilters.from_mapping(request.args)
    try:
        matrix = svc.get_training_matrix(filters)
    except MatrixSourceError as exc:
        return _source_error(exc)
    return jsonify(matrix.to_dict()), 200


@training_matrix_bp.route("/export", methods=["GET"])
def export_matrix():
    """Download the filtered matrix.

    Query params:
        format: csv | excel (default: csv)
        name / department_id / role_id: person filters
    """
    fmt = request.args.get("format", "csv").lower()
    if fmt not in svc.EXPORT_FORMATS:
        return api_error(
            E.VALIDATION_INVALID,
            "Unsupported format. Supported values: csv, excel.",
            details={"format": fmt},
        )

    filters = MatrixFilters.from_mapping(request.args)
    try:
        content, mimetype, filename = svc.export_training_matrix(filters, fmt)
    except MatrixSourceError as exc:
        return _source_error(exc)
    return Response(
        content,
        mimetype=mimetype,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@training_matrix_bp.route("/filters", methods=["GET"])
def filter_options():
    """Department and role options; roles narrowed by ``department_id``."""
    department_id = request.args.get("department_id", "").strip() or None
    return jsonify(svc.list_filter_options(department_id)), 200


# ── Live refresh ─────────────────────────────────────────────────────────


@training_matrix_bp.route("/live", methods=["GET"])
def live_state():
    host = _live_host()
    if host is None:
        return api_error(E.CONFLICT_STATE, "Live training matrix refresh is not enabled")
    state = host.state
    if state is None:
        return api_error(E.CONFLICT_STATE, "Live training matrix refresh is starting")
    return jsonify(state.to_dict()), 200


@training_matrix_bp.route("/live/refresh", methods=["POST"])
def live_refresh():
    host = _live_host()
    if host is None:
        return api_error(E.CONFLICT_STATE, "Live training matrix refresh is not enabled")
    try:
        host.request_refresh()
    except LiveRefreshStoppedError as exc:
        return _live_stopped(exc)
    return jsonify({"status": "refreshing"}), 202


@training_matrix_bp.route("/live/settings", methods=["PUT"])
def live_settings():
    """Update live refresh settings.

    Body (all optional):
        auto_refresh: bool
        interval_seconds: 10 | 30 | 60 | 300
        filters: {name, department_id, role_id}
    """
    host = _live_host()
    if host is None:
        return api_error(E.CONFLICT_STATE, "Live training matrix refresh is not enabled")

    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")

    auto_refresh = parse_bool(data.get("auto_refresh"))
    if "auto_refresh" in data and auto_refresh is None:
        return api_error(E.VALIDATION_INVALID, "auto_refresh must be a boolean")
    if "filters" in data and not isinstance(data["filters"], dict):
        return api_error(E.VALIDATION_INVALID, "filters must be an object")

    try:
        host.configure(
            auto_refresh=auto_refresh,
            interval_seconds=data.get("interval_seconds"),
        )
    except ValidationError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)
    except LiveRefreshStoppedError as exc:
        return _live_stopped(exc)

    if "filters" in data:
        try:
            host.apply_filters(MatrixFilters.from_mapping(data["filters"]))
        except LiveRefreshStoppedError as exc:
            return _live_stopped(exc)

    logger.info("Training matrix live settings updated: %s", sorted(data))
    return jsonify({"status": "accepted"}), 202
