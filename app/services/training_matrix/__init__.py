"""
Training Matrix engine.

Reconciles current training assignments with historical completions into a
per-(person, item) compliance grid and keeps it live through polling.

    keys     — entity/record keys, fallback keys for missing identifiers
    status   — precedence between current and historical records
    filters  — name/department/role person filters
    columns  — which items are visible for the filtered audience
    builder  — grid materialization
    sources  — concurrent fetch of the five data sources
    refresh  — polling state machine
    export   — CSV / Excel flattening
"""

from app.services.training_matrix.builder import TrainingMatrix, build_matrix, materialize
from app.services.training_matrix.filters import MatrixFilters, filter_people
from app.services.training_matrix.refresh import MatrixRefresher, RefreshState
from app.services.training_matrix.sources import SourceSnapshot, fetch_snapshot
from app.services.training_matrix.status import CellStatus, ResolvedCell, resolve_cell

__all__ = [
    "CellStatus",
    "MatrixFilters",
    "MatrixRefresher",
    "RefreshState",
    "ResolvedCell",
    "SourceSnapshot",
    "TrainingMatrix",
    "build_matrix",
    "fetch_snapshot",
    "filter_people",
    "materialize",
    "resolve_cell",
]
