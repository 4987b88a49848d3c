"""
Training Matrix — matrix materialization.

``build_matrix`` turns visible people × visible items into a dense grid of
``ResolvedCell`` values. Both record sets are indexed by ``AssignmentKey``
once, before the cell loop, so every cell is a dict lookup.

``materialize`` is the whole read-side pipeline for one raw snapshot:
normalize → filter people → pick visible columns → build.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from app.services.training_matrix.columns import visible_items
from app.services.training_matrix.filters import MatrixFilters, filter_people
from app.services.training_matrix.keys import (
    AssignmentKey,
    CompletionRecord,
    ItemKind,
    Person,
    TrainingItem,
    normalize_items,
    normalize_people,
    normalize_records,
)
from app.services.training_matrix.sources import SourceSnapshot
from app.services.training_matrix.status import ResolvedCell, resolve_cell

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataQuality:
    """Counts of rows that needed fallback keys, shared an id, or were skipped in one cycle."""

    people_without_id: int = 0
    duplicate_people: int = 0
    modules_without_id: int = 0
    documents_without_id: int = 0
    skipped_assignments: int = 0
    skipped_historical: int = 0

    def to_dict(self) -> dict:
        return {
            "people_without_id": self.people_without_id,
            "duplicate_people": self.duplicate_people,
            "modules_without_id": self.modules_without_id,
            "documents_without_id": self.documents_without_id,
            "skipped_assignments": self.skipped_assignments,
            "skipped_historical": self.skipped_historical,
        }


@dataclass(frozen=True)
class MatrixRow:
    person: Person
    cells: tuple[ResolvedCell, ...]

    def to_dict(self) -> dict:
        data = self.person.to_dict()
        data["cells"] = [cell.to_dict() for cell in self.cells]
        return data


@dataclass(frozen=True)
class TrainingMatrix:
    columns: tuple[TrainingItem, ...] = ()
    rows: tuple[MatrixRow, ...] = ()
    has_history: bool = False
    data_quality: DataQuality = field(default_factory=DataQuality)

    @property
    def empty_reason(self) -> str | None:
        if not self.rows:
            return "no_people"
        if not self.columns:
            return "no_items"
        return None

    def cell(self, person_key, item_key) -> ResolvedCell | None:
        """Cell for a (person, item) key pair, or None if either is not visible."""
        col = next((i for i, item in enumerate(self.columns) if item.key == item_key), None)
        if col is None:
            return None
        for row in self.rows:
            if row.person.key == person_key:
                return row.cells[col]
        return None

    def to_dict(self) -> dict:
        return {
            "columns": [item.to_dict() for item in self.columns],
            "rows": [row.to_dict() for row in self.rows],
            "has_history": self.has_history,
            "empty_reason": self.empty_reason,
            "data_quality": self.data_quality.to_dict(),
        }


@dataclass(frozen=True)
class NormalizedData:
    people: tuple[Person, ...]
    modules: tuple[TrainingItem, ...]
    documents: tuple[TrainingItem, ...]
    current: tuple[CompletionRecord, ...]
    historical: tuple[CompletionRecord, ...]
    has_history: bool
    data_quality: DataQuality


def index_records(records: Iterable[CompletionRecord]) -> dict[AssignmentKey, CompletionRecord]:
    """Index records by composite key; on duplicates the last record wins."""
    index: dict[AssignmentKey, CompletionRecord] = {}
    for record in records:
        index[record.key] = record
    return index


def build_matrix(
    people: Sequence[Person],
    items: Sequence[TrainingItem],
    current: Iterable[CompletionRecord],
    historical: Iterable[CompletionRecord],
    *,
    has_history: bool = False,
    data_quality: DataQuality | None = None,
) -> TrainingMatrix:
    current_index = index_records(current)
    historical_index = index_records(historical)
    rows = []
    for person in people:
        cells = []
        for item in items:
            key = AssignmentKey(person.key, item.key, item.kind)
            cells.append(resolve_cell(current_index.get(key), historical_index.get(key)))
        rows.append(MatrixRow(person, tuple(cells)))
    return TrainingMatrix(
        columns=tuple(items),
        rows=tuple(rows),
        has_history=has_history,
        data_quality=data_quality or DataQuality(),
    )


def normalize_snapshot(snapshot: SourceSnapshot) -> NormalizedData:
    people = normalize_people(snapshot.people)
    modules = normalize_items(snapshot.modules, ItemKind.MODULE, "name")
    documents = normalize_items(snapshot.documents, ItemKind.DOCUMENT, "title")
    current = normalize_records(snapshot.assignments, "assignments")
    historical = normalize_records(snapshot.historical_completions, "historical completions")
    return NormalizedData(
        people=people.items,
        modules=modules.items,
        documents=documents.items,
        current=current.items,
        historical=historical.items,
        has_history=bool(snapshot.historical_completions),
        data_quality=DataQuality(
            people_without_id=people.flagged,
            duplicate_people=people.duplicates,
            modules_without_id=modules.flagged,
            documents_without_id=documents.flagged,
            skipped_assignments=current.flagged,
            skipped_historical=historical.flagged,
        ),
    )


def materialize(snapshot: SourceSnapshot, filters: MatrixFilters | None = None) -> TrainingMatrix:
    """Run the full pipeline for one raw snapshot and return a new matrix."""
    data = normalize_snapshot(snapshot)
    people = filter_people(data.people, filters)
    items = visible_items(people, data.modules, data.documents, data.current, data.historical)
    matrix = build_matrix(
        people,
        items,
        data.current,
        data.historical,
        has_history=data.has_history,
        data_quality=data.data_quality,
    )
    logger.debug(
        "Training matrix built: %d rows x %d columns", len(matrix.rows), len(matrix.columns),
    )
    return matrix
