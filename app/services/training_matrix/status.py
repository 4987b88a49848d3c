"""
Training Matrix — cell status resolution.

Precedence between the current assignment and the historical completion
for one (person, item) pair:

    1. current with a completion date     → complete(date)
    2. current without a completion date  → incomplete
    3. historical with a completion date  → historical(date)
    4. anything else                      → unassigned

Rule 2 does not look at the historical record: an outstanding assignment
hides an earlier completion of the same item.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Mapping

from app.utils.helpers import parse_date


class CellStatus(str, Enum):
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"
    HISTORICAL = "historical"
    UNASSIGNED = "unassigned"


@dataclass(frozen=True)
class ResolvedCell:
    status: CellStatus
    completed_on: date | None = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "date": self.completed_on.isoformat() if self.completed_on else None,
        }


UNASSIGNED = ResolvedCell(CellStatus.UNASSIGNED)
INCOMPLETE = ResolvedCell(CellStatus.INCOMPLETE)


def completion_date(fact: Any) -> date | None:
    """Completion date of a record or mapping; None when absent or unparseable."""
    if fact is None:
        return None
    if isinstance(fact, Mapping):
        raw = fact.get("completed_at")
    else:
        raw = getattr(fact, "completed_at", None)
    return parse_date(raw)


def resolve_cell(current: Any = None, historical: Any = None) -> ResolvedCell:
    """Resolve one matrix cell. Total and side-effect free."""
    if current is not None:
        completed_on = completion_date(current)
        if completed_on is not None:
            return ResolvedCell(CellStatus.COMPLETE, completed_on)
        return INCOMPLETE
    completed_on = completion_date(historical)
    if completed_on is not None:
        return ResolvedCell(CellStatus.HISTORICAL, completed_on)
    return UNASSIGNED
