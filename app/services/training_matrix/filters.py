"""
Training Matrix — person filters.

All predicates are ANDed. An empty string means "no predicate", so the
department/role selectors' "All" option maps to ``""``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from app.services.training_matrix.keys import Person


def _clean(value: Any) -> str:
    return "" if value is None else str(value).strip()


@dataclass(frozen=True)
class MatrixFilters:
    name: str = ""
    department_id: str = ""
    role_id: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "MatrixFilters":
        """Build filters from request args or a JSON body."""
        data = data or {}
        return cls(
            name=_clean(data.get("name")),
            department_id=_clean(data.get("department_id")),
            role_id=_clean(data.get("role_id")),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.name or self.department_id or self.role_id)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "department_id": self.department_id,
            "role_id": self.role_id,
        }


def filter_people(
    people: Sequence[Person],
    filters: MatrixFilters | None = None,
) -> Sequence[Person]:
    """Return the people matching every active predicate, in input order.

    With no active predicate the input sequence itself is returned.
    """
    if filters is None or filters.is_empty:
        return people
    name_q = filters.name.lower()
    return tuple(
        person for person in people
        if (not name_q or name_q in person.name.lower())
        and (not filters.department_id or person.department_id == filters.department_id)
        and (not filters.role_id or person.role_id == filters.role_id)
    )
