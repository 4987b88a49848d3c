"""
Training Matrix — key normalization.

Every person and training item on the matrix gets an ``EntityKey``:

    natural key   user-<auth_id>          mod-<ref_id>     doc-<ref_id>
    fallback key  user:row-<idx>-<names>  mod:col-<idx>    doc:col-<idx>

Fallback keys are produced when the natural identifier is missing. They are
unique within one fetch cycle because the positional index is unique, and
they can never equal a natural key: ``EntityKey`` equality includes the
``fallback`` flag, and the rendered forms use different separators.

Assignment and completion rows are normalized into ``CompletionRecord``
values keyed by ``AssignmentKey`` (person key + item key + item kind).
Rows missing either reference, or with an unknown item kind, are skipped
and counted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)


class ItemKind(str, Enum):
    MODULE = "module"
    DOCUMENT = "document"

    @classmethod
    def parse(cls, value: Any) -> "ItemKind | None":
        try:
            return cls(value)
        except ValueError:
            return None


PERSON_NAMESPACE = "user"
ITEM_NAMESPACES: dict[ItemKind, str] = {
    ItemKind.MODULE: "mod",
    ItemKind.DOCUMENT: "doc",
}


@dataclass(frozen=True)
class EntityKey:
    """Tagged identity of a matrix row or column."""

    namespace: str
    value: str
    fallback: bool = False

    def __str__(self) -> str:
        separator = ":" if self.fallback else "-"
        return f"{self.namespace}{separator}{self.value}"


@dataclass(frozen=True)
class AssignmentKey:
    """Composite lookup key for one (person, item, kind) cell."""

    person: EntityKey
    item: EntityKey
    kind: ItemKind


@dataclass(frozen=True)
class Person:
    key: EntityKey
    auth_id: str | None
    name: str
    department_id: str
    role_id: str

    def to_dict(self) -> dict:
        return {
            "key": str(self.key),
            "auth_id": self.auth_id,
            "name": self.name,
            "department_id": self.department_id,
            "role_id": self.role_id,
        }


@dataclass(frozen=True)
class TrainingItem:
    key: EntityKey
    ref_id: str | None
    title: str
    kind: ItemKind

    def to_dict(self) -> dict:
        return {
            "key": str(self.key),
            "id": self.ref_id,
            "title": self.title,
            "type": self.kind.value,
        }


@dataclass(frozen=True)
class CompletionRecord:
    """One normalized current-assignment or historical-completion row."""

    key: AssignmentKey
    completed_at: Any = None


@dataclass(frozen=True)
class Normalized:
    """Normalized entities or records plus how many needed special handling.

    ``flagged`` counts fallback keys for entities and skipped rows for records.
    ``duplicates`` counts people whose natural id was already seen in the batch.
    """

    items: tuple
    flagged: int = 0
    duplicates: int = 0


# ── Key construction ─────────────────────────────────────────────────────────


def _identifier(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def natural_key(namespace: str, identifier: Any) -> EntityKey | None:
    """Key for a present natural identifier, or None when it is missing."""
    ident = _identifier(identifier)
    if ident is None:
        return None
    return EntityKey(namespace, ident)


def person_key(auth_id: Any, index: int, first_name: Any = "", last_name: Any = "") -> EntityKey:
    key = natural_key(PERSON_NAMESPACE, auth_id)
    if key is not None:
        return key
    fragments = [f"row-{index}"]
    fragments.extend(
        str(part).strip() for part in (first_name, last_name) if part and str(part).strip()
    )
    return EntityKey(PERSON_NAMESPACE, "-".join(fragments), fallback=True)


def item_key(kind: ItemKind, ref_id: Any, index: int) -> EntityKey:
    namespace = ITEM_NAMESPACES[kind]
    key = natural_key(namespace, ref_id)
    if key is not None:
        return key
    return EntityKey(namespace, f"col-{index}", fallback=True)


# ── Normalization of raw source rows ─────────────────────────────────────────


def _display_name(first_name: Any, last_name: Any) -> str:
    return f"{first_name or ''} {last_name or ''}".strip()


def _ref(value: Any) -> str:
    return "" if value is None else str(value)


def normalize_people(rows: Iterable[Mapping[str, Any]]) -> Normalized:
    """Turn raw ``users`` rows into ``Person`` values with guaranteed keys."""
    people = []
    fallback_count = 0
    seen = set()
    duplicates = set()
    duplicate_count = 0
    for index, row in enumerate(rows):
        first_name = row.get("first_name")
        last_name = row.get("last_name")
        key = person_key(row.get("auth_id"), index, first_name, last_name)
        if key.fallback:
            fallback_count += 1
        elif key in seen:
            duplicates.add(key.value)
            duplicate_count += 1
        seen.add(key)
        people.append(Person(
            key=key,
            auth_id=None if key.fallback else key.value,
            name=_display_name(first_name, last_name),
            department_id=_ref(row.get("department_id")),
            role_id=_ref(row.get("role_id")),
        ))
    if fallback_count:
        logger.warning(
            "Training matrix: %d user(s) have no auth_id; using fallback keys", fallback_count,
        )
    if duplicates:
        logger.warning(
            "Training matrix: auth_id shared by several users: %s; their rows show the same cells",
            ", ".join(sorted(duplicates)),
        )
    return Normalized(tuple(people), fallback_count, duplicate_count)


def normalize_items(
    rows: Iterable[Mapping[str, Any]],
    kind: ItemKind,
    title_field: str,
) -> Normalized:
    """Turn raw module or document rows into ``TrainingItem`` values.

    Items without an id keep a fallback key so they stay addressable, but no
    record can reference them, so they never become a visible column.
    """
    items = []
    fallback_count = 0
    for index, row in enumerate(rows):
        key = item_key(kind, row.get("id"), index)
        if key.fallback:
            fallback_count += 1
        items.append(TrainingItem(
            key=key,
            ref_id=None if key.fallback else key.value,
            title=_ref(row.get(title_field)),
            kind=kind,
        ))
    if fallback_count:
        logger.warning(
            "Training matrix: %d %s(s) have no id; using fallback keys and excluding "
            "them from assignments", fallback_count, kind.value,
        )
    return Normalized(tuple(items), fallback_count)


def record_key(auth_id: Any, item_id: Any, item_type: Any) -> AssignmentKey | None:
    """Composite key for an assignment-shaped row, or None if it is unusable."""
    kind = ItemKind.parse(item_type)
    if kind is None:
        return None
    person = natural_key(PERSON_NAMESPACE, auth_id)
    item = natural_key(ITEM_NAMESPACES[kind], item_id)
    if person is None or item is None:
        return None
    return AssignmentKey(person, item, kind)


def normalize_records(rows: Iterable[Mapping[str, Any]], label: str = "records") -> Normalized:
    """Turn assignment-shaped rows into ``CompletionRecord`` values in source order."""
    records = []
    skipped = 0
    for row in rows:
        key = record_key(row.get("auth_id"), row.get("item_id"), row.get("item_type"))
        if key is None:
            skipped += 1
            continue
        records.append(CompletionRecord(key=key, completed_at=row.get("completed_at")))
    if skipped:
        logger.info("Training matrix: skipped %d unusable %s", skipped, label)
    return Normalized(tuple(records), skipped)
