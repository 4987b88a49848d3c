"""
Training Matrix — visible column calculation.

A training item is a column only when a visible person has a current
assignment or a historical completion for it. Columns are ordered modules
first, then documents, each in catalog order.
"""

from __future__ import annotations

from itertools import chain
from typing import Iterable, Sequence

from app.services.training_matrix.keys import CompletionRecord, Person, TrainingItem


def referenced_item_keys(
    people: Iterable[Person],
    *record_sets: Iterable[CompletionRecord],
) -> set:
    """Item keys referenced by any record that belongs to one of ``people``."""
    visible = {person.key for person in people}
    return {
        record.key.item
        for record in chain.from_iterable(record_sets)
        if record.key.person in visible
    }


def visible_items(
    people: Iterable[Person],
    modules: Sequence[TrainingItem],
    documents: Sequence[TrainingItem],
    current: Iterable[CompletionRecord],
    historical: Iterable[CompletionRecord],
) -> tuple[TrainingItem, ...]:
    referenced = referenced_item_keys(people, current, historical)
    return tuple(item for item in chain(modules, documents) if item.key in referenced)
