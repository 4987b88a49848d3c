"""
Tests: training matrix engine (pure, no database).

Covers:
    - Key normalization: natural vs fallback keys, uniqueness for missing ids,
      namespacing between people and items
    - Record normalization: unusable rows skipped and counted
    - Status precedence for every current/historical combination, including
      the incomplete-assignment-hides-history rule and malformed timestamps
    - Person filters: identity with no predicates, AND semantics
    - Column visibility: only items referenced by visible people, modules first
    - Matrix build: scenarios A–D, idempotence, last duplicate wins,
      fallback-keyed people, shared auth_ids, empty reasons, data-quality
      counts and warnings

pytest markers: unit
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

import pytest

from app.services.training_matrix.builder import build_matrix, materialize
from app.services.training_matrix.columns import visible_items
from app.services.training_matrix.filters import MatrixFilters, filter_people
from app.services.training_matrix.keys import (
    AssignmentKey,
    EntityKey,
    ItemKind,
    item_key,
    normalize_items,
    normalize_people,
    normalize_records,
    person_key,
    record_key,
)
from app.services.training_matrix.sources import SourceSnapshot
from app.services.training_matrix.status import CellStatus, ResolvedCell, resolve_cell


# ── Helpers ──────────────────────────────────────────────────────────────────


def _person(auth_id, first="", last="", department_id=None, role_id=None):
    return {
        "auth_id": auth_id,
        "first_name": first,
        "last_name": last,
        "department_id": department_id,
        "role_id": role_id,
    }


def _record(auth_id, item_id, item_type="module", completed_at=None):
    return {
        "auth_id": auth_id,
        "item_id": item_id,
        "item_type": item_type,
        "completed_at": completed_at,
    }


def _snapshot(people=(), modules=(), documents=(), assignments=(), historical=()):
    """``modules`` / ``documents`` are (id, title) pairs."""
    return SourceSnapshot(
        people=tuple(people),
        modules=tuple({"id": ref, "name": name} for ref, name in modules),
        documents=tuple({"id": ref, "title": title} for ref, title in documents),
        assignments=tuple(assignments),
        historical_completions=tuple(historical),
    )


def _scenario_snapshot():
    """P1/M1 complete over history, P2/M2 historical only, P3/M3 incomplete over history."""
    return _snapshot(
        people=[
            _person("P1", "Ann", "Lee", department_id=10, role_id=100),
            _person("P2", "Bob", "Ray", department_id=20, role_id=200),
            _person("P3", "Cid", "Moe", department_id=10, role_id=101),
        ],
        modules=[("M1", "Forklift Safety"), ("M2", "GMP Basics"), ("M3", "Lockout Tagout")],
        assignments=[
            _record("P1", "M1", completed_at="2024-01-10T09:30:00"),
            _record("P3", "M3", completed_at=None),
        ],
        historical=[
            _record("P1", "M1", completed_at="2023-01-01"),
            _record("P2", "M2", completed_at="2022-05-05"),
            _record("P3", "M3", completed_at="2021-03-03"),
        ],
    )


def _column_ids(matrix):
    return [item.ref_id for item in matrix.columns]


def _cell(matrix, auth_id, ref_id, kind=ItemKind.MODULE):
    namespace = "mod" if kind is ItemKind.MODULE else "doc"
    return matrix.cell(EntityKey("user", auth_id), EntityKey(namespace, ref_id))


# ═════════════════════════════════════════════════════════════════════════════
# Key normalization
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.unit
def test_natural_person_key_is_stable():
    assert person_key("abc", 0) == person_key("abc", 7)
    assert str(person_key("abc", 0)) == "user-abc"


@pytest.mark.unit
def test_missing_person_ids_get_distinct_fallback_keys():
    rows = [_person(None, "Ann", "Lee") for _ in range(5)] + [_person("", "Ann", "Lee")]
    result = normalize_people(rows)

    keys = [p.key for p in result.items]
    assert len(set(keys)) == 6
    assert all(k.fallback for k in keys)
    assert result.flagged == 6


@pytest.mark.unit
def test_fallback_key_includes_index_and_name_fragments():
    key = person_key(None, 3, "Ann", "Lee")
    assert key.fallback
    assert str(key) == "user:row-3-Ann-Lee"
    assert str(person_key(None, 4, "", None)) == "user:row-4"


@pytest.mark.unit
def test_fallback_key_never_equals_natural_key():
    fallback = person_key(None, 3, "Ann", "Lee")
    natural = person_key("row-3-Ann-Lee", 0)
    assert fallback != natural
    assert str(fallback) != str(natural)


@pytest.mark.unit
def test_person_and_item_keys_are_namespaced():
    assert person_key("X1", 0) != item_key(ItemKind.MODULE, "X1", 0)
    assert item_key(ItemKind.MODULE, "X1", 0) != item_key(ItemKind.DOCUMENT, "X1", 0)
    assert str(item_key(ItemKind.DOCUMENT, None, 2)) == "doc:col-2"


@pytest.mark.unit
def test_normalize_people_builds_display_fields():
    result = normalize_people([_person(" P1 ", "Ann", None, department_id=10, role_id=None)])
    person = result.items[0]

    assert person.auth_id == "P1"
    assert person.name == "Ann"
    assert person.department_id == "10"
    assert person.role_id == ""
    assert result.flagged == 0


@pytest.mark.unit
def test_missing_person_ids_log_a_fallback_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="app.services.training_matrix.keys"):
        normalize_people([_person(None, "Ann", "Lee"), _person("P1"), _person("", "Bob")])

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "2 user(s) have no auth_id" in warnings[0].getMessage()


@pytest.mark.unit
def test_shared_auth_id_is_counted_and_logged(caplog):
    rows = [_person("P1", "Ann"), _person("P2", "Bob"), _person("P1", "Ana"), _person("P1", "An")]
    with caplog.at_level(logging.WARNING, logger="app.services.training_matrix.keys"):
        result = normalize_people(rows)

    assert result.duplicates == 2
    assert result.flagged == 0
    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert messages == [
        "Training matrix: auth_id shared by several users: P1; their rows show the same cells",
    ]

    matrix = materialize(_snapshot(people=rows))
    assert matrix.data_quality.duplicate_people == 2
    assert matrix.to_dict()["data_quality"]["duplicate_people"] == 2


@pytest.mark.unit
def test_normalize_items_counts_missing_ids():
    result = normalize_items(
        [{"id": "M1", "name": "A"}, {"id": None, "name": "B"}, {"name": "C"}],
        ItemKind.MODULE,
        "name",
    )
    assert result.flagged == 2
    assert [i.title for i in result.items] == ["A", "B", "C"]
    assert len({i.key for i in result.items}) == 3


@pytest.mark.unit
def test_record_key_rejects_unusable_rows():
    assert record_key(None, "M1", "module") is None
    assert record_key("P1", None, "module") is None
    assert record_key("P1", "M1", "course") is None
    assert record_key("P1", "M1", "document") == AssignmentKey(
        EntityKey("user", "P1"), EntityKey("doc", "M1"), ItemKind.DOCUMENT,
    )


@pytest.mark.unit
def test_normalize_records_skips_and_counts():
    result = normalize_records([
        _record("P1", "M1"),
        _record(None, "M1"),
        _record("P1", None),
        _record("P1", "M1", item_type="unknown"),
    ])
    assert len(result.items) == 1
    assert result.flagged == 3


# ═════════════════════════════════════════════════════════════════════════════
# Status precedence
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.unit
@pytest.mark.parametrize(
    "current, historical, expected",
    [
        ({"completed_at": "2024-01-10"}, {"completed_at": "2023-01-01"},
         ResolvedCell(CellStatus.COMPLETE, date(2024, 1, 10))),
        ({"completed_at": "2024-01-10"}, None,
         ResolvedCell(CellStatus.COMPLETE, date(2024, 1, 10))),
        ({"completed_at": None}, {"completed_at": "2023-01-01"},
         ResolvedCell(CellStatus.INCOMPLETE)),
        ({"completed_at": None}, None, ResolvedCell(CellStatus.INCOMPLETE)),
        (None, {"completed_at": "2022-05-05"},
         ResolvedCell(CellStatus.HISTORICAL, date(2022, 5, 5))),
        (None, {"completed_at": None}, ResolvedCell(CellStatus.UNASSIGNED)),
        (None, None, ResolvedCell(CellStatus.UNASSIGNED)),
    ],
)
def test_resolve_cell_precedence(current, historical, expected):
    assert resolve_cell(current, historical) == expected


@pytest.mark.unit
def test_malformed_timestamp_is_treated_as_absent():
    assert resolve_cell({"completed_at": "not-a-date"}).status is CellStatus.INCOMPLETE
    assert resolve_cell(None, {"completed_at": "31/31/2020"}).status is CellStatus.UNASSIGNED


@pytest.mark.unit
def test_resolve_cell_accepts_datetime_values():
    ts = datetime(2024, 1, 10, 23, 15, tzinfo=timezone.utc)
    cell = resolve_cell({"completed_at": ts})
    assert cell == ResolvedCell(CellStatus.COMPLETE, date(2024, 1, 10))
    assert cell.to_dict() == {"status": "complete", "date": "2024-01-10"}


# ═════════════════════════════════════════════════════════════════════════════
# Filters and column visibility
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.unit
def test_filter_without_predicates_is_identity():
    people = normalize_people(_scenario_snapshot().people).items
    assert filter_people(people) is people
    assert filter_people(people, MatrixFilters()) is people


@pytest.mark.unit
def test_filter_predicates_are_anded():
    people = normalize_people(_scenario_snapshot().people).items

    by_dept = filter_people(people, MatrixFilters(department_id="10"))
    assert [p.auth_id for p in by_dept] == ["P1", "P3"]

    by_dept_and_role = filter_people(people, MatrixFilters(department_id="10", role_id="101"))
    assert [p.auth_id for p in by_dept_and_role] == ["P3"]

    blank = filter_people(people, MatrixFilters.from_mapping({"name": "  "}))
    assert blank is people


@pytest.mark.unit
def test_name_filter_is_case_insensitive_substring():
    people = normalize_people(_scenario_snapshot().people).items
    result = filter_people(people, MatrixFilters.from_mapping({"name": "n l"}))
    assert [p.auth_id for p in result] == ["P1"]


@pytest.mark.unit
def test_filters_from_mapping_treats_none_as_no_predicate():
    filters = MatrixFilters.from_mapping({"name": None, "department_id": " 10 "})
    assert filters == MatrixFilters(name="", department_id="10", role_id="")
    assert MatrixFilters.from_mapping(None).is_empty


@pytest.mark.unit
def test_visible_items_orders_modules_before_documents():
    snapshot = _snapshot(
        people=[_person("P1")],
        modules=[("M2", "Alpha"), ("M1", "Beta")],
        documents=[("D1", "Aardvark SOP")],
        assignments=[_record("P1", "D1", "document"), _record("P1", "M1")],
        historical=[_record("P1", "M2")],
    )
    matrix = materialize(snapshot)

    assert _column_ids(matrix) == ["M2", "M1", "D1"]
    assert [item.kind for item in matrix.columns] == [
        ItemKind.MODULE, ItemKind.MODULE, ItemKind.DOCUMENT,
    ]


@pytest.mark.unit
def test_items_without_references_are_not_columns():
    people = normalize_people([_person("P1")]).items
    modules = normalize_items([{"id": "M1", "name": "A"}, {"id": None, "name": "B"}],
                              ItemKind.MODULE, "name").items
    current = normalize_records([_record("P9", "M1")]).items

    assert visible_items(people, modules, (), current, ()) == ()


# ═════════════════════════════════════════════════════════════════════════════
# Matrix build
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.unit
def test_scenarios_a_b_c():
    matrix = materialize(_scenario_snapshot())

    assert _cell(matrix, "P1", "M1") == ResolvedCell(CellStatus.COMPLETE, date(2024, 1, 10))
    assert _cell(matrix, "P2", "M2") == ResolvedCell(CellStatus.HISTORICAL, date(2022, 5, 5))
    assert _cell(matrix, "P3", "M3") == ResolvedCell(CellStatus.INCOMPLETE)
    assert _cell(matrix, "P1", "M2").status is CellStatus.UNASSIGNED
    assert matrix.has_history is True


@pytest.mark.unit
def test_scenario_d_department_filter_drops_unreferenced_column():
    full = materialize(_scenario_snapshot())
    assert _column_ids(full) == ["M1", "M2", "M3"]

    filtered = materialize(_scenario_snapshot(), MatrixFilters(department_id="20"))
    assert [row.person.auth_id for row in filtered.rows] == ["P2"]
    assert _column_ids(filtered) == ["M2"]


@pytest.mark.unit
def test_build_is_idempotent():
    assert materialize(_scenario_snapshot()) == materialize(_scenario_snapshot())


@pytest.mark.unit
def test_build_does_not_mutate_inputs():
    snapshot = _scenario_snapshot()
    people = normalize_people(snapshot.people).items
    current = normalize_records(snapshot.assignments).items
    before = (people, current)

    build_matrix(people, (), current, ())
    assert (people, current) == before


@pytest.mark.unit
def test_duplicate_records_last_one_wins():
    snapshot = _snapshot(
        people=[_person("P1")],
        modules=[("M1", "A")],
        assignments=[
            _record("P1", "M1", completed_at="2024-01-01"),
            _record("P1", "M1", completed_at=None),
        ],
    )
    assert _cell(materialize(snapshot), "P1", "M1").status is CellStatus.INCOMPLETE


@pytest.mark.unit
def test_people_with_fallback_keys_are_rows():
    snapshot = _snapshot(
        people=[_person(None, "Ann", "Lee"), _person(None, "Ann", "Lee"), _person("P1")],
        modules=[("M1", "A")],
        assignments=[_record("P1", "M1", completed_at="2024-02-02")],
    )
    matrix = materialize(snapshot)

    assert len(matrix.rows) == 3
    assert len({row.person.key for row in matrix.rows}) == 3
    assert [c.status for c in matrix.rows[0].cells] == [CellStatus.UNASSIGNED]
    assert matrix.data_quality.people_without_id == 2


@pytest.mark.unit
def test_cell_is_none_for_hidden_pairs():
    matrix = materialize(_scenario_snapshot(), MatrixFilters(department_id="20"))
    assert _cell(matrix, "P1", "M1") is None
    assert _cell(matrix, "P2", "M3") is None


@pytest.mark.unit
def test_empty_reasons():
    assert materialize(_snapshot()).empty_reason == "no_people"
    no_items = materialize(_snapshot(people=[_person("P1")], modules=[("M1", "A")]))
    assert no_items.empty_reason == "no_items"
    assert materialize(_scenario_snapshot()).empty_reason is None


@pytest.mark.unit
def test_to_dict_payload_shape():
    payload = materialize(_scenario_snapshot(), MatrixFilters(name="bob")).to_dict()

    assert payload["columns"] == [
        {"key": "mod-M2", "id": "M2", "title": "GMP Basics", "type": "module"},
    ]
    assert payload["rows"][0]["key"] == "user-P2"
    assert payload["rows"][0]["cells"] == [{"status": "historical", "date": "2022-05-05"}]
    assert payload["has_history"] is True
    assert payload["empty_reason"] is None
    assert payload["data_quality"]["skipped_assignments"] == 0


@pytest.mark.unit
def test_data_quality_counts_skipped_records():
    snapshot = _snapshot(
        people=[_person("P1")],
        modules=[("M1", "A"), (None, "B")],
        documents=[(None, "SOP")],
        assignments=[_record("P1", "M1"), _record(None, "M1")],
        historical=[_record("P1", None)],
    )
    quality = materialize(snapshot).data_quality

    assert quality.modules_without_id == 1
    assert quality.documents_without_id == 1
    assert quality.skipped_assignments == 1
    assert quality.skipped_historical == 1
