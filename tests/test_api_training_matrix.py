"""
Tests: Training Matrix API (one-shot matrix, exports, filter options).

Covers:
  - GET /api/v1/training-matrix builds scenarios A–C from the database
  - Department filter drops columns no visible person references (scenario D)
  - Missing user_training_completions table degrades to current-only (scenario E)
  - Missing required table returns 503 ERR_SOURCE_UNAVAILABLE naming the source
  - Users / items without natural ids are rows / excluded columns
  - CSV and Excel downloads; unsupported format returns 400
  - Filter options: sorted, blanks dropped, roles narrowed by department
  - Health endpoints

All test data created via ORM helpers that commit (matrix queries run on
the source gateway's worker thread).

pytest markers: integration
"""

from __future__ import annotations

import csv
import io
from datetime import datetime, timezone

import pytest
from openpyxl import load_workbook

from app.models import db
from app.models.training import (
    Department,
    Document,
    Module,
    Role,
    User,
    UserAssignment,
    UserTrainingCompletion,
)

pytestmark = pytest.mark.integration


# ── ORM helpers ───────────────────────────────────────────────────────────────


def _make_department(name: str) -> int:
    dept = Department(name=name)
    db.session.add(dept)
    db.session.commit()
    return dept.id


def _make_role(title: str, department_id: int | None = None) -> int:
    role = Role(title=title, department_id=department_id)
    db.session.add(role)
    db.session.commit()
    return role.id


def _make_user(auth_id, first, last, department_id=None, role_id=None) -> None:
    db.session.add(User(
        auth_id=auth_id,
        first_name=first,
        last_name=last,
        department_id=department_id,
        role_id=role_id,
    ))
    db.session.commit()


def _make_module(ref_id, name) -> None:
    db.session.add(Module(ref_id=ref_id, name=name))
    db.session.commit()


def _make_document(ref_id, title) -> None:
    db.session.add(Document(ref_id=ref_id, title=title))
    db.session.commit()


def _assign(auth_id, item_id, item_type="module", completed_at=None) -> None:
    db.session.add(UserAssignment(
        auth_id=auth_id, item_id=item_id, item_type=item_type, completed_at=completed_at,
    ))
    db.session.commit()


def _archive(auth_id, item_id, item_type="module", completed_at=None) -> None:
    db.session.add(UserTrainingCompletion(
        auth_id=auth_id, item_id=item_id, item_type=item_type, completed_at=completed_at,
    ))
    db.session.commit()


def _ts(year, month, day):
    return datetime(year, month, day, 9, 0, tzinfo=timezone.utc)


def _seed_scenarios():
    """P1/M1 complete over history, P2/M2 historical only, P3/M3 incomplete over history."""
    ops = _make_department("Operations")
    quality = _make_department("Quality")
    _make_user("P1", "Ann", "Lee", department_id=ops)
    _make_user("P2", "Bob", "Ray", department_id=quality)
    _make_user("P3", "Cid", "Moe", department_id=ops)
    _make_module("M1", "Forklift Safety")
    _make_module("M2", "GMP Basics")
    _make_module("M3", "Lockout Tagout")
    _make_document("D1", "Cleaning SOP")
    _assign("P1", "M1", completed_at=_ts(2024, 1, 10))
    _assign("P3", "M3")
    _assign("P1", "D1", item_type="document", completed_at=_ts(2024, 2, 1))
    _archive("P1", "M1", completed_at=_ts(2023, 1, 1))
    _archive("P2", "M2", completed_at=_ts(2022, 5, 5))
    _archive("P3", "M3", completed_at=_ts(2021, 3, 3))
    return {"operations": ops, "quality": quality}


def _cells_by_person(payload):
    """{auth_id: {column_id: (status, date)}}"""
    ids = [col["id"] for col in payload["columns"]]
    return {
        row["auth_id"]: {
            col_id: (cell["status"], cell["date"]) for col_id, cell in zip(ids, row["cells"])
        }
        for row in payload["rows"]
    }


# ═════════════════════════════════════════════════════════════════════════════
# GET /training-matrix
# ═════════════════════════════════════════════════════════════════════════════


def test_matrix_resolves_current_and_historical(client):
    _seed_scenarios()

    res = client.get("/api/v1/training-matrix")
    assert res.status_code == 200
    payload = res.get_json()

    assert [c["id"] for c in payload["columns"]] == ["M1", "M2", "M3", "D1"]
    assert payload["columns"][3]["type"] == "document"
    cells = _cells_by_person(payload)
    assert cells["P1"]["M1"] == ("complete", "2024-01-10")
    assert cells["P2"]["M2"] == ("historical", "2022-05-05")
    assert cells["P3"]["M3"] == ("incomplete", None)
    assert cells["P2"]["M1"] == ("unassigned", None)
    assert payload["has_history"] is True
    assert payload["empty_reason"] is None


def test_department_filter_drops_unreferenced_columns(client):
    depts = _seed_scenarios()

    res = client.get(f"/api/v1/training-matrix?department_id={depts['quality']}")
    payload = res.get_json()

    assert [r["auth_id"] for r in payload["rows"]] == ["P2"]
    assert [c["id"] for c in payload["columns"]] == ["M2"]


def test_name_filter_with_no_match_reports_no_people(client):
    _seed_scenarios()

    payload = client.get("/api/v1/training-matrix?name=zed").get_json()
    assert payload["rows"] == []
    assert payload["columns"] == []
    assert payload["empty_reason"] == "no_people"


def test_missing_history_table_degrades_gracefully(client):
    _seed_scenarios()
    UserTrainingCompletion.__table__.drop(db.engine)

    res = client.get("/api/v1/training-matrix")
    assert res.status_code == 200
    payload = res.get_json()

    assert payload["has_history"] is False
    assert [c["id"] for c in payload["columns"]] == ["M1", "M3", "D1"]
    cells = _cells_by_person(payload)
    assert cells["P1"]["M1"] == ("complete", "2024-01-10")
    assert cells["P3"]["M3"] == ("incomplete", None)
    assert "P2" in cells


def test_missing_required_table_returns_503(client):
    _seed_scenarios()
    Document.__table__.drop(db.engine)

    res = client.get("/api/v1/training-matrix")
    assert res.status_code == 503
    body = res.get_json()
    assert body["code"] == "ERR_SOURCE_UNAVAILABLE"
    assert body["details"] == {"source": "documents"}
    assert body["error"].startswith("Failed to load documents")


def test_users_and_items_without_ids(client):
    _make_user(None, "Ann", "Lee")
    _make_user(None, "Ann", "Lee")
    _make_user("P1", "Bob", "Ray")
    _make_module(None, "Orphan Module")
    _make_module("M1", "Forklift Safety")
    _assign("P1", "M1", completed_at=_ts(2024, 1, 10))
    _assign(None, "M1")

    payload = client.get("/api/v1/training-matrix").get_json()

    assert len(payload["rows"]) == 3
    assert len({r["key"] for r in payload["rows"]}) == 3
    assert [c["id"] for c in payload["columns"]] == ["M1"]
    assert payload["data_quality"]["people_without_id"] == 2
    assert payload["data_quality"]["modules_without_id"] == 1
    assert payload["data_quality"]["skipped_assignments"] == 1


def test_empty_database_returns_empty_matrix(client):
    res = client.get("/api/v1/training-matrix")
    assert res.status_code == 200
    assert res.get_json()["empty_reason"] == "no_people"


# ═════════════════════════════════════════════════════════════════════════════
# Exports
# ═════════════════════════════════════════════════════════════════════════════


def test_export_csv(client):
    _seed_scenarios()

    res = client.get("/api/v1/training-matrix/export?format=csv")
    assert res.status_code == 200
    assert res.mimetype == "text/csv"
    assert "training-matrix-with-history.csv" in res.headers["Content-Disposition"]

    rows = list(csv.reader(io.StringIO(res.data.decode("utf-8"))))
    assert rows[0] == [
        "User", "Forklift Safety", "GMP Basics", "Lockout Tagout", "Cleaning SOP (Document)",
    ]
    assert rows[1] == ["Ann Lee", "10/01/24", "", "", "01/02/24"]
    assert rows[2] == ["Bob Ray", "", "H 05/05/22", "", ""]
    assert rows[3] == ["Cid Moe", "", "", "NO", ""]


def test_export_csv_applies_filters(client):
    _seed_scenarios()

    res = client.get("/api/v1/training-matrix/export?format=csv&name=bob")
    rows = list(csv.reader(io.StringIO(res.data.decode("utf-8"))))
    assert rows == [["User", "GMP Basics"], ["Bob Ray", "H 05/05/22"]]


def test_export_excel(client):
    _seed_scenarios()

    res = client.get("/api/v1/training-matrix/export?format=excel")
    assert res.status_code == 200
    assert "spreadsheetml" in res.mimetype
    assert "training-matrix-with-history.xlsx" in res.headers["Content-Disposition"]

    ws = load_workbook(io.BytesIO(res.data))["Training Matrix"]
    assert ws["A1"].value == "Training Matrix (with History)"
    assert ws["A5"].value == "Ann Lee"
    assert ws["B5"].value == "10/01/24"


def test_export_unsupported_format(client):
    res = client.get("/api/v1/training-matrix/export?format=pdf")
    assert res.status_code == 400
    body = res.get_json()
    assert body["code"] == "ERR_VALIDATION_INVALID"
    assert body["details"] == {"format": "pdf"}


def test_export_source_failure_returns_503(client):
    _seed_scenarios()
    UserAssignment.__table__.drop(db.engine)

    res = client.get("/api/v1/training-matrix/export?format=csv")
    assert res.status_code == 503
    assert res.get_json()["details"] == {"source": "assignments"}


# ═════════════════════════════════════════════════════════════════════════════
# Filter options
# ═════════════════════════════════════════════════════════════════════════════


def test_filter_options_sorted_and_blank_dropped(client):
    quality = _make_department("Quality")
    ops = _make_department("Operations")
    _make_department("   ")
    _make_role("Supervisor", ops)
    _make_role("Auditor", quality)
    _make_role("", ops)

    res = client.get("/api/v1/training-matrix/filters")
    assert res.status_code == 200
    body = res.get_json()

    assert [d["name"] for d in body["departments"]] == ["Operations", "Quality"]
    assert [r["title"] for r in body["roles"]] == ["Auditor", "Supervisor"]
    assert body["roles"][0]["department_id"] == str(quality)


def test_filter_options_roles_narrowed_by_department(client):
    ops = _make_department("Operations")
    quality = _make_department("Quality")
    _make_role("Supervisor", ops)
    _make_role("Operator", ops)
    _make_role("Auditor", quality)

    body = client.get(f"/api/v1/training-matrix/filters?department_id={ops}").get_json()
    assert [r["title"] for r in body["roles"]] == ["Operator", "Supervisor"]
    assert len(body["departments"]) == 2


# ═════════════════════════════════════════════════════════════════════════════
# Live endpoints without a live host / health
# ═════════════════════════════════════════════════════════════════════════════


def test_live_endpoints_conflict_when_disabled(client):
    assert client.get("/api/v1/training-matrix/live").status_code == 409
    assert client.post("/api/v1/training-matrix/live/refresh").status_code == 409
    res = client.put("/api/v1/training-matrix/live/settings", json={"auto_refresh": False})
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_CONFLICT_STATE"


def test_health_endpoints(client):
    assert client.get("/api/v1/health").get_json()["status"] == "ok"
    assert client.get("/api/v1/health/ready").status_code == 200

    res = client.get("/api/v1/health/live")
    assert res.status_code == 200
    checks = res.get_json()["checks"]
    assert checks["database"]["status"] == "ok"
    assert checks["training_tables"]["user_assignments"] == "ok"
    assert checks["live_refresh"] == {"status": "disabled"}


def test_health_live_tolerates_missing_history_table(client):
    UserTrainingCompletion.__table__.drop(db.engine)

    res = client.get("/api/v1/health/live")
    assert res.status_code == 200
    assert res.get_json()["checks"]["training_tables"]["user_training_completions"] == "missing"
