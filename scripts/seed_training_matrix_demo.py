#!/usr/bin/env python3
"""
Training Matrix Platform — Demo Seed.

Creates a small plant organisation whose training matrix shows every cell
state: completed assignments, outstanding assignments, completions carried
over from a previous role, and a few legacy rows with missing identifiers.

Usage:
    python scripts/seed_training_matrix_demo.py               # reset DB + seed
    python scripts/seed_training_matrix_demo.py --no-reset    # keep existing data
    python scripts/seed_training_matrix_demo.py --no-history  # skip historical table

Then:
    flask --app wsgi run
    curl http://localhost:5000/api/v1/training-matrix
"""

import argparse
import random
import sys
from datetime import datetime, timedelta, timezone

sys.path.insert(0, ".")

from app import create_app
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

_now = datetime.now(timezone.utc)


def _days_ago(days):
    return _now - timedelta(days=days)


# ═══════════════════════════════════════════════════════════════════════════
# 1. ORGANISATION
# ═══════════════════════════════════════════════════════════════════════════

ORG = {
    "Production": ["Line Operator", "Shift Supervisor"],
    "Quality": ["QA Inspector", "QA Manager"],
    "Warehouse": ["Forklift Driver"],
}

PEOPLE = [
    ("auth-001", "Alice", "Novak", "Production", "Line Operator"),
    ("auth-002", "Bruno", "Keller", "Production", "Shift Supervisor"),
    ("auth-003", "Chen", "Wei", "Quality", "QA Inspector"),
    ("auth-004", "Dana", "Okafor", "Quality", "QA Manager"),
    ("auth-005", "Emil", "Sorensen", "Warehouse", "Forklift Driver"),
    ("auth-006", "Farah", "Haddad", "Production", "Line Operator"),
    # legacy imports without an identity-provider id
    (None, "Gino", "Russo", "Warehouse", "Forklift Driver"),
    (None, "Gino", "Russo", "Production", "Line Operator"),
]


def seed_org():
    departments, roles = {}, {}
    for dept_name, role_titles in ORG.items():
        dept = Department(name=dept_name)
        db.session.add(dept)
        db.session.flush()
        departments[dept_name] = dept
        for title in role_titles:
            role = Role(title=title, department_id=dept.id)
            db.session.add(role)
            db.session.flush()
            roles[title] = role

    for auth_id, first, last, dept_name, role_title in PEOPLE:
        db.session.add(User(
            auth_id=auth_id,
            first_name=first,
            last_name=last,
            department_id=departments[dept_name].id,
            role_id=roles[role_title].id,
        ))
    db.session.flush()
    return departments, roles


# ═══════════════════════════════════════════════════════════════════════════
# 2. CATALOG
# ═══════════════════════════════════════════════════════════════════════════

MODULES = [
    ("MOD-GMP", "GMP Fundamentals"),
    ("MOD-FORK", "Forklift Safety"),
    ("MOD-LOTO", "Lockout / Tagout"),
    ("MOD-HACCP", "HACCP Awareness"),
    ("MOD-AUDIT", "Internal Auditing"),
    (None, "Legacy Induction"),
]

DOCUMENTS = [
    ("SOP-010", "Line Clearance SOP"),
    ("SOP-022", "Deviation Handling SOP"),
    ("SOP-031", "Pallet Storage SOP"),
]

ROLE_CURRICULUM = {
    "Line Operator": [("MOD-GMP", "module"), ("MOD-LOTO", "module"), ("SOP-010", "document")],
    "Shift Supervisor": [("MOD-GMP", "module"), ("MOD-LOTO", "module"),
                         ("SOP-010", "document"), ("SOP-022", "document")],
    "QA Inspector": [("MOD-GMP", "module"), ("MOD-HACCP", "module"), ("SOP-022", "document")],
    "QA Manager": [("MOD-GMP", "module"), ("MOD-AUDIT", "module"), ("SOP-022", "document")],
    "Forklift Driver": [("MOD-FORK", "module"), ("SOP-031", "document")],
}

# Previous roles: completions that survived a role change
PREVIOUS_ROLES = {
    "auth-002": "Line Operator",
    "auth-004": "QA Inspector",
    "auth-006": "Forklift Driver",
}


def seed_catalog():
    for ref_id, name in MODULES:
        db.session.add(Module(ref_id=ref_id, name=name))
    for ref_id, title in DOCUMENTS:
        db.session.add(Document(ref_id=ref_id, title=title))
    db.session.flush()


# ═══════════════════════════════════════════════════════════════════════════
# 3. ASSIGNMENTS & HISTORY
# ═══════════════════════════════════════════════════════════════════════════

def seed_assignments(rng):
    count = 0
    for auth_id, _first, _last, _dept, role_title in PEOPLE:
        if auth_id is None:
            continue
        for item_id, item_type in ROLE_CURRICULUM[role_title]:
            completed = rng.random() < 0.65
            db.session.add(UserAssignment(
                auth_id=auth_id,
                item_id=item_id,
                item_type=item_type,
                assigned_at=_days_ago(rng.randint(60, 400)),
                completed_at=_days_ago(rng.randint(1, 59)) if completed else None,
            ))
            count += 1
    # an assignment row that lost its person reference
    db.session.add(UserAssignment(auth_id=None, item_id="MOD-GMP", item_type="module"))
    db.session.flush()
    return count


def seed_history(rng):
    count = 0
    for auth_id, previous_role in PREVIOUS_ROLES.items():
        for item_id, item_type in ROLE_CURRICULUM[previous_role]:
            db.session.add(UserTrainingCompletion(
                auth_id=auth_id,
                item_id=item_id,
                item_type=item_type,
                completed_at=_days_ago(rng.randint(400, 900)),
                archived_at=_days_ago(rng.randint(30, 399)),
            ))
            count += 1
    db.session.flush()
    return count


# ═══════════════════════════════════════════════════════════════════════════
# MAIN
# ═══════════════════════════════════════════════════════════════════════════

def seed_demo(with_history=True, seed=42):
    """Run the full demo seed pipeline."""
    rng = random.Random(seed)
    print("═" * 60)
    print("  Training Matrix — Demo Seed")
    print("═" * 60)

    print("\n  1/3 Organisation...")
    departments, roles = seed_org()
    print(f"     ✅ {len(departments)} departments, {len(roles)} roles, {len(PEOPLE)} people")

    print("  2/3 Catalog...")
    seed_catalog()
    print(f"     ✅ {len(MODULES)} modules, {len(DOCUMENTS)} documents")

    print("  3/3 Assignments & history...")
    assigned = seed_assignments(rng)
    archived = seed_history(rng) if with_history else 0
    print(f"     ✅ {assigned} assignments, {archived} historical completions")

    db.session.commit()

    print(f"\n{'═' * 60}")
    print("  🎉 DEMO SEED COMPLETE")
    print("  Ready for: GET /api/v1/training-matrix")
    print(f"{'═' * 60}\n")


def main():
    parser = argparse.ArgumentParser(description="Training Matrix demo seed")
    parser.add_argument("--no-reset", action="store_true",
                        help="Don't clear existing data")
    parser.add_argument("--no-history", action="store_true",
                        help="Drop the historical completions table after seeding")
    parser.add_argument("--seed", type=int, default=42,
                        help="Random seed for completion dates (default: 42)")
    args = parser.parse_args()

    app = create_app()
    print(f"  🎯 DB: {app.config['SQLALCHEMY_DATABASE_URI']}\n")

    with app.app_context():
        if not args.no_reset:
            db.drop_all()
            db.create_all()
            print("  ♻️  Database reset complete\n")

        seed_demo(with_history=not args.no_history, seed=args.seed)

        if args.no_history:
            UserTrainingCompletion.__table__.drop(db.engine, checkfirst=True)
            print("  ⚠️  user_training_completions dropped (matrix runs without history)\n")


if __name__ == "__main__":
    main()
