"""add_training_matrix_tables

Create the people, catalog and assignment tables read by the training
matrix: departments, roles, users, modules, documents, user_assignments.

Natural identifiers (auth_id, ref_id) are nullable and assignment rows
carry them without foreign keys; legacy imports left gaps that the matrix
tolerates.

Revision ID: a1c0e7f2b901
Revises:
Create Date: 2026-09-14 09:12:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c0e7f2b901"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "departments" not in existing_tables:
        op.create_table(
            "departments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "roles" not in existing_tables:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("department_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("auth_id", sa.String(length=64), nullable=True),
            sa.Column("first_name", sa.String(length=100), nullable=True),
            sa.Column("last_name", sa.String(length=100), nullable=True),
            sa.Column("department_id", sa.Integer(), nullable=True),
            sa.Column("role_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_users_auth_id", "users", ["auth_id"])

    if "modules" not in existing_tables:
        op.create_table(
            "modules",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("ref_id", sa.String(length=64), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_modules_ref_id", "modules", ["ref_id"])

    if "documents" not in existing_tables:
        op.create_table(
            "documents",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("ref_id", sa.String(length=64), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_documents_ref_id", "documents", ["ref_id"])

    if "user_assignments" not in existing_tables:
        op.create_table(
            "user_assignments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("auth_id", sa.String(length=64), nullable=True),
            sa.Column("item_id", sa.String(length=64), nullable=True),
            sa.Column("item_type", sa.String(length=20), nullable=False),
            sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_user_assignments_auth_item",
            "user_assignments",
            ["auth_id", "item_id", "item_type"],
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "user_assignments" in existing_tables:
        op.drop_index("ix_user_assignments_auth_item", table_name="user_assignments")
        op.drop_table("user_assignments")
    if "documents" in existing_tables:
        op.drop_index("ix_documents_ref_id", table_name="documents")
        op.drop_table("documents")
    if "modules" in existing_tables:
        op.drop_index("ix_modules_ref_id", table_name="modules")
        op.drop_table("modules")
    if "users" in existing_tables:
        op.drop_index("ix_users_auth_id", table_name="users")
        op.drop_table("users")
    if "roles" in existing_tables:
        op.drop_table("roles")
    if "departments" in existing_tables:
        op.drop_table("departments")
