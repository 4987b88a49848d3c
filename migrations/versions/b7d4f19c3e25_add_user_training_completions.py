"""add_user_training_completions

Create `user_training_completions`: completions preserved when a role
change removes the assignment that produced them. The matrix shows these
as historical cells and still works while the table is absent.

Revision ID: b7d4f19c3e25
Revises: a1c0e7f2b901
Create Date: 2026-09-28 14:40:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "b7d4f19c3e25"
down_revision = "a1c0e7f2b901"
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "user_training_completions" not in existing_tables:
        op.create_table(
            "user_training_completions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("auth_id", sa.String(length=64), nullable=True),
            sa.Column("item_id", sa.String(length=64), nullable=True),
            sa.Column("item_type", sa.String(length=20), nullable=False),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_user_training_completions_auth_item",
            "user_training_completions",
            ["auth_id", "item_id", "item_type"],
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "user_training_completions" in existing_tables:
        op.drop_index(
            "ix_user_training_completions_auth_item",
            table_name="user_training_completions",
        )
        op.drop_table("user_training_completions")
