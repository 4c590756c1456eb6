"""create areas, users and marks

Revision ID: 5e2a7c19d0b4
Revises:
Create Date: 2025-06-02
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "5e2a7c19d0b4"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "areas",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
    )

    op.create_table(
        "marks",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("area_id", sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["area_id"], ["areas.id"]),
        sa.PrimaryKeyConstraint("user_id", "area_id"),
    )
    op.create_index("ix_marks_area_id", "marks", ["area_id"])


def downgrade():
    op.drop_index("ix_marks_area_id", table_name="marks")
    op.drop_table("marks")
    op.drop_table("users")
    op.drop_table("areas")
