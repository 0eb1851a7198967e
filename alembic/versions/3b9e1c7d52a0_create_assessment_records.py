"""create assessment_records

Revision ID: 3b9e1c7d52a0
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9e1c7d52a0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "assessment_records",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("assessment_id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "external_grade_ref", sa.String(length=255), nullable=False, server_default=""
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("time_on_task", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("start_time", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_change", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("scored_data", sa.LargeBinary(), nullable=False),
        sa.Column("practice_data", sa.LargeBinary(), nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("user_id", "assessment_id"),
    )
    op.create_index(
        "ix_assessment_records_group",
        "assessment_records",
        ["assessment_id", "group_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_assessment_records_group", table_name="assessment_records")
    op.drop_table("assessment_records")
