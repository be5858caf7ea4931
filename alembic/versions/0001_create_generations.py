"""create generations table

Revision ID: 0001
Revises:
Create Date: 2025-08-28 11:04:26

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "generations",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("job_title", sa.String(), nullable=False),
        sa.Column("company_name", sa.String(), nullable=False),
        sa.Column("overall_score", sa.Integer(), nullable=True),
        sa.Column("cover_letter_text", sa.Text(), nullable=False),
        sa.Column("scoring_results_json", sa.JSON(), nullable=False),
        sa.Column("resume_data_json", sa.JSON(), nullable=False),
        sa.Column("job_data_json", sa.JSON(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("status", sa.String(), server_default="completed", nullable=False),
        sa.CheckConstraint(
            "overall_score IS NULL OR (overall_score >= 0 AND overall_score <= 100)",
            name="ck_generations_overall_score",
        ),
        sa.CheckConstraint(
            "status IN ('completed', 'draft', 'archived')",
            name="ck_generations_status",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_generations_user_id", "generations", ["user_id"])
    op.create_index("ix_generations_user_id_created_at", "generations", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_generations_user_id_created_at", table_name="generations")
    op.drop_index("ix_generations_user_id", table_name="generations")
    op.drop_table("generations")
