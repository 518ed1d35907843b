"""percentage-versioned allocations

Revision ID: 002
Revises: 001
Create Date: 2026-10-08

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("goals_allocation") as batch_op:
        batch_op.add_column(sa.Column("init_amount", sa.Float(), nullable=False, server_default="0"))
        batch_op.add_column(sa.Column("allocation_amount", sa.Float(), nullable=False, server_default="0"))
        batch_op.add_column(sa.Column("allocation_percentage", sa.Float(), nullable=False, server_default="0"))
        batch_op.add_column(sa.Column("allocation_date", sa.Date(), nullable=True))

    op.create_table(
        "allocation_versions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("allocation_id", sa.String(length=64), nullable=False),
        sa.Column("allocation_percentage", sa.Float(), nullable=False),
        sa.Column("allocation_amount", sa.Float(), nullable=False),
        sa.Column("version_start_date", sa.Date(), nullable=False),
        sa.Column("version_end_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["allocation_id"], ["goals_allocation.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_allocation_versions_allocation_id",
        "allocation_versions",
        ["allocation_id"],
    )
    op.create_index(
        "idx_allocation_versions_dates",
        "allocation_versions",
        ["version_start_date", "version_end_date"],
    )


def downgrade() -> None:
    op.drop_index("idx_allocation_versions_dates", table_name="allocation_versions")
    op.drop_index("idx_allocation_versions_allocation_id", table_name="allocation_versions")
    op.drop_table("allocation_versions")

    with op.batch_alter_table("goals_allocation") as batch_op:
        batch_op.drop_column("allocation_date")
        batch_op.drop_column("allocation_percentage")
        batch_op.drop_column("allocation_amount")
        batch_op.drop_column("init_amount")
