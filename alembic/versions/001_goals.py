"""goals and date-range allocations

Revision ID: 001
Revises:
Create Date: 2026-10-01
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('goals',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('target_amount', sa.Float(), nullable=False),
        sa.Column('is_achieved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('target_return_rate', sa.Float(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('monthly_investment', sa.Float(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('initial_actual_value', sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('goals_allocation',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('goal_id', sa.String(length=36), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('percent_allocation', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(['goal_id'], ['goals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_goals_allocation_goal_id', 'goals_allocation', ['goal_id'])
    op.create_index('ix_goals_allocation_account_id', 'goals_allocation', ['account_id'])
    op.create_index(
        'ix_goals_allocation_account_dates',
        'goals_allocation',
        ['account_id', 'start_date', 'end_date'],
    )


def downgrade():
    op.drop_index('ix_goals_allocation_account_dates', table_name='goals_allocation')
    op.drop_index('ix_goals_allocation_account_id', table_name='goals_allocation')
    op.drop_index('ix_goals_allocation_goal_id', table_name='goals_allocation')
    op.drop_table('goals_allocation')
    op.drop_table('goals')
