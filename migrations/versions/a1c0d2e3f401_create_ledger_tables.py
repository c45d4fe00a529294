"""create_ledger_tables

Revision ID: a1c0d2e3f401
Revises:
Create Date: 2026-10-19 10:12:41.503112

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c0d2e3f401'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(precision=12, scale=2)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'templates',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=128), nullable=True),
        sa.Column('amount_default', MONEY, nullable=False),
        sa.Column('due_day', sa.Integer(), nullable=False),
        sa.Column('autopay', sa.Boolean(), nullable=False),
        sa.Column('essential', sa.Boolean(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('default_note', sa.Text(), nullable=True),
        sa.Column('match_payee_key', sa.String(length=128), nullable=True),
        sa.Column('match_amount_tolerance', MONEY, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'instances',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('template_id', sa.String(length=36), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('name_snapshot', sa.String(length=255), nullable=False),
        sa.Column('category_snapshot', sa.String(length=128), nullable=True),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('autopay_snapshot', sa.Boolean(), nullable=False),
        sa.Column('essential_snapshot', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('paid_date', sa.Date(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('template_id', 'year', 'month', name='uq_instance_template_month')
    )
    op.create_index('ix_instances_template_id', 'instances', ['template_id'])
    op.create_index('ix_instances_month', 'instances', ['year', 'month'])
    op.create_index('ix_instances_due_status', 'instances', ['due_date', 'status'])

    op.create_table(
        'payment_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('instance_id', sa.String(length=36), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('paid_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_payment_events_instance_id', 'payment_events', ['instance_id'])
    op.create_index('ix_payment_events_paid_date', 'payment_events', ['paid_date'])

    op.create_table(
        'instance_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('instance_id', sa.String(length=36), nullable=False),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('detail', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_instance_events_instance_id', 'instance_events', ['instance_id'])
    op.create_index('ix_instance_events_created_at', 'instance_events', ['created_at'])

    op.create_table(
        'month_settings',
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('cash_start', MONEY, nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('year', 'month')
    )

    op.create_table(
        'sinking_funds',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=128), nullable=True),
        sa.Column('target_amount', MONEY, nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('cadence', sa.String(length=32), nullable=False),
        sa.Column('months_per_cycle', sa.Integer(), nullable=False),
        sa.Column('essential', sa.Boolean(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('auto_contribute', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'sinking_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('fund_id', sa.String(length=36), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('event_date', sa.Date(), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sinking_events_fund_id', 'sinking_events', ['fund_id'])
    op.create_index('ix_sinking_events_event_date', 'sinking_events', ['event_date'])

    op.create_table(
        'actions',
        sa.Column('id', sa.String(length=128), nullable=False),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'meta',
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('key')
    )

    op.create_table(
        'agent_command_log',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('user_text', sa.Text(), nullable=True),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_agent_command_log_created_at', 'agent_command_log', ['created_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_agent_command_log_created_at', table_name='agent_command_log')
    op.drop_table('agent_command_log')
    op.drop_table('meta')
    op.drop_table('actions')
    op.drop_index('ix_sinking_events_event_date', table_name='sinking_events')
    op.drop_index('ix_sinking_events_fund_id', table_name='sinking_events')
    op.drop_table('sinking_events')
    op.drop_table('sinking_funds')
    op.drop_table('month_settings')
    op.drop_index('ix_instance_events_created_at', table_name='instance_events')
    op.drop_index('ix_instance_events_instance_id', table_name='instance_events')
    op.drop_table('instance_events')
    op.drop_index('ix_payment_events_paid_date', table_name='payment_events')
    op.drop_index('ix_payment_events_instance_id', table_name='payment_events')
    op.drop_table('payment_events')
    op.drop_index('ix_instances_due_status', table_name='instances')
    op.drop_index('ix_instances_month', table_name='instances')
    op.drop_index('ix_instances_template_id', table_name='instances')
    op.drop_table('instances')
    op.drop_table('templates')
