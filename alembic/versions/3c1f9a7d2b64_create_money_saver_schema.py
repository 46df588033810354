"""create users, accounts, categories, transactions, budgets and alert tables

Revision ID: 3c1f9a7d2b64
Revises:
Create Date: 2026-10-19 09:12:41.118304

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f9a7d2b64'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# SQLAlchemy stores Python enums by member name
account_type = sa.Enum('CHECKING', 'SAVINGS', 'CREDIT_CARD', 'INVESTMENT', 'OTHER', name='accounttype')
budget_period = sa.Enum('DAILY', 'WEEKLY', 'MONTHLY', 'QUARTERLY', 'YEARLY', name='budgetperiod')
link_type = sa.Enum('AUTO', 'MANUAL', name='linktype')
alert_type = sa.Enum('LARGE_PURCHASE', 'ANOMALY', 'BUDGET_WARNING', name='alerttype')
alert_severity = sa.Enum('LOW', 'MEDIUM', 'HIGH', name='alertseverity')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('db_id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('id', sa.Uuid, nullable=False, unique=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
        sa.UniqueConstraint('email', name='uq_user_email'),
        sa.UniqueConstraint('username', name='uq_user_username'),
    )
    op.create_index('idx_users_email', 'users', ['email'])

    op.create_table(
        'categories',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.db_id'), nullable=True),  # NULL for system categories
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('color', sa.String(7), nullable=True),
        sa.Column('icon', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
        sa.UniqueConstraint('user_id', 'name', name='uq_user_category_name'),
    )
    op.create_index('idx_categories_user', 'categories', ['user_id'])

    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.db_id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('account_type', account_type, nullable=False),
        sa.Column('balance', sa.DECIMAL(15, 2), nullable=True),
        sa.Column('last_synced', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
    )
    op.create_index('idx_accounts_user', 'accounts', ['user_id'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.db_id'), nullable=False),
        sa.Column('account_id', sa.Integer, sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('category_id', sa.Integer, sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('transaction_date', sa.Date, nullable=False),
        sa.Column('amount', sa.DECIMAL(15, 2), nullable=False),
        sa.Column('merchant', sa.String(255), nullable=True),
        sa.Column('description', sa.String(500), nullable=False, server_default=''),
        sa.Column('receipt_url', sa.Text, nullable=True),
        sa.Column('is_income', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('order_id', sa.String(100), nullable=True),
        sa.Column('parent_transaction_id', sa.Integer, sa.ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('link_type', link_type, nullable=True),
        sa.Column('link_confidence', sa.Integer, nullable=True),
        sa.Column('link_metadata', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
    )
    op.create_index('idx_transactions_user_date', 'transactions', ['user_id', 'transaction_date'])
    op.create_index('idx_transactions_category', 'transactions', ['category_id'])
    op.create_index('idx_transactions_parent', 'transactions', ['parent_transaction_id'])

    op.create_table(
        'budgets',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.db_id'), nullable=False),
        sa.Column('category_id', sa.Integer, sa.ForeignKey('categories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.DECIMAL(15, 2), nullable=False),
        sa.Column('period', budget_period, nullable=False),
        sa.Column('start_date', sa.Date, nullable=False),
        sa.Column('end_date', sa.Date, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
        sa.UniqueConstraint('user_id', 'category_id', 'period', 'start_date', name='uq_user_budget_period'),
    )
    op.create_index('idx_budgets_category', 'budgets', ['category_id'])

    op.create_table(
        'alerts',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.db_id'), nullable=False),
        sa.Column('type', alert_type, nullable=False),
        sa.Column('threshold', sa.DECIMAL(15, 2), nullable=True),
        sa.Column('is_enabled', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
        sa.UniqueConstraint('user_id', 'type', name='uq_user_alert_type'),
    )

    op.create_table(
        'alert_events',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.db_id'), nullable=False),
        sa.Column('alert_id', sa.Integer, sa.ForeignKey('alerts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('transaction_id', sa.Integer, sa.ForeignKey('transactions.id', ondelete='CASCADE'), nullable=True),
        sa.Column('budget_id', sa.Integer, sa.ForeignKey('budgets.id', ondelete='CASCADE'), nullable=True),
        sa.Column('type', alert_type, nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('severity', alert_severity, nullable=False),
        sa.Column('is_read', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('metadata', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=True),
    )
    op.create_index('idx_alert_events_user_read', 'alert_events', ['user_id', 'is_read'])
    op.create_index('idx_alert_events_created_at', 'alert_events', ['created_at'])


def downgrade() -> None:
    op.drop_table('alert_events')
    op.drop_table('alerts')
    op.drop_table('budgets')
    op.drop_table('transactions')
    op.drop_table('accounts')
    op.drop_table('categories')
    op.drop_table('users')
