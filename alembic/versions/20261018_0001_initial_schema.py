"""Initial schema with accounts, API keys, usage records, and credit tokens

Revision ID: 0001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create accounts table
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('balance >= 0', name='ck_accounts_balance_non_negative'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_accounts_user_id', 'accounts', ['user_id'], unique=True)
    op.create_index('ix_accounts_email', 'accounts', ['email'], unique=True)

    # Create api_keys table (one key per account)
    op.create_table(
        'api_keys',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('key_name', sa.String(50), nullable=False),
        sa.Column('key_hash', sa.String(64), nullable=False),
        sa.Column('key_prefix', sa.String(32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_api_keys_user_id', 'api_keys', ['user_id'], unique=True)
    op.create_index('ix_api_keys_key_hash', 'api_keys', ['key_hash'], unique=True)

    # Create usage_records table
    op.create_table(
        'usage_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('operation_name', sa.String(50), nullable=False),
        sa.Column('endpoint', sa.String(200), nullable=False),
        sa.Column('method', sa.String(10), nullable=False, server_default='POST'),
        sa.Column('request_id', sa.String(100), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('auth_method', sa.String(20), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('credits_charged', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processing_time_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_usage_created', 'usage_records', ['created_at'])
    op.create_index('idx_usage_user_created', 'usage_records', ['user_id', 'created_at'])
    op.create_index('idx_usage_operation_created', 'usage_records', ['operation_name', 'created_at'])

    # Create credit_tokens table
    op.create_table(
        'credit_tokens',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(64), nullable=False),
        sa.Column('credits', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('created_by', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('is_used', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('used_by', sa.String(255), nullable=True),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('credits > 0', name='ck_credit_tokens_credits_positive'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_credit_tokens_code', 'credit_tokens', ['code'], unique=True)
    op.create_index('ix_credit_tokens_created_by', 'credit_tokens', ['created_by'])


def downgrade() -> None:
    op.drop_index('ix_credit_tokens_created_by', table_name='credit_tokens')
    op.drop_index('ix_credit_tokens_code', table_name='credit_tokens')
    op.drop_table('credit_tokens')

    op.drop_index('idx_usage_operation_created', table_name='usage_records')
    op.drop_index('idx_usage_user_created', table_name='usage_records')
    op.drop_index('idx_usage_created', table_name='usage_records')
    op.drop_table('usage_records')

    op.drop_index('ix_api_keys_key_hash', table_name='api_keys')
    op.drop_index('ix_api_keys_user_id', table_name='api_keys')
    op.drop_table('api_keys')

    op.drop_index('ix_accounts_email', table_name='accounts')
    op.drop_index('ix_accounts_user_id', table_name='accounts')
    op.drop_table('accounts')
