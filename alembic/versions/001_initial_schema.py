"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create accounts table
    op.create_table(
        'accounts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('company_name', sa.String(length=255), nullable=True),
        sa.Column('credits', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('credits >= 0', name='ck_accounts_credits_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_accounts_id'), 'accounts', ['id'], unique=False)
    op.create_index(op.f('ix_accounts_email'), 'accounts', ['email'], unique=True)

    # Create api_credentials table
    op.create_table(
        'api_credentials',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('account_id', sa.String(length=36), nullable=False),
        sa.Column('key_prefix', sa.String(length=32), nullable=False),
        sa.Column('key_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_api_credentials_id'), 'api_credentials', ['id'], unique=False)
    op.create_index(op.f('ix_api_credentials_account_id'), 'api_credentials', ['account_id'], unique=True)
    op.create_index(op.f('ix_api_credentials_key_prefix'), 'api_credentials', ['key_prefix'], unique=False)

    # Create api_transactions table
    op.create_table(
        'api_transactions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('account_id', sa.String(length=36), nullable=False),
        sa.Column('credential_id', sa.String(length=36), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('credits_changed', sa.Integer(), nullable=False),
        sa.Column('balance_before', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['credential_id'], ['api_credentials.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_api_transactions_id'), 'api_transactions', ['id'], unique=False)
    op.create_index(op.f('ix_api_transactions_account_id'), 'api_transactions', ['account_id'], unique=False)
    op.create_index(op.f('ix_api_transactions_created_at'), 'api_transactions', ['created_at'], unique=False)

    # Create verification_cache table
    op.create_table(
        'verification_cache',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('account_id', sa.String(length=36), nullable=False),
        sa.Column('search_hash', sa.String(length=64), nullable=False),
        sa.Column('result_data', sa.JSON(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'search_hash', name='uq_verification_cache_account_hash')
    )
    op.create_index(op.f('ix_verification_cache_account_id'), 'verification_cache', ['account_id'], unique=False)
    op.create_index(op.f('ix_verification_cache_search_hash'), 'verification_cache', ['search_hash'], unique=False)
    op.create_index(op.f('ix_verification_cache_expires_at'), 'verification_cache', ['expires_at'], unique=False)

    # Create api_usage_logs table
    op.create_table(
        'api_usage_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('credential_id', sa.String(length=36), nullable=True),
        sa.Column('account_id', sa.String(length=36), nullable=True),
        sa.Column('endpoint', sa.String(length=64), nullable=False),
        sa.Column('request_id', sa.String(length=36), nullable=False),
        sa.Column('status_code', sa.Integer(), nullable=False),
        sa.Column('credits_used', sa.Integer(), nullable=False),
        sa.Column('was_successful', sa.Boolean(), nullable=False),
        sa.Column('was_duplicate', sa.Boolean(), nullable=False),
        sa.Column('response_time_ms', sa.Integer(), nullable=False),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['credential_id'], ['api_credentials.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_id')
    )
    op.create_index(op.f('ix_api_usage_logs_id'), 'api_usage_logs', ['id'], unique=False)
    op.create_index(op.f('ix_api_usage_logs_credential_id'), 'api_usage_logs', ['credential_id'], unique=False)
    op.create_index(op.f('ix_api_usage_logs_account_id'), 'api_usage_logs', ['account_id'], unique=False)
    op.create_index(op.f('ix_api_usage_logs_endpoint'), 'api_usage_logs', ['endpoint'], unique=False)
    op.create_index(op.f('ix_api_usage_logs_created_at'), 'api_usage_logs', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_table('api_usage_logs')
    op.drop_table('verification_cache')
    op.drop_table('api_transactions')
    op.drop_table('api_credentials')
    op.drop_table('accounts')
