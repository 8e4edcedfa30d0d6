"""Comptable schema

Tables:
    - companies: Accounting firms
    - users: Members of a company
    - clients: Customers of a company whose books are uploaded
    - comptable_periods: Billing periods, one per upload batch
    - comptable_files: Files of a period stored in S3
    - comptable_file_history: Audit trail of file actions

Revision ID: 001
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PROCESSING_STATUSES = ('PENDING', 'VALIDATING', 'PROCESSING', 'COMPLETED', 'FAILED')
FILE_TYPES = (
    'GRAND_LIVRE', 'PLAN_COMPTES', 'PLAN_TIERS', 'CODE_JOURNAL',
    'GRAND_LIVRE_COMPTES', 'GRAND_LIVRE_TIERS',
)


def upgrade() -> None:
    processing_status = sa.Enum(*PROCESSING_STATUSES, name='processingstatus')
    file_type = sa.Enum(*FILE_TYPES, name='filetype')

    # ==========================================================================
    # COMPANIES, USERS, CLIENTS
    # ==========================================================================
    op.create_table(
        'companies',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('company_id', sa.String(36), sa.ForeignKey('companies.id'), nullable=False, index=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'clients',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('company_id', sa.String(36), sa.ForeignKey('companies.id'), nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    # ==========================================================================
    # COMPTABLE PERIODS
    # ==========================================================================
    op.create_table(
        'comptable_periods',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=False, index=True),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('period_end', sa.DateTime(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('batch_id', sa.String(36), nullable=False, unique=True, index=True),
        sa.Column('status', processing_status, nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        'ix_comptable_period_client_status',
        'comptable_periods',
        ['client_id', 'status'],
    )

    # ==========================================================================
    # COMPTABLE FILES
    # ==========================================================================
    op.create_table(
        'comptable_files',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('file_name', sa.String(), nullable=False),
        sa.Column('file_type', file_type, nullable=False),
        sa.Column('file_year', sa.Integer(), nullable=False),
        sa.Column('s3_key', sa.String(), nullable=False),
        sa.Column('s3_url', sa.String(), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        sa.Column('mime_type', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='SUCCES'),
        sa.Column('processing_status', processing_status, nullable=False),
        sa.Column('batch_id', sa.String(36), nullable=False, index=True),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('period_end', sa.DateTime(), nullable=False),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=False, index=True),
        sa.Column(
            'period_id',
            sa.String(36),
            sa.ForeignKey('comptable_periods.id', ondelete='CASCADE'),
            nullable=False,
            index=True,
        ),
        sa.Column('uploaded_by_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'comptable_file_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'file_id',
            sa.String(36),
            sa.ForeignKey('comptable_files.id', ondelete='CASCADE'),
            nullable=False,
            index=True,
        ),
        sa.Column('file_name', sa.String(), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('user_email', sa.String(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('comptable_file_history')
    op.drop_table('comptable_files')
    op.drop_index('ix_comptable_period_client_status', table_name='comptable_periods')
    op.drop_table('comptable_periods')
    op.drop_table('clients')
    op.drop_table('users')
    op.drop_table('companies')

    op.execute('DROP TYPE IF EXISTS filetype')
    op.execute('DROP TYPE IF EXISTS processingstatus')
