"""Add the ETL Excel export location to comptable periods

The ETL writes the s3://bucket/key of the Excel export it produces for a
period into 'excel_file_url'. The download endpoint signs a URL for it.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, Sequence[str], None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add comptable_periods.excel_file_url."""
    op.add_column(
        'comptable_periods',
        sa.Column('excel_file_url', sa.String(), nullable=True),
    )


def downgrade() -> None:
    """Drop comptable_periods.excel_file_url."""
    op.drop_column('comptable_periods', 'excel_file_url')
