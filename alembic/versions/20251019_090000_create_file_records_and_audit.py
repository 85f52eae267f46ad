"""创建 file_records 和 file_audit 表

Revision ID: 20251019_090000
Revises:
Create Date: 2025-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '20251019_090000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """创建文件记录表和审计表"""
    op.create_table(
        'file_records',
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('file_id', sa.String(length=36), nullable=False),
        sa.Column('file_name', sa.String(length=1024), nullable=False),
        sa.Column('content_type', sa.String(length=255), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('storage_key', sa.String(length=1024), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('owner_id', 'file_id'),
        sa.UniqueConstraint('storage_key')
    )
    op.create_index(
        'ix_file_records_owner_created',
        'file_records',
        ['owner_id', 'created_at']
    )

    op.create_table(
        'file_audit',
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('timestamp', sa.String(length=32), nullable=False),
        sa.Column('sequence', sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column('file_id', sa.String(length=255), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('owner_id', 'timestamp', 'sequence')
    )
    op.create_index('ix_file_audit_file_id', 'file_audit', ['file_id'])


def downgrade() -> None:
    """删除审计表和文件记录表"""
    op.drop_index('ix_file_audit_file_id', table_name='file_audit')
    op.drop_table('file_audit')
    op.drop_index('ix_file_records_owner_created', table_name='file_records')
    op.drop_table('file_records')
