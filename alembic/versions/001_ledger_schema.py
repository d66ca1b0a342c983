"""Ledger record store and participant directory

Revision ID: 001_ledger_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
import json
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_ledger_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Key/value world state: one row per diamond plus the registry row
    ledger_records = op.create_table(
        'ledger_records',
        sa.Column('key', sa.String(64), nullable=False),
        sa.Column('value', sa.LargeBinary(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('key')
    )

    # Participant directory
    op.create_table(
        'participants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('affiliation', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_participants_id', 'participants', ['id'], unique=False)
    op.create_index('ix_participants_username', 'participants', ['username'], unique=True)

    # Empty asset registry
    op.bulk_insert(ledger_records, [
        {'key': 'assetIDs', 'value': json.dumps({'assetids': []}).encode('utf-8'), 'version': 1},
    ])


def downgrade() -> None:
    op.drop_index('ix_participants_username', table_name='participants')
    op.drop_index('ix_participants_id', table_name='participants')
    op.drop_table('participants')
    op.drop_table('ledger_records')
