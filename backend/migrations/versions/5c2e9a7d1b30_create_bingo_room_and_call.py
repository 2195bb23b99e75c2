"""create bingo_room and bingo_call

Revision ID: 5c2e9a7d1b30
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2e9a7d1b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'bingo_room' not in existing_tables:
        op.create_table(
            'bingo_room',
            sa.Column('id', sa.String(length=32), primary_key=True),
            sa.Column('drawn_balls', sa.Text(), nullable=True),
            sa.Column('current_ball', sa.Integer(), nullable=True),
            sa.Column('pattern', sa.String(length=32), nullable=True),
            sa.Column('custom_pattern', sa.Text(), nullable=True),
            sa.Column('winners', sa.Text(), nullable=True),
            sa.Column('reset_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('updated_at', sa.Float(), nullable=True),
        )

    if 'bingo_call' not in existing_tables:
        op.create_table(
            'bingo_call',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('room_id', sa.String(length=32), nullable=False),
            sa.Column('username', sa.String(length=64), nullable=True),
            sa.Column('card_version', sa.Integer(), nullable=True),
            sa.Column('pattern', sa.String(length=32), nullable=True),
            sa.Column('called_at', sa.Float(), nullable=False),
        )
        op.create_index('ix_bingo_call_room_id', 'bingo_call', ['room_id'])


def downgrade():
    op.drop_index('ix_bingo_call_room_id', table_name='bingo_call')
    op.drop_table('bingo_call')
    op.drop_table('bingo_room')
