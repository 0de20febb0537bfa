"""create high_score table

Revision ID: 3c9a1f0d7b21
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c9a1f0d7b21'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)

    # Tables created by `flask db-reset` are left alone
    if 'high_score' in set(insp.get_table_names()):
        return

    op.create_table(
        'high_score',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('player_name', sa.String(length=20), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_high_score_score'), 'high_score', ['score'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_high_score_score'), table_name='high_score')
    op.drop_table('high_score')
