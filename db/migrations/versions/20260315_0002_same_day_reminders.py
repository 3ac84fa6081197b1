"""Same-day reminder stages

Revision ID: 20260315_0002
Revises: 20260301_0001
Create Date: 2026-03-15 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20260315_0002'
down_revision = '20260301_0001'
branch_labels = None
depends_on = None


def upgrade():
    op.add_column('clinic_settings', sa.Column('reminder_2h_before', sa.Boolean(), nullable=False, server_default=sa.false()))
    op.add_column('clinic_settings', sa.Column('reminder_1h_before', sa.Boolean(), nullable=False, server_default=sa.false()))
    op.add_column('appointments', sa.Column('reminder_2h_sent_at', sa.DateTime(timezone=True), nullable=True))
    op.add_column('appointments', sa.Column('reminder_1h_sent_at', sa.DateTime(timezone=True), nullable=True))


def downgrade():
    op.drop_column('appointments', 'reminder_1h_sent_at')
    op.drop_column('appointments', 'reminder_2h_sent_at')
    op.drop_column('clinic_settings', 'reminder_1h_before')
    op.drop_column('clinic_settings', 'reminder_2h_before')
