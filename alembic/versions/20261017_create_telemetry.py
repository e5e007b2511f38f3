"""create telemetry table

Revision ID: 20261017_create_telemetry
"""
from alembic import op
import sqlalchemy as sa

revision = '20261017_create_telemetry'
down_revision = None

def upgrade():
    op.create_table(
        'telemetry',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('ip_address', sa.String(45), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False, server_default='0'),
        sa.Column('latitude', sa.Float(), nullable=False, server_default='0'),
        sa.Column('version', sa.String(100)),
        sa.Column('services', sa.Text()),
        sa.Column('last_seen', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('country', sa.String(100)),
        sa.Column('city', sa.String(255)),
    )

    # One record per IP address, listings ordered by last_seen
    op.create_index('ix_telemetry_ip_address', 'telemetry', ['ip_address'], unique=True)
    op.create_index('ix_telemetry_last_seen', 'telemetry', ['last_seen'])

def downgrade():
    op.drop_index('ix_telemetry_last_seen', 'telemetry')
    op.drop_index('ix_telemetry_ip_address', 'telemetry')
    op.drop_table('telemetry')
