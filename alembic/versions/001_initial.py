"""Initial schema: credentials, quota state, activities, metrics

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Credentials
    op.create_table(
        'api_credential_configs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=True),
        sa.Column('client_id', sa.String(50), nullable=False),
        sa.Column('client_secret', sa.Text(), nullable=False),
        sa.Column('daily_limit', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('window_limit', sa.Integer(), nullable=False, server_default='90'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'credential_assignments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False, unique=True),
        sa.Column(
            'config_id', sa.String(36),
            sa.ForeignKey('api_credential_configs.id', ondelete='CASCADE'),
            nullable=False
        ),
        sa.Column('assigned_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_credential_assignments_user_id', 'credential_assignments', ['user_id'])

    op.create_table(
        'quota_states',
        sa.Column('credential_id', sa.String(36), primary_key=True),
        sa.Column('window_requests', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('window_start', sa.DateTime(), nullable=False),
        sa.Column('daily_requests', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('daily_window_start', sa.DateTime(), nullable=False),
        sa.Column('is_throttled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('retry_after', sa.DateTime(), nullable=True),
        sa.Column('last_request_at', sa.DateTime(), nullable=True),
    )

    # Activities
    op.create_table(
        'provider_connections',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('provider', sa.String(30), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('user_id', 'provider', name='uq_provider_connections_user_provider'),
    )
    op.create_index('ix_provider_connections_user_id', 'provider_connections', ['user_id'])

    op.create_table(
        'activity_records',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('provider', sa.String(30), nullable=False),
        sa.Column('provider_activity_id', sa.String(64), nullable=False),
        sa.Column('activity_type', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=False),
        sa.Column('distance_meters', sa.Float(), nullable=True),
        sa.Column('calories', sa.Float(), nullable=True),
        sa.Column('steps', sa.Integer(), nullable=True),
        sa.Column('heart_rate_avg', sa.Float(), nullable=True),
        sa.Column('heart_rate_max', sa.Float(), nullable=True),
        sa.Column('raw_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint(
            'user_id', 'provider', 'provider_activity_id',
            name='uq_activity_records_user_provider_activity'
        ),
    )
    op.create_index('ix_activity_records_user_id', 'activity_records', ['user_id'])
    op.create_index('ix_activity_records_start_time', 'activity_records', ['start_time'])

    op.create_table(
        'activity_metrics',
        sa.Column('user_id', sa.String(36), primary_key=True),
        sa.Column('activity_level_score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('preferred_activity_types', sa.JSON(), nullable=False),
        sa.Column('preferred_workout_times', sa.JSON(), nullable=False),
        sa.Column('fitness_level', sa.String(20), nullable=False, server_default='intermediate'),
        sa.Column('total_activities', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_calculated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_activity_metrics_last_calculated_at', 'activity_metrics', ['last_calculated_at'])


def downgrade() -> None:
    op.drop_index('ix_activity_metrics_last_calculated_at', 'activity_metrics')
    op.drop_table('activity_metrics')

    op.drop_index('ix_activity_records_start_time', 'activity_records')
    op.drop_index('ix_activity_records_user_id', 'activity_records')
    op.drop_table('activity_records')

    op.drop_index('ix_provider_connections_user_id', 'provider_connections')
    op.drop_table('provider_connections')

    op.drop_table('quota_states')

    op.drop_index('ix_credential_assignments_user_id', 'credential_assignments')
    op.drop_table('credential_assignments')

    op.drop_table('api_credential_configs')
