"""001 Calendar sync schema

Revision ID: 001_calendar_sync_schema
Revises: 
Create Date: 2026-10-18

Tables:
- calendar_feeds, reservations (maintained by the dashboard, read by sync)
- staged_reservations, feed_snapshots, booking_conflicts
- sync_runs, sync_alerts, sync_locks
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_calendar_sync_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'calendar_feeds',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('unit_id', sa.String(36), nullable=False),
        sa.Column('platform', sa.String(20), nullable=False),
        sa.Column('feed_url', sa.String(1000), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('unit_id', 'platform', name='uq_calendar_feed_pair'),
    )
    op.create_index('ix_calendar_feed_active', 'calendar_feeds', ['is_active'])
    
    op.create_table(
        'reservations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('unit_id', sa.String(36), nullable=False),
        sa.Column('platform', sa.String(20), nullable=True),
        sa.Column('platform_reservation_id', sa.String(255), nullable=True),
        sa.Column('guest_name', sa.String(100), nullable=True),
        sa.Column('check_in_date', sa.Date(), nullable=False),
        sa.Column('check_out_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(30), server_default='confirmed'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('is_deleted', sa.Boolean(), server_default=sa.false()),
    )
    op.create_index('ix_reservations_is_deleted', 'reservations', ['is_deleted'])
    op.create_index(
        'ix_reservation_unit_dates',
        'reservations',
        ['unit_id', 'check_in_date', 'check_out_date']
    )
    
    op.create_table(
        'staged_reservations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('unit_id', sa.String(36), nullable=False),
        sa.Column('platform', sa.String(20), nullable=False),
        sa.Column('external_uid', sa.String(255), nullable=False),
        sa.Column('check_in_date', sa.Date(), nullable=False),
        sa.Column('check_out_date', sa.Date(), nullable=False),
        sa.Column('feed_check_in_date', sa.Date(), nullable=True),
        sa.Column('feed_check_out_date', sa.Date(), nullable=True),
        sa.Column('guest_label', sa.String(255), nullable=True),
        sa.Column('phone_last4', sa.String(4), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('reservation_url', sa.String(1000), nullable=True),
        sa.Column('platform_reference', sa.String(100), nullable=True),
        sa.Column('stage_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('stage_notes', sa.Text(), nullable=True),
        sa.Column('reviewed_by', sa.String(100), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('reservation_id', sa.String(36), nullable=True),
        sa.Column('has_conflict', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('conflict_severity', sa.String(20), nullable=True),
        sa.Column('first_seen_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('last_seen_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('disappeared_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('unit_id', 'platform', 'external_uid', name='uq_staged_reservation_identity'),
    )
    op.create_index('ix_staged_reservation_status', 'staged_reservations', ['unit_id', 'stage_status'])
    
    op.create_table(
        'feed_snapshots',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('unit_id', sa.String(36), nullable=False),
        sa.Column('platform', sa.String(20), nullable=False),
        sa.Column('checksum', sa.String(64), nullable=False),
        sa.Column('events_count', sa.Integer(), server_default='0'),
        sa.Column('fetched_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('unit_id', 'platform', name='uq_feed_snapshot_pair'),
    )
    
    op.create_table(
        'booking_conflicts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('unit_id', sa.String(36), nullable=False),
        sa.Column('kind', sa.String(30), nullable=False),
        sa.Column('staged_id', sa.String(36), nullable=False),
        sa.Column('other_staged_id', sa.String(36), nullable=True),
        sa.Column('reservation_id', sa.String(36), nullable=True),
        sa.Column('overlap_start', sa.Date(), nullable=False),
        sa.Column('overlap_end', sa.Date(), nullable=False),
        sa.Column('overlap_nights', sa.Integer(), nullable=False),
        sa.Column('severity', sa.String(20), nullable=False),
        sa.Column('detected_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_booking_conflict_unit', 'booking_conflicts', ['unit_id'])
    op.create_index('ix_booking_conflict_staged', 'booking_conflicts', ['staged_id'])
    
    op.create_table(
        'sync_runs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('unit_id', sa.String(36), nullable=False),
        sa.Column('platform', sa.String(20), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=False),
        sa.Column('outcome', sa.String(20), nullable=False),
        sa.Column('new_count', sa.Integer(), server_default='0'),
        sa.Column('changed_count', sa.Integer(), server_default='0'),
        sa.Column('removed_count', sa.Integer(), server_default='0'),
        sa.Column('conflict_count', sa.Integer(), server_default='0'),
        sa.Column('events_found', sa.Integer(), server_default='0'),
        sa.Column('checksum', sa.String(64), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
    )
    op.create_index('ix_sync_run_pair', 'sync_runs', ['unit_id', 'platform', 'finished_at'])
    op.create_index('ix_sync_run_finished', 'sync_runs', ['finished_at'])
    
    op.create_table(
        'sync_alerts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('sync_run_id', sa.String(36),
                  sa.ForeignKey('sync_runs.id', ondelete='CASCADE'), nullable=True),
        sa.Column('unit_id', sa.String(36), nullable=True),
        sa.Column('platform', sa.String(20), nullable=True),
        sa.Column('staged_id', sa.String(36), nullable=True),
        sa.Column('alert_type', sa.String(30), nullable=False),
        sa.Column('severity', sa.String(20), nullable=False, server_default='info'),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('is_resolved', sa.Boolean(), server_default=sa.false()),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_by', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_sync_alert_created', 'sync_alerts', ['created_at'])
    op.create_index('ix_sync_alert_unit', 'sync_alerts', ['unit_id', 'is_resolved'])
    
    op.create_table(
        'sync_locks',
        sa.Column('lock_key', sa.String(100), primary_key=True),
        sa.Column('locked_by', sa.String(100), nullable=False),
        sa.Column('locked_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
    )


def downgrade():
    op.drop_table('sync_locks')
    op.drop_index('ix_sync_alert_unit', table_name='sync_alerts')
    op.drop_index('ix_sync_alert_created', table_name='sync_alerts')
    op.drop_table('sync_alerts')
    op.drop_index('ix_sync_run_finished', table_name='sync_runs')
    op.drop_index('ix_sync_run_pair', table_name='sync_runs')
    op.drop_table('sync_runs')
    op.drop_index('ix_booking_conflict_staged', table_name='booking_conflicts')
    op.drop_index('ix_booking_conflict_unit', table_name='booking_conflicts')
    op.drop_table('booking_conflicts')
    op.drop_table('feed_snapshots')
    op.drop_index('ix_staged_reservation_status', table_name='staged_reservations')
    op.drop_table('staged_reservations')
    op.drop_index('ix_reservation_unit_dates', table_name='reservations')
    op.drop_index('ix_reservations_is_deleted', table_name='reservations')
    op.drop_table('reservations')
    op.drop_index('ix_calendar_feed_active', table_name='calendar_feeds')
    op.drop_table('calendar_feeds')
