"""create_booking_tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 10:00:00.000000

Crea las tablas del motor de reservas: horarios semanales, ocurrencias,
reservas, lista de espera y notificaciones in-app.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'a1b2c3d4e5f6'
down_revision = None
branch_labels = None
depends_on = None

booking_status = sa.Enum('confirmed', 'pending', 'cancelled', name='booking_status')
waitlist_status = sa.Enum('waiting', 'notified', 'expired', 'booked', 'removed', name='waitlist_status')


def upgrade():
    op.create_table(
        'class_schedule',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('class_name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('instructor_name', sa.String(length=120), nullable=True),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('max_capacity', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='check_schedule_valid_day_of_week'),
        sa.CheckConstraint('max_capacity > 0', name='check_schedule_positive_capacity'),
        sa.CheckConstraint('end_time > start_time', name='check_schedule_time_range'),
    )
    op.create_index('ix_class_schedule_id', 'class_schedule', ['id'])

    op.create_table(
        'class_occurrence',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('schedule_id', sa.Integer(), sa.ForeignKey('class_schedule.id'), nullable=False),
        sa.Column('class_date', sa.Date(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('confirmed_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_cancelled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('schedule_id', 'class_date', name='uq_class_occurrence_schedule_date'),
        sa.CheckConstraint('capacity > 0', name='check_occurrence_positive_capacity'),
        sa.CheckConstraint('confirmed_count >= 0', name='check_occurrence_confirmed_non_negative'),
        sa.CheckConstraint('confirmed_count <= capacity', name='check_occurrence_confirmed_within_capacity'),
    )
    op.create_index('ix_class_occurrence_id', 'class_occurrence', ['id'])
    op.create_index('ix_class_occurrence_schedule_id', 'class_occurrence', ['schedule_id'])
    op.create_index('ix_class_occurrence_class_date', 'class_occurrence', ['class_date'])

    op.create_table(
        'booking',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('occurrence_id', sa.Integer(), sa.ForeignKey('class_occurrence.id'), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('status', booking_status, nullable=False),
        sa.Column('booked_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('occurrence_id', 'member_id', name='uq_booking_occurrence_member'),
    )
    op.create_index('ix_booking_id', 'booking', ['id'])
    op.create_index('ix_booking_occurrence_id', 'booking', ['occurrence_id'])
    op.create_index('ix_booking_member_id', 'booking', ['member_id'])

    op.create_table(
        'waitlist_entry',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('occurrence_id', sa.Integer(), sa.ForeignKey('class_occurrence.id'), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('queue_position', sa.Integer(), nullable=False),
        sa.Column('status', waitlist_status, nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('offer_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('occurrence_id', 'queue_position', name='uq_waitlist_occurrence_position'),
        sa.CheckConstraint('queue_position > 0', name='check_waitlist_positive_position'),
    )
    op.create_index('ix_waitlist_entry_id', 'waitlist_entry', ['id'])
    op.create_index('ix_waitlist_entry_occurrence_id', 'waitlist_entry', ['occurrence_id'])
    op.create_index('ix_waitlist_entry_member_id', 'waitlist_entry', ['member_id'])
    op.create_index('ix_waitlist_entry_offer_expires_at', 'waitlist_entry', ['offer_expires_at'])
    op.create_index(
        'ix_waitlist_occurrence_status_position', 'waitlist_entry', ['occurrence_id', 'status', 'queue_position']
    )
    # Una sola entrada no terminal por (ocurrencia, miembro)
    op.create_index(
        'uq_waitlist_active_member',
        'waitlist_entry',
        ['occurrence_id', 'member_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('waiting', 'notified')"),
        sqlite_where=sa.text("status IN ('waiting', 'notified')"),
    )

    op.create_table(
        'member_notification',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('notification_type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('related_id', sa.Integer(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_member_notification_id', 'member_notification', ['id'])
    op.create_index('ix_member_notification_member_id', 'member_notification', ['member_id'])
    op.create_index('ix_member_notification_member_read', 'member_notification', ['member_id', 'is_read'])


def downgrade():
    op.drop_table('member_notification')
    op.drop_index('uq_waitlist_active_member', table_name='waitlist_entry')
    op.drop_table('waitlist_entry')
    op.drop_table('booking')
    op.drop_table('class_occurrence')
    op.drop_table('class_schedule')
    waitlist_status.drop(op.get_bind(), checkfirst=True)
    booking_status.drop(op.get_bind(), checkfirst=True)
