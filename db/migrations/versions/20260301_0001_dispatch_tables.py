"""Dispatch tables

Revision ID: 20260301_0001
Revises:
Create Date: 2026-03-01 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20260301_0001'
down_revision = None
branch_labels = None
depends_on = None


def _base_columns():
    return [
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    op.create_table(
        'clinic_settings',
        *_base_columns(),
        sa.Column('clinic_name', sa.String(200), nullable=False),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='America/Mexico_City'),
        sa.Column('ycloud_api_key', sa.String(255), nullable=True),
        sa.Column('ycloud_phone_number', sa.String(20), nullable=True),
        sa.Column('reminders_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('reminders_time', sa.String(5), nullable=True),
        sa.Column('reminders_hours_before', sa.Integer(), nullable=False, server_default='24'),
        sa.Column('reminder_window', sa.String(20), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'services',
        *_base_columns(),
        sa.Column('clinic_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('upselling_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('upselling_days_after', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('upselling_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinic_settings.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_services_clinic', 'services', ['clinic_id'])

    op.create_table(
        'patients',
        *_base_columns(),
        sa.Column('clinic_id', sa.Uuid(), nullable=False),
        sa.Column('full_name', sa.String(200), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinic_settings.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_patients_clinic', 'patients', ['clinic_id'])

    op.create_table(
        'tags',
        *_base_columns(),
        sa.Column('clinic_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('color', sa.String(20), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinic_settings.id'], ondelete='CASCADE'),
    )

    op.create_table(
        'patient_tags',
        *_base_columns(),
        sa.Column('patient_id', sa.Uuid(), nullable=False),
        sa.Column('tag_id', sa.Uuid(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tag_id'], ['tags.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('patient_id', 'tag_id', name='uq_patient_tags_patient_tag'),
    )
    op.create_index('idx_patient_tags_tag', 'patient_tags', ['tag_id'])

    op.create_table(
        'appointments',
        *_base_columns(),
        sa.Column('clinic_id', sa.Uuid(), nullable=False),
        sa.Column('patient_id', sa.Uuid(), nullable=True),
        sa.Column('service_id', sa.Uuid(), nullable=True),
        sa.Column('patient_name', sa.String(200), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('service', sa.String(200), nullable=True),
        sa.Column('appointment_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('reminder_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reminder_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('upsell_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinic_settings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ondelete='SET NULL'),
    )
    op.create_index('idx_appointments_clinic_date', 'appointments', ['clinic_id', 'appointment_date'])
    op.create_index('idx_appointments_status_date', 'appointments', ['status', 'appointment_date'])

    op.create_table(
        'satisfaction_surveys',
        *_base_columns(),
        sa.Column('clinic_id', sa.Uuid(), nullable=False),
        sa.Column('appointment_id', sa.Uuid(), nullable=False),
        sa.Column('patient_id', sa.Uuid(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('whatsapp_message_id', sa.String(100), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinic_settings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('appointment_id', name='uq_satisfaction_surveys_appointment'),
    )

    op.create_table(
        'campaigns',
        *_base_columns(),
        sa.Column('clinic_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('segment_tag', sa.Uuid(), nullable=True),
        sa.Column('template_name', sa.String(100), nullable=True),
        sa.Column('message_body', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('total_target', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sent_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinic_settings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['segment_tag'], ['tags.id'], ondelete='SET NULL'),
    )

    op.create_table(
        'campaign_recipients',
        *_base_columns(),
        sa.Column('campaign_id', sa.Uuid(), nullable=False),
        sa.Column('patient_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('whatsapp_message_id', sa.String(100), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('campaign_id', 'patient_id', name='uq_campaign_recipients_campaign_patient'),
    )

    op.create_table(
        'messages',
        *_base_columns(),
        sa.Column('clinic_id', sa.Uuid(), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('direction', sa.String(10), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('message_type', sa.String(20), nullable=False),
        sa.Column('ycloud_message_id', sa.String(100), nullable=True),
        sa.Column('ycloud_status', sa.String(20), nullable=True),
        sa.Column('ai_generated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('campaign_id', sa.Uuid(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinic_settings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='SET NULL'),
    )
    op.create_index('idx_messages_clinic_phone', 'messages', ['clinic_id', 'phone_number'])
    op.create_index('idx_messages_provider_id', 'messages', ['ycloud_message_id'])


def downgrade():
    op.drop_table('messages')
    op.drop_table('campaign_recipients')
    op.drop_table('campaigns')
    op.drop_table('satisfaction_surveys')
    op.drop_table('appointments')
    op.drop_table('patient_tags')
    op.drop_table('tags')
    op.drop_table('patients')
    op.drop_table('services')
    op.drop_table('clinic_settings')
