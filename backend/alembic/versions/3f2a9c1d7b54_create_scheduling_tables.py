"""Create doctors, patients, slot rules and appointments

Revision ID: 3f2a9c1d7b54
Revises:
Create Date: 2026-10-17 10:12:04.118302

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7b54'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NOT_CANCELLED = "status NOT IN ('CANCELLED', 'REJECTED')"


def upgrade() -> None:
    op.create_table(
        'doctors',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('specialization', sa.String(255), nullable=True),
        sa.Column('consultation_fee', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index('ix_doctors_id', 'doctors', ['id'])

    op.create_table(
        'patients',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index('ix_patients_id', 'patients', ['id'])

    op.create_table(
        'doctor_slot_rules',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('doctor_id', sa.Integer(), sa.ForeignKey('doctors.id'), nullable=False),
        sa.Column('day_of_week', sa.String(10), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('consultation_type', sa.String(20), nullable=False),
        sa.Column('max_patients', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint('start_time < end_time', name='ck_slot_rules_time_order'),
        sa.CheckConstraint('max_patients >= 1', name='ck_slot_rules_capacity'),
    )
    op.create_index('ix_doctor_slot_rules_id', 'doctor_slot_rules', ['id'])
    op.create_index('idx_slot_rules_doctor_day', 'doctor_slot_rules', ['doctor_id', 'day_of_week'])
    op.create_index('idx_slot_rules_doctor_day_time', 'doctor_slot_rules', ['doctor_id', 'day_of_week', 'start_time'])

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patients.id'), nullable=False),
        sa.Column('doctor_id', sa.Integer(), sa.ForeignKey('doctors.id'), nullable=False),
        sa.Column('slot_rule_id', sa.Integer(), sa.ForeignKey('doctor_slot_rules.id'), nullable=True),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('appointment_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('consultation_type', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('reason_for_visit', sa.String(1000), nullable=True),
        sa.Column('queue_number', sa.Integer(), nullable=True),
        sa.Column('seat_number', sa.Integer(), nullable=True),
        sa.Column('called_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('started_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index('ix_appointments_id', 'appointments', ['id'])
    op.create_index('idx_appointments_doctor_date', 'appointments', ['doctor_id', 'appointment_date'])
    op.create_index('idx_appointments_patient', 'appointments', ['patient_id'])

    # Partial unique indexes: at most one live booking per seat, one live holder per queue number
    op.execute(f"""
        CREATE UNIQUE INDEX uq_appointments_session_seat
        ON appointments (doctor_id, appointment_date, appointment_time, seat_number)
        WHERE {NOT_CANCELLED}
    """)
    op.execute(f"""
        CREATE UNIQUE INDEX uq_appointments_doctor_day_queue
        ON appointments (doctor_id, appointment_date, queue_number)
        WHERE {NOT_CANCELLED}
    """)


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS uq_appointments_doctor_day_queue")
    op.execute("DROP INDEX IF EXISTS uq_appointments_session_seat")
    op.drop_index('idx_appointments_patient', table_name='appointments')
    op.drop_index('idx_appointments_doctor_date', table_name='appointments')
    op.drop_index('ix_appointments_id', table_name='appointments')
    op.drop_table('appointments')

    op.drop_index('idx_slot_rules_doctor_day_time', table_name='doctor_slot_rules')
    op.drop_index('idx_slot_rules_doctor_day', table_name='doctor_slot_rules')
    op.drop_index('ix_doctor_slot_rules_id', table_name='doctor_slot_rules')
    op.drop_table('doctor_slot_rules')

    op.drop_index('ix_patients_id', table_name='patients')
    op.drop_table('patients')

    op.drop_index('ix_doctors_id', table_name='doctors')
    op.drop_table('doctors')
