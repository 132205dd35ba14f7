"""Revenue cycle schema

Revision ID: 001_revenue_cycle
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_revenue_cycle'
down_revision = None
branch_labels = None
depends_on = None

charge_status = sa.Enum('PENDING', 'SUBMITTED', name='chargestatus')
claim_status = sa.Enum(
    'DRAFT', 'SUBMITTED', 'PAID', 'PARTIALLY_PAID', 'DENIED', 'APPEALING', 'RESOLVED',
    name='claimstatus',
)
denial_status = sa.Enum('PENDING', 'APPEALING', 'RESOLVED', name='denialstatus')
subscriber_relationship = sa.Enum('SELF', 'SPOUSE', 'CHILD', 'PARENT', 'OTHER', name='subscriberrelationship')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    # Practice records
    op.create_table(
        'clinics',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('npi', sa.String(length=10), nullable=True),
        sa.Column('tax_id', sa.String(length=20), nullable=True),
        sa.Column('address_line1', sa.String(length=200), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('state', sa.String(length=2), nullable=True),
        sa.Column('zip_code', sa.String(length=10), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_clinics_id'), 'clinics', ['id'], unique=False)
    op.create_index(op.f('ix_clinics_npi'), 'clinics', ['npi'], unique=False)

    op.create_table(
        'providers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=True),
        sa.Column('npi', sa.String(length=10), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('credentials', sa.String(length=20), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_providers_id'), 'providers', ['id'], unique=False)
    op.create_index(op.f('ix_providers_clinic_id'), 'providers', ['clinic_id'], unique=False)
    op.create_index(op.f('ix_providers_npi'), 'providers', ['npi'], unique=False)

    op.create_table(
        'patients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('gender', sa.String(length=1), nullable=True),
        sa.Column('address_line1', sa.String(length=200), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('state', sa.String(length=2), nullable=True),
        sa.Column('zip_code', sa.String(length=10), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_patients_id'), 'patients', ['id'], unique=False)

    op.create_table(
        'insurance_plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('plan_name', sa.String(length=200), nullable=False),
        sa.Column('insurance_company', sa.String(length=200), nullable=False),
        sa.Column('payer_id', sa.String(length=50), nullable=True),
        sa.Column('plan_type', sa.String(length=50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_insurance_plans_id'), 'insurance_plans', ['id'], unique=False)
    op.create_index(op.f('ix_insurance_plans_payer_id'), 'insurance_plans', ['payer_id'], unique=False)

    op.create_table(
        'patient_insurance',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('insurance_plan_id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.String(length=50), nullable=True),
        sa.Column('group_number', sa.String(length=50), nullable=True),
        sa.Column('subscriber_relationship', subscriber_relationship, nullable=False),
        sa.Column('subscriber_first_name', sa.String(length=100), nullable=True),
        sa.Column('subscriber_last_name', sa.String(length=100), nullable=True),
        sa.Column('subscriber_dob', sa.Date(), nullable=True),
        sa.Column('subscriber_gender', sa.String(length=1), nullable=True),
        sa.Column('priority_order', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ),
        sa.ForeignKeyConstraint(['insurance_plan_id'], ['insurance_plans.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_patient_insurance_id'), 'patient_insurance', ['id'], unique=False)
    op.create_index(op.f('ix_patient_insurance_patient_id'), 'patient_insurance', ['patient_id'], unique=False)
    op.create_index(
        op.f('ix_patient_insurance_insurance_plan_id'), 'patient_insurance', ['insurance_plan_id'], unique=False
    )

    op.create_table(
        'encounters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('provider_id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('encounter_type', sa.String(length=50), nullable=False),
        sa.Column('encounter_date', sa.Date(), nullable=False),
        sa.Column('place_of_service', sa.String(length=2), nullable=False),
        sa.Column('lab_orders_count', sa.Integer(), nullable=False),
        sa.Column('imaging_orders_count', sa.Integer(), nullable=False),
        sa.Column('independent_interpretation', sa.Boolean(), nullable=False),
        sa.Column('external_discussion', sa.Boolean(), nullable=False),
        sa.Column('prescription_count', sa.Integer(), nullable=False),
        sa.Column('controlled_substance', sa.Boolean(), nullable=False),
        sa.Column('procedure_performed', sa.Boolean(), nullable=False),
        sa.Column('emergency_risk', sa.Boolean(), nullable=False),
        sa.Column('ros_positive_count', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_encounters_id'), 'encounters', ['id'], unique=False)
    op.create_index(op.f('ix_encounters_patient_id'), 'encounters', ['patient_id'], unique=False)
    op.create_index(op.f('ix_encounters_provider_id'), 'encounters', ['provider_id'], unique=False)
    op.create_index(op.f('ix_encounters_clinic_id'), 'encounters', ['clinic_id'], unique=False)

    op.create_table(
        'diagnoses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('encounter_id', sa.Integer(), nullable=False),
        sa.Column('icd10_code', sa.String(length=10), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('rank', sa.Integer(), nullable=False),
        sa.Column('is_chronic', sa.Boolean(), nullable=False),
        sa.Column('is_severe', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['encounter_id'], ['encounters.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_diagnoses_id'), 'diagnoses', ['id'], unique=False)
    op.create_index(op.f('ix_diagnoses_encounter_id'), 'diagnoses', ['encounter_id'], unique=False)

    op.create_table(
        'billing_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=10), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('fee', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('code_type', sa.String(length=10), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_billing_codes_id'), 'billing_codes', ['id'], unique=False)
    op.create_index(op.f('ix_billing_codes_code'), 'billing_codes', ['code'], unique=True)

    # Revenue cycle
    op.create_table(
        'sequences',
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('last_value', sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint('name')
    )

    op.create_table(
        'charges',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('encounter_id', sa.Integer(), nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('provider_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=10), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('modifiers', sa.JSON(), nullable=False),
        sa.Column('units', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('diagnosis_pointers', sa.JSON(), nullable=False),
        sa.Column('service_date', sa.Date(), nullable=False),
        sa.Column('status', charge_status, nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['encounter_id'], ['encounters.id'], ),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('encounter_id', 'code', 'service_date', name='uq_charge_encounter_code_date')
    )
    op.create_index(op.f('ix_charges_id'), 'charges', ['id'], unique=False)
    op.create_index(op.f('ix_charges_encounter_id'), 'charges', ['encounter_id'], unique=False)
    op.create_index(op.f('ix_charges_patient_id'), 'charges', ['patient_id'], unique=False)
    op.create_index(op.f('ix_charges_status'), 'charges', ['status'], unique=False)

    op.create_table(
        'claims',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('encounter_id', sa.Integer(), nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('insurance_id', sa.Integer(), nullable=False),
        sa.Column('claim_number', sa.String(length=30), nullable=False),
        sa.Column('total_charge_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_paid_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('patient_responsibility', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', claim_status, nullable=False),
        sa.Column('submission_date', sa.DateTime(), nullable=True),
        sa.Column('adjudication_date', sa.Date(), nullable=True),
        sa.Column('clearinghouse_claim_id', sa.String(length=100), nullable=True),
        sa.Column('payer_claim_control_number', sa.String(length=50), nullable=True),
        sa.Column('frequency_code', sa.String(length=1), nullable=False),
        sa.Column('submission_count', sa.Integer(), nullable=False),
        sa.Column('edi_content', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['encounter_id'], ['encounters.id'], ),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ),
        sa.ForeignKeyConstraint(['insurance_id'], ['patient_insurance.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_claims_id'), 'claims', ['id'], unique=False)
    op.create_index(op.f('ix_claims_claim_number'), 'claims', ['claim_number'], unique=True)
    op.create_index(op.f('ix_claims_encounter_id'), 'claims', ['encounter_id'], unique=False)
    op.create_index(op.f('ix_claims_patient_id'), 'claims', ['patient_id'], unique=False)
    op.create_index(op.f('ix_claims_status'), 'claims', ['status'], unique=False)

    op.create_table(
        'claim_charges',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('claim_id', sa.Integer(), nullable=False),
        sa.Column('charge_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['claim_id'], ['claims.id'], ),
        sa.ForeignKeyConstraint(['charge_id'], ['charges.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('charge_id', name='uq_claim_charge_charge'),
        sa.UniqueConstraint('claim_id', 'line_number', name='uq_claim_charge_line')
    )
    op.create_index(op.f('ix_claim_charges_id'), 'claim_charges', ['id'], unique=False)
    op.create_index(op.f('ix_claim_charges_claim_id'), 'claim_charges', ['claim_id'], unique=False)

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('claim_id', sa.Integer(), nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('source', sa.String(length=20), nullable=False),
        sa.Column('trace_number', sa.String(length=50), nullable=True),
        sa.Column('raw_remittance', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['claim_id'], ['claims.id'], ),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payments_id'), 'payments', ['id'], unique=False)
    op.create_index(op.f('ix_payments_claim_id'), 'payments', ['claim_id'], unique=False)
    op.create_index(op.f('ix_payments_patient_id'), 'payments', ['patient_id'], unique=False)
    op.create_index(op.f('ix_payments_trace_number'), 'payments', ['trace_number'], unique=False)

    op.create_table(
        'adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('claim_id', sa.Integer(), nullable=False),
        sa.Column('charge_id', sa.Integer(), nullable=True),
        sa.Column('group_code', sa.String(length=2), nullable=False),
        sa.Column('reason_code', sa.String(length=10), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('quantity', sa.Numeric(precision=10, scale=2), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['claim_id'], ['claims.id'], ),
        sa.ForeignKeyConstraint(['charge_id'], ['charges.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_adjustments_id'), 'adjustments', ['id'], unique=False)
    op.create_index(op.f('ix_adjustments_claim_id'), 'adjustments', ['claim_id'], unique=False)

    op.create_table(
        'denials',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('claim_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('reason_description', sa.Text(), nullable=True),
        sa.Column('denied_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', denial_status, nullable=False),
        sa.Column('appeal_deadline', sa.Date(), nullable=True),
        sa.Column('remittance_key', sa.String(length=64), nullable=True),
        sa.Column('appealed_by', sa.String(length=100), nullable=True),
        sa.Column('resolution', sa.Text(), nullable=True),
        sa.Column('resolved_by', sa.String(length=100), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['claim_id'], ['claims.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_denials_id'), 'denials', ['id'], unique=False)
    op.create_index(op.f('ix_denials_claim_id'), 'denials', ['claim_id'], unique=False)
    op.create_index(op.f('ix_denials_status'), 'denials', ['status'], unique=False)
    op.create_index(op.f('ix_denials_appeal_deadline'), 'denials', ['appeal_deadline'], unique=False)
    op.create_index(op.f('ix_denials_remittance_key'), 'denials', ['remittance_key'], unique=False)

    op.create_table(
        'denial_appeals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('denial_id', sa.Integer(), nullable=False),
        sa.Column('claim_id', sa.Integer(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('supporting_documents', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['denial_id'], ['denials.id'], ),
        sa.ForeignKeyConstraint(['claim_id'], ['claims.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_denial_appeals_id'), 'denial_appeals', ['id'], unique=False)
    op.create_index(op.f('ix_denial_appeals_denial_id'), 'denial_appeals', ['denial_id'], unique=False)
    op.create_index(op.f('ix_denial_appeals_claim_id'), 'denial_appeals', ['claim_id'], unique=False)

    op.create_table(
        'remittance_postings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_key', sa.String(length=64), nullable=False),
        sa.Column('claim_id', sa.Integer(), nullable=False),
        sa.Column('trace_number', sa.String(length=50), nullable=True),
        sa.Column('payer_id', sa.String(length=50), nullable=True),
        sa.Column('claim_status_code', sa.String(length=5), nullable=True),
        sa.Column('paid_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('posted_by', sa.String(length=100), nullable=True),
        sa.Column('posted_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['claim_id'], ['claims.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_key', name='uq_remittance_postings_event_key')
    )
    op.create_index(op.f('ix_remittance_postings_id'), 'remittance_postings', ['id'], unique=False)
    op.create_index(op.f('ix_remittance_postings_claim_id'), 'remittance_postings', ['claim_id'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=100), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('resource', sa.String(length=100), nullable=False),
        sa.Column('detail', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_logs_id'), 'audit_logs', ['id'], unique=False)
    op.create_index(op.f('ix_audit_logs_user_id'), 'audit_logs', ['user_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_action'), 'audit_logs', ['action'], unique=False)
    op.create_index(op.f('ix_audit_logs_resource'), 'audit_logs', ['resource'], unique=False)
    op.create_index(op.f('ix_audit_logs_created_at'), 'audit_logs', ['created_at'], unique=False)

    # Counters start at zero; the first allocation returns 1
    op.bulk_insert(
        sa.table('sequences', sa.column('name', sa.String), sa.column('last_value', sa.BigInteger)),
        [
            {'name': 'claim_number', 'last_value': 0},
            {'name': 'interchange', 'last_value': 0},
        ],
    )


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('remittance_postings')
    op.drop_table('denial_appeals')
    op.drop_table('denials')
    op.drop_table('adjustments')
    op.drop_table('payments')
    op.drop_table('claim_charges')
    op.drop_table('claims')
    op.drop_table('charges')
    op.drop_table('sequences')
    op.drop_table('billing_codes')
    op.drop_table('diagnoses')
    op.drop_table('encounters')
    op.drop_table('patient_insurance')
    op.drop_table('insurance_plans')
    op.drop_table('patients')
    op.drop_table('providers')
    op.drop_table('clinics')

    # Drop enums
    denial_status.drop(op.get_bind(), checkfirst=True)
    claim_status.drop(op.get_bind(), checkfirst=True)
    charge_status.drop(op.get_bind(), checkfirst=True)
    subscriber_relationship.drop(op.get_bind(), checkfirst=True)
