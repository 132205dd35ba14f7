"""
Practice records the revenue cycle reads but does not own.

Clinics, providers, patients, payer plans, coverage, encounters, diagnoses and
the billing code master are maintained by the practice-management side of the
EMR. They are mapped here so claims can be assembled and encoded.
"""
from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship

from revcycle.config.database import Base, TimestampMixin
from revcycle.models.enums import SubscriberRelationship


class Clinic(Base, TimestampMixin):
    """Billing provider. Its NPI and tax id go on the 837 billing provider loop."""

    __tablename__ = "clinics"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    npi = Column(String(10), index=True)
    tax_id = Column(String(20))
    address_line1 = Column(String(200))
    city = Column(String(100))
    state = Column(String(2))
    zip_code = Column(String(10))
    phone = Column(String(20))

    providers = relationship("Provider", back_populates="clinic")


class Provider(Base, TimestampMixin):
    """Rendering provider."""

    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), index=True)
    npi = Column(String(10), index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    credentials = Column(String(20))

    clinic = relationship("Clinic", back_populates="providers")


class Patient(Base, TimestampMixin):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    date_of_birth = Column(Date)
    gender = Column(String(1))  # M, F, U
    address_line1 = Column(String(200))
    city = Column(String(100))
    state = Column(String(2))
    zip_code = Column(String(10))

    coverages = relationship("PatientInsurance", back_populates="patient", order_by="PatientInsurance.priority_order")
    encounters = relationship("Encounter", back_populates="patient")


class InsurancePlan(Base, TimestampMixin):
    """A payer plan. ``payer_id`` is the electronic payer id used on the 837."""

    __tablename__ = "insurance_plans"

    id = Column(Integer, primary_key=True, index=True)
    plan_name = Column(String(200), nullable=False)
    insurance_company = Column(String(200), nullable=False)
    payer_id = Column(String(50), index=True)
    plan_type = Column(String(50))  # HMO, PPO, Medicare, ...
    is_active = Column(Boolean, default=True, nullable=False)

    coverages = relationship("PatientInsurance", back_populates="plan")


class PatientInsurance(Base, TimestampMixin):
    """
    A patient's coverage under a plan.

    When ``subscriber_relationship`` is not ``self`` the subscriber fields
    describe the policy holder and the 837 carries a separate patient loop.
    """

    __tablename__ = "patient_insurance"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    insurance_plan_id = Column(Integer, ForeignKey("insurance_plans.id"), nullable=False, index=True)
    member_id = Column(String(50))
    group_number = Column(String(50))
    subscriber_relationship = Column(
        SQLEnum(SubscriberRelationship), default=SubscriberRelationship.SELF, nullable=False
    )
    subscriber_first_name = Column(String(100))
    subscriber_last_name = Column(String(100))
    subscriber_dob = Column(Date)
    subscriber_gender = Column(String(1))
    priority_order = Column(Integer, default=1, nullable=False)  # 1 primary, 2 secondary
    is_active = Column(Boolean, default=True, nullable=False)

    patient = relationship("Patient", back_populates="coverages")
    plan = relationship("InsurancePlan", back_populates="coverages")

    @property
    def subscriber_is_patient(self) -> bool:
        return self.subscriber_relationship in (None, SubscriberRelationship.SELF)


class Encounter(Base, TimestampMixin):
    """
    A visit, with the documented facts the coding engine scores.

    The count and flag columns are filled in by the clinical side when the
    note is signed: orders, prescriptions, procedures and risk findings.
    """

    __tablename__ = "encounters"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    encounter_type = Column(String(50), nullable=False, default="established")
    encounter_date = Column(Date, nullable=False)
    place_of_service = Column(String(2), nullable=False, default="11")

    lab_orders_count = Column(Integer, default=0, nullable=False)
    imaging_orders_count = Column(Integer, default=0, nullable=False)
    independent_interpretation = Column(Boolean, default=False, nullable=False)
    external_discussion = Column(Boolean, default=False, nullable=False)
    prescription_count = Column(Integer, default=0, nullable=False)
    controlled_substance = Column(Boolean, default=False, nullable=False)
    procedure_performed = Column(Boolean, default=False, nullable=False)
    emergency_risk = Column(Boolean, default=False, nullable=False)
    ros_positive_count = Column(Integer, default=0, nullable=False)

    patient = relationship("Patient", back_populates="encounters")
    provider = relationship("Provider")
    clinic = relationship("Clinic")
    diagnoses = relationship(
        "Diagnosis",
        back_populates="encounter",
        order_by="Diagnosis.rank",
        cascade="all, delete-orphan",
    )


class Diagnosis(Base, TimestampMixin):
    """ICD-10 diagnosis on an encounter. ``rank`` 1 is the primary diagnosis."""

    __tablename__ = "diagnoses"

    id = Column(Integer, primary_key=True, index=True)
    encounter_id = Column(Integer, ForeignKey("encounters.id"), nullable=False, index=True)
    icd10_code = Column(String(10), nullable=False)
    description = Column(Text)
    rank = Column(Integer, nullable=False, default=1)
    is_chronic = Column(Boolean, default=False, nullable=False)
    is_severe = Column(Boolean, default=False, nullable=False)

    encounter = relationship("Encounter", back_populates="diagnoses")


class BillingCode(Base, TimestampMixin):
    """Code master with the practice's unit fee."""

    __tablename__ = "billing_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(10), unique=True, nullable=False, index=True)
    description = Column(String(255), nullable=False)
    fee = Column(Numeric(12, 2), nullable=False)
    code_type = Column(String(10), nullable=False, default="CPT")
    is_active = Column(Boolean, default=True, nullable=False)
