"""
Database models package.

    from revcycle.models import Claim, ClaimStatus
"""
from revcycle.models.enums import (
    ChargeStatus,
    ClaimStatus,
    DenialStatus,
    DuplicateDenialPolicy,
    MDMLevel,
    SubscriberRelationship,
)
from revcycle.models.core import (
    BillingCode,
    Clinic,
    Diagnosis,
    Encounter,
    InsurancePlan,
    Patient,
    PatientInsurance,
    Provider,
)
from revcycle.models.database import (
    Adjustment,
    AuditLog,
    Charge,
    Claim,
    ClaimCharge,
    Denial,
    DenialAppeal,
    Payment,
    RemittancePosting,
    SequenceCounter,
)

__all__ = [
    "ChargeStatus",
    "ClaimStatus",
    "DenialStatus",
    "DuplicateDenialPolicy",
    "MDMLevel",
    "SubscriberRelationship",
    "BillingCode",
    "Clinic",
    "Diagnosis",
    "Encounter",
    "InsurancePlan",
    "Patient",
    "PatientInsurance",
    "Provider",
    "Adjustment",
    "AuditLog",
    "Charge",
    "Claim",
    "ClaimCharge",
    "Denial",
    "DenialAppeal",
    "Payment",
    "RemittancePosting",
    "SequenceCounter",
]
