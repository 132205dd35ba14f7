"""Office visit E&M codes and the default fee for each."""
from decimal import Decimal
from typing import Dict, NamedTuple, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from revcycle.models.core import BillingCode
from revcycle.models.enums import MDMLevel


class EMCode(NamedTuple):
    code: str
    description: str
    fee: Decimal


NEW_PATIENT = "new"
ESTABLISHED_PATIENT = "established"

EM_CODES: Dict[Tuple[str, MDMLevel], EMCode] = {
    (NEW_PATIENT, MDMLevel.STRAIGHTFORWARD): EMCode(
        "99202", "Office/outpatient visit, new patient, straightforward MDM", Decimal("95.00")
    ),
    (NEW_PATIENT, MDMLevel.LOW): EMCode(
        "99203", "Office/outpatient visit, new patient, low MDM", Decimal("135.00")
    ),
    (NEW_PATIENT, MDMLevel.MODERATE): EMCode(
        "99204", "Office/outpatient visit, new patient, moderate MDM", Decimal("200.00")
    ),
    (NEW_PATIENT, MDMLevel.HIGH): EMCode(
        "99205", "Office/outpatient visit, new patient, high MDM", Decimal("265.00")
    ),
    (ESTABLISHED_PATIENT, MDMLevel.STRAIGHTFORWARD): EMCode(
        "99212", "Office/outpatient visit, established patient, straightforward MDM", Decimal("75.00")
    ),
    (ESTABLISHED_PATIENT, MDMLevel.LOW): EMCode(
        "99213", "Office/outpatient visit, established patient, low MDM", Decimal("110.00")
    ),
    (ESTABLISHED_PATIENT, MDMLevel.MODERATE): EMCode(
        "99214", "Office/outpatient visit, established patient, moderate MDM", Decimal("165.00")
    ),
    (ESTABLISHED_PATIENT, MDMLevel.HIGH): EMCode(
        "99215", "Office/outpatient visit, established patient, high MDM", Decimal("230.00")
    ),
}

NEW_PATIENT_TYPES = frozenset({"new", "new patient", "new_patient"})
ESTABLISHED_PATIENT_TYPES = frozenset(
    {
        "established",
        "established patient",
        "established_patient",
        "follow-up",
        "follow up",
        "followup",
        "office visit",
        "office_visit",
    }
)

# Encounter types outside both sets are billed as an established low-complexity visit
FALLBACK_CODE = EM_CODES[(ESTABLISHED_PATIENT, MDMLevel.LOW)]


def patient_category(encounter_type: str):
    """Return ``"new"``, ``"established"`` or None when the type is not recognized."""
    normalized = (encounter_type or "").strip().lower()
    if normalized in NEW_PATIENT_TYPES:
        return NEW_PATIENT
    if normalized in ESTABLISHED_PATIENT_TYPES:
        return ESTABLISHED_PATIENT
    return None


def seed_billing_codes(db: Session) -> int:
    """Register the E&M codes in ``billing_codes`` if absent. Returns how many were added."""
    existing = set(db.scalars(select(BillingCode.code)).all())
    added = 0
    for em in EM_CODES.values():
        if em.code in existing:
            continue
        db.add(BillingCode(code=em.code, description=em.description, fee=em.fee, code_type="CPT"))
        added += 1
    db.flush()
    return added
