"""
Charge capture.

Every billable line item passes through :class:`ChargeLedger`, which checks
the code against the billing code master, checks the diagnosis pointers
against the encounter, prices the line and stores it as ``pending``. A charge
can be edited or voided until a claim picks it up; after that it is frozen.
"""
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from revcycle.config.database import transaction
from revcycle.models.core import BillingCode, Encounter
from revcycle.models.database import Charge
from revcycle.models.enums import ChargeStatus
from revcycle.services.audit import AuditSink
from revcycle.utils.decimal_utils import to_money
from revcycle.utils.errors import (
    AppError,
    ChargeLocked,
    ChargeNotFound,
    CodeNotFound,
    DuplicateCharge,
    EncounterNotFound,
    InvalidDiagnosisPointer,
    MissingDiagnosisLink,
    ValidationError,
)
from revcycle.utils.logger import get_logger
from revcycle.utils.result import Result

logger = get_logger(__name__)

# 837P SV107 carries at most four diagnosis pointers, SV101 at most four modifiers
MAX_DIAGNOSIS_POINTERS = 4
MAX_MODIFIERS = 4

MODIFIER_PATTERN = re.compile(r"^[A-Z0-9]{2}$")


@dataclass
class ChargeRequest:
    encounter_id: int
    code: str
    diagnosis_pointers: List[int]
    units: int = 1
    modifiers: List[str] = field(default_factory=list)
    service_date: Optional[date] = None
    description: Optional[str] = None


def validate_diagnosis_pointers(code: str, pointers: Sequence[int], diagnosis_count: int) -> List[int]:
    """
    Check pointers reference real diagnoses on the encounter.

    Raises:
        MissingDiagnosisLink: No pointers at all
        InvalidDiagnosisPointer: Duplicates, more than four, non-positive or past the last diagnosis
    """
    if not pointers:
        raise MissingDiagnosisLink(code)

    pointers = list(pointers)
    if any(isinstance(p, bool) or not isinstance(p, int) for p in pointers):
        raise InvalidDiagnosisPointer("Diagnosis pointers must be integers", pointers)
    if len(pointers) > MAX_DIAGNOSIS_POINTERS:
        raise InvalidDiagnosisPointer(
            f"A charge can reference at most {MAX_DIAGNOSIS_POINTERS} diagnoses", pointers
        )
    if len(set(pointers)) != len(pointers):
        raise InvalidDiagnosisPointer("Diagnosis pointers must not repeat", pointers)
    for pointer in pointers:
        if pointer < 1:
            raise InvalidDiagnosisPointer(f"Diagnosis pointer {pointer} must be 1 or greater", pointers)
        if pointer > diagnosis_count:
            raise InvalidDiagnosisPointer(
                f"Diagnosis pointer {pointer} exceeds the {diagnosis_count} diagnoses on the encounter",
                pointers,
            )
    return pointers


def validate_modifiers(modifiers: Optional[Sequence[str]]) -> List[str]:
    normalized = [m.strip().upper() for m in (modifiers or []) if m and m.strip()]
    if len(normalized) > MAX_MODIFIERS:
        raise ValidationError(f"A charge can carry at most {MAX_MODIFIERS} modifiers", {"modifiers": normalized})
    for modifier in normalized:
        if not MODIFIER_PATTERN.match(modifier):
            raise ValidationError(f"Invalid modifier: {modifier}", {"modifiers": normalized})
    return normalized


def validate_units(units: int) -> int:
    if isinstance(units, bool) or not isinstance(units, int) or units < 1:
        raise ValidationError("Units must be a whole number of at least 1", {"units": units})
    return units


class ChargeLedger:
    """Validates, prices and records charges."""

    def __init__(self, db: Session, audit: AuditSink):
        self.db = db
        self.audit = audit

    def add_charge(
        self,
        request: ChargeRequest,
        user_id: Optional[str] = None,
        audit_detail: Optional[Dict[str, Any]] = None,
    ) -> Result[Charge]:
        """
        Record a pending charge.

        All checks run before anything is written. The charge and its audit
        record are committed together.

        Returns:
            Result holding the stored Charge, or one of EncounterNotFound,
            CodeNotFound, MissingDiagnosisLink, InvalidDiagnosisPointer,
            ValidationError, DuplicateCharge
        """
        code = (request.code or "").strip().upper()
        try:
            encounter = self.db.get(Encounter, request.encounter_id)
            if encounter is None:
                raise EncounterNotFound(request.encounter_id)

            billing_code = self._lookup_code(code)
            units = validate_units(request.units)
            modifiers = validate_modifiers(request.modifiers)
            pointers = validate_diagnosis_pointers(code, request.diagnosis_pointers, len(encounter.diagnoses))
            service_date = request.service_date or encounter.encounter_date

            if self._find_existing(encounter.id, code, service_date) is not None:
                raise DuplicateCharge(encounter.id, code, service_date)

            with transaction(self.db):
                charge = Charge(
                    encounter_id=encounter.id,
                    patient_id=encounter.patient_id,
                    provider_id=encounter.provider_id,
                    code=code,
                    description=request.description or billing_code.description,
                    modifiers=modifiers,
                    units=units,
                    amount=to_money(billing_code.fee * units),
                    diagnosis_pointers=pointers,
                    service_date=service_date,
                    status=ChargeStatus.PENDING,
                )
                self.db.add(charge)
                self.db.flush()
                detail = {"charge_id": charge.id, "code": code, "units": units, "amount": f"{charge.amount:.2f}"}
                detail.update(audit_detail or {})
                self.audit.record(user_id, "charge.created", f"encounter:{encounter.id}", detail)
        except AppError as e:
            logger.warning("Charge rejected", encounter_id=request.encounter_id, code=code, error=e.code)
            return Result.failure(e)
        except IntegrityError:
            # A concurrent request stored the same charge between the check and the insert
            logger.warning("Duplicate charge on insert", encounter_id=request.encounter_id, code=code)
            return Result.failure(DuplicateCharge(request.encounter_id, code, request.service_date))

        logger.info("Charge recorded", charge_id=charge.id, encounter_id=charge.encounter_id, code=code)
        return Result.success(charge)

    def update_charge(
        self,
        charge_id: int,
        units: Optional[int] = None,
        modifiers: Optional[List[str]] = None,
        diagnosis_pointers: Optional[List[int]] = None,
        user_id: Optional[str] = None,
    ) -> Result[Charge]:
        """Edit a pending charge. Units changes reprice the line from the code master."""
        try:
            charge = self._get_pending(charge_id)
            changes: Dict[str, Any] = {}
            if units is not None:
                changes["units"] = validate_units(units)
            if modifiers is not None:
                changes["modifiers"] = validate_modifiers(modifiers)
            if diagnosis_pointers is not None:
                changes["diagnosis_pointers"] = validate_diagnosis_pointers(
                    charge.code, diagnosis_pointers, len(charge.encounter.diagnoses)
                )
            if "units" in changes:
                changes["amount"] = to_money(self._lookup_code(charge.code).fee * changes["units"])

            with transaction(self.db):
                for key, value in changes.items():
                    setattr(charge, key, value)
                self.audit.record(
                    user_id,
                    "charge.updated",
                    f"charge:{charge.id}",
                    {"fields": sorted(changes), "amount": f"{charge.amount:.2f}"},
                )
        except AppError as e:
            return Result.failure(e)

        logger.info("Charge updated", charge_id=charge_id, fields=sorted(changes))
        return Result.success(charge)

    def void_charge(self, charge_id: int, user_id: Optional[str] = None) -> Result[int]:
        """Delete a pending charge. Charges already on a claim cannot be voided."""
        try:
            charge = self._get_pending(charge_id)
            with transaction(self.db):
                self.audit.record(
                    user_id,
                    "charge.voided",
                    f"charge:{charge.id}",
                    {"code": charge.code, "encounter_id": charge.encounter_id},
                )
                self.db.delete(charge)
        except AppError as e:
            return Result.failure(e)

        logger.info("Charge voided", charge_id=charge_id)
        return Result.success(charge_id)

    def pending_charges(self, encounter_id: int) -> List[Charge]:
        """Pending charges for an encounter, oldest service date first."""
        return list(
            self.db.scalars(
                select(Charge)
                .where(Charge.encounter_id == encounter_id, Charge.status == ChargeStatus.PENDING)
                .order_by(Charge.service_date, Charge.id)
            )
        )

    def _lookup_code(self, code: str) -> BillingCode:
        billing_code = self.db.scalars(
            select(BillingCode).where(BillingCode.code == code, BillingCode.is_active.is_(True))
        ).one_or_none()
        if billing_code is None:
            raise CodeNotFound(code)
        return billing_code

    def _find_existing(self, encounter_id: int, code: str, service_date: date) -> Optional[Charge]:
        return self.db.scalars(
            select(Charge).where(
                Charge.encounter_id == encounter_id,
                Charge.code == code,
                Charge.service_date == service_date,
            )
        ).first()

    def _get_pending(self, charge_id: int) -> Charge:
        charge = self.db.get(Charge, charge_id)
        if charge is None:
            raise ChargeNotFound(charge_id)
        if charge.status != ChargeStatus.PENDING:
            raise ChargeLocked(charge_id)
        return charge
