"""Charge capture endpoints."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from revcycle.api.dependencies import get_charge_ledger, get_current_user
from revcycle.models.database import Charge
from revcycle.services.billing.ledger import ChargeLedger, ChargeRequest

router = APIRouter()


class ChargeCreateRequest(BaseModel):
    encounter_id: int
    code: str = Field(..., min_length=1, max_length=10)
    diagnosis_pointers: List[int] = Field(default_factory=list)
    units: int = 1
    modifiers: List[str] = Field(default_factory=list)
    service_date: Optional[date] = None
    description: Optional[str] = None


class ChargeUpdateRequest(BaseModel):
    units: Optional[int] = None
    modifiers: Optional[List[str]] = None
    diagnosis_pointers: Optional[List[int]] = None


def charge_to_dict(charge: Charge) -> dict:
    return {
        "id": charge.id,
        "encounter_id": charge.encounter_id,
        "patient_id": charge.patient_id,
        "provider_id": charge.provider_id,
        "code": charge.code,
        "description": charge.description,
        "modifiers": list(charge.modifiers or []),
        "units": charge.units,
        "amount": f"{charge.amount:.2f}",
        "diagnosis_pointers": list(charge.diagnosis_pointers or []),
        "service_date": charge.service_date.isoformat(),
        "status": charge.status.value,
    }


@router.post("/charges", status_code=201)
def create_charge(
    request: ChargeCreateRequest,
    ledger: ChargeLedger = Depends(get_charge_ledger),
    user_id: Optional[str] = Depends(get_current_user),
):
    """Record a pending charge against an encounter."""
    charge = ledger.add_charge(ChargeRequest(**request.model_dump()), user_id=user_id).unwrap()
    return charge_to_dict(charge)


@router.patch("/charges/{charge_id}")
def update_charge(
    charge_id: int,
    request: ChargeUpdateRequest,
    ledger: ChargeLedger = Depends(get_charge_ledger),
    user_id: Optional[str] = Depends(get_current_user),
):
    """Edit a charge that has not been billed yet."""
    charge = ledger.update_charge(charge_id, user_id=user_id, **request.model_dump()).unwrap()
    return charge_to_dict(charge)


@router.delete("/charges/{charge_id}")
def void_charge(
    charge_id: int,
    ledger: ChargeLedger = Depends(get_charge_ledger),
    user_id: Optional[str] = Depends(get_current_user),
):
    ledger.void_charge(charge_id, user_id=user_id).unwrap()
    return {"id": charge_id, "status": "voided"}


@router.get("/encounters/{encounter_id}/charges")
def list_pending_charges(encounter_id: int, ledger: ChargeLedger = Depends(get_charge_ledger)):
    return {"items": [charge_to_dict(charge) for charge in ledger.pending_charges(encounter_id)]}
