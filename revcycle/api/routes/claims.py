"""Claim assembly and submission endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from revcycle.api.dependencies import get_claim_assembler, get_current_user
from revcycle.api.routes.charges import charge_to_dict
from revcycle.models.database import Claim
from revcycle.services.billing.claims import ClaimAssembler
from revcycle.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


class ClaimCreateRequest(BaseModel):
    encounter_id: int
    insurance_id: int


def _money(value) -> str:
    return f"{value or 0:.2f}"


def claim_to_dict(claim: Claim, include_lines: bool = True) -> dict:
    data = {
        "id": claim.id,
        "claim_number": claim.claim_number,
        "encounter_id": claim.encounter_id,
        "patient_id": claim.patient_id,
        "insurance_id": claim.insurance_id,
        "status": claim.status.value,
        "total_charge_amount": _money(claim.total_charge_amount),
        "total_paid_amount": _money(claim.total_paid_amount),
        "patient_responsibility": _money(claim.patient_responsibility),
        "submission_date": claim.submission_date.isoformat() if claim.submission_date else None,
        "adjudication_date": claim.adjudication_date.isoformat() if claim.adjudication_date else None,
        "clearinghouse_claim_id": claim.clearinghouse_claim_id,
        "frequency_code": claim.frequency_code,
        "submission_count": claim.submission_count,
    }
    if include_lines:
        data["lines"] = [
            {"line_number": link.line_number, "charge": charge_to_dict(link.charge)}
            for link in sorted(claim.lines, key=lambda link: link.line_number)
        ]
    return data


@router.post("/claims", status_code=201)
def create_claim(
    request: ClaimCreateRequest,
    assembler: ClaimAssembler = Depends(get_claim_assembler),
    user_id: Optional[str] = Depends(get_current_user),
):
    """Bill every pending charge on an encounter as a new draft claim."""
    claim = assembler.create_claim(request.encounter_id, request.insurance_id, user_id=user_id).unwrap()
    return claim_to_dict(claim)


@router.get("/claims/{claim_id}")
def get_claim(claim_id: int, assembler: ClaimAssembler = Depends(get_claim_assembler)):
    claim = assembler.get_claim(claim_id).unwrap()
    data = claim_to_dict(claim)
    data["edi_content"] = claim.edi_content
    return data


@router.post("/claims/{claim_id}/submit")
def submit_claim(
    claim_id: int,
    assembler: ClaimAssembler = Depends(get_claim_assembler),
    user_id: Optional[str] = Depends(get_current_user),
):
    """
    Encode a draft claim as an 837P and send it to the clearinghouse.

    A clearinghouse failure answers 502 and leaves the claim in draft.
    """
    claim = assembler.submit_claim(claim_id, user_id=user_id).unwrap()
    return claim_to_dict(claim, include_lines=False)


@router.post("/claims/{claim_id}/resubmit")
def resubmit_claim(
    claim_id: int,
    assembler: ClaimAssembler = Depends(get_claim_assembler),
    user_id: Optional[str] = Depends(get_current_user),
):
    """Send a replacement claim for a denied claim."""
    claim = assembler.resubmit_claim(claim_id, user_id=user_id).unwrap()
    return claim_to_dict(claim, include_lines=False)
