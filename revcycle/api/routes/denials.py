"""Denial and appeal endpoints."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from revcycle.api.dependencies import get_current_user, get_denial_manager
from revcycle.models.database import Denial
from revcycle.models.enums import DenialStatus
from revcycle.services.reconciliation.denials import DenialManager

router = APIRouter()


class AppealRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    supporting_documents: List[str] = Field(default_factory=list)
    deadline: Optional[date] = None


class ResolveRequest(BaseModel):
    resolution: str = Field(..., min_length=1)


def denial_to_dict(denial: Denial) -> dict:
    return {
        "id": denial.id,
        "claim_id": denial.claim_id,
        "code": denial.code,
        "reason_description": denial.reason_description,
        "denied_amount": f"{denial.denied_amount:.2f}",
        "status": denial.status.value,
        "appeal_deadline": denial.appeal_deadline.isoformat() if denial.appeal_deadline else None,
        "appealed_by": denial.appealed_by,
        "resolution": denial.resolution,
        "resolved_by": denial.resolved_by,
        "resolved_at": denial.resolved_at.isoformat() if denial.resolved_at else None,
        "appeal_count": len(denial.appeals),
    }


@router.get("/denials")
def list_denials(
    status: Optional[DenialStatus] = Query(None),
    claim_id: Optional[int] = Query(None),
    manager: DenialManager = Depends(get_denial_manager),
):
    return {"items": [denial_to_dict(d) for d in manager.list_denials(status=status, claim_id=claim_id)]}


@router.get("/denials/overdue")
def list_overdue_denials(
    as_of: Optional[date] = Query(None),
    manager: DenialManager = Depends(get_denial_manager),
):
    """Open denials whose appeal deadline has passed."""
    return {"items": [denial_to_dict(d) for d in manager.overdue_denials(as_of)]}


@router.post("/denials/{denial_id}/appeals", status_code=201)
def create_appeal(
    denial_id: int,
    request: AppealRequest,
    manager: DenialManager = Depends(get_denial_manager),
    user_id: Optional[str] = Depends(get_current_user),
):
    appeal = manager.create_appeal(
        denial_id,
        request.reason,
        supporting_documents=request.supporting_documents,
        deadline=request.deadline,
        user_id=user_id,
    ).unwrap()
    return {
        "id": appeal.id,
        "denial_id": appeal.denial_id,
        "claim_id": appeal.claim_id,
        "reason": appeal.reason,
        "supporting_documents": list(appeal.supporting_documents or []),
        "created_by": appeal.created_by,
        "created_at": appeal.created_at.isoformat() if appeal.created_at else None,
    }


@router.post("/denials/{denial_id}/resolve")
def resolve_denial(
    denial_id: int,
    request: ResolveRequest,
    manager: DenialManager = Depends(get_denial_manager),
    user_id: Optional[str] = Depends(get_current_user),
):
    """
    Resolve a denial.

    Denials still pending (never appealed) answer 409 unless the practice
    allows resolving denials directly.
    """
    denial = manager.resolve_denial(denial_id, request.resolution, user_id=user_id).unwrap()
    return denial_to_dict(denial)
