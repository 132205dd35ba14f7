"""MDM scoring and encounter coding endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from revcycle.api.dependencies import get_coding_engine, get_current_user
from revcycle.services.coding.engine import EncounterFacts, MDMCodingEngine, evaluate
from revcycle.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


class EncounterFactsRequest(BaseModel):
    """Documented facts of a visit."""

    diagnosis_count: int = Field(0, ge=0)
    has_chronic_illness: bool = False
    has_severe_chronic: bool = False
    lab_count: int = Field(0, ge=0)
    imaging_count: int = Field(0, ge=0)
    independent_interpretation: bool = False
    external_discussion: bool = False
    prescription_count: int = Field(0, ge=0)
    controlled_substance: bool = False
    procedure_performed: bool = False
    emergency_risk: bool = False
    ros_positive_count: int = Field(0, ge=0)
    encounter_type: str = "established"


@router.post("/coding/evaluate")
async def evaluate_encounter_facts(request: EncounterFactsRequest):
    """
    Score MDM for a set of encounter facts and return the matching E&M code.

    Nothing is stored. The response carries the per-element rationale.
    """
    return evaluate(EncounterFacts(**request.model_dump())).to_dict()


@router.post("/encounters/{encounter_id}/code")
def code_encounter(
    encounter_id: int,
    engine: MDMCodingEngine = Depends(get_coding_engine),
    user_id: Optional[str] = Depends(get_current_user),
):
    """Score a stored encounter and record a pending charge for the visit code."""
    outcome = engine.code_encounter(encounter_id, user_id=user_id).unwrap()
    return outcome.to_dict()
