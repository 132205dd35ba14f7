"""Reads encounter facts for the coding engine and the charge ledger."""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from revcycle.models.core import Encounter
from revcycle.services.coding.engine import EncounterFacts


class EncounterReader:
    """Loads encounters with their ranked diagnoses and turns them into :class:`EncounterFacts`."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, encounter_id: int) -> Optional[Encounter]:
        return self.db.scalars(
            select(Encounter)
            .options(selectinload(Encounter.diagnoses))
            .where(Encounter.id == encounter_id)
        ).one_or_none()

    def facts(self, encounter: Encounter) -> EncounterFacts:
        diagnoses = encounter.diagnoses
        return EncounterFacts(
            diagnosis_count=len(diagnoses),
            has_chronic_illness=any(d.is_chronic for d in diagnoses),
            has_severe_chronic=any(d.is_chronic and d.is_severe for d in diagnoses),
            lab_count=encounter.lab_orders_count or 0,
            imaging_count=encounter.imaging_orders_count or 0,
            independent_interpretation=bool(encounter.independent_interpretation),
            external_discussion=bool(encounter.external_discussion),
            prescription_count=encounter.prescription_count or 0,
            controlled_substance=bool(encounter.controlled_substance),
            procedure_performed=bool(encounter.procedure_performed),
            emergency_risk=bool(encounter.emergency_risk),
            ros_positive_count=encounter.ros_positive_count or 0,
            encounter_type=encounter.encounter_type or "",
        )
