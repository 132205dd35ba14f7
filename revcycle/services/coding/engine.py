"""
Medical decision making (MDM) scoring and E&M code selection.

Three elements are scored independently (problems addressed, data reviewed,
risk of management) and combined with the "2 of 3" rule: the visit level is
the highest level that at least two elements reach, except that one High
element plus one Moderate element already makes the visit High.

The scoring functions are pure. :class:`MDMCodingEngine` adds the one side
effect: coding a stored encounter records a pending charge for the code.
"""
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from revcycle.models.enums import MDMLevel
from revcycle.services.billing.ledger import MAX_DIAGNOSIS_POINTERS, ChargeRequest
from revcycle.services.coding.fee_schedule import EM_CODES, FALLBACK_CODE, EMCode, patient_category
from revcycle.utils.errors import EncounterNotFound
from revcycle.utils.logger import get_logger
from revcycle.utils.result import Result

logger = get_logger(__name__)


@dataclass
class EncounterFacts:
    """Documented facts of a visit that drive MDM scoring."""

    diagnosis_count: int = 0
    has_chronic_illness: bool = False
    has_severe_chronic: bool = False
    lab_count: int = 0
    imaging_count: int = 0
    independent_interpretation: bool = False
    external_discussion: bool = False
    prescription_count: int = 0
    controlled_substance: bool = False
    procedure_performed: bool = False
    emergency_risk: bool = False
    ros_positive_count: int = 0
    encounter_type: str = "established"


@dataclass
class ElementScore:
    level: MDMLevel
    reasons: List[str] = field(default_factory=list)
    points: Optional[int] = None
    test_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"level": self.level.value, "reasons": list(self.reasons)}
        if self.points is not None:
            data["points"] = self.points
        if self.test_count is not None:
            data["test_count"] = self.test_count
        return data


@dataclass
class MDMResult:
    level: MDMLevel
    problems: ElementScore
    data: ElementScore
    risk: ElementScore
    code: str
    description: str
    fee: Decimal
    encounter_type: str

    def rationale(self) -> Dict[str, Any]:
        """Per-element breakdown kept for audit and for display next to the code."""
        return {
            "problems": self.problems.to_dict(),
            "data": self.data.to_dict(),
            "risk": self.risk.to_dict(),
            "overall": self.level.value,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "code": self.code,
            "description": self.description,
            "fee": f"{self.fee:.2f}",
            "encounter_type": self.encounter_type,
            "rationale": self.rationale(),
        }


def score_problems(facts: EncounterFacts) -> ElementScore:
    if facts.has_severe_chronic:
        return ElementScore(MDMLevel.HIGH, ["Chronic illness with severe exacerbation or progression"])
    if facts.diagnosis_count >= 3:
        return ElementScore(MDMLevel.HIGH, [f"{facts.diagnosis_count} problems addressed"])
    if facts.has_chronic_illness:
        return ElementScore(MDMLevel.MODERATE, ["Chronic illness addressed"])
    if facts.diagnosis_count >= 2:
        return ElementScore(MDMLevel.MODERATE, [f"{facts.diagnosis_count} problems addressed"])
    if facts.diagnosis_count >= 1:
        return ElementScore(MDMLevel.LOW, ["1 problem addressed"])
    return ElementScore(MDMLevel.STRAIGHTFORWARD, ["No problems documented"])


def score_data(facts: EncounterFacts) -> ElementScore:
    points = 0
    reasons = []
    if facts.lab_count > 0:
        points += 1
        reasons.append(f"Lab tests ordered or reviewed ({facts.lab_count})")
    if facts.imaging_count > 0:
        points += 1
        reasons.append(f"Imaging ordered or reviewed ({facts.imaging_count})")
    if facts.independent_interpretation:
        points += 2
        reasons.append("Independent interpretation of a test")
    if facts.external_discussion:
        points += 1
        reasons.append("Discussion with external physician")

    test_count = facts.lab_count + facts.imaging_count

    if points >= 3 or facts.independent_interpretation:
        level = MDMLevel.HIGH
    elif points == 2 or test_count >= 3:
        level = MDMLevel.MODERATE
    elif points == 1 or test_count >= 1:
        level = MDMLevel.LOW
    else:
        level = MDMLevel.STRAIGHTFORWARD
        reasons.append("No data reviewed")

    return ElementScore(level, reasons, points=points, test_count=test_count)


def score_risk(facts: EncounterFacts) -> ElementScore:
    high = []
    if facts.emergency_risk:
        high.append("Decision regarding emergency care or hospitalization")
    if facts.procedure_performed:
        high.append("Procedure performed")
    if facts.controlled_substance:
        high.append("Drug therapy requiring intensive monitoring / controlled substance")
    if high:
        return ElementScore(MDMLevel.HIGH, high)
    if facts.prescription_count > 0:
        return ElementScore(MDMLevel.MODERATE, [f"Prescription drug management ({facts.prescription_count})"])
    if facts.ros_positive_count >= 2:
        return ElementScore(MDMLevel.LOW, [f"{facts.ros_positive_count} positive review-of-systems findings"])
    return ElementScore(MDMLevel.STRAIGHTFORWARD, ["Minimal risk"])


def combine_levels(*levels: MDMLevel) -> MDMLevel:
    """Apply the 2-of-3 rule to the element levels."""
    counts = Counter(levels)
    if counts[MDMLevel.HIGH] >= 2 or (counts[MDMLevel.HIGH] >= 1 and counts[MDMLevel.MODERATE] >= 1):
        return MDMLevel.HIGH
    if counts[MDMLevel.MODERATE] >= 2:
        return MDMLevel.MODERATE
    if counts[MDMLevel.LOW] >= 2:
        return MDMLevel.LOW
    return MDMLevel.STRAIGHTFORWARD


def determine_code(level: MDMLevel, encounter_type: str) -> EMCode:
    """
    Look up the office visit code for a level and encounter type.

    >>> determine_code(MDMLevel.MODERATE, "Office Visit").code
    '99214'
    """
    category = patient_category(encounter_type)
    if category is None:
        return FALLBACK_CODE
    return EM_CODES[(category, MDMLevel(level))]


def evaluate(facts: EncounterFacts) -> MDMResult:
    problems = score_problems(facts)
    data = score_data(facts)
    risk = score_risk(facts)
    level = combine_levels(problems.level, data.level, risk.level)
    em = determine_code(level, facts.encounter_type)
    return MDMResult(
        level=level,
        problems=problems,
        data=data,
        risk=risk,
        code=em.code,
        description=em.description,
        fee=em.fee,
        encounter_type=facts.encounter_type,
    )


@dataclass
class CodingOutcome:
    mdm: MDMResult
    charge: Any

    def to_dict(self) -> Dict[str, Any]:
        result = self.mdm.to_dict()
        result["charge_id"] = self.charge.id
        result["amount"] = f"{self.charge.amount:.2f}"
        return result


class MDMCodingEngine:
    """Scores stored encounters and records the resulting visit charge."""

    def __init__(self, db: Session, reader, ledger):
        self.db = db
        self.reader = reader
        self.ledger = ledger

    def evaluate(self, facts: EncounterFacts) -> MDMResult:
        return evaluate(facts)

    def code_encounter(self, encounter_id: int, user_id: Optional[str] = None) -> Result[CodingOutcome]:
        """
        Score an encounter and insert one pending charge for the selected code.

        The charge links diagnoses 1..n in rank order (up to four). Failures
        from the ledger, such as an unregistered code or a visit charge that
        already exists, come back unchanged in the result.
        """
        encounter = self.reader.get(encounter_id)
        if encounter is None:
            return Result.failure(EncounterNotFound(encounter_id))

        mdm = evaluate(self.reader.facts(encounter))
        pointer_count = min(len(encounter.diagnoses), MAX_DIAGNOSIS_POINTERS)

        result = self.ledger.add_charge(
            ChargeRequest(
                encounter_id=encounter.id,
                code=mdm.code,
                units=1,
                diagnosis_pointers=list(range(1, pointer_count + 1)),
                service_date=encounter.encounter_date or date.today(),
                description=mdm.description,
            ),
            user_id=user_id,
            audit_detail={"mdm": mdm.rationale()},
        )
        if not result.ok:
            logger.warning(
                "Encounter coded but charge not recorded",
                encounter_id=encounter_id,
                code=mdm.code,
                error=result.error.code,
            )
            return Result.failure(result.error)

        logger.info("Encounter coded", encounter_id=encounter_id, level=mdm.level.value, code=mdm.code)
        return Result.success(CodingOutcome(mdm=mdm, charge=result.value))

