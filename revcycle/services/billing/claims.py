"""
Claim assembly and submission.

:class:`ClaimAssembler` gathers an encounter's pending charges into a draft
claim, then encodes and sends it to the clearinghouse. Each operation changes
claims in one transaction: a claim is never stored without its service lines,
a charge is never linked to two claims, and a claim the clearinghouse refused
is rolled back to draft as if submission had never been attempted. The
interchange control number is allocated and committed before that
transaction opens.
"""
import re
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from revcycle.config.database import transaction
from revcycle.config.settings import RevenueCycleSettings
from revcycle.models.core import Encounter, PatientInsurance
from revcycle.models.database import Charge, Claim, ClaimCharge
from revcycle.models.enums import ChargeStatus, ClaimStatus, DenialStatus
from revcycle.services.audit import AuditSink
from revcycle.services.billing.sequence import SequenceAllocator
from revcycle.services.billing.state import transition
from revcycle.services.edi.encoder import ClaimGraph, EDI837Encoder, InterchangeEnvelope
from revcycle.services.integrations.clearinghouse import ClearinghouseGateway
from revcycle.utils.decimal_utils import sum_money
from revcycle.utils.errors import (
    AppError,
    ChargeConflict,
    ClaimNotFound,
    ClaimValidationError,
    ClearinghouseSubmissionFailed,
    EncounterNotFound,
    InsuranceNotFound,
    InvalidStateTransition,
    NoChargesToBill,
)
from revcycle.utils.logger import get_logger
from revcycle.utils.result import Result

logger = get_logger(__name__)

NPI_PATTERN = re.compile(r"^[0-9]{10}$")

ORIGINAL_CLAIM = "1"
REPLACEMENT_CLAIM = "7"

SUPERSEDED_RESOLUTION = "Superseded by replacement claim"


def validate_claim_graph(claim: Claim) -> None:
    """
    Check a loaded claim carries everything the 837 needs.

    Raises:
        ClaimValidationError: Naming the first missing or malformed field
    """
    patient = claim.patient
    if patient is None:
        raise ClaimValidationError("patient", "Claim has no patient")
    if not (patient.first_name or "").strip():
        raise ClaimValidationError("patient.first_name", "Patient first name is required")
    if not (patient.last_name or "").strip():
        raise ClaimValidationError("patient.last_name", "Patient last name is required")
    if patient.date_of_birth is None:
        raise ClaimValidationError("patient.date_of_birth", "Patient date of birth is required")

    coverage = claim.insurance
    if coverage is None or coverage.plan is None:
        raise ClaimValidationError("insurance", "Claim has no insurance coverage")
    if not (coverage.member_id or "").strip():
        raise ClaimValidationError("insurance.member_id", "Member ID is required")
    if not (coverage.plan.payer_id or "").strip():
        raise ClaimValidationError("insurance.payer_id", "Payer ID is required")
    if not coverage.subscriber_is_patient:
        if not (coverage.subscriber_first_name or "").strip() or not (coverage.subscriber_last_name or "").strip():
            raise ClaimValidationError("subscriber.name", "Subscriber name is required when the patient is a dependent")

    encounter = claim.encounter
    if encounter.clinic is None or not NPI_PATTERN.match(encounter.clinic.npi or ""):
        raise ClaimValidationError("billing_provider.npi", "Billing provider NPI must be exactly 10 digits")
    if encounter.provider is None or not NPI_PATTERN.match(encounter.provider.npi or ""):
        raise ClaimValidationError("rendering_provider.npi", "Rendering provider NPI must be exactly 10 digits")

    diagnosis_count = len(encounter.diagnoses)
    if diagnosis_count == 0:
        raise ClaimValidationError("diagnoses", "At least one diagnosis is required")

    lines = sorted(claim.lines, key=lambda link: link.line_number)
    if not lines:
        raise ClaimValidationError("service_lines", "At least one service line is required")
    if [link.line_number for link in lines] != list(range(1, len(lines) + 1)):
        raise ClaimValidationError("service_lines.line_number", "Service line numbers must run 1..N without gaps")
    for link in lines:
        pointers = link.charge.diagnosis_pointers or []
        if not pointers or max(pointers) > diagnosis_count:
            raise ClaimValidationError(
                "service_lines.diagnosis_pointers",
                f"Line {link.line_number} does not point at a diagnosis on the claim",
            )


class ClaimAssembler:
    """Builds claims from pending charges and submits them."""

    def __init__(
        self,
        db: Session,
        audit: AuditSink,
        gateway: ClearinghouseGateway,
        settings: RevenueCycleSettings,
        encoder: Optional[EDI837Encoder] = None,
        sequences: Optional[SequenceAllocator] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.audit = audit
        self.gateway = gateway
        self.settings = settings
        self.encoder = encoder or EDI837Encoder()
        self.sequences = sequences or SequenceAllocator(db)
        self.clock = clock

    def create_claim(self, encounter_id: int, insurance_id: int, user_id: Optional[str] = None) -> Result[Claim]:
        """
        Create a draft claim from every pending charge on the encounter.

        Charges become service lines 1..N ordered by service date and then by
        charge id, and flip to ``submitted`` in the same transaction.
        """
        try:
            encounter = self.db.get(Encounter, encounter_id)
            if encounter is None:
                raise EncounterNotFound(encounter_id)
            coverage = self.db.get(PatientInsurance, insurance_id)
            if coverage is None or coverage.patient_id != encounter.patient_id:
                raise InsuranceNotFound(insurance_id)

            charges = self._pending_charges(encounter_id)
            if not charges:
                raise NoChargesToBill(encounter_id)
            charge_ids = [charge.id for charge in charges]

            with transaction(self.db):
                claim = Claim(
                    encounter_id=encounter.id,
                    patient_id=encounter.patient_id,
                    insurance_id=coverage.id,
                    claim_number=self.sequences.next_claim_number(self.settings.claim_number_prefix),
                    total_charge_amount=sum_money(charge.amount for charge in charges),
                    status=ClaimStatus.DRAFT,
                    frequency_code=ORIGINAL_CLAIM,
                )
                self.db.add(claim)
                self.db.flush()

                for line_number, charge in enumerate(charges, start=1):
                    self.db.add(ClaimCharge(claim_id=claim.id, charge_id=charge.id, line_number=line_number))
                self.db.flush()

                # Only charges still pending may be billed; anything else means a concurrent claim got there first
                flipped = self.db.execute(
                    update(Charge)
                    .where(Charge.id.in_(charge_ids), Charge.status == ChargeStatus.PENDING)
                    .values(status=ChargeStatus.SUBMITTED)
                    .execution_options(synchronize_session=False)
                ).rowcount
                if flipped != len(charge_ids):
                    raise ChargeConflict(encounter_id, len(charge_ids), flipped)

                self.audit.record(
                    user_id,
                    "claim.created",
                    f"claim:{claim.claim_number}",
                    {
                        "encounter_id": encounter_id,
                        "charge_ids": charge_ids,
                        "total_charge_amount": f"{claim.total_charge_amount:.2f}",
                    },
                )
        except AppError as e:
            logger.warning("Claim not created", encounter_id=encounter_id, error=e.code)
            return Result.failure(e)
        except IntegrityError:
            logger.warning("Charge already linked to another claim", encounter_id=encounter_id)
            return Result.failure(ChargeConflict(encounter_id, len(charge_ids), 0))

        logger.info(
            "Claim created",
            claim_number=claim.claim_number,
            encounter_id=encounter_id,
            lines=len(charge_ids),
        )
        return Result.success(claim)

    def submit_claim(self, claim_id: int, user_id: Optional[str] = None) -> Result[Claim]:
        """
        Validate, encode and send a draft claim.

        Validation failures return before anything is written. If the
        clearinghouse call fails the transaction is rolled back and the claim
        stays in draft with its stored 837 unchanged.
        """
        return self._send(claim_id, user_id, ClaimStatus.DRAFT, ORIGINAL_CLAIM, "claim.submitted")

    def resubmit_claim(self, claim_id: int, user_id: Optional[str] = None) -> Result[Claim]:
        """Send a corrected replacement (frequency code 7) for a denied claim."""
        return self._send(claim_id, user_id, ClaimStatus.DENIED, REPLACEMENT_CLAIM, "claim.resubmitted")

    def get_claim(self, claim_id: int) -> Result[Claim]:
        claim = self._load_graph(claim_id)
        if claim is None:
            return Result.failure(ClaimNotFound(claim_id))
        return Result.success(claim)

    def _send(
        self,
        claim_id: int,
        user_id: Optional[str],
        required_status: ClaimStatus,
        frequency_code: str,
        action: str,
    ) -> Result[Claim]:
        try:
            claim = self._load_graph(claim_id)
            if claim is None:
                raise ClaimNotFound(claim_id)
            if claim.status != required_status:
                raise InvalidStateTransition(f"Claim {claim.claim_number}", claim.status, ClaimStatus.SUBMITTED)
            validate_claim_graph(claim)

            # Committed on its own so the counter row is not locked for the
            # length of the clearinghouse call. A number lost to a rollback
            # below is simply skipped.
            with transaction(self.db):
                control_number = self.sequences.next_control_number()

            with transaction(self.db):
                now = self.clock()
                claim.frequency_code = frequency_code
                graph = ClaimGraph.from_claim(claim)
                envelope = InterchangeEnvelope.from_settings(self.settings, control_number)
                edi_content = self.encoder.encode(graph, envelope, now)

                transition(claim, ClaimStatus.SUBMITTED)
                claim.edi_content = edi_content
                claim.submission_date = now
                claim.submission_count = (claim.submission_count or 0) + 1
                superseded = []
                if frequency_code == REPLACEMENT_CLAIM:
                    superseded = self._supersede_pending_denials(claim, user_id, now)
                self.db.flush()

                receipt = self.gateway.submit_claim(edi_content, claim.claim_number, graph.subscriber.payer_id)
                claim.clearinghouse_claim_id = receipt.claim_id
                detail = {
                    "tracking_id": receipt.claim_id,
                    "clearinghouse_status": receipt.status,
                    "interchange_control_number": envelope.control_number,
                    "frequency_code": frequency_code,
                }
                if superseded:
                    detail["superseded_denials"] = superseded
                self.audit.record(user_id, action, f"claim:{claim.claim_number}", detail)
        except ClearinghouseSubmissionFailed as e:
            logger.warning("Claim submission rolled back", claim_id=claim_id, error=e.message)
            return Result.failure(e)
        except AppError as e:
            logger.warning("Claim not submitted", claim_id=claim_id, error=e.code)
            return Result.failure(e)

        logger.info(
            "Claim submitted",
            claim_number=claim.claim_number,
            tracking_id=claim.clearinghouse_claim_id,
            frequency_code=frequency_code,
        )
        return Result.success(claim)

    def _supersede_pending_denials(self, claim: Claim, user_id: Optional[str], now: datetime) -> List[int]:
        """Close denials of the original submission that nobody appealed; the replacement gets its own."""
        superseded = []
        for denial in claim.denials:
            if denial.status != DenialStatus.PENDING:
                continue
            denial.status = DenialStatus.RESOLVED
            denial.resolution = SUPERSEDED_RESOLUTION
            denial.resolved_by = user_id
            denial.resolved_at = now
            superseded.append(denial.id)
        return superseded

    def _pending_charges(self, encounter_id: int) -> List[Charge]:
        return list(
            self.db.scalars(
                select(Charge)
                .where(Charge.encounter_id == encounter_id, Charge.status == ChargeStatus.PENDING)
                .order_by(Charge.service_date, Charge.id)
            )
        )

    def _load_graph(self, claim_id: int) -> Optional[Claim]:
        return self.db.scalars(
            select(Claim)
            .options(
                selectinload(Claim.patient),
                selectinload(Claim.insurance).selectinload(PatientInsurance.plan),
                selectinload(Claim.encounter).selectinload(Encounter.clinic),
                selectinload(Claim.encounter).selectinload(Encounter.provider),
                selectinload(Claim.encounter).selectinload(Encounter.diagnoses),
                selectinload(Claim.lines).selectinload(ClaimCharge.charge),
            )
            .where(Claim.id == claim_id)
        ).one_or_none()
