"""
Remittance posting.

Each claim record in an 835 is posted in its own transaction: payment,
adjustments, claim totals and status, any denial, and the idempotency row
commit together or not at all. A record that fails (unknown claim, already
posted, storage error) is reported in the batch result and the rest of the
file still posts.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from revcycle.config.database import transaction
from revcycle.config.sentry import capture_exception
from revcycle.models.database import Adjustment, Claim, ClaimCharge, Denial, Payment, RemittancePosting
from revcycle.models.enums import ClaimStatus
from revcycle.services.audit import AuditSink
from revcycle.services.billing.state import POST_ADJUDICATION, transition
from revcycle.services.edi.codes import is_denied_status, is_paid_status
from revcycle.services.edi.remittance import RemittanceAdvice, RemittanceClaim, RemittanceServiceLine
from revcycle.services.reconciliation.denials import DenialManager
from revcycle.utils.decimal_utils import ZERO, amounts_balance, sum_money
from revcycle.utils.errors import AppError, ClaimNotFound, DuplicateRemittance, InvalidStateTransition
from revcycle.utils.logger import get_logger

logger = get_logger(__name__)

EVENT_KEY_CONSTRAINT = "uq_remittance_postings_event_key"


@dataclass
class PostingError:
    claim_number: str
    error_message: str

    def to_dict(self) -> Dict[str, str]:
        return {"claim_number": self.claim_number, "error_message": self.error_message}


@dataclass
class PostingOutcome:
    claim_number: str
    claim_id: int
    status: ClaimStatus
    paid_amount: Any
    payment_id: Optional[int] = None
    denial_id: Optional[int] = None
    adjustment_count: int = 0
    balanced: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "claim_number": self.claim_number,
            "claim_id": self.claim_id,
            "status": self.status.value,
            "paid_amount": f"{self.paid_amount:.2f}",
            "payment_id": self.payment_id,
            "denial_id": self.denial_id,
            "adjustment_count": self.adjustment_count,
            "balanced": self.balanced,
        }


@dataclass
class BatchResult:
    """Per-file outcome: how many claim records posted and why the others did not."""

    processed_count: int = 0
    errors: List[PostingError] = field(default_factory=list)
    postings: List[PostingOutcome] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed_count": self.processed_count,
            "errors": [error.to_dict() for error in self.errors],
            "postings": [posting.to_dict() for posting in self.postings],
        }


def is_duplicate_event(error: IntegrityError) -> bool:
    """True when the violation is the remittance_postings event_key uniqueness, not some other constraint."""
    message = str(error.orig)
    return EVENT_KEY_CONSTRAINT in message or "remittance_postings.event_key" in message


def match_service_lines(claim: Claim, service_lines: List[RemittanceServiceLine]) -> List[Optional[int]]:
    """
    Pair each remittance service line with one of the claim's charges.

    Lines are matched by procedure code in line order; each charge is used
    at most once. Lines that match nothing map to None.
    """
    available = [link.charge for link in sorted(claim.lines, key=lambda link: link.line_number)]
    matched: List[Optional[int]] = []
    for line in service_lines:
        charge = next((c for c in available if c.code == line.procedure_code), None)
        if charge is not None:
            available.remove(charge)
            matched.append(charge.id)
        else:
            matched.append(None)
    return matched


class RemittanceProcessor:
    """Posts decoded remittances against stored claims."""

    def __init__(
        self,
        db: Session,
        audit: AuditSink,
        denials: DenialManager,
        today: Callable[[], date] = date.today,
    ):
        self.db = db
        self.audit = audit
        self.denials = denials
        self.today = today

    def process_remittance(self, advice: RemittanceAdvice, user_id: Optional[str] = None) -> BatchResult:
        result = BatchResult()

        for record in advice.claims:
            try:
                outcome, denial = self._post_claim(record, user_id)
            except AppError as e:
                logger.warning(
                    "Remittance claim not posted",
                    claim_number=record.claim_number,
                    trace_number=record.trace_number,
                    error=e.code,
                )
                result.errors.append(PostingError(record.claim_number, e.message))
                continue
            except SQLAlchemyError as e:
                # The claim's transaction is already rolled back; report it and keep going
                logger.error(
                    "Storage error posting remittance claim",
                    claim_number=record.claim_number,
                    error=str(e),
                    exc_info=True,
                )
                capture_exception(e, context={"remittance": {"claim_number": record.claim_number}})
                result.errors.append(PostingError(record.claim_number, f"Storage error: {type(e).__name__}"))
                continue

            if denial is not None:
                self.denials.schedule_deadline(denial)
            result.processed_count += 1
            result.postings.append(outcome)

        logger.info(
            "Remittance processed",
            trace_number=advice.trace_number,
            processed=result.processed_count,
            failed=len(result.errors),
        )
        return result

    def _load_claim(self, claim_number: str) -> Optional[Claim]:
        return self.db.scalars(
            select(Claim)
            .options(
                selectinload(Claim.lines).selectinload(ClaimCharge.charge),
                selectinload(Claim.denials),
            )
            .where(Claim.claim_number == claim_number)
        ).one_or_none()

    def _already_posted(self, event_key: str) -> bool:
        return self.db.scalar(
            select(RemittancePosting.id).where(RemittancePosting.event_key == event_key)
        ) is not None

    def _post_claim(self, record: RemittanceClaim, user_id: Optional[str]):
        claim = self._load_claim(record.claim_number)
        if claim is None:
            raise ClaimNotFound(record.claim_number)

        event_key = record.event_key
        if self._already_posted(event_key):
            raise DuplicateRemittance(record.claim_number)
        if claim.status == ClaimStatus.DRAFT:
            raise InvalidStateTransition(f"Claim {claim.claim_number}", claim.status, "adjudicated")

        paid = record.total_paid_amount
        adjudication_date = record.production_date or self.today()
        is_denial = is_denied_status(record.status_code) or paid == ZERO
        if is_denial:
            target = ClaimStatus.DENIED
        elif is_paid_status(record.status_code):
            target = ClaimStatus.PAID
        else:
            target = ClaimStatus.PARTIALLY_PAID

        payment = None
        denial: Optional[Denial] = None
        adjustment_count = 0

        try:
            with transaction(self.db):
                if paid > ZERO:
                    payment = Payment(
                        claim_id=claim.id,
                        patient_id=claim.patient_id,
                        amount=paid,
                        payment_date=adjudication_date,
                        source="ERA",
                        trace_number=record.trace_number,
                        raw_remittance=record.raw_text,
                    )
                    self.db.add(payment)
                    claim.total_paid_amount = (claim.total_paid_amount or ZERO) + paid

                for adjustment in record.adjustments:
                    self._add_adjustment(claim.id, None, adjustment)
                    adjustment_count += 1
                for line, charge_id in zip(record.service_lines, match_service_lines(claim, record.service_lines)):
                    for adjustment in line.adjustments:
                        self._add_adjustment(claim.id, charge_id, adjustment)
                        adjustment_count += 1

                claim.patient_responsibility = record.patient_responsibility
                claim.adjudication_date = adjudication_date
                if record.payer_claim_control_number:
                    claim.payer_claim_control_number = record.payer_claim_control_number

                # Appeals in progress keep the claim where it is; the money still posts
                if claim.status not in POST_ADJUDICATION:
                    transition(claim, target)

                if is_denial:
                    denial = self.denials.record_denial(claim, record, adjudication_date, event_key, user_id)

                self.db.add(
                    RemittancePosting(
                        event_key=event_key,
                        claim_id=claim.id,
                        trace_number=record.trace_number,
                        payer_id=record.payer_id,
                        claim_status_code=record.status_code,
                        paid_amount=paid,
                        posted_by=user_id,
                    )
                )
                self.db.flush()
                self.audit.record(
                    user_id,
                    "remittance.posted",
                    f"claim:{claim.claim_number}",
                    {
                        "trace_number": record.trace_number,
                        "status_code": record.status_code,
                        "paid_amount": f"{paid:.2f}",
                        "adjustments": adjustment_count,
                        "denial_id": denial.id if denial is not None else None,
                    },
                )
        except IntegrityError as e:
            if not is_duplicate_event(e):
                raise
            # Another upload of the same file committed this event first
            raise DuplicateRemittance(record.claim_number) from None

        accounted = paid + sum_money(adj.amount for adj in record.all_adjustments)
        balanced = amounts_balance(record.total_charge_amount, accounted)
        if not balanced:
            logger.warning(
                "Remittance does not balance",
                claim_number=claim.claim_number,
                charge=f"{record.total_charge_amount:.2f}",
                accounted=f"{accounted:.2f}",
            )

        logger.info(
            "Remittance posted",
            claim_number=claim.claim_number,
            status=claim.status.value,
            paid=f"{paid:.2f}",
        )
        outcome = PostingOutcome(
            claim_number=claim.claim_number,
            claim_id=claim.id,
            status=claim.status,
            paid_amount=paid,
            payment_id=payment.id if payment is not None else None,
            denial_id=denial.id if denial is not None else None,
            adjustment_count=adjustment_count,
            balanced=balanced,
        )
        return outcome, denial

    def _add_adjustment(self, claim_id: int, charge_id: Optional[int], adjustment) -> None:
        self.db.add(
            Adjustment(
                claim_id=claim_id,
                charge_id=charge_id,
                group_code=adjustment.group_code,
                reason_code=adjustment.reason_code,
                amount=adjustment.amount,
                quantity=adjustment.quantity,
            )
        )
