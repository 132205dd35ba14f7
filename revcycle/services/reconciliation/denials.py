"""
Denial tracking and the appeal workflow.

    pending -> appealing -> resolved

A denial is opened by remittance posting, appealed one or more times, and
finally resolved. Resolving a denial that was never appealed is a practice
policy (``ALLOW_DIRECT_DENIAL_RESOLUTION``) and is refused by default.
"""
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from revcycle.config.database import transaction
from revcycle.config.settings import RevenueCycleSettings
from revcycle.models.database import Claim, Denial, DenialAppeal
from revcycle.models.enums import ClaimStatus, DenialStatus, DuplicateDenialPolicy
from revcycle.services.audit import AuditSink
from revcycle.services.billing.state import transition
from revcycle.services.edi.codes import UNSPECIFIED_DENIAL_CODE, describe_reason_code
from revcycle.services.edi.remittance import RemittanceClaim
from revcycle.services.queue.scheduler import DeadlineScheduler
from revcycle.utils.decimal_utils import ZERO
from revcycle.utils.errors import (
    AppError,
    DenialNotFound,
    InvalidStateTransition,
    ValidationError,
)
from revcycle.utils.logger import get_logger
from revcycle.utils.result import Result

logger = get_logger(__name__)


def find_overdue_denials(db: Session, as_of: date) -> List[Denial]:
    """Unresolved denials whose appeal deadline is before ``as_of``."""
    return list(
        db.scalars(
            select(Denial)
            .where(
                Denial.status != DenialStatus.RESOLVED,
                Denial.appeal_deadline.is_not(None),
                Denial.appeal_deadline < as_of,
            )
            .order_by(Denial.appeal_deadline, Denial.id)
        )
    )


class DenialManager:
    """Opens denials from remittances and moves them through appeal and resolution."""

    def __init__(
        self,
        db: Session,
        audit: AuditSink,
        scheduler: DeadlineScheduler,
        settings: RevenueCycleSettings,
        today: Callable[[], date] = date.today,
    ):
        self.db = db
        self.audit = audit
        self.scheduler = scheduler
        self.settings = settings
        self.today = today

    def record_denial(
        self,
        claim: Claim,
        remittance: RemittanceClaim,
        adjudication_date: date,
        remittance_key: str,
        user_id: Optional[str] = None,
    ) -> Optional[Denial]:
        """
        Open a denial for a zero-pay or denied remittance, following the duplicate policy.

        Runs inside the caller's transaction. Returns None when the policy says
        the remittance is covered by a denial that is already open.
        """
        for existing in claim.denials:
            if existing.remittance_key == remittance_key:
                return existing

        policy = DuplicateDenialPolicy(self.settings.duplicate_denial_policy)
        if policy == DuplicateDenialPolicy.IDEMPOTENT:
            open_denial = next((d for d in claim.denials if d.status == DenialStatus.PENDING), None)
            if open_denial is not None:
                logger.info(
                    "Denial already pending for claim",
                    claim_number=claim.claim_number,
                    denial_id=open_denial.id,
                )
                return None

        adjustments = remittance.all_adjustments
        code = adjustments[0].reason_code if adjustments else UNSPECIFIED_DENIAL_CODE
        denied_amount = max(remittance.total_charge_amount - remittance.total_paid_amount, ZERO)

        denial = Denial(
            claim_id=claim.id,
            code=code,
            reason_description=describe_reason_code(code),
            denied_amount=denied_amount,
            status=DenialStatus.PENDING,
            appeal_deadline=adjudication_date + timedelta(days=self.settings.appeal_window_days),
            remittance_key=remittance_key,
        )
        self.db.add(denial)
        claim.denials.append(denial)
        self.db.flush()
        self.audit.record(
            user_id,
            "denial.created",
            f"claim:{claim.claim_number}",
            {"denial_id": denial.id, "code": code, "denied_amount": f"{denied_amount:.2f}"},
        )
        logger.info("Denial recorded", claim_number=claim.claim_number, denial_id=denial.id, code=code)
        return denial

    def schedule_deadline(self, denial: Denial) -> None:
        if denial.appeal_deadline is not None:
            self.scheduler.schedule_appeal_deadline(denial.id, denial.appeal_deadline)

    def create_appeal(
        self,
        denial_id: int,
        reason: str,
        supporting_documents: Optional[List[str]] = None,
        deadline: Optional[date] = None,
        user_id: Optional[str] = None,
    ) -> Result[DenialAppeal]:
        """
        File an appeal against a denial.

        The first appeal moves the denial from pending to appealing; later
        appeals add further attempts. The claim moves to appealing.
        """
        try:
            if not (reason or "").strip():
                raise ValidationError("Appeal reason is required", {"field": "reason"})
            denial = self._get(denial_id)
            if denial.status == DenialStatus.RESOLVED:
                raise InvalidStateTransition(f"Denial {denial.id}", denial.status, DenialStatus.APPEALING)

            deadline = deadline or denial.appeal_deadline
            if deadline is not None and deadline < self.today():
                raise ValidationError(
                    "Appeal deadline cannot be in the past",
                    {"field": "deadline", "deadline": deadline.isoformat()},
                )

            with transaction(self.db):
                denial.status = DenialStatus.APPEALING
                denial.appeal_deadline = deadline
                denial.appealed_by = user_id
                appeal = DenialAppeal(
                    denial_id=denial.id,
                    claim_id=denial.claim_id,
                    reason=reason.strip(),
                    supporting_documents=list(supporting_documents or []),
                    created_by=user_id,
                )
                self.db.add(appeal)
                transition(denial.claim, ClaimStatus.APPEALING)
                self.db.flush()
                self.audit.record(
                    user_id,
                    "denial.appealed",
                    f"denial:{denial.id}",
                    {
                        "appeal_id": appeal.id,
                        "claim_id": denial.claim_id,
                        "deadline": deadline.isoformat() if deadline else None,
                        "documents": len(appeal.supporting_documents),
                    },
                )
        except AppError as e:
            logger.warning("Appeal not created", denial_id=denial_id, error=e.code)
            return Result.failure(e)

        self.schedule_deadline(denial)
        logger.info("Appeal filed", denial_id=denial_id, appeal_id=appeal.id)
        return Result.success(appeal)

    def resolve_denial(self, denial_id: int, resolution: str, user_id: Optional[str] = None) -> Result[Denial]:
        """
        Close a denial with a resolution note.

        The claim becomes resolved once none of its denials remain open.
        """
        allow_direct = self.settings.allow_direct_denial_resolution
        try:
            if not (resolution or "").strip():
                raise ValidationError("Resolution text is required", {"field": "resolution"})
            denial = self._get(denial_id)
            if denial.status == DenialStatus.RESOLVED:
                raise InvalidStateTransition(f"Denial {denial.id}", denial.status, DenialStatus.RESOLVED)
            if denial.status == DenialStatus.PENDING and not allow_direct:
                raise InvalidStateTransition(f"Denial {denial.id}", denial.status, DenialStatus.RESOLVED)

            with transaction(self.db):
                previous = denial.status
                denial.status = DenialStatus.RESOLVED
                denial.resolution = resolution.strip()
                denial.resolved_by = user_id
                denial.resolved_at = datetime.now()

                claim = denial.claim
                still_open = [d for d in claim.denials if d.id != denial.id and d.is_open]
                if not still_open and claim.status in (ClaimStatus.APPEALING, ClaimStatus.DENIED):
                    transition(claim, ClaimStatus.RESOLVED, allow_direct_resolution=allow_direct)

                self.audit.record(
                    user_id,
                    "denial.resolved",
                    f"denial:{denial.id}",
                    {"claim_id": claim.id, "from": previous.value, "claim_status": claim.status.value},
                )
        except AppError as e:
            logger.warning("Denial not resolved", denial_id=denial_id, error=e.code)
            return Result.failure(e)

        logger.info("Denial resolved", denial_id=denial_id)
        return Result.success(denial)

    def overdue_denials(self, as_of: Optional[date] = None) -> List[Denial]:
        return find_overdue_denials(self.db, as_of or self.today())

    def list_denials(self, status: Optional[DenialStatus] = None, claim_id: Optional[int] = None) -> List[Denial]:
        query = select(Denial).order_by(Denial.id)
        if status is not None:
            query = query.where(Denial.status == status)
        if claim_id is not None:
            query = query.where(Denial.claim_id == claim_id)
        return list(self.db.scalars(query))

    def _get(self, denial_id: int) -> Denial:
        denial = self.db.get(Denial, denial_id)
        if denial is None:
            raise DenialNotFound(denial_id)
        return denial
