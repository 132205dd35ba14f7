"""
Celery tasks for appeal-deadline tracking.

Tasks:
- check_appeal_deadline: one reminder for one denial, queued with an ETA
- sweep_overdue_denials: daily scan for open denials past their deadline
"""
from datetime import date
from typing import Any, Dict

from revcycle.config.celery import celery_app
from revcycle.config.database import SessionLocal
from revcycle.config.sentry import add_breadcrumb, capture_message
from revcycle.models.database import Denial
from revcycle.models.enums import DenialStatus
from revcycle.services.reconciliation.denials import find_overdue_denials
from revcycle.utils.logger import get_logger

logger = get_logger(__name__)


@celery_app.task(bind=True, name="revcycle.check_appeal_deadline", max_retries=3)
def check_appeal_deadline(self, denial_id: int) -> Dict[str, Any]:
    """Warn about a denial whose appeal deadline is near, unless it was already resolved."""
    db = SessionLocal()
    try:
        denial = db.get(Denial, denial_id)
        if denial is None or denial.status == DenialStatus.RESOLVED or denial.appeal_deadline is None:
            return {"denial_id": denial_id, "status": "skipped"}

        days_left = (denial.appeal_deadline - date.today()).days
        add_breadcrumb(
            message="Appeal deadline check",
            category="denials",
            data={"denial_id": denial_id, "days_left": days_left},
        )
        logger.warning(
            "Appeal deadline approaching",
            denial_id=denial_id,
            claim_id=denial.claim_id,
            denial_status=denial.status.value,
            deadline=denial.appeal_deadline.isoformat(),
            days_left=days_left,
        )
        return {"denial_id": denial_id, "status": "reminded", "days_left": days_left}
    except Exception as e:
        logger.error("Appeal deadline check failed", denial_id=denial_id, error=str(e), exc_info=True)
        raise self.retry(exc=e, countdown=60)
    finally:
        db.close()


@celery_app.task(name="revcycle.sweep_overdue_denials")
def sweep_overdue_denials() -> Dict[str, Any]:
    db = SessionLocal()
    try:
        overdue = find_overdue_denials(db, date.today())
        for denial in overdue:
            logger.warning(
                "Appeal deadline passed",
                denial_id=denial.id,
                claim_id=denial.claim_id,
                deadline=denial.appeal_deadline.isoformat(),
            )
        if overdue:
            capture_message(
                "Denials past their appeal deadline",
                level="warning",
                context={"denials": {"count": len(overdue)}},
            )
        return {"overdue": [denial.id for denial in overdue]}
    finally:
        db.close()
