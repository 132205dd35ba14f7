"""Scheduling port for appeal-deadline reminders."""
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from revcycle.config.sentry import capture_exception
from revcycle.utils.logger import get_logger

logger = get_logger(__name__)

# Reminders fire this many days before the deadline, at 09:00 UTC
DEFAULT_REMINDER_LEAD_DAYS = 7
REMINDER_TIME = time(9, 0)


class DeadlineScheduler(ABC):
    """Arranges for someone to be told before a denial's appeal window closes."""

    @abstractmethod
    def schedule_appeal_deadline(self, denial_id: int, deadline: date) -> None:
        """Queue a reminder for ``denial_id`` ahead of ``deadline``."""


def reminder_eta(deadline: date, lead_days: int, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    eta = datetime.combine(deadline - timedelta(days=lead_days), REMINDER_TIME, tzinfo=timezone.utc)
    return max(eta, now)


class CeleryDeadlineScheduler(DeadlineScheduler):
    """
    Queues ``check_appeal_deadline`` with an ETA on the Celery broker.

    The daily ``sweep_overdue_denials`` beat task catches anything a lost
    message would have missed, so a broker outage while scheduling is logged
    and reported rather than failing the already-committed billing change.
    """

    def __init__(self, lead_days: int = DEFAULT_REMINDER_LEAD_DAYS):
        self.lead_days = lead_days

    def schedule_appeal_deadline(self, denial_id: int, deadline: date) -> None:
        from revcycle.services.queue.tasks import check_appeal_deadline

        eta = reminder_eta(deadline, self.lead_days)
        try:
            check_appeal_deadline.apply_async(args=[denial_id], eta=eta)
        except Exception as e:
            logger.error(
                "Failed to queue appeal deadline reminder",
                denial_id=denial_id,
                deadline=deadline.isoformat(),
                error=str(e),
                exc_info=True,
            )
            capture_exception(e, context={"denial": {"denial_id": denial_id}})
            return
        logger.info("Appeal deadline reminder queued", denial_id=denial_id, eta=eta.isoformat())
