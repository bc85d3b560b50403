"""
Day ledger: which calendar days belong to a deployment.
A day is in the ledger if it falls in the nominal range (date + daysOnSite),
carries at least one daily log, or was staged in the open session.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Iterable, List, Optional, TYPE_CHECKING

import structlog

from ..exceptions import DayDeletionError, ValidationError
from ..schemas.deployments import DailyLog, Deployment, to_day
from .repository import DeploymentRepository, MissionSession

if TYPE_CHECKING:
    from .batch import BatchResult
    from .log_ledger import LogLedger

logger = structlog.get_logger(__name__)


def range_days(deployment: Deployment) -> List[str]:
    start = date.fromisoformat(deployment.date)
    count = deployment.days_on_site or 1
    return [(start + timedelta(days=offset)).isoformat() for offset in range(count)]


def ledger_days(deployment: Deployment, staged_days: Iterable[str] = ()) -> List[str]:
    days = set(range_days(deployment))
    days.update(log.date for log in deployment.daily_logs)
    days.update(staged_days)
    # ISO day strings sort chronologically
    return sorted(days)


def logs_for_day(deployment: Deployment, day: str) -> List[DailyLog]:
    return [log for log in deployment.daily_logs if log.date == day]


@dataclass
class DayDeletion:
    day: str
    deleted_logs: int = 0
    unstaged: bool = False
    still_visible: bool = False
    cancelled: bool = False
    result: Optional["BatchResult"] = None


class DayLedger:
    def __init__(self, repository: DeploymentRepository):
        self.repository = repository

    def days(self, session: Optional[MissionSession] = None) -> List[str]:
        session = self.repository.require_session(session)
        return ledger_days(session.deployment, session.staged_days)

    def is_range_day(self, day: str, session: Optional[MissionSession] = None) -> bool:
        session = self.repository.require_session(session)
        return normalize_day(day) in range_days(session.deployment)

    def stage_day(self, day, session: Optional[MissionSession] = None) -> List[str]:
        """Add a non-consecutive day to the open deployment's schedule."""
        session = self.repository.require_session(session)
        day = normalize_day(day)
        if day not in session.staged_days:
            session.staged_days.append(day)
            logger.info("day_staged", deployment_id=session.deployment_id, day=day)
        return self.days(session)

    def unstage_day(self, day, session: Optional[MissionSession] = None) -> bool:
        session = self.repository.require_session(session)
        day = normalize_day(day)
        if day in session.staged_days:
            session.staged_days.remove(day)
            return True
        return False

    def delete_day(
        self,
        day,
        log_ledger: "LogLedger",
        confirm: Optional[Callable[[str, int], bool]] = None,
        session: Optional[MissionSession] = None,
    ) -> DayDeletion:
        """Drop a day from the ledger.

        With logs: all of them are deleted (after ``confirm(day, count)``) and
        any staged marker is removed; the day stays visible only if it is in
        the nominal range. Without logs: a staged day is unstaged, a range day
        raises DayDeletionError.
        """
        session = self.repository.require_session(session)
        day = normalize_day(day)
        logs = logs_for_day(session.deployment, day)
        outcome = DayDeletion(day=day)

        if logs:
            if confirm is not None and not confirm(day, len(logs)):
                outcome.cancelled = True
                outcome.still_visible = True
                return outcome
            outcome.result = log_ledger.delete_all_for_day(day, session=session)
            outcome.deleted_logs = len(outcome.result.succeeded)
            if outcome.result.ok:
                outcome.unstaged = self.unstage_day(day, session)
        elif day in session.staged_days:
            outcome.unstaged = self.unstage_day(day, session)
        elif day in range_days(session.deployment):
            raise DayDeletionError(day)

        outcome.still_visible = day in self.days(session)
        logger.info(
            "day_deleted",
            deployment_id=session.deployment_id,
            day=day,
            deleted_logs=outcome.deleted_logs,
            still_visible=outcome.still_visible,
        )
        return outcome


def normalize_day(day) -> str:
    try:
        normalized = to_day(day)
    except ValueError as e:
        raise ValidationError(f"Invalid day: {day!r}") from e
    if normalized is None:
        raise ValidationError("A day is required")
    return normalized
