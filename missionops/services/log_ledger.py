"""
Daily pay log ledger.
Creates, edits and deletes technician x day pay entries on the open deployment
and keeps the cached list entry in step with the store.
"""
from typing import Iterable, List, Optional, Tuple

import structlog

from ..exceptions import NotFoundError, ValidationError
from ..logging import deployment_context
from ..schemas.deployments import DailyLog, Deployment
from ..schemas.personnel import Personnel
from .batch import BatchResult, PARALLEL, SEQUENTIAL, run_batch
from .day_ledger import DayLedger, normalize_day, logs_for_day
from .repository import DeploymentRepository, MissionSession

logger = structlog.get_logger(__name__)


def _append_log(log: DailyLog):
    return lambda d: {"daily_logs": [*d.daily_logs, log]}


def _replace_log(log: DailyLog):
    return lambda d: {"daily_logs": [log if l.id == log.id else l for l in d.daily_logs]}


def _drop_logs(log_ids: Iterable[str]):
    ids = set(log_ids)
    return lambda d: {"daily_logs": [l for l in d.daily_logs if l.id not in ids]}


def _amount(value, label: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a number")
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number")


def has_log(deployment: Deployment, day: str, technician_id: str) -> bool:
    return any(log.date == day and log.technician_id == technician_id for log in deployment.daily_logs)


class LogLedger:
    def __init__(self, repository: DeploymentRepository, day_ledger: Optional[DayLedger] = None):
        self.repository = repository
        self.client = repository.client
        self.day_ledger = day_ledger or DayLedger(repository)

    def _validate(self, technician_id, daily_pay, bonus_pay) -> Tuple[float, float]:
        if not technician_id or not str(technician_id).strip():
            raise ValidationError("Select a technician")
        daily_pay = _amount(daily_pay, "Daily pay")
        bonus_pay = _amount(bonus_pay, "Bonus pay")
        # Zero pay is refused here even though the store would accept it
        if not daily_pay:
            raise ValidationError("Daily pay is required")
        if daily_pay < 0 or bonus_pay < 0:
            raise ValidationError("Pay amounts cannot be negative")
        return daily_pay, bonus_pay

    def find(self, log_id: str, session: Optional[MissionSession] = None) -> DailyLog:
        session = self.repository.require_session(session)
        for log in session.deployment.daily_logs:
            if log.id == log_id:
                return log
        raise NotFoundError("Daily log not found", 404)

    def add_entry(
        self,
        day,
        technician_id: str,
        daily_pay: float,
        bonus_pay: float = 0.0,
        notes: Optional[str] = None,
        session: Optional[MissionSession] = None,
    ) -> DailyLog:
        session = self.repository.require_session(session)
        day = normalize_day(day)
        daily_pay, bonus_pay = self._validate(technician_id, daily_pay, bonus_pay)
        if has_log(session.deployment, day, technician_id):
            raise ValidationError("This technician already has a log for this day")

        deployment_id = session.deployment_id
        data = self.client.add_daily_log(
            deployment_id,
            {
                "date": day,
                "technicianId": technician_id,
                "dailyPay": daily_pay,
                "bonusPay": bonus_pay or 0,
                "notes": notes or None,
            },
        )
        log = DailyLog.model_validate({**data, "deploymentId": deployment_id})
        self.repository.apply_local(deployment_id, _append_log(log))
        logger.info(
            "daily_log_added",
            deployment_id=deployment_id,
            log_id=log.id,
            technician_id=log.technician_id,
            day=log.date,
        )
        return log

    def remaining_days(self, technician_id: str, session: Optional[MissionSession] = None) -> List[str]:
        session = self.repository.require_session(session)
        return [
            day for day in self.day_ledger.days(session)
            if not has_log(session.deployment, day, technician_id)
        ]

    def add_entry_to_all_remaining_days(
        self,
        technician_id: str,
        daily_pay: float,
        bonus_pay: float = 0.0,
        notes: Optional[str] = None,
        session: Optional[MissionSession] = None,
    ) -> BatchResult:
        """Log the technician on every ledger day they are not yet on.

        Requests go out one at a time in day order and stop at the first
        failure, so the committed logs are always a prefix of the days.
        """
        session = self.repository.require_session(session)
        daily_pay, bonus_pay = self._validate(technician_id, daily_pay, bonus_pay)
        days = self.remaining_days(technician_id, session)
        with deployment_context(session.deployment_id):
            return run_batch(
                days,
                lambda day: self.add_entry(day, technician_id, daily_pay, bonus_pay, notes, session=session),
                mode=SEQUENTIAL,
                stop_on_error=True,
                operation="add_to_all_remaining_days",
            )

    def edit_entry(
        self,
        log_id: str,
        daily_pay: Optional[float] = None,
        bonus_pay: Optional[float] = None,
        notes: Optional[str] = None,
        session: Optional[MissionSession] = None,
    ) -> DailyLog:
        session = self.repository.require_session(session)
        current = self.find(log_id, session)
        update = {}
        if daily_pay is not None:
            update["daily_pay"] = _amount(daily_pay, "Daily pay")
        if bonus_pay is not None:
            update["bonus_pay"] = _amount(bonus_pay, "Bonus pay")
        if notes is not None:
            update["notes"] = notes
        if any(v < 0 for k, v in update.items() if k != "notes"):
            raise ValidationError("Pay amounts cannot be negative")
        edited = current.model_copy(update=update)

        deployment_id = session.deployment_id
        session.editing_log_id = log_id
        try:
            with self.repository.optimistic(deployment_id, _replace_log(edited)):
                data = self.client.update_daily_log(
                    deployment_id,
                    log_id,
                    {"dailyPay": edited.daily_pay, "bonusPay": edited.bonus_pay, "notes": edited.notes},
                )
        finally:
            session.editing_log_id = None

        saved = DailyLog.model_validate({**edited.to_api(), **(data or {}), "deploymentId": deployment_id})
        self.repository.apply_local(deployment_id, _replace_log(saved))
        logger.info("daily_log_updated", deployment_id=deployment_id, log_id=log_id)
        return saved

    def delete_entry(self, log_id: str, session: Optional[MissionSession] = None) -> None:
        session = self.repository.require_session(session)
        deployment_id = session.deployment_id
        self.client.delete_daily_log(deployment_id, log_id)
        self.repository.apply_local(deployment_id, _drop_logs([log_id]))
        logger.info("daily_log_deleted", deployment_id=deployment_id, log_id=log_id)

    def delete_all_for_day(self, day, session: Optional[MissionSession] = None) -> BatchResult:
        """Delete every log on ``day`` with concurrent requests.

        Nothing is rolled back on partial failure; only the logs the store
        confirmed are dropped locally. Reopen the deployment to resync.
        """
        session = self.repository.require_session(session)
        day = normalize_day(day)
        deployment_id = session.deployment_id
        logs = logs_for_day(session.deployment, day)
        with deployment_context(deployment_id):
            result = run_batch(
                logs,
                lambda log: self.client.delete_daily_log(deployment_id, log.id),
                mode=PARALLEL,
                operation="delete_all_for_day",
            )
        if result.succeeded:
            self.repository.apply_local(deployment_id, _drop_logs(log.id for log, _ in result.succeeded))
        logger.info(
            "day_logs_deleted",
            deployment_id=deployment_id,
            day=day,
            deleted=len(result.succeeded),
            failed=len(result.failed),
        )
        return result

    def assignable_personnel(
        self,
        day,
        personnel: Iterable[Personnel],
        session: Optional[MissionSession] = None,
    ) -> List[Personnel]:
        session = self.repository.require_session(session)
        day = normalize_day(day)
        return [
            person for person in personnel
            if person.is_assignable and not has_log(session.deployment, day, person.id)
        ]
