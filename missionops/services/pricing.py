"""
Cost aggregation and mission pricing.
Ledger totals are computed locally from daily logs. The priced breakdown comes
from the store's calculator; re-pricing at a different markup is local.
"""
import threading
from collections import OrderedDict
from typing import Dict, Iterable, Optional

import structlog

from ..config import settings
from ..exceptions import ValidationError
from ..schemas.deployments import Deployment
from ..schemas.pricing import PricingSnapshot
from .repository import DeploymentRepository, MissionSession
from .store_client import MissionStoreClient

logger = structlog.get_logger(__name__)


def get_total_cost(deployment: Optional[Deployment]) -> float:
    if not deployment:
        return 0.0
    return sum(log.total for log in deployment.daily_logs)


def technician_totals(deployment: Deployment) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for log in deployment.daily_logs:
        totals[log.technician_id] = totals.get(log.technician_id, 0.0) + log.total
    return totals


def day_totals(deployment: Deployment) -> "OrderedDict[str, float]":
    totals: Dict[str, float] = {}
    for log in deployment.daily_logs:
        totals[log.date] = totals.get(log.date, 0.0) + log.total
    return OrderedDict(sorted(totals.items()))


def fleet_spend(deployments: Iterable[Deployment]) -> float:
    return sum(get_total_cost(d) for d in deployments)


class PricingEngine:
    def __init__(
        self,
        repository: DeploymentRepository,
        client: Optional[MissionStoreClient] = None,
        markup_min: Optional[int] = None,
        markup_max: Optional[int] = None,
    ):
        self.repository = repository
        self.client = client or repository.client
        self.markup_min = settings.markup_min if markup_min is None else markup_min
        self.markup_max = settings.markup_max if markup_max is None else markup_max
        self._lock = threading.Lock()

    def validate_markup(self, markup) -> int:
        if isinstance(markup, bool):
            raise ValidationError("Markup must be a whole percentage")
        try:
            value = int(markup)
        except (TypeError, ValueError):
            raise ValidationError("Markup must be a whole percentage")
        if value != markup and str(value) != str(markup).strip():
            raise ValidationError("Markup must be a whole percentage")
        if not self.markup_min <= value <= self.markup_max:
            raise ValidationError(f"Markup must be between {self.markup_min}% and {self.markup_max}%")
        return value

    def _next_seq(self, session: MissionSession) -> int:
        with self._lock:
            session.pricing_seq += 1
            return session.pricing_seq

    def calculate(self, markup_override=None, session: Optional[MissionSession] = None) -> Optional[PricingSnapshot]:
        """Ask the store for a priced breakdown of the open deployment.

        Returns None when a newer calculate() was issued for the session
        while this one was in flight; that response is dropped.
        """
        session = self.repository.require_session(session)
        if markup_override is not None:
            markup_override = self.validate_markup(markup_override)
        seq = self._next_seq(session)
        data = self.client.calculate_pricing(session.deployment_id, markup_override)
        snapshot = PricingSnapshot.from_api(data, seq=seq)

        with self._lock:
            if seq != session.pricing_seq or session.closed:
                logger.warning(
                    "pricing_snapshot_discarded",
                    deployment_id=session.deployment_id,
                    seq=seq,
                    latest=session.pricing_seq,
                )
                return None
            session.pricing = snapshot
        logger.debug(
            "pricing_calculated",
            deployment_id=session.deployment_id,
            markup=snapshot.markup_percentage,
            total_base_cost=snapshot.total_base_cost,
        )
        return snapshot

    def preview(self, markup, session: Optional[MissionSession] = None) -> PricingSnapshot:
        """Re-price the current breakdown at another markup without a round trip."""
        session = self.repository.require_session(session)
        markup = self.validate_markup(markup)
        if session.pricing is None:
            snapshot = self.calculate(markup, session=session)
            if snapshot is None:
                return session.pricing
            return snapshot
        with self._lock:
            session.pricing_seq += 1
            session.pricing = session.pricing.with_markup(markup).model_copy(update={"seq": session.pricing_seq})
            return session.pricing

    def save(self, snapshot: Optional[PricingSnapshot] = None, session: Optional[MissionSession] = None) -> Deployment:
        session = self.repository.require_session(session)
        snapshot = snapshot or session.pricing
        if snapshot is None:
            raise ValidationError("Calculate pricing before saving it")
        if snapshot.deployment_id != session.deployment_id:
            raise ValidationError("Pricing snapshot belongs to another deployment")
        self.client.save_pricing(session.deployment_id, snapshot.to_deployment_patch())
        self.repository.reload(session)
        logger.info(
            "pricing_saved",
            deployment_id=session.deployment_id,
            markup=snapshot.markup_percentage,
            client_price=snapshot.recommended_price,
        )
        return session.deployment

    def total_cost(self, session: Optional[MissionSession] = None) -> float:
        session = self.repository.require_session(session)
        return get_total_cost(session.deployment)
