"""
Deployment lifecycle rules.
The table below is the client's view of allowed status changes. The store is
the authority: whatever status it answers with is what the caller ends up with.
"""
from typing import Dict, List, Optional, Tuple, Union

import structlog

from ..config import settings
from ..exceptions import InvalidTransitionError, NotFoundError
from ..schemas.deployments import Deployment, DeploymentStatus
from .repository import DeploymentRepository

logger = structlog.get_logger(__name__)

S = DeploymentStatus

ALLOWED_TRANSITIONS: Dict[DeploymentStatus, Tuple[DeploymentStatus, ...]] = {
    S.DRAFT: (S.SCHEDULED, S.ARCHIVED),
    S.SCHEDULED: (S.ACTIVE, S.CANCELLED, S.DELAYED, S.DRAFT),
    S.ACTIVE: (S.REVIEW, S.COMPLETED, S.DELAYED, S.CANCELLED),
    S.REVIEW: (S.COMPLETED, S.ACTIVE),
    S.COMPLETED: (S.ARCHIVED, S.REVIEW),
    S.ARCHIVED: (),
    # Side states do not lead back into the main flow
    S.CANCELLED: (),
    S.DELAYED: (),
}


def next_allowed(status: Union[DeploymentStatus, str]) -> List[DeploymentStatus]:
    return list(ALLOWED_TRANSITIONS.get(DeploymentStatus(status), ()))


def is_allowed(current: Union[DeploymentStatus, str], requested: Union[DeploymentStatus, str]) -> bool:
    return DeploymentStatus(requested) in ALLOWED_TRANSITIONS.get(DeploymentStatus(current), ())


class LifecycleController:
    def __init__(self, repository: DeploymentRepository, enforce: Optional[bool] = None):
        self.repository = repository
        self.enforce = settings.enforce_status_transitions if enforce is None else enforce

    def next_allowed(self, status: Union[DeploymentStatus, str]) -> List[DeploymentStatus]:
        return next_allowed(status)

    def transition(
        self,
        deployment: Union[Deployment, str],
        new_status: Union[DeploymentStatus, str],
        enforce: Optional[bool] = None,
    ) -> Deployment:
        if isinstance(deployment, str):
            found = self.repository.get(deployment)
            if found is None:
                raise NotFoundError("Deployment not found", 404)
            deployment = found
        new_status = DeploymentStatus(new_status)
        current = deployment.status
        if new_status == current:
            return deployment

        enforce = self.enforce if enforce is None else enforce
        if enforce and not is_allowed(current, new_status):
            raise InvalidTransitionError(current.value, new_status.value, [s.value for s in next_allowed(current)])

        updated = self.repository.commit(deployment.id, {"status": new_status.value})
        if updated.status != new_status:
            logger.warning(
                "status_reconciled_to_server",
                deployment_id=deployment.id,
                requested=new_status.value,
                server=updated.status.value,
            )
        else:
            logger.info(
                "deployment_status_changed",
                deployment_id=deployment.id,
                previous=current.value,
                status=new_status.value,
            )
        return updated

    def complete(self, deployment: Union[Deployment, str], enforce: Optional[bool] = None) -> Deployment:
        return self.transition(deployment, S.COMPLETED, enforce=enforce)

    def uncomplete(self, deployment: Union[Deployment, str], enforce: Optional[bool] = None) -> Deployment:
        """Reopen a completed deployment for review."""
        return self.transition(deployment, S.REVIEW, enforce=enforce)
