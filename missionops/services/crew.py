"""
Crew roster for the open deployment: assigned technicians and monitors.
"""
from typing import Optional

import structlog

from ..exceptions import ValidationError
from ..schemas.deployments import Deployment
from .repository import DeploymentRepository, MissionSession

logger = structlog.get_logger(__name__)


class CrewRoster:
    def __init__(self, repository: DeploymentRepository):
        self.repository = repository
        self.client = repository.client

    def assign(self, technician_id: str, session: Optional[MissionSession] = None) -> Deployment:
        session = self.repository.require_session(session)
        if not technician_id:
            raise ValidationError("Select a technician to assign")
        if technician_id in session.deployment.technician_ids:
            return session.deployment

        def add(d: Deployment):
            ids = d.technician_ids if technician_id in d.technician_ids else [*d.technician_ids, technician_id]
            return {"technician_ids": ids, "personnel_count": len(ids)}

        with self.repository.optimistic(session.deployment_id, add):
            self.client.assign_personnel(session.deployment_id, technician_id)
        logger.info("technician_assigned", deployment_id=session.deployment_id, technician_id=technician_id)
        return session.deployment

    def unassign(self, technician_id: str, session: Optional[MissionSession] = None) -> Deployment:
        session = self.repository.require_session(session)

        def remove(d: Deployment):
            ids = [t for t in d.technician_ids if t != technician_id]
            return {"technician_ids": ids, "personnel_count": len(ids)}

        with self.repository.optimistic(session.deployment_id, remove):
            self.client.unassign_personnel(session.deployment_id, technician_id)
        logger.info("technician_unassigned", deployment_id=session.deployment_id, technician_id=technician_id)
        return session.deployment

    def assign_monitor(
        self,
        user_id: str,
        mission_role: str = "Monitor",
        session: Optional[MissionSession] = None,
    ) -> Deployment:
        session = self.repository.require_session(session)
        if not user_id:
            raise ValidationError("Select a user to monitor this mission")
        self.client.assign_monitor(session.deployment_id, user_id, mission_role)
        # Monitor details (name, email) only come back with the full record
        self.repository.reload(session)
        logger.info("monitor_assigned", deployment_id=session.deployment_id, user_id=user_id)
        return session.deployment

    def unassign_monitor(self, user_id: str, session: Optional[MissionSession] = None) -> Deployment:
        session = self.repository.require_session(session)
        self.client.unassign_monitor(session.deployment_id, user_id)
        self.repository.apply_local(
            session.deployment_id,
            lambda d: {"monitoring_team": [m for m in d.monitoring_team if m.id != user_id]},
        )
        logger.info("monitor_unassigned", deployment_id=session.deployment_id, user_id=user_id)
        return session.deployment
