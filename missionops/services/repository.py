"""
Deployment repository.
Owns the cached deployment list and the single open MissionSession. Every
other service reads and writes deployments through it.
"""
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Union

import pydantic
import structlog

from ..exceptions import NoOpenDeploymentError, NotFoundError, RemoteStoreError, ValidationError
from ..schemas.deployments import Deployment, DeploymentCreate, DeploymentFile
from ..schemas.pricing import PricingSnapshot
from .store_client import MissionStoreClient

logger = structlog.get_logger(__name__)

Patch = Union[Dict[str, Any], Callable[[Deployment], Dict[str, Any]]]


@dataclass
class MissionSession:
    """State that lives only while one deployment is open in the detail view."""
    deployment: Deployment
    staged_days: List[str] = field(default_factory=list)
    editing_log_id: Optional[str] = None
    invoice_selection: Set[str] = field(default_factory=set)
    pricing: Optional[PricingSnapshot] = None
    pricing_seq: int = 0
    closed: bool = False

    @property
    def deployment_id(self) -> str:
        return self.deployment.id


def _from_store(data: Dict[str, Any]) -> Deployment:
    try:
        return Deployment.model_validate(data)
    except pydantic.ValidationError as e:
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors() if err.get("loc")})
        logger.error("invalid_store_payload", deployment_id=(data or {}).get("id"), fields=fields)
        raise RemoteStoreError(f"Store returned an invalid deployment: {', '.join(fields)}", payload=data) from e


def _merge(target: Deployment, payload: Dict[str, Any]) -> Deployment:
    """Overlay a store payload (camelCase) on a cached deployment.

    Fields the store leaves out, such as files in list views, keep their
    cached value.
    """
    merged = target.to_api()
    merged.update(payload)
    return _from_store(merged)


class DeploymentRepository:
    def __init__(self, client: MissionStoreClient):
        self.client = client
        self.deployments: List[Deployment] = []
        self.session: Optional[MissionSession] = None
        self._loaded = False

    # Reads

    def refresh(self, status: Optional[str] = None, search: Optional[str] = None) -> List[Deployment]:
        rows = self.client.list_deployments(status=status, search=search)
        self.deployments = [_from_store(row) for row in rows]
        session = self.session
        if session is not None and not session.closed and self._find(session.deployment_id) is not None:
            # The open deployment keeps its full record (files, monitoring team)
            self._upsert(session.deployment)
        self._loaded = True
        logger.debug("deployments_refreshed", count=len(self.deployments))
        return list(self.deployments)

    def list(self, status: Optional[str] = None, search: Optional[str] = None) -> List[Deployment]:
        if not self._loaded:
            self.refresh()
        query = (search or "").strip().lower()
        result = []
        for deployment in self.deployments:
            if status and status != "All" and deployment.status.value != status:
                continue
            if query and not (
                query in deployment.title.lower()
                or query in (deployment.site_name or "").lower()
                or query in deployment.id.lower()
            ):
                continue
            result.append(deployment)
        return result

    def get(self, deployment_id: str) -> Optional[Deployment]:
        if self.session and self.session.deployment_id == deployment_id:
            return self.session.deployment
        return self._find(deployment_id)

    def _find(self, deployment_id: str) -> Optional[Deployment]:
        for deployment in self.deployments:
            if deployment.id == deployment_id:
                return deployment
        return None

    def _fetch_full(self, deployment_id: str) -> Deployment:
        # The list view does not embed files or the monitoring team, so always go to the store.
        data = self.client.get_deployment(deployment_id)
        if not data:
            raise NotFoundError("Deployment not found", 404)
        files = self.client.get_deployment_files(deployment_id)
        deployment = _from_store(data)
        return deployment.model_copy(
            update={
                "files": [DeploymentFile.model_validate(f) for f in files],
                "file_count": len(files),
            }
        )

    # Session

    def open(self, deployment_id: str) -> MissionSession:
        deployment = self._fetch_full(deployment_id)
        if self.session is not None:
            self.close()
        self._upsert(deployment)
        self.session = MissionSession(deployment=deployment)
        logger.info("deployment_opened", deployment_id=deployment_id, logs=len(deployment.daily_logs))
        return self.session

    def reload(self, session: Optional[MissionSession] = None) -> MissionSession:
        """Refetch the open deployment without discarding staged days or selections."""
        session = self.require_session(session)
        deployment = self._fetch_full(session.deployment_id)
        if not session.closed:
            session.deployment = deployment
        self._upsert(deployment)
        return session

    def close(self) -> None:
        if self.session is not None:
            self.session.closed = True
            logger.debug("deployment_closed", deployment_id=self.session.deployment_id)
        self.session = None

    def require_session(self, session: Optional[MissionSession] = None) -> MissionSession:
        session = session or self.session
        if session is None or session.closed:
            raise NoOpenDeploymentError()
        return session

    # Writes

    def _upsert(self, deployment: Deployment) -> None:
        for index, existing in enumerate(self.deployments):
            if existing.id == deployment.id:
                self.deployments[index] = deployment
                return
        self.deployments.insert(0, deployment)

    def apply_local(self, deployment_id: str, patch: Patch) -> None:
        """Merge a patch into the list entry and the open deployment.

        ``patch`` is a dict of model field names, or a callable computing one
        per target. Unknown ids are ignored.
        """
        for index, existing in enumerate(self.deployments):
            if existing.id == deployment_id:
                update = patch(existing) if callable(patch) else patch
                self.deployments[index] = existing.model_copy(update=update)
                break
        session = self.session
        if session is not None and not session.closed and session.deployment_id == deployment_id:
            update = patch(session.deployment) if callable(patch) else patch
            session.deployment = session.deployment.model_copy(update=update)

    def _reconcile(self, deployment_id: str, payload: Dict[str, Any]) -> Optional[Deployment]:
        for index, existing in enumerate(self.deployments):
            if existing.id == deployment_id:
                self.deployments[index] = _merge(existing, payload)
                break
        session = self.session
        if session is not None and not session.closed and session.deployment_id == deployment_id:
            session.deployment = _merge(session.deployment, payload)
        return self.get(deployment_id)

    def commit(self, deployment_id: str, patch: Dict[str, Any]) -> Deployment:
        """Send a camelCase patch to the store and reconcile with its answer."""
        data = self.client.update_deployment(deployment_id, patch)
        deployment = self._reconcile(deployment_id, data or {})
        logger.info("deployment_committed", deployment_id=deployment_id, fields=sorted(patch))
        if deployment is None:
            deployment = _from_store(data)
        return deployment

    @contextmanager
    def optimistic(self, deployment_id: str, patch: Patch):
        """Apply ``patch`` locally for the duration of the block.

        If the block raises, the list entry and the open deployment are put back
        to what they were before the patch and the error propagates.
        """
        list_index = None
        list_before = None
        for index, existing in enumerate(self.deployments):
            if existing.id == deployment_id:
                list_index, list_before = index, existing
                break
        session = self.session
        session_before = session.deployment if session and session.deployment_id == deployment_id else None

        self.apply_local(deployment_id, patch)
        try:
            yield
        except Exception as e:
            if list_index is not None and list_index < len(self.deployments) \
                    and self.deployments[list_index].id == deployment_id:
                self.deployments[list_index] = list_before
            if session_before is not None and not session.closed:
                session.deployment = session_before
            logger.warning("optimistic_update_rolled_back", deployment_id=deployment_id, error=str(e))
            raise

    def create(self, **fields) -> Deployment:
        try:
            payload = DeploymentCreate.model_validate(fields)
        except pydantic.ValidationError as e:
            missing = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            raise ValidationError(f"Invalid deployment: {', '.join(missing)}") from e
        data = self.client.create_deployment(payload.to_api(exclude_none=True))
        deployment = _from_store(data)
        self.deployments.insert(0, deployment)
        logger.info("deployment_created", deployment_id=deployment.id, date=deployment.date)
        return deployment

    def delete(self, deployment_id: str) -> None:
        self.client.delete_deployment(deployment_id)
        self.deployments = [d for d in self.deployments if d.id != deployment_id]
        if self.session is not None and self.session.deployment_id == deployment_id:
            self.close()
        logger.info("deployment_deleted", deployment_id=deployment_id)
