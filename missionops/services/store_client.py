"""
Mission store API client
Handles authentication, the {success, data, message} envelope and error mapping
for every remote call the engine makes.
"""
import httpx
import structlog
from typing import Optional, Dict, List, Any

from ..config import settings
from ..exceptions import RemoteStoreError, error_for_status

logger = structlog.get_logger(__name__)


class StoreResponse:
    """Unwrapped envelope: ``data`` plus the store's message and any extra keys."""

    def __init__(self, data: Any, message: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        self.data = data
        self.message = message
        self.extra = extra or {}


class MissionStoreClient:
    """Client for the deployments API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        http: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.store_base_url).rstrip("/")
        self.api_token = api_token if api_token is not None else settings.store_api_token
        self.timeout = timeout or settings.request_timeout_s
        # An injected client (tests, shared pools) is used as-is and never closed here.
        self._http = http
        self._owns_http = http is None

    def _get_auth_header(self) -> Dict[str, str]:
        if not self.api_token:
            return {}
        return {"Authorization": f"Bearer {self.api_token}"}

    def _client(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(timeout=self.timeout)
        return self._http

    def close(self) -> None:
        if self._owns_http and self._http is not None:
            self._http.close()
            self._http = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, endpoint: str, **kwargs) -> StoreResponse:
        """Make an HTTP request and unwrap the store envelope."""
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        headers = self._get_auth_header()
        headers.update(kwargs.pop("headers", {}))

        logger.debug("store_request", method=method, endpoint=endpoint)
        try:
            response = self._client().request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("store_unreachable", method=method, endpoint=endpoint, error=str(e))
            raise RemoteStoreError(f"Could not reach the mission store: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            if response.is_success:
                return StoreResponse(body)
            raise error_for_status(
                response.status_code,
                response.text or f"Request failed with status {response.status_code}",
            )

        if response.is_success and body.get("success", True):
            extra = {k: v for k, v in body.items() if k not in ("success", "data", "message")}
            return StoreResponse(body.get("data"), body.get("message"), extra)

        message = body.get("message") or body.get("detail") or f"Request failed with status {response.status_code}"
        logger.info(
            "store_rejected",
            method=method,
            endpoint=endpoint,
            status_code=response.status_code,
            message=message,
        )
        raise error_for_status(response.status_code if not response.is_success else 400, message, body)

    # Deployments

    def list_deployments(self, status: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {}
        if status:
            params["status"] = status
        if search:
            params["search"] = search
        return self._request("GET", "/deployments", params=params).data or []

    def get_deployment(self, deployment_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/deployments/{deployment_id}").data

    def get_deployment_files(self, deployment_id: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/deployments/{deployment_id}/files").data or []

    def create_deployment(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/deployments", json=payload).data

    def update_deployment(self, deployment_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/deployments/{deployment_id}", json=patch).data

    def delete_deployment(self, deployment_id: str) -> None:
        self._request("DELETE", f"/deployments/{deployment_id}")

    # Daily logs

    def add_daily_log(self, deployment_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/deployments/{deployment_id}/daily-logs", json=payload).data

    def update_daily_log(self, deployment_id: str, log_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/deployments/{deployment_id}/daily-logs/{log_id}", json=payload).data

    def delete_daily_log(self, deployment_id: str, log_id: str) -> None:
        self._request("DELETE", f"/deployments/{deployment_id}/daily-logs/{log_id}")

    # Crew

    def assign_personnel(self, deployment_id: str, personnel_id: str) -> Any:
        return self._request(
            "POST", f"/deployments/{deployment_id}/personnel", json={"personnelId": personnel_id}
        ).data

    def unassign_personnel(self, deployment_id: str, personnel_id: str) -> None:
        self._request("DELETE", f"/deployments/{deployment_id}/personnel/{personnel_id}")

    def assign_monitor(self, deployment_id: str, user_id: str, role: str = "Monitor") -> Any:
        return self._request(
            "POST", f"/deployments/{deployment_id}/monitoring", json={"userId": user_id, "role": role}
        ).data

    def unassign_monitor(self, deployment_id: str, user_id: str) -> None:
        self._request("DELETE", f"/deployments/{deployment_id}/monitoring/{user_id}")

    def list_personnel(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/personnel").data or []

    # Pricing

    def calculate_pricing(self, deployment_id: str, markup_override: Optional[float] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"deploymentId": deployment_id}
        if markup_override is not None:
            payload["markupOverride"] = markup_override
        return self._request("POST", "/pricing/calculate", json=payload).data

    def save_pricing(self, deployment_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/deployments/{deployment_id}/pricing", json=patch).data

    # Invoices & notifications

    def create_invoice(self, deployment_id: str, personnel_id: str, payment_terms_days: int) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/invoices",
            json={
                "deploymentId": deployment_id,
                "personnelId": personnel_id,
                "paymentTermsDays": payment_terms_days,
            },
        ).data

    def send_invoices(self, deployment_id: str, payload: Dict[str, Any]) -> StoreResponse:
        return self._request("POST", f"/deployments/{deployment_id}/invoices/send", json=payload)

    def notify_assignment(self, deployment_id: str, person_id: str, kind: str) -> StoreResponse:
        return self._request(
            "POST",
            f"/deployments/{deployment_id}/notify-assignment",
            json={"personId": person_id, "type": kind},
        )
