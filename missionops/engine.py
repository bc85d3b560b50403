from typing import Optional

import httpx

from .services.crew import CrewRoster
from .services.day_ledger import DayLedger
from .services.invoices import InvoiceIssuer
from .services.lifecycle import LifecycleController
from .services.log_ledger import LogLedger
from .services.pricing import PricingEngine
from .services.repository import DeploymentRepository, MissionSession
from .services.store_client import MissionStoreClient


class MissionOps:
    """All engine components sharing one store client and one repository."""

    def __init__(
        self,
        client: Optional[MissionStoreClient] = None,
        http: Optional[httpx.Client] = None,
        base_url: Optional[str] = None,
        enforce_transitions: Optional[bool] = None,
    ):
        self.client = client or MissionStoreClient(base_url=base_url, http=http)
        self.repository = DeploymentRepository(self.client)
        self.lifecycle = LifecycleController(self.repository, enforce=enforce_transitions)
        self.days = DayLedger(self.repository)
        self.logs = LogLedger(self.repository, self.days)
        self.pricing = PricingEngine(self.repository)
        self.invoices = InvoiceIssuer(self.repository)
        self.crew = CrewRoster(self.repository)

    @property
    def session(self) -> Optional[MissionSession]:
        return self.repository.session

    def open(self, deployment_id: str) -> MissionSession:
        return self.repository.open(deployment_id)

    def close(self) -> None:
        self.repository.close()
        self.client.close()
