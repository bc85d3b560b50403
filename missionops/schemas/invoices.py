from typing import Optional, List, Any
from enum import Enum

from pydantic import Field

from .deployments import CamelModel


class AssignmentKind(str, Enum):
    PILOT = "pilot"
    MONITOR = "monitor"
    CLIENT = "client"


class InvoiceLink(CamelModel):
    deployment_id: str
    personnel_id: str
    payment_terms_days: int
    link: str
    url: str
    amount: Optional[float] = None
    token: Optional[str] = None


class SentInvoice(CamelModel):
    personnel_id: Optional[str] = None
    pilot_name: Optional[str] = None
    amount: float = 0.0
    emailed: bool = True


class DispatchResult(CamelModel):
    """Outcome of an invoice batch or an assignment notification.

    ``mock`` means the store's mail transport is simulated: the message was
    logged, not delivered. That is still a success.
    """
    success: bool = True
    message: str = ""
    mock: bool = False
    sent: List[SentInvoice] = Field(default_factory=list)
    raw: Any = Field(default=None, exclude=True)
