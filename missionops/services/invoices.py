"""
Technician invoicing and assignment notifications.
The store owns invoice records and the mail transport; this side picks who to
invoice and turns the store's answers into links and dispatch results.
"""
from typing import Iterable, List, Optional, Union
from urllib.parse import urljoin

import structlog

from ..config import settings
from ..exceptions import ValidationError
from ..schemas.invoices import AssignmentKind, DispatchResult, InvoiceLink, SentInvoice
from .pricing import technician_totals
from .repository import DeploymentRepository, MissionSession
from .store_client import MissionStoreClient

logger = structlog.get_logger(__name__)


class InvoiceIssuer:
    def __init__(
        self,
        repository: DeploymentRepository,
        client: Optional[MissionStoreClient] = None,
        frontend_base_url: Optional[str] = None,
    ):
        self.repository = repository
        self.client = client or repository.client
        self.frontend_base_url = frontend_base_url or settings.frontend_base_url

    def absolute_link(self, link: str) -> str:
        if link.startswith(("http://", "https://")):
            return link
        return urljoin(self.frontend_base_url.rstrip("/") + "/", link.lstrip("/"))

    def eligible_technicians(self, session: Optional[MissionSession] = None) -> List[str]:
        session = self.repository.require_session(session)
        return [tech for tech, total in technician_totals(session.deployment).items() if total > 0]

    # Multi-select kept per open deployment

    def select(self, personnel_id: str, session: Optional[MissionSession] = None) -> None:
        self.repository.require_session(session).invoice_selection.add(personnel_id)

    def deselect(self, personnel_id: str, session: Optional[MissionSession] = None) -> None:
        self.repository.require_session(session).invoice_selection.discard(personnel_id)

    def clear_selection(self, session: Optional[MissionSession] = None) -> None:
        self.repository.require_session(session).invoice_selection.clear()

    def generate_link(
        self,
        personnel_id: str,
        payment_terms_days: Optional[int] = None,
        session: Optional[MissionSession] = None,
    ) -> InvoiceLink:
        """Issue an invoice link for one technician.

        Safe to call repeatedly; every call returns a usable link. The store
        refuses technicians with no earnings on the deployment.
        """
        session = self.repository.require_session(session)
        if not personnel_id:
            raise ValidationError("Select a technician to invoice")
        terms = settings.default_payment_terms_days if payment_terms_days is None else payment_terms_days
        if terms < 0:
            raise ValidationError("Payment terms cannot be negative")

        data = self.client.create_invoice(session.deployment_id, personnel_id, terms) or {}
        link = data.get("link") or ""
        if not link:
            raise ValidationError("The store did not return an invoice link")
        invoice = data.get("invoice") or {}
        result = InvoiceLink(
            deployment_id=session.deployment_id,
            personnel_id=personnel_id,
            payment_terms_days=terms,
            link=link,
            url=self.absolute_link(link),
            amount=invoice.get("amount"),
            token=invoice.get("token"),
        )
        logger.info(
            "invoice_link_generated",
            deployment_id=session.deployment_id,
            personnel_id=personnel_id,
            amount=result.amount,
        )
        return result

    def resolve_recipients(
        self,
        personnel_ids: Optional[Iterable[str]] = None,
        session: Optional[MissionSession] = None,
    ) -> Optional[List[str]]:
        """Explicit ids beat the multi-select, which beats "everyone eligible" (None)."""
        session = self.repository.require_session(session)
        explicit = [p for p in (personnel_ids or []) if p]
        if explicit:
            return explicit
        if session.invoice_selection:
            return sorted(session.invoice_selection)
        return None

    def send_batch(
        self,
        personnel_ids: Optional[Iterable[str]] = None,
        notify_pilots: bool = True,
        note: Optional[str] = None,
        session: Optional[MissionSession] = None,
    ) -> DispatchResult:
        session = self.repository.require_session(session)
        recipients = self.resolve_recipients(personnel_ids, session)
        payload = {"notifyPilots": notify_pilots}
        if recipients:
            payload["personnelIds"] = recipients
        if note and note.strip():
            payload["note"] = note.strip()

        response = self.client.send_invoices(session.deployment_id, payload)
        result = _dispatch_result(response, default_message="Invoices sent")
        logger.info(
            "invoices_dispatched",
            deployment_id=session.deployment_id,
            recipients=recipients or "all_eligible",
            notify_pilots=notify_pilots,
            sent=len(result.sent),
            mock=result.mock,
        )
        return result

    def notify_assignment(
        self,
        person_id: str,
        kind: Union[AssignmentKind, str],
        display_name: Optional[str] = None,
        session: Optional[MissionSession] = None,
    ) -> DispatchResult:
        session = self.repository.require_session(session)
        try:
            kind = AssignmentKind(kind)
        except ValueError:
            raise ValidationError(f"Unknown assignment type: {kind}")
        response = self.client.notify_assignment(session.deployment_id, person_id, kind.value)
        name = display_name or person_id
        result = _dispatch_result(response, default_message=f"Assignment notification sent to {name}")
        logger.info(
            "assignment_notified",
            deployment_id=session.deployment_id,
            person_id=person_id,
            kind=kind.value,
            mock=result.mock,
        )
        return result


def _dispatch_result(response, default_message: str) -> DispatchResult:
    data = response.data
    mock = bool(response.extra.get("mock"))
    sent = []
    if isinstance(data, dict):
        mock = mock or bool(data.get("mock"))
        rows = data.get("sent") or []
    elif isinstance(data, list):
        rows = data
    else:
        rows = []
    for row in rows:
        if isinstance(row, dict):
            sent.append(SentInvoice.model_validate(row))
    message = response.message or default_message
    if mock and "mock" not in message.lower():
        message = f"{message} (mock email mode: logged, not delivered)"
    return DispatchResult(success=True, message=message, mock=mock, sent=sent, raw=data)
