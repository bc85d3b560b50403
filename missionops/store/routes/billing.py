"""
Pricing, invoice and notification routes.
"""
from fastapi import APIRouter, Depends

from ..deps import get_store, ok
from ..memory import MemoryStore, StoreError

router = APIRouter(prefix="/api", tags=["billing"])


@router.post("/pricing/calculate")
def calculate_pricing(payload: dict, store: MemoryStore = Depends(get_store)):
    deployment_id = payload.get("deploymentId")
    if not deployment_id:
        raise StoreError(400, "deploymentId is required")
    return ok(store.calculate_pricing(deployment_id, payload.get("markupOverride")))


@router.put("/deployments/{deployment_id}/pricing")
def save_pricing(deployment_id: str, payload: dict, store: MemoryStore = Depends(get_store)):
    return ok(store.save_pricing(deployment_id, payload), "Mission pricing updated successfully")


@router.post("/invoices", status_code=201)
def create_invoice(payload: dict, store: MemoryStore = Depends(get_store)):
    deployment_id = payload.get("deploymentId")
    personnel_id = payload.get("personnelId")
    if not deployment_id or not personnel_id:
        raise StoreError(400, "deploymentId and personnelId are required")
    return ok(store.create_invoice(deployment_id, personnel_id, payload.get("paymentTermsDays")))


@router.post("/deployments/{deployment_id}/invoices/send")
def send_invoices(deployment_id: str, payload: dict, store: MemoryStore = Depends(get_store)):
    result = store.send_invoices(
        deployment_id,
        personnel_ids=payload.get("personnelIds") or None,
        notify_pilots=payload.get("notifyPilots", True),
        note=payload.get("note"),
    )
    return ok(result["sent"], result["message"], mock=result["mock"])


@router.post("/deployments/{deployment_id}/notify-assignment")
def notify_assignment(deployment_id: str, payload: dict, store: MemoryStore = Depends(get_store)):
    result = store.notify_assignment(deployment_id, payload.get("personId"), payload.get("type"))
    return ok(None, result["message"], mock=result["mock"])
