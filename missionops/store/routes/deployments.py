"""
Deployment, daily log and crew routes.
"""
from typing import Optional

from fastapi import APIRouter, Depends

from ..deps import get_store, ok
from ..memory import MemoryStore

router = APIRouter(prefix="/api", tags=["deployments"])


@router.get("/deployments")
def list_deployments(status: Optional[str] = None, search: Optional[str] = None,
                     store: MemoryStore = Depends(get_store)):
    return ok(store.list_deployments(status=status, search=search))


@router.post("/deployments", status_code=201)
def create_deployment(payload: dict, store: MemoryStore = Depends(get_store)):
    return ok(store.create_deployment(payload), "Deployment created successfully")


@router.get("/deployments/{deployment_id}")
def get_deployment(deployment_id: str, store: MemoryStore = Depends(get_store)):
    return ok(store.get_deployment(deployment_id))


@router.put("/deployments/{deployment_id}")
def update_deployment(deployment_id: str, payload: dict, store: MemoryStore = Depends(get_store)):
    return ok(store.update_deployment(deployment_id, payload), "Deployment updated successfully")


@router.delete("/deployments/{deployment_id}")
def delete_deployment(deployment_id: str, store: MemoryStore = Depends(get_store)):
    store.delete_deployment(deployment_id)
    return ok(None, "Deployment deleted successfully")


@router.get("/deployments/{deployment_id}/files")
def get_deployment_files(deployment_id: str, store: MemoryStore = Depends(get_store)):
    return ok(store.get_files(deployment_id))


# Daily logs

@router.post("/deployments/{deployment_id}/daily-logs", status_code=201)
def add_daily_log(deployment_id: str, payload: dict, store: MemoryStore = Depends(get_store)):
    return ok(store.add_daily_log(deployment_id, payload), "Daily log added successfully")


@router.put("/deployments/{deployment_id}/daily-logs/{log_id}")
def update_daily_log(deployment_id: str, log_id: str, payload: dict, store: MemoryStore = Depends(get_store)):
    return ok(store.update_daily_log(deployment_id, log_id, payload), "Daily log updated successfully")


@router.delete("/deployments/{deployment_id}/daily-logs/{log_id}")
def delete_daily_log(deployment_id: str, log_id: str, store: MemoryStore = Depends(get_store)):
    store.delete_daily_log(deployment_id, log_id)
    return ok(None, "Daily log deleted successfully")


# Crew

@router.post("/deployments/{deployment_id}/personnel")
def assign_personnel(deployment_id: str, payload: dict, store: MemoryStore = Depends(get_store)):
    return ok(store.assign_personnel(deployment_id, payload.get("personnelId")), "Personnel assigned successfully")


@router.delete("/deployments/{deployment_id}/personnel/{personnel_id}")
def unassign_personnel(deployment_id: str, personnel_id: str, store: MemoryStore = Depends(get_store)):
    store.unassign_personnel(deployment_id, personnel_id)
    return ok(None, "Personnel unassigned successfully")


@router.post("/deployments/{deployment_id}/monitoring")
def assign_monitor(deployment_id: str, payload: dict, store: MemoryStore = Depends(get_store)):
    data = store.assign_monitor(deployment_id, payload.get("userId"), payload.get("role") or "Monitor")
    return ok(data, "Monitoring user assigned successfully")


@router.delete("/deployments/{deployment_id}/monitoring/{user_id}")
def unassign_monitor(deployment_id: str, user_id: str, store: MemoryStore = Depends(get_store)):
    store.unassign_monitor(deployment_id, user_id)
    return ok(None, "Monitoring user unassigned successfully")


@router.get("/personnel")
def list_personnel(store: MemoryStore = Depends(get_store)):
    return ok(store.list_personnel())
