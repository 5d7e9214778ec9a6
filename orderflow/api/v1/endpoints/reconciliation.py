"""Inspect and drive the inventory reconcile outbox."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from orderflow.api.deps import get_actor, get_reconciler
from orderflow.core.permissions import INVENTORY_REDUCE, Actor, ensure_permission
from orderflow.db.session import get_db
from orderflow.schemas.casso import ReconcileTaskResponse, WorkerRunResponse
from orderflow.services.inventory_reconciler import InventoryReconciler
from orderflow.services.reconcile_worker import list_tasks, process_due_tasks

router: APIRouter = APIRouter()


@router.get("/tasks", response_model=list[ReconcileTaskResponse])
def get_tasks(
    status: str | None = Query(default=None),
    order_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> list[ReconcileTaskResponse]:
    ensure_permission(actor, INVENTORY_REDUCE)
    return [ReconcileTaskResponse.model_validate(task) for task in list_tasks(db, status=status, order_id=order_id)]


@router.post("/run", response_model=WorkerRunResponse)
def run_due_tasks(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    reconciler: InventoryReconciler = Depends(get_reconciler),
) -> WorkerRunResponse:
    """Run due tasks now instead of waiting for the poller."""
    ensure_permission(actor, INVENTORY_REDUCE)
    return WorkerRunResponse(**asdict(process_due_tasks(db, reconciler)))
