"""Ingredient stock endpoints backed by the recipe reconciler."""

from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from orderflow.api.deps import get_actor, get_reconciler
from orderflow.core.permissions import INVENTORY_REDUCE, Actor, ensure_permission
from orderflow.db.session import get_db
from orderflow.schemas.inventory import AvailabilityResponse, CheckStockRequest, ReduceStockRequest, ReductionResponse
from orderflow.services.inventory_reconciler import InventoryReconciler, OrderLine

router: APIRouter = APIRouter()


@router.post("/check-stock", response_model=AvailabilityResponse)
def check_stock(payload: CheckStockRequest, reconciler: InventoryReconciler = Depends(get_reconciler)) -> AvailabilityResponse:
    report = reconciler.check_availability([OrderLine(name=item.name, quantity=item.quantity) for item in payload.items])
    return AvailabilityResponse.model_validate(asdict(report))


@router.post("/reduce-stock", response_model=ReductionResponse)
def reduce_stock(
    payload: ReduceStockRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    reconciler: InventoryReconciler = Depends(get_reconciler),
) -> ReductionResponse:
    """Decrement stock for an order; repeating the call for the same order is a no-op."""
    ensure_permission(actor, INVENTORY_REDUCE)
    report = reconciler.reduce(db, payload.order_id, [OrderLine(name=item.name, quantity=item.quantity) for item in payload.items])
    return ReductionResponse(
        order_id=report.order_id,
        succeeded=report.succeeded,
        results=[asdict(result) for result in report.results],
    )
