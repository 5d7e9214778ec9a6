"""API v1 router composition."""

from fastapi import APIRouter

from orderflow.api.v1.endpoints import cart, casso, inventory, orders, reconciliation

api_router: APIRouter = APIRouter()
api_router.include_router(cart.router, prefix="/cart", tags=["cart"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
api_router.include_router(casso.router, prefix="/casso", tags=["casso"])
api_router.include_router(reconciliation.router, prefix="/reconciliation", tags=["reconciliation"])
