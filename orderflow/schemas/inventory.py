"""Inventory API schemas."""

from pydantic import BaseModel, Field


class OrderLinePayload(BaseModel):
    name: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)


class CheckStockRequest(BaseModel):
    items: list[OrderLinePayload]


class ReduceStockRequest(BaseModel):
    order_id: int
    items: list[OrderLinePayload]


class MissingIngredientResponse(BaseModel):
    name: str
    required: float
    available: float
    unit: str


class ItemAvailabilityResponse(BaseModel):
    menu_item: str
    available: bool
    missing_ingredients: list[MissingIngredientResponse]
    note: str | None = None


class AvailabilityResponse(BaseModel):
    all_available: bool
    items: list[ItemAvailabilityResponse]


class IngredientResultResponse(BaseModel):
    ingredient_name: str
    quantity: float
    unit: str
    status: str
    error: str | None = None


class ReductionResponse(BaseModel):
    order_id: int
    succeeded: bool
    results: list[IngredientResultResponse]
