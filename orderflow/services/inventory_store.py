"""Ingredient stock backends used by the inventory reconciler."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orderflow.core.config import settings
from orderflow.core.errors import InventoryStoreError
from orderflow.models.inventory import InventoryItem, StockMovement
from orderflow.utils.time import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockLevel:
    name: str
    quantity: float
    unit: str
    status: str


@dataclass(frozen=True)
class StockReduction:
    """Outcome of one keyed decrement; ``applied`` is False for a replayed key."""

    name: str
    quantity_before: float
    quantity_after: float
    status: str
    applied: bool = True


def derive_stock_status(quantity: float, minimum_stock: float) -> str:
    if quantity <= 0:
        return "out-of-stock"
    if quantity <= minimum_stock:
        return "low-stock"
    return "in-stock"


class InventoryStore(Protocol):
    def get_stock(self, name: str) -> StockLevel | None:
        ...

    def reduce_stock(self, name: str, quantity: float, idempotency_key: str) -> StockReduction | None:
        """Decrement once per key, floored at zero; None when the ingredient is unknown."""
        ...


class SqlInventoryStore:
    """Stock kept in the local ``inventory_items`` table.

    The decrement and the movement row are written in one transaction; the
    movement's unique key makes a replay a no-op.
    """

    def __init__(self, db: Session):
        self.db = db

    def _find(self, name: str) -> InventoryItem | None:
        return self.db.scalar(select(InventoryItem).where(func.lower(InventoryItem.name) == name.strip().lower()))

    def get_stock(self, name: str) -> StockLevel | None:
        item = self._find(name)
        if item is None:
            return None
        return StockLevel(name=item.name, quantity=item.quantity, unit=item.unit, status=item.status)

    def reduce_stock(self, name: str, quantity: float, idempotency_key: str) -> StockReduction | None:
        previous: StockMovement | None = self.db.scalar(
            select(StockMovement).where(StockMovement.idempotency_key == idempotency_key)
        )
        item = self._find(name)
        if previous is not None:
            return StockReduction(
                name=previous.ingredient_name,
                quantity_before=previous.quantity_before,
                quantity_after=previous.quantity_after,
                status=item.status if item is not None else "out-of-stock",
                applied=False,
            )
        if item is None:
            return None

        before = item.quantity
        remaining = InventoryItem.quantity - quantity
        floored = case((remaining < 0, 0.0), else_=remaining)
        self.db.execute(
            update(InventoryItem)
            .where(InventoryItem.id == item.id)
            .values(
                quantity=floored,
                status=case(
                    (floored <= 0, "out-of-stock"),
                    (floored <= InventoryItem.minimum_stock, "low-stock"),
                    else_="in-stock",
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.refresh(item)
        self.db.add(
            StockMovement(
                idempotency_key=idempotency_key,
                ingredient_name=item.name,
                quantity_requested=quantity,
                quantity_before=before,
                quantity_after=item.quantity,
            )
        )
        try:
            self.db.commit()
        except IntegrityError:
            # Concurrent replay of the same key won the insert; undo ours.
            self.db.rollback()
            return self.reduce_stock(name, quantity, idempotency_key)

        logger.info("[INVENTORY] %s: %s -> %s %s (%s)", item.name, before, item.quantity, item.unit, item.status)
        return StockReduction(
            name=item.name,
            quantity_before=before,
            quantity_after=item.quantity,
            status=item.status,
        )


class HttpInventoryStore:
    """Inventory service reached over HTTP."""

    def __init__(self, base_url: str, *, timeout: float | None = None, transport: httpx.BaseTransport | None = None):
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            transport=transport,
        )

    def _post(self, path: str, payload: dict[str, Any], idempotency_key: str | None = None) -> dict[str, Any]:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        try:
            response = self._client.post(path, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise InventoryStoreError(f"Inventory service unreachable: {exc}") from exc
        if response.status_code == 404:
            return {}
        if response.status_code >= 400:
            raise InventoryStoreError(f"Inventory service answered {response.status_code} for {path}")
        try:
            return response.json()
        except ValueError as exc:
            raise InventoryStoreError(f"Inventory service sent invalid JSON for {path}") from exc

    def get_stock(self, name: str) -> StockLevel | None:
        body = self._post("/api/inventory/check-stock", {"ingredients": [{"name": name, "quantity": 0}]})
        rows = body.get("data", {}).get("items", []) if isinstance(body.get("data"), dict) else []
        for row in rows:
            if str(row.get("name", "")).lower() == name.lower() and row.get("found", True):
                return StockLevel(
                    name=row["name"],
                    quantity=float(row.get("current", row.get("quantity", 0))),
                    unit=str(row.get("unit", "")),
                    status=str(row.get("status", "")),
                )
        return None

    def reduce_stock(self, name: str, quantity: float, idempotency_key: str) -> StockReduction | None:
        body = self._post(
            "/api/inventory/reduce-stock",
            {"ingredients": [{"name": name, "quantity": quantity, "idempotency_key": idempotency_key}]},
            idempotency_key,
        )
        rows = body.get("data", {}).get("results", []) if isinstance(body.get("data"), dict) else []
        for row in rows:
            if str(row.get("name", "")).lower() != name.lower():
                continue
            if row.get("status") == "not_found":
                return None
            return StockReduction(
                name=row["name"],
                quantity_before=float(row.get("quantity_before", 0)),
                quantity_after=float(row.get("quantity_after", 0)),
                status=str(row.get("stock_status", "")),
                applied=row.get("status") != "already_applied",
            )
        return None

    def close(self) -> None:
        self._client.close()
