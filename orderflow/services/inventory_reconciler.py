"""Recipe-driven ingredient availability checks and stock decrements."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orderflow.core.errors import InventoryStoreError, RecipeLookupError
from orderflow.models.inventory import InventoryDecrement
from orderflow.services.inventory_store import InventoryStore
from orderflow.services.recipes import RecipeIngredient, RecipeResolver
from orderflow.utils.time import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderLine:
    name: str
    quantity: int


@dataclass
class Requirement:
    ingredient_name: str
    quantity: float
    unit: str


@dataclass(frozen=True)
class MissingIngredient:
    name: str
    required: float
    available: float
    unit: str


@dataclass
class ItemAvailability:
    menu_item: str
    available: bool
    missing_ingredients: list[MissingIngredient] = field(default_factory=list)
    note: str | None = None


@dataclass
class AvailabilityReport:
    all_available: bool
    items: list[ItemAvailability]


@dataclass(frozen=True)
class IngredientResult:
    ingredient_name: str
    quantity: float
    unit: str
    status: str
    error: str | None = None


@dataclass
class ReductionReport:
    order_id: int
    results: list[IngredientResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(result.status != "failed" for result in self.results)


def decrement_key(order_id: int, ingredient_name: str) -> str:
    return f"{order_id}:{ingredient_name}"


def _add_requirements(
    requirements: dict[str, Requirement],
    recipe: Iterable[RecipeIngredient],
    quantity: int,
) -> list[str]:
    keys: list[str] = []
    for ingredient in recipe:
        key = ingredient.ingredient_name.strip().lower()
        amount = ingredient.quantity_per_unit * quantity
        if key in requirements:
            requirements[key].quantity = round(requirements[key].quantity + amount, 6)
        else:
            requirements[key] = Requirement(ingredient.ingredient_name.strip(), round(amount, 6), ingredient.unit)
        keys.append(key)
    return keys


class InventoryReconciler:
    """Expands order lines into ingredients and applies them to a store."""

    def __init__(self, resolver: RecipeResolver, store: InventoryStore):
        self.resolver = resolver
        self.store = store

    def check_availability(self, items: Iterable[OrderLine]) -> AvailabilityReport:
        """Report per menu item whether current stock covers the whole order.

        Requirements are summed across lines, so two dishes sharing an
        ingredient are checked against their combined need. An item whose
        recipe cannot be fetched is reported available with a note.
        """
        requirements: dict[str, Requirement] = {}
        item_keys: list[tuple[str, list[str], str | None]] = []
        for line in items:
            try:
                recipe = self.resolver.resolve(line.name)
            except RecipeLookupError as exc:
                logger.warning("[INVENTORY] Availability of %s unchecked: %s", line.name, exc)
                item_keys.append((line.name, [], f"recipe unavailable: {exc}"))
                continue
            keys = _add_requirements(requirements, recipe, line.quantity) if recipe else []
            item_keys.append((line.name, keys, None))

        shortages: dict[str, MissingIngredient] = {}
        for key, requirement in requirements.items():
            stock = self.store.get_stock(requirement.ingredient_name)
            available = stock.quantity if stock is not None else 0.0
            if available < requirement.quantity:
                shortages[key] = MissingIngredient(
                    name=requirement.ingredient_name,
                    required=requirement.quantity,
                    available=available,
                    unit=requirement.unit,
                )

        report_items: list[ItemAvailability] = []
        for menu_item, keys, note in item_keys:
            missing = [shortages[key] for key in dict.fromkeys(keys) if key in shortages]
            report_items.append(
                ItemAvailability(menu_item=menu_item, available=not missing, missing_ingredients=missing, note=note)
            )
        return AvailabilityReport(all_available=all(item.available for item in report_items), items=report_items)

    def _ledger_row(self, db: Session, order_id: int, requirement: Requirement) -> InventoryDecrement:
        row: InventoryDecrement | None = db.scalar(
            select(InventoryDecrement).where(
                InventoryDecrement.order_id == order_id,
                InventoryDecrement.ingredient_name == requirement.ingredient_name,
            )
        )
        if row is not None:
            return row
        row = InventoryDecrement(
            order_id=order_id,
            ingredient_name=requirement.ingredient_name,
            quantity=requirement.quantity,
            unit=requirement.unit,
        )
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return db.scalars(
                select(InventoryDecrement).where(
                    InventoryDecrement.order_id == order_id,
                    InventoryDecrement.ingredient_name == requirement.ingredient_name,
                )
            ).one()
        return row

    def reduce(self, db: Session, order_id: int, items: Iterable[OrderLine]) -> ReductionReport:
        """Decrement stock for an order, at most once per ingredient.

        A failure on one ingredient or one recipe does not stop the others;
        the report lists every outcome and ``succeeded`` is False when any
        of them should be retried.
        """
        report = ReductionReport(order_id=order_id)
        requirements: dict[str, Requirement] = {}
        for line in items:
            try:
                recipe = self.resolver.resolve(line.name)
            except RecipeLookupError as exc:
                report.results.append(IngredientResult(line.name, 0.0, "", "failed", str(exc)))
                continue
            if recipe:
                _add_requirements(requirements, recipe, line.quantity)

        for requirement in requirements.values():
            report.results.append(self._reduce_one(db, order_id, requirement))

        logger.info(
            "[INVENTORY] Order %s reconciled: %s",
            order_id,
            ", ".join(f"{result.ingredient_name}={result.status}" for result in report.results) or "nothing to reduce",
        )
        return report

    def _reduce_one(self, db: Session, order_id: int, requirement: Requirement) -> IngredientResult:
        row = self._ledger_row(db, order_id, requirement)
        if row.status == "applied":
            return IngredientResult(row.ingredient_name, row.quantity, row.unit, "already_applied")

        row.attempts += 1
        row.updated_at = utcnow()
        try:
            reduction = self.store.reduce_stock(row.ingredient_name, row.quantity, decrement_key(order_id, row.ingredient_name))
        except InventoryStoreError as exc:
            logger.warning("[INVENTORY] Decrement %s for order %s failed: %s", row.ingredient_name, order_id, exc)
            row.status = "failed"
            row.last_error = str(exc)
            db.commit()
            return IngredientResult(row.ingredient_name, row.quantity, row.unit, "failed", str(exc))

        if reduction is None:
            row.status = "failed"
            row.last_error = "ingredient not found in inventory"
            db.commit()
            return IngredientResult(row.ingredient_name, row.quantity, row.unit, "not_found")

        row.status = "applied"
        row.last_error = None
        db.commit()
        return IngredientResult(row.ingredient_name, row.quantity, row.unit, "reduced" if reduction.applied else "already_applied")
