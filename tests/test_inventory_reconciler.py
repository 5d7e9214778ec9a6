import threading
from pathlib import Path

import httpx
import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker

from orderflow.core.errors import InventoryStoreError, RecipeLookupError
from orderflow.db.base import Base
from orderflow.models.inventory import InventoryDecrement, InventoryItem, StockMovement
from orderflow.services.inventory_reconciler import InventoryReconciler, OrderLine
from orderflow.services.inventory_store import HttpInventoryStore, SqlInventoryStore, StockLevel, derive_stock_status
from orderflow.services.recipes import (
    MenuServiceRecipeSource,
    RecipeIngredient,
    RecipeResolver,
    StaticRecipeSource,
)

RECIPES = {
    "Fried Rice": (
        RecipeIngredient("Rice", 0.3, "kg"),
        RecipeIngredient("Egg", 2, "pcs"),
        RecipeIngredient("Saffron", 0.01, "kg"),
    ),
    "Congee": (RecipeIngredient("rice", 0.1, "kg"),),
}


def _session_local(tmp_path: Path) -> sessionmaker:
    engine = create_engine(f"sqlite:///{tmp_path / 'inventory.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _seed(db: Session) -> None:
    db.add_all(
        [
            InventoryItem(name="Rice", quantity=20.0, unit="kg", minimum_stock=10.0, status="in-stock"),
            InventoryItem(name="Egg", quantity=5.0, unit="pcs", minimum_stock=2.0, status="in-stock"),
        ]
    )
    db.commit()


def _reconciler(db: Session) -> InventoryReconciler:
    return InventoryReconciler(RecipeResolver([StaticRecipeSource(RECIPES)]), SqlInventoryStore(db))


def _stock(db: Session, name: str) -> InventoryItem:
    item = db.scalars(select(InventoryItem).where(InventoryItem.name == name)).one()
    db.refresh(item)
    return item


def test_reduce_aggregates_shared_ingredients_and_is_idempotent(tmp_path: Path) -> None:
    with _session_local(tmp_path)() as db:
        _seed(db)
        lines = [OrderLine("Fried Rice", 2), OrderLine("Congee", 1), OrderLine("Iced Tea", 3)]

        report = _reconciler(db).reduce(db, 7, lines)
        statuses = {result.ingredient_name: result.status for result in report.results}
        assert statuses == {"Rice": "reduced", "Egg": "reduced", "Saffron": "not_found"}
        assert report.succeeded
        assert _stock(db, "Rice").quantity == pytest.approx(19.3)
        assert _stock(db, "Egg").quantity == pytest.approx(1.0)
        assert _stock(db, "Egg").status == "low-stock"

        replay = _reconciler(db).reduce(db, 7, lines)
        assert {r.ingredient_name: r.status for r in replay.results}["Rice"] == "already_applied"
        assert _stock(db, "Rice").quantity == pytest.approx(19.3)
        assert db.scalar(select(func.count()).select_from(StockMovement)) == 2
        assert db.scalar(select(func.count()).select_from(InventoryDecrement).where(InventoryDecrement.order_id == 7)) == 3


def test_reduce_floors_stock_at_zero(tmp_path: Path) -> None:
    with _session_local(tmp_path)() as db:
        _seed(db)
        _reconciler(db).reduce(db, 1, [OrderLine("Fried Rice", 3)])

        egg = _stock(db, "Egg")
        assert egg.quantity == 0
        assert egg.status == "out-of-stock"


def test_store_replay_of_same_key_is_noop(tmp_path: Path) -> None:
    with _session_local(tmp_path)() as db:
        _seed(db)
        store = SqlInventoryStore(db)

        first = store.reduce_stock("rice", 1.5, "9:Rice")
        second = store.reduce_stock("rice", 1.5, "9:Rice")

        assert first is not None and first.applied
        assert second is not None and not second.applied
        assert _stock(db, "Rice").quantity == pytest.approx(18.5)
        assert store.reduce_stock("Unobtainium", 1, "9:Unobtainium") is None


def test_one_failing_ingredient_does_not_abort_others(tmp_path: Path) -> None:
    class FlakyStore(SqlInventoryStore):
        def reduce_stock(self, name, quantity, idempotency_key):
            if name == "Egg":
                raise InventoryStoreError("timeout")
            return super().reduce_stock(name, quantity, idempotency_key)

    with _session_local(tmp_path)() as db:
        _seed(db)
        reconciler = InventoryReconciler(RecipeResolver([StaticRecipeSource(RECIPES)]), FlakyStore(db))

        report = reconciler.reduce(db, 3, [OrderLine("Fried Rice", 1)])

        statuses = {result.ingredient_name: result.status for result in report.results}
        assert statuses["Egg"] == "failed"
        assert statuses["Rice"] == "reduced"
        assert not report.succeeded
        row = db.scalars(select(InventoryDecrement).where(InventoryDecrement.ingredient_name == "Egg")).one()
        assert row.status == "failed"
        assert row.attempts == 1
        assert row.last_error == "timeout"


def test_check_availability_reports_missing_ingredients(tmp_path: Path) -> None:
    with _session_local(tmp_path)() as db:
        _seed(db)
        report = _reconciler(db).check_availability([OrderLine("Fried Rice", 2), OrderLine("Iced Tea", 1)])

        assert not report.all_available
        fried_rice, iced_tea = report.items
        assert not fried_rice.available
        assert [missing.name for missing in fried_rice.missing_ingredients] == ["Saffron"]
        assert iced_tea.available


def test_check_availability_sums_requirements_across_lines(tmp_path: Path) -> None:
    with _session_local(tmp_path)() as db:
        _seed(db)
        recipes = {"Omelette": (RecipeIngredient("Egg", 3, "pcs"),)}
        reconciler = InventoryReconciler(RecipeResolver([StaticRecipeSource(recipes)]), SqlInventoryStore(db))

        assert reconciler.check_availability([OrderLine("Omelette", 1)]).all_available
        report = reconciler.check_availability([OrderLine("Omelette", 1), OrderLine("omelette", 1)])
        assert not report.all_available
        assert report.items[0].missing_ingredients[0].required == 6


def test_stock_status_thresholds() -> None:
    assert derive_stock_status(0, 10) == "out-of-stock"
    assert derive_stock_status(10, 10) == "low-stock"
    assert derive_stock_status(10.5, 10) == "in-stock"


def test_http_store_unreachable_raises_store_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    store = HttpInventoryStore("http://inventory.local", transport=httpx.MockTransport(handler))
    with pytest.raises(InventoryStoreError):
        store.reduce_stock("Rice", 1, "1:Rice")


def test_http_store_parses_reduce_results() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/inventory/reduce-stock"
        assert request.headers["Idempotency-Key"] == "1:Rice"
        return httpx.Response(
            200,
            json={
                "data": {
                    "results": [
                        {"name": "Rice", "status": "reduced", "quantity_before": 5, "quantity_after": 4, "stock_status": "low-stock"}
                    ]
                }
            },
        )

    store = HttpInventoryStore("http://inventory.local", transport=httpx.MockTransport(handler))
    reduction = store.reduce_stock("Rice", 1, "1:Rice")

    assert reduction is not None
    assert reduction.quantity_after == 4
    assert reduction.applied


def test_recipe_resolver_falls_back_and_surfaces_failures() -> None:
    def down(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    menu = MenuServiceRecipeSource("http://menu.local", transport=httpx.MockTransport(down))
    resolver = RecipeResolver([menu, StaticRecipeSource(RECIPES)])

    assert resolver.resolve("fried rice")[0].ingredient_name == "Rice"
    with pytest.raises(RecipeLookupError):
        resolver.resolve("Mystery Dish")
    assert RecipeResolver([StaticRecipeSource(RECIPES)]).resolve("Mystery Dish") is None


def test_menu_service_recipe_overrides_builtin() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"data": [{"name": "Fried Rice", "ingredients": [{"name": "Jasmine Rice", "quantity": 0.25, "unit": "kg"}]}]},
        )

    menu = MenuServiceRecipeSource("http://menu.local", transport=httpx.MockTransport(handler))
    recipe = RecipeResolver([menu, StaticRecipeSource(RECIPES)]).resolve("Fried Rice")

    assert recipe == (RecipeIngredient("Jasmine Rice", 0.25, "kg"),)


def test_reduce_marks_recipe_lookup_failure_for_retry(tmp_path: Path) -> None:
    class BrokenSource:
        def lookup(self, menu_item_name: str):
            raise RecipeLookupError("menu service down")

    with _session_local(tmp_path)() as db:
        _seed(db)
        reconciler = InventoryReconciler(RecipeResolver([BrokenSource()]), SqlInventoryStore(db))

        report = reconciler.reduce(db, 5, [OrderLine("Fried Rice", 1)])

        assert not report.succeeded
        assert _stock(db, "Rice").quantity == 20.0


def test_stock_level_lookup_is_case_insensitive(tmp_path: Path) -> None:
    with _session_local(tmp_path)() as db:
        _seed(db)
        assert SqlInventoryStore(db).get_stock("rICE") == StockLevel(name="Rice", quantity=20.0, unit="kg", status="in-stock")


def test_check_availability_reports_unresolvable_recipe_as_available(tmp_path: Path, caplog) -> None:
    class BrokenSource:
        def lookup(self, menu_item_name: str):
            raise RecipeLookupError("menu service down")

    with _session_local(tmp_path)() as db:
        _seed(db)
        reconciler = InventoryReconciler(RecipeResolver([BrokenSource()]), SqlInventoryStore(db))

        with caplog.at_level("WARNING"):
            report = reconciler.check_availability([OrderLine("Fried Rice", 1)])

        assert report.all_available
        (item,) = report.items
        assert item.available
        assert item.missing_ingredients == []
        assert "menu service down" in item.note
        assert "Availability of Fried Rice unchecked" in caplog.text


def test_check_availability_keeps_checking_other_lines_when_one_recipe_fails(tmp_path: Path) -> None:
    class HalfBrokenSource(StaticRecipeSource):
        def lookup(self, menu_item_name: str):
            if menu_item_name == "Congee":
                raise RecipeLookupError("timeout")
            return super().lookup(menu_item_name)

    with _session_local(tmp_path)() as db:
        _seed(db)
        reconciler = InventoryReconciler(RecipeResolver([HalfBrokenSource(RECIPES)]), SqlInventoryStore(db))

        report = reconciler.check_availability([OrderLine("Congee", 1), OrderLine("Fried Rice", 1)])

        congee, fried_rice = report.items
        assert congee.available and congee.note is not None
        assert not fried_rice.available
        assert fried_rice.note is None
        assert not report.all_available


def test_menu_listing_is_fetched_once_for_many_lines() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(
            200,
            json=[
                {"name": "Fried Rice", "ingredients": [{"name": "Rice", "quantity": 0.3, "unit": "kg"}]},
                {"name": "Iced Tea", "ingredients": []},
            ],
        )

    menu = MenuServiceRecipeSource("http://menu.local", transport=httpx.MockTransport(handler))
    resolver = RecipeResolver([menu, StaticRecipeSource(RECIPES)])

    for name in ("Fried Rice", "fried rice", "Iced Tea", "Congee", "Fried Rice"):
        resolver.resolve(name)

    assert calls == ["/api/menu"]
    assert menu.lookup("Iced Tea") is None
    assert resolver.resolve("Congee") == RECIPES["Congee"]


def test_menu_listing_refetched_after_expiry_and_failures_not_cached() -> None:
    responses = [httpx.Response(503), httpx.Response(200, json={"data": [{"name": "Pho", "ingredients": []}]})]
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return responses.pop(0) if responses else httpx.Response(200, json=[])

    menu = MenuServiceRecipeSource("http://menu.local", cache_seconds=0, transport=httpx.MockTransport(handler))

    with pytest.raises(RecipeLookupError):
        menu.lookup("Pho")
    assert menu.lookup("Pho") is None
    assert menu.lookup("Pho") is None
    assert len(calls) == 3
    menu.close()


def _seed_basil(db: Session) -> None:
    db.add(InventoryItem(name="Basil", quantity=1.0, unit="kg", minimum_stock=0.5, status="in-stock"))
    db.commit()


BASIL_SOUP = {"Basil Soup": (RecipeIngredient("Basil", 0.6, "kg"),)}


def test_stale_session_reduce_floors_at_zero(tmp_path: Path) -> None:
    session_local = _session_local(tmp_path)
    with session_local() as db:
        _seed_basil(db)

    with session_local() as first, session_local() as second:
        first_store, second_store = SqlInventoryStore(first), SqlInventoryStore(second)
        assert first_store.get_stock("Basil").quantity == 1.0
        assert second_store.get_stock("Basil").quantity == 1.0

        first_store.reduce_stock("Basil", 0.6, "1:Basil")
        reduction = second_store.reduce_stock("Basil", 0.6, "2:Basil")

        assert reduction is not None and reduction.applied
        assert reduction.quantity_after == 0
        assert reduction.status == "out-of-stock"

    with session_local() as db:
        assert _stock(db, "Basil").quantity == 0
        assert db.scalar(select(func.count()).select_from(StockMovement)) == 2


def test_concurrent_orders_on_low_stock_ingredient(tmp_path: Path) -> None:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'contended.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    with session_local() as db:
        _seed_basil(db)

    resolver = RecipeResolver([StaticRecipeSource(BASIL_SOUP)])
    barrier = threading.Barrier(2)
    reports = {}
    errors: list[Exception] = []

    def reduce_order(order_id: int) -> None:
        try:
            with session_local() as db:
                barrier.wait(timeout=10)
                reports[order_id] = InventoryReconciler(resolver, SqlInventoryStore(db)).reduce(
                    db, order_id, [OrderLine("Basil Soup", 1)]
                )
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=reduce_order, args=(order_id,)) for order_id in (101, 102)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert errors == []
    assert sorted(reports) == [101, 102]
    assert all(report.succeeded for report in reports.values())
    assert [result.status for report in reports.values() for result in report.results] == ["reduced", "reduced"]

    with session_local() as db:
        basil = _stock(db, "Basil")
        assert basil.quantity == 0
        assert basil.status == "out-of-stock"
        movements = db.scalars(select(StockMovement).order_by(StockMovement.id)).all()
        assert sorted(movement.idempotency_key for movement in movements) == ["101:Basil", "102:Basil"]
        assert all(movement.quantity_after >= 0 for movement in movements)
        assert sorted(movement.quantity_after for movement in movements) == [0, pytest.approx(0.4)]
