"""Recipe lookup: menu item name -> ingredients consumed per ordered unit."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from orderflow.core.config import settings
from orderflow.core.errors import RecipeLookupError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecipeIngredient:
    ingredient_name: str
    quantity_per_unit: float
    unit: str


def _recipe(*rows: tuple[str, float, str]) -> tuple[RecipeIngredient, ...]:
    return tuple(RecipeIngredient(name, quantity, unit) for name, quantity, unit in rows)


BUILTIN_RECIPES: dict[str, tuple[RecipeIngredient, ...]] = {
    "Cơm Chiên Hải Sản": _recipe(
        ("Cơm Tấm", 0.3, "kg"),
        ("Tôm Sú Tươi", 0.1, "kg"),
        ("Mực Ống Tươi", 0.08, "kg"),
        ("Trứng Gà", 2, "cái"),
        ("Hành Tây", 0.05, "kg"),
        ("Dầu Ăn", 0.02, "lít"),
    ),
    "Cơm Chiên Dương Châu": _recipe(
        ("Cơm Tấm", 0.3, "kg"),
        ("Xúc Xích", 0.05, "kg"),
        ("Tôm Khô", 0.02, "kg"),
        ("Trứng Gà", 2, "cái"),
        ("Đậu Hà Lan", 0.03, "kg"),
        ("Cà Rốt", 0.03, "kg"),
        ("Dầu Ăn", 0.02, "lít"),
    ),
    "Phở Bò Tái": _recipe(
        ("Bánh Phở", 0.2, "kg"),
        ("Thịt Bò Tái", 0.15, "kg"),
        ("Hành Tây", 0.02, "kg"),
        ("Ngò Gai", 0.01, "kg"),
        ("Giá Đỗ", 0.05, "kg"),
    ),
    "Phở Gà": _recipe(
        ("Bánh Phở", 0.2, "kg"),
        ("Thịt Gà", 0.15, "kg"),
        ("Hành Tây", 0.02, "kg"),
        ("Ngò Gai", 0.01, "kg"),
        ("Giá Đỗ", 0.05, "kg"),
    ),
    "Cá Lăng Nướng Giấy Bạc": _recipe(
        ("Cá Lăng Đang Bơi", 0.8, "kg"),
        ("Sả", 0.02, "kg"),
        ("Ớt", 0.01, "kg"),
        ("Hành Tây", 0.05, "kg"),
        ("Dầu Ăn", 0.03, "lít"),
    ),
    "Tôm Nướng Muối Ớt": _recipe(
        ("Tôm Sú Tươi", 0.4, "kg"),
        ("Muối Biển", 0.01, "kg"),
        ("Ớt", 0.02, "kg"),
        ("Tỏi", 0.01, "kg"),
        ("Dầu Ăn", 0.02, "lít"),
    ),
    "Lẩu Cá Khoai": _recipe(
        ("Cá Tra Phi Lê", 0.3, "kg"),
        ("Khoai Tây", 0.2, "kg"),
        ("Cà Chua", 0.1, "kg"),
        ("Thơm", 0.15, "kg"),
        ("Đậu Bắp", 0.1, "kg"),
        ("Nước Mắm", 0.05, "lít"),
    ),
    "Sườn Nướng BBQ": _recipe(
        ("Sườn Heo", 0.4, "kg"),
        ("Tỏi", 0.02, "kg"),
        ("Hành Tây", 0.03, "kg"),
        ("Dầu Ăn", 0.02, "lít"),
    ),
    "Gỏi Cuốn Tôm Thịt": _recipe(
        ("Bánh Tráng", 0.05, "kg"),
        ("Tôm Sú Tươi", 0.15, "kg"),
        ("Thịt Ba Chỉ", 0.1, "kg"),
        ("Bún Tươi", 0.05, "kg"),
        ("Xà Lách", 0.05, "kg"),
        ("Ngò Gai", 0.01, "kg"),
    ),
    "Canh Chua Cá Lăng": _recipe(
        ("Cá Lăng Đang Bơi", 0.3, "kg"),
        ("Cà Chua", 0.1, "kg"),
        ("Thơm", 0.05, "kg"),
        ("Đậu Bắp", 0.05, "kg"),
        ("Giá Đỗ", 0.03, "kg"),
        ("Me", 0.02, "kg"),
    ),
    "Mì Quảng Tôm Cua": _recipe(
        ("Mì Quảng Khô", 0.15, "kg"),
        ("Tôm Sú Tươi", 0.12, "kg"),
        ("Cua Biển", 0.1, "kg"),
        ("Thịt Ba Chỉ", 0.05, "kg"),
        ("Trứng Gà", 1, "cái"),
        ("Hành Lá", 0.01, "kg"),
    ),
    "Bánh Mì Thịt Nướng": _recipe(
        ("Bánh Mì", 1, "cái"),
        ("Thịt Nướng", 0.1, "kg"),
        ("Pate", 0.02, "kg"),
        ("Dưa Leo", 0.03, "kg"),
        ("Cà Chua", 0.03, "kg"),
        ("Ngò Gai", 0.005, "kg"),
    ),
    "Trà Đá": _recipe(
        ("Trà", 0.005, "kg"),
        ("Đá Lạnh", 0.1, "kg"),
    ),
    "Nước Cam Tươi": _recipe(
        ("Cam Tươi", 0.3, "kg"),
        ("Đá Lạnh", 0.05, "kg"),
    ),
    "Chè Ba Màu": _recipe(
        ("Đậu Xanh", 0.03, "kg"),
        ("Khoai Môn", 0.05, "kg"),
        ("Nước Cốt Dừa", 0.1, "lít"),
        ("Đá Lạnh", 0.05, "kg"),
    ),
}


class RecipeSource(Protocol):
    def lookup(self, menu_item_name: str) -> tuple[RecipeIngredient, ...] | None:
        """Return the recipe, None when unknown; raise RecipeLookupError on failure."""
        ...


class StaticRecipeSource:
    def __init__(self, recipes: dict[str, tuple[RecipeIngredient, ...]] | None = None):
        recipes = BUILTIN_RECIPES if recipes is None else recipes
        self._recipes = {name.casefold(): ingredients for name, ingredients in recipes.items()}

    def lookup(self, menu_item_name: str) -> tuple[RecipeIngredient, ...] | None:
        return self._recipes.get(menu_item_name.strip().casefold())


def _parse_listing(body: Any) -> dict[str, tuple[RecipeIngredient, ...] | None]:
    menu_items = body if isinstance(body, list) else body.get("data", [])
    recipes: dict[str, tuple[RecipeIngredient, ...] | None] = {}
    for item in menu_items:
        ingredients = item.get("ingredients") or []
        recipes[str(item.get("name", "")).strip().casefold()] = (
            tuple(
                RecipeIngredient(
                    ingredient_name=str(row["name"]),
                    quantity_per_unit=float(row["quantity"]),
                    unit=str(row.get("unit", "")),
                )
                for row in ingredients
            )
            or None
        )
    return recipes


class MenuServiceRecipeSource:
    """Reads ``ingredients`` from the menu service's item listing.

    The listing is fetched once and reused for ``cache_seconds``, so an order
    with many lines costs one request. Failed fetches are not cached.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float | None = None,
        cache_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            transport=transport,
        )
        self._cache_seconds = cache_seconds if cache_seconds is not None else settings.menu_cache_seconds
        self._listing: tuple[float, dict[str, tuple[RecipeIngredient, ...] | None]] | None = None

    def _recipes(self, menu_item_name: str) -> dict[str, tuple[RecipeIngredient, ...] | None]:
        cached = self._listing
        if cached is not None and cached[0] > time.monotonic():
            return cached[1]
        try:
            response = self._client.get("/api/menu")
            response.raise_for_status()
            recipes = _parse_listing(response.json())
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise RecipeLookupError(f"Menu service lookup failed for {menu_item_name}: {exc}") from exc
        self._listing = (time.monotonic() + self._cache_seconds, recipes)
        return recipes

    def lookup(self, menu_item_name: str) -> tuple[RecipeIngredient, ...] | None:
        return self._recipes(menu_item_name).get(menu_item_name.strip().casefold())

    def close(self) -> None:
        self._client.close()


class RecipeResolver:
    """Consults sources in order; the first recipe found wins."""

    def __init__(self, sources: list[RecipeSource] | None = None):
        self._sources: list[RecipeSource] = sources if sources is not None else [StaticRecipeSource()]

    def resolve(self, menu_item_name: str) -> tuple[RecipeIngredient, ...] | None:
        """Return the recipe for one unit of the menu item, or None.

        None means the item has no recipe and consumes nothing. If a source
        failed and no other source knew the item, the failure is re-raised so
        the caller can retry later instead of skipping the item.
        """
        failure: RecipeLookupError | None = None
        for source in self._sources:
            try:
                recipe = source.lookup(menu_item_name)
            except RecipeLookupError as exc:
                logger.warning("[RECIPES] %s", exc)
                failure = exc
                continue
            if recipe is not None:
                return recipe
        if failure is not None:
            raise failure
        return None

    def close(self) -> None:
        for source in self._sources:
            close = getattr(source, "close", None)
            if close is not None:
                close()


def build_recipe_resolver() -> RecipeResolver:
    sources: list[RecipeSource] = []
    if settings.menu_service_url:
        sources.append(MenuServiceRecipeSource(settings.menu_service_url))
    sources.append(StaticRecipeSource())
    return RecipeResolver(sources)
