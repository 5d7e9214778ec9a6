"""Menu item lookup: the authoritative name, price and availability of a dish."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from orderflow.core.config import settings
from orderflow.core.errors import MenuItemNotFoundError, MenuLookupError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MenuItemInfo:
    menu_item_id: str
    name: str
    price: int
    image: str = ""
    available: bool = True


def _item(menu_item_id: str, name: str, price: int) -> tuple[str, MenuItemInfo]:
    return menu_item_id, MenuItemInfo(menu_item_id=menu_item_id, name=name, price=price)


# Served when no menu service is configured.
BUILTIN_MENU: dict[str, MenuItemInfo] = dict(
    [
        _item("com-chien-hai-san", "Cơm Chiên Hải Sản", 85000),
        _item("com-chien-duong-chau", "Cơm Chiên Dương Châu", 65000),
        _item("pho-bo-tai", "Phở Bò Tái", 55000),
        _item("pho-ga", "Phở Gà", 50000),
        _item("ca-lang-nuong-giay-bac", "Cá Lăng Nướng Giấy Bạc", 280000),
        _item("tom-nuong-muoi-ot", "Tôm Nướng Muối Ớt", 180000),
        _item("lau-ca-khoai", "Lẩu Cá Khoai", 350000),
        _item("suon-nuong-bbq", "Sườn Nướng BBQ", 150000),
        _item("goi-cuon-tom-thit", "Gỏi Cuốn Tôm Thịt", 45000),
        _item("canh-chua-ca-lang", "Canh Chua Cá Lăng", 120000),
        _item("mi-quang-tom-cua", "Mì Quảng Tôm Cua", 75000),
        _item("banh-mi-thit-nuong", "Bánh Mì Thịt Nướng", 25000),
        _item("tra-da", "Trà Đá", 5000),
        _item("nuoc-cam-tuoi", "Nước Cam Tươi", 20000),
        _item("bia-saigon", "Bia Saigon", 15000),
        _item("nuoc-suoi", "Nước Suối", 8000),
        _item("che-ba-mau", "Chè Ba Màu", 18000),
        _item("banh-flan", "Bánh Flan", 15000),
    ]
)


class MenuCatalog(Protocol):
    def get_menu_item(self, menu_item_id: str) -> MenuItemInfo:
        """Return the item; raise MenuItemNotFoundError or MenuLookupError."""
        ...


class StaticMenuCatalog:
    def __init__(self, items: dict[str, MenuItemInfo] | None = None):
        self._items = BUILTIN_MENU if items is None else items

    def get_menu_item(self, menu_item_id: str) -> MenuItemInfo:
        try:
            return self._items[menu_item_id]
        except KeyError:
            raise MenuItemNotFoundError(menu_item_id) from None


class HttpMenuCatalog:
    """Reads single items from ``GET /api/menu/{id}``."""

    def __init__(self, base_url: str, *, timeout: float | None = None, transport: httpx.BaseTransport | None = None):
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def get_menu_item(self, menu_item_id: str) -> MenuItemInfo:
        try:
            response = self._client.get(f"/api/menu/{menu_item_id}")
        except httpx.HTTPError as exc:
            raise MenuLookupError(f"Menu service unreachable for {menu_item_id}: {exc}") from exc
        if response.status_code == 404:
            raise MenuItemNotFoundError(menu_item_id)
        if response.status_code >= 400:
            raise MenuLookupError(f"Menu service answered {response.status_code} for {menu_item_id}")
        try:
            body: Any = response.json()
        except ValueError as exc:
            raise MenuLookupError(f"Menu service sent invalid JSON for {menu_item_id}") from exc

        item = body.get("data", body) if isinstance(body, dict) else None
        if not isinstance(item, dict) or "price" not in item or not item.get("name"):
            raise MenuLookupError(f"Menu service sent an incomplete item for {menu_item_id}")
        try:
            price = int(item["price"])
        except (TypeError, ValueError) as exc:
            raise MenuLookupError(f"Menu service sent an invalid price for {menu_item_id}") from exc
        return MenuItemInfo(
            menu_item_id=str(item.get("_id") or item.get("id") or menu_item_id),
            name=str(item["name"]).strip(),
            price=price,
            image=str(item.get("image") or ""),
            available=item.get("available", True) in (True, "true"),
        )

    def close(self) -> None:
        self._client.close()


def build_menu_catalog() -> MenuCatalog:
    if settings.menu_service_url:
        return HttpMenuCatalog(settings.menu_service_url)
    return StaticMenuCatalog()
