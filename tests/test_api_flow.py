"""End-to-end API tests: cart to order, status changes, bank webhook and reconciliation."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from orderflow.api.deps import get_menu_catalog
from orderflow.core.config import settings
from orderflow.db import session as db_session
from orderflow.db.base import Base
from orderflow.main import app
from orderflow.models.inventory import InventoryItem
from orderflow.services.menu_catalog import MenuItemInfo, StaticMenuCatalog

CUSTOMER = {"X-Customer-Id": "cust-42"}
CHEF = {"X-Actor-Id": "chef-1", "X-Actor-Role": "chef"}
MANAGER = {"X-Actor-Id": "manager-1", "X-Actor-Role": "manager"}
GUEST = {"X-Session-Id": "sess-7f3a"}
ITEM = {"menu_item_id": "m-1", "quantity": 2}
TEST_MENU = StaticMenuCatalog(
    {
        "m-1": MenuItemInfo("m-1", "Phở Bò Tái", 100000),
        "m-sold-out": MenuItemInfo("m-sold-out", "Lẩu Cá Khoai", 350000, available=False),
    }
)


def _build_test_engine(db_file: Path) -> Engine:
    return create_engine(
        f"sqlite:///{db_file}",
        connect_args={"check_same_thread": False},
    )


def _prepare_db(tmp_path: Path, monkeypatch, menu: StaticMenuCatalog | None = TEST_MENU) -> sessionmaker:
    engine = _build_test_engine(tmp_path / "api.db")
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(db_session, "engine", engine)
    monkeypatch.setattr(db_session, "SessionLocal", testing_session_local)
    monkeypatch.setattr(settings, "reconcile_worker_enabled", False)
    monkeypatch.setattr(settings, "customer_service_url", "")
    monkeypatch.setattr(settings, "inventory_service_url", "")
    monkeypatch.setattr(settings, "menu_service_url", "")
    monkeypatch.setattr(settings, "casso_webhook_token", "")
    if menu is not None:
        monkeypatch.setitem(app.dependency_overrides, get_menu_catalog, lambda: menu)
    return testing_session_local


def _checkout(client: TestClient, payment_method: str = "cash") -> dict:
    assert client.post("/api/v1/cart/items", json=ITEM, headers=CUSTOMER).status_code == 200
    response = client.post(
        "/api/v1/cart/checkout",
        json={"customer_name": "Lan", "customer_phone": "0901234567", "payment_method": payment_method},
        headers=CUSTOMER,
    )
    assert response.status_code == 201
    return response.json()


def test_health(tmp_path: Path, monkeypatch) -> None:
    _prepare_db(tmp_path, monkeypatch)
    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_cart_summary_and_checkout(tmp_path: Path, monkeypatch) -> None:
    _prepare_db(tmp_path, monkeypatch)
    with TestClient(app) as client:
        added = client.post("/api/v1/cart/items", json=ITEM, headers=CUSTOMER)
        assert added.status_code == 200
        assert added.json()["summary"] == {
            "total_items": 2,
            "subtotal": 200000,
            "tax": 16000,
            "delivery_fee": 30000,
            "loyalty_discount": 0,
            "coupon_discount": 0,
            "discount": 0,
            "total": 246000,
        }

        coupon = client.post("/api/v1/cart/coupon", json={"code": "SAVE50K"}, headers=CUSTOMER)
        assert coupon.json()["applied_coupon"]["applied_discount"] == 50000
        assert coupon.json()["summary"]["total"] == 196000

        order = client.post(
            "/api/v1/cart/checkout",
            json={"customer_name": "Lan", "customer_phone": "0901234567", "payment_method": "banking"},
            headers=CUSTOMER,
        )
        assert order.status_code == 201
        body = order.json()
        assert body["order_number"].startswith("ORD")
        assert body["pricing"]["total"] == 196000
        assert body["payment"]["status"] == "awaiting_payment"
        assert body["coupon_code"] == "SAVE50K"

        cart = client.get("/api/v1/cart", headers=CUSTOMER).json()
        assert cart["items"] == []
        assert cart["applied_coupon"] is None

        instruction = client.get(f"/api/v1/orders/{body['id']}/payment-instruction", headers=CUSTOMER)
        assert instruction.json()["transfer_content"] == f"{body['order_number']} 0901234567"


def test_cart_errors_map_to_http_statuses(tmp_path: Path, monkeypatch) -> None:
    _prepare_db(tmp_path, monkeypatch)
    with TestClient(app) as client:
        missing_header = client.get("/api/v1/cart")
        empty_checkout = client.post(
            "/api/v1/cart/checkout",
            json={"customer_name": "Lan", "customer_phone": "0901234567"},
            headers=CUSTOMER,
        )
        unknown_line = client.put("/api/v1/cart/items/999", json={"quantity": 2}, headers=CUSTOMER)
        bad_coupon = client.post("/api/v1/cart/coupon", json={"code": "NOPE"}, headers=CUSTOMER)

    assert missing_header.status_code == 400
    assert empty_checkout.status_code == 409
    assert empty_checkout.json()["error_type"] == "EmptyCartError"
    assert unknown_line.status_code == 404
    assert bad_coupon.status_code == 400


def test_status_transitions_over_http(tmp_path: Path, monkeypatch) -> None:
    _prepare_db(tmp_path, monkeypatch)
    with TestClient(app) as client:
        order = _checkout(client)
        order_id = order["id"]

        forbidden = client.patch(f"/api/v1/orders/{order_id}/status", json={"status": "confirmed"}, headers=CUSTOMER)
        assert forbidden.status_code == 403

        confirmed = client.patch(f"/api/v1/orders/{order_id}/status", json={"status": "confirmed"}, headers=CHEF)
        assert confirmed.status_code == 200
        assert [entry["status"] for entry in confirmed.json()["timeline"]] == ["pending", "confirmed"]

        illegal = client.patch(f"/api/v1/orders/{order_id}/status", json={"status": "delivered"}, headers=CHEF)
        assert illegal.status_code == 409
        assert illegal.json()["error_type"] == "InvalidTransitionError"

        other_customer = client.get(f"/api/v1/orders/{order_id}", headers={"X-Customer-Id": "someone-else"})
        assert other_customer.status_code == 404

        tasks = client.get("/api/v1/reconciliation/tasks", params={"order_id": order_id}, headers=MANAGER)
        assert [task["trigger_status"] for task in tasks.json()] == ["confirmed"]


def test_customer_cancel_then_refund_rules(tmp_path: Path, monkeypatch) -> None:
    _prepare_db(tmp_path, monkeypatch)
    with TestClient(app) as client:
        order_id = _checkout(client)["id"]

        cancelled = client.post(f"/api/v1/orders/{order_id}/cancel", json={"reason": "too slow"}, headers=CUSTOMER)
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

        refund = client.post(f"/api/v1/orders/{order_id}/refund", json={}, headers=MANAGER)
        assert refund.status_code == 409


def test_webhook_matches_banking_order_and_rejects_bad_token(tmp_path: Path, monkeypatch) -> None:
    _prepare_db(tmp_path, monkeypatch)
    with TestClient(app) as client:
        order = _checkout(client, payment_method="banking")
        transfer = {
            "error": 0,
            "data": [
                {
                    "id": 777,
                    "tid": "FT777",
                    "description": f"DAT MON {order['order_number']}",
                    "amount": order["pricing"]["total"],
                    "when": "2026-10-18 12:00:00",
                }
            ],
        }

        monkeypatch.setattr(settings, "casso_webhook_token", "s3cret")
        rejected = client.post("/api/v1/casso/webhook", json=transfer, headers={"secure-token": "nope"})
        assert rejected.status_code == 401

        first = client.post("/api/v1/casso/webhook", json=transfer, headers={"secure-token": "s3cret"})
        second = client.post("/api/v1/casso/webhook", json=transfer, headers={"x-casso-signature": "s3cret"})

        assert first.status_code == 200
        assert first.json()["results"][0]["status"] == "matched"
        assert second.json()["results"][0]["status"] == "duplicate"

        paid = client.get(f"/api/v1/orders/{order['id']}", headers=CUSTOMER).json()
        assert paid["payment"]["status"] == "paid"
        assert paid["status"] == "confirmed"

        unmatched = client.get("/api/v1/casso/unmatched", headers=MANAGER)
        assert unmatched.status_code == 200
        assert unmatched.json() == []


def test_inventory_endpoints_and_reconcile_run(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    with session_local() as db:
        db.add_all(
            [
                InventoryItem(name="Bánh Phở", quantity=5.0, unit="kg", minimum_stock=1.0),
                InventoryItem(name="Thịt Bò Tái", quantity=0.2, unit="kg", minimum_stock=1.0),
            ]
        )
        db.commit()

    with TestClient(app) as client:
        check = client.post("/api/v1/inventory/check-stock", json={"items": [{"name": "Phở Bò Tái", "quantity": 2}]})
        assert check.status_code == 200
        assert check.json()["all_available"] is False
        missing = {row["name"] for row in check.json()["items"][0]["missing_ingredients"]}
        assert "Thịt Bò Tái" in missing

        denied = client.post(
            "/api/v1/inventory/reduce-stock",
            json={"order_id": 1, "items": [{"name": "Phở Bò Tái", "quantity": 1}]},
            headers=CHEF,
        )
        assert denied.status_code == 403

        order_id = _checkout(client)["id"]
        client.patch(f"/api/v1/orders/{order_id}/status", json={"status": "confirmed"}, headers=CHEF)
        run = client.post("/api/v1/reconciliation/run", headers=MANAGER)

        assert run.status_code == 200
        assert run.json()["processed"] == 1
        assert run.json()["done"] == 1

    with session_local() as db:
        noodles = db.query(InventoryItem).filter(InventoryItem.name == "Bánh Phở").one()
        beef = db.query(InventoryItem).filter(InventoryItem.name == "Thịt Bò Tái").one()
        assert noodles.quantity == pytest.approx(4.6)
        assert beef.quantity == 0
        assert beef.status == "out-of-stock"


def test_client_supplied_name_and_price_are_ignored(tmp_path: Path, monkeypatch) -> None:
    _prepare_db(tmp_path, monkeypatch)
    with TestClient(app) as client:
        added = client.post(
            "/api/v1/cart/items",
            json={"menu_item_id": "m-1", "name": "Free Phở", "price": 1, "quantity": 1},
            headers=CUSTOMER,
        )
        unknown = client.post("/api/v1/cart/items", json={"menu_item_id": "m-404"}, headers=CUSTOMER)
        sold_out = client.post("/api/v1/cart/items", json={"menu_item_id": "m-sold-out"}, headers=CUSTOMER)

    assert added.status_code == 200
    line = added.json()["items"][0]
    assert (line["name"], line["price"]) == ("Phở Bò Tái", 100000)
    assert added.json()["summary"]["subtotal"] == 100000
    assert unknown.status_code == 404
    assert unknown.json()["error_type"] == "MenuItemNotFoundError"
    assert sold_out.status_code == 400


def test_guest_session_checkout_tracking_and_payment_status(tmp_path: Path, monkeypatch) -> None:
    _prepare_db(tmp_path, monkeypatch, menu=None)
    with TestClient(app) as client:
        added = client.post("/api/v1/cart/items", json={"menu_item_id": "pho-bo-tai", "quantity": 2}, headers=GUEST)
        assert added.status_code == 200
        assert added.json()["session_id"] == "sess-7f3a"
        assert added.json()["customer_id"] is None
        assert added.json()["summary"]["total"] == 148800

        order = client.post(
            "/api/v1/cart/checkout",
            json={"customer_name": "Minh", "customer_phone": "0912345678", "payment_method": "banking"},
            headers=GUEST,
        ).json()
        assert order["session_id"] == "sess-7f3a"
        assert order["pricing"]["total"] == 148800

        assert client.get(f"/api/v1/orders/{order['id']}", headers=GUEST).status_code == 200
        assert client.get(f"/api/v1/orders/{order['id']}", headers={"X-Session-Id": "other"}).status_code == 404
        assert client.get(f"/api/v1/orders/{order['id']}").status_code == 404

        listed = client.get("/api/v1/orders", headers=GUEST).json()
        assert [row["order_number"] for row in listed["orders"]] == [order["order_number"]]

        waiting = client.get(f"/api/v1/casso/payment-status/{order['order_number']}").json()
        assert waiting["payment_status"] == "awaiting_payment"
        assert waiting["is_paid"] is False
        assert waiting["transaction"] is None

        transfer = {
            "error": 0,
            "data": [{"id": 901, "description": f"CK {order['order_number']}", "amount": 148800, "when": "2026-10-18 12:00:00"}],
        }
        assert client.post("/api/v1/casso/webhook", json=transfer).json()["results"][0]["status"] == "matched"

        paid = client.get(f"/api/v1/casso/payment-status/{order['order_number'].lower()}").json()
        assert paid["is_paid"] is True
        assert paid["order_status"] == "confirmed"
        assert paid["transaction"]["casso_id"] == "901"
        assert paid["transaction"]["amount"] == 148800

        tracking = client.get(f"/api/v1/orders/track/{order['order_number']}")
        missing = client.get("/api/v1/orders/track/ORD20261018999999")

    assert tracking.status_code == 200
    body = tracking.json()
    assert body["status"] == "confirmed"
    assert [entry["status"] for entry in body["timeline"]] == ["pending", "confirmed"]
    assert 0 < body["time_remaining"] <= body["estimated_time"]
    assert "customer_info" not in body
    assert missing.status_code == 404


def test_customer_order_list_filters_and_pages(tmp_path: Path, monkeypatch) -> None:
    _prepare_db(tmp_path, monkeypatch)
    with TestClient(app) as client:
        ids = [_checkout(client)["id"] for _ in range(3)]
        client.patch(f"/api/v1/orders/{ids[0]}/status", json={"status": "confirmed"}, headers=CHEF)

        first_page = client.get("/api/v1/orders", params={"limit": 2}, headers=CUSTOMER).json()
        second_page = client.get("/api/v1/orders", params={"limit": 2, "page": 2}, headers=CUSTOMER).json()
        pending = client.get("/api/v1/orders", params={"status": "pending"}, headers=CUSTOMER).json()
        stranger = client.get("/api/v1/orders", headers={"X-Customer-Id": "someone-else"}).json()
        bad_status = client.get("/api/v1/orders", params={"status": "teleported"}, headers=CUSTOMER)
        no_owner = client.get("/api/v1/orders")

    assert [row["id"] for row in first_page["orders"]] == [ids[2], ids[1]]
    assert first_page["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert [row["id"] for row in second_page["orders"]] == [ids[0]]
    assert sorted(row["id"] for row in pending["orders"]) == [ids[1], ids[2]]
    assert stranger["orders"] == []
    assert stranger["pagination"]["total"] == 0
    assert bad_status.status_code == 400
    assert no_owner.status_code == 400


def test_transaction_listing_by_match_status(tmp_path: Path, monkeypatch) -> None:
    _prepare_db(tmp_path, monkeypatch)
    with TestClient(app) as client:
        order = _checkout(client, payment_method="banking")
        transfers = {
            "error": 0,
            "data": [
                {"id": 11, "description": order["order_number"], "amount": order["pricing"]["total"], "when": "2026-10-18 09:00:00"},
                {"id": 12, "description": "chuyen tien", "amount": 12345, "when": "2026-10-18 10:00:00"},
            ],
        }
        client.post("/api/v1/casso/webhook", json=transfers)

        everything = client.get("/api/v1/casso/transactions", headers=MANAGER).json()
        matched = client.get("/api/v1/casso/transactions", params={"match_status": "matched"}, headers=MANAGER).json()
        morning = client.get(
            "/api/v1/casso/transactions",
            params={"end_date": "2026-10-18T09:30:00+00:00"},
            headers=MANAGER,
        ).json()
        denied = client.get("/api/v1/casso/transactions", headers=CUSTOMER)

    assert [row["casso_id"] for row in everything["transactions"]] == ["12", "11"]
    assert everything["pagination"]["total"] == 2
    assert [row["casso_id"] for row in matched["transactions"]] == ["11"]
    assert matched["transactions"][0]["order_number"] == order["order_number"]
    assert [row["casso_id"] for row in morning["transactions"]] == ["11"]
    assert denied.status_code == 403
