# tests/test_transitions.py

from decimal import Decimal

import pytest

from marketplace.models.order import OrderStatus, PaymentMethod
from marketplace.services.transitions import ALLOWED_TRANSITIONS, is_allowed

from conftest import make_product, place_order, callback_body, post_callback

S = OrderStatus

LEGAL = {
    (S.PENDING, S.CONFIRMED),
    (S.PENDING, S.PAID),
    (S.PENDING, S.CANCELLED),
    (S.CONFIRMED, S.SHIPPED),
    (S.CONFIRMED, S.CANCELLED),
    (S.PAID, S.SHIPPED),
    (S.PAID, S.CANCELLED),
    (S.SHIPPED, S.DELIVERED),
}


# ────────────── Таблица переходов ──────────────
def test_table_covers_every_status():
    assert set(ALLOWED_TRANSITIONS) == set(OrderStatus)


@pytest.mark.parametrize("current", list(OrderStatus))
@pytest.mark.parametrize("target", list(OrderStatus))
def test_only_whitelisted_edges(current, target):
    assert is_allowed(current, target) == ((current, target) in LEGAL)


def test_parse_is_case_insensitive():
    assert OrderStatus.parse("shipped") == S.SHIPPED
    assert OrderStatus.parse(" Paid ") == S.PAID
    with pytest.raises(ValueError):
        OrderStatus.parse("LOST")


def test_payment_method_parse_accepts_frontend_spelling():
    assert PaymentMethod.parse("EcoCash") == PaymentMethod.ECOCASH
    assert PaymentMethod.parse("BankTransfer") == PaymentMethod.BANK_TRANSFER
    assert PaymentMethod.parse("cash_on_delivery") == PaymentMethod.CASH_ON_DELIVERY


# ────────────── Через API ──────────────
def test_cod_order_cannot_jump_to_shipped(client, buyer, seller, admin):
    product = make_product(client, seller)
    order = place_order(client, buyer, [(product["id"], 1)])

    response = client.put(f"/admin/orders/{order['id']}/status", json={"status": "SHIPPED"}, headers=admin)
    assert response.status_code == 400
    response = client.put(f"/order/{order['id']}/status", json={"status": "SHIPPED"}, headers=seller)
    assert response.status_code == 400

    current = client.get(f"/order/{order['id']}", headers=buyer).json()
    assert current["status"] == "PENDING"
    assert current["shipped_at"] is None


def test_cod_lifecycle(client, buyer, seller, admin):
    product = make_product(client, seller, quantity=5)
    order = place_order(client, buyer, [(product["id"], 2)])
    order_id = order["id"]

    assert client.put(f"/order/{order_id}/status", json={"status": "confirmed"}, headers=seller).status_code == 200
    assert client.get(f"/product/{product['id']}").json()["quantity"] == 3

    shipped = client.put(
        f"/order/{order_id}/status",
        json={"status": "SHIPPED", "tracking_number": "ZW123"},
        headers=seller,
    ).json()
    assert shipped["status"] == "SHIPPED"
    assert shipped["tracking_number"] == "ZW123"
    assert shipped["shipped_at"] is not None

    delivered = client.put(f"/order/{order_id}/status", json={"status": "DELIVERED"}, headers=seller).json()
    assert delivered["status"] == "DELIVERED"
    assert delivered["delivered_at"] is not None

    # Доставленный заказ не отменить
    response = client.put(f"/order/{order_id}/status", json={"status": "CANCELLED"}, headers=seller)
    assert response.status_code == 400

    history = client.get(f"/order/{order_id}/history", headers=buyer).json()
    assert [(e["from_status"], e["to_status"]) for e in history] == [
        (None, "PENDING"),
        ("PENDING", "CONFIRMED"),
        ("CONFIRMED", "SHIPPED"),
        ("SHIPPED", "DELIVERED"),
    ]
    assert history[1]["actor"].startswith("seller:")

    # Комиссия только при оплате
    assert client.get("/admin/commissions", headers=admin).json()["records"] == []


def test_cancel_restores_stock(client, buyer, seller):
    product = make_product(client, seller, quantity=4)
    order = place_order(client, buyer, [(product["id"], 3)])

    client.put(f"/order/{order['id']}/status", json={"status": "CONFIRMED"}, headers=seller)
    assert client.get(f"/product/{product['id']}").json()["quantity"] == 1

    cancelled = client.put(f"/order/{order['id']}/status", json={"status": "CANCELLED"}, headers=seller).json()
    assert cancelled["status"] == "CANCELLED"
    assert cancelled["cancelled_at"] is not None
    assert client.get(f"/product/{product['id']}").json()["quantity"] == 4


def test_cancel_pending_keeps_stock(client, buyer, seller):
    product = make_product(client, seller, quantity=4)
    order = place_order(client, buyer, [(product["id"], 3)])
    client.put(f"/order/{order['id']}/status", json={"status": "CANCELLED"}, headers=seller)
    assert client.get(f"/product/{product['id']}").json()["quantity"] == 4


def test_cod_marked_paid_by_seller_records_commission(client, buyer, seller, admin):
    product = make_product(client, seller, price="12.50", quantity=5)
    order = place_order(client, buyer, [(product["id"], 2)])

    response = client.put(f"/order/{order['id']}/status", json={"status": "PAID"}, headers=seller)
    assert response.status_code == 200
    paid = response.json()
    assert paid["status"] == "PAID"
    assert paid["paid_at"] is not None
    assert paid["payment_status"] == "Cash received"
    assert client.get(f"/product/{product['id']}").json()["quantity"] == 3

    records = client.get("/admin/commissions", headers=admin).json()["records"]
    assert len(records) == 1
    assert records[0]["order_id"] == order["id"]
    assert Decimal(str(records[0]["platform_fee"])) == Decimal("2.50")
    assert Decimal(str(records[0]["seller_payout"])) == Decimal("22.50")

    stats = client.get("/order/seller/stats", headers=seller).json()
    assert Decimal(str(stats["total_earnings"])) == Decimal("22.50")

    # Повтор не создаёт вторую запись комиссии
    again = client.put(f"/admin/orders/{order['id']}/status", json={"status": "PAID"}, headers=admin)
    assert again.status_code == 200
    assert len(client.get("/admin/commissions", headers=admin).json()["records"]) == 1


@pytest.mark.parametrize("method", ["PAYNOW", "ECOCASH", "BANK_TRANSFER"])
@pytest.mark.parametrize("target", ["CONFIRMED", "PAID"])
def test_prepaid_order_status_not_set_by_hand(client, buyer, seller, admin, paynow, method, target):
    product = make_product(client, seller, quantity=5)
    paynow.replies.append({"status": "Ok", "browserurl": "https://paynow/pay", "pollurl": "https://paynow/poll"})
    order = place_order(client, buyer, [(product["id"], 1)], payment_method=method)
    assert order["status"] == "PENDING"

    assert client.put(f"/order/{order['id']}/status", json={"status": target}, headers=seller).status_code == 400
    assert client.put(f"/admin/orders/{order['id']}/status", json={"status": target}, headers=admin).status_code == 400

    stored = client.get(f"/order/{order['id']}", headers=buyer).json()
    assert stored["status"] == "PENDING"
    assert stored["paid_at"] is None
    assert client.get(f"/product/{product['id']}").json()["quantity"] == 5
    assert client.get("/admin/commissions", headers=admin).json()["records"] == []


def test_paynow_order_stays_payable_after_seller_tries_to_confirm(client, buyer, seller, admin, paynow):
    product = make_product(client, seller, price="12.50", quantity=5)
    paynow.replies.append({"status": "Ok", "browserurl": "https://paynow/pay", "pollurl": "https://paynow/poll"})
    order = place_order(client, buyer, [(product["id"], 2)], payment_method="PAYNOW")

    assert client.put(f"/order/{order['id']}/status", json={"status": "CONFIRMED"}, headers=seller).status_code == 400

    fields = {"reference": str(order["id"]), "paynowreference": "555", "amount": "25.00", "status": "Paid"}
    response = post_callback(client, callback_body(paynow, fields))
    assert response.status_code == 200
    assert response.json()["changed"] is True

    paid = client.get(f"/order/{order['id']}", headers=buyer).json()
    assert paid["status"] == "PAID"
    assert paid["paid_at"] is not None
    assert paid["payment_reference"] == "555"
    assert len(client.get("/admin/commissions", headers=admin).json()["records"]) == 1


# ────────────── Остаток на складе ──────────────
def test_second_confirmation_of_last_unit_is_rejected(client, buyer, other_buyer, seller):
    product = make_product(client, seller, quantity=1)
    first = place_order(client, buyer, [(product["id"], 1)])
    second = place_order(client, other_buyer, [(product["id"], 1)])

    assert client.put(f"/order/{first['id']}/status", json={"status": "CONFIRMED"}, headers=seller).status_code == 200

    response = client.put(f"/order/{second['id']}/status", json={"status": "CONFIRMED"}, headers=seller)
    assert response.status_code == 400

    stored = client.get(f"/order/{second['id']}", headers=other_buyer).json()
    assert stored["status"] == "PENDING"
    history = client.get(f"/order/{second['id']}/history", headers=other_buyer).json()
    assert [e["to_status"] for e in history] == ["PENDING"]

    current = client.get(f"/product/{product['id']}")
    assert current.status_code == 200
    assert current.json()["quantity"] == 0


def test_manual_verification_of_last_unit_is_rejected(client, buyer, other_buyer, seller, admin):
    product = make_product(client, seller, price="20.00", quantity=1)
    orders = [
        place_order(client, buyer, [(product["id"], 1)], payment_method="ECOCASH"),
        place_order(client, other_buyer, [(product["id"], 1)], payment_method="ECOCASH"),
    ]
    for order, headers in zip(orders, (buyer, other_buyer)):
        proof = client.post(f"/order/{order['id']}/payment-proof", json={"payment_proof": "r.jpg"}, headers=headers)
        assert proof.status_code == 200

    assert client.post(f"/order/{orders[0]['id']}/verify-payment", headers=admin).status_code == 200
    assert client.post(f"/order/{orders[1]['id']}/verify-payment", headers=admin).status_code == 400

    assert client.get(f"/order/{orders[1]['id']}", headers=other_buyer).json()["status"] == "PENDING"
    assert client.get(f"/product/{product['id']}").json()["quantity"] == 0
    assert len(client.get("/admin/commissions", headers=admin).json()["records"]) == 1


def test_gateway_payment_without_stock_is_recorded(client, buyer, other_buyer, seller, admin, paynow):
    product = make_product(client, seller, price="12.50", quantity=1)
    cod = place_order(client, buyer, [(product["id"], 1)])
    paynow.replies.append({"status": "Ok", "browserurl": "https://paynow/pay", "pollurl": "https://paynow/poll"})
    order = place_order(client, other_buyer, [(product["id"], 1)], payment_method="PAYNOW")

    assert client.put(f"/order/{cod['id']}/status", json={"status": "CONFIRMED"}, headers=seller).status_code == 200

    fields = {"reference": str(order["id"]), "paynowreference": "777", "amount": "12.50", "status": "Paid"}
    response = post_callback(client, callback_body(paynow, fields))
    assert response.status_code == 200
    assert response.json()["changed"] is False
    assert response.json()["status"] == "PENDING"

    stored = client.get(f"/order/{order['id']}", headers=other_buyer).json()
    assert stored["status"] == "PENDING"
    assert stored["paid_at"] is None
    assert stored["payment_reference"] == "777"
    assert stored["payment_status"] == "Paid (out of stock)"
    assert client.get(f"/product/{product['id']}").json()["quantity"] == 0
    assert client.get("/admin/commissions", headers=admin).json()["records"] == []


def test_only_sellers_of_the_order_manage_status(client, buyer, seller, other_seller):
    product = make_product(client, seller)
    order = place_order(client, buyer, [(product["id"], 1)])

    assert client.put(f"/order/{order['id']}/status", json={"status": "CONFIRMED"}, headers=other_seller).status_code == 403
    assert client.put(f"/order/{order['id']}/status", json={"status": "CONFIRMED"}, headers=buyer).status_code == 403


def test_unknown_status_is_rejected(client, buyer, seller):
    product = make_product(client, seller)
    order = place_order(client, buyer, [(product["id"], 1)])
    response = client.put(f"/order/{order['id']}/status", json={"status": "LOST"}, headers=seller)
    assert response.status_code == 422


def test_status_update_for_missing_order(client, seller):
    make_product(client, seller)
    assert client.put("/order/999/status", json={"status": "CONFIRMED"}, headers=seller).status_code == 404


def test_concurrent_change_is_a_noop(client, buyer, seller, monkeypatch):
    """Статус изменился между чтением и обновлением: переход ничего не делает."""
    from sqlalchemy import update

    from marketplace.models.order import Order
    from marketplace.services import transitions
    from marketplace.utils.database import AsyncSessionLocal

    product = make_product(client, seller, quantity=5)
    order = place_order(client, buyer, [(product["id"], 1)])

    original = transitions.load_order
    calls = []

    async def racing_load_order(db, order_id):
        loaded = await original(db, order_id)
        calls.append(order_id)
        # Второе чтение делает transition_order; сразу после него "другой запрос" меняет статус
        if len(calls) == 2:
            async with AsyncSessionLocal() as other:
                await other.execute(update(Order).where(Order.id == order_id).values(status=OrderStatus.CONFIRMED))
                await other.commit()
        return loaded

    monkeypatch.setattr(transitions, "load_order", racing_load_order)

    response = client.put(f"/order/{order['id']}/status", json={"status": "CANCELLED"}, headers=seller)
    assert response.status_code == 200
    assert response.json()["status"] == "CONFIRMED"
    assert response.json()["cancelled_at"] is None

    monkeypatch.undo()
    history = client.get(f"/order/{order['id']}/history", headers=buyer).json()
    assert [e["to_status"] for e in history] == ["PENDING"]
