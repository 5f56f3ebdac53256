# tests/test_orders.py

from decimal import Decimal

from conftest import SHIPPING, make_product, place_order


def money(value):
    return Decimal(str(value))


# ────────────── Создание ──────────────
def test_total_is_sum_of_snapshot_prices(client, buyer, seller, other_seller):
    maize = make_product(client, seller, name="Maize meal", price="12.50", quantity=10)
    oil = make_product(client, other_seller, name="Cooking oil", price="3.99", quantity=10)

    order = place_order(client, buyer, [(maize["id"], 2), (oil["id"], 3)])
    assert order["status"] == "PENDING"
    assert money(order["total_price"]) == Decimal("36.97")

    stored = client.get(f"/order/{order['id']}", headers=buyer).json()
    assert money(stored["total_price"]) == sum(money(i["price"]) * i["quantity"] for i in stored["items"])
    assert {i["seller_id"] for i in stored["items"]} == {maize["seller_id"], oil["seller_id"]}


def test_price_change_does_not_touch_existing_order(client, buyer, seller):
    product = make_product(client, seller, price="10.00")
    order = place_order(client, buyer, [(product["id"], 1)])

    response = client.put(f"/product/{product['id']}", json={"price": "99.00"}, headers=seller)
    assert response.status_code == 200

    stored = client.get(f"/order/{order['id']}", headers=buyer).json()
    assert money(stored["total_price"]) == Decimal("10.00")
    assert money(stored["items"][0]["price"]) == Decimal("10.00")


def test_duplicate_lines_are_merged(client, buyer, seller):
    product = make_product(client, seller, price="2.00", quantity=5)
    order = place_order(client, buyer, [(product["id"], 2), (product["id"], 1)])

    stored = client.get(f"/order/{order['id']}", headers=buyer).json()
    assert len(stored["items"]) == 1
    assert stored["items"][0]["quantity"] == 3
    assert money(stored["total_price"]) == Decimal("6.00")


def test_insufficient_stock(client, buyer, seller):
    product = make_product(client, seller, quantity=1)
    response = client.post("/order/", json={
        "items": [{"product_id": product["id"], "quantity": 2}],
        "shipping_address": SHIPPING,
        "payment_method": "CASH_ON_DELIVERY",
    }, headers=buyer)
    assert response.status_code == 400


def test_unknown_product(client, buyer):
    response = client.post("/order/", json={
        "items": [{"product_id": 404, "quantity": 1}],
        "shipping_address": SHIPPING,
    }, headers=buyer)
    assert response.status_code == 404


def test_empty_cart(client, buyer):
    response = client.post("/order/", json={"items": [], "shipping_address": SHIPPING}, headers=buyer)
    assert response.status_code == 422


def test_unknown_payment_method(client, buyer, seller):
    product = make_product(client, seller)
    response = client.post("/order/", json={
        "items": [{"product_id": product["id"], "quantity": 1}],
        "shipping_address": SHIPPING,
        "payment_method": "BITCOIN",
    }, headers=buyer)
    assert response.status_code == 422


def test_cash_on_delivery_redirects_to_success(client, buyer, seller):
    product = make_product(client, seller)
    order = place_order(client, buyer, [(product["id"], 1)], payment_method="CASH_ON_DELIVERY")
    assert order["redirect_url"] == f"http://shop.test/order/success?orderId={order['id']}"
    assert order["payment_details"] is None


def test_manual_method_returns_platform_details(client, buyer, seller):
    product = make_product(client, seller)
    order = place_order(client, buyer, [(product["id"], 1)], payment_method="EcoCash")

    assert order["payment_method"] == "ECOCASH"
    assert order["redirect_url"] is None
    assert order["payment_details"]["ecocash"]["number"] == "0771234567"


def test_payment_details_endpoint(client):
    details = client.get("/payment/details").json()
    assert details["ecocash"]["number"] == "0771234567"
    assert set(details["bank"]) == {"bank_name", "account_name", "account_number"}


# ────────────── Доступ ──────────────
def test_requires_token(client):
    assert client.get("/order/my").status_code == 401


def test_other_buyer_cannot_read_order(client, buyer, other_buyer, seller, other_seller, admin):
    product = make_product(client, seller)
    order = place_order(client, buyer, [(product["id"], 1)])

    assert client.get(f"/order/{order['id']}", headers=buyer).status_code == 200
    assert client.get(f"/order/{order['id']}", headers=seller).status_code == 200
    assert client.get(f"/order/{order['id']}", headers=admin).status_code == 200
    assert client.get(f"/order/{order['id']}", headers=other_buyer).status_code == 403
    assert client.get(f"/order/{order['id']}", headers=other_seller).status_code == 403


def test_missing_order(client, buyer):
    assert client.get("/order/12345", headers=buyer).status_code == 404


def test_my_orders(client, buyer, other_buyer, seller):
    product = make_product(client, seller)
    first = place_order(client, buyer, [(product["id"], 1)])
    second = place_order(client, buyer, [(product["id"], 1)])
    place_order(client, other_buyer, [(product["id"], 1)])

    mine = client.get("/order/my", headers=buyer).json()
    assert [o["id"] for o in mine] == [second["id"], first["id"]]


# ────────────── Продавец ──────────────
def test_seller_sees_only_own_items(client, buyer, seller, other_seller):
    maize = make_product(client, seller, price="12.50")
    oil = make_product(client, other_seller, price="3.99")
    order = place_order(client, buyer, [(maize["id"], 2), (oil["id"], 1)])

    orders = client.get("/order/seller", headers=seller).json()
    assert len(orders) == 1
    assert orders[0]["id"] == order["id"]
    assert [i["product_id"] for i in orders[0]["items"]] == [maize["id"]]
    assert money(orders[0]["seller_total"]) == Decimal("25.00")
    assert money(orders[0]["total_price"]) == Decimal("28.99")


def test_seller_endpoints_require_seller(client, buyer):
    assert client.get("/order/seller", headers=buyer).status_code == 403
    assert client.get("/order/seller/stats", headers=buyer).status_code == 403


def test_seller_stats(client, buyer, seller, other_seller):
    maize = make_product(client, seller, price="12.50")
    oil = make_product(client, other_seller, price="10.00")

    # Оплачено (режим разработки Paynow): доля продавца 25.00, комиссия 10%
    place_order(client, buyer, [(maize["id"], 2), (oil["id"], 1)], payment_method="PAYNOW")
    # Ещё не оплачено
    place_order(client, buyer, [(maize["id"], 1)], payment_method="CASH_ON_DELIVERY")

    stats = client.get("/order/seller/stats", headers=seller).json()
    assert money(stats["total_earnings"]) == Decimal("22.50")
    assert stats["total_orders"] == 2
    assert stats["pending_orders"] == 2

    other = client.get("/order/seller/stats", headers=other_seller).json()
    assert money(other["total_earnings"]) == Decimal("9.00")
    assert other["total_orders"] == 1


def test_product_update_only_by_owner(client, seller, other_seller):
    product = make_product(client, seller)
    response = client.put(f"/product/{product['id']}", json={"quantity": 0}, headers=other_seller)
    assert response.status_code == 403


def test_buyer_cannot_create_product(client, buyer):
    response = client.post("/product/", json={"name": "x", "price": "1.00"}, headers=buyer)
    assert response.status_code == 403
