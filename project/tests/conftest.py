# tests/conftest.py

import os
import tempfile

# Окружение задаётся до импорта приложения: настройки читаются при импорте
TMP_DIR = tempfile.mkdtemp(prefix="marketplace-tests-")
DB_PATH = os.path.join(TMP_DIR, "test.db")

os.environ["AUTH_SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{DB_PATH}"
os.environ["LOG_DIR"] = os.path.join(TMP_DIR, "log")
os.environ["LOG_PRINT"] = "0"
os.environ["PAYNOW_INTEGRATION_ID"] = ""
os.environ["PAYNOW_INTEGRATION_KEY"] = ""
os.environ["FRONTEND_URL"] = "http://shop.test"
os.environ["COMMISSION_RATE"] = "0.10"
os.environ["PLATFORM_ECOCASH_NUMBER"] = "0771234567"

from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient

from marketplace.main import app
from marketplace.services.notification import NotificationChannel, NotificationDispatcher
from marketplace.services.paynow import PaynowGateway
from marketplace.utils.security import create_access_token

SHIPPING = {
    "full_name": "Tendai Moyo",
    "address": "12 Samora Machel Ave",
    "city": "Harare",
    "phone": "+263771234567",
}


# ────────────── Каналы уведомлений для тестов ──────────────
class RecordingChannel(NotificationChannel):
    def __init__(self, kind="email"):
        self.kind = kind
        self.sent = []

    async def send(self, address, subject, message):
        self.sent.append((address, subject, message))


class FailingChannel(NotificationChannel):
    def __init__(self, kind="email"):
        self.kind = kind
        self.calls = 0

    async def send(self, address, subject, message):
        self.calls += 1
        raise RuntimeError("SMTP недоступен")


# ────────────── Клиент ──────────────
@pytest.fixture
def client():
    if os.path.exists(DB_PATH):
        os.remove(DB_PATH)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def outbox(client):
    """Подменяет каналы уведомлений записывающими."""
    email, sms = RecordingChannel("email"), RecordingChannel("sms")
    app.state.notifier = NotificationDispatcher([email, sms], app.state.log, timeout=1)
    return email


# ────────────── Пользователи ──────────────
def auth_headers(sub, role="USER", **claims):
    token = create_access_token({
        "sub": sub,
        "email": claims.get("email", f"{sub}@example.com"),
        "name": claims.get("name", sub),
        "phone": claims.get("phone", "+263770000000"),
        "role": role,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def buyer():
    return auth_headers("buyer-1")


@pytest.fixture
def other_buyer():
    return auth_headers("buyer-2")


@pytest.fixture
def seller():
    return auth_headers("seller-1", role="SELLER")


@pytest.fixture
def other_seller():
    return auth_headers("seller-2", role="SELLER")


@pytest.fixture
def admin():
    return auth_headers("admin-1", role="ADMIN")


# ────────────── Данные ──────────────
def make_product(client, headers, name="Maize meal 10kg", price="12.50", quantity=10):
    response = client.post("/product/", json={
        "name": name,
        "description": f"{name} description",
        "price": price,
        "quantity": quantity,
    }, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def place_order(client, headers, items, payment_method="CASH_ON_DELIVERY"):
    response = client.post("/order/", json={
        "items": [{"product_id": p, "quantity": q} for p, q in items],
        "shipping_address": SHIPPING,
        "payment_method": payment_method,
    }, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


# ────────────── Paynow ──────────────
@pytest.fixture
def paynow(client, monkeypatch):
    """
    Подключённый шлюз Paynow с подменённым HTTP.
    gateway.replies: очередь ответов шлюза (dict без hash, подписываются автоматически),
    gateway.requests: отправленные запросы.
    """
    gateway = PaynowGateway(
        integration_id="12345",
        integration_key="paynow-test-key",
        return_url="http://shop.test/return",
        result_url="http://api.test/payment/paynow/callback",
    )
    gateway.replies = []
    gateway.requests = []

    async def fake_post(url, data):
        gateway.requests.append((url, data))
        reply = gateway.replies.pop(0)
        return signed_fields(gateway, reply)

    monkeypatch.setattr(gateway, "_post", fake_post)
    app.state.paynow = gateway
    return gateway


def signed_fields(gateway, fields):
    return list(fields.items()) + [("hash", gateway.generate_hash(fields))]


def callback_body(gateway, fields, signature=None):
    """Тело уведомления Paynow в формате application/x-www-form-urlencoded."""
    pairs = list(fields.items()) + [("hash", signature or gateway.generate_hash(fields))]
    return urlencode(pairs)


def post_callback(client, body):
    return client.post(
        "/payment/paynow/callback",
        content=body,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
