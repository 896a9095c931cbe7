import hmac
import json
import time
from decimal import Decimal
from hashlib import sha256

import mongomock
import pytest
from mongoengine import disconnect

from Models.emailConfigModel import EmailConfig
from Models.orderModel import Order
from Models.productModel import Product
from Services import paymentProviders as providers
from Services.paymentProviders import StripeCheckoutProvider
from Utils import email as mail
from Utils.appError import NotificationError
from Utils.db import init_db

TEST_DB_URI = "mongodb://localhost:27017/storefront_test"
WEBHOOK_SECRET = "whsec_test_secret"

PROVIDER_ENV = (
    "STRIPE_SECRET_KEY", "STRIPE_PUBLISHABLE_KEY", "STRIPE_WEBHOOK_SECRET",
    "PAYPAL_CLIENT_ID", "PAYPAL_CLIENT_SECRET", "PAYPAL_ENV", "SMTP_TO", "ENABLE_SMTP_ALERTS",
)


# ----------------------------
# Environment & database
# ----------------------------
@pytest.fixture(autouse=True)
def _env(monkeypatch):
    for name in PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("STORE_CURRENCY", "gbp")
    monkeypatch.setenv("PUBLIC_BASE_URL", "http://shop.test")
    monkeypatch.setenv("ADMIN_API_KEY", "admin-key")
    monkeypatch.setenv("EMAIL_USER", "shop@shop.test")
    monkeypatch.setenv("EMAIL_PASS", "app-password")
    monkeypatch.setenv("SELLER_EMAIL", "seller@shop.test")
    mail.email_settings.invalidate()
    yield
    mail.email_settings.invalidate()


@pytest.fixture
def db():
    init_db(TEST_DB_URI, mongo_client_class=mongomock.MongoClient)
    yield
    for document in (Order, Product, EmailConfig):
        document.drop_collection()
    disconnect(alias="default")


@pytest.fixture
def app(db, tmp_path):
    from app import create_app

    application = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "MONGODB_URI": TEST_DB_URI,
        "MONGO_CLIENT_CLASS": mongomock.MongoClient,
        "RATELIMIT_ENABLED": False,
        "LOG_DIR": str(tmp_path / "logs"),
    })
    yield application


@pytest.fixture
def client(app):
    return app.test_client()


# ----------------------------
# Catalog
# ----------------------------
@pytest.fixture
def shoe(db):
    return Product(name="Trail Runner", description="Lightweight trail shoe",
                   price=Decimal("19.99"), category="shoe").save()


@pytest.fixture
def hat(db):
    return Product(name="Wool Beanie", description="Warm hat",
                   price=Decimal("10.00"), category="hat").save()


# ----------------------------
# Outbound mail
# ----------------------------
class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, subject, body, html=None):
        if self.fail:
            raise NotificationError(f"Email to {to} failed: offline")
        self.sent.append({'to': to, 'subject': subject, 'body': body, 'html': html})

    def subjects(self, to=None):
        return [m['subject'] for m in self.sent if to is None or m['to'] == to]


@pytest.fixture
def mailer(monkeypatch):
    fake = FakeMailer()
    monkeypatch.setattr(mail, "get_mailer", lambda: fake)
    return fake


# ----------------------------
# Payment providers
# ----------------------------
class FakeStripe(StripeCheckoutProvider):
    """Real webhook verification, in-memory sessions and refunds."""

    def __init__(self):
        super().__init__("sk_test_fake", WEBHOOK_SECRET, "gbp")
        self.sessions = {}
        self.created = []
        self.refunds = []
        self.refund_error = None
        self.expired = []
        self.expire_error = None

    def create_session(self, line_items, success_url, cancel_url, customer_email=None):
        session_id = f"cs_test_{len(self.created) + 1}"
        self.created.append({
            'line_items': line_items, 'success_url': success_url,
            'cancel_url': cancel_url, 'customer_email': customer_email,
        })
        self.sessions[session_id] = {'payment_reference': f"pi_{session_id}", 'paid': False}
        return {'session_id': session_id, 'redirect_url': f"https://checkout.stripe.test/{session_id}"}

    def retrieve_session(self, session_id):
        return dict(self.sessions[session_id])

    def refund(self, payment_reference):
        if self.refund_error:
            raise self.refund_error
        self.refunds.append(payment_reference)
        return True

    def expire_session(self, session_id):
        if self.expire_error:
            raise self.expire_error
        self.expired.append(session_id)
        return True


class FakePayPal:
    name = "paypal"

    def __init__(self, payer_email="payer@example.com"):
        self.payer_email = payer_email
        self.orders = {}
        self.captures = []
        self.refunds = []
        # PayPal echoes the purchase unit items back on capture
        self.echo_items = True

    def create_order(self, amount, line_items, return_url, cancel_url):
        order_id = f"PAYPAL-{len(self.orders) + 1}"
        self.orders[order_id] = {'amount': amount, 'line_items': line_items, 'return_url': return_url}
        return {'order_id': order_id, 'approve_url': f"https://paypal.test/approve/{order_id}"}

    def capture_order(self, order_id):
        self.captures.append(order_id)
        return {
            'status': 'COMPLETED',
            'payer_email': self.payer_email,
            'capture_id': f"CAP-{order_id}",
            'capture_status': 'COMPLETED',
            'amount': self.orders.get(order_id, {}).get('amount'),
            'items': self._purchased(order_id) if self.echo_items else [],
        }

    def _purchased(self, order_id):
        return [
            {'name': line['name'], 'sku': line.get('sku'), 'quantity': int(line['quantity']),
             'unit_price': Decimal(str(line['unit_price']))}
            for line in self.orders.get(order_id, {}).get('line_items', [])
        ]

    def get_capture_id(self, order_id):
        return f"CAP-{order_id}"

    def refund(self, capture_id):
        self.refunds.append(capture_id)
        return True


@pytest.fixture
def stripe_provider(monkeypatch):
    fake = FakeStripe()
    monkeypatch.setattr(providers, "get_stripe_provider", lambda: fake)
    return fake


@pytest.fixture
def paypal_provider(monkeypatch):
    fake = FakePayPal()
    monkeypatch.setattr(providers, "get_paypal_provider", lambda: fake)
    return fake


# ----------------------------
# Stripe webhook signing
# ----------------------------
def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    timestamp = int(timestamp or time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def session_event(session_id, event_type="checkout.session.completed", payment_status="paid") -> str:
    return json.dumps({
        'id': f"evt_{session_id}",
        'object': 'event',
        'type': event_type,
        'data': {'object': {'id': session_id, 'object': 'checkout.session', 'payment_status': payment_status}},
    })
