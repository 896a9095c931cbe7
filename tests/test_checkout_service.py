from decimal import Decimal
from types import SimpleNamespace

import pytest

from Models.orderModel import Order, OrderStatus, PAYMENT_PAYPAL
from Models.orderRepository import OrderRepository
from Services.checkoutService import CheckoutService
from Utils.appError import EmptyCartError, ValidationError, PaymentProviderError, NotificationError
from Utils.cart import SessionCart

from conftest import FakeStripe, FakePayPal


class RecordingNotifier:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def _record(self, name, order):
        self.calls.append((name, str(order.id)))
        if self.fail:
            raise NotificationError("SMTP down")

    def request_buyer_confirmation(self, order, base_url):
        self._record("buyer", order)

    def alert_seller_new_order(self, order):
        self._record("seller", order)


def shoe(pid="p1", price="19.99"):
    return SimpleNamespace(id=pid, name="Trail Runner", price=Decimal(price), category="shoe")


@pytest.fixture
def cart():
    cart = SessionCart({})
    cart.add(shoe(), quantity=2, size="9")
    return cart


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(db, notifier):
    return CheckoutService(OrderRepository(), notifier)


# ============================
# Hosted rail
# ============================
def test_hosted_checkout_persists_pending_order_with_session(service, cart, notifier):
    provider = FakeStripe()

    result = service.start_hosted_checkout(cart, "buyer@example.com", provider, "http://shop.test/")

    order = Order.objects.get(id=result['order'].id)
    assert result['redirect_url'] == "https://checkout.stripe.test/cs_test_1"
    assert order.status == OrderStatus.PENDING
    assert order.stripe_session_id == "cs_test_1"
    assert order.total == Decimal("39.98")
    assert order.items[0].display_name == "Trail Runner (Size 9)"
    assert [name for name, _ in notifier.calls] == ["buyer", "seller"]

    created = provider.created[0]
    assert created['success_url'] == "http://shop.test/success?session_id={CHECKOUT_SESSION_ID}"
    assert created['cancel_url'] == "http://shop.test/cart"
    assert created['line_items'] == [
        {'name': "Trail Runner (Size 9)", 'sku': "p1", 'unit_price': "19.99", 'quantity': 2}
    ]


def test_hosted_checkout_empty_cart_never_calls_provider(service):
    provider = FakeStripe()
    with pytest.raises(EmptyCartError):
        service.start_hosted_checkout(SessionCart({}), "buyer@example.com", provider, "http://shop.test")
    assert provider.created == []
    assert Order.objects.count() == 0


def test_hosted_checkout_requires_buyer_email(service, cart):
    provider = FakeStripe()
    with pytest.raises(ValidationError):
        service.start_hosted_checkout(cart, "not-an-email", provider, "http://shop.test")
    assert provider.created == []


def test_email_failure_keeps_order_pending(db, cart):
    service = CheckoutService(OrderRepository(), RecordingNotifier(fail=True))

    result = service.start_hosted_checkout(cart, "buyer@example.com", FakeStripe(), "http://shop.test")

    assert Order.objects.get(id=result['order'].id).status == OrderStatus.PENDING


# ============================
# Capture rail
# ============================
def test_capture_rail_creates_order_only_after_capture(service, cart, notifier):
    provider = FakePayPal()

    created = service.start_capture_checkout(cart, provider, "http://shop.test")
    assert created['order_id'] == "PAYPAL-1"
    assert provider.orders["PAYPAL-1"]['amount'] == Decimal("39.98")
    assert provider.orders["PAYPAL-1"]['return_url'] == "http://shop.test/paypal/return"
    assert Order.objects.count() == 0

    order, capture = service.complete_capture(cart, provider, "PAYPAL-1", "http://shop.test")

    assert capture['capture_status'] == "COMPLETED"
    assert order.payment_method == PAYMENT_PAYPAL
    assert order.paypal_order_id == "PAYPAL-1"
    assert order.email == "payer@example.com"
    assert order.total == Decimal("39.98")
    assert cart.is_empty()
    assert [name for name, _ in notifier.calls] == ["buyer", "seller"]


def test_capture_replay_returns_existing_order(service, cart, notifier):
    provider = FakePayPal()
    service.start_capture_checkout(cart, provider, "http://shop.test")
    first, _ = service.complete_capture(cart, provider, "PAYPAL-1", "http://shop.test")

    again, capture = service.complete_capture(cart, provider, "PAYPAL-1", "http://shop.test")

    assert capture is None
    assert again.id == first.id
    assert provider.captures == ["PAYPAL-1"]
    assert Order.objects.count() == 1
    assert len(notifier.calls) == 2


def test_incomplete_capture_is_rejected(service, cart):
    provider = FakePayPal()
    provider.capture_order = lambda order_id: {'status': 'PAYER_ACTION_REQUIRED'}

    with pytest.raises(PaymentProviderError):
        service.complete_capture(cart, provider, "PAYPAL-9", "http://shop.test")
    assert Order.objects.count() == 0
    assert not cart.is_empty()


def test_capture_checkout_with_empty_cart(service):
    with pytest.raises(EmptyCartError):
        service.start_capture_checkout(SessionCart({}), FakePayPal(), "http://shop.test")


def test_concurrent_captures_record_one_order(service, cart, notifier):
    provider = FakePayPal()
    service.start_capture_checkout(cart, provider, "http://shop.test")
    other_cart = SessionCart({})
    other_cart.add(shoe(), quantity=2, size="9")
    capture = provider.capture_order
    inner = []

    def capture_while_another_request_captures(order_id):
        # A second request (e.g. the return redirect) finishes while this one is in flight
        if not inner:
            inner.append(None)
            inner[0] = service.complete_capture(other_cart, provider, order_id, "http://shop.test")
        return capture(order_id)

    provider.capture_order = capture_while_another_request_captures

    order, result = service.complete_capture(cart, provider, "PAYPAL-1", "http://shop.test")

    first_order, first_capture = inner[0]
    assert first_capture['capture_status'] == "COMPLETED"
    assert result is None
    assert order.id == first_order.id
    assert Order.objects(paypal_order_id="PAYPAL-1").count() == 1
    assert len(notifier.calls) == 2


def test_capture_uses_paid_items_when_cart_changed(service, cart):
    provider = FakePayPal()
    service.start_capture_checkout(cart, provider, "http://shop.test")
    cart.add(SimpleNamespace(id="h1", name="Wool Beanie", price=Decimal("10.00"), category="hat"), quantity=3)

    order, _ = service.complete_capture(cart, provider, "PAYPAL-1", "http://shop.test")

    assert [(i.display_name, i.quantity) for i in order.items] == [("Trail Runner (Size 9)", 2)]
    assert order.items[0].product_id == "p1"
    assert order.total == Decimal("39.98")
    # The unpaid beanies stay in the cart
    assert len(cart.items()) == 2


def test_capture_with_empty_session_keeps_paid_items(service, cart):
    provider = FakePayPal()
    service.start_capture_checkout(cart, provider, "http://shop.test")

    order, _ = service.complete_capture(SessionCart({}), provider, "PAYPAL-1", "http://shop.test")

    assert [(i.display_name, i.quantity, i.unit_price) for i in order.items] == [
        ("Trail Runner (Size 9)", 2, Decimal("19.99"))
    ]
    assert order.total == Decimal("39.98")


def test_mismatched_cart_is_not_used_without_item_snapshot(service, cart, caplog):
    provider = FakePayPal()
    provider.echo_items = False
    service.start_capture_checkout(cart, provider, "http://shop.test")
    cart.add(shoe(), quantity=1, size="10")

    with caplog.at_level("WARNING", logger="orders"):
        order, _ = service.complete_capture(cart, provider, "PAYPAL-1", "http://shop.test")

    assert order.items == []
    assert order.total == Decimal("39.98")
    assert "order saved without line items" in caplog.text
    assert not cart.is_empty()


def test_matching_cart_fills_items_without_snapshot(service, cart):
    provider = FakePayPal()
    provider.echo_items = False
    service.start_capture_checkout(cart, provider, "http://shop.test")

    order, _ = service.complete_capture(cart, provider, "PAYPAL-1", "http://shop.test")

    assert [(i.display_name, i.quantity) for i in order.items] == [("Trail Runner (Size 9)", 2)]
    assert cart.is_empty()
