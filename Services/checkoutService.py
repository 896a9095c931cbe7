"""
Checkout for both payment rails.

Hosted (Stripe Checkout): session first, then a Pending order holding the
session id, then emails, then redirect. Settlement arrives later through the
webhook or the buyer's confirm link.

Capture (PayPal): provider order first with no local row; the capture call
creates the Pending order holding the PayPal order id. Both rails end in the
same Pending state and share the confirm/cancel mechanics downstream.
"""
import logging
import re

from Models.orderModel import Order, OrderItem, PAYMENT_STRIPE, PAYMENT_PAYPAL
from Utils.appError import (
    EmptyCartError, ValidationError, NotConfiguredError, NotificationError,
    PaymentProviderError, PersistenceError, DuplicateOrderError
)
from Utils.money import quantize, to_minor_units

logger = logging.getLogger("orders")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def line_items_from_cart(cart) -> list:
    return [
        {
            'name': line['display_name'],
            'sku': line['product_id'],
            'unit_price': line['unit_price'],
            'quantity': line['quantity'],
        }
        for line in cart.items()
    ]


def order_items_from_cart(cart) -> list:
    return [
        OrderItem(
            product_id=line['product_id'],
            quantity=int(line['quantity']),
            display_name=line['display_name'],
            unit_price=quantize(line['unit_price']),
        )
        for line in cart.items()
    ]


class CheckoutService:
    def __init__(self, orders, notifier):
        self.orders = orders
        self.notifier = notifier

    # ============================
    # Hosted rail
    # ============================
    def start_hosted_checkout(self, cart, buyer_email, provider, base_url) -> dict:
        if cart.is_empty():
            raise EmptyCartError()
        buyer_email = (buyer_email or "").strip()
        if not EMAIL_PATTERN.match(buyer_email):
            raise ValidationError("A valid email address is required")

        base = base_url.rstrip("/")
        session = provider.create_session(
            line_items_from_cart(cart),
            success_url=f"{base}/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base}/cart",
            customer_email=buyer_email,
        )

        order = Order(
            items=order_items_from_cart(cart),
            total=quantize(cart.total()),
            email=buyer_email,
            payment_method=PAYMENT_STRIPE,
            stripe_session_id=session['session_id'],
        )
        try:
            self.orders.create(order)
        except PersistenceError:
            # Session exists at Stripe with no local row; recoverable via webhook / orders:reconcile
            logger.error(f"🔥 Orphaned Stripe session {session['session_id']} for {buyer_email}")
            raise

        logger.info(f"✅ Order {order.id} created (stripe session={session['session_id']}, total={order.total})")
        self._announce(order, base)
        return {'order': order, 'redirect_url': session['redirect_url']}

    # ============================
    # Capture rail
    # ============================
    def start_capture_checkout(self, cart, provider, base_url) -> dict:
        if cart.is_empty():
            raise EmptyCartError()
        base = base_url.rstrip("/")
        created = provider.create_order(
            quantize(cart.total()),
            line_items_from_cart(cart),
            return_url=f"{base}/paypal/return",
            cancel_url=f"{base}/cart",
        )
        if not created.get('order_id'):
            raise PaymentProviderError("PayPal returned no order id", provider=PAYMENT_PAYPAL)
        logger.info(f"PayPal order {created['order_id']} created for {quantize(cart.total())}")
        return created

    def complete_capture(self, cart, provider, provider_order_id, base_url, buyer_email=None):
        """Capture a PayPal order and persist it. Returns (order, capture).

        ``capture`` is None when the PayPal order was already recorded. Items
        and total come from what PayPal captured, never from a cart that no
        longer matches it.
        """
        if not provider_order_id:
            raise ValidationError("PayPal order id is required")

        existing = self.orders.find_by_payment_reference(provider_order_id)
        if existing:
            logger.info(f"PayPal order {provider_order_id} already recorded as {existing.id}")
            return existing, None

        capture = provider.capture_order(provider_order_id)
        if capture.get('status') != 'COMPLETED':
            raise PaymentProviderError(
                f"PayPal capture not completed (status={capture.get('status') or 'unknown'})",
                provider=PAYMENT_PAYPAL,
            )

        cart_matches = self._cart_matches(cart, capture.get('amount'))
        items = self._captured_items(capture, cart, cart_matches, provider_order_id)
        email = (buyer_email or "").strip() or capture.get('payer_email')
        total = capture.get('amount') if capture.get('amount') is not None else cart.total()
        order = Order(
            items=items,
            total=quantize(total),
            email=email,
            payment_method=PAYMENT_PAYPAL,
            paypal_order_id=provider_order_id,
        )
        try:
            self.orders.create(order)
        except DuplicateOrderError:
            # A concurrent capture of the same PayPal order got there first
            existing = self.orders.find_by_payment_reference(provider_order_id)
            logger.info(f"PayPal order {provider_order_id} recorded concurrently as {existing.id}")
            return existing, None
        except PersistenceError:
            # Funds are captured at PayPal; the order id is enough to rebuild the record
            logger.error(f"🔥 Captured PayPal order {provider_order_id} (capture={capture.get('capture_id')}) not persisted")
            raise

        if cart_matches:
            cart.clear()
        logger.info(f"✅ Order {order.id} created (paypal order={provider_order_id}, total={order.total})")
        self._announce(order, base_url.rstrip("/"))
        return order, capture

    @staticmethod
    def _cart_matches(cart, captured_amount) -> bool:
        if cart.is_empty():
            return False
        if captured_amount is None:
            return True
        return to_minor_units(cart.total()) == to_minor_units(captured_amount)

    @staticmethod
    def _captured_items(capture, cart, cart_matches, provider_order_id) -> list:
        purchased = capture.get('items') or []
        if purchased:
            return [
                OrderItem(
                    product_id=item.get('sku') or item.get('name') or "unknown",
                    quantity=int(item['quantity']),
                    display_name=item.get('name'),
                    unit_price=quantize(item['unit_price']),
                )
                for item in purchased
            ]
        if cart_matches:
            return order_items_from_cart(cart)
        logger.warning(
            f"⚠️ PayPal order {provider_order_id}: captured {capture.get('amount')} but cart holds "
            f"{quantize(cart.total())}; order saved without line items"
        )
        return []

    # ============================
    # Notifications
    # ============================
    def _announce(self, order, base_url):
        try:
            self.notifier.request_buyer_confirmation(order, base_url)
        except (NotificationError, NotConfiguredError) as e:
            logger.warning(f"⚠️ Buyer email for order {order.id} failed: {e}")
        try:
            self.notifier.alert_seller_new_order(order)
        except (NotificationError, NotConfiguredError) as e:
            logger.warning(f"⚠️ Seller alert for order {order.id} failed: {e}")
