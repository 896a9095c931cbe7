"""
Settlement signals: Stripe webhook, buyer confirm/cancel links, and manual
reconciliation.

Every path goes through ``OrderRepository.set_status``, which only moves a
Pending order. Refunds and seller emails run only when that call reports the
transition applied, so replays and races between signals have no further
effect. A payment that lands after cancellation is refunded once, guarded by
``OrderRepository.claim_refund``.
"""
import logging

from Models.orderModel import OrderStatus, PAYMENT_STRIPE, PAYMENT_PAYPAL
from Services.paymentProviders import field, PAID_SESSION_STATUSES
from Utils.appError import NotFoundError, NotConfiguredError, NotificationError, PaymentProviderError

logger = logging.getLogger("orders")

SESSION_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")


class CompletionService:
    def __init__(self, orders, notifier, providers: dict):
        """``providers`` maps payment method -> zero-arg factory returning its adapter."""
        self.orders = orders
        self.notifier = notifier
        self.providers = providers

    # ============================
    # Buyer links
    # ============================
    def confirm(self, order_id, source: str = "customer"):
        order = self._get(order_id)
        applied = self.orders.set_status(order.id, OrderStatus.CONFIRMED)
        order.reload()
        if not applied:
            logger.info(f"Confirm ignored for order {order.id}: already {order.status.value}")
            return order, False

        logger.info(f"✅ Order {order.id} confirmed via {source}")
        self._notify(self.notifier.notify_seller_confirmed, order, source)
        return order, True

    def cancel(self, order_id):
        order = self._get(order_id)
        applied = self.orders.set_status(order.id, OrderStatus.CANCELLED)
        order.reload()
        if not applied:
            logger.info(f"Cancel ignored for order {order.id}: already {order.status.value}")
            return order, False

        logger.info(f"Order {order.id} cancelled by customer")
        refunded = self.refund(order)
        self._notify(self.notifier.notify_seller_cancelled, order, bool(refunded))
        return order, True

    # ============================
    # Stripe webhook
    # ============================
    def handle_webhook_event(self, event) -> dict:
        event_type = field(event, 'type', '')
        if event_type not in SESSION_EVENTS:
            return {'received': True, 'handled': False}

        session = field(field(event, 'data', {}), 'object', {})
        session_id = field(session, 'id')
        if field(session, 'payment_status', '') not in PAID_SESSION_STATUSES:
            logger.info(f"Stripe session {session_id} completed without payment yet")
            return {'received': True, 'handled': False}

        order = self.orders.find_by_payment_reference(session_id)
        if not order:
            logger.warning(f"⚠️ Paid Stripe session {session_id} has no local order")
            return {'received': True, 'handled': False}

        order, applied = self.confirm(order.id, source="stripe webhook")
        if not applied and order.status == OrderStatus.CANCELLED:
            return {'received': True, 'handled': self._refund_late_payment(order, session_id)}
        return {'received': True, 'handled': applied}

    def _refund_late_payment(self, order, session_id) -> bool:
        """Buyer paid a session whose order was already cancelled."""
        logger.warning(f"⚠️ Payment received for cancelled order {order.id} (session {session_id})")
        refunded = self.refund(order)
        if refunded is None:
            return False
        self._notify(self.notifier.notify_seller_paid_after_cancel, order, refunded)
        return True

    # ============================
    # Manual reconciliation
    # ============================
    def reconcile_pending_hosted(self, provider, order_id=None) -> list:
        """Confirm Pending Stripe orders whose session is paid. Returns confirmed ids."""
        if order_id:
            order = self._get(order_id)
            pending = [order] if order.status == OrderStatus.PENDING and order.payment_method == PAYMENT_STRIPE else []
        else:
            pending = self.orders.list_pending(payment_method=PAYMENT_STRIPE)

        confirmed = []
        for order in pending:
            try:
                session = provider.retrieve_session(order.stripe_session_id)
            except PaymentProviderError as e:
                logger.warning(f"⚠️ Could not look up session for order {order.id}: {e}")
                continue
            if session['paid']:
                _, applied = self.confirm(order.id, source="reconciliation")
                if applied:
                    confirmed.append(str(order.id))
        return confirmed

    # ============================
    # Refunds
    # ============================
    def refund(self, order):
        """Best effort refund of a cancelled order.

        Returns True/False for the outcome, or None when another path already
        claimed the refund. An unpaid Stripe session is expired instead so it
        can't be paid later. Failures are logged, never raised.
        """
        handle = None
        try:
            provider = self.providers[order.payment_method]()
            if order.payment_method == PAYMENT_STRIPE:
                # The session id isn't refundable; the payment intent behind it is
                handle = provider.retrieve_session(order.stripe_session_id)['payment_reference']
            elif order.payment_method == PAYMENT_PAYPAL:
                handle = provider.get_capture_id(order.paypal_order_id)
            if not handle:
                logger.warning(f"⚠️ Order {order.id}: no payment found at {order.payment_method} to refund")
                if order.payment_method == PAYMENT_STRIPE:
                    self._expire(provider, order)
                return False
            if not self.orders.claim_refund(order.id):
                logger.info(f"Refund for order {order.id} already handled")
                return None
            refunded = provider.refund(handle)
        except (PaymentProviderError, NotConfiguredError, KeyError) as e:
            logger.warning(f"⚠️ Refund failed for order {order.id} ({order.payment_reference}): {e}")
            return False

        if refunded:
            logger.info(f"💸 Refund issued for order {order.id} ({handle})")
        else:
            logger.warning(f"⚠️ Refund for order {order.id} ({handle}) was not accepted")
        return refunded

    @staticmethod
    def _expire(provider, order):
        try:
            expired = provider.expire_session(order.stripe_session_id)
        except PaymentProviderError as e:
            # Payment may be under way; a paid webhook for this session refunds it
            logger.warning(f"⚠️ Could not expire session {order.stripe_session_id} for order {order.id}: {e}")
            return
        if expired:
            logger.info(f"Stripe session {order.stripe_session_id} expired for cancelled order {order.id}")

    # ============================
    # HELPERS
    # ============================
    def _get(self, order_id):
        order = self.orders.find_by_id(order_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    @staticmethod
    def _notify(send, order, *args):
        try:
            send(order, *args)
        except (NotificationError, NotConfiguredError) as e:
            logger.warning(f"⚠️ Seller notification for order {order.id} failed: {e}")
