"""
Order emails.

Every method raises on failure (NotificationError / NotConfiguredError) and
leaves logging to the caller; nothing here touches order state.
"""
from markupsafe import escape

from Utils import email as mail
from Utils.appError import NotConfiguredError
from Utils.config import currency_symbol
from Utils.money import format_amount


def order_links(base_url: str, order_id) -> dict:
    base = base_url.rstrip("/")
    return {
        'confirm': f"{base}/order/confirm/{order_id}",
        'cancel': f"{base}/order/cancel/{order_id}",
    }


class OrderNotifier:
    def __init__(self, mailer, settings):
        self.mailer = mailer
        self.settings = settings

    def _seller(self) -> str:
        seller = self.settings.get().get('seller_email')
        if not seller:
            raise NotConfiguredError("Seller email not configured")
        return seller

    def _total(self, order) -> str:
        return format_amount(order.total, currency_symbol())

    def request_buyer_confirmation(self, order, base_url: str):
        links = order_links(base_url, order.id)
        lines = "\n".join(f"- {item.display_name} x{item.quantity}" for item in order.items)
        body = (
            f"Order #{order.id}\n"
            f"Total: {self._total(order)}\n\n"
            f"{lines}\n\n"
            f"Confirm your order: {links['confirm']}\n"
            f"Cancel your order: {links['cancel']}\n"
        )
        html = (
            f"<h3>Order #{order.id}</h3>"
            f"<p>Total: {escape(self._total(order))}</p>"
            f"<p><a href=\"{escape(links['confirm'])}\">Confirm Order</a></p>"
            f"<p><a href=\"{escape(links['cancel'])}\">Cancel Order</a></p>"
        )
        self.mailer.send(order.email, "Confirm Your Order", body, html=html)

    def alert_seller_new_order(self, order):
        body = f"From: {order.email} | Total: {self._total(order)} | Paid via {order.payment_method}"
        self.mailer.send(self._seller(), f"New Order #{order.id}", body)

    def notify_seller_confirmed(self, order, source: str = "customer"):
        body = f"Order #{order.id} confirmed ({source}). Total: {self._total(order)}"
        self.mailer.send(self._seller(), f"Order Confirmed #{order.id}", body)

    def notify_seller_cancelled(self, order, refunded: bool):
        if refunded:
            body = "Customer cancelled. Refund processed."
        else:
            body = (
                "Customer cancelled. Refund could not be issued automatically; "
                f"check {order.payment_method} reference {order.payment_reference}."
            )
        self.mailer.send(self._seller(), f"Order Cancelled #{order.id}", body)

    def notify_seller_paid_after_cancel(self, order, refunded: bool):
        outcome = "Refund processed." if refunded else (
            f"Refund could not be issued automatically; check {order.payment_method} "
            f"reference {order.payment_reference}."
        )
        body = f"Payment arrived for cancelled order #{order.id} ({self._total(order)}). {outcome}"
        self.mailer.send(self._seller(), f"Payment After Cancellation #{order.id}", body)


def get_notifier() -> OrderNotifier:
    return OrderNotifier(mail.get_mailer(), mail.email_settings)
