import hmac
import logging
from flask import request, jsonify
from markupsafe import escape
from mongoengine.errors import ValidationError as DocumentValidationError

from Models.emailConfigModel import EmailConfig
from Models.orderModel import PAYMENT_STRIPE, PAYMENT_PAYPAL
from Models.orderRepository import OrderRepository
from Services import paymentProviders as providers
from Services import notificationService
from Services.completionService import CompletionService
from Utils import email as mail
from Utils.appError import AppError, NotFoundError, NotConfiguredError, ValidationError
from Utils.config import get_env

logger = logging.getLogger(__name__)


def completion_service() -> CompletionService:
    # Factories are looked up per call so a refund only builds the provider it needs
    return CompletionService(
        OrderRepository(),
        notificationService.get_notifier(),
        {
            PAYMENT_STRIPE: lambda: providers.get_stripe_provider(),
            PAYMENT_PAYPAL: lambda: providers.get_paypal_provider(),
        },
    )


def _page(title, message):
    return f"<h2>{escape(title)}</h2><p>{escape(message)}</p>"


# ============================
# Buyer links
# ============================
def confirm_order(order_id):
    order, applied = completion_service().confirm(order_id)
    if applied:
        return _page("Order confirmed", f"Thank you! Order #{order.id} is confirmed.")
    return _page("No change", f"Order #{order.id} is already {order.status.value}.")


def cancel_order(order_id):
    order, applied = completion_service().cancel(order_id)
    if applied:
        return _page("Order cancelled", f"Order #{order.id} has been cancelled. Any payment will be refunded.")
    return _page("No change", f"Order #{order.id} is already {order.status.value}.")


def order_status(order_id):
    order = OrderRepository().find_by_id(order_id)
    if not order:
        raise NotFoundError("Order not found")
    return jsonify({'success': True, 'order': order.to_json()})


# ============================
# Stripe Webhook
# ============================
def stripe_webhook():
    # Signature is checked against the raw bytes, before any parsing
    payload = request.get_data()
    signature = request.headers.get('Stripe-Signature')
    try:
        provider = providers.get_stripe_provider()
        event = provider.verify_webhook(payload, signature)
    except NotConfiguredError as e:
        logger.error(f"Stripe webhook rejected: {e}")
        return jsonify({'status': 'fail', 'message': str(e)}), 400

    result = completion_service().handle_webhook_event(event)
    return jsonify({'received': True, 'handled': result['handled']})


# ============================
# Admin: email configuration
# ============================
def _require_admin():
    expected = get_env("ADMIN_API_KEY")
    if not expected:
        raise NotConfiguredError("Admin API key not configured")
    supplied = request.headers.get('X-Admin-Key', '')
    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        raise AppError("Forbidden", 403)


EMAIL_CONFIG_FIELDS = ('email_user', 'email_pass', 'seller_email', 'smtp_host', 'smtp_port', 'use_tls')


def update_email_config():
    _require_admin()
    data = request.get_json(silent=True) or {}
    updates = {key: data[key] for key in EMAIL_CONFIG_FIELDS if key in data}
    if not updates:
        raise ValidationError("No email settings supplied")

    config = EmailConfig.objects.first() or EmailConfig()
    for key, value in updates.items():
        setattr(config, key, value)
    try:
        config.save()
    except DocumentValidationError as e:
        raise ValidationError(f"Invalid email settings: {e}")

    # Next send picks up the new values
    mail.email_settings.invalidate()
    logger.info(f"Email configuration updated ({', '.join(sorted(updates))})")

    settings = config.to_settings()
    settings.pop('email_pass', None)
    return jsonify({'success': True, 'email_config': settings})
