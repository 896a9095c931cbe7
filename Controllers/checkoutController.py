from flask import request, jsonify, redirect, session

from Models.orderRepository import OrderRepository
from Services import paymentProviders as providers
from Services import notificationService
from Services.checkoutService import CheckoutService
from Utils.appError import ValidationError
from Utils.cart import SessionCart
from Utils.config import public_base_url


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict() or {}


def _service() -> CheckoutService:
    return CheckoutService(OrderRepository(), notificationService.get_notifier())


# ============================
# Stripe Checkout
# ============================
def stripe_checkout():
    cart = SessionCart(session)
    if cart.is_empty():
        return redirect('/cart', code=303)

    provider = providers.get_stripe_provider()
    result = _service().start_hosted_checkout(
        cart,
        _payload().get('email'),
        provider,
        public_base_url(request.host_url),
    )
    return redirect(result['redirect_url'], code=303)


# ============================
# PayPal Orders v2
# ============================
def paypal_create_order():
    cart = SessionCart(session)
    if cart.is_empty():
        return redirect('/cart', code=303)

    provider = providers.get_paypal_provider()
    created = _service().start_capture_checkout(cart, provider, public_base_url(request.host_url))
    return jsonify({'id': created['order_id'], 'approve_url': created['approve_url']})


def _capture(paypal_order_id, buyer_email=None):
    provider = providers.get_paypal_provider()
    return _service().complete_capture(
        SessionCart(session),
        provider,
        paypal_order_id,
        public_base_url(request.host_url),
        buyer_email=buyer_email,
    )


def paypal_capture(order_id):
    order, capture = _capture(order_id, _payload().get('email'))
    return jsonify({
        'success': True,
        'order_id': str(order.id),
        'paypal_order_id': order.paypal_order_id,
        'status': order.status.value,
        'capture_status': capture.get('capture_status') if capture else None,
        'already_recorded': capture is None,
    })


def paypal_return():
    # PayPal appends the order id as ?token=
    paypal_order_id = request.args.get('token') or request.args.get('orderId') or request.args.get('orderID')
    if not paypal_order_id:
        raise ValidationError("Missing PayPal order id")
    order, _ = _capture(paypal_order_id)
    return redirect(f"/success?order_id={order.id}", code=303)


def checkout_success():
    SessionCart(session).clear()
    return jsonify({
        'success': True,
        'message': "Thank you! Check your email to confirm your order.",
        'order_id': request.args.get('order_id'),
        'session_id': request.args.get('session_id'),
    })
