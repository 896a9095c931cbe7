from flask import Blueprint

from Controllers.cartController import (
    list_products, view_cart, add_to_cart, update_cart_size, remove_from_cart, clear_cart
)
from Controllers.checkoutController import (
    stripe_checkout, paypal_create_order, paypal_capture, paypal_return, checkout_success
)
from Controllers.orderController import (
    confirm_order, cancel_order, order_status, stripe_webhook, update_email_config
)
from Utils.limiter import limiter, checkout_limit

# ----------------------------
# Blueprints
# ----------------------------
shop_routes = Blueprint('shop_routes', __name__)

# ----------------------------
# Catalog & cart
# ----------------------------
shop_routes.add_url_rule('/products', view_func=list_products, methods=['GET'])
shop_routes.add_url_rule('/cart', view_func=view_cart, methods=['GET'])
shop_routes.add_url_rule('/add-to-cart/<product_id>', view_func=add_to_cart, methods=['POST'])
shop_routes.add_url_rule('/update-cart-size', view_func=update_cart_size, methods=['POST'])
shop_routes.add_url_rule('/remove-from-cart', view_func=remove_from_cart, methods=['POST'])
shop_routes.add_url_rule('/clear-cart', view_func=clear_cart, methods=['POST'])

# ----------------------------
# Checkout (both rails)
# ----------------------------
shop_routes.add_url_rule('/checkout', view_func=limiter.limit(checkout_limit)(stripe_checkout), methods=['POST'])
shop_routes.add_url_rule('/api/paypal/create-order',
                         view_func=limiter.limit(checkout_limit)(paypal_create_order), methods=['POST'])
shop_routes.add_url_rule('/api/paypal/capture/<order_id>', view_func=paypal_capture, methods=['POST'])
shop_routes.add_url_rule('/paypal/return', view_func=paypal_return, methods=['GET'])
shop_routes.add_url_rule('/success', view_func=checkout_success, methods=['GET'])

# ----------------------------
# Order lifecycle
# ----------------------------
shop_routes.add_url_rule('/order/confirm/<order_id>', view_func=confirm_order, methods=['GET'])
shop_routes.add_url_rule('/order/cancel/<order_id>', view_func=cancel_order, methods=['GET'])
shop_routes.add_url_rule('/api/orders/<order_id>', view_func=order_status, methods=['GET'])

# Stripe retries on non-2xx; never throttle it
shop_routes.add_url_rule('/webhook', view_func=limiter.exempt(stripe_webhook), methods=['POST'])

# ----------------------------
# Admin
# ----------------------------
shop_routes.add_url_rule('/admin/email-config', view_func=update_email_config, methods=['POST'])
