from flask import request, jsonify, session

from Models.productModel import Product, find_product
from Utils.appError import NotFoundError
from Utils.cart import SessionCart
from Utils.money import quantize


def _payload() -> dict:
    # Forms and JSON bodies are both accepted
    return request.get_json(silent=True) or request.form.to_dict() or {}


def _cart_response(cart, status=200, **extra):
    body = {
        'success': True,
        'items': cart.items(),
        'total': f"{quantize(cart.total()):.2f}",
    }
    body.update(extra)
    return jsonify(body), status


# ============================
# Catalog
# ============================
def list_products():
    products = Product.objects.order_by('name')
    return jsonify({'products': [p.to_json() for p in products]})


# ============================
# Cart
# ============================
def view_cart():
    return _cart_response(SessionCart(session))


def add_to_cart(product_id):
    product = find_product(product_id)
    if not product:
        raise NotFoundError("Product not found")

    data = _payload()
    cart = SessionCart(session)
    line = cart.add(product, quantity=data.get('quantity', 1), size=data.get('size'))
    return _cart_response(cart, 201, line=line)


def update_cart_size():
    data = _payload()
    cart = SessionCart(session)
    line = cart.update_size(data.get('index'), data.get('size'))
    return _cart_response(cart, line=line)


def remove_from_cart():
    data = _payload()
    cart = SessionCart(session)
    removed = cart.remove(data.get('index'))
    return _cart_response(cart, removed=removed)


def clear_cart():
    cart = SessionCart(session)
    cart.clear()
    return _cart_response(cart)
