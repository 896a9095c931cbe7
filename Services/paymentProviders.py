"""
Payment provider adapters.

Stripe Checkout (hosted page + webhook) and PayPal Orders v2 (create, then
capture). Provider request/response shapes stay in this module; callers see
plain dicts, ``Decimal`` major amounts and the exceptions in Utils.appError.
"""
import logging
import stripe
import httpx

from Models.orderModel import PAYMENT_STRIPE, PAYMENT_PAYPAL
from Utils.appError import NotConfiguredError, PaymentProviderError, SignatureError
from Utils.config import stripe_settings, paypal_settings, store_currency
from Utils.money import to_minor_units, format_minor_units, to_decimal

logger = logging.getLogger("orders")

PAID_SESSION_STATUSES = ("paid", "no_payment_required")


def field(obj, key, default=None):
    """Item lookup that works for dicts and Stripe objects alike."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if value is None else value


# ============================
# Stripe Checkout
# ============================
def _stripe_message(err) -> str:
    return getattr(err, "user_message", None) or str(err) or err.__class__.__name__


class StripeCheckoutProvider:
    name = PAYMENT_STRIPE

    def __init__(self, secret_key: str, webhook_secret: str = "", currency: str = "gbp"):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency.lower()

    @classmethod
    def from_env(cls):
        settings = stripe_settings()
        if not settings["secret_key"]:
            raise NotConfiguredError("Stripe not configured")
        return cls(settings["secret_key"], settings["webhook_secret"], store_currency())

    def create_session(self, line_items, success_url, cancel_url, customer_email=None) -> dict:
        params = {
            'mode': 'payment',
            'payment_method_types': ['card'],
            'line_items': [
                {
                    'price_data': {
                        'currency': self.currency,
                        'product_data': {'name': item['name']},
                        'unit_amount': to_minor_units(item['unit_price']),
                    },
                    'quantity': int(item['quantity']),
                }
                for item in line_items
            ],
            'success_url': success_url,
            'cancel_url': cancel_url,
        }
        if customer_email:
            params['customer_email'] = customer_email
        try:
            session = stripe.checkout.Session.create(api_key=self.secret_key, **params)
        except stripe.StripeError as e:
            raise PaymentProviderError(_stripe_message(e), provider=self.name)
        return {'session_id': field(session, 'id'), 'redirect_url': field(session, 'url')}

    def retrieve_session(self, session_id) -> dict:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            raise PaymentProviderError(_stripe_message(e), provider=self.name)
        intent = field(session, 'payment_intent')
        if intent is not None and not isinstance(intent, str):
            intent = field(intent, 'id')
        return {
            'payment_reference': intent,
            'paid': field(session, 'payment_status', '') in PAID_SESSION_STATUSES,
        }

    def refund(self, payment_reference) -> bool:
        try:
            # Same key for the same intent, so a repeated call returns the first refund
            refund = stripe.Refund.create(payment_intent=payment_reference, api_key=self.secret_key,
                                          idempotency_key=f"refund-{payment_reference}")
        except stripe.StripeError as e:
            raise PaymentProviderError(_stripe_message(e), provider=self.name)
        return field(refund, 'status', '') in ('succeeded', 'pending')

    def expire_session(self, session_id) -> bool:
        """Close an unpaid session so it can no longer be paid."""
        try:
            session = stripe.checkout.Session.expire(session_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            raise PaymentProviderError(_stripe_message(e), provider=self.name)
        return field(session, 'status', '') == 'expired'

    def verify_webhook(self, payload: bytes, signature):
        """Authenticate a webhook against the raw request body."""
        if not self.webhook_secret:
            raise NotConfiguredError("Stripe webhook secret not configured")
        if not signature:
            raise SignatureError("Missing Stripe-Signature header")
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret, api_key=self.secret_key)
        except stripe.SignatureVerificationError as e:
            raise SignatureError(f"Invalid signature: {_stripe_message(e)}")
        except ValueError:
            raise SignatureError("Invalid payload")


# ============================
# PayPal Orders v2
# ============================
class PayPalOrderProvider:
    name = PAYMENT_PAYPAL

    def __init__(self, client_id, client_secret, env="sandbox", currency="gbp",
                 brand_name="Storefront", timeout=15.0, transport=None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.env = env
        self.currency = currency.upper()
        self.brand_name = brand_name
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_env(cls, transport=None):
        settings = paypal_settings()
        if not settings["client_id"] or not settings["client_secret"]:
            raise NotConfiguredError("PayPal not configured")
        return cls(settings["client_id"], settings["client_secret"], env=settings["env"],
                   currency=store_currency(), brand_name=settings["brand_name"], transport=transport)

    @property
    def base_url(self) -> str:
        return 'https://api-m.paypal.com' if self.env == 'live' else 'https://api-m.sandbox.paypal.com'

    def _call(self, method, path, json=None, headers=None) -> dict:
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as c:
                r = c.post('/v1/oauth2/token', auth=(self.client_id, self.client_secret),
                           data={'grant_type': 'client_credentials'})
                r.raise_for_status()
                token = r.json().get('access_token')
                if not token:
                    raise PaymentProviderError("PayPal returned no access token", provider=self.name)

                request_headers = {
                    'Authorization': f'Bearer {token}',
                    'Content-Type': 'application/json',
                }
                request_headers.update(headers or {})
                r = c.request(method, path, headers=request_headers, json=json)
                r.raise_for_status()
                return r.json() if r.content else {}
        except httpx.HTTPStatusError as e:
            raise PaymentProviderError(e.response.text or str(e), provider=self.name)
        except httpx.HTTPError as e:
            raise PaymentProviderError(str(e) or e.__class__.__name__, provider=self.name)

    def create_order(self, amount, line_items, return_url, cancel_url) -> dict:
        total_minor = to_minor_units(amount)
        unit = {'currency_code': self.currency}
        purchase_unit = {'amount': dict(unit, value=format_minor_units(total_minor))}

        items = [(item, to_minor_units(item['unit_price'])) for item in line_items]
        # PayPal rejects a breakdown that doesn't add up, so only send one that does
        if items and sum(minor * int(item['quantity']) for item, minor in items) == total_minor:
            purchase_unit['amount']['breakdown'] = {'item_total': dict(unit, value=format_minor_units(total_minor))}
            # Line snapshot; the capture response carries it back
            purchase_unit['items'] = [self._order_item(item, minor) for item, minor in items]

        body = {
            'intent': 'CAPTURE',
            'purchase_units': [purchase_unit],
            'application_context': {
                'brand_name': self.brand_name,
                'return_url': return_url,
                'cancel_url': cancel_url,
                'user_action': 'PAY_NOW',
            },
        }
        data = self._call('POST', '/v2/checkout/orders', json=body)
        approve_url = None
        for link in data.get('links', []):
            if link.get('rel') in ('approve', 'payer-action'):
                approve_url = link.get('href')
                break
        return {'order_id': data.get('id'), 'approve_url': approve_url}

    def _order_item(self, item, minor) -> dict:
        entry = {
            'name': item['name'][:127],
            'quantity': str(int(item['quantity'])),
            'unit_amount': {'currency_code': self.currency, 'value': format_minor_units(minor)},
        }
        if item.get('sku'):
            entry['sku'] = str(item['sku'])[:127]
        return entry

    @staticmethod
    def _purchased_items(data) -> list:
        try:
            items = data['purchase_units'][0].get('items') or []
        except (KeyError, IndexError, TypeError, AttributeError):
            return []
        return [
            {
                'name': item.get('name'),
                'sku': item.get('sku'),
                'quantity': int(item.get('quantity') or 1),
                'unit_price': to_decimal(field(field(item, 'unit_amount', {}), 'value', '0')),
            }
            for item in items
        ]

    @staticmethod
    def _first_capture(data):
        try:
            return data['purchase_units'][0]['payments']['captures'][0]
        except (KeyError, IndexError, TypeError):
            return None

    def capture_order(self, order_id) -> dict:
        data = self._call('POST', f'/v2/checkout/orders/{order_id}/capture', headers={
            'Prefer': 'return=representation',
            # PayPal dedupes captures carrying the same request id
            'PayPal-Request-Id': f'capture-{order_id}',
        })
        capture = self._first_capture(data) or {}
        amount = field(field(capture, 'amount', {}), 'value')
        return {
            'status': data.get('status', ''),
            'payer_email': field(field(data, 'payer', {}), 'email_address'),
            'capture_id': capture.get('id'),
            'capture_status': capture.get('status'),
            'amount': to_decimal(amount) if amount is not None else None,
            'items': self._purchased_items(data),
        }

    def get_capture_id(self, order_id):
        data = self._call('GET', f'/v2/checkout/orders/{order_id}')
        capture = self._first_capture(data)
        return capture.get('id') if capture else None

    def refund(self, capture_id) -> bool:
        data = self._call('POST', f'/v2/payments/captures/{capture_id}/refund', json={})
        return data.get('status') in ('COMPLETED', 'PENDING')


def get_stripe_provider() -> StripeCheckoutProvider:
    return StripeCheckoutProvider.from_env()


def get_paypal_provider() -> PayPalOrderProvider:
    return PayPalOrderProvider.from_env()
