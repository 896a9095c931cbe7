from mongoengine import (
    Document, EmbeddedDocument, EmbeddedDocumentListField, StringField,
    IntField, DecimalField, DateTimeField, EmailField, EnumField, BooleanField, ValidationError
)
from datetime import datetime
from decimal import ROUND_HALF_UP
from enum import Enum


class OrderStatus(Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"


TERMINAL_STATUSES = (OrderStatus.CONFIRMED, OrderStatus.CANCELLED)

PAYMENT_STRIPE = "stripe"
PAYMENT_PAYPAL = "paypal"


class OrderItem(EmbeddedDocument):
    product_id = StringField(required=True)
    quantity = IntField(required=True, min_value=1)
    display_name = StringField()
    unit_price = DecimalField(precision=2, rounding=ROUND_HALF_UP)


class Order(Document):
    items = EmbeddedDocumentListField(OrderItem)
    total = DecimalField(required=True, min_value=0, precision=2, rounding=ROUND_HALF_UP)
    email = EmailField(required=True)
    status = EnumField(OrderStatus, default=OrderStatus.PENDING)
    payment_method = StringField(required=True, choices=(PAYMENT_STRIPE, PAYMENT_PAYPAL))
    # Exactly one of these is set, matching payment_method. Unique so a
    # provider reference can back at most one order
    stripe_session_id = StringField(unique=True, sparse=True)
    paypal_order_id = StringField(unique=True, sparse=True)
    # Set by whichever path first refunds a cancelled order
    refund_claimed = BooleanField(default=False)
    created_at = DateTimeField(default=datetime.utcnow)

    meta = {
        'collection': 'orders',
        'indexes': ['status', 'created_at']
    }

    def clean(self):
        if self.email:
            # Domains are case-insensitive, local parts may not be
            local, at, domain = self.email.strip().rpartition("@")
            self.email = f"{local}{at}{domain.lower()}" if at else self.email.strip()

        references = [ref for ref in (self.stripe_session_id, self.paypal_order_id) if ref]
        if len(references) != 1:
            raise ValidationError("Order must hold exactly one payment reference.")
        if self.payment_method == PAYMENT_STRIPE and not self.stripe_session_id:
            raise ValidationError("Stripe orders must reference a checkout session.")
        if self.payment_method == PAYMENT_PAYPAL and not self.paypal_order_id:
            raise ValidationError("PayPal orders must reference a PayPal order.")

    @property
    def payment_reference(self):
        return self.stripe_session_id or self.paypal_order_id

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_json(self, include_email: bool = False) -> dict:
        data = {
            'id': str(self.id),
            'status': self.status.value if isinstance(self.status, OrderStatus) else self.status,
            'total': f"{self.total:.2f}",
            'payment_method': self.payment_method,
            'items': [
                {
                    'product_id': item.product_id,
                    'quantity': item.quantity,
                    'display_name': item.display_name,
                    'unit_price': f"{item.unit_price:.2f}" if item.unit_price is not None else None,
                }
                for item in self.items
            ],
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_email:
            data['email'] = self.email
        return data
