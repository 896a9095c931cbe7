import logging
from bson import ObjectId
from mongoengine import Q
from mongoengine.errors import NotUniqueError, OperationError, ValidationError as DocumentValidationError
from pymongo.errors import PyMongoError

from Models.orderModel import Order, OrderStatus, TERMINAL_STATUSES
from Utils.appError import DuplicateOrderError, PersistenceError

logger = logging.getLogger("orders")


class OrderRepository:
    """Durable order records. ``set_status`` is the only way status changes."""

    def create(self, order: Order) -> str:
        try:
            order.save()
        except NotUniqueError:
            # Must come before OperationError, which it subclasses
            raise DuplicateOrderError(f"An order already exists for {order.payment_reference}")
        except (DocumentValidationError, OperationError, PyMongoError) as e:
            logger.error(f"Order persistence failed ref={order.payment_reference}: {e}")
            raise PersistenceError(f"Could not save order: {e}")
        return str(order.id)

    def find_by_id(self, order_id):
        if not order_id or not ObjectId.is_valid(str(order_id)):
            return None
        return Order.objects(id=order_id).first()

    def find_by_payment_reference(self, reference):
        if not reference:
            return None
        return Order.objects(Q(stripe_session_id=reference) | Q(paypal_order_id=reference)).first()

    def set_status(self, order_id, new_status: OrderStatus) -> bool:
        """Move a Pending order to a terminal status.

        Single conditional update filtered on Pending; returns True only when
        this call performed the transition.
        """
        if new_status not in TERMINAL_STATUSES:
            raise ValueError(f"Cannot transition an order to {new_status}")
        if not order_id or not ObjectId.is_valid(str(order_id)):
            return False
        try:
            updated = Order.objects(id=order_id, status=OrderStatus.PENDING).update_one(set__status=new_status)
        except (OperationError, PyMongoError) as e:
            raise PersistenceError(f"Could not update order {order_id}: {e}")
        return updated == 1

    def claim_refund(self, order_id) -> bool:
        """True for the first caller asking to refund a cancelled order, False after that."""
        try:
            updated = Order.objects(
                id=order_id, status=OrderStatus.CANCELLED, refund_claimed__ne=True
            ).update_one(set__refund_claimed=True)
        except (OperationError, PyMongoError) as e:
            raise PersistenceError(f"Could not update order {order_id}: {e}")
        return updated == 1

    def list_pending(self, payment_method=None):
        query = Order.objects(status=OrderStatus.PENDING)
        if payment_method:
            query = query.filter(payment_method=payment_method)
        return list(query.order_by('created_at'))
