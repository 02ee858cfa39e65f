"""
Order business logic: creation, payment intents, payment verification and fulfillment
"""
from decimal import Decimal
from sqlalchemy.orm import Session, selectinload
from storefront.models.order import (
    Order,
    OrderItem,
    FulfillmentStatus,
    PaymentStatus,
    can_change_fulfillment,
    can_change_payment,
)
from storefront.models.schemas import (
    OrderCreate,
    OrderItemCreate,
    PaymentIntentCreate,
    PaymentVerification,
)
from storefront.common_instrumentation import set_order_attributes
from storefront.services.payment_client import RazorpayClient
from typing import Dict, List, Optional, Tuple
from opentelemetry import trace
import logging

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

CENTS = Decimal("0.01")


class OrderNotFoundError(LookupError):
    """No order matches the given reference"""


class OrderStateConflict(Exception):
    """The order is not in a state that allows the requested change"""


class InvalidSignatureError(ValueError):
    """Payment callback signature does not match"""


class PaymentProviderError(Exception):
    """The payment provider did not return a usable payment intent"""


class OrderService:
    """Order service for business logic"""

    def __init__(self, payment_client: Optional[RazorpayClient] = None):
        self.payment_client = payment_client

    @staticmethod
    def _build_item(order_id: int, item: OrderItemCreate) -> OrderItem:
        return OrderItem(
            order_id=order_id,
            product_id=item.product_id,
            quantity=item.quantity,
            price=item.price,
        )

    @staticmethod
    def create_order(
        db: Session,
        user_id: int,
        order_data: OrderCreate,
        customer_email: Optional[str] = None
    ) -> Order:
        """
        Create an order and its line items in one transaction

        Process:
        1. Recompute the total from the snapshot prices
        2. Insert the order header (pending / pending)
        3. Insert one row per line item
        4. Commit, or roll everything back
        """
        with tracer.start_as_current_span("order_service.create_order") as span:
            span.set_attribute("user.id", user_id)
            span.set_attribute("items.count", len(order_data.items))

            logger.info(f"Creating order for user {user_id} with {len(order_data.items)} items")

            computed_total = sum(
                (item.price * item.quantity for item in order_data.items),
                Decimal("0")
            ).quantize(CENTS)
            if computed_total != order_data.total.quantize(CENTS):
                logger.warning(
                    f"Rejected order for user {user_id}: total {order_data.total} != items {computed_total}"
                )
                raise ValueError("Total does not match order items")

            span.set_attribute("order.total", str(computed_total))

            try:
                order = Order(
                    user_id=user_id,
                    customer_email=customer_email,
                    total=computed_total,
                    fulfillment_status=FulfillmentStatus.PENDING,
                    payment_status=PaymentStatus.PENDING,
                )
                db.add(order)
                db.flush()  # Get order ID

                for item in order_data.items:
                    db.add(OrderService._build_item(order.id, item))

                db.commit()
            except Exception:
                db.rollback()
                logger.error(f"Order creation for user {user_id} rolled back")
                raise

            db.refresh(order)

            set_order_attributes(span, order)
            logger.info(f"Order {order.id} created successfully")

            return order

    async def create_payment_intent(
        self,
        db: Session,
        user_id: int,
        intent_data: PaymentIntentCreate
    ) -> Dict:
        """
        Ask the payment provider for a payment intent and link it to the local order

        The order is only touched after the provider answered successfully.
        """
        with tracer.start_as_current_span("order_service.create_payment_intent") as span:
            order_id = intent_data.order_id_from_db
            span.set_attribute("order.id", order_id)
            span.set_attribute("user.id", user_id)

            order = (
                db.query(Order)
                .filter(Order.id == order_id, Order.user_id == user_id)
                .first()
            )
            if not order:
                raise OrderNotFoundError(f"Order {order_id} not found")

            if order.payment_status != PaymentStatus.PENDING:
                logger.warning(f"Order {order_id} is already {order.payment_status.value}")
                raise OrderStateConflict("Order is not awaiting payment")

            if Decimal(order.total).quantize(CENTS) != intent_data.amount.quantize(CENTS):
                logger.warning(
                    f"Payment amount {intent_data.amount} does not match order {order_id} total {order.total}"
                )
                raise ValueError("Amount does not match order total")

            intent = await self.payment_client.create_order(
                amount=Decimal(order.total),
                currency=intent_data.currency,
                receipt=intent_data.receipt,
                local_order_id=order_id,
            )
            if not intent or not intent.get("id"):
                raise PaymentProviderError(f"Payment intent for order {order_id} was not created")

            try:
                order.razorpay_order_id = intent["id"]
                db.commit()
            except Exception:
                db.rollback()
                raise

            set_order_attributes(span, order)
            logger.info(f"Order {order_id} linked to payment intent {intent['id']}")

            return intent

    def verify_payment(self, db: Session, verification: PaymentVerification) -> Tuple[Order, bool]:
        """
        Check the checkout signature and mark the order paid

        Returns:
            (order, transitioned) - transitioned is False when the same
            callback was already applied
        """
        with tracer.start_as_current_span("order_service.verify_payment") as span:
            provider_order_id = verification.razorpay_order_id
            provider_payment_id = verification.razorpay_payment_id
            span.set_attribute("payment.intent_id", provider_order_id)

            if not self.payment_client.verify_payment_signature(
                provider_order_id,
                provider_payment_id,
                verification.razorpay_signature
            ):
                span.set_attribute("payment.signature_valid", False)
                logger.warning(f"Invalid payment signature for intent {provider_order_id}")
                raise InvalidSignatureError("Invalid signature")

            span.set_attribute("payment.signature_valid", True)

            # Conditional update: only a pending order can become paid
            try:
                updated = (
                    db.query(Order)
                    .filter(
                        Order.razorpay_order_id == provider_order_id,
                        Order.payment_status == PaymentStatus.PENDING,
                    )
                    .update(
                        {
                            Order.payment_status: PaymentStatus.PAID,
                            Order.razorpay_payment_id: provider_payment_id,
                        },
                        synchronize_session=False
                    )
                )
                db.commit()
            except Exception:
                db.rollback()
                raise

            order = (
                db.query(Order)
                .options(selectinload(Order.items))
                .filter(Order.razorpay_order_id == provider_order_id)
                .first()
            )

            if updated:
                set_order_attributes(span, order)
                logger.info(f"Order {order.id} paid with payment {provider_payment_id}")
                return order, True

            if order is None:
                logger.warning(f"No order for payment intent {provider_order_id}")
                raise OrderNotFoundError("Order not found")

            if order.payment_status == PaymentStatus.PAID and order.razorpay_payment_id == provider_payment_id:
                logger.info(f"Order {order.id} payment {provider_payment_id} already verified")
                return order, False

            logger.warning(
                f"Order {order.id} payment already settled as {order.payment_status.value}, "
                f"ignoring payment {provider_payment_id}"
            )
            raise OrderStateConflict("Order payment is already settled")

    @staticmethod
    def get_order(db: Session, order_id: int) -> Optional[Order]:
        """Get order by ID"""
        with tracer.start_as_current_span("order_service.get_order") as span:
            span.set_attribute("order.id", order_id)
            return (
                db.query(Order)
                .options(selectinload(Order.items))
                .filter(Order.id == order_id)
                .first()
            )

    @staticmethod
    def get_orders(
        db: Session,
        skip: int = 0,
        limit: int = 100,
        user_id: Optional[int] = None,
        fulfillment_status: Optional[FulfillmentStatus] = None,
        payment_status: Optional[PaymentStatus] = None
    ) -> Tuple[List[Order], int]:
        """Get list of orders with filters, newest first"""
        with tracer.start_as_current_span("order_service.get_orders") as span:
            query = db.query(Order)

            if user_id:
                query = query.filter(Order.user_id == user_id)
                span.set_attribute("filter.user_id", user_id)

            if fulfillment_status:
                query = query.filter(Order.fulfillment_status == fulfillment_status)
                span.set_attribute("filter.fulfillment_status", fulfillment_status.value)

            if payment_status:
                query = query.filter(Order.payment_status == payment_status)
                span.set_attribute("filter.payment_status", payment_status.value)

            total = query.count()
            orders = (
                query.options(selectinload(Order.items))
                .order_by(Order.id.desc())
                .offset(skip)
                .limit(limit)
                .all()
            )

            span.set_attribute("orders.total", total)
            span.set_attribute("orders.returned", len(orders))

            return orders, total

    @staticmethod
    def update_fulfillment_status(
        db: Session,
        order_id: int,
        status: FulfillmentStatus
    ) -> Tuple[Optional[Order], bool]:
        """
        Move an order along the fulfillment track

        Returns:
            (order, changed) - order is None when the id is unknown,
            changed is False when the status was already current
        """
        with tracer.start_as_current_span("order_service.update_status") as span:
            span.set_attribute("order.id", order_id)
            span.set_attribute("status.new", status.value)

            order = OrderService.get_order(db, order_id)
            if not order:
                return None, False

            old_status = order.fulfillment_status
            span.set_attribute("status.old", old_status.value)

            if not can_change_fulfillment(order.payment_status, old_status, status):
                logger.warning(
                    f"Rejected status change for order {order_id}: {old_status.value} -> {status.value} "
                    f"(payment {order.payment_status.value})"
                )
                raise OrderStateConflict("Invalid status transition")

            if status == old_status:
                return order, False

            # Only apply if nobody changed the order since we read it
            updated = (
                db.query(Order)
                .filter(
                    Order.id == order_id,
                    Order.fulfillment_status == old_status,
                    Order.payment_status == order.payment_status,
                )
                .update({Order.fulfillment_status: status}, synchronize_session=False)
            )
            if not updated:
                db.rollback()
                raise OrderStateConflict("Order was modified concurrently")

            db.commit()
            db.refresh(order)
            set_order_attributes(span, order)

            logger.info(f"Order {order_id} status updated: {old_status.value} -> {status.value}")

            return order, True

    @staticmethod
    def mark_payment_failed(db: Session, order_id: int) -> Optional[Order]:
        """Record that the payment for a pending order failed"""
        with tracer.start_as_current_span("order_service.mark_payment_failed") as span:
            span.set_attribute("order.id", order_id)

            order = OrderService.get_order(db, order_id)
            if not order:
                return None

            if not can_change_payment(order.fulfillment_status, order.payment_status, PaymentStatus.FAILED):
                logger.warning(
                    f"Cannot mark order {order_id} failed from payment {order.payment_status.value} "
                    f"/ fulfillment {order.fulfillment_status.value}"
                )
                raise OrderStateConflict("Invalid status transition")

            updated = (
                db.query(Order)
                .filter(
                    Order.id == order_id,
                    Order.payment_status == PaymentStatus.PENDING,
                    Order.fulfillment_status == order.fulfillment_status,
                )
                .update({Order.payment_status: PaymentStatus.FAILED}, synchronize_session=False)
            )
            if not updated:
                db.rollback()
                raise OrderStateConflict("Order was modified concurrently")

            db.commit()
            db.refresh(order)
            set_order_attributes(span, order)

            logger.info(f"Order {order_id} payment marked failed")

            return order
