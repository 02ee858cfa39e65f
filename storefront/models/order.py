"""
Order database models and the order status table
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum as SQLEnum, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from storefront.db.database import Base
import enum


class FulfillmentStatus(str, enum.Enum):
    """Where the parcel is"""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


class PaymentStatus(str, enum.Enum):
    """Whether the provider has captured the money"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


# Fulfillment only moves forward, one step at a time
FULFILLMENT_TRANSITIONS = {
    FulfillmentStatus.PENDING: {FulfillmentStatus.PROCESSING},
    FulfillmentStatus.PROCESSING: {FulfillmentStatus.SHIPPED},
    FulfillmentStatus.SHIPPED: {FulfillmentStatus.DELIVERED},
    FulfillmentStatus.DELIVERED: set(),
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: set(),
    PaymentStatus.FAILED: set(),
}

# Fulfillment states an order may occupy under each payment state
ALLOWED_STATES = {
    PaymentStatus.PENDING: {FulfillmentStatus.PENDING, FulfillmentStatus.PROCESSING},
    PaymentStatus.PAID: set(FulfillmentStatus),
    PaymentStatus.FAILED: {FulfillmentStatus.PENDING},
}


def is_allowed_state(payment: PaymentStatus, fulfillment: FulfillmentStatus) -> bool:
    """Check a (payment, fulfillment) pair against the state table"""
    return fulfillment in ALLOWED_STATES[payment]


def can_change_fulfillment(
    payment: PaymentStatus,
    current: FulfillmentStatus,
    target: FulfillmentStatus
) -> bool:
    """
    Whether an admin may move an order from `current` to `target`.

    Re-applying the current status is accepted as a no-op.
    """
    if target == current:
        return True
    return target in FULFILLMENT_TRANSITIONS[current] and is_allowed_state(payment, target)


def can_change_payment(
    fulfillment: FulfillmentStatus,
    current: PaymentStatus,
    target: PaymentStatus
) -> bool:
    """Whether the payment side may move from `current` to `target`"""
    return target in PAYMENT_TRANSITIONS[current] and is_allowed_state(target, fulfillment)


class Order(Base):
    """Order header"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    customer_email = Column(String(255), nullable=True)
    total = Column(Numeric(10, 2), nullable=False)

    fulfillment_status = Column(
        SQLEnum(FulfillmentStatus),
        default=FulfillmentStatus.PENDING,
        nullable=False
    )
    payment_status = Column(
        SQLEnum(PaymentStatus),
        default=PaymentStatus.PENDING,
        nullable=False
    )

    # Provider references
    razorpay_order_id = Column(String(64), unique=True, index=True, nullable=True)
    razorpay_payment_id = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")

    def __repr__(self):
        return (
            f"<Order(id={self.id}, fulfillment={self.fulfillment_status}, "
            f"payment={self.payment_status}, total={self.total})>"
        )


class OrderItem(Base):
    """Line item: a quantity/price snapshot belonging to one order"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")

    def __repr__(self):
        return f"<OrderItem(id={self.id}, product_id={self.product_id}, qty={self.quantity})>"
