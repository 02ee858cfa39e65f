"""
Pydantic schemas for Order Service
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Dict, List, Optional
from datetime import datetime
from decimal import Decimal
from storefront.models.order import FulfillmentStatus, PaymentStatus


class OrderItemCreate(BaseModel):
    """One cart line as sent by the checkout page"""
    product_id: int = Field(..., gt=0, alias="productId", description="Product ID")
    quantity: int = Field(..., gt=0, description="Quantity")
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, description="Unit price snapshot")

    model_config = ConfigDict(populate_by_name=True)


class OrderCreate(BaseModel):
    """Schema for creating an order"""
    items: List[OrderItemCreate] = Field(..., min_length=1, description="At least one item required")
    total: Decimal = Field(..., gt=0, description="Client computed total, compared to the cent")


class OrderCreated(BaseModel):
    message: str
    order_id: int = Field(..., serialization_alias="orderId")


class OrderItemResponse(BaseModel):
    """Schema for order item response"""
    id: int
    product_id: int
    quantity: int
    price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    """Schema for order response"""
    id: int
    user_id: int
    customer_email: Optional[str] = None
    total: Decimal
    fulfillment_status: FulfillmentStatus
    payment_status: PaymentStatus
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    items: List[OrderItemResponse]
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderListResponse(BaseModel):
    """Schema for list of orders"""
    total: int
    orders: List[OrderResponse]
    page: int
    page_size: int


class StatusUpdate(BaseModel):
    """Admin status change; the value is checked against the allow-list by the route"""
    status: str


class PaymentIntentCreate(BaseModel):
    """Request a provider payment intent for a local order"""
    amount: Decimal = Field(..., gt=0, description="Order total in major units, compared to the cent")
    currency: str = Field(..., min_length=3, max_length=3)
    receipt: str = Field(..., min_length=1, max_length=40)
    order_id_from_db: int = Field(..., gt=0)


class PaymentVerification(BaseModel):
    """Values handed back by the provider checkout widget"""
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


class PaymentVerified(BaseModel):
    message: str
    order_id: int = Field(..., serialization_alias="orderId")
    payment_id: str = Field(..., serialization_alias="paymentId")


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    version: str
    timestamp: datetime
    payment_provider: str
    notifications: str


PaymentIntent = Dict[str, Any]
