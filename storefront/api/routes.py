"""
FastAPI routes for Order Service
"""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from storefront.api.auth import CurrentUser, get_current_user, require_admin
from storefront.db.database import get_db
from storefront.services.notifier import EmailNotifier
from storefront.services.order_service import (
    OrderService,
    OrderNotFoundError,
    OrderStateConflict,
    InvalidSignatureError,
    PaymentProviderError,
)
from storefront.services.payment_client import RazorpayClient
from storefront.models.schemas import (
    OrderCreate,
    OrderCreated,
    OrderResponse,
    OrderListResponse,
    StatusUpdate,
    PaymentIntentCreate,
    PaymentIntent,
    PaymentVerification,
    PaymentVerified,
    MessageResponse,
)
from storefront.models.order import FulfillmentStatus, PaymentStatus
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

# Initialized in main.py
payment_client = None
notifier = None


def get_payment_client() -> RazorpayClient:
    """Dependency for the payment provider client"""
    return payment_client


def get_notifier() -> Optional[EmailNotifier]:
    """Dependency for the email notifier"""
    return notifier


def get_order_service(client: RazorpayClient = Depends(get_payment_client)) -> OrderService:
    """Dependency for Order Service"""
    return OrderService(client)


def server_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Server error"
    )


@router.get("/my-orders", response_model=List[OrderResponse])
async def my_orders(
    skip: int = Query(0, ge=0, description="Number of orders to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Max orders to return"),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    List the caller's orders, newest first

    - **skip**: Number of orders to skip (for pagination)
    - **limit**: Maximum number of orders to return
    """
    logger.info(f"Listing orders for user {user.id}: skip={skip}, limit={limit}")

    orders, _ = OrderService.get_orders(db=db, skip=skip, limit=limit, user_id=user.id)
    return orders


@router.post(
    "",
    response_model=OrderCreated,
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    order: OrderCreate,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    email_notifier: Optional[EmailNotifier] = Depends(get_notifier)
):
    """
    Create a new order

    - **items**: cart lines `{productId, quantity, price}` (at least one)
    - **total**: must equal the sum of price x quantity
    """
    logger.info(f"Creating order for user {user.id}")

    try:
        new_order = OrderService.create_order(db, user.id, order, customer_email=user.email)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create order: {e}", exc_info=True)
        raise server_error()

    if email_notifier:
        background_tasks.add_task(
            email_notifier.notify_order_created,
            OrderResponse.model_validate(new_order)
        )

    return OrderCreated(message="Order created successfully", order_id=new_order.id)


@router.post("/create-order", response_model=PaymentIntent)
async def create_payment_intent(
    intent: PaymentIntentCreate,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """
    Create a provider payment intent for an existing order

    - **amount**: order total in major units (converted to minor units for the provider)
    - **currency**: ISO currency code, e.g. INR
    - **receipt**: merchant receipt label
    - **order_id_from_db**: local order id
    """
    logger.info(f"Creating payment intent for order {intent.order_id_from_db}")

    try:
        return await order_service.create_payment_intent(db, user.id, intent)
    except OrderNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    except OrderStateConflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (PaymentProviderError, SQLAlchemyError) as e:
        logger.error(f"Failed to create payment intent: {e}", exc_info=True)
        raise server_error()


@router.post("/verify-payment", response_model=PaymentVerified)
async def verify_payment(
    verification: PaymentVerification,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service),
    email_notifier: Optional[EmailNotifier] = Depends(get_notifier)
):
    """
    Verify a checkout callback and mark the order paid

    The HMAC signature over `razorpay_order_id|razorpay_payment_id` is the only gate.
    """
    try:
        order, transitioned = order_service.verify_payment(db, verification)
    except InvalidSignatureError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except OrderNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    except OrderStateConflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except SQLAlchemyError as e:
        logger.error(f"Failed to verify payment: {e}", exc_info=True)
        raise server_error()

    if transitioned and email_notifier:
        background_tasks.add_task(
            email_notifier.notify_payment_confirmed,
            OrderResponse.model_validate(order)
        )

    return PaymentVerified(
        message="Payment verified successfully",
        order_id=order.id,
        payment_id=verification.razorpay_payment_id
    )


@router.get("", response_model=OrderListResponse)
async def list_orders(
    skip: int = Query(0, ge=0, description="Number of items to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Max items to return"),
    user_id: Optional[int] = Query(None, description="Filter by user ID"),
    fulfillment_status: Optional[FulfillmentStatus] = Query(None, description="Filter by fulfillment status"),
    payment_status: Optional[PaymentStatus] = Query(None, description="Filter by payment status"),
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    List all orders with pagination and filters (admin only)
    """
    logger.info(
        f"Listing orders: skip={skip}, limit={limit}, user_id={user_id}, "
        f"fulfillment_status={fulfillment_status}, payment_status={payment_status}"
    )

    orders, total = OrderService.get_orders(
        db=db,
        skip=skip,
        limit=limit,
        user_id=user_id,
        fulfillment_status=fulfillment_status,
        payment_status=payment_status
    )

    return OrderListResponse(
        total=total,
        orders=orders,
        page=skip // limit + 1,
        page_size=limit
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get a specific order (owner or admin)"""
    order = OrderService.get_order(db, order_id)
    if not order or (order.user_id != user.id and not user.is_admin):
        logger.warning(f"Order {order_id} not found for user {user.id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    return order


@router.put("/{order_id}/status", response_model=MessageResponse)
async def update_order_status(
    order_id: int,
    status_update: StatusUpdate,
    background_tasks: BackgroundTasks,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
    email_notifier: Optional[EmailNotifier] = Depends(get_notifier)
):
    """
    Update fulfillment status (admin only)

    Available statuses:
    - pending
    - processing
    - shipped
    - delivered
    """
    try:
        new_status = FulfillmentStatus(status_update.status)
    except ValueError:
        logger.warning(f"Invalid status '{status_update.status}' for order {order_id}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid status")

    logger.info(f"Admin {admin.id} updating order {order_id} status to {new_status.value}")

    try:
        updated_order, changed = OrderService.update_fulfillment_status(db, order_id, new_status)
    except OrderStateConflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except SQLAlchemyError as e:
        logger.error(f"Failed to update order {order_id}: {e}", exc_info=True)
        raise server_error()

    if not updated_order:
        logger.warning(f"Order {order_id} not found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    if changed and email_notifier:
        background_tasks.add_task(
            email_notifier.notify_status_changed,
            OrderResponse.model_validate(updated_order)
        )

    return MessageResponse(message="Order status updated successfully")


@router.put("/{order_id}/payment-status", response_model=MessageResponse)
async def update_payment_status(
    order_id: int,
    status_update: StatusUpdate,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Mark a pending payment as failed (admin only)

    `paid` is only reachable through a verified checkout callback.
    """
    if status_update.status != PaymentStatus.FAILED.value:
        logger.warning(f"Invalid payment status '{status_update.status}' for order {order_id}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid status")

    logger.info(f"Admin {admin.id} marking order {order_id} payment failed")

    try:
        updated_order = OrderService.mark_payment_failed(db, order_id)
    except OrderStateConflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except SQLAlchemyError as e:
        logger.error(f"Failed to update order {order_id}: {e}", exc_info=True)
        raise server_error()

    if not updated_order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    return MessageResponse(message="Payment status updated successfully")
