"""
Order management API endpoints.

This module implements the FastAPI router for the order lifecycle: placing
orders, listing and reading them, owner cancellation, administrative status
updates and line reviews. Service errors are translated into HTTP errors
carrying a message, a machine readable code and context.
"""

from typing import NoReturn, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from src.api.deps import CurrentAdmin, CurrentUser, OrderServiceDep, ReviewServiceDep
from src.core.logging import get_logger
from src.schemas.orders import (
    OrderCreateRequest,
    OrderCreateResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    ReviewCreateRequest,
    ReviewListResponse,
    ReviewResponse,
)
from src.services.orders.enums import OrderStatus
from src.services.orders.errors import OrderServiceError

logger = get_logger(__name__)

router = APIRouter()


def _raise_http(e: OrderServiceError, operation: str) -> NoReturn:
    log = logger.error if e.status_code >= 500 else logger.warning
    log(
        f"{operation} failed",
        error=str(e),
        error_code=e.code,
        context=e.context,
    )
    raise HTTPException(status_code=e.status_code, detail=e.to_detail()) from e


@router.post(
    "",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place order",
    description="Price, reserve stock for and persist a new order. For online "
    "payment methods the response carries the gateway payment URL.",
)
async def create_order(
    request: OrderCreateRequest,
    current_user: CurrentUser,
    order_service: OrderServiceDep,
) -> OrderCreateResponse:
    """
    Place a new order for the authenticated user.

    Raises:
        HTTPException: 400 for invalid lines, vouchers or stock, 404 for
            unknown items or payment methods, 409 for a duplicate submission
    """
    logger.info(
        "Placing order",
        user_id=str(current_user.id),
        line_count=len(request.items),
        voucher_code=request.voucher_code,
    )

    try:
        placed = await order_service.place_order(current_user, request.to_command())
    except OrderServiceError as e:
        _raise_http(e, "Order placement")

    return OrderCreateResponse.from_placed(placed)


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List my orders",
    description="Paginated list of the caller's orders, newest first",
)
async def list_orders(
    current_user: CurrentUser,
    order_service: OrderServiceDep,
    status_filter: Optional[OrderStatus] = Query(
        None,
        alias="status",
        description="Filter by order status",
    ),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(20, ge=1, le=100, description="Maximum number of records to return"),
) -> OrderListResponse:
    orders, total = await order_service.list_orders(
        current_user,
        status=status_filter,
        skip=skip,
        limit=limit,
    )

    return OrderListResponse(
        items=[OrderResponse.from_model(order) for order in orders],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post(
    "/review",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Review an order line",
    description="Attach a rating and comment to a line of a completed order",
)
async def create_review(
    request: ReviewCreateRequest,
    current_user: CurrentUser,
    review_service: ReviewServiceDep,
) -> ReviewResponse:
    """
    Attach a review to a line of one of the caller's completed orders.

    Raises:
        HTTPException: 403 if the order belongs to someone else, 400 if the
            order is not completed or the line is already reviewed
    """
    try:
        line = await review_service.attach_review(
            order_id=request.order_id,
            menu_item_id=request.menu_item_id,
            rating=request.rating,
            user=current_user,
            comment=request.comment,
            size=request.size,
        )
    except OrderServiceError as e:
        _raise_http(e, "Review")

    return ReviewResponse.from_line(request.order_id, line, current_user.full_name)


@router.get(
    "/reviews/menu/{menu_item_id}",
    response_model=ReviewListResponse,
    summary="Reviews of a menu item",
)
async def list_menu_reviews(
    menu_item_id: UUID,
    review_service: ReviewServiceDep,
) -> ReviewListResponse:
    """Public list of reviews left for one menu item, newest first."""
    reviews = await review_service.list_menu_reviews(menu_item_id)
    return ReviewListResponse(
        items=[ReviewResponse(**review) for review in reviews],
        total=len(reviews),
        limit=len(reviews),
    )


@router.get(
    "/reviews",
    response_model=ReviewListResponse,
    summary="All reviews (admin)",
)
async def list_reviews(
    current_admin: CurrentAdmin,
    review_service: ReviewServiceDep,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> ReviewListResponse:
    reviews, total = await review_service.list_all_reviews(skip=skip, limit=limit)
    return ReviewListResponse(
        items=[ReviewResponse(**review) for review in reviews],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
    description="Order details, visible to the owner and to admins",
)
async def get_order(
    order_id: str,
    current_user: CurrentUser,
    order_service: OrderServiceDep,
) -> OrderResponse:
    try:
        order = await order_service.get_order(order_id, current_user)
    except OrderServiceError as e:
        _raise_http(e, "Order retrieval")

    return OrderResponse.from_model(order)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel order",
    description="Owner cancellation of a pending order within the "
    "cancellation window; reserved stock is returned",
)
async def cancel_order(
    order_id: str,
    current_user: CurrentUser,
    order_service: OrderServiceDep,
) -> OrderResponse:
    """
    Cancel one of the caller's pending orders.

    Raises:
        HTTPException: 403 for someone else's order, 400 if the order is no
            longer pending or the window has passed, 409 on a concurrent change
    """
    try:
        order = await order_service.cancel_order(order_id, current_user)
    except OrderServiceError as e:
        _raise_http(e, "Order cancellation")

    logger.info(
        "Order cancelled by owner",
        order_id=order_id,
        user_id=str(current_user.id),
    )
    return OrderResponse.from_model(order)


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Update order status (admin)",
)
async def update_order_status(
    order_id: str,
    update: OrderStatusUpdate,
    current_admin: CurrentAdmin,
    order_service: OrderServiceDep,
) -> OrderResponse:
    """
    Administrative status and payment status change.

    Completing a paid order emails the owner; cancelling returns stock.
    """
    try:
        order = await order_service.update_status(
            order_id,
            status=update.status,
            payment_status=update.payment_status,
        )
    except OrderServiceError as e:
        _raise_http(e, "Order status update")

    logger.info(
        "Order status updated by admin",
        order_id=order_id,
        admin_id=str(current_admin.id),
        status=order.status.value,
        payment_status=order.payment_status.value,
    )
    return OrderResponse.from_model(order)
