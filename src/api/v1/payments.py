"""
Payment gateway API endpoints.

This module implements the FastAPI router for ZaloPay payments: opening a
gateway transaction for an order, receiving the provider's signed callback
and polling the provider for the status of a transaction.
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import ValidationError

from src.api.deps import CurrentUser, PaymentServiceDep
from src.core.logging import get_logger
from src.schemas.payments import (
    GatewayCallbackRequest,
    GatewayCallbackResponse,
    PaymentInitiateRequest,
    PaymentInitiateResponse,
)
from src.services.orders.errors import OrderServiceError
from src.services.payments.service import CALLBACK_REJECTED

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/zalopay",
    response_model=PaymentInitiateResponse,
    status_code=status.HTTP_200_OK,
    summary="Initiate ZaloPay payment",
    description="Open a gateway transaction for an unpaid order and return the "
    "provider payment URL",
)
async def create_zalopay_payment(
    request: PaymentInitiateRequest,
    current_user: CurrentUser,
    payment_service: PaymentServiceDep,
) -> PaymentInitiateResponse:
    """
    Open a gateway transaction for one of the caller's orders.

    Raises:
        HTTPException: 404 for an unknown order, 403 for someone else's
            order, 400 if the order is already paid or closed, 502 if the
            provider is unreachable or rejects the request
    """
    try:
        result = await payment_service.initiate_for_order_id(request.order_id, current_user)
    except OrderServiceError as e:
        log = logger.error if e.status_code >= 500 else logger.warning
        log(
            "Payment initiation failed",
            order_id=request.order_id,
            user_id=str(current_user.id),
            error=str(e),
            error_code=e.code,
        )
        raise HTTPException(status_code=e.status_code, detail=e.to_detail()) from e

    return PaymentInitiateResponse(**result)


@router.post(
    "/zalopay/callback",
    response_model=GatewayCallbackResponse,
    status_code=status.HTTP_200_OK,
    summary="ZaloPay callback",
    description="Signed payment result posted by the provider. Always answers "
    "200; the outcome is carried in return_code.",
)
async def zalopay_callback(
    request: Request,
    payment_service: PaymentServiceDep,
) -> GatewayCallbackResponse:
    """
    Verify and apply a provider callback.

    The body is parsed here rather than by FastAPI so that a malformed body
    is answered with -1 and a 200 like any other unauthenticated callback.
    A callback whose mac does not verify changes nothing and is answered
    with -1; a processing failure is answered with 0 so the provider
    retries.
    """
    body = await request.body()
    try:
        callback = GatewayCallbackRequest.model_validate_json(body or b"{}")
    except ValidationError as e:
        logger.warning(
            "Gateway callback body rejected",
            error_count=e.error_count(),
        )
        return GatewayCallbackResponse(
            return_code=CALLBACK_REJECTED,
            return_message="invalid callback body",
        )

    result = await payment_service.handle_callback(callback.data, callback.mac)

    logger.info(
        "Gateway callback handled",
        return_code=result["return_code"],
    )
    return GatewayCallbackResponse(**result)


@router.post(
    "/zalopay/order-status/{app_trans_id}",
    summary="Poll ZaloPay transaction status",
    description="Query the provider for a transaction; a failed payment "
    "cancels the order and returns its stock",
)
async def zalopay_order_status(
    app_trans_id: str,
    current_user: CurrentUser,
    payment_service: PaymentServiceDep,
) -> dict[str, Any]:
    """
    Return the provider's raw status response for a transaction.

    Raises:
        HTTPException: 502 if the provider cannot be reached
    """
    try:
        return await payment_service.check_status(app_trans_id)
    except OrderServiceError as e:
        logger.error(
            "Payment status query failed",
            app_trans_id=app_trans_id,
            user_id=str(current_user.id),
            error=str(e),
            error_code=e.code,
        )
        raise HTTPException(status_code=e.status_code, detail=e.to_detail()) from e
