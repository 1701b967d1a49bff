"""
FastAPI dependencies for authentication, authorization and services.

This module provides dependency functions for JWT authentication, role-based
access control, database session management and construction of the
request-scoped order, review and payment services.
"""

from functools import partial
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import get_settings
from src.core.logging import get_logger, set_user_id
from src.core.security import TokenError, decode_access_token
from src.database.connection import get_db, run_after_commit
from src.database.models.user import User
from src.services.notifications.service import NotificationService
from src.services.orders.reviews import ReviewService
from src.services.orders.service import OrderService
from src.services.payments.gateway_client import GatewayConfig, ZaloPayClient
from src.services.payments.service import PaymentService

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Validate JWT token and retrieve current authenticated user.

    Args:
        credentials: HTTP Bearer token from Authorization header
        db: Database session

    Returns:
        User: Authenticated user object

    Raises:
        HTTPException: 401 if token is invalid, expired, or user not found;
            403 if the account is inactive
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise credentials_exception

    try:
        payload = decode_access_token(credentials.credentials)
    except TokenError as e:
        logger.warning(
            "Authentication failed: JWT validation error",
            error_code=e.code,
        )
        raise credentials_exception

    user_id_str: Optional[str] = payload.get("sub")
    if user_id_str is None:
        logger.warning("Authentication failed: Token missing 'sub' claim")
        raise credentials_exception

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        logger.warning(
            "Authentication failed: Invalid user ID format",
            user_id=user_id_str,
        )
        raise credentials_exception

    try:
        user = await db.get(User, user_id)
    except SQLAlchemyError as e:
        logger.error(
            "Database error during user retrieval",
            user_id=str(user_id),
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )

    if user is None:
        logger.warning(
            "Authentication failed: User not found",
            user_id=str(user_id),
        )
        raise credentials_exception

    if not user.is_active:
        logger.warning(
            "Authentication failed: User account is inactive",
            user_id=str(user.id),
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account",
        )

    set_user_id(str(user.id))
    logger.debug(
        "User authenticated",
        user_id=str(user.id),
        role=user.role.value,
    )

    return user


async def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """
    Dependency for endpoints requiring admin access.

    Raises:
        HTTPException: 403 if the user is not an admin
    """
    if not current_user.is_admin:
        logger.warning(
            "Access denied: Insufficient permissions",
            user_id=str(current_user.id),
            user_role=current_user.role.value,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )

    return current_user


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentAdmin = Annotated[User, Depends(get_current_admin)]
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]


def get_gateway_client() -> ZaloPayClient:
    """Gateway client configured from settings."""
    return ZaloPayClient(GatewayConfig.from_settings(get_settings()))


def get_notification_service() -> NotificationService:
    return NotificationService()


async def get_payment_service(
    db: DatabaseSession,
    gateway: Annotated[ZaloPayClient, Depends(get_gateway_client)],
) -> PaymentService:
    """Payment service bound to the request session."""
    return PaymentService(db, gateway)


async def get_order_service(
    db: DatabaseSession,
    payment_service: Annotated[PaymentService, Depends(get_payment_service)],
    notification_service: Annotated[
        NotificationService, Depends(get_notification_service)
    ],
) -> OrderService:
    """
    Order service bound to the request session.

    Completion emails start only once the request session has committed.
    """
    return OrderService(
        db,
        settings=get_settings(),
        payment_service=payment_service,
        notification_service=notification_service,
        schedule_task=partial(run_after_commit, db),
    )


async def get_review_service(db: DatabaseSession) -> ReviewService:
    return ReviewService(db)


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]
ReviewServiceDep = Annotated[ReviewService, Depends(get_review_service)]
