"""
Payment gateway schemas.

This module defines Pydantic schemas for initiating online payments, the
provider's callback body and the callback acknowledgement.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PaymentInitiateRequest(BaseModel):
    """Request schema for (re)initiating an online payment."""

    order_id: str = Field(
        ...,
        min_length=1,
        max_length=32,
        description="Order to pay for",
    )


class PaymentInitiateResponse(BaseModel):
    """Gateway transaction opened for an order."""

    order_id: str
    app_trans_id: str = Field(..., description="Gateway correlation id")
    order_url: Optional[str] = Field(
        None,
        description="Provider page the customer is redirected to",
    )
    return_code: Optional[int] = None
    return_message: Optional[str] = None


class GatewayCallbackRequest(BaseModel):
    """
    Callback body posted by the payment provider.

    Both fields are optional so a malformed callback is answered with a
    rejection code instead of a validation error.
    """

    model_config = ConfigDict(extra="allow")

    data: Optional[str] = Field(None, description="JSON encoded transaction data")
    mac: Optional[str] = Field(None, description="HMAC-SHA256 of data under key2")


class GatewayCallbackResponse(BaseModel):
    """Acknowledgement returned to the provider."""

    return_code: int = Field(
        ...,
        description="1 accepted, 0 retry, -1 rejected",
    )
    return_message: str
