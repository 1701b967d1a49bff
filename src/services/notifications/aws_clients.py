"""
AWS SES client wrapper with error handling.

This module provides the client used to deliver order emails through AWS
SES, with bounded retry and exponential backoff for throttling and
connection errors. Calls are blocking; async callers run them in a worker
thread.
"""

import time
from typing import Any, Optional

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    EndpointConnectionError,
)

from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

NON_RETRYABLE_ERROR_CODES = frozenset(
    {
        "MessageRejected",
        "MailFromDomainNotVerified",
        "ConfigurationSetDoesNotExist",
    }
)


class SESClientError(Exception):
    """Exception for SES delivery errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context = context


class SESClient:
    """
    AWS SES client wrapper with retry logic.

    Args:
        aws_access_key_id: AWS access key ID (defaults to settings, then the
            boto3 credential chain)
        aws_secret_access_key: AWS secret access key (defaults to settings)
        region_name: AWS region name (defaults to settings)
        from_address: Default sender address (defaults to settings)
        max_retries: Maximum number of send attempts
        retry_backoff: Initial backoff time in seconds between attempts
        client: Pre-built boto3 SES client, mainly for tests
    """

    def __init__(
        self,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: Optional[str] = None,
        from_address: Optional[str] = None,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
        client: Any = None,
    ) -> None:
        settings = get_settings()

        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.from_address = from_address or settings.ses_from_email

        self._client = client or boto3.client(
            "ses",
            aws_access_key_id=aws_access_key_id or settings.aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key
            or settings.aws_secret_access_key,
            region_name=region_name or settings.aws_region,
        )

    def send_email(
        self,
        to_addresses: list[str],
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
        from_address: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Send email via AWS SES with retry logic.

        Args:
            to_addresses: List of recipient email addresses
            subject: Email subject
            body_text: Plain text email body
            body_html: HTML email body (optional)
            from_address: Sender email address (defaults to the client's)

        Returns:
            Dictionary containing message ID and delivery status

        Raises:
            SESClientError: If email sending fails after retries or SES
                rejects the message outright
        """
        from_address = from_address or self.from_address

        if not to_addresses:
            raise SESClientError(
                "At least one recipient email address is required",
                to_addresses=to_addresses,
            )

        message: dict[str, Any] = {
            "Subject": {"Data": subject, "Charset": "UTF-8"},
            "Body": {"Text": {"Data": body_text, "Charset": "UTF-8"}},
        }
        if body_html:
            message["Body"]["Html"] = {"Data": body_html, "Charset": "UTF-8"}

        last_exception: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                response = self._client.send_email(
                    Source=from_address,
                    Destination={"ToAddresses": to_addresses},
                    Message=message,
                )

                message_id = response["MessageId"]
                logger.info(
                    "Email sent via SES",
                    message_id=message_id,
                    attempt=attempt + 1,
                    subject=subject,
                )
                return {
                    "message_id": message_id,
                    "status": "sent",
                    "to_addresses": to_addresses,
                }

            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")
                error_message = e.response.get("Error", {}).get("Message", str(e))

                logger.warning(
                    "SES client error",
                    attempt=attempt + 1,
                    error_code=error_code,
                    error_message=error_message,
                )
                last_exception = e

                if error_code in NON_RETRYABLE_ERROR_CODES:
                    raise SESClientError(
                        f"SES error: {error_message}",
                        error_code=error_code,
                    ) from e

            except (BotoConnectionError, EndpointConnectionError, BotoCoreError) as e:
                logger.warning(
                    "SES connection error",
                    attempt=attempt + 1,
                    error=str(e),
                )
                last_exception = e

            if attempt < self.max_retries - 1:
                time.sleep(self.retry_backoff * (2**attempt))

        raise SESClientError(
            f"Failed to send email after {self.max_retries} attempts",
            last_error=str(last_exception),
        ) from last_exception
