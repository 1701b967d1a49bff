"""
ZaloPay-style payment gateway client.

This module provides the HTTP client for the online payment provider:
signing and submitting create-order requests, verifying callback macs and
querying transaction status. Requests are form-encoded and signed with
HMAC-SHA256; key1 signs outbound requests, key2 verifies inbound callbacks.
Every outbound call has an explicit timeout and is never retried here;
transport failures surface as GatewayUnavailableError.
"""

import hashlib
import hmac
import json
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

import httpx

from src.core.config import Settings
from src.core.logging import get_logger, log_performance
from src.services.orders.errors import GatewayUnavailableError

logger = get_logger(__name__)

SUCCESS_RETURN_CODE = 1


@dataclass(frozen=True)
class GatewayConfig:
    """
    Payment gateway credentials and endpoints.

    Attributes:
        app_id: Merchant application id
        key1: Key signing create and query requests
        key2: Key verifying provider callbacks
        endpoint: API base URL; ``/create`` and ``/query`` are appended
        callback_url: Where the provider posts payment results
        redirect_url: Where the customer lands after paying
        timeout_seconds: Timeout for each outbound call
        timezone: Timezone of the ``YYMMDD`` prefix of transaction ids
        failure_codes: Query return codes meaning the payment failed
    """

    app_id: str
    key1: str = field(repr=False)
    key2: str = field(repr=False)
    endpoint: str
    callback_url: str
    redirect_url: str
    timeout_seconds: float = 5.0
    timezone: str = "Asia/Ho_Chi_Minh"
    failure_codes: frozenset[int] = frozenset({2, 3})

    @classmethod
    def from_settings(cls, settings: Settings) -> "GatewayConfig":
        return cls(
            app_id=settings.zalopay_app_id,
            key1=settings.zalopay_key1,
            key2=settings.zalopay_key2,
            endpoint=settings.zalopay_endpoint.rstrip("/"),
            callback_url=settings.zalopay_callback_url,
            redirect_url=settings.zalopay_redirect_url,
            timeout_seconds=settings.zalopay_timeout_seconds,
            timezone=settings.zalopay_timezone,
            failure_codes=frozenset(settings.zalopay_failure_codes),
        )


def _to_bytes(value: str) -> bytes:
    # Lone surrogates from JSON escapes must not abort signing
    return value.encode("utf-8", "surrogatepass")


def sign(key: str, data: str) -> str:
    """HMAC-SHA256 of ``data`` under ``key`` as lowercase hex."""
    return hmac.new(_to_bytes(key), _to_bytes(data), hashlib.sha256).hexdigest()


class ZaloPayClient:
    """
    Client for the payment provider's create and query endpoints.

    Args:
        config: Gateway credentials and endpoints
        http_client: Optional shared httpx client; one is created per call
            when omitted
        clock: Returns the current time, for transaction ids and app_time
    """

    def __init__(
        self,
        config: GatewayConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self._http_client = http_client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def new_app_trans_id(self) -> str:
        """Fresh transaction id: ``YYMMDD_`` in the provider timezone plus 6 random digits."""
        now = self._clock()
        tz = ZoneInfo(self.config.timezone)
        local = now.astimezone(tz) if now.tzinfo else now.replace(tzinfo=tz)
        return f"{local:%y%m%d}_{secrets.randbelow(1_000_000):06d}"

    def build_create_payload(
        self,
        app_trans_id: str,
        app_user: str,
        amount: int,
        items: list[dict[str, Any]],
        description: str,
    ) -> dict[str, str]:
        """
        Signed form fields for ``POST {endpoint}/create``.

        The mac covers ``app_id|app_trans_id|app_user|amount|app_time|embed_data|item``
        under key1.
        """
        app_time = str(int(time.time() * 1000))
        embed_data = json.dumps({"redirecturl": self.config.redirect_url})
        item = json.dumps(items)

        mac_input = "|".join(
            [
                self.config.app_id,
                app_trans_id,
                app_user,
                str(amount),
                app_time,
                embed_data,
                item,
            ]
        )

        return {
            "app_id": self.config.app_id,
            "app_trans_id": app_trans_id,
            "app_user": app_user,
            "app_time": app_time,
            "item": item,
            "embed_data": embed_data,
            "amount": str(amount),
            "description": description,
            "bank_code": "",
            "callback_url": self.config.callback_url,
            "mac": sign(self.config.key1, mac_input),
        }

    def build_query_payload(self, app_trans_id: str) -> dict[str, str]:
        """Signed form fields for ``POST {endpoint}/query``."""
        mac_input = f"{self.config.app_id}|{app_trans_id}|{self.config.key1}"
        return {
            "app_id": self.config.app_id,
            "app_trans_id": app_trans_id,
            "mac": sign(self.config.key1, mac_input),
        }

    def verify_callback(self, data: str, mac: str) -> bool:
        """
        Check a callback mac against key2 in constant time.

        Args:
            data: Raw ``data`` string exactly as received
            mac: Hex mac received with it

        Returns:
            True if the mac is authentic
        """
        expected = sign(self.config.key2, data or "")
        return hmac.compare_digest(expected.encode("ascii"), _to_bytes((mac or "").lower()))

    async def create_order(self, payload: dict[str, str]) -> dict[str, Any]:
        """
        Submit a create-order request.

        Returns:
            Provider response body

        Raises:
            GatewayUnavailableError: On timeout, transport error, HTTP error
                status or a non-JSON body
        """
        return await self._post("create", payload, app_trans_id=payload["app_trans_id"])

    async def query_order(self, app_trans_id: str) -> dict[str, Any]:
        """
        Query the provider for a transaction's status.

        Raises:
            GatewayUnavailableError: See create_order
        """
        return await self._post(
            "query",
            self.build_query_payload(app_trans_id),
            app_trans_id=app_trans_id,
        )

    async def _post(self, path: str, form: dict[str, str], app_trans_id: str) -> dict[str, Any]:
        url = f"{self.config.endpoint}/{path}"
        timeout = httpx.Timeout(self.config.timeout_seconds)

        with log_performance(logger, f"gateway_{path}", app_trans_id=app_trans_id):
            try:
                if self._http_client is not None:
                    response = await self._http_client.post(url, data=form, timeout=timeout)
                else:
                    async with httpx.AsyncClient(timeout=timeout) as client:
                        response = await client.post(url, data=form)
                response.raise_for_status()
                body = response.json()
            except httpx.TimeoutException as e:
                logger.error(
                    "Payment gateway timed out",
                    operation=path,
                    app_trans_id=app_trans_id,
                    timeout_seconds=self.config.timeout_seconds,
                )
                raise GatewayUnavailableError(
                    "Payment gateway did not respond in time, please retry",
                    app_trans_id=app_trans_id,
                ) from e
            except httpx.HTTPStatusError as e:
                logger.error(
                    "Payment gateway returned an error status",
                    operation=path,
                    app_trans_id=app_trans_id,
                    status_code=e.response.status_code,
                )
                raise GatewayUnavailableError(
                    "Payment gateway is unavailable, please retry later",
                    app_trans_id=app_trans_id,
                ) from e
            except (httpx.HTTPError, ValueError) as e:
                logger.error(
                    "Payment gateway request failed",
                    operation=path,
                    app_trans_id=app_trans_id,
                    error_type=type(e).__name__,
                )
                raise GatewayUnavailableError(
                    "Payment gateway is unavailable, please retry later",
                    app_trans_id=app_trans_id,
                ) from e

        if not isinstance(body, dict):
            raise GatewayUnavailableError(
                "Payment gateway returned an unexpected response",
                app_trans_id=app_trans_id,
            )

        logger.info(
            "Payment gateway responded",
            operation=path,
            app_trans_id=app_trans_id,
            return_code=body.get("return_code"),
        )
        return body
