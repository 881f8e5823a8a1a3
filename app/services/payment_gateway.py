"""PayPal client used by the subscription ledger.

With PAYPAL_API_BASE unset the gateway runs in mock mode: every order verifies
and every cancel succeeds. Configured, it talks to the PayPal REST API with a
client-credentials token. Calls are made once, with the configured timeout and
no retries.
"""

import logging

import httpx

from app.config import settings
from app.errors import PaymentProviderError

logger = logging.getLogger(__name__)

VERIFIED_ORDER_STATUSES = {"COMPLETED", "APPROVED"}


class PaymentGateway:
    def __init__(
        self,
        api_base: str = "",
        client_id: str = "",
        client_secret: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self._transport = transport

    @property
    def mock_mode(self) -> bool:
        return not self.api_base

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.api_base, timeout=self.timeout, transport=self._transport)

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        resp = await client.post(
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
        )
        resp.raise_for_status()
        return resp.json()["access_token"]

    async def verify_payment(self, order_id: str) -> bool:
        logger.info("Verifying PayPal payment: %s", order_id)
        if not order_id:
            return False
        if self.mock_mode:
            return True

        try:
            async with self._client() as client:
                token = await self._access_token(client)
                resp = await client.get(
                    f"/v2/checkout/orders/{order_id}",
                    headers={"Authorization": f"Bearer {token}"},
                )
                if resp.status_code == 404:
                    return False
                resp.raise_for_status()
                status = resp.json().get("status", "")
        except httpx.HTTPError as e:
            logger.error("PayPal verification failed for %s: %s", order_id, e)
            raise PaymentProviderError("Payment provider unavailable") from e

        return status in VERIFIED_ORDER_STATUSES

    async def cancel_subscription(self, subscription_ref: str, reason: str = "Cancelled by user") -> bool:
        logger.info("Cancelling PayPal subscription: %s", subscription_ref)
        if self.mock_mode:
            return True

        try:
            async with self._client() as client:
                token = await self._access_token(client)
                resp = await client.post(
                    f"/v1/billing/subscriptions/{subscription_ref}/cancel",
                    json={"reason": reason},
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as e:
            logger.error("PayPal cancel failed for %s: %s", subscription_ref, e)
            return False

        if resp.status_code >= 400:
            logger.warning("PayPal cancel for %s returned %d", subscription_ref, resp.status_code)
            return False
        return True


def gateway_from_settings() -> PaymentGateway:
    return PaymentGateway(
        api_base=settings.paypal_api_base,
        client_id=settings.paypal_client_id,
        client_secret=settings.paypal_client_secret,
        timeout=settings.paypal_timeout_seconds,
    )
