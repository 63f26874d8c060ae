# freshmarket/utils/fedapay_client.py
import logging
from urllib.parse import urljoin

import httpx

from freshmarket.config import settings
from freshmarket.errors import UpstreamError, GatewayTimeout

logger = logging.getLogger(__name__)

# FedaPay payment modes per mobile-money operator
MODES = {
    "mtn": "mtn_benin",
    "moov": "moov_benin",
}

# Provider statuses that mean the buyer was charged / will not be charged
SUCCESS_STATUSES = {"approved", "successful", "transferred"}
FAILURE_STATUSES = {"declined", "canceled", "cancelled", "expired"}


def _unwrap(body: dict) -> dict:
    # FedaPay wraps resources as {"v1/transaction": {...}}
    if isinstance(body, dict):
        for key in ("v1/transaction", "transaction"):
            if isinstance(body.get(key), dict):
                return body[key]
    return body


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or str(body)
    return str(body)


class FedaPayClient:
    def __init__(self, api_url: str = None, api_key: str = None, timeout: float = None, transport=None):
        self.api_url = api_url or settings.fedapay_api_url
        self.api_key = api_key if api_key is not None else settings.FEDAPAY_PRIVATE_KEY
        self.timeout = timeout or settings.FEDAPAY_TIMEOUT_SECONDS
        self.callback_url = urljoin(settings.BACKEND_URL, "/webhooks/fedapay")
        # Injected by tests (httpx.MockTransport)
        self.transport = transport

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Api-Version": "v1",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        url = urljoin(self.api_url, path)
        async with self._client() as client:
            try:
                response = await client.request(method, url, headers=self._headers(), **kwargs)
            except httpx.TimeoutException as e:
                logger.warning("FedaPay %s %s timed out: %s", method, path, e)
                raise GatewayTimeout()
            except httpx.RequestError as e:
                logger.error("FedaPay %s %s failed: %s", method, path, e)
                raise UpstreamError(f"Payment provider unreachable: {e}")

        if response.status_code >= 400:
            message = _error_message(response)
            logger.error("FedaPay %s %s error %s: %s", method, path, response.status_code, message)
            raise UpstreamError(message)
        return _unwrap(response.json())

    async def create_transaction(self, amount: int, phone: str, order_id: int, mode: str) -> dict:
        """Create a transaction for an order.

        The order id travels both in ``custom_metadata`` (looked up by the
        webhook) and in the description, which older webhook payloads only
        carry.
        """
        payload = {
            "description": f"Commande Fresh Market #{order_id}",
            "amount": amount,
            "currency": {"iso": settings.FEDAPAY_CURRENCY},
            "callback_url": self.callback_url,
            "customer": {
                "firstname": "Client",
                "lastname": "Fresh Market",
                "phone_number": {"number": phone, "country": settings.FEDAPAY_COUNTRY},
            },
            "custom_metadata": {"order_id": order_id},
        }
        if mode in MODES:
            payload["mode"] = MODES[mode]

        logger.info("Creating FedaPay transaction for order %s (%s XOF, mode=%s)", order_id, amount, mode)
        data = await self._request("POST", "transactions", json=payload)

        if data.get("id") is None:
            raise UpstreamError("Payment provider returned no transaction id")
        return {
            "id": str(data["id"]),
            "reference": data.get("reference"),
            "status": data.get("status", "pending"),
            "payment_url": data.get("payment_url"),
        }

    async def get_transaction(self, transaction_id: str) -> dict:
        data = await self._request("GET", f"transactions/{transaction_id}")
        return {
            "id": str(data.get("id", transaction_id)),
            "reference": data.get("reference"),
            "status": data.get("status"),
            "custom_metadata": data.get("custom_metadata") or {},
        }


fedapay_client = FedaPayClient()


def get_payment_gateway() -> FedaPayClient:
    return fedapay_client
