import asyncio
import json

import httpx
import pytest

from freshmarket.errors import GatewayTimeout, UpstreamError
from freshmarket.utils.fedapay_client import FedaPayClient

API_URL = "https://sandbox-api.fedapay.com/v1/"


def _client(handler):
    return FedaPayClient(api_url=API_URL, api_key="sk_sandbox_test", timeout=5,
                         transport=httpx.MockTransport(handler))


def test_create_transaction_request_and_response():
    seen = {}

    def handler(request):
        seen["request"] = request
        return httpx.Response(200, json={"v1/transaction": {
            "id": 4242, "reference": "trx_abc", "status": "pending",
        }})

    txn = asyncio.run(_client(handler).create_transaction(amount=2500, phone="+22997000001",
                                                          order_id=17, mode="mtn"))

    assert txn == {"id": "4242", "reference": "trx_abc", "status": "pending", "payment_url": None}

    request = seen["request"]
    assert request.method == "POST"
    assert str(request.url) == API_URL + "transactions"
    assert request.headers["Authorization"] == "Bearer sk_sandbox_test"
    body = json.loads(request.content)
    assert body["amount"] == 2500
    assert body["mode"] == "mtn_benin"
    assert body["description"] == "Commande Fresh Market #17"
    assert body["custom_metadata"] == {"order_id": 17}
    assert body["customer"]["phone_number"] == {"number": "+22997000001", "country": "BJ"}
    assert body["callback_url"].endswith("/webhooks/fedapay")


def test_card_payments_leave_mode_to_checkout():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": 1, "payment_url": "https://checkout.fedapay.com/x"})

    txn = asyncio.run(_client(handler).create_transaction(amount=1000, phone="+22997000001",
                                                          order_id=3, mode="cartes"))

    assert "mode" not in seen["body"]
    assert txn["payment_url"] == "https://checkout.fedapay.com/x"


def test_get_transaction():
    def handler(request):
        assert request.method == "GET"
        assert request.url.path == "/v1/transactions/4242"
        return httpx.Response(200, json={"v1/transaction": {
            "id": 4242, "reference": "trx_abc", "status": "approved", "custom_metadata": {"order_id": 17},
        }})

    txn = asyncio.run(_client(handler).get_transaction("4242"))

    assert txn == {"id": "4242", "reference": "trx_abc", "status": "approved", "custom_metadata": {"order_id": 17}}


def test_provider_error_message_is_surfaced():
    def handler(request):
        return httpx.Response(400, json={"message": "Numéro de téléphone invalide"})

    with pytest.raises(UpstreamError) as exc:
        asyncio.run(_client(handler).create_transaction(amount=1000, phone="1", order_id=1, mode="moov"))

    assert exc.value.message == "Numéro de téléphone invalide"
    assert exc.value.status_code == 400


def test_missing_transaction_id_is_an_error():
    def handler(request):
        return httpx.Response(200, json={"v1/transaction": {"status": "pending"}})

    with pytest.raises(UpstreamError):
        asyncio.run(_client(handler).create_transaction(amount=1000, phone="1", order_id=1, mode="mtn"))


def test_timeout_maps_to_gateway_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(GatewayTimeout):
        asyncio.run(_client(handler).get_transaction("1"))


def test_unreachable_provider():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamError) as exc:
        asyncio.run(_client(handler).get_transaction("1"))

    assert not isinstance(exc.value, GatewayTimeout)
    assert "unreachable" in exc.value.message
