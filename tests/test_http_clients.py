"""Tests for the payments HTTP client against httpx.MockTransport."""
import json

import httpx
import pytest

from order_lifecycle.domain.exceptions import PaymentServiceError
from order_lifecycle.infrastructure.http_clients import HTTPPaymentsClient


def _client(handler):
    return HTTPPaymentsClient("http://payments.local/", "secret-token", transport=httpx.MockTransport(handler))


class TestPaymentsClient:
    async def test_refund_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["api_key"] = request.headers["X-API-Key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "re_42", "amount": 7000, "status": "succeeded"})

        confirmation = await _client(handler).refund("pay_1", 7000, "order_refund_o1")

        assert confirmation.id == "re_42"
        assert confirmation.amount == 7000
        assert seen["url"] == "http://payments.local/api/payments/pay_1/refunds"
        assert seen["api_key"] == "secret-token"
        assert seen["body"] == {"amount": 7000, "idempotency_key": "order_refund_o1"}

    async def test_pending_refund_is_accepted(self):
        def handler(request):
            return httpx.Response(200, json={"id": "re_1", "status": "pending"})

        confirmation = await _client(handler).refund("pay_1", 500, "k")
        assert confirmation.status == "pending"
        assert confirmation.amount == 500

    @pytest.mark.parametrize("status_code", [400, 409, 500, 503])
    async def test_error_status(self, status_code):
        def handler(request):
            return httpx.Response(status_code, json={"detail": "nope"})

        with pytest.raises(PaymentServiceError):
            await _client(handler).refund("pay_1", 500, "k")

    async def test_declined_refund(self):
        def handler(request):
            return httpx.Response(200, json={"id": "re_1", "status": "failed"})

        with pytest.raises(PaymentServiceError):
            await _client(handler).refund("pay_1", 500, "k")

    async def test_malformed_body(self):
        def handler(request):
            return httpx.Response(200, content=b"not json")

        with pytest.raises(PaymentServiceError):
            await _client(handler).refund("pay_1", 500, "k")

    async def test_missing_id(self):
        def handler(request):
            return httpx.Response(200, json={"status": "succeeded"})

        with pytest.raises(PaymentServiceError):
            await _client(handler).refund("pay_1", 500, "k")

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(PaymentServiceError):
            await _client(handler).refund("pay_1", 500, "k")

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(PaymentServiceError):
            await _client(handler).refund("pay_1", 500, "k")
