"""Tests for the httpx gateway client."""

import json

import httpx
import pytest

from mobile_money.engine.errors import TransportError
from mobile_money.engine.session import PaymentSessionController
from mobile_money.models.enums import PaymentModule, PaymentProvider, SessionStatus, TransactionStatus
from mobile_money.providers.base import PaymentRequest
from mobile_money.providers.http_gateway import HttpPaymentGateway

BASE_URL = "http://gateway.test/api"


def gateway_for(handler, **kwargs):
    return HttpPaymentGateway(base_url=BASE_URL, transport=httpx.MockTransport(handler), **kwargs)


def request(**kwargs):
    defaults = dict(
        phone="841234567",
        amount=150.0,
        provider=PaymentProvider.MPESA,
        reference="SALE-1",
        module=PaymentModule.POS,
    )
    defaults.update(kwargs)
    return PaymentRequest(**defaults)


class TestInitiate:
    @pytest.mark.asyncio
    async def test_success(self):
        seen = {}

        def handler(req: httpx.Request) -> httpx.Response:
            seen["url"] = str(req.url)
            seen["body"] = json.loads(req.content)
            seen["auth"] = req.headers.get("Authorization")
            return httpx.Response(200, json={
                "success": True,
                "transactionId": "TX1",
                "simulated": False,
                "message": "Confirm on your phone",
            })

        gateway = gateway_for(handler, api_key="secret")
        result = await gateway.initiate(request(module_reference_id="sale-9"))

        assert result.success is True
        assert result.transaction_id == "TX1"
        assert result.simulated is False
        assert seen["url"] == f"{BASE_URL}/payments/initiate"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"] == {
            "module": "pos",
            "provider": "mpesa",
            "phone": "841234567",
            "amount": 150.0,
            "reference": "SALE-1",
            "moduleReferenceId": "sale-9",
        }

    @pytest.mark.asyncio
    async def test_no_auth_header_without_key(self):
        seen = {}

        def handler(req):
            seen["auth"] = req.headers.get("Authorization")
            return httpx.Response(200, json={"success": True, "transactionId": "TX1"})

        await gateway_for(handler, api_key="").initiate(request())
        assert seen["auth"] is None

    @pytest.mark.asyncio
    async def test_business_rejection_is_a_value(self):
        def handler(req):
            return httpx.Response(400, json={"success": False, "message": "For M-Pesa, use a Vodacom number (84/85)"})

        result = await gateway_for(handler).initiate(request())

        assert result.success is False
        assert result.message == "For M-Pesa, use a Vodacom number (84/85)"

    @pytest.mark.asyncio
    async def test_schema_rejection_message(self):
        def handler(req):
            return httpx.Response(422, json={"detail": [{"loc": ["body", "amount"], "msg": "Field required"}]})

        result = await gateway_for(handler).initiate(request())
        assert result.success is False
        assert result.message == "Field required"

    @pytest.mark.asyncio
    async def test_server_error_raises_transport_error(self):
        def handler(req):
            return httpx.Response(500, json={"error": "Database unavailable"})

        with pytest.raises(TransportError) as exc:
            await gateway_for(handler).initiate(request())

        assert exc.value.status_code == 500
        assert exc.value.best_message == "Database unavailable"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(req):
            raise httpx.ConnectError("connection refused", request=req)

        with pytest.raises(TransportError):
            await gateway_for(handler).initiate(request())

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        def handler(req):
            return httpx.Response(200, content=b"<html>proxy error</html>")

        with pytest.raises(TransportError):
            await gateway_for(handler).initiate(request())


class TestQueryStatus:
    @pytest.mark.asyncio
    async def test_reads_status_and_error_message(self):
        def handler(req):
            assert req.url.path == "/api/payments/TX1/status"
            return httpx.Response(200, json={
                "status": "failed",
                "transaction": {"id": "TX1", "errorMessage": "Insufficient funds"},
            })

        result = await gateway_for(handler).query_status("TX1")

        assert result.status == TransactionStatus.FAILED
        assert result.error_message == "Insufficient funds"
        assert result.transaction["id"] == "TX1"

    @pytest.mark.asyncio
    async def test_repeated_reads_are_stable(self):
        def handler(req):
            return httpx.Response(200, json={"status": "processing", "transaction": {}})

        gateway = gateway_for(handler)
        results = [await gateway.query_status("TX1") for _ in range(3)]
        assert {r.status for r in results} == {TransactionStatus.PROCESSING}

    @pytest.mark.asyncio
    async def test_unknown_transaction(self):
        def handler(req):
            return httpx.Response(404, json={"detail": "Transaction not found: TX404"})

        with pytest.raises(TransportError) as exc:
            await gateway_for(handler).query_status("TX404")
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_status_value(self):
        def handler(req):
            return httpx.Response(200, json={"status": "refunded"})

        with pytest.raises(TransportError):
            await gateway_for(handler).query_status("TX1")

    @pytest.mark.asyncio
    async def test_transaction_that_is_not_an_object(self):
        def handler(req):
            return httpx.Response(200, json={"status": "failed", "transaction": "oops"})

        with pytest.raises(TransportError) as exc:
            await gateway_for(handler).query_status("TX1")
        assert exc.value.status_code == 502

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(req):
            raise httpx.ReadTimeout("timed out", request=req)

        with pytest.raises(TransportError):
            await gateway_for(handler).query_status("TX1")


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_posts(self):
        seen = []

        def handler(req):
            seen.append((req.method, req.url.path))
            return httpx.Response(200, json={"success": True, "message": "Transaction cancelled"})

        await gateway_for(handler).cancel("TX1")
        assert seen == [("POST", "/api/payments/TX1/cancel")]

    @pytest.mark.asyncio
    async def test_unknown_transaction_is_noop(self):
        def handler(req):
            return httpx.Response(404, json={"detail": "Transaction not found"})

        await gateway_for(handler).cancel("TX404")

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        def handler(req):
            return httpx.Response(503)

        with pytest.raises(TransportError):
            await gateway_for(handler).cancel("TX1")


class TestAgainstBackend:
    """The gateway client and session controller against the FastAPI app."""

    @pytest.mark.asyncio
    async def test_sandbox_payment_completes_immediately(self, asgi_transport, sandbox):
        gateway = HttpPaymentGateway(base_url="http://test/api", transport=asgi_transport)
        controller = PaymentSessionController(gateway, PaymentModule.BOTTLESTORE, poll_interval=0.01)

        session = await controller.initiate(PaymentRequest(phone="841234567", amount=75, provider="mpesa"))

        assert session.status == SessionStatus.COMPLETED
        assert session.is_simulated is True
        assert session.transaction_id

    @pytest.mark.asyncio
    async def test_backend_rejection_is_returned(self, asgi_transport, sandbox):
        gateway = HttpPaymentGateway(base_url="http://test/api", transport=asgi_transport)

        # bypass client-side validation to exercise the backend's own check
        result = await gateway.initiate(request(phone="821234567"))

        assert result.success is False
        assert "Vodacom" in result.message

    @pytest.mark.asyncio
    async def test_provider_callback_completes_polling_session(self, asgi_transport, api_client, live):
        gateway = HttpPaymentGateway(base_url="http://test/api", transport=asgi_transport)
        successes = []
        controller = PaymentSessionController(
            gateway, PaymentModule.HOSPITALITY, poll_interval=0.01, on_success=successes.append,
        )

        session = await controller.initiate(PaymentRequest(phone="871234567", amount=900, provider="emola"))
        assert session.status == SessionStatus.PROCESSING

        status = (await api_client.get(f"/payments/{session.transaction_id}/status")).json()
        conversation_id = status["transaction"]["conversationId"]

        resp = await api_client.post("/payments/callback", json={
            "output_ConversationID": conversation_id,
            "output_TransactionID": "EMOLA123",
            "output_ResponseCode": "INS-0",
            "output_ResponseDesc": "Request processed successfully",
        })
        assert resp.status_code == 200

        await controller.wait_for_outcome(timeout=2)
        assert session.status == SessionStatus.COMPLETED
        assert successes == [session.transaction_id]

    @pytest.mark.asyncio
    async def test_cancel_reaches_backend(self, asgi_transport, api_client, live):
        gateway = HttpPaymentGateway(base_url="http://test/api", transport=asgi_transport)
        controller = PaymentSessionController(gateway, PaymentModule.POS, poll_interval=0.01)

        session = await controller.initiate(PaymentRequest(phone="851234567", amount=10, provider="mpesa"))
        transaction_id = session.transaction_id
        await controller.cancel()

        status = (await api_client.get(f"/payments/{transaction_id}/status")).json()
        assert status["status"] == "cancelled"
