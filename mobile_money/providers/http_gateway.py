"""
HTTP payments gateway client.

Talks to the payments backend over its REST contract:

    POST /payments/initiate               → {success, transactionId?, simulated?, message}
    GET  /payments/{transactionId}/status → {status, transaction: {errorMessage?}}
    POST /payments/{transactionId}/cancel → ack (idempotent)

4xx answers to ``initiate`` are business rejections and come back as
``InitiationResult(success=False)``. Connection faults, timeouts, 5xx answers
and malformed bodies raise ``TransportError``.
"""

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from mobile_money.config import settings
from mobile_money.engine.errors import DEFAULT_INITIATION_ERROR, TransportError
from mobile_money.models.enums import TransactionStatus
from mobile_money.providers.base import (
    InitiationResult,
    PaymentGateway,
    PaymentRequest,
    TransactionStatusResult,
)

logger = logging.getLogger("mobile_money.gateway")


def _extract_message(data: Any) -> Optional[str]:
    """Pull a human-readable message out of an error body."""
    if isinstance(data, str):
        return data or None
    if isinstance(data, list):
        # FastAPI 422 bodies: [{"loc": [...], "msg": "..."}]
        msgs = [item.get("msg") for item in data if isinstance(item, dict) and item.get("msg")]
        return "; ".join(msgs) or None
    if isinstance(data, dict):
        for key in ("message", "error", "detail"):
            if data.get(key):
                return _extract_message(data[key])
    return None


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


class HttpPaymentGateway(PaymentGateway):
    """
    Gateway client backed by httpx.

    Parameters
    ----------
    base_url : str
        API root, e.g. ``http://localhost:8000/api``. Defaults to settings.
    api_key : str
        Sent as a bearer token when set.
    timeout_seconds : float
        Per-request timeout.
    transport : httpx.AsyncBaseTransport
        Optional transport override (ASGI app, mock transport).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.payments_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.payments_api_key
        self.timeout_seconds = timeout_seconds or settings.http_timeout_seconds
        self._transport = transport

    @property
    def name(self) -> str:
        return "http_gateway"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                headers=self._headers(),
                transport=self._transport,
            ) as client:
                return await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"Malformed response from payments backend (HTTP {response.status_code})",
                status_code=502,
            ) from e

    def _raise_for_server_error(self, response: httpx.Response) -> None:
        if response.status_code < 500:
            return
        try:
            provider_message = _extract_message(response.json()) if response.content else None
        except ValueError:
            provider_message = None
        raise TransportError(
            f"Payments backend error (HTTP {response.status_code})",
            status_code=response.status_code,
            provider_message=provider_message,
        )

    async def initiate(self, request: PaymentRequest) -> InitiationResult:
        payload: dict[str, Any] = {
            "module": _enum_value(request.module),
            "provider": _enum_value(request.provider),
            "phone": request.phone,
            "amount": request.amount,
            "reference": request.reference,
            "moduleReferenceId": request.module_reference_id,
        }
        payload = {k: v for k, v in payload.items() if v is not None}

        response = await self._send("POST", "/payments/initiate", json=payload)
        self._raise_for_server_error(response)
        data = self._json(response)

        if response.is_error:
            message = _extract_message(data) or DEFAULT_INITIATION_ERROR
            logger.info("Initiation rejected (HTTP %d): %s", response.status_code, message)
            return InitiationResult(success=False, message=message)

        if not isinstance(data, dict):
            raise TransportError("Malformed initiation response", status_code=502)

        return InitiationResult(
            success=bool(data.get("success")),
            transaction_id=data.get("transactionId"),
            simulated=bool(data.get("simulated")),
            message=data.get("message") or "",
        )

    async def query_status(self, transaction_id: str) -> TransactionStatusResult:
        path = f"/payments/{quote(transaction_id, safe='')}/status"
        response = await self._send("GET", path)
        self._raise_for_server_error(response)
        data = self._json(response)

        if response.is_error:
            raise TransportError(
                f"Status check for {transaction_id} failed (HTTP {response.status_code})",
                status_code=response.status_code,
                provider_message=_extract_message(data),
            )

        try:
            status = TransactionStatus(data["status"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(
                f"Malformed status response for {transaction_id}",
                status_code=502,
            ) from e

        transaction = data.get("transaction") or {}
        if not isinstance(transaction, dict):
            raise TransportError(
                f"Malformed status response for {transaction_id}",
                status_code=502,
            )
        return TransactionStatusResult(
            status=status,
            transaction_id=transaction_id,
            error_message=transaction.get("errorMessage"),
            transaction=transaction,
        )

    async def cancel(self, transaction_id: str) -> None:
        path = f"/payments/{quote(transaction_id, safe='')}/cancel"
        response = await self._send("POST", path)
        self._raise_for_server_error(response)
        if response.is_error:
            # Unknown or already-terminal transaction; nothing left to cancel
            logger.debug("Cancel of %s ignored (HTTP %d)", transaction_id, response.status_code)
