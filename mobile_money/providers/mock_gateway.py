"""
Mock payments gateway for development and tests.

Plays back a script of status answers instead of talking to a backend:
  - Configurable latency (default from settings)
  - Scripted ``query_status`` answers: a status, a full result, or an
    exception to raise (e.g. a network blip)
  - The last scripted answer repeats once the script runs out
  - Records every call and the peak number of overlapping status checks
"""

import asyncio
import uuid
from collections import deque
from typing import Optional, Union

from mobile_money.config import settings
from mobile_money.models.enums import TransactionStatus
from mobile_money.providers.base import (
    InitiationResult,
    PaymentGateway,
    PaymentRequest,
    TransactionStatusResult,
)

ScriptItem = Union[TransactionStatus, str, TransactionStatusResult, BaseException]


class MockPaymentGateway(PaymentGateway):
    """
    In-memory gateway with scripted behavior.

    Parameters
    ----------
    initiate_result : InitiationResult or Exception
        What ``initiate`` returns (or raises). Defaults to a real (non
        simulated) success with a generated transaction id.
    statuses : list
        Script of ``query_status`` answers.
    latency_ms : int
        Delay applied to every call.
    hold_queries : bool
        If True, ``query_status`` blocks until ``release()`` is called.
    """

    def __init__(
        self,
        initiate_result: Union[InitiationResult, BaseException, None] = None,
        statuses: Optional[list[ScriptItem]] = None,
        latency_ms: Optional[int] = None,
        hold_queries: bool = False,
    ):
        self.initiate_result = initiate_result
        self._script: deque[ScriptItem] = deque(statuses or [])
        self._latency_ms = latency_ms if latency_ms is not None else settings.mock_latency_ms
        self._gate = asyncio.Event()
        if not hold_queries:
            self._gate.set()

        self.initiate_calls: list[PaymentRequest] = []
        self.status_calls: list[str] = []
        self.cancel_calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def name(self) -> str:
        return "mock_gateway"

    def release(self) -> None:
        """Let held status checks complete."""
        self._gate.set()

    def hold(self) -> None:
        self._gate.clear()

    async def _latency(self) -> None:
        if self._latency_ms > 0:
            await asyncio.sleep(self._latency_ms / 1000)

    def _next_item(self) -> ScriptItem:
        if not self._script:
            return TransactionStatus.PROCESSING
        if len(self._script) > 1:
            return self._script.popleft()
        return self._script[0]

    async def initiate(self, request: PaymentRequest) -> InitiationResult:
        self.initiate_calls.append(request)
        await self._latency()

        if isinstance(self.initiate_result, BaseException):
            raise self.initiate_result
        if self.initiate_result is not None:
            return self.initiate_result

        return InitiationResult(
            success=True,
            transaction_id=f"mock_{uuid.uuid4().hex[:12]}",
            simulated=False,
            message="Confirm the payment on your phone",
        )

    async def query_status(self, transaction_id: str) -> TransactionStatusResult:
        self.status_calls.append(transaction_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await self._latency()
            await self._gate.wait()
            item = self._next_item()
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, TransactionStatusResult):
                return item
            return TransactionStatusResult(
                status=TransactionStatus(item),
                transaction_id=transaction_id,
            )
        finally:
            self.in_flight -= 1

    async def cancel(self, transaction_id: str) -> None:
        self.cancel_calls.append(transaction_id)
        await self._latency()
