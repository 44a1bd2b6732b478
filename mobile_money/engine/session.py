"""
Payment session controller — the client-side payment lifecycle.

Owns one in-flight payment attempt and drives it through:

    idle → pending → processing → completed | failed | cancelled

  1. Validation (local, before any network call)
  2. Initiation through the gateway
  3. Polling the gateway until a terminal status arrives
  4. Reporting the outcome through the session and optional callbacks

Polling is cooperative: a single asyncio task sleeps for the poll interval,
checks the status, and only then sleeps again, so two status checks for the
same session never overlap. Errors while polling are treated as transient
and retried on the same schedule.

Every asynchronous step captures the session generation before awaiting.
``cancel()``, ``reset()`` and ``close()`` bump the generation, so a result
that arrives for a session that has moved on is discarded.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Optional, Union

from mobile_money.config import settings
from mobile_money.engine.errors import (
    DEFAULT_INITIATION_ERROR,
    PaymentValidationError,
    SessionStateError,
    TransportError,
)
from mobile_money.engine.validation import validate_payment_request
from mobile_money.models.enums import (
    TERMINAL_SESSION_STATUSES,
    FailureKind,
    PaymentModule,
    SessionStatus,
    TransactionStatus,
)
from mobile_money.providers.base import PaymentGateway, PaymentRequest

logger = logging.getLogger("mobile_money.session")

DEFAULT_POLL_INTERVAL = settings.poll_interval_ms / 1000
DEFAULT_FAILURE_MESSAGE = "Payment failed"
TIMEOUT_MESSAGE = "Payment confirmation timed out"

Callback = Callable[[str], Union[None, Awaitable[None]]]


def synthesize_reference() -> str:
    """Reference for callers that have no business reference of their own."""
    return f"PAY-{int(time.time() * 1000)}"


@dataclass
class PaymentSession:
    """Mutable state of one payment attempt."""

    status: SessionStatus = SessionStatus.IDLE
    transaction_id: Optional[str] = None
    is_simulated: bool = False
    error_message: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    poll_count: int = 0
    started_at: Optional[float] = None  # loop time when initiation began
    poll_handle: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SESSION_STATUSES

    @property
    def is_in_flight(self) -> bool:
        return self.status in (SessionStatus.PENDING, SessionStatus.PROCESSING)

    def clear(self) -> None:
        self.status = SessionStatus.IDLE
        self.transaction_id = None
        self.is_simulated = False
        self.error_message = None
        self.failure_kind = None
        self.poll_count = 0
        self.started_at = None
        self.poll_handle = None


class PaymentSessionController:
    """
    Drives a single payment session against a gateway.

    Parameters
    ----------
    gateway : PaymentGateway
        Shared, stateless gateway client.
    module : PaymentModule
        Business module the payments belong to (pos, pharmacy, ...).
    poll_interval : float
        Seconds between the end of one status check and the start of the next.
    poll_timeout : float
        Give up after this many seconds of polling. None polls until a
        terminal status arrives or the session is cancelled.
    on_success : callable
        Called with the transaction id when the session completes.
    on_error : callable
        Called with the error message when the session fails.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        module: Union[PaymentModule, str],
        poll_interval: Optional[float] = None,
        poll_timeout: Optional[float] = None,
        on_success: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
    ):
        self._gateway = gateway
        self.module = PaymentModule(module)
        self.poll_interval = poll_interval if poll_interval is not None else DEFAULT_POLL_INTERVAL
        self.poll_timeout = poll_timeout if poll_timeout is not None else settings.poll_timeout_seconds
        self.on_success = on_success
        self.on_error = on_error

        self.session = PaymentSession()
        self._generation = 0
        self._closed = False
        self._settled = asyncio.Event()
        self._settled.set()
        self._check_now = asyncio.Event()

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def closed(self) -> bool:
        return self._closed

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    async def initiate(self, request: PaymentRequest) -> PaymentSession:
        """
        Validate and start a payment.

        Returns the session once initiation has resolved: ``processing`` with
        polling scheduled, ``completed`` for a sandbox payment, or ``failed``.

        Raises:
            PaymentValidationError: Invalid phone/provider/amount. The session
                stays idle and the gateway is not contacted.
            SessionStateError: A payment is already in flight or the previous
                outcome has not been reset, or the controller is closed.
        """
        if self._closed:
            raise SessionStateError("Payment session is closed")
        if self.session.status is not SessionStatus.IDLE:
            raise SessionStateError(
                f"Cannot start a payment while the session is {self.session.status.value}; reset first"
            )

        result = validate_payment_request(request.phone, request.provider, request.amount)
        if not result.valid:
            logger.info("Payment request rejected: %s", result.message)
            raise PaymentValidationError(result.message, reason=result.reason)

        request = replace(
            request,
            phone=result.phone,
            provider=result.provider,
            reference=request.reference or synthesize_reference(),
            module=self.module,
        )

        generation = self._generation
        self.session.status = SessionStatus.PENDING
        self.session.started_at = asyncio.get_running_loop().time()
        self._settled.clear()

        logger.info(
            "Initiating %s payment ref=%s amount=%s module=%s",
            request.provider.value,
            request.reference,
            request.amount,
            self.module.value,
        )

        try:
            response = await self._gateway.initiate(request)
        except TransportError as e:
            if self._is_current(generation):
                await self._fail(e.best_message, FailureKind.TRANSPORT)
            return self.session
        except Exception as e:
            logger.exception("Unexpected error initiating payment ref=%s", request.reference)
            if self._is_current(generation):
                await self._fail(str(e) or DEFAULT_INITIATION_ERROR, FailureKind.TRANSPORT)
            return self.session

        if not self._is_current(generation):
            # Session moved on while the request was in flight
            if response.success and response.transaction_id and not response.simulated:
                await self._best_effort_cancel(response.transaction_id)
            return self.session

        if not response.success:
            await self._fail(response.message or DEFAULT_INITIATION_ERROR, FailureKind.REJECTED)
            return self.session

        self.session.transaction_id = response.transaction_id
        self.session.is_simulated = bool(response.simulated)

        if response.simulated:
            logger.info("Payment %s completed in sandbox mode", response.transaction_id)
            await self._complete()
            return self.session

        if not response.transaction_id:
            await self._fail("Gateway did not return a transaction id", FailureKind.TRANSPORT)
            return self.session

        self.session.status = SessionStatus.PROCESSING
        self.session.poll_handle = asyncio.create_task(
            self._poll(generation, response.transaction_id),
            name=f"payment-poll-{response.transaction_id}",
        )
        logger.info("Payment %s awaiting confirmation on the phone", response.transaction_id)
        return self.session

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def _deadline_passed(self) -> bool:
        if self.poll_timeout is None or self.session.started_at is None:
            return False
        elapsed = asyncio.get_running_loop().time() - self.session.started_at
        return elapsed >= self.poll_timeout

    async def _next_check(self) -> None:
        """Sleep for the poll interval, or less if ``check_status()`` was called."""
        try:
            await asyncio.wait_for(self._check_now.wait(), self.poll_interval)
        except asyncio.TimeoutError:
            pass
        self._check_now.clear()

    async def _poll(self, generation: int, transaction_id: str) -> None:
        attempt = 0
        while True:
            await self._next_check()
            if not self._is_current(generation):
                return

            if self._deadline_passed():
                logger.warning(
                    "Payment %s not confirmed after %.1fs, giving up",
                    transaction_id,
                    self.poll_timeout,
                )
                await self._fail(TIMEOUT_MESSAGE, FailureKind.TIMEOUT)
                await self._best_effort_cancel(transaction_id)
                return

            attempt += 1
            try:
                result = await self._gateway.query_status(transaction_id)
            except Exception as e:
                if not self._is_current(generation):
                    return
                logger.warning(
                    "Transient error checking payment %s (attempt %d): %s",
                    transaction_id,
                    attempt,
                    e,
                )
                continue

            if not self._is_current(generation):
                return

            self.session.poll_count += 1
            status = result.status

            if status in (TransactionStatus.PENDING, TransactionStatus.PROCESSING):
                logger.debug("Payment %s still %s", transaction_id, status.value)
                continue

            if status is TransactionStatus.COMPLETED:
                logger.info("Payment %s confirmed", transaction_id)
                await self._complete()
            elif status is TransactionStatus.FAILED:
                logger.info("Payment %s failed: %s", transaction_id, result.error_message)
                await self._fail(result.error_message or DEFAULT_FAILURE_MESSAGE, FailureKind.PROVIDER)
            elif status is TransactionStatus.CANCELLED:
                logger.info("Payment %s cancelled by the gateway", transaction_id)
                self._finish(SessionStatus.CANCELLED)
            return

    def _stop_polling(self) -> None:
        task = self.session.poll_handle
        self.session.poll_handle = None
        self._check_now.clear()
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def _finish(self, status: SessionStatus) -> None:
        self._stop_polling()
        self.session.status = status
        self._settled.set()

    async def _complete(self) -> None:
        self._finish(SessionStatus.COMPLETED)
        await self._notify(self.on_success, self.session.transaction_id or "")

    async def _fail(self, message: str, kind: FailureKind) -> None:
        self.session.error_message = message
        self.session.failure_kind = kind
        self._finish(SessionStatus.FAILED)
        await self._notify(self.on_error, message)

    async def _notify(self, callback: Optional[Callback], value: str) -> None:
        if callback is None:
            return
        try:
            outcome: Any = callback(value)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("Payment callback %r raised", callback)

    async def _best_effort_cancel(self, transaction_id: str) -> None:
        try:
            await self._gateway.cancel(transaction_id)
        except Exception as e:
            logger.warning("Best-effort cancel of %s failed: %s", transaction_id, e)

    # ------------------------------------------------------------------
    # Caller actions
    # ------------------------------------------------------------------

    async def cancel(self) -> None:
        """
        Cancel the in-flight payment.

        The session becomes ``cancelled`` immediately; the gateway is then
        notified on a best-effort basis and its answer does not affect the
        session. No-op when nothing is in flight.
        """
        if not self.session.is_in_flight:
            return
        transaction_id = self.session.transaction_id
        self._generation += 1
        self._finish(SessionStatus.CANCELLED)
        logger.info("Payment %s cancelled by caller", transaction_id or "(not yet initiated)")
        if transaction_id:
            await self._best_effort_cancel(transaction_id)

    def reset(self) -> None:
        """Discard the current attempt and return to idle."""
        self._generation += 1
        self._stop_polling()
        self.session.clear()
        self._settled.set()

    def check_status(self) -> bool:
        """
        Run the next status check now instead of after the poll interval.

        The check still happens inside the polling task, so it never overlaps
        another one. Returns False when nothing is being polled.
        """
        if self._closed or self.session.status is not SessionStatus.PROCESSING:
            return False
        if self.session.poll_handle is None or self.session.poll_handle.done():
            return False
        self._check_now.set()
        return True

    async def close(self) -> None:
        """
        Tear the controller down.

        Pending polls are stopped and any callback still in flight is
        suppressed. A payment still awaiting confirmation gets a best-effort
        cancel at the gateway. The session keeps its last state for inspection.
        """
        if self._closed:
            return
        transaction_id = self.session.transaction_id if self.session.is_in_flight else None
        self._closed = True
        self._generation += 1
        self._stop_polling()
        self._settled.set()
        if transaction_id:
            logger.info("Payment %s abandoned on close, cancelling", transaction_id)
            await self._best_effort_cancel(transaction_id)

    async def wait_for_outcome(self, timeout: Optional[float] = None) -> PaymentSession:
        """Wait until the session settles (terminal state, reset or close)."""
        await asyncio.wait_for(self._settled.wait(), timeout)
        return self.session
