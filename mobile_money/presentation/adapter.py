"""
Payment presenter — what an interactive caller (a payment modal, a POS
checkout screen) binds to.

Exposes the session as UI-friendly fields and turns the three user intents
into controller calls:

  - submit  → validate + initiate
  - cancel  → stop polling and close
  - reset   → start over after a terminal state

plus ``check_status`` (check now instead of waiting for the next poll) and
``confirm_manually`` for cashiers who verified the transfer themselves.

Once the session completes, the caller's ``on_confirm`` callback receives the
phone number used, after a short display delay so the success state is
visible before the surrounding flow (closing the modal, printing the
receipt) carries on.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from mobile_money.config import settings
from mobile_money.engine.errors import PaymentValidationError, SessionStateError
from mobile_money.engine.session import Callback, PaymentSession, PaymentSessionController
from mobile_money.models.enums import DisplayStatus, PaymentModule, PaymentProvider, SessionStatus
from mobile_money.providers.base import PaymentGateway, PaymentRequest
from mobile_money.routing.carriers import get_carrier, network_hint

logger = logging.getLogger("mobile_money.presentation")

ConfirmCallback = Callable[[str], Union[None, Awaitable[None]]]

MANUAL_CONFIRMATION = "Manual"

STATUS_MESSAGES = {
    DisplayStatus.IDLE: "Enter the phone number to start",
    DisplayStatus.PROCESSING: "Waiting for confirmation on the phone...",
    DisplayStatus.SUCCESS: "Payment confirmed successfully!",
}


async def _call(callback, value: str) -> None:
    outcome = callback(value)
    if inspect.isawaitable(outcome):
        await outcome


class PaymentPresenter:
    """
    UI adapter around one ``PaymentSessionController``.

    Parameters
    ----------
    gateway : PaymentGateway
        Shared gateway client.
    module : PaymentModule
        Business module tag (pos, pharmacy, hospitality, bottlestore, invoice).
    provider : PaymentProvider
        Provider selected for this checkout.
    amount : float
        Amount to charge when ``submit`` is used.
    on_confirm : callable
        Receives the phone number after the success display delay.
    on_success, on_error : callable
        Forwarded immediately with the transaction id / error message.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        module: Union[PaymentModule, str],
        provider: Union[PaymentProvider, str] = PaymentProvider.MPESA,
        amount: Optional[float] = None,
        on_confirm: Optional[ConfirmCallback] = None,
        on_success: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
        poll_interval: Optional[float] = None,
        poll_timeout: Optional[float] = None,
        success_display_delay: Optional[float] = None,
    ):
        self.provider = PaymentProvider(provider)
        self.amount = amount
        self.on_confirm = on_confirm
        self.on_success = on_success
        self.on_error = on_error
        self.success_display_delay = (
            success_display_delay
            if success_display_delay is not None
            else settings.success_display_delay_ms / 1000
        )

        self.is_loading = False
        self.error: Optional[str] = None
        self.phone = ""
        self._confirm_task: Optional[asyncio.Task] = None

        self._controller = PaymentSessionController(
            gateway,
            module,
            poll_interval=poll_interval,
            poll_timeout=poll_timeout,
            on_success=self._handle_success,
            on_error=self._handle_error,
        )

    # ------------------------------------------------------------------
    # Reactive fields
    # ------------------------------------------------------------------

    @property
    def session(self) -> PaymentSession:
        return self._controller.session

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def is_processing(self) -> bool:
        return self.session.status is SessionStatus.PROCESSING

    @property
    def transaction_id(self) -> Optional[str]:
        return self.session.transaction_id

    @property
    def is_simulated(self) -> bool:
        return self.session.is_simulated

    @property
    def display_status(self) -> DisplayStatus:
        status = self.session.status
        if status in (SessionStatus.PENDING, SessionStatus.PROCESSING):
            return DisplayStatus.PROCESSING
        if status is SessionStatus.COMPLETED:
            return DisplayStatus.SUCCESS
        if status is SessionStatus.FAILED:
            return DisplayStatus.ERROR
        return DisplayStatus.IDLE

    @property
    def status_message(self) -> str:
        display = self.display_status
        if display is DisplayStatus.ERROR:
            return self.error or self.session.error_message or ""
        message = STATUS_MESSAGES[display]
        if display is DisplayStatus.SUCCESS and self.is_simulated:
            message += " (sandbox)"
        return message

    @property
    def can_dismiss(self) -> bool:
        """The modal may only be closed while no payment is in flight."""
        return not self.session.is_in_flight

    @property
    def provider_label(self) -> str:
        return get_carrier(self.provider.value)["label"]

    @property
    def phone_placeholder(self) -> str:
        return get_carrier(self.provider.value)["placeholder"]

    @property
    def phone_hint(self) -> str:
        return network_hint(self.provider.value)

    # ------------------------------------------------------------------
    # User intents
    # ------------------------------------------------------------------

    async def initiate_payment(
        self,
        phone: str,
        amount: Optional[float] = None,
        reference: Optional[str] = None,
        module_reference_id: Optional[str] = None,
    ) -> bool:
        """
        Validate and start a payment.

        Returns True when the payment was accepted (awaiting confirmation or
        completed in sandbox mode), False on validation or initiation failure
        and after ``close()``.
        """
        if self._controller.closed:
            logger.debug("Ignoring submit on a closed presenter")
            return False
        if self.session.is_in_flight:
            logger.debug("Ignoring submit while a payment is in flight")
            return False
        if self.session.is_terminal:
            self.reset()

        self.error = None
        self.phone = phone
        request = PaymentRequest(
            phone=phone,
            amount=amount if amount is not None else self.amount,
            provider=self.provider,
            reference=reference,
            module_reference_id=module_reference_id,
        )

        self.is_loading = True
        try:
            session = await self._controller.initiate(request)
        except PaymentValidationError as e:
            self.error = e.message
            if self.on_error:
                await _call(self.on_error, e.message)
            return False
        except SessionStateError as e:
            # closed or still busy while this submit was awaiting
            logger.debug("Submit refused: %s", e.message)
            return False
        finally:
            self.is_loading = False

        return session.status in (SessionStatus.PROCESSING, SessionStatus.COMPLETED)

    async def submit(self, phone: str) -> bool:
        """Form submit: pay ``self.amount`` from ``phone``."""
        return await self.initiate_payment(phone)

    async def cancel_payment(self) -> None:
        await self._controller.cancel()

    def check_status(self) -> bool:
        """Ask for a status check now rather than at the next poll."""
        return self._controller.check_status()

    async def confirm_manually(self, phone: Optional[str] = None) -> bool:
        """
        Hand the payment to ``on_confirm`` without going through the gateway.

        For cashiers who verified the transfer on the customer's phone. Not
        available while a payment is in flight or after ``close()``.
        """
        if self._controller.closed or self.session.is_in_flight:
            return False
        confirmed_phone = phone or self.phone or MANUAL_CONFIRMATION
        logger.info("Payment confirmed manually for %s", confirmed_phone)
        if self.on_confirm:
            await _call(self.on_confirm, confirmed_phone)
        return True

    def reset(self) -> None:
        self._cancel_confirmation()
        self._controller.reset()
        self.is_loading = False
        self.error = None
        self.phone = ""

    async def close(self) -> None:
        """Teardown (the modal is unmounted)."""
        self._cancel_confirmation()
        await self._controller.close()

    async def wait_for_outcome(self, timeout: Optional[float] = None) -> PaymentSession:
        return await self._controller.wait_for_outcome(timeout)

    # ------------------------------------------------------------------
    # Controller callbacks
    # ------------------------------------------------------------------

    async def _handle_success(self, transaction_id: str) -> None:
        if self.on_success:
            await _call(self.on_success, transaction_id)
        self._cancel_confirmation()
        self._confirm_task = asyncio.create_task(self._confirm_after_delay(self.phone))

    async def _handle_error(self, message: str) -> None:
        self.error = message
        if self.on_error:
            await _call(self.on_error, message)

    async def _confirm_after_delay(self, phone: str) -> None:
        await asyncio.sleep(self.success_display_delay)
        if self._controller.closed or self.session.status is not SessionStatus.COMPLETED:
            return
        if self.on_confirm:
            try:
                await _call(self.on_confirm, phone)
            except Exception:
                logger.exception("Payment confirmation callback raised")

    def _cancel_confirmation(self) -> None:
        task = self._confirm_task
        self._confirm_task = None
        if task is not None and not task.done():
            task.cancel()
