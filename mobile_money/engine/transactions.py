"""
Payments backend service — the server side of the mobile money flow.

Each transaction moves through:

  1. Validation (same phone/provider/amount rules the clients apply)
  2. Persistence as ``pending``
  3. Either sandbox simulation (immediately ``completed``) or hand-off to
     the provider (``processing``) until its confirmation callback arrives
  4. Audit logging of every state change

Clients poll ``get_transaction`` by transaction id; cancellation is
idempotent and never touches a transaction that already reached a terminal
state.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from mobile_money.audit.logger import append_note, log_event
from mobile_money.config import settings
from mobile_money.engine.validation import validate_payment_request
from mobile_money.models.enums import (
    TERMINAL_TRANSACTION_STATUSES,
    PaymentModule,
    TransactionStatus,
)
from mobile_money.models.transaction import MobileTransaction
from mobile_money.routing.carriers import format_msisdn, get_carrier

logger = logging.getLogger("mobile_money.transactions")

SANDBOX_MESSAGE = "Payment simulated successfully (sandbox mode)"
PROVIDER_SUCCESS_CODE = "INS-0"


@dataclass
class InitiationOutcome:
    """Result of initiating a transaction on the backend."""

    success: bool
    transaction_id: Optional[str] = None
    provider_transaction_id: Optional[str] = None
    conversation_id: Optional[str] = None
    simulated: bool = False
    message: str = ""


def _millis() -> int:
    return int(time.time() * 1000)


def _is_terminal(status: str) -> bool:
    return status in {s.value for s in TERMINAL_TRANSACTION_STATUSES}


async def initiate_transaction(
    session: AsyncSession,
    *,
    phone: str,
    amount: float,
    reference: str,
    module: PaymentModule,
    provider: str = "mpesa",
    module_reference_id: Optional[str] = None,
    simulate: Optional[bool] = None,
) -> InitiationOutcome:
    """
    Validate, persist and start a mobile money transaction.

    Args:
        session: Database session.
        phone: Subscriber phone number.
        amount: Amount to charge.
        reference: Caller's business reference.
        module: Business module the payment belongs to.
        provider: "mpesa" or "emola".
        module_reference_id: Sale, booking or invoice being paid.
        simulate: Override ``settings.simulate_payments``.

    Returns:
        InitiationOutcome; ``success=False`` carries the rejection message.
    """
    check = validate_payment_request(phone, provider, amount)
    if not check.valid:
        await log_event(session, "payment_rejected", details={
            "reason": check.reason.value if check.reason else "unknown",
            "message": check.message,
            "reference": reference,
        })
        await session.commit()
        return InitiationOutcome(success=False, message=check.message)

    provider_key = check.provider.value
    txn = MobileTransaction(
        id=uuid.uuid4().hex[:12],
        provider=provider_key,
        module=PaymentModule(module).value,
        module_reference_id=module_reference_id,
        phone=check.phone,
        msisdn=format_msisdn(check.phone),
        amount=float(amount),
        reference=reference,
        status=TransactionStatus.PENDING.value,
    )
    session.add(txn)
    await session.flush()

    await log_event(session, "payment_initiated", transaction_id=txn.id, details={
        "provider": provider_key,
        "module": txn.module,
        "amount": txn.amount,
        "reference": reference,
        "module_reference_id": module_reference_id,
    })

    simulate = settings.simulate_payments if simulate is None else simulate
    if simulate:
        if settings.mock_latency_ms > 0:
            await asyncio.sleep(settings.mock_latency_ms / 1000)

        stamp = _millis()
        txn.status = TransactionStatus.COMPLETED.value
        txn.simulated = 1
        txn.provider_transaction_id = f"SIM{stamp}"
        txn.conversation_id = f"CONV{stamp}"
        txn.completed_at = datetime.now(timezone.utc)
        txn.notes = append_note(txn.notes, "Completed in sandbox mode")

        await log_event(session, "payment_simulated", transaction_id=txn.id, details={
            "provider_transaction_id": txn.provider_transaction_id,
        })
        await session.commit()
        return InitiationOutcome(
            success=True,
            transaction_id=txn.id,
            provider_transaction_id=txn.provider_transaction_id,
            conversation_id=txn.conversation_id,
            simulated=True,
            message=SANDBOX_MESSAGE,
        )

    txn.status = TransactionStatus.PROCESSING.value
    txn.conversation_id = f"CONV{uuid.uuid4().hex[:16].upper()}"
    txn.notes = append_note(txn.notes, f"Push sent to {txn.msisdn}, awaiting confirmation")

    await log_event(session, "payment_awaiting_confirmation", transaction_id=txn.id, details={
        "conversation_id": txn.conversation_id,
        "msisdn": txn.msisdn,
    })
    await session.commit()

    label = get_carrier(provider_key)["label"]
    return InitiationOutcome(
        success=True,
        transaction_id=txn.id,
        conversation_id=txn.conversation_id,
        message=f"Confirm the {label} payment on your phone",
    )


async def get_transaction(session: AsyncSession, transaction_id: str) -> Optional[MobileTransaction]:
    return await session.get(MobileTransaction, transaction_id)


async def cancel_transaction(session: AsyncSession, transaction_id: str) -> Optional[bool]:
    """
    Cancel a transaction that has not reached a terminal state.

    Returns:
        None if the transaction does not exist, True if it was cancelled,
        False if it was already terminal (left untouched).
    """
    txn = await session.get(MobileTransaction, transaction_id)
    if not txn:
        return None

    if _is_terminal(txn.status):
        logger.info("Cancel of %s ignored, already %s", transaction_id, txn.status)
        return False

    previous = txn.status
    txn.status = TransactionStatus.CANCELLED.value
    txn.notes = append_note(txn.notes, "Cancelled by client")
    await log_event(session, "payment_cancelled", transaction_id=txn.id, details={
        "previous_status": previous,
    })
    await session.commit()
    return True


async def process_callback(session: AsyncSession, payload: dict[str, Any]) -> bool:
    """
    Apply a provider confirmation callback.

    The transaction is matched by conversation id or provider transaction id.
    Response code ``INS-0`` completes it; any other code fails it with the
    provider's description.

    Returns:
        True if a transaction was updated.
    """
    conversation_id = payload.get("output_ConversationID") or payload.get("output_ThirdPartyConversationID")
    provider_txn_id = payload.get("output_TransactionID")
    response_code = payload.get("output_ResponseCode")

    conditions = []
    if conversation_id:
        conditions.append(MobileTransaction.conversation_id == conversation_id)
    if provider_txn_id:
        conditions.append(MobileTransaction.provider_transaction_id == provider_txn_id)
    if not conditions:
        logger.error("Provider callback without identifiers: %s", payload)
        return False

    result = await session.execute(select(MobileTransaction).where(or_(*conditions)).limit(1))
    txn = result.scalars().first()
    if not txn:
        logger.error("Provider callback for unknown transaction conversation=%s", conversation_id)
        return False

    previous = txn.status
    completed = response_code == PROVIDER_SUCCESS_CODE
    txn.status = (TransactionStatus.COMPLETED if completed else TransactionStatus.FAILED).value
    if provider_txn_id:
        txn.provider_transaction_id = provider_txn_id

    if completed:
        txn.completed_at = datetime.now(timezone.utc)
        txn.error_code = None
        txn.error_message = None
        txn.notes = append_note(txn.notes, f"Confirmed by provider: {provider_txn_id or '-'}")
    else:
        txn.error_code = response_code
        txn.error_message = payload.get("output_ResponseDesc")
        txn.notes = append_note(txn.notes, f"Provider failure {response_code}: {txn.error_message}")

    await log_event(session, "callback_received", transaction_id=txn.id, details={
        "previous_status": previous,
        "status": txn.status,
        "response_code": response_code,
        "provider_transaction_id": provider_txn_id,
    })
    await session.commit()
    return True


async def list_transactions(
    session: AsyncSession,
    status: Optional[str] = None,
    module: Optional[str] = None,
    provider: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[MobileTransaction], int]:
    """Paginated transaction history, newest first. Returns (items, total)."""
    stmt = select(MobileTransaction)

    if status:
        stmt = stmt.where(MobileTransaction.status == status)
    if module:
        stmt = stmt.where(MobileTransaction.module == module)
    if provider:
        stmt = stmt.where(MobileTransaction.provider == provider)
    if start_date:
        stmt = stmt.where(MobileTransaction.created_at >= start_date)
    if end_date:
        stmt = stmt.where(MobileTransaction.created_at <= end_date)

    total = (await session.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()

    page = max(page, 1)
    stmt = stmt.order_by(MobileTransaction.created_at.desc()).offset((page - 1) * limit).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all()), total


async def transactions_for_reference(
    session: AsyncSession,
    module: str,
    module_reference_id: str,
) -> list[MobileTransaction]:
    """All transactions linked to one business entity (sale, booking, invoice)."""
    result = await session.execute(
        select(MobileTransaction)
        .where(
            MobileTransaction.module == module,
            MobileTransaction.module_reference_id == module_reference_id,
        )
        .order_by(MobileTransaction.created_at.desc())
    )
    return list(result.scalars().all())
