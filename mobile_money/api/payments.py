"""
Mobile money payment endpoints.

POST /payments/initiate                      — Start a payment (sandbox or provider push).
GET  /payments/{id}/status                   — Current status, polled by clients.
POST /payments/{id}/cancel                   — Idempotent cancellation.
POST /payments/callback                      — Provider confirmation webhook.
GET  /payments/providers/status              — Whether real provider credentials are in use.
GET  /payments                               — Paginated history with filters.
GET  /payments/module/{module}/{reference}   — Transactions for one sale/booking/invoice.
"""

import math
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from mobile_money.config import settings
from mobile_money.database import get_session
from mobile_money.engine.transactions import (
    cancel_transaction,
    get_transaction,
    initiate_transaction,
    list_transactions,
    process_callback,
    transactions_for_reference,
)
from mobile_money.models.enums import PaymentModule, PaymentProvider, TransactionStatus
from mobile_money.models.transaction import MobileTransaction

router = APIRouter(prefix="/payments", tags=["payments"])

_camel = {"alias_generator": to_camel, "populate_by_name": True}


class InitiateRequest(BaseModel):
    module: PaymentModule
    provider: PaymentProvider = PaymentProvider.MPESA
    phone: str
    amount: float
    reference: str
    module_reference_id: Optional[str] = None

    model_config = _camel


class InitiateResponse(BaseModel):
    success: bool
    transaction_id: Optional[str] = None
    provider_transaction_id: Optional[str] = None
    simulated: bool = False
    message: str = ""

    model_config = _camel


class TransactionDetail(BaseModel):
    id: str
    provider: str
    module: str
    module_reference_id: Optional[str]
    phone: str
    msisdn: str
    amount: float
    reference: str
    status: str
    simulated: bool
    provider_transaction_id: Optional[str]
    conversation_id: Optional[str]
    error_code: Optional[str]
    error_message: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]
    completed_at: Optional[str]

    model_config = _camel


class StatusResponse(BaseModel):
    status: TransactionStatus
    transaction: TransactionDetail


class CancelResponse(BaseModel):
    success: bool
    message: str


class ProviderStatus(BaseModel):
    available: bool
    configured: bool
    mode: str
    message: str


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool

    model_config = _camel


class HistoryResponse(BaseModel):
    data: list[TransactionDetail]
    pagination: Pagination


def _txn_to_detail(t: MobileTransaction) -> TransactionDetail:
    return TransactionDetail(
        id=t.id,
        provider=t.provider,
        module=t.module,
        module_reference_id=t.module_reference_id,
        phone=t.phone,
        msisdn=t.msisdn,
        amount=t.amount,
        reference=t.reference,
        status=t.status,
        simulated=bool(t.simulated),
        provider_transaction_id=t.provider_transaction_id,
        conversation_id=t.conversation_id,
        error_code=t.error_code,
        error_message=t.error_message,
        created_at=t.created_at.isoformat() if t.created_at else None,
        updated_at=t.updated_at.isoformat() if t.updated_at else None,
        completed_at=t.completed_at.isoformat() if t.completed_at else None,
    )


@router.get("/providers/status", response_model=ProviderStatus)
async def provider_status():
    """Report whether payments go to real providers or are simulated."""
    configured = not settings.simulate_payments
    return ProviderStatus(
        available=True,  # sandbox keeps payments available without credentials
        configured=configured,
        mode="production" if configured else "sandbox",
        message=(
            "Mobile money providers configured and ready"
            if configured
            else "Mobile money in simulation mode (provider credentials not configured)"
        ),
    )


@router.post("/initiate", response_model=InitiateResponse)
async def initiate_payment(body: InitiateRequest, session: AsyncSession = Depends(get_session)):
    """
    Start a mobile money payment.

    Rejections (wrong carrier, malformed phone, non-positive amount) return
    400 with ``success=false`` and a message suitable for the person paying.
    """
    outcome = await initiate_transaction(
        session,
        phone=body.phone,
        amount=body.amount,
        reference=body.reference,
        module=body.module,
        provider=body.provider.value,
        module_reference_id=body.module_reference_id,
    )
    response = InitiateResponse(
        success=outcome.success,
        transaction_id=outcome.transaction_id,
        provider_transaction_id=outcome.provider_transaction_id,
        simulated=outcome.simulated,
        message=outcome.message,
    )
    if not outcome.success:
        return JSONResponse(status_code=400, content=response.model_dump(by_alias=True))
    return response


@router.post("/callback")
async def provider_callback(
    payload: dict[str, Any] = Body(...),
    session: AsyncSession = Depends(get_session),
):
    """Confirmation webhook called by the provider once the subscriber answers."""
    if await process_callback(session, payload):
        return {"ResultCode": 0, "ResultDesc": "Success"}
    return JSONResponse(status_code=400, content={"ResultCode": 1, "ResultDesc": "Failed to process"})


@router.get("/module/{module}/{reference_id}", response_model=list[TransactionDetail])
async def module_transactions(
    module: PaymentModule,
    reference_id: str,
    session: AsyncSession = Depends(get_session),
):
    """Transactions linked to a sale, booking or invoice."""
    items = await transactions_for_reference(session, module.value, reference_id)
    return [_txn_to_detail(t) for t in items]


@router.get("/{transaction_id}/status", response_model=StatusResponse)
async def transaction_status(transaction_id: str, session: AsyncSession = Depends(get_session)):
    """Current status of a transaction. Safe to poll."""
    txn = await get_transaction(session, transaction_id)
    if not txn:
        raise HTTPException(status_code=404, detail=f"Transaction not found: {transaction_id}")
    return StatusResponse(status=TransactionStatus(txn.status), transaction=_txn_to_detail(txn))


@router.post("/{transaction_id}/cancel", response_model=CancelResponse)
async def cancel_payment(transaction_id: str, session: AsyncSession = Depends(get_session)):
    """
    Cancel a pending transaction.

    Idempotent: a transaction that already completed, failed or was cancelled
    is left as is and the call still succeeds.
    """
    cancelled = await cancel_transaction(session, transaction_id)
    if cancelled is None:
        raise HTTPException(status_code=404, detail=f"Transaction not found: {transaction_id}")
    if cancelled:
        return CancelResponse(success=True, message="Transaction cancelled")
    return CancelResponse(success=False, message="Transaction already finished; nothing to cancel")


@router.get("", response_model=HistoryResponse)
async def payment_history(
    status: Optional[TransactionStatus] = Query(None, description="Filter by status"),
    module: Optional[PaymentModule] = Query(None, description="Filter by business module"),
    provider: Optional[PaymentProvider] = Query(None, description="Filter by provider"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    """Paginated transaction history, newest first."""
    items, total = await list_transactions(
        session,
        status=status.value if status else None,
        module=module.value if module else None,
        provider=provider.value if provider else None,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    skip = (page - 1) * limit
    return HistoryResponse(
        data=[_txn_to_detail(t) for t in items],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
            has_more=skip + len(items) < total,
        ),
    )
