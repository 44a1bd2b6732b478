"""
Abstract payments gateway interface.

The gateway is the external payments backend that fronts the mobile money
providers (M-Pesa, e-Mola). Clients only ever initiate, query and cancel;
confirmation arrives asynchronously on the provider side and is observed by
polling ``query_status``.

Implementations are stateless request/response wrappers: no retries and no
interpretation beyond mapping the wire format onto these dataclasses, so a
single instance can be shared by any number of payment sessions.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from mobile_money.models.enums import PaymentModule, PaymentProvider, TransactionStatus


@dataclass
class PaymentRequest:
    """Request to initiate a mobile money payment."""

    phone: str  # 9-digit national number, formatting allowed
    amount: float
    provider: PaymentProvider = PaymentProvider.MPESA
    reference: Optional[str] = None  # business/idempotency reference, e.g. order id
    module_reference_id: Optional[str] = None  # sale, booking or invoice being paid
    module: Optional[PaymentModule] = None  # filled in by the session controller


@dataclass
class InitiationResult:
    """Response from initiating a payment."""

    success: bool
    transaction_id: Optional[str] = None
    simulated: bool = False  # sandbox completion, no provider involved
    message: str = ""


@dataclass
class TransactionStatusResult:
    """Status of a transaction as stored by the gateway."""

    status: TransactionStatus
    transaction_id: str = ""
    error_message: Optional[str] = None
    transaction: dict[str, Any] = field(default_factory=dict)


class PaymentGateway(ABC):
    """Abstract base class for payments gateway clients."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Gateway identifier (e.g. 'http_gateway')."""
        ...

    @abstractmethod
    async def initiate(self, request: PaymentRequest) -> InitiationResult:
        """
        Ask the gateway to start a payment.

        Business-level failures (validation rejection, provider refusal) are
        returned as ``InitiationResult(success=False)``.

        Raises:
            TransportError: Gateway unreachable or response unusable.
        """
        ...

    @abstractmethod
    async def query_status(self, transaction_id: str) -> TransactionStatusResult:
        """
        Read the current status of a transaction. Safe to call repeatedly.

        Raises:
            TransportError: On any failure to obtain a definitive status.
        """
        ...

    @abstractmethod
    async def cancel(self, transaction_id: str) -> None:
        """
        Best-effort cancellation.

        A transaction that already reached a terminal state is left alone
        and no error is raised.
        """
        ...
