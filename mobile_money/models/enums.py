"""Enumerations for the mobile money payment domain."""

from enum import Enum


class PaymentProvider(str, Enum):
    """Supported mobile money providers."""

    MPESA = "mpesa"
    EMOLA = "emola"


class PaymentModule(str, Enum):
    """Business modules that can take mobile money payments."""

    POS = "pos"
    PHARMACY = "pharmacy"
    HOSPITALITY = "hospitality"
    BOTTLESTORE = "bottlestore"
    INVOICE = "invoice"


class TransactionStatus(str, Enum):
    """Lifecycle states of a transaction as reported by the payments backend."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SessionStatus(str, Enum):
    """Lifecycle states of a client-side payment session."""

    IDLE = "idle"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_TRANSACTION_STATUSES = frozenset({
    TransactionStatus.COMPLETED,
    TransactionStatus.FAILED,
    TransactionStatus.CANCELLED,
})

TERMINAL_SESSION_STATUSES = frozenset({
    SessionStatus.COMPLETED,
    SessionStatus.FAILED,
    SessionStatus.CANCELLED,
})


class DisplayStatus(str, Enum):
    """Status shown to the person paying (e.g. in a payment modal)."""

    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class ValidationReason(str, Enum):
    """Categorized reasons for rejecting a payment request."""

    INVALID_PHONE = "invalid_phone"
    CARRIER_MISMATCH = "carrier_mismatch"
    UNSUPPORTED_PROVIDER = "unsupported_provider"
    INVALID_AMOUNT = "invalid_amount"


class FailureKind(str, Enum):
    """Which kind of error put a session into the failed state."""

    REJECTED = "rejected"  # gateway answered success=false
    TRANSPORT = "transport"  # initiation never got a usable answer
    PROVIDER = "provider"  # provider reported failed while polling
    TIMEOUT = "timeout"  # bounded polling ran out
