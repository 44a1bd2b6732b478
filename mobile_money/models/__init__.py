from mobile_money.models.enums import (
    DisplayStatus,
    FailureKind,
    PaymentModule,
    PaymentProvider,
    SessionStatus,
    TransactionStatus,
    ValidationReason,
)
from mobile_money.models.transaction import AuditLog, Base, MobileTransaction

__all__ = [
    "Base",
    "MobileTransaction",
    "AuditLog",
    "DisplayStatus",
    "FailureKind",
    "PaymentModule",
    "PaymentProvider",
    "SessionStatus",
    "TransactionStatus",
    "ValidationReason",
]
