"""
Exception types for the payment subsystem.

Validation problems are local and raised before any network call. Transport
problems come from the gateway client when no usable answer came back.
Business-level rejections (gateway answered ``success=false``) are values,
not exceptions.
"""

from typing import Optional

from mobile_money.models.enums import ValidationReason

DEFAULT_INITIATION_ERROR = "Payment initiation failed"


class PaymentError(Exception):
    """Base exception for payment errors."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PaymentValidationError(PaymentError):
    """Malformed phone/provider/amount combination. Never reaches the network."""

    def __init__(self, message: str, reason: Optional[ValidationReason] = None):
        super().__init__(message, status_code=400)
        self.reason = reason


class TransportError(PaymentError):
    """
    The payments backend could not be reached or answered with garbage.

    ``provider_message`` carries any message the backend did manage to send
    (e.g. the ``message`` field of a 5xx body).
    """

    def __init__(
        self,
        message: str,
        status_code: int = 503,
        provider_message: Optional[str] = None,
    ):
        super().__init__(message, status_code=status_code)
        self.provider_message = provider_message

    @property
    def best_message(self) -> str:
        return self.provider_message or self.message or DEFAULT_INITIATION_ERROR


class SessionStateError(PaymentError):
    """Operation not allowed in the session's current state."""

    def __init__(self, message: str):
        super().__init__(message, status_code=409)
