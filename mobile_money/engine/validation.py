"""
Payment request validation with categorized rejection reasons.

Before any request leaves the process we verify:
  1. Provider is supported (mpesa or emola)
  2. Phone number reduces to exactly 9 digits
  3. Phone prefix belongs to the provider's network
  4. Amount is positive

Checks run in that order and the first failure wins, so the person paying
always sees the most relevant message. Nothing here touches the network.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from mobile_money.models.enums import PaymentProvider, ValidationReason
from mobile_money.routing.carriers import NATIONAL_NUMBER_LENGTH, digits_only, get_carrier


@dataclass
class ValidationResult:
    """Result of validating a payment request."""

    valid: bool
    reason: Optional[ValidationReason] = None
    message: str = ""
    phone: str = ""  # normalized 9-digit number when valid
    provider: Optional[PaymentProvider] = None


def normalize_phone(phone: Optional[str]) -> str:
    """Strip formatting from a phone number, keeping digits only."""
    return digits_only(phone)


def _is_positive(amount) -> bool:
    if amount is None or isinstance(amount, bool):
        return False
    try:
        return Decimal(str(amount)) > 0
    except (InvalidOperation, ValueError):
        return False


def validate_payment_request(
    phone: Optional[str],
    provider: Union[PaymentProvider, str, None],
    amount=None,
    check_amount: bool = True,
) -> ValidationResult:
    """
    Check whether a payment request may be sent to the gateway.

    Args:
        phone: Phone number as typed, spaces and punctuation allowed.
        provider: "mpesa" or "emola".
        amount: Amount to charge; must be positive.
        check_amount: Skip the amount check (phone-only forms).

    Returns:
        ValidationResult with the normalized phone or a categorized reason.
    """
    provider_key = provider.value if isinstance(provider, PaymentProvider) else (provider or "").strip().lower()
    carrier = get_carrier(provider_key)
    if not carrier:
        return ValidationResult(
            valid=False,
            reason=ValidationReason.UNSUPPORTED_PROVIDER,
            message=f"Unsupported payment provider: {provider_key}",
        )

    cleaned = normalize_phone(phone)
    if len(cleaned) != NATIONAL_NUMBER_LENGTH:
        return ValidationResult(
            valid=False,
            reason=ValidationReason.INVALID_PHONE,
            message=f"Phone number must have {NATIONAL_NUMBER_LENGTH} digits",
        )

    if cleaned[:2] not in carrier["prefixes"]:
        return ValidationResult(
            valid=False,
            reason=ValidationReason.CARRIER_MISMATCH,
            message=(
                f"For {carrier['label']}, use a {carrier['carrier']} number "
                f"({'/'.join(carrier['prefixes'])})"
            ),
        )

    if check_amount and not _is_positive(amount):
        return ValidationResult(
            valid=False,
            reason=ValidationReason.INVALID_AMOUNT,
            message=f"Invalid amount: {amount}",
        )

    return ValidationResult(valid=True, phone=cleaned, provider=PaymentProvider(provider_key))
