"""
Mobile money carrier configuration for Mozambique.

Maps each supported provider to the mobile network that operates it and the
two-digit national prefixes that network issues. A subscriber can only pay
with the wallet of their own network, so the prefix of the phone number
decides which provider is acceptable:

  - M-Pesa  → Vodacom (84, 85)
  - e-Mola  → Movitel (86, 87)

Providers talk to subscribers by MSISDN (country code + national number),
so this module also owns the 258XXXXXXXXX formatting.
"""

import re
from typing import Optional, TypedDict

COUNTRY_CODE = "258"
NATIONAL_NUMBER_LENGTH = 9


class CarrierConfig(TypedDict):
    """Network details for one mobile money provider."""

    carrier: str  # Mobile network operator
    label: str  # Human-readable provider name
    prefixes: tuple[str, ...]  # Two-digit national prefixes
    placeholder: str  # Example number shown in input fields


CARRIER_MAP: dict[str, CarrierConfig] = {
    "mpesa": {
        "carrier": "Vodacom",
        "label": "M-Pesa",
        "prefixes": ("84", "85"),
        "placeholder": "84 000 0000",
    },
    "emola": {
        "carrier": "Movitel",
        "label": "e-Mola",
        "prefixes": ("86", "87"),
        "placeholder": "86 000 0000",
    },
}

SUPPORTED_PROVIDERS = frozenset(CARRIER_MAP)

_NON_DIGITS = re.compile(r"\D")


def digits_only(phone: Optional[str]) -> str:
    """Strip every non-digit character from a phone number."""
    return _NON_DIGITS.sub("", phone or "")


def get_carrier(provider: Optional[str]) -> Optional[CarrierConfig]:
    key = (provider or "").strip().lower()
    return CARRIER_MAP.get(key)


def provider_for_phone(phone: Optional[str]) -> Optional[str]:
    """
    Return the provider whose network issued this number, if any.

    Only national 9-digit numbers are considered.
    """
    digits = digits_only(phone)
    if len(digits) != NATIONAL_NUMBER_LENGTH:
        return None
    prefix = digits[:2]
    for provider, cfg in CARRIER_MAP.items():
        if prefix in cfg["prefixes"]:
            return provider
    return None


def network_hint(provider: Optional[str]) -> str:
    """Short hint for input forms, e.g. 'Vodacom network (84/85)'."""
    cfg = get_carrier(provider)
    if not cfg:
        return ""
    return f"{cfg['carrier']} network ({'/'.join(cfg['prefixes'])})"


def format_msisdn(phone: Optional[str]) -> str:
    """
    Format a phone number as an MSISDN (258XXXXXXXXX).

    A leading trunk zero is dropped and the country code is added when missing.
    """
    cleaned = digits_only(phone)
    if cleaned.startswith("0"):
        cleaned = cleaned[1:]
    if not cleaned.startswith(COUNTRY_CODE):
        cleaned = COUNTRY_CODE + cleaned
    return cleaned
