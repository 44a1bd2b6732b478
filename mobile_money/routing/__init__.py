from mobile_money.routing.carriers import (
    CARRIER_MAP,
    SUPPORTED_PROVIDERS,
    format_msisdn,
    get_carrier,
    provider_for_phone,
)

__all__ = ["CARRIER_MAP", "SUPPORTED_PROVIDERS", "format_msisdn", "get_carrier", "provider_for_phone"]
