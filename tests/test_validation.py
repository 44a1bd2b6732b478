"""Tests for payment request validation."""

import pytest

from mobile_money.engine.validation import normalize_phone, validate_payment_request
from mobile_money.models.enums import PaymentProvider, ValidationReason


class TestValidRequests:
    def test_mpesa_vodacom_number(self):
        result = validate_payment_request("841234567", "mpesa", 100)
        assert result.valid is True
        assert result.phone == "841234567"
        assert result.provider is PaymentProvider.MPESA

    def test_emola_movitel_number(self):
        result = validate_payment_request("871234567", PaymentProvider.EMOLA, 50.5)
        assert result.valid is True
        assert result.provider is PaymentProvider.EMOLA

    def test_formatting_is_stripped(self):
        result = validate_payment_request("84 123-4567", "mpesa", 100)
        assert result.valid is True
        assert result.phone == "841234567"

    def test_provider_is_case_insensitive(self):
        result = validate_payment_request("851234567", " MPESA ", 100)
        assert result.valid is True


class TestPhoneLength:
    @pytest.mark.parametrize("phone", ["", "84123456", "8412345678", "+258841234567", None, "abc"])
    def test_not_nine_digits(self, phone):
        result = validate_payment_request(phone, "mpesa", 100)
        assert not result.valid
        assert result.reason == ValidationReason.INVALID_PHONE
        assert result.message == "Phone number must have 9 digits"


class TestCarrierPrefixes:
    @pytest.mark.parametrize("prefix", ["84", "85"])
    def test_mpesa_accepts_vodacom(self, prefix):
        assert validate_payment_request(prefix + "1234567", "mpesa", 1).valid

    @pytest.mark.parametrize("prefix", ["86", "87"])
    def test_emola_accepts_movitel(self, prefix):
        assert validate_payment_request(prefix + "1234567", "emola", 1).valid

    def test_mpesa_rejects_movitel(self):
        result = validate_payment_request("861234567", "mpesa", 100)
        assert not result.valid
        assert result.reason == ValidationReason.CARRIER_MISMATCH
        assert result.message == "For M-Pesa, use a Vodacom number (84/85)"

    def test_emola_rejects_vodacom(self):
        result = validate_payment_request("841234567", "emola", 100)
        assert not result.valid
        assert result.reason == ValidationReason.CARRIER_MISMATCH
        assert result.message == "For e-Mola, use a Movitel number (86/87)"

    def test_all_other_prefixes_rejected(self):
        accepted = {"mpesa": {"84", "85"}, "emola": {"86", "87"}}
        for provider, prefixes in accepted.items():
            for n in range(100):
                prefix = f"{n:02d}"
                result = validate_payment_request(prefix + "1234567", provider, 10)
                assert result.valid == (prefix in prefixes), f"{provider} prefix {prefix}"


class TestOtherReasons:
    def test_unsupported_provider(self):
        result = validate_payment_request("841234567", "mkesh", 100)
        assert not result.valid
        assert result.reason == ValidationReason.UNSUPPORTED_PROVIDER

    @pytest.mark.parametrize("amount", [0, -5, None, "abc", True])
    def test_invalid_amount(self, amount):
        result = validate_payment_request("841234567", "mpesa", amount)
        assert not result.valid
        assert result.reason == ValidationReason.INVALID_AMOUNT

    def test_amount_check_can_be_skipped(self):
        assert validate_payment_request("841234567", "mpesa", None, check_amount=False).valid

    def test_phone_checked_before_amount(self):
        result = validate_payment_request("12", "mpesa", -1)
        assert result.reason == ValidationReason.INVALID_PHONE


def test_normalize_phone():
    assert normalize_phone("(84) 123 45 67") == "841234567"
    assert normalize_phone(None) == ""
