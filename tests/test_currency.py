"""Tests for base-currency conversion."""
import pytest

from checkout_service.currency import (
    DISPLAY_DECIMALS,
    EXCHANGE_RATES,
    convert,
    format_price,
    from_base,
    to_base,
    to_display,
)
from checkout_service.errors import UnsupportedCurrencyError


class TestToBase:
    def test_base_currency_is_identity(self):
        assert to_base(150000, "TZS") == 150000

    def test_base_currency_rounds_fractions(self):
        assert to_base(1999.5, "TZS") == 2000
        assert to_base(1999.4, "TZS") == 1999

    def test_usd_to_tzs(self):
        # 2,500 TZS = 1 USD
        assert to_base(60, "USD") == 150000
        assert to_base(12.34, "USD") == 30850

    def test_kes_to_tzs(self):
        assert to_base(7875, "KES") == 150000

    def test_ugx_to_tzs(self):
        assert to_base(222000, "UGX") == 150000

    def test_result_is_integer(self):
        assert isinstance(to_base(33.33, "USD"), int)

    def test_unknown_currency_raises(self):
        with pytest.raises(UnsupportedCurrencyError) as exc:
            to_base(100, "EUR")
        assert exc.value.currency_code == "EUR"


class TestFromBase:
    def test_usd_has_two_decimals(self):
        assert from_base(30850, "USD") == 12.34

    def test_shillings_have_no_decimals(self):
        assert from_base(150001, "KES") == 7875.0

    def test_unknown_currency_raises(self):
        with pytest.raises(UnsupportedCurrencyError):
            from_base(100, "RWF")


@pytest.mark.parametrize("currency", sorted(EXCHANGE_RATES))
@pytest.mark.parametrize("amount", [1, 7, 99.99, 1234.56, 250000])
def test_round_trip_within_one_minor_unit(currency, amount):
    minor_unit = 10 ** -DISPLAY_DECIMALS[currency]
    amount = round(amount, DISPLAY_DECIMALS[currency])
    assert abs(from_base(to_base(amount, currency), currency) - amount) <= minor_unit + 1e-9


@pytest.mark.parametrize("currency", ["USD", "KES", "UGX"])
@pytest.mark.parametrize("amount", [1234, 98765, 1])
def test_unrounded_display_amount_converts_back_exactly(currency, amount):
    assert to_base(to_display(amount, currency), currency) == amount


def test_rounded_display_amount_is_lossy():
    assert from_base(1234, "USD") == 0.49
    assert to_base(from_base(1234, "USD"), "USD") == 1225
    assert to_base(to_display(1234, "USD"), "USD") == 1234


def test_convert_goes_through_base():
    assert convert(60, "USD", "KES") == 7875.0
    assert convert(150000, "TZS", "USD") == 60.0
    assert convert(5, "USD", "USD") == 5


def test_format_price():
    assert format_price(150000, "TZS") == "TZS 150,000"
    assert format_price(60, "USD") == "USD 60.00"
