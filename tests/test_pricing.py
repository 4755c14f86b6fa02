"""Fare, fee and refund calculation."""

from decimal import Decimal

import pytest

from src.bookings.pricing import calculate_price, calculate_refund, round_price
from src.exceptions import ValidationError


class TestRoundPrice:
    def test_rounds_to_nearest_thousand(self):
        assert round_price(149999) == Decimal("150000")
        assert round_price(7499.95) == Decimal("7000")
        assert round_price(2999.98) == Decimal("3000")

    def test_halves_round_up(self):
        assert round_price(1500) == Decimal("2000")
        assert round_price(2500) == Decimal("3000")

    def test_custom_unit(self):
        assert round_price(1234, unit=100) == Decimal("1200")


class TestCalculatePrice:
    def test_fees_are_computed_before_rounding(self):
        price = calculate_price(149999, 1)

        assert price.fare == Decimal("150000")
        assert price.convenience_fee == Decimal("7000")
        assert price.bank_charge == Decimal("3000")
        assert price.total == Decimal("160000")
        assert price.currency == "VND"

    def test_two_seats(self):
        price = calculate_price(150000, 2)

        assert price.fare == Decimal("300000")
        assert price.convenience_fee == Decimal("15000")
        assert price.bank_charge == Decimal("6000")
        assert price.total == Decimal("321000")
        assert price.seat_count == 2

    def test_total_is_clamped_to_minimum(self):
        price = calculate_price(10000, 1)

        assert price.fare == Decimal("10000")
        assert price.total == Decimal("50000")

    def test_accepts_decimal_prices(self):
        assert calculate_price(Decimal("200000.00"), 1).total == Decimal("214000")

    @pytest.mark.parametrize("price, seats", [(0, 1), (-5000, 1), (150000, 0)])
    def test_rejects_invalid_input(self, price, seats):
        with pytest.raises(ValidationError):
            calculate_price(price, seats)


class TestCalculateRefund:
    def test_full_refund_a_day_ahead(self):
        refund = calculate_refund(321000, 30)

        assert refund.refund_rate == Decimal("1.0")
        assert refund.refund_amount == Decimal("321000")
        assert refund.cancellation_fee == Decimal("0")

    def test_half_refund_between_twelve_and_twenty_four_hours(self):
        refund = calculate_refund(321000, 18)

        assert refund.refund_amount == Decimal("161000")
        assert refund.cancellation_fee == Decimal("160000")

    def test_no_refund_close_to_departure(self):
        refund = calculate_refund(321000, 5)

        assert refund.refund_amount == Decimal("0")
        assert refund.cancellation_fee == Decimal("321000")

    @pytest.mark.parametrize("hours, rate", [(24, "1.0"), (12, "0.5"), (11.99, "0")])
    def test_thresholds_are_inclusive(self, hours, rate):
        assert calculate_refund(100000, hours).refund_rate == Decimal(rate)
