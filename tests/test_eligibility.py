"""Tests for order eligibility checks."""

from datetime import date
from decimal import Decimal

from settlement.engine.eligibility import OrderFeedItem, check_order_eligibility
from settlement.models.enums import SkipReason


def order(order_id="ORD-1", producer_id="PRD-1", amount=Decimal("100.00")):
    return OrderFeedItem(order_id=order_id, producer_id=producer_id, amount=amount, order_date=date(2024, 11, 4))


class TestEligibility:
    def test_valid_order(self):
        result = check_order_eligibility(order(), "PRD-1")
        assert result.eligible is True
        assert result.skip_reason is None

    def test_float_amount(self):
        result = check_order_eligibility(order(amount=12.5), "PRD-1")
        assert result.eligible is True


class TestSkipReasons:
    def test_missing_order_id(self):
        result = check_order_eligibility(order(order_id=""), "PRD-1")
        assert not result.eligible
        assert result.skip_reason == SkipReason.MISSING_ORDER_ID

    def test_zero_amount(self):
        result = check_order_eligibility(order(amount=0), "PRD-1")
        assert not result.eligible
        assert result.skip_reason == SkipReason.INVALID_AMOUNT

    def test_negative_amount(self):
        result = check_order_eligibility(order(amount=Decimal("-5")), "PRD-1")
        assert not result.eligible
        assert result.skip_reason == SkipReason.INVALID_AMOUNT

    def test_sub_cent_amount(self):
        result = check_order_eligibility(order(amount=Decimal("0.004")), "PRD-1")
        assert not result.eligible
        assert result.skip_reason == SkipReason.INVALID_AMOUNT

    def test_half_cent_rounds_up_to_one_cent(self):
        assert check_order_eligibility(order(amount=Decimal("0.005")), "PRD-1").eligible

    def test_oversized_amount(self):
        result = check_order_eligibility(order(amount=Decimal("1e30")), "PRD-1")
        assert not result.eligible
        assert result.skip_reason == SkipReason.INVALID_AMOUNT

    def test_none_amount(self):
        result = check_order_eligibility(order(amount=None), "PRD-1")
        assert not result.eligible
        assert result.skip_reason == SkipReason.INVALID_AMOUNT

    def test_other_producer(self):
        result = check_order_eligibility(order(producer_id="PRD-2"), "PRD-1")
        assert not result.eligible
        assert result.skip_reason == SkipReason.PRODUCER_MISMATCH
        assert "PRD-2" in result.message

    def test_duplicate_in_batch(self):
        result = check_order_eligibility(order(), "PRD-1", seen_in_batch={"ORD-1"})
        assert not result.eligible
        assert result.skip_reason == SkipReason.DUPLICATE_IN_BATCH

    def test_already_held(self):
        result = check_order_eligibility(order(), "PRD-1", held_order_ids={"ORD-1"})
        assert not result.eligible
        assert result.skip_reason == SkipReason.ALREADY_SETTLED


class TestCheckOrder:
    """Verify that earlier checks short-circuit later ones."""

    def test_amount_before_producer(self):
        result = check_order_eligibility(order(producer_id="PRD-2", amount=0), "PRD-1")
        assert result.skip_reason == SkipReason.INVALID_AMOUNT

    def test_duplicate_before_held(self):
        result = check_order_eligibility(order(), "PRD-1", seen_in_batch={"ORD-1"}, held_order_ids={"ORD-1"})
        assert result.skip_reason == SkipReason.DUPLICATE_IN_BATCH
