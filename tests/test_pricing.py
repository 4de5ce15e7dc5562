"""Tests for order pricing."""

from decimal import Decimal

from foodrun.models import OrderItem
from foodrun.pricing import PricingRules, quote


class TestQuote:
    def test_fee_and_tax_below_threshold(self, make_items):
        q = quote(make_items("300"))
        assert q.subtotal == Decimal("300.00")
        assert q.delivery_fee == Decimal("40.00")
        assert q.tax == Decimal("15.00")
        assert q.total == Decimal("355.00")

    def test_fee_charged_at_threshold(self, make_items):
        q = quote(make_items("500"))
        assert q.delivery_fee == Decimal("40.00")
        assert q.total == Decimal("565.00")

    def test_fee_waived_above_threshold(self, make_items):
        q = quote(make_items("400", "100.50"))
        assert q.subtotal == Decimal("500.50")
        assert q.delivery_fee == Decimal("0.00")
        assert q.tax == Decimal("25.03")
        assert q.total == Decimal("525.53")

    def test_quantity_multiplies_price(self):
        items = [OrderItem(id="1", name="Fries", unit_price=Decimal("99.50"), quantity=3)]
        q = quote(items)
        assert q.subtotal == Decimal("298.50")

    def test_total_is_sum_of_parts(self, make_items):
        q = quote(make_items("123.45", "67.89"))
        assert q.total == q.subtotal + q.delivery_fee + q.tax

    def test_custom_rules(self, make_items):
        rules = PricingRules(
            delivery_fee=Decimal("25"),
            free_delivery_threshold=Decimal("100"),
            tax_rate=Decimal("0.10"),
        )
        assert quote(make_items("80"), rules).total == Decimal("113.00")
        assert quote(make_items("150"), rules).total == Decimal("165.00")
