"""Tests for pricing."""

import pytest

from orderflow.pricing import PricingPolicy


class TestComputeTotals:
    def test_below_threshold_charges_delivery(self):
        totals = PricingPolicy().compute_totals(5000.0)

        assert totals.subtotal == 5000.0
        assert totals.tax == pytest.approx(250.0)
        assert totals.delivery_fee == 1000.0
        assert totals.total == pytest.approx(6250.0)

    def test_above_threshold_is_free_delivery(self):
        totals = PricingPolicy().compute_totals(12000.0)

        assert totals.tax == pytest.approx(600.0)
        assert totals.delivery_fee == 0.0
        assert totals.total == pytest.approx(12600.0)

    def test_exactly_threshold_still_charges_delivery(self):
        totals = PricingPolicy().compute_totals(10000.0)

        assert totals.delivery_fee == 1000.0
        assert totals.total == pytest.approx(11500.0)

    def test_empty_subtotal(self):
        totals = PricingPolicy().compute_totals(0.0)

        assert totals.tax == 0.0
        assert totals.delivery_fee == 1000.0

    def test_custom_policy(self):
        policy = PricingPolicy(tax_rate=0.1, free_delivery_threshold=100.0, delivery_fee=5.0)

        assert policy.compute_totals(50.0).total == pytest.approx(60.0)
        assert policy.compute_totals(200.0).total == pytest.approx(220.0)

    def test_from_settings(self, settings):
        policy = PricingPolicy.from_settings(settings)

        assert policy == PricingPolicy()
