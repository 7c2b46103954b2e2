"""Tests for CartManager."""

import pytest

from orderflow.errors import InvalidQuantityError, ProductNotFoundError, ProductUnavailableError
from orderflow.models import ProductStatus, StockOperation


class TestAddItem:
    def test_creates_cart_and_line(self, carts, make_product):
        product = make_product(price=5000.0, stock=5)

        cart = carts.add_item("buyer-1", product.id, 2)

        assert len(cart.items) == 1
        assert cart.items[0].product.title == "Widget"
        assert cart.total_items == 2
        assert cart.total_amount == 10000.0

    def test_merges_existing_line(self, carts, make_product):
        product = make_product(stock=5)

        carts.add_item("buyer-1", product.id, 2)
        cart = carts.add_item("buyer-1", product.id, 1)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 3
        assert carts.get_item_quantity("buyer-1", product.id) == 3

    def test_merged_quantity_over_stock_rejected(self, carts, make_product):
        product = make_product(stock=3)
        carts.add_item("buyer-1", product.id, 2)

        with pytest.raises(ProductUnavailableError):
            carts.add_item("buyer-1", product.id, 2)

        assert carts.get_item_quantity("buyer-1", product.id) == 2

    def test_over_stock_rejected(self, carts, make_product):
        product = make_product(stock=1)

        with pytest.raises(ProductUnavailableError):
            carts.add_item("buyer-1", product.id, 2)

    def test_inactive_product_rejected(self, carts, catalog, make_product):
        product = make_product()
        catalog.set_status(product.id, ProductStatus.DRAFT)

        with pytest.raises(ProductUnavailableError):
            carts.add_item("buyer-1", product.id, 1)

    def test_missing_product_rejected(self, carts):
        with pytest.raises(ProductNotFoundError):
            carts.add_item("buyer-1", "nope", 1)

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2"])
    def test_invalid_quantity_rejected(self, carts, make_product, quantity):
        product = make_product()

        with pytest.raises(InvalidQuantityError):
            carts.add_item("buyer-1", product.id, quantity)

    def test_carts_are_per_buyer(self, carts, make_product):
        product = make_product()
        carts.add_item("buyer-1", product.id, 1)

        assert carts.get_or_create_cart("buyer-2").items == []


class TestUpdateAndRemove:
    def test_update_quantity(self, carts, make_product):
        product = make_product(price=100.0, stock=10)
        carts.add_item("buyer-1", product.id, 1)

        cart = carts.update_quantity("buyer-1", product.id, 4)

        assert cart.items[0].quantity == 4
        assert cart.total_amount == 400.0

    def test_update_to_zero_removes_line(self, carts, make_product):
        product = make_product()
        carts.add_item("buyer-1", product.id, 2)

        cart = carts.update_quantity("buyer-1", product.id, 0)

        assert cart.items == []
        assert cart.total_items == 0
        assert cart.total_amount == 0

    def test_update_negative_rejected(self, carts, make_product):
        product = make_product()
        carts.add_item("buyer-1", product.id, 2)

        with pytest.raises(InvalidQuantityError):
            carts.update_quantity("buyer-1", product.id, -1)

    def test_update_over_stock_rejected(self, carts, make_product):
        product = make_product(stock=3)
        carts.add_item("buyer-1", product.id, 1)

        with pytest.raises(ProductUnavailableError):
            carts.update_quantity("buyer-1", product.id, 4)

    def test_update_absent_product_is_noop(self, carts, make_product):
        in_cart = make_product(title="A")
        other = make_product(title="B")
        carts.add_item("buyer-1", in_cart.id, 1)

        cart = carts.update_quantity("buyer-1", other.id, 2)

        assert [i.product_id for i in cart.items] == [in_cart.id]

    def test_remove_item(self, carts, make_product):
        a = make_product(title="A")
        b = make_product(title="B")
        carts.add_item("buyer-1", a.id, 1)
        carts.add_item("buyer-1", b.id, 1)

        cart = carts.remove_item("buyer-1", a.id)

        assert [i.product_id for i in cart.items] == [b.id]

    def test_clear_keeps_cart(self, carts, make_product):
        product = make_product()
        carts.add_item("buyer-1", product.id, 2)

        cart = carts.clear("buyer-1")

        assert cart.user_id == "buyer-1"
        assert cart.items == []
        assert cart.total_items == 0


class TestSummary:
    def test_summary_uses_pricing_policy(self, carts, make_product):
        product = make_product(price=2500.0, stock=10)
        carts.add_item("buyer-1", product.id, 2)

        summary = carts.get_cart_summary("buyer-1")

        assert summary.subtotal == 5000.0
        assert summary.tax == pytest.approx(250.0)
        assert summary.delivery_fee == 1000.0
        assert summary.total == pytest.approx(6250.0)
        assert summary.item_count == 2

    def test_summary_of_missing_cart(self, carts):
        summary = carts.get_cart_summary("nobody")

        assert summary.subtotal == 0
        assert summary.item_count == 0


class TestValidateForCheckout:
    def test_empty_cart(self, carts):
        validation = carts.validate_for_checkout("buyer-1")

        assert not validation.is_valid
        assert validation.errors == ["Cart is empty"]

    def test_valid_cart(self, carts, make_product):
        product = make_product()
        carts.add_item("buyer-1", product.id, 1)

        validation = carts.validate_for_checkout("buyer-1")

        assert validation.is_valid
        assert validation.errors == []
        assert validation.warnings == []

    def test_deleted_product_is_unavailable(self, carts, catalog, make_product):
        product = make_product()
        carts.add_item("buyer-1", product.id, 1)
        catalog.delete_product(product.id)

        validation = carts.validate_for_checkout("buyer-1")

        assert not validation.is_valid
        assert validation.unavailable_product_ids == [product.id]

    def test_inactive_product_is_unavailable(self, carts, catalog, make_product):
        product = make_product()
        carts.add_item("buyer-1", product.id, 1)
        catalog.set_status(product.id, ProductStatus.INACTIVE)

        validation = carts.validate_for_checkout("buyer-1")

        assert not validation.is_valid
        assert validation.unavailable_product_ids == [product.id]

    def test_stock_shortfall_is_error_not_unavailable(self, carts, catalog, make_product):
        product = make_product(stock=5)
        carts.add_item("buyer-1", product.id, 4)
        catalog.adjust_stock(product.id, 3, StockOperation.SUBTRACT)

        validation = carts.validate_for_checkout("buyer-1")

        assert not validation.is_valid
        assert "Only 2 units" in validation.errors[0]
        assert validation.unavailable_product_ids == []

    def test_price_drift_is_warning_only(self, carts, catalog, make_product):
        product = make_product(price=5000.0)
        carts.add_item("buyer-1", product.id, 1)
        catalog.update_product(product.id, price=5500.0)

        validation = carts.validate_for_checkout("buyer-1")

        assert validation.is_valid
        assert len(validation.warnings) == 1
        assert "5500" in validation.warnings[0]

    def test_collects_every_error(self, carts, catalog, make_product):
        a = make_product(title="A", stock=5)
        b = make_product(title="B", stock=5)
        carts.add_item("buyer-1", a.id, 1)
        carts.add_item("buyer-1", b.id, 5)
        catalog.set_status(a.id, ProductStatus.INACTIVE)
        catalog.adjust_stock(b.id, 1, StockOperation.SUBTRACT)

        validation = carts.validate_for_checkout("buyer-1")

        assert len(validation.errors) == 2

    def test_validation_does_not_write(self, carts, store, catalog, make_product):
        product = make_product(price=5000.0)
        carts.add_item("buyer-1", product.id, 1)
        catalog.update_product(product.id, price=6000.0)
        before = store.store_path.read_text()

        carts.validate_for_checkout("buyer-1")

        assert store.store_path.read_text() == before


class TestSyncWithLatestData:
    def test_refreshes_snapshot_price(self, carts, catalog, make_product):
        product = make_product(price=5000.0)
        carts.add_item("buyer-1", product.id, 2)
        catalog.update_product(product.id, price=4000.0)

        cart = carts.sync_with_latest_data("buyer-1")

        assert cart.items[0].product.price == 4000.0
        assert cart.total_amount == 8000.0

    def test_clamps_quantity_to_stock(self, carts, catalog, make_product):
        product = make_product(stock=5)
        carts.add_item("buyer-1", product.id, 4)
        catalog.adjust_stock(product.id, 3, StockOperation.SUBTRACT)

        cart = carts.sync_with_latest_data("buyer-1")

        assert cart.items[0].quantity == 2

    def test_drops_unavailable_lines(self, carts, catalog, make_product):
        gone = make_product(title="Gone")
        sold_out = make_product(title="Sold out", stock=1)
        kept = make_product(title="Kept")
        for p in (gone, sold_out, kept):
            carts.add_item("buyer-1", p.id, 1)
        catalog.delete_product(gone.id)
        catalog.adjust_stock(sold_out.id, 1, StockOperation.SUBTRACT)

        cart = carts.sync_with_latest_data("buyer-1")

        assert [i.product_id for i in cart.items] == [kept.id]

    def test_sync_is_idempotent(self, carts, store, catalog, make_product):
        product = make_product(price=5000.0, stock=5)
        carts.add_item("buyer-1", product.id, 4)
        catalog.update_product(product.id, price=4500.0)
        catalog.adjust_stock(product.id, 2, StockOperation.SUBTRACT)

        first = carts.sync_with_latest_data("buyer-1")
        after_first = store.store_path.read_text()
        second = carts.sync_with_latest_data("buyer-1")

        assert second.to_dict() == first.to_dict()
        assert store.store_path.read_text() == after_first
