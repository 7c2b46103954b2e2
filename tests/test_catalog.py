"""Tests for ProductCatalog."""

import threading

import pytest

from orderflow.errors import (
    InsufficientStockError,
    InvalidFieldError,
    InvalidQuantityError,
    ProductNotFoundError,
)
from orderflow.models import ProductStatus, StockOperation


class TestCreateProduct:
    def test_create_and_get(self, catalog):
        product = catalog.create_product("seller-1", "  Rice  ", 1200.0, 5, category="food")

        fetched = catalog.get_product(product.id)
        assert fetched.title == "Rice"
        assert fetched.price == 1200.0
        assert fetched.stock == 5
        assert fetched.currency == "NGN"
        assert fetched.status == ProductStatus.ACTIVE
        assert fetched.orders == 0

    def test_requires_title(self, catalog):
        with pytest.raises(InvalidFieldError):
            catalog.create_product("seller-1", "  ", 100.0, 1)

    def test_rejects_negative_price(self, catalog):
        with pytest.raises(InvalidFieldError):
            catalog.create_product("seller-1", "Rice", -1, 1)

    def test_rejects_negative_stock(self, catalog):
        with pytest.raises(InvalidQuantityError):
            catalog.create_product("seller-1", "Rice", 100.0, -1)

    def test_get_missing_raises(self, catalog):
        with pytest.raises(ProductNotFoundError):
            catalog.get_product("nope")


class TestAdjustStock:
    def test_subtract_and_add(self, catalog, make_product):
        product = make_product(stock=10)

        assert catalog.adjust_stock(product.id, 3, StockOperation.SUBTRACT) == 7
        assert catalog.adjust_stock(product.id, 2, StockOperation.ADD) == 9
        assert catalog.get_product(product.id).stock == 9

    def test_subtract_to_zero(self, catalog, make_product):
        product = make_product(stock=2)

        assert catalog.adjust_stock(product.id, 2, StockOperation.SUBTRACT) == 0

    def test_subtract_below_zero_raises_and_leaves_stock(self, catalog, make_product):
        product = make_product(stock=2)

        with pytest.raises(InsufficientStockError) as exc_info:
            catalog.adjust_stock(product.id, 3, StockOperation.SUBTRACT)

        assert exc_info.value.requested == 3
        assert exc_info.value.available == 2
        assert catalog.get_product(product.id).stock == 2

    @pytest.mark.parametrize("delta", [0, -1, 1.5, True])
    def test_rejects_non_positive_or_non_integer_delta(self, catalog, make_product, delta):
        product = make_product(stock=2)

        with pytest.raises(InvalidQuantityError):
            catalog.adjust_stock(product.id, delta, StockOperation.ADD)

    def test_missing_product_raises(self, catalog):
        with pytest.raises(ProductNotFoundError):
            catalog.adjust_stock("nope", 1, StockOperation.ADD)

    def test_orders_counter_tracks_subtract_and_add(self, catalog, make_product):
        product = make_product(stock=10)

        catalog.adjust_stock(product.id, 1, StockOperation.SUBTRACT)
        catalog.adjust_stock(product.id, 1, StockOperation.SUBTRACT)
        assert catalog.get_product(product.id).orders == 2

        catalog.adjust_stock(product.id, 1, StockOperation.ADD)
        assert catalog.get_product(product.id).orders == 1

    def test_orders_counter_never_negative(self, catalog, make_product):
        product = make_product(stock=1)

        catalog.adjust_stock(product.id, 5, StockOperation.ADD)

        assert catalog.get_product(product.id).orders == 0

    def test_concurrent_subtracts_never_oversell(self, catalog, make_product):
        product = make_product(stock=5)
        results = []

        def take():
            try:
                catalog.adjust_stock(product.id, 1, StockOperation.SUBTRACT)
                results.append("ok")
            except InsufficientStockError:
                results.append("short")

        threads = [threading.Thread(target=take) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 5
        assert results.count("short") == 3
        assert catalog.get_product(product.id).stock == 0


class TestUpdateAndDelete:
    def test_update_fields(self, catalog, make_product):
        product = make_product()

        updated = catalog.update_product(product.id, title="Gadget", price=7500.0)

        assert updated.title == "Gadget"
        assert updated.price == 7500.0
        assert updated.stock == product.stock

    def test_update_rejects_stock(self, catalog, make_product):
        product = make_product()

        with pytest.raises(InvalidFieldError):
            catalog.update_product(product.id, stock=99)

    def test_set_status(self, catalog, make_product):
        product = make_product()

        updated = catalog.set_status(product.id, ProductStatus.INACTIVE)

        assert updated.status == ProductStatus.INACTIVE

    def test_delete_is_logical(self, catalog, make_product):
        product = make_product()

        catalog.delete_product(product.id)

        assert catalog.find_product(product.id) is None
        with pytest.raises(ProductNotFoundError):
            catalog.get_product(product.id)

        kept = catalog.get_product(product.id, include_deleted=True)
        assert kept.is_deleted
        assert kept.status == ProductStatus.INACTIVE

    def test_deleted_product_stock_can_be_restored(self, catalog, make_product):
        product = make_product(stock=1)
        catalog.delete_product(product.id)

        with pytest.raises(ProductNotFoundError):
            catalog.adjust_stock(product.id, 1, StockOperation.ADD)

        stock = catalog.adjust_stock(product.id, 1, StockOperation.ADD, include_deleted=True)
        assert stock == 2


class TestListProducts:
    def test_filters_by_seller_and_hides_deleted(self, catalog, make_product):
        a = make_product(seller_id="s1", title="A")
        make_product(seller_id="s2", title="B")
        c = make_product(seller_id="s1", title="C")
        catalog.delete_product(c.id)

        page = catalog.list_products(seller_id="s1")

        assert [p.id for p in page.products] == [a.id]

    def test_in_stock_filter(self, catalog, make_product):
        make_product(title="Empty", stock=0)
        full = make_product(title="Full", stock=3)

        page = catalog.list_products(in_stock=True)

        assert [p.id for p in page.products] == [full.id]

    def test_paging(self, catalog, make_product):
        for i in range(5):
            make_product(title=f"P{i}", price=float(100 + i))

        first = catalog.list_products(order_by="price", descending=False, limit=3)
        assert [p.title for p in first.products] == ["P0", "P1", "P2"]
        assert first.has_more

        second = catalog.list_products(
            order_by="price", descending=False, limit=3, cursor=first.next_cursor
        )
        assert [p.title for p in second.products] == ["P3", "P4"]
        assert not second.has_more
