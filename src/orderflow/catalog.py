"""Product catalog: product records and atomic stock adjustment."""

from typing import Any

import structlog

from .document_store import DocumentStore, Filter, Transaction
from .errors import (
    InsufficientStockError,
    InvalidFieldError,
    InvalidQuantityError,
    ProductNotFoundError,
)
from .models import Product, ProductPage, ProductStatus, StockOperation, _utc_now

PRODUCTS_COLLECTION = "products"

# Fields update_product() may change. Stock goes through adjust_stock(),
# status through set_status().
EDITABLE_FIELDS = frozenset({"title", "description", "category", "images", "price", "currency"})

logger = structlog.get_logger(__name__)


def validate_quantity(quantity: Any, allow_zero: bool = False) -> int:
    """
    Check that ``quantity`` is an integer (not a bool) and positive.

    Raises:
        InvalidQuantityError: If the value is unusable as a quantity.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantityError(quantity, "must be an integer")
    if quantity < 0:
        raise InvalidQuantityError(quantity, "must not be negative")
    if quantity == 0 and not allow_zero:
        raise InvalidQuantityError(quantity, "must be positive")
    return quantity


def _validate_price(price: Any) -> float:
    if isinstance(price, bool) or not isinstance(price, (int, float)) or price < 0:
        raise InvalidFieldError("price", "must be a non-negative number")
    return float(price)


class ProductCatalog:
    """Owns product records and the authoritative stock counts."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def create_product(
        self,
        seller_id: str,
        title: str,
        price: float,
        stock: int,
        currency: str = "NGN",
        description: str = "",
        category: str = "",
        images: list[str] | None = None,
        status: ProductStatus = ProductStatus.ACTIVE,
    ) -> Product:
        """
        Create a product owned by ``seller_id``.

        Raises:
            InvalidFieldError: If seller, title or price is unusable.
            InvalidQuantityError: If stock isn't a non-negative integer.
        """
        if not seller_id:
            raise InvalidFieldError("seller_id", "is required")
        if not title or not title.strip():
            raise InvalidFieldError("title", "is required")
        product = Product.create(
            seller_id=seller_id,
            title=title.strip(),
            price=_validate_price(price),
            stock=validate_quantity(stock, allow_zero=True),
            currency=currency,
            description=description,
            category=category,
            images=images,
            status=ProductStatus(status),
        )
        self.store.insert(PRODUCTS_COLLECTION, product.to_dict(), product.id)
        logger.info("product_created", product_id=product.id, seller_id=seller_id)
        return product

    def find_product(self, product_id: str, include_deleted: bool = False) -> Product | None:
        """Return the live product, or None if it doesn't exist."""
        doc = self.store.get(PRODUCTS_COLLECTION, product_id)
        if doc is None:
            return None
        product = Product.from_dict(doc)
        if product.is_deleted and not include_deleted:
            return None
        return product

    def get_product(self, product_id: str, include_deleted: bool = False) -> Product:
        """
        Get a product by ID.

        Raises:
            ProductNotFoundError: If the product doesn't exist or was deleted.
        """
        product = self.find_product(product_id, include_deleted=include_deleted)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def list_products(
        self,
        seller_id: str | None = None,
        category: str | None = None,
        status: ProductStatus | None = None,
        in_stock: bool | None = None,
        min_price: float | None = None,
        max_price: float | None = None,
        order_by: str = "created_at",
        descending: bool = True,
        limit: int = 20,
        cursor: str | None = None,
    ) -> ProductPage:
        """List non-deleted products, newest first by default."""
        filters = [Filter("deleted_at", "==", None)]
        if seller_id:
            filters.append(Filter("seller_id", "==", seller_id))
        if category:
            filters.append(Filter("category", "==", category))
        if status is not None:
            filters.append(Filter("status", "==", ProductStatus(status).value))
        if in_stock is not None:
            filters.append(Filter("stock", ">" if in_stock else "==", 0))
        if min_price is not None:
            filters.append(Filter("price", ">=", min_price))
        if max_price is not None:
            filters.append(Filter("price", "<=", max_price))

        page = self.store.query(
            PRODUCTS_COLLECTION,
            filters,
            order_by=order_by,
            descending=descending,
            limit=limit,
            start_after=cursor,
        )
        return ProductPage(
            products=[Product.from_dict(d) for d in page.documents],
            next_cursor=page.next_cursor,
            has_more=page.has_more,
        )

    def update_product(self, product_id: str, **fields: Any) -> Product:
        """
        Edit descriptive fields and price.

        Raises:
            InvalidFieldError: If a field isn't editable or a value is invalid.
            ProductNotFoundError: If the product doesn't exist.
        """
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise InvalidFieldError(sorted(unknown)[0], "is not editable")
        if "price" in fields:
            fields["price"] = _validate_price(fields["price"])
        if "title" in fields and not str(fields["title"]).strip():
            raise InvalidFieldError("title", "is required")

        with self.store.transaction() as tx:
            self._load_in(tx, product_id)
            doc = tx.update(PRODUCTS_COLLECTION, product_id, {**fields, "updated_at": _utc_now()})
        return Product.from_dict(doc)

    def set_status(self, product_id: str, status: ProductStatus) -> Product:
        """Set a product's status (active, inactive or draft)."""
        status = ProductStatus(status)
        with self.store.transaction() as tx:
            self._load_in(tx, product_id)
            doc = tx.update(
                PRODUCTS_COLLECTION,
                product_id,
                {"status": status.value, "updated_at": _utc_now()},
            )
        logger.info("product_status_set", product_id=product_id, status=status.value)
        return Product.from_dict(doc)

    def delete_product(self, product_id: str) -> Product:
        """
        Logically delete a product.

        The record is kept (orders still reference it and cancellations still
        restore its stock) but it is inactive and hidden from lookups.
        """
        now = _utc_now()
        with self.store.transaction() as tx:
            self._load_in(tx, product_id)
            doc = tx.update(
                PRODUCTS_COLLECTION,
                product_id,
                {"status": ProductStatus.INACTIVE.value, "deleted_at": now, "updated_at": now},
            )
        logger.info("product_deleted", product_id=product_id)
        return Product.from_dict(doc)

    def adjust_stock(
        self,
        product_id: str,
        delta: int,
        reason: StockOperation,
        include_deleted: bool = False,
    ) -> int:
        """
        Atomically add or subtract stock.

        Returns:
            The new stock value.

        Raises:
            InvalidQuantityError: If delta isn't a positive integer.
            InsufficientStockError: If a subtract would make stock negative.
            ProductNotFoundError: If the product doesn't exist.
        """
        with self.store.transaction() as tx:
            return self.adjust_stock_in(tx, product_id, delta, reason, include_deleted)

    def adjust_stock_in(
        self,
        tx: Transaction,
        product_id: str,
        delta: int,
        reason: StockOperation,
        include_deleted: bool = False,
    ) -> int:
        """Same as adjust_stock(), inside a transaction the caller owns."""
        delta = validate_quantity(delta)
        reason = StockOperation(reason)
        product = self._load_in(tx, product_id, include_deleted=include_deleted)

        if reason is StockOperation.SUBTRACT:
            if product.stock < delta:
                raise InsufficientStockError(product_id, delta, product.stock)
            new_stock = product.stock - delta
            orders = product.orders + 1
        else:
            new_stock = product.stock + delta
            orders = max(product.orders - 1, 0)

        tx.update(
            PRODUCTS_COLLECTION,
            product_id,
            {"stock": new_stock, "orders": orders, "updated_at": _utc_now()},
        )
        logger.debug(
            "stock_adjusted",
            product_id=product_id,
            operation=reason.value,
            delta=delta,
            stock=new_stock,
        )
        return new_stock

    def load_in(self, tx: Transaction, product_id: str, include_deleted: bool = False) -> Product | None:
        """Read a product inside a caller's transaction; None if missing or deleted."""
        doc = tx.get(PRODUCTS_COLLECTION, product_id)
        if doc is None:
            return None
        product = Product.from_dict(doc)
        if product.is_deleted and not include_deleted:
            return None
        return product

    def _load_in(self, tx: Transaction, product_id: str, include_deleted: bool = False) -> Product:
        product = self.load_in(tx, product_id, include_deleted=include_deleted)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product
