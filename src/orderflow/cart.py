"""Cart management: one cart per buyer, validated against the live catalog."""

import structlog

from .catalog import ProductCatalog, validate_quantity
from .document_store import DocumentStore, Transaction
from .errors import InvalidQuantityError, ProductNotFoundError, ProductUnavailableError
from .models import (
    Cart,
    CartItem,
    CartSummary,
    CheckoutValidation,
    Product,
    ProductStatus,
    _utc_now,
)
from .pricing import PricingPolicy

CARTS_COLLECTION = "carts"
DEFAULT_PRICE_TOLERANCE = 0.01

logger = structlog.get_logger(__name__)


class CartManager:
    """Manages buyer carts.

    Cart lines keep the product snapshot taken when they were added. Totals
    are always recomputed from the lines using snapshot prices; live prices
    are only consulted by validate_for_checkout() and sync_with_latest_data().
    """

    def __init__(
        self,
        store: DocumentStore,
        catalog: ProductCatalog,
        pricing: PricingPolicy | None = None,
        price_tolerance: float = DEFAULT_PRICE_TOLERANCE,
    ):
        self.store = store
        self.catalog = catalog
        self.pricing = pricing or PricingPolicy()
        self.price_tolerance = price_tolerance

    def _load_in(self, tx: Transaction, user_id: str) -> Cart:
        doc = tx.get(CARTS_COLLECTION, user_id)
        return Cart.from_dict(doc) if doc else Cart.create_empty(user_id)

    def _save_in(self, tx: Transaction, cart: Cart) -> None:
        cart.recompute_totals()
        cart.updated_at = _utc_now()
        tx.put(CARTS_COLLECTION, cart.user_id, cart.to_dict())

    def _peek(self, user_id: str) -> Cart:
        """Read a cart without creating it."""
        doc = self.store.get(CARTS_COLLECTION, user_id)
        return Cart.from_dict(doc) if doc else Cart.create_empty(user_id)

    def get_or_create_cart(self, user_id: str) -> Cart:
        """Return the buyer's cart, creating an empty one on first access."""
        doc = self.store.get(CARTS_COLLECTION, user_id)
        if doc:
            return Cart.from_dict(doc)

        with self.store.transaction() as tx:
            doc = tx.get(CARTS_COLLECTION, user_id)
            if doc:
                return Cart.from_dict(doc)
            cart = Cart.create_empty(user_id)
            self._save_in(tx, cart)
        return cart

    def _require_available(self, product_id: str, quantity: int) -> Product:
        product = self.catalog.find_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        if product.status != ProductStatus.ACTIVE:
            raise ProductUnavailableError(product_id, "product is not active")
        if quantity > product.stock:
            raise ProductUnavailableError(
                product_id, f"only {product.stock} in stock, {quantity} requested"
            )
        return product

    def add_item(self, user_id: str, product_id: str, quantity: int = 1) -> Cart:
        """
        Add a product to the cart, merging with an existing line.

        Raises:
            InvalidQuantityError: If quantity isn't a positive integer.
            ProductNotFoundError: If the product doesn't exist.
            ProductUnavailableError: If the product is inactive, or the
                (merged) quantity exceeds live stock.
        """
        validate_quantity(quantity)
        product = self._require_available(product_id, quantity)

        with self.store.transaction() as tx:
            cart = self._load_in(tx, user_id)
            existing = cart.find_item(product_id)
            if existing is not None:
                merged = existing.quantity + quantity
                if merged > product.stock:
                    raise ProductUnavailableError(
                        product_id,
                        f"only {product.stock} in stock, cart would hold {merged}",
                    )
                existing.quantity = merged
            else:
                cart.items.append(CartItem.create(product, quantity))
            self._save_in(tx, cart)

        logger.debug("cart_item_added", user_id=user_id, product_id=product_id, quantity=quantity)
        return cart

    def update_quantity(self, user_id: str, product_id: str, quantity: int) -> Cart:
        """
        Set a line's quantity; zero removes the line.

        Raises:
            InvalidQuantityError: If quantity is negative or not an integer.
            ProductNotFoundError: If the product doesn't exist.
            ProductUnavailableError: If quantity exceeds live stock.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidQuantityError(quantity, "must be an integer")
        if quantity < 0:
            raise InvalidQuantityError(quantity, "must not be negative")
        if quantity == 0:
            return self.remove_item(user_id, product_id)

        self._require_available(product_id, quantity)

        with self.store.transaction() as tx:
            cart = self._load_in(tx, user_id)
            item = cart.find_item(product_id)
            if item is None:
                return cart
            item.quantity = quantity
            self._save_in(tx, cart)
        return cart

    def remove_item(self, user_id: str, product_id: str) -> Cart:
        """Remove a product's line; does nothing if it isn't in the cart."""
        return self.remove_items(user_id, [product_id])

    def remove_items(self, user_id: str, product_ids: list[str]) -> Cart:
        """Remove several products' lines at once."""
        drop = set(product_ids)
        with self.store.transaction() as tx:
            cart = self._load_in(tx, user_id)
            kept = [i for i in cart.items if i.product_id not in drop]
            if len(kept) == len(cart.items):
                return cart
            cart.items = kept
            self._save_in(tx, cart)
        return cart

    def clear(self, user_id: str) -> Cart:
        """Empty the cart, keeping its identity."""
        with self.store.transaction() as tx:
            cart = self._load_in(tx, user_id)
            cart.items = []
            self._save_in(tx, cart)
        return cart

    def get_item_quantity(self, user_id: str, product_id: str) -> int:
        item = self._peek(user_id).find_item(product_id)
        return item.quantity if item else 0

    def get_cart_summary(self, user_id: str) -> CartSummary:
        """Subtotal, tax, delivery fee and total for display."""
        cart = self._peek(user_id)
        cart.recompute_totals()
        totals = self.pricing.compute_totals(cart.total_amount)
        return CartSummary(
            subtotal=totals.subtotal,
            tax=totals.tax,
            delivery_fee=totals.delivery_fee,
            total=totals.total,
            item_count=cart.total_items,
        )

    def validate_for_checkout(self, user_id: str) -> CheckoutValidation:
        """
        Check every line against the live catalog. Never writes.

        Missing, deleted and inactive products are errors and are listed in
        ``unavailable_product_ids``. A line wanting more than live stock is an
        error. Price drift beyond the tolerance is only a warning.
        """
        cart = self._peek(user_id)
        if not cart.items:
            return CheckoutValidation(is_valid=False, errors=["Cart is empty"])

        errors: list[str] = []
        warnings: list[str] = []
        unavailable: list[str] = []

        for item in cart.items:
            product = self.catalog.find_product(item.product_id)
            if product is None:
                errors.append(f'Product "{item.product.title}" is no longer available')
                unavailable.append(item.product_id)
                continue

            if product.status != ProductStatus.ACTIVE:
                errors.append(f'Product "{product.title}" is currently unavailable')
                unavailable.append(item.product_id)
                continue

            if product.stock < item.quantity:
                errors.append(
                    f'Only {product.stock} units of "{product.title}" available, '
                    f"but {item.quantity} requested"
                )
                continue

            if abs(product.price - item.product.price) > self.price_tolerance:
                warnings.append(
                    f'Price of "{product.title}" has changed from '
                    f"{item.product.price:g} to {product.price:g}"
                )

        return CheckoutValidation(
            is_valid=not errors,
            errors=errors,
            unavailable_product_ids=unavailable,
            warnings=warnings,
        )

    def sync_with_latest_data(self, user_id: str) -> Cart:
        """
        Refresh snapshots from the live catalog.

        Drops lines whose product is gone or inactive, clamps quantities to
        live stock and drops lines clamped to zero. Writes only if something
        changed, so running it twice in a row leaves the cart as it was.
        """
        with self.store.transaction() as tx:
            cart = self._load_in(tx, user_id)
            changed = False
            kept: list[CartItem] = []

            for item in cart.items:
                product = self.catalog.load_in(tx, item.product_id)
                if product is None or product.status != ProductStatus.ACTIVE:
                    changed = True
                    continue

                quantity = min(item.quantity, product.stock)
                if quantity <= 0:
                    changed = True
                    continue

                if quantity != item.quantity:
                    item.quantity = quantity
                    changed = True
                if not item.product.matches(product):
                    item.product = product.snapshot()
                    changed = True
                kept.append(item)

            if changed:
                cart.items = kept
                self._save_in(tx, cart)
                logger.info("cart_synced", user_id=user_id, items=len(kept))
        return cart
