"""Custom exceptions for orderflow."""


class OrderflowError(Exception):
    """Base exception for all orderflow errors."""

    pass


class NotFoundError(OrderflowError):
    """Raised when a referenced record doesn't exist."""

    pass


class ProductNotFoundError(NotFoundError):
    """Raised when a product ID doesn't exist (or was deleted)."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFoundError(NotFoundError):
    """Raised when an order ID doesn't exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class DocumentNotFoundError(NotFoundError):
    """Raised when a store document doesn't exist."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document '{doc_id}' not found in '{collection}'")


class DocumentExistsError(OrderflowError):
    """Raised when inserting a document whose ID is already taken."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document '{doc_id}' already exists in '{collection}'")


class ProductUnavailableError(OrderflowError):
    """Raised when a product can't be put in a cart (inactive or not enough stock)."""

    def __init__(self, product_id: str, reason: str):
        self.product_id = product_id
        self.reason = reason
        super().__init__(f"Product {product_id} is unavailable: {reason}")


class InsufficientStockError(OrderflowError):
    """Raised when a stock decrement would drive stock below zero."""

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


class InvalidQuantityError(OrderflowError):
    """Raised when a quantity is negative, zero where not allowed, or not an integer."""

    def __init__(self, quantity: object, reason: str | None = None):
        self.quantity = quantity
        msg = f"Invalid quantity: {quantity!r}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class InvalidFieldError(OrderflowError):
    """Raised when a required field is missing or malformed."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid field '{field}': {reason}")


class CartInvalidForCheckoutError(OrderflowError):
    """Raised when checkout validation fails; carries every reason found."""

    def __init__(self, errors: list[str], unavailable_product_ids: list[str] | None = None):
        self.errors = list(errors)
        self.unavailable_product_ids = list(unavailable_product_ids or [])
        super().__init__("Cart is not valid for checkout: " + "; ".join(self.errors))


class IllegalTransitionError(OrderflowError):
    """Raised when a status change is not allowed from the order's current status."""

    def __init__(self, order_id: str, from_status: str, to_status: str):
        self.order_id = order_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Order {order_id} cannot move from '{from_status}' to '{to_status}'"
        )


class InvalidVerificationCodeError(OrderflowError):
    """Raised when a delivery verification code doesn't match the order's code."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Invalid verification code for order {order_id}")


class CheckoutPartiallyFailedError(OrderflowError):
    """Raised when some seller orders were created before another seller's failed.

    The orders in ``created_order_ids`` are committed and valid.
    """

    def __init__(self, created_order_ids: list[str], failed_seller_id: str, cause: Exception):
        self.created_order_ids = list(created_order_ids)
        self.failed_seller_id = failed_seller_id
        self.cause = cause
        super().__init__(
            f"Checkout partially failed: created {len(self.created_order_ids)} order(s) "
            f"{self.created_order_ids}, seller {failed_seller_id} failed: {cause}"
        )


class StoreBusyError(OrderflowError):
    """Raised when the store lock can't be acquired within the retry budget."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Document store is busy (gave up after {attempts} attempts)")


class InvalidSchemaVersionError(OrderflowError):
    """Raised when the store file has an unsupported schema version."""

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Unsupported schema version {found}. This tool supports version {supported}."
        )


class ConfigurationError(OrderflowError):
    """Raised when an environment setting can't be parsed."""

    def __init__(self, name: str, value: str):
        self.name = name
        self.value = value
        super().__init__(f"Invalid value for {name}: {value!r}")
