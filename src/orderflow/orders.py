"""Order lifecycle: checkout, status transitions, delivery verification, cancellation.

Status graph::

    pending -> payment_verified -> rider_assigned -> picked_up -> in_transit -> delivered
       |              |                  |
       +--------------+------------------+--> cancelled

``delivered``, ``cancelled`` and ``refunded`` are terminal. Every status write
happens in the same store transaction as the fresh read that checked it, the
tracking entry that records it and (for creation and cancellation) the stock
change that goes with it. Notifications are sent only after the transaction
commits.
"""

import secrets
import string
import time
from typing import Any, Callable

import structlog

from .cart import CartManager
from .catalog import ProductCatalog
from .document_store import DocumentStore, Filter, Transaction
from .errors import (
    CartInvalidForCheckoutError,
    CheckoutPartiallyFailedError,
    IllegalTransitionError,
    InvalidFieldError,
    InvalidVerificationCodeError,
    OrderflowError,
    OrderNotFoundError,
    ProductNotFoundError,
    ProductUnavailableError,
)
from .models import (
    CartItem,
    Coordinates,
    DeliveryInfo,
    Order,
    OrderItem,
    OrderPage,
    OrderStatus,
    OrderTrackingEntry,
    ProductStatus,
    RiderInfo,
    StockOperation,
    _generate_id,
    _utc_now,
)
from .notifications import NotificationDispatch
from .pricing import PricingPolicy
from .tracking import OrderTrackingLog

ORDERS_COLLECTION = "orders"

LEGAL_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAYMENT_VERIFIED, OrderStatus.CANCELLED}),
    OrderStatus.PAYMENT_VERIFIED: frozenset({OrderStatus.RIDER_ASSIGNED, OrderStatus.CANCELLED}),
    OrderStatus.RIDER_ASSIGNED: frozenset({OrderStatus.PICKED_UP, OrderStatus.CANCELLED}),
    OrderStatus.PICKED_UP: frozenset({OrderStatus.IN_TRANSIT}),
    OrderStatus.IN_TRANSIT: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

CANCELLABLE_STATUSES = frozenset(
    s for s, targets in LEGAL_TRANSITIONS.items() if OrderStatus.CANCELLED in targets
)

DEFAULT_STATUS_MESSAGES: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "Order placed successfully",
    OrderStatus.PAYMENT_VERIFIED: "Payment verified, preparing order",
    OrderStatus.RIDER_ASSIGNED: "Rider assigned for pickup",
    OrderStatus.PICKED_UP: "Order picked up by rider",
    OrderStatus.IN_TRANSIT: "Order is on the way",
    OrderStatus.DELIVERED: "Order delivered successfully",
    OrderStatus.CANCELLED: "Order has been cancelled",
    OrderStatus.REFUNDED: "Order refunded",
}

# Which order field a role's user ID is matched against; admins see everything.
ROLE_FIELDS: dict[str, str | None] = {
    "buyer": "buyer_id",
    "seller": "seller_id",
    "rider": "rider_id",
    "admin": None,
}

_BASE36 = string.digits + string.ascii_uppercase
_ORDER_NUMBER_ATTEMPTS = 10

logger = structlog.get_logger(__name__)


def is_legal_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    return OrderStatus(to_status) in LEGAL_TRANSITIONS[OrderStatus(from_status)]


def _base36(value: int) -> str:
    digits = []
    while True:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
        if value == 0:
            return "".join(reversed(digits))


def generate_order_number(prefix: str = "R9J") -> str:
    """Prefix + base-36 millisecond timestamp + 4 random base-36 characters."""
    stamp = _base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"{prefix}{stamp}{suffix}"


def generate_verification_code() -> str:
    """Six random digits, zero padded."""
    return f"{secrets.randbelow(10**6):06d}"


def group_items_by_seller(items: list[CartItem]) -> dict[str, list[CartItem]]:
    """Partition cart lines by the seller on their snapshot, keeping cart order."""
    groups: dict[str, list[CartItem]] = {}
    for item in items:
        groups.setdefault(item.product.seller_id, []).append(item)
    return groups


def _validate_delivery_info(info: DeliveryInfo) -> None:
    for name in ("recipient_name", "phone_number", "address"):
        value = getattr(info, name)
        if not value or not str(value).strip():
            raise InvalidFieldError(f"delivery_info.{name}", "is required")


class OrderLifecycle:
    """Creates orders from carts and moves them through the status graph."""

    def __init__(
        self,
        store: DocumentStore,
        catalog: ProductCatalog,
        carts: CartManager,
        tracking: OrderTrackingLog,
        notifications: NotificationDispatch | None = None,
        pricing: PricingPolicy | None = None,
        order_number_prefix: str = "R9J",
    ):
        self.store = store
        self.catalog = catalog
        self.carts = carts
        self.tracking = tracking
        self.notifications = notifications or NotificationDispatch()
        self.pricing = pricing or carts.pricing
        self.order_number_prefix = order_number_prefix

    # Reads

    def get_order(self, order_id: str) -> Order:
        """
        Get an order by ID.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
        """
        doc = self.store.get(ORDERS_COLLECTION, order_id)
        if doc is None:
            raise OrderNotFoundError(order_id)
        return Order.from_dict(doc)

    def list_orders(
        self,
        user_id: str | None = None,
        role: str | None = None,
        status: OrderStatus | None = None,
        limit: int = 20,
        cursor: str | None = None,
    ) -> OrderPage:
        """
        List orders newest first, filtered by the user's role and by status.

        Raises:
            InvalidFieldError: If role isn't buyer, seller, rider or admin.
        """
        filters: list[Filter] = []
        if role is not None and role not in ROLE_FIELDS:
            raise InvalidFieldError("role", f"unknown role {role!r}")
        if user_id:
            field = ROLE_FIELDS[role or "buyer"]
            if field is not None:
                filters.append(Filter(field, "==", user_id))
        if status is not None:
            filters.append(Filter("status", "==", OrderStatus(status).value))

        page = self.store.query(
            ORDERS_COLLECTION,
            filters,
            order_by="created_at",
            descending=True,
            limit=limit,
            start_after=cursor,
        )
        return OrderPage(
            orders=[Order.from_dict(d) for d in page.documents],
            next_cursor=page.next_cursor,
            has_more=page.has_more,
        )

    def history(self, order_id: str) -> list[OrderTrackingEntry]:
        """Tracking entries for an order, oldest first."""
        self.get_order(order_id)
        return self.tracking.history(order_id)

    # Checkout

    def create_from_cart(
        self,
        user_id: str,
        delivery_info: DeliveryInfo,
        payment_method: str,
        instructions: str | None = None,
    ) -> list[str]:
        """
        Turn the buyer's cart into one pending order per seller.

        Each seller's order is created in one transaction together with the
        stock decrements for its lines and its first tracking entry. Sellers
        are processed in cart order and are not all-or-nothing: if a later
        seller fails after earlier ones committed, the committed orders stay,
        their lines leave the cart and CheckoutPartiallyFailedError reports
        them. The cart is cleared only when every seller succeeds.

        Returns:
            The created order IDs.

        Raises:
            CartInvalidForCheckoutError: If validation fails; nothing is written.
            InsufficientStockError: If stock ran out before the first order committed.
            CheckoutPartiallyFailedError: If some but not all orders were created.
        """
        _validate_delivery_info(delivery_info)
        if not payment_method:
            raise InvalidFieldError("payment_method", "is required")

        validation = self.carts.validate_for_checkout(user_id)
        if not validation.is_valid:
            raise CartInvalidForCheckoutError(validation.errors, validation.unavailable_product_ids)
        for warning in validation.warnings:
            logger.info("checkout_price_warning", user_id=user_id, warning=warning)

        cart = self.carts.get_or_create_cart(user_id)
        if not cart.items:
            raise CartInvalidForCheckoutError(["Cart is empty"])

        created: list[Order] = []
        for seller_id, items in group_items_by_seller(cart.items).items():
            try:
                order = self._create_seller_order(
                    user_id, seller_id, items, delivery_info, payment_method, instructions
                )
            except Exception as exc:
                if not created:
                    raise
                committed = [item.product_id for o in created for item in o.items]
                self.carts.remove_items(user_id, committed)
                logger.error(
                    "checkout_partially_failed",
                    user_id=user_id,
                    created=[o.id for o in created],
                    failed_seller_id=seller_id,
                    error=str(exc),
                )
                self._notify_created(created)
                raise CheckoutPartiallyFailedError(
                    [o.id for o in created], seller_id, exc
                ) from exc
            created.append(order)

        self.carts.clear(user_id)
        self._notify_created(created)
        return [o.id for o in created]

    def _create_seller_order(
        self,
        buyer_id: str,
        seller_id: str,
        items: list[CartItem],
        delivery_info: DeliveryInfo,
        payment_method: str,
        instructions: str | None,
    ) -> Order:
        with self.store.transaction() as tx:
            for item in items:
                product = self.catalog.load_in(tx, item.product_id)
                if product is None:
                    raise ProductNotFoundError(item.product_id)
                if product.status != ProductStatus.ACTIVE:
                    raise ProductUnavailableError(item.product_id, "product is not active")
                self.catalog.adjust_stock_in(
                    tx, item.product_id, item.quantity, StockOperation.SUBTRACT
                )

            order_items = [
                OrderItem(product_id=i.product_id, product=i.product, quantity=i.quantity)
                for i in items
            ]
            subtotal = sum(i.line_total for i in order_items)
            totals = self.pricing.compute_totals(subtotal)
            now = _utc_now()
            order = Order(
                id=_generate_id(),
                order_number=self._unique_order_number(tx),
                buyer_id=buyer_id,
                seller_id=seller_id,
                product_id=order_items[0].product_id,
                product=order_items[0].product,
                items=order_items,
                quantity=sum(i.quantity for i in order_items),
                total_amount=subtotal,
                tax=totals.tax,
                delivery_fee=totals.delivery_fee,
                grand_total=totals.total,
                status=OrderStatus.PENDING,
                delivery_info=delivery_info,
                verification_code=generate_verification_code(),
                payment_method=payment_method,
                special_instructions=instructions or "",
                created_at=now,
                updated_at=now,
            )
            tx.insert(ORDERS_COLLECTION, order.to_dict(), order.id)
            self.tracking.append_in(
                tx, order.id, OrderStatus.PENDING, DEFAULT_STATUS_MESSAGES[OrderStatus.PENDING], buyer_id
            )

        logger.info(
            "order_created",
            order_id=order.id,
            order_number=order.order_number,
            buyer_id=buyer_id,
            seller_id=seller_id,
            items=len(order_items),
            total_amount=subtotal,
        )
        return order

    def _unique_order_number(self, tx: Transaction) -> str:
        for _ in range(_ORDER_NUMBER_ATTEMPTS):
            number = generate_order_number(self.order_number_prefix)
            taken = tx.query(ORDERS_COLLECTION, [Filter("order_number", "==", number)], limit=1)
            if not taken.documents:
                return number
        raise OrderflowError("Could not generate a unique order number")

    def _notify_created(self, orders: list[Order]) -> None:
        for order in orders:
            self.notifications.order_event(order, OrderStatus.PENDING)

    # Transitions

    def _load_in(self, tx: Transaction, order_id: str) -> Order:
        doc = tx.get(ORDERS_COLLECTION, order_id)
        if doc is None:
            raise OrderNotFoundError(order_id)
        return Order.from_dict(doc)

    def _apply(
        self,
        order_id: str,
        to_status: OrderStatus,
        actor_id: str,
        message: str | None = None,
        location: Coordinates | None = None,
        extra: dict[str, Any] | None = None,
        check: Callable[[Order], None] | None = None,
    ) -> Order:
        """Read, check, write and track one transition in a single transaction."""
        with self.store.transaction() as tx:
            order = self._load_in(tx, order_id)
            if check is not None:
                check(order)
            if not is_legal_transition(order.status, to_status):
                raise IllegalTransitionError(order_id, order.status.value, to_status.value)

            now = _utc_now()
            fields: dict[str, Any] = {"status": to_status.value, "updated_at": now}
            if to_status is OrderStatus.DELIVERED:
                fields["delivered_at"] = now
            fields.update(extra or {})
            doc = tx.update(ORDERS_COLLECTION, order_id, fields)
            self.tracking.append_in(
                tx,
                order_id,
                to_status,
                message or DEFAULT_STATUS_MESSAGES[to_status],
                actor_id,
                location,
            )

        updated = Order.from_dict(doc)
        logger.info(
            "order_transitioned",
            order_id=order_id,
            from_status=order.status.value,
            to_status=to_status.value,
            actor_id=actor_id,
        )
        self.notifications.order_event(updated, to_status)
        return updated

    def transition(
        self,
        order_id: str,
        to_status: OrderStatus,
        actor_id: str,
        message: str | None = None,
        rider_info: RiderInfo | None = None,
        location: Coordinates | None = None,
    ) -> Order:
        """
        Move an order to ``to_status`` if the status graph allows it.

        Moving to cancelled goes through cancel() so stock is restored.
        ``rider_info`` is only recorded when moving to rider_assigned.

        Raises:
            IllegalTransitionError: If the move isn't in the status graph.
            OrderNotFoundError: If the order doesn't exist.
        """
        try:
            to_status = OrderStatus(to_status)
        except ValueError:
            current = self.get_order(order_id)
            raise IllegalTransitionError(order_id, current.status.value, str(to_status)) from None
        if to_status is OrderStatus.CANCELLED:
            return self.cancel(order_id, actor_id, message or DEFAULT_STATUS_MESSAGES[to_status])

        extra: dict[str, Any] = {}
        if to_status is OrderStatus.RIDER_ASSIGNED and rider_info is not None:
            extra["rider_id"] = rider_info.rider_id
            extra["rider_info"] = rider_info.to_dict()
        return self._apply(order_id, to_status, actor_id, message, location, extra)

    def confirm_payment(self, order_id: str, payment_reference: str, actor_id: str) -> Order:
        """Record a confirmed payment and move the order to payment_verified."""
        if not payment_reference:
            raise InvalidFieldError("payment_reference", "is required")
        return self._apply(
            order_id,
            OrderStatus.PAYMENT_VERIFIED,
            actor_id,
            extra={"payment_reference": payment_reference, "payment_confirmed_at": _utc_now()},
        )

    def assign_rider(
        self,
        order_id: str,
        rider_info: RiderInfo,
        actor_id: str,
        message: str | None = None,
    ) -> Order:
        """Move the order to rider_assigned with the rider's details."""
        if not rider_info.rider_id:
            raise InvalidFieldError("rider_info.rider_id", "is required")
        return self.transition(
            order_id, OrderStatus.RIDER_ASSIGNED, actor_id, message, rider_info=rider_info
        )

    def verify_delivery(self, order_id: str, code: str, verified_by: str) -> Order:
        """
        Confirm the physical handoff and move in_transit -> delivered.

        Raises:
            IllegalTransitionError: If the order isn't in_transit.
            InvalidVerificationCodeError: If the code doesn't match.
        """

        def check(order: Order) -> None:
            if order.status is not OrderStatus.IN_TRANSIT:
                raise IllegalTransitionError(
                    order_id, order.status.value, OrderStatus.DELIVERED.value
                )
            # compare_digest only accepts ASCII str, so compare encoded bytes.
            supplied = str(code).encode("utf-8")
            if not secrets.compare_digest(supplied, order.verification_code.encode("utf-8")):
                raise InvalidVerificationCodeError(order_id)

        return self._apply(
            order_id,
            OrderStatus.DELIVERED,
            verified_by,
            message="Order delivered and verified",
            check=check,
        )

    def cancel(self, order_id: str, cancelled_by: str, reason: str) -> Order:
        """
        Cancel an order and restore the stock it took.

        The status write, the stock restoration for every line and the
        tracking entry commit together or not at all.

        Raises:
            IllegalTransitionError: If the order was already picked up or is terminal.
            ProductNotFoundError: If a product to restock no longer exists.
        """
        reason = reason or "No reason given"
        with self.store.transaction() as tx:
            order = self._load_in(tx, order_id)
            if order.status not in CANCELLABLE_STATUSES:
                raise IllegalTransitionError(
                    order_id, order.status.value, OrderStatus.CANCELLED.value
                )

            lines = order.items or [
                OrderItem(product_id=order.product_id, product=order.product, quantity=order.quantity)
            ]
            for line in lines:
                self.catalog.adjust_stock_in(
                    tx, line.product_id, line.quantity, StockOperation.ADD, include_deleted=True
                )

            now = _utc_now()
            doc = tx.update(
                ORDERS_COLLECTION,
                order_id,
                {
                    "status": OrderStatus.CANCELLED.value,
                    "cancellation_reason": reason,
                    "cancelled_at": now,
                    "updated_at": now,
                },
            )
            self.tracking.append_in(
                tx, order_id, OrderStatus.CANCELLED, f"Order cancelled: {reason}", cancelled_by
            )

        cancelled = Order.from_dict(doc)
        logger.info(
            "order_cancelled",
            order_id=order_id,
            from_status=order.status.value,
            cancelled_by=cancelled_by,
            restocked={line.product_id: line.quantity for line in lines},
        )
        self.notifications.order_event(cancelled, OrderStatus.CANCELLED, reason)
        return cancelled
