"""Wiring for orderflow components."""

from dataclasses import dataclass

from .cart import CartManager
from .catalog import ProductCatalog
from .document_store import DocumentStore
from .notifications import NotificationDispatch, NotificationSender, StoredNotificationSender
from .orders import OrderLifecycle
from .pricing import PricingPolicy
from .settings import Settings, load_settings
from .tracking import OrderTrackingLog


@dataclass
class Services:
    settings: Settings
    store: DocumentStore
    pricing: PricingPolicy
    catalog: ProductCatalog
    carts: CartManager
    tracking: OrderTrackingLog
    notifications: NotificationDispatch
    orders: OrderLifecycle


def build_services(
    settings: Settings | None = None,
    sender: NotificationSender | None = None,
) -> Services:
    """
    Build every component over one store and one pricing policy.

    Args:
        settings: Configuration (defaults to load_settings()).
        sender: Notification sender (defaults to storing notifications in the store).
    """
    settings = settings or load_settings()
    store = DocumentStore.from_settings(settings)
    pricing = PricingPolicy.from_settings(settings)
    catalog = ProductCatalog(store)
    carts = CartManager(store, catalog, pricing, price_tolerance=settings.price_tolerance)
    tracking = OrderTrackingLog(store)
    notifications = NotificationDispatch(sender or StoredNotificationSender(store))
    orders = OrderLifecycle(
        store,
        catalog,
        carts,
        tracking,
        notifications,
        pricing,
        order_number_prefix=settings.order_number_prefix,
    )
    return Services(
        settings=settings,
        store=store,
        pricing=pricing,
        catalog=catalog,
        carts=carts,
        tracking=tracking,
        notifications=notifications,
        orders=orders,
    )
