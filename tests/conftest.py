"""Pytest fixtures for orderflow tests."""

import tempfile
from pathlib import Path

import pytest

from orderflow.models import DeliveryInfo
from orderflow.notifications import RecordingNotificationSender
from orderflow.services import build_services
from orderflow.settings import load_settings


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_dir, monkeypatch):
    """Settings pointing at a fresh data directory, ignoring the caller's env."""
    for name in (
        "ORDERFLOW_TAX_RATE",
        "ORDERFLOW_FREE_DELIVERY_THRESHOLD",
        "ORDERFLOW_DELIVERY_FEE",
        "ORDERFLOW_PRICE_TOLERANCE",
        "ORDERFLOW_LOCK_ATTEMPTS",
        "ORDERFLOW_LOCK_BACKOFF",
        "ORDERFLOW_ORDER_PREFIX",
        "ORDERFLOW_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ORDERFLOW_DATA_DIR", str(temp_dir / "data"))
    return load_settings()


@pytest.fixture
def sender():
    return RecordingNotificationSender()


@pytest.fixture
def services(settings, sender):
    """Every component over one store, recording notifications in memory."""
    return build_services(settings, sender=sender)


@pytest.fixture
def store(services):
    return services.store


@pytest.fixture
def catalog(services):
    return services.catalog


@pytest.fixture
def carts(services):
    return services.carts


@pytest.fixture
def orders(services):
    return services.orders


@pytest.fixture
def delivery_info():
    return DeliveryInfo(
        recipient_name="Ada Obi",
        phone_number="+2348000000000",
        address="12 Marina Road, Lagos",
        landmark="Opposite the bank",
    )


@pytest.fixture
def make_product(catalog):
    """Factory for products with sensible defaults."""

    def _make(seller_id="seller-1", title="Widget", price=5000.0, stock=10, **kwargs):
        return catalog.create_product(
            seller_id=seller_id, title=title, price=price, stock=stock, **kwargs
        )

    return _make


@pytest.fixture
def place_order(carts, orders, delivery_info):
    """Put ``quantity`` of ``product`` in ``buyer``'s cart and check out."""

    def _place(product, quantity=1, buyer="buyer-1"):
        carts.add_item(buyer, product.id, quantity)
        order_ids = orders.create_from_cart(buyer, delivery_info, "card")
        return orders.get_order(order_ids[0])

    return _place
