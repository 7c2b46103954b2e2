"""Tests for settings and logging configuration."""

import pytest

from orderflow.document_store import DocumentStore
from orderflow.errors import ConfigurationError
from orderflow.logging_setup import configure_logging
from orderflow.settings import load_settings


class TestLoadSettings:
    def test_defaults(self, settings, temp_dir):
        assert settings.data_dir == temp_dir / "data"
        assert settings.tax_rate == 0.05
        assert settings.free_delivery_threshold == 10000.0
        assert settings.delivery_fee == 1000.0
        assert settings.lock_attempts == 50
        assert settings.order_number_prefix == "R9J"
        store = DocumentStore.from_settings(settings)
        assert store.store_path == temp_dir / "data" / "store.json"

    def test_env_overrides(self, settings, monkeypatch):
        monkeypatch.setenv("ORDERFLOW_TAX_RATE", "0.075")
        monkeypatch.setenv("ORDERFLOW_LOCK_ATTEMPTS", "5")
        monkeypatch.setenv("ORDERFLOW_ORDER_PREFIX", "ZZ")

        loaded = load_settings()

        assert loaded.tax_rate == 0.075
        assert loaded.lock_attempts == 5
        assert loaded.order_number_prefix == "ZZ"

    def test_explicit_data_dir_wins(self, settings, temp_dir):
        assert load_settings(temp_dir / "other").data_dir == temp_dir / "other"

    @pytest.mark.parametrize(
        "name,value",
        [
            ("ORDERFLOW_TAX_RATE", "five percent"),
            ("ORDERFLOW_LOCK_ATTEMPTS", "many"),
            ("ORDERFLOW_LOCK_ATTEMPTS", "0"),
        ],
    )
    def test_malformed_values_raise(self, settings, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ConfigurationError):
            load_settings()

    def test_order_prefix_flows_into_order_numbers(
        self, settings, monkeypatch, delivery_info
    ):
        from orderflow.services import build_services

        monkeypatch.setenv("ORDERFLOW_ORDER_PREFIX", "QA")
        services = build_services(load_settings())
        product = services.catalog.create_product("s1", "Widget", 100.0, 1)
        services.carts.add_item("b1", product.id, 1)

        [order_id] = services.orders.create_from_cart("b1", delivery_info, "cash")

        assert services.orders.get_order(order_id).order_number.startswith("QA")


class TestConfigureLogging:
    def test_unknown_level_raises(self):
        with pytest.raises(ConfigurationError):
            configure_logging("chatty")

    def test_known_level(self):
        configure_logging("debug")
