"""Configuration for orderflow.

Every value can be overridden through an ``ORDERFLOW_*`` environment variable.
Settings are read when ``load_settings()`` is called, not at import time.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError

# Default data directory within the orderflow project
_default_data_dir = Path(__file__).parent.parent.parent / "data"

STORE_FILE = "store.json"
LOCK_FILE = ".store.lock"


@dataclass(frozen=True)
class Settings:
    """Runtime configuration shared by every component."""

    data_dir: Path
    tax_rate: float = 0.05
    free_delivery_threshold: float = 10000.0
    delivery_fee: float = 1000.0
    price_tolerance: float = 0.01
    lock_attempts: int = 50
    lock_backoff: float = 0.01
    order_number_prefix: str = "R9J"
    log_level: str = "INFO"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(name, raw) from None


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(name, raw) from None
    if value < 1:
        raise ConfigurationError(name, raw)
    return value


def load_settings(data_dir: Path | None = None) -> Settings:
    """
    Build Settings from the environment.

    Args:
        data_dir: Override the data directory (for testing).

    Raises:
        ConfigurationError: If a numeric variable can't be parsed.
    """
    if data_dir is None:
        data_dir = Path(os.environ.get("ORDERFLOW_DATA_DIR", _default_data_dir))

    return Settings(
        data_dir=Path(data_dir),
        tax_rate=_env_float("ORDERFLOW_TAX_RATE", 0.05),
        free_delivery_threshold=_env_float("ORDERFLOW_FREE_DELIVERY_THRESHOLD", 10000.0),
        delivery_fee=_env_float("ORDERFLOW_DELIVERY_FEE", 1000.0),
        price_tolerance=_env_float("ORDERFLOW_PRICE_TOLERANCE", 0.01),
        lock_attempts=_env_int("ORDERFLOW_LOCK_ATTEMPTS", 50),
        lock_backoff=_env_float("ORDERFLOW_LOCK_BACKOFF", 0.01),
        order_number_prefix=os.environ.get("ORDERFLOW_ORDER_PREFIX", "R9J"),
        log_level=os.environ.get("ORDERFLOW_LOG_LEVEL", "INFO").upper(),
    )
