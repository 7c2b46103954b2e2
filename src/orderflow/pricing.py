"""Tax, delivery fee and total computation.

The cart summary and order creation both go through ``PricingPolicy`` so the
two can never disagree.
"""

from dataclasses import dataclass

from .settings import Settings

DEFAULT_TAX_RATE = 0.05
DEFAULT_FREE_DELIVERY_THRESHOLD = 10000.0
DEFAULT_DELIVERY_FEE = 1000.0


@dataclass(frozen=True)
class Totals:
    subtotal: float
    tax: float
    delivery_fee: float
    total: float


@dataclass(frozen=True)
class PricingPolicy:
    """Pricing constants; delivery is free only strictly above the threshold."""

    tax_rate: float = DEFAULT_TAX_RATE
    free_delivery_threshold: float = DEFAULT_FREE_DELIVERY_THRESHOLD
    delivery_fee: float = DEFAULT_DELIVERY_FEE

    @classmethod
    def from_settings(cls, settings: Settings) -> "PricingPolicy":
        return cls(
            tax_rate=settings.tax_rate,
            free_delivery_threshold=settings.free_delivery_threshold,
            delivery_fee=settings.delivery_fee,
        )

    def compute_totals(self, subtotal: float) -> Totals:
        tax = subtotal * self.tax_rate
        delivery_fee = 0.0 if subtotal > self.free_delivery_threshold else self.delivery_fee
        return Totals(
            subtotal=subtotal,
            tax=tax,
            delivery_fee=delivery_fee,
            total=subtotal + tax + delivery_fee,
        )

