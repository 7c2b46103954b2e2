"""orderflow: cart-to-order pipeline for a multi-seller marketplace."""

__version__ = "0.1.0"
