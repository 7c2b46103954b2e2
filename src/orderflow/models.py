"""Data models for orderflow."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import uuid


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _generate_id() -> str:
    """Generate a new document ID."""
    return str(uuid.uuid4())


class ProductStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DRAFT = "draft"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAYMENT_VERIFIED = "payment_verified"
    RIDER_ASSIGNED = "rider_assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class StockOperation(str, Enum):
    ADD = "add"
    SUBTRACT = "subtract"


# Catalog models


@dataclass
class Product:
    """A seller's product; ``stock`` is authoritative and never negative."""

    id: str
    seller_id: str
    title: str
    price: float
    stock: int
    currency: str = "NGN"
    description: str = ""
    category: str = ""
    images: list[str] = field(default_factory=list)
    status: ProductStatus = ProductStatus.ACTIVE
    orders: int = 0
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)
    deleted_at: str | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def snapshot(self) -> "ProductSnapshot":
        """Capture the fields carts and orders keep a copy of."""
        return ProductSnapshot(
            product_id=self.id,
            seller_id=self.seller_id,
            title=self.title,
            price=self.price,
            currency=self.currency,
            image=self.images[0] if self.images else "",
            status=self.status,
            stock=self.stock,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "seller_id": self.seller_id,
            "title": self.title,
            "price": self.price,
            "stock": self.stock,
            "currency": self.currency,
            "description": self.description,
            "category": self.category,
            "images": list(self.images),
            "status": self.status.value,
            "orders": self.orders,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.deleted_at is not None:
            result["deleted_at"] = self.deleted_at
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        return cls(
            id=data["id"],
            seller_id=data["seller_id"],
            title=data["title"],
            price=data["price"],
            stock=data["stock"],
            currency=data.get("currency", "NGN"),
            description=data.get("description", ""),
            category=data.get("category", ""),
            images=list(data.get("images", [])),
            status=ProductStatus(data.get("status", ProductStatus.ACTIVE.value)),
            orders=data.get("orders", 0),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            deleted_at=data.get("deleted_at"),
        )

    @classmethod
    def create(
        cls,
        seller_id: str,
        title: str,
        price: float,
        stock: int,
        currency: str = "NGN",
        description: str = "",
        category: str = "",
        images: list[str] | None = None,
        status: ProductStatus = ProductStatus.ACTIVE,
    ) -> "Product":
        """Create a new product with generated ID and timestamps."""
        now = _utc_now()
        return cls(
            id=_generate_id(),
            seller_id=seller_id,
            title=title,
            price=price,
            stock=stock,
            currency=currency,
            description=description,
            category=category,
            images=list(images or []),
            status=status,
            created_at=now,
            updated_at=now,
        )


@dataclass
class ProductSnapshot:
    """Copy of a product's fields as of ``captured_at``.

    Price and availability may be stale by the time the snapshot is read.
    Re-validate against the catalog before trusting it for money or stock
    decisions.
    """

    product_id: str
    seller_id: str
    title: str
    price: float
    currency: str
    image: str = ""
    status: ProductStatus = ProductStatus.ACTIVE
    stock: int = 0
    captured_at: str = field(default_factory=_utc_now)

    def matches(self, product: Product) -> bool:
        """Whether this snapshot still reflects ``product`` (ignoring capture time)."""
        fresh = product.snapshot()
        return (
            self.seller_id == fresh.seller_id
            and self.title == fresh.title
            and self.price == fresh.price
            and self.currency == fresh.currency
            and self.image == fresh.image
            and self.status == fresh.status
            and self.stock == fresh.stock
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "seller_id": self.seller_id,
            "title": self.title,
            "price": self.price,
            "currency": self.currency,
            "image": self.image,
            "status": self.status.value,
            "stock": self.stock,
            "captured_at": self.captured_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductSnapshot":
        return cls(
            product_id=data["product_id"],
            seller_id=data["seller_id"],
            title=data["title"],
            price=data["price"],
            currency=data.get("currency", "NGN"),
            image=data.get("image", ""),
            status=ProductStatus(data.get("status", ProductStatus.ACTIVE.value)),
            stock=data.get("stock", 0),
            captured_at=data.get("captured_at", ""),
        )


# Cart models


@dataclass
class CartItem:
    """One cart line; ``product`` is the snapshot taken when the line was added."""

    id: str
    product_id: str
    product: ProductSnapshot
    quantity: int
    added_at: str = field(default_factory=_utc_now)

    @property
    def line_total(self) -> float:
        return self.product.price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_dict(),
            "quantity": self.quantity,
            "added_at": self.added_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartItem":
        return cls(
            id=data["id"],
            product_id=data["product_id"],
            product=ProductSnapshot.from_dict(data["product"]),
            quantity=data["quantity"],
            added_at=data.get("added_at", ""),
        )

    @classmethod
    def create(cls, product: Product, quantity: int) -> "CartItem":
        now = _utc_now()
        return cls(
            id=f"{product.id}_{uuid.uuid4().hex[:8]}",
            product_id=product.id,
            product=product.snapshot(),
            quantity=quantity,
            added_at=now,
        )


@dataclass
class Cart:
    """A buyer's cart, keyed by ``user_id``."""

    user_id: str
    items: list[CartItem] = field(default_factory=list)
    total_items: int = 0
    total_amount: float = 0.0
    updated_at: str = field(default_factory=_utc_now)

    def recompute_totals(self) -> None:
        """Recompute totals from the lines, using snapshot prices."""
        self.total_items = sum(item.quantity for item in self.items)
        self.total_amount = sum(item.line_total for item in self.items)

    def find_item(self, product_id: str) -> CartItem | None:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "items": [i.to_dict() for i in self.items],
            "total_items": self.total_items,
            "total_amount": self.total_amount,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Cart":
        return cls(
            user_id=data["user_id"],
            items=[CartItem.from_dict(i) for i in data.get("items", [])],
            total_items=data.get("total_items", 0),
            total_amount=data.get("total_amount", 0.0),
            updated_at=data.get("updated_at", ""),
        )

    @classmethod
    def create_empty(cls, user_id: str) -> "Cart":
        return cls(user_id=user_id)


@dataclass
class CheckoutValidation:
    """Result of a read-only checkout validation pass."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    unavailable_product_ids: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "unavailable_product_ids": list(self.unavailable_product_ids),
            "warnings": list(self.warnings),
        }


@dataclass
class CartSummary:
    subtotal: float
    tax: float
    delivery_fee: float
    total: float
    item_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "tax": self.tax,
            "delivery_fee": self.delivery_fee,
            "total": self.total,
            "item_count": self.item_count,
        }


# Order models


@dataclass
class Coordinates:
    latitude: float
    longitude: float

    def to_dict(self) -> dict[str, Any]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Coordinates":
        return cls(latitude=data["latitude"], longitude=data["longitude"])


@dataclass
class DeliveryInfo:
    recipient_name: str
    phone_number: str
    address: str
    landmark: str | None = None
    delivery_instructions: str | None = None
    coordinates: Coordinates | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "recipient_name": self.recipient_name,
            "phone_number": self.phone_number,
            "address": self.address,
        }
        if self.landmark is not None:
            result["landmark"] = self.landmark
        if self.delivery_instructions is not None:
            result["delivery_instructions"] = self.delivery_instructions
        if self.coordinates is not None:
            result["coordinates"] = self.coordinates.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeliveryInfo":
        coordinates = None
        if data.get("coordinates"):
            coordinates = Coordinates.from_dict(data["coordinates"])
        return cls(
            recipient_name=data["recipient_name"],
            phone_number=data["phone_number"],
            address=data["address"],
            landmark=data.get("landmark"),
            delivery_instructions=data.get("delivery_instructions"),
            coordinates=coordinates,
        )


@dataclass
class RiderInfo:
    rider_id: str
    name: str
    phone_number: str
    rating: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "rider_id": self.rider_id,
            "name": self.name,
            "phone_number": self.phone_number,
            "rating": self.rating,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RiderInfo":
        return cls(
            rider_id=data["rider_id"],
            name=data["name"],
            phone_number=data["phone_number"],
            rating=data.get("rating", 0.0),
        )


@dataclass
class OrderItem:
    product_id: str
    product: ProductSnapshot
    quantity: int

    @property
    def line_total(self) -> float:
        return self.product.price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product": self.product.to_dict(),
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            product_id=data["product_id"],
            product=ProductSnapshot.from_dict(data["product"]),
            quantity=data["quantity"],
        )


@dataclass
class Order:
    """A seller-scoped purchase created from a cart.

    ``product_id``/``product`` describe the first line; ``items`` holds every
    line of the seller's partition. ``total_amount`` is the line subtotal at
    snapshot prices; ``tax``, ``delivery_fee`` and ``grand_total`` come from the
    pricing policy. ``verification_code`` never changes after creation.
    """

    id: str
    order_number: str
    buyer_id: str
    seller_id: str
    product_id: str
    product: ProductSnapshot
    items: list[OrderItem]
    quantity: int
    total_amount: float
    tax: float
    delivery_fee: float
    grand_total: float
    status: OrderStatus
    delivery_info: DeliveryInfo
    verification_code: str
    payment_method: str
    payment_reference: str = ""
    special_instructions: str = ""
    rider_id: str | None = None
    rider_info: RiderInfo | None = None
    cancellation_reason: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)
    payment_confirmed_at: str | None = None
    delivered_at: str | None = None
    cancelled_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "order_number": self.order_number,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "product_id": self.product_id,
            "product": self.product.to_dict(),
            "items": [i.to_dict() for i in self.items],
            "quantity": self.quantity,
            "total_amount": self.total_amount,
            "tax": self.tax,
            "delivery_fee": self.delivery_fee,
            "grand_total": self.grand_total,
            "status": self.status.value,
            "delivery_info": self.delivery_info.to_dict(),
            "verification_code": self.verification_code,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "special_instructions": self.special_instructions,
            "rider_id": self.rider_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.rider_info is not None:
            result["rider_info"] = self.rider_info.to_dict()
        if self.cancellation_reason is not None:
            result["cancellation_reason"] = self.cancellation_reason
        if self.payment_confirmed_at is not None:
            result["payment_confirmed_at"] = self.payment_confirmed_at
        if self.delivered_at is not None:
            result["delivered_at"] = self.delivered_at
        if self.cancelled_at is not None:
            result["cancelled_at"] = self.cancelled_at
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        rider_info = None
        if data.get("rider_info"):
            rider_info = RiderInfo.from_dict(data["rider_info"])
        return cls(
            id=data["id"],
            order_number=data["order_number"],
            buyer_id=data["buyer_id"],
            seller_id=data["seller_id"],
            product_id=data["product_id"],
            product=ProductSnapshot.from_dict(data["product"]),
            items=[OrderItem.from_dict(i) for i in data.get("items", [])],
            quantity=data["quantity"],
            total_amount=data["total_amount"],
            tax=data.get("tax", 0.0),
            delivery_fee=data.get("delivery_fee", 0.0),
            grand_total=data.get("grand_total", data["total_amount"]),
            status=OrderStatus(data["status"]),
            delivery_info=DeliveryInfo.from_dict(data["delivery_info"]),
            verification_code=data["verification_code"],
            payment_method=data["payment_method"],
            payment_reference=data.get("payment_reference", ""),
            special_instructions=data.get("special_instructions", ""),
            rider_id=data.get("rider_id"),
            rider_info=rider_info,
            cancellation_reason=data.get("cancellation_reason"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            payment_confirmed_at=data.get("payment_confirmed_at"),
            delivered_at=data.get("delivered_at"),
            cancelled_at=data.get("cancelled_at"),
        )


@dataclass
class OrderTrackingEntry:
    """One immutable record of an order status change."""

    id: str
    order_id: str
    status: OrderStatus
    message: str
    updated_by: str
    sequence: int
    timestamp: str = field(default_factory=_utc_now)
    location: Coordinates | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "order_id": self.order_id,
            "status": self.status.value,
            "message": self.message,
            "updated_by": self.updated_by,
            "sequence": self.sequence,
            "timestamp": self.timestamp,
        }
        if self.location is not None:
            result["location"] = self.location.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderTrackingEntry":
        location = None
        if data.get("location"):
            location = Coordinates.from_dict(data["location"])
        return cls(
            id=data["id"],
            order_id=data["order_id"],
            status=OrderStatus(data["status"]),
            message=data["message"],
            updated_by=data["updated_by"],
            sequence=data.get("sequence", 0),
            timestamp=data.get("timestamp", ""),
            location=location,
        )


@dataclass
class Notification:
    title: str
    message: str
    type: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "data": dict(self.data),
        }


# Paged query results


@dataclass
class ProductPage:
    products: list[Product]
    next_cursor: str | None
    has_more: bool


@dataclass
class OrderPage:
    orders: list[Order]
    next_cursor: str | None
    has_more: bool
