"""FastAPI REST API for the orderflow pipeline.

Actor IDs arrive already authenticated (in paths or request bodies); this
layer performs no credential checks.
"""

from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .errors import (
    CartInvalidForCheckoutError,
    CheckoutPartiallyFailedError,
    ConfigurationError,
    DocumentExistsError,
    DocumentNotFoundError,
    IllegalTransitionError,
    InsufficientStockError,
    InvalidFieldError,
    InvalidQuantityError,
    InvalidSchemaVersionError,
    InvalidVerificationCodeError,
    OrderflowError,
    OrderNotFoundError,
    ProductNotFoundError,
    ProductUnavailableError,
    StoreBusyError,
)
from .models import (
    Coordinates,
    DeliveryInfo,
    Order,
    OrderStatus,
    Product,
    ProductStatus,
    RiderInfo,
    StockOperation,
)
from .services import Services, build_services


# --- Pydantic Schemas ---


class ProductSnapshotSchema(BaseModel):
    product_id: str
    seller_id: str
    title: str
    price: float
    currency: str
    image: str = ""
    status: ProductStatus
    stock: int
    captured_at: str


class ProductSchema(BaseModel):
    id: str
    seller_id: str
    title: str
    price: float
    stock: int
    currency: str
    description: str = ""
    category: str = ""
    images: list[str] = []
    status: ProductStatus
    orders: int = 0
    created_at: str
    updated_at: str
    deleted_at: Optional[str] = None


class ProductCreateRequest(BaseModel):
    seller_id: str
    title: str
    price: float = Field(..., ge=0)
    stock: int = Field(..., ge=0)
    currency: str = "NGN"
    description: str = ""
    category: str = ""
    images: list[str] = []
    status: ProductStatus = ProductStatus.ACTIVE


class ProductUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    images: Optional[list[str]] = None
    price: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = None


class StockAdjustRequest(BaseModel):
    delta: int = Field(..., gt=0)
    reason: StockOperation


class StockAdjustResponse(BaseModel):
    product_id: str
    stock: int


class ProductStatusRequest(BaseModel):
    status: ProductStatus


class ProductListResponse(BaseModel):
    products: list[ProductSchema]
    count: int
    next_cursor: Optional[str]
    has_more: bool


class CartItemSchema(BaseModel):
    id: str
    product_id: str
    product: ProductSnapshotSchema
    quantity: int
    added_at: str


class CartSchema(BaseModel):
    user_id: str
    items: list[CartItemSchema]
    total_items: int
    total_amount: float
    updated_at: str


class CartItemAddRequest(BaseModel):
    product_id: str
    quantity: int = 1


class CartItemUpdateRequest(BaseModel):
    quantity: int


class CheckoutValidationSchema(BaseModel):
    is_valid: bool
    errors: list[str]
    unavailable_product_ids: list[str]
    warnings: list[str]


class CartSummarySchema(BaseModel):
    subtotal: float
    tax: float
    delivery_fee: float
    total: float
    item_count: int


class CoordinatesSchema(BaseModel):
    latitude: float
    longitude: float


class DeliveryInfoSchema(BaseModel):
    recipient_name: str
    phone_number: str
    address: str
    landmark: Optional[str] = None
    delivery_instructions: Optional[str] = None
    coordinates: Optional[CoordinatesSchema] = None


class CheckoutRequest(BaseModel):
    delivery_info: DeliveryInfoSchema
    payment_method: str
    instructions: Optional[str] = None


class CheckoutResponse(BaseModel):
    order_ids: list[str]
    count: int


class RiderInfoSchema(BaseModel):
    rider_id: str
    name: str
    phone_number: str
    rating: float = 0.0


class OrderItemSchema(BaseModel):
    product_id: str
    product: ProductSnapshotSchema
    quantity: int


class OrderSchema(BaseModel):
    id: str
    order_number: str
    buyer_id: str
    seller_id: str
    product_id: str
    product: ProductSnapshotSchema
    items: list[OrderItemSchema]
    quantity: int
    total_amount: float
    tax: float
    delivery_fee: float
    grand_total: float
    status: OrderStatus
    delivery_info: DeliveryInfoSchema
    verification_code: str
    payment_method: str
    payment_reference: str = ""
    special_instructions: str = ""
    rider_id: Optional[str] = None
    rider_info: Optional[RiderInfoSchema] = None
    cancellation_reason: Optional[str] = None
    created_at: str
    updated_at: str
    payment_confirmed_at: Optional[str] = None
    delivered_at: Optional[str] = None
    cancelled_at: Optional[str] = None


class OrderListResponse(BaseModel):
    orders: list[OrderSchema]
    count: int
    next_cursor: Optional[str]
    has_more: bool


class TransitionRequest(BaseModel):
    status: OrderStatus
    actor_id: str
    message: Optional[str] = None
    rider_info: Optional[RiderInfoSchema] = None
    location: Optional[CoordinatesSchema] = None


class PaymentRequest(BaseModel):
    payment_reference: str
    actor_id: str


class AssignRiderRequest(BaseModel):
    rider_info: RiderInfoSchema
    actor_id: str
    message: Optional[str] = None


class VerifyDeliveryRequest(BaseModel):
    code: str
    verified_by: str


class CancelRequest(BaseModel):
    cancelled_by: str
    reason: str


class TrackingEntrySchema(BaseModel):
    id: str
    order_id: str
    status: OrderStatus
    message: str
    updated_by: str
    sequence: int
    timestamp: str
    location: Optional[CoordinatesSchema] = None


class TrackingResponse(BaseModel):
    order_id: str
    entries: list[TrackingEntrySchema]


class ErrorResponse(BaseModel):
    detail: str
    error_type: str


# --- FastAPI App ---

app = FastAPI(
    title="orderflow API",
    description="Cart, checkout and order lifecycle for a multi-seller marketplace",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Helper Functions ---


def get_services() -> Services:
    """Build services from the current environment."""
    return build_services()


def product_to_schema(product: Product) -> ProductSchema:
    return ProductSchema(**product.to_dict())


def order_to_schema(order: Order) -> OrderSchema:
    return OrderSchema(**order.to_dict())


def _coordinates(schema: Optional[CoordinatesSchema]) -> Optional[Coordinates]:
    if schema is None:
        return None
    return Coordinates(latitude=schema.latitude, longitude=schema.longitude)


def _rider_info(schema: Optional[RiderInfoSchema]) -> Optional[RiderInfo]:
    if schema is None:
        return None
    return RiderInfo(**schema.model_dump())


# --- Global Exception Handler ---


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    ProductNotFoundError: 404,
    OrderNotFoundError: 404,
    DocumentNotFoundError: 404,
    DocumentExistsError: 409,
    ProductUnavailableError: 409,
    InsufficientStockError: 409,
    CartInvalidForCheckoutError: 409,
    CheckoutPartiallyFailedError: 409,
    IllegalTransitionError: 409,
    InvalidQuantityError: 400,
    InvalidFieldError: 400,
    InvalidVerificationCodeError: 400,
    StoreBusyError: 503,
    InvalidSchemaVersionError: 500,
    ConfigurationError: 500,
}


@app.exception_handler(OrderflowError)
async def orderflow_error_handler(request: Request, exc: OrderflowError) -> JSONResponse:
    """Map OrderflowError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    content: dict = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, CartInvalidForCheckoutError):
        content["errors"] = exc.errors
        content["unavailable_product_ids"] = exc.unavailable_product_ids
    if isinstance(exc, CheckoutPartiallyFailedError):
        content["created_order_ids"] = exc.created_order_ids
        content["failed_seller_id"] = exc.failed_seller_id
    return JSONResponse(status_code=status_code, content=content)


# --- Endpoints ---


@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    services = get_services()
    try:
        services.store.get("products", "__health__")
        return {"status": "ok", "version": __version__}
    except Exception as e:
        return {"status": "error", "detail": str(e)}


# --- Product Endpoints ---


@app.post("/api/products", response_model=ProductSchema, status_code=201)
def create_product(request: ProductCreateRequest):
    """Create a product for a seller."""
    product = get_services().catalog.create_product(**request.model_dump())
    return product_to_schema(product)


@app.get("/api/products", response_model=ProductListResponse)
def list_products(
    seller_id: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    status: Optional[ProductStatus] = Query(default=None),
    in_stock: Optional[bool] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    cursor: Optional[str] = Query(default=None),
):
    """List products with optional filters and cursor pagination."""
    page = get_services().catalog.list_products(
        seller_id=seller_id,
        category=category,
        status=status,
        in_stock=in_stock,
        limit=limit,
        cursor=cursor,
    )
    return ProductListResponse(
        products=[product_to_schema(p) for p in page.products],
        count=len(page.products),
        next_cursor=page.next_cursor,
        has_more=page.has_more,
    )


@app.get("/api/products/{product_id}", response_model=ProductSchema)
def get_product(product_id: str):
    return product_to_schema(get_services().catalog.get_product(product_id))


@app.patch("/api/products/{product_id}", response_model=ProductSchema)
def update_product(product_id: str, request: ProductUpdateRequest):
    """Edit a product's descriptive fields or price."""
    fields = request.model_dump(exclude_none=True)
    return product_to_schema(get_services().catalog.update_product(product_id, **fields))


@app.post("/api/products/{product_id}/stock", response_model=StockAdjustResponse)
def adjust_stock(product_id: str, request: StockAdjustRequest):
    """Atomically add or subtract stock."""
    stock = get_services().catalog.adjust_stock(product_id, request.delta, request.reason)
    return StockAdjustResponse(product_id=product_id, stock=stock)


@app.post("/api/products/{product_id}/status", response_model=ProductSchema)
def set_product_status(product_id: str, request: ProductStatusRequest):
    return product_to_schema(get_services().catalog.set_status(product_id, request.status))


@app.delete("/api/products/{product_id}", response_model=ProductSchema)
def delete_product(product_id: str):
    """Logically delete a product."""
    return product_to_schema(get_services().catalog.delete_product(product_id))


# --- Cart Endpoints ---


@app.get("/api/carts/{user_id}", response_model=CartSchema)
def get_cart(user_id: str):
    return CartSchema(**get_services().carts.get_or_create_cart(user_id).to_dict())


@app.delete("/api/carts/{user_id}", response_model=CartSchema)
def clear_cart(user_id: str):
    return CartSchema(**get_services().carts.clear(user_id).to_dict())


@app.post("/api/carts/{user_id}/items", response_model=CartSchema)
def add_cart_item(user_id: str, request: CartItemAddRequest):
    cart = get_services().carts.add_item(user_id, request.product_id, request.quantity)
    return CartSchema(**cart.to_dict())


@app.patch("/api/carts/{user_id}/items/{product_id}", response_model=CartSchema)
def update_cart_item(user_id: str, product_id: str, request: CartItemUpdateRequest):
    """Set a line's quantity; zero removes the line."""
    cart = get_services().carts.update_quantity(user_id, product_id, request.quantity)
    return CartSchema(**cart.to_dict())


@app.delete("/api/carts/{user_id}/items/{product_id}", response_model=CartSchema)
def remove_cart_item(user_id: str, product_id: str):
    return CartSchema(**get_services().carts.remove_item(user_id, product_id).to_dict())


@app.post("/api/carts/{user_id}/sync", response_model=CartSchema)
def sync_cart(user_id: str):
    """Refresh cart snapshots from the live catalog (called when the cart view opens)."""
    return CartSchema(**get_services().carts.sync_with_latest_data(user_id).to_dict())


@app.get("/api/carts/{user_id}/validate", response_model=CheckoutValidationSchema)
def validate_cart(user_id: str):
    validation = get_services().carts.validate_for_checkout(user_id)
    return CheckoutValidationSchema(**validation.to_dict())


@app.get("/api/carts/{user_id}/summary", response_model=CartSummarySchema)
def cart_summary(user_id: str):
    return CartSummarySchema(**get_services().carts.get_cart_summary(user_id).to_dict())


@app.post("/api/carts/{user_id}/checkout", response_model=CheckoutResponse, status_code=201)
def checkout(user_id: str, request: CheckoutRequest):
    """Create one order per seller from the cart."""
    info = request.delivery_info
    delivery_info = DeliveryInfo(
        recipient_name=info.recipient_name,
        phone_number=info.phone_number,
        address=info.address,
        landmark=info.landmark,
        delivery_instructions=info.delivery_instructions,
        coordinates=_coordinates(info.coordinates),
    )
    order_ids = get_services().orders.create_from_cart(
        user_id, delivery_info, request.payment_method, request.instructions
    )
    return CheckoutResponse(order_ids=order_ids, count=len(order_ids))


# --- Order Endpoints ---


@app.get("/api/orders", response_model=OrderListResponse)
def list_orders(
    user_id: Optional[str] = Query(default=None),
    role: Optional[str] = Query(default=None, description="buyer|seller|rider|admin"),
    status: Optional[OrderStatus] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    cursor: Optional[str] = Query(default=None),
):
    """List orders newest first."""
    page = get_services().orders.list_orders(
        user_id=user_id, role=role, status=status, limit=limit, cursor=cursor
    )
    return OrderListResponse(
        orders=[order_to_schema(o) for o in page.orders],
        count=len(page.orders),
        next_cursor=page.next_cursor,
        has_more=page.has_more,
    )


@app.get("/api/orders/{order_id}", response_model=OrderSchema)
def get_order(order_id: str):
    return order_to_schema(get_services().orders.get_order(order_id))


@app.post("/api/orders/{order_id}/transition", response_model=OrderSchema)
def transition_order(order_id: str, request: TransitionRequest):
    order = get_services().orders.transition(
        order_id,
        request.status,
        request.actor_id,
        message=request.message,
        rider_info=_rider_info(request.rider_info),
        location=_coordinates(request.location),
    )
    return order_to_schema(order)


@app.post("/api/orders/{order_id}/payment", response_model=OrderSchema)
def confirm_payment(order_id: str, request: PaymentRequest):
    """Record the payment-confirmed signal."""
    order = get_services().orders.confirm_payment(
        order_id, request.payment_reference, request.actor_id
    )
    return order_to_schema(order)


@app.post("/api/orders/{order_id}/assign-rider", response_model=OrderSchema)
def assign_rider(order_id: str, request: AssignRiderRequest):
    order = get_services().orders.assign_rider(
        order_id, _rider_info(request.rider_info), request.actor_id, request.message
    )
    return order_to_schema(order)


@app.post("/api/orders/{order_id}/verify", response_model=OrderSchema)
def verify_delivery(order_id: str, request: VerifyDeliveryRequest):
    order = get_services().orders.verify_delivery(order_id, request.code, request.verified_by)
    return order_to_schema(order)


@app.post("/api/orders/{order_id}/cancel", response_model=OrderSchema)
def cancel_order(order_id: str, request: CancelRequest):
    order = get_services().orders.cancel(order_id, request.cancelled_by, request.reason)
    return order_to_schema(order)


@app.get("/api/orders/{order_id}/tracking", response_model=TrackingResponse)
def order_tracking(order_id: str):
    entries = get_services().orders.history(order_id)
    return TrackingResponse(
        order_id=order_id,
        entries=[TrackingEntrySchema(**e.to_dict()) for e in entries],
    )
