"""Command-line interface for orderflow."""

import argparse
import json
import sys
from pathlib import Path

from . import __version__
from .errors import OrderflowError
from .logging_setup import configure_logging
from .models import Order, OrderStatus, Product, ProductStatus, StockOperation
from .services import Services, build_services
from .settings import load_settings


def get_services(args: argparse.Namespace) -> Services:
    """Build services, honoring --data-dir."""
    data_dir = Path(args.data_dir) if getattr(args, "data_dir", None) else None
    return build_services(load_settings(data_dir))


def format_product(product: Product) -> str:
    status = product.status.value
    if product.is_deleted:
        status = "deleted"
    return (
        f"{product.id[:8]}  {product.title}  "
        f"{product.currency} {product.price:,.2f}  stock={product.stock}  [{status}]"
    )


def format_order(order: Order) -> str:
    return (
        f"{order.id[:8]}  #{order.order_number}  [{order.status.value}]  "
        f"buyer={order.buyer_id}  seller={order.seller_id}  "
        f"total={order.grand_total:,.2f}"
    )


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2))


# --- Products ---


def cmd_product_add(args: argparse.Namespace) -> int:
    """Create a product."""
    try:
        services = get_services(args)
        product = services.catalog.create_product(
            seller_id=args.seller,
            title=args.title,
            price=args.price,
            stock=args.stock,
            currency=args.currency,
            description=args.desc or "",
            category=args.category or "",
            status=ProductStatus(args.status),
        )

        if args.json:
            _print_json(product.to_dict())
        else:
            print(f"Added product: {product.id}")
            print(f"  {format_product(product)}")
        return 0

    except OrderflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_product_show(args: argparse.Namespace) -> int:
    """Show a product."""
    try:
        services = get_services(args)
        product = services.catalog.get_product(args.product_id, include_deleted=True)

        if args.json:
            _print_json(product.to_dict())
        else:
            print(format_product(product))
            print(f"  Seller:   {product.seller_id}")
            if product.category:
                print(f"  Category: {product.category}")
            if product.description:
                print(f"  {product.description}")
            print(f"  Orders:   {product.orders}")
        return 0

    except OrderflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_product_list(args: argparse.Namespace) -> int:
    """List products."""
    try:
        services = get_services(args)
        page = services.catalog.list_products(
            seller_id=args.seller,
            category=args.category,
            limit=args.limit,
            cursor=args.cursor,
        )

        if args.json:
            _print_json({
                "products": [p.to_dict() for p in page.products],
                "next_cursor": page.next_cursor,
                "has_more": page.has_more,
            })
            return 0

        if not page.products:
            print("No products found.")
            return 0

        print(f"Products ({len(page.products)}):")
        for p in page.products:
            print(f"  {format_product(p)}")
        if page.has_more:
            print(f"More: --cursor {page.next_cursor}")
        return 0

    except OrderflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_product_stock(args: argparse.Namespace) -> int:
    """Add or subtract stock."""
    try:
        services = get_services(args)
        stock = services.catalog.adjust_stock(
            args.product_id, args.delta, StockOperation(args.operation)
        )
        print(f"Stock for {args.product_id}: {stock}")
        return 0

    except OrderflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_product_status(args: argparse.Namespace) -> int:
    """Set a product's status."""
    try:
        services = get_services(args)
        product = services.catalog.set_status(args.product_id, ProductStatus(args.status))
        print(format_product(product))
        return 0

    except OrderflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- Carts ---


def cmd_cart_show(args: argparse.Namespace) -> int:
    """Show a buyer's cart and its checkout summary."""
    try:
        services = get_services(args)
        cart = services.carts.get_or_create_cart(args.user_id)
        summary = services.carts.get_cart_summary(args.user_id)

        if args.json:
            _print_json({"cart": cart.to_dict(), "summary": summary.to_dict()})
            return 0

        if not cart.items:
            print(f"Cart for {args.user_id} is empty.")
            return 0

        print(f"Cart for {args.user_id} ({cart.total_items} items):")
        for item in cart.items:
            print(
                f"  {item.product_id[:8]}  {item.product.title}  "
                f"x{item.quantity}  @ {item.product.price:,.2f}"
            )
        print()
        print(f"  Subtotal:     {summary.subtotal:,.2f}")
        print(f"  Tax:          {summary.tax:,.2f}")
        print(f"  Delivery fee: {summary.delivery_fee:,.2f}")
        print(f"  Total:        {summary.total:,.2f}")
        return 0

    except OrderflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- Orders ---


def cmd_order_show(args: argparse.Namespace) -> int:
    """Show an order."""
    try:
        services = get_services(args)
        order = services.orders.get_order(args.order_id)

        if args.json:
            _print_json(order.to_dict())
            return 0

        print(format_order(order))
        for item in order.items:
            print(f"  {item.product.title}  x{item.quantity}  @ {item.product.price:,.2f}")
        print(f"  Deliver to: {order.delivery_info.recipient_name}, {order.delivery_info.address}")
        if order.rider_info:
            print(f"  Rider: {order.rider_info.name} ({order.rider_info.phone_number})")
        if order.cancellation_reason:
            print(f"  Cancelled: {order.cancellation_reason}")
        return 0

    except OrderflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_order_list(args: argparse.Namespace) -> int:
    """List orders for a user."""
    try:
        services = get_services(args)
        page = services.orders.list_orders(
            user_id=args.user,
            role=args.role,
            status=OrderStatus(args.status) if args.status else None,
            limit=args.limit,
            cursor=args.cursor,
        )

        if args.json:
            _print_json({
                "orders": [o.to_dict() for o in page.orders],
                "next_cursor": page.next_cursor,
                "has_more": page.has_more,
            })
            return 0

        if not page.orders:
            print("No orders found.")
            return 0

        print(f"Orders ({len(page.orders)}):")
        for o in page.orders:
            print(f"  {format_order(o)}")
        if page.has_more:
            print(f"More: --cursor {page.next_cursor}")
        return 0

    except OrderflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_order_history(args: argparse.Namespace) -> int:
    """Show an order's tracking history."""
    try:
        services = get_services(args)
        entries = services.orders.history(args.order_id)

        if args.json:
            _print_json([e.to_dict() for e in entries])
            return 0

        for e in entries:
            print(f"{e.timestamp}  {e.status.value:<16}  {e.message}  (by {e.updated_by})")
        return 0

    except OrderflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_order_advance(args: argparse.Namespace) -> int:
    """Move an order to a new status."""
    try:
        services = get_services(args)
        order = services.orders.transition(
            args.order_id, OrderStatus(args.status), args.actor, message=args.message
        )
        print(f"Order {order.order_number} is now {order.status.value}")
        return 0

    except OrderflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_order_cancel(args: argparse.Namespace) -> int:
    """Cancel an order and restore its stock."""
    try:
        services = get_services(args)
        order = services.orders.cancel(args.order_id, args.actor, args.reason)
        print(f"Cancelled order {order.order_number}: {order.cancellation_reason}")
        return 0

    except OrderflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_order_verify(args: argparse.Namespace) -> int:
    """Verify delivery with the buyer's code."""
    try:
        services = get_services(args)
        order = services.orders.verify_delivery(args.order_id, args.code, args.actor)
        print(f"Order {order.order_number} delivered")
        return 0

    except OrderflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        settings = load_settings(Path(args.data_dir) if args.data_dir else None)

        print("Starting orderflow API server...")
        print(f"Data directory: {settings.data_dir}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "orderflow.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="orderflow",
        description="Manage products, carts and orders for a multi-seller marketplace.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--data-dir", help="Data directory (default: $ORDERFLOW_DATA_DIR)")
    parser.add_argument("--log-level", help="Log level (default: $ORDERFLOW_LOG_LEVEL or INFO)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    # product (subcommand group)
    product_parser = subparsers.add_parser("product", help="Manage products")
    product_subparsers = product_parser.add_subparsers(dest="product_command")

    product_add_parser = product_subparsers.add_parser("add", help="Create a product")
    product_add_parser.add_argument("--seller", "-s", required=True, help="Seller ID")
    product_add_parser.add_argument("--title", "-t", required=True, help="Product title")
    product_add_parser.add_argument("--price", type=float, required=True, help="Unit price")
    product_add_parser.add_argument("--stock", type=int, default=0, help="Initial stock")
    product_add_parser.add_argument("--currency", default="NGN", help="Currency code")
    product_add_parser.add_argument("--desc", "-d", help="Description")
    product_add_parser.add_argument("--category", "-c", help="Category")
    product_add_parser.add_argument(
        "--status", choices=[s.value for s in ProductStatus], default="active"
    )
    product_add_parser.add_argument("--json", action="store_true", help="Output as JSON")

    product_show_parser = product_subparsers.add_parser("show", help="Show a product")
    product_show_parser.add_argument("product_id", help="Product ID")
    product_show_parser.add_argument("--json", action="store_true", help="Output as JSON")

    product_list_parser = product_subparsers.add_parser("list", help="List products")
    product_list_parser.add_argument("--seller", "-s", help="Only this seller's products")
    product_list_parser.add_argument("--category", "-c", help="Only this category")
    product_list_parser.add_argument("--limit", type=int, default=20, help="Page size")
    product_list_parser.add_argument("--cursor", help="Continue after this product ID")
    product_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    product_stock_parser = product_subparsers.add_parser("stock", help="Adjust stock")
    product_stock_parser.add_argument("product_id", help="Product ID")
    product_stock_parser.add_argument(
        "operation", choices=[o.value for o in StockOperation], help="add or subtract"
    )
    product_stock_parser.add_argument("delta", type=int, help="Amount (positive)")

    product_status_parser = product_subparsers.add_parser("status", help="Set product status")
    product_status_parser.add_argument("product_id", help="Product ID")
    product_status_parser.add_argument("status", choices=[s.value for s in ProductStatus])

    # cart (subcommand group)
    cart_parser = subparsers.add_parser("cart", help="Inspect carts")
    cart_subparsers = cart_parser.add_subparsers(dest="cart_command")

    cart_show_parser = cart_subparsers.add_parser("show", help="Show a buyer's cart")
    cart_show_parser.add_argument("user_id", help="Buyer ID")
    cart_show_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # order (subcommand group)
    order_parser = subparsers.add_parser("order", help="Manage orders")
    order_subparsers = order_parser.add_subparsers(dest="order_command")

    order_show_parser = order_subparsers.add_parser("show", help="Show an order")
    order_show_parser.add_argument("order_id", help="Order ID")
    order_show_parser.add_argument("--json", action="store_true", help="Output as JSON")

    order_list_parser = order_subparsers.add_parser("list", help="List orders")
    order_list_parser.add_argument("--user", "-u", help="User ID")
    order_list_parser.add_argument(
        "--role", "-r", choices=["buyer", "seller", "rider", "admin"], default="buyer"
    )
    order_list_parser.add_argument("--status", choices=[s.value for s in OrderStatus])
    order_list_parser.add_argument("--limit", type=int, default=20, help="Page size")
    order_list_parser.add_argument("--cursor", help="Continue after this order ID")
    order_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    order_history_parser = order_subparsers.add_parser("history", help="Show tracking history")
    order_history_parser.add_argument("order_id", help="Order ID")
    order_history_parser.add_argument("--json", action="store_true", help="Output as JSON")

    order_advance_parser = order_subparsers.add_parser("advance", help="Move to a new status")
    order_advance_parser.add_argument("order_id", help="Order ID")
    order_advance_parser.add_argument("status", choices=[s.value for s in OrderStatus])
    order_advance_parser.add_argument("--actor", "-a", required=True, help="Acting user ID")
    order_advance_parser.add_argument("--message", "-m", help="Tracking message")

    order_cancel_parser = order_subparsers.add_parser("cancel", help="Cancel an order")
    order_cancel_parser.add_argument("order_id", help="Order ID")
    order_cancel_parser.add_argument("--actor", "-a", required=True, help="Acting user ID")
    order_cancel_parser.add_argument("--reason", required=True, help="Cancellation reason")

    order_verify_parser = order_subparsers.add_parser("verify", help="Verify delivery")
    order_verify_parser.add_argument("order_id", help="Order ID")
    order_verify_parser.add_argument("code", help="6-digit verification code")
    order_verify_parser.add_argument("--actor", "-a", required=True, help="Rider ID")

    return parser


GROUP_COMMANDS = {
    "product": ("product_command", {
        "add": cmd_product_add,
        "show": cmd_product_show,
        "list": cmd_product_list,
        "stock": cmd_product_stock,
        "status": cmd_product_status,
    }),
    "cart": ("cart_command", {
        "show": cmd_cart_show,
    }),
    "order": ("order_command", {
        "show": cmd_order_show,
        "list": cmd_order_list,
        "history": cmd_order_history,
        "advance": cmd_order_advance,
        "cancel": cmd_order_cancel,
        "verify": cmd_order_verify,
    }),
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        configure_logging(args.log_level or load_settings().log_level)
    except OrderflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "serve":
        return cmd_serve(args)

    dest, handlers = GROUP_COMMANDS[args.command]
    subcommand = getattr(args, dest, None)
    if not subcommand:
        parser.parse_args([args.command, "--help"])
        return 0
    return handlers[subcommand](args)


if __name__ == "__main__":
    sys.exit(main())
