"""Command-line interface for foodrun."""

import argparse
import dataclasses
import getpass
import json
import logging
import os
import queue
import sys
from pathlib import Path

from . import __version__
from .api import order_to_schema, partner_to_schema
from .config import Settings
from .errors import FoodrunError
from .identity import BCRYPT_MAX_BYTES, hash_password
from .lifecycle import all_orders, assigned_to, available_jobs, by_customer
from .models import Order, OrderStatus, Role
from .services import Services, build_services


def get_services(args: argparse.Namespace) -> Services:
    """Build services on the JSON store in the configured data directory."""
    settings = Settings.from_env()
    if getattr(args, "data_dir", None):
        settings = dataclasses.replace(settings, data_dir=Path(args.data_dir))
    return build_services(settings)


def configure_logging(args: argparse.Namespace) -> None:
    level = "DEBUG" if args.verbose else os.environ.get("FOODRUN_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def format_order(order: Order) -> str:
    """One-line summary of an order."""
    driver = order.driver_name or order.driver_id or "-"
    return (
        f"{order.id[:8]}  {order.status:<16}  {order.restaurant_name or order.restaurant_id:<20}  "
        f"driver={driver}  total={order.total}"
    )


def cmd_orders_list(args: argparse.Namespace) -> int:
    """List orders, newest first."""
    try:
        services = get_services(args)
        orders = services.orders.list_orders()
        if args.status:
            orders = [o for o in orders if o.status == args.status]

        if args.json:
            print(json.dumps([order_to_schema(o).model_dump() for o in orders], indent=2))
            return 0

        if not orders:
            print("No orders.")
            return 0
        for order in orders:
            print(format_order(order))
        return 0

    except FoodrunError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_show(args: argparse.Namespace) -> int:
    """Show one order."""
    try:
        services = get_services(args)
        order = services.orders.get_order(args.order_id)

        if args.json:
            print(json.dumps(order_to_schema(order).model_dump(), indent=2))
            return 0

        print(f"Order {order.id}")
        print(f"  Status:     {order.status}")
        print(f"  Restaurant: {order.restaurant_name} ({order.restaurant_id})")
        print(f"  Customer:   {order.customer_name} ({order.customer_id})")
        print(f"  Address:    {order.delivery_address}")
        print(f"  Driver:     {order.driver_name or order.driver_id or 'unassigned'}")
        for item in order.items:
            print(f"    {item.quantity} x {item.name} @ {item.unit_price}")
        print(f"  Subtotal {order.subtotal}  Delivery {order.delivery_fee}  Tax {order.tax}")
        print(f"  Total {order.total} ({order.payment_method})")
        return 0

    except FoodrunError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_partners_add(args: argparse.Namespace) -> int:
    """Create a restaurant or driver account."""
    try:
        services = get_services(args)
        password = args.password or getpass.getpass("Password: ")
        partner = services.partners.create_partner(
            username=args.username,
            password=password,
            role=args.role,
            name=args.name or args.username,
            restaurant_id=args.restaurant_id,
        )
        print(f"Added {partner.role} partner: {partner.username} ({partner.id[:8]})")
        return 0

    except FoodrunError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_partners_list(args: argparse.Namespace) -> int:
    """List partner accounts."""
    try:
        services = get_services(args)
        partners = services.partners.list_partners(role=args.role)

        if args.json:
            print(json.dumps([partner_to_schema(p).model_dump() for p in partners], indent=2))
            return 0

        if not partners:
            print("No partners.")
            return 0
        for p in partners:
            extra = f"  restaurant={p.restaurant_id}" if p.restaurant_id else ""
            print(f"{p.id[:8]}  {p.role:<10}  {p.username:<20}  {p.name}{extra}")
        return 0

    except FoodrunError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_watch(args: argparse.Namespace) -> int:
    """Print a snapshot of matching orders every time they change."""
    try:
        services = get_services(args)
        if args.customer:
            predicate, filters = by_customer(args.customer), {"customerId": args.customer}
        elif args.available:
            predicate, filters = available_jobs(), {"status": OrderStatus.COOKING, "driverId": None}
        elif args.driver:
            predicate, filters = assigned_to(args.driver), {"driverId": args.driver}
        else:
            predicate, filters = all_orders(), {}

        shown = 0
        with services.orders.subscribe_orders(predicate, filters) as feed:
            while args.count is None or shown < args.count:
                try:
                    snapshot = feed.get(timeout=args.interval)
                except queue.Empty:
                    # Pick up writes made by other processes
                    services.store.reload()
                    continue
                shown += 1
                print(f"--- {len(snapshot)} order(s)")
                for order in snapshot:
                    print(format_order(order))
                sys.stdout.flush()
        return 0

    except KeyboardInterrupt:
        return 0
    except FoodrunError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_hash_password(args: argparse.Namespace) -> int:
    """Print a bcrypt hash for FOODRUN_ADMIN_PASSWORD_HASH."""
    password = args.password or getpass.getpass("Password: ")
    if not password:
        print("Error: password is required", file=sys.stderr)
        return 1
    if len(password.encode()) > BCRYPT_MAX_BYTES:
        print(f"Error: password longer than {BCRYPT_MAX_BYTES} bytes", file=sys.stderr)
        return 1
    print(hash_password(password))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        from .services import init_services

        settings = Settings.from_env()
        if args.data_dir:
            settings = dataclasses.replace(settings, data_dir=Path(args.data_dir))
        init_services(settings)

        if not settings.admin_password_hash:
            print("Warning: FOODRUN_ADMIN_PASSWORD_HASH not set, admin login disabled.", file=sys.stderr)

        print("Starting foodrun API server...")
        print(f"Data directory: {settings.data_dir}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        from .api import app

        uvicorn.run(
            app,
            host=args.host,
            port=args.port,
            workers=1,  # Single worker: feeds live in this process
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="foodrun",
        description="Order lifecycle tooling for the foodrun delivery portals.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--data-dir", help="Data directory (default: FOODRUN_DATA_DIR or ./data)"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # orders (subcommand group)
    orders_parser = subparsers.add_parser("orders", help="Inspect orders")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command")

    orders_list_parser = orders_subparsers.add_parser("list", help="List orders")
    orders_list_parser.add_argument(
        "--status", choices=list(OrderStatus.SEQUENCE), help="Only orders in this status"
    )
    orders_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    orders_show_parser = orders_subparsers.add_parser("show", help="Show one order")
    orders_show_parser.add_argument("order_id", help="Order ID")
    orders_show_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # partners (subcommand group)
    partners_parser = subparsers.add_parser("partners", help="Manage partner accounts")
    partners_subparsers = partners_parser.add_subparsers(dest="partners_command")

    partners_add_parser = partners_subparsers.add_parser("add", help="Add a partner")
    partners_add_parser.add_argument("username", help="Login name")
    partners_add_parser.add_argument("role", choices=list(Role.PARTNER_ROLES), help="Partner role")
    partners_add_parser.add_argument("--name", "-n", help="Display name (defaults to username)")
    partners_add_parser.add_argument("--password", "-p", help="Password (prompted when omitted)")
    partners_add_parser.add_argument(
        "--restaurant-id", "-r", help="Restaurant the account manages (restaurant role only)"
    )

    partners_list_parser = partners_subparsers.add_parser("list", help="List partners")
    partners_list_parser.add_argument("--role", choices=list(Role.PARTNER_ROLES), help="Filter by role")
    partners_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # watch
    watch_parser = subparsers.add_parser("watch", help="Follow order changes live")
    watch_group = watch_parser.add_mutually_exclusive_group()
    watch_group.add_argument("--customer", help="Only this customer's orders")
    watch_group.add_argument("--available", action="store_true", help="Only unclaimed cooking orders")
    watch_group.add_argument("--driver", help="Only orders held by this driver")
    watch_parser.add_argument(
        "--interval", "-i", type=float, default=1.0, help="Seconds between disk checks (default: 1)"
    )
    watch_parser.add_argument(
        "--count", "-c", type=int, help="Exit after this many snapshots"
    )

    # hash-password
    hash_parser = subparsers.add_parser("hash-password", help="Print a bcrypt hash for the admin password")
    hash_parser.add_argument("--password", "-p", help="Password (prompted when omitted)")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=8000, help="Port to bind to (default: 8000)"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(args)

    # Handle orders subcommands
    if args.command == "orders":
        if not getattr(args, "orders_command", None):
            parser.parse_args(["orders", "--help"])
            return 0
        if args.orders_command == "list":
            return cmd_orders_list(args)
        elif args.orders_command == "show":
            return cmd_orders_show(args)

    # Handle partners subcommands
    if args.command == "partners":
        if not getattr(args, "partners_command", None):
            parser.parse_args(["partners", "--help"])
            return 0
        if args.partners_command == "add":
            return cmd_partners_add(args)
        elif args.partners_command == "list":
            return cmd_partners_list(args)

    commands = {
        "watch": cmd_watch,
        "hash-password": cmd_hash_password,
        "serve": cmd_serve,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
