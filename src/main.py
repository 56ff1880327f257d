"""
Main entry point for the Gig Orders engine.

Command-line interface for operators: database setup, order lookup and the
administrative cancel/refund operations.

Usage Examples:
    # Create the database tables
    python -m src.main init-db

    # Show an order by id or order number, with deliveries and revisions
    python -m src.main show-order 42
    python -m src.main show-order ORD-LZ8K2Q1A-7Q3XK0

    # Audit log, optionally for one order
    python -m src.main audit-log --order 42

    # Administrative cancellation and refund
    python -m src.main cancel-admin 42 --admin 1 --reason "Fraudulent listing"
    python -m src.main refund 42 --admin 1 --reason "Seller unresponsive"
"""

import argparse
import json
import logging
import sys

from src.services import audit_service, completion_service, order_service
from src.services.database import close_connections, initialize_app_database
from src.services.exceptions import ServiceError
from src.utils.config import get_config
from src.utils.constants import APP_NAME, APP_VERSION


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def init_db_cmd() -> int:
    """Create tables and report where the database lives."""
    config = get_config()
    print(f"Initializing database at {config.database_url}...")
    initialize_app_database()
    print("Database initialized successfully")
    return 0


def show_order_cmd(reference: str) -> int:
    """Print an order looked up by numeric id or order number."""
    try:
        if reference.isdigit():
            order = order_service.get_order_detail(int(reference))
        else:
            order = order_service.get_order_by_number(reference)
            order = order_service.get_order_detail(order["id"])
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1
    _print_json(order)
    return 0


def audit_log_cmd(order_id=None, action=None) -> int:
    try:
        entries = audit_service.get_audit_log(entity_id=order_id, action=action)
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1
    if not entries:
        print("No audit entries found")
        return 0
    for entry in entries:
        print(
            f"{entry['created_at']}  {entry['action']:<16} order={entry['entity_id']} "
            f"admin={entry['actor_user_id']}  {entry['reason']}"
        )
    return 0


def cancel_admin_cmd(order_id: int, admin_user_id: int, reason: str) -> int:
    try:
        order = completion_service.cancel_order_admin(order_id, admin_user_id, reason)
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1
    print(f"Order {order['order_number']} cancelled")
    return 0


def refund_cmd(order_id: int, admin_user_id: int, reason: str) -> int:
    try:
        order = completion_service.refund_escrow(order_id, admin_user_id, reason)
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1
    print(
        f"Order {order['order_number']}: {order['total_amount']} refunded "
        f"(status: {order['status']})"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Gig Orders - order lifecycle and escrow settlement",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m src.main init-db
  python -m src.main show-order ORD-LZ8K2Q1A-7Q3XK0
  python -m src.main audit-log --order 42
  python -m src.main cancel-admin 42 --admin 1 --reason "Fraudulent listing"
  python -m src.main refund 42 --admin 1 --reason "Seller unresponsive"

Set GIG_ORDERS_ENV=development to use the project data/ directory, or
GIG_ORDERS_DATABASE_URL to point at any SQLAlchemy database URL.
""",
    )
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log service operations")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", help="Create database tables")

    show_parser = subparsers.add_parser("show-order", help="Show an order with its history")
    show_parser.add_argument("reference", help="Order id or order number")

    audit_parser = subparsers.add_parser("audit-log", help="List administrative audit entries")
    audit_parser.add_argument("--order", dest="order_id", type=int, help="Only entries for this order")
    audit_parser.add_argument(
        "--action",
        choices=["order_cancelled", "escrow_refunded"],
        help="Only entries for this action",
    )

    for name, help_text in (
        ("cancel-admin", "Cancel an order as an administrator"),
        ("refund", "Refund an order's escrow as an administrator"),
    ):
        admin_parser = subparsers.add_parser(name, help=help_text)
        admin_parser.add_argument("order_id", type=int, help="Order id")
        admin_parser.add_argument("--admin", dest="admin_user_id", type=int, required=True)
        admin_parser.add_argument("--reason", required=True, help="Reason recorded in the audit log")

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return _run_command(args)
    finally:
        close_connections()


def _run_command(args) -> int:
    if args.command == "init-db":
        return init_db_cmd()

    # Every other command needs the tables in place
    initialize_app_database()

    if args.command == "show-order":
        return show_order_cmd(args.reference)
    elif args.command == "audit-log":
        return audit_log_cmd(args.order_id, args.action)
    elif args.command == "cancel-admin":
        return cancel_admin_cmd(args.order_id, args.admin_user_id, args.reason)
    return refund_cmd(args.order_id, args.admin_user_id, args.reason)


if __name__ == "__main__":
    sys.exit(main())
