"""Tests for the operator command line (src/main.py)."""

import json

import pytest

from src import main as cli
from src.models import OrderStatus
from src.services import audit_service, order_service


@pytest.fixture
def run_cli(test_db, monkeypatch, capsys):
    """Run the CLI against the test database and return (exit_code, stdout)."""
    monkeypatch.setattr(cli, "initialize_app_database", lambda: None)

    def run(*argv):
        code = cli.main(list(argv))
        return code, capsys.readouterr().out

    return run


class TestParser:
    def test_admin_commands_require_reason(self):
        parser = cli.build_parser()

        with pytest.raises(SystemExit):
            parser.parse_args(["refund", "1", "--admin", "2"])

    def test_audit_action_choices(self):
        parser = cli.build_parser()

        args = parser.parse_args(["audit-log", "--order", "4", "--action", "escrow_refunded"])

        assert args.order_id == 4
        assert args.action == "escrow_refunded"

    def test_no_command_prints_help(self, run_cli):
        code, out = run_cli()

        assert code == 1
        assert "usage" in out.lower()


class TestCommands:
    def test_init_db(self, run_cli):
        code, out = run_cli("init-db")

        assert code == 0
        assert "Database initialized successfully" in out

    def test_show_order_by_id_and_number(self, run_cli, order_factory):
        order_id = order_factory(OrderStatus.DELIVERED)
        order_number = order_service.get_order(order_id)["order_number"]

        code, out = run_cli("show-order", str(order_id))
        assert code == 0
        shown = json.loads(out)
        assert shown["order_number"] == order_number
        assert shown["status"] == "delivered"
        assert [d["message"] for d in shown["deliveries"]] == ["First draft"]

        code, out = run_cli("show-order", order_number.lower())
        assert code == 0
        assert json.loads(out)["id"] == order_id

    def test_show_missing_order(self, run_cli):
        code, out = run_cli("show-order", "ORD-NOPE-000000")

        assert code == 1
        assert out.startswith("ERROR: Order ORD-NOPE-000000 not found")

    def test_cancel_admin(self, run_cli, marketplace, order_factory):
        order_id = order_factory(OrderStatus.IN_PROGRESS)

        code, out = run_cli(
            "cancel-admin", str(order_id), "--admin", str(marketplace.admin_user_id), "--reason", "Fraud"
        )

        assert code == 0
        assert "cancelled" in out
        order = order_service.get_order(order_id)
        assert order["status"] == "cancelled"
        assert order["cancellation_reason"] == "Admin Cancelled: Fraud"

    def test_cancel_admin_by_non_admin(self, run_cli, marketplace, order_factory):
        order_id = order_factory()

        code, out = run_cli(
            "cancel-admin", str(order_id), "--admin", str(marketplace.seller_user_id), "--reason", "x"
        )

        assert code == 1
        assert out.startswith("ERROR:")
        assert order_service.get_order(order_id)["status"] == "pending"

    def test_refund_and_audit_log(self, run_cli, marketplace, order_factory):
        order_id = order_factory()

        code, out = run_cli(
            "refund", str(order_id), "--admin", str(marketplace.admin_user_id), "--reason", "Duplicate"
        )
        assert code == 0
        assert "1000.00 refunded (status: cancelled)" in out
        assert len(audit_service.get_audit_log(entity_id=order_id)) == 1

        code, out = run_cli("audit-log", "--order", str(order_id))
        assert code == 0
        assert "escrow_refunded" in out
        assert "Duplicate" in out

    def test_empty_audit_log(self, run_cli):
        code, out = run_cli("audit-log")

        assert code == 0
        assert "No audit entries found" in out
