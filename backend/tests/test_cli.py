# Overview: Pytest coverage for the scheduled and bootstrap CLI commands.

from datetime import timedelta
from decimal import Decimal

from shopsync.models import Invoice, Notification, Shop, User
from shopsync.time_utils import today


def test_system_init_is_repeatable(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init", "--shop", "Flagship"])
    second = runner.invoke(args=["system", "init"])

    assert first.exit_code == 0
    assert "Created admin user" in first.output
    assert "already exists" in second.output
    assert db_session.query(Shop).count() == 1
    assert db_session.query(User).filter_by(role="admin").count() == 1


def test_check_overdue_command(app, db_session, shop_a, customer_a):
    db_session.add(Invoice(
        shop_id=shop_a.id,
        customer_id=customer_a.id,
        invoice_number="CLI-1",
        issue_date=today() - timedelta(days=20),
        due_date=today() - timedelta(days=5),
        total_amount=Decimal("80.00"),
        amount_paid=Decimal("0.00"),
        status="unpaid",
    ))
    db_session.commit()

    runner = app.test_cli_runner()
    result = runner.invoke(args=["ledger", "check-overdue", "--as-of", today().isoformat()])

    assert result.exit_code == 0
    assert "Processed 1 overdue invoices and 0 overdue sales" in result.output
    assert db_session.query(Notification).count() == 1


def test_check_overdue_rejects_bad_date(app, db_session):
    result = app.test_cli_runner().invoke(args=["ledger", "check-overdue", "--as-of", "31/01/2026"])
    assert result.exit_code != 0


def test_pull_all_reports_counts(app, db_session, shop_a, product_a, customer_a):
    result = app.test_cli_runner().invoke(args=["sync", "pull-all", "--shop-id", str(shop_a.id)])
    assert result.exit_code == 0
    assert "products=1" in result.output
    assert "customers=1" in result.output


def test_notification_queue_commands(app, db_session, shop_a, customer_a):
    notification = Notification(
        shop_id=shop_a.id,
        customer_id=customer_a.id,
        event_type="invoice.overdue",
        entity_type="invoice",
        entity_id=1,
        payload="{}",
    )
    db_session.add(notification)
    db_session.commit()
    runner = app.test_cli_runner()

    pending = runner.invoke(args=["notifications", "pending"])
    assert "invoice.overdue" in pending.output
    assert "1 pending notification(s)" in pending.output

    delivered = runner.invoke(args=["notifications", "mark-delivered", str(notification.id)])
    assert "Marked 1 notification(s) delivered" in delivered.output
    again = runner.invoke(args=["notifications", "mark-delivered", str(notification.id)])
    assert "Marked 0 notification(s) delivered" in again.output
    assert "0 pending notification(s)" in runner.invoke(args=["notifications", "pending"]).output


def test_users_deactivate_command(app, db_session, clerk):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["users", "deactivate", "--username", "clerk"])
    assert result.exit_code == 0
    db_session.refresh(clerk)
    assert clerk.is_active is False

    again = runner.invoke(args=["users", "deactivate", "--username", "clerk"])
    assert again.exit_code != 0
    assert "already deactivated" in again.output
