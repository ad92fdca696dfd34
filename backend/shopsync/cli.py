# Overview: Flask CLI command groups for bootstrap, scheduled sweeps, sync inspection, and maintenance.

# backend/shopsync/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--shop "Main Shop"] [--admin-password "..."]
#   Idempotent bootstrap: creates tables, a default shop and an admin user.
#
# Users:
# - python -m flask users create --username jane --email jane@example.com --role manager --shop-id 1
# - python -m flask users grant-shop --username jane --shop-id 2
# - python -m flask users revoke-shop --username jane --shop-id 2
# - python -m flask users deactivate --username jane
# - python -m flask users list
#
# Scheduled triggers (owned by the external scheduler):
# - python -m flask ledger check-overdue [--as-of 2026-01-31]      daily 09:00
# - python -m flask sync pull-all [--shop-id 1]                     hourly
# - python -m flask sync pending --shop-id 1 [--type sales]
#
# Notification queue (drained by the mail/SMS worker):
# - python -m flask notifications pending [--limit 100]
# - python -m flask notifications mark-delivered 12 13 14
#
# Maintenance:
# - python -m flask maintenance cleanup-security-events --retention-days 90
# - python -m flask maintenance cleanup-sessions

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Shop, User
from .models.auth import ROLE_ADMIN, VALID_ROLES
from .services import (
    access_service,
    auth_service,
    ledger_service,
    maintenance_service,
    notification_service,
    sync_service,
    sync_state_service,
)
from .time_utils import parse_iso_date
from .validation import ApiError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--shop', 'shop_name', default='Main Shop', help='Default shop name')
@click.option('--admin-username', default='admin', show_default=True)
@click.option('--admin-email', default='admin@shopsync.local', show_default=True)
@click.option('--admin-password', default='Password123', show_default=True)
@with_appcontext
def init_system(shop_name, admin_username, admin_email, admin_password):
    """
    Create tables, a default shop and an admin user.

    Safe to run repeatedly. Change the admin password in production.
    """
    db.create_all()

    shop = db.session.query(Shop).order_by(Shop.id.asc()).first()
    if not shop:
        shop = Shop(name=shop_name)
        db.session.add(shop)
        db.session.commit()
        click.echo(f"PASS Created default shop: {shop.name} (ID: {shop.id})")
    else:
        click.echo(f"PASS Using existing shop: {shop.name} (ID: {shop.id})")

    if db.session.query(User).filter_by(username=admin_username).first():
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")
    else:
        try:
            user = auth_service.create_user(
                admin_username, admin_email, admin_password, role=ROLE_ADMIN, shop_id=shop.id
            )
            click.echo(f"PASS Created admin user: {user.username} ({user.email})")
        except ApiError as e:
            click.echo(f"FAIL Failed to create admin user: {e.message}")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), prompt=True, help='Role')
@click.option('--shop-id', type=int, default=None, help='Primary shop')
@with_appcontext
def create_user_cli(username, email, password, role, shop_id):
    """Create a user (prompts for missing options)."""
    try:
        user = auth_service.create_user(username, email, password, role=role, shop_id=shop_id)
    except ApiError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")
        return
    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


def _user_by_name(username: str) -> User:
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        raise click.ClickException(f"User '{username}' not found")
    return user


@users_group.command('grant-shop')
@click.option('--username', required=True)
@click.option('--shop-id', type=int, required=True)
@with_appcontext
def grant_shop_cli(username, shop_id):
    """Give a user access to an additional shop."""
    user = _user_by_name(username)
    try:
        access_service.grant_shop_access(user_id=user.id, shop_id=shop_id)
    except ApiError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS {username} can now access shop {shop_id}")


@users_group.command('revoke-shop')
@click.option('--username', required=True)
@click.option('--shop-id', type=int, required=True)
@with_appcontext
def revoke_shop_cli(username, shop_id):
    user = _user_by_name(username)
    if access_service.revoke_shop_access(user_id=user.id, shop_id=shop_id):
        click.echo(f"PASS Revoked access to shop {shop_id} for {username}")
    else:
        click.echo(f"WARN  {username} had no grant for shop {shop_id}")


@users_group.command('deactivate')
@click.option('--username', required=True)
@with_appcontext
def deactivate_user_cli(username):
    """Disable an account and revoke its sessions."""
    user = _user_by_name(username)
    try:
        _, revoked = auth_service.deactivate_user(user.id)
    except ApiError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Deactivated {username} (revoked {revoked} sessions)")


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.role:<12} shop={user.shop_id}  {status}")


@click.group('ledger')
def ledger_group():
    """Ledger sweeps."""


@ledger_group.command('check-overdue')
@click.option('--as-of', 'as_of', default=None, help='Business date (YYYY-MM-DD), default today (UTC)')
@with_appcontext
def check_overdue_cli(as_of):
    """Mark past-due invoices and sales overdue and queue customer notifications."""
    try:
        as_of_date = parse_iso_date(as_of)
    except ValueError:
        raise click.BadParameter(f"invalid date: {as_of}", param_hint='--as-of')

    result = ledger_service.check_overdue(as_of_date)
    for invoice_id in result["invoices"]:
        click.echo(f"Marked invoice #{invoice_id} as overdue")
    for sale_id in result["sales"]:
        click.echo(f"Marked sale #{sale_id} as overdue")
    click.echo(
        f"Processed {len(result['invoices'])} overdue invoices and {len(result['sales'])} overdue sales "
        f"as of {result['as_of']} ({result['notifications']} notifications queued)"
    )


@click.group('sync')
def sync_group():
    """Sync triggers and inspection."""


@sync_group.command('pull-all')
@click.option('--shop-id', type=int, default=None, help='Limit to one shop')
@with_appcontext
def pull_all_cli(shop_id):
    """Build the full snapshot per shop and report row counts per entity type."""
    query = db.session.query(Shop).order_by(Shop.id.asc())
    if shop_id is not None:
        query = query.filter(Shop.id == shop_id)
    shops = query.all()
    if not shops:
        raise click.ClickException("No shops found")

    for shop in shops:
        counts = sync_service.snapshot_counts(shop.id)
        summary = ", ".join(f"{name}={count}" for name, count in counts.items())
        current_app.logger.info("Snapshot for shop %s: %s", shop.id, summary)
        click.echo(f"Shop {shop.id} ({shop.name}): {summary}")
    click.echo(f"Complete sync finished for {len(shops)} shop(s)")


@sync_group.command('pending')
@click.option('--shop-id', type=int, required=True)
@click.option('--type', 'entity_type', type=click.Choice(list(sync_state_service.SYNCED_ENTITIES)), default=None)
@with_appcontext
def pending_cli(shop_id, entity_type):
    """List server records a shop's clients have not acknowledged."""
    types = [entity_type] if entity_type else list(sync_state_service.SYNCED_ENTITIES)
    for name in types:
        rows = sync_state_service.pending(name, shop_id)
        click.echo(f"{name}: {len(rows)} pending")
        for row in rows:
            click.echo(f"  #{row.id}")


@click.group('notifications')
def notifications_group():
    """Outbound customer notification queue."""


@notifications_group.command('pending')
@click.option('--limit', type=int, default=100, show_default=True)
@with_appcontext
def pending_notifications_cli(limit):
    """List queued notifications not yet delivered, oldest first."""
    rows = notification_service.list_pending(limit=limit)
    for row in rows:
        click.echo(
            f"{row.id:>6}  {row.event_type:<16} {row.entity_type}#{row.entity_id}  "
            f"shop={row.shop_id} customer={row.customer_id}  {row.payload}"
        )
    click.echo(f"{len(rows)} pending notification(s)")


@notifications_group.command('mark-delivered')
@click.argument('notification_ids', nargs=-1, type=int, required=True)
@with_appcontext
def mark_delivered_cli(notification_ids):
    """Stamp delivered_at on the given notifications (already delivered ones are skipped)."""
    count = notification_service.mark_delivered(notification_ids)
    click.echo(f"Marked {count} notification(s) delivered")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_security_events_cli(retention_days):
    """
    Cleanup old security events.

    Default retention: 90 days.
    """
    deleted = maintenance_service.cleanup_security_events(retention_days=retention_days)
    click.echo(f"Deleted {deleted} security events older than {retention_days} days.")


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    deleted = maintenance_service.cleanup_sessions()
    click.echo(f"Deleted {deleted} expired sessions.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(sync_group)
    app.cli.add_command(notifications_group)
    app.cli.add_command(maintenance_group)
