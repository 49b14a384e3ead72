# Overview: Flask CLI command groups for bootstrap, reconciliation and payroll.

# backend/tokoberas/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Create tables, default accounts and default payroll configuration (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users (attribution and payroll only; no logins here):
# - python -m flask users list
# - python -m flask users create --username budi --name "Budi" --role kasir
#
# Finance:
# - python -m flask finance recalculate-balances [--dry-run]
#   Reset auto-updated account balances to opening + net cash flows.
#
# Stock:
# - python -m flask stock audit
#   Report products whose movement chain or stock counter is inconsistent.
# - python -m flask stock reconcile [--dry-run]
#   Create missing initial movements and realign stock with the chain tail.
#
# Payroll:
# - python -m flask payroll generate --period 2024-01
#   Create draft payrolls for every active employee (skips existing ones).

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import User
from .models.users import ROLES
from .money import format_rupiah
from .services import account_service, payroll_service, reconciliation_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create the schema, the default accounts and the payroll configuration."""
    click.echo("START Initializing Toko Beras ledger...")

    db.create_all()
    click.echo("PASS Schema ready")

    accounts = account_service.seed_default_accounts()
    if accounts:
        click.echo(f"PASS Created accounts: {', '.join(a.code + ' ' + a.name for a in accounts)}")
    else:
        click.echo("PASS Default accounts already present")

    configs = payroll_service.seed_default_configuration()
    click.echo(f"PASS Created {len(configs)} payroll configuration rows")

    click.echo("\n" + "=" * 60)
    click.echo("DONE Initialized")
    click.echo("=" * 60)


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset. Run `flask system init` to seed defaults.")


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 72)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<25} {'Role':<12} {'Active'}")
    click.echo("=" * 72)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.name:<25} {user.role:<12} {active_str}")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--name', prompt=True)
@click.option('--email', default=None)
@click.option('--role', type=click.Choice(ROLES), default='kasir', show_default=True)
@with_appcontext
def create_user(username, name, email, role):
    if db.session.query(User.id).filter_by(username=username).first():
        click.echo(f"FAIL User '{username}' already exists")
        raise SystemExit(1)
    user = User(username=username, name=name, email=email, role=role, is_active=True)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user: {username} (ID: {user.id}) with role '{role}'")


@click.group('finance')
def finance_group():
    """Account balance maintenance."""


@finance_group.command('recalculate-balances')
@click.option('--dry-run', is_flag=True, help='Report drift without writing')
@with_appcontext
def recalculate_balances(dry_run):
    drifts = reconciliation_service.recalculate_balances(dry_run=dry_run)
    if not drifts:
        click.echo("PASS All balances match their cash-flow history")
        return

    verb = "Would correct" if dry_run else "Corrected"
    for drift in drifts:
        click.echo(
            f"WARN {verb} {drift.account_code} {drift.account_name}: "
            f"{format_rupiah(drift.stored_balance)} -> {format_rupiah(drift.expected_balance)}"
        )
    click.echo(f"DONE {len(drifts)} account(s) {'need correction' if dry_run else 'corrected'}")


@click.group('stock')
def stock_group():
    """Stock ledger audit and repair."""


@stock_group.command('audit')
@with_appcontext
def audit_stock():
    reports = reconciliation_service.audit_stock_chains()
    if not reports:
        click.echo("PASS Every movement chain is consistent")
        return

    for report in reports:
        click.echo(
            f"FAIL product {report.product_id}: stock={report.product_stock} "
            f"tail={report.chain_tail} movements={report.movement_count}"
        )
        for br in report.breaks:
            click.echo(f"     movement {br.movement_id}: {br.problem} (expected={br.expected}, actual={br.actual})")
    raise SystemExit(1)


@stock_group.command('reconcile')
@click.option('--dry-run', is_flag=True, help='Report repairs without writing')
@with_appcontext
def reconcile_stock(dry_run):
    repairs = reconciliation_service.reconcile_stock(dry_run=dry_run)
    if not repairs:
        click.echo("PASS Nothing to repair")
        return

    for repair in repairs:
        click.echo(
            f"{'PLAN' if dry_run else 'FIX '} {repair.product_code}: {repair.action} "
            f"({repair.stock_before} -> {repair.stock_after})"
        )
    click.echo(f"DONE {len(repairs)} product(s)")


@click.group('payroll')
def payroll_group():
    """Payroll generation."""


@payroll_group.command('generate')
@click.option('--period', required=True, help='YYYY-MM')
@with_appcontext
def generate_payroll(period):
    try:
        created = payroll_service.generate(period)
    except DomainError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    if not created:
        click.echo(f"PASS Payroll for {period} already generated")
        return
    for payroll in created:
        click.echo(f"PASS {payroll.payroll_code} user={payroll.user_id} net={format_rupiah(payroll.net_salary)}")
    click.echo(f"DONE {len(created)} payroll(s) created")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(finance_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(payroll_group)
