"""
CLI Commands for Scheduled Tasks.

These commands can be run manually or via cron jobs:

# Expire unpaid PIX reservations (every 5 minutes)
*/5 * * * * cd /app && flask scheduled expire-reservations

# Ledger consistency report (daily at 3 AM)
0 3 * * * cd /app && flask loyalty audit-balances
"""

import click
from flask.cli import with_appcontext

from ..models.tenant import Tenant
from ..services.appointment_service import AppointmentService
from ..services.loyalty_service import LoyaltyService
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


def _get_tenants(tenant_id):
    if tenant_id:
        tenant = Tenant.query.get(tenant_id)
        return [tenant] if tenant else []
    return Tenant.query.filter_by(is_active=True).order_by(Tenant.id).all()


@click.group('scheduled')
def scheduled_cli():
    """Scheduled task commands."""
    pass


@scheduled_cli.command('expire-reservations')
@click.option('--tenant-id', type=int, help='Specific tenant ID (or all if not specified)')
@click.option('--dry-run', is_flag=True, help='Preview without cancelling')
@with_appcontext
def expire_reservations(tenant_id, dry_run):
    """
    Cancel pending_payment appointments whose PIX hold has passed.
    """
    tenants = _get_tenants(tenant_id)
    if tenant_id and not tenants:
        click.echo(f"Tenant {tenant_id} not found")
        return

    total = 0
    for tenant in tenants:
        ids = AppointmentService(tenant.id).expire_unpaid_reservations(dry_run=dry_run)
        if ids:
            click.echo(
                f"{'[DRY RUN] ' if dry_run else ''}{tenant.slug}: "
                f"{len(ids)} expired ({', '.join(str(i) for i in ids)})"
            )
        total += len(ids)

    logger.info(f"expire-reservations: {total} reservation(s) {'expirable' if dry_run else 'expired'}")
    click.echo(f"\n{'[DRY RUN] ' if dry_run else ''}TOTAL: {total} reservations expired")


@click.group('loyalty')
def loyalty_cli():
    """Loyalty ledger commands."""
    pass


@loyalty_cli.command('audit-balances')
@click.option('--tenant-id', type=int, help='Specific tenant ID (or all if not specified)')
@with_appcontext
def audit_balances(tenant_id):
    """
    Report balances where points != total_earned - total_redeemed.
    """
    tenants = _get_tenants(tenant_id)
    if tenant_id and not tenants:
        click.echo(f"Tenant {tenant_id} not found")
        return

    total = 0
    for tenant in tenants:
        for row in LoyaltyService(tenant.id).audit_balances():
            click.echo(
                f"{tenant.slug}: {row['contact_handle']} points={row['points']} "
                f"earned={row['total_earned']} redeemed={row['total_redeemed']}"
            )
            total += 1

    if total:
        logger.warning(f"audit-balances: {total} inconsistent balance(s)")
    click.echo(f"\n{total} inconsistent balance(s)")


def init_app(app):
    """Register CLI commands with Flask app."""
    app.cli.add_command(scheduled_cli)
    app.cli.add_command(loyalty_cli)
