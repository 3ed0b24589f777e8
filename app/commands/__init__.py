"""
CLI Commands for BarberBook.

Provides Flask CLI commands for scheduled tasks and administration.

Usage:
    flask scheduled expire-reservations --tenant-id 1   # Cancel unpaid PIX reservations
    flask scheduled expire-reservations --dry-run       # Preview only
    flask loyalty audit-balances --tenant-id 1          # Report inconsistent balances
"""
from .scheduled import init_app as init_scheduled_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_scheduled_commands(app)
