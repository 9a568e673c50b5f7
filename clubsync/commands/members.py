"""
Membership term commands.

# Expire finished terms (run daily at midnight)
0 0 * * * cd /app && flask members expire

# Expiration warnings (run daily at 9 AM)
0 9 * * * cd /app && flask members expiration-warnings --days=30
"""
import click
from flask.cli import with_appcontext

from ..services.enrollment_service import expire_enrollments, send_expiration_warnings


@click.group('members')
def members_cli():
    """Club member commands."""
    pass


@members_cli.command('expire')
@click.option('--client-id', type=int, help='Specific client ID (or all if not specified)')
@with_appcontext
def expire(client_id):
    """Mark enrollments past their term as expired."""
    count = expire_enrollments(client_id=client_id)
    click.echo(f"Expired {count} enrollments")


@members_cli.command('expiration-warnings')
@click.option('--days', type=int, default=30, help='Warn when the term ends within this many days')
@click.option('--client-id', type=int, help='Specific client ID (or all if not specified)')
@with_appcontext
def expiration_warnings(days, client_id):
    """Notify members whose term is about to end."""
    sent = send_expiration_warnings(days=days, client_id=client_id)
    click.echo(f"Sent {sent} expiration warnings")


def init_app(app):
    app.cli.add_command(members_cli)
