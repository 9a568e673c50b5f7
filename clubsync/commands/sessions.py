"""
Session maintenance commands.

# Expired session cleanup (run hourly)
0 * * * * cd /app && flask sessions cleanup
"""
import click
from flask.cli import with_appcontext

from ..services.session_store import cleanup_expired_sessions


@click.group('sessions')
def sessions_cli():
    """App session commands."""
    pass


@sessions_cli.command('cleanup')
@with_appcontext
def cleanup():
    """Delete every session past its expiry."""
    deleted = cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} expired sessions")


def init_app(app):
    app.cli.add_command(sessions_cli)
