"""
Tier commands.

# Retry tiers whose last sync failed (run nightly)
0 2 * * * cd /app && flask tiers sync --client-id=1 --only-pending
"""
import click
from flask.cli import with_appcontext

from ..models import ClubStage
from ..services.enrollment_service import EnrollmentService
from ..services.tier_qualification import TierQualificationService
from ..utils.exceptions import ClubSyncError
from .crm import client_provider, load_client


@click.group('tiers')
def tiers_cli():
    """Club tier commands."""
    pass


@tiers_cli.command('sync')
@click.option('--client-id', type=int, required=True, help='Client whose tiers to push')
@click.option('--only-pending', is_flag=True, help='Skip tiers already in sync')
@with_appcontext
def sync_tiers(client_id, only_pending):
    """Push a client's active tiers to the platform as clubs."""
    client = load_client(client_id)
    tiers = TierQualificationService(client.id).get_active_tiers()
    if only_pending:
        tiers = [t for t in tiers if t.sync_status != ClubStage.SYNC_SYNCED]

    if not tiers:
        click.echo("No tiers to sync")
        return

    service = EnrollmentService(client, client_provider(client))
    failed = 0
    for tier in tiers:
        try:
            club_id = service.sync_tier(tier)
            click.echo(f"  {tier.name}: synced (club {club_id})")
        except (ClubSyncError, NotImplementedError) as e:
            failed += 1
            click.echo(f"  {tier.name}: FAILED - {e}")

    click.echo(f"\nSynced {len(tiers) - failed}/{len(tiers)} tiers")
    if failed:
        raise click.ClickException(f"{failed} tiers failed to sync")


def init_app(app):
    app.cli.add_command(tiers_cli)
