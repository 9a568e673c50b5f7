"""
Platform administration commands.
"""
import click
from flask.cli import with_appcontext

from ..crm import WebhookTopic, get_provider
from ..models import Client
from ..utils.exceptions import ClubSyncError
from ..utils.subdomain import get_webhook_url


def load_client(client_id: int) -> Client:
    client = Client.query.get(client_id)
    if client is None:
        raise click.ClickException(f"Client {client_id} not found")
    return client


def client_provider(client: Client):
    return get_provider(client.crm_type, client.tenant_shop, client.access_token)


@click.group('crm')
def crm_cli():
    """Commerce platform commands."""
    pass


@crm_cli.command('register-webhooks')
@click.option('--client-id', type=int, required=True, help='Client to subscribe')
@click.option('--url', help='Delivery URL (defaults to the public webhook URL)')
@with_appcontext
def register_webhooks(client_id, url):
    """
    Subscribe a client's platform account to every handled topic.

    Topics already registered for the same URL are skipped.
    """
    client = load_client(client_id)
    provider = client_provider(client)
    address = url or get_webhook_url(client.crm_type)

    try:
        existing = {(w.topic, w.address) for w in provider.list_webhooks()}
    except (ClubSyncError, NotImplementedError) as e:
        raise click.ClickException(f"Could not list webhooks: {e}")

    click.echo(f"Registering webhooks for {client.tenant_shop} -> {address}")
    for topic in WebhookTopic:
        if (topic.value, address) in existing:
            click.echo(f"  {topic.value}: already registered")
            continue
        try:
            registration = provider.register_webhook(topic.value, address)
            click.echo(f"  {topic.value}: registered ({registration.id})")
        except ClubSyncError as e:
            click.echo(f"  {topic.value}: FAILED - {e}")


@crm_cli.command('list-webhooks')
@click.option('--client-id', type=int, required=True, help='Client to inspect')
@with_appcontext
def list_webhooks(client_id):
    """Show a client's webhook subscriptions."""
    client = load_client(client_id)
    try:
        webhooks = client_provider(client).list_webhooks()
    except (ClubSyncError, NotImplementedError) as e:
        raise click.ClickException(f"Could not list webhooks: {e}")

    if not webhooks:
        click.echo("No webhooks registered")
        return
    for webhook in webhooks:
        click.echo(f"{webhook.id}  {webhook.topic:<24} {webhook.address}")


def init_app(app):
    app.cli.add_command(crm_cli)
