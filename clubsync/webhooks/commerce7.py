"""
Commerce7 webhook endpoint.

Commerce7 posts every subscribed event to a single URL with the body
    {"object": "Club Membership", "action": "Update", "payload": {...},
     "tenantId": "...", "user": "..."}
"""
from flask import Blueprint, current_app, request

from . import Commerce7Envelope, dispatch, is_self_triggered, validate_delivery, webhook_response
from ..models import Client
from ..utils.exceptions import UnmappedWebhookEventError, ValidationError

commerce7_webhooks_bp = Blueprint('commerce7_webhooks', __name__)


@commerce7_webhooks_bp.route('/c7', methods=['GET'])
def verify_endpoint():
    """Commerce7 checks the endpoint with GET when the webhook is saved."""
    return webhook_response('Commerce7 webhook endpoint')


@commerce7_webhooks_bp.route('/c7', methods=['POST'])
def handle_webhook():
    body = request.get_json(silent=True)
    if body is None:
        return webhook_response('Invalid JSON', 400)

    try:
        envelope = Commerce7Envelope.from_json(body)
    except ValidationError as e:
        return webhook_response(e.message, 400)

    if not validate_delivery('commerce7', request):
        current_app.logger.warning(f'Commerce7 webhook with bad credentials for tenant {envelope.tenant_id}')
        return webhook_response('Invalid webhook credentials', 401)

    client = Client.find_by_tenant('commerce7', envelope.tenant_id)
    if client is None:
        current_app.logger.warning(
            f'Commerce7 webhook for unknown tenant {envelope.tenant_id} '
            f'({envelope.object}/{envelope.action}), possible spoofing'
        )
        return webhook_response('Unknown tenant', 403)

    if is_self_triggered(envelope.user):
        current_app.logger.info(
            f'Ignoring self-triggered {envelope.object}/{envelope.action} for tenant {envelope.tenant_id}'
        )
        return webhook_response('Webhook ignored (self-triggered)')

    try:
        topic = envelope.topic
    except UnmappedWebhookEventError as e:
        current_app.logger.error(f'Unmapped Commerce7 webhook for tenant {envelope.tenant_id}: {e.message}')
        return webhook_response(e.message, 400)

    return dispatch(client, topic, envelope.payload)
