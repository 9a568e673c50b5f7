"""
Webhook ingestion for ClubSync.

Each platform endpoint runs the same pipeline:
    1. parse the platform envelope (400 on failure)
    2. check delivery credentials through the provider (401), then look up
       the tenant (403 if unknown)
    3. drop events caused by our own integration account (200)
    4. map the platform event onto a WebhookTopic (400 if unmapped)
    5. decode the platform object into its typed value (400 if malformed)
    6. hand a WebhookPayload to the tenant's provider (500 on failure)
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from flask import current_app, jsonify

from ..crm import WebhookPayload, WebhookTopic, get_provider, get_provider_class
from ..models import Client
from ..utils.exceptions import UnmappedWebhookEventError, ValidationError


# (object, action) as Commerce7 sends them, lowercased
COMMERCE7_TOPICS = {
    ('customer', 'update'): WebhookTopic.CUSTOMERS_UPDATE,
    ('club', 'update'): WebhookTopic.CLUB_UPDATE,
    ('club', 'delete'): WebhookTopic.CLUB_DELETE,
    ('club membership', 'update'): WebhookTopic.CLUB_MEMBERSHIP_UPDATE,
    ('club membership', 'delete'): WebhookTopic.CLUB_MEMBERSHIP_DELETE,
    ('order', 'create'): WebhookTopic.ORDERS_CREATE,
}

# X-Shopify-Topic header values
SHOPIFY_TOPICS = {
    'customers/update': WebhookTopic.CUSTOMERS_UPDATE,
    'orders/create': WebhookTopic.ORDERS_CREATE,
}


@dataclass
class Commerce7Envelope:
    """Decoded Commerce7 webhook body."""
    object: str
    action: str
    payload: Dict[str, Any]
    tenant_id: str
    user: Optional[str] = None

    @classmethod
    def from_json(cls, body) -> 'Commerce7Envelope':
        """
        Raises:
            ValidationError: body is not an object or lacks a required field
        """
        if not isinstance(body, dict):
            raise ValidationError('Webhook body must be a JSON object')

        missing = [key for key in ('object', 'action', 'payload') if not body.get(key)]
        if missing:
            raise ValidationError(f'Missing required webhook fields: {", ".join(missing)}')
        if not body.get('tenantId'):
            raise ValidationError('Missing tenantId', 'tenantId')
        if not isinstance(body['payload'], dict):
            raise ValidationError('payload must be an object', 'payload')

        user = body.get('user')
        if isinstance(user, dict):
            user = user.get('email') or user.get('id')

        return cls(
            object=str(body['object']).strip(),
            action=str(body['action']).strip(),
            payload=body['payload'],
            tenant_id=str(body['tenantId']).strip(),
            user=str(user).strip() if user else None,
        )

    @property
    def topic(self) -> WebhookTopic:
        topic = COMMERCE7_TOPICS.get((self.object.lower(), self.action.lower()))
        if topic is None:
            raise UnmappedWebhookEventError(self.object, self.action)
        return topic


def integration_accounts() -> set:
    raw = current_app.config.get('COMMERCE7_API_USER') or ''
    return {account.strip().lower() for account in raw.split(',') if account.strip()}


def is_self_triggered(user: Optional[str]) -> bool:
    """True when the event was caused by one of our own API accounts."""
    return bool(user) and user.lower() in integration_accounts()


def validate_delivery(crm_type: str, request) -> bool:
    """Check the delivery credentials through the platform's provider."""
    return get_provider_class(crm_type).validate_webhook(request)


def dispatch(client: Client, topic: WebhookTopic, data: Dict[str, Any]):
    """
    Decode the platform object, then hand the normalized payload to the
    tenant's provider.

    Returns a webhook response: 400 when the object cannot be decoded,
    500 when the provider fails, 200 with the provider's result otherwise.
    """
    label = f'{client.crm_type} {topic.value} for tenant {client.tenant_shop}'
    try:
        provider = get_provider(client.crm_type, client.tenant_shop, client.access_token)
    except ValidationError as e:
        current_app.logger.error(f'No provider for {label}: {e.message}')
        return webhook_response('Internal server error', 500, message=e.message)

    try:
        event = provider.decode_webhook(topic, data)
    except ValidationError as e:
        current_app.logger.error(f'Rejected malformed {label}: {e.message}')
        return webhook_response(e.message, 400)

    payload = WebhookPayload(topic=topic, tenant=client.tenant_shop, data=data, event=event)
    try:
        result = provider.process_webhook(payload)
    except Exception as e:
        current_app.logger.error(f'Webhook {label} failed: {e}')
        return webhook_response('Internal server error', 500, message=str(e))

    current_app.logger.info(f'Processed {label}')
    return webhook_response('Webhook processed successfully', topic=topic.value, result=result)


def webhook_response(text: str, status: int = 200, **extra):
    """JSON reply: {success, message} on success, {success, error, ...} on failure."""
    body = {'success': status < 400}
    if status < 400:
        body['message'] = text
    else:
        body['error'] = text
    body.update(extra)
    return jsonify(body), status


from .commerce7 import commerce7_webhooks_bp
from .shopify import shopify_webhooks_bp

__all__ = [
    'commerce7_webhooks_bp',
    'shopify_webhooks_bp',
    'Commerce7Envelope',
    'COMMERCE7_TOPICS',
    'SHOPIFY_TOPICS',
    'dispatch',
    'is_self_triggered',
    'validate_delivery',
    'webhook_response',
]
