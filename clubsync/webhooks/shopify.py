"""
Shopify webhook endpoint.

One URL for all topics; the topic and shop arrive in headers.
"""
from flask import Blueprint, current_app, request

from . import SHOPIFY_TOPICS, dispatch, validate_delivery, webhook_response
from ..models import Client

shopify_webhooks_bp = Blueprint('shopify_webhooks', __name__)


@shopify_webhooks_bp.route('/shp', methods=['GET'])
def verify_endpoint():
    return webhook_response('Shopify webhook endpoint')


@shopify_webhooks_bp.route('/shp', methods=['POST'])
def handle_webhook():
    if not validate_delivery('shopify', request):
        current_app.logger.warning('Shopify webhook with invalid signature')
        return webhook_response('Invalid signature', 401)

    shop_domain = request.headers.get('X-Shopify-Shop-Domain', '')
    if not shop_domain:
        return webhook_response('Missing shop domain header', 400)

    client = Client.find_by_tenant('shopify', shop_domain)
    if client is None:
        current_app.logger.warning(f'Shopify webhook from unknown shop {shop_domain}, possible spoofing')
        return webhook_response('Unknown tenant', 403)

    raw_topic = request.headers.get('X-Shopify-Topic', '').strip().lower()
    topic = SHOPIFY_TOPICS.get(raw_topic)
    if topic is None:
        current_app.logger.error(f'Unmapped Shopify webhook topic {raw_topic!r} from {shop_domain}')
        return webhook_response(f'Unhandled webhook type: {raw_topic}', 400)

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return webhook_response('Invalid JSON', 400)

    return dispatch(client, topic, data)
