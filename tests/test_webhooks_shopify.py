"""
Tests for the Shopify webhook endpoint.

Requests are signed the way Shopify signs them: base64 HMAC-SHA256 of the
raw body with the app secret.
"""
import base64
import hashlib
import hmac
import json
import pytest
from decimal import Decimal
from unittest.mock import patch, MagicMock


WEBHOOK_URL = '/webhooks/shp'
SHOP = 'test-shop.myshopify.com'


def generate_hmac_signature(payload: bytes, secret: str) -> str:
    """Generate Shopify-compatible HMAC signature."""
    return base64.b64encode(
        hmac.new(secret.encode('utf-8'), payload, hashlib.sha256).digest()
    ).decode('utf-8')


def post_webhook(client, topic, data, shop=SHOP, secret='shp-test-secret', signature=None):
    body = json.dumps(data).encode('utf-8')
    headers = {
        'X-Shopify-Topic': topic,
        'X-Shopify-Shop-Domain': shop,
        'X-Shopify-Hmac-SHA256': signature or generate_hmac_signature(body, secret),
    }
    return client.post(WEBHOOK_URL, data=body, headers=headers, content_type='application/json')


@pytest.fixture
def shopify_client(app):
    from clubsync.extensions import db
    from clubsync.models import Client, Customer

    shop = Client(tenant_shop=SHOP, crm_type='shopify', org_name='Test Shop',
                  access_token='shpat_123', setup_complete=True)
    db.session.add(shop)
    db.session.flush()
    db.session.add(Customer(client_id=shop.id, crm_id='7001', email='buyer@example.com'))
    db.session.commit()
    return shop


class TestShopifyWebhooks:

    def test_invalid_signature(self, client, shopify_client):
        response = post_webhook(client, 'customers/update', {'id': 7001}, signature='bogus')
        assert response.status_code == 401

    def test_wrong_secret(self, client, shopify_client):
        response = post_webhook(client, 'customers/update', {'id': 7001}, secret='not-the-secret')
        assert response.status_code == 401

    def test_unknown_shop(self, client, shopify_client):
        with patch('clubsync.webhooks.get_provider') as mock_factory:
            response = post_webhook(client, 'customers/update', {'id': 7001}, shop='stranger.myshopify.com')

        assert response.status_code == 403
        mock_factory.assert_not_called()

    def test_unmapped_topic(self, client, shopify_client):
        provider = MagicMock()
        with patch('clubsync.webhooks.get_provider', return_value=provider):
            response = post_webhook(client, 'products/update', {'id': 1})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Unhandled webhook type: products/update'
        provider.process_webhook.assert_not_called()

    def test_customer_update(self, client, shopify_client):
        from clubsync.models import Customer

        response = post_webhook(client, 'customers/update', {
            'id': 7001,
            'email': 'new-buyer@example.com',
            'first_name': 'Robin',
            'last_name': 'Buyer',
        })

        assert response.status_code == 200
        customer = Customer.query.filter_by(crm_id='7001').first()
        assert customer.email == 'new-buyer@example.com'
        assert customer.first_name == 'Robin'

    def test_order_create_adds_ltv(self, client, shopify_client):
        from clubsync.models import Customer

        order = {'id': 5678901234567, 'total_price': '99.99', 'customer': {'id': 7001}}

        first = post_webhook(client, 'orders/create', order)
        second = post_webhook(client, 'orders/create', order)

        assert first.status_code == 200
        assert second.get_json()['result']['action'] == 'duplicate'
        assert Customer.query.filter_by(crm_id='7001').first().lifetime_value == Decimal('99.99')

    def test_guest_order_ignored(self, client, shopify_client):
        response = post_webhook(client, 'orders/create', {'id': 1, 'total_price': '10.00', 'customer': None})

        assert response.status_code == 200
        assert response.get_json()['result']['action'] == 'ignored'

    def test_order_with_bad_total(self, client, shopify_client):
        from clubsync.models import CustomerOrder

        response = post_webhook(client, 'orders/create', {'id': 1, 'total_price': '12.x', 'customer': {'id': 7001}})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid Shopify amount: 12.x'
        assert CustomerOrder.query.count() == 0

    def test_customer_without_id(self, client, shopify_client):
        response = post_webhook(client, 'customers/update', {'email': 'someone@example.com'})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'customers/update payload has no id'

    def test_provider_failure_returns_500(self, client, shopify_client):
        provider = MagicMock()
        provider.process_webhook.side_effect = RuntimeError('shop offline')

        with patch('clubsync.webhooks.get_provider', return_value=provider):
            response = post_webhook(client, 'customers/update', {'id': 7001})

        assert response.status_code == 500
        assert response.get_json() == {
            'success': False,
            'error': 'Internal server error',
            'message': 'shop offline',
        }
