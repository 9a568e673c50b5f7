"""
Shopify provider.

Identity (OAuth HMAC, App Bridge session tokens, webhook signatures) and
webhook reconciliation are implemented. Admin API data operations are not
built yet and raise NotImplementedError.
"""
import base64
import hashlib
import hmac
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import jwt
import requests
from flask import current_app

from .base import (
    CrmCustomer,
    CrmOrder,
    CrmProvider,
    WebhookPayload,
    WebhookTopic,
)
from ..utils.exceptions import AuthenticationFailedError, PlatformError, ValidationError

logger = logging.getLogger(__name__)


def verify_hmac(query_params: dict, secret: str = None) -> bool:
    """
    Verify the `hmac` Shopify adds to OAuth/install redirects.

    The message is every other query parameter, sorted, joined as k=v&k=v.
    """
    secret = secret or current_app.config.get('SHOPIFY_API_SECRET')
    if not secret:
        return False

    received_hmac = query_params.get('hmac', '')
    params = sorted((k, v) for k, v in query_params.items() if k != 'hmac')
    message = '&'.join(f'{k}={v}' for k, v in params)

    computed_hmac = hmac.new(secret.encode('utf-8'), message.encode('utf-8'), hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed_hmac, received_hmac)


def verify_webhook_hmac(data: bytes, hmac_header: str, secret: str = None) -> bool:
    """Verify X-Shopify-Hmac-SHA256 (base64 HMAC-SHA256 of the raw body)."""
    secret = secret or current_app.config.get('SHOPIFY_API_SECRET')
    if not secret or not hmac_header:
        return False

    computed = base64.b64encode(
        hmac.new(secret.encode('utf-8'), data, hashlib.sha256).digest()
    ).decode('utf-8')
    return hmac.compare_digest(computed, hmac_header)


def decode_session_token(token: str) -> Optional[dict]:
    """Decode an App Bridge session token. None if missing or invalid."""
    if not token:
        return None

    api_key = current_app.config.get('SHOPIFY_API_KEY')
    try:
        return jwt.decode(
            token,
            current_app.config.get('SHOPIFY_API_SECRET'),
            algorithms=['HS256'],
            audience=api_key,
            options={'verify_aud': bool(api_key), 'verify_exp': True},
        )
    except jwt.ExpiredSignatureError:
        logger.info('Shopify session token expired')
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f'Invalid Shopify session token: {e}')
        return None


def shop_from_token(payload: dict) -> Optional[str]:
    """`dest` is https://{shop}.myshopify.com."""
    dest = payload.get('dest', '')
    return dest.replace('https://', '').rstrip('/') or None


class ShopifyProvider(CrmProvider):
    """CrmProvider for Shopify shops. Requires an offline access token."""

    name = 'Shopify'
    slug = 'shopify'

    def __init__(self, tenant_identifier: str, access_token: str = None):
        if not access_token:
            raise ValidationError('Shopify provider requires an access token', 'access_token')
        super().__init__(tenant_identifier, access_token)

    def normalize_amount(self, raw) -> Decimal:
        """Shopify money is already a decimal string in the major unit."""
        if raw in (None, ''):
            return Decimal('0.00')
        try:
            amount = Decimal(str(raw))
        except InvalidOperation:
            raise ValidationError(f'Invalid Shopify amount: {raw}', 'amount')
        if not amount.is_finite():
            raise ValidationError(f'Invalid Shopify amount: {raw}', 'amount')
        return amount.quantize(Decimal('0.01'))

    # ==================== Identity ====================

    def authenticate(self, request) -> Dict[str, Any]:
        auth_header = request.headers.get('Authorization', '')
        token = auth_header[len('Bearer '):] if auth_header.startswith('Bearer ') else request.args.get('id_token')

        payload = decode_session_token(token)
        if not payload:
            raise AuthenticationFailedError('Invalid Shopify session token')
        if shop_from_token(payload) != self.tenant_identifier:
            raise AuthenticationFailedError('Session token issued for a different shop')
        return {'id': payload.get('sub'), 'shop': self.tenant_identifier}

    def authorize_install(self, request) -> bool:
        return verify_hmac(request.args.to_dict())

    @staticmethod
    def exchange_code_for_token(shop: str, code: str) -> Dict[str, Any]:
        """Trade an OAuth authorization code for an offline access token."""
        try:
            response = requests.post(
                f'https://{shop}/admin/oauth/access_token',
                json={
                    'client_id': current_app.config.get('SHOPIFY_API_KEY'),
                    'client_secret': current_app.config.get('SHOPIFY_API_SECRET'),
                    'code': code,
                },
                timeout=10,
            )
        except requests.RequestException as e:
            raise PlatformError(f'Shopify token exchange failed: {e}', original_error=e)

        if response.status_code in (400, 401, 403):
            raise AuthenticationFailedError('Shopify rejected the authorization code')
        if not response.ok:
            raise PlatformError(f'Shopify token exchange failed ({response.status_code})', status=response.status_code)

        data = response.json()
        if not data.get('access_token'):
            raise PlatformError('Shopify returned no access token')
        return data

    # ==================== Webhooks ====================

    @classmethod
    def validate_webhook(cls, request) -> bool:
        return verify_webhook_hmac(request.get_data(), request.headers.get('X-Shopify-Hmac-SHA256', ''))

    def decode_webhook(self, topic: WebhookTopic, data: Dict[str, Any]) -> Any:
        if not isinstance(data, dict):
            raise ValidationError('Webhook payload must be an object', 'payload')
        if data.get('id') in (None, ''):
            raise ValidationError(f'{topic.value} payload has no id', 'payload')

        if topic == WebhookTopic.CUSTOMERS_UPDATE:
            return CrmCustomer(
                id=str(data['id']),
                email=data.get('email') or '',
                first_name=data.get('first_name'),
                last_name=data.get('last_name'),
                phone=data.get('phone'),
                created_at=data.get('created_at'),
                updated_at=data.get('updated_at'),
            )
        if topic == WebhookTopic.ORDERS_CREATE:
            customer = data.get('customer') or {}
            if not isinstance(customer, dict):
                raise ValidationError('Order customer must be an object', 'customer')
            return CrmOrder(
                id=str(data['id']),
                customer_id=str(customer['id']) if customer.get('id') else None,
                total=self.normalize_amount(data.get('total_price')),
                status=data.get('financial_status'),
                created_at=data.get('created_at'),
            )

        raise ValidationError(f'Shopify topic {topic.value} is not supported', 'topic')

    def process_webhook(self, payload: WebhookPayload) -> Dict[str, Any]:
        from ..services.sync_service import WebhookReconciler

        event = payload.event
        if event is None:
            event = self.decode_webhook(payload.topic, payload.data or {})
        reconciler = WebhookReconciler.for_tenant(self.slug, payload.tenant, provider=self)

        if payload.topic == WebhookTopic.CUSTOMERS_UPDATE:
            return reconciler.customer_updated(event)
        return reconciler.order_created(event)

    # ==================== Not built yet ====================

    def get_customers(self, params: Dict[str, Any] = None) -> List[CrmCustomer]:
        raise NotImplementedError('Shopify get_customers not implemented yet')

    def get_customer(self, customer_id: str):
        raise NotImplementedError('Shopify get_customer not implemented yet')

    def get_orders(self, params: Dict[str, Any] = None):
        raise NotImplementedError('Shopify get_orders not implemented yet')

    def create_customer(self, data):
        raise NotImplementedError('Shopify create_customer not implemented yet')

    def update_customer(self, customer_id, data):
        raise NotImplementedError('Shopify update_customer not implemented yet')

    def find_customer_by_email(self, email):
        raise NotImplementedError('Shopify find_customer_by_email not implemented yet')

    def create_customer_with_address(self, data, address):
        raise NotImplementedError('Shopify create_customer_with_address not implemented yet')

    def get_customer_addresses(self, customer_id):
        raise NotImplementedError('Shopify get_customer_addresses not implemented yet')

    def create_customer_address(self, customer_id, address):
        raise NotImplementedError('Shopify create_customer_address not implemented yet')

    def get_customer_credit_cards(self, customer_id):
        raise NotImplementedError('Shopify does not expose stored cards')

    def create_customer_credit_card(self, customer_id, card):
        raise NotImplementedError('Shopify does not expose stored cards')

    def get_coupons(self, params=None):
        raise NotImplementedError('Shopify get_coupons not implemented yet')

    def get_coupon(self, coupon_id):
        raise NotImplementedError('Shopify get_coupon not implemented yet')

    def create_coupon(self, discount):
        raise NotImplementedError('Shopify create_coupon not implemented yet')

    def update_coupon(self, coupon_id, changes):
        raise NotImplementedError('Shopify update_coupon not implemented yet')

    def delete_coupon(self, coupon_id):
        raise NotImplementedError('Shopify delete_coupon not implemented yet')

    def get_coupon_customers(self, coupon_id):
        raise NotImplementedError('Shopify get_coupon_customers not implemented yet')

    def add_customer_to_discount(self, coupon_id, customer_id):
        raise NotImplementedError('Shopify add_customer_to_discount not implemented yet')

    def remove_customer_from_discount(self, coupon_id, customer_id):
        raise NotImplementedError('Shopify remove_customer_from_discount not implemented yet')

    def upsert_club(self, tier):
        raise NotImplementedError('Shopify upsert_club not implemented yet')

    def get_customer_club_memberships(self, customer_id):
        raise NotImplementedError('Shopify get_customer_club_memberships not implemented yet')

    def create_club_membership(self, customer_id, club_id, billing_address_id,
                               shipping_address_id, payment_method_id, start_date=None):
        raise NotImplementedError('Shopify create_club_membership not implemented yet')

    def cancel_club_membership(self, membership_id=None, customer_id=None, club_id=None):
        raise NotImplementedError('Shopify cancel_club_membership not implemented yet')

    def register_webhook(self, topic, address):
        raise NotImplementedError('Shopify register_webhook not implemented yet')

    def list_webhooks(self):
        raise NotImplementedError('Shopify list_webhooks not implemented yet')

    def delete_webhook(self, webhook_id):
        raise NotImplementedError('Shopify delete_webhook not implemented yet')
