"""
Commerce7 provider.

API Documentation: https://developer.commerce7.com/docs/commerce7-apis

Commerce7 authenticates every call with the app's Basic credentials plus a
`tenant` header; there is no per-tenant access token. All money values are
integers in cents.
"""
import base64
import hmac
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

import requests
from flask import current_app

from .base import (
    ClubMembership,
    CrmAddress,
    CrmClub,
    CrmCustomer,
    CrmDiscount,
    CrmOrder,
    CrmPayment,
    CrmProvider,
    WebhookPayload,
    WebhookRegistration,
    WebhookTopic,
)
from ..utils.exceptions import (
    AuthenticationFailedError,
    ConfigurationError,
    NotFoundError,
    PlatformError,
    RateLimitedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

CENTS = Decimal('100')
TWO_PLACES = Decimal('0.01')


class Commerce7Client:
    """
    Thin HTTP transport for the Commerce7 REST API.

    Maps transport and HTTP failures onto the provider error taxonomy so
    callers never see a raw requests exception.
    """

    DEFAULT_BASE_URL = 'https://api.commerce7.com/v1'

    def __init__(self, tenant_id: str, app_name: str = None, api_key: str = None,
                 base_url: str = None, timeout: int = None):
        config = current_app.config
        self.tenant_id = tenant_id
        self.app_name = app_name or config.get('COMMERCE7_APP_NAME')
        self.api_key = api_key or config.get('COMMERCE7_API_KEY')
        self.base_url = (base_url or config.get('COMMERCE7_API_URL') or self.DEFAULT_BASE_URL).rstrip('/')
        self.timeout = timeout or config.get('COMMERCE7_TIMEOUT', 30)

    def _get_headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ConfigurationError('Commerce7 API key not configured')
        token = base64.b64encode(f'{self.app_name}:{self.api_key}'.encode()).decode()
        return {
            'Authorization': f'Basic {token}',
            'tenant': self.tenant_id,
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }

    def request(self, method: str, path: str, params: Dict = None, json: Dict = None,
                headers: Dict[str, str] = None) -> Dict[str, Any]:
        url = f'{self.base_url}{path}'
        request_headers = headers if headers is not None else self._get_headers()

        try:
            response = requests.request(
                method, url,
                headers=request_headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f'Commerce7 {method} {path} failed: {e}')
            raise PlatformError(f'Commerce7 request failed: {e}', original_error=e)

        return self._handle_response(method, path, response)

    def _handle_response(self, method: str, path: str, response) -> Dict[str, Any]:
        status = response.status_code

        if status == 204 or not response.content:
            data = {}
        else:
            try:
                data = response.json()
            except ValueError:
                data = {'message': response.text}

        if status in (401, 403):
            raise AuthenticationFailedError(f'Commerce7 rejected credentials ({status})')
        if status == 404:
            raise NotFoundError('Commerce7 resource', path)
        if status == 429:
            retry_after = response.headers.get('Retry-After')
            raise RateLimitedError(
                'Commerce7 rate limit exceeded',
                retry_after=float(retry_after) if retry_after else None,
            )
        if status >= 400:
            raise PlatformError(
                f'Commerce7 {method} {path} error ({status}): {_error_message(data)}',
                status=status,
            )

        # Commerce7 can answer 200 with an `errors` array
        if isinstance(data, dict) and data.get('errors'):
            raise PlatformError(f'Commerce7 {method} {path} error: {_error_message(data)}', status=status)

        return data

    def get(self, path: str, params: Dict = None) -> Dict[str, Any]:
        return self.request('GET', path, params=params)

    def post(self, path: str, json: Dict = None) -> Dict[str, Any]:
        return self.request('POST', path, json=json)

    def put(self, path: str, json: Dict = None) -> Dict[str, Any]:
        return self.request('PUT', path, json=json)

    def delete(self, path: str) -> Dict[str, Any]:
        return self.request('DELETE', path)


def _error_message(data) -> str:
    if not isinstance(data, dict):
        return str(data)
    errors = data.get('errors')
    if errors:
        return ', '.join(
            e if isinstance(e, str) else str(e.get('message', e)) for e in errors
        )
    return str(data.get('message') or 'Unknown error')


def verify_webhook_auth(request) -> bool:
    """
    Check the Basic credentials Commerce7 sends with webhook deliveries.

    Not enforced unless COMMERCE7_WEBHOOK_USER is configured.
    """
    expected_user = current_app.config.get('COMMERCE7_WEBHOOK_USER')
    if not expected_user:
        return True
    expected_password = current_app.config.get('COMMERCE7_WEBHOOK_PASSWORD') or ''
    auth = request.authorization
    if auth is None or auth.username is None:
        return False
    return (
        hmac.compare_digest(auth.username, expected_user)
        and hmac.compare_digest(auth.password or '', expected_password)
    )


def _slugify(name: str) -> str:
    return '-'.join(name.lower().split())


class Commerce7Provider(CrmProvider):
    """CrmProvider over the Commerce7 REST API."""

    name = 'Commerce7'
    slug = 'commerce7'

    def __init__(self, tenant_identifier: str, access_token: str = None, client: Commerce7Client = None):
        super().__init__(tenant_identifier, access_token)
        self.client = client or Commerce7Client(tenant_identifier)

    # ==================== Conversions ====================

    def normalize_amount(self, raw) -> Decimal:
        if raw in (None, ''):
            return Decimal('0.00')
        try:
            cents = Decimal(str(raw))
        except InvalidOperation:
            raise ValidationError(f'Invalid Commerce7 amount: {raw}', 'amount')
        if not cents.is_finite():
            raise ValidationError(f'Invalid Commerce7 amount: {raw}', 'amount')
        return (cents / CENTS).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

    @staticmethod
    def _to_cents(amount) -> int:
        return int((Decimal(str(amount)) * CENTS).quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    @staticmethod
    def _customer_from_c7(data: Dict[str, Any]) -> CrmCustomer:
        emails = data.get('emails') or []
        phones = data.get('phones') or []
        return CrmCustomer(
            id=data['id'],
            email=emails[0].get('email') if emails else data.get('email', ''),
            first_name=data.get('firstName'),
            last_name=data.get('lastName'),
            phone=phones[0].get('phone') if phones else data.get('phone'),
            created_at=data.get('createdAt'),
            updated_at=data.get('updatedAt'),
        )

    @staticmethod
    def _customer_to_c7(data: Dict[str, Any]) -> Dict[str, Any]:
        body = {}
        if 'first_name' in data:
            body['firstName'] = data['first_name']
        if 'last_name' in data:
            body['lastName'] = data['last_name']
        if data.get('email'):
            body['emails'] = [{'email': data['email']}]
        if data.get('phone'):
            body['phones'] = [{'phone': data['phone']}]
        return body

    @staticmethod
    def _address_from_c7(data: Dict[str, Any]) -> CrmAddress:
        return CrmAddress(
            id=data.get('id'),
            first_name=data.get('firstName'),
            last_name=data.get('lastName'),
            company=data.get('company'),
            address1=data.get('address', ''),
            address2=data.get('address2'),
            city=data.get('city', ''),
            state=data.get('stateCode', ''),
            zip=data.get('zipCode', ''),
            country=data.get('countryCode', 'US'),
            phone=data.get('phone'),
            is_default=data.get('isDefault'),
        )

    @staticmethod
    def _address_to_c7(address: CrmAddress) -> Dict[str, Any]:
        body = {
            'firstName': address.first_name,
            'lastName': address.last_name,
            'company': address.company,
            'address': address.address1,
            'address2': address.address2,
            'city': address.city,
            'stateCode': address.state,
            'zipCode': address.zip,
            'countryCode': address.country or 'US',
            'phone': address.phone,
            'isDefault': address.is_default,
        }
        return {k: v for k, v in body.items() if v is not None}

    @staticmethod
    def _payment_from_c7(data: Dict[str, Any]) -> CrmPayment:
        masked = data.get('maskedCardNumber') or ''
        expiry_month = data.get('expiryMo')
        return CrmPayment(
            id=data['id'],
            type=data.get('cardBrand'),
            last4=masked[-4:] if masked else None,
            expiry_month=str(expiry_month).zfill(2) if expiry_month is not None else None,
            expiry_year=str(data['expiryYr']) if data.get('expiryYr') is not None else None,
            cardholder_name=data.get('cardHolderName'),
            is_default=data.get('isDefault'),
        )

    def _order_from_c7(self, data: Dict[str, Any]) -> CrmOrder:
        return CrmOrder(
            id=data['id'],
            customer_id=data.get('customerId'),
            total=self.normalize_amount(data.get('total')),
            status=data.get('status') or data.get('paymentStatus'),
            created_at=data.get('createdAt'),
        )

    def _discount_from_c7(self, data: Dict[str, Any]) -> CrmDiscount:
        is_percentage = (data.get('type') or '').lower() in ('percentage', 'percentage off')
        value = data.get('value')
        if 'status' in data:
            is_active = data['status'] == 'Enabled'
        else:
            is_active = data.get('isActive', True)
        return CrmDiscount(
            id=data.get('id'),
            code=data.get('code', ''),
            title=data.get('title'),
            type='percentage' if is_percentage else 'fixed_amount',
            # Percentages are plain numbers; dollar values arrive in cents
            value=Decimal(str(value or 0)) if is_percentage else self.normalize_amount(value),
            starts_at=data.get('startDate') or data.get('startsAt'),
            ends_at=data.get('endDate') or data.get('endsAt'),
            usage_limit=data.get('usageLimit'),
            usage_count=data.get('usageCount'),
            is_active=is_active,
            customer_ids=list(data.get('customerIds') or []),
        )

    def _discount_to_c7(self, discount: CrmDiscount) -> Dict[str, Any]:
        value = discount.value if discount.type == 'percentage' else self._to_cents(discount.value)
        body = {
            'code': discount.code,
            'title': discount.title or discount.code,
            'type': 'Percentage Off' if discount.type == 'percentage' else 'Dollar Off',
            'value': float(value) if discount.type == 'percentage' else value,
            'status': 'Enabled' if discount.is_active else 'Disabled',
            'startDate': discount.starts_at,
            'endDate': discount.ends_at,
            'usageLimit': discount.usage_limit,
            'customerIds': discount.customer_ids,
        }
        return {k: v for k, v in body.items() if v is not None}

    @staticmethod
    def _membership_from_c7(data: Dict[str, Any], customer_id: str = None) -> ClubMembership:
        return ClubMembership(
            id=data['id'],
            customer_id=data.get('customerId') or customer_id,
            club_id=data.get('clubId'),
            status=data.get('status'),
            signup_date=data.get('signupDate'),
            cancel_date=data.get('cancelDate'),
        )

    # ==================== Identity ====================

    def authenticate(self, request) -> Dict[str, Any]:
        """
        Verify an embedded launch from the Commerce7 admin.

        Commerce7 passes `tenantId` and an `account` token in the query
        string; the token is only valid if /account/user accepts it.
        """
        tenant_id = request.args.get('tenantId')
        account = request.args.get('account')
        if not tenant_id or not account:
            raise AuthenticationFailedError('Missing tenantId or account token')
        if tenant_id != self.tenant_identifier:
            raise AuthenticationFailedError('Tenant mismatch')

        user = self.client.request(
            'GET', '/account/user',
            headers={
                'Authorization': account,
                'tenant': tenant_id,
                'Accept': 'application/json',
            },
        )
        if not user or not user.get('id'):
            raise AuthenticationFailedError('Commerce7 account token rejected')
        return user

    def authorize_install(self, request) -> bool:
        """Install callbacks carry the app's Basic credentials."""
        expected_user = current_app.config.get('COMMERCE7_USER')
        expected_password = current_app.config.get('COMMERCE7_PASSWORD')
        if not expected_user or not expected_password:
            logger.warning('Commerce7 install credentials not configured')
            return False

        auth = request.authorization
        if auth is None or auth.username is None:
            return False
        return (
            hmac.compare_digest(auth.username, expected_user)
            and hmac.compare_digest(auth.password or '', expected_password)
        )

    # ==================== Customers ====================

    def get_customers(self, params: Dict[str, Any] = None) -> List[CrmCustomer]:
        params = params or {}
        data = self.client.get('/customer', params={
            'q': params.get('q', ''),
            'limit': params.get('limit', 50),
        })
        return [self._customer_from_c7(c) for c in data.get('customers', [])]

    def get_customer(self, customer_id: str) -> CrmCustomer:
        return self._customer_from_c7(self.client.get(f'/customer/{customer_id}'))

    def get_orders(self, params: Dict[str, Any] = None) -> List[CrmOrder]:
        params = params or {}
        query = {'q': params.get('q', ''), 'limit': params.get('limit', 50)}
        if params.get('customer_id'):
            query['customerId'] = params['customer_id']
        data = self.client.get('/order', params=query)
        return [self._order_from_c7(o) for o in data.get('orders', [])]

    def create_customer(self, data: Dict[str, Any]) -> CrmCustomer:
        if not data.get('email'):
            raise ValidationError('Email is required', 'email')
        created = self.client.post('/customer', json=self._customer_to_c7(data))
        logger.info(f'Created Commerce7 customer {created.get("id")} for tenant {self.tenant_identifier}')
        return self._customer_from_c7(created)

    def update_customer(self, customer_id: str, data: Dict[str, Any]) -> CrmCustomer:
        updated = self.client.put(f'/customer/{customer_id}', json=self._customer_to_c7(data))
        return self._customer_from_c7(updated)

    def find_customer_by_email(self, email: str) -> Optional[CrmCustomer]:
        data = self.client.get('/customer', params={'q': email, 'limit': 1})
        customers = [self._customer_from_c7(c) for c in data.get('customers', [])]
        # q is a fuzzy search; only an exact email match counts
        for customer in customers:
            if (customer.email or '').lower() == email.lower():
                return customer
        return None

    def create_customer_with_address(self, data: Dict[str, Any], address: CrmAddress) -> Dict[str, Any]:
        """
        POST /customer-address creates the customer and its first address
        atomically, so a failed address never leaves an orphan customer.
        """
        if not data.get('email'):
            raise ValidationError('Email is required', 'email')
        body = self._customer_to_c7(data)
        body.update({
            'address': address.address1,
            'address2': address.address2,
            'city': address.city,
            'stateCode': address.state,
            'zipCode': address.zip,
            'countryCode': address.country or 'US',
            'orderInformation': {'acquisitionChannel': 'Inbound'},
        })
        created = self.client.post('/customer-address', json={k: v for k, v in body.items() if v is not None})
        return {
            'customer': self._customer_from_c7(created),
            # First address of a customer created this way shares its ID
            'billing_address_id': created['id'],
        }

    # ==================== Addresses & payment ====================

    def get_customer_addresses(self, customer_id: str) -> List[CrmAddress]:
        data = self.client.get(f'/customer/{customer_id}/address')
        return [self._address_from_c7(a) for a in data.get('customerAddresses', [])]

    def create_customer_address(self, customer_id: str, address: CrmAddress) -> CrmAddress:
        data = self.client.post(f'/customer/{customer_id}/address', json=self._address_to_c7(address))
        return self._address_from_c7(data.get('address', data))

    def get_customer_credit_cards(self, customer_id: str) -> List[CrmPayment]:
        data = self.client.get(f'/customer/{customer_id}/credit-card')
        cards = data.get('customerCreditCards') or data.get('creditCards') or []
        return [self._payment_from_c7(c) for c in cards]

    def create_customer_credit_card(self, customer_id: str, card: Dict[str, Any]) -> CrmPayment:
        number = ''.join(ch for ch in str(card.get('card_number', '')) if ch.isdigit())
        if not number:
            raise ValidationError('Card number is required', 'card_number')
        data = self.client.post(f'/customer/{customer_id}/credit-card', json={
            'cardHolderName': card.get('cardholder_name'),
            'cardNumber': number,
            'expiryMo': int(card['expiry_month']),
            'expiryYr': int(card['expiry_year']),
            'cvv2': card.get('cvv'),
            'isDefault': card.get('is_default', True) is not False,
        })
        return self._payment_from_c7(data)

    # ==================== Coupons ====================

    def get_coupons(self, params: Dict[str, Any] = None) -> List[CrmDiscount]:
        params = params or {}
        data = self.client.get('/coupon', params={'q': params.get('q', ''), 'limit': params.get('limit', 50)})
        return [self._discount_from_c7(c) for c in data.get('coupons', [])]

    def get_coupon(self, coupon_id: str) -> CrmDiscount:
        return self._discount_from_c7(self.client.get(f'/coupon/{coupon_id}'))

    def create_coupon(self, discount: CrmDiscount) -> CrmDiscount:
        created = self.client.post('/coupon', json=self._discount_to_c7(discount))
        return self._discount_from_c7(created)

    def update_coupon(self, coupon_id: str, changes: Dict[str, Any]) -> CrmDiscount:
        current = self.get_coupon(coupon_id)
        for key, value in changes.items():
            if not hasattr(current, key):
                raise ValidationError(f'Unknown coupon field: {key}', key)
            setattr(current, key, value)
        updated = self.client.put(f'/coupon/{coupon_id}', json=self._discount_to_c7(current))
        return self._discount_from_c7(updated)

    def delete_coupon(self, coupon_id: str) -> bool:
        self.client.delete(f'/coupon/{coupon_id}')
        return True

    def get_coupon_customers(self, coupon_id: str) -> List[str]:
        return self.get_coupon(coupon_id).customer_ids

    def add_customer_to_discount(self, coupon_id: str, customer_id: str) -> bool:
        customer_ids = self.get_coupon_customers(coupon_id)
        if customer_id in customer_ids:
            return False
        self.client.put(f'/coupon/{coupon_id}', json={'customerIds': customer_ids + [customer_id]})
        return True

    def remove_customer_from_discount(self, coupon_id: str, customer_id: str) -> bool:
        customer_ids = self.get_coupon_customers(coupon_id)
        if customer_id not in customer_ids:
            return False
        remaining = [c for c in customer_ids if c != customer_id]
        self.client.put(f'/coupon/{coupon_id}', json={'customerIds': remaining})
        return True

    # ==================== Clubs ====================

    def list_clubs(self) -> List[Dict[str, Any]]:
        return self.client.get('/club').get('clubs', [])

    def _club_body(self, name: str) -> Dict[str, Any]:
        return {
            'title': name,
            'slug': _slugify(name),
            'seo': {'title': name},
            'webStatus': 'Not Available',
            'adminStatus': 'Not Available',
        }

    def upsert_club(self, tier) -> str:
        """
        Idempotent club sync for a tier.

        1. Known club ID: update it in place
        2. A club with the tier's slug already exists (earlier attempt
           created it but the ID was never stored): adopt and update it
        3. Otherwise create it (`type` can only be set on create)
        """
        body = self._club_body(tier.name)

        if tier.crm_club_id:
            try:
                self.client.put(f'/club/{tier.crm_club_id}', json=body)
                return tier.crm_club_id
            except NotFoundError:
                logger.warning(f'Club {tier.crm_club_id} for tier {tier.id} vanished, recreating')

        for club in self.list_clubs():
            if club.get('slug') == body['slug']:
                self.client.put(f'/club/{club["id"]}', json=body)
                return club['id']

        created = self.client.post('/club', json=dict(body, type='Traditional'))
        logger.info(f'Created Commerce7 club {created.get("id")} for tier {tier.name}')
        return created['id']

    def get_customer_club_memberships(self, customer_id: str) -> List[ClubMembership]:
        data = self.client.get(f'/customer/{customer_id}/club')
        return [self._membership_from_c7(m, customer_id) for m in data.get('clubs', [])]

    def create_club_membership(
        self,
        customer_id: str,
        club_id: str,
        billing_address_id: str,
        shipping_address_id: str,
        payment_method_id: str,
        start_date: datetime = None,
    ) -> ClubMembership:
        for membership in self.get_customer_club_memberships(customer_id):
            if membership.club_id == club_id and not membership.is_cancelled:
                logger.info(f'Customer {customer_id} already in club {club_id}, reusing membership {membership.id}')
                return membership

        created = self.client.post('/club-membership', json={
            'customerId': customer_id,
            'clubId': club_id,
            'billToCustomerAddressId': billing_address_id,
            'shipToCustomerAddressId': shipping_address_id,
            'customerCreditCardId': payment_method_id,
            'orderDeliveryMethod': 'Ship',
            'signupDate': (start_date or datetime.utcnow()).isoformat(),
            'cancelDate': None,
        })
        return self._membership_from_c7(created, customer_id)

    def cancel_club_membership(self, membership_id: str = None, customer_id: str = None, club_id: str = None) -> None:
        if not membership_id:
            if not (customer_id and club_id):
                raise ValidationError('membership_id or customer_id and club_id are required')
            live = [
                m for m in self.get_customer_club_memberships(customer_id)
                if m.club_id == club_id and not m.is_cancelled
            ]
            if not live:
                # Already cancelled
                return
            membership_id = live[0].id

        self.client.put(f'/club-membership/{membership_id}', json={
            'cancelDate': datetime.utcnow().isoformat(),
        })

    # ==================== Webhooks ====================

    @classmethod
    def validate_webhook(cls, request) -> bool:
        return verify_webhook_auth(request)

    def decode_webhook(self, topic: WebhookTopic, data: Dict[str, Any]) -> Any:
        """Every Commerce7 webhook object carries an `id`; orders need a numeric total."""
        if not isinstance(data, dict):
            raise ValidationError('Webhook payload must be an object', 'payload')
        if data.get('id') in (None, ''):
            raise ValidationError(f'{topic.value} payload has no id', 'payload')

        if topic == WebhookTopic.CUSTOMERS_UPDATE:
            return self._customer_from_c7(data)
        if topic in (WebhookTopic.CLUB_UPDATE, WebhookTopic.CLUB_DELETE):
            return CrmClub(id=str(data['id']), title=data.get('title'))
        if topic in (WebhookTopic.CLUB_MEMBERSHIP_UPDATE, WebhookTopic.CLUB_MEMBERSHIP_DELETE):
            return self._membership_from_c7(data)
        if topic == WebhookTopic.ORDERS_CREATE:
            return self._order_from_c7(data)

        raise ValidationError(f'Unsupported topic: {topic}', 'topic')

    def process_webhook(self, payload: WebhookPayload) -> Dict[str, Any]:
        """Reconcile local state with one decoded Commerce7 event."""
        from ..services.sync_service import WebhookReconciler

        event = payload.event
        if event is None:
            event = self.decode_webhook(payload.topic, payload.data or {})
        reconciler = WebhookReconciler.for_tenant(self.slug, payload.tenant, provider=self)
        topic = payload.topic

        if topic == WebhookTopic.CUSTOMERS_UPDATE:
            return reconciler.customer_updated(event)
        if topic == WebhookTopic.CLUB_UPDATE:
            return reconciler.club_updated(event.id, event.title)
        if topic == WebhookTopic.CLUB_DELETE:
            return reconciler.club_deleted(event.id)
        if topic == WebhookTopic.CLUB_MEMBERSHIP_UPDATE:
            return reconciler.membership_updated(event)
        if topic == WebhookTopic.CLUB_MEMBERSHIP_DELETE:
            return reconciler.membership_deleted(event)
        return reconciler.order_created(event)

    def register_webhook(self, topic: str, address: str) -> WebhookRegistration:
        data = self.client.post('/webhook', json={'topic': topic, 'url': address, 'isActive': True})
        return WebhookRegistration(id=data['id'], topic=topic, address=address, created_at=data.get('createdAt'))

    def list_webhooks(self) -> List[WebhookRegistration]:
        data = self.client.get('/webhook')
        return [
            WebhookRegistration(id=w['id'], topic=w.get('topic'), address=w.get('url'), created_at=w.get('createdAt'))
            for w in data.get('webhooks', [])
        ]

    def delete_webhook(self, webhook_id: str) -> bool:
        self.client.delete(f'/webhook/{webhook_id}')
        return True
