"""
Tests for the Commerce7 provider.

Tests cover:
- Cents <-> major unit conversion
- Idempotent club and membership writes
- Discount eligibility membership
- HTTP error mapping in the transport
- Install/launch authentication
"""
import base64
import pytest
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch, MagicMock

import requests


def make_response(status_code=200, json_data=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.content = b'{}' if json_data is not None else b''
    response.json.return_value = json_data
    response.text = ''
    return response


def basic_auth(user, password):
    token = base64.b64encode(f'{user}:{password}'.encode()).decode()
    return {'Authorization': f'Basic {token}'}


class TestAmounts:
    """Tests for money normalization."""

    def test_normalize_cents(self, c7_provider):
        assert c7_provider.normalize_amount(12345) == Decimal('123.45')
        assert c7_provider.normalize_amount('999') == Decimal('9.99')
        assert c7_provider.normalize_amount(None) == Decimal('0.00')

    def test_to_cents_rounds(self, c7_provider):
        assert c7_provider._to_cents(Decimal('19.995')) == 2000
        assert c7_provider._to_cents('10') == 1000

    def test_ltv_sums_normalized_orders(self, c7_provider, fake_c7):
        customer_id = fake_c7.add_customer('ltv@example.com', order_totals_cents=(10000, 25050))

        customer = c7_provider.get_customer_with_ltv(customer_id)

        assert customer.email == 'ltv@example.com'
        assert customer.ltv == Decimal('350.50')

    def test_customers_with_ltv_normalizes_cents(self, c7_provider, fake_c7):
        fake_c7.add_customer('a@winery.test', order_totals_cents=(4999, 1))
        fake_c7.add_customer('b@winery.test', order_totals_cents=(150000,))
        fake_c7.add_customer('c@winery.test')

        customers = c7_provider.get_customers_with_ltv({'q': 'winery.test'})

        ltv_by_email = {c.email: c.ltv for c in customers}
        assert ltv_by_email == {
            'a@winery.test': Decimal('50.00'),
            'b@winery.test': Decimal('1500.00'),
            'c@winery.test': Decimal('0'),
        }

    def test_invalid_amount(self, c7_provider):
        from clubsync.utils.exceptions import ValidationError

        for raw in ('abc', 'NaN', [100]):
            with pytest.raises(ValidationError):
                c7_provider.normalize_amount(raw)

    def test_percentage_coupon_value_is_not_cents(self, c7_provider, fake_c7):
        fake_c7.coupons['c-1'] = {'id': 'c-1', 'code': 'GOLD', 'type': 'Percentage Off', 'value': 20, 'status': 'Enabled'}
        fake_c7.coupons['c-2'] = {'id': 'c-2', 'code': 'TENOFF', 'type': 'Dollar Off', 'value': 1000, 'status': 'Disabled'}

        gold = c7_provider.get_coupon('c-1')
        ten_off = c7_provider.get_coupon('c-2')

        assert gold.type == 'percentage' and gold.value == Decimal('20')
        assert ten_off.type == 'fixed_amount' and ten_off.value == Decimal('10.00')
        assert ten_off.is_active is False


class TestCustomers:
    """Tests for customer operations."""

    def test_find_by_email_requires_exact_match(self, c7_provider, fake_c7):
        fake_c7.add_customer('pat.taster@example.com')

        assert c7_provider.find_customer_by_email('taster@example.com') is None
        assert c7_provider.find_customer_by_email('PAT.TASTER@example.com').email == 'pat.taster@example.com'

    def test_upsert_customer_updates_existing(self, c7_provider, fake_c7):
        customer_id = fake_c7.add_customer('pat@example.com', first_name='Pat')

        customer = c7_provider.upsert_customer({'email': 'pat@example.com', 'first_name': 'Patricia'})

        assert customer.id == customer_id
        assert customer.first_name == 'Patricia'
        assert len(fake_c7.customers) == 1

    def test_create_customer_requires_email(self, c7_provider):
        from clubsync.utils.exceptions import ValidationError

        with pytest.raises(ValidationError):
            c7_provider.create_customer({'first_name': 'Nobody'})

    def test_create_customer_with_address(self, c7_provider, fake_c7):
        from clubsync.crm import CrmAddress

        result = c7_provider.create_customer_with_address(
            {'email': 'new@example.com', 'first_name': 'New', 'last_name': 'Member'},
            CrmAddress(address1='1 Vine St', city='Napa', state='CA', zip='94558'),
        )

        customer = result['customer']
        assert customer.email == 'new@example.com'
        assert result['billing_address_id'] == customer.id
        assert len(fake_c7.calls_to('POST', '/customer-address')) == 1
        assert fake_c7.calls_to('POST', '/customer') == []

    def test_addresses_and_cards(self, c7_provider, fake_c7):
        customer_id = fake_c7.add_customer('cards@example.com')

        addresses = c7_provider.get_customer_addresses(customer_id)
        cards = c7_provider.get_customer_credit_cards(customer_id)

        assert addresses[0].state == 'CA'
        assert addresses[0].is_default is True
        assert cards[0].last4 == '4242'
        assert cards[0].expiry_month == '04'

    def test_create_credit_card(self, c7_provider, fake_c7):
        customer_id = fake_c7.add_customer('cards@example.com', with_card=False)

        card = c7_provider.create_customer_credit_card(customer_id, {
            'card_number': '4111 1111 1111 1111',
            'expiry_month': '4',
            'expiry_year': '2031',
            'cardholder_name': 'Pat Taster',
            'cvv': '123',
        })

        sent = fake_c7.calls_to('POST', f'/customer/{customer_id}/credit-card')[0][2]
        assert sent['cardNumber'] == '4111111111111111'
        assert sent['expiryMo'] == 4 and sent['expiryYr'] == 2031
        assert sent['isDefault'] is True
        assert card.expiry_month == '04'
        assert card.cardholder_name == 'Pat Taster'
        assert len(c7_provider.get_customer_credit_cards(customer_id)) == 1

    def test_create_credit_card_requires_number(self, c7_provider, fake_c7):
        from clubsync.utils.exceptions import ValidationError

        customer_id = fake_c7.add_customer('cards@example.com')

        with pytest.raises(ValidationError):
            c7_provider.create_customer_credit_card(customer_id, {'expiry_month': 1, 'expiry_year': 2030})


class TestClubs:
    """Tests for idempotent club and membership writes."""

    def test_upsert_club_twice_returns_same_id(self, c7_provider, fake_c7):
        tier = SimpleNamespace(id=1, name='Gold Club', crm_club_id=None)

        first = c7_provider.upsert_club(tier)
        second = c7_provider.upsert_club(tier)

        assert first == second
        assert len(fake_c7.clubs) == 1
        assert fake_c7.clubs[first]['slug'] == 'gold-club'
        assert fake_c7.clubs[first]['type'] == 'Traditional'

    def test_upsert_club_updates_known_id(self, c7_provider, fake_c7):
        club_id = c7_provider.upsert_club(SimpleNamespace(id=1, name='Gold', crm_club_id=None))

        renamed = SimpleNamespace(id=1, name='Gold Reserve', crm_club_id=club_id)
        assert c7_provider.upsert_club(renamed) == club_id
        assert fake_c7.clubs[club_id]['title'] == 'Gold Reserve'
        assert len(fake_c7.clubs) == 1

    def test_upsert_club_recreates_vanished_club(self, c7_provider, fake_c7):
        tier = SimpleNamespace(id=1, name='Gold', crm_club_id='club-gone')

        club_id = c7_provider.upsert_club(tier)

        assert club_id != 'club-gone'
        assert club_id in fake_c7.clubs

    def test_create_membership_twice_returns_same_id(self, c7_provider, fake_c7):
        customer_id = fake_c7.add_customer('member@example.com')
        args = dict(
            customer_id=customer_id,
            club_id='club-9',
            billing_address_id='addr-1',
            shipping_address_id='addr-1',
            payment_method_id='card-1',
        )

        first = c7_provider.create_club_membership(**args)
        second = c7_provider.create_club_membership(**args)

        assert first.id == second.id
        assert len(fake_c7.memberships) == 1

    def test_cancelled_membership_is_not_reused(self, c7_provider, fake_c7):
        customer_id = fake_c7.add_customer('member@example.com')
        args = dict(customer_id=customer_id, club_id='club-9', billing_address_id='a',
                    shipping_address_id='a', payment_method_id='c')

        first = c7_provider.create_club_membership(**args)
        c7_provider.cancel_club_membership(membership_id=first.id)
        second = c7_provider.create_club_membership(**args)

        assert second.id != first.id
        assert len(fake_c7.live_memberships(customer_id)) == 1

    def test_cancel_by_customer_and_club_is_idempotent(self, c7_provider, fake_c7):
        customer_id = fake_c7.add_customer('member@example.com')
        c7_provider.create_club_membership(customer_id, 'club-9', 'a', 'a', 'c')

        c7_provider.cancel_club_membership(customer_id=customer_id, club_id='club-9')
        c7_provider.cancel_club_membership(customer_id=customer_id, club_id='club-9')

        assert fake_c7.live_memberships(customer_id) == []
        assert len([c for c in fake_c7.calls if c[0] == 'PUT' and c[1].startswith('/club-membership/')]) == 1

    def test_cancel_requires_identity(self, c7_provider):
        from clubsync.utils.exceptions import ValidationError

        with pytest.raises(ValidationError):
            c7_provider.cancel_club_membership(customer_id='cust-1')


class TestDiscountEligibility:
    """Tests for coupon customer lists."""

    def test_add_and_remove_customer(self, c7_provider, fake_c7):
        fake_c7.coupons['c-1'] = {'id': 'c-1', 'code': 'GOLD', 'type': 'Percentage Off',
                                  'value': 20, 'status': 'Enabled', 'customerIds': []}

        assert c7_provider.add_customer_to_discount('c-1', 'cust-1') is True
        assert c7_provider.add_customer_to_discount('c-1', 'cust-1') is False
        assert c7_provider.get_coupon_customers('c-1') == ['cust-1']

        assert c7_provider.remove_customer_from_discount('c-1', 'cust-1') is True
        assert c7_provider.remove_customer_from_discount('c-1', 'cust-1') is False
        assert c7_provider.get_coupon_customers('c-1') == []

    def test_update_coupon_rejects_unknown_field(self, c7_provider, fake_c7):
        from clubsync.utils.exceptions import ValidationError

        fake_c7.coupons['c-1'] = {'id': 'c-1', 'code': 'GOLD', 'type': 'Percentage Off', 'value': 20}

        with pytest.raises(ValidationError):
            c7_provider.update_coupon('c-1', {'colour': 'red'})


class TestCoupons:

    def test_create_and_delete_coupon(self, c7_provider, fake_c7):
        from clubsync.crm import CrmDiscount
        from clubsync.utils.exceptions import NotFoundError

        coupon = c7_provider.create_coupon(CrmDiscount(id=None, code='FAREWELL', value=Decimal('15')))
        assert fake_c7.coupons[coupon.id]['type'] == 'Percentage Off'

        assert c7_provider.delete_coupon(coupon.id) is True
        assert fake_c7.coupons == {}
        with pytest.raises(NotFoundError):
            c7_provider.get_coupon(coupon.id)


class TestWebhookRegistration:

    def test_register_list_delete(self, c7_provider, fake_c7):
        registration = c7_provider.register_webhook('Club', 'https://c7.clubsync.test/webhooks/c7')

        listed = c7_provider.list_webhooks()
        assert [w.id for w in listed] == [registration.id]
        assert listed[0].address == 'https://c7.clubsync.test/webhooks/c7'

        assert c7_provider.delete_webhook(registration.id) is True
        assert c7_provider.list_webhooks() == []


class TestCommerce7Client:
    """Tests for HTTP error mapping."""

    def test_sends_basic_auth_and_tenant(self, app):
        from clubsync.crm import Commerce7Client

        with patch('clubsync.crm.commerce7.requests.request') as mock_request:
            mock_request.return_value = make_response(200, {'clubs': []})
            Commerce7Client('test-winery').get('/club')

        _, kwargs = mock_request.call_args
        expected = base64.b64encode(b'clubsync-test:c7-test-key').decode()
        assert kwargs['headers']['Authorization'] == f'Basic {expected}'
        assert kwargs['headers']['tenant'] == 'test-winery'
        assert mock_request.call_args[0][1] == 'https://api.commerce7.com/v1/club'

    @pytest.mark.parametrize('status,error_name', [
        (401, 'AuthenticationFailedError'),
        (403, 'AuthenticationFailedError'),
        (404, 'NotFoundError'),
        (429, 'RateLimitedError'),
        (500, 'PlatformError'),
    ])
    def test_status_mapping(self, app, status, error_name):
        from clubsync.crm import Commerce7Client
        from clubsync.utils import exceptions

        with patch('clubsync.crm.commerce7.requests.request') as mock_request:
            mock_request.return_value = make_response(status, {'message': 'nope'})
            with pytest.raises(getattr(exceptions, error_name)):
                Commerce7Client('test-winery').get('/customer/1')

    def test_retry_after_is_exposed(self, app):
        from clubsync.crm import Commerce7Client
        from clubsync.utils.exceptions import RateLimitedError

        with patch('clubsync.crm.commerce7.requests.request') as mock_request:
            mock_request.return_value = make_response(429, {}, headers={'Retry-After': '2'})
            with pytest.raises(RateLimitedError) as exc_info:
                Commerce7Client('test-winery').get('/club')

        assert exc_info.value.retry_after == 2.0

    def test_errors_array_on_success_status(self, app):
        from clubsync.crm import Commerce7Client
        from clubsync.utils.exceptions import PlatformError

        with patch('clubsync.crm.commerce7.requests.request') as mock_request:
            mock_request.return_value = make_response(200, {'errors': [{'message': 'Invalid clubId'}]})
            with pytest.raises(PlatformError) as exc_info:
                Commerce7Client('test-winery').post('/club-membership', json={})

        assert 'Invalid clubId' in exc_info.value.message

    def test_transport_failure(self, app):
        from clubsync.crm import Commerce7Client
        from clubsync.utils.exceptions import PlatformError

        with patch('clubsync.crm.commerce7.requests.request', side_effect=requests.ConnectionError('down')):
            with pytest.raises(PlatformError):
                Commerce7Client('test-winery').get('/club')

    def test_missing_api_key(self, app):
        from clubsync.crm import Commerce7Client
        from clubsync.utils.exceptions import ConfigurationError

        app.config['COMMERCE7_API_KEY'] = None
        with pytest.raises(ConfigurationError):
            Commerce7Client('test-winery').get('/club')


class TestIdentity:
    """Tests for install and launch authentication."""

    def test_authorize_install(self, app, c7_provider):
        with app.test_request_context('/install', method='POST',
                                      headers=basic_auth('c7-install', 'c7-install-pass')):
            from flask import request
            assert c7_provider.authorize_install(request) is True

        with app.test_request_context('/install', method='POST', headers=basic_auth('c7-install', 'wrong')):
            from flask import request
            assert c7_provider.authorize_install(request) is False

        with app.test_request_context('/install', method='POST'):
            from flask import request
            assert c7_provider.authorize_install(request) is False

    def test_authenticate_uses_account_token(self, app, c7_provider, fake_c7):
        with app.test_request_context('/c7/auth?tenantId=test-winery&account=acct-token'):
            from flask import request
            user = c7_provider.authenticate(request)

        assert user['email'] == 'staff@testwinery.com'
        assert fake_c7.calls_to('GET', '/account/user')

    def test_authenticate_tenant_mismatch(self, app, c7_provider):
        from clubsync.utils.exceptions import AuthenticationFailedError

        with app.test_request_context('/c7/auth?tenantId=other-winery&account=acct-token'):
            from flask import request
            with pytest.raises(AuthenticationFailedError):
                c7_provider.authenticate(request)


class TestWebhookDecoding:
    """Tests for webhook credential checks and payload decoding."""

    def test_validate_webhook_without_configured_user(self, app):
        from clubsync.crm import Commerce7Provider

        with app.test_request_context('/webhooks/c7', method='POST'):
            from flask import request
            assert Commerce7Provider.validate_webhook(request) is True

    def test_validate_webhook_checks_basic_auth(self, app, c7_provider):
        app.config['COMMERCE7_WEBHOOK_USER'] = 'hook-user'
        app.config['COMMERCE7_WEBHOOK_PASSWORD'] = 'hook-pass'

        with app.test_request_context('/webhooks/c7', method='POST', headers=basic_auth('hook-user', 'hook-pass')):
            from flask import request
            assert c7_provider.validate_webhook(request) is True

        with app.test_request_context('/webhooks/c7', method='POST', headers=basic_auth('hook-user', 'nope')):
            from flask import request
            assert c7_provider.validate_webhook(request) is False

    def test_decode_order(self, c7_provider):
        from clubsync.crm import CrmOrder, WebhookTopic

        order = c7_provider.decode_webhook(
            WebhookTopic.ORDERS_CREATE, {'id': 'o-1', 'customerId': 'cust-1', 'total': 4550}
        )

        assert order == CrmOrder(id='o-1', customer_id='cust-1', total=Decimal('45.50'))

    def test_decode_club(self, c7_provider):
        from clubsync.crm import CrmClub, WebhookTopic

        club = c7_provider.decode_webhook(WebhookTopic.CLUB_DELETE, {'id': 'club-9'})
        assert club == CrmClub(id='club-9')

    @pytest.mark.parametrize('topic,data', [
        ('CLUB_UPDATE', {'title': 'No id'}),
        ('CUSTOMERS_UPDATE', {'id': ''}),
        ('ORDERS_CREATE', {'id': 'o-1', 'total': 'abc'}),
        ('CLUB_MEMBERSHIP_DELETE', []),
    ])
    def test_decode_rejects_malformed(self, c7_provider, topic, data):
        from clubsync.crm import WebhookTopic
        from clubsync.utils.exceptions import ValidationError

        with pytest.raises(ValidationError):
            c7_provider.decode_webhook(WebhookTopic[topic], data)
