"""
Shared fixtures for the ClubSync test suite.

The `app` fixture keeps one application context pushed for the whole
test, so fixtures and requests made through `client` share a database
session.
"""
import itertools
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from clubsync.utils.exceptions import NotFoundError


class FakeCommerce7Client:
    """
    In-memory stand-in for Commerce7Client.

    Routes the same (method, path) pairs Commerce7Provider uses and keeps
    platform state in dicts, so idempotency can be checked by counting
    records. Every call is appended to `calls`.
    """

    def __init__(self):
        self.calls = []
        self.customers = {}
        self.addresses = {}
        self.cards = {}
        self.orders = []
        self.clubs = {}
        self.memberships = {}
        self.coupons = {}
        self.webhooks = {}
        self.account_user = {'id': 'user-1', 'email': 'staff@testwinery.com', 'firstName': 'Sam'}
        self._ids = itertools.count(1)

    def _new_id(self, prefix):
        return f'{prefix}-{next(self._ids)}'

    # ---- seeding helpers ----

    def add_customer(self, email, first_name='Test', last_name='Customer',
                     with_address=True, with_card=True, order_totals_cents=()):
        customer_id = self._new_id('cust')
        self.customers[customer_id] = {
            'id': customer_id,
            'firstName': first_name,
            'lastName': last_name,
            'emails': [{'email': email}],
            'phones': [],
        }
        self.addresses[customer_id] = []
        self.cards[customer_id] = []
        if with_address:
            self.addresses[customer_id].append({
                'id': self._new_id('addr'), 'address': '1 Vine St', 'city': 'Napa',
                'stateCode': 'CA', 'zipCode': '94558', 'countryCode': 'US', 'isDefault': True,
            })
        if with_card:
            self.cards[customer_id].append({
                'id': self._new_id('card'), 'cardBrand': 'Visa', 'maskedCardNumber': '************4242',
                'expiryMo': 4, 'expiryYr': 2030, 'isDefault': True,
            })
        for total in order_totals_cents:
            self.orders.append({'id': self._new_id('order'), 'customerId': customer_id, 'total': total})
        return customer_id

    def live_memberships(self, customer_id=None):
        return [
            m for m in self.memberships.values()
            if not m.get('cancelDate') and (customer_id is None or m['customerId'] == customer_id)
        ]

    def calls_to(self, method, path):
        return [c for c in self.calls if c[0] == method and c[1] == path]

    # ---- transport ----

    def get(self, path, params=None):
        return self.request('GET', path, params=params)

    def post(self, path, json=None):
        return self.request('POST', path, json=json)

    def put(self, path, json=None):
        return self.request('PUT', path, json=json)

    def delete(self, path):
        return self.request('DELETE', path)

    def request(self, method, path, params=None, json=None, headers=None):
        self.calls.append((method, path, json))
        params = params or {}
        parts = path.strip('/').split('/')
        resource = parts[0]

        if resource == 'account' and method == 'GET':
            return dict(self.account_user)

        if resource == 'customer-address' and method == 'POST':
            customer_id = self._new_id('cust')
            self.customers[customer_id] = {
                'id': customer_id,
                'firstName': json.get('firstName'),
                'lastName': json.get('lastName'),
                'emails': json.get('emails', []),
                'phones': json.get('phones', []),
            }
            self.addresses[customer_id] = [{
                'id': customer_id, 'address': json.get('address'), 'city': json.get('city'),
                'stateCode': json.get('stateCode'), 'zipCode': json.get('zipCode'),
                'countryCode': json.get('countryCode'), 'isDefault': True,
            }]
            self.cards[customer_id] = []
            return dict(self.customers[customer_id])

        if resource == 'customer':
            return self._customer_route(method, parts, params, json, path)
        if resource == 'order' and method == 'GET':
            orders = [o for o in self.orders if o['customerId'] == params.get('customerId')]
            return {'orders': orders}
        if resource == 'club':
            return self._club_route(method, parts, json, path)
        if resource == 'club-membership':
            return self._membership_route(method, parts, json, path)
        if resource == 'coupon':
            return self._coupon_route(method, parts, params, json, path)
        if resource == 'webhook':
            return self._webhook_route(method, parts, json, path)

        raise NotFoundError('Commerce7 resource', path)

    def _customer_route(self, method, parts, params, json, path):
        if len(parts) == 1:
            if method == 'GET':
                q = (params.get('q') or '').lower()
                matches = [
                    c for c in self.customers.values()
                    if any(q in e['email'].lower() for e in c['emails'])
                ]
                return {'customers': matches[:params.get('limit', 50)]}
            if method == 'POST':
                customer_id = self._new_id('cust')
                self.customers[customer_id] = dict(json, id=customer_id)
                self.addresses[customer_id] = []
                self.cards[customer_id] = []
                return dict(self.customers[customer_id])

        customer_id = parts[1]
        if customer_id not in self.customers:
            raise NotFoundError('Commerce7 resource', path)

        if len(parts) == 2:
            if method == 'PUT':
                self.customers[customer_id].update(json)
            return dict(self.customers[customer_id])

        sub = parts[2]
        if sub == 'address':
            if method == 'POST':
                address = dict(json, id=self._new_id('addr'))
                self.addresses[customer_id].append(address)
                return address
            return {'customerAddresses': list(self.addresses[customer_id])}
        if sub == 'credit-card':
            if method == 'POST':
                card = dict(json, id=self._new_id('card'))
                self.cards[customer_id].append(card)
                return card
            return {'customerCreditCards': list(self.cards[customer_id])}
        if sub == 'club':
            return {'clubs': [m for m in self.memberships.values() if m['customerId'] == customer_id]}

        raise NotFoundError('Commerce7 resource', path)

    def _club_route(self, method, parts, json, path):
        if len(parts) == 1:
            if method == 'GET':
                return {'clubs': list(self.clubs.values())}
            club_id = self._new_id('club')
            self.clubs[club_id] = dict(json, id=club_id)
            return dict(self.clubs[club_id])

        club_id = parts[1]
        if club_id not in self.clubs:
            raise NotFoundError('Commerce7 resource', path)
        if method == 'PUT':
            self.clubs[club_id].update(json)
        return dict(self.clubs[club_id])

    def _membership_route(self, method, parts, json, path):
        if len(parts) == 1 and method == 'POST':
            membership_id = self._new_id('mem')
            self.memberships[membership_id] = dict(json, id=membership_id, status='Active')
            return dict(self.memberships[membership_id])

        membership_id = parts[1]
        if membership_id not in self.memberships:
            raise NotFoundError('Commerce7 resource', path)
        if method == 'PUT':
            self.memberships[membership_id].update(json)
            if json.get('cancelDate'):
                self.memberships[membership_id]['status'] = 'Cancelled'
        return dict(self.memberships[membership_id])

    def _coupon_route(self, method, parts, params, json, path):
        if len(parts) == 1:
            if method == 'GET':
                q = (params.get('q') or '').upper()
                return {'coupons': [c for c in self.coupons.values() if q in c['code'].upper()]}
            coupon_id = self._new_id('coupon')
            self.coupons[coupon_id] = dict(json, id=coupon_id)
            return dict(self.coupons[coupon_id])

        coupon_id = parts[1]
        if coupon_id not in self.coupons:
            raise NotFoundError('Commerce7 resource', path)
        if method == 'PUT':
            self.coupons[coupon_id].update(json)
        if method == 'DELETE':
            del self.coupons[coupon_id]
            return {}
        return dict(self.coupons[coupon_id])

    def _webhook_route(self, method, parts, json, path):
        if len(parts) == 1:
            if method == 'GET':
                return {'webhooks': list(self.webhooks.values())}
            webhook_id = self._new_id('hook')
            self.webhooks[webhook_id] = dict(json, id=webhook_id)
            return dict(self.webhooks[webhook_id])
        self.webhooks.pop(parts[1], None)
        return {}


@pytest.fixture
def app():
    """Application with a fresh in-memory database."""
    from clubsync import create_app
    from clubsync.extensions import db

    app = create_app('testing')
    ctx = app.app_context()
    ctx.push()
    db.create_all()

    yield app

    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def sample_client(app):
    """A Commerce7 winery that has finished setup."""
    from clubsync.extensions import db
    from clubsync.models import Client

    winery = Client(
        tenant_shop='test-winery',
        crm_type='commerce7',
        org_name='Test Winery',
        org_contact='Sam Vintner',
        user_email='sam@testwinery.com',
        setup_complete=True,
        is_active=True,
    )
    db.session.add(winery)
    db.session.commit()
    return winery


@pytest.fixture
def sample_program(sample_client):
    from clubsync.extensions import db
    from clubsync.models import ClubProgram

    program = ClubProgram(client_id=sample_client.id, name='Test Winery Wine Club')
    db.session.add(program)
    db.session.commit()
    return program


@pytest.fixture
def sample_tiers(sample_program):
    """Bronze < Silver < Gold."""
    from clubsync.extensions import db
    from clubsync.models import ClubStage

    tiers = [
        ClubStage(club_program_id=sample_program.id, name='Bronze', stage_order=1,
                  discount_percentage=Decimal('10'), min_purchase_amount=Decimal('100'),
                  min_ltv_amount=Decimal('500')),
        ClubStage(club_program_id=sample_program.id, name='Silver', stage_order=2,
                  discount_percentage=Decimal('15'), min_purchase_amount=Decimal('500'),
                  min_ltv_amount=Decimal('2000')),
        ClubStage(club_program_id=sample_program.id, name='Gold', stage_order=3,
                  discount_percentage=Decimal('20'), min_purchase_amount=Decimal('1000'),
                  min_ltv_amount=Decimal('5000')),
    ]
    db.session.add_all(tiers)
    db.session.commit()
    return tiers


@pytest.fixture
def sample_customer(sample_client):
    from clubsync.extensions import db
    from clubsync.models import Customer

    customer = Customer(
        client_id=sample_client.id,
        crm_id='cust-100',
        email='pat@example.com',
        first_name='Pat',
        last_name='Taster',
        lifetime_value=Decimal('0'),
    )
    db.session.add(customer)
    db.session.commit()
    return customer


@pytest.fixture
def sample_session(sample_client):
    """Session ID for the sample client."""
    from clubsync.services.session_store import create_session

    return create_session({
        'client_id': sample_client.id,
        'tenant_shop': sample_client.tenant_shop,
        'crm_type': 'commerce7',
        'user_name': 'Sam',
        'user_email': 'sam@testwinery.com',
    })


@pytest.fixture
def fake_c7():
    return FakeCommerce7Client()


@pytest.fixture
def c7_provider(app, fake_c7):
    from clubsync.crm import Commerce7Provider

    return Commerce7Provider('test-winery', client=fake_c7)


@pytest.fixture
def enrolled_member(sample_customer, sample_tiers):
    """sample_customer with an active Bronze enrollment."""
    from clubsync.extensions import db
    from clubsync.models import ClubEnrollment

    now = datetime.utcnow()
    enrollment = ClubEnrollment(
        customer_id=sample_customer.id,
        club_stage_id=sample_tiers[0].id,
        status=ClubEnrollment.STATUS_ACTIVE,
        enrolled_at=now,
        expires_at=now + timedelta(days=365),
        crm_membership_id='mem-bronze',
    )
    sample_customer.is_club_member = True
    db.session.add(enrollment)
    db.session.commit()
    return enrollment
