"""
CRM provider contract and the platform-neutral value types it speaks.

Every platform (Commerce7, Shopify) implements CrmProvider. Callers obtain
an instance through clubsync.crm.get_provider() and never branch on the
platform type themselves.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class WebhookTopic(str, Enum):
    """Closed set of normalized webhook topics."""
    CUSTOMERS_UPDATE = 'customers/update'
    CLUB_UPDATE = 'club/update'
    CLUB_DELETE = 'club/delete'
    CLUB_MEMBERSHIP_UPDATE = 'club-membership/update'
    CLUB_MEMBERSHIP_DELETE = 'club-membership/delete'
    ORDERS_CREATE = 'orders/create'


@dataclass
class WebhookPayload:
    """
    A normalized webhook event.

    `data` is the raw platform object; `event` is the typed value the
    provider decoded from it (CrmCustomer, CrmOrder, CrmClub or
    ClubMembership, depending on the topic).
    """
    topic: WebhookTopic
    tenant: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.utcnow)
    event: Any = None


@dataclass
class CrmCustomer:
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    ltv: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.ltv is not None:
            data['ltv'] = float(self.ltv)
        return data


@dataclass
class CrmAddress:
    address1: str
    city: str
    state: str
    zip: str
    country: str = 'US'
    id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    address2: Optional[str] = None
    phone: Optional[str] = None
    is_default: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CrmAddress':
        return cls(
            address1=data.get('address1') or data.get('address', ''),
            address2=data.get('address2'),
            city=data.get('city', ''),
            state=data.get('state', ''),
            zip=data.get('zip', ''),
            country=data.get('country') or 'US',
            id=data.get('id'),
            first_name=data.get('first_name'),
            last_name=data.get('last_name'),
            company=data.get('company'),
            phone=data.get('phone'),
            is_default=data.get('is_default'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CrmPayment:
    id: str
    type: Optional[str] = None
    last4: Optional[str] = None
    expiry_month: Optional[str] = None
    expiry_year: Optional[str] = None
    cardholder_name: Optional[str] = None
    is_default: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CrmOrder:
    """An order with `total` already normalized to the currency's major unit."""
    id: str
    customer_id: Optional[str]
    total: Decimal
    status: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class CrmDiscount:
    id: Optional[str]
    code: str
    title: Optional[str] = None
    type: str = 'percentage'  # percentage, fixed_amount
    value: Decimal = Decimal('0')
    starts_at: Optional[str] = None
    ends_at: Optional[str] = None
    usage_limit: Optional[int] = None
    usage_count: Optional[int] = None
    is_active: bool = True
    customer_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['value'] = float(self.value)
        return data


@dataclass
class CrmClub:
    id: str
    title: Optional[str] = None


@dataclass
class ClubMembership:
    id: str
    customer_id: str
    club_id: str
    status: Optional[str] = None
    signup_date: Optional[str] = None
    cancel_date: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return bool(self.cancel_date) or (self.status or '').lower() == 'cancelled'


@dataclass
class WebhookRegistration:
    id: str
    topic: str
    address: str
    created_at: Optional[str] = None


class CrmProvider(ABC):
    """
    Capability interface over one external commerce platform.

    Write operations are idempotent commands keyed by a stable identity
    (tier, customer, membership) so webhook redelivery and caller retries
    are safe.
    """

    name: str = ''
    slug: str = ''

    def __init__(self, tenant_identifier: str, access_token: str = None):
        self.tenant_identifier = tenant_identifier
        self.access_token = access_token

    # ==================== Currency ====================

    @abstractmethod
    def normalize_amount(self, raw) -> Decimal:
        """Convert a platform money value to a Decimal in the major unit."""

    def calculate_ltv(self, orders: List[CrmOrder]) -> Decimal:
        return sum((order.total for order in orders), Decimal('0'))

    # ==================== Identity ====================

    @abstractmethod
    def authenticate(self, request) -> Dict[str, Any]:
        """Verify an embedded-app launch. Returns the platform user."""

    @abstractmethod
    def authorize_install(self, request) -> bool:
        """Verify that an install callback really came from the platform."""

    # ==================== Customers ====================

    @abstractmethod
    def get_customers(self, params: Dict[str, Any] = None) -> List[CrmCustomer]: ...

    @abstractmethod
    def get_customer(self, customer_id: str) -> CrmCustomer: ...

    @abstractmethod
    def get_orders(self, params: Dict[str, Any] = None) -> List[CrmOrder]: ...

    def get_customer_with_ltv(self, customer_id: str) -> CrmCustomer:
        customer = self.get_customer(customer_id)
        customer.ltv = self.calculate_ltv(self.get_orders({'customer_id': customer_id}))
        return customer

    def get_customers_with_ltv(self, params: Dict[str, Any] = None) -> List[CrmCustomer]:
        customers = self.get_customers(params)
        for customer in customers:
            customer.ltv = self.calculate_ltv(self.get_orders({'customer_id': customer.id}))
        return customers

    @abstractmethod
    def create_customer(self, data: Dict[str, Any]) -> CrmCustomer: ...

    @abstractmethod
    def update_customer(self, customer_id: str, data: Dict[str, Any]) -> CrmCustomer: ...

    @abstractmethod
    def find_customer_by_email(self, email: str) -> Optional[CrmCustomer]: ...

    def upsert_customer(self, data: Dict[str, Any]) -> CrmCustomer:
        """Update the customer with this email if one exists, else create."""
        email = data.get('email')
        if email:
            existing = self.find_customer_by_email(email)
            if existing:
                return self.update_customer(existing.id, data)
        return self.create_customer(data)

    @abstractmethod
    def create_customer_with_address(self, data: Dict[str, Any], address: CrmAddress) -> Dict[str, Any]:
        """
        Create customer and billing address in one platform call.

        Returns {'customer': CrmCustomer, 'billing_address_id': str}.
        """

    # ==================== Addresses & payment ====================

    @abstractmethod
    def get_customer_addresses(self, customer_id: str) -> List[CrmAddress]: ...

    @abstractmethod
    def create_customer_address(self, customer_id: str, address: CrmAddress) -> CrmAddress: ...

    @abstractmethod
    def get_customer_credit_cards(self, customer_id: str) -> List[CrmPayment]: ...

    @abstractmethod
    def create_customer_credit_card(self, customer_id: str, card: Dict[str, Any]) -> CrmPayment: ...

    # ==================== Coupons ====================

    @abstractmethod
    def get_coupons(self, params: Dict[str, Any] = None) -> List[CrmDiscount]: ...

    @abstractmethod
    def get_coupon(self, coupon_id: str) -> CrmDiscount: ...

    @abstractmethod
    def create_coupon(self, discount: CrmDiscount) -> CrmDiscount: ...

    @abstractmethod
    def update_coupon(self, coupon_id: str, changes: Dict[str, Any]) -> CrmDiscount: ...

    @abstractmethod
    def delete_coupon(self, coupon_id: str) -> bool: ...

    @abstractmethod
    def get_coupon_customers(self, coupon_id: str) -> List[str]: ...

    @abstractmethod
    def add_customer_to_discount(self, coupon_id: str, customer_id: str) -> bool:
        """Grant eligibility. Returns False when the customer already had it."""

    @abstractmethod
    def remove_customer_from_discount(self, coupon_id: str, customer_id: str) -> bool:
        """Revoke eligibility. Returns False when the customer did not have it."""

    # ==================== Clubs ====================

    @abstractmethod
    def upsert_club(self, tier) -> str:
        """Create or update the platform club backing a tier. Returns the club ID."""

    @abstractmethod
    def get_customer_club_memberships(self, customer_id: str) -> List[ClubMembership]: ...

    @abstractmethod
    def create_club_membership(
        self,
        customer_id: str,
        club_id: str,
        billing_address_id: str,
        shipping_address_id: str,
        payment_method_id: str,
        start_date: datetime = None,
    ) -> ClubMembership:
        """Enroll a customer in a club. An existing live membership is returned as-is."""

    @abstractmethod
    def cancel_club_membership(self, membership_id: str = None, customer_id: str = None, club_id: str = None) -> None: ...

    # ==================== Webhooks ====================

    @classmethod
    @abstractmethod
    def validate_webhook(cls, request) -> bool:
        """
        Check the delivery credentials (shared secret or signature).

        A classmethod so the pipeline can reject a delivery before it
        looks up the tenant or builds a provider.
        """

    @abstractmethod
    def decode_webhook(self, topic: WebhookTopic, data: Dict[str, Any]) -> Any:
        """
        Decode the platform object of a webhook into its typed value.

        Raises:
            ValidationError: the object is missing or has malformed fields
        """

    @abstractmethod
    def process_webhook(self, payload: WebhookPayload) -> Dict[str, Any]:
        """Reconcile local state. Decodes `payload.data` when `payload.event` is unset."""

    @abstractmethod
    def register_webhook(self, topic: str, address: str) -> WebhookRegistration: ...

    @abstractmethod
    def list_webhooks(self) -> List[WebhookRegistration]: ...

    @abstractmethod
    def delete_webhook(self, webhook_id: str) -> bool: ...

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.tenant_identifier}>'
