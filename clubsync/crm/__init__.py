"""
CRM provider package.

Providers are constructed per request through get_provider(); nothing is
cached at module level.

Usage:
    from clubsync.crm import get_provider

    provider = get_provider('commerce7', client.tenant_shop)
    provider.upsert_club(tier)
"""
from .base import (
    CrmProvider,
    CrmCustomer,
    CrmAddress,
    CrmPayment,
    CrmOrder,
    CrmDiscount,
    CrmClub,
    ClubMembership,
    WebhookPayload,
    WebhookRegistration,
    WebhookTopic,
)
from .commerce7 import Commerce7Client, Commerce7Provider
from .shopify import ShopifyProvider
from ..utils.exceptions import ValidationError

PROVIDERS = {
    Commerce7Provider.slug: Commerce7Provider,
    ShopifyProvider.slug: ShopifyProvider,
}


def get_provider_class(crm_type: str):
    """
    Provider class for a platform, for class-level operations such as
    webhook credential checks that need no tenant.

    Raises:
        ValidationError: Unknown crm_type
    """
    provider_class = PROVIDERS.get(crm_type)
    if provider_class is None:
        raise ValidationError(f'Unsupported CRM type: {crm_type}', 'crm_type')
    return provider_class


def get_provider(crm_type: str, tenant_identifier: str, access_token: str = None, **kwargs) -> CrmProvider:
    """
    Build the provider for a tenant.

    Args:
        crm_type: 'commerce7' or 'shopify'
        tenant_identifier: Commerce7 tenant ID or Shopify shop domain
        access_token: Required for Shopify, ignored by Commerce7
        **kwargs: Passed to the provider (e.g. client= for a Commerce7 transport)

    Raises:
        ValidationError: Unknown crm_type, or Shopify without a token
    """
    provider_class = get_provider_class(crm_type)
    if provider_class is ShopifyProvider:
        return ShopifyProvider(tenant_identifier, access_token)
    return provider_class(tenant_identifier, access_token, **kwargs)


def get_provider_for_session(session, **kwargs) -> CrmProvider:
    """Provider for the tenant a SessionData belongs to."""
    return get_provider(session.crm_type, session.tenant_shop, session.access_token, **kwargs)


__all__ = [
    'get_provider',
    'get_provider_class',
    'get_provider_for_session',
    'CrmProvider',
    'CrmCustomer',
    'CrmAddress',
    'CrmPayment',
    'CrmOrder',
    'CrmDiscount',
    'CrmClub',
    'ClubMembership',
    'WebhookPayload',
    'WebhookRegistration',
    'WebhookTopic',
    'Commerce7Client',
    'Commerce7Provider',
    'ShopifyProvider',
]
