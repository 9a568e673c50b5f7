"""
Subdomain routing helpers.

The platform a request belongs to is encoded in the host:
    c7.example.com            -> commerce7
    shp.example.com           -> shopify
    c7-name.ngrok-free.app    -> commerce7 (ngrok tunnels use a dash prefix)
    c7.localhost:3000         -> commerce7
"""
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from flask import current_app

COMMERCE7 = 'commerce7'
SHOPIFY = 'shopify'
CRM_TYPES = (COMMERCE7, SHOPIFY)

SUBDOMAIN_CRM = {
    'c7': COMMERCE7,
    'shp': SHOPIFY,
    'www': None,
}

CRM_SUBDOMAIN = {COMMERCE7: 'c7', SHOPIFY: 'shp'}

NGROK_SUFFIXES = ('.ngrok-free.app', '.ngrok.io')


@dataclass
class SubdomainInfo:
    subdomain: Optional[str]
    crm_type: Optional[str]
    is_valid: bool


def _mapping(label: str) -> SubdomainInfo:
    if label in SUBDOMAIN_CRM:
        return SubdomainInfo(label, SUBDOMAIN_CRM[label], True)
    return SubdomainInfo(None, None, False)


def get_subdomain_info(host: str) -> SubdomainInfo:
    """Classify a request host (with or without port)."""
    hostname = (host or '').split(':')[0].lower()
    parts = hostname.split('.')

    if hostname in ('localhost', '127.0.0.1'):
        return SubdomainInfo(None, None, False)

    if hostname.endswith('.localhost') or '.local' in hostname:
        return _mapping(parts[0]) if len(parts) > 1 and parts[0] else SubdomainInfo(None, None, False)

    if hostname.endswith(NGROK_SUFFIXES):
        first = parts[0]
        for label in ('c7', 'shp'):
            if first.startswith(f'{label}-'):
                return _mapping(label)
        return SubdomainInfo(None, None, False)

    # subdomain.domain.tld
    if len(parts) >= 3 and parts[0]:
        return _mapping(parts[0])

    return SubdomainInfo(None, None, False)


def crm_type_from_host(host: str) -> Optional[str]:
    return get_subdomain_info(host).crm_type


def validate_subdomain_for_crm(host: str, expected_crm_type: str) -> bool:
    return crm_type_from_host(host) == expected_crm_type


def get_crm_url(current_url: str, crm_type: str, path: str = '/') -> str:
    """Rewrite a URL onto the subdomain that serves crm_type."""
    label = CRM_SUBDOMAIN[crm_type]
    parts = urlsplit(current_url)
    hostname = parts.hostname or ''
    port = f':{parts.port}' if parts.port else ''

    if hostname in ('localhost', '127.0.0.1'):
        return f'{parts.scheme}://{label}.{hostname}{port}{path}'

    labels = hostname.split('.')
    if hostname.endswith(NGROK_SUFFIXES):
        base = labels[0]
        for prefix in ('c7-', 'shp-'):
            if base.startswith(prefix):
                base = base[len(prefix):]
        return f'{parts.scheme}://{label}-{base}.{".".join(labels[1:])}{path}'

    if len(labels) >= 3 and labels[0] in SUBDOMAIN_CRM:
        labels = labels[1:]
    return f'{parts.scheme}://{label}.{".".join(labels)}{port}{path}'


def get_webhook_url(crm_type: str) -> str:
    """Public URL the platform should deliver webhooks to."""
    label = CRM_SUBDOMAIN[crm_type]
    ngrok_url = current_app.config.get('NGROK_URL')
    if ngrok_url:
        return f'{ngrok_url.rstrip("/")}/webhooks/{label}'
    base_domain = current_app.config.get('BASE_DOMAIN')
    return f'https://{label}.{base_domain}/webhooks/{label}'
