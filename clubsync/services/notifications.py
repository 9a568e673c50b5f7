"""
Member notification boundary.

Email/SMS delivery lives in the communication integrations; the sync core
only announces that a member event happened. Callers treat a failure here
as non-blocking.
"""
import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)

NOTIFICATION_KINDS = frozenset({
    'welcome',
    'upgrade',
    'cancellation',
    'expiration_warning',
})


def send_notification(client_id: int, customer_id: int, kind: str) -> Dict[str, Any]:
    """
    Announce a member event to the communication layer.

    Args:
        client_id: Tenant the customer belongs to
        customer_id: Local customer ID
        kind: One of NOTIFICATION_KINDS

    Returns:
        {'success': bool, 'kind': str}
    """
    if kind not in NOTIFICATION_KINDS:
        raise ValueError(f'Unknown notification kind: {kind}')

    logger.info(f'Notification {kind} for customer {customer_id} (client {client_id})')
    return {'success': True, 'kind': kind}
