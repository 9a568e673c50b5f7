"""
Business logic services for ClubSync.
"""
from .enrollment_service import EnrollmentService
from .sync_service import WebhookReconciler
from .tier_qualification import (
    TierQualificationResult,
    TierQualificationService,
    customer_qualifies_for_tier,
    find_qualifying_tier,
)
from .notifications import send_notification

__all__ = [
    'EnrollmentService',
    'WebhookReconciler',
    'TierQualificationResult',
    'TierQualificationService',
    'customer_qualifies_for_tier',
    'find_qualifying_tier',
    'send_notification',
]
