"""
Webhook reconciliation.

Providers decode platform payloads into neutral value types and hand them
here to update the local store. Every handler is idempotent and a no-op
when the local record it targets does not exist.
"""
import logging
from datetime import datetime
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError

from ..crm.base import ClubMembership, CrmCustomer, CrmOrder
from ..extensions import db
from ..models import Client, ClubEnrollment, ClubProgram, ClubStage, Customer, CustomerOrder, EnrollmentHistory
from ..utils.exceptions import PersistenceError, UnknownTenantError

logger = logging.getLogger(__name__)


def _ignored(reason: str) -> Dict[str, Any]:
    return {'action': 'ignored', 'reason': reason}


class WebhookReconciler:
    """Applies normalized webhook events to one client's local records."""

    def __init__(self, client: Client, provider=None):
        self.client = client
        self.provider = provider

    @classmethod
    def for_tenant(cls, crm_type: str, tenant: str, provider=None) -> 'WebhookReconciler':
        client = Client.find_by_tenant(crm_type, tenant)
        if client is None:
            raise UnknownTenantError(crm_type, tenant)
        return cls(client, provider)

    def _commit(self):
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError('Failed to apply webhook', original_error=e)

    def _customer(self, crm_id: str):
        return Customer.query.filter_by(client_id=self.client.id, crm_id=str(crm_id)).first()

    def _tier_for_club(self, club_id: str):
        return (
            ClubStage.query
            .join(ClubProgram, ClubStage.club_program_id == ClubProgram.id)
            .filter(ClubProgram.client_id == self.client.id, ClubStage.crm_club_id == str(club_id))
            .first()
        )

    def _enrollment_for_membership(self, membership: ClubMembership):
        return (
            ClubEnrollment.query
            .join(Customer, ClubEnrollment.customer_id == Customer.id)
            .filter(Customer.client_id == self.client.id)
            .filter(ClubEnrollment.crm_membership_id == str(membership.id))
            .first()
        )

    # ==================== Customers ====================

    def customer_updated(self, crm_customer: CrmCustomer) -> Dict[str, Any]:
        customer = self._customer(crm_customer.id)
        if customer is None:
            return _ignored('customer not tracked')

        if crm_customer.email:
            customer.email = crm_customer.email
        customer.first_name = crm_customer.first_name
        customer.last_name = crm_customer.last_name
        customer.phone = crm_customer.phone
        self._commit()
        return {'action': 'updated', 'customer_id': customer.id}

    def order_created(self, order: CrmOrder) -> Dict[str, Any]:
        """
        Count an order toward lifetime value, then check for an upgrade.

        A redelivered order is not counted again, but the upgrade check
        still runs so a failed evaluation is retried.
        """
        if not order.customer_id:
            return _ignored('guest order')
        customer = self._customer(order.customer_id)
        if customer is None:
            return _ignored('customer not tracked')

        already_counted = CustomerOrder.query.filter_by(
            client_id=self.client.id, crm_order_id=str(order.id)
        ).first()
        if already_counted is None:
            db.session.add(CustomerOrder(
                client_id=self.client.id,
                customer_id=customer.id,
                crm_order_id=str(order.id),
                total=order.total,
            ))
            Customer.add_lifetime_value(customer.id, order.total)
            self._commit()
            db.session.refresh(customer)
            logger.info(f'Order {order.id}: customer {customer.id} LTV now {customer.lifetime_value}')

        upgrade = None
        if self.provider is not None:
            from .enrollment_service import EnrollmentService
            upgrade = EnrollmentService(self.client, self.provider).evaluate_upgrade(
                customer, purchase_amount=order.total
            )

        return {
            'action': 'duplicate' if already_counted else 'recorded',
            'customer_id': customer.id,
            'lifetime_value': float(customer.lifetime_value or 0),
            'upgraded': upgrade is not None,
        }

    # ==================== Clubs ====================

    def club_updated(self, club_id: str, title: str = None) -> Dict[str, Any]:
        tier = self._tier_for_club(club_id)
        if tier is None:
            return _ignored('club not linked to a tier')
        if title and tier.name != title:
            tier.name = title
        tier.sync_status = ClubStage.SYNC_SYNCED
        tier.last_sync_at = datetime.utcnow()
        self._commit()
        return {'action': 'updated', 'tier_id': tier.id}

    def club_deleted(self, club_id: str) -> Dict[str, Any]:
        """Unlink the tier; the next sync recreates the club."""
        tier = self._tier_for_club(club_id)
        if tier is None:
            return _ignored('club not linked to a tier')
        tier.crm_club_id = None
        tier.sync_status = ClubStage.SYNC_PENDING
        self._commit()
        logger.warning(f'Club {club_id} deleted on platform; tier {tier.id} marked pending')
        return {'action': 'unlinked', 'tier_id': tier.id}

    # ==================== Memberships ====================

    def _cancel(self, enrollment: ClubEnrollment):
        if enrollment.status == ClubEnrollment.STATUS_ACTIVE:
            enrollment.status = ClubEnrollment.STATUS_CANCELLED
            EnrollmentHistory.record(
                enrollment, EnrollmentHistory.CHANGE_STATUS, EnrollmentHistory.SOURCE_WEBHOOK,
                old_status=ClubEnrollment.STATUS_ACTIVE,
            )
        customer = enrollment.customer
        customer.is_club_member = (
            customer.enrollments.filter_by(status=ClubEnrollment.STATUS_ACTIVE).count() > 0
        )

    def membership_updated(self, membership: ClubMembership) -> Dict[str, Any]:
        enrollment = self._enrollment_for_membership(membership)
        if enrollment is None:
            return _ignored('membership not tracked')

        if membership.is_cancelled:
            self._cancel(enrollment)
            action = 'cancelled'
        else:
            action = 'synced'
        enrollment.synced_to_crm = True
        enrollment.crm_sync_at = datetime.utcnow()
        enrollment.crm_sync_error = None
        self._commit()
        return {'action': action, 'enrollment_id': enrollment.id}

    def membership_deleted(self, membership: ClubMembership) -> Dict[str, Any]:
        enrollment = self._enrollment_for_membership(membership)
        if enrollment is None:
            return _ignored('membership not tracked')
        self._cancel(enrollment)
        self._commit()
        return {'action': 'cancelled', 'enrollment_id': enrollment.id}
