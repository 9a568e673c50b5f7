"""
Enrollment and tier sync orchestration.

Composes the session-resolved provider, tier qualification and the local
store to enroll new club members and move existing members up a tier.
Platform writes happen before local writes; every platform write is
idempotent, so a failed request can simply be retried.
"""
import calendar
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..crm.base import CrmAddress, CrmDiscount, CrmProvider
from ..extensions import db
from ..models import Client, ClubEnrollment, ClubProgram, ClubStage, Customer, EnrollmentHistory
from ..utils.exceptions import (
    ClubSyncError,
    CustomerNotFoundError,
    PersistenceError,
    TierNotFoundError,
    ValidationError,
)
from .notifications import send_notification
from .tier_qualification import (
    TierQualificationService,
    customer_qualifies_for_tier,
    find_qualifying_tier,
)

logger = logging.getLogger(__name__)


def add_months(start: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping to the last day of short months."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


class EnrollmentService:
    """
    Service for enrolling and upgrading club members.

    Args:
        client: Tenant whose program is being managed
        provider: CrmProvider for that tenant
        notifier: send_notification-compatible callable
    """

    def __init__(self, client: Client, provider: CrmProvider,
                 notifier: Callable[[int, int, str], Any] = send_notification):
        self.client = client
        self.provider = provider
        self.notifier = notifier

    # ==================== Helpers ====================

    def _commit(self, action: str):
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Failed to {action} for client {self.client.id}: {e}')
            raise PersistenceError(f'Failed to {action}', original_error=e)

    def get_tier(self, tier_id: int) -> ClubStage:
        tier = (
            ClubStage.query
            .join(ClubProgram, ClubStage.club_program_id == ClubProgram.id)
            .filter(ClubStage.id == tier_id, ClubProgram.client_id == self.client.id)
            .first()
        )
        if not tier or not tier.is_active:
            raise TierNotFoundError(tier_id)
        return tier

    def _notify(self, customer: Customer, kind: str):
        try:
            self.notifier(self.client.id, customer.id, kind)
        except Exception as e:
            logger.warning(f'{kind} notification failed for customer {customer.id}: {e}')

    def _resolve_billing_address(self, crm_customer_id: str, address: Optional[CrmAddress]) -> str:
        addresses = self.provider.get_customer_addresses(crm_customer_id)
        default = next((a for a in addresses if a.is_default), None) or (addresses[0] if addresses else None)
        if default and default.id:
            return default.id
        if address is None:
            raise ValidationError('Customer has no address on file', 'address')
        return self.provider.create_customer_address(crm_customer_id, address).id

    def _resolve_payment_method(self, crm_customer_id: str, payment_method_id: Optional[str]) -> str:
        if payment_method_id:
            return payment_method_id
        cards = self.provider.get_customer_credit_cards(crm_customer_id)
        card = next((c for c in cards if c.is_default), None) or (cards[0] if cards else None)
        if not card:
            raise ValidationError('Customer has no payment method on file', 'payment_method_id')
        return card.id

    def _upsert_local_customer(self, crm_customer, ltv: Decimal) -> Customer:
        customer = Customer.query.filter_by(client_id=self.client.id, crm_id=crm_customer.id).first()
        if customer is None:
            customer = Customer(
                client_id=self.client.id,
                crm_id=crm_customer.id,
                lifetime_value=ltv,
            )
            db.session.add(customer)
        customer.email = crm_customer.email
        customer.first_name = crm_customer.first_name
        customer.last_name = crm_customer.last_name
        customer.phone = crm_customer.phone
        return customer

    def _move_discount(self, crm_customer_id: str, old_tier: Optional[ClubStage],
                       new_tier: Optional[ClubStage], enrollment: ClubEnrollment):
        """Discount eligibility follows the active tier. Failures are recorded, not raised."""
        try:
            if old_tier is not None and old_tier.crm_discount_id:
                self.provider.remove_customer_from_discount(old_tier.crm_discount_id, crm_customer_id)
            if new_tier is not None and new_tier.crm_discount_id:
                self.provider.add_customer_to_discount(new_tier.crm_discount_id, crm_customer_id)
        except (ClubSyncError, NotImplementedError) as e:
            logger.warning(f'Discount sync failed for customer {crm_customer_id}: {e}')
            enrollment.crm_sync_error = f'discount: {e}'
            self._commit('record discount sync error')

    # ==================== Tier sync ====================

    def sync_tier(self, tier: ClubStage) -> str:
        """
        Push a tier to the platform as a club (and coupon, if it discounts).

        Returns:
            The platform club ID
        """
        try:
            club_id = self.provider.upsert_club(tier)
            tier.crm_club_id = club_id
            if tier.discount_percentage and not tier.crm_discount_id:
                tier.crm_discount_id = self._ensure_discount(tier)
        except ClubSyncError as e:
            tier.sync_status = ClubStage.SYNC_ERROR
            self._commit('record tier sync error')
            logger.error(f'Tier {tier.id} sync failed: {e}')
            raise

        tier.sync_status = ClubStage.SYNC_SYNCED
        tier.last_sync_at = datetime.utcnow()
        self._commit('sync tier')
        logger.info(f'Synced tier {tier.name} -> club {club_id}')
        return club_id

    def _ensure_discount(self, tier: ClubStage) -> str:
        code = f'{tier.slug}-members'.upper()
        for coupon in self.provider.get_coupons({'q': code}):
            if coupon.code.upper() == code:
                return coupon.id
        created = self.provider.create_coupon(CrmDiscount(
            id=None,
            code=code,
            title=f'{tier.name} member discount',
            type='percentage',
            value=Decimal(str(tier.discount_percentage)),
        ))
        return created.id

    # ==================== Enrollment ====================

    def enroll_member(
        self,
        customer_data: Dict[str, Any],
        tier_id: int,
        address: CrmAddress = None,
        payment_method_id: str = None,
        shipping_address_id: str = None,
        purchase_amount=None,
        override: bool = False,
    ) -> Dict[str, Any]:
        """
        Enroll a customer in a tier.

        Args:
            customer_data: crm_id of an existing platform customer, or
                email/first_name/last_name/phone for a new one
            tier_id: Target ClubStage ID
            address: Billing address, used when the customer has none
            payment_method_id: Platform card ID (defaults to the card on file)
            shipping_address_id: Defaults to the billing address
            purchase_amount: Qualifying order total
            override: Staff override of the qualification thresholds

        Returns:
            Dict with the enrollment and customer

        Raises:
            TierNotFoundError, ValidationError, and provider errors
        """
        tier = self.get_tier(tier_id)

        # Read-only platform lookups first: nothing is written until the
        # customer is known to qualify.
        crm_customer = None
        if customer_data.get('crm_id'):
            crm_customer = self.provider.get_customer(customer_data['crm_id'])
        elif customer_data.get('email'):
            crm_customer = self.provider.find_customer_by_email(customer_data['email'])
        else:
            raise ValidationError('crm_id or email is required', 'email')

        ltv = Decimal('0')
        if crm_customer is not None:
            existing = Customer.query.filter_by(client_id=self.client.id, crm_id=crm_customer.id).first()
            if existing and existing.active_enrollment:
                raise ValidationError('Customer already has an active membership; upgrade instead', 'tier_id')
            ltv = self.provider.calculate_ltv(self.provider.get_orders({'customer_id': crm_customer.id}))

        if not override:
            result = find_qualifying_tier([tier], purchase_amount, ltv)
            if not result.qualified:
                raise ValidationError(f'Customer does not qualify for {tier.name}', 'tier_id')

        billing_address_id = None
        if crm_customer is None:
            if address is not None:
                created = self.provider.create_customer_with_address(customer_data, address)
                crm_customer = created['customer']
                billing_address_id = created['billing_address_id']
            else:
                crm_customer = self.provider.create_customer(customer_data)

        if billing_address_id is None:
            billing_address_id = self._resolve_billing_address(crm_customer.id, address)
        payment_id = self._resolve_payment_method(crm_customer.id, payment_method_id)

        club_id = tier.crm_club_id or self.sync_tier(tier)
        now = datetime.utcnow()
        membership = self.provider.create_club_membership(
            customer_id=crm_customer.id,
            club_id=club_id,
            billing_address_id=billing_address_id,
            shipping_address_id=shipping_address_id or billing_address_id,
            payment_method_id=payment_id,
            start_date=now,
        )

        customer = self._upsert_local_customer(crm_customer, ltv)
        customer.is_club_member = True
        db.session.flush()

        enrollment = ClubEnrollment(
            customer_id=customer.id,
            club_stage_id=tier.id,
            status=ClubEnrollment.STATUS_ACTIVE,
            enrolled_at=now,
            expires_at=add_months(now, tier.duration_months or 12),
            crm_membership_id=membership.id,
            synced_to_crm=True,
            crm_sync_at=now,
        )
        db.session.add(enrollment)
        self._commit('create enrollment')

        self._move_discount(crm_customer.id, None, tier, enrollment)
        self._notify(customer, 'welcome')

        logger.info(f'Enrolled customer {customer.id} in {tier.name} (membership {membership.id})')
        return {
            'enrollment': enrollment.to_dict(),
            'customer': customer.to_dict(),
        }

    # ==================== Upgrades ====================

    def upgrade_member(self, customer_id: int, target_tier_id: int, purchase_amount=None,
                       override: bool = False, source: str = EnrollmentHistory.SOURCE_STAFF) -> Dict[str, Any]:
        """
        Move an active member to a higher tier.

        The new platform membership is created before the old one is
        cancelled so the customer is never without one. Tiers that are not
        upgradable are only reachable with `override`.
        """
        customer = Customer.query.filter_by(id=customer_id, client_id=self.client.id).first()
        if not customer:
            raise CustomerNotFoundError(customer_id)

        current = customer.active_enrollment
        if current is None:
            raise ValidationError('Customer has no active membership', 'customer_id')

        target = self.get_tier(target_tier_id)
        old_tier = current.club_stage
        if target.id == old_tier.id:
            raise ValidationError('Customer is already in this tier', 'tier_id')
        if target.stage_order is None:
            raise ValidationError(f'{target.name} has no rank', 'tier_id')
        if old_tier.stage_order is not None and target.stage_order <= old_tier.stage_order:
            raise ValidationError('Target tier must rank above the current tier', 'tier_id')
        if not target.upgradable and not override:
            raise ValidationError(f'{target.name} is not open to upgrades', 'tier_id')

        if not override and not customer_qualifies_for_tier(customer.id, target.id, purchase_amount):
            raise ValidationError(f'Customer does not qualify for {target.name}', 'tier_id')

        club_id = target.crm_club_id or self.sync_tier(target)
        billing_address_id = self._resolve_billing_address(customer.crm_id, None)
        payment_id = self._resolve_payment_method(customer.crm_id, None)

        now = datetime.utcnow()
        membership = self.provider.create_club_membership(
            customer_id=customer.crm_id,
            club_id=club_id,
            billing_address_id=billing_address_id,
            shipping_address_id=billing_address_id,
            payment_method_id=payment_id,
            start_date=now,
        )

        if current.crm_membership_id:
            self.provider.cancel_club_membership(membership_id=current.crm_membership_id)
        elif old_tier.crm_club_id:
            self.provider.cancel_club_membership(customer_id=customer.crm_id, club_id=old_tier.crm_club_id)

        current.status = ClubEnrollment.STATUS_UPGRADED
        enrollment = ClubEnrollment(
            customer_id=customer.id,
            club_stage_id=target.id,
            status=ClubEnrollment.STATUS_ACTIVE,
            enrolled_at=now,
            expires_at=add_months(now, target.duration_months or 12),
            crm_membership_id=membership.id,
            synced_to_crm=True,
            crm_sync_at=now,
        )
        db.session.add(enrollment)
        EnrollmentHistory.record(
            enrollment, EnrollmentHistory.CHANGE_UPGRADE, source,
            old_status=ClubEnrollment.STATUS_ACTIVE, old_club_stage_id=old_tier.id,
        )
        self._commit('upgrade enrollment')

        self._move_discount(customer.crm_id, old_tier, target, enrollment)
        self._notify(customer, 'upgrade')

        logger.info(f'Upgraded customer {customer.id}: {old_tier.name} -> {target.name}')
        return {
            'enrollment': enrollment.to_dict(),
            'previous_enrollment': current.to_dict(),
            'customer': customer.to_dict(),
        }

    def evaluate_upgrade(self, customer: Customer, purchase_amount=None) -> Optional[Dict[str, Any]]:
        """
        Upgrade an active member if their signals now satisfy a higher tier.

        Only upgradable tiers are considered.

        Returns:
            The upgrade result, or None when no upgrade applies
        """
        current = customer.active_enrollment
        if current is None:
            return None

        tiers = [t for t in TierQualificationService(self.client.id).get_active_tiers() if t.upgradable]
        result = find_qualifying_tier(tiers, purchase_amount, customer.lifetime_value or Decimal('0'))
        if not result.qualified:
            return None

        current_order = current.club_stage.stage_order
        if current_order is not None and result.qualifying_tier['stage_order'] <= current_order:
            return None

        return self.upgrade_member(
            customer.id, result.tier_id, purchase_amount=purchase_amount,
            override=True, source=EnrollmentHistory.SOURCE_AUTO,
        )


# ==================== Term lifecycle ====================

def _active_enrollments(client_id: Optional[int]):
    query = ClubEnrollment.query.filter(ClubEnrollment.status == ClubEnrollment.STATUS_ACTIVE)
    if client_id:
        query = query.join(Customer, ClubEnrollment.customer_id == Customer.id).filter(
            Customer.client_id == client_id
        )
    return query


def expire_enrollments(client_id: int = None, now: datetime = None,
                       notifier: Callable[[int, int, str], Any] = send_notification) -> int:
    """
    Mark active enrollments past their term as expired.

    Local bookkeeping only; the platform membership is left for staff to
    renew or cancel.

    Returns:
        Number of enrollments expired
    """
    now = now or datetime.utcnow()
    expired = _active_enrollments(client_id).filter(ClubEnrollment.expires_at < now).all()

    for enrollment in expired:
        enrollment.status = ClubEnrollment.STATUS_EXPIRED
        EnrollmentHistory.record(
            enrollment, EnrollmentHistory.CHANGE_STATUS, EnrollmentHistory.SOURCE_EXPIRY,
            old_status=ClubEnrollment.STATUS_ACTIVE,
        )
        customer = enrollment.customer
        customer.is_club_member = customer.enrollments.filter_by(status=ClubEnrollment.STATUS_ACTIVE).count() > 0

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError('Failed to expire enrollments', original_error=e)

    for enrollment in expired:
        try:
            notifier(enrollment.customer.client_id, enrollment.customer_id, 'cancellation')
        except Exception as e:
            logger.warning(f'Expiration notice failed for customer {enrollment.customer_id}: {e}')

    if expired:
        logger.info(f'Expired {len(expired)} enrollments')
    return len(expired)


def send_expiration_warnings(days: int = 30, client_id: int = None, now: datetime = None,
                             notifier: Callable[[int, int, str], Any] = send_notification) -> int:
    """Notify members whose term ends within `days`. Returns the number notified."""
    now = now or datetime.utcnow()
    expiring = (
        _active_enrollments(client_id)
        .filter(ClubEnrollment.expires_at >= now, ClubEnrollment.expires_at < now + timedelta(days=days))
        .all()
    )

    sent = 0
    for enrollment in expiring:
        try:
            notifier(enrollment.customer.client_id, enrollment.customer_id, 'expiration_warning')
            sent += 1
        except Exception as e:
            logger.warning(f'Expiration warning failed for customer {enrollment.customer_id}: {e}')
    return sent
