"""
Tests for WebhookReconciler.
"""
import pytest
from decimal import Decimal


class TestWebhookReconciler:

    def test_unknown_tenant(self, app):
        from clubsync.services.sync_service import WebhookReconciler
        from clubsync.utils.exceptions import UnknownTenantError

        with pytest.raises(UnknownTenantError):
            WebhookReconciler.for_tenant('commerce7', 'nobody')

    def test_tenants_are_isolated(self, app, sample_customer):
        """An event for one tenant never touches another tenant's customer."""
        from clubsync.crm import CrmCustomer
        from clubsync.extensions import db
        from clubsync.models import Client, Customer
        from clubsync.services.sync_service import WebhookReconciler

        other = Client(tenant_shop='other-winery', crm_type='commerce7', org_name='Other')
        db.session.add(other)
        db.session.commit()

        result = WebhookReconciler(other).customer_updated(
            CrmCustomer(id='cust-100', email='hijack@example.com')
        )

        assert result['action'] == 'ignored'
        assert Customer.query.get(sample_customer.id).email == 'pat@example.com'

    def test_club_update_renames_tier(self, app, sample_client, sample_tiers):
        from clubsync.extensions import db
        from clubsync.models import ClubStage
        from clubsync.services.sync_service import WebhookReconciler

        sample_tiers[2].crm_club_id = 'club-gold'
        db.session.commit()

        result = WebhookReconciler(sample_client).club_updated('club-gold', 'Gold Reserve')

        assert result == {'action': 'updated', 'tier_id': sample_tiers[2].id}
        tier = ClubStage.query.get(sample_tiers[2].id)
        assert tier.name == 'Gold Reserve'
        assert tier.sync_status == ClubStage.SYNC_SYNCED

    def test_unlinked_club_ignored(self, app, sample_client, sample_tiers):
        from clubsync.services.sync_service import WebhookReconciler

        assert WebhookReconciler(sample_client).club_updated('club-x')['action'] == 'ignored'
        assert WebhookReconciler(sample_client).club_deleted('club-x')['action'] == 'ignored'

    def test_membership_delete(self, app, sample_client, enrolled_member):
        from clubsync.crm import ClubMembership
        from clubsync.models import ClubEnrollment
        from clubsync.services.sync_service import WebhookReconciler

        reconciler = WebhookReconciler(sample_client)
        membership = ClubMembership(id='mem-bronze', customer_id='cust-100', club_id='club-1')

        first = reconciler.membership_deleted(membership)
        second = reconciler.membership_deleted(membership)

        assert first['action'] == second['action'] == 'cancelled'
        assert ClubEnrollment.query.get(enrolled_member.id).status == ClubEnrollment.STATUS_CANCELLED

    def test_cancellation_writes_history_once(self, app, sample_client, enrolled_member):
        from clubsync.crm import ClubMembership
        from clubsync.models import ClubEnrollment, EnrollmentHistory
        from clubsync.services.sync_service import WebhookReconciler

        reconciler = WebhookReconciler(sample_client)
        cancelled = ClubMembership(
            id='mem-bronze', customer_id='cust-100', club_id='club-1',
            status='Cancelled', cancel_date='2026-05-01',
        )

        reconciler.membership_updated(cancelled)
        reconciler.membership_deleted(cancelled)

        entry = EnrollmentHistory.query.filter_by(enrollment_id=enrolled_member.id).one()
        assert entry.new_status == ClubEnrollment.STATUS_CANCELLED
        assert entry.source == EnrollmentHistory.SOURCE_WEBHOOK

    def test_live_membership_update_marks_synced(self, app, sample_client, enrolled_member):
        from clubsync.crm import ClubMembership
        from clubsync.models import ClubEnrollment
        from clubsync.services.sync_service import WebhookReconciler

        result = WebhookReconciler(sample_client).membership_updated(
            ClubMembership(id='mem-bronze', customer_id='cust-100', club_id='club-1', status='Active')
        )

        assert result['action'] == 'synced'
        enrollment = ClubEnrollment.query.get(enrolled_member.id)
        assert enrollment.status == ClubEnrollment.STATUS_ACTIVE
        assert enrollment.synced_to_crm is True

    def test_refund_never_drops_ltv_below_zero(self, app, sample_client, sample_customer):
        from clubsync.crm import CrmOrder
        from clubsync.models import Customer
        from clubsync.services.sync_service import WebhookReconciler

        WebhookReconciler(sample_client).order_created(
            CrmOrder(id='refund-1', customer_id='cust-100', total=Decimal('-50.00'))
        )

        assert Customer.query.get(sample_customer.id).lifetime_value == Decimal('0')

    def test_order_adds_to_committed_ltv(self, app, sample_client, sample_customer):
        """A total committed elsewhere after the customer was loaded is not overwritten."""
        from clubsync.crm import CrmOrder
        from clubsync.extensions import db
        from clubsync.models import Customer
        from clubsync.services.sync_service import WebhookReconciler

        reconciler = WebhookReconciler(sample_client)
        loaded = reconciler._customer('cust-100')
        assert loaded.lifetime_value == Decimal('0')

        Customer.query.filter_by(id=sample_customer.id).update(
            {Customer.lifetime_value: Decimal('100')}, synchronize_session=False
        )
        assert loaded.lifetime_value == Decimal('0')

        result = reconciler.order_created(
            CrmOrder(id='o-concurrent', customer_id='cust-100', total=Decimal('50.00'))
        )

        assert result['lifetime_value'] == 150.0
        db.session.expire_all()
        assert Customer.query.get(sample_customer.id).lifetime_value == Decimal('150.00')

    def test_refund_reduces_ltv(self, app, sample_client, sample_customer):
        from clubsync.crm import CrmOrder
        from clubsync.models import Customer
        from clubsync.services.sync_service import WebhookReconciler

        reconciler = WebhookReconciler(sample_client)
        reconciler.order_created(CrmOrder(id='o-1', customer_id='cust-100', total=Decimal('80.00')))
        reconciler.order_created(CrmOrder(id='r-1', customer_id='cust-100', total=Decimal('-30.25')))

        assert Customer.query.get(sample_customer.id).lifetime_value == Decimal('49.75')

    def test_guest_order(self, app, sample_client):
        from clubsync.crm import CrmOrder
        from clubsync.services.sync_service import WebhookReconciler

        result = WebhookReconciler(sample_client).order_created(
            CrmOrder(id='o-1', customer_id=None, total=Decimal('10'))
        )
        assert result == {'action': 'ignored', 'reason': 'guest order'}
