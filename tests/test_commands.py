"""
Tests for the flask CLI commands.
"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import patch, MagicMock


@pytest.fixture
def patched_provider(c7_provider):
    with patch('clubsync.commands.crm.get_provider', return_value=c7_provider):
        yield c7_provider


class TestSessionCommands:

    def test_cleanup(self, runner, sample_client, sample_session):
        from clubsync.models import AppSession
        from clubsync.services.session_store import create_session

        create_session({
            'client_id': sample_client.id, 'tenant_shop': 'test-winery', 'crm_type': 'commerce7',
            'expires_at': datetime.utcnow() - timedelta(hours=1),
        })

        result = runner.invoke(args=['sessions', 'cleanup'])

        assert result.exit_code == 0
        assert 'Deleted 1 expired sessions' in result.output
        assert AppSession.query.count() == 1


class TestCrmCommands:

    def test_register_webhooks(self, runner, sample_client, patched_provider, fake_c7):
        from clubsync.crm import WebhookTopic

        result = runner.invoke(args=['crm', 'register-webhooks', '--client-id', str(sample_client.id)])

        assert result.exit_code == 0
        assert len(fake_c7.webhooks) == len(WebhookTopic)
        urls = {w['url'] for w in fake_c7.webhooks.values()}
        assert urls == {'https://c7.clubsync.test/webhooks/c7'}

    def test_register_webhooks_skips_existing(self, runner, sample_client, patched_provider, fake_c7):
        from clubsync.crm import WebhookTopic

        args = ['crm', 'register-webhooks', '--client-id', str(sample_client.id), '--url', 'https://hooks.test/c7']

        runner.invoke(args=args)
        result = runner.invoke(args=args)

        assert result.exit_code == 0
        assert 'already registered' in result.output
        assert len(fake_c7.webhooks) == len(WebhookTopic)

    def test_list_webhooks(self, runner, sample_client, patched_provider):
        result = runner.invoke(args=['crm', 'list-webhooks', '--client-id', str(sample_client.id)])

        assert result.exit_code == 0
        assert 'No webhooks registered' in result.output

    def test_unknown_client(self, runner, app):
        result = runner.invoke(args=['crm', 'list-webhooks', '--client-id', '999'])

        assert result.exit_code != 0
        assert 'Client 999 not found' in result.output


class TestTierCommands:

    def test_sync_all(self, runner, sample_client, sample_tiers, patched_provider, fake_c7):
        result = runner.invoke(args=['tiers', 'sync', '--client-id', str(sample_client.id)])

        assert result.exit_code == 0
        assert 'Synced 3/3 tiers' in result.output
        assert len(fake_c7.clubs) == 3

    def test_only_pending(self, runner, sample_client, sample_tiers, patched_provider, fake_c7):
        from clubsync.extensions import db
        from clubsync.models import ClubStage

        sample_tiers[0].sync_status = ClubStage.SYNC_SYNCED
        db.session.commit()

        result = runner.invoke(args=['tiers', 'sync', '--client-id', str(sample_client.id), '--only-pending'])

        assert 'Synced 2/2 tiers' in result.output

    def test_failures_exit_nonzero(self, runner, sample_client, sample_tiers):
        from clubsync.utils.exceptions import PlatformError

        provider = MagicMock()
        provider.upsert_club.side_effect = PlatformError('down')

        with patch('clubsync.commands.crm.get_provider', return_value=provider):
            result = runner.invoke(args=['tiers', 'sync', '--client-id', str(sample_client.id)])

        assert result.exit_code != 0
        assert '3 tiers failed to sync' in result.output


class TestMemberCommands:

    def test_expire(self, runner, enrolled_member):
        from clubsync.extensions import db

        enrolled_member.expires_at = datetime.utcnow() - timedelta(days=1)
        db.session.commit()

        result = runner.invoke(args=['members', 'expire'])

        assert result.exit_code == 0
        assert 'Expired 1 enrollments' in result.output

    def test_expiration_warnings(self, runner, enrolled_member):
        from clubsync.extensions import db

        enrolled_member.expires_at = datetime.utcnow() + timedelta(days=7)
        db.session.commit()

        result = runner.invoke(args=['members', 'expiration-warnings', '--days', '14'])

        assert result.exit_code == 0
        assert 'Sent 1 expiration warnings' in result.output
