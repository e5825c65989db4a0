"""
Reconciliation tests: expired order sweep, pickup auto-completion, the
reconcile_transactions command and the cron endpoint.
"""

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.urls import reverse
from django.utils import timezone
from rest_framework import status

from core.models import Pickup, Transaction
from core.reconciliation import (
    auto_complete_transactions,
    cleanup_expired_transactions,
    expired_transactions,
    is_transaction_expired,
    pending_auto_complete,
)


def _age(txn, **delta):
    Transaction.objects.filter(pk=txn.pk).update(created_at=timezone.now() - timedelta(**delta))
    txn.refresh_from_db()
    return txn


# ============================================================================
# 1. EXPIRY CHECKS
# ============================================================================

class TestExpiryCheck:

    def test_within_window(self):
        now = timezone.now()
        assert is_transaction_expired(now - timedelta(minutes=29), now=now) is False

    def test_past_window(self):
        now = timezone.now()
        assert is_transaction_expired(now - timedelta(minutes=31), now=now) is True

    def test_custom_timeout(self):
        now = timezone.now()
        assert is_transaction_expired(now - timedelta(minutes=6), timeout_minutes=5, now=now) is True


# ============================================================================
# 2. EXPIRED ORDER SWEEP
# ============================================================================

@pytest.mark.django_db
class TestCleanupExpired:

    def test_stale_order_cancelled_and_listing_relisted(self, initiated_transaction, listing):
        _age(initiated_transaction, minutes=45)

        result = cleanup_expired_transactions()

        assert result == {'cleaned': 1}
        initiated_transaction.refresh_from_db()
        assert initiated_transaction.status == 'cancelled'
        listing.refresh_from_db()
        assert listing.is_active is True

    def test_fresh_order_untouched(self, initiated_transaction, listing):
        result = cleanup_expired_transactions()

        assert result == {'cleaned': 0}
        listing.refresh_from_db()
        assert listing.is_active is False

    def test_paid_order_untouched(self, paid_transaction):
        _age(paid_transaction, hours=3)

        assert cleanup_expired_transactions() == {'cleaned': 0}

    def test_listing_with_other_live_order_stays_hidden(self, make_transaction, outsider, listing):
        stale = _age(make_transaction(), hours=1)
        make_transaction('paid', by=outsider)

        cleanup_expired_transactions()

        stale.refresh_from_db()
        assert stale.status == 'cancelled'
        listing.refresh_from_db()
        assert listing.is_active is False

    def test_expired_queryset_respects_timeout(self, initiated_transaction):
        _age(initiated_transaction, minutes=10)

        assert expired_transactions().count() == 0
        assert list(expired_transactions(timeout_minutes=5)) == [initiated_transaction]


# ============================================================================
# 3. AUTO-COMPLETION
# ============================================================================

@pytest.mark.django_db
class TestAutoComplete:

    def test_old_pending_pickup_confirmed(self, make_transaction):
        txn = _age(make_transaction('paid', pickup='generated'), days=8)

        result = auto_complete_transactions()

        assert result == {'completed': 1}
        pickup = Pickup.objects.get(transaction=txn)
        assert pickup.status == 'confirmed'
        assert pickup.confirmed_at is not None

    def test_recent_pickup_left_alone(self, make_transaction):
        make_transaction('paid', pickup='generated')

        assert auto_complete_transactions() == {'completed': 0}

    def test_paid_without_pickup_left_alone(self, paid_transaction):
        _age(paid_transaction, days=10)

        assert auto_complete_transactions() == {'completed': 0}

    def test_custom_days(self, make_transaction):
        _age(make_transaction('paid', pickup='generated'), days=2)

        assert auto_complete_transactions(days=1) == {'completed': 1}

    def test_pending_queryset_matches_sweep(self, make_transaction, make_listing, paid_transaction):
        old = _age(make_transaction('paid', pickup='generated', on_listing=make_listing(title='Lamp')), days=8)
        make_transaction('paid', pickup='generated', on_listing=make_listing(title='Kettle'))
        _age(paid_transaction, days=10)

        assert list(pending_auto_complete().values_list('transaction_id', flat=True)) == [old.id]
        assert pending_auto_complete(days=30).count() == 0
        assert pending_auto_complete(now=timezone.now() + timedelta(days=8)).count() == 2


# ============================================================================
# 4. MANAGEMENT COMMAND
# ============================================================================

@pytest.mark.django_db
class TestReconcileCommand:

    def test_runs_both_sweeps(self, make_transaction, make_listing):
        stale = _age(make_transaction(), hours=1)
        pending = _age(make_transaction('paid', pickup='generated', on_listing=make_listing(title='Lamp')), days=9)
        out = StringIO()

        call_command('reconcile_transactions', stdout=out)

        output = out.getvalue()
        assert 'Cancelled 1 expired transactions.' in output
        assert 'Auto-completed 1 transactions.' in output
        assert 'Reconciliation completed successfully.' in output
        stale.refresh_from_db()
        assert stale.status == 'cancelled'
        assert Pickup.objects.get(transaction=pending).status == 'confirmed'

    def test_dry_run_changes_nothing(self, make_transaction):
        stale = _age(make_transaction(), hours=1)
        out = StringIO()

        call_command('reconcile_transactions', '--dry-run', stdout=out)

        output = out.getvalue()
        assert f'[DRY-RUN] Transaction {stale.id} would be cancelled' in output
        assert 'Dry run completed. No changes saved.' in output
        stale.refresh_from_db()
        assert stale.status == 'initiated'

    def test_dry_run_lists_pending_pickups(self, make_transaction):
        pending = _age(make_transaction('paid', pickup='generated'), days=9)
        out = StringIO()

        call_command('reconcile_transactions', '--dry-run', '--skip-cleanup', stdout=out)

        output = out.getvalue()
        assert f'[DRY-RUN] Pickup for transaction {pending.id} would be confirmed' in output
        assert '1 pending pickups found.' in output
        assert Pickup.objects.get(transaction=pending).status == 'generated'

    def test_skip_flags(self, make_transaction):
        stale = _age(make_transaction(), hours=1)
        out = StringIO()

        call_command('reconcile_transactions', '--skip-cleanup', '--skip-auto-complete', stdout=out)

        assert 'Cancelled' not in out.getvalue()
        stale.refresh_from_db()
        assert stale.status == 'initiated'

    def test_timeout_override(self, make_transaction):
        stale = _age(make_transaction(), minutes=10)

        call_command('reconcile_transactions', '--timeout-minutes', '5', stdout=StringIO())

        stale.refresh_from_db()
        assert stale.status == 'cancelled'

    @pytest.mark.parametrize('flag', ['--timeout-minutes', '--days'])
    def test_non_positive_values_rejected(self, flag):
        with pytest.raises(CommandError):
            call_command('reconcile_transactions', flag, '0', stdout=StringIO())


# ============================================================================
# 5. CRON AND HEALTH ENDPOINTS
# ============================================================================

@pytest.mark.django_db
class TestCronEndpoint:

    def test_requires_secret(self, api_client):
        response = api_client.post(reverse('cron_cleanup'))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_wrong_secret(self, api_client):
        response = api_client.post(reverse('cron_cleanup'), HTTP_AUTHORIZATION='Bearer nope')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_unset_secret_always_rejects(self, api_client, settings):
        settings.CRON_SECRET = ''

        response = api_client.get(reverse('cron_cleanup'), HTTP_AUTHORIZATION='Bearer ')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    @pytest.mark.parametrize('method', ['get', 'post'])
    def test_runs_sweeps(self, api_client, make_transaction, method):
        stale = _age(make_transaction(), hours=1)

        response = getattr(api_client, method)(
            reverse('cron_cleanup'), HTTP_AUTHORIZATION='Bearer test-cron-secret'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['cleaned'] == 1
        assert response.data['data']['completed'] == 0
        assert 'timestamp' in response.data['data']
        stale.refresh_from_db()
        assert stale.status == 'cancelled'


@pytest.mark.django_db
def test_health_check(api_client):
    response = api_client.get(reverse('health'))

    assert response.status_code == status.HTTP_200_OK
    assert response.data['data']['status'] == 'ok'
