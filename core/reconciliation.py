"""
Periodic reconciliation of the transaction lifecycle.

* Orders left in ``initiated`` longer than the payment timeout are
  cancelled and their listings re-activated.
* Paid orders whose pickup code was generated but never confirmed are
  auto-completed after a grace period.

Both sweeps run from the ``reconcile_transactions`` management command and
the cron HTTP endpoint.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction as db_transaction
from django.utils import timezone

from .models import Listing, Pickup, Transaction

logger = logging.getLogger(__name__)


def _timeout_minutes(timeout_minutes):
    if timeout_minutes is None:
        return settings.MARKETPLACE['TRANSACTION_TIMEOUT_MINUTES']
    return timeout_minutes


def is_transaction_expired(created_at, timeout_minutes=None, now=None):
    """
    Check whether an initiated order has outlived the payment window.

    Args:
        created_at: Order creation time
        timeout_minutes: Window length, defaults to the configured timeout
        now: Reference time, defaults to timezone.now()
    """
    now = now or timezone.now()
    return now - created_at > timedelta(minutes=_timeout_minutes(timeout_minutes))


def expired_transactions(timeout_minutes=None, now=None):
    """Queryset of initiated transactions past the payment window."""
    now = now or timezone.now()
    threshold = now - timedelta(minutes=_timeout_minutes(timeout_minutes))
    return Transaction.objects.filter(status='initiated', created_at__lt=threshold)


def cleanup_expired_transactions(timeout_minutes=None, now=None):
    """
    Cancel stale initiated orders and re-activate their listings atomically.

    Returns:
        dict: {'cleaned': <number of cancelled transactions>}
    """
    now = now or timezone.now()

    with db_transaction.atomic():
        stale = list(
            expired_transactions(timeout_minutes, now)
            .select_for_update()
            .values_list('pk', 'listing_id')
        )

        if not stale:
            return {'cleaned': 0}

        txn_ids = [pk for pk, _ in stale]
        listing_ids = {listing_id for _, listing_id in stale}

        cleaned = Transaction.objects.filter(
            pk__in=txn_ids, status='initiated'
        ).update(status='cancelled', updated_at=now)

        # Only listings that are not part of another live order go back on sale
        busy_listing_ids = set(
            Transaction.objects.filter(
                listing_id__in=listing_ids,
                status__in=Transaction.ACTIVE_STATUSES,
            ).values_list('listing_id', flat=True)
        )
        reactivated = Listing.objects.filter(
            pk__in=listing_ids - busy_listing_ids,
            is_active=False,
        ).update(is_active=True, updated_at=now)

    logger.info(
        f"Cleaned up expired transactions. Cancelled: {cleaned}, "
        f"Listings reactivated: {reactivated}"
    )
    return {'cleaned': cleaned}


def pending_auto_complete(days=None, now=None):
    """Queryset of generated pickups on paid orders older than ``days``."""
    now = now or timezone.now()
    if days is None:
        days = settings.MARKETPLACE['AUTO_COMPLETE_DAYS']
    threshold = now - timedelta(days=days)
    return Pickup.objects.filter(
        status='generated',
        transaction__status='paid',
        transaction__created_at__lt=threshold,
    )


def auto_complete_transactions(days=None, now=None):
    """
    Confirm pickups of paid orders older than ``days`` that are still pending.

    Returns:
        dict: {'completed': <number of confirmed pickups>}
    """
    now = now or timezone.now()

    with db_transaction.atomic():
        pickups = list(
            pending_auto_complete(days, now)
            .select_for_update()
            .values_list('pk', 'transaction__listing_id')
        )

        if not pickups:
            return {'completed': 0}

        completed = Pickup.objects.filter(
            pk__in=[pk for pk, _ in pickups],
            status='generated',
        ).update(status='confirmed', confirmed_at=now, updated_at=now)

        Listing.objects.filter(
            pk__in={listing_id for _, listing_id in pickups}
        ).update(is_active=False, updated_at=now)

    logger.info(f"Auto-completed transactions. Pickups confirmed: {completed}")
    return {'completed': completed}
