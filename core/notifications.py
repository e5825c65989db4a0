"""
In-app notification helpers.

``create_notification`` stores one row per recipient and suppresses repeats:
an unread notification for the same user with the same dedup key created
within MARKETPLACE['NOTIFICATION_DEDUP_SECONDS'] is returned instead of
inserting a duplicate.
"""

import hashlib
import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Q
from django.utils import timezone

from .models import Notification

logger = logging.getLogger(__name__)


def _default_dedup_key(notification_type, title, message):
    digest = hashlib.sha1(f'{title}\n{message}'.encode('utf-8')).hexdigest()
    return f'{notification_type}:{digest}'


def create_notification(user, notification_type, title, message, data=None,
                        action_url='', priority='normal', expires_at=None,
                        dedup_key=None):
    """
    Create a notification unless an identical one is still pending.

    Args:
        user: Recipient
        notification_type: One of Notification.TYPE_CHOICES
        title, message: Display text
        data: JSON-serialisable payload
        action_url: Front-end path the notification links to
        priority: One of Notification.PRIORITY_CHOICES
        expires_at: Optional expiry; expired rows are purged on read
        dedup_key: Key identifying "the same" notification. Defaults to a
            hash of type, title and message.

    Returns:
        tuple: (notification, created)
    """
    key = dedup_key or _default_dedup_key(notification_type, title, message)
    window = settings.MARKETPLACE.get('NOTIFICATION_DEDUP_SECONDS', 0)

    if window:
        since = timezone.now() - timedelta(seconds=window)
        existing = Notification.objects.filter(
            user=user,
            dedup_key=key,
            is_read=False,
            created_at__gte=since,
        ).first()
        if existing is not None:
            logger.debug(
                f"Suppressed duplicate notification. User ID: {user.pk}, Key: {key}"
            )
            return existing, False

    notification = Notification.objects.create(
        user=user,
        notification_type=notification_type,
        title=title,
        message=message,
        data=data or {},
        action_url=action_url or '',
        priority=priority,
        expires_at=expires_at,
        dedup_key=key,
    )
    return notification, True


def notify_admins(title, message, data=None, action_url='', priority='normal', dedup_key=None):
    """Send the same notification to every administrator."""
    User = get_user_model()
    admins = User.objects.filter(
        Q(role='admin') | Q(is_staff=True) | Q(is_superuser=True),
        is_active=True,
    )
    return [
        create_notification(
            admin, 'admin', title, message,
            data=data, action_url=action_url, priority=priority, dedup_key=dedup_key,
        )[0]
        for admin in admins
    ]


def _transaction_url(transaction):
    return f'/transactions/{transaction.pk}'


def notify_transaction_created(transaction):
    buyer = transaction.buyer
    return create_notification(
        transaction.seller,
        'transaction',
        'New Purchase Order',
        f'{buyer.display_name} wants to buy "{transaction.listing.title}"',
        data={'transaction_id': transaction.pk, 'listing_id': transaction.listing_id},
        action_url=_transaction_url(transaction),
        dedup_key=f'transaction_created:{transaction.pk}',
    )[0]


def notify_payment_received(transaction):
    """Tell the seller to hand over and the buyer that payment went through."""
    title = transaction.listing.title
    data = {'transaction_id': transaction.pk}
    seller_note = create_notification(
        transaction.seller,
        'transaction',
        'Payment Received',
        f'Payment received for "{title}". Generate pickup code now.',
        data=data,
        action_url=_transaction_url(transaction),
        priority='high',
        dedup_key=f'payment_received:{transaction.pk}',
    )[0]
    buyer_note = create_notification(
        transaction.buyer,
        'transaction',
        'Payment Successful',
        f'Your payment for "{title}" was successful. Waiting for pickup code.',
        data=data,
        action_url=_transaction_url(transaction),
        dedup_key=f'payment_successful:{transaction.pk}',
    )[0]
    return seller_note, buyer_note


def notify_pickup_code_generated(transaction, pickup):
    return create_notification(
        transaction.buyer,
        'transaction',
        'Pickup Code Ready',
        f'Your pickup code for "{transaction.listing.title}" is ready: {pickup.pickup_code}',
        data={'transaction_id': transaction.pk},
        action_url=_transaction_url(transaction),
        priority='high',
        dedup_key=f'pickup_generated:{transaction.pk}',
    )[0]


def notify_pickup_confirmed(transaction):
    title = transaction.listing.title
    data = {'transaction_id': transaction.pk}
    buyer_note = create_notification(
        transaction.buyer,
        'transaction',
        'Pickup Confirmed',
        f'Pickup confirmed for "{title}". You can now leave a review.',
        data=data,
        action_url=_transaction_url(transaction),
        dedup_key=f'pickup_confirmed:{transaction.pk}',
    )[0]
    seller_note = create_notification(
        transaction.seller,
        'transaction',
        'Item Delivered',
        f'"{title}" has been successfully delivered.',
        data=data,
        action_url=_transaction_url(transaction),
        dedup_key=f'item_delivered:{transaction.pk}',
    )[0]
    return buyer_note, seller_note


def notify_dispute_created(dispute):
    """Notify the other party and all admins about a new dispute."""
    transaction = dispute.transaction
    party_note = create_notification(
        dispute.other_party(),
        'dispute',
        'Dispute Filed',
        f'A dispute has been filed for "{transaction.listing.title}": {dispute.subject}',
        data={'dispute_id': dispute.pk, 'transaction_id': transaction.pk},
        action_url=_transaction_url(transaction),
        priority='high',
        dedup_key=f'dispute_created:{dispute.pk}',
    )[0]
    admin_notes = notify_admins(
        'New Dispute',
        f'New dispute filed: {dispute.subject}',
        data={'dispute_id': dispute.pk, 'priority': dispute.priority},
        action_url=f'/admin/disputes/{dispute.pk}',
        priority='high',
        dedup_key=f'admin_dispute_created:{dispute.pk}',
    )
    return [party_note] + admin_notes


def notify_dispute_resolved(dispute):
    transaction = dispute.transaction
    message = (
        f'Dispute for "{transaction.listing.title}" has been '
        f'{dispute.get_status_display().lower()}.'
    )
    return [
        create_notification(
            user,
            'dispute',
            'Dispute Updated' if dispute.is_active() else 'Dispute Resolved',
            message,
            data={'dispute_id': dispute.pk, 'status': dispute.status},
            action_url=_transaction_url(transaction),
            dedup_key=f'dispute_{dispute.status}:{dispute.pk}',
        )[0]
        for user in (transaction.buyer, transaction.seller)
    ]


def notify_review_received(review):
    return create_notification(
        review.reviewee,
        'review',
        'New Review',
        f'{review.reviewer.display_name} left you a {review.rating}-star review '
        f'for "{review.transaction.listing.title}"',
        data={'review_id': review.pk, 'transaction_id': review.transaction_id},
        action_url='/reviews',
        dedup_key=f'review_received:{review.pk}',
    )[0]


def notify_new_message(message):
    """
    Notify the other chat participant.

    Keyed per chat so a burst of messages leaves a single unread entry.
    """
    chat = message.chat
    recipient = chat.other_party(message.sender)
    return create_notification(
        recipient,
        'chat',
        'New Message',
        f'{message.sender.display_name} sent you a message about "{chat.listing.title}"',
        data={'chat_id': chat.pk, 'message_id': message.pk},
        action_url=f'/chats/{chat.pk}',
        dedup_key=f'chat:{chat.pk}',
    )[0]


def notify_account_verified(user):
    return create_notification(
        user,
        'system',
        'Account Verified',
        'Your account has been verified! You can now access all features.',
        action_url='/dashboard',
        dedup_key='account_verified',
    )[0]
