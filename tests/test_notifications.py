"""
Notification tests: creation with de-duplication, listing order, marking
read and deletion.
"""

from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone
from rest_framework import status

from core.models import Notification
from core.notifications import create_notification, notify_admins, notify_payment_received


def _backdate(notification, **delta):
    Notification.objects.filter(pk=notification.pk).update(created_at=timezone.now() - timedelta(**delta))


# ============================================================================
# 1. CREATION AND DE-DUPLICATION
# ============================================================================

@pytest.mark.django_db
class TestCreateNotification:

    def test_creates_notification(self, buyer):
        note, created = create_notification(buyer, 'system', 'Welcome', 'Hello there')

        assert created is True
        assert note.user == buyer
        assert note.notification_type == 'system'
        assert note.priority == 'normal'
        assert note.dedup_key.startswith('system:')

    def test_identical_notification_suppressed(self, buyer):
        first, _ = create_notification(buyer, 'system', 'Welcome', 'Hello there')
        second, created = create_notification(buyer, 'system', 'Welcome', 'Hello there')

        assert created is False
        assert second.pk == first.pk
        assert Notification.objects.filter(user=buyer).count() == 1

    def test_different_message_not_suppressed(self, buyer):
        create_notification(buyer, 'system', 'Welcome', 'Hello there')
        _, created = create_notification(buyer, 'system', 'Welcome', 'Hello again')

        assert created is True

    def test_read_notification_does_not_suppress(self, buyer):
        first, _ = create_notification(buyer, 'system', 'Welcome', 'Hello there')
        first.is_read = True
        first.save()

        _, created = create_notification(buyer, 'system', 'Welcome', 'Hello there')

        assert created is True

    def test_window_expires(self, buyer):
        first, _ = create_notification(buyer, 'system', 'Welcome', 'Hello there')
        _backdate(first, seconds=301)

        _, created = create_notification(buyer, 'system', 'Welcome', 'Hello there')

        assert created is True

    def test_explicit_key(self, buyer):
        create_notification(buyer, 'chat', 'New Message', 'First', dedup_key='chat:7')
        _, created = create_notification(buyer, 'chat', 'New Message', 'Second', dedup_key='chat:7')

        assert created is False

    def test_payment_notices_keyed_per_party(self, paid_transaction, buyer, seller):
        notify_payment_received(paid_transaction)
        notify_payment_received(paid_transaction)

        seller_note = Notification.objects.get(user=seller, title='Payment Received')
        buyer_note = Notification.objects.get(user=buyer, title='Payment Successful')
        assert seller_note.dedup_key == f'payment_received:{paid_transaction.id}'
        assert buyer_note.dedup_key == f'payment_successful:{paid_transaction.id}'

    def test_other_users_are_independent(self, buyer, seller):
        create_notification(buyer, 'system', 'Welcome', 'Hello there')
        _, created = create_notification(seller, 'system', 'Welcome', 'Hello there')

        assert created is True

    def test_dedup_disabled(self, buyer, settings):
        settings.MARKETPLACE = {**settings.MARKETPLACE, 'NOTIFICATION_DEDUP_SECONDS': 0}
        create_notification(buyer, 'system', 'Welcome', 'Hello there')
        _, created = create_notification(buyer, 'system', 'Welcome', 'Hello there')

        assert created is True

    def test_notify_admins_reaches_active_admins_only(self, admin_user, make_user, buyer):
        make_user('retired_admin', role='admin', is_active=False)

        notes = notify_admins('New Report', 'Spam listing reported')

        assert [n.user for n in notes] == [admin_user]
        assert not Notification.objects.filter(user=buyer).exists()


# ============================================================================
# 2. LISTING
# ============================================================================

@pytest.mark.django_db
class TestNotificationList:

    def test_priority_then_recency(self, auth_client, buyer):
        low, _ = create_notification(buyer, 'system', 'Low', 'a', priority='low')
        old_high, _ = create_notification(buyer, 'system', 'Old high', 'b', priority='high')
        _backdate(old_high, minutes=5)
        new_high, _ = create_notification(buyer, 'system', 'New high', 'c', priority='high')
        urgent, _ = create_notification(buyer, 'system', 'Urgent', 'd', priority='urgent')

        response = auth_client(buyer).get(reverse('notifications'))

        assert response.status_code == status.HTTP_200_OK
        ids = [n['id'] for n in response.data['data']['notifications']]
        assert ids == [urgent.id, new_high.id, old_high.id, low.id]
        assert response.data['data']['unread_count'] == 4
        assert response.data['pagination']['total'] == 4

    def test_expired_notifications_purged(self, auth_client, buyer):
        expired, _ = create_notification(
            buyer, 'system', 'Flash sale', 'Gone', expires_at=timezone.now() - timedelta(minutes=1)
        )
        create_notification(buyer, 'system', 'Still here', 'Kept')

        response = auth_client(buyer).get(reverse('notifications'))

        titles = [n['title'] for n in response.data['data']['notifications']]
        assert titles == ['Still here']
        assert not Notification.objects.filter(pk=expired.pk).exists()

    def test_only_own_notifications(self, auth_client, buyer, seller):
        create_notification(seller, 'system', 'For seller', 'x')

        response = auth_client(buyer).get(reverse('notifications'))

        assert response.data['data']['notifications'] == []
        assert response.data['data']['unread_count'] == 0

    def test_filters(self, auth_client, buyer):
        create_notification(buyer, 'chat', 'Chat', 'x')
        read, _ = create_notification(buyer, 'system', 'System', 'y')
        read.is_read = True
        read.save()

        client = auth_client(buyer)
        by_type = client.get(reverse('notifications'), {'type': 'chat'})
        unread = client.get(reverse('notifications'), {'unread_only': 'true'})

        assert [n['type'] for n in by_type.data['data']['notifications']] == ['chat']
        assert [n['title'] for n in unread.data['data']['notifications']] == ['Chat']

    def test_requires_login(self, api_client):
        response = api_client.get(reverse('notifications'))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


# ============================================================================
# 3. MARKING READ
# ============================================================================

@pytest.mark.django_db
class TestNotificationMarkRead:

    def test_mark_selected(self, auth_client, buyer):
        first, _ = create_notification(buyer, 'system', 'One', 'a')
        second, _ = create_notification(buyer, 'system', 'Two', 'b')

        response = auth_client(buyer).put(
            reverse('notifications'), {'notification_ids': [first.id]}, format='json'
        )

        assert response.data['data'] == {'updated': 1}
        first.refresh_from_db()
        second.refresh_from_db()
        assert first.is_read is True
        assert second.is_read is False

    def test_mark_all(self, auth_client, buyer):
        create_notification(buyer, 'system', 'One', 'a')
        create_notification(buyer, 'system', 'Two', 'b')

        response = auth_client(buyer).put(reverse('notifications'), {'mark_all': True}, format='json')

        assert response.data['data'] == {'updated': 2}
        assert not Notification.objects.filter(user=buyer, is_read=False).exists()

    def test_cannot_mark_other_users(self, auth_client, buyer, seller):
        theirs, _ = create_notification(seller, 'system', 'Theirs', 'a')

        response = auth_client(buyer).put(
            reverse('notifications'), {'notification_ids': [theirs.id]}, format='json'
        )

        assert response.data['data'] == {'updated': 0}
        theirs.refresh_from_db()
        assert theirs.is_read is False

    def test_empty_body_rejected(self, auth_client, buyer):
        response = auth_client(buyer).put(reverse('notifications'), {}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST


# ============================================================================
# 4. DELETION
# ============================================================================

@pytest.mark.django_db
class TestNotificationDelete:

    def test_delete_one(self, auth_client, buyer):
        note, _ = create_notification(buyer, 'system', 'One', 'a')

        response = auth_client(buyer).delete(f"{reverse('notifications')}?id={note.id}")

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data'] == {'deleted': 1}
        assert not Notification.objects.filter(pk=note.pk).exists()

    def test_delete_other_users_not_found(self, auth_client, buyer, seller):
        theirs, _ = create_notification(seller, 'system', 'Theirs', 'a')

        response = auth_client(buyer).delete(f"{reverse('notifications')}?id={theirs.id}")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert Notification.objects.filter(pk=theirs.pk).exists()

    def test_delete_all_removes_old_read_only(self, auth_client, buyer):
        old_read, _ = create_notification(buyer, 'system', 'Old read', 'a')
        old_read.is_read = True
        old_read.save()
        _backdate(old_read, days=31)
        old_unread, _ = create_notification(buyer, 'system', 'Old unread', 'b')
        _backdate(old_unread, days=31)
        recent_read, _ = create_notification(buyer, 'system', 'Recent read', 'c')
        recent_read.is_read = True
        recent_read.save()

        response = auth_client(buyer).delete(f"{reverse('notifications')}?delete_all=true")

        assert response.data['data'] == {'deleted': 1}
        remaining = set(Notification.objects.filter(user=buyer).values_list('title', flat=True))
        assert remaining == {'Old unread', 'Recent read'}

    def test_no_parameters_rejected(self, auth_client, buyer):
        response = auth_client(buyer).delete(reverse('notifications'))

        assert response.status_code == status.HTTP_400_BAD_REQUEST
