"""
Chat, message and offer negotiation tests.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.urls import reverse
from django.utils import timezone
from rest_framework import status

from core.models import Chat, Message, Notification, Offer


@pytest.fixture
def make_offer(chat):
    def _make(proposer, price='400.00', offer_status='proposed', expires_in=timedelta(hours=24)):
        return Offer.objects.create(
            chat=chat,
            proposer=proposer,
            price=Decimal(price),
            status=offer_status,
            expires_at=timezone.now() + expires_in,
        )
    return _make


# ============================================================================
# 1. STARTING CHATS
# ============================================================================

@pytest.mark.django_db
class TestChatStart:

    def test_buyer_starts_chat(self, auth_client, buyer, seller, listing):
        response = auth_client(buyer).post(reverse('chat_start'), {'listing_id': listing.id}, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        chat = Chat.objects.get(pk=response.data['data']['chat_id'])
        assert chat.buyer == buyer
        assert chat.seller == seller
        assert response.data['data']['chat']['listing']['id'] == listing.id

    def test_starting_again_returns_existing_chat(self, auth_client, buyer, chat, listing):
        response = auth_client(buyer).post(reverse('chat_start'), {'listing_id': listing.id}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['chat_id'] == chat.id
        assert Chat.objects.count() == 1

    def test_cannot_chat_on_own_listing(self, auth_client, seller, listing):
        response = auth_client(seller).post(reverse('chat_start'), {'listing_id': listing.id}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unknown_listing(self, auth_client, buyer):
        response = auth_client(buyer).post(reverse('chat_start'), {'listing_id': 9999}, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_unverified_user_cannot_start_chat(self, auth_client, unverified_user, listing):
        response = auth_client(unverified_user).post(
            reverse('chat_start'), {'listing_id': listing.id}, format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_chat_list_only_shows_own_chats(self, auth_client, chat, buyer, outsider):
        mine = auth_client(buyer).get(reverse('chat_list'))
        assert [item['id'] for item in mine.data['data']] == [chat.id]

        theirs = auth_client(outsider).get(reverse('chat_list'))
        assert theirs.data['data'] == []

    def test_chat_list_includes_last_message(self, auth_client, chat, buyer, seller):
        Message.objects.create(chat=chat, sender=buyer, text='Is this available?')
        Message.objects.create(chat=chat, sender=seller, text='Yes it is.')

        response = auth_client(buyer).get(reverse('chat_list'))

        assert response.data['data'][0]['last_message']['text'] == 'Yes it is.'


# ============================================================================
# 2. MESSAGES
# ============================================================================

@pytest.mark.django_db
class TestMessages:

    def test_participant_sends_message(self, auth_client, buyer, chat):
        response = auth_client(buyer).post(
            reverse('message_list'), {'chat_id': chat.id, 'text': 'Is this still available?'}, format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['data']['text'] == 'Is this still available?'
        assert response.data['data']['read_status'] == 'sent'
        assert response.data['data']['sender']['id'] == buyer.id

    def test_message_notifies_other_party_once_per_chat(self, auth_client, buyer, seller, chat):
        client = auth_client(buyer)
        client.post(reverse('message_list'), {'chat_id': chat.id, 'text': 'Hello'}, format='json')
        client.post(reverse('message_list'), {'chat_id': chat.id, 'text': 'Are you there?'}, format='json')

        notes = Notification.objects.filter(user=seller, notification_type='chat')
        assert notes.count() == 1
        assert notes.get().title == 'New Message'

    def test_message_text_is_escaped(self, auth_client, buyer, chat):
        response = auth_client(buyer).post(
            reverse('message_list'), {'chat_id': chat.id, 'text': '<b>hi</b>'}, format='json'
        )

        assert response.data['data']['text'] == '&lt;b&gt;hi&lt;/b&gt;'

    def test_outsider_cannot_send(self, auth_client, outsider, chat):
        response = auth_client(outsider).post(
            reverse('message_list'), {'chat_id': chat.id, 'text': 'Spam'}, format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert not Message.objects.exists()

    def test_blank_message_rejected(self, auth_client, buyer, chat):
        response = auth_client(buyer).post(
            reverse('message_list'), {'chat_id': chat.id, 'text': '   '}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_message_too_long_rejected(self, auth_client, buyer, chat):
        response = auth_client(buyer).post(
            reverse('message_list'), {'chat_id': chat.id, 'text': 'x' * 1001}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_list_requires_chat_parameter(self, auth_client, buyer):
        response = auth_client(buyer).get(reverse('message_list'))

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_list_is_chronological(self, auth_client, buyer, seller, chat):
        for sender, text in ((buyer, 'first'), (seller, 'second'), (buyer, 'third')):
            Message.objects.create(chat=chat, sender=sender, text=text)

        response = auth_client(buyer).get(reverse('message_list'), {'chat': chat.id})

        assert response.status_code == status.HTTP_200_OK
        assert [m['text'] for m in response.data['data']] == ['first', 'second', 'third']
        assert response.data['pagination']['limit'] == 50

    def test_reading_marks_other_party_messages_read(self, auth_client, buyer, seller, chat):
        theirs = Message.objects.create(chat=chat, sender=seller, text='Price is firm')
        mine = Message.objects.create(chat=chat, sender=buyer, text='Okay')

        auth_client(buyer).get(reverse('message_list'), {'chat': chat.id})

        theirs.refresh_from_db()
        mine.refresh_from_db()
        assert theirs.read_status == 'read'
        assert mine.read_status == 'sent'

    def test_outsider_cannot_read(self, auth_client, outsider, chat):
        response = auth_client(outsider).get(reverse('message_list'), {'chat': chat.id})

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_unknown_chat(self, auth_client, buyer):
        response = auth_client(buyer).get(reverse('message_list'), {'chat': 9999})

        assert response.status_code == status.HTTP_404_NOT_FOUND


# ============================================================================
# 3. OFFERS
# ============================================================================

@pytest.mark.django_db
class TestOfferCreation:

    def test_buyer_proposes_offer(self, auth_client, buyer, seller, chat):
        response = auth_client(buyer).post(
            reverse('offer_create'), {'chat_id': chat.id, 'price': '400.00'}, format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['data']['status'] == 'proposed'
        assert response.data['data']['price'] == '400.00'
        offer = Offer.objects.get()
        assert offer.expires_at > timezone.now() + timedelta(hours=23)
        assert Notification.objects.filter(user=seller, title='New Offer').exists()

    def test_second_offer_by_same_proposer_conflicts(self, auth_client, buyer, chat, make_offer):
        make_offer(buyer)

        response = auth_client(buyer).post(
            reverse('offer_create'), {'chat_id': chat.id, 'price': '420.00'}, format='json'
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_other_party_counters(self, auth_client, buyer, seller, chat, make_offer):
        first = make_offer(buyer)

        response = auth_client(seller).post(
            reverse('offer_create'), {'chat_id': chat.id, 'price': '450.00'}, format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['data']['status'] == 'countered'
        first.refresh_from_db()
        assert first.status == 'declined'
        assert Notification.objects.filter(user=buyer, title='Counter Offer').exists()

    def test_expired_open_offer_does_not_block(self, auth_client, buyer, chat, make_offer):
        stale = make_offer(buyer, expires_in=timedelta(hours=-1))

        response = auth_client(buyer).post(
            reverse('offer_create'), {'chat_id': chat.id, 'price': '420.00'}, format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['data']['status'] == 'proposed'
        stale.refresh_from_db()
        assert stale.status == 'expired'

    def test_outsider_cannot_offer(self, auth_client, outsider, chat):
        response = auth_client(outsider).post(
            reverse('offer_create'), {'chat_id': chat.id, 'price': '400.00'}, format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_non_positive_price_rejected(self, auth_client, buyer, chat):
        response = auth_client(buyer).post(
            reverse('offer_create'), {'chat_id': chat.id, 'price': '0'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestOfferResponses:

    def test_recipient_accepts(self, auth_client, buyer, seller, make_offer):
        offer = make_offer(buyer)

        response = auth_client(seller).put(
            reverse('offer_update', args=[offer.id]), {'status': 'accepted'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['status'] == 'accepted'
        assert Notification.objects.filter(user=buyer, title='Offer Accepted').exists()

    def test_recipient_declines(self, auth_client, buyer, seller, make_offer):
        offer = make_offer(buyer)

        response = auth_client(seller).put(
            reverse('offer_update', args=[offer.id]), {'status': 'declined'}, format='json'
        )

        assert response.data['data']['status'] == 'declined'

    def test_proposer_cannot_accept_own_offer(self, auth_client, buyer, make_offer):
        offer = make_offer(buyer)

        response = auth_client(buyer).put(
            reverse('offer_update', args=[offer.id]), {'status': 'accepted'}, format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_only_proposer_cancels(self, auth_client, buyer, seller, make_offer):
        offer = make_offer(buyer)

        denied = auth_client(seller).put(
            reverse('offer_update', args=[offer.id]), {'status': 'cancelled'}, format='json'
        )
        assert denied.status_code == status.HTTP_403_FORBIDDEN

        allowed = auth_client(buyer).put(
            reverse('offer_update', args=[offer.id]), {'status': 'cancelled'}, format='json'
        )
        assert allowed.status_code == status.HTTP_200_OK
        assert allowed.data['data']['status'] == 'cancelled'

    def test_closed_offer_cannot_change(self, auth_client, buyer, seller, make_offer):
        offer = make_offer(buyer, offer_status='declined')

        response = auth_client(seller).put(
            reverse('offer_update', args=[offer.id]), {'status': 'accepted'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_expired_offer_is_marked_and_rejected(self, auth_client, buyer, seller, make_offer):
        offer = make_offer(buyer, expires_in=timedelta(minutes=-5))

        response = auth_client(seller).put(
            reverse('offer_update', args=[offer.id]), {'status': 'accepted'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        offer.refresh_from_db()
        assert offer.status == 'expired'

    def test_invalid_status_rejected(self, auth_client, buyer, seller, make_offer):
        offer = make_offer(buyer)

        response = auth_client(seller).put(
            reverse('offer_update', args=[offer.id]), {'status': 'expired'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_outsider_cannot_respond(self, auth_client, outsider, buyer, make_offer):
        offer = make_offer(buyer)

        response = auth_client(outsider).put(
            reverse('offer_update', args=[offer.id]), {'status': 'accepted'}, format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_unknown_offer(self, auth_client, seller):
        response = auth_client(seller).put(
            reverse('offer_update', args=[9999]), {'status': 'accepted'}, format='json'
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
