"""
Pickup hand-off tests: code generation by the buyer and confirmation by the
seller.
"""

import pytest
from django.core.exceptions import ValidationError
from django.urls import reverse
from rest_framework import status

from core.models import Notification, Pickup


@pytest.mark.django_db
class TestPickupModel:

    def test_generated_code_is_six_digits(self, paid_transaction):
        pickup = Pickup.objects.create(transaction=paid_transaction)

        assert len(pickup.pickup_code) == 6
        assert 100000 <= int(pickup.pickup_code) <= 999999

    def test_generate_code_range(self):
        codes = {Pickup.generate_code() for _ in range(200)}

        assert all(100000 <= int(code) <= 999999 for code in codes)

    def test_requires_paid_transaction(self, initiated_transaction):
        with pytest.raises(ValidationError):
            Pickup.objects.create(transaction=initiated_transaction)

    def test_confirm_twice_raises(self, paid_transaction):
        pickup = Pickup.objects.create(transaction=paid_transaction)
        pickup.confirm()

        with pytest.raises(ValidationError):
            pickup.confirm()


# ============================================================================
# 1. BUYER GENERATES
# ============================================================================

@pytest.mark.django_db
class TestPickupGenerate:

    def test_buyer_generates_code(self, auth_client, buyer, paid_transaction):
        response = auth_client(buyer).post(
            reverse('pickup_generate'), {'transaction_id': paid_transaction.id}, format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        pickup = Pickup.objects.get(transaction=paid_transaction)
        assert response.data['data']['pickup_code'] == pickup.pickup_code
        assert response.data['data']['status'] == 'generated'

    def test_existing_code_is_returned(self, auth_client, buyer, make_transaction):
        txn = make_transaction('paid', pickup='generated')

        response = auth_client(buyer).post(reverse('pickup_generate'), {'transaction_id': txn.id}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['pickup_code'] == txn.pickup.pickup_code
        assert Pickup.objects.count() == 1

    def test_seller_cannot_use_buyer_endpoint(self, auth_client, seller, paid_transaction):
        response = auth_client(seller).post(
            reverse('pickup_generate'), {'transaction_id': paid_transaction.id}, format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_unpaid_transaction_rejected(self, auth_client, buyer, initiated_transaction):
        response = auth_client(buyer).post(
            reverse('pickup_generate'), {'transaction_id': initiated_transaction.id}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unknown_transaction(self, auth_client, buyer):
        response = auth_client(buyer).post(reverse('pickup_generate'), {'transaction_id': 9999}, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND


# ============================================================================
# 2. SELLER CONFIRMS
# ============================================================================

@pytest.mark.django_db
class TestPickupConfirm:

    @pytest.fixture
    def awaiting(self, make_transaction):
        return make_transaction('paid', pickup='generated')

    def test_correct_code_confirms(self, auth_client, seller, buyer, listing, awaiting):
        response = auth_client(seller).post(
            reverse('pickup_confirm'),
            {'transaction_id': awaiting.id, 'pickup_code': awaiting.pickup.pickup_code},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['transaction_id'] == awaiting.id
        assert response.data['data']['pickup']['status'] == 'confirmed'
        awaiting.refresh_from_db()
        assert awaiting.is_completed()
        listing.refresh_from_db()
        assert listing.is_active is False
        assert Notification.objects.filter(user=buyer, title='Pickup Confirmed').exists()
        assert Notification.objects.filter(user=seller, title='Item Delivered').exists()

    def test_wrong_code_rejected(self, auth_client, seller, awaiting):
        wrong = '111111' if awaiting.pickup.pickup_code != '111111' else '222222'

        response = auth_client(seller).post(
            reverse('pickup_confirm'), {'transaction_id': awaiting.id, 'pickup_code': wrong}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        awaiting.pickup.refresh_from_db()
        assert awaiting.pickup.status == 'generated'

    @pytest.mark.parametrize('code', ['12345', '1234567', 'abcdef'])
    def test_malformed_code_rejected(self, auth_client, seller, awaiting, code):
        response = auth_client(seller).post(
            reverse('pickup_confirm'), {'transaction_id': awaiting.id, 'pickup_code': code}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'pickup_code' in response.data['error']['details']

    def test_buyer_cannot_confirm(self, auth_client, buyer, awaiting):
        response = auth_client(buyer).post(
            reverse('pickup_confirm'),
            {'transaction_id': awaiting.id, 'pickup_code': awaiting.pickup.pickup_code},
            format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_already_confirmed(self, auth_client, seller, completed_transaction):
        response = auth_client(seller).post(
            reverse('pickup_confirm'),
            {'transaction_id': completed_transaction.id, 'pickup_code': completed_transaction.pickup.pickup_code},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_no_pickup_generated(self, auth_client, seller, paid_transaction):
        response = auth_client(seller).post(
            reverse('pickup_confirm'), {'transaction_id': paid_transaction.id, 'pickup_code': '123456'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
