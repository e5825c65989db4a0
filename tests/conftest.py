"""
Shared fixtures for the API test suite.

The payment gateway is never contacted: ``gateway`` patches
``core.payments.get_gateway`` with a mock whose orders and refunds echo the
requested amounts.
"""

import hashlib
import hmac
import itertools
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from core.models import Category, Chat, Listing, Pickup, Transaction
from core.payments import to_paise

User = get_user_model()


@pytest.fixture(autouse=True)
def clear_cache(db):
    """Clear Django cache before each test to reset throttle limits."""
    from django.core.cache import cache
    cache.clear()


@pytest.fixture
def api_client():
    """Provide API client for testing."""
    return APIClient()


@pytest.fixture
def make_user(db):
    """Factory for users; verified college accounts unless told otherwise."""
    counter = itertools.count(1)

    def _make(username=None, verified=True, **kwargs):
        username = username or f'user{next(counter)}'
        kwargs.setdefault('email', f'{username}@iitb.ac.in')
        kwargs.setdefault('password', 'StrongPass123!')
        return User.objects.create_user(username=username, is_verified=verified, **kwargs)

    return _make


@pytest.fixture
def seller(make_user):
    return make_user('seller', name='Sam Seller')


@pytest.fixture
def buyer(make_user):
    return make_user('buyer', name='Bina Buyer')


@pytest.fixture
def outsider(make_user):
    return make_user('outsider')


@pytest.fixture
def unverified_user(make_user):
    return make_user('unverified', verified=False, email='unverified@gmail.com')


@pytest.fixture
def admin_user(make_user):
    return make_user('moderator', role='admin', email='moderator@iitb.ac.in')


@pytest.fixture
def auth_client(api_client):
    """Return a client authenticated as the given user."""
    def _login(user):
        api_client.force_authenticate(user=user)
        return api_client
    return _login


@pytest.fixture
def category(db):
    return Category.objects.create(name='Electronics')


@pytest.fixture
def subcategory(category):
    return Category.objects.create(name='Calculators', parent=category)


@pytest.fixture
def make_listing(seller, category):
    def _make(owner=None, **kwargs):
        kwargs.setdefault('title', 'Casio fx-991EX calculator')
        kwargs.setdefault('description', 'Scientific calculator, used for two semesters.')
        kwargs.setdefault('price', Decimal('500.00'))
        kwargs.setdefault('images', ['https://cdn.example.com/listings/calculator.jpg'])
        kwargs.setdefault('category', category)
        return Listing.objects.create(seller=owner or seller, **kwargs)
    return _make


@pytest.fixture
def listing(make_listing):
    return make_listing()


@pytest.fixture
def chat(listing, buyer, seller):
    return Chat.objects.create(listing=listing, buyer=buyer, seller=seller)


@pytest.fixture
def make_transaction(listing, buyer):
    """
    Factory for transactions in a given state.

    status: 'initiated', 'paid', 'cancelled' or 'refunded'
    pickup: None, 'generated' or 'confirmed' (paid transactions only)
    """
    counter = itertools.count(1)

    def _make(status='initiated', pickup=None, on_listing=None, by=None, amount=None):
        n = next(counter)
        target = on_listing or listing
        txn = Transaction.objects.create(
            buyer=by or buyer,
            seller=target.seller,
            listing=target,
            amount=amount or target.price,
            gateway_order_id=f'order_test{n}',
        )
        if status in ('initiated', 'paid'):
            target.set_active(False)

        if status == 'cancelled':
            txn.cancel()
        elif status in ('paid', 'refunded'):
            txn.mark_paid(f'pay_test{n}')
            if status == 'refunded':
                txn.mark_refunded(f'rfnd_test{n}', txn.amount)

        if pickup is not None:
            record = Pickup.objects.create(transaction=txn)
            if pickup == 'confirmed':
                record.confirm()

        txn.refresh_from_db()
        return txn

    return _make


@pytest.fixture
def initiated_transaction(make_transaction):
    return make_transaction()


@pytest.fixture
def paid_transaction(make_transaction):
    return make_transaction('paid')


@pytest.fixture
def completed_transaction(make_transaction):
    return make_transaction('paid', pickup='confirmed')


@pytest.fixture
def gateway():
    """Mocked gateway client; orders and refunds echo the amount in paise."""
    client = MagicMock()

    def create_order(amount, receipt=None, notes=None):
        return {'id': 'order_test123', 'amount': to_paise(amount), 'currency': 'INR'}

    def refund_payment(payment_id, amount=None, notes=None):
        return {
            'id': 'rfnd_test123',
            'payment_id': payment_id,
            'amount': to_paise(amount) if amount is not None else None,
        }

    client.create_order.side_effect = create_order
    client.refund_payment.side_effect = refund_payment

    with patch('core.payments.get_gateway', return_value=client):
        yield client


@pytest.fixture
def payment_signature():
    """Sign "<order_id>|<payment_id>" with the test key secret."""
    def _sign(order_id, payment_id, secret='test_key_secret'):
        message = f'{order_id}|{payment_id}'.encode('utf-8')
        return hmac.new(secret.encode('utf-8'), message, hashlib.sha256).hexdigest()
    return _sign


@pytest.fixture
def webhook_signature():
    """Sign a raw webhook body with the test webhook secret."""
    def _sign(body, secret='test_webhook_secret'):
        if isinstance(body, str):
            body = body.encode('utf-8')
        return hmac.new(secret.encode('utf-8'), body, hashlib.sha256).hexdigest()
    return _sign
